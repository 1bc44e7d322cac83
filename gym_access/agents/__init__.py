from gym_access.agents.invalidation_listener import InvalidationListener
from gym_access.agents.subscription_sweeper import app as sweeper_app

__all__ = ["InvalidationListener", "sweeper_app"]
