from gym_access.models.announcement import PlatformAnnouncement
from gym_access.models.base import Base, TimestampedBase
from gym_access.models.feature_flag import FeatureFlagSetting
from gym_access.models.gym import Gym
from gym_access.models.platform_setting import PlatformSetting
from gym_access.models.user_role import UserRole

__all__ = [
    "Base",
    "TimestampedBase",
    "Gym",
    "UserRole",
    "FeatureFlagSetting",
    "PlatformAnnouncement",
    "PlatformSetting",
]
