from .base import Base
from .error_code import ErrorCode
from .profile import Profile
from .subscription import Subscription
from .daily_usage import DailyUsage
from .scan import Scan
from .event import Event

__all__ = [
    "Base",
    "ErrorCode",
    "Profile",
    "Subscription",
    "DailyUsage",
    "Scan",
    "Event",
]
