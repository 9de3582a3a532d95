"""Authentication: token lifecycle and grant flows."""

from ezenv.auth.flow import TokenLifecycleManager
from ezenv.auth.models import DeviceGrantSession, TokenRecord
from ezenv.auth.retry import RetryState, retry_with_backoff

__all__ = [
    "DeviceGrantSession",
    "RetryState",
    "TokenLifecycleManager",
    "TokenRecord",
    "retry_with_backoff",
]
