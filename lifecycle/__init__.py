"""User data lifecycle (retention and GDPR) maintenance."""

from lifecycle.service import MAINTENANCE_SCHEDULE, UserLifecycleService, UserLifecycleStore

__all__ = [
    "MAINTENANCE_SCHEDULE",
    "UserLifecycleService",
    "UserLifecycleStore",
]
