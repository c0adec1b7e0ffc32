"""Admin override channel for the subscription ledger."""

from .models import AdminAction, AdminAuditEvent, AdminRequiredError, AdminStats
from .service import AdminAuditLogger, AdminOverrideService, LoggingAdminAuditLogger

__all__ = [
    "AdminAction",
    "AdminAuditEvent",
    "AdminAuditLogger",
    "AdminOverrideService",
    "AdminRequiredError",
    "AdminStats",
    "LoggingAdminAuditLogger",
]
