"""Feature gating utilities coordinating entitlement enforcement."""
from .context import EntitlementContext
from .enforcement import require_agent_access, require_authenticated, require_normal_access
from .exceptions import FeatureGateError

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "require_agent_access",
    "require_authenticated",
    "require_normal_access",
]
