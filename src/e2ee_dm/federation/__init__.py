"""Boundary to the instance's E2EE services.

- E2EEServiceClient: status, registration and actor key lookup over HTTP
- StatusCache: per-session memo of the status endpoint
- ActorKeyResolver: memoized, deduplicated actor public key lookups
"""

from e2ee_dm.federation.client import E2EEServiceClient
from e2ee_dm.federation.models import ActiveKey, ActorKey, E2EEStatus
from e2ee_dm.federation.resolver import ActorKeyResolver
from e2ee_dm.federation.status import StatusCache

__all__ = [
    "E2EEServiceClient",
    "ActiveKey",
    "ActorKey",
    "E2EEStatus",
    "ActorKeyResolver",
    "StatusCache",
]
