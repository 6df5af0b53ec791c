# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - uploads.py: Photo upload batches (ledger, retry, remove, hand-off)
# - studio.py: AI catalogue photos, listing copy and apply
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import studio
from . import uploads

__all__ = [
    "health",
    "studio",
    "uploads",
]
