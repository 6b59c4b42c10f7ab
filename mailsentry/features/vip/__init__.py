"""
VIP tagging feature package.

Keeps the VIP updater, its repository, the sweep job and the HTTP routes
together. Independent of the classification feature.
"""

from .api.router import router as vip_router  # noqa: F401
from .services.status_updater import VipStatusUpdater, vip_status_updater  # noqa: F401
