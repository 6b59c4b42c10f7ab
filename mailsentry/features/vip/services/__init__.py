"""
Service layer for the VIP tagging feature.
"""

from .status_updater import VipStatusUpdater, vip_status_updater

__all__ = ["VipStatusUpdater", "vip_status_updater"]
