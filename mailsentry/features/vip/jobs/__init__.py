"""
Background jobs for the VIP tagging feature.
"""

from .auto_vip_job import AutoVipSweepJob, run_auto_vip_sweep, start_auto_vip_scheduler

__all__ = ["AutoVipSweepJob", "run_auto_vip_sweep", "start_auto_vip_scheduler"]
