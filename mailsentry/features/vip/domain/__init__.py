"""
Domain subpackage for the VIP tagging feature.
"""

from .models import (
    VipAddress,
    VipBatchResult,
    VipEmailRecord,
    VipPropagationResult,
    VipUpdateOutcome,
    normalize_address,
)

__all__ = [
    "VipAddress",
    "VipBatchResult",
    "VipEmailRecord",
    "VipPropagationResult",
    "VipUpdateOutcome",
    "normalize_address",
]
