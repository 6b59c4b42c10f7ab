"""
Domain models for the VIP tagging feature.

VIP membership is keyed by (tenant, lowercased address). The updater
works on lightweight email references rather than full messages since
only the sender matters for the flag.
"""

from dataclasses import dataclass, field


def normalize_address(email_address: str | None) -> str:
    return (email_address or "").strip().lower()


@dataclass(slots=True)
class VipAddress:
    """Represents a vip_email_addresses row."""

    tenant_id: str
    email_address: str
    is_active: bool = True
    id: str | None = None


@dataclass(slots=True)
class VipEmailRecord:
    """The parts of an emails row the VIP updater needs."""

    id: str
    tenant_id: str
    sender_email: str
    mailbox_id: str | None = None
    is_vip: bool | None = None


@dataclass(slots=True)
class VipUpdateOutcome:
    """Result of updating one email's VIP flag."""

    email_id: str | None
    success: bool
    is_vip: bool | None = None
    error: str | None = None


@dataclass(slots=True)
class VipBatchResult:
    """Folded outcome of a VIP batch; failures never abort the batch."""

    processed: int = 0
    updated: int = 0
    failed: int = 0
    outcomes: list[VipUpdateOutcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[VipUpdateOutcome]) -> "VipBatchResult":
        failed = sum(1 for outcome in outcomes if not outcome.success)
        return cls(
            processed=len(outcomes),
            updated=len(outcomes) - failed,
            failed=failed,
            outcomes=list(outcomes),
        )


@dataclass(slots=True)
class VipPropagationResult:
    """Counts for applying VIP membership across a tenant's stored emails."""

    vip_addresses: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)
