"""
VIP status updater.

Flips emails.is_vip according to the tenant's active VIP addresses. Runs
independently of classification. Every batch is a fold over its emails:
each email yields an outcome, and a failing email is logged and recorded
without unwinding the rest of the batch.
"""

from collections.abc import Iterable
from typing import Protocol

from mailsentry.features.vip.domain import (
    VipAddress,
    VipBatchResult,
    VipEmailRecord,
    VipPropagationResult,
    VipUpdateOutcome,
    normalize_address,
)
from mailsentry.features.vip.repository import VipRepository
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class VipStore(Protocol):
    async def find_active_vip(self, tenant_id: str, email_address: str) -> VipAddress | None: ...

    async def set_email_vip(self, email_id: str, tenant_id: str, is_vip: bool) -> int: ...

    async def list_active_vip_addresses(self, tenant_id: str) -> list[VipAddress]: ...

    async def set_vip_for_sender(
        self, tenant_id: str, email_address: str, is_vip: bool, mailbox_id: str | None = None
    ) -> int: ...


class VipStatusUpdater:
    """Applies VIP membership to stored emails."""

    def __init__(self, vip_store: VipStore):
        self.vip_store = vip_store

    async def update_vip_status(self, emails: Iterable[VipEmailRecord]) -> VipBatchResult:
        """Recompute is_vip for each email from current VIP membership."""
        outcomes: list[VipUpdateOutcome] = []
        for email in emails:
            outcomes.append(await self._update_one(email))

        result = VipBatchResult.from_outcomes(outcomes)
        logger.info(
            "VIP status batch processed",
            processed=result.processed,
            updated=result.updated,
            failed=result.failed,
        )
        return result

    async def _update_one(self, email: VipEmailRecord) -> VipUpdateOutcome:
        try:
            vip = await self.vip_store.find_active_vip(
                email.tenant_id, normalize_address(email.sender_email)
            )
            is_vip = vip is not None

            affected = await self.vip_store.set_email_vip(email.id, email.tenant_id, is_vip)
            if not affected:
                logger.warning("Email not found for VIP update", email_id=email.id)
                return VipUpdateOutcome(
                    email_id=email.id, success=False, is_vip=is_vip, error="Email not found"
                )

            if is_vip:
                logger.debug("Email marked as VIP", email_id=email.id, tenant_id=email.tenant_id)
            return VipUpdateOutcome(email_id=email.id, success=True, is_vip=is_vip)

        except Exception as e:
            logger.error(
                "Failed to update VIP status for email",
                email_id=email.id,
                tenant_id=email.tenant_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return VipUpdateOutcome(email_id=email.id, success=False, error=str(e))

    async def apply_vip_change(
        self, tenant_id: str, email_address: str, is_vip: bool, mailbox_id: str | None = None
    ) -> int:
        """Propagate an add/remove of one VIP address to the tenant's stored emails."""
        address = normalize_address(email_address)
        if not address:
            raise ValueError("email_address is required")

        logger.info(
            "Applying VIP change",
            tenant_id=tenant_id,
            mailbox_id=mailbox_id,
            is_vip=is_vip,
        )
        return await self.vip_store.set_vip_for_sender(
            tenant_id, address, is_vip, mailbox_id=mailbox_id
        )

    async def process_tenant(
        self, tenant_id: str, mailbox_id: str | None = None
    ) -> VipPropagationResult:
        """Mark emails from every active VIP of the tenant; one bad address never stops the rest."""
        vips = await self.vip_store.list_active_vip_addresses(tenant_id)
        result = VipPropagationResult(vip_addresses=len(vips))

        if not vips:
            logger.info("No VIP addresses configured for tenant", tenant_id=tenant_id)
            return result

        for vip in vips:
            try:
                result.updated += await self.vip_store.set_vip_for_sender(
                    tenant_id, vip.email_address, True, mailbox_id=mailbox_id
                )
            except Exception as e:
                logger.error(
                    "Failed to apply VIP address",
                    tenant_id=tenant_id,
                    vip_id=vip.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed += 1
                result.errors.append({"vip_id": vip.id, "error": str(e)})

        logger.info(
            "Tenant VIP processing completed",
            tenant_id=tenant_id,
            vip_addresses=result.vip_addresses,
            updated=result.updated,
            failed=result.failed,
        )
        return result


# Singleton wired to the Postgres-backed store
vip_status_updater = VipStatusUpdater(VipRepository)
