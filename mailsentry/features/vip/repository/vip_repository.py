"""
Persistence layer for VIP tagging.

Reads the tenant's VIP address list and writes the is_vip flag on stored
emails. Addresses are compared lowercased on both sides.
"""

from datetime import datetime

from mailsentry.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from mailsentry.features.vip.domain import VipAddress, VipEmailRecord, normalize_address
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class VipRepository:
    """Persistence helpers backing the VIP status updater."""

    @classmethod
    def _row_to_address(cls, row: dict) -> VipAddress:
        return VipAddress(
            id=str(row["id"]) if row.get("id") else None,
            tenant_id=str(row["tenant_id"]),
            email_address=row["email_address"],
            is_active=bool(row.get("is_active", True)),
        )

    @classmethod
    @with_db_retry()
    async def find_active_vip(cls, tenant_id: str, email_address: str) -> VipAddress | None:
        """Active VIP row for the tenant matching the address, if any."""

        query = """
            SELECT id, tenant_id, email_address, is_active
            FROM vip_email_addresses
            WHERE tenant_id = %s
              AND lower(email_address) = %s
              AND is_active = true
            LIMIT 1
        """

        row = await fetch_one(query, (tenant_id, normalize_address(email_address)))
        return cls._row_to_address(row) if row else None

    @classmethod
    @with_db_retry()
    async def list_active_vip_addresses(cls, tenant_id: str) -> list[VipAddress]:
        query = """
            SELECT id, tenant_id, email_address, is_active
            FROM vip_email_addresses
            WHERE tenant_id = %s
              AND is_active = true
            ORDER BY email_address
        """

        rows = await fetch_all(query, (tenant_id,))
        return [cls._row_to_address(row) for row in rows]

    @classmethod
    @with_db_retry()
    async def list_tenants_with_active_vips(cls) -> list[str]:
        query = """
            SELECT DISTINCT tenant_id
            FROM vip_email_addresses
            WHERE is_active = true
        """

        rows = await fetch_all(query)
        return [str(row["tenant_id"]) for row in rows]

    @classmethod
    @with_db_retry()
    async def list_recent_emails(
        cls, tenant_id: str, since: datetime, limit: int
    ) -> list[VipEmailRecord]:
        """Emails received after `since`, newest first."""

        query = """
            SELECT id, tenant_id, mailbox_id, sender_email, is_vip
            FROM emails
            WHERE tenant_id = %s
              AND received_at >= %s
            ORDER BY received_at DESC
            LIMIT %s
        """

        rows = await fetch_all(query, (tenant_id, since, limit))
        return [
            VipEmailRecord(
                id=str(row["id"]),
                tenant_id=str(row["tenant_id"]),
                sender_email=row["sender_email"] or "",
                mailbox_id=str(row["mailbox_id"]) if row.get("mailbox_id") else None,
                is_vip=row.get("is_vip"),
            )
            for row in rows
        ]

    @classmethod
    async def set_email_vip(cls, email_id: str, tenant_id: str, is_vip: bool) -> int:
        """Write the flag on one of the tenant's emails; returns affected rows."""

        query = """
            UPDATE emails
            SET is_vip = %s,
                updated_at = NOW()
            WHERE id = %s
              AND tenant_id = %s
        """

        return await execute_query(query, (is_vip, email_id, tenant_id))

    @classmethod
    async def set_vip_for_sender(
        cls, tenant_id: str, email_address: str, is_vip: bool, mailbox_id: str | None = None
    ) -> int:
        """Flip the flag on every tenant email from the sender whose flag differs."""

        query = """
            UPDATE emails
            SET is_vip = %s,
                updated_at = NOW()
            WHERE tenant_id = %s
              AND lower(sender_email) = %s
              AND is_vip IS DISTINCT FROM %s
        """
        params: tuple = (is_vip, tenant_id, normalize_address(email_address), is_vip)

        if mailbox_id:
            query += "  AND mailbox_id = %s\n"
            params += (mailbox_id,)

        updated = await execute_query(query, params)
        logger.info(
            "VIP flag applied to sender emails",
            tenant_id=tenant_id,
            mailbox_id=mailbox_id,
            is_vip=is_vip,
            updated=updated,
        )
        return updated
