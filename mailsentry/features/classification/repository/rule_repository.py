"""
Read-only access to tenant classification rules and categories.

The pipeline never writes to these tables; rules and categories are
managed by tenant admins through the dashboard.
"""

from mailsentry.db.helpers import fetch_all, with_db_retry
from mailsentry.features.classification.domain import ClassificationRule, EmailCategory
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RuleRepository:
    """Loads active rules and mailbox-available categories."""

    @classmethod
    def _row_to_rule(cls, row: dict) -> ClassificationRule:
        return ClassificationRule(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            category_id=str(row["category_id"]),
            rule_type=row["rule_type"],
            rule_value=row["rule_value"] or "",
            priority=row.get("priority") or 0,
            is_active=bool(row.get("is_active", True)),
            name=row.get("name"),
        )

    @classmethod
    def _row_to_category(cls, row: dict) -> EmailCategory:
        mailbox_id = row.get("mailbox_id")
        return EmailCategory(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            name=row["name"],
            priority=row.get("priority") or 0,
            is_active=bool(row.get("is_active", True)),
            mailbox_id=str(mailbox_id) if mailbox_id else None,
        )

    @classmethod
    @with_db_retry()
    async def list_active_rules(cls, tenant_id: str) -> list[ClassificationRule]:
        """Active rules for the tenant, highest priority first."""

        query = """
            SELECT id, tenant_id, category_id, rule_type, rule_value,
                   priority, is_active, name
            FROM email_classification_rules
            WHERE tenant_id = %s
              AND is_active = true
            ORDER BY COALESCE(priority, 0) DESC, id
        """

        rows = await fetch_all(query, (tenant_id,))
        logger.debug("Loaded classification rules", tenant_id=tenant_id, rule_count=len(rows))
        return [cls._row_to_rule(row) for row in rows]

    @classmethod
    @with_db_retry()
    async def list_available_categories(
        cls, tenant_id: str, mailbox_id: str
    ) -> list[EmailCategory]:
        """Active categories scoped to the mailbox or tenant-wide, highest priority first."""

        query = """
            SELECT id, tenant_id, mailbox_id, name, priority, is_active
            FROM email_categories
            WHERE tenant_id = %s
              AND is_active = true
              AND (mailbox_id = %s OR mailbox_id IS NULL)
            ORDER BY COALESCE(priority, 0) DESC, id
        """

        rows = await fetch_all(query, (tenant_id, mailbox_id))
        logger.debug(
            "Loaded email categories",
            tenant_id=tenant_id,
            mailbox_id=mailbox_id,
            category_count=len(rows),
        )
        return [cls._row_to_category(row) for row in rows]
