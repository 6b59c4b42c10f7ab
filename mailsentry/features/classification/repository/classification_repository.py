"""
Classification recorder.

Insert-only persistence for resolver output. A failed insert is a hard
error: a classification without a durable record is incomplete.
"""

from dataclasses import replace

from psycopg.types.json import Jsonb

from mailsentry.db.helpers import DatabaseError, fetch_one
from mailsentry.features.classification.domain import Classification
from mailsentry.infrastructure.observability.logging import get_logger, log_classification

logger = get_logger(__name__)


class ClassificationPersistenceError(DatabaseError):
    """The classification row could not be written."""


class ClassificationRepository:
    """Writes rows into email_classifications."""

    @classmethod
    async def record(cls, classification: Classification) -> Classification:
        """Insert the classification and return it with id/created_at filled in."""

        query = """
            INSERT INTO email_classifications (
                tenant_id, mailbox_id, email_id, category_id,
                confidence_score, classification_method, rule_id, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id, created_at
        """

        params = (
            classification.tenant_id,
            classification.mailbox_id,
            classification.email_id,
            classification.category_id,
            classification.confidence_score,
            classification.classification_method,
            classification.rule_id,
            Jsonb(classification.metadata),
        )

        row = await fetch_one(query, params)
        if not row:
            raise ClassificationPersistenceError(
                "Failed to store classification", operation="record", recoverable=False
            )

        log_classification(
            email_id=classification.email_id,
            tenant_id=classification.tenant_id,
            category_id=classification.category_id,
            method=classification.classification_method,
            confidence=classification.confidence_score,
            rule_id=classification.rule_id,
        )
        return replace(classification, id=str(row["id"]), created_at=row.get("created_at"))
