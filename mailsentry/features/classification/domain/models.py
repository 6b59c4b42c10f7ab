"""
Domain models for the classification feature.

Plain dataclasses shared by the repositories, the resolver and the API
layer. Rows coming out of Postgres are converted here so the rest of the
feature never handles raw dicts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ClassificationMethod = Literal["rule", "default", "ai"]

AI_RULE_TYPE = "ai"

DEFAULT_CONFIDENCE = 0.3


@dataclass(slots=True)
class EmailMessage:
    """An ingested email as seen by the classification pipeline."""

    id: str
    sender_email: str
    subject: str
    mailbox_id: str
    tenant_id: str
    sender_name: str | None = None
    body_content: str | None = None
    body_preview: str | None = None
    importance: str = "normal"
    received_at: datetime | str | None = None
    is_vip: bool = False

    @property
    def full_text(self) -> str:
        return self.body_content or self.body_preview or ""


@dataclass(slots=True)
class ClassificationRule:
    """Represents an email_classification_rules row."""

    id: str
    tenant_id: str
    category_id: str
    rule_type: str
    rule_value: str
    priority: int = 0
    is_active: bool = True
    name: str | None = None

    @property
    def is_ai(self) -> bool:
        return self.rule_type == AI_RULE_TYPE


@dataclass(slots=True)
class EmailCategory:
    """Represents an email_categories row; mailbox_id None means tenant-wide."""

    id: str
    tenant_id: str
    name: str
    priority: int = 0
    is_active: bool = True
    mailbox_id: str | None = None

    def is_available_to(self, mailbox_id: str) -> bool:
        return self.is_active and (self.mailbox_id is None or self.mailbox_id == mailbox_id)


@dataclass(slots=True)
class Classification:
    """Resolver output, persisted once into email_classifications."""

    tenant_id: str
    mailbox_id: str
    email_id: str
    category_id: str
    confidence_score: float
    classification_method: ClassificationMethod
    rule_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "mailbox_id": self.mailbox_id,
            "email_id": self.email_id,
            "category_id": self.category_id,
            "confidence_score": self.confidence_score,
            "classification_method": self.classification_method,
            "rule_id": self.rule_id,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(slots=True)
class ConditionEvaluation:
    """Normalized answer of the AI condition evaluator."""

    meets_condition: bool
    confidence: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "meetsCondition": self.meets_condition,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }
