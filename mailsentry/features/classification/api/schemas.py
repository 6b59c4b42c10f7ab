"""
Request/response models for the classification endpoints.

Callers are a mix of the dashboard (camelCase) and other handlers
(snake_case), so every multi-word field accepts both spellings.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from mailsentry.features.classification.domain import EmailMessage


class EmailPayload(BaseModel):
    """Inbound email as posted to the pipeline."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    sender_email: str = Field(
        ..., validation_alias=AliasChoices("sender_email", "senderEmail", "sender")
    )
    sender_name: str | None = Field(
        None, validation_alias=AliasChoices("sender_name", "senderName")
    )
    subject: str = ""
    body_content: str | None = Field(
        None, validation_alias=AliasChoices("body_content", "bodyContent", "content")
    )
    body_preview: str | None = Field(
        None, validation_alias=AliasChoices("body_preview", "bodyPreview")
    )
    importance: str = "normal"
    received_at: datetime | None = Field(
        None, validation_alias=AliasChoices("received_at", "receivedAt")
    )
    mailbox_id: str = Field("", validation_alias=AliasChoices("mailbox_id", "mailboxId"))
    tenant_id: str = Field("", validation_alias=AliasChoices("tenant_id", "tenantId"))

    def to_domain(self) -> EmailMessage:
        return EmailMessage(
            id=self.id,
            sender_email=self.sender_email,
            subject=self.subject,
            mailbox_id=self.mailbox_id,
            tenant_id=self.tenant_id,
            sender_name=self.sender_name,
            body_content=self.body_content,
            body_preview=self.body_preview,
            importance=self.importance,
            received_at=self.received_at,
        )


class ClassifyRequest(BaseModel):
    """Body of POST /classification/classify."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailPayload
    tenant_id: str | None = Field(None, validation_alias=AliasChoices("tenant_id", "tenantId"))
    mailbox_id: str | None = Field(
        None, validation_alias=AliasChoices("mailbox_id", "mailboxId")
    )


class ClassifyResponse(BaseModel):
    success: bool
    classification: dict[str, Any] | None = None
    message: str


class ConditionResult(BaseModel):
    meetsCondition: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str


class EvaluateConditionResponse(BaseModel):
    success: bool
    result: ConditionResult


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
