from dataclasses import replace
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from mailsentry.auth.verify import auth_dependency
from mailsentry.config import Settings
from mailsentry.features.classification.domain import (
    Classification,
    ClassificationRule,
    ConditionEvaluation,
    EmailCategory,
    EmailMessage,
)
from mailsentry.features.vip.domain import VipAddress, VipEmailRecord, normalize_address


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "service-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="sk-test",
        OPENAI_MODEL="gpt-4o-mini",
        OPENAI_FALLBACK_MODELS=["gpt-4o"],
        AI_CONDITION_CONTENT_MAX_CHARS=100,
    )


def make_email(sender_email: str, **overrides) -> EmailMessage:
    fields = {
        "id": "email-1",
        "sender_email": sender_email,
        "subject": "Quarterly numbers",
        "mailbox_id": "mbx-1",
        "tenant_id": "tenant-1",
    }
    fields.update(overrides)
    return EmailMessage(**fields)


class FakeRuleStore:
    def __init__(
        self,
        rules: list[ClassificationRule] | None = None,
        categories: list[EmailCategory] | None = None,
    ):
        self.rules = rules or []
        self.categories = categories or []

    async def list_active_rules(self, tenant_id: str) -> list[ClassificationRule]:
        return [r for r in self.rules if r.tenant_id == tenant_id and r.is_active]

    async def list_available_categories(
        self, tenant_id: str, mailbox_id: str
    ) -> list[EmailCategory]:
        return [c for c in self.categories if c.tenant_id == tenant_id]


class FakeRecorder:
    def __init__(self):
        self.records: list[Classification] = []

    async def record(self, classification: Classification) -> Classification:
        self.records.append(classification)
        return replace(
            classification,
            id=f"cls-{len(self.records)}",
            created_at=datetime(2026, 1, 5, 9, 30, tzinfo=UTC),
        )


class FakeConditionEvaluator:
    def __init__(self, verdicts: dict[str, ConditionEvaluation] | None = None, error=None):
        self.verdicts = verdicts or {}
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def evaluate(self, condition: str, email: EmailMessage) -> ConditionEvaluation:
        self.calls.append((condition, email.id))
        if self.error is not None:
            raise self.error
        return self.verdicts.get(
            condition, ConditionEvaluation(meets_condition=False, confidence=0.9, reasoning="no")
        )


class FakeVipStore:
    """In-memory stand-in for VipRepository."""

    def __init__(self):
        self.vips: dict[tuple[str, str], VipAddress] = {}
        self.emails: dict[str, dict] = {}
        self.failing_email_ids: set[str] = set()
        self.failing_addresses: set[str] = set()
        self.failing_tenants: set[str] = set()

    def add_vip(self, tenant_id: str, email_address: str, is_active: bool = True) -> VipAddress:
        address = normalize_address(email_address)
        vip = VipAddress(
            tenant_id=tenant_id,
            email_address=address,
            is_active=is_active,
            id=f"vip-{len(self.vips) + 1}",
        )
        self.vips[(tenant_id, address)] = vip
        return vip

    def add_email(
        self, email_id: str, tenant_id: str, sender_email: str, mailbox_id: str = "mbx-1"
    ) -> VipEmailRecord:
        self.emails[email_id] = {
            "tenant_id": tenant_id,
            "sender_email": sender_email,
            "mailbox_id": mailbox_id,
            "is_vip": False,
        }
        return VipEmailRecord(
            id=email_id, tenant_id=tenant_id, sender_email=sender_email, mailbox_id=mailbox_id
        )

    async def find_active_vip(self, tenant_id: str, email_address: str) -> VipAddress | None:
        vip = self.vips.get((tenant_id, email_address))
        return vip if vip and vip.is_active else None

    async def set_email_vip(self, email_id: str, tenant_id: str, is_vip: bool) -> int:
        if email_id in self.failing_email_ids:
            raise RuntimeError("update failed")
        row = self.emails.get(email_id)
        if row is None or row["tenant_id"] != tenant_id:
            return 0
        self.emails[email_id]["is_vip"] = is_vip
        return 1

    async def list_active_vip_addresses(self, tenant_id: str) -> list[VipAddress]:
        return [v for (t, _), v in self.vips.items() if t == tenant_id and v.is_active]

    async def set_vip_for_sender(
        self, tenant_id: str, email_address: str, is_vip: bool, mailbox_id: str | None = None
    ) -> int:
        if email_address in self.failing_addresses:
            raise RuntimeError("bulk update failed")
        updated = 0
        for row in self.emails.values():
            if row["tenant_id"] != tenant_id:
                continue
            if normalize_address(row["sender_email"]) != email_address:
                continue
            if mailbox_id and row["mailbox_id"] != mailbox_id:
                continue
            if row["is_vip"] != is_vip:
                row["is_vip"] = is_vip
                updated += 1
        return updated

    async def list_tenants_with_active_vips(self) -> list[str]:
        return sorted({t for (t, _), v in self.vips.items() if v.is_active})

    async def list_recent_emails(self, tenant_id: str, since, limit: int) -> list[VipEmailRecord]:
        if tenant_id in self.failing_tenants:
            raise RuntimeError("query failed")
        records = [
            VipEmailRecord(
                id=email_id,
                tenant_id=row["tenant_id"],
                sender_email=row["sender_email"],
                mailbox_id=row["mailbox_id"],
                is_vip=row["is_vip"],
            )
            for email_id, row in self.emails.items()
            if row["tenant_id"] == tenant_id
        ]
        return records[:limit]


def chat_response(content: str | None):
    """Shape of an OpenAI chat completion as far as the evaluator reads it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture
def fake_openai():
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace()))
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def fake_vip_store():
    return FakeVipStore()


@pytest.fixture
def email_factory():
    return make_email


@pytest.fixture
def rule_store_factory():
    return FakeRuleStore


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def evaluator_factory():
    return FakeConditionEvaluator


@pytest.fixture
def chat_completion():
    return chat_response
