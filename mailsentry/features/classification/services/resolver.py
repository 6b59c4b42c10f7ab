"""
Classification resolver - picks the category for an inbound email.

Rules are evaluated in descending priority and the first satisfied rule
wins. Textual rules are matched synchronously; AI rules await the
condition evaluator inline. When nothing matches, the highest-priority
category available to the mailbox is used as the default.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from mailsentry.features.classification.domain import (
    DEFAULT_CONFIDENCE,
    Classification,
    ClassificationRule,
    ConditionEvaluation,
    EmailCategory,
    EmailMessage,
)
from mailsentry.features.classification.services.condition_evaluator import UpstreamCallError
from mailsentry.features.classification.services.matcher import matches
from mailsentry.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

NO_CATEGORIES_MESSAGE = "No categories configured for this mailbox"


class ConfigurationError(Exception):
    """Tenant/mailbox setup makes classification impossible."""


class RuleStore(Protocol):
    async def list_active_rules(self, tenant_id: str) -> list[ClassificationRule]: ...

    async def list_available_categories(
        self, tenant_id: str, mailbox_id: str
    ) -> list[EmailCategory]: ...


class ClassificationRecorder(Protocol):
    async def record(self, classification: Classification) -> Classification: ...


class ConditionEvaluator(Protocol):
    async def evaluate(self, condition: str, email: EmailMessage) -> ConditionEvaluation: ...


@dataclass(slots=True)
class RuleMatch:
    rule: ClassificationRule
    method: str
    evaluation: ConditionEvaluation | None = None


def _priority_order(item: ClassificationRule | EmailCategory) -> tuple[int, str]:
    return (-(item.priority or 0), item.id)


def priority_confidence(priority: int | None) -> float:
    """Map a rule priority onto [0, 1]."""
    return min(1.0, max(0.0, (priority or 0) / 100))


class ClassificationResolver:
    """Resolves and records one classification per call."""

    def __init__(
        self,
        rule_store: RuleStore,
        recorder: ClassificationRecorder,
        condition_evaluator: ConditionEvaluator | None = None,
    ):
        self.rule_store = rule_store
        self.recorder = recorder
        self.condition_evaluator = condition_evaluator

    async def resolve(
        self, email: EmailMessage, tenant_id: str | None = None, mailbox_id: str | None = None
    ) -> Classification:
        """
        Classify `email` and persist the result.

        Raises:
            ConfigurationError: no active category is available to the mailbox
            DatabaseError: rules could not be loaded or the record not written
        """
        tenant_id = tenant_id or email.tenant_id
        mailbox_id = mailbox_id or email.mailbox_id

        rules = sorted(await self.rule_store.list_active_rules(tenant_id), key=_priority_order)
        categories = sorted(
            (
                category
                for category in await self.rule_store.list_available_categories(
                    tenant_id, mailbox_id
                )
                if category.is_available_to(mailbox_id)
            ),
            key=_priority_order,
        )

        if not categories:
            logger.warning(
                "No categories available for mailbox",
                email_id=email.id,
                tenant_id=tenant_id,
                mailbox_id=mailbox_id,
            )
            raise ConfigurationError(NO_CATEGORIES_MESSAGE)

        logger.info(
            "Resolving email classification",
            email_id=email.id,
            tenant_id=tenant_id,
            rule_count=len(rules),
            category_count=len(categories),
        )

        available_ids = {category.id for category in categories}
        match = await self._find_match(email, rules, available_ids)

        metadata: dict[str, Any] = {
            "sender": email.sender_email,
            "subject": email.subject,
            "processed_at": datetime.now(UTC).isoformat(),
        }

        if match is None:
            default_category = categories[0]
            logger.info(
                "No rule matched, using default category",
                email_id=email.id,
                category_id=default_category.id,
            )
            classification = Classification(
                tenant_id=tenant_id,
                mailbox_id=mailbox_id,
                email_id=email.id,
                category_id=default_category.id,
                confidence_score=DEFAULT_CONFIDENCE,
                classification_method="default",
                rule_id=None,
                metadata=metadata,
            )
        else:
            metadata["rule_type"] = match.rule.rule_type
            if match.evaluation is not None:
                metadata["ai_confidence"] = match.evaluation.confidence
                metadata["ai_reasoning"] = match.evaluation.reasoning

            classification = Classification(
                tenant_id=tenant_id,
                mailbox_id=mailbox_id,
                email_id=email.id,
                category_id=match.rule.category_id,
                confidence_score=priority_confidence(match.rule.priority),
                classification_method=match.method,
                rule_id=match.rule.id,
                metadata=metadata,
            )

        return await self.recorder.record(classification)

    async def _find_match(
        self, email: EmailMessage, rules: list[ClassificationRule], available_ids: set[str]
    ) -> RuleMatch | None:
        for rule in rules:
            if rule.category_id not in available_ids:
                continue

            if rule.is_ai:
                evaluation = await self._evaluate_ai_rule(email, rule)
                if evaluation is not None and evaluation.meets_condition:
                    logger.debug("AI rule matched", email_id=email.id, rule_id=rule.id)
                    return RuleMatch(rule=rule, method="ai", evaluation=evaluation)
                continue

            if matches(email, rule):
                logger.debug(
                    "Rule matched", email_id=email.id, rule_id=rule.id, rule_type=rule.rule_type
                )
                return RuleMatch(rule=rule, method="rule")

        return None

    async def _evaluate_ai_rule(
        self, email: EmailMessage, rule: ClassificationRule
    ) -> ConditionEvaluation | None:
        if self.condition_evaluator is None:
            logger.debug("Skipping AI rule, no evaluator configured", rule_id=rule.id)
            return None

        try:
            return await self.condition_evaluator.evaluate(rule.rule_value, email)
        except UpstreamCallError as e:
            # An unreachable backend means "did not match", not a failed resolution
            logger.warning(
                "AI rule evaluation failed, skipping rule",
                email_id=email.id,
                rule_id=rule.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
