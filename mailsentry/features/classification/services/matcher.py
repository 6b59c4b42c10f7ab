"""
Synchronous rule matcher.

Evaluates textual classification rules against an email. AI rules need a
network round trip and go through the condition evaluator instead, so
they never match here.
"""

from mailsentry.features.classification.domain import ClassificationRule, EmailMessage


def _sender_domain(sender_email: str) -> str | None:
    _, sep, domain = sender_email.partition("@")
    return domain.lower() if sep else None


def matches(email: EmailMessage, rule: ClassificationRule) -> bool:
    """Return True when a textual rule matches the email (case-insensitive)."""
    rule_value = (rule.rule_value or "").lower()

    if rule.rule_type == "sender":
        return rule_value in (email.sender_email or "").lower()

    if rule.rule_type == "domain":
        return _sender_domain(email.sender_email or "") == rule_value

    if rule.rule_type == "subject":
        return rule_value in (email.subject or "").lower()

    if rule.rule_type == "content":
        return rule_value in email.full_text.lower()

    return False
