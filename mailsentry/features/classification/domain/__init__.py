"""
Domain subpackage for the classification feature.
"""

from .models import (
    AI_RULE_TYPE,
    DEFAULT_CONFIDENCE,
    Classification,
    ClassificationRule,
    ConditionEvaluation,
    EmailCategory,
    EmailMessage,
)

__all__ = [
    "AI_RULE_TYPE",
    "DEFAULT_CONFIDENCE",
    "Classification",
    "ClassificationRule",
    "ConditionEvaluation",
    "EmailCategory",
    "EmailMessage",
]
