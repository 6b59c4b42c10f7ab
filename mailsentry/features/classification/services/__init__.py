"""
Service layer for the classification feature.
"""

from .condition_evaluator import (
    AIConditionEvaluator,
    UpstreamCallError,
    UpstreamTimeoutError,
    condition_evaluator,
    parse_evaluation,
)
from .matcher import matches
from .resolver import ClassificationResolver, ConfigurationError

__all__ = [
    "AIConditionEvaluator",
    "ClassificationResolver",
    "ConfigurationError",
    "UpstreamCallError",
    "UpstreamTimeoutError",
    "condition_evaluator",
    "matches",
    "parse_evaluation",
]
