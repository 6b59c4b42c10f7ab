from .classification_repository import ClassificationPersistenceError, ClassificationRepository
from .rule_repository import RuleRepository

__all__ = ["ClassificationPersistenceError", "ClassificationRepository", "RuleRepository"]
