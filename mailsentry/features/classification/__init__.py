"""
Email classification feature package.

Rule matching, AI condition evaluation, resolution and recording live
together here so the whole pipeline can be read top to bottom.
"""

from .api.router import router as classification_router  # noqa: F401
from .domain.models import Classification, ClassificationRule, EmailCategory, EmailMessage  # noqa: F401
from .services.resolver import ClassificationResolver, ConfigurationError  # noqa: F401
