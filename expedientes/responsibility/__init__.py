from .cache import AreaResponsibilityCache
from .repository import AreaResponsibilityRepository, InMemoryResponsibilityRepository
from .service import ResponsibilityService

__all__ = [
    "AreaResponsibilityCache",
    "AreaResponsibilityRepository",
    "InMemoryResponsibilityRepository",
    "ResponsibilityService",
]
