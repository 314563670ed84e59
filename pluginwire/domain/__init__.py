"""Plugin-author facing service registration."""

from .service import DomainService

__all__ = ["DomainService"]
