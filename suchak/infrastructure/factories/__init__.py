"""Factories for creating collaborator instances (Factory Pattern)."""

from suchak.infrastructure.factories.provider_factory import ProviderFactory

__all__ = [
    "ProviderFactory",
]
