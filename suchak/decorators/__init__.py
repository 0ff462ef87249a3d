"""Request decorators."""
from suchak.decorators.security import signature_required

__all__ = ["signature_required"]
