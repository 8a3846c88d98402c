"""Identity provider abstractions and implementations."""

from .base import IdentityError, IdentityProvider, IdentityUser

__all__ = ["IdentityError", "IdentityProvider", "IdentityUser"]
