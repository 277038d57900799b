"""
Identity provider integration.

Implements the IdentityProvider protocol from core.session.auth.
"""

from .client import (
    HttpIdentityProvider,
    IdentityConfig,
    MockIdentityProvider,
    create_identity_provider,
)

__all__ = [
    "HttpIdentityProvider",
    "IdentityConfig",
    "MockIdentityProvider",
    "create_identity_provider",
]
