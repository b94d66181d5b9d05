"""Database models owned by the OAuth broker."""

from .base import Base, as_utc, utcnow
from .google import GOOGLE_PROVIDER, GoogleIntegration
from .oauth_state import OAuthState

__all__ = [
    "Base",
    "GOOGLE_PROVIDER",
    "GoogleIntegration",
    "OAuthState",
    "as_utc",
    "utcnow",
]
