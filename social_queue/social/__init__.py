"""
Social platform integration layer.

This package provides:
- Platform adapters (Twitter/X, LinkedIn, Facebook) behind one contract
- AES-256-GCM encryption of stored credentials
- Token lifecycle coordination and refresh sweeps
- The account service used by the web layer and the scheduler
"""

from .encryption import TokenCipher
from .lifecycle import TokenLifecycleCoordinator
from .oauth_state import OAuthStateStore
from .registry import AdapterRegistry, build_http_client, create_default_registry
from .repository import InMemoryTokenRepository, TokenRepository
from .service import RefreshSweepResult, SocialService

__all__ = [
    "AdapterRegistry",
    "InMemoryTokenRepository",
    "OAuthStateStore",
    "RefreshSweepResult",
    "SocialService",
    "TokenCipher",
    "TokenLifecycleCoordinator",
    "TokenRepository",
    "build_http_client",
    "create_default_registry",
]
