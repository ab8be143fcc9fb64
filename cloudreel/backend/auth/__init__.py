"""Credential lifecycle for the remote store."""

from cloudreel.backend.auth.token_manager import Credential, TokenManager

__all__ = ["Credential", "TokenManager"]
