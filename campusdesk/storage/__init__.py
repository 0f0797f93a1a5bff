"""File-backed persistence for session transcripts and provider logs."""

from .provider_logs import ProviderLogStore
from .sessions import SessionStore, generate_session_name

__all__ = ["ProviderLogStore", "SessionStore", "generate_session_name"]
