"""Auth module — the principal abstraction handed to the engine by the host."""

from leavedesk.auth.principal import Principal, require_role

__all__ = ["Principal", "require_role"]
