"""
Error taxonomy shared by every component
"""

from typing import Optional


class ForgeError(Exception):
    """Base error carrying a machine-readable reason code"""

    default_reason = "error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def __str__(self):
        return self.message


class ValidationError(ForgeError):
    """Malformed or low-confidence request. Terminal, never retried."""

    default_reason = "invalid_request"


class CollaboratorError(ForgeError):
    """An external service (ledger, AI, IPFS) failed or timed out"""

    default_reason = "collaborator_failed"

    def __init__(self, message: str, reason: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message, reason)
        self.step = step


class PolicyViolation(ForgeError):
    """Anti-bot or lock-duration rule breach"""

    default_reason = "policy_violation"


class NotAuthorized(PolicyViolation):
    """Caller is not the owner/depositor/admin for the operation"""

    default_reason = "not_authorized"


class StateConflict(ForgeError):
    """Operation conflicts with current state (double unlock, duplicate whitelist entry...)"""

    default_reason = "state_conflict"
