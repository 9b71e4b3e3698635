"""Shared exception hierarchy for NotifyHub services."""
from typing import Optional

# ── Channels ──────────────────────────────────────────────────────────────────


class ConfigurationError(Exception):
    """Channel is missing a required credential or setting."""

    def __init__(self, channel: str, reason: str):
        super().__init__(reason)
        self.channel = channel
        self.reason = reason


# ── Audit ─────────────────────────────────────────────────────────────────────


class AuthorizationError(Exception):
    """Security-sensitive action blocked because its audit entry was not written."""


# ── Providers ─────────────────────────────────────────────────────────────────


class TransientProviderError(Exception):
    """External messaging provider failed for one peer or one configuration."""


# ── Persistence ───────────────────────────────────────────────────────────────


class PersistenceError(Exception):
    """Store query or write failed."""


# ── Ledger ────────────────────────────────────────────────────────────────────


class LedgerError(Exception):
    """Base exception for notification ledger errors."""


class IllegalTransitionError(LedgerError):
    """Status change is not an edge of the ledger transition table."""

    def __init__(self, current: Optional[str], target: str, log_id=None):
        source = current or "(none)"
        message = f"Illegal ledger transition {source} -> {target}"
        if log_id is not None:
            message += f" for log {log_id}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.log_id = log_id
