"""
Credential entries and the store interface behind the credential pool.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from docscan_ai.timeutil import utc_now

DEFAULT_MAX_ERRORS = 3
DEFAULT_COOLDOWN = timedelta(minutes=5)


@dataclass(frozen=True)
class CredentialEntry:
    """
    One API key with its health metadata.

    The secret is excluded from repr so entries can be logged or displayed
    safely; use `masked` when the key has to be identified to a user.
    """

    id: str
    secret: str = field(repr=False)
    label: str = ""
    created_at: datetime = field(default_factory=utc_now)
    last_used_at: datetime | None = None
    last_error_at: datetime | None = None
    error_count: int = 0
    active: bool = True

    @property
    def masked(self) -> str:
        """The secret with everything but its last 8 characters hidden."""
        if len(self.secret) > 8:
            return f"********{self.secret[-8:]}"
        return "********"

    def is_in_cooldown(
        self,
        now: datetime,
        max_errors: int = DEFAULT_MAX_ERRORS,
        cooldown: timedelta = DEFAULT_COOLDOWN,
    ) -> bool:
        """Whether the entry reached the error threshold less than `cooldown` ago."""
        if self.error_count < max_errors or self.last_error_at is None:
            return False
        return now - self.last_error_at < cooldown

    def is_eligible(
        self,
        now: datetime,
        max_errors: int = DEFAULT_MAX_ERRORS,
        cooldown: timedelta = DEFAULT_COOLDOWN,
    ) -> bool:
        """Whether the entry may be handed out for the next call."""
        return self.active and not self.is_in_cooldown(now, max_errors, cooldown)


class CredentialStore(ABC):
    """Where credential entries come from and where health updates go."""

    @abstractmethod
    def list_credentials(self) -> list[CredentialEntry]:
        """Return all known credential entries."""
        ...

    @abstractmethod
    def persist_credential(self, entry: CredentialEntry) -> None:
        """Write back an updated entry."""
        ...
