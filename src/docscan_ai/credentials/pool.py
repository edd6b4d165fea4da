"""
Credential pool with health tracking and automatic failover.

Selection spreads load over the least recently used keys, skips keys that are
cooling down after repeated errors and never hands out a deactivated key.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from docscan_ai.credentials.base import (
    DEFAULT_COOLDOWN,
    DEFAULT_MAX_ERRORS,
    CredentialEntry,
    CredentialStore,
)
from docscan_ai.exceptions import ApiErrorKind, CredentialsExhaustedError
from docscan_ai.timeutil import Clock, utc_now

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _selection_key(entry: CredentialEntry) -> tuple[datetime, int]:
    return (entry.last_used_at or _NEVER, entry.error_count)


class CredentialPool:
    """
    Shared pool of interchangeable API credentials.

    select_credential, report_success and report_failure are serialized by
    one lock, so concurrent documents never race on the same entry.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        max_errors: int = DEFAULT_MAX_ERRORS,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Clock = utc_now,
        log_callback: Any = None,
    ):
        """
        Initialize the pool from a credential store.

        Args:
            store: Source of entries and sink for health updates.
            max_errors: Consecutive errors before an entry cools down.
            cooldown: How long an entry at the threshold is skipped.
            clock: Returns the current aware UTC time.
            log_callback: Optional callback accepting (level, message, context).
        """
        self._store = store
        self._max_errors = max_errors
        self._cooldown = cooldown
        self._clock = clock
        self._log_callback = log_callback
        self._lock = asyncio.Lock()
        self._entries: dict[str, CredentialEntry] = {}
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_errors(self) -> int:
        return self._max_errors

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a message via callback if available."""
        if self._log_callback:
            self._log_callback(level, message, context or {})

    def _describe(self, entry: CredentialEntry) -> dict[str, Any]:
        return {"credential": entry.label or entry.id, "key": entry.masked}

    def _load(self) -> None:
        self._entries = {entry.id: entry for entry in self._store.list_credentials()}

    def _save(self, entry: CredentialEntry) -> CredentialEntry:
        """Keep the entry in memory and write it back to the store."""
        self._entries[entry.id] = entry
        try:
            self._store.persist_credential(entry)
        except Exception as e:
            # In-memory health stays authoritative for this process.
            self._log(
                "ERROR",
                "Failed to persist credential health",
                {**self._describe(entry), "error_type": type(e).__name__, "error": str(e)},
            )
        return entry

    async def select_credential(self, exclude: Collection[str] = ()) -> CredentialEntry:
        """
        Pick the most eligible credential.

        Eligible entries are active and not cooling down. The least recently
        used one wins (never used counts as oldest), ties go to the lower
        error count. The winner is stamped as used right away, in memory
        only, so the next caller gets a different key.

        Args:
            exclude: Credential ids to avoid, e.g. keys already tried for the
                current attempt. Ignored when nothing else is eligible.

        Returns:
            The selected entry.

        Raises:
            CredentialsExhaustedError: If no entry is eligible.
        """
        async with self._lock:
            now = self._clock()
            eligible = [
                entry
                for entry in self._entries.values()
                if entry.is_eligible(now, self._max_errors, self._cooldown)
            ]
            if not eligible:
                self._log(
                    "WARNING",
                    "No eligible credentials",
                    {"total": len(self._entries)},
                )
                raise CredentialsExhaustedError()

            candidates = [entry for entry in eligible if entry.id not in exclude] or eligible
            selected = min(candidates, key=_selection_key)
            self._entries[selected.id] = replace(selected, last_used_at=now)
            return self._entries[selected.id]

    async def report_success(self, entry: CredentialEntry) -> CredentialEntry:
        """Mark a successful call: refresh last use and clear the error state."""
        async with self._lock:
            current = self._entries.get(entry.id, entry)
            return self._save(
                replace(current, last_used_at=self._clock(), error_count=0, last_error_at=None)
            )

    async def report_failure(self, entry: CredentialEntry, kind: ApiErrorKind) -> CredentialEntry:
        """
        Record a failed call.

        An invalid credential is deactivated for good. Rate limits and
        transient failures count towards the cooldown threshold. Permanent
        failures blame the request, so the entry is left untouched.
        """
        async with self._lock:
            current = self._entries.get(entry.id, entry)

            if kind == ApiErrorKind.INVALID_CREDENTIAL:
                self._log("WARNING", "Credential deactivated", self._describe(current))
                return self._save(replace(current, active=False))

            if kind.is_retryable:
                updated = replace(
                    current,
                    error_count=current.error_count + 1,
                    last_error_at=self._clock(),
                )
                if updated.error_count >= self._max_errors:
                    self._log(
                        "WARNING",
                        f"Credential cooling down for {int(self._cooldown.total_seconds())}s",
                        {**self._describe(updated), "error_count": updated.error_count},
                    )
                return self._save(updated)

            return current

    def healthy_count(self) -> int:
        """Number of entries that are currently eligible."""
        now = self._clock()
        return sum(
            1
            for entry in self._entries.values()
            if entry.is_eligible(now, self._max_errors, self._cooldown)
        )

    def snapshot(self) -> list[CredentialEntry]:
        """Current entries in store order."""
        return list(self._entries.values())

    async def reset_all_errors(self) -> int:
        """
        Clear error counts and cooldowns on every entry.

        Deactivated entries stay inactive.

        Returns:
            Number of entries that were reset.
        """
        async with self._lock:
            reset = 0
            for entry in list(self._entries.values()):
                if entry.error_count or entry.last_error_at is not None:
                    self._save(replace(entry, error_count=0, last_error_at=None))
                    reset += 1
            if reset:
                self._log("INFO", f"Reset errors on {reset} credentials")
            return reset

    async def reload(self) -> None:
        """Re-read all entries from the store."""
        async with self._lock:
            self._load()
