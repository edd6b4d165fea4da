"""
DuckDB-backed credential store.

Secrets come from configuration (already decrypted by whoever supplied them);
only health metadata is written to the database, keyed by a hash of the
secret.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import replace

from docscan_ai.config import ApiKeyConfig
from docscan_ai.credentials.base import CredentialEntry, CredentialStore
from docscan_ai.database import Database
from docscan_ai.timeutil import Clock, utc_now


def credential_id(secret: str) -> str:
    """Stable, non-reversible identifier for a secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:16]


class DatabaseCredentialStore(CredentialStore):
    """Combines configured API keys with health rows from DuckDB."""

    def __init__(
        self,
        db: Database,
        api_keys: Sequence[ApiKeyConfig],
        *,
        clock: Clock = utc_now,
    ):
        self._db = db
        self._api_keys = list(api_keys)
        self._clock = clock

    def list_credentials(self) -> list[CredentialEntry]:
        entries: list[CredentialEntry] = []
        seen: set[str] = set()

        for index, key in enumerate(self._api_keys, start=1):
            if not key.key or key.key in seen:
                continue
            seen.add(key.key)

            cid = credential_id(key.key)
            label = key.label or f"key-{index}"
            stored = self._db.get_credential_health(cid)

            if stored is None:
                entry = CredentialEntry(id=cid, secret=key.key, label=label, created_at=self._clock())
                self._db.save_credential_health(entry)
            else:
                entry = replace(stored, secret=key.key, label=label)

            entries.append(entry)

        return entries

    def persist_credential(self, entry: CredentialEntry) -> None:
        self._db.save_credential_health(entry)
