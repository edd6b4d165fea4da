import asyncio
from datetime import timedelta

import pytest
from conftest import START, FakeClock, LogRecorder, MemoryCredentialStore, make_entry

from docscan_ai.credentials.pool import CredentialPool
from docscan_ai.exceptions import ApiErrorKind, CredentialsExhaustedError


def _pool(
    *entries, clock: FakeClock, logs: LogRecorder | None = None
) -> tuple[CredentialPool, MemoryCredentialStore]:
    store = MemoryCredentialStore(entries)
    return CredentialPool(store, clock=clock, log_callback=logs), store


class TestCredentialEntry:
    def test_masked_shows_last_eight_characters(self) -> None:
        entry = make_entry("k1", secret="sk-abcdefghijklmnop")
        assert entry.masked == "********ijklmnop"

    def test_masked_hides_short_secrets_entirely(self) -> None:
        assert make_entry("k1", secret="short").masked == "********"
        assert make_entry("k1", secret="12345678").masked == "********"

    def test_repr_excludes_secret(self) -> None:
        entry = make_entry("k1", secret="sk-very-secret-value")
        assert "sk-very-secret-value" not in repr(entry)

    def test_cooldown_requires_threshold_and_recent_error(self) -> None:
        entry = make_entry("k1", error_count=3, last_error_at=START)
        assert entry.is_in_cooldown(START + timedelta(minutes=4), 3, timedelta(minutes=5))
        assert not entry.is_in_cooldown(START + timedelta(minutes=5), 3, timedelta(minutes=5))
        assert not make_entry("k2", error_count=2, last_error_at=START).is_in_cooldown(
            START, 3, timedelta(minutes=5)
        )

    def test_inactive_entry_is_not_eligible(self) -> None:
        assert not make_entry("k1", active=False).is_eligible(START)


class TestSelection:
    def test_never_used_entries_are_preferred(self, clock: FakeClock) -> None:
        used = make_entry("used", last_used_at=START - timedelta(minutes=1))
        fresh = make_entry("fresh")
        pool, _ = _pool(used, fresh, clock=clock)

        selected = asyncio.run(pool.select_credential())

        assert selected.id == "fresh"

    def test_least_recently_used_wins(self, clock: FakeClock) -> None:
        older = make_entry("older", last_used_at=START - timedelta(hours=2))
        newer = make_entry("newer", last_used_at=START - timedelta(hours=1))
        pool, _ = _pool(newer, older, clock=clock)

        assert asyncio.run(pool.select_credential()).id == "older"

    def test_ties_go_to_lower_error_count(self, clock: FakeClock) -> None:
        a = make_entry("a", error_count=2, last_error_at=START)
        b = make_entry("b", error_count=1, last_error_at=START)
        pool, _ = _pool(a, b, clock=clock)

        assert asyncio.run(pool.select_credential()).id == "b"

    def test_inactive_and_cooling_entries_are_skipped(self, clock: FakeClock) -> None:
        inactive = make_entry("inactive", active=False)
        cooling = make_entry("cooling", error_count=3, last_error_at=START)
        ok = make_entry("ok", last_used_at=START)
        pool, _ = _pool(inactive, cooling, ok, clock=clock)

        assert asyncio.run(pool.select_credential()).id == "ok"
        assert pool.healthy_count() == 1

    def test_cooldown_expires(self, clock: FakeClock) -> None:
        pool, _ = _pool(make_entry("k1", error_count=3, last_error_at=START), clock=clock)

        with pytest.raises(CredentialsExhaustedError):
            asyncio.run(pool.select_credential())

        clock.advance(minutes=5)
        assert asyncio.run(pool.select_credential()).id == "k1"

    def test_exhausted_when_nothing_eligible(self, clock: FakeClock, logs: LogRecorder) -> None:
        pool, _ = _pool(make_entry("k1", active=False), clock=clock, logs=logs)

        with pytest.raises(CredentialsExhaustedError):
            asyncio.run(pool.select_credential())
        assert "No eligible credentials" in logs.messages("WARNING")

    def test_empty_pool_is_exhausted(self, clock: FakeClock) -> None:
        pool, _ = _pool(clock=clock)
        with pytest.raises(CredentialsExhaustedError):
            asyncio.run(pool.select_credential())

    def test_excluded_entries_are_avoided(self, clock: FakeClock) -> None:
        pool, _ = _pool(make_entry("a"), make_entry("b"), clock=clock)

        assert asyncio.run(pool.select_credential(exclude={"a"})).id == "b"

    def test_exclusion_is_ignored_when_nothing_else_is_eligible(self, clock: FakeClock) -> None:
        pool, _ = _pool(make_entry("a"), clock=clock)

        assert asyncio.run(pool.select_credential(exclude={"a"})).id == "a"

    def test_concurrent_selections_spread_over_keys(self, clock: FakeClock) -> None:
        pool, store = _pool(make_entry("k1"), make_entry("k2"), clock=clock)

        async def scenario():
            return await asyncio.gather(pool.select_credential(), pool.select_credential())

        picked = asyncio.run(scenario())

        assert sorted(entry.id for entry in picked) == ["k1", "k2"]
        assert store.persisted == []

    def test_selection_rotates_through_keys(self, clock: FakeClock) -> None:
        pool, _ = _pool(make_entry("k1"), make_entry("k2"), make_entry("k3"), clock=clock)

        async def scenario():
            ids = []
            for _ in range(3):
                ids.append((await pool.select_credential()).id)
                clock.advance(seconds=1)
            ids.append((await pool.select_credential()).id)
            return ids

        assert asyncio.run(scenario()) == ["k1", "k2", "k3", "k1"]


class TestHealthReporting:
    def test_success_refreshes_last_use_and_clears_errors(self, clock: FakeClock) -> None:
        pool, store = _pool(make_entry("k1", error_count=2, last_error_at=START), clock=clock)
        clock.advance(seconds=10)

        async def scenario():
            entry = await pool.select_credential()
            return await pool.report_success(entry)

        updated = asyncio.run(scenario())

        assert updated.last_used_at == clock.now
        assert updated.error_count == 0
        assert updated.last_error_at is None
        assert store.entries["k1"] == updated

    def test_invalid_credential_is_deactivated(self, clock: FakeClock, logs: LogRecorder) -> None:
        pool, store = _pool(make_entry("k1"), clock=clock, logs=logs)

        async def scenario():
            entry = await pool.select_credential()
            await pool.report_failure(entry, ApiErrorKind.INVALID_CREDENTIAL)

        asyncio.run(scenario())

        assert store.entries["k1"].active is False
        assert pool.healthy_count() == 0
        assert "Credential deactivated" in logs.messages("WARNING")

    @pytest.mark.parametrize("kind", [ApiErrorKind.RATE_LIMITED, ApiErrorKind.TRANSIENT])
    def test_retryable_failures_count_towards_cooldown(
        self, clock: FakeClock, kind: ApiErrorKind
    ) -> None:
        pool, _ = _pool(make_entry("k1"), clock=clock)

        async def scenario():
            entry = await pool.select_credential()
            for _ in range(3):
                entry = await pool.report_failure(entry, kind)
            return entry

        entry = asyncio.run(scenario())

        assert entry.error_count == 3
        assert entry.last_error_at == clock.now
        assert entry.active
        assert pool.healthy_count() == 0

    def test_permanent_failure_leaves_entry_untouched(self, clock: FakeClock) -> None:
        pool, store = _pool(make_entry("k1"), clock=clock)

        async def scenario():
            entry = await pool.select_credential()
            return await pool.report_failure(entry, ApiErrorKind.PERMANENT)

        entry = asyncio.run(scenario())

        assert entry.error_count == 0
        assert entry.active
        assert store.persisted == []

    def test_persist_failure_is_logged_not_raised(
        self, clock: FakeClock, logs: LogRecorder
    ) -> None:
        pool, store = _pool(make_entry("k1"), clock=clock, logs=logs)
        store.fail_persist = True

        async def scenario():
            entry = await pool.select_credential()
            return await pool.report_failure(entry, ApiErrorKind.TRANSIENT)

        entry = asyncio.run(scenario())

        assert entry.error_count == 1
        assert pool.snapshot()[0].error_count == 1
        assert "Failed to persist credential health" in logs.messages("ERROR")

    def test_logs_never_contain_secrets(self, clock: FakeClock, logs: LogRecorder) -> None:
        secret = "sk-do-not-log-this-secret"
        pool, _ = _pool(make_entry("k1", secret=secret), clock=clock, logs=logs)

        async def scenario():
            entry = await pool.select_credential()
            for _ in range(3):
                entry = await pool.report_failure(entry, ApiErrorKind.RATE_LIMITED)
            await pool.report_failure(entry, ApiErrorKind.INVALID_CREDENTIAL)

        asyncio.run(scenario())

        assert logs.records
        assert secret not in logs.text()

    def test_concurrent_failures_are_not_lost(self, clock: FakeClock) -> None:
        pool, _ = _pool(make_entry("k1"), clock=clock)

        async def scenario():
            entry = await pool.select_credential()
            await asyncio.gather(
                *(pool.report_failure(entry, ApiErrorKind.TRANSIENT) for _ in range(5))
            )

        asyncio.run(scenario())

        assert pool.snapshot()[0].error_count == 5


class TestMaintenance:
    def test_reset_all_errors_keeps_inactive_entries_inactive(self, clock: FakeClock) -> None:
        pool, _ = _pool(
            make_entry("cooling", error_count=3, last_error_at=START),
            make_entry("dead", active=False, error_count=1, last_error_at=START),
            make_entry("clean"),
            clock=clock,
        )

        reset = asyncio.run(pool.reset_all_errors())

        assert reset == 2
        by_id = {e.id: e for e in pool.snapshot()}
        assert by_id["cooling"].error_count == 0
        assert by_id["dead"].active is False
        assert pool.healthy_count() == 2

    def test_reload_reads_store_again(self, clock: FakeClock) -> None:
        pool, store = _pool(make_entry("k1"), clock=clock)
        store.entries["k2"] = make_entry("k2")

        asyncio.run(pool.reload())

        assert len(pool) == 2
