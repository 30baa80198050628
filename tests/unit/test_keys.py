"""Unit tests for vaultgate/auth/keys.py: issuance, masked listing, revocation.

Non-negotiables verified:
  - Plaintext returned exactly once; the stored record holds only digest + last4
  - Plaintext and digest never logged
  - Digest conflict on insert → regenerate, bounded by MAX_ISSUE_ATTEMPTS
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import pytest

from vaultgate.auth import codec
from vaultgate.auth.keys import issue_api_key, list_keys, masked_view, revoke_api_key
from vaultgate.auth.store import ApiKeyRecord, InMemoryKeyStore
from vaultgate.constants import MAX_ISSUE_ATTEMPTS
from vaultgate.errors import KeyConflictError, StoreUnavailableError

pytestmark = pytest.mark.asyncio

_ULID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


class _ConflictingStore(InMemoryKeyStore):
    """Rejects the first ``conflicts`` inserts with KeyConflictError."""

    def __init__(self, conflicts: int) -> None:
        super().__init__()
        self.conflicts = conflicts
        self.attempts = 0

    async def insert(self, record: ApiKeyRecord) -> None:
        self.attempts += 1
        if self.attempts <= self.conflicts:
            raise KeyConflictError()
        await super().insert(record)


class _BrokenStore(InMemoryKeyStore):
    async def insert(self, record: ApiKeyRecord) -> None:
        raise StoreUnavailableError()


class _RecordingLogger:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def _record(self, event: str, **kw: Any) -> None:
        self.entries.append({"event": event, **kw})

    info = warning = debug = error = _record


# ─── issue_api_key ────────────────────────────────────────────────────────────


class TestIssueApiKey:

    async def test_returns_secret_and_record(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "billing-service")
        assert codec.is_well_formed(issued.secret)
        assert _ULID_RE.match(issued.record.id)
        assert issued.record.owner_name == "billing-service"
        assert issued.record.revoked is False
        assert issued.record.created_at.tzinfo is not None

    async def test_record_holds_digest_and_last4_only(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        record = issued.record
        assert record.digest == codec.digest(issued.secret)
        assert record.last4 == issued.secret[-4:]
        assert issued.secret not in repr(record)

    async def test_masked_property(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        assert issued.masked == f"sk_live_...{issued.secret[-4:]}"

    async def test_record_is_stored(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        assert await key_store.find_by_digest(codec.digest(issued.secret)) == issued.record

    async def test_owner_name_is_stripped(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "  svc  ")
        assert issued.record.owner_name == "svc"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 257])
    async def test_invalid_owner_name_rejected(
        self, key_store: InMemoryKeyStore, name: str
    ) -> None:
        with pytest.raises(ValueError):
            await issue_api_key(key_store, name)
        assert await key_store.list_all() == []

    async def test_max_length_owner_name_accepted(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "x" * 256)
        assert len(issued.record.owner_name) == 256

    async def test_distinct_issues_distinct_secrets(self, key_store: InMemoryKeyStore) -> None:
        a = await issue_api_key(key_store, "a")
        b = await issue_api_key(key_store, "b")
        assert a.secret != b.secret
        assert a.record.id != b.record.id
        assert a.record.digest != b.record.digest

    async def test_conflict_regenerates(self) -> None:
        store = _ConflictingStore(conflicts=MAX_ISSUE_ATTEMPTS - 1)
        issued = await issue_api_key(store, "svc")
        assert store.attempts == MAX_ISSUE_ATTEMPTS
        assert await store.find_by_digest(issued.record.digest) == issued.record

    async def test_conflict_exhaustion_raises(self) -> None:
        store = _ConflictingStore(conflicts=MAX_ISSUE_ATTEMPTS)
        with pytest.raises(KeyConflictError):
            await issue_api_key(store, "svc")
        assert store.attempts == MAX_ISSUE_ATTEMPTS

    async def test_store_failure_not_retried(self) -> None:
        with pytest.raises(StoreUnavailableError):
            await issue_api_key(_BrokenStore(), "svc")

    async def test_secret_never_logged(
        self, key_store: InMemoryKeyStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        recorder = _RecordingLogger()
        monkeypatch.setattr("vaultgate.auth.keys.logger", recorder)
        issued = await issue_api_key(key_store, "svc")
        await revoke_api_key(key_store, issued.record.id)
        captured = recorder.entries
        assert [entry["event"] for entry in captured] == ["api_key_issued", "api_key_revoked"]
        flattened = repr(captured)
        assert issued.secret not in flattened
        assert issued.record.digest not in flattened


# ─── list_keys ────────────────────────────────────────────────────────────────


class TestListKeys:

    async def test_masked_listing(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        items = await list_keys(key_store)
        assert len(items) == 1
        item = items[0]
        assert item["id"] == issued.record.id
        assert item["name"] == "svc"
        assert item["masked"] == f"sk_live_...{issued.secret[-4:]}"
        assert item["revoked"] is False

    async def test_listing_never_contains_secret_or_digest(
        self, key_store: InMemoryKeyStore
    ) -> None:
        issued = [await issue_api_key(key_store, f"svc-{i}") for i in range(3)]
        listing = repr(await list_keys(key_store))
        for key in issued:
            assert key.secret not in listing
            assert key.record.digest not in listing

    async def test_masked_view_fields(self) -> None:
        secret = codec.generate()
        record = ApiKeyRecord(
            id="01ABC",
            owner_name="svc",
            digest=codec.digest(secret),
            last4=codec.last4(secret),
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        view: dict[str, Any] = masked_view(record)
        assert set(view) == {"id", "name", "masked", "created_at", "revoked"}
        assert view["created_at"] == "2025-01-01T00:00:00+00:00"


# ─── revoke_api_key ───────────────────────────────────────────────────────────


class TestRevokeApiKey:

    async def test_revoke_existing(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        assert await revoke_api_key(key_store, issued.record.id) is True
        items = await list_keys(key_store)
        assert items[0]["revoked"] is True

    async def test_revoke_unknown_returns_false(self, key_store: InMemoryKeyStore) -> None:
        assert await revoke_api_key(key_store, "01NOTAREALKEYID0000000000") is False

    async def test_revoke_empty_id_returns_false(self, key_store: InMemoryKeyStore) -> None:
        assert await revoke_api_key(key_store, "") is False

    async def test_revoke_twice(self, key_store: InMemoryKeyStore) -> None:
        issued = await issue_api_key(key_store, "svc")
        assert await revoke_api_key(key_store, issued.record.id) is True
        assert await revoke_api_key(key_store, issued.record.id) is True
