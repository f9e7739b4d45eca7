from datetime import datetime, timezone

import pytest

from matchmaking.exceptions import TransientLookupFailure
from matchmaking.history.interactions import InteractionLedger
from matchmaking.models import InteractionType


@pytest.fixture
def ledger(valkey_service):
    return InteractionLedger(valkey_service)


def test_skip_then_connect_leaves_one_connected_row(ledger):
    ledger.record("u1", "c1", InteractionType.SKIPPED)
    ledger.record("u1", "c1", InteractionType.CONNECTED)

    assert ledger.interacted_ids("u1") == {"c1"}
    assert ledger.get("u1", "c1").interaction_type is InteractionType.CONNECTED
    assert ledger.count("u1") == 1


def test_latest_action_wins(ledger):
    first = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    later = datetime(2025, 3, 11, 9, 0, tzinfo=timezone.utc)
    ledger.record("u1", "c1", "connected", created_at=first)
    ledger.record("u1", "c1", "skipped", created_at=later)

    row = ledger.get("u1", "c1")
    assert row.interaction_type is InteractionType.SKIPPED
    assert row.created_at == later


def test_rows_are_scoped_per_user_and_candidate(ledger):
    ledger.record("u1", "c1", InteractionType.SKIPPED)
    ledger.record("u1", "c2", InteractionType.CONNECTED)
    ledger.record("u2", "c1", InteractionType.CONNECTED)

    assert ledger.count("u1") == 2
    assert ledger.count("u2") == 1
    assert ledger.interacted_ids("u1") == {"c1", "c2"}
    assert ledger.get("u3", "c1") is None
    assert ledger.count("u3") == 0


def test_lookup_failures_are_transient(ledger, valkey_service, monkeypatch):
    def _boom(*args, **kwargs):
        raise ConnectionError("valkey down")

    monkeypatch.setattr(valkey_service, "hlen", _boom)
    monkeypatch.setattr(valkey_service, "hgetall", _boom)

    with pytest.raises(TransientLookupFailure):
        ledger.count("u1")
    with pytest.raises(TransientLookupFailure):
        ledger.interacted_ids("u1")
