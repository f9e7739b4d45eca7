from datetime import date

import pytest

from matchmaking.filter.exclusions import ExclusionSource, RelationGraphView
from matchmaking.history.interactions import InteractionLedger
from matchmaking.models import InteractionType, RelationStatus, ScoredCandidate
from matchmaking.weekly.drops import DropStateMachine


@pytest.fixture
def ledger(valkey_service):
    return InteractionLedger(valkey_service)


@pytest.fixture
def drops(valkey_service):
    return DropStateMachine(valkey_service)


@pytest.fixture
def graph(relation_store, ledger, drops):
    return RelationGraphView(relation_store, ledger, drops)


def test_relation_request_is_mirrored_for_both_users(relation_store):
    relation_store.create_request("alice", "bob")

    for user_id, other in (("alice", "bob"), ("bob", "alice")):
        relations = relation_store.query(user_id)
        assert len(relations) == 1
        assert relations[0].status is RelationStatus.PENDING
        assert relations[0].other_id(user_id) == other


def test_existing_live_relation_is_not_replaced(relation_store):
    first = relation_store.create_request("alice", "bob")
    relation_store.accept("alice", "bob")

    again = relation_store.create_request("alice", "bob")
    assert again.status is RelationStatus.ACCEPTED
    assert again.created_at == first.created_at


def test_declined_request_can_be_sent_again(relation_store):
    relation_store.create_request("alice", "bob")
    relation_store.decline("alice", "bob")

    assert relation_store.create_request("alice", "bob").status is RelationStatus.PENDING


def test_update_without_relation_returns_none(relation_store):
    assert relation_store.accept("nobody", "else") is None


def test_exclusions_cover_every_source(graph, relation_store, ledger, drops):
    relation_store.create_request("u", "pending_out")
    relation_store.create_request("pending_in", "u")
    relation_store.create_request("u", "friend")
    relation_store.accept("u", "friend")
    relation_store.create_request("u", "declined")
    relation_store.decline("u", "declined")
    ledger.record("u", "skipped_one", InteractionType.SKIPPED)
    drops.get_or_create(
        "u", date(2025, 3, 3), lambda: ScoredCandidate(id="old_drop", similarity=0.9)
    )

    by_source = graph.get_exclusions_by_source("u")
    assert by_source[ExclusionSource.ACCEPTED_RELATIONS] == {"friend"}
    assert by_source[ExclusionSource.PENDING_RELATIONS] == {"pending_out", "pending_in"}
    assert by_source[ExclusionSource.INTERACTIONS] == {"skipped_one"}
    assert by_source[ExclusionSource.WEEKLY_DROPS] == {"old_drop"}
    assert "declined" not in graph.get_excluded_ids("u")


def test_failing_source_contributes_nothing(graph, relation_store, ledger, monkeypatch):
    ledger.record("u", "seen", InteractionType.SKIPPED)

    def _boom(user_id):
        raise ConnectionError("relations unavailable")

    monkeypatch.setattr(relation_store, "query", _boom)

    by_source = graph.get_exclusions_by_source("u")
    assert by_source[ExclusionSource.ACCEPTED_RELATIONS] == set()
    assert by_source[ExclusionSource.PENDING_RELATIONS] == set()
    assert graph.get_excluded_ids("u") == {"seen"}


def test_exclusions_are_recomputed_each_call(graph, relation_store):
    assert graph.get_excluded_ids("u") == set()
    relation_store.create_request("u", "new")
    assert graph.get_excluded_ids("u") == {"new"}
