from datetime import date, datetime, timezone

from matchmaking.core.engine import ConnectionEngine
from matchmaking.models import DropStatus, InteractionType, Mode, RelationStatus
from matchmaking.processing.eligibility import WEEKLY_MODE_PREFIX

WEEK = date(2025, 3, 10)


def graduate(engine, user_id="u", connections=("f1", "f2", "f3", "f4", "f5")):
    for friend in connections:
        engine.relation_store.create_request(user_id, friend)
        engine.relation_store.accept(user_id, friend)


def test_new_user_gets_up_to_three_suggestions_with_reasons(engine, composite_search, add_profiles):
    add_profiles("u", "a", "b", "c", "d", "e")
    composite_search.add("u", [("a", 0.9), ("b", 0.8), ("c", 0.7), ("d", 0.6), ("e", 0.5)])

    result = engine.get_recommendations("u")

    assert result.mode is Mode.SUGGESTION
    assert [c.id for c in result.candidates] == ["a", "b", "c"]
    assert all(c.reason for c in result.candidates)
    assert result.candidates[0].name == "A"
    assert result.candidates[0].similarity == 0.9


def test_slots_shrink_with_interactions(engine, composite_search, add_profiles):
    add_profiles("u", "a", "b", "c", "d")
    composite_search.add("u", [("a", 0.9), ("b", 0.8), ("c", 0.7), ("d", 0.6)])

    engine.record_response("u", "a", "skipped")
    engine.record_response("u", "b", "connected")

    result = engine.get_recommendations("u")
    assert result.mode is Mode.SUGGESTION
    assert [c.id for c in result.candidates] == ["c"]


def test_candidate_without_reason_is_dropped_in_suggestion_mode(
    engine, composite_search, text_generator, add_profiles
):
    add_profiles("u", "a", "b")
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])
    text_generator.fail_for.add("a")

    result = engine.get_recommendations("u")
    assert [c.id for c in result.candidates] == ["b"]


def test_candidate_without_profile_is_dropped_in_suggestion_mode(
    engine, composite_search, add_profiles
):
    add_profiles("u", "a")
    composite_search.add("u", [("ghost", 0.95), ("a", 0.9)])

    assert [c.id for c in engine.get_recommendations("u").candidates] == ["a"]


def test_reasons_are_shared_between_both_directions(
    engine, composite_search, text_generator, add_profiles
):
    add_profiles("u", "a")
    composite_search.add("u", [("a", 0.9)])
    composite_search.add("a", [("u", 0.9)])

    forward = engine.get_recommendations("u").candidates[0].reason
    backward = engine.get_recommendations("a").candidates[0].reason
    assert forward == backward
    assert len(text_generator.calls) == 1


def test_excluded_users_never_recommended(engine, composite_search, add_profiles):
    add_profiles("u", "pending", "friend", "a")
    engine.relation_store.create_request("pending", "u")
    engine.relation_store.create_request("u", "friend")
    engine.relation_store.accept("u", "friend")
    composite_search.add("u", [("pending", 0.99), ("friend", 0.98), ("a", 0.5)])

    assert [c.id for c in engine.get_recommendations("u").candidates] == ["a"]


def test_composite_empty_falls_through_to_basic(engine, composite_search, basic_search, add_profiles):
    add_profiles("u", "p", "q")
    composite_search.add("u", [])
    basic_search.add("u", [("p", 0.4), ("q", 0.7)])

    result = engine.get_recommendations("u")
    assert [c.id for c in result.candidates] == ["q", "p"]


def test_interest_overlap_for_users_without_embeddings(engine, profile_store, add_profiles):
    add_profiles("u", "a", interests=["pottery"])

    result = engine.get_recommendations("u")
    assert [c.id for c in result.candidates] == ["a"]
    assert result.candidates[0].similarity == 0.6


def test_third_interaction_switches_to_weekly_drop(engine, composite_search, add_profiles):
    add_profiles("u", "a", "b", "c", "d", "e")
    composite_search.add("u", [("a", 0.9), ("b", 0.8), ("c", 0.7), ("d", 0.6), ("e", 0.5)])

    first = engine.get_recommendations("u")
    for candidate in first.candidates:
        engine.record_response("u", candidate.id, "skipped")

    result = engine.get_recommendations("u")
    assert result.mode is Mode.WEEKLY_DROP
    assert len(result.candidates) <= 1
    assert [c.id for c in result.candidates] == ["d"]
    assert result.week_start == WEEK
    assert result.drop_status is DropStatus.SHOWN


def test_weekly_drop_is_stable_within_the_week(engine, composite_search, add_profiles):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])

    first = engine.get_recommendations("u")
    searches = composite_search.search_calls

    composite_search.add("u", [("b", 0.99)])
    second = engine.get_recommendations("u")

    assert second.candidates[0].id == first.candidates[0].id == "a"
    assert second.candidates[0].reason == first.candidates[0].reason
    assert composite_search.search_calls == searches


def test_weekly_drop_keeps_candidate_with_empty_reason(
    engine, composite_search, text_generator, add_profiles
):
    add_profiles("u", "a")
    graduate(engine)
    composite_search.add("u", [("a", 0.9)])
    text_generator.fail_for.add("a")

    result = engine.get_recommendations("u")
    assert [c.id for c in result.candidates] == ["a"]
    assert result.candidates[0].reason == ""
    assert engine.drop_state_machine.get("u", WEEK).status is DropStatus.SHOWN


def test_weekly_no_match_is_remembered(engine, composite_search, add_profiles):
    add_profiles("u", interests=[])
    graduate(engine)

    result = engine.get_recommendations("u")
    assert result.mode is Mode.WEEKLY_DROP
    assert result.candidates == []
    assert result.drop_status is DropStatus.NO_MATCH

    composite_search.add("u", [("late", 0.9)])
    assert engine.get_recommendations("u").candidates == []


def test_previous_drop_never_drawn_again(engine, composite_search, add_profiles, clock):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])

    assert engine.get_recommendations("u").candidates[0].id == "a"

    clock.now = datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)
    result = engine.get_recommendations("u")
    assert result.week_start == date(2025, 3, 17)
    assert [c.id for c in result.candidates] == ["b"]


def test_monday_before_cutover_still_shows_last_week(engine, composite_search, add_profiles, clock):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])
    engine.get_recommendations("u")

    clock.now = datetime(2025, 3, 17, 2, 0, tzinfo=timezone.utc)
    result = engine.get_recommendations("u")
    assert result.week_start == WEEK
    assert [c.id for c in result.candidates] == ["a"]


def test_connecting_on_weekly_drop(engine, composite_search, add_profiles):
    add_profiles("u", "a")
    graduate(engine)
    composite_search.add("u", [("a", 0.9)])
    engine.get_recommendations("u")

    engine.record_response("u", "a", "connected")

    assert engine.drop_state_machine.get("u", WEEK).status is DropStatus.CONNECTED
    assert engine.interaction_ledger.get("u", "a").interaction_type is InteractionType.CONNECTED
    relation = next(r for r in engine.relation_store.query("a") if r.other_id("a") == "u")
    assert relation.status is RelationStatus.PENDING
    assert relation.sender_id == "u"

    result = engine.get_recommendations("u")
    assert result.candidates == []
    assert result.drop_status is DropStatus.CONNECTED


def test_hidden_counts_as_skipped_in_ledger(engine):
    engine.record_response("u", "a", "hidden")
    assert engine.interaction_ledger.get("u", "a").interaction_type is InteractionType.SKIPPED


def test_record_response_never_raises(engine, valkey_service, monkeypatch):
    def _boom(*args, **kwargs):
        raise ConnectionError("valkey down")

    monkeypatch.setattr(valkey_service, "hset", _boom)
    monkeypatch.setattr(valkey_service, "get", _boom)

    engine.record_response("u", "a", "connected")
    engine.record_response("u", "a", "waved")


def test_get_recommendations_degrades_to_empty_result(engine, valkey_service, monkeypatch):
    def _boom(*args, **kwargs):
        raise ConnectionError("valkey down")

    for name in ("get", "set_if_absent", "hgetall", "hlen", "smembers", "exists", "pipeline"):
        monkeypatch.setattr(valkey_service, name, _boom)

    result = engine.get_recommendations("u")
    assert result.mode is Mode.SUGGESTION
    assert result.candidates == []


def test_graduation_marker_is_persisted(engine, valkey_service):
    graduate(engine)
    assert engine.get_recommendations("u").mode is Mode.WEEKLY_DROP
    assert valkey_service.exists(f"{WEEKLY_MODE_PREFIX}u")


def test_weekly_batch_materialises_drops(engine, composite_search, add_profiles):
    add_profiles("u", "a", "newbie")
    graduate(engine)
    composite_search.add("u", [("a", 0.9)])

    summary = engine.run_weekly_batch()

    assert summary["u"] == DropStatus.SHOWN.value
    assert summary["newbie"] == Mode.SUGGESTION.value
    assert engine.drop_state_machine.get("u", WEEK).candidate_user_id == "a"
    assert engine.drop_state_machine.get("newbie", WEEK) is None


def test_weekly_batch_for_explicit_users_and_time(engine, composite_search, add_profiles):
    add_profiles("u", "a")
    graduate(engine)
    composite_search.add("u", [("a", 0.9)])

    next_week = datetime(2025, 3, 17, 8, 5, tzinfo=timezone.utc)
    assert engine.run_weekly_batch(["u"], now=next_week) == {"u": "shown"}
    assert engine.drop_state_machine.get("u", date(2025, 3, 17)) is not None


def test_acting_on_last_weeks_drop_after_cutover(engine, composite_search, add_profiles, clock):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])

    clock.now = datetime(2025, 3, 16, 23, 0, tzinfo=timezone.utc)
    assert engine.get_recommendations("u").candidates[0].id == "a"

    clock.now = datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)
    engine.record_response("u", "a", "connected")

    assert engine.drop_state_machine.get("u", WEEK).status is DropStatus.CONNECTED
    assert engine.drop_state_machine.get("u", date(2025, 3, 17)) is None
    assert engine.interaction_ledger.get("u", "a").interaction_type is InteractionType.CONNECTED


def test_current_week_drop_takes_precedence_over_last_week(
    engine, composite_search, add_profiles, clock
):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])
    engine.get_recommendations("u")

    clock.now = datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)
    assert engine.get_recommendations("u").candidates[0].id == "b"
    engine.record_response("u", "b", "skipped")

    assert engine.drop_state_machine.get("u", date(2025, 3, 17)).status is DropStatus.SKIPPED
    assert engine.drop_state_machine.get("u", WEEK).status is DropStatus.SHOWN


def test_failed_drop_write_leaves_no_partial_state(
    engine, valkey_service, composite_search, add_profiles, clock, monkeypatch
):
    add_profiles("u", "a", "b")
    graduate(engine)
    composite_search.add("u", [("a", 0.9), ("b", 0.8)])

    def _boom(*args, **kwargs):
        raise ConnectionError("valkey write failed")

    with monkeypatch.context() as patched:
        patched.setattr(valkey_service, "transaction", _boom)
        assert engine.get_recommendations("u").candidates == []

    assert engine.drop_state_machine.get("u", WEEK) is None
    assert engine.drop_state_machine.previously_drawn("u") == set()

    assert engine.get_recommendations("u").candidates[0].id == "a"
    assert engine.drop_state_machine.previously_drawn("u") == {"a"}

    clock.now = datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)
    assert [c.id for c in engine.get_recommendations("u").candidates] == ["b"]


def test_weekly_batch_survives_user_enumeration_failure(engine, profile_store, monkeypatch):
    def _boom():
        raise NotImplementedError("cannot enumerate users")

    monkeypatch.setattr(profile_store, "iter_user_ids", _boom)
    assert engine.run_weekly_batch() == {}


def test_default_clock_is_timezone_aware(config, valkey_service, composite_search, basic_search, text_generator):
    engine = ConnectionEngine(
        config=config,
        valkey_service=valkey_service,
        composite_search=composite_search,
        basic_search=basic_search,
        text_generator=text_generator,
    )
    try:
        assert engine.clock().utcoffset().total_seconds() == 0
    finally:
        engine.shutdown()
