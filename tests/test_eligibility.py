import pytest

from matchmaking.models import Mode
from matchmaking.processing.eligibility import WEEKLY_MODE_PREFIX, EligibilityClassifier


@pytest.mark.parametrize(
    "connections, interactions, expected",
    [
        (0, 0, Mode.SUGGESTION),
        (4, 2, Mode.SUGGESTION),
        (5, 0, Mode.WEEKLY_DROP),
        (0, 3, Mode.WEEKLY_DROP),
        (2, 7, Mode.WEEKLY_DROP),
    ],
)
def test_classify_thresholds(connections, interactions, expected):
    assert EligibilityClassifier().classify(connections, interactions) is expected


def test_graduation_is_persisted_and_never_reverts(valkey_service):
    classifier = EligibilityClassifier(valkey_service=valkey_service)

    assert classifier.resolve_mode("u1", 0, 3) is Mode.WEEKLY_DROP
    assert valkey_service.exists(f"{WEEKLY_MODE_PREFIX}u1")

    # counts dropped (e.g. connection removed) but the user stays in weekly mode
    assert classifier.resolve_mode("u1", 0, 0) is Mode.WEEKLY_DROP


def test_suggestion_mode_leaves_no_marker(valkey_service):
    classifier = EligibilityClassifier(valkey_service=valkey_service)

    assert classifier.resolve_mode("u2", 1, 1) is Mode.SUGGESTION
    assert not valkey_service.exists(f"{WEEKLY_MODE_PREFIX}u2")


def test_marker_read_failure_falls_back_to_counts(valkey_service, monkeypatch):
    classifier = EligibilityClassifier(valkey_service=valkey_service)

    def _boom(key):
        raise ConnectionError("valkey down")

    monkeypatch.setattr(valkey_service, "exists", _boom)
    assert classifier.resolve_mode("u3", 0, 0) is Mode.SUGGESTION
    assert classifier.resolve_mode("u3", 6, 0) is Mode.WEEKLY_DROP
