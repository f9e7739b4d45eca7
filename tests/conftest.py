import threading
from datetime import datetime, timezone

import fakeredis
import numpy as np
import pytest

from utils.valkey_utils import ValkeyService
from matchmaking.core.config import MatchingConfig
from matchmaking.core.engine import ConnectionEngine
from matchmaking.data.interfaces import TextGenerator, VectorSearch
from matchmaking.data.profiles import ValkeyProfileStore
from matchmaking.data.relations import ValkeyRelationStore
from matchmaking.exceptions import GenerationFailure, TransientLookupFailure
from matchmaking.models import Profile

# Wednesday; the week starts on Monday 2025-03-10
WEDNESDAY = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


class FakeVectorSearch(VectorSearch):
    """In-memory similarity index: preset neighbours per user."""

    def __init__(self, name):
        self.name = name
        self.embeddings = {}
        self.neighbours = {}
        self.fail = False
        self.search_calls = 0

    def add(self, user_id, matches):
        self.embeddings[user_id] = np.ones(4, dtype=np.float32)
        self.neighbours[user_id] = [{"id": i, "similarity": s} for i, s in matches]

    def get_embedding(self, user_id):
        if self.fail:
            raise TransientLookupFailure(f"{self.name} index unreachable")
        return self.embeddings.get(user_id)

    def search(self, embedding, threshold, top_k, exclude_id):
        self.search_calls += 1
        if self.fail:
            raise TransientLookupFailure(f"{self.name} index unreachable")
        rows = [
            r
            for r in self.neighbours.get(exclude_id, [])
            if r["id"] != exclude_id and r["similarity"] >= threshold
        ]
        return rows[:top_k]


class FakeTextGenerator(TextGenerator):
    def __init__(self):
        self.calls = []
        self.fail_for = set()
        self.reply = None
        self._lock = threading.Lock()

    def generate(self, profile_a, profile_b, similarity):
        with self._lock:
            self.calls.append((profile_a.user_id, profile_b.user_id))
        if profile_b.user_id in self.fail_for or profile_a.user_id in self.fail_for:
            raise GenerationFailure("model unavailable")
        if self.reply is not None:
            return self.reply
        return f"You and {profile_b.first_name} both care about {', '.join(profile_b.interests) or 'people'}."


class FixedClock:
    def __init__(self, now=WEDNESDAY):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def valkey_service():
    service = ValkeyService(host="localhost", port=6379, authkey="test")
    service.client = fakeredis.FakeRedis(decode_responses=True)
    return service


@pytest.fixture
def profile_store(valkey_service):
    return ValkeyProfileStore(valkey_service)


@pytest.fixture
def relation_store(valkey_service):
    return ValkeyRelationStore(valkey_service)


@pytest.fixture
def composite_search():
    return FakeVectorSearch("composite")


@pytest.fixture
def basic_search():
    return FakeVectorSearch("basic")


@pytest.fixture
def text_generator():
    return FakeTextGenerator()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return MatchingConfig(
        valkey_config={"valkey": {"authkey": "test"}},
        week_timezone="UTC",
        openai_api_key="test-key",
    )


@pytest.fixture
def engine(
    config,
    valkey_service,
    profile_store,
    relation_store,
    composite_search,
    basic_search,
    text_generator,
    clock,
):
    engine = ConnectionEngine(
        config=config,
        valkey_service=valkey_service,
        profile_store=profile_store,
        relation_store=relation_store,
        composite_search=composite_search,
        basic_search=basic_search,
        text_generator=text_generator,
        clock=clock,
    )
    yield engine
    engine.shutdown()


def make_profile(user_id, name=None, interests=(), bio=""):
    return Profile(
        user_id=user_id,
        full_name=name or f"{user_id.title()} Tester",
        bio=bio,
        interests=list(interests),
    )


@pytest.fixture
def add_profiles(profile_store):
    def _add(*user_ids, interests=("climbing",)):
        profiles = [make_profile(u, interests=interests) for u in user_ids]
        for profile in profiles:
            profile_store.save(profile)
        return profiles

    return _add
