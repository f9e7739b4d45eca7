"""
Main matchmaking engine module.

This module provides the ConnectionEngine class that orchestrates candidate
recommendation: exclusion lookup, mode routing, tiered selection, weekly-drop
persistence and compatibility reasons.
"""

import datetime
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, Optional, Set

from tqdm import tqdm

from utils.common_utils import get_logger
from matchmaking.core.config import BASIC_INDEX, COMPOSITE_INDEX, MatchingConfig
from matchmaking.data.interfaces import ProfileStore, RelationStore, TextGenerator, VectorSearch
from matchmaking.data.profiles import ValkeyProfileStore
from matchmaking.data.relations import ValkeyRelationStore
from matchmaking.data.vectors import ValkeyVectorSearch
from matchmaking.filter.exclusions import ExclusionSource, RelationGraphView
from matchmaking.history.interactions import InteractionLedger
from matchmaking.models import (
    DropStatus,
    InteractionType,
    Mode,
    Profile,
    Recommendation,
    RecommendationResult,
    ResponseAction,
    ScoredCandidate,
)
from matchmaking.processing.candidates import (
    CandidateSelector,
    EmbeddingCandidateProvider,
    InterestOverlapCandidateProvider,
)
from matchmaking.processing.eligibility import EligibilityClassifier
from matchmaking.reasons.cache import CompatibilityReasonCache
from matchmaking.reasons.generator import OpenAIReasonGenerator
from matchmaking.weekly.clock import compute_week_start, local_now
from matchmaking.weekly.drops import DropStateMachine

logger = get_logger(__name__)


class ConnectionEngine:
    """Main matchmaking engine class."""

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        valkey_service=None,
        profile_store: Optional[ProfileStore] = None,
        relation_store: Optional[RelationStore] = None,
        composite_search: Optional[VectorSearch] = None,
        basic_search: Optional[VectorSearch] = None,
        text_generator: Optional[TextGenerator] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        """
        Initialize the engine; any collaborator not given is built from config.

        Args:
            config: MatchingConfig instance or None to use default config
            valkey_service: ValkeyService holding engine state
            profile_store: Profile lookups and interest search
            relation_store: Relations in either direction
            composite_search: Composite-embedding index (first tier)
            basic_search: Basic-embedding index (second tier)
            text_generator: Compatibility reason generator
            clock: Returns the current local time for the week boundary
        """
        start_time = datetime.datetime.now()
        logger.info("Initializing ConnectionEngine")

        self.config = config if config is not None else MatchingConfig()
        self.valkey_service = valkey_service or self.config.create_valkey_service()

        self.profile_store = profile_store or ValkeyProfileStore(self.valkey_service)
        self.relation_store = relation_store or ValkeyRelationStore(self.valkey_service)
        self.composite_search = composite_search or ValkeyVectorSearch(
            self.config.create_vector_service(COMPOSITE_INDEX), name="composite"
        )
        self.basic_search = basic_search or ValkeyVectorSearch(
            self.config.create_vector_service(BASIC_INDEX), name="basic"
        )
        text_generator = text_generator or OpenAIReasonGenerator(
            api_key=self.config.openai_api_key,
            model=self.config.REASON_MODEL,
            timeout=self.config.REASON_TIMEOUT_SECONDS,
        )

        self.interaction_ledger = InteractionLedger(self.valkey_service)
        self.drop_state_machine = DropStateMachine(self.valkey_service)
        self.relation_graph = RelationGraphView(
            relation_store=self.relation_store,
            interaction_ledger=self.interaction_ledger,
            drop_history=self.drop_state_machine,
        )
        self.eligibility = EligibilityClassifier(
            valkey_service=self.valkey_service,
            connection_threshold=self.config.CONNECTION_THRESHOLD,
            interaction_threshold=self.config.INTERACTION_THRESHOLD,
        )
        self.candidate_selector = CandidateSelector(
            [
                EmbeddingCandidateProvider(
                    self.composite_search,
                    threshold=self.config.MATCH_THRESHOLD,
                    top_k=self.config.MATCH_COUNT,
                ),
                EmbeddingCandidateProvider(
                    self.basic_search,
                    threshold=self.config.MATCH_THRESHOLD,
                    top_k=self.config.MATCH_COUNT,
                ),
                InterestOverlapCandidateProvider(
                    self.profile_store,
                    limit=self.config.INTEREST_MATCH_LIMIT,
                    similarity=self.config.INTEREST_MATCH_SIMILARITY,
                ),
            ]
        )
        self.reason_cache = CompatibilityReasonCache(self.valkey_service, text_generator)

        # Reason generation runs here so it finishes even if the caller goes away
        self.executor = ThreadPoolExecutor(
            max_workers=self.config.MAX_WORKERS, thread_name_prefix="reason"
        )
        tzinfo = self.config.get_tzinfo()
        self.clock = clock or (lambda: local_now(tzinfo))

        init_time = (datetime.datetime.now() - start_time).total_seconds()
        logger.info(f"ConnectionEngine initialized successfully in {init_time:.2f} seconds")

    def _load_profile(self, user_id: str) -> Optional[Profile]:
        try:
            return self.profile_store.get(user_id)
        except Exception as e:
            logger.warning(f"Profile unavailable for user {user_id}: {e}")
            return None

    def _interaction_count(self, user_id: str, interacted: Set[str]) -> int:
        try:
            return self.interaction_ledger.count(user_id)
        except Exception as e:
            logger.warning(
                f"Interaction count unavailable for user {user_id}, using exclusion data: {e}"
            )
            return len(interacted)

    def _resolve(self, user_id: str):
        """Exclusions, interaction count and mode for the user."""
        exclusions = self.relation_graph.get_exclusions_by_source(user_id)
        excluded: Set[str] = set()
        for ids in exclusions.values():
            excluded |= ids

        connection_count = len(exclusions[ExclusionSource.ACCEPTED_RELATIONS])
        interaction_count = self._interaction_count(
            user_id, exclusions[ExclusionSource.INTERACTIONS]
        )
        mode = self.eligibility.resolve_mode(user_id, connection_count, interaction_count)
        logger.info(
            f"User {user_id}: connections={connection_count}, interactions={interaction_count}, "
            f"excluded={len(excluded)}, mode={mode.value}"
        )
        return mode, excluded, interaction_count

    def _annotate(
        self,
        user_profile: Optional[Profile],
        user_id: str,
        candidate: ScoredCandidate,
        keep_without_reason: bool,
    ) -> Optional[Recommendation]:
        """
        Attach display fields and a compatibility reason to a candidate.

        Returns None when the candidate must be dropped (suggestion mode without
        a profile or reason); in weekly mode a missing reason becomes "".
        """
        candidate_profile = self._load_profile(candidate.id)
        if candidate_profile is None:
            if not keep_without_reason:
                logger.warning(f"Dropping candidate {candidate.id}: profile not found")
                return None
            candidate_profile = Profile(user_id=candidate.id)

        similarity = (
            candidate.similarity
            if candidate.similarity is not None
            else self.config.INTEREST_MATCH_SIMILARITY
        )
        reason = self.reason_cache.get_or_generate(
            user_profile or Profile(user_id=user_id), candidate_profile, similarity
        )
        if reason is None:
            if not keep_without_reason:
                logger.warning(f"Dropping candidate {candidate.id} for user {user_id}: no reason")
                return None
            reason = ""

        return Recommendation(
            id=candidate.id,
            reason=reason,
            similarity=candidate.similarity,
            name=candidate_profile.first_name,
            avatar_url=candidate_profile.avatar_url,
        )

    def _get_suggestions(
        self, user_id: str, excluded: Set[str], interaction_count: int
    ) -> RecommendationResult:
        slots = max(0, self.config.SUGGESTION_SLOTS - interaction_count)
        if slots == 0:
            return RecommendationResult(mode=Mode.SUGGESTION)

        user_profile = self._load_profile(user_id)
        candidates = self.candidate_selector.select(user_id, user_profile, excluded, slots)

        futures = [
            self.executor.submit(self._annotate, user_profile, user_id, candidate, False)
            for candidate in candidates
        ]
        recommendations = []
        for future in futures:
            try:
                recommendation = future.result()
            except Exception as e:
                logger.error(f"Failed to annotate candidate for user {user_id}: {e}", exc_info=True)
                continue
            if recommendation is not None:
                recommendations.append(recommendation)

        return RecommendationResult(mode=Mode.SUGGESTION, candidates=recommendations)

    def _get_weekly_drop(
        self, user_id: str, excluded: Set[str], now: Optional[datetime.datetime] = None
    ) -> RecommendationResult:
        now = now or self.clock()
        week_start = compute_week_start(now, self.config.WEEK_CUTOVER_HOUR)
        loaded: Dict[str, Optional[Profile]] = {}

        def _select() -> Optional[ScoredCandidate]:
            loaded["profile"] = self._load_profile(user_id)
            picks = self.candidate_selector.select(
                user_id, loaded["profile"], excluded, self.config.WEEKLY_DROP_SLOTS
            )
            return picks[0] if picks else None

        drop, _created = self.drop_state_machine.get_or_create(user_id, week_start, _select, now)
        result = RecommendationResult(
            mode=Mode.WEEKLY_DROP, week_start=week_start, drop_status=drop.status
        )
        if drop.status.is_terminal or not drop.candidate_user_id:
            return result

        user_profile = loaded["profile"] if "profile" in loaded else self._load_profile(user_id)
        candidate = ScoredCandidate(
            id=drop.candidate_user_id, similarity=drop.similarity_score, source="weekly_drop"
        )
        future = self.executor.submit(self._annotate, user_profile, user_id, candidate, True)
        result.candidates = [future.result()]
        return result

    def get_recommendations(self, user_id: str) -> RecommendationResult:
        """
        Get connection recommendations for a user.

        Suggestion mode returns up to the remaining suggestion slots, each with a
        reason; weekly-drop mode returns this week's single drop (or nothing).
        Never raises: failures are logged and produce an empty result.

        Args:
            user_id: The user to recommend for

        Returns:
            RecommendationResult with mode and candidates
        """
        start_time = datetime.datetime.now()
        mode = Mode.SUGGESTION
        try:
            mode, excluded, interaction_count = self._resolve(user_id)
            if mode is Mode.WEEKLY_DROP:
                result = self._get_weekly_drop(user_id, excluded)
            else:
                result = self._get_suggestions(user_id, excluded, interaction_count)
        except Exception as e:
            logger.error(f"Error getting recommendations for user {user_id}: {e}", exc_info=True)
            return RecommendationResult(mode=mode)

        elapsed = (datetime.datetime.now() - start_time).total_seconds()
        logger.info(
            f"Returned {len(result.candidates)} {result.mode.value} candidates "
            f"for user {user_id} in {elapsed:.2f} seconds"
        )
        return result

    def record_response(self, user_id: str, candidate_id: str, action) -> None:
        """
        Record what the user did with a candidate.

        Updates the weekly drop (this week's, or last week's if shown before the
        Monday cutover) when the candidate is its shown candidate, upserts the
        interaction ledger, and issues a connection request on "connected".
        Never raises.

        Args:
            user_id: The acting user
            candidate_id: The candidate acted on
            action: "connected", "skipped" or "hidden"
        """
        try:
            action = ResponseAction(action)
        except ValueError:
            logger.error(f"Ignoring unknown action {action!r} from user {user_id}")
            return

        now = self.clock()
        week_start = compute_week_start(now, self.config.WEEK_CUTOVER_HOUR)

        # A drop shown before the Monday cutover can be acted on in the new week
        for drop_week in (week_start, week_start - datetime.timedelta(days=7)):
            try:
                drop = self.drop_state_machine.get(user_id, drop_week)
                if drop is None or drop.candidate_user_id != candidate_id:
                    continue
                self.drop_state_machine.transition(
                    user_id, drop_week, DropStatus(action.value), now
                )
            except Exception as e:
                logger.error(
                    f"Could not update weekly drop for user {user_id} week {drop_week}: {e}"
                )
            break

        interaction_type = (
            InteractionType.CONNECTED
            if action is ResponseAction.CONNECTED
            else InteractionType.SKIPPED
        )
        try:
            self.interaction_ledger.record(user_id, candidate_id, interaction_type, now)
        except Exception as e:
            logger.error(
                f"Could not record {interaction_type.value} for user {user_id} on {candidate_id}: {e}"
            )

        if action is ResponseAction.CONNECTED:
            try:
                self.relation_store.create_request(user_id, candidate_id)
            except Exception as e:
                logger.error(
                    f"Could not send connection request {user_id} -> {candidate_id}: {e}"
                )

    def run_weekly_batch(
        self,
        user_ids: Optional[Iterable[str]] = None,
        now: Optional[datetime.datetime] = None,
        show_progress: bool = False,
    ) -> Dict[str, str]:
        """
        Materialise this week's drop for every user in weekly-drop mode.

        Args:
            user_ids: Users to process; every user with a profile when None
            now: Time that decides the drop week (engine clock when None)
            show_progress: Display a progress bar

        Returns:
            Mapping of user id to drop status (or "suggestion" / "error")
        """
        if user_ids is None:
            try:
                user_ids = list(self.profile_store.iter_user_ids())
            except Exception as e:
                logger.error(f"Weekly batch could not enumerate users: {e}", exc_info=True)
                return {}

        summary: Dict[str, str] = {}
        for user_id in tqdm(user_ids, desc="weekly drops", disable=not show_progress):
            try:
                mode, excluded, _ = self._resolve(user_id)
                if mode is not Mode.WEEKLY_DROP:
                    summary[user_id] = Mode.SUGGESTION.value
                    continue
                result = self._get_weekly_drop(user_id, excluded, now)
                summary[user_id] = result.drop_status.value
            except Exception as e:
                logger.error(f"Weekly batch failed for user {user_id}: {e}", exc_info=True)
                summary[user_id] = "error"

        logger.info(f"Weekly batch processed {len(summary)} users")
        return summary

    def shutdown(self) -> None:
        """Let in-flight reason generation finish, then release the pool."""
        self.executor.shutdown(wait=True)
