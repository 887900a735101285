# backend/rental_search/property_search.py
import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .config import DEFAULT_MAX_SESSIONS, DEFAULT_RESULT_LIMIT, DEFAULT_SESSION_TTL, Settings
from .conversation import ConversationManager, History
from .errors import ExtractionUnavailable, FailureKind, PropertyStoreError
from .extractor import Extractor
from .property_store import InMemoryPropertyStore, PropertyStore
from .query_builder import build_query
from .schemas import ConversationTurn, Filters, PropertySummary, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Here are some properties for you"
STORE_FAILURE_MESSAGE = (
    "Sorry, I couldn't load matching properties right now. Please try again in a moment."
)
FAILURE_MESSAGES = {
    FailureKind.RATE_LIMITED: "I'm receiving a lot of requests right now. Please try again shortly.",
    FailureKind.QUOTA_EXHAUSTED: "AI search is currently unavailable. You can still browse properties directly.",
    FailureKind.UNAVAILABLE: "Sorry, I couldn't process your search. Please try again.",
}

Store = Union[PropertyStore, InMemoryPropertyStore]


class SessionState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    QUERYING = "querying"
    COMPOSED = "composed"


def compose_result(filters: Filters, properties: Sequence[PropertySummary],
                   failure: Optional[FailureKind] = None) -> SearchResult:
    if failure is FailureKind.STORE_UNAVAILABLE:
        message = STORE_FAILURE_MESSAGE
    else:
        message = filters.response_message or DEFAULT_MESSAGE
    return SearchResult(
        filters=filters,
        properties=list(properties),
        message=message,
        suggestions=list(filters.suggestions),
        failure=failure,
    )


def failure_result(kind: FailureKind) -> SearchResult:
    return SearchResult(filters=Filters(), properties=[], message=FAILURE_MESSAGES[kind],
                        suggestions=[], failure=kind)


class SearchSession:
    """
    One conversational search: utterance -> filters -> properties -> reply.

    Calls on the same session are serialized; a second search waits for the
    first one to finish so that it extracts with the first turn in history.
    Cancelling a search leaves history untouched, and so does a reset that
    happens while a search is still running.
    """

    def __init__(self, extractor: Extractor, store: Store,
                 conversation: Optional[ConversationManager] = None,
                 limit: int = DEFAULT_RESULT_LIMIT):
        self.extractor = extractor
        self.store = store
        self.conversation = conversation or ConversationManager()
        self.limit = limit
        self.state = SessionState.IDLE
        self._history: History = self.conversation.reset()
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def history(self) -> History:
        return list(self._history)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def reset(self) -> None:
        self._generation += 1
        self._history = self.conversation.reset()
        self.state = SessionState.IDLE
        logger.info("Search session reset")

    async def search(self, utterance: str) -> SearchResult:
        if not utterance or not utterance.strip():
            raise ValueError("utterance must not be empty")

        async with self._lock:
            try:
                return await self._run(utterance.strip(), self._generation)
            finally:
                self.state = SessionState.IDLE

    async def _run(self, utterance: str, generation: int) -> SearchResult:
        self.state = SessionState.EXTRACTING
        try:
            filters = await self.extractor.extract(utterance, self.history)
        except ExtractionUnavailable as e:
            logger.warning("Extraction unavailable (%s), turn not recorded", e.kind.value)
            return failure_result(e.kind)

        self.state = SessionState.QUERYING
        query = build_query(filters, self.limit)
        failure = None
        try:
            properties: List[PropertySummary] = await asyncio.to_thread(self.store.fetch, query)
        except PropertyStoreError as e:
            logger.error("Property query failed: %s", e)
            properties, failure = [], FailureKind.STORE_UNAVAILABLE

        result = compose_result(filters, properties, failure)
        self.state = SessionState.COMPOSED

        if generation != self._generation:
            logger.info("Session was reset during the search, turn not recorded")
            return result

        self._history = self.conversation.extend(
            self._history,
            ConversationTurn(role="user", content=utterance),
            ConversationTurn(role="assistant", content=result.message),
        )
        logger.info("Search composed: %d properties, history=%d turns", len(result.properties), len(self._history))
        return result


class SessionRegistry:
    """
    In-memory map of session ids to search sessions. Nothing is persisted.

    Sessions idle for longer than `ttl` seconds are dropped, and once more than
    `max_sessions` are held the least recently used idle ones go first. A
    session with a search in flight is never dropped.
    """

    def __init__(self, factory: Callable[[], SearchSession],
                 ttl: float = DEFAULT_SESSION_TTL,
                 max_sessions: int = DEFAULT_MAX_SESSIONS,
                 clock: Callable[[], float] = time.monotonic):
        if ttl <= 0 or max_sessions < 1:
            raise ValueError("ttl must be positive and max_sessions at least 1")
        self.factory = factory
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.clock = clock
        # session_id -> (last used, session), least recently used first
        self._sessions: "OrderedDict[str, Tuple[float, SearchSession]]" = OrderedDict()

    def get_or_create(self, session_id: Optional[str] = None) -> Tuple[str, SearchSession]:
        session_id = session_id or str(uuid.uuid4())
        now = self.clock()
        entry = self._sessions.pop(session_id, None)
        if entry is not None and (now - entry[0] <= self.ttl or entry[1].busy):
            session = entry[1]
        else:
            session = self.factory()
            logger.info("Created search session %s", session_id)
        self._sessions[session_id] = (now, session)
        self._evict(now, keep=session_id)
        return session_id, session

    def _evict(self, now: float, keep: str) -> None:
        idle = [sid for sid, (_, session) in self._sessions.items()
                if sid != keep and not session.busy]
        dropped = [sid for sid in idle if now - self._sessions[sid][0] > self.ttl]
        overflow = len(self._sessions) - len(dropped) - self.max_sessions
        if overflow > 0:
            dropped += [sid for sid in idle if sid not in dropped][:overflow]

        for sid in dropped:
            del self._sessions[sid]
        if dropped:
            logger.info("Dropped %d search sessions, %d remain", len(dropped), len(self._sessions))

    def reset(self, session_id: str) -> None:
        """Clear the session's history and forget it; the id starts fresh next time."""
        entry = self._sessions.pop(session_id, None)
        if entry is not None:
            entry[1].reset()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def build_session_factory(settings: Settings) -> Callable[[], SearchSession]:
    """Build shared clients once; every session gets its own history."""
    extractor = Extractor.from_settings(settings)
    if settings.property_fixtures:
        store: Store = InMemoryPropertyStore.from_file(settings.property_fixtures)
    else:
        store = PropertyStore.from_settings(settings)

    def factory() -> SearchSession:
        return SearchSession(
            extractor,
            store,
            conversation=ConversationManager(settings.max_history_turns),
            limit=settings.result_limit,
        )

    return factory
