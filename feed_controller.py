"""
시 피드 컨트롤러 (초기 로딩, 추가 로딩, 언어 전환, 새로고침)
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Coroutine, List, Optional, Set

from circuit_breaker import CircuitBreaker
from config import (
    INITIAL_BATCH_SIZE,
    INITIAL_LOAD_TIMEOUT,
    INITIAL_TRANSLATION_CHUNK,
    LOAD_MORE_SOURCE_BATCH,
    LOAD_MORE_SOURCE_TIMEOUT,
    LOAD_MORE_THRESHOLD,
    LOAD_MORE_TRANSLATED_BATCH,
    LOAD_MORE_TRANSLATED_TIMEOUT,
    SOURCE_LANGUAGE,
    SUPPORTED_LANGUAGES,
    SWITCH_TRANSLATION_CHUNK,
)
from explanation_service import ExplanationService
from favorites_store import PreferenceStore
from kv_store import JsonFileStore
from logger import setup_logger
from mock_poems import get_mock_poems
from models import ExplanationEntry, Poem
from source_client import SourceClient
from translation_service import TranslationService

logger = setup_logger("feed")


class FeedState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIAL_LOADING = "initial_loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    LANGUAGE_SWITCHING = "language_switching"
    EMPTY = "empty"


@dataclass
class FeedSession:
    """
    새로고침 한 번의 수명을 가지는 피드 상태

    used_ids는 시 API 클라이언트와 공유되며, originals는 언어 전환 시
    다시 가져오지 않고 재사용하는 원본 시 목록이다.
    """
    generation: int
    poems: List[Poem] = field(default_factory=list)
    used_ids: Set[int] = field(default_factory=set)
    originals: List[Poem] = field(default_factory=list)
    has_more: bool = True
    using_mock_data: bool = False


SourceFactory = Callable[[CircuitBreaker, Set[int], Callable[[], None]], SourceClient]


class PoemFeedController:
    """
    스와이프 피드에 표시할 시 목록 관리

    모든 로딩은 시작할 때의 세대 번호를 기억하고, 그 사이에 새로고침이나
    언어 전환으로 세대가 바뀌었으면 결과를 버린다.
    """

    def __init__(
        self,
        language: Optional[str] = None,
        store: Optional[JsonFileStore] = None,
        breaker: Optional[CircuitBreaker] = None,
        translator: Optional[TranslationService] = None,
        explanations: Optional[ExplanationService] = None,
        preferences: Optional[PreferenceStore] = None,
        source_factory: Optional[SourceFactory] = None,
        user_id: Optional[str] = None,
        initial_timeout: float = INITIAL_LOAD_TIMEOUT,
        source_load_more_timeout: float = LOAD_MORE_SOURCE_TIMEOUT,
        translated_load_more_timeout: float = LOAD_MORE_TRANSLATED_TIMEOUT,
    ):
        self.store = store if store is not None else JsonFileStore()
        self.breaker = breaker if breaker is not None else CircuitBreaker()
        self.translator = translator if translator is not None else TranslationService(self.store)
        self.explanations = explanations if explanations is not None else ExplanationService()
        self.preferences = preferences if preferences is not None else PreferenceStore(self.store)
        self.user_id = user_id
        self.initial_timeout = initial_timeout
        self.source_load_more_timeout = source_load_more_timeout
        self.translated_load_more_timeout = translated_load_more_timeout
        self._source_factory = source_factory or (
            lambda breaker, used_ids, on_circuit_open: SourceClient(breaker, used_ids, on_circuit_open=on_circuit_open)
        )

        self.language = language or self.preferences.get_language(user_id)
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"지원하지 않는 언어입니다: {self.language}")

        self.state = FeedState.UNINITIALIZED
        self._generation = 0
        self._loading_more = False
        # 초기 로딩이나 언어 전환이 목록을 채우는 중 (READY여도 추가 로딩 금지)
        self._populating = False
        self._tasks: Set[asyncio.Task] = set()
        self._subscribers: List[Callable[["PoemFeedController"], None]] = []
        self.session = self._new_session()

    # ------------------------------------------------------------------
    # 상태 / 구독
    # ------------------------------------------------------------------

    @property
    def poems(self) -> List[Poem]:
        return self.session.poems

    @property
    def has_more(self) -> bool:
        return self.session.has_more

    @property
    def using_mock_data(self) -> bool:
        return self.session.using_mock_data

    @property
    def is_loading_more(self) -> bool:
        return self._loading_more

    def subscribe(self, callback: Callable[["PoemFeedController"], None]) -> Callable[[], None]:
        """화면 갱신 콜백 등록 (구독 해제 함수 반환)"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            callback(self)

    def _set_state(self, state: FeedState):
        self.state = state
        self._notify()

    def _next_generation(self) -> int:
        self._generation += 1
        self._loading_more = False
        self._populating = False
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _new_session(self) -> FeedSession:
        session = FeedSession(generation=self._next_generation())
        self._source = self._source_factory(
            self.breaker, session.used_ids, lambda: self._on_circuit_open(session)
        )
        return session

    def _on_circuit_open(self, session: FeedSession):
        """세션 도중 차단기가 열리면 대체 시 모드로 전환 (이미 표시된 시는 유지)"""
        if session is not self.session or session.using_mock_data:
            return
        logger.warning("시 API 연속 실패, 대체 시 모드로 전환")
        session.using_mock_data = True
        session.has_more = False
        self._notify()

    def _can_load_more(self) -> bool:
        session = self.session
        if self.state != FeedState.READY or self._populating or self._loading_more:
            return False
        return session.has_more and not session.using_mock_data

    # ------------------------------------------------------------------
    # 백그라운드 작업
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_background(self) -> List[asyncio.Task]:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        return tasks

    async def wait_for_background(self):
        """진행 중인 백그라운드 로딩이 끝날 때까지 대기"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # 로딩
    # ------------------------------------------------------------------

    async def _fetch_originals(self, count: int, timeout: Optional[float] = None, stage: str = "초기 로딩") -> List[Poem]:
        """원본 시 가져오기 (시간 제한 초과 시 빈 목록)"""
        if timeout is None:
            timeout = self.initial_timeout
        try:
            return await asyncio.wait_for(self._source.fetch_many(count), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{stage} 시간 초과 ({timeout:g}초)")
            return []

    def _fall_back(self, session: FeedSession):
        """가져온 시가 하나도 없을 때: 차단기가 열려 있으면 대체 시, 아니면 빈 피드"""
        if self.breaker.is_open or session.using_mock_data:
            logger.warning("시 API 사용 불가, 대체 시 목록으로 전환")
            session.poems = get_mock_poems(self.language)
            session.using_mock_data = True
            session.has_more = False
            self._set_state(FeedState.READY)
        else:
            logger.warning("표시할 시가 없습니다")
            session.has_more = False
            self._set_state(FeedState.EMPTY)

    async def _translate_progressively(
        self, session: FeedSession, generation: int, originals: List[Poem], chunk_size: int
    ):
        """
        청크 단위 번역 후 순서대로 피드에 추가

        청크 내부는 동시에 번역하되 입력 순서를 유지하며,
        다음 청크는 이전 청크가 추가된 뒤에만 추가된다.
        """
        for start in range(0, len(originals), chunk_size):
            chunk = originals[start:start + chunk_size]
            results = await asyncio.gather(*(self.translator.translate(poem) for poem in chunk))
            if not self._is_current(generation):
                return

            shown = {poem.id for poem in session.poems}
            translated = [poem for poem in results if poem is not None and poem.id not in shown]
            failed = len(chunk) - sum(1 for poem in results if poem is not None)
            if failed:
                logger.debug(f"청크 번역 실패 {failed}편")
            if not translated:
                continue

            session.poems.extend(translated)
            if self.state == FeedState.READY:
                self._notify()
            else:
                self._set_state(FeedState.READY)

    async def initial_load(self):
        """현재 언어로 첫 화면 채우기"""
        generation = self._generation
        session = self.session
        self._populating = True
        self._set_state(FeedState.INITIAL_LOADING)

        try:
            if self.language == SOURCE_LANGUAGE:
                await self._initial_load_source(session, generation)
            else:
                await self._initial_load_translated(session, generation)
        finally:
            if self._is_current(generation):
                self._populating = False

    async def _initial_load_source(self, session: FeedSession, generation: int):
        poems = await self._fetch_originals(INITIAL_BATCH_SIZE)
        if not poems and self._is_current(generation):
            logger.info("초기 로딩 결과 없음, 한 번 더 시도")
            poems = await self._fetch_originals(INITIAL_BATCH_SIZE)
        if not self._is_current(generation):
            return

        if poems:
            session.originals.extend(poems)
            session.poems.extend(poems)
            logger.info(f"✓ 초기 로딩 완료: {len(poems)}편")
            self._set_state(FeedState.READY)
        else:
            self._fall_back(session)

    async def _initial_load_translated(self, session: FeedSession, generation: int):
        cached = self.translator.cached_translations(self.language)
        session.used_ids.update(poem.original_id for poem in cached)

        if len(cached) >= INITIAL_BATCH_SIZE:
            session.poems = list(cached)
            logger.info(f"✓ 캐시된 번역 {len(cached)}편으로 즉시 표시")
            self._set_state(FeedState.READY)
            self._spawn(self.load_more(generation))
            return

        if cached:
            session.poems = list(cached)
            self._set_state(FeedState.READY)

        originals = await self._fetch_originals(INITIAL_BATCH_SIZE - len(cached))
        if not self._is_current(generation):
            return
        session.originals.extend(originals)

        await self._translate_progressively(session, generation, originals, INITIAL_TRANSLATION_CHUNK)
        if not self._is_current(generation):
            return

        if not session.poems:
            self._fall_back(session)
        else:
            logger.info(f"✓ 초기 로딩 완료: {len(session.poems)}편 ({self.language})")
            if self.state != FeedState.READY:
                self._set_state(FeedState.READY)

    async def load_more(self, generation: Optional[int] = None) -> int:
        """
        피드 끝에 시 추가

        Args:
            generation: 호출 시점의 세대 (없으면 현재 세대)

        Returns:
            추가된 시의 수
        """
        if generation is None:
            generation = self._generation
        session = self.session
        if not self._is_current(generation) or not self._can_load_more():
            return 0

        self._loading_more = True
        self._set_state(FeedState.LOADING_MORE)

        try:
            if self.language == SOURCE_LANGUAGE:
                new_poems = await self._fetch_originals(
                    LOAD_MORE_SOURCE_BATCH, self.source_load_more_timeout, "추가 로딩"
                )
                if not self._is_current(generation):
                    return 0
                session.originals.extend(new_poems)
            else:
                originals = await self._fetch_originals(
                    LOAD_MORE_TRANSLATED_BATCH, self.translated_load_more_timeout, "추가 로딩"
                )
                if not self._is_current(generation):
                    return 0
                session.originals.extend(originals)
                results = await asyncio.gather(*(self.translator.translate(poem) for poem in originals))
                if not self._is_current(generation):
                    return 0
                new_poems = [poem for poem in results if poem is not None]

            if not new_poems:
                logger.info("추가로 가져온 시가 없습니다, 추가 로딩 중단")
                session.has_more = False
                return 0

            session.poems.extend(new_poems)
            logger.info(f"✓ 시 {len(new_poems)}편 추가 (총 {len(session.poems)}편)")
            return len(new_poems)
        finally:
            if self._is_current(generation):
                self._loading_more = False
                if self.state == FeedState.LOADING_MORE:
                    self._set_state(FeedState.READY)

    def maybe_load_more(self, index: int) -> Optional[asyncio.Task]:
        """현재 보고 있는 위치가 끝에 가까우면 백그라운드 추가 로딩 시작"""
        if index < len(self.session.poems) - LOAD_MORE_THRESHOLD:
            return None
        if not self._can_load_more():
            return None
        return self._spawn(self.load_more(self._generation))

    # ------------------------------------------------------------------
    # 언어 전환 / 새로고침 / 종료
    # ------------------------------------------------------------------

    async def switch_language(self, language: str):
        """
        피드 언어 전환

        이미 가져온 원본 시가 있으면 다시 가져오지 않는다. 원본 언어로는 즉시,
        번역 언어로는 청크 단위로 번역하며 표시한다.
        """
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"지원하지 않는 언어입니다: {language}")
        if language == self.language:
            return

        self.explanations.cancel_all()
        self.explanations.cache.clear()
        self._cancel_background()
        generation = self._next_generation()

        self.language = language
        self.preferences.set_language(language, self.user_id)
        logger.info(f"언어 전환: {language}")

        session = self.session
        session.generation = generation
        if session.using_mock_data and not session.originals:
            session.poems = get_mock_poems(language)
            self._set_state(FeedState.READY)
            return

        if not session.originals:
            session.poems = []
            await self.initial_load()
            return

        session.has_more = not session.using_mock_data
        self._set_state(FeedState.LANGUAGE_SWITCHING)

        if language == SOURCE_LANGUAGE:
            session.poems = list(session.originals)
            self._set_state(FeedState.READY)
            return

        self._populating = True
        session.poems = []
        try:
            await self._translate_progressively(session, generation, list(session.originals), SWITCH_TRANSLATION_CHUNK)
        finally:
            if self._is_current(generation):
                self._populating = False
        if not self._is_current(generation):
            return
        if not session.poems:
            self._fall_back(session)

    async def refresh(self):
        """새 세션으로 피드 다시 불러오기 (차단기 초기화 포함)"""
        self.explanations.cancel_all()
        self._cancel_background()
        self.session = self._new_session()
        self.explanations.cache.clear()
        self.breaker.reset()
        logger.info("피드 새로고침")
        await self.initial_load()

    async def close(self):
        """진행 중인 해설 요청과 백그라운드 로딩 취소"""
        self.explanations.cancel_all()
        tasks = self._cancel_background()
        self._next_generation()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def explain(self, poem: Poem, force_refresh: bool = False) -> ExplanationEntry:
        return await self.explanations.explain(poem, self.language, force_refresh=force_refresh)
