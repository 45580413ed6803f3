"""
시 해설 서비스 (원격 해설 서버 → 로컬 휴리스틱 순서)
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from config import EXPLAIN_URL, EXPLANATION_TIMEOUT, MAX_EXPLANATION_CACHE_ENTRIES, SERVER_AUTH_TOKEN
from local_explainer import generate_local_explanation
from logger import setup_logger
from models import Explanation, ExplanationEntry, ExplainRequest, LineMeaning, Poem, coerce_text
from tafsir import tafsir_to_explanation, validate_tafsir

logger = setup_logger("explanation")


CacheKey = Tuple[int, str]

# 요청 취소 사유
SUPERSEDED = "superseded"
TEARDOWN = "teardown"
ABANDONED = "abandoned"

CANCELLED_ERROR = "cancelled"


class ExplanationCache:
    """
    (poem id, 언어) → ExplanationEntry

    상한을 넘으면 timestamp가 가장 오래된 항목부터 제거한다.
    변경될 때마다 구독자에게 알린다.
    """

    def __init__(self, max_entries: int = MAX_EXPLANATION_CACHE_ENTRIES):
        self.max_entries = max_entries
        self._entries: Dict[CacheKey, ExplanationEntry] = {}
        self._subscribers: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Optional[ExplanationEntry]:
        return self._entries.get(key)

    def set(self, key: CacheKey, entry: ExplanationEntry):
        self._entries[key] = entry
        while len(self._entries) > self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].timestamp)
            del self._entries[oldest]
            logger.debug(f"해설 캐시 제거: {oldest}")
        self._notify()

    def discard(self, key: CacheKey):
        if self._entries.pop(key, None) is not None:
            self._notify()

    def clear(self):
        if self._entries:
            self._entries.clear()
            self._notify()

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """변경 알림 구독 (구독 해제 함수 반환)"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            callback()


@dataclass
class RequestHandle:
    """진행 중인 해설 요청"""
    task: asyncio.Task
    reason: Optional[str] = None

    def cancel(self, reason: str):
        self.reason = reason
        self.task.cancel()


class ActiveRequests:
    """키별 진행 중인 요청 (새 요청이 들어오면 이전 요청을 취소하고 교체)"""

    def __init__(self):
        self._handles: Dict[CacheKey, RequestHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def get(self, key: CacheKey) -> Optional[RequestHandle]:
        return self._handles.get(key)

    def replace(self, key: CacheKey, task: asyncio.Task) -> RequestHandle:
        previous = self._handles.get(key)
        if previous is not None and not previous.task.done():
            logger.debug(f"이전 해설 요청 취소: {key}")
            previous.cancel(SUPERSEDED)

        handle = RequestHandle(task=task)
        self._handles[key] = handle
        return handle

    def is_current(self, key: CacheKey, handle: RequestHandle) -> bool:
        return self._handles.get(key) is handle

    def release(self, key: CacheKey, handle: RequestHandle):
        if self.is_current(key, handle):
            del self._handles[key]

    def cancel_all(self):
        count = 0
        for handle in self._handles.values():
            if not handle.task.done():
                handle.cancel(TEARDOWN)
                count += 1
        self._handles.clear()
        if count:
            logger.debug(f"진행 중인 해설 요청 {count}개 취소")


def parse_remote_explanation(data: Any) -> Explanation:
    """
    해설 서버 응답 파싱

    문자열이어야 할 필드에 객체가 와도 JSON 문자열로 바꿔서 받는다.
    간단 단계 필드 없이 심화 해설만 오면 간단 단계로 변환한다.

    Raises:
        ValueError: 응답에 쓸 만한 해설이 없을 때
    """
    if not isinstance(data, dict) or not isinstance(data.get("explanation"), dict):
        raise ValueError("응답에 explanation 객체가 없습니다")

    raw = data["explanation"]
    if "per_beyt" in raw or "overall_meaning" in raw:
        return tafsir_to_explanation(raw)

    line_by_line = []
    items = raw.get("lineByLine")
    if isinstance(items, list):
        for item in items:
            if isinstance(item, dict):
                line_by_line.append(
                    LineMeaning(original=coerce_text(item.get("original")), meaning=coerce_text(item.get("meaning")))
                )
            else:
                line_by_line.append(LineMeaning(original="", meaning=coerce_text(item)))

    explanation = Explanation(
        line_by_line=line_by_line,
        general_meaning=coerce_text(raw.get("generalMeaning")),
        main_themes=coerce_text(raw.get("mainThemes")),
        imagery_symbols=coerce_text(raw.get("imagerySymbols")),
        full_tafsir=raw["fullTafsir"] if isinstance(raw.get("fullTafsir"), dict) else None,
        source="remote",
    )

    if not (explanation.general_meaning or explanation.main_themes or explanation.line_by_line):
        raise ValueError("해설 필드가 모두 비어 있습니다")
    return explanation


class ExplanationService:
    """
    시 해설 요청 관리

    같은 (시, 언어)에 대한 새 요청은 이전 요청을 취소하며,
    취소된 요청의 호출자는 새 요청의 결과를 받는다.
    """

    def __init__(
        self,
        cache: Optional[ExplanationCache] = None,
        url: str = EXPLAIN_URL,
        auth_token: Optional[str] = SERVER_AUTH_TOKEN,
        timeout: float = EXPLANATION_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache if cache is not None else ExplanationCache()
        self.active = ActiveRequests()
        self.url = url
        self.auth_token = auth_token
        self.timeout = timeout
        self.offline = not url
        self._clock = clock

    def _post(self, payload: ExplainRequest) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)

    async def _fetch_remote(self, poem: Poem, language: str) -> Explanation:
        payload: ExplainRequest = {
            "poem": {"id": poem.id, "text": poem.text, "title": poem.title, "poet": poem.poet.to_dict()},
            "language": language,
        }
        response = await asyncio.wait_for(asyncio.to_thread(self._post, payload), timeout=self.timeout)
        response.raise_for_status()
        explanation = parse_remote_explanation(response.json())

        if explanation.full_tafsir is not None:
            problems = validate_tafsir(explanation.full_tafsir)
            if problems:
                logger.warning(f"심화 해설 근거 인덱스 문제 (poem {poem.id}): {'; '.join(problems[:3])}")
        return explanation

    async def _generate(self, poem: Poem, language: str) -> ExplanationEntry:
        if not self.offline:
            start_time = time.time()
            try:
                explanation = await self._fetch_remote(poem, language)
                logger.info(f"✓ 서버 해설 수신 (poem {poem.id}, {time.time() - start_time:.2f}초)")
                return ExplanationEntry(data=explanation, timestamp=self._clock())
            except asyncio.TimeoutError:
                logger.warning(f"해설 서버 타임아웃 (poem {poem.id}, {self.timeout:.0f}초), 로컬 해설 사용")
            except requests.exceptions.RequestException as e:
                logger.warning(f"해설 서버 요청 실패 (poem {poem.id}): {e}, 로컬 해설 사용")
            except ValueError as e:
                logger.warning(f"해설 서버 응답 파싱 실패 (poem {poem.id}): {e}, 로컬 해설 사용")
            except Exception as e:
                logger.error(f"해설 서버 처리 중 오류 (poem {poem.id}): {e}", exc_info=True)

        try:
            explanation = generate_local_explanation(poem, language)
        except Exception as e:
            logger.error(f"로컬 해설 생성 실패 (poem {poem.id}): {e}", exc_info=True)
            return ExplanationEntry(error=str(e) or type(e).__name__, timestamp=self._clock())

        logger.debug(f"로컬 해설 생성 (poem {poem.id}, {language})")
        return ExplanationEntry(data=explanation, timestamp=self._clock())

    def _cancelled_entry(self) -> ExplanationEntry:
        return ExplanationEntry(error=CANCELLED_ERROR, timestamp=self._clock())

    async def _follow(self, key: CacheKey) -> ExplanationEntry:
        """현재 등록된 요청의 결과를 기다림 (대기 중 또 교체되면 계속 따라감)"""
        while True:
            handle = self.active.get(key)
            if handle is None:
                entry = self.cache.get(key)
                return entry if entry is not None and entry.is_settled else self._cancelled_entry()
            try:
                return await asyncio.shield(handle.task)
            except asyncio.CancelledError:
                if handle.reason is None:
                    raise
                if handle.reason != SUPERSEDED:
                    return self._cancelled_entry()

    async def explain(self, poem: Poem, language: str, force_refresh: bool = False) -> ExplanationEntry:
        """
        시 해설 가져오기

        Args:
            poem: 해설할 시
            language: 해설 언어
            force_refresh: 캐시 무시

        Returns:
            ExplanationEntry (실패 시 error가 채워짐, 예외를 던지지 않음)
        """
        key = (poem.id, language)

        cached = self.cache.get(key)
        if cached is not None and cached.is_settled and not force_refresh:
            return cached

        task = asyncio.ensure_future(self._generate(poem, language))
        handle = self.active.replace(key, task)
        self.cache.set(key, ExplanationEntry(loading=True, timestamp=self._clock()))

        try:
            entry = await asyncio.shield(task)
        except asyncio.CancelledError:
            if handle.reason is None:
                # 호출자 자신이 취소됨
                if self.active.is_current(key, handle):
                    handle.cancel(ABANDONED)
                    self.active.release(key, handle)
                    self.cache.discard(key)
                raise
            if handle.reason == SUPERSEDED:
                return await self._follow(key)
            pending = self.cache.get(key)
            if self.active.get(key) is None and pending is not None and pending.loading:
                self.cache.discard(key)
            return self._cancelled_entry()

        if not self.active.is_current(key, handle):
            return await self._follow(key)

        self.active.release(key, handle)
        self.cache.set(key, entry)
        return entry

    def cancel_all(self):
        self.active.cancel_all()
