"""
시 API(Ganjoor) 가져오기 모듈
"""

import asyncio
import json
from typing import Callable, Dict, List, Optional, Set

import requests

from circuit_breaker import CircuitBreaker
from config import (
    MAX_CONSECUTIVE_FAILURES,
    MAX_FETCH_ATTEMPTS,
    POEM_SOURCE_URL,
    SOURCE_FETCH_TIMEOUT,
    SOURCE_LANGUAGE,
    SOURCE_REQUEST_DELAY,
)
from logger import log_dict, setup_logger
from models import (
    UNKNOWN_POET,
    UNTITLED,
    FetchFailure,
    FetchOutcome,
    Poem,
    Poet,
    UpstreamPoem,
    text_to_html,
)

logger = setup_logger("source_client")


REQUEST_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Persian Poetry App",
    "Cache-Control": "no-cache",
}


def extract_poet_name(data: UpstreamPoem) -> str:
    """
    응답에서 시인 이름 추출

    poet.name이 없으면 fullTitle("시인 » 작품집 » ...")의 첫 부분을 사용한다.
    """
    poet = data.get("poet") or {}
    name = (poet.get("name") or "").strip()
    if name:
        return name

    full_title = data.get("fullTitle") or ""
    if " » " in full_title:
        head = full_title.split(" » ")[0].strip()
        if head:
            return head

    return UNKNOWN_POET


def transform_upstream_to_poem(data: UpstreamPoem, language: str = SOURCE_LANGUAGE) -> Poem:
    """
    시 API 응답을 Poem으로 변환

    Args:
        data: 시 API 응답 (id와 plainText 또는 text 필수)
        language: 원본 언어

    Returns:
        정규화된 Poem
    """
    poem_text = (data.get("plainText") or data.get("text") or "").strip()
    poet = data.get("poet") or {}
    poet_name = extract_poet_name(data)

    return Poem(
        id=data["id"],
        title=(data.get("title") or UNTITLED).strip(),
        text=poem_text,
        html_text=data.get("htmlText") or text_to_html(poem_text),
        poet=Poet(
            id=poet.get("id") or 0,
            name=poet_name,
            full_name=poet.get("fullName") or poet_name,
        ),
        language=language,
    )


class SourceClient:
    """
    불안정한 시 API에서 시를 한 편씩 가져오는 클라이언트

    실패는 예외가 아니라 FetchOutcome으로 돌려준다.
    used_ids는 피드 세션이 소유하며 중복 시를 걸러내는 데 쓰인다.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        used_ids: Set[int],
        url: str = POEM_SOURCE_URL,
        timeout: float = SOURCE_FETCH_TIMEOUT,
        delay: float = SOURCE_REQUEST_DELAY,
        language: str = SOURCE_LANGUAGE,
        on_circuit_open: Optional[Callable[[], None]] = None,
    ):
        self.breaker = breaker
        self.used_ids = used_ids
        self.url = url
        self.timeout = timeout
        self.delay = delay
        self.language = language
        self.on_circuit_open = on_circuit_open

    def _get(self) -> requests.Response:
        return requests.get(self.url, headers=REQUEST_HEADERS, timeout=self.timeout)

    def _failure(self, failure: FetchFailure, detail: str = "") -> FetchOutcome:
        if self.breaker.record_failure() and self.on_circuit_open:
            self.on_circuit_open()
        return FetchOutcome.fail(failure, detail)

    async def try_fetch_one(self) -> FetchOutcome:
        """
        시 한 편 가져오기

        Returns:
            성공 시 poem이 채워진 FetchOutcome, 실패 시 failure 종류가 채워진 FetchOutcome
        """
        if not self.breaker.should_attempt():
            return FetchOutcome.fail(FetchFailure.CIRCUIT_OPEN, "circuit breaker open")

        try:
            response = await asyncio.to_thread(self._get)
        except requests.exceptions.Timeout as e:
            return self._failure(FetchFailure.TIMEOUT, str(e))
        except requests.exceptions.RequestException as e:
            return self._failure(FetchFailure.TRANSPORT, str(e))

        try:
            if not response.ok:
                return self._failure(FetchFailure.HTTP_STATUS, f"HTTP {response.status_code}")

            body = response.text
            if not body or not body.strip():
                return self._failure(FetchFailure.EMPTY_BODY)

            try:
                data = json.loads(body)
            except json.JSONDecodeError as e:
                return self._failure(FetchFailure.INVALID_JSON, str(e))

            if not isinstance(data, dict) or not data.get("id") or not (data.get("plainText") or data.get("text")):
                return self._failure(FetchFailure.MISSING_FIELDS)

            if data["id"] in self.used_ids:
                return FetchOutcome.fail(FetchFailure.DUPLICATE, f"id {data['id']}")

            poem = transform_upstream_to_poem(data, self.language)
        except Exception as e:
            logger.error(f"시 응답 처리 중 예상치 못한 오류: {e}", exc_info=True)
            return self._failure(FetchFailure.UNEXPECTED, str(e))

        self.breaker.record_success()
        self.used_ids.add(poem.id)
        log_dict(logger, {"id": poem.id, "title": poem.title, "poet": poem.poet.name, "text": poem.text}, title="시 수신")
        return FetchOutcome.success(poem)

    async def fetch_one(self) -> Optional[Poem]:
        """시 한 편 가져오기 (실패하면 None)"""
        outcome = await self.try_fetch_one()
        return outcome.poem

    async def fetch_many(self, count: int) -> List[Poem]:
        """
        시 여러 편을 순차적으로 가져오기

        API 부하를 줄이기 위해 동시 요청 대신 요청 사이에 지연을 둔다.

        Args:
            count: 가져올 시의 수

        Returns:
            가져온 시 목록 (부분 결과 또는 빈 목록일 수 있음)
        """
        poems: List[Poem] = []
        max_attempts = min(count * 2, MAX_FETCH_ATTEMPTS)
        attempts = 0
        consecutive_failures = 0
        failures: Dict[str, int] = {}

        logger.info(f"시 API에서 {count}편 가져오기 시작 (최대 {max_attempts}회 시도)")

        while len(poems) < count and attempts < max_attempts and self.breaker.should_attempt():
            outcome = await self.try_fetch_one()
            attempts += 1

            if outcome.ok:
                poems.append(outcome.poem)
                consecutive_failures = 0
                logger.debug(f"✓ 시 {len(poems)}/{count}: {outcome.poem.title}")
            else:
                consecutive_failures += 1
                failures[outcome.failure.value] = failures.get(outcome.failure.value, 0) + 1
                logger.debug(f"시 가져오기 실패 ({outcome.failure.value}) {outcome.detail}")

                if not poems and consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    logger.warning(f"연속 실패 {consecutive_failures}회, 시 API 요청 중단")
                    break

            if len(poems) < count and attempts < max_attempts:
                await asyncio.sleep(self.delay)

        logger.info(f"✓ 시 {len(poems)}편 가져오기 완료 ({attempts}회 시도)")
        if failures:
            logger.debug(f"실패 종류별 횟수: {failures}, 차단기 상태: {self.breaker.snapshot()}")
        return poems
