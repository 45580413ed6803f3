"""
OpenAI 기반 시 번역 모듈 (페르시아어 → 영어)
"""

import asyncio
import re
import time
from typing import Dict, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from config import (
    OPENAI_API_KEY,
    TRANSLATION_MAX_TOKENS,
    TRANSLATION_MODEL,
    TRANSLATION_TEMPERATURE,
    TRANSLATION_TIMEOUT,
)
from kv_store import JsonFileStore
from logger import log_cost, setup_logger
from models import FetchFailure, Poem, TranslationOutcome

logger = setup_logger("translation")


TRANSLATION_CACHE_PREFIX = "translated_poem"

# 페르시아어 시인 이름 → 영어 표기 (POET: 항목이 없을 때 사용, 위에서부터 먼저 일치하는 항목)
PERSIAN_POET_NAMES = {
    "حافظ": "Hafez",
    "مولانا": "Rumi",
    "سعدی": "Saadi",
    "فردوسی": "Ferdowsi",
    "نظامی": "Nezami",
    "عمر خیام": "Omar Khayyam",
    "خیام": "Khayyam",
    "عطار": "Attar",
    "جامی": "Jami",
    "رودکی": "Rudaki",
}

SYSTEM_PROMPT = (
    "You are an expert translator of Persian poetry to English. Preserve the poetic beauty, "
    "rhythm, and meaning while making it accessible to English readers. Maintain the line "
    "structure of the original. Also provide English translations of titles and poet names."
)

USER_PROMPT_TEMPLATE = """Translate this Persian poem to English while preserving its poetic beauty, meter, and meaning. Keep the same line structure:

{text}

Title: {title}
Poet: {poet}

Please provide:
1. A translation that maintains the artistic and literary quality of the original Persian poetry
2. The English translation of the poem title "{title}"
3. The English name/transliteration of the poet "{poet}"

Format your response as:
POEM:
[translated poem text]

TITLE:
[English title]

POET:
[English name of poet]"""

POEM_PATTERN = re.compile(r"POEM:\s*(.*?)(?=TITLE:|POET:|\Z)", re.DOTALL)
TITLE_PATTERN = re.compile(r"TITLE:\s*(.*?)(?:\n|\Z)")
POET_PATTERN = re.compile(r"POET:\s*(.*?)(?:\n|\Z)")


def lookup_poet_name(persian_name: str) -> Optional[str]:
    """페르시아어 시인 이름에 포함된 알려진 이름의 영어 표기"""
    for persian, english in PERSIAN_POET_NAMES.items():
        if persian in persian_name:
            return english
    return None


def build_translation_prompt(poem: Poem) -> str:
    return USER_PROMPT_TEMPLATE.format(text=poem.text, title=poem.title, poet=poem.poet.name)


def parse_translation_response(response: str, poem: Poem) -> Tuple[str, str, str]:
    """
    LLM 응답에서 번역된 본문, 제목, 시인 이름 추출

    항목 머리말(POEM:, TITLE:, POET:)이 없으면 원본 값으로 대체한다.

    Args:
        response: LLM 응답 문자열
        poem: 원본 시

    Returns:
        (본문, 제목, 시인 이름)
    """
    text = response.strip()
    title = poem.title
    poet_name = poem.poet.name

    poem_match = POEM_PATTERN.search(response)
    if poem_match and poem_match.group(1).strip():
        text = poem_match.group(1).strip()

    title_match = TITLE_PATTERN.search(response)
    if title_match and title_match.group(1).strip():
        title = title_match.group(1).strip()

    poet_match = POET_PATTERN.search(response)
    if poet_match and poet_match.group(1).strip():
        poet_name = poet_match.group(1).strip()
    else:
        poet_name = lookup_poet_name(poem.poet.name) or poet_name

    return text, title, poet_name


class TranslationService:
    """
    시 번역 서비스

    메모리 캐시 → 로컬 저장소 → OpenAI 순서로 번역본을 찾는다.
    캐시 키는 (원본 id, 대상 언어) 조합이다.
    """

    def __init__(
        self,
        store: JsonFileStore,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = OPENAI_API_KEY,
        model: str = TRANSLATION_MODEL,
        timeout: float = TRANSLATION_TIMEOUT,
        target_language: str = "en",
    ):
        self.store = store
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.target_language = target_language
        self._client = client
        self._memory: Dict[str, Poem] = {}

    def _get_client(self) -> Optional[AsyncOpenAI]:
        """OpenAI 클라이언트 지연 초기화 (키가 없으면 None)"""
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def cache_key(self, original_id: int, language: Optional[str] = None) -> str:
        return f"{TRANSLATION_CACHE_PREFIX}:{language or self.target_language}:{original_id}"

    def get_cached(self, poem: Poem) -> Optional[Poem]:
        key = self.cache_key(poem.original_id)
        if key in self._memory:
            return self._memory[key]

        cached = self.store.get(key)
        if not cached:
            return None
        try:
            translated = Poem.from_dict(cached)
        except (KeyError, TypeError) as e:
            logger.warning(f"번역 캐시 파싱 실패 (poem {poem.id}), 새로 번역합니다: {e}")
            return None

        self._memory[key] = translated
        return translated

    def cached_translations(self, language: Optional[str] = None) -> List[Poem]:
        """로컬 저장소에 있는 번역본 전체"""
        prefix = f"{TRANSLATION_CACHE_PREFIX}:{language or self.target_language}:"
        poems = []
        for key, value in self.store.items(prefix):
            if key in self._memory:
                poems.append(self._memory[key])
                continue
            try:
                translated = Poem.from_dict(value or {})
            except (KeyError, TypeError, AttributeError):
                continue
            self._memory[key] = translated
            poems.append(translated)
        return poems

    def _save(self, key: str, translated: Poem):
        self._memory[key] = translated
        try:
            self.store.set(key, translated.to_dict())
        except OSError as e:
            logger.warning(f"번역 캐시 저장 실패 ({key}): {e}")

    async def try_translate(self, poem: Poem) -> TranslationOutcome:
        """
        시 번역

        Args:
            poem: 번역할 원본 시

        Returns:
            TranslationOutcome (실패해도 예외를 던지지 않음)
        """
        if poem.language == self.target_language:
            return TranslationOutcome(poem=poem)

        cached = self.get_cached(poem)
        if cached is not None:
            logger.debug(f"✓ 캐시된 번역 사용 (poem {poem.id})")
            return TranslationOutcome(poem=cached, from_cache=True)

        client = self._get_client()
        if client is None:
            return TranslationOutcome.fail(FetchFailure.NO_API_KEY, "OPENAI_API_KEY not configured")

        start_time = time.time()
        try:
            completion = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_translation_prompt(poem)},
                    ],
                    max_tokens=TRANSLATION_MAX_TOKENS,
                    temperature=TRANSLATION_TEMPERATURE,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError):
            logger.warning(f"번역 요청 타임아웃 (poem {poem.id}, {self.timeout:.0f}초)")
            return TranslationOutcome.fail(FetchFailure.TIMEOUT)
        except openai.APIError as e:
            logger.warning(f"OpenAI API 오류 (poem {poem.id}): {e}")
            return TranslationOutcome.fail(FetchFailure.TRANSPORT, str(e))
        except Exception as e:
            logger.warning(f"번역 중 오류 (poem {poem.id}): {e}")
            return TranslationOutcome.fail(FetchFailure.UNEXPECTED, str(e))

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError) as e:
            return TranslationOutcome.fail(FetchFailure.EMPTY_RESPONSE, str(e))

        if not content or not content.strip():
            logger.warning(f"OpenAI가 번역을 반환하지 않음 (poem {poem.id})")
            return TranslationOutcome.fail(FetchFailure.EMPTY_RESPONSE)

        usage = getattr(completion, "usage", None)
        if usage is not None:
            log_cost(logger, self.model, getattr(usage, "prompt_tokens", 0), getattr(usage, "completion_tokens", 0))

        text, title, poet_name = parse_translation_response(content, poem)
        translated = poem.translated(title=title, text=text, poet_name=poet_name, language=self.target_language)
        self._save(self.cache_key(poem.original_id), translated)

        elapsed = time.time() - start_time
        logger.info(f"✓ 번역 완료 (poem {poem.id} → {translated.id}, 시인: {poet_name}, {elapsed:.2f}초)")
        return TranslationOutcome(poem=translated)

    async def translate(self, poem: Poem) -> Optional[Poem]:
        """시 번역 (실패하면 None)"""
        outcome = await self.try_translate(poem)
        return outcome.poem
