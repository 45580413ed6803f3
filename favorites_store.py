"""
즐겨찾기 및 사용자 설정 저장소
"""

import time
from typing import Any, Callable, List, Optional, Tuple

from config import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES
from kv_store import JsonFileStore
from logger import setup_logger
from models import Favorite, Poem

logger = setup_logger("favorites")


LANGUAGE_KEY = "app-language"


class FavoritesStore:
    """
    사용자별 즐겨찾기 (키: favorites:{user_id}, 값: 즐겨찾기 목록)

    번역본의 표시 id(원본 + 1000)는 원본 시 id와 겹칠 수 있으므로
    즐겨찾기는 (원본 id, 언어)로 구분한다.
    """

    def __init__(self, store: JsonFileStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    @staticmethod
    def key(user_id: str) -> str:
        return f"favorites:{user_id}"

    @staticmethod
    def identity(poem: Poem) -> Tuple[int, str]:
        return poem.original_id, poem.language

    def list(self, user_id: str) -> List[Favorite]:
        favorites = []
        for item in self.store.get(self.key(user_id), []):
            try:
                favorites.append(Favorite.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"즐겨찾기 항목 파싱 실패 (user {user_id}): {e}")
        return favorites

    def is_favorite(self, user_id: str, poem: Poem) -> bool:
        target = self.identity(poem)
        return any(self.identity(fav.poem) == target for fav in self.list(user_id))

    def add(self, user_id: str, poem: Poem) -> bool:
        """
        즐겨찾기 추가

        Returns:
            추가되었으면 True, 이미 있으면 False
        """
        favorites = self.list(user_id)
        target = self.identity(poem)
        if any(self.identity(fav.poem) == target for fav in favorites):
            return False

        favorites.append(Favorite(poem=poem, favorited_at=self._clock(), user_id=user_id))
        self.store.set(self.key(user_id), [fav.to_dict() for fav in favorites])
        logger.info(f"즐겨찾기 추가: poem {poem.original_id} ({poem.language}, user {user_id})")
        return True

    def remove(self, user_id: str, poem: Poem) -> bool:
        favorites = self.list(user_id)
        target = self.identity(poem)
        remaining = [fav for fav in favorites if self.identity(fav.poem) != target]
        if len(remaining) == len(favorites):
            return False

        self.store.set(self.key(user_id), [fav.to_dict() for fav in remaining])
        logger.info(f"즐겨찾기 삭제: poem {poem.original_id} ({poem.language}, user {user_id})")
        return True


class PreferenceStore:
    """
    사용자 설정

    언어 설정은 로그인 여부와 관계없이 app-language 키에 저장하고,
    로그인한 사용자는 preference:{user_id}:language 에도 저장한다.
    """

    def __init__(self, store: JsonFileStore):
        self.store = store

    @staticmethod
    def key(user_id: str, name: str) -> str:
        return f"preference:{user_id}:{name}"

    def get(self, user_id: str, name: str, default: Any = None) -> Any:
        return self.store.get(self.key(user_id, name), default)

    def set(self, user_id: str, name: str, value: Any):
        self.store.set(self.key(user_id, name), value)

    def get_language(self, user_id: Optional[str] = None) -> str:
        language = None
        if user_id:
            language = self.get(user_id, "language")
        if language is None:
            language = self.store.get(LANGUAGE_KEY)
        return language if language in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE

    def set_language(self, language: str, user_id: Optional[str] = None):
        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"지원하지 않는 언어입니다: {language}")

        self.store.set(LANGUAGE_KEY, language)
        if user_id:
            self.set(user_id, "language", language)
        logger.debug(f"언어 설정 저장: {language} (user {user_id or '-'})")
