"""
데이터 모델 및 타입 정의
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


# 번역본 id 오프셋 (원본 id 공간과 충돌 방지)
TRANSLATED_ID_OFFSET = 1000

UNKNOWN_POET = "نامعلوم"
UNTITLED = "بدون عنوان"


class UpstreamPoet(TypedDict, total=False):
    """시 API의 시인 필드"""
    id: int
    name: str
    fullName: str


class UpstreamPoem(TypedDict, total=False):
    """시 API 응답 타입 (GET /poem/random)"""
    id: int
    title: str
    plainText: str
    text: str
    htmlText: str
    fullTitle: str
    poet: UpstreamPoet


class ExplainRequest(TypedDict):
    """해설 서버 요청 본문 (POST /explain)"""
    poem: Dict[str, Any]
    language: str


def text_to_html(text: str) -> str:
    """줄바꿈을 <br/> 태그로 변환"""
    return text.replace("\r\n", "<br/>").replace("\n", "<br/>")


@dataclass(frozen=True)
class Poet:
    """시인 값 객체"""
    id: int
    name: str
    full_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "fullName": self.full_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Poet":
        name = data.get("name") or UNKNOWN_POET
        return cls(
            id=data.get("id") or 0,
            name=name,
            full_name=data.get("fullName") or name,
        )


@dataclass(frozen=True)
class Poem:
    """
    시 (불변 값)

    번역은 기존 객체를 수정하지 않고 새 Poem을 만든다.
    번역본은 language와 source_id(원본 id)를 함께 가진다.
    """
    id: int
    title: str
    text: str
    html_text: str
    poet: Poet
    language: str = "fa"
    source_id: Optional[int] = None

    @property
    def is_translation(self) -> bool:
        return self.source_id is not None

    @property
    def original_id(self) -> int:
        return self.source_id if self.source_id is not None else self.id

    @property
    def lines(self) -> List[str]:
        """빈 줄을 제외한 시 행 목록"""
        return [line.strip() for line in self.text.splitlines() if line.strip()]

    def translated(self, title: str, text: str, poet_name: str, language: str) -> "Poem":
        """이 시의 번역본을 새 객체로 생성"""
        return replace(
            self,
            id=self.id + TRANSLATED_ID_OFFSET,
            title=title,
            text=text,
            html_text=text_to_html(text),
            poet=Poet(id=self.poet.id, name=poet_name, full_name=poet_name),
            language=language,
            source_id=self.id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "text": self.text,
            "htmlText": self.html_text,
            "poet": self.poet.to_dict(),
            "language": self.language,
        }
        if self.source_id is not None:
            data["sourceId"] = self.source_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Poem":
        text = data.get("text", "")
        return cls(
            id=data["id"],
            title=data.get("title") or UNTITLED,
            text=text,
            html_text=data.get("htmlText") or text_to_html(text),
            poet=Poet.from_dict(data.get("poet") or {}),
            language=data.get("language", "fa"),
            source_id=data.get("sourceId"),
        )


@dataclass
class LineMeaning:
    """한 행(또는 한 바이트)의 원문과 의미"""
    original: str
    meaning: str


@dataclass
class Explanation:
    """
    시 해설

    간단 단계(line_by_line, general_meaning, main_themes, imagery_symbols)와
    심화 단계(full_tafsir, 서버가 준 구조화된 해석 원본)를 함께 담는다.
    """
    line_by_line: List[LineMeaning] = field(default_factory=list)
    general_meaning: str = ""
    main_themes: str = ""
    imagery_symbols: str = ""
    full_tafsir: Optional[Dict[str, Any]] = None
    source: str = "local"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "lineByLine": [{"original": l.original, "meaning": l.meaning} for l in self.line_by_line],
            "generalMeaning": self.general_meaning,
            "mainThemes": self.main_themes,
            "imagerySymbols": self.imagery_symbols,
        }
        if self.full_tafsir is not None:
            data["fullTafsir"] = self.full_tafsir
        return data


@dataclass
class ExplanationEntry:
    """해설 캐시 항목 (요청 상태 봉투)"""
    data: Optional[Explanation] = None
    loading: bool = False
    error: str = ""
    timestamp: float = 0.0

    @property
    def is_success(self) -> bool:
        return not self.loading and not self.error and self.data is not None

    @property
    def is_settled(self) -> bool:
        return not self.loading


@dataclass(frozen=True)
class Favorite:
    """사용자가 저장한 시"""
    poem: Poem
    favorited_at: float
    user_id: str

    def to_dict(self) -> Dict[str, Any]:
        data = self.poem.to_dict()
        data["favoritedAt"] = self.favorited_at
        data["userId"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Favorite":
        return cls(
            poem=Poem.from_dict(data),
            favorited_at=data.get("favoritedAt", 0.0),
            user_id=data.get("userId", ""),
        )


class FetchFailure(Enum):
    """가져오기/번역 실패 종류 (예상 가능한 일상적 실패)"""
    CIRCUIT_OPEN = "circuit_open"
    HTTP_STATUS = "http_status"
    EMPTY_BODY = "empty_body"
    INVALID_JSON = "invalid_json"
    MISSING_FIELDS = "missing_fields"
    DUPLICATE = "duplicate"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    NO_API_KEY = "no_api_key"
    EMPTY_RESPONSE = "empty_response"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class FetchOutcome:
    """시 한 편 가져오기 결과"""
    poem: Optional[Poem] = None
    failure: Optional[FetchFailure] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.poem is not None

    @classmethod
    def success(cls, poem: Poem) -> "FetchOutcome":
        return cls(poem=poem)

    @classmethod
    def fail(cls, failure: FetchFailure, detail: str = "") -> "FetchOutcome":
        return cls(failure=failure, detail=detail)


@dataclass(frozen=True)
class TranslationOutcome:
    """시 번역 결과"""
    poem: Optional[Poem] = None
    failure: Optional[FetchFailure] = None
    detail: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.poem is not None

    @classmethod
    def fail(cls, failure: FetchFailure, detail: str = "") -> "TranslationOutcome":
        return cls(failure=failure, detail=detail)


def coerce_text(value: Any) -> str:
    """문자열이 와야 할 자리에 객체가 오면 JSON 문자열로 직렬화"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
