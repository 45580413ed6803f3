"""
환경변수 및 설정 관리
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env 파일에서 환경변수 로드
load_dotenv()


# API 키 (번역 기능에만 필요, 없으면 번역은 건너뜀)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
SERVER_AUTH_TOKEN = os.getenv("SERVER_AUTH_TOKEN")

# 서버 URL
POEM_SOURCE_URL = os.getenv("POEM_SOURCE_URL", "https://api.ganjoor.net/api/ganjoor/poem/random")
SERVER_URL = os.getenv("SERVER_URL", "http://localhost:8000")

# API 엔드포인트
EXPLAIN_URL = os.getenv("EXPLAIN_URL", f"{SERVER_URL}/explain")

# 번역 설정
TRANSLATION_MODEL = os.getenv("TRANSLATION_MODEL", "gpt-4o-mini")
TRANSLATION_MAX_TOKENS = int(os.getenv("TRANSLATION_MAX_TOKENS", "800"))
TRANSLATION_TEMPERATURE = float(os.getenv("TRANSLATION_TEMPERATURE", "0.7"))

# 언어 설정 (원본 시는 페르시아어)
SOURCE_LANGUAGE = os.getenv("SOURCE_LANGUAGE", "fa")
DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", SOURCE_LANGUAGE)
SUPPORTED_LANGUAGES = ("fa", "en")

# 타임아웃 설정 (초)
SOURCE_FETCH_TIMEOUT = float(os.getenv("SOURCE_FETCH_TIMEOUT", "5"))
TRANSLATION_TIMEOUT = float(os.getenv("TRANSLATION_TIMEOUT", "12"))
EXPLANATION_TIMEOUT = float(os.getenv("EXPLANATION_TIMEOUT", "60"))
INITIAL_LOAD_TIMEOUT = float(os.getenv("INITIAL_LOAD_TIMEOUT", "15"))
LOAD_MORE_SOURCE_TIMEOUT = float(os.getenv("LOAD_MORE_SOURCE_TIMEOUT", "15"))
LOAD_MORE_TRANSLATED_TIMEOUT = float(os.getenv("LOAD_MORE_TRANSLATED_TIMEOUT", "10"))

# Rate Limiting
SOURCE_REQUEST_DELAY = float(os.getenv("SOURCE_REQUEST_DELAY", "0.2"))
MAX_FETCH_ATTEMPTS = int(os.getenv("MAX_FETCH_ATTEMPTS", "30"))
MAX_CONSECUTIVE_FAILURES = int(os.getenv("MAX_CONSECUTIVE_FAILURES", "8"))

# Circuit Breaker
CIRCUIT_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
CIRCUIT_COOLDOWN_SECONDS = float(os.getenv("CIRCUIT_COOLDOWN_SECONDS", "600"))

# 피드 배치 크기
INITIAL_BATCH_SIZE = int(os.getenv("INITIAL_BATCH_SIZE", "8"))
LOAD_MORE_SOURCE_BATCH = int(os.getenv("LOAD_MORE_SOURCE_BATCH", "10"))
LOAD_MORE_TRANSLATED_BATCH = int(os.getenv("LOAD_MORE_TRANSLATED_BATCH", "5"))
INITIAL_TRANSLATION_CHUNK = int(os.getenv("INITIAL_TRANSLATION_CHUNK", "2"))
SWITCH_TRANSLATION_CHUNK = int(os.getenv("SWITCH_TRANSLATION_CHUNK", "3"))
LOAD_MORE_THRESHOLD = int(os.getenv("LOAD_MORE_THRESHOLD", "5"))

# 캐시 설정
MAX_EXPLANATION_CACHE_ENTRIES = int(os.getenv("MAX_EXPLANATION_CACHE_ENTRIES", "15"))
CACHE_DIR = Path(os.getenv("CACHE_DIR", ".cache/poems"))

# 로그 설정
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() in ("1", "true", "yes")


# 환경변수 검증
def validate_config():
    """실행에 필요한 설정 값이 올바른지 검증"""
    if DEFAULT_LANGUAGE not in SUPPORTED_LANGUAGES:
        raise ValueError(f"DEFAULT_LANGUAGE 값이 올바르지 않습니다: {DEFAULT_LANGUAGE} (지원: {', '.join(SUPPORTED_LANGUAGES)})")

    if SOURCE_LANGUAGE not in SUPPORTED_LANGUAGES:
        raise ValueError(f"SOURCE_LANGUAGE 값이 올바르지 않습니다: {SOURCE_LANGUAGE}")

    if not POEM_SOURCE_URL:
        raise ValueError("POEM_SOURCE_URL 환경변수가 비어 있습니다. .env 파일을 확인하세요.")

    if INITIAL_BATCH_SIZE <= 0 or INITIAL_TRANSLATION_CHUNK <= 0 or SWITCH_TRANSLATION_CHUNK <= 0:
        raise ValueError("배치/청크 크기는 1 이상이어야 합니다.")
