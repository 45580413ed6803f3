"""
로깅 설정 모듈
"""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_TO_FILE


def setup_logger(name: str = "poems") -> logging.Logger:
    """
    로거 설정

    Args:
        name: 로거 이름

    Returns:
        설정된 로거
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # 이미 핸들러가 있으면 반환 (중복 방지)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # 파일 핸들러 (상세 로그, 날짜별 파일)
    if LOG_TO_FILE:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = LOG_DIR / f"poems_{datetime.now().strftime('%Y%m%d')}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 콘솔 핸들러 (INFO 이상만)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def log_section(logger: logging.Logger, title: str, level: str = "INFO"):
    """
    섹션 구분 로그

    Args:
        logger: 로거 인스턴스
        title: 섹션 제목
        level: 로그 레벨
    """
    separator = "=" * 80
    log_func = getattr(logger, level.lower())
    log_func(separator)
    log_func(f" {title}")
    log_func(separator)


def log_dict(logger: logging.Logger, data: dict, title: str = "Data", max_length: int = 300):
    """
    딕셔너리 데이터를 DEBUG 레벨로 로깅 (긴 시 본문은 축약)

    Args:
        logger: 로거 인스턴스
        data: 로깅할 딕셔너리
        title: 데이터 제목
        max_length: 각 값의 최대 길이
    """
    logger.debug(f"{title}:")
    for key, value in data.items():
        value_str = str(value).replace("\n", " / ")
        if len(value_str) > max_length:
            value_str = value_str[:max_length] + "..."
        logger.debug(f"  {key}: {value_str}")


# 모델별 가격 (USD per 1M tokens)
MODEL_PRICING = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}


def log_cost(logger: logging.Logger, model: str, prompt_tokens: int, completion_tokens: int):
    """
    OpenAI API 사용량과 예상 비용 로깅

    Args:
        logger: 로거 인스턴스
        model: 사용한 모델
        prompt_tokens: 프롬프트 토큰 수
        completion_tokens: 완성 토큰 수
    """
    price = MODEL_PRICING.get(model, MODEL_PRICING["gpt-4o-mini"])

    input_cost = (prompt_tokens / 1_000_000) * price["input"]
    output_cost = (completion_tokens / 1_000_000) * price["output"]

    logger.debug(
        f"OpenAI Usage - Model: {model}, Tokens: {prompt_tokens:,} + {completion_tokens:,}, "
        f"Cost: ${input_cost + output_cost:.6f}"
    )
