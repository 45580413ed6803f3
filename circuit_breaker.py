"""
시 API 호출 차단기 (Circuit Breaker)
"""

import threading
import time
from typing import Callable, Dict

from config import CIRCUIT_COOLDOWN_SECONDS, CIRCUIT_FAILURE_THRESHOLD
from logger import setup_logger

logger = setup_logger("circuit_breaker")


class CircuitBreaker:
    """
    연속 실패 횟수가 임계값에 도달하면 쿨다운 동안 호출을 막는다.

    쿨다운은 마지막 실패 시각 기준으로만 계산한다 (시험 호출 없음).
    재시도 예약은 하지 않으며 "지금 시도해도 되는가"만 답한다.
    """

    def __init__(
        self,
        threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        cooldown: float = CIRCUIT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._last_failure_time = 0.0

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    @property
    def is_open(self) -> bool:
        return not self.should_attempt()

    def should_attempt(self) -> bool:
        """호출을 시도해도 되는지 여부"""
        with self._lock:
            if self._failures < self.threshold:
                return True
            return self._clock() - self._last_failure_time > self.cooldown

    def record_success(self):
        with self._lock:
            if self._failures:
                logger.debug(f"연속 실패 {self._failures}회 후 성공, 카운터 초기화")
            self._failures = 0
            self._last_failure_time = 0.0

    def record_failure(self) -> bool:
        """
        실패 기록

        Returns:
            이번 실패로 임계값에 도달했으면 True (호출자는 대체 데이터 모드로 전환)
        """
        with self._lock:
            self._failures += 1
            self._last_failure_time = self._clock()
            failures = self._failures
            reached = failures >= self.threshold

        if reached:
            logger.warning(
                f"시 API 연속 실패 {failures}회, {self.cooldown:.0f}초 동안 호출 중단"
            )
        return reached

    def reset(self):
        self.record_success()

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return {
                "consecutiveFailures": self._failures,
                "lastFailureTime": self._last_failure_time,
            }
