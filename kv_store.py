"""
로컬 키-값 저장소 (키 하나당 JSON 파일 하나)
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any, List, Tuple

from config import CACHE_DIR
from logger import setup_logger

logger = setup_logger("kv_store")


def sanitize_filename(name: str) -> str:
    """파일 이름으로 쓸 수 없는 문자를 밑줄로 치환"""
    return re.sub(r'[/\\:*?"<>|\s]', '_', name)


class JsonFileStore:
    """
    디렉토리 기반의 영속 키-값 저장소

    파일에는 {"key": 원래 키, "value": 값}을 저장해서
    파일 이름이 치환되어도 접두사 검색이 원래 키로 동작한다.
    """

    def __init__(self, cache_dir: Path = CACHE_DIR):
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        # 치환 후 충돌을 막기 위해 짧은 해시를 붙인다
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
        return self.cache_dir / f"{sanitize_filename(key)}-{digest}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return data.get("value", default)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"캐시 파일 읽기 실패 ({key}): {e}")
            return default

    def set(self, key: str, value: Any):
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        payload = {"key": key, "value": value}
        self._path(key).write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def items(self, prefix: str = "") -> List[Tuple[str, Any]]:
        """
        접두사로 시작하는 (키, 값) 목록 (키 순으로 정렬됨)

        디렉토리를 한 번만 훑으며, 읽을 수 없는 파일은 건너뛴다.
        """
        if not self.cache_dir.exists():
            return []

        found = []
        for path in self.cache_dir.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                continue
            key = data.get("key") if isinstance(data, dict) else None
            if isinstance(key, str) and key.startswith(prefix):
                found.append((key, data.get("value")))
        return sorted(found, key=lambda item: item[0])

    def keys(self, prefix: str = "") -> List[str]:
        """접두사로 시작하는 키 목록 (정렬됨)"""
        return [key for key, _ in self.items(prefix)]

    def __contains__(self, key: str) -> bool:
        return self._path(key).exists()
