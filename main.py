"""
시 피드 메인 실행 파일
"""

import argparse
import asyncio
import sys
import time
from typing import List, Optional

from config import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, validate_config
from feed_controller import FeedState, PoemFeedController
from logger import log_section, setup_logger
from models import ExplanationEntry, Poem

logger = setup_logger("main")


def print_poem(poem: Poem, index: int):
    print(f"[{index}] {poem.title} | {poem.poet.name}")
    print("-" * 60)
    print(poem.text)
    print()


def print_explanation(entry: ExplanationEntry):
    if entry.error:
        print(f"해설 실패: {entry.error}")
        return

    explanation = entry.data
    print("=" * 60)
    print(f"해설 ({explanation.source})")
    print("=" * 60)
    print(explanation.general_meaning)
    print()
    print(explanation.main_themes)
    print(explanation.imagery_symbols)
    print()
    for line in explanation.line_by_line:
        print(f"  {line.original}")
        print(f"    → {line.meaning}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="페르시아 시 피드 불러오기")
    parser.add_argument(
        "language",
        nargs="?",
        default=None,
        choices=SUPPORTED_LANGUAGES,
        help=f"피드 언어 (기본값: 저장된 설정 또는 {DEFAULT_LANGUAGE})",
    )
    parser.add_argument("--count", type=int, default=0, help="출력할 시의 수 (0이면 전부)")
    parser.add_argument("--explain", action="store_true", help="첫 번째 시의 해설 출력")
    return parser.parse_args(argv)


async def main_async(argv: Optional[List[str]] = None):
    """
    메인 함수 - 피드를 불러와 출력 (async)
    """
    args = parse_args(argv)
    start_time = time.time()

    try:
        validate_config()
    except ValueError as e:
        print(f"설정 오류: {e}")
        logger.critical(f"설정 오류: {e}")
        sys.exit(1)

    controller = PoemFeedController(language=args.language)
    log_section(logger, f"시 피드 불러오기 (언어: {controller.language})")

    try:
        await controller.initial_load()

        if controller.state == FeedState.EMPTY:
            print("표시할 시가 없습니다.")
            return

        await controller.wait_for_background()
        while args.count and len(controller.poems) < args.count and controller.has_more:
            if not await controller.load_more():
                break

        poems = controller.poems[:args.count] if args.count else controller.poems
        for index, poem in enumerate(poems, start=1):
            print_poem(poem, index)

        if controller.using_mock_data:
            print("⚠ 시 API를 사용할 수 없어 예시 시를 표시합니다.")

        if args.explain and poems:
            entry = await controller.explain(poems[0])
            print_explanation(entry)

        elapsed = time.time() - start_time
        log_section(logger, "완료")
        logger.info(f"시 {len(poems)}편 출력 (총 소요 시간: {elapsed:.2f}초)")

    except KeyboardInterrupt:
        print("\n\n사용자에 의해 중단되었습니다.")
        logger.warning("사용자에 의해 중단됨")
        sys.exit(1)
    except Exception as e:
        print(f"\n치명적 오류 발생: {e}")
        logger.critical(f"치명적 오류 발생: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await controller.close()


def main():
    """메인 함수"""
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
