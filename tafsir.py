"""
심화 해설(tafsir) 검증 및 간단 단계 변환
"""

from typing import Any, Dict, List, Optional

from models import Explanation, LineMeaning, coerce_text

# 추가 해석으로 덧붙일 최소 길이
MIN_ADDITIONAL_READING_LENGTH = 50

NO_MEANING = "معنا مشخص نشده"
NO_OVERALL_MEANING = "تفسیر در دسترس نیست"
NO_THEMES = "موضوعات مشخص نشده"
NO_SYMBOLS = "نمادها و تصاویر مشخص نشده"


def _check_indices(indices: Any, couplet_count: int, where: str, errors: List[str]):
    if not isinstance(indices, list) or not indices:
        errors.append(f"{where}: 근거 바이트 없음")
        return
    for index in indices:
        if not isinstance(index, int) or isinstance(index, bool) or index < 1 or index > couplet_count:
            errors.append(f"{where}: 잘못된 바이트 번호 {index!r} (1..{couplet_count})")


def validate_tafsir(tafsir: Dict[str, Any], couplet_count: Optional[int] = None) -> List[str]:
    """
    심화 해설의 근거 인덱스 검증

    모든 key_claim, theme, symbol은 최소 하나의 근거 바이트를 가져야 하며
    바이트 번호는 1부터 couplet_count까지다.

    Args:
        tafsir: 서버가 준 심화 해설
        couplet_count: 바이트 수 (없으면 per_beyt 항목 수)

    Returns:
        문제 목록 (비어 있으면 유효)
    """
    if couplet_count is None:
        couplet_count = len(tafsir.get("per_beyt") or [])

    errors: List[str] = []
    overall = tafsir.get("overall_meaning") or {}

    for i, claim in enumerate(overall.get("key_claims") or [], 1):
        _check_indices(claim.get("evidence_beyts"), couplet_count, f"key_claims[{i}]", errors)

    for i, theme in enumerate(tafsir.get("themes") or [], 1):
        _check_indices(theme.get("evidence_beyts"), couplet_count, f"themes[{i}]", errors)

    for i, symbol in enumerate(tafsir.get("symbols") or [], 1):
        _check_indices(symbol.get("example_beyts"), couplet_count, f"symbols[{i}]", errors)

    return errors


def best_reading(readings: List[Dict[str, Any]]) -> str:
    """가장 자세한(가장 긴) 해석 + 유형이 다른 긴 해석들"""
    if not readings:
        return NO_MEANING

    ordered = sorted(readings, key=lambda r: len(r.get("text") or ""), reverse=True)
    top = ordered[0]
    text = top.get("text") or NO_MEANING

    additional = [
        r["text"]
        for r in ordered[1:]
        if r.get("type") != top.get("type") and len(r.get("text") or "") > MIN_ADDITIONAL_READING_LENGTH
    ]
    if additional:
        text += " " + " ".join(additional)
    return text


def tafsir_to_explanation(tafsir: Dict[str, Any]) -> Explanation:
    """
    심화 해설을 간단 단계 Explanation으로 변환 (full_tafsir에 원본 보관)

    Args:
        tafsir: 서버가 준 심화 해설

    Returns:
        Explanation (source="remote")
    """
    overall = tafsir.get("overall_meaning") or {}
    general = coerce_text(overall.get("paragraph") or overall.get("one_sentence")) or NO_OVERALL_MEANING

    themes = "، ".join(coerce_text(t.get("theme")) for t in tafsir.get("themes") or [] if t.get("theme"))

    symbols = " | ".join(
        f"{coerce_text(s.get('symbol'))}: {'، '.join(coerce_text(m) for m in s.get('meanings') or [])}"
        for s in tafsir.get("symbols") or []
    )

    line_by_line = [
        LineMeaning(original=coerce_text(beyt.get("literal")), meaning=best_reading(beyt.get("readings") or []))
        for beyt in tafsir.get("per_beyt") or []
    ]

    return Explanation(
        line_by_line=line_by_line,
        general_meaning=general,
        main_themes=themes or NO_THEMES,
        imagery_symbols=symbols or NO_SYMBOLS,
        full_tafsir=tafsir,
        source="remote",
    )
