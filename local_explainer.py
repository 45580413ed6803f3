"""
로컬 해설 생성기 (서버 해설이 실패했을 때 사용하는 키워드 기반 휴리스틱)
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from models import Explanation, LineMeaning, Poem


FARSI_DIGITS = "۰۱۲۳۴۵۶۷۸۹"


def to_farsi_number(num: int) -> str:
    """아라비아 숫자를 페르시아 숫자로 변환"""
    return "".join(FARSI_DIGITS[int(d)] if d.isdigit() else d for d in str(num))


@dataclass(frozen=True)
class ThemeRule:
    """키워드 중 하나라도 포함되면 해당 주제로 분류"""
    keywords: Tuple[str, ...]
    label: str
    imagery: str = ""

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


@dataclass(frozen=True)
class LineRule:
    keywords: Tuple[str, ...]
    meaning: str

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


@dataclass(frozen=True)
class LanguageTemplates:
    theme_rules: Tuple[ThemeRule, ...]
    line_rules: Tuple[LineRule, ...]
    default_theme: str
    separator: str
    line_default: str
    general_meaning: str
    main_themes: str
    default_imagery: str
    lowercase: bool


PERSIAN = LanguageTemplates(
    theme_rules=(
        ThemeRule(("عشق", "محبت", "دل"), "عشق و محبت", "دل و عشق تصویر مرکزی شعرند"),
        ThemeRule(("گل", "بهار", "باغ"), "طبیعت و زیبایی", "گل و باغ و بهار نماد زیبایی و ناپایداری‌اند"),
        ThemeRule(("دنیا", "فانی", "زندگی"), "فلسفه زندگی", "دنیای فانی آینه گذر عمر است"),
        ThemeRule(("خدا", "الله", "رب"), "معنویت و عرفان", "یاد خداوند افق معنوی شعر را می‌گشاید"),
        ThemeRule(("جام", "می", "شراب"), "نماد و استعاره", "جام و شراب نماد معرفت و حال عرفانی‌اند"),
        ThemeRule(("یار", "معشوق", "دوست"), "عشق عرفانی", "یار و معشوق به حقیقت الهی اشاره دارند"),
    ),
    line_rules=(
        LineRule(("عشق", "دل"), "این بیت درباره عمق احساسات و عشق صحبت می‌کند"),
        LineRule(("گل", "باغ"), "این بیت از طبیعت برای بیان زیبایی و ناپایداری استفاده می‌کند"),
        LineRule(("می", "جام"), "در این بیت شراب نمادی از معرفت و حال عرفانی است"),
        LineRule(("دنیا", "فانی"), "این بیت درباره گذرا بودن زندگی دنیوی تأمل می‌کند"),
    ),
    default_theme="زیبایی و هنر",
    separator="، ",
    line_default="این بیت درباره {themes} سخن می‌گوید",
    general_meaning=(
        "این شعر زیبا در {count} مصراع دربردارنده موضوعات {themes} است و با استفاده از تصاویر و "
        "استعاره‌های ظریف، پیام عمیق و معنادار خود را به مخاطب منتقل می‌کند."
    ),
    main_themes="موضوعات اصلی: {themes}",
    default_imagery=(
        "شاعر از تصاویر و نمادهای کلاسیک شعر فارسی استفاده کرده است که لایه‌های معنایی "
        "عمیق‌تری به شعر می‌بخشند."
    ),
    lowercase=False,
)

ENGLISH = LanguageTemplates(
    theme_rules=(
        ThemeRule(("love", "heart", "beloved"), "love and devotion", "the heart and the beloved anchor its emotional imagery"),
        ThemeRule(("flower", "garden", "spring"), "nature and beauty", "gardens and flowers stand for beauty and transience"),
        ThemeRule(("life", "world", "time"), "philosophy of life", "the passing world mirrors the brevity of life"),
        ThemeRule(("god", "divine", "spiritual"), "spirituality and mysticism", "the divine frames the poem's spiritual horizon"),
        ThemeRule(("wine", "cup", "tavern"), "symbolism and metaphor", "wine and the cup signal mystical intoxication"),
    ),
    line_rules=(
        LineRule(("love", "heart"), "This line expresses deep emotions and the nature of love"),
        LineRule(("flower", "garden"), "This line uses nature imagery to convey beauty and transience"),
        LineRule(("wine", "cup"), "Here wine serves as a metaphor for spiritual intoxication"),
    ),
    default_theme="beauty and artistry",
    separator=", ",
    line_default="This line explores themes of {themes}",
    general_meaning=(
        "This beautiful poem of {count} lines encompasses themes of {themes}, using delicate imagery "
        "and metaphors to convey its profound message following the rich tradition of Persian poetry."
    ),
    main_themes="Main themes: {themes}",
    default_imagery=(
        "The poet uses classical Persian metaphors and symbols, creating layers of meaning that "
        "enhance the poem's literary significance."
    ),
    lowercase=True,
)


def templates_for(language: str) -> LanguageTemplates:
    return PERSIAN if language == "fa" else ENGLISH


def match_themes(text: str, rules: Sequence[ThemeRule]) -> List[ThemeRule]:
    """규칙 순서대로 일치하는 주제 규칙 목록"""
    return [rule for rule in rules if rule.matches(text)]


def explain_line(line: str, templates: LanguageTemplates, theme_text: str) -> str:
    haystack = line.lower() if templates.lowercase else line
    for rule in templates.line_rules:
        if rule.matches(haystack):
            return rule.meaning
    return templates.line_default.format(themes=theme_text)


def generate_local_explanation(poem: Poem, language: str) -> Explanation:
    """
    키워드 매칭으로 해설 생성

    네트워크 없이 항상 계산 가능하며, 키워드가 하나도 없으면 기본 주제를 쓴다.

    Args:
        poem: 해설할 시
        language: 해설 언어 ("fa" 또는 "en")

    Returns:
        Explanation (source="local")
    """
    templates = templates_for(language)
    text = poem.text.lower() if templates.lowercase else poem.text

    matched = match_themes(text, templates.theme_rules)
    theme_text = templates.separator.join(rule.label for rule in matched) or templates.default_theme

    lines = poem.lines
    count = to_farsi_number(len(lines)) if language == "fa" else str(len(lines))

    imagery_parts = [rule.imagery for rule in matched if rule.imagery]
    if imagery_parts:
        imagery = templates.separator.join(imagery_parts) + ". " + templates.default_imagery
    else:
        imagery = templates.default_imagery

    return Explanation(
        line_by_line=[LineMeaning(original=line, meaning=explain_line(line, templates, theme_text)) for line in lines],
        general_meaning=templates.general_meaning.format(count=count, themes=theme_text),
        main_themes=templates.main_themes.format(themes=theme_text),
        imagery_symbols=imagery,
        source="local",
    )
