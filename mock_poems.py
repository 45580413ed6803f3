"""
대체 데이터 모드용 시 목록 (시 API를 쓸 수 없을 때 표시)
"""

import random
from typing import List

from models import Poem, Poet, text_to_html


# (id, 제목, 본문, 시인 id, 시인 이름, 시인 전체 이름)
_PERSIAN = [
    (
        1, "غزل شماره ۱",
        "الا یا ایها الساقی ادر کاسا و ناولها\nکه عشق آسان نمود اول ولی افتاد مشکل‌ها",
        1, "حافظ", "خواجه شمس‌الدین محمد حافظ شیرازی",
    ),
    (
        2, "رباعی",
        "این کوزه چو من عاشق زاری بوده است\nدر بند سر زلف نگاری بوده است\n"
        "این دسته که بر گردن او می‌بینی\nدستی است که بر گردن یاری بوده است",
        2, "عمر خیام", "غیاث‌الدین ابوالفتح عمر بن ابراهیم خیام نیشابوری",
    ),
    (
        3, "غزل",
        "بنی آدم اعضای یک پیکرند\nکه در آفرینش ز یک گوهرند\n"
        "چو عضوی به درد آورد روزگار\nدگر عضوها را نماند قرار",
        3, "سعدی", "ابومحمد مصلح‌الدین بن عبدالله شیرازی",
    ),
    (
        4, "مثنوی معنوی",
        "بشنو از نی چون حکایت می‌کند\nاز جدایی‌ها شکایت می‌کند\n"
        "کز نیستان تا مرا ببریده‌اند\nدر نفیرم مرد و زن نالیده‌اند",
        5, "مولانا", "جلال‌الدین محمد بلخی",
    ),
    (
        5, "شاهنامه",
        "بسی رنج بردم در این سال سی\nعجم زنده کردم بدین پارسی\n"
        "به نزدیک ایرانیان پهلوان\nمن اولم و جاودان بادمان",
        4, "فردوسی", "ابوالقاسم فردوسی طوسی",
    ),
    (
        6, "خسرو و شیرین",
        "عشق است که در دل فروزد شرار\nعشق است که آرد به جان قرار\n"
        "گر عشق نباشد کسی زنده نیست\nگر عشق نباشد کسی بنده نیست",
        6, "نظامی", "نظامی گنجوی",
    ),
]

_ENGLISH = [
    (
        101, "Ghazal No. 1",
        "Come, O cup-bearer, bring wine and offer it\nFor love seemed easy at first, but difficulties arose",
        1, "Hafez", "Khwaja Shams-ud-Din Muhammad Hafez-e Shirazi",
    ),
    (
        102, "Quatrain",
        "This jug, like me, was once a lover in despair\nCaught in the bonds of some beloved's hair\n"
        "This handle that you see upon its neck\nWas once an arm around a lover fair",
        2, "Omar Khayyam", "Ghiyath al-Din Abu'l-Fath Umar ibn Ibrahim al-Khayyam al-Nishapuri",
    ),
    (
        103, "Ghazal",
        "Human beings are members of a whole\nIn creation of one essence and soul\n"
        "If a member is afflicted with pain\nOther members uneasy will remain",
        3, "Saadi", "Abu-Muhammad Muslih al-Din bin Abdallah Shirazi",
    ),
    (
        104, "Masnavi",
        "Listen to the reed flute, how it tells a tale\nComplaining of separations, saying\n"
        "Ever since I was parted from the reed-bed\nMy lament has caused men and women to moan",
        5, "Rumi", "Jalal al-Din Muhammad Balkhi",
    ),
    (
        105, "Shahnameh",
        "I suffered much hardship in these thirty years\nI revived the Persians with this Persian\n"
        "Among the Iranians, I am a champion\nI am first, and may I be eternal",
        4, "Ferdowsi", "Abul-Qasem Ferdowsi Tusi",
    ),
    (
        106, "Khosrow and Shirin",
        "It is love that kindles fire in the heart\nIt is love that brings peace to the soul\n"
        "If there is no love, no one is alive\nIf there is no love, no one is bound",
        6, "Nezami", "Nezami Ganjavi",
    ),
]


def _build(rows, language: str) -> List[Poem]:
    return [
        Poem(
            id=poem_id,
            title=title,
            text=text,
            html_text=text_to_html(text),
            poet=Poet(id=poet_id, name=name, full_name=full_name),
            language=language,
        )
        for poem_id, title, text, poet_id, name, full_name in rows
    ]


MOCK_POEMS = {
    "fa": _build(_PERSIAN, "fa"),
    "en": _build(_ENGLISH, "en"),
}


def get_mock_poems(language: str, shuffle: bool = True) -> List[Poem]:
    """
    언어별 대체 시 목록

    Args:
        language: "fa" 또는 "en" (그 외는 "fa")
        shuffle: 순서를 섞을지 여부 (원본 목록은 바꾸지 않음)

    Returns:
        새 리스트
    """
    poems = list(MOCK_POEMS.get(language, MOCK_POEMS["fa"]))
    if shuffle:
        random.shuffle(poems)
    return poems
