"""Faculty → stored category label expansion, and campus alias folding.

Catalog documents carry one fine-grained ``category`` label (a department or
sub-unit, sometimes spelled differently from what the UI shows). Searching
by faculty therefore widens into a set filter over every label that faculty
is stored under.
"""

from __future__ import annotations

from collections.abc import Mapping

NO_PREFERENCE = "指定なし"

# Faculty → labels actually stored on catalog documents
DEFAULT_EXPANSION: dict[str, list[str]] = {
    "文学部": [
        "文学部",
        "文学部共通",
        "文学部外国語科目",
        "英米文学科",
        "フランス文学科",
        "日本文学科",
        "史学科",
        "比較芸術学科",
    ],
    "教育人間科学部": [
        "教育人間科学部",
        "教育人間 外国語科目",
        "教育人間 教育学科",
        "教育人間 心理学科",
        "教育人間　外国語科目",
        "教育人間　教育学科",
        "教育人間　心理学科",
    ],
    "経済学部": ["経済学部"],
    "法学部": ["法学部"],
    "経営学部": ["経営学部"],
    "国際政治経済学部": ["国際政治経済学部", "国際政治学科", "国際経済学科", "国際コミュニケーション学科"],
    "総合文化政策学部": ["総合文化政策学部"],
    "理工学部": [
        "理工学部共通",
        "物理・数理",
        "化学・生命",
        "機械創造",
        "経営システム",
        "情報テクノロジ－",
        "物理科学",
        "数理サイエンス",
    ],
    "コミュニティ人間科学部": ["ｺﾐｭﾆﾃｨ人間科学部"],
    "社会情報学部": ["社会情報学部"],
    "地球社会共生学部": ["地球社会共生学部"],
    "青山スタンダード科目": ["青山スタンダード科目"],
    "教職課程科目": ["教職課程科目"],
}

# Faculty → department choices offered by the search form
DEPARTMENTS: dict[str, list[str]] = {
    "文学部": ["英米文学科", "フランス文学科", "日本文学科", "史学科", "比較芸術学科"],
    "教育人間科学部": ["教育学科", "心理学科"],
    "経済学部": ["経済学科", "現代経済デザイン学科"],
    "法学部": ["法学科", "ヒューマンライツ学科"],
    "経営学部": ["経営学科", "マーケティング学科"],
    "国際政治経済学部": ["国際政治学科", "国際経済学科", "国際コミュニケーション学科"],
    "総合文化政策学部": ["総合文化政策学科"],
    "理工学部": [
        "物理科学科",
        "数理サイエンス学科",
        "化学・生命科学科",
        "電気電子工学科",
        "機械創造工学科",
        "経営システム工学科",
        "情報テクノロジー学科",
    ],
    "コミュニティ人間科学部": ["コミュニティ人間科学科"],
    "社会情報学部": ["社会情報学科"],
    "地球社会共生学部": ["地球社会共生学科"],
    "青山スタンダード科目": [],
    "教職課程科目": [],
}

# Canonical campus → substrings that identify it (matched case-insensitively)
_CAMPUS_ALIASES: dict[str, tuple[str, ...]] = {
    "相模原": ("相模", "sagamihara"),
    "青山": ("青山", "aoyama"),
}
# Single-letter shorthands used by some exports
_CAMPUS_SHORTHANDS: dict[str, str] = {"s": "相模原", "a": "青山"}


class CategoryHierarchy:
    """Static faculty → stored-label lookup.

    Args:
        expansion: Mapping of coarse category to fine labels. Defaults to the
            catalog's faculty table.
    """

    def __init__(self, expansion: Mapping[str, list[str]] | None = None) -> None:
        self._expansion: dict[str, list[str]] = dict(expansion if expansion is not None else DEFAULT_EXPANSION)

    def expand(self, coarse: str) -> list[str]:
        """Return the stored labels for *coarse*.

        Unknown values pass through as a single-element list, so a missing
        mapping degrades to an exact-match filter rather than an error.
        """
        return list(self._expansion.get(coarse, [coarse]))

    def faculties(self) -> list[str]:
        return list(self._expansion)


def departments(faculty: str) -> list[str]:
    """Department choices for *faculty*; empty for unknown faculties."""
    return list(DEPARTMENTS.get(faculty, []))


def canonical_campus(label: str) -> str:
    """Fold a campus label or alias to its canonical name.

    Unknown labels fold to their trimmed, case-folded form so that they still
    compare equal to themselves.
    """
    text = label.strip().casefold()
    if text in _CAMPUS_SHORTHANDS:
        return _CAMPUS_SHORTHANDS[text]
    for canonical, aliases in _CAMPUS_ALIASES.items():
        if any(alias in text for alias in aliases):
            return canonical
    return text
