"""
Novel Shelf - Identifier Canonicalization
Reduces scraped slugs and titles to a comparison key: accents stripped,
lowercased, punctuation collapsed to single dashes.

    canonicalize("Chương 1: Bắt đầu")  ->  "chuong-1-bat-dau"
"""

import re
from typing import Dict, Optional

# Per-session memo of raw string -> canonical form
SlugCache = Dict[str, str]

_BASE_LETTERS = {
    "a": "àáảãạăằắẳẵặâầấẩẫậ",
    "e": "èéẻẽẹêềếểễệ",
    "i": "ìíỉĩị",
    "o": "òóỏõọôồốổỗộơờớởỡợ",
    "u": "ùúủũụưừứửữự",
    "y": "ỳýỷỹỵ",
    "d": "đ",
}

# Vietnamese accented letters -> unaccented base letter, both cases
ACCENT_TABLE = {}
for _base, _accented in _BASE_LETTERS.items():
    for _char in _accented:
        ACCENT_TABLE[ord(_char)] = _base
        ACCENT_TABLE[ord(_char.upper())] = _base.upper()

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def canonicalize(raw: Optional[str]) -> str:
    """
    Map an identifier to its canonical comparison key.

    Total and idempotent: any input (including None) yields a string, and
    canonicalizing a canonical key returns it unchanged.
    """
    if not raw:
        return ""
    text = raw.translate(ACCENT_TABLE).lower()
    text = _NON_ALNUM_RUN.sub("-", text)
    return text.strip("-")


def canonicalize_cached(raw: Optional[str], cache: Optional[SlugCache]) -> str:
    """canonicalize() memoized in a caller-owned cache."""
    if not raw:
        return ""
    if cache is None:
        return canonicalize(raw)

    cached = cache.get(raw)
    if cached is None:
        cached = canonicalize(raw)
        cache[raw] = cached
    return cached
