"""Shared item name normalization and similarity utilities."""

import re

_NON_ALPHANUMERIC = re.compile(r"[^0-9A-Za-z\s]+")
_WHITESPACE = re.compile(r"\s+")


def clean_item_name(item_name: str) -> str:
    """Normalize an item name into a comparison key.

    Non-alphanumeric characters become spaces, whitespace collapses and the
    result is lowercased: ``"Tomatoes, Roma (25#)"`` -> ``"tomatoes roma 25"``.
    """
    cleaned = _NON_ALPHANUMERIC.sub(" ", item_name)
    return _WHITESPACE.sub(" ", cleaned).strip().lower()


def normalize_unit(unit: str | None, unit_lookup: dict[str, str]) -> str:
    """Collapse unit spellings (``lbs``, ``Pound``...) to one canonical unit."""
    normalized = (unit or "").strip().lower()
    return unit_lookup.get(normalized, normalized)


def word_overlap_ratio(first: str, second: str) -> float:
    """Fraction of words in either name that appear inside a word of the other.

    A word counts as present when it contains, or is contained in, some word
    of the other name, so ``"12oz"`` matches ``"12oz"`` and ``"berry"``
    matches ``"blueberry"``.
    """
    words_a = first.split()
    words_b = second.split()
    if not words_a or not words_b:
        return 0.0

    def found(word: str, others: list[str]) -> bool:
        return any(word in other or other in word for other in others)

    matched = sum(1 for w in words_a if found(w, words_b))
    matched += sum(1 for w in words_b if found(w, words_a))
    return matched / (len(words_a) + len(words_b))


def levenshtein_distance(first: str, second: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if first == second:
        return 0
    if not first:
        return len(second)
    if not second:
        return len(first)

    previous = list(range(len(second) + 1))
    for i, char_a in enumerate(first, start=1):
        current = [i]
        for j, char_b in enumerate(second, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def levenshtein_similarity(first: str, second: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical."""
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(first, second) / longest


def name_similarity(first: str, second: str) -> float:
    """Best of word overlap and character-level similarity for cleaned names."""
    if first == second:
        return 1.0
    if not first or not second:
        return 0.0
    return max(word_overlap_ratio(first, second), levenshtein_similarity(first, second))


def guess_category(
    item_name: str,
    category_keywords: dict[str, list[str]],
    default: str = "Other",
) -> str:
    """Guess category from item name. Simple heuristic."""
    name = item_name.lower()

    for category, keywords in category_keywords.items():
        for kw in keywords:
            if kw.lower() in name:
                return category

    return default
