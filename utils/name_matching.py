"""Name-matching predicates used to link free text to catalog entities.

Each rule is its own function so the matching policy can be read and
tested one rule at a time. All comparisons are case-insensitive and
ignore surrounding whitespace; empty strings never match anything.
"""

from typing import Optional

# Shorter names match too much by containment ("oil" in "boiled")
MIN_FUZZY_LENGTH = 3


def normalize_name(text: Optional[str]) -> str:
    """Lower-case and trim. None becomes ''."""
    return (text or "").strip().lower()


def names_equal(a: Optional[str], b: Optional[str]) -> bool:
    a, b = normalize_name(a), normalize_name(b)
    return bool(a) and a == b


def contains_either_way(a: Optional[str], b: Optional[str]) -> bool:
    """True if either string contains the other."""
    a, b = normalize_name(a), normalize_name(b)
    if not a or not b:
        return False
    return a in b or b in a


def contains_either_way_guarded(a: Optional[str], b: Optional[str],
                                min_length: int = MIN_FUZZY_LENGTH) -> bool:
    """Containment in either direction, only when both sides are longer than `min_length`."""
    if len(normalize_name(a)) <= min_length or len(normalize_name(b)) <= min_length:
        return False
    return contains_either_way(a, b)


def is_plural_of(plural: Optional[str], singular: Optional[str]) -> bool:
    """
    Naive plural check: `plural` is `singular` + "s".

    Irregular plurals ("leaves"/"leaf") and "-es" forms are not recognised.
    """
    plural, singular = normalize_name(plural), normalize_name(singular)
    return bool(singular) and plural == singular + "s"


def plural_equivalent(a: Optional[str], b: Optional[str]) -> bool:
    """True if one name is the naive plural of the other."""
    return is_plural_of(a, b) or is_plural_of(b, a)


def ingredient_names_match(query: Optional[str], candidate: Optional[str]) -> bool:
    """Fuzzy ingredient rule: guarded containment or singular/plural equivalence."""
    return contains_either_way_guarded(query, candidate) or plural_equivalent(query, candidate)
