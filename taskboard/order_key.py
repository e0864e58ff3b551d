"""
Position keys for ordered lists (fractional indexing over base36).

Keys are plain lowercase base36 strings compared lexicographically.
A new key can always be generated between two existing ones without
touching either, so a move only ever rewrites the moved item.

    generate(None, None)   -> "n"
    generate(None, "n")    -> key < "n"
    generate("n", None)    -> key > "n"
    generate("a1", "a2")   -> "a1i"  (extends length when adjacent)
"""
import re
from typing import List, Optional

DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
DEFAULT_KEY = "n"  # middle of the alphabet; also used for items without a key

_KEY_RE = re.compile(r"^[0-9a-z]*[1-9a-z]$")  # a trailing "0" leaves no room below


def is_valid_key(key: Optional[str]) -> bool:
    """True if key is a non-empty base36 string that does not end in "0"."""
    return isinstance(key, str) and bool(_KEY_RE.match(key))


def effective_key(key: Optional[str]) -> str:
    """The key an item sorts by. Missing or empty keys fall back to DEFAULT_KEY."""
    return key if key else DEFAULT_KEY


def normalize_key(key: Optional[str]) -> str:
    """
    Effective key with trailing zeros stripped, for use as a generate() bound.

    Legacy keys such as "a0" sort just above "a" and below anything
    generate("a", ...) returns, so "a" stands in for them on either side.
    An empty result (from "0", "00", ...) means no key sorts below it.
    """
    return effective_key(key).rstrip(DIGITS[0])


def compare(a: Optional[str], b: Optional[str]) -> int:
    """Compare two keys: -1, 0 or 1. Absent keys compare as DEFAULT_KEY."""
    ka, kb = effective_key(a), effective_key(b)
    if ka == kb:
        return 0
    return -1 if ka < kb else 1


def generate(before: Optional[str] = None, after: Optional[str] = None) -> str:
    """
    Return a key strictly between before and after.

    Either bound may be None (open end). Raises ValueError when a bound is
    not a valid key or the bounds are out of order. Legacy keys ending in
    "0" must go through normalize_key() first.
    """
    if not before and not after:
        return DEFAULT_KEY
    for bound in (before, after):
        if bound and not is_valid_key(bound):
            raise ValueError(f"Invalid position key: {bound!r}")
    if before and after and before >= after:
        raise ValueError(f"Keys out of order: {before!r} >= {after!r}")
    return _midpoint(before or "", after or None)


def _midpoint(a: str, b: Optional[str]) -> str:
    """
    Key between a and b, where a may be "" (open start) and b None (open end).

    a is treated as right-padded with "0", so the result never ends in "0".
    """
    if b is not None:
        # Shared prefix (a padded with zeros) is copied through
        n = 0
        while (a[n] if n < len(a) else DIGITS[0]) == b[n]:
            n += 1
            if n == len(b):
                raise ValueError(f"No key fits between {a!r} and {b!r}")
        if n > 0:
            return b[:n] + _midpoint(a[n:], b[n:])

    digit_a = DIGITS.index(a[0]) if a else 0
    digit_b = DIGITS.index(b[0]) if b is not None else len(DIGITS)
    if digit_b - digit_a > 1:
        return DIGITS[(digit_a + digit_b) // 2]
    # Adjacent leading digits
    if b is not None and len(b) > 1:
        return b[0]
    return DIGITS[digit_a] + _midpoint(a[1:], None)


def generate_initial_keys(count: int) -> List[str]:
    """Return count strictly increasing keys, e.g. for seeding a legacy column."""
    keys: List[str] = []
    prev: Optional[str] = None
    for _ in range(count):
        prev = generate(prev, None)
        keys.append(prev)
    return keys
