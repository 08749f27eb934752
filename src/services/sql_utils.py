"""
Small SQL and scoring helpers shared by the generators and validators.

- Identifier quoting for the uppercase SAP tables
- Confidence clamping
- Levenshtein / Jaccard similarity used by relationship inference
- Row-limit handling for query execution
"""

import re
from collections.abc import Hashable, Iterable

# =============================================================================
# Identifier Quoting
# =============================================================================


def quote_identifiers(sql: str, identifiers: Iterable[str]) -> str:
    """
    Rewrite every known identifier to its exact-case, double-quoted form.

    Matching is case-insensitive and whole-word, and swallows any quotes
    already around the name, so ``vbak.vbeln``, ``VBAK.VBELN`` and
    ``"VBAK"."VBELN"`` all become ``"VBAK"."VBELN"``. Applying the function
    twice gives the same result as applying it once.

    Args:
        sql: SQL text
        identifiers: Table and column names in their canonical case

    Returns:
        SQL with identifiers quoted
    """
    # Longest first so that no shorter name is rewritten inside a longer one
    for name in sorted(set(identifiers), key=len, reverse=True):
        if not name:
            continue
        pattern = re.compile(rf'"?\b{re.escape(name)}\b"?', re.IGNORECASE)
        sql = pattern.sub(f'"{name}"', sql)
    return sql


# =============================================================================
# Scoring
# =============================================================================


def clamp_confidence(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, value))


def penalty_confidence(errors: int, warnings: int) -> float:
    """``1 - 0.3 * errors - 0.1 * warnings``, clamped into [0, 1]."""
    return clamp_confidence(1.0 - errors * 0.3 - warnings * 0.1)


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute; unit costs)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """``(len(longer) - distance) / len(longer)``; 1.0 when both are empty."""
    longer = a if len(a) >= len(b) else b
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(a, b)) / len(longer)


def jaccard_similarity(a: Iterable[Hashable], b: Iterable[Hashable]) -> float:
    """``|A & B| / |A | B|``; 0.0 when both sets are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


# =============================================================================
# Normalization / Execution Helpers
# =============================================================================


def normalize_sql(sql: str) -> str:
    """Uppercase and collapse whitespace; the form the regex validators scan."""
    return re.sub(r"\s+", " ", sql.upper()).strip()


TRAILING_LIMIT_PATTERN = re.compile(r"\bLIMIT\s+\d+(\s+OFFSET\s+\d+)?\s*;?\s*$", re.IGNORECASE)


def has_limit(sql: str) -> bool:
    """True when the outer statement ends in ``LIMIT n`` (optionally with OFFSET)."""
    return TRAILING_LIMIT_PATTERN.search(sql) is not None


def apply_row_limit(sql: str, limit: int) -> str:
    """Append ``LIMIT n`` unless the statement already limits its rows."""
    statement = sql.strip().rstrip(";").rstrip()
    if has_limit(statement):
        return statement
    return f"{statement} LIMIT {int(limit)}"


def safe_alias(text: str) -> str:
    """Turn a description like "Sold-to Party" into a bare SQL alias."""
    return re.sub(r"\W+", "_", text.strip()).strip("_") or "value"
