"""
Shared text normalisation and similarity helpers.

Every matching stage (taxonomy lookup, canonicalisation, skill
matching, degree and eligibility scoring) goes through the functions
in this module so that "BS Accountancy", "B.S. Accountancy" and
"  bs   accountancy " are treated identically everywhere.

Two families of helpers live here:

* key/token normalisation – `normalize_key`, `tokenize`,
  `skill_tokens` and `token_overlap`;
* edit-distance similarity – `levenshtein_distance` and
  `string_similarity` (0–100 scale).

It also parses requirement expressions such as "BS IT, BS IS, or
BS CS" into their options and list mode.
"""

from __future__ import annotations

import re
from typing import List, Optional, Set

LIST_SINGLE = "SINGLE"
LIST_AND = "AND"
LIST_OR = "OR"

SKILL_STOPWORDS = {"the", "and", "for", "with"}

NO_REQUIREMENT_PHRASES = {
    "none",
    "not required",
    "no degree required",
    "no eligibility required",
    "no eligibilities required",
    "no skills required",
    "no specific skills required",
}

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")
# single letters left behind by dotted abbreviations ("b s" from "B.S.")
_INITIALS_RE = re.compile(r"(?<![a-z0-9])([a-z]) (?=[a-z](?![a-z0-9]))")
_LIST_SPLIT_RE = re.compile(r"\s+(?:or|and)\s+", re.IGNORECASE)
_AND_RE = re.compile(r"\sand\s")
_OR_RE = re.compile(r"\sor\s")


def normalize_key(raw: Optional[str]) -> str:
    """Normalise a string for dictionary lookup.

    Lowercases, replaces punctuation with spaces and collapses runs of
    whitespace, so ``"B.S. Accountancy"`` becomes ``"b s accountancy"``.
    """
    if not raw:
        return ""
    text = _PUNCT_RE.sub(" ", raw.lower())
    return _SPACE_RE.sub(" ", text).strip()


def alias_key(raw: Optional[str]) -> str:
    """`normalize_key` with spelled-out initials joined up.

    ``"B.S. Accountancy"``, ``"B S Accountancy"`` and ``"BS Accountancy"``
    all give ``"bs accountancy"``.  Used as the taxonomy alias key.
    """
    return _INITIALS_RE.sub(r"\1", normalize_key(raw))


def tokenize(raw: Optional[str]) -> Set[str]:
    """Return the set of normalised word tokens in ``raw``."""
    key = normalize_key(raw)
    return set(key.split()) if key else set()


def skill_tokens(skill: Optional[str]) -> List[str]:
    """Tokenise a skill name for the token-overlap fallback.

    Punctuation is stripped, tokens of two characters or fewer and a
    handful of filler words are dropped.  Order is preserved.
    """
    return [
        token
        for token in normalize_key(skill).split()
        if len(token) > 2 and token not in SKILL_STOPWORDS
    ]


def token_overlap(text_a: Optional[str], text_b: Optional[str]) -> float:
    """Jaccard ratio (0–1) between the token sets of two strings."""
    set_a = tokenize(text_a)
    set_b = tokenize(text_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def levenshtein_distance(str1: str, str2: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if len(str1) < len(str2):
        str1, str2 = str2, str1
    previous = list(range(len(str2) + 1))
    for i, ch1 in enumerate(str1, start=1):
        current = [i]
        for j, ch2 in enumerate(str2, start=1):
            cost = 0 if ch1 == ch2 else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def string_similarity(str1: Optional[str], str2: Optional[str]) -> float:
    """Similarity percentage (0–100) based on Levenshtein distance.

    Comparison ignores case and surrounding whitespace.  The distance is
    normalised against the longer of the two strings.  Identical strings
    score 100 and an empty string never matches anything.
    """
    s1 = (str1 or "").lower().strip()
    s2 = (str2 or "").lower().strip()
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 100.0
    max_len = max(len(s1), len(s2))
    distance = levenshtein_distance(s1, s2)
    similarity = (max_len - distance) / max_len * 100
    return max(0.0, min(100.0, similarity))


def is_no_requirement(raw: Optional[str]) -> bool:
    """True when a requirement field means "nothing is required"."""
    if raw is None:
        return True
    lower = raw.lower().strip()
    return not lower or lower in NO_REQUIREMENT_PHRASES


def detect_list_mode(raw: str) -> str:
    """Return ``AND``, ``OR`` or ``SINGLE`` for a requirement expression.

    "and" takes priority over "or".  A comma separated list without
    either conjunction is an OR list.
    """
    lower = f" {raw.lower().strip()} "
    if _AND_RE.search(lower):
        return LIST_AND
    if _OR_RE.search(lower) or "," in raw:
        return LIST_OR
    return LIST_SINGLE


def parse_list_expression(raw: Optional[str]) -> List[str]:
    """Split "A, B, or C" / "A and B" into its options."""
    text = (raw or "").strip()
    if not text:
        return []
    replaced = _LIST_SPLIT_RE.sub(",", text)
    return [part.strip() for part in replaced.split(",") if part.strip()]


def extract_degree_field(degree: str) -> str:
    """Return the field of study of a degree ("... in X" or "... of X")."""
    match = re.search(r"\bin\s+(.+)$", degree, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    match = re.search(r"\bof\s+(.+)$", degree, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return degree.strip()


def clean_degree_requirement(degree_req: str) -> str:
    """Drop eligibility/skill/experience text pasted after a degree."""
    return re.split(r"\s+(?:Eligibilities|Skills|Experience):", degree_req, flags=re.IGNORECASE)[0].strip()
