"""
Text normalisation subsystem for JobSync.

Provides the single implementation of key normalisation, tokenising,
Levenshtein similarity and requirement-expression parsing that every
other stage relies on.  See `text.py`.
"""

from .dates import is_open_ended, parse_timestamp  # noqa: F401
from .text import (  # noqa: F401
    LIST_AND,
    LIST_OR,
    LIST_SINGLE,
    alias_key,
    detect_list_mode,
    is_no_requirement,
    levenshtein_distance,
    normalize_key,
    parse_list_expression,
    skill_tokens,
    string_similarity,
    token_overlap,
    tokenize,
)
