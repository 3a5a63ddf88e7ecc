"""Article-code canonicalization.

Stored article codes keep a ``-`` separated, upper-cased form; comparisons use
``article_key`` which drops every separator so ``AB-12/3``, ``ab 12.3`` and
``AB.12-3`` all refer to the same article.
"""

from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[./'\s]")
_DASH_RUN = re.compile(r"-+")
_KEY_STRIP = re.compile(r"[-./'\s]")


class InvalidArticleCode(ValueError):
    """Raised when an article code is empty once normalized."""


def normalize_article_code(code: str | None) -> str:
    if not code:
        return ""
    cleaned = _SEPARATORS.sub("-", code.strip())
    return _DASH_RUN.sub("-", cleaned).upper().strip()


def article_key(code: str | None) -> str:
    """Return the separator-free comparison key for an article code."""

    if not code:
        return ""
    return _KEY_STRIP.sub("", code).upper()


def require_article_code(code: str | None) -> str:
    normalized = normalize_article_code(code)
    if not article_key(normalized):
        raise InvalidArticleCode("article code is empty")
    return normalized


def normalize_variant_code(code: str | None) -> str:
    return (code or "").strip()
