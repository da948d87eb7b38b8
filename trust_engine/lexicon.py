from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_PROFANITY: tuple[str, ...] = ("spam", "scam", "fake", "fraud", "cheat", "hack", "illegal")

# (pattern, ignore_case)
DEFAULT_SPAM_PATTERNS: tuple[tuple[str, bool], ...] = (
    (r"\b(?:click here|act now|limited time|urgent|guaranteed|free money)\b", True),
    (r"\b(?:make money fast|work from home|earn \$\d+)\b", True),
    (r"(?:https?://)?(?:www\.)?[a-zA-Z0-9-]+\.[a-zA-Z]{2,}(?:/\S*)?", False),
    (r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b", False),
    (r"\b(?:\d{3}[\s-]?\d{3}[\s-]?\d{4}|\(\d{3}\)\s*\d{3}[\s-]?\d{4})\b", False),
)

__all__ = [
    "DEFAULT_PROFANITY",
    "DEFAULT_SPAM_PATTERNS",
    "ModerationLexicon",
    "normalize_term",
    "load_lexicon",
]


def normalize_term(value: str) -> str:
    """NFKC-normalise, trim, lowercase and collapse internal whitespace."""

    text = unicodedata.normalize("NFKC", str(value)).strip().lower()
    return _WHITESPACE_RE.sub(" ", text)


@dataclass(slots=True, frozen=True)
class ModerationLexicon:
    """Word list and compiled spam patterns, built once and shared read-only."""

    profanity: tuple[str, ...]
    spam_patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def build(cls, words: Iterable[str], patterns: Iterable[tuple[str, bool]]) -> "ModerationLexicon":
        normalized = sorted({term for term in (normalize_term(word) for word in words) if term})
        compiled: list[re.Pattern[str]] = []
        for pattern, ignore_case in patterns:
            try:
                compiled.append(re.compile(pattern, re.IGNORECASE if ignore_case else 0))
            except re.error as exc:
                logger.warning("lexicon: skipping invalid spam pattern %r: %s", pattern, exc)
        return cls(profanity=tuple(normalized), spam_patterns=tuple(compiled))

    @classmethod
    def default(cls) -> "ModerationLexicon":
        return cls.build(DEFAULT_PROFANITY, DEFAULT_SPAM_PATTERNS)


def _parse_patterns(raw: Any) -> list[tuple[str, bool]]:
    patterns: list[tuple[str, bool]] = []
    for index, entry in enumerate(raw or []):
        if isinstance(entry, str):
            patterns.append((entry, False))
        elif isinstance(entry, Mapping) and isinstance(entry.get("pattern"), str):
            patterns.append((entry["pattern"], bool(entry.get("ignore_case", False))))
        else:
            logger.warning("lexicon: spam_patterns[%d] ignored: %r", index, entry)
    return patterns


def load_lexicon(path: str | Path | None) -> ModerationLexicon:
    """Load a lexicon YAML file; missing sections fall back to the built-in lists."""

    if path is None:
        return ModerationLexicon.default()
    try:
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except FileNotFoundError:
        logger.info("lexicon: %s not found; using built-in lists", path)
        return ModerationLexicon.default()
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("lexicon: failed to read %s (%s); using built-in lists", path, exc)
        return ModerationLexicon.default()
    if not isinstance(data, Mapping):
        logger.warning("lexicon: %s must be a mapping; using built-in lists", path)
        return ModerationLexicon.default()

    words_raw = data.get("profanity")
    if isinstance(words_raw, list):
        words = [str(word) for word in words_raw if isinstance(word, (str, int))]
    else:
        words = list(DEFAULT_PROFANITY)
    patterns_raw = data.get("spam_patterns")
    patterns = _parse_patterns(patterns_raw) if isinstance(patterns_raw, list) else list(DEFAULT_SPAM_PATTERNS)
    return ModerationLexicon.build(words, patterns)
