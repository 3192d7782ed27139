"""Deterministic task classification into complexity, domain tags, and tier."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from agent_router.router.errors import ConfigurationError
from agent_router.router.models import Classification, Task, Tier

logger = logging.getLogger(__name__)

GENERAL_TAG = "general"
MIN_SCORE = 1
MAX_SCORE = 10
BUDGET_MAX_SCORE = 3
STANDARD_MAX_SCORE = 6

MULTI_DOMAIN_WEIGHT = 2
WORDS_FREE = 50
WORDS_PER_POINT = 100
LENGTH_POINTS_CAP = 3
COMPLEX_KEYWORD_POINTS_CAP = 3

DEFAULT_KEYWORD_TABLE: dict[str, frozenset[str]] = {
    "compliance": frozenset(
        {"compliance", "fcra", "facta", "audit", "regulation", "regulatory"},
    ),
    "security": frozenset(
        {"security", "pii", "encryption", "encrypt", "privacy", "vulnerability", "auth"},
    ),
    "testing": frozenset({"test", "tests", "testing", "coverage", "e2e", "unittest"}),
    "documentation": frozenset({"document", "documentation", "docs", "readme", "guide"}),
    "architecture": frozenset({"architecture", "design", "roadmap", "blueprint"}),
    "financial": frozenset({"credit", "dispute", "loan", "financial"}),
    "performance": frozenset({"performance", "optimize", "latency", "cache"}),
    "database": frozenset({"database", "sql", "postgres", "schema", "migration"}),
}

_COMPLEXITY_KEYWORDS: frozenset[str] = frozenset(
    {
        "architecture",
        "design",
        "refactor",
        "migrate",
        "migration",
        "integration",
        "optimize",
        "scalability",
        "distributed",
        "concurrency",
    },
)

_TASK_TYPES: tuple[tuple[str, frozenset[str]], ...] = (
    ("code_generation", frozenset({"create", "implement", "build", "develop", "generate"})),
    ("test_creation", frozenset({"test", "tests", "spec", "coverage", "unittest", "e2e"})),
    ("documentation", frozenset({"document", "readme", "guide", "explain", "comment"})),
    ("debugging", frozenset({"debug", "fix", "error", "bug", "issue", "troubleshoot"})),
    ("refactoring", frozenset({"refactor", "restructure", "reorganize", "optimize"})),
    ("analysis", frozenset({"analyze", "review", "assess", "evaluate", "examine"})),
)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def classify(
    task: Task,
    *,
    keyword_table: Mapping[str, frozenset[str]] = DEFAULT_KEYWORD_TABLE,
) -> Classification:
    """Classify one task. Pure: same task and table always give the same result."""

    tokens = tokenize(task.description)
    tags, unrecognized = _match_tags(tokens, task.domain_hints, keyword_table)
    for hint in unrecognized:
        logger.info("Unrecognized domain hint kept verbatim: task=%s hint=%r", task.task_id, hint)

    reasoning: list[str] = []
    if task.complexity_hint is not None:
        score = _clamp(task.complexity_hint)
        reasoning.append(f"caller complexity hint={score}")
    elif not tokens:
        score = MIN_SCORE
        reasoning.append("empty description")
    else:
        score = _heuristic_score(task=task, tokens=tokens, tags=tags, reasoning=reasoning)

    domain_tags = set(tags) | set(unrecognized)
    if not domain_tags:
        domain_tags = {GENERAL_TAG}
    tier = tier_for_score(score)
    reasoning.append(f"score={score} -> tier={tier.value}")
    return Classification(
        complexity_score=score,
        domain_tags=frozenset(domain_tags),
        recommended_tier=tier,
        task_type=_task_type(tokens),
        unrecognized_hints=unrecognized,
        reasoning=tuple(reasoning),
    )


def tier_for_score(score: int) -> Tier:
    """Map a complexity score to a tier; breakpoints belong to the cheaper tier."""

    if score <= BUDGET_MAX_SCORE:
        return Tier.BUDGET
    if score <= STANDARD_MAX_SCORE:
        return Tier.STANDARD
    return Tier.PREMIUM


def tokenize(text: str) -> list[str]:
    """Lower-case alphanumeric tokens in text order."""

    return [token for token in _TOKEN_SPLIT.split(text.lower()) if token]


def validate_keyword_table(table: Mapping[str, object]) -> dict[str, frozenset[str]]:
    """Normalize a keyword table or raise ConfigurationError."""

    if not table:
        raise ConfigurationError("Keyword table is empty.")
    normalized: dict[str, frozenset[str]] = {}
    for tag, keywords in table.items():
        if not isinstance(tag, str) or not tag.strip():
            raise ConfigurationError(f"Keyword table tag must be a non-empty string: {tag!r}")
        if isinstance(keywords, str) or not isinstance(keywords, (list, tuple, set, frozenset)):
            raise ConfigurationError(f"Keywords for tag {tag!r} must be a list of strings.")
        cleaned: set[str] = set()
        for keyword in keywords:
            if not isinstance(keyword, str) or not keyword.strip():
                raise ConfigurationError(f"Invalid keyword for tag {tag!r}: {keyword!r}")
            cleaned.add(keyword.strip().lower())
        if not cleaned:
            raise ConfigurationError(f"Keyword set for tag {tag!r} is empty.")
        normalized[tag.strip().lower()] = frozenset(cleaned)
    return normalized


def _match_tags(
    tokens: list[str],
    hints: tuple[str, ...],
    keyword_table: Mapping[str, frozenset[str]],
) -> tuple[set[str], tuple[str, ...]]:
    token_set = set(tokens)
    tags = {tag for tag, keywords in keyword_table.items() if token_set & keywords}

    unrecognized: list[str] = []
    for raw_hint in hints:
        hint = raw_hint.strip().lower()
        if not hint:
            continue
        if hint in keyword_table:
            tags.add(hint)
            continue
        matched = {tag for tag, keywords in keyword_table.items() if hint in keywords}
        if matched:
            tags.update(matched)
        elif hint not in unrecognized:
            unrecognized.append(hint)
    return tags, tuple(unrecognized)


def _heuristic_score(
    *,
    task: Task,
    tokens: list[str],
    tags: set[str],
    reasoning: list[str],
) -> int:
    score = MIN_SCORE

    recognized = tags - {GENERAL_TAG}
    if len(recognized) > 1:
        bonus = MULTI_DOMAIN_WEIGHT * (len(recognized) - 1)
        score += bonus
        reasoning.append(f"multi-domain tags {sorted(recognized)} +{bonus}")

    word_count = len(task.description.split())
    if word_count > WORDS_FREE:
        bonus = min(LENGTH_POINTS_CAP, (word_count - WORDS_FREE) // WORDS_PER_POINT)
        if bonus:
            score += bonus
            reasoning.append(f"description length {word_count} words +{bonus}")

    complex_hits = sorted(_COMPLEXITY_KEYWORDS & set(tokens))
    if complex_hits:
        bonus = min(COMPLEX_KEYWORD_POINTS_CAP, len(complex_hits))
        score += bonus
        reasoning.append(f"complexity keywords {complex_hits} +{bonus}")

    if task.file_count > 5:
        score += 3
        reasoning.append(f"file_count={task.file_count} +3")
    elif task.file_count > 2:
        score += 1
        reasoning.append(f"file_count={task.file_count} +1")
    if task.requires_compliance_review:
        score += 3
        reasoning.append("requires compliance review +3")
    if task.affects_multiple_services:
        score += 2
        reasoning.append("affects multiple services +2")
    if task.has_security_implications:
        score += 2
        reasoning.append("security implications +2")

    return _clamp(score)


def _task_type(tokens: list[str]) -> str:
    token_set = set(tokens)
    for task_type, verbs in _TASK_TYPES:
        if token_set & verbs:
            return task_type
    return "general"


def _clamp(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(score)))
