"""Filtering and scored search over list views.

filter_summaries() is the plain filter used by the budget view: a
case-insensitive substring match on cost code name or number plus an exact
category selector.

advanced_search() is the general multi-field search used across list views.
Per query term and field it tries, in order:

    exact match        1.0
    contains           0.8 + 0.2 * len(term) / len(field)
    fuzzy              similarity * 0.6   (Levenshtein similarity >= 0.7)
    acronym            0.5                 ("js" matches "John Smith")

The best weighted field score counts for each term. Without
require_all_terms the final score is
``(total / n_terms) * (0.7 + 0.3 * matched_terms / n_terms)``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from workpack_budget.core.models import CostCodeBudgetSummary

T = TypeVar("T")

ALL_CATEGORIES: str = "all"

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

FUZZY_THRESHOLD: float = 0.7


# ---------------------------------------------------------------------------
# Budget view filter
# ---------------------------------------------------------------------------


def filter_summaries(
    summaries: Iterable[CostCodeBudgetSummary],
    query: str = "",
    category: str = ALL_CATEGORIES,
) -> list[CostCodeBudgetSummary]:
    """Return the summaries matching a free-text query and a category selector.

    Order is preserved. An empty query matches every row.
    """
    needle = query.strip().lower()
    return [
        summary
        for summary in summaries
        if (
            needle in summary.cost_code_name.lower()
            or needle in summary.cost_code_number.lower()
        )
        and (category == ALL_CATEGORIES or summary.category == category)
    ]


# ---------------------------------------------------------------------------
# Advanced search
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchableField:
    """A field taking part in advanced_search.

    Attributes:
        key: Attribute or mapping key read from each item.
        weight: Multiplier applied to the field's match score.
        transform: Optional function producing the searchable text from the item.
    """

    key: str
    weight: float = 1.0
    transform: Callable[[Any], str] | None = None


@dataclass(frozen=True)
class SearchResult(Generic[T]):
    """One matched item with its score and the fields that matched."""

    item: T
    score: float
    matched_fields: tuple[str, ...] = field(default_factory=tuple)


def normalize_text(text: str) -> str:
    """Lowercase, trim, turn punctuation into spaces and collapse whitespace."""
    text = _NON_WORD.sub(" ", text.lower().strip())
    return _WHITESPACE.sub(" ", text)


def tokenize_query(query: str) -> list[str]:
    return [term for term in normalize_text(query).split(" ") if term]


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insertions, deletions, substitutions)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - distance / len(longer); 1.0 for two empty strings."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def _is_acronym(field_value: str, term: str) -> bool:
    if len(term) < 2:
        return False
    words = [word for word in field_value.split(" ") if word]
    word_index = 0
    for char in term:
        for i in range(word_index, len(words)):
            if words[i][0] == char:
                word_index = i + 1
                break
        else:
            return False
    return True


def match_field(field_value: str, term: str) -> float:
    """Score how well one term matches one field value; 0.0 when it does not."""
    normalized_field = normalize_text(field_value)
    normalized_term = normalize_text(term)

    if normalized_field == normalized_term:
        return 1.0
    if normalized_term in normalized_field:
        return 0.8 + (len(normalized_term) / len(normalized_field)) * 0.2

    score = similarity(normalized_field, normalized_term)
    if score >= FUZZY_THRESHOLD:
        return score * 0.6

    if _is_acronym(normalized_field, normalized_term):
        return 0.5
    return 0.0


def _field_text(item: Any, searchable: SearchableField) -> str:
    if searchable.transform is not None:
        return searchable.transform(item)
    if isinstance(item, dict):
        value = item.get(searchable.key)
    else:
        value = getattr(item, searchable.key, None)
    return "" if value is None else str(value)


def advanced_search(
    items: Iterable[T],
    query: str,
    fields: Sequence[SearchableField],
    *,
    min_score: float = 0.3,
    max_results: int | None = None,
    require_all_terms: bool = False,
) -> list[SearchResult[T]]:
    """Rank items against a multi-term query across several weighted fields.

    Args:
        items: Records to search (objects or mappings).
        query: Free-text query.
        fields: Fields to search with their weights.
        min_score: Results scoring below this are dropped.
        max_results: Optional cap on the number of results.
        require_all_terms: When True every term must match some field.

    Returns:
        Results sorted by score descending; ties keep input order. An empty
        query returns every item with score 1.0.
    """
    pool = list(items)
    terms = tokenize_query(query)
    if not terms:
        return [SearchResult(item=item, score=1.0) for item in pool]

    results: list[SearchResult[T]] = []
    for item in pool:
        total_score = 0.0
        matched_terms = 0
        matched_fields: list[str] = []

        for term in terms:
            best_score = 0.0
            best_key = ""
            for searchable in fields:
                score = match_field(_field_text(item, searchable), term) * searchable.weight
                if score > best_score:
                    best_score = score
                    best_key = searchable.key
            if best_score > 0:
                total_score += best_score
                matched_terms += 1
                if best_key not in matched_fields:
                    matched_fields.append(best_key)

        final_score = 0.0
        if require_all_terms:
            if matched_terms == len(terms):
                final_score = total_score / len(terms)
        elif matched_terms > 0:
            coverage = matched_terms / len(terms)
            final_score = (total_score / len(terms)) * (0.7 + 0.3 * coverage)

        if final_score >= min_score:
            results.append(SearchResult(item=item, score=final_score, matched_fields=tuple(matched_fields)))

    results.sort(key=lambda result: result.score, reverse=True)
    if max_results is not None:
        return results[:max_results]
    return results


BUDGET_SEARCH_FIELDS: tuple[SearchableField, ...] = (
    SearchableField(key="cost_code_name", weight=1.0),
    SearchableField(key="cost_code_number", weight=0.8),
)
