"""
Semantic Search

Turn nearest-neighbor rows into ranked, deduplicated, budgeted results.

Design decisions:
- Stateless orchestrator over any ContentStoreProtocol
- Over-fetch candidates, then filter by relevance
- Result shaping steps are plain functions, applied in a fixed order
- Whole calls are memoized when a query cache is supplied
"""

import math
import re
from typing import Any

from mnemosyne.config.settings import SearchSettings
from mnemosyne.core.interfaces import ContentStoreProtocol
from mnemosyne.core.types import SearchOptions, SearchResult, SourceType
from mnemosyne.knowledge.query_cache import QueryCache
from mnemosyne.knowledge.store import metadata_or_empty, row_content
from mnemosyne.observability.logging import get_logger
from mnemosyne.observability.metrics import MetricsCollector, get_metrics_collector, timed

logger = get_logger("mnemosyne.search")

_FIRST_SENTENCE = re.compile(r"^[^.!?]*[.!?]")


def estimate_tokens(text: str, chars_per_token: float = 4.0) -> int:
    """Rough token count: one token per `chars_per_token` characters, rounded up."""
    return math.ceil(len(text) / chars_per_token)


def truncate_content(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length].rstrip() + "..."


def quick_summary(text: str, max_length: int = 150) -> str:
    """First sentence of the text, else its first `max_length` characters."""
    if not text:
        return ""

    match = _FIRST_SENTENCE.match(text)
    if match and match.group(0).strip():
        return match.group(0).strip()

    return truncate_content(text, max_length)


def deduplicate_results(results: list[SearchResult]) -> list[SearchResult]:
    """
    Keep the first result for each content signature.

    The signature is the source type plus the first 100 characters of
    content, or the item id when content was not requested.
    """
    seen: set[str] = set()
    unique = []

    for result in results:
        if result.content:
            signature = f"{result.source_type}:{result.content[:100]}"
        else:
            signature = f"id:{result.item_id}"

        if signature in seen:
            continue
        seen.add(signature)
        unique.append(result)

    return unique


def apply_token_budget(results: list[SearchResult], max_total_tokens: int) -> list[SearchResult]:
    """
    Longest prefix admitted while the running total is below the budget.

    The result that crosses the budget is still included.
    """
    if max_total_tokens <= 0:
        return results

    kept = []
    total = 0
    for result in results:
        if total >= max_total_tokens:
            break
        kept.append(result)
        total += result.estimated_token_count

    return kept


class SemanticSearch:
    """
    Semantic search orchestrator.

    Usage:
        search = SemanticSearch(store, cache=cache)
        results = await search.semantic_search("query", query_vector, SearchOptions(limit=3))
    """

    def __init__(
        self,
        store: ContentStoreProtocol,
        cache: QueryCache | None = None,
        settings: SearchSettings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings or SearchSettings()
        self._metrics = metrics or get_metrics_collector()

    def default_options(self, **overrides: Any) -> SearchOptions:
        """Search options seeded from settings."""
        values = {
            "limit": self._settings.default_limit,
            "min_relevance_score": self._settings.min_relevance_score,
        }
        values.update(overrides)
        return SearchOptions(**values)

    async def semantic_search(
        self,
        query_text: str,
        query_vector: list[float] | None,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """
        Rank stored items against a query vector.

        Args:
            query_text: Original query (used for cache keys and logs)
            query_vector: Query embedding; None yields no results
            options: Result shaping options

        Returns:
            Results ordered by descending score
        """
        if query_vector is None:
            return []

        options = options or self.default_options()

        if self._cache is None:
            return await self._run(query_text, query_vector, options)

        self._cache.check_memory_pressure()

        key = self._cache.make_key(
            "semantic_search",
            self._cache.text_signature(query_text, options),
            self._cache.vector_signature(query_vector),
        )
        results = await self._cache.get_or_load(
            "semantic_search",
            key,
            lambda: self._run(query_text, query_vector, options),
        )

        self._cache.check_memory_pressure()
        return results

    async def _run(
        self,
        query_text: str,
        query_vector: list[float],
        options: SearchOptions,
    ) -> list[SearchResult]:
        candidates = min(options.limit * 2, self._settings.candidate_cap)

        with logger.context(operation="semantic_search"):
            try:
                with timed(self._metrics.histogram("search_duration_seconds")):
                    rows = await self._store.vector_search(query_vector, candidates)
                    results = self._shape(rows, options)
            except Exception:
                self._metrics.counter("searches_total").inc(status="error")
                raise

            self._metrics.counter("searches_total").inc(status="ok")
            self._metrics.histogram("search_results").observe(len(results))

            logger.info(
                "Semantic search completed",
                candidates=len(rows),
                results=len(results),
                limit=options.limit,
                query=query_text[:50],
            )

        return results

    def _shape(self, rows: list[dict[str, Any]], options: SearchOptions) -> list[SearchResult]:
        results = []

        for row in rows:
            score = float(row.get("score", 0.0))
            if score < options.min_relevance_score:
                continue

            source_type = row.get("source_type") or SourceType.OTHER.value
            if options.source_type is not None and source_type != options.source_type.value:
                continue

            results.append(self._to_result(row, score, source_type, options))

        if options.deduplicate:
            results = deduplicate_results(results)

        results = results[: options.limit]

        return apply_token_budget(results, options.max_total_tokens)

    def _to_result(
        self,
        row: dict[str, Any],
        score: float,
        source_type: str,
        options: SearchOptions,
    ) -> SearchResult:
        full_content = row_content(row)
        content = full_content if options.include_content else None

        return SearchResult(
            item_id=row["id"],
            title=row.get("title") or "",
            source_type=source_type,
            source_identifier=row.get("source_identifier") or "",
            score=score,
            content=content,
            summary=quick_summary(full_content) if options.include_summary else None,
            estimated_token_count=estimate_tokens(content or "", self._settings.chars_per_token),
            metadata=metadata_or_empty(row.get("metadata"), row["id"]),
        )
