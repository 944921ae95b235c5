"""
Cached PocketBase queries.

QueryBuilder assembles filter/sort/paging parameters for one collection and
executes them through the shared PocketBaseClient, caching results in a
TTL map keyed by the collection and its encoded parameters. The query
classes below are the canned reads used by the MCP resources, prompts and
the admin API.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from notebypine.database import get_database
from notebypine.pocketbase import pb_and, pb_eq, pb_like, pb_neq, pb_or
from notebypine.utils.cache import TTLCache

logger = logging.getLogger(__name__)

INCIDENTS = "incidents"
SOLUTIONS = "solutions"
LESSONS = "lessons_learned"
KNOWLEDGE = "knowledge_base"

# Map of the short names CacheManager accepts onto collection names
COLLECTION_TYPES = {
    "incidents": INCIDENTS,
    "solutions": SOLUTIONS,
    "lessons": LESSONS,
    "knowledge": KNOWLEDGE,
}

MINUTE = 60.0

query_cache = TTLCache(default_ttl=5 * MINUTE)


class QueryBuilder:
    """
    Chainable PocketBase query.

    Successive filter() calls are ANDed together. Results are cached for
    five minutes unless no_cache() or cache_for() says otherwise.
    """

    def __init__(self, collection: str, record_id: Optional[str] = None):
        self.collection = collection
        self.record_id = record_id
        self._filters: List[str] = []
        self._sort: Optional[str] = None
        self._page = 1
        self._per_page = 30
        self._fields: Optional[List[str]] = None
        self._use_cache = True
        self._cache_ttl = 5 * MINUTE

    def filter(self, expression: str) -> "QueryBuilder":
        if expression:
            self._filters.append(expression)
        return self

    def sort(self, field: str, direction: str = "desc") -> "QueryBuilder":
        self._sort = f"-{field}" if direction == "desc" else field
        return self

    def paginate(self, page: int, per_page: int = 20) -> "QueryBuilder":
        self._page = max(page, 1)
        self._per_page = per_page
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self._page = 1
        self._per_page = min(count, 100)
        return self

    def select(self, fields: List[str]) -> "QueryBuilder":
        self._fields = list(fields)
        return self

    def no_cache(self) -> "QueryBuilder":
        self._use_cache = False
        return self

    def cache_for(self, seconds: float) -> "QueryBuilder":
        self._cache_ttl = seconds
        return self

    @property
    def filter_expression(self) -> str:
        return pb_and(*self._filters)

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.record_id is None:
            params["page"] = self._page
            params["perPage"] = self._per_page
            if self._filters:
                params["filter"] = self.filter_expression
            if self._sort:
                params["sort"] = self._sort
        if self._fields:
            params["fields"] = ",".join(self._fields)
        return params

    def cache_key(self) -> str:
        path = self.collection if self.record_id is None else f"{self.collection}/{self.record_id}"
        return f"{path}?{urlencode(sorted(self.params().items()))}"

    async def execute(self) -> Any:
        """Run the query, serving from cache when possible."""
        key = self.cache_key()
        if self._use_cache:
            cached = query_cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached

        request_id = f"query_{uuid.uuid4().hex[:8]}"
        start = time.perf_counter()
        pb = get_database()
        try:
            if self.record_id is not None:
                data = await pb.get_record(self.collection, self.record_id)
            else:
                data = await pb.list_records(
                    self.collection,
                    filter=self.filter_expression or None,
                    sort=self._sort,
                    page=self._page,
                    per_page=self._per_page,
                    fields=self._fields,
                )
        except Exception as e:
            logger.error(f"Query {request_id} failed on {self.collection}: {e}")
            raise
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(f"Query {request_id} {key} took {elapsed:.1f}ms")

        if self._use_cache and data:
            query_cache.set(key, data, self._cache_ttl)
        return data


class IncidentQueries:
    """Canned incident reads."""

    @staticmethod
    def search_incidents(
        query: str,
        category: Optional[str] = None,
        severity: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        page: int = 1,
        include_fields: Optional[List[str]] = None,
    ) -> QueryBuilder:
        builder = (
            QueryBuilder(INCIDENTS)
            .filter(pb_or(pb_like("title", query), pb_like("description", query)))
            .sort("created", "desc")
            .paginate(page, min(limit, 100))
        )
        if category:
            builder.filter(pb_eq("category", category))
        if severity:
            builder.filter(pb_eq("severity", severity))
        if status:
            builder.filter(pb_eq("status", status))
        if include_fields:
            builder.select(include_fields)
        return builder.cache_for(2 * MINUTE)

    @staticmethod
    def get_incident_by_id(incident_id: str) -> QueryBuilder:
        return QueryBuilder(INCIDENTS, incident_id).cache_for(10 * MINUTE)

    @staticmethod
    def get_similar_incidents(
        incident_id: str, category: str, search_terms: List[str], limit: int = 5
    ) -> QueryBuilder:
        term_filter = pb_or(
            *(pb_or(pb_like("title", t), pb_like("description", t)) for t in search_terms)
        )
        return (
            QueryBuilder(INCIDENTS)
            .filter(term_filter)
            .filter(pb_eq("category", category))
            .filter(pb_neq("id", incident_id))
            .sort("created", "desc")
            .limit(limit)
            .cache_for(15 * MINUTE)
        )

    @staticmethod
    def get_incidents_by_status(status: str, limit: int = 50) -> QueryBuilder:
        return (
            QueryBuilder(INCIDENTS)
            .filter(pb_eq("status", status))
            .sort("created", "desc")
            .limit(limit)
            .select(["id", "title", "category", "severity", "status", "created"])
            .cache_for(5 * MINUTE)
        )

    @staticmethod
    def get_incidents_paginated(
        page: int = 1,
        per_page: int = 20,
        category: Optional[str] = None,
        severity: Optional[str] = None,
        status: Optional[str] = None,
    ) -> QueryBuilder:
        builder = QueryBuilder(INCIDENTS).sort("created", "desc").paginate(page, per_page)
        if category:
            builder.filter(pb_eq("category", category))
        if severity:
            builder.filter(pb_eq("severity", severity))
        if status:
            builder.filter(pb_eq("status", status))
        return builder.cache_for(3 * MINUTE)


class SolutionQueries:

    @staticmethod
    def get_solutions_by_incident(incident_id: str, limit: int = 10) -> QueryBuilder:
        return (
            QueryBuilder(SOLUTIONS)
            .filter(pb_eq("incident_id", incident_id))
            .sort("created", "desc")
            .limit(limit)
            .cache_for(10 * MINUTE)
        )

    @staticmethod
    def search_solutions(query: str, limit: int = 20) -> QueryBuilder:
        return (
            QueryBuilder(SOLUTIONS)
            .filter(pb_or(
                pb_like("solution_title", query),
                pb_like("solution_description", query),
            ))
            .sort("created", "desc")
            .limit(limit)
            .cache_for(5 * MINUTE)
        )


class LessonQueries:

    @staticmethod
    def get_lessons_by_incident(incident_id: str, limit: int = 5) -> QueryBuilder:
        return (
            QueryBuilder(LESSONS)
            .filter(pb_eq("incident_id", incident_id))
            .sort("created", "desc")
            .limit(limit)
            .cache_for(15 * MINUTE)
        )

    @staticmethod
    def get_lessons_by_type(lesson_type: str, limit: int = 50) -> QueryBuilder:
        return (
            QueryBuilder(LESSONS)
            .filter(pb_eq("lesson_type", lesson_type))
            .sort("created", "desc")
            .limit(limit)
            .cache_for(20 * MINUTE)
        )


class CacheManager:
    """Cache maintenance entry points."""

    @staticmethod
    def invalidate_all() -> None:
        query_cache.invalidate()
        logger.info("All query caches invalidated")

    @staticmethod
    def invalidate_type(kind: str) -> int:
        collection = COLLECTION_TYPES.get(kind, kind)
        removed = query_cache.invalidate(collection)
        logger.debug(f"Cache invalidated for {collection} ({removed} entries)")
        return removed

    @staticmethod
    def get_stats() -> Dict[str, Any]:
        return {"query_cache": query_cache.stats()}

    @staticmethod
    async def warm_up() -> None:
        """Prime the cache with the open/investigating incident lists."""
        logger.info("Starting cache warm-up")
        try:
            await IncidentQueries.get_incidents_by_status("open", 10).execute()
            await IncidentQueries.get_incidents_by_status("investigating", 10).execute()
            logger.info("Cache warm-up completed")
        except Exception as e:
            logger.warning(f"Cache warm-up failed: {e}")


async def check_database_health() -> Dict[str, Any]:
    """Probe PocketBase and report health with response time."""
    start = time.perf_counter()
    try:
        healthy = await get_database().health()
    except Exception as e:
        return {
            "healthy": False,
            "response_time_ms": round((time.perf_counter() - start) * 1000, 1),
            "error": str(e),
        }
    return {
        "healthy": healthy,
        "response_time_ms": round((time.perf_counter() - start) * 1000, 1),
        "error": None if healthy else "Health check failed",
    }
