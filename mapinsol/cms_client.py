from __future__ import annotations

"""
Async client for the WordPress REST API that backs the catalog.

All reads go through one configured ``httpx.AsyncClient``.  Failure rules
follow what the pages need downstream:

* list-style reads (practices, categories, tags) raise :class:`CMSError`
  on transport errors and non-2xx responses, which becomes an error page;
* the by-slug lookup returns ``None`` on a non-2xx response or an empty
  result, which becomes a 404;
* media lookups are best-effort and return ``None`` / ``[]``.

Nothing is retried.  Successful responses are kept in a short-lived
in-memory cache so a page render that asks twice for the same list only
hits the CMS once per revalidation interval.  The cache holds at most
``settings.cache_max_entries`` responses.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from loguru import logger

from .config import (
    CATEGORIES_ENDPOINT,
    MAX_PER_PAGE,
    MEDIA_ENDPOINT,
    MEDIA_FIELDS,
    PRACTICES_ENDPOINT,
    TAGS_ENDPOINT,
    TAXONOMY_FIELDS,
    UNIQUE_ENTITY_RATIO,
    CMSSettings,
)
from .models import MediaAttachment, Practice, PracticePage, PracticeQuery, SiteStatistics, TaxonomyTerm
from .normalize import decode_int
from .practice_build import normalise_practice, normalise_practices, parse_media, parse_term


class CMSError(RuntimeError):
    """A CMS read that the caller cannot recover from."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


@dataclass
class CMSResponse:
    status_code: int
    payload: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def total(self) -> int:
        return decode_int(self.headers.get("x-wp-total"))

    @property
    def total_pages(self) -> int:
        return decode_int(self.headers.get("x-wp-totalpages"))


_CacheKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class CMSClient:
    """
    Read-only client for practices, taxonomies and media.

    Use as an async context manager, or call :meth:`aclose` when done.
    ``transport`` lets tests plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Optional[CMSSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or CMSSettings()
        self._http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={"User-Agent": self.settings.user_agent, "Accept": "application/json"},
            timeout=httpx.Timeout(self.settings.read_timeout, connect=self.settings.connect_timeout),
            follow_redirects=True,
            transport=transport,
            # Ignore proxy env vars such as ALL_PROXY.
            trust_env=False,
        )
        self._cache: Dict[_CacheKey, Tuple[float, CMSResponse]] = {}

    async def __aenter__(self) -> "CMSClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def clear_cache(self) -> None:
        self._cache.clear()

    # ---------------------------
    # Transport
    # ---------------------------

    async def _get(self, path: str, params: Dict[str, str], ttl: int) -> CMSResponse:
        """GET ``path``; raises :class:`CMSError` only on transport or decoding failure."""
        key: _CacheKey = (path, tuple(sorted(params.items())))
        if self.settings.cache_enabled and ttl > 0:
            hit = self._cache.get(key)
            if hit is not None:
                if hit[0] > time.monotonic():
                    logger.debug("CMS cache hit: {} {}", path, params)
                    return hit[1]
                del self._cache[key]

        logger.debug("Fetching CMS resource: {} {}", path, params)
        try:
            r = await self._http.get(path, params=params)
        except httpx.HTTPError as e:
            raise CMSError(f"CMS request failed for {path}: {e}", url=path) from e

        response = CMSResponse(
            status_code=r.status_code,
            headers={k.lower(): v for k, v in r.headers.items()},
        )
        if not response.ok:
            logger.warning("CMS returned HTTP {} for {}", r.status_code, r.url)
            return response

        try:
            response.payload = r.json()
        except ValueError as e:
            raise CMSError(f"CMS returned invalid JSON for {path}", r.status_code, str(r.url)) from e

        if self.settings.cache_enabled and ttl > 0:
            self._store(key, response, ttl)
        return response

    def _store(self, key: _CacheKey, response: CMSResponse, ttl: int) -> None:
        """Insert into the cache, dropping expired entries and then the oldest past the size cap."""
        now = time.monotonic()
        for stale in [k for k, (expires, _) in self._cache.items() if expires <= now]:
            del self._cache[stale]
        self._cache.pop(key, None)
        while len(self._cache) >= self.settings.cache_max_entries:
            # dicts keep insertion order, so the first key is the oldest
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (now + ttl, response)

    async def _get_list(self, path: str, params: Dict[str, str], ttl: int) -> CMSResponse:
        response = await self._get(path, params, ttl)
        if not response.ok:
            raise CMSError(f"WordPress API error: {response.status_code}", response.status_code, path)
        if not isinstance(response.payload, list):
            raise CMSError(f"Expected a JSON list from {path}", response.status_code, path)
        return response

    # ---------------------------
    # Practices
    # ---------------------------

    async def list_practices(self, query: Optional[PracticeQuery] = None) -> PracticePage:
        """One page of practices, with pagination totals from the response headers."""
        query = query or PracticeQuery()
        response = await self._get_list(PRACTICES_ENDPOINT, query.to_params(), self.settings.list_revalidate)
        return PracticePage(
            items=normalise_practices(response.payload),
            total=response.total,
            total_pages=response.total_pages,
        )

    async def fetch_all_practices(self, per_page: Optional[int] = None) -> List[Practice]:
        """
        Every published practice, newest first.

        The first page tells how many pages exist; the rest are requested
        concurrently, up to ``settings.max_pages``.
        """
        per_page = per_page or self.settings.page_size
        first = await self.list_practices(PracticeQuery(per_page=per_page, page=1))
        last_page = min(first.total_pages, self.settings.max_pages)
        if first.total_pages > self.settings.max_pages:
            logger.warning(
                "CMS reports {} pages of practices; only the first {} are loaded",
                first.total_pages,
                self.settings.max_pages,
            )

        rest: List[PracticePage] = []
        if last_page > 1:
            rest = list(
                await asyncio.gather(
                    *(
                        self.list_practices(PracticeQuery(per_page=per_page, page=p))
                        for p in range(2, last_page + 1)
                    )
                )
            )

        items = list(first.items)
        for page in rest:
            items.extend(page.items)
        logger.info("Loaded {} practices from {} page(s)", len(items), max(last_page, 1))
        return items

    async def get_practice_by_slug(self, slug: str) -> Optional[Practice]:
        """The practice with ``slug``, or ``None`` when the CMS has none (or answers non-2xx)."""
        params = {"slug": slug, "per_page": "1", "_embed": "1"}
        response = await self._get(PRACTICES_ENDPOINT, params, self.settings.list_revalidate)
        if not response.ok:
            return None
        rows = response.payload if isinstance(response.payload, list) else []
        if not rows or not isinstance(rows[0], dict):
            logger.info("No practice found for slug {!r}", slug)
            return None
        return normalise_practice(rows[0])

    async def get_all_practice_slugs(self) -> List[str]:
        """Slugs of all published practices; stops quietly at the first failed page."""
        slugs: List[str] = []
        page = 1
        while True:
            params = {
                "per_page": str(MAX_PER_PAGE),
                "page": str(page),
                "status": "publish",
                "_fields": "slug",
            }
            response = await self._get(PRACTICES_ENDPOINT, params, self.settings.media_revalidate)
            if not response.ok or not isinstance(response.payload, list):
                break
            slugs.extend(str(row["slug"]) for row in response.payload if isinstance(row, dict) and row.get("slug"))
            if page >= min(response.total_pages, self.settings.max_pages):
                break
            page += 1
        return slugs

    # ---------------------------
    # Taxonomies
    # ---------------------------

    async def _get_terms(self, path: str) -> List[TaxonomyTerm]:
        params = {
            "per_page": str(MAX_PER_PAGE),
            "orderby": "name",
            "order": "asc",
            "_fields": TAXONOMY_FIELDS,
        }
        response = await self._get_list(path, params, self.settings.taxonomy_revalidate)
        return [parse_term(t) for t in response.payload if isinstance(t, dict)]

    async def get_categories(self) -> List[TaxonomyTerm]:
        return await self._get_terms(CATEGORIES_ENDPOINT)

    async def get_tags(self) -> List[TaxonomyTerm]:
        return await self._get_terms(TAGS_ENDPOINT)

    # ---------------------------
    # Media
    # ---------------------------

    async def get_media_by_id(self, media_id: int) -> Optional[MediaAttachment]:
        if media_id <= 0:
            return None
        try:
            response = await self._get(
                f"{MEDIA_ENDPOINT}/{media_id}", {"_fields": MEDIA_FIELDS}, self.settings.media_revalidate
            )
        except CMSError as e:
            logger.warning("Media {} lookup failed: {}", media_id, e)
            return None
        if not response.ok or not isinstance(response.payload, dict):
            return None
        return parse_media(response.payload)

    async def _get_media_batch(self, ids: List[int]) -> List[MediaAttachment]:
        params = {
            "include": ",".join(str(i) for i in ids),
            "per_page": str(len(ids)),
            "_fields": MEDIA_FIELDS,
        }
        try:
            response = await self._get(MEDIA_ENDPOINT, params, self.settings.media_revalidate)
        except CMSError as e:
            logger.warning("Media batch lookup failed for {}: {}", ids, e)
            return []
        if not response.ok or not isinstance(response.payload, list):
            return []
        return [parse_media(m) for m in response.payload if isinstance(m, dict)]

    async def get_media_by_ids(self, ids: Iterable[int]) -> List[MediaAttachment]:
        """
        Media for ``ids`` in as few requests as the API allows (100 per call).

        Results come back in whatever order the CMS sends; ids it does not
        know are simply absent.
        """
        wanted = [i for i in dict.fromkeys(ids) if i > 0]
        if not wanted:
            return []
        batches = [wanted[i:i + MAX_PER_PAGE] for i in range(0, len(wanted), MAX_PER_PAGE)]
        results = await asyncio.gather(*(self._get_media_batch(b) for b in batches))
        return [m for batch in results for m in batch]

    # ---------------------------
    # Aggregates
    # ---------------------------

    async def get_statistics(self) -> SiteStatistics:
        """Headline counters for the hero section."""
        practices, categories = await asyncio.gather(
            self._get_list(
                PRACTICES_ENDPOINT,
                {"per_page": "1", "status": "publish"},
                self.settings.taxonomy_revalidate,
            ),
            self.get_categories(),
        )
        total = practices.total
        return SiteStatistics(
            total_practices=total,
            total_categories=sum(1 for c in categories if c.count > 0),
            unique_entities=math.ceil(total * UNIQUE_ENTITY_RATIO),
        )
