from __future__ import annotations

"""
In-memory filtering and pagination for the practice listing.

The listing loads every practice up front and narrows the set locally;
there is no server-side filtering.  Criteria combine with AND across
kinds and OR within a kind, and an empty kind imposes nothing, so
``filter_practices(xs, FilterCriteria())`` returns ``xs`` unchanged.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence, Union

from loguru import logger
from pydantic import BaseModel, Field

from .config import ITEMS_PER_PAGE, PAGINATION_DELTA
from .models import Practice, TaxonomyTerm
from .normalize import expand_category_name


class FilterCriteria(BaseModel):
    search: str = ""
    categories: List[int] = Field(default_factory=list)
    tags: List[int] = Field(default_factory=list)
    years: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    population: List[str] = Field(default_factory=list)
    agents: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    international_only: bool = False
    locality: str = ""

    @property
    def is_empty(self) -> bool:
        return not (
            self.search
            or self.categories
            or self.tags
            or self.years
            or self.statuses
            or self.population
            or self.agents
            or self.regions
            or self.international_only
            or self.locality
        )


class FilterOptions(BaseModel):
    years: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    population: List[str] = Field(default_factory=list)
    agents: List[str] = Field(default_factory=list)


class PageSlice(BaseModel):
    items: List[Practice] = Field(default_factory=list)
    page: int = 1
    per_page: int = ITEMS_PER_PAGE
    total: int = 0
    total_pages: int = 0


# ---------------------------
# Matching
# ---------------------------

def _contains(haystacks: Iterable[str], needle: str) -> bool:
    return any(needle in (h or "").lower() for h in haystacks)


def matches(practice: Practice, criteria: FilterCriteria) -> bool:
    """True when ``practice`` satisfies every active kind of ``criteria``."""
    if criteria.search:
        q = criteria.search.lower()
        fields = (
            practice.title,
            practice.responsible_entity,
            practice.region,
            practice.province,
            practice.municipality,
        )
        if not _contains(fields, q):
            return False

    if criteria.categories and not any(c in criteria.categories for c in practice.categories):
        return False

    if criteria.tags and not any(t in criteria.tags for t in practice.tags):
        return False

    if criteria.years and practice.start_year not in criteria.years:
        return False

    if criteria.statuses and practice.current_status not in criteria.statuses:
        return False

    if criteria.population and not any(k in practice.target_population for k in criteria.population):
        return False

    if criteria.agents and not any(k in practice.involved_agents for k in criteria.agents):
        return False

    if criteria.regions and practice.region not in criteria.regions:
        return False

    if criteria.international_only and not practice.is_international:
        return False

    if criteria.locality:
        q = criteria.locality.lower()
        if not _contains((practice.municipality, practice.province, practice.country), q):
            return False

    return True


def filter_practices(practices: Sequence[Practice], criteria: FilterCriteria) -> List[Practice]:
    """The practices matching ``criteria``, in their original order."""
    if criteria.is_empty:
        return list(practices)
    out = [p for p in practices if matches(p, criteria)]
    logger.debug("Filter kept {} of {} practices", len(out), len(practices))
    return out


# ---------------------------
# Options for the filter bar
# ---------------------------

def _year_sort_key(year: str):
    try:
        return (0, -int(year))
    except ValueError:
        return (1, year)


def filter_options(practices: Sequence[Practice]) -> FilterOptions:
    """Distinct values present in ``practices`` for each selectable filter."""
    years = {p.start_year for p in practices if p.start_year}
    statuses = list(dict.fromkeys(p.current_status for p in practices if p.current_status))
    regions = {p.region for p in practices if p.region}
    population = {k for p in practices for k in p.target_population}
    agents = {k for p in practices for k in p.involved_agents}
    return FilterOptions(
        years=sorted(years, key=_year_sort_key),
        statuses=statuses,
        regions=sorted(regions),
        population=sorted(population),
        agents=sorted(agents),
    )


def count_unique_entities(practices: Iterable[Practice]) -> int:
    return len({p.responsible_entity for p in practices if p.responsible_entity})


# ---------------------------
# Query parameters
# ---------------------------

def _as_list(value: Union[None, str, Sequence[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [v for v in value if v]


def _find_category(name: str, categories: Sequence[TaxonomyTerm]) -> Optional[TaxonomyTerm]:
    wanted = name.lower()
    for c in categories:
        if c.name.lower() == wanted or expand_category_name(c.name).lower() == wanted:
            return c
    return None


def _find_tag(name: str, tags: Sequence[TaxonomyTerm]) -> Optional[TaxonomyTerm]:
    wanted = name.lower()
    return next((t for t in tags if t.name.lower() == wanted), None)


def criteria_from_params(
    *,
    buscar: Optional[str] = None,
    categoria: Union[None, str, Sequence[str]] = None,
    etiqueta: Union[None, str, Sequence[str]] = None,
    anio: Union[None, str, Sequence[str]] = None,
    estado: Union[None, str, Sequence[str]] = None,
    poblacion: Union[None, str, Sequence[str]] = None,
    agentes: Union[None, str, Sequence[str]] = None,
    ccaa: Union[None, str, Sequence[str]] = None,
    internacional: Union[None, bool, str] = None,
    localidad: Optional[str] = None,
    categories: Sequence[TaxonomyTerm] = (),
    tags: Sequence[TaxonomyTerm] = (),
) -> FilterCriteria:
    """
    Build criteria from the listing's public query parameters.

    Categories and tags arrive by *name* and are resolved against the
    taxonomy lists; names that match nothing are ignored.  The search text
    is kept as typed, so a whitespace-only ``buscar`` still filters.
    """
    category_ids: List[int] = []
    for name in _as_list(categoria):
        cat = _find_category(name, categories)
        if cat is None:
            logger.info("Ignoring unknown category filter {!r}", name)
        elif cat.id not in category_ids:
            category_ids.append(cat.id)

    tag_ids: List[int] = []
    for name in _as_list(etiqueta):
        tag = _find_tag(name, tags)
        if tag is None:
            logger.info("Ignoring unknown tag filter {!r}", name)
        elif tag.id not in tag_ids:
            tag_ids.append(tag.id)

    if isinstance(internacional, str):
        international_only = internacional.lower() == "true"
    else:
        international_only = bool(internacional)

    return FilterCriteria(
        search=buscar or "",
        categories=category_ids,
        tags=tag_ids,
        years=_as_list(anio),
        statuses=_as_list(estado),
        population=_as_list(poblacion),
        agents=_as_list(agentes),
        regions=_as_list(ccaa),
        international_only=international_only,
        locality=(localidad or "").strip(),
    )


def criteria_to_params(
    criteria: FilterCriteria,
    categories: Sequence[TaxonomyTerm] = (),
    tags: Sequence[TaxonomyTerm] = (),
) -> Dict[str, str]:
    """
    Shareable query parameters for ``criteria``.

    Like the site's URL sync, multi-value selections are not encoded; only
    kinds with exactly one selected value appear.
    """
    params: Dict[str, str] = {}
    if len(criteria.categories) == 1:
        cat = next((c for c in categories if c.id == criteria.categories[0]), None)
        if cat is not None:
            params["categoria"] = cat.name
    if criteria.search:
        params["buscar"] = criteria.search
    if len(criteria.statuses) == 1:
        params["estado"] = criteria.statuses[0]
    if len(criteria.years) == 1:
        params["anio"] = criteria.years[0]
    if len(criteria.population) == 1:
        params["poblacion"] = criteria.population[0]
    if len(criteria.agents) == 1:
        params["agentes"] = criteria.agents[0]
    if len(criteria.tags) == 1:
        tag = next((t for t in tags if t.id == criteria.tags[0]), None)
        if tag is not None:
            params["etiqueta"] = tag.name
    if len(criteria.regions) == 1:
        params["ccaa"] = criteria.regions[0]
    if criteria.international_only:
        params["internacional"] = "true"
    if criteria.locality:
        params["localidad"] = criteria.locality
    return params


# ---------------------------
# Pagination
# ---------------------------

def paginate(items: Sequence[Practice], page: int = 1, per_page: int = ITEMS_PER_PAGE) -> PageSlice:
    """Slice ``items`` for 1-based ``page``; out-of-range pages are clamped."""
    if per_page < 1:
        raise ValueError(f"per_page must be at least 1, got {per_page}")
    total = len(items)
    total_pages = math.ceil(total / per_page)
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * per_page
    return PageSlice(
        items=list(items[start:start + per_page]),
        page=page,
        per_page=per_page,
        total=total,
        total_pages=total_pages,
    )


def page_numbers(current: int, total_pages: int, delta: int = PAGINATION_DELTA) -> List[Union[int, str]]:
    """
    Page links to render: first, last and ``delta`` around ``current``,
    with ``"..."`` standing in for each gap.
    """
    pages: List[Union[int, str]] = []
    for i in range(1, total_pages + 1):
        if i == 1 or i == total_pages or current - delta <= i <= current + delta:
            pages.append(i)
        elif pages and pages[-1] != "...":
            pages.append("...")
    return pages
