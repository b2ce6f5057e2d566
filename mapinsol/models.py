from __future__ import annotations

"""
Typed domain records for the best-practice catalog.

Everything here is a read-only projection of CMS state.  The raw WordPress
payload never leaves :mod:`mapinsol.practice_build`; callers only see these
models, with real booleans and real key sets in place of the CMS plugin's
string encodings.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import DEFAULT_PER_PAGE, MAX_PER_PAGE
from .normalize import status_kind, strip_html, truncate


class TaxonomyTerm(BaseModel):
    id: int
    name: str = ""
    slug: str = ""
    description: str = ""
    link: str = ""
    count: int = 0


# Both taxonomies share the WordPress term shape.
Category = TaxonomyTerm
Tag = TaxonomyTerm


class MediaAttachment(BaseModel):
    id: int
    source_url: str = ""
    alt_text: str = ""
    mime_type: str = ""
    media_details: Dict = Field(default_factory=dict)

    @property
    def is_image(self) -> bool:
        return "image" in self.mime_type


class Contact(BaseModel):
    name: str = ""
    role: str = ""
    organization: str = ""
    phone: str = ""
    email: str = ""


class ExternalLink(BaseModel):
    label: str = ""
    url: str = ""


class Practice(BaseModel):
    """One published best practice.

    ``gallery_details`` and ``pdf_url`` are enrichment overlays: ``None``
    means "not enriched yet", not an error.  ``categories_details`` and
    ``tags_details`` are only set when the CMS embedded the terms.
    """

    id: int = 0
    slug: str = ""
    title: str = ""
    status: str = ""
    link: str = ""
    date_published: Optional[datetime] = None
    date_modified: Optional[datetime] = None

    # Media references
    featured_media_id: int = 0
    featured_media_url: Optional[str] = None
    pdf_id: int = 0
    pdf_url: Optional[str] = None
    gallery_ids: List[int] = Field(default_factory=list)
    gallery_details: Optional[List[MediaAttachment]] = None

    # General information
    responsible_entity: str = ""
    entity_url: str = ""
    contacts: List[Contact] = Field(default_factory=list)
    territorial_scope: str = ""
    is_international: bool = False
    country: str = ""
    region: str = ""
    province: str = ""
    municipality: str = ""
    start_year: str = ""
    current_status: str = ""
    setting_type: str = ""

    # Description
    group_description: str = ""
    main_objective: str = ""
    activities: str = ""
    methodology: str = ""
    target_population: List[str] = Field(default_factory=list)
    involved_agents: List[str] = Field(default_factory=list)
    partner_entity: str = ""
    partner_role: str = ""

    # Evaluation and results
    evaluation_indicators: str = ""
    results: str = ""
    lessons_learned: str = ""

    # Transferability and sustainability
    transferability_level: str = ""
    implementation_requirements: str = ""
    sustainability: str = ""

    # Ethics
    dignity_autonomy: str = ""
    abuse_prevention: str = ""
    participation: str = ""

    # Innovation
    innovative_element: str = ""
    technology_use: str = ""

    # Publications and links
    external_publication: str = ""
    video_url: str = ""
    external_links: List[ExternalLink] = Field(default_factory=list)

    # Visibility flags
    featured: bool = False
    show_contact: bool = False

    # Taxonomy
    categories: List[int] = Field(default_factory=list)
    tags: List[int] = Field(default_factory=list)
    categories_details: Optional[List[TaxonomyTerm]] = None
    tags_details: Optional[List[TaxonomyTerm]] = None

    @property
    def location_label(self) -> str:
        return ", ".join(p for p in (self.municipality, self.province, self.region) if p)

    @property
    def status_kind(self) -> str:
        return status_kind(self.current_status)

    def plain_objective(self, max_chars: int = 160) -> str:
        """Objective without markup, cut for meta descriptions."""
        return truncate(strip_html(self.main_objective), max_chars)


class PracticePage(BaseModel):
    items: List[Practice] = Field(default_factory=list)
    total: int = 0
    total_pages: int = 0


class PracticeQuery(BaseModel):
    """Parameters accepted by the practice list endpoint."""

    per_page: int = Field(default=DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE)
    page: int = Field(default=1, ge=1)
    status: str = "publish"
    orderby: str = "date"
    order: str = "desc"
    categories: List[int] = Field(default_factory=list)
    tags: List[int] = Field(default_factory=list)
    search: Optional[str] = None
    exclude: List[int] = Field(default_factory=list)

    def to_params(self) -> Dict[str, str]:
        params = {
            "per_page": str(self.per_page),
            "page": str(self.page),
            "status": self.status,
            "orderby": self.orderby,
            "order": self.order,
            "_embed": "1",
        }
        if self.categories:
            params["category-practices"] = ",".join(str(c) for c in self.categories)
        if self.tags:
            params["tags-practices"] = ",".join(str(t) for t in self.tags)
        if self.search:
            params["search"] = self.search
        if self.exclude:
            params["exclude"] = ",".join(str(e) for e in self.exclude)
        return params


class SiteStatistics(BaseModel):
    total_practices: int = 0
    total_categories: int = 0
    unique_entities: int = 0
