from __future__ import annotations
"""
Configuration for the Mapinsol best-practice catalog.

Tunables live here as module constants.  The CMS connection itself is
described by :class:`CMSSettings`, which callers build explicitly and pass
to the client and the web app; nothing in this module holds the base URL
as process-wide state.
"""

import os
import sys
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from pydantic import BaseModel, Field

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
LOG_DIR = PROJECT_ROOT / "logs"

# CMS
DEFAULT_CMS_BASE_URL = "https://fundacionpadrinosdelavejez.es/wp-json/wp/v2"
PRACTICES_ENDPOINT = "/buenas_practicas_ast"
CATEGORIES_ENDPOINT = "/category-practices"
TAGS_ENDPOINT = "/tags-practices"
MEDIA_ENDPOINT = "/media"

CATEGORY_TAXONOMY = "category-practices"
TAG_TAXONOMY = "tags-practices"

MEDIA_FIELDS = "id,source_url,alt_text,mime_type,media_details"
TAXONOMY_FIELDS = "id,name,slug,count,description,link"

# Renditions tried for the cover image, largest first.  The full-size upload
# (``source_url``) is the last resort.
COVER_RENDITIONS = ("large", "medium_large", "medium", "thumbnail")

# HTTP hardening
HTTP_CONNECT_TIMEOUT = float(os.getenv("CMS_CONNECT_TIMEOUT", "3.0"))
HTTP_READ_TIMEOUT = float(os.getenv("CMS_READ_TIMEOUT", "10.0"))
HTTP_USER_AGENT = "mapinsol/1.0 (+https://fundacionpadrinosdelavejez.es)"

# Revalidation intervals (seconds)
LIST_REVALIDATE = 60
TAXONOMY_REVALIDATE = 300
MEDIA_REVALIDATE = 3600

# Upper bound on cached CMS responses per client
CACHE_MAX_ENTRIES = 256

# Paging
DEFAULT_PER_PAGE = 12
MAX_PER_PAGE = 100
MAX_LIST_PAGES = 20
ITEMS_PER_PAGE = 12
PAGINATION_DELTA = 2

# Home page sections
FEATURED_POOL_SIZE = 20
FEATURED_LIMIT = 5
LATEST_LIMIT = 6

# Relatedness
RELATED_TOP_N = 3
RELATED_CATEGORY_WEIGHT = 3
RELATED_TAG_WEIGHT = 2
RELATED_FEATURED_BONUS = 5

# Rough ratio of distinct responsible entities to practices, used by the
# hero statistics when the full record set is not loaded.
UNIQUE_ENTITY_RATIO = 0.7

# Labels for the encoded-set vocabularies
POPULATION_LABELS: Dict[str, str] = {
    "avd": "Actividades de la Vida Diaria",
    "adv": "Actividades de la Vida Diaria",
    "abvd": "Actividades Básicas de la Vida Diaria",
    "aivd": "Actividades Instrumentales de la Vida Diaria",
    "personas_mayores": "Personas Mayores",
    "personas_mayores_autonomas": "Personas Mayores Autónomas",
    "personas_mayores_dependientes": "Personas Mayores Dependientes",
    "personas_con_demencia": "Personas con Demencia",
    "personas_con_alzheimer": "Personas con Alzheimer",
    "personas_en_soledad": "Personas en Situación de Soledad",
    "cuidadores": "Cuidadores",
    "cuidadores_familiares": "Cuidadores Familiares",
    "cuidadores_profesionales": "Cuidadores Profesionales",
    "familiares": "Familiares",
    "profesionales": "Profesionales del Sector",
    "voluntarios": "Voluntarios",
    "comunidad": "Comunidad en General",
    "residentes": "Residentes",
    "usuarios_centros_dia": "Usuarios de Centros de Día",
    "usuarios_sad": "Usuarios de Servicio de Ayuda a Domicilio",
}

AGENT_LABELS: Dict[str, str] = {
    "administracion_publica": "Administración Pública",
    "administracion_local": "Administración Local",
    "administracion_autonomica": "Administración Autonómica",
    "administracion_estatal": "Administración Estatal",
    "ong": "ONG",
    "fundaciones": "Fundaciones",
    "asociaciones": "Asociaciones",
    "entidades_sociales": "Entidades Sociales",
    "empresas": "Empresas",
    "cooperativas": "Cooperativas",
    "residencias": "Residencias",
    "centros_dia": "Centros de Día",
    "centros_salud": "Centros de Salud",
    "hospitales": "Hospitales",
    "centros_sociales": "Centros Sociales",
    "trabajadores_sociales": "Trabajadores Sociales",
    "profesionales_sanitarios": "Profesionales Sanitarios",
    "terapeutas": "Terapeutas",
    "psicologos": "Psicólogos",
    "fisioterapeutas": "Fisioterapeutas",
    "auxiliares": "Auxiliares de Enfermería",
    "gerocultores": "Gerocultores",
    "voluntariado": "Voluntariado",
    "familias": "Familias",
    "universidades": "Universidades",
    "centros_investigacion": "Centros de Investigación",
}

CATEGORY_SHORT_NAMES: Dict[str, str] = {
    "Autonomía y AVD": "Autonomía y Vida Diaria",
    "Coordinación del cuidado": "Coordinación del Cuidado",
    "Ética y buen trato": "Ética y Buen Trato",
    "Inclusión y diversidad": "Inclusión y Diversidad",
    "Salud preventiva y AAL": "Salud Preventiva",
    "Soledad y Conectividad": "Soledad y Conectividad",
}


class CMSSettings(BaseModel):
    """Connection settings for the WordPress REST API.

    Built once by the entry point and handed to :class:`~mapinsol.cms_client.CMSClient`.
    """

    base_url: str = DEFAULT_CMS_BASE_URL
    connect_timeout: float = Field(default=HTTP_CONNECT_TIMEOUT, gt=0)
    read_timeout: float = Field(default=HTTP_READ_TIMEOUT, gt=0)
    user_agent: str = HTTP_USER_AGENT
    list_revalidate: int = Field(default=LIST_REVALIDATE, ge=0)
    taxonomy_revalidate: int = Field(default=TAXONOMY_REVALIDATE, ge=0)
    media_revalidate: int = Field(default=MEDIA_REVALIDATE, ge=0)
    max_pages: int = Field(default=MAX_LIST_PAGES, ge=1)
    page_size: int = Field(default=MAX_PER_PAGE, ge=1, le=MAX_PER_PAGE)
    cache_enabled: bool = True
    cache_max_entries: int = Field(default=CACHE_MAX_ENTRIES, ge=1)

    @classmethod
    def from_env(cls) -> "CMSSettings":
        """Read overrides from ``CMS_*`` environment variables."""
        overrides: Dict[str, object] = {}
        if os.getenv("CMS_BASE_URL"):
            overrides["base_url"] = os.environ["CMS_BASE_URL"].rstrip("/")
        if os.getenv("CMS_MAX_PAGES"):
            overrides["max_pages"] = int(os.environ["CMS_MAX_PAGES"])
        if os.getenv("CMS_CACHE"):
            overrides["cache_enabled"] = os.environ["CMS_CACHE"].lower() not in {"0", "false", "off"}
        return cls(**overrides)


def setup_logging(level: Optional[str] = None) -> None:
    """Point loguru at stderr (and ``LOG_FILE`` when set)."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    log_file = os.getenv("LOG_FILE")
    if log_file:
        path = Path(log_file)
        if not path.is_absolute():
            LOG_DIR.mkdir(exist_ok=True)
            path = LOG_DIR / path
        logger.add(path, level=level, rotation="10 MB", retention=5)


# Pydantic schemas
class HealthResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
