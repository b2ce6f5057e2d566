import math
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from mapinsol.cms_client import CMSClient
from mapinsol.config import CMSSettings

BASE_URL = "https://cms.test/wp-json/wp/v2"


def make_raw(
    id: int,
    slug: Optional[str] = None,
    title: Optional[str] = None,
    categories: Optional[List[int]] = None,
    tags: Optional[List[int]] = None,
    featured: bool = False,
    embedded: Optional[Dict[str, Any]] = None,
    **meta: Any,
) -> Dict[str, Any]:
    """A practice post shaped like the CMS sends it."""
    base_meta: Dict[str, Any] = {
        "entidad_responsable": f"Entidad {id}",
        "ccaa": "Madrid",
        "provincia": "Madrid",
        "municipio": "Madrid",
        "a_o_de_inicio": "2020",
        "estado_actual": "En curso",
        "practica_destacada": "true" if featured else "false",
    }
    base_meta.update(meta)
    raw: Dict[str, Any] = {
        "id": id,
        "slug": slug or f"practica-{id}",
        "status": "publish",
        "link": f"https://cms.test/buenas-practicas/practica-{id}/",
        "date": "2024-03-01T10:00:00",
        "modified": "2024-03-02T10:00:00",
        "title": {"rendered": title or f"Pr&aacute;ctica {id}"},
        "featured_media": 0,
        "category-practices": categories or [],
        "tags-practices": tags or [],
        "meta": base_meta,
    }
    if embedded is not None:
        raw["_embedded"] = embedded
    return raw


def make_term(id: int, name: str, taxonomy: str = "category-practices", count: int = 1) -> Dict[str, Any]:
    return {
        "id": id,
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "count": count,
        "description": "",
        "link": f"https://cms.test/{taxonomy}/{id}/",
        "taxonomy": taxonomy,
    }


def make_media(id: int, mime_type: str = "image/jpeg") -> Dict[str, Any]:
    ext = "pdf" if mime_type == "application/pdf" else "jpg"
    return {
        "id": id,
        "source_url": f"https://cms.test/uploads/{id}.{ext}",
        "alt_text": f"media {id}",
        "mime_type": mime_type,
        "media_details": {},
    }


class FakeCMS:
    """In-memory WordPress REST API served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.practices: List[Dict[str, Any]] = []
        self.categories: List[Dict[str, Any]] = []
        self.tags: List[Dict[str, Any]] = []
        self.media: Dict[int, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        # path -> forced HTTP status
        self.fail: Dict[str, int] = {}
        self.raise_on: Optional[str] = None

    def paths(self) -> List[str]:
        return [self._route(r) for r in self.requests]

    @staticmethod
    def _route(request: httpx.Request) -> str:
        return request.url.path.split("/wp/v2", 1)[1]

    def _practices(self, params: httpx.QueryParams) -> httpx.Response:
        if "slug" in params:
            rows = [p for p in self.practices if p["slug"] == params["slug"]]
            return httpx.Response(200, json=rows[:1])

        per_page = int(params.get("per_page", "10"))
        page = int(params.get("page", "1"))
        total = len(self.practices)
        total_pages = math.ceil(total / per_page) if total else 0
        rows = self.practices[(page - 1) * per_page:page * per_page]
        if params.get("_fields") == "slug":
            rows = [{"slug": p["slug"]} for p in rows]
        headers = {"X-WP-Total": str(total), "X-WP-TotalPages": str(total_pages)}
        return httpx.Response(200, json=rows, headers=headers)

    def _media(self, route: str, params: httpx.QueryParams) -> httpx.Response:
        if route.startswith("/media/"):
            media_id = int(route.rsplit("/", 1)[1])
            if media_id not in self.media:
                return httpx.Response(404, json={"code": "rest_post_invalid_id"})
            return httpx.Response(200, json=self.media[media_id])
        wanted = [int(i) for i in params.get("include", "").split(",") if i]
        # WordPress answers in its own order, not the include order
        rows = [self.media[i] for i in sorted(wanted) if i in self.media]
        return httpx.Response(200, json=rows)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._route(request)
        if self.raise_on and route.startswith(self.raise_on):
            raise httpx.ConnectError("connection refused", request=request)
        for prefix, status in self.fail.items():
            if route.startswith(prefix):
                return httpx.Response(status, json={"code": "error"})

        params = request.url.params
        if route == "/buenas_practicas_ast":
            return self._practices(params)
        if route == "/category-practices":
            return httpx.Response(200, json=self.categories)
        if route == "/tags-practices":
            return httpx.Response(200, json=self.tags)
        if route.startswith("/media"):
            return self._media(route, params)
        return httpx.Response(404, json={"code": "rest_no_route"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings() -> CMSSettings:
    return CMSSettings(base_url=BASE_URL, cache_enabled=False)


@pytest.fixture
def cms() -> FakeCMS:
    fake = FakeCMS()
    fake.categories = [
        make_term(10, "Autonomía y AVD", count=3),
        make_term(11, "Soledad y Conectividad", count=2),
        make_term(12, "Vacía", count=0),
    ]
    fake.tags = [
        make_term(20, "Tecnología", "tags-practices"),
        make_term(21, "Voluntariado", "tags-practices"),
    ]
    return fake


@pytest_asyncio.fixture
async def client(cms: FakeCMS, settings: CMSSettings):
    async with CMSClient(settings, transport=cms.transport) as c:
        yield c
