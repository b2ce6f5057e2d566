from __future__ import annotations

"""
FastAPI application serving the best-practice catalog as JSON views.

- One CMS client per app, kept on ``app.state`` and closed on shutdown
- The listing loads every practice and filters in memory
- The detail view enriches gallery/PDF and ranks related practices
- Every response carries a Cache-Control header matching the CMS
  revalidation interval of the data it was built from
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .cms_client import CMSClient, CMSError
from .config import (
    FEATURED_LIMIT,
    FEATURED_POOL_SIZE,
    ITEMS_PER_PAGE,
    LATEST_LIMIT,
    RELATED_TOP_N,
    CMSSettings,
    ErrorResponse,
    HealthResponse,
    setup_logging,
)
from .enrich import enrich_practice
from .filtering import (
    count_unique_entities,
    criteria_from_params,
    criteria_to_params,
    filter_options,
    filter_practices,
    page_numbers,
    paginate,
)
from .models import Practice, PracticeQuery
from .normalize import selected_labels, video_embed_url
from .related import related_practices


def _cache(response: Response, seconds: int) -> None:
    response.headers["Cache-Control"] = f"public, max-age={seconds}"


def _client(request: Request) -> CMSClient:
    return request.app.state.cms


def _dump(items: List[Any]) -> List[Dict[str, Any]]:
    return [i.model_dump(mode="json") for i in items]


def create_app(
    settings: Optional[CMSSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the app around one :class:`CMSClient`; ``transport`` is for tests."""
    settings = settings or CMSSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger.info("Serving catalog from {}", settings.base_url)
        yield
        await app.state.cms.aclose()
        logger.info("CMS client closed")

    app = FastAPI(title="mapinsol", lifespan=lifespan)
    app.state.settings = settings
    app.state.cms = CMSClient(settings, transport=transport)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(CMSError)
    async def cms_error_handler(request: Request, exc: CMSError) -> JSONResponse:
        logger.error("CMS failure on {}: {}", request.url.path, exc)
        body = ErrorResponse(error="Error al cargar los datos del CMS", detail=str(exc))
        return JSONResponse(status_code=502, content=body.model_dump())

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="healthy")

    @app.get("/practices")
    async def list_view(
        request: Request,
        response: Response,
        page: int = Query(1, ge=1),
        buscar: Optional[str] = None,
        categoria: Optional[List[str]] = Query(None),
        etiqueta: Optional[List[str]] = Query(None),
        anio: Optional[List[str]] = Query(None),
        estado: Optional[List[str]] = Query(None),
        poblacion: Optional[List[str]] = Query(None),
        agentes: Optional[List[str]] = Query(None),
        ccaa: Optional[List[str]] = Query(None),
        internacional: Optional[str] = None,
        localidad: Optional[str] = None,
    ) -> Dict[str, Any]:
        cms = _client(request)
        practices, categories, tags = await asyncio.gather(
            cms.fetch_all_practices(),
            cms.get_categories(),
            cms.get_tags(),
        )
        criteria = criteria_from_params(
            buscar=buscar,
            categoria=categoria,
            etiqueta=etiqueta,
            anio=anio,
            estado=estado,
            poblacion=poblacion,
            agentes=agentes,
            ccaa=ccaa,
            internacional=internacional,
            localidad=localidad,
            categories=categories,
            tags=tags,
        )
        matched = filter_practices(practices, criteria)
        sliced = paginate(matched, page, ITEMS_PER_PAGE)

        _cache(response, settings.list_revalidate)
        return {
            "items": _dump(sliced.items),
            "page": sliced.page,
            "per_page": sliced.per_page,
            "total": sliced.total,
            "total_pages": sliced.total_pages,
            "pages": page_numbers(sliced.page, sliced.total_pages),
            "total_practices": len(practices),
            "unique_entities": count_unique_entities(practices),
            "options": filter_options(practices).model_dump(),
            "categories": _dump(categories),
            "tags": _dump(tags),
            "query": criteria_to_params(criteria, categories, tags),
        }

    @app.get("/practices/{slug}")
    async def detail_view(slug: str, request: Request, response: Response) -> Dict[str, Any]:
        cms = _client(request)
        practice = await cms.get_practice_by_slug(slug)
        if practice is None:
            raise HTTPException(status_code=404, detail="Práctica no encontrada")

        enriched, everything = await asyncio.gather(
            enrich_practice(cms, practice),
            cms.fetch_all_practices(),
        )
        related = related_practices(enriched, everything, RELATED_TOP_N)
        images = [m for m in (enriched.gallery_details or []) if m.is_image]

        _cache(response, settings.list_revalidate)
        return {
            "practice": enriched.model_dump(mode="json"),
            "population_labels": selected_labels(enriched.target_population),
            "agent_labels": selected_labels(enriched.involved_agents),
            "gallery_images": _dump(images),
            "video_embed_url": video_embed_url(enriched.video_url),
            "related": _dump(related),
        }

    @app.get("/categories")
    async def categories_view(request: Request, response: Response) -> List[Dict[str, Any]]:
        categories = await _client(request).get_categories()
        _cache(response, settings.taxonomy_revalidate)
        return _dump(categories)

    @app.get("/tags")
    async def tags_view(request: Request, response: Response) -> List[Dict[str, Any]]:
        tags = await _client(request).get_tags()
        _cache(response, settings.taxonomy_revalidate)
        return _dump(tags)

    @app.get("/stats")
    async def stats_view(request: Request, response: Response) -> Dict[str, Any]:
        stats = await _client(request).get_statistics()
        _cache(response, settings.taxonomy_revalidate)
        return stats.model_dump()

    @app.get("/featured")
    async def featured_view(request: Request, response: Response) -> List[Dict[str, Any]]:
        pool = await _client(request).list_practices(PracticeQuery(per_page=FEATURED_POOL_SIZE))
        featured: List[Practice] = [p for p in pool.items if p.featured][:FEATURED_LIMIT]
        _cache(response, settings.list_revalidate)
        return _dump(featured)

    @app.get("/latest")
    async def latest_view(request: Request, response: Response) -> List[Dict[str, Any]]:
        latest = await _client(request).list_practices(PracticeQuery(per_page=LATEST_LIMIT))
        _cache(response, settings.list_revalidate)
        return _dump(latest.items)

    return app


app = create_app()
