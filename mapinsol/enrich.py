from __future__ import annotations

"""
Follow-up lookups that fill overlay fields the embed cannot provide.

The list/detail responses only carry media *ids* for the gallery and the
downloadable PDF.  The helpers here resolve them and return an updated
copy of the practice; the input is never mutated.  Calling them again
refetches and overwrites.
"""

import asyncio
from typing import Dict, List

from loguru import logger

from .cms_client import CMSClient
from .models import MediaAttachment, Practice


async def enrich_gallery(client: CMSClient, practice: Practice) -> Practice:
    """
    Populate ``gallery_details`` from ``gallery_ids``.

    Media come back in the order of ``gallery_ids``; ids the CMS does not
    return are left out.  No request is made for an empty gallery.
    """
    if not practice.gallery_ids:
        return practice.model_copy(update={"gallery_details": []})

    media = await client.get_media_by_ids(practice.gallery_ids)
    by_id: Dict[int, MediaAttachment] = {m.id: m for m in media}
    ordered: List[MediaAttachment] = [by_id[i] for i in practice.gallery_ids if i in by_id]
    missing = len(practice.gallery_ids) - len(ordered)
    if missing:
        logger.warning("Practice {}: {} gallery item(s) not found", practice.id, missing)
    return practice.model_copy(update={"gallery_details": ordered})


async def enrich_pdf_url(client: CMSClient, practice: Practice) -> Practice:
    """Resolve ``pdf_id`` into ``pdf_url``; a practice without a PDF is returned as is."""
    if practice.pdf_id <= 0:
        return practice

    media = await client.get_media_by_id(practice.pdf_id)
    url = media.source_url if media is not None and media.source_url else None
    return practice.model_copy(update={"pdf_url": url})


async def enrich_practice(client: CMSClient, practice: Practice) -> Practice:
    """Gallery and PDF enrichment, with both lookups in flight at once."""
    with_gallery, with_pdf = await asyncio.gather(
        enrich_gallery(client, practice),
        enrich_pdf_url(client, practice),
    )
    return with_gallery.model_copy(update={"pdf_url": with_pdf.pdf_url})
