from __future__ import annotations

"""
Normalisation of raw WordPress payloads into domain records.

A raw practice is the post JSON returned by ``/buenas_practicas_ast``: a few
structural fields (id, slug, title, dates, taxonomy id arrays), a ``meta``
bag filled in by the CMS plugin, and optionally ``_embedded`` relations
when the request asked for ``_embed=1``.  :func:`normalise_practice` maps
all of it onto :class:`~mapinsol.models.Practice`, defaulting anything
missing so that no field is ever ``None`` unless it is an enrichment
overlay.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from .config import CATEGORY_TAXONOMY, COVER_RENDITIONS, TAG_TAXONOMY
from .models import Contact, ExternalLink, MediaAttachment, Practice, TaxonomyTerm
from .normalize import (
    decode_bool,
    decode_encoded_set,
    decode_html_entities,
    decode_id_list,
    decode_int,
    decode_repeater,
    decode_text,
    encode_bool,
    encode_set,
)


# ---------------------------
# Meta field schema
# ---------------------------

# Practice field -> meta key used by the CMS plugin.
META_TEXT_FIELDS: Dict[str, str] = {
    "responsible_entity": "entidad_responsable",
    "entity_url": "url_entidad",
    "territorial_scope": "ambito_territorial",
    "country": "country",
    "region": "ccaa",
    "province": "provincia",
    "municipality": "municipio",
    "start_year": "a_o_de_inicio",
    "current_status": "estado_actual",
    "setting_type": "tipo_de_entorno",
    "group_description": "descripci_n_del_grupo",
    "main_objective": "objetivo_principal",
    "activities": "actividades_desarrolladas",
    "methodology": "metodolog_a_aplicada",
    "partner_entity": "nombre_o_entidad",
    "partner_role": "rol_o_funci_n",
    "evaluation_indicators": "indicadores_de_evaluaci_n",
    "results": "resultados_obtenidos",
    "lessons_learned": "lecciones_aprendidas",
    "transferability_level": "nivel_de_transferibilidad",
    "implementation_requirements": "requisitos_de_implementaci_n",
    "sustainability": "sostenibilidad",
    "dignity_autonomy": "respeto_a_la_dignidad_y_autonom_a",
    "abuse_prevention": "prevenci_n_del_maltrato",
    "participation": "participaci_n_de_las_personas",
    "innovative_element": "elemento_innovador",
    "technology_use": "uso_de_tecnolog_a",
    "external_publication": "publicaci_n_externa",
    "video_url": "enlace_video",
}

META_BOOL_FIELDS: Dict[str, str] = {
    "is_international": "internacional_boolean",
    "featured": "practica_destacada",
    "show_contact": "mostrar_contacto",
}

META_SET_FIELDS: Dict[str, str] = {
    "target_population": "poblacion_destinataria",
    "involved_agents": "agentes_implicados",
}

META_PDF = "pdf_buena_practica"
META_GALLERY = "anexos"
META_CONTACTS = "personas_de_contacto"
META_LINKS = "enlaces_anexos"

# Repeater row keys -> model fields
CONTACT_KEYS: Dict[str, str] = {
    "nombre_contacto": "name",
    "cargo": "role",
    "entidad_contacto": "organization",
    "tlf_contacto": "phone",
    "mail_contacto": "email",
}
LINK_KEYS: Dict[str, str] = {
    "texto_enlace": "label",
    "url_enlace": "url",
}


# ---------------------------
# Field parsing helpers
# ---------------------------

def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable CMS date: {}", value)
        return None


def _rendered(value: Any) -> str:
    """WordPress wraps titles as ``{"rendered": "..."}``; accept a bare string too."""
    if isinstance(value, Mapping):
        value = value.get("rendered")
    return decode_html_entities(decode_text(value))


def _map_row(row: Mapping[str, Any], keys: Dict[str, str]) -> Dict[str, str]:
    return {field: decode_text(row.get(key)) for key, field in keys.items()}


def parse_contacts(value: Any) -> List[Contact]:
    return [Contact(**_map_row(row, CONTACT_KEYS)) for row in decode_repeater(value)]


def parse_links(value: Any) -> List[ExternalLink]:
    return [ExternalLink(**_map_row(row, LINK_KEYS)) for row in decode_repeater(value)]


def parse_term(raw: Mapping[str, Any]) -> TaxonomyTerm:
    """Convert a taxonomy term payload (listed or embedded)."""
    return TaxonomyTerm(
        id=decode_int(raw.get("id")),
        name=decode_html_entities(decode_text(raw.get("name"))),
        slug=decode_text(raw.get("slug")),
        description=decode_text(raw.get("description")),
        link=decode_text(raw.get("link")),
        count=decode_int(raw.get("count")),
    )


def parse_media(raw: Mapping[str, Any]) -> MediaAttachment:
    details = raw.get("media_details")
    return MediaAttachment(
        id=decode_int(raw.get("id")),
        source_url=decode_text(raw.get("source_url")),
        alt_text=decode_text(raw.get("alt_text")),
        mime_type=decode_text(raw.get("mime_type")),
        media_details=dict(details) if isinstance(details, Mapping) else {},
    )


def cover_image_url(media: Mapping[str, Any]) -> Optional[str]:
    """
    Pick the cover URL from an embedded media entry.

    Renditions are tried largest first (``COVER_RENDITIONS``); the full-size
    upload is the fallback.
    """
    details = media.get("media_details")
    sizes = details.get("sizes") if isinstance(details, Mapping) else None
    if isinstance(sizes, Mapping):
        for name in COVER_RENDITIONS:
            size = sizes.get(name)
            if isinstance(size, Mapping) and size.get("source_url"):
                return str(size["source_url"])
    source = media.get("source_url")
    return str(source) if source else None


def _embedded_terms(groups: Any, taxonomy: str) -> Optional[List[TaxonomyTerm]]:
    """Find the ``wp:term`` group whose first term belongs to ``taxonomy``."""
    if not isinstance(groups, list):
        return None
    for terms in groups:
        if not isinstance(terms, list) or not terms:
            continue
        first = terms[0]
        if isinstance(first, Mapping) and first.get("taxonomy") == taxonomy:
            return [parse_term(t) for t in terms if isinstance(t, Mapping)]
    return None


def _apply_embedded(practice: Practice, embedded: Any) -> None:
    if not isinstance(embedded, Mapping):
        return

    media = embedded.get("wp:featuredmedia")
    if isinstance(media, list) and media and isinstance(media[0], Mapping):
        practice.featured_media_url = cover_image_url(media[0])

    terms = embedded.get("wp:term")
    practice.categories_details = _embedded_terms(terms, CATEGORY_TAXONOMY)
    practice.tags_details = _embedded_terms(terms, TAG_TAXONOMY)


# ---------------------------
# Practice normalisation
# ---------------------------

def normalise_practice(raw: Mapping[str, Any]) -> Practice:
    """
    Map one raw CMS post onto a :class:`Practice`.

    Absent text becomes ``""``, absent ids ``0``, absent flags ``False`` and
    absent lists ``[]``.  A ``meta`` value that is not a mapping is treated
    as empty rather than rejected.
    """
    meta = raw.get("meta")
    if not isinstance(meta, Mapping):
        meta = {}

    fields: Dict[str, Any] = {
        field: decode_text(meta.get(key)) for field, key in META_TEXT_FIELDS.items()
    }
    fields.update({field: decode_bool(meta.get(key)) for field, key in META_BOOL_FIELDS.items()})
    fields.update(
        {field: decode_encoded_set(meta.get(key)) for field, key in META_SET_FIELDS.items()}
    )

    practice = Practice(
        id=decode_int(raw.get("id")),
        slug=decode_text(raw.get("slug")),
        title=_rendered(raw.get("title")),
        status=decode_text(raw.get("status")),
        link=decode_text(raw.get("link")),
        date_published=_parse_datetime(raw.get("date")),
        date_modified=_parse_datetime(raw.get("modified")),
        featured_media_id=decode_int(raw.get("featured_media")),
        pdf_id=decode_int(meta.get(META_PDF)),
        gallery_ids=decode_id_list(meta.get(META_GALLERY)),
        contacts=parse_contacts(meta.get(META_CONTACTS)),
        external_links=parse_links(meta.get(META_LINKS)),
        categories=decode_id_list(raw.get(CATEGORY_TAXONOMY)),
        tags=decode_id_list(raw.get(TAG_TAXONOMY)),
        **fields,
    )

    _apply_embedded(practice, raw.get("_embedded"))
    return practice


def normalise_practices(raws: Any) -> List[Practice]:
    """Normalise a list response; entries that are not objects are skipped."""
    if not isinstance(raws, list):
        logger.warning("Expected a list of practices, got {}", type(raws).__name__)
        return []
    return [normalise_practice(r) for r in raws if isinstance(r, Mapping)]


def encode_practice_meta(practice: Practice) -> Dict[str, Any]:
    """
    Re-derive the CMS meta encoding of a practice's flags and key sets.

    Booleans come back as ``"true"``/``"false"`` and key sets as
    ``{key: "true"}`` maps, which decode to the same values again.
    """
    meta: Dict[str, Any] = {
        key: encode_bool(getattr(practice, field)) for field, key in META_BOOL_FIELDS.items()
    }
    meta.update({key: encode_set(getattr(practice, field)) for field, key in META_SET_FIELDS.items()})
    return meta
