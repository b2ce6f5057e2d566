from __future__ import annotations

"""
Text helpers and the CMS value-decoding adapter.

The CMS plugin stores booleans as strings, multi-selects as
``{key: "true"/"false"}`` maps and repeated groups as either arrays or
id-keyed maps.  Every such encoding is decoded here, once, so the rest of
the package only deals with real booleans, real key sets and plain lists.
"""

import html
import math
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Mapping, Optional

from bs4 import BeautifulSoup

from .config import AGENT_LABELS, CATEGORY_SHORT_NAMES, POPULATION_LABELS


# ---------------------------
# Basic text helpers
# ---------------------------

def strip_html(raw: str) -> str:
    """
    Strip HTML tags using BeautifulSoup and collapse whitespace.  If
    parsing fails, the input is returned unchanged to fail open rather
    than drop text.
    """
    if not raw:
        return ""
    if "<" not in raw:
        return normalize_whitespace(decode_html_entities(raw))

    try:
        soup = BeautifulSoup(raw, "lxml")
        text = soup.get_text(" ", strip=True)
        text = normalize_whitespace(text)
        # No space before punctuation left behind by inline tags
        return re.sub(r"\s+([.,!?;:])", r"\1", text)
    except Exception:
        return raw


def decode_html_entities(text: str) -> str:
    """Turn ``&amp;``, ``&#8211;`` and friends into their characters."""
    if not text:
        return ""
    return html.unescape(text)


def normalize_unicode(text: str) -> str:
    if not text:
        return ""
    return unicodedata.normalize("NFC", text)


def normalize_whitespace(text: str) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, marking the cut with ``...``."""
    if not text or len(text) <= max_length:
        return text or ""
    return text[:max_length].strip() + "..."


def basic_clean(text: Optional[str]) -> str:
    """
    Cleaning used for card excerpts and search snippets:

    - strip HTML
    - normalize unicode
    - normalize whitespace
    """
    if text is None:
        return ""
    text = strip_html(str(text))
    text = normalize_unicode(text)
    return normalize_whitespace(text)


# ---------------------------
# CMS value decoding
# ---------------------------

def decode_bool(value: Any) -> bool:
    """``"true"``, ``"1"`` and native ``True`` are true; anything else is false."""
    return value is True or value == "true" or value == "1"


def encode_bool(value: bool) -> str:
    return "true" if value else "false"


def decode_text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def decode_int(value: Any) -> int:
    """Lenient integer parsing: ``"12"`` -> 12, junk -> 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    m = re.match(r"\s*(-?\d+)", str(value))
    return int(m.group(1)) if m else 0


def decode_id_list(value: Any) -> List[int]:
    """A list of media/term ids; unparseable or non-positive entries are skipped."""
    if not isinstance(value, (list, tuple)):
        return []
    ids: List[int] = []
    for v in value:
        iid = decode_int(v)
        if iid > 0:
            ids.append(iid)
    return ids


def decode_encoded_set(value: Any) -> List[str]:
    """
    Decode a checkbox group into its selected keys.

    Only a plain ``{key: str}`` mapping is accepted; arrays, ``None`` and
    scalars mean "nothing selected".  A key is selected only when its value
    is exactly the string ``"true"``.  Order follows the mapping.
    """
    if not isinstance(value, Mapping):
        return []
    return [str(k) for k, v in value.items() if v == "true"]


def encode_set(selected: Iterable[str], vocabulary: Iterable[str] = ()) -> Dict[str, str]:
    """Inverse of :func:`decode_encoded_set`; ``vocabulary`` keys not selected get ``"false"``."""
    chosen = list(dict.fromkeys(selected))
    out = {k: "false" for k in vocabulary if k not in chosen}
    out.update({k: "true" for k in chosen})
    return out


def decode_repeater(value: Any) -> List[Dict[str, Any]]:
    """
    Decode a repeater field into an ordered list of rows.

    The plugin sends either ``[{...}, ...]`` or ``{"item-0": {...}, ...}``;
    both come out as the rows in enumeration order.  Rows that are not
    mappings are dropped.
    """
    if isinstance(value, Mapping):
        rows = list(value.values())
    elif isinstance(value, (list, tuple)):
        rows = list(value)
    else:
        return []
    return [dict(r) for r in rows if isinstance(r, Mapping)]


# ---------------------------
# Labels
# ---------------------------

def plain_key_label(key: str) -> str:
    return key.replace("_", " ")


def format_label(key: str) -> str:
    """
    Human label for a population/agent key: dictionary lookup first
    (case-insensitive), then underscores to spaces with each word
    capitalised.
    """
    lowered = key.lower()
    if lowered in POPULATION_LABELS:
        return POPULATION_LABELS[lowered]
    if lowered in AGENT_LABELS:
        return AGENT_LABELS[lowered]
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), plain_key_label(key))


def selected_labels(keys: Iterable[str]) -> List[str]:
    return [format_label(k) for k in keys]


def expand_category_name(name: str) -> str:
    return CATEGORY_SHORT_NAMES.get(name, name)


# ---------------------------
# Presentation helpers
# ---------------------------

_YOUTUBE_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)
_VIMEO_RE = re.compile(r"vimeo\.com/(?:video/)?(\d+)")


def youtube_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = _YOUTUBE_RE.search(url)
    return m.group(1) if m else None


def vimeo_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    m = _VIMEO_RE.search(url)
    return m.group(1) if m else None


def video_embed_url(url: Optional[str]) -> Optional[str]:
    yid = youtube_id(url)
    if yid:
        return f"https://www.youtube.com/embed/{yid}"
    vid = vimeo_id(url)
    if vid:
        return f"https://player.vimeo.com/video/{vid}"
    return None


def transferability_percentage(level: str) -> int:
    lowered = (level or "").lower()
    if "alto" in lowered or "alta" in lowered:
        return 100
    if "medio" in lowered or "media" in lowered:
        return 66
    if "bajo" in lowered or "baja" in lowered:
        return 33
    return 50


def status_kind(status: str) -> str:
    """Bucket the free-text lifecycle status: in_progress, finished, paused or other."""
    lowered = (status or "").lower()
    if "curso" in lowered:
        return "in_progress"
    if "final" in lowered:
        return "finished"
    if "pausa" in lowered:
        return "paused"
    return "other"
