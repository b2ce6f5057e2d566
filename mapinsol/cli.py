# mapinsol/cli.py
"""
Command-line access to the best-practice catalog without starting FastAPI.

Sub-commands:
- list    filtered, paginated listing (same filters as the web listing)
- show    one practice by slug, enriched, with its related practices
- slugs   every published slug
- stats   hero counters
- export  all practices flattened to CSV
"""

from __future__ import annotations
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from .cms_client import CMSClient, CMSError
from .config import ITEMS_PER_PAGE, CMSSettings, setup_logging
from .enrich import enrich_practice
from .filtering import criteria_from_params, filter_practices, paginate
from .models import Practice
from .normalize import selected_labels, strip_html
from .related import related_practices

# Column order of the export, fixed so downstream sheets do not shift.
EXPORT_COLUMNS = [
    "id",
    "slug",
    "title",
    "responsible_entity",
    "region",
    "province",
    "municipality",
    "country",
    "is_international",
    "start_year",
    "current_status",
    "featured",
    "categories",
    "tags",
    "target_population",
    "involved_agents",
    "main_objective",
    "link",
]


def practice_row(p: Practice) -> Dict[str, object]:
    """Flatten one practice for tabular output; lists are joined with ``|``."""
    return {
        "id": p.id,
        "slug": p.slug,
        "title": p.title,
        "responsible_entity": p.responsible_entity,
        "region": p.region,
        "province": p.province,
        "municipality": p.municipality,
        "country": p.country,
        "is_international": p.is_international,
        "start_year": p.start_year,
        "current_status": p.current_status,
        "featured": p.featured,
        "categories": "|".join(str(c) for c in p.categories),
        "tags": "|".join(str(t) for t in p.tags),
        "target_population": "|".join(p.target_population),
        "involved_agents": "|".join(p.involved_agents),
        "main_objective": strip_html(p.main_objective),
        "link": p.link,
    }


def write_practices_csv(practices: Sequence[Practice], out_path: Path) -> None:
    """
    Write one row per practice with exactly ``EXPORT_COLUMNS``, in that
    order, even when there are no practices.
    """
    df = pd.DataFrame([practice_row(p) for p in practices], columns=EXPORT_COLUMNS)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_path, index=False)


def _print_card(p: Practice) -> None:
    location = p.location_label or "-"
    flag = " *" if p.featured else ""
    print(f"{p.slug}{flag}\n    {p.title}\n    {p.responsible_entity or '-'} | {location} | {p.current_status or '-'}")


# ---------------------------
# Commands
# ---------------------------

async def cmd_list(client: CMSClient, args: argparse.Namespace) -> int:
    practices, categories, tags = await asyncio.gather(
        client.fetch_all_practices(),
        client.get_categories(),
        client.get_tags(),
    )
    criteria = criteria_from_params(
        buscar=args.search,
        categoria=args.category,
        etiqueta=args.tag,
        anio=args.year,
        estado=args.status,
        poblacion=args.population,
        agentes=args.agent,
        ccaa=args.region,
        internacional=args.international,
        localidad=args.locality,
        categories=categories,
        tags=tags,
    )
    sliced = paginate(filter_practices(practices, criteria), args.page, args.per_page)
    for p in sliced.items:
        _print_card(p)
    print(f"Page {sliced.page}/{max(sliced.total_pages, 1)} ({sliced.total} of {len(practices)} practices)")
    return 0


async def cmd_show(client: CMSClient, args: argparse.Namespace) -> int:
    practice = await client.get_practice_by_slug(args.slug)
    if practice is None:
        print(f"No practice found for slug '{args.slug}'", file=sys.stderr)
        return 1

    practice, everything = await asyncio.gather(
        enrich_practice(client, practice),
        client.fetch_all_practices(),
    )
    print(practice.title)
    print(f"Entity:   {practice.responsible_entity or '-'}")
    print(f"Location: {practice.location_label or '-'}")
    print(f"Status:   {practice.current_status or '-'} (since {practice.start_year or '?'})")
    if practice.target_population:
        print("Population: " + ", ".join(selected_labels(practice.target_population)))
    if practice.involved_agents:
        print("Agents:     " + ", ".join(selected_labels(practice.involved_agents)))
    if practice.main_objective:
        print()
        print(practice.plain_objective(400))
    if practice.pdf_url:
        print(f"\nPDF: {practice.pdf_url}")
    if practice.gallery_details:
        print(f"Gallery: {len(practice.gallery_details)} item(s)")

    related = related_practices(practice, everything)
    if related:
        print("\nRelated:")
        for r in related:
            print(f"  - {r.slug}: {r.title}")
    return 0


async def cmd_slugs(client: CMSClient, args: argparse.Namespace) -> int:
    for slug in await client.get_all_practice_slugs():
        print(slug)
    return 0


async def cmd_stats(client: CMSClient, args: argparse.Namespace) -> int:
    stats = await client.get_statistics()
    print(f"Practices:       {stats.total_practices}")
    print(f"Categories:      {stats.total_categories}")
    print(f"Unique entities: {stats.unique_entities}")
    return 0


async def cmd_export(client: CMSClient, args: argparse.Namespace) -> int:
    practices = await client.fetch_all_practices()
    out = Path(args.out)
    write_practices_csv(practices, out)
    print(f"Wrote {len(practices)} rows to {out}")
    return 0


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "slugs": cmd_slugs,
    "stats": cmd_stats,
    "export": cmd_export,
}


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number, got {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="mapinsol", description="Browse the best-practice catalog")
    ap.add_argument("--base-url", default=None, help="WordPress REST base URL (default: CMS_BASE_URL or the live site)")
    ap.add_argument("--log-level", default=None, help="loguru level (default: LOG_LEVEL or INFO)")
    sub = ap.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="filtered listing")
    ls.add_argument("--search", default=None)
    ls.add_argument("--category", action="append", help="category name; repeatable")
    ls.add_argument("--tag", action="append", help="tag name; repeatable")
    ls.add_argument("--year", action="append")
    ls.add_argument("--status", action="append")
    ls.add_argument("--population", action="append", help="population key")
    ls.add_argument("--agent", action="append", help="agent key")
    ls.add_argument("--region", action="append", help="autonomous community")
    ls.add_argument("--international", action="store_true")
    ls.add_argument("--locality", default=None)
    ls.add_argument("--page", type=positive_int, default=1)
    ls.add_argument("--per-page", type=positive_int, default=ITEMS_PER_PAGE)

    show = sub.add_parser("show", help="one practice by slug")
    show.add_argument("slug")

    sub.add_parser("slugs", help="list every published slug")
    sub.add_parser("stats", help="headline counters")

    exp = sub.add_parser("export", help="write all practices to CSV")
    exp.add_argument("--out", required=True)
    return ap


async def run(args: argparse.Namespace, settings: CMSSettings, transport=None) -> int:
    async with CMSClient(settings, transport=transport) as client:
        try:
            return await COMMANDS[args.command](client, args)
        except CMSError as e:
            logger.warning("CMS error: {}", e)
            print(f"[WARN] CMS request failed: {e}", file=sys.stderr)
            return 2


def main(argv: Optional[List[str]] = None, transport=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    settings = CMSSettings.from_env()
    if args.base_url:
        settings = settings.model_copy(update={"base_url": args.base_url.rstrip("/")})

    return asyncio.run(run(args, settings, transport))


if __name__ == "__main__":
    sys.exit(main())
