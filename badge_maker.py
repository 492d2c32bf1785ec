"""Generate badge PNG/PDF files from the command line or a roster CSV."""
from __future__ import annotations

import argparse
import datetime
import json
import logging
import mimetypes
import time
from pathlib import Path
from typing import Dict, Iterable, Iterator, NamedTuple, Optional, Sequence, Tuple

import pandas as pd

import config
from badge_export import badge_filename, create_slug, save_badge_pdf, save_png, to_png_bytes
from badge_renderer import BadgeRenderError, render_back, render_front
from badge_store import StoreError, SupabaseBadgeStore
from print_logger import log_badge_print, photo_origin_for, print_stats
from render_session import RenderSession, RenderState
from template_layout import (
    BackLayout,
    BadgeRecord,
    FrontLayout,
    is_missing,
    resolve_back_template,
    resolve_front_template,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_ROOT = Path("Badges")

_NAME_COLUMNS = ("full_name", "name", "nome")
_ROLE_COLUMNS = ("role", "role_title", "funcao", "função")
_PHOTO_COLUMNS = ("photo", "photo_url", "photo_path", "foto")


class BadgeOutputs(NamedTuple):
    front_png: Path
    back_png: Optional[Path]
    pdf: Optional[Path]


class BatchSummary(NamedTuple):
    generated: int
    skipped: int
    failed: int


def _first_value(record: Dict[str, object], columns: Sequence[str]) -> str:
    for column in columns:
        value = record.get(column)
        if not is_missing(value):
            return str(value).strip()
    return ""


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://", "data:"))


def _photo_arguments(photo: str, photo_root: Optional[Path]) -> Tuple[Optional[Path], Optional[str]]:
    if _is_url(photo):
        return None, photo
    path = Path(photo)
    if photo_root is not None and not path.is_absolute():
        path = photo_root / path
    return path, None


def load_template_file(path: Path) -> dict:
    with path.open(encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Template file {path} must contain a JSON object")
    return data


def personalize_badge(
    record: Dict[str, object],
    *,
    front_template: FrontLayout,
    back_template: Optional[BackLayout],
    output_root: Path = DEFAULT_OUTPUT_ROOT,
    photo_root: Optional[Path] = None,
    pdf: bool = True,
) -> Optional[BadgeOutputs]:
    full_name = _first_value(record, _NAME_COLUMNS)
    role = _first_value(record, _ROLE_COLUMNS)
    photo = _first_value(record, _PHOTO_COLUMNS)
    if not full_name or not photo:
        logger.warning("Skipping roster row without name or photo: %r", record)
        return None

    photo_file, photo_url = _photo_arguments(photo, photo_root)
    front = render_front(front_template, photo_file, photo_url, full_name, role)
    back = render_back(back_template, full_name) if back_template is not None else None

    output_dir = output_root / (create_slug(full_name) or "badge")
    front_png = save_png(front.image, output_dir / badge_filename("frente", full_name))
    back_png = (
        save_png(back.image, output_dir / badge_filename("verso", full_name))
        if back is not None
        else None
    )
    pdf_path = None
    if pdf:
        pdf_path = save_badge_pdf(
            output_dir / badge_filename("", full_name, "pdf"),
            front.image,
            back.image if back is not None else None,
        )
    return BadgeOutputs(front_png, back_png, pdf_path)


def generate_badges(
    records: Iterable[Dict[str, object]],
    *,
    front_template: FrontLayout,
    back_template: Optional[BackLayout],
    output_root: Path = DEFAULT_OUTPUT_ROOT,
    photo_root: Optional[Path] = None,
    pdf: bool = True,
) -> BatchSummary:
    """Render every roster row; one bad row never stops the batch."""
    generated = skipped = failed = 0
    for record in records:
        try:
            outputs = personalize_badge(
                record,
                front_template=front_template,
                back_template=back_template,
                output_root=output_root,
                photo_root=photo_root,
                pdf=pdf,
            )
        except (BadgeRenderError, OSError) as exc:
            logger.error("%s (%s)", exc, _first_value(record, _NAME_COLUMNS))
            failed += 1
            continue
        if outputs is None:
            skipped += 1
        else:
            generated += 1
    return BatchSummary(generated, skipped, failed)


def load_records_from_csv(csv_path: Path) -> Iterator[Dict[str, object]]:
    df = pd.read_csv(csv_path, dtype=str, encoding="utf-8-sig")
    df.columns = [str(c).strip().lower() for c in df.columns]
    for row in df.to_dict("records"):
        yield row


def generate_badges_from_csv(
    csv_path: Path,
    *,
    front_template: FrontLayout,
    back_template: Optional[BackLayout],
    output_root: Path = DEFAULT_OUTPUT_ROOT,
    photo_root: Optional[Path] = None,
    pdf: bool = True,
) -> BatchSummary:
    return generate_badges(
        load_records_from_csv(csv_path),
        front_template=front_template,
        back_template=back_template,
        output_root=output_root,
        photo_root=photo_root,
        pdf=pdf,
    )


def save_to_history(
    store,
    front: RenderSession,
    back: Optional[RenderSession],
    *,
    full_name: str,
    role: str,
    photo_url: Optional[str],
    template_id: Optional[str],
) -> dict:
    """Upload the rendered faces and insert the badge history row."""
    if front.image is None:
        raise BadgeRenderError("Erro ao gerar imagem")

    timestamp = int(time.time() * 1000)
    front_url = store.upload_file(
        config.BADGE_BUCKET, f"badge-front-{timestamp}.png", to_png_bytes(front.image)
    )
    back_url = None
    if back is not None and back.image is not None:
        back_url = store.upload_file(
            config.BADGE_BUCKET, f"badge-back-{timestamp}.png", to_png_bytes(back.image)
        )
    return store.save_badge(
        BadgeRecord(
            full_name=full_name,
            role=role,
            photo_url=photo_url,
            template_id=template_id,
            output_url=front_url,
            back_output_url=back_url,
        )
    )


def _content_type(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


def upload_template_image(store, image_path: Path) -> str:
    """Upload a template background to the template bucket; returns its URL."""
    slug = create_slug(image_path.stem) or "template"
    filename = f"{int(time.time() * 1000)}-{slug}{image_path.suffix.lower()}"
    return store.upload_file(
        config.TEMPLATE_BUCKET, filename, image_path.read_bytes(), content_type=_content_type(image_path)
    )


def create_template(
    store,
    name: str,
    image_path: Path,
    geometry: Dict[str, object],
    *,
    back: bool = False,
) -> dict:
    """Upload the background and save a new, non-official template row."""
    record = {k: v for k, v in geometry.items() if k not in ("id", "created_at")}
    record["name"] = name
    record["file_url"] = upload_template_image(store, image_path)
    record["is_official"] = False
    return store.create_template(record, back=back)


def update_template(
    store,
    template_id: str,
    geometry: Optional[Dict[str, object]] = None,
    image_path: Optional[Path] = None,
    *,
    name: Optional[str] = None,
    back: bool = False,
) -> dict:
    changes = dict(geometry or {})
    if name:
        changes["name"] = name
    if image_path is not None:
        changes["file_url"] = upload_template_image(store, image_path)
    if not changes:
        raise ValueError("Nothing to update: give --geometry, --image or --name")
    return store.update_template(template_id, changes, back=back)


def _open_store():
    return SupabaseBadgeStore.from_config()


def _load_front_record(args: argparse.Namespace, store) -> Optional[dict]:
    if args.template is not None:
        return load_template_file(args.template)
    if store is not None:
        record = store.get_official_template()
        if record is None:
            raise StoreError("No official front template is configured")
        return record
    return None


def _load_back_record(args: argparse.Namespace, store) -> Optional[dict]:
    if args.back_template is not None:
        return load_template_file(args.back_template)
    if store is not None:
        store.initialize_default_back_template()
        return store.get_official_template(back=True)
    return None


def _log_state(face: str):
    def _observer(state: RenderState, error: Optional[BaseException]) -> None:
        if error is not None:
            logger.debug("%s badge %s: %s", face, state.value, error)
        else:
            logger.debug("%s badge %s", face, state.value)

    return _observer


def _cmd_render(args: argparse.Namespace) -> int:
    needs_store = args.from_store or args.save_history or args.log_print
    store = _open_store() if needs_store else None
    lookup_store = store if args.from_store else None

    front_record = _load_front_record(args, lookup_store)
    front_layout = resolve_front_template(front_record)
    back_layout = None
    if not args.no_back:
        back_layout = resolve_back_template(_load_back_record(args, lookup_store))

    photo_file, photo_url = _photo_arguments(args.photo, None)
    output_dir: Path = args.output_dir

    front = RenderSession("front")
    front.subscribe(_log_state("front"))
    try:
        front.render_front(front_layout, photo_file, photo_url, args.name, args.role)
    except BadgeRenderError as exc:
        print(exc)
        return 1
    print(f"Saved {front.download_png(badge_filename('frente', args.name), output_dir)}")

    back = None
    if back_layout is not None:
        back = RenderSession("back")
        back.subscribe(_log_state("back"))
        back.render_back(back_layout, args.name)
        print(f"Saved {back.download_png(badge_filename('verso', args.name), output_dir)}")

    if args.pdf:
        pdf_path = save_badge_pdf(
            output_dir / badge_filename("", args.name, "pdf"),
            front.image,
            back.image if back is not None else None,
        )
        print(f"Saved {pdf_path}")

    if args.save_history:
        if photo_file is not None and photo_url is None:
            photo_url = store.upload_file(
                config.PHOTO_BUCKET,
                f"{int(time.time() * 1000)}{photo_file.suffix or '.png'}",
                photo_file.read_bytes(),
                content_type=_content_type(photo_file),
            )
        row = save_to_history(
            store,
            front,
            back,
            full_name=args.name,
            role=args.role,
            photo_url=photo_url,
            template_id=front_layout.template_id,
        )
        print(f"Badge saved to history ({row.get('id')})")

    if args.log_print:
        log_badge_print(
            store,
            args.name,
            args.role,
            "print" if args.pdf else "download",
            photo_url=photo_url,
            photo_origin=photo_origin_for(photo_url, photo_file is not None),
        )
    return 0


def _cmd_batch(args: argparse.Namespace) -> int:
    front_layout = resolve_front_template(
        load_template_file(args.template) if args.template else None
    )
    back_layout = None
    if not args.no_back:
        back_layout = resolve_back_template(
            load_template_file(args.back_template) if args.back_template else None
        )
    summary = generate_badges_from_csv(
        args.csv_path,
        front_template=front_layout,
        back_template=back_layout,
        output_root=args.output_root,
        photo_root=args.photo_root,
        pdf=args.pdf,
    )
    print(
        f"Generated {summary.generated} badge(s), "
        f"skipped {summary.skipped}, failed {summary.failed}"
    )
    return 0


def _cmd_templates(args: argparse.Namespace) -> int:
    store = _open_store()
    if args.templates_command == "list":
        for row in store.list_templates(back=args.back):
            marker = "*" if row.get("is_official") else " "
            print(f"{marker} {row.get('id')}  {row.get('name')}  {row.get('width')}x{row.get('height')}")
    elif args.templates_command == "create":
        row = create_template(
            store, args.name, args.image, load_template_file(args.geometry), back=args.back
        )
        print(f"Template {row.get('id')} created ({row.get('file_url')})")
    elif args.templates_command == "update":
        geometry = load_template_file(args.geometry) if args.geometry else None
        try:
            row = update_template(
                store, args.template_id, geometry, args.image, name=args.name, back=args.back
            )
        except ValueError as exc:
            print(exc)
            return 1
        print(f"Template {row.get('id')} updated")
    elif args.templates_command == "set-official":
        store.set_official(args.template_id, back=args.back)
        print(f"Template {args.template_id} is now official")
    elif args.templates_command == "delete":
        store.delete_template(args.template_id, back=args.back)
        print(f"Template {args.template_id} deleted")
    elif args.templates_command == "init-back":
        created = store.initialize_default_back_template()
        print("Default back template created" if created else "An official back template already exists")
    return 0


def _cmd_prints(args: argparse.Namespace) -> int:
    store = _open_store()
    if args.prints_command == "stats":
        stats = print_stats(store)
        print(f"Total: {stats.total}")
        print(f"Hoje: {stats.today}")
        print(f"Últimos 7 dias: {stats.last_7_days}")
        return 0

    rows = store.list_print_log(args.limit, name=args.name, since=args.since, until=args.until)
    for row in rows:
        action = "Download" if row.get("action") == "download" else "Impressão"
        print(
            f"{row.get('printed_at')}  {action:<9}  {row.get('full_name')}  "
            f"{row.get('role_title') or ''}  {row.get('photo_origin') or 'unknown'}"
        )
    print(f"{len(rows)} registro(s)")
    return 0


def _add_template_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--template", type=Path, help="Front template JSON (a store row)")
    parser.add_argument("--back-template", type=Path, help="Back template JSON (a store row)")
    parser.add_argument("--no-back", action="store_true", help="Do not render the back face")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate ID badges from a photo, name and role.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Render one badge")
    render.add_argument("--photo", required=True, help="Photo file path or URL")
    render.add_argument("--name", required=True, help="Full name printed on the badge")
    render.add_argument("--role", required=True, help="Role printed under the name")
    _add_template_options(render)
    render.add_argument("--output-dir", type=Path, default=Path("."), help="Where to write the files")
    render.add_argument("--pdf", action="store_true", help="Also write the two-page PDF")
    render.add_argument("--from-store", action="store_true", help="Use the official templates from the store")
    render.add_argument("--save-history", action="store_true", help="Upload the badge and save it to history")
    render.add_argument("--log-print", action="store_true", help="Record the download in the print log")

    batch = subparsers.add_parser("batch", help="Render badges for every row of a CSV roster")
    batch.add_argument("csv_path", type=Path, help="CSV with full_name, role and photo columns")
    _add_template_options(batch)
    batch.add_argument("--photo-root", type=Path, default=None, help="Directory for relative photo paths")
    batch.add_argument("--output-root", type=Path, default=DEFAULT_OUTPUT_ROOT, help="Output directory")
    batch.add_argument("--pdf", action="store_true", help="Also write a PDF per badge")

    templates = subparsers.add_parser("templates", help="Manage stored templates")
    templates_sub = templates.add_subparsers(dest="templates_command", required=True)
    listing = templates_sub.add_parser("list")
    listing.add_argument("--back", action="store_true", help="List back templates")
    templates_sub.add_parser("init-back").set_defaults(back=True)
    for command in ("set-official", "delete"):
        sub = templates_sub.add_parser(command)
        sub.add_argument("template_id")
        sub.add_argument("--back", action="store_true", help="Operate on back templates")
    create = templates_sub.add_parser("create", help="Upload a background and save its layout")
    create.add_argument("--name", required=True, help="Template name")
    create.add_argument("--image", type=Path, required=True, help="Background image file")
    create.add_argument("--geometry", type=Path, required=True, help="Layout fields as a JSON object")
    create.add_argument("--back", action="store_true", help="Create a back template")
    update = templates_sub.add_parser("update", help="Change a template's layout, name or background")
    update.add_argument("template_id")
    update.add_argument("--name", help="New template name")
    update.add_argument("--image", type=Path, help="New background image file")
    update.add_argument("--geometry", type=Path, help="Layout fields to change, as a JSON object")
    update.add_argument("--back", action="store_true", help="Update a back template")

    prints = subparsers.add_parser("prints", help="Report on printed and downloaded badges")
    prints_sub = prints.add_subparsers(dest="prints_command", required=True)
    listing = prints_sub.add_parser("list")
    listing.add_argument("--name", help="Part of the full name (case-insensitive)")
    listing.add_argument("--since", type=datetime.date.fromisoformat, help="First day, YYYY-MM-DD")
    listing.add_argument("--until", type=datetime.date.fromisoformat, help="Last day, YYYY-MM-DD")
    listing.add_argument("--limit", type=int, default=100, help="Maximum rows to show")
    prints_sub.add_parser("stats")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=getattr(logging, config.BADGE_LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _parse_args(argv)
    try:
        if args.command == "render":
            return _cmd_render(args)
        if args.command == "batch":
            return _cmd_batch(args)
        if args.command == "prints":
            return _cmd_prints(args)
        return _cmd_templates(args)
    except StoreError as exc:
        print(exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
