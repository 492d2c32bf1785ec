"""Persistence for templates, badge history, uploads and the print log."""
from __future__ import annotations

import datetime
import logging
import threading
import uuid
from typing import Dict, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from supabase import Client, create_client

import config
from template_layout import DEFAULT_BACK_TEMPLATE_RECORD, BadgeRecord

logger = logging.getLogger(__name__)

FRONT_TABLE = "templates"
BACK_TABLE = "templates_back"
BADGES_TABLE = "badges"
PRINTS_TABLE = "badges_printed"

SET_OFFICIAL_FUNCTION = "set_official_template"

TimeBound = Union[datetime.date, datetime.datetime, str, None]

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class StoreError(RuntimeError):
    """Raised when a store operation fails; the message is user-facing."""


def _table_name(back: bool) -> str:
    return BACK_TABLE if back else FRONT_TABLE


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def time_bound(value: TimeBound, *, end_of_day: bool = False) -> Optional[datetime.datetime]:
    """Turn a filter bound into an aware instant.

    Calendar dates (``date`` objects or ``YYYY-MM-DD`` strings) cover the
    whole day in the badge time zone; naive datetimes are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            value = datetime.date.fromisoformat(text)
        else:
            value = datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value
    edge = datetime.time.max if end_of_day else datetime.time.min
    return datetime.datetime.combine(value, edge, tzinfo=ZoneInfo(config.BADGE_TIMEZONE))


def create_client_from_config() -> Client:
    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        raise StoreError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY/KEY")
    return create_client(config.SUPABASE_URL, config.SUPABASE_KEY)


class SupabaseBadgeStore:
    """Template, history and storage operations backed by Supabase.

    Every call is an independent request; failures raise :class:`StoreError`
    and nothing is rolled back on the caller's side.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def from_config(cls) -> "SupabaseBadgeStore":
        return cls(create_client_from_config())

    def _response(self, action: str, query):
        try:
            return query.execute()
        except Exception as exc:  # postgrest, storage and transport errors alike
            logger.error("Error %s: %s", action, exc)
            raise StoreError(f"Error {action}: {exc}") from exc

    def _execute(self, action: str, query) -> List[dict]:
        return getattr(self._response(action, query), "data", None) or []


    def get_official_template(self, back: bool = False) -> Optional[dict]:
        table = _table_name(back)
        rows = self._execute(
            f"fetching official template from {table}",
            self.client.table(table)
            .select("*")
            .eq("is_official", True)
            .order("created_at", desc=True)
            .limit(2),
        )
        if len(rows) > 1:
            logger.warning("More than one official template in %s; using the newest", table)
        return rows[0] if rows else None

    def list_templates(self, back: bool = False) -> List[dict]:
        table = _table_name(back)
        return self._execute(
            f"listing templates in {table}",
            self.client.table(table).select("*").order("created_at", desc=True),
        )

    def create_template(self, record: Mapping[str, object], back: bool = False) -> dict:
        table = _table_name(back)
        rows = self._execute(
            f"saving template in {table}",
            self.client.table(table).insert(dict(record)),
        )
        if not rows:
            raise StoreError(f"Error saving template in {table}: no row returned")
        return rows[0]

    def update_template(
        self, template_id: str, changes: Mapping[str, object], back: bool = False
    ) -> dict:
        table = _table_name(back)
        payload = {k: v for k, v in changes.items() if k not in ("id", "created_at", "is_official")}
        rows = self._execute(
            f"updating template {template_id}",
            self.client.table(table).update(payload).eq("id", template_id),
        )
        if not rows:
            raise StoreError(f"Error updating template {template_id}: not found")
        return rows[0]

    def delete_template(self, template_id: str, back: bool = False) -> None:
        table = _table_name(back)
        self._execute(
            f"deleting template {template_id}",
            self.client.table(table).delete().eq("id", template_id),
        )

    def set_official(self, template_id: str, back: bool = False) -> None:
        """Make ``template_id`` the only official template, in one transaction."""
        self._execute(
            f"setting template {template_id} as official",
            self.client.rpc(
                SET_OFFICIAL_FUNCTION,
                {"table_name": _table_name(back), "template_id": template_id},
            ),
        )

    def initialize_default_back_template(self) -> Optional[dict]:
        """Insert the stock back template when no official one exists yet."""
        if self.get_official_template(back=True) is not None:
            return None
        created = self.create_template(DEFAULT_BACK_TEMPLATE_RECORD, back=True)
        logger.info("Default back template initialized")
        return created

    def save_badge(self, badge: BadgeRecord) -> dict:
        rows = self._execute(
            "saving badge",
            self.client.table(BADGES_TABLE).insert(badge.to_row()),
        )
        if not rows:
            raise StoreError("Error saving badge: no row returned")
        return rows[0]

    def upload_file(
        self, bucket: str, filename: str, data: bytes, content_type: str = "image/png"
    ) -> str:
        """Upload ``data`` (overwriting) and return its public URL."""
        storage = self.client.storage.from_(bucket)
        try:
            storage.upload(
                path=filename,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": "3600",
                    "upsert": "true",
                },
            )
        except Exception as exc:
            logger.error("Error uploading file %s/%s: %s", bucket, filename, exc)
            raise StoreError(f"Error uploading file {filename}: {exc}") from exc
        return storage.get_public_url(filename)

    def insert_print_log(self, row: Mapping[str, object]) -> None:
        self._execute(
            "logging badge print",
            self.client.table(PRINTS_TABLE).insert(dict(row)),
        )

    def _filter_print_log(self, query, name, since, until):
        if name:
            query = query.ilike("full_name", f"%{name}%")
        start = time_bound(since)
        if start is not None:
            query = query.gte("printed_at", start.isoformat())
        end = time_bound(until, end_of_day=True)
        if end is not None:
            query = query.lte("printed_at", end.isoformat())
        return query

    def list_print_log(
        self,
        limit: Optional[int] = None,
        *,
        name: Optional[str] = None,
        since: TimeBound = None,
        until: TimeBound = None,
    ) -> List[dict]:
        """Print-log rows, newest first, filtered by name substring and time window."""
        query = self._filter_print_log(
            self.client.table(PRINTS_TABLE).select("*"), name, since, until
        ).order("printed_at", desc=True)
        if limit is not None:
            query = query.limit(limit)
        return self._execute("listing printed badges", query)

    def count_print_log(self, *, since: TimeBound = None, until: TimeBound = None) -> int:
        query = self._filter_print_log(
            self.client.table(PRINTS_TABLE).select("*", count="exact"), None, since, until
        ).limit(1)
        response = self._response("counting printed badges", query)
        return int(getattr(response, "count", None) or 0)



class InMemoryBadgeStore:
    """Process-local store with the same interface, for tests and dry runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, dict]] = {
            FRONT_TABLE: {},
            BACK_TABLE: {},
            BADGES_TABLE: {},
            PRINTS_TABLE: {},
        }
        self.files: Dict[str, bytes] = {}

    def _insert(self, table: str, row: Mapping[str, object], stamp: str = "created_at") -> dict:
        record = dict(row)
        record.setdefault("id", str(uuid.uuid4()))
        record.setdefault(stamp, _now_iso())
        with self._lock:
            self._tables[table][str(record["id"])] = record
        return dict(record)

    def get_official_template(self, back: bool = False) -> Optional[dict]:
        with self._lock:
            rows = [dict(r) for r in self._tables[_table_name(back)].values() if r.get("is_official")]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows[0] if rows else None

    def list_templates(self, back: bool = False) -> List[dict]:
        with self._lock:
            rows = [dict(r) for r in self._tables[_table_name(back)].values()]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows

    def create_template(self, record: Mapping[str, object], back: bool = False) -> dict:
        row = dict(record)
        if row.get("is_official") and self.get_official_template(back) is not None:
            raise StoreError("Error saving template: an official template already exists")
        return self._insert(_table_name(back), row)

    def update_template(
        self, template_id: str, changes: Mapping[str, object], back: bool = False
    ) -> dict:
        with self._lock:
            row = self._tables[_table_name(back)].get(template_id)
            if row is None:
                raise StoreError(f"Error updating template {template_id}: not found")
            row.update(
                {k: v for k, v in changes.items() if k not in ("id", "created_at", "is_official")}
            )
            return dict(row)

    def delete_template(self, template_id: str, back: bool = False) -> None:
        with self._lock:
            self._tables[_table_name(back)].pop(template_id, None)

    def set_official(self, template_id: str, back: bool = False) -> None:
        with self._lock:
            rows = self._tables[_table_name(back)]
            if template_id not in rows:
                raise StoreError(f"Error setting template {template_id} as official: not found")
            for row_id, row in rows.items():
                row["is_official"] = row_id == template_id

    def initialize_default_back_template(self) -> Optional[dict]:
        if self.get_official_template(back=True) is not None:
            return None
        return self.create_template(DEFAULT_BACK_TEMPLATE_RECORD, back=True)

    def save_badge(self, badge: BadgeRecord) -> dict:
        return self._insert(BADGES_TABLE, badge.to_row())

    def list_badges(self) -> List[dict]:
        with self._lock:
            return [dict(r) for r in self._tables[BADGES_TABLE].values()]

    def upload_file(
        self, bucket: str, filename: str, data: bytes, content_type: str = "image/png"
    ) -> str:
        key = f"{bucket}/{filename}"
        with self._lock:
            self.files[key] = bytes(data)
        return f"memory://{key}"

    def insert_print_log(self, row: Mapping[str, object]) -> None:
        self._insert(PRINTS_TABLE, row, stamp="printed_at")

    def list_print_log(
        self,
        limit: Optional[int] = None,
        *,
        name: Optional[str] = None,
        since: TimeBound = None,
        until: TimeBound = None,
    ) -> List[dict]:
        start = time_bound(since)
        end = time_bound(until, end_of_day=True)
        needle = (name or "").casefold()
        with self._lock:
            rows = [dict(r) for r in self._tables[PRINTS_TABLE].values()]

        selected = []
        for row in rows:
            if needle and needle not in str(row.get("full_name") or "").casefold():
                continue
            printed_at = time_bound(row.get("printed_at"))
            if start is not None and (printed_at is None or printed_at < start):
                continue
            if end is not None and (printed_at is None or printed_at > end):
                continue
            selected.append((printed_at, row))
        selected.sort(key=lambda item: item[0] or _EPOCH, reverse=True)
        rows = [row for _, row in selected]
        return rows if limit is None else rows[:limit]

    def count_print_log(self, *, since: TimeBound = None, until: TimeBound = None) -> int:
        return len(self.list_print_log(since=since, until=until))


__all__ = [
    "BACK_TABLE",
    "BADGES_TABLE",
    "FRONT_TABLE",
    "InMemoryBadgeStore",
    "PRINTS_TABLE",
    "StoreError",
    "SupabaseBadgeStore",
    "create_client_from_config",
    "time_bound",
]
