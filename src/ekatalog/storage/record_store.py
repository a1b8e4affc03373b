# src/ekatalog/storage/record_store.py

"""
Flat-file Record Store.

Each collection is one JSON document holding a top-level array of records.
Writes replace the whole document through a temp file + os.replace, so a
concurrent reader sees either the old or the new array, never a partial one.

Every read yields a revision token (sha256 of the file bytes). Passing that
token back to `write` turns the whole-collection read-modify-write into a
compare-and-swap: if another writer got in between, ConflictError is raised
instead of silently clobbering their change.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Tuple

from opentelemetry import trace

from ekatalog import config
from ekatalog.errors import ConflictError, NotFoundError, StorageIOError, ValidationError
from ekatalog.metrics import store_write_conflict_total

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EMPTY_REVISION = "0" * 64

_COLLECTION_NAME = re.compile(r"^[a-z0-9][a-z0-9_-]*$")

Record = dict[str, Any]


class RecordStore:
    """Durable storage of named record collections addressed by integer id."""

    def __init__(self, data_dir: Path | str | None = None, write_retries: int | None = None):
        self.data_dir = Path(data_dir) if data_dir is not None else config.DATA_DIR
        self.write_retries = write_retries if write_retries is not None else config.WRITE_RETRIES
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------
    def path_for(self, collection: str) -> Path:
        if not _COLLECTION_NAME.match(collection or ""):
            raise ValidationError(f"Invalid collection name: {collection!r}")
        return self.data_dir / f"{collection}.json"

    def _lock_for(self, collection: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(collection)
            if lock is None:
                lock = self._locks[collection] = threading.RLock()
            return lock

    @staticmethod
    def _hash(raw: bytes) -> str:
        return hashlib.sha256(raw).hexdigest()

    def _read_raw(self, collection: str) -> bytes | None:
        try:
            return self.path_for(collection).read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Could not read collection=%s; treating as empty", collection, exc_info=True)
            return None

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------
    def _parse(self, collection: str, raw: bytes) -> list[Record] | None:
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Malformed JSON in collection=%s", collection)
            return None

        if not isinstance(data, list):
            logger.warning(
                "Collection=%s is not a top-level array (%s)",
                collection,
                type(data).__name__,
            )
            return None

        return [r for r in data if isinstance(r, dict)]

    def read_with_revision(self, collection: str) -> Tuple[list[Record], str]:
        """
        Return (records, revision). Absent, unreadable or malformed collections
        read as an empty list; this never raises for I/O or parse problems.
        """
        with tracer.start_as_current_span("store.read") as span:
            span.set_attribute("store.collection", collection)

            raw = self._read_raw(collection)
            if raw is None:
                return [], EMPTY_REVISION

            records = self._parse(collection, raw) or []
            span.set_attribute("store.count", len(records))
            return records, self._hash(raw)

    def snapshot(self, collection: str) -> list[Record] | None:
        """Like `read`, but None when the collection is absent or malformed."""
        raw = self._read_raw(collection)
        if raw is None:
            return None
        return self._parse(collection, raw)

    def read(self, collection: str) -> list[Record]:
        records, _ = self.read_with_revision(collection)
        return records

    def revision(self, collection: str) -> str:
        raw = self._read_raw(collection)
        return EMPTY_REVISION if raw is None else self._hash(raw)

    # -------------------------------------------------------------------------
    # WRITE
    # -------------------------------------------------------------------------
    def write(
        self,
        collection: str,
        records: list[Record],
        expected_revision: str | None = None,
    ) -> str:
        """
        Replace the whole collection and return the new revision.

        When `expected_revision` is given and the stored revision differs,
        nothing is written and ConflictError is raised.
        """
        path = self.path_for(collection)
        payload = json.dumps(records, indent=2, ensure_ascii=False, default=str).encode("utf-8")

        with tracer.start_as_current_span("store.write") as span:
            span.set_attribute("store.collection", collection)
            span.set_attribute("store.count", len(records))

            with self._lock_for(collection):
                if expected_revision is not None:
                    current = self.revision(collection)
                    if current != expected_revision:
                        store_write_conflict_total.labels(collection=collection).inc()
                        logger.warning(
                            "Write conflict on collection=%s expected=%s actual=%s",
                            collection,
                            expected_revision[:12],
                            current[:12],
                        )
                        raise ConflictError(collection, expected_revision, current)

                tmp_name = None
                try:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    with tempfile.NamedTemporaryFile(
                        "wb", dir=path.parent, prefix=f".{collection}.", suffix=".tmp", delete=False
                    ) as tmp:
                        tmp_name = tmp.name
                        tmp.write(payload)
                        tmp.flush()
                        os.fsync(tmp.fileno())
                    os.replace(tmp_name, path)
                    tmp_name = None
                except OSError as e:
                    logger.exception("Failed to write collection=%s to %s", collection, path)
                    raise StorageIOError(f"Could not write collection '{collection}': {e}") from e
                finally:
                    if tmp_name is not None:
                        try:
                            os.unlink(tmp_name)
                        except OSError:
                            pass

        logger.debug("Wrote %d records to collection=%s", len(records), collection)
        return self._hash(payload)

    def update(self, collection: str, fn: Callable[[list[Record]], Tuple[list[Record], Any]]) -> Any:
        """
        Read-modify-write with revision checking.

        `fn` receives a fresh copy of the collection and returns
        (new_records, result). On a revision conflict the read and `fn` are
        repeated, up to `write_retries` attempts; `fn` must therefore be free
        of side effects other than building its return value.
        """
        attempts = max(1, self.write_retries)

        for attempt in range(1, attempts + 1):
            with self._lock_for(collection):
                records, revision = self.read_with_revision(collection)
                new_records, result = fn(records)
                try:
                    self.write(collection, new_records, expected_revision=revision)
                    return result
                except ConflictError:
                    if attempt == attempts:
                        raise
                    logger.info(
                        "Retrying update of collection=%s after conflict (attempt %d/%d)",
                        collection,
                        attempt,
                        attempts,
                    )

    # -------------------------------------------------------------------------
    # IDs
    # -------------------------------------------------------------------------
    def next_id(self, collection: str, id_field: str = "id") -> int:
        """One greater than the highest existing id, or 1 for an empty collection."""
        return max_id(self.read(collection), id_field) + 1

    # -------------------------------------------------------------------------
    # Generic single-record CRUD
    # -------------------------------------------------------------------------
    def get(self, collection: str, record_id: int, id_field: str = "id") -> Record:
        for record in self.read(collection):
            if same_id(record, record_id, id_field):
                return record
        raise NotFoundError(f"{collection} id={record_id} not found")

    def create(self, collection: str, record: Record, id_field: str = "id") -> Record:
        item = self.update(collection, lambda records: apply_create(records, record, id_field))
        logger.info("Created %s id=%s", collection, item[id_field])
        return item

    def merge(self, collection: str, record: Record, id_field: str = "id") -> Record:
        """Shallow-merge `record` into the stored record carrying the same id."""
        item = self.update(collection, lambda records: apply_merge(records, record, id_field))
        logger.info("Updated %s id=%s", collection, item[id_field])
        return item

    def delete(self, collection: str, record_id: int, id_field: str = "id") -> None:
        self.update(collection, lambda records: apply_delete(records, record_id, id_field))
        logger.info("Deleted %s id=%s", collection, record_id)


# -----------------------------------------------------------------------------
# Pure collection edits, shared with the sync client's local fallback
# -----------------------------------------------------------------------------
def max_id(records: list[Record], id_field: str = "id") -> int:
    highest = 0
    for record in records:
        try:
            highest = max(highest, int(record.get(id_field) or 0))
        except (TypeError, ValueError):
            continue
    return highest


def same_id(record: Record, record_id: Any, id_field: str = "id") -> bool:
    try:
        return int(record.get(id_field)) == int(record_id)
    except (TypeError, ValueError):
        return False


def apply_create(records: list[Record], record: Record, id_field: str = "id") -> Tuple[list[Record], Record]:
    item = {**record, id_field: max_id(records, id_field) + 1}
    return [*records, item], item


def apply_merge(records: list[Record], record: Record, id_field: str = "id") -> Tuple[list[Record], Record]:
    if record.get(id_field) is None:
        raise ValidationError(f"missing {id_field}")
    out = list(records)
    for idx, existing in enumerate(out):
        if same_id(existing, record[id_field], id_field):
            out[idx] = {**existing, **record, id_field: existing[id_field]}
            return out, out[idx]
    raise NotFoundError(f"id={record[id_field]} not found")


def apply_delete(records: list[Record], record_id: Any, id_field: str = "id") -> Tuple[list[Record], None]:
    kept = [r for r in records if not same_id(r, record_id, id_field)]
    if len(kept) == len(records):
        raise NotFoundError(f"id={record_id} not found")
    return kept, None
