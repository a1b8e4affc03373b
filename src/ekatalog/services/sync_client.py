# src/ekatalog/services/sync_client.py

"""
Resilient data access for list/detail views.

`load()` walks a chain of data sources (remote API, local snapshot, bundled
static seed) and returns the first one that answers; it never raises.
`mutate()` sends a change to the remote API and keeps the local snapshot in
step with it, then publishes an invalidation event for the dataset.

Consistency: read-your-writes within one SyncClient (one snapshot
directory). Two clients with separate snapshots can diverge until each
re-syncs from the remote.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
from anyio import to_thread
from opentelemetry import trace

from ekatalog import config
from ekatalog.errors import EkatalogError, RemoteError, StorageIOError
from ekatalog.metrics import sync_load_total, sync_local_fallback_total
from ekatalog.services.event_bus import EventBus, event_bus
from ekatalog.services.sync_operations import Operation
from ekatalog.storage.record_store import RecordStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class LoadResult:
    dataset: str
    records: list[dict] = field(default_factory=list)
    # "remote" | "cache" | "static" | "empty"
    source: str = "empty"

    @property
    def stale(self) -> bool:
        """True when the data did not come from the authoritative store."""
        return self.source != "remote"

    def __iter__(self):
        return iter(self.records)

    def __len__(self):
        return len(self.records)


class DataSource(Protocol):
    name: str

    async def fetch(self, dataset: str) -> Optional[list[dict]]:
        """Records for `dataset`, None when this tier has nothing, raise on failure."""


# -----------------------------------------------------------------------------
# Tiers
# -----------------------------------------------------------------------------
class RemoteSource:
    """The console REST API."""

    name = "remote"

    def __init__(
        self,
        base_url: str = config.API_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def fetch(self, dataset: str) -> list[dict]:
        async with self._client() as client:
            response = await client.get(f"/{dataset}")
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, list):
            raise ValueError(f"expected a JSON array for {dataset}, got {type(data).__name__}")
        return data

    async def send(self, method: str, path: str, body: Optional[dict]) -> Any:
        """Perform a mutation; RemoteError carries the status code when there is one."""
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=body)
        except httpx.HTTPError as e:
            raise RemoteError(f"{method} {path} failed: {e!r}") from e

        if response.status_code >= 400:
            detail = response.text[:200]
            try:
                detail = response.json().get("detail", detail)
            except (ValueError, AttributeError):
                pass
            raise RemoteError(str(detail), status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"{method} {path} returned invalid JSON") from e


class CacheSource:
    """
    One JSON snapshot per dataset, stored with the same atomic writes as the
    Record Store. File access (including the fsync on save) runs in a worker
    thread so a slow disk does not stall the event loop.
    """

    name = "cache"

    def __init__(self, cache_dir: Path | str = config.CACHE_DIR):
        self.store = RecordStore(cache_dir)

    async def fetch(self, dataset: str) -> Optional[list[dict]]:
        return await to_thread.run_sync(self.store.snapshot, dataset)

    async def save(self, dataset: str, records: list[dict]) -> bool:
        try:
            await to_thread.run_sync(self.store.write, dataset, records)
            return True
        except StorageIOError:
            logger.warning("Could not update snapshot for dataset=%s", dataset, exc_info=True)
            return False


class StaticSeedSource:
    """Fallback datasets bundled with the package (`ekatalog/seed/<dataset>.json`)."""

    name = "static"

    def __init__(self, package: str = "ekatalog.seed"):
        self.package = package

    def _read(self, dataset: str) -> Optional[str]:
        resource = resources.files(self.package).joinpath(f"{dataset}.json")
        if not resource.is_file():
            return None
        return resource.read_text(encoding="utf-8")

    async def fetch(self, dataset: str) -> Optional[list[dict]]:
        raw = await to_thread.run_sync(self._read, dataset)
        if raw is None:
            return None
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"seed for {dataset} is not a JSON array")
        return data


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------
class SyncClient:
    def __init__(
        self,
        remote: RemoteSource,
        cache: CacheSource,
        fallbacks: Optional[list[DataSource]] = None,
        bus: EventBus = event_bus,
    ):
        self.remote = remote
        self.cache = cache
        self.fallbacks = list(fallbacks) if fallbacks is not None else [StaticSeedSource()]
        self.bus = bus

    @classmethod
    def from_config(cls, transport: httpx.AsyncBaseTransport | None = None) -> "SyncClient":
        return cls(
            remote=RemoteSource(config.API_URL, config.REQUEST_TIMEOUT, transport=transport),
            cache=CacheSource(config.CACHE_DIR),
        )

    @property
    def sources(self) -> list[DataSource]:
        return [self.remote, self.cache, *self.fallbacks]

    # -------------------------------------------------------------------------
    # READ
    # -------------------------------------------------------------------------
    async def load(self, dataset: str) -> LoadResult:
        """
        Freshest available records for `dataset`. Whatever tier answers
        (other than the snapshot itself) is written through to the snapshot so
        the next offline load finds it; an exhausted chain yields an empty result, never an error.
        """
        with tracer.start_as_current_span("sync.load") as span:
            span.set_attribute("sync.dataset", dataset)

            for source in self.sources:
                try:
                    records = await source.fetch(dataset)
                except Exception as e:
                    logger.warning("Tier %s failed for dataset=%s: %r", source.name, dataset, e)
                    continue

                if records is None:
                    continue

                if source is not self.cache:
                    await self.cache.save(dataset, records)

                span.set_attribute("sync.source", source.name)
                sync_load_total.labels(dataset=dataset, source=source.name).inc()
                if source is not self.remote:
                    logger.info("Serving dataset=%s from %s tier (stale)", dataset, source.name)
                return LoadResult(dataset=dataset, records=records, source=source.name)

            span.set_attribute("sync.source", "empty")
            sync_load_total.labels(dataset=dataset, source="empty").inc()
            logger.warning("No tier could serve dataset=%s; returning empty", dataset)
            return LoadResult(dataset=dataset)

    async def refresh(self, dataset: str) -> LoadResult:
        """Load and tell every subscribed view to re-read."""
        result = await self.load(dataset)
        self.bus.publish_dataset(dataset)
        return result

    async def _local_records(self, dataset: str) -> list[dict]:
        cached = await self.cache.fetch(dataset)
        if cached is not None:
            return cached
        for source in self.fallbacks:
            try:
                records = await source.fetch(dataset)
            except Exception:
                logger.warning("Fallback %s failed for dataset=%s", source.name, dataset, exc_info=True)
                continue
            if records is not None:
                return records
        return []

    async def _apply_locally(self, dataset: str, operation: Operation) -> Any:
        records, result = operation.apply_local(await self._local_records(dataset))
        await self.cache.save(dataset, records)
        return result

    # -------------------------------------------------------------------------
    # WRITE
    # -------------------------------------------------------------------------
    async def mutate(self, dataset: str, operation: Operation) -> Any:
        """
        Send `operation` and keep the snapshot consistent with it.

        - remote success: re-fetch the authoritative collection into the
          snapshot (or, if that re-fetch fails, mirror the change locally);
        - transport/5xx failure of an optimistic operation: apply the change
          to the snapshot so the edit is not silently dropped;
        - 4xx responses, and any failure of a non-optimistic operation, raise
          RemoteError and leave the snapshot untouched.

        Either successful path publishes the dataset topic with the result.
        """
        method, path, body = operation.request(dataset)

        with tracer.start_as_current_span("sync.mutate") as span:
            span.set_attribute("sync.dataset", dataset)
            span.set_attribute("sync.operation", type(operation).__name__)

            try:
                result = await self.remote.send(method, path, body)
            except RemoteError as e:
                if e.is_definitive or not operation.optimistic:
                    logger.warning(
                        "%s on dataset=%s rejected: %s (status=%s)",
                        type(operation).__name__,
                        dataset,
                        e.detail,
                        e.status_code,
                    )
                    raise

                logger.warning(
                    "Remote unavailable for %s on dataset=%s; applying to local snapshot",
                    type(operation).__name__,
                    dataset,
                )
                result = await self._apply_locally(dataset, operation)
                sync_local_fallback_total.labels(dataset=dataset).inc()
                span.set_attribute("sync.path", "local")
            else:
                span.set_attribute("sync.path", "remote")
                try:
                    await self.cache.save(dataset, await self.remote.fetch(dataset))
                except Exception as e:
                    logger.warning(
                        "Re-fetch of dataset=%s after %s failed (%r); mirroring locally",
                        dataset,
                        type(operation).__name__,
                        e,
                    )
                    try:
                        await self._apply_locally(dataset, operation)
                    except EkatalogError:
                        # Snapshot predates the change; the next load replaces it
                        logger.warning("Could not mirror %s into snapshot of dataset=%s", type(operation).__name__, dataset)

        self.bus.publish_dataset(dataset, result)
        return result
