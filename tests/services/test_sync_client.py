"""
Unit tests for SyncClient.

The remote tier runs against httpx.MockTransport; the snapshot tier writes to
a temporary directory.
"""
import json
from unittest.mock import patch

import httpx
import pytest

from ekatalog.errors import RemoteError, StorageIOError
from ekatalog.services.sync_client import CacheSource, LoadResult, RemoteSource, StaticSeedSource, SyncClient
from ekatalog.services.sync_operations import (
    ApplyMembershipAction,
    CreateRecord,
    UpdateRecord,
    UpsertMembership,
)

# Configure anyio for async tests
pytestmark = pytest.mark.anyio

YESTERDAY = [{"user_id": 1, "user_name": "Budi", "companies": [{"branch_id": 3, "member_status": "pending"}]}]


def _down(request):
    raise httpx.ConnectError("connection refused", request=request)


def _make(tmp_path, handler, bus, fallbacks=()):
    return SyncClient(
        remote=RemoteSource("http://api.test", timeout=1, transport=httpx.MockTransport(handler)),
        cache=CacheSource(tmp_path / "cache"),
        fallbacks=list(fallbacks),
        bus=bus,
    )


def _events(bus, topic):
    received = []
    bus.subscribe(topic, received.append)
    return received


class TestSyncClientLoad:
    """Tests for the fallback chain."""

    async def test_remote_answer_is_fresh_and_cached(self, tmp_path, bus):
        client = _make(tmp_path, lambda request: httpx.Response(200, json=[{"id": 1}]), bus)

        result = await client.load("branches")

        assert result.source == "remote"
        assert result.stale is False
        assert list(result) == [{"id": 1}]
        assert client.cache.store.read("branches") == [{"id": 1}]

    async def test_remote_down_serves_cached_snapshot(self, tmp_path, bus):
        client = _make(tmp_path, _down, bus)
        await client.cache.save("members", YESTERDAY)

        result = await client.load("members")

        assert result.source == "cache"
        assert result.stale is True
        assert result.records == YESTERDAY

    async def test_server_error_falls_through_to_cache(self, tmp_path, bus):
        client = _make(tmp_path, lambda request: httpx.Response(503), bus)
        await client.cache.save("branches", [{"id": 9}])

        result = await client.load("branches")

        assert result.source == "cache"
        assert result.records == [{"id": 9}]

    async def test_non_array_response_falls_through(self, tmp_path, bus):
        client = _make(tmp_path, lambda request: httpx.Response(200, json={"error": "x"}), bus)
        await client.cache.save("branches", [{"id": 9}])

        result = await client.load("branches")

        assert result.source == "cache"

    async def test_static_seed_used_when_remote_and_cache_fail(self, tmp_path, bus):
        client = _make(tmp_path, _down, bus, fallbacks=[StaticSeedSource()])

        result = await client.load("members")

        assert result.source == "static"
        assert result.stale is True
        assert len(result) > 0
        # written through so the next offline load finds it in the snapshot
        assert client.cache.store.read("members") == result.records

    async def test_exhausted_chain_returns_empty_without_raising(self, tmp_path, bus):
        client = _make(tmp_path, _down, bus, fallbacks=[StaticSeedSource()])

        result = await client.load("no_such_dataset")

        assert result == LoadResult(dataset="no_such_dataset")
        assert result.source == "empty"
        assert len(result) == 0

    async def test_remote_recovery_overwrites_cache_and_notifies(self, tmp_path, bus):
        today = [{"user_id": 1, "user_name": "Budi", "companies": [{"branch_id": 3, "member_status": "approved"}]}]
        state = {"up": False}

        def handler(request):
            if not state["up"]:
                raise httpx.ConnectError("down", request=request)
            return httpx.Response(200, json=today)

        client = _make(tmp_path, handler, bus)
        await client.cache.save("members", YESTERDAY)
        received = _events(bus, "members-updated")

        stale = await client.load("members")
        assert stale.records == YESTERDAY

        state["up"] = True
        fresh = await client.refresh("members")

        assert fresh.source == "remote"
        assert client.cache.store.read("members") == today
        assert len(received) == 1


class TestSyncClientMutate:
    """Tests for mutations and their effect on the snapshot."""

    async def test_remote_success_refetches_into_cache(self, tmp_path, bus):
        remote_items = [{"id": 1, "name": "Semen"}, {"id": 2, "name": "Pasir"}]

        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"id": 2, "name": "Pasir"})
            return httpx.Response(200, json=remote_items)

        client = _make(tmp_path, handler, bus)
        received = _events(bus, "items-updated")

        result = await client.mutate("items", CreateRecord({"name": "Pasir"}))

        assert result == {"id": 2, "name": "Pasir"}
        assert client.cache.store.read("items") == remote_items
        assert received[0].payload == result

    async def test_request_body_is_sent(self, tmp_path, bus):
        seen = []

        def handler(request):
            if request.method == "PUT":
                seen.append(json.loads(request.content))
                return httpx.Response(200, json={"id": 1, "name": "B"})
            return httpx.Response(200, json=[{"id": 1, "name": "B"}])

        client = _make(tmp_path, handler, bus)

        await client.mutate("items", UpdateRecord({"id": 1, "name": "B"}))

        assert seen == [{"id": 1, "name": "B"}]

    async def test_remote_down_applies_optimistically_and_reads_back(self, tmp_path, bus):
        client = _make(tmp_path, _down, bus)
        await client.cache.save("items", [{"id": 1, "name": "Semen"}])
        received = _events(bus, "items-updated")

        result = await client.mutate("items", CreateRecord({"name": "Pasir"}))
        reloaded = await client.load("items")

        assert result == {"name": "Pasir", "id": 2}
        assert reloaded.source == "cache"
        assert {"name": "Pasir", "id": 2} in reloaded.records
        assert received[0].payload == result

    async def test_server_error_on_membership_upsert_merges_locally(self, tmp_path, bus):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(502, json={"detail": "bad gateway"})
            raise httpx.ConnectError("down", request=request)

        client = _make(tmp_path, handler, bus)
        await client.cache.save("members", YESTERDAY)

        record = await client.mutate(
            "members",
            UpsertMembership({"user_id": 1, "company": {"branch_id": 3, "company_address": "Jl. B"}}),
        )

        assert record["user_id"] == 1
        companies = client.cache.store.read("members")[0]["companies"]
        assert len(companies) == 1
        assert companies[0]["company_address"] == "Jl. B"

    async def test_client_error_is_definitive(self, tmp_path, bus):
        client = _make(
            tmp_path,
            lambda request: httpx.Response(404, json={"detail": "id=7 not found"}),
            bus,
        )
        await client.cache.save("items", [{"id": 1}])
        received = _events(bus, "items-updated")

        with pytest.raises(RemoteError) as exc:
            await client.mutate("items", UpdateRecord({"id": 7, "name": "X"}))

        assert exc.value.status_code == 404
        assert exc.value.detail == "id=7 not found"
        assert client.cache.store.read("items") == [{"id": 1}]
        assert received == []

    async def test_approval_is_never_applied_optimistically(self, tmp_path, bus):
        client = _make(tmp_path, _down, bus)
        await client.cache.save("members", YESTERDAY)
        received = _events(bus, "members-updated")

        with pytest.raises(RemoteError):
            await client.mutate(
                "members",
                ApplyMembershipAction(action="approve", user_id=1, admin_id=7, branch_id=3),
            )

        assert client.cache.store.read("members") == YESTERDAY
        assert received == []

    async def test_confirmed_approval_is_mirrored_when_refetch_fails(self, tmp_path, bus):
        def handler(request):
            if request.method == "POST" and request.url.path == "/members/action":
                return httpx.Response(200, json={"user_id": 1, "branch_id": 3, "member_status": "approved"})
            raise httpx.ConnectError("down", request=request)

        client = _make(tmp_path, handler, bus)
        await client.cache.save("members", YESTERDAY)

        result = await client.mutate(
            "members",
            ApplyMembershipAction(action="approve", user_id=1, admin_id=7, branch_id=3),
        )

        assert result["member_status"] == "approved"
        company = client.cache.store.read("members")[0]["companies"][0]
        assert company["member_status"] == "approved"
        assert company["approved_rejected_by_admin_id"] == 7


class TestCacheSource:
    """Tests for the snapshot tier."""

    async def test_save_and_fetch_round_trip(self, tmp_path):
        cache = CacheSource(tmp_path / "cache")

        assert await cache.fetch("items") is None
        assert await cache.save("items", [{"id": 1}]) is True
        assert await cache.fetch("items") == [{"id": 1}]

    async def test_save_failure_is_reported_not_raised(self, tmp_path):
        cache = CacheSource(tmp_path / "cache")

        with patch.object(cache.store, "write", side_effect=StorageIOError("disk full")):
            assert await cache.save("items", [{"id": 1}]) is False
