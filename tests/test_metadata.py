"""Tests for static metadata loading."""

import asyncio
import logging

import httpx
import pytest

from tornstock.errors import TransportError, UpstreamError, UpstreamValidationError
from tests.conftest import make_feed

RATE_LIMITED = (429, {"error": {"code": 3, "error": "Rate limit exceeded"}})


class TestMetadataLoad:
    """Tests for MetadataStore.load."""

    def test_builds_metadata_from_feed(self, context):
        asyncio.run(context.metadata.load())
        meta = context.metadata.get("mex", 258)
        assert meta.name == "Jaguar Plushie"
        assert meta.cost == 10000
        assert meta.flight_time == 36
        assert len(context.metadata) == 1

    def test_skips_items_without_id_or_name(self, context, upstream):
        upstream.yata = [(200, make_feed({"mex": {"update": 1, "stocks": [
            {"id": 258, "name": "Jaguar Plushie", "quantity": 1, "cost": 1},
            {"name": "Nameless id", "quantity": 1, "cost": 1},
            {"id": 999, "quantity": 1, "cost": 1},
        ]}}))]
        asyncio.run(context.metadata.load())
        assert list(context.metadata.items) == ["mex|258"]

    def test_flight_time_from_feed_for_unknown_country(self, context, upstream, caplog):
        upstream.yata = [(200, make_feed({
            "xyz": {"update": 1, "stocks": [{"id": 1, "name": "A", "quantity": 1, "cost": 1, "flight_time": 90}]},
            "qqq": {"update": 1, "stocks": [{"id": 2, "name": "B", "quantity": 1, "cost": 1}]},
        }))]
        with caplog.at_level(logging.WARNING):
            asyncio.run(context.metadata.load())
        assert context.metadata.get("xyz", 1).flight_time == 90
        assert context.metadata.get("qqq", 2).flight_time == 0
        assert "Missing or invalid flight time for item 2 in qqq" in caplog.text

    def test_rate_limit_is_retried_after_backoff(self, context, upstream, sleeps):
        context.metadata.rate_limit_backoff = 30
        upstream.yata = [RATE_LIMITED, RATE_LIMITED, (200, make_feed())]
        asyncio.run(context.metadata.load())
        assert upstream.yata_calls == 3
        assert sleeps.delays.count(30) == 2
        assert context.metadata.get("mex", 258) is not None

    def test_other_upstream_errors_are_raised(self, context, upstream):
        upstream.yata = [(500, {"error": {"code": 1, "error": "Server error"}})]
        with pytest.raises(UpstreamError) as excinfo:
            asyncio.run(context.metadata.load())
        assert excinfo.value.code == 1
        assert excinfo.value.status_code == 500

    def test_network_errors_are_raised(self, context, upstream):
        upstream.yata = [httpx.ConnectError("unreachable")]
        with pytest.raises(TransportError):
            asyncio.run(context.metadata.load())

    def test_invalid_feed_is_raised(self, context, upstream):
        upstream.yata = [(200, {"stocks": {}})]
        with pytest.raises(UpstreamValidationError):
            asyncio.run(context.metadata.load())
