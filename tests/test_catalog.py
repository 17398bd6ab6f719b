"""
Tests for the catalog cache.

Covers loading, failure handling and superseded requests.
"""

import asyncio

import pytest
from fakes import FakeCatalogLookup, RecordingCatalogObserver, make_entry

from purchasekit.exceptions import CatalogLookupError
from purchasekit.services.catalog import CatalogCache


class TestCatalogLoad:
    """Tests for CatalogCache.load."""

    @pytest.mark.asyncio
    async def test_load_requests_exact_ids(self, catalog, lookup):
        """The lookup receives exactly the requested ids."""
        task = catalog.load({"pro_upgrade", "remove_ads"})
        await lookup.wait_for_requests(1)
        lookup.respond(0, [])
        await task

        assert lookup.requests[0][0] == frozenset({"pro_upgrade", "remove_ads"})

    @pytest.mark.asyncio
    async def test_success_replaces_products_and_notifies(self, catalog, lookup):
        """A successful load replaces the cache wholesale."""
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)

        first = catalog.load({"pro_upgrade"})
        await lookup.wait_for_requests(1)
        lookup.respond(0, [make_entry("pro_upgrade")])
        await first

        second = catalog.load({"remove_ads"})
        await lookup.wait_for_requests(2)
        lookup.respond(1, [make_entry("remove_ads")])
        await second

        assert [p.product_id for p in catalog.all()] == ["remove_ads"]
        assert [[p.product_id for p in update] for update in observer.updates] == [
            ["pro_upgrade"],
            ["remove_ads"],
        ]
        assert catalog.is_loading is False

    @pytest.mark.asyncio
    async def test_failure_keeps_products_and_notifies(self, catalog, lookup):
        """A failed load leaves the cache untouched."""
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)

        first = catalog.load({"pro_upgrade"})
        await lookup.wait_for_requests(1)
        lookup.respond(0, [make_entry("pro_upgrade")])
        await first

        second = catalog.load({"pro_upgrade"})
        await lookup.wait_for_requests(2)
        lookup.fail(1, ConnectionError("offline"))
        await second

        assert [p.product_id for p in catalog.all()] == ["pro_upgrade"]
        assert len(observer.failures) == 1
        error = observer.failures[0]
        assert isinstance(error, CatalogLookupError)
        assert "offline" in str(error)
        assert error.product_ids == frozenset({"pro_upgrade"})
        assert catalog.is_loading is False

    @pytest.mark.asyncio
    async def test_lookup_error_passed_through(self, catalog, lookup):
        """A CatalogLookupError from the lookup reaches observers as-is."""
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)
        error = CatalogLookupError({"pro_upgrade"}, "store unavailable")

        task = catalog.load({"pro_upgrade"})
        await lookup.wait_for_requests(1)
        lookup.fail(0, error)
        await task

        assert observer.failures == [error]

    @pytest.mark.asyncio
    async def test_is_loading_while_outstanding(self, catalog, lookup):
        task = catalog.load({"pro_upgrade"})
        await lookup.wait_for_requests(1)

        assert catalog.is_loading is True

        lookup.respond(0, [])
        await task
        assert catalog.is_loading is False


class TestCatalogCancellation:
    """Tests for superseded catalog requests."""

    @pytest.mark.asyncio
    async def test_new_load_cancels_outstanding(self, catalog, lookup):
        """Only the most recent load's result is observable."""
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)

        first = catalog.load({"A"})
        await lookup.wait_for_requests(1)
        second = catalog.load({"B"})
        await lookup.wait_for_requests(2)

        lookup.respond(1, [make_entry("B")])
        await second

        with pytest.raises(asyncio.CancelledError):
            await first

        assert [p.product_id for p in catalog.all()] == ["B"]
        assert len(observer.updates) == 1

    @pytest.mark.asyncio
    async def test_immediate_reload_never_queries_first_ids(self, catalog, lookup):
        """A load superseded before it starts never reaches the lookup."""
        catalog.load({"A"})
        second = catalog.load({"B"})
        await lookup.wait_for_requests(1)

        lookup.respond(0, [make_entry("B")])
        await second

        assert [ids for ids, _ in lookup.requests] == [frozenset({"B"})]
        assert [p.product_id for p in catalog.all()] == ["B"]

    @pytest.mark.asyncio
    async def test_late_response_for_superseded_request_is_discarded(self):
        """A lookup that answers after cancellation cannot overwrite newer data."""
        lookup = FakeCatalogLookup(ignore_cancellation=True)
        catalog = CatalogCache(lookup)
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)

        first = catalog.load({"A"})
        await lookup.wait_for_requests(1)
        second = catalog.load({"B"})
        await lookup.wait_for_requests(2)

        lookup.respond(1, [make_entry("B")])
        await second
        lookup.respond(0, [make_entry("A")])
        await first

        assert [p.product_id for p in catalog.all()] == ["B"]
        assert len(observer.updates) == 1

    @pytest.mark.asyncio
    async def test_late_failure_for_superseded_request_is_discarded(self):
        """A stale failure is not reported to observers."""
        lookup = FakeCatalogLookup(ignore_cancellation=True)
        catalog = CatalogCache(lookup)
        observer = RecordingCatalogObserver()
        catalog.add_observer(observer)

        first = catalog.load({"A"})
        await lookup.wait_for_requests(1)
        second = catalog.load({"B"})
        await lookup.wait_for_requests(2)

        lookup.respond(1, [make_entry("B")])
        await second
        lookup.fail(0, ConnectionError("late"))
        await first

        assert observer.failures == []
        assert [p.product_id for p in catalog.all()] == ["B"]

    @pytest.mark.asyncio
    async def test_cancel_clears_outstanding(self, catalog, lookup):
        task = catalog.load({"A"})
        await lookup.wait_for_requests(1)

        catalog.cancel()

        assert catalog.is_loading is False
        with pytest.raises(asyncio.CancelledError):
            await task


class TestCatalogReads:
    """Tests for all() and fetch()."""

    @pytest.mark.asyncio
    async def test_fetch_exact_match(self, catalog, lookup):
        task = catalog.load({"pro_upgrade", "pro_upgrade_plus"})
        await lookup.wait_for_requests(1)
        lookup.respond(0, [make_entry("pro_upgrade_plus"), make_entry("pro_upgrade", "9.99")])
        await task

        product = catalog.fetch("pro_upgrade")

        assert product is not None
        assert product.product_id == "pro_upgrade"
        assert str(product.price) == "9.99"

    def test_fetch_missing_returns_none(self, catalog):
        assert catalog.fetch("pro_upgrade") is None

    def test_all_empty_before_load(self, catalog):
        assert catalog.all() == []

    def test_load_requires_running_loop(self, catalog):
        """Loading outside an event loop is a programming error."""
        with pytest.raises(RuntimeError):
            catalog.load({"pro_upgrade"})
