"""
Tests for store.py - idempotent region and institution writes.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine

from regioncatalog.context import RunContext
from regioncatalog.errors import DeadlineExceeded, StoreError
from regioncatalog.store import UpsertStore


class TestUpsertRegion:
    """Test insert-or-lookup for regions."""

    def test_double_upsert_returns_same_id(self, store, ctx):
        """Upserting "Bar" twice yields existed=False then existed=True with one id."""
        first_id, first_existed = store.upsert_region("Bar", ctx)
        second_id, second_existed = store.upsert_region("Bar", ctx)

        assert first_existed is False
        assert second_existed is True
        assert first_id == second_id
        assert store.count_regions() == 1

    def test_distinct_names_get_distinct_ids(self, store, ctx):
        foo_id, _ = store.upsert_region("Foo", ctx)
        bar_id, _ = store.upsert_region("Bar", ctx)

        assert foo_id != bar_id
        assert store.count_regions() == 2

    def test_names_are_stored_verbatim(self, store, ctx):
        """Trimming is the caller's job; the store keys on the exact string."""
        store.upsert_region("Foo", ctx)
        _, existed = store.upsert_region(" Foo ", ctx)

        assert existed is False

    def test_null_name_raises_store_error(self, store, ctx):
        with pytest.raises(StoreError):
            store.upsert_region(None, ctx)

    def test_cancelled_context(self, store):
        ctx = RunContext()
        ctx.cancel()

        with pytest.raises(DeadlineExceeded):
            store.upsert_region("Foo", ctx)

        assert store.count_regions() == 0


class TestUpsertInstitution:
    """Test conditional insert for institutions."""

    def test_second_insert_reports_existing(self, store, ctx):
        region_id, _ = store.upsert_region("Kazan", ctx)

        assert store.upsert_institution(region_id, "KFU", ctx) is False
        assert store.upsert_institution(region_id, "KFU", ctx) is True
        assert store.count_institutions() == 1

    def test_same_name_in_different_regions(self, store, ctx):
        """Institutions are keyed by (region, name), so namesakes in two regions both persist."""
        moscow_id, _ = store.upsert_region("Moscow", ctx)
        kazan_id, _ = store.upsert_region("Kazan", ctx)

        assert store.upsert_institution(moscow_id, "State University", ctx) is False
        assert store.upsert_institution(kazan_id, "State University", ctx) is False
        assert store.count_institutions() == 2

    def test_missing_region_raises_store_error(self, store, ctx):
        with pytest.raises(StoreError) as exc_info:
            store.upsert_institution(None, "Orphan", ctx)

        assert exc_info.value.details["institution"] == "Orphan"

    def test_unknown_region_raises_store_error(self, store, ctx):
        with pytest.raises(StoreError) as exc_info:
            store.upsert_institution(999999, "Orphan", ctx)

        assert exc_info.value.details["region_id"] == 999999
        assert store.count_institutions() == 0


class TestStoreFailures:
    """Test that non-conflict failures surface as StoreError."""

    def test_missing_tables(self, tmp_path, ctx):
        engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        store = UpsertStore(engine)

        with pytest.raises(StoreError):
            store.upsert_region("Foo", ctx)

        engine.dispose()

    def test_unsupported_dialect(self):
        engine = MagicMock()
        engine.dialect.name = "oracle"

        with pytest.raises(ValueError):
            UpsertStore(engine)


class TestListing:
    """Test read helpers."""

    def test_list_regions_with_counts(self, store, ctx):
        kazan_id, _ = store.upsert_region("Kazan", ctx)
        store.upsert_region("Anapa", ctx)
        store.upsert_institution(kazan_id, "KFU", ctx)
        store.upsert_institution(kazan_id, "KAI", ctx)

        assert store.list_regions() == [("Anapa", 0), ("Kazan", 2)]
        assert store.list_regions(limit=1) == [("Anapa", 0)]
