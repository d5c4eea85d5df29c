"""SQLite progress store tests against a real database file."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from ami_bakery.db.progress_store import SqlProgressStore
from ami_bakery.inmemory import InMemoryProgressStore
from ami_bakery.provisioning.errors import PersistenceError
from ami_bakery.settings import BakerySettings

REGIONS = ['us-east-1', 'us-west-2', 'eu-west-1']
KINDS = ['hvm', 'pv']


async def _planned_store(path: Path) -> SqlProgressStore:
    store = SqlProgressStore(str(path))
    await store.create_schema()
    await store.seed_pending(REGIONS, KINDS)
    return store


class TestMarkDone:
    @pytest.mark.asyncio
    async def test_flips_row_to_done(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        affected = await store.mark_done('hvm', 'us-east-1', 'img-111')

        assert affected == 1
        record = await store.get_record('us-east-1', 'hvm')
        assert record.done is True
        assert record.status == 'done'
        assert record.image_id == 'img-111'

    @pytest.mark.asyncio
    async def test_leaves_other_rows_pending(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        await store.mark_done('hvm', 'us-east-1', 'img-111')

        assert (await store.get_record('us-east-1', 'pv')).done is False
        assert (await store.get_record('us-west-2', 'hvm')).done is False

    @pytest.mark.asyncio
    async def test_missing_row_is_not_inserted(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        affected = await store.mark_done('hvm', 'ap-south-1', 'img-999')

        assert affected == 0
        assert await store.get_record('ap-south-1', 'hvm') is None

    @pytest.mark.asyncio
    async def test_writes_are_visible_to_other_connections(self, tmp_path):
        path = tmp_path / 'pacman.db'
        store = await _planned_store(path)

        await store.mark_done('pv', 'eu-west-1', 'img-pv')

        with sqlite3.connect(path) as conn:
            row = conn.execute(
                'SELECT ami_status, ami_id FROM bake_ami WHERE region = ? AND ami_type = ?',
                ('eu-west-1', 'pv'),
            ).fetchone()
        assert row == (1, 'img-pv')

    @pytest.mark.asyncio
    async def test_missing_table_raises_persistence_error(self, tmp_path):
        store = SqlProgressStore(str(tmp_path / 'empty.db'))

        with pytest.raises(PersistenceError):
            await store.mark_done('hvm', 'us-east-1', 'img-111')

    @pytest.mark.asyncio
    async def test_concurrent_regions_do_not_interfere(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        results = await asyncio.gather(*(
            store.mark_done('hvm', region, f'img-{region}') for region in REGIONS
        ))

        assert results == [1, 1, 1]
        for region in REGIONS:
            record = await store.get_record(region, 'hvm')
            assert record.image_id == f'img-{region}'
        assert await store.pending_regions('hvm') == []
        assert await store.pending_regions('pv') == sorted(REGIONS)


class TestPlanning:
    @pytest.mark.asyncio
    async def test_seed_never_resets_done_rows(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')
        await store.mark_done('hvm', 'us-west-2', 'img-222')

        await store.seed_pending(REGIONS, KINDS)

        record = await store.get_record('us-west-2', 'hvm')
        assert record.done is True
        assert record.image_id == 'img-222'

    @pytest.mark.asyncio
    async def test_pending_regions_shrink_after_mark_done(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        await store.mark_done('hvm', 'us-west-2', 'img-222')

        assert await store.pending_regions('hvm') == ['eu-west-1', 'us-east-1']

    @pytest.mark.asyncio
    async def test_create_schema_is_repeatable(self, tmp_path):
        store = await _planned_store(tmp_path / 'pacman.db')

        await store.create_schema()

        assert len(await store.pending_regions('pv')) == 3

    def test_from_settings_uses_db_path(self, tmp_path):
        path = str(tmp_path / 'custom.db')

        store = SqlProgressStore.from_settings(BakerySettings(db_path=path))

        assert store.db_path == path


class TestInMemoryProgressStore:
    @pytest.mark.asyncio
    async def test_matches_sql_semantics(self):
        store = InMemoryProgressStore()
        store.seed(['us-east-1'], ['hvm'])

        assert await store.mark_done('hvm', 'us-east-1', 'img-111') == 1
        assert await store.mark_done('hvm', 'eu-west-1', 'img-222') == 0
        assert await store.pending_regions('hvm') == []

    @pytest.mark.asyncio
    async def test_fail_with_raises_persistence_error(self):
        store = InMemoryProgressStore(fail_with=RuntimeError('locked'))

        with pytest.raises(PersistenceError, match='locked'):
            await store.mark_done('hvm', 'us-east-1', 'img-111')
