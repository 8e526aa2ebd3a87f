"""Tests for snapshot creation and retention pruning."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from snapkeeper.errors import SnapshotCreateFailed, SnapshotDeleteFailed
from snapkeeper.models import BackupItem, Snapshot, Volume
from snapkeeper.rotation import (
    SnapshotLock,
    create_snapshots,
    delete_old_backups,
    list_backups,
    local_now,
    order_backups,
    prune_snapshots,
    snapshot_age_days,
    snapshot_name,
    snapshot_tags,
)

from conftest import DAY, NOW, NOW_EPOCH, FakeProvider, daily_snapshots

VOLUMES = [Volume("vol-a", "web-root"), Volume("vol-b", ""), Volume("vol-c", "db-data")]


class TestNaming:

    def test_name_is_rfc3339_with_offset(self):
        assert snapshot_name("web-root", NOW) == "web-root-2024-06-15T12:00:00+00:00"

    def test_name_keeps_local_offset(self):
        tz = timezone(timedelta(hours=2))
        assert snapshot_name("vol-b", datetime(2024, 1, 2, 3, 4, 5, 999, tzinfo=tz)) == "vol-b-2024-01-02T03:04:05+02:00"

    def test_names_sort_by_time(self):
        earlier = snapshot_name("web-root", NOW - timedelta(seconds=1))
        assert earlier < snapshot_name("web-root", NOW)

    def test_tags(self):
        tags = snapshot_tags("web-root-x", NOW)
        assert tags == {
            "Name": "web-root-x",
            "CreatedBy": "snapkeeper",
            "CreateDate": "20240615",
            "Timestamp": str(NOW_EPOCH),
        }

    def test_local_now_is_aware(self):
        assert local_now().tzinfo is not None
        assert local_now(datetime(2024, 1, 1)).tzinfo is not None
        assert local_now(NOW) is NOW


class TestCreate:

    def test_one_snapshot_per_volume_in_order(self):
        provider = FakeProvider()
        actions = create_snapshots(VOLUMES, provider, dry_run=False, now=NOW)
        assert [c[0] for c in provider.created] == ["vol-a", "vol-b", "vol-c"]
        assert [a.name for a in actions] == [
            "web-root-2024-06-15T12:00:00+00:00",
            "vol-b-2024-06-15T12:00:00+00:00",
            "db-data-2024-06-15T12:00:00+00:00",
        ]
        assert all(a.snapshot_id.startswith("snap-") for a in actions)
        assert provider.created[0][2]["CreatedBy"] == "snapkeeper"

    def test_failure_stops_remaining_volumes(self):
        provider = FakeProvider()
        provider.fail_create_on.add("vol-b")
        with pytest.raises(SnapshotCreateFailed):
            create_snapshots(VOLUMES, provider, dry_run=False, now=NOW)
        assert [c[0] for c in provider.created] == ["vol-a"]
        assert ("create_snapshot", "vol-c", "db-data-2024-06-15T12:00:00+00:00") not in provider.calls

    def test_dry_run_makes_no_calls(self):
        provider = FakeProvider()
        actions = create_snapshots(VOLUMES, provider, dry_run=True, now=NOW)
        assert provider.calls == []
        assert [a.snapshot_id for a in actions] == [None, None, None]
        assert all(a.dry_run for a in actions)

    def test_dry_run_logs_same_content(self, caplog):
        caplog.set_level(logging.INFO, logger="snapkeeper")
        create_snapshots(VOLUMES[:1], FakeProvider(), dry_run=False, now=NOW)
        real = caplog.records[-1].getMessage()
        caplog.clear()
        create_snapshots(VOLUMES[:1], FakeProvider(), dry_run=True, now=NOW)
        dry = caplog.records[-1].getMessage()
        assert dry.startswith("Dryrun: ")
        assert dry[len("Dryrun: "):] == real.replace("snap-00000000000000001", "dryrun")

    def test_lock_after_create(self):
        provider = FakeProvider()
        create_snapshots(VOLUMES[:2], provider, dry_run=False, now=NOW, lock=SnapshotLock("compliance", 7))
        assert provider.locked == [
            ("snap-00000000000000001", "compliance", 7),
            ("snap-00000000000000002", "compliance", 7),
        ]

    def test_lock_failure_still_logs_created_snapshot(self, caplog):
        caplog.set_level(logging.INFO, logger="snapkeeper")
        provider = FakeProvider()
        provider.fail_lock_on.add("snap-00000000000000001")
        with pytest.raises(SnapshotCreateFailed, match="LockSnapshot"):
            create_snapshots(VOLUMES, provider, dry_run=False, now=NOW, lock=SnapshotLock("compliance", 7))
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith('Created snapshot: id="snap-00000000000000001"') for m in messages)
        assert [c[0] for c in provider.created] == ["vol-a"]

    def test_no_lock_in_dry_run(self):
        provider = FakeProvider()
        create_snapshots(VOLUMES, provider, dry_run=True, now=NOW, lock=SnapshotLock("compliance", 7))
        assert provider.locked == []

    def test_no_volumes(self):
        provider = FakeProvider()
        assert create_snapshots([], provider, dry_run=False, now=NOW) == []
        assert provider.calls == []


class TestListing:

    def test_ordered_by_description(self):
        items = [BackupItem("id-b", "b", 1), BackupItem("id-a", "a", 2), BackupItem("id-c", "c", 3)]
        assert [i.description for i in order_backups(items)] == ["a", "b", "c"]

    def test_duplicate_descriptions_last_wins(self, caplog):
        caplog.set_level(logging.WARNING, logger="snapkeeper")
        items = [BackupItem("id-1", "same", 1), BackupItem("id-2", "other", 2), BackupItem("id-3", "same", 3)]
        out = order_backups(items)
        assert out == [BackupItem("id-2", "other", 2), BackupItem("id-3", "same", 3)]
        assert "share the description" in caplog.text

    def test_list_backups_across_volumes(self):
        provider = FakeProvider(snapshots={
            "vol-a": [Snapshot("snap-2", "vol-a", "web-root-2", 20), Snapshot("snap-1", "vol-a", "web-root-1", 10)],
            "vol-c": [Snapshot("snap-3", "vol-c", "db-data-1", 30)],
        })
        items = list_backups(VOLUMES, provider)
        assert [i.identifier for i in items] == ["snap-3", "snap-1", "snap-2"]
        assert [c for c in provider.calls if c[0] == "find_managed_snapshots"] == [
            ("find_managed_snapshots", "vol-a"),
            ("find_managed_snapshots", "vol-b"),
            ("find_managed_snapshots", "vol-c"),
        ]

    def test_collision_across_volumes(self):
        provider = FakeProvider(snapshots={
            "vol-a": [Snapshot("snap-1", "vol-a", "shared-name", 10)],
            "vol-b": [Snapshot("snap-2", "vol-b", "shared-name", 20)],
        })
        items = list_backups(VOLUMES, provider)
        assert items == [BackupItem("snap-2", "shared-name", 20)]


class TestAge:

    @pytest.mark.parametrize("elapsed,days", [
        (0, 0),
        (DAY - 1, 0),
        (DAY, 1),
        (5 * DAY + 1, 5),
        (6 * DAY - 1, 5),
        (-1, 0),
        (-DAY - 1, -1),
    ])
    def test_whole_days_truncated(self, elapsed, days):
        assert snapshot_age_days(NOW_EPOCH - elapsed, NOW_EPOCH) == days


class TestPrune:

    def test_retention_boundary(self):
        provider = FakeProvider()
        items = [
            BackupItem("snap-equal", "a", NOW_EPOCH - 5 * DAY),
            BackupItem("snap-plus-one-second", "b", NOW_EPOCH - 5 * DAY - 1),
            BackupItem("snap-six", "c", NOW_EPOCH - 6 * DAY),
        ]
        decisions = delete_old_backups(items, provider, retention=5, dry_run=False, now=NOW)
        assert [(d.item.identifier, d.age_days, d.delete) for d in decisions] == [
            ("snap-equal", 5, False),
            ("snap-plus-one-second", 5, False),
            ("snap-six", 6, True),
        ]
        assert provider.deleted == ["snap-six"]

    def test_day_over_retention_is_deleted(self):
        provider = FakeProvider()
        items = [BackupItem("snap-old", "a", NOW_EPOCH - 6 * DAY - 1)]
        decisions = delete_old_backups(items, provider, retention=5, dry_run=False, now=NOW)
        assert decisions[0].delete
        assert provider.deleted == ["snap-old"]

    def test_dry_run_deletes_nothing(self):
        provider = FakeProvider()
        items = [BackupItem("snap-old", "a", NOW_EPOCH - 40 * DAY)]
        decisions = delete_old_backups(items, provider, retention=30, dry_run=True, now=NOW)
        assert decisions[0].delete is True
        assert decisions[0].dry_run is True
        assert provider.calls == []

    def test_delete_failure_stops_remaining(self):
        provider = FakeProvider()
        provider.fail_delete_on.add("snap-2")
        items = [BackupItem(f"snap-{n}", f"d{n}", NOW_EPOCH - 90 * DAY) for n in (1, 2, 3)]
        with pytest.raises(SnapshotDeleteFailed):
            delete_old_backups(items, provider, retention=30, dry_run=False, now=NOW)
        assert provider.deleted == ["snap-1"]
        assert ("delete_snapshot", "snap-3") not in provider.calls

    def test_prune_seven_days_keep_five(self):
        provider = FakeProvider(snapshots={"vol-a": daily_snapshots("vol-a", range(7))})
        decisions = prune_snapshots(VOLUMES[:1], provider, retention=5, dry_run=False, now=NOW)
        assert len(decisions) == 7
        assert provider.deleted == ["snap-vol-a-6"]
        assert sum(1 for d in decisions if not d.delete) == 6
