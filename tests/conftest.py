"""Shared fixtures: a fixed clock and an in-memory EC2 provider."""

from datetime import datetime, timezone

import pytest

from snapkeeper.errors import SnapshotCreateFailed, SnapshotDeleteFailed
from snapkeeper.models import Instance, Snapshot, Volume

DAY = 86400
NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
NOW_EPOCH = int(NOW.timestamp())
LOCAL_ID = "i-0123456789abcdef0"


class FakeProvider:
    """Records every call; filters only on instance id like the real thing."""

    def __init__(self, instances=None, volumes=None, snapshots=None, local_id=LOCAL_ID):
        self.instances = instances or []
        self.volumes = volumes or {}
        self.snapshots = snapshots or {}
        self.local_id = local_id
        self.calls = []
        self.created = []
        self.locked = []
        self.deleted = []
        self.fail_create_on = set()
        self.fail_delete_on = set()
        self.fail_lock_on = set()
        self._seq = 0

    def detect_local_instance_id(self):
        self.calls.append(("detect_local_instance_id",))
        return self.local_id

    def find_instances(self, instance_id="", tag=None):
        self.calls.append(("find_instances", instance_id, tag))
        return [i for i in self.instances if not instance_id or i.id == instance_id]

    def find_volumes(self, instance_id, tag=None):
        self.calls.append(("find_volumes", instance_id, tag))
        return list(self.volumes.get(instance_id, []))

    def find_managed_snapshots(self, volume_id):
        self.calls.append(("find_managed_snapshots", volume_id))
        return list(self.snapshots.get(volume_id, []))

    def create_snapshot(self, volume_id, name, tags):
        self.calls.append(("create_snapshot", volume_id, name))
        if volume_id in self.fail_create_on:
            raise SnapshotCreateFailed(f"CreateSnapshot has failed for volume {volume_id}")
        self._seq += 1
        self.created.append((volume_id, name, tags))
        return f"snap-{self._seq:017x}"

    def lock_snapshot(self, snapshot_id, mode, duration_days):
        self.calls.append(("lock_snapshot", snapshot_id))
        if snapshot_id in self.fail_lock_on:
            raise SnapshotCreateFailed(f"LockSnapshot has failed for snapshot {snapshot_id}")
        self.locked.append((snapshot_id, mode, duration_days))

    def delete_snapshot(self, snapshot_id):
        self.calls.append(("delete_snapshot", snapshot_id))
        if snapshot_id in self.fail_delete_on:
            raise SnapshotDeleteFailed(f"DeleteSnapshot has failed for snapshot {snapshot_id}")
        self.deleted.append(snapshot_id)


def daily_snapshots(volume_id, days, now_epoch=NOW_EPOCH):
    """One managed snapshot per day of age in `days`, named after the volume."""
    return [
        Snapshot(
            id=f"snap-{volume_id}-{d}",
            volume_id=volume_id,
            description=f"{volume_id}-day{d:02d}",
            created_at=now_epoch - d * DAY,
        )
        for d in days
    ]


def job_section(**overrides):
    section = {"module": "ebs-snapshot", "aws_region": "eu-west-1"}
    section.update(overrides)
    return section


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def three_volume_provider():
    """Two instances, three volumes, seven daily snapshots (age 0..6) per volume."""
    instances = [Instance("i-00000000000000001", "web-1", "111122223333"),
                 Instance("i-00000000000000002", "web-2", "111122223333")]
    volumes = {
        "i-00000000000000001": [Volume("vol-a", "web-1-root"), Volume("vol-b", "")],
        "i-00000000000000002": [Volume("vol-c", "web-2-root")],
    }
    snapshots = {v: daily_snapshots(v, range(7)) for v in ("vol-a", "vol-b", "vol-c")}
    return FakeProvider(instances=instances, volumes=volumes, snapshots=snapshots)
