"""
Snapshot rotation: create one snapshot per volume, then delete the managed
snapshots that are older than the retention period.

Snapshot names are "<volume name or id>-<RFC3339 time>" so they are unique per
run and sort by creation time for a given volume. Pruning decisions only look
at each snapshot's own creation time; an age equal to the retention is kept.
Both passes stop at the first failed AWS call.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import CREATED_BY, CREATED_BY_TAG, BackupItem, Volume

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class SnapshotLock:
    mode: str
    duration_days: int


@dataclass(frozen=True)
class SnapshotAction:
    volume_id: str
    name: str
    snapshot_id: Optional[str]
    dry_run: bool


@dataclass(frozen=True)
class PruneDecision:
    item: BackupItem
    age_days: int
    retention: int
    delete: bool
    dry_run: bool


def local_now(now: Optional[datetime] = None) -> datetime:
    """Timezone-aware time; naive values are taken as local time."""
    if now is None:
        return datetime.now().astimezone()
    if now.tzinfo is None:
        return now.astimezone()
    return now


def snapshot_name(basename: str, now: datetime) -> str:
    return f"{basename}-{now.isoformat(timespec='seconds')}"


def snapshot_tags(name: str, now: datetime) -> Dict[str, str]:
    return {
        "Name": name,
        CREATED_BY_TAG: CREATED_BY,
        "CreateDate": now.strftime("%Y%m%d"),
        "Timestamp": str(int(now.timestamp())),
    }


def _prefix(dry_run: bool) -> str:
    return "Dryrun: " if dry_run else ""


def create_snapshots(
    volumes: Iterable[Volume],
    provider,
    dry_run: bool,
    now: Optional[datetime] = None,
    lock: Optional[SnapshotLock] = None,
) -> List[SnapshotAction]:
    actions: List[SnapshotAction] = []
    for vol in volumes:
        logger.debug('Considering backup for volume: volumeId="%s" volumeName="%s" ...', vol.id, vol.name)
        current = local_now(now)
        name = snapshot_name(vol.basename, current)
        snapshot_id = None
        if not dry_run:
            snapshot_id = provider.create_snapshot(vol.id, name, snapshot_tags(name, current))
        logger.info(
            '%sCreated snapshot: id="%s" desc="%s" vol="%s"',
            _prefix(dry_run), snapshot_id or "dryrun", name, vol.id,
        )
        if lock is not None:
            if not dry_run:
                provider.lock_snapshot(snapshot_id, lock.mode, lock.duration_days)
            logger.info(
                '%sLocked snapshot: id="%s" mode=%s duration=%dd',
                _prefix(dry_run), snapshot_id or "dryrun", lock.mode, lock.duration_days,
            )
        actions.append(SnapshotAction(volume_id=vol.id, name=name, snapshot_id=snapshot_id, dry_run=dry_run))
    return actions


def order_backups(items: Iterable[BackupItem]) -> List[BackupItem]:
    """
    Collapse items sharing a description (the later one wins) and order the
    survivors by description.
    """
    by_desc: Dict[str, BackupItem] = {}
    for item in items:
        prev = by_desc.get(item.description)
        if prev is not None and prev.identifier != item.identifier:
            logger.warning(
                'Snapshots "%s" and "%s" share the description "%s", only "%s" will be considered',
                prev.identifier, item.identifier, item.description, item.identifier,
            )
        by_desc[item.description] = item
    return [by_desc[d] for d in sorted(by_desc)]


def list_backups(volumes: Iterable[Volume], provider) -> List[BackupItem]:
    found: List[BackupItem] = []
    for vol in volumes:
        logger.debug('Listing snapshots from volume: volumeId="%s" ...', vol.id)
        for snap in provider.find_managed_snapshots(vol.id):
            logger.debug(
                'Found snapshot: id="%s" desc="%s" created="%s" vol="%s"',
                snap.id, snap.description, datetime.fromtimestamp(snap.created_at).astimezone().isoformat(), snap.volume_id,
            )
            found.append(BackupItem(identifier=snap.id, description=snap.description, timestamp=snap.created_at))
    return order_backups(found)


def snapshot_age_days(timestamp: int, now_epoch: int) -> int:
    """Whole days elapsed, truncated toward zero."""
    delta = now_epoch - timestamp
    if delta < 0:
        return -(-delta // SECONDS_PER_DAY)
    return delta // SECONDS_PER_DAY


def delete_old_backups(
    items: Iterable[BackupItem],
    provider,
    retention: int,
    dry_run: bool,
    now: Optional[datetime] = None,
) -> List[PruneDecision]:
    now_epoch = int(local_now(now).timestamp())
    decisions: List[PruneDecision] = []
    for item in items:
        age = snapshot_age_days(item.timestamp, now_epoch)
        delete = age > retention
        logger.debug(
            'Considering deletion of snapshot: id="%s" desc="%s" age=%d retention=%d ...',
            item.identifier, item.description, age, retention,
        )
        if delete:
            if not dry_run:
                provider.delete_snapshot(item.identifier)
            logger.info(
                '%sDeleted snapshot: id="%s" desc="%s" age=%d retention=%d',
                _prefix(dry_run), item.identifier, item.description, age, retention,
            )
        else:
            logger.info(
                '%sKeeping snapshot: id="%s" desc="%s" age=%d retention=%d',
                _prefix(dry_run), item.identifier, item.description, age, retention,
            )
        decisions.append(PruneDecision(item=item, age_days=age, retention=retention, delete=delete, dry_run=dry_run))
    return decisions


def prune_snapshots(
    volumes: Iterable[Volume],
    provider,
    retention: int,
    dry_run: bool,
    now: Optional[datetime] = None,
) -> List[PruneDecision]:
    return delete_old_backups(list_backups(volumes, provider), provider, retention, dry_run, now)
