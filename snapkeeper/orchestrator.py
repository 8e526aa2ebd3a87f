"""
Runs every configured job, one after the other, in job-name order.
A failing job is logged and counted; the remaining jobs still run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import is_disabled, resolve_job
from .errors import SnapkeeperError
from .modules import MODULES, BackupModule
from .rotation import local_now, snapshot_age_days

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    name: str
    ok: bool
    error: str = ""
    created: List[Any] = field(default_factory=list)
    pruned: List[Any] = field(default_factory=list)


@dataclass
class RunTally:
    attempted: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[JobResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.attempted - self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0


def prepare_module(
    name: str,
    raw: Any,
    provider_factory: Optional[Callable] = None,
    now: Optional[datetime] = None,
) -> BackupModule:
    job = resolve_job(name, raw)
    module = MODULES[job.module](provider_factory=provider_factory, now=now)
    module.load_configuration(job)
    module.initialise()
    return module


def run_job(
    name: str,
    raw: Any,
    provider_factory: Optional[Callable] = None,
    now: Optional[datetime] = None,
) -> JobResult:
    module = prepare_module(name, raw, provider_factory, now)
    created = module.create_backup()
    items = module.list_backups()
    pruned = module.delete_old_backups(items)
    return JobResult(name=name, ok=True, created=created, pruned=pruned)


def run_jobs(
    jobs: Mapping[str, Any],
    provider_factory: Optional[Callable] = None,
    now: Optional[datetime] = None,
) -> RunTally:
    tally = RunTally()
    for name in sorted(jobs):
        raw = jobs[name]
        if is_disabled(raw):
            logger.info('Skipping job "%s" as it is disabled in the configuration', name)
            tally.skipped += 1
            continue
        logger.info('Running job "%s" ...', name)
        tally.attempted += 1
        try:
            result = run_job(name, raw, provider_factory, now)
        except SnapkeeperError as e:
            tally.failed += 1
            logger.error('Failed to execute job "%s": %s', name, e)
            tally.results.append(JobResult(name=name, ok=False, error=str(e)))
            continue
        tally.results.append(result)

    if tally.failed:
        logger.error("Have finished running jobs with %d failures out of %d jobs", tally.failed, tally.attempted)
    else:
        logger.info("Have successfully executed %d jobs", tally.attempted)
    return tally


def report_jobs(
    jobs: Mapping[str, Any],
    provider_factory: Optional[Callable] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Managed snapshots of every enabled job with their age; nothing is created or deleted."""
    now_epoch = int(local_now(now).timestamp())
    out: List[Dict[str, Any]] = []
    for name in sorted(jobs):
        raw = jobs[name]
        if is_disabled(raw):
            continue
        try:
            module = prepare_module(name, raw, provider_factory, now)
            items = module.list_backups()
        except SnapkeeperError as e:
            logger.error('Failed to list backups of job "%s": %s', name, e)
            out.append({"job": name, "error": str(e)})
            continue
        retention = module.job.retention
        snaps = []
        for item in items:
            age = snapshot_age_days(item.timestamp, now_epoch)
            snaps.append({
                "SnapshotId": item.identifier,
                "Description": item.description,
                "StartTime": datetime.fromtimestamp(item.timestamp, timezone.utc).isoformat(),
                "AgeDays": age,
                "Expired": age > retention,
            })
        out.append({
            "job": name,
            "module": module.job.module,
            "retentionDays": retention,
            "totalSnapshots": len(snaps),
            "olderThanThreshold": sum(1 for s in snaps if s["Expired"]),
            "snapshots": snaps,
        })
    return out
