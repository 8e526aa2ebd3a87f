"""Backup modules, registered by the name used in a job's "module" entry."""
from __future__ import annotations

from typing import Dict, Type

from .base import BackupModule
from .ebs_snapshot import EbsSettings, EbsSnapshotModule

MODULES: Dict[str, Type[BackupModule]] = {
    EbsSnapshotModule.name: EbsSnapshotModule,
}

__all__ = ["BackupModule", "EbsSettings", "EbsSnapshotModule", "MODULES"]
