"""
The ebs-snapshot module: config rules for a job section, volume discovery on
EC2 and snapshot rotation for the volumes it finds.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .. import rotation
from ..errors import ConfigInvalidValue
from ..locator import locate_volumes
from ..models import BackupItem, InstanceSelector, JobDefinition, TagFilter, Volume
from ..provider_aws import AwsEc2Provider
from ..rotation import PruneDecision, SnapshotAction, SnapshotLock
from ..validation import FieldRule
from .base import COMMON_RULES, BackupModule

logger = logging.getLogger(__name__)

LOCK_MODES = ("compliance", "governance")


@dataclass(frozen=True)
class EbsSettings:
    region: str
    access_key_id: str = ""
    secret_access_key: str = ""
    instance: InstanceSelector = InstanceSelector()
    instance_tag: Optional[TagFilter] = None
    volume_tag: Optional[TagFilter] = None
    lock: Optional[SnapshotLock] = None


class EbsSnapshotModule(BackupModule):
    """Snapshots the EBS volumes attached to the selected EC2 instances."""

    name = "ebs-snapshot"
    RULES = (
        (FieldRule("module", "string", mandatory=True, allowed=(name,)),)
        + COMMON_RULES
        + (
            FieldRule("aws_region", "string", mandatory=True),
            FieldRule("accesskey_id", "string"),
            FieldRule("accesskey_secret", "string"),
            FieldRule("instance_id", "string"),
            FieldRule("instance_tag"),
            FieldRule("volume_tag"),
            FieldRule("lock_mode", "string", allowed=LOCK_MODES),
            FieldRule("lock_duration", "integer"),
        )
    )

    def __init__(
        self,
        provider_factory: Optional[Callable[[JobDefinition], Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        super().__init__(provider_factory, now)
        self.provider = None
        self.volumes: List[Volume] = []

    @classmethod
    def resolve_settings(cls, values: Dict[str, Any]) -> EbsSettings:
        region = values["aws_region"].strip()
        if not region:
            raise ConfigInvalidValue('Option "aws_region" must not be empty', key="aws_region")

        key_id = values.get("accesskey_id", "")
        secret = values.get("accesskey_secret", "")
        if bool(key_id) != bool(secret):
            raise ConfigInvalidValue(
                'Options "accesskey_id" and "accesskey_secret" must be specified together', key="accesskey_id"
            )

        lock = None
        mode = values.get("lock_mode")
        duration = values.get("lock_duration")
        if mode:
            if duration is None or duration <= 0:
                raise ConfigInvalidValue(
                    'Option "lock_duration" must be a number of days greater than 0 when "lock_mode" is set',
                    key="lock_duration",
                )
            lock = SnapshotLock(mode=mode, duration_days=duration)
        elif duration is not None:
            raise ConfigInvalidValue('Option "lock_duration" requires "lock_mode"', key="lock_duration")

        return EbsSettings(
            region=region,
            access_key_id=key_id,
            secret_access_key=secret,
            instance=InstanceSelector.parse(values.get("instance_id")),
            instance_tag=TagFilter.parse(values.get("instance_tag"), "instance_tag"),
            volume_tag=TagFilter.parse(values.get("volume_tag"), "volume_tag"),
            lock=lock,
        )

    def initialise(self) -> None:
        factory = self.provider_factory or AwsEc2Provider.from_job
        self.provider = factory(self.job)
        logger.debug(
            'Job "%s": region=%s static credentials=%s',
            self.job.name, self.job.settings.region, "yes" if self.job.settings.access_key_id else "no",
        )
        self.volumes = locate_volumes(self.job, self.provider)

    def create_backup(self) -> List[SnapshotAction]:
        return rotation.create_snapshots(
            self.volumes, self.provider, self.job.dry_run, now=self.now, lock=self.job.settings.lock
        )

    def list_backups(self) -> List[BackupItem]:
        return rotation.list_backups(self.volumes, self.provider)

    def delete_old_backups(self, items: List[BackupItem]) -> List[PruneDecision]:
        return rotation.delete_old_backups(items, self.provider, self.job.retention, self.job.dry_run, now=self.now)
