"""
EC2/EBS access for the ebs-snapshot module, through the AWS CLI.
- Instances and volumes are filtered server-side with --filters
- Snapshot listing only returns snapshots carrying the CreatedBy marker tag
- Every CLI failure is translated to the snapkeeper error taxonomy
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .common import AwsCliError, aws_base, credentials_env, paginate, shell_json, shell_text, tags_to_dict, with_region
from .errors import ResourceQueryFailed, SnapshotCreateFailed, SnapshotDeleteFailed
from .models import CREATED_BY, CREATED_BY_TAG, Instance, Snapshot, TagFilter, Volume

logger = logging.getLogger(__name__)

IMDS_TOKEN_URL = "http://169.254.169.254/latest/api/token"
IMDS_INSTANCE_ID_URL = "http://169.254.169.254/latest/meta-data/instance-id"


def tag_filter_arg(tag: Optional[TagFilter]) -> List[str]:
    if tag is None or tag.empty:
        return []
    return [f"Name=tag:{tag.key},Values={tag.value}"]


def tags_match(tags: Dict[str, str], tag: Optional[TagFilter]) -> bool:
    return tag is None or tag.empty or tags.get(tag.key) == tag.value


def parse_time(value: Any) -> int:
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())


class AwsEc2Provider:
    def __init__(self, region: str, access_key_id: str = "", secret_access_key: str = "") -> None:
        self.region = region
        self.env = credentials_env(access_key_id, secret_access_key)

    @classmethod
    def from_job(cls, job) -> "AwsEc2Provider":
        s = job.settings
        return cls(s.region, s.access_key_id, s.secret_access_key)

    def _ec2(self, *args: str) -> List[str]:
        return with_region(aws_base() + ["ec2", *args], self.region)

    def find_instances(self, instance_id: str = "", tag: Optional[TagFilter] = None) -> List[Instance]:
        filters: List[str] = []
        if instance_id:
            filters.append(f"Name=instance-id,Values={instance_id}")
        filters += tag_filter_arg(tag)
        cmd = self._ec2("describe-instances", *(["--filters", *filters] if filters else []))
        try:
            reservations = paginate(cmd, result_key="Reservations", env=self.env)
        except AwsCliError as e:
            raise ResourceQueryFailed(f"DescribeInstances has failed: {e}") from e
        results: List[Instance] = []
        for r in reservations:
            for i in r.get("Instances", []):
                tags = tags_to_dict(i.get("Tags"))
                if not tags_match(tags, tag):
                    continue
                results.append(Instance(id=i.get("InstanceId", ""), name=tags.get("Name", ""), owner=r.get("OwnerId", "")))
        return results

    def find_volumes(self, instance_id: str, tag: Optional[TagFilter] = None) -> List[Volume]:
        filters = [
            f"Name=attachment.instance-id,Values={instance_id}",
            "Name=attachment.status,Values=attached",
        ] + tag_filter_arg(tag)
        try:
            vols = paginate(self._ec2("describe-volumes", "--filters", *filters), result_key="Volumes", env=self.env)
        except AwsCliError as e:
            raise ResourceQueryFailed(f"DescribeVolumes has failed for instance {instance_id}: {e}") from e
        results: List[Volume] = []
        for v in vols:
            tags = tags_to_dict(v.get("Tags"))
            if tags_match(tags, tag):
                results.append(Volume(id=v.get("VolumeId", ""), name=tags.get("Name", "")))
        return results

    def find_managed_snapshots(self, volume_id: str) -> List[Snapshot]:
        cmd = self._ec2(
            "describe-snapshots",
            "--owner-ids",
            "self",
            "--filters",
            f"Name=tag:{CREATED_BY_TAG},Values={CREATED_BY}",
            f"Name=volume-id,Values={volume_id}",
        )
        try:
            snaps = paginate(cmd, result_key="Snapshots", env=self.env)
        except AwsCliError as e:
            raise ResourceQueryFailed(f"DescribeSnapshots has failed for volume {volume_id}: {e}") from e
        return [
            Snapshot(
                id=s.get("SnapshotId", ""),
                volume_id=s.get("VolumeId", volume_id),
                description=s.get("Description", ""),
                created_at=parse_time(s["StartTime"]),
            )
            for s in snaps
            if s.get("StartTime")
        ]

    def create_snapshot(self, volume_id: str, name: str, tags: Dict[str, str]) -> str:
        spec = [{"ResourceType": "snapshot", "Tags": [{"Key": k, "Value": v} for k, v in tags.items()]}]
        cmd = self._ec2(
            "create-snapshot",
            "--volume-id",
            volume_id,
            "--description",
            name,
            "--tag-specifications",
            json.dumps(spec),
        )
        try:
            res = shell_json(cmd, self.env)
        except AwsCliError as e:
            raise SnapshotCreateFailed(f"CreateSnapshot has failed for volume {volume_id}: {e}") from e
        snapshot_id = res.get("SnapshotId")
        if not snapshot_id:
            raise SnapshotCreateFailed(f"CreateSnapshot returned no SnapshotId for volume {volume_id}")
        return snapshot_id

    def lock_snapshot(self, snapshot_id: str, mode: str, duration_days: int) -> None:
        cmd = self._ec2(
            "lock-snapshot",
            "--snapshot-id",
            snapshot_id,
            "--lock-mode",
            mode,
            "--lock-duration",
            str(duration_days),
        )
        try:
            shell_json(cmd, self.env)
        except AwsCliError as e:
            raise SnapshotCreateFailed(f"LockSnapshot has failed for snapshot {snapshot_id}: {e}") from e

    def delete_snapshot(self, snapshot_id: str) -> None:
        try:
            shell_json(self._ec2("delete-snapshot", "--snapshot-id", snapshot_id), self.env)
        except AwsCliError as e:
            raise SnapshotDeleteFailed(f"DeleteSnapshot has failed for snapshot {snapshot_id}: {e}") from e

    def detect_local_instance_id(self) -> str:
        """Ask the instance metadata service (IMDSv2, falling back to v1) who we are."""
        headers: List[str] = []
        try:
            token = shell_text(
                ["curl", "-sS", "--fail", "--max-time", "2", "-X", "PUT", IMDS_TOKEN_URL,
                 "-H", "X-aws-ec2-metadata-token-ttl-seconds: 60"]
            ).strip()
            headers = ["-H", f"X-aws-ec2-metadata-token: {token}"]
        except AwsCliError as e:
            logger.debug("No IMDSv2 token, trying IMDSv1: %s", e)
        try:
            instance_id = shell_text(["curl", "-sS", "--fail", "--max-time", "2", *headers, IMDS_INSTANCE_ID_URL]).strip()
        except AwsCliError as e:
            raise ResourceQueryFailed(f"unable to determine the EC2 instance ID: {e}") from e
        if not instance_id:
            raise ResourceQueryFailed("the instance metadata service returned an empty instance ID")
        return instance_id
