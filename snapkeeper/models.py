"""
Plain data types shared by the resolver, the locator and the rotation engine.
Nothing here is persisted; every run rebuilds these from the config and AWS.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .errors import ConfigInvalidValue

TAG_RE = re.compile(r"^[A-Za-z0-9_-]+=[A-Za-z0-9_-]+$")
INSTANCE_ID_RE = re.compile(r"^i-[0-9a-f]{17}$")

LOCAL = "local"

# Marker tag on every snapshot this tool creates; only those are ever pruned.
CREATED_BY_TAG = "CreatedBy"
CREATED_BY = "snapkeeper"


def split_tag(text: str) -> Tuple[str, str]:
    """Split "key=value"; anything without exactly one "=" gives ("", "")."""
    parts = text.split("=")
    if len(parts) != 2:
        return "", ""
    return parts[0], parts[1]


@dataclass(frozen=True)
class TagFilter:
    key: str
    value: str

    @property
    def empty(self) -> bool:
        return not self.key

    @classmethod
    def parse(cls, raw: Any, option: str) -> Optional["TagFilter"]:
        """Accept "key=value" or a single-entry {key: value} mapping."""
        if raw is None or raw == "":
            return None
        if isinstance(raw, str):
            if not TAG_RE.match(raw):
                raise ConfigInvalidValue(f'Option "{option}" must be in the "TagName=TagValue" format', key=option)
            return cls(*split_tag(raw))
        if isinstance(raw, Mapping):
            if len(raw) != 1:
                raise ConfigInvalidValue(
                    f'Option "{option}" must map exactly one tag name to its value, found {len(raw)} entries',
                    key=option,
                )
            (key, value), = raw.items()
            if not all(isinstance(part, (str, int)) and not isinstance(part, bool) for part in (key, value)):
                raise ConfigInvalidValue(
                    f'Option "{option}" needs a plain tag name and value, found {key!r}: {value!r}', key=option
                )
            if not TAG_RE.match(f"{key}={value}"):
                raise ConfigInvalidValue(
                    f'Option "{option}" has an invalid tag name or value: {key!r}={value!r}', key=option
                )
            return cls(str(key), str(value))
        raise ConfigInvalidValue(
            f'Option "{option}" must be a "TagName=TagValue" string or a map, found {type(raw).__name__}',
            key=option,
        )

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


@dataclass(frozen=True)
class InstanceSelector:
    kind: str = "none"
    instance_id: str = ""

    @classmethod
    def parse(cls, raw: Optional[str]) -> "InstanceSelector":
        if not raw:
            return cls()
        if raw == LOCAL:
            return cls(kind=LOCAL)
        if not INSTANCE_ID_RE.match(raw):
            raise ConfigInvalidValue(
                'Option "instance_id" must be either "local" or in the "i-0123456789abcdef0" format',
                key="instance_id",
            )
        return cls(kind="explicit", instance_id=raw)


@dataclass(frozen=True)
class JobDefinition:
    name: str
    module: str
    enabled: bool
    dry_run: bool
    retention: int
    settings: Any = None


@dataclass(frozen=True)
class Instance:
    id: str
    name: str = ""
    owner: str = ""


@dataclass(frozen=True)
class Volume:
    id: str
    name: str = ""

    @property
    def basename(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class Snapshot:
    id: str
    volume_id: str
    description: str
    created_at: int


@dataclass(frozen=True)
class BackupItem:
    identifier: str
    description: str
    timestamp: int
