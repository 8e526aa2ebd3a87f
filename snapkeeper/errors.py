"""
Exceptions raised by snapkeeper.

Configuration problems abort a single job (or the whole run when the global
section or the document itself is broken); provider failures abort the rest of
the current job's rotation pass.
"""
from __future__ import annotations

from typing import Optional


class SnapkeeperError(Exception):
    pass


class ConfigError(SnapkeeperError):
    def __init__(self, message: str, key: Optional[str] = None, job: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.job = job

    def __str__(self) -> str:
        if self.job:
            return f'job "{self.job}": {self.message}'
        return self.message


class ConfigMissingField(ConfigError):
    pass


class ConfigUnknownField(ConfigError):
    pass


class ConfigTypeMismatch(ConfigError):
    pass


class ConfigInvalidValue(ConfigError):
    pass


class ConfigLoadError(ConfigError):
    pass


class ResourceQueryFailed(SnapkeeperError):
    pass


class SnapshotCreateFailed(SnapkeeperError):
    pass


class SnapshotDeleteFailed(SnapkeeperError):
    pass
