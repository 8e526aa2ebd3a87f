"""
Interface every backup module implements, and the config entries shared by all
of them.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models import BackupItem, JobDefinition
from ..validation import FieldRule

# Entries every job section understands, whatever its module.
COMMON_RULES = (
    FieldRule("enabled", "bool", default=True),
    FieldRule("dryrun", "bool", default=False),
    FieldRule("retention", "integer", default=30),
)


class BackupModule(ABC):
    """
    One backup strategy. The orchestrator drives every module through the same
    sequence: load_configuration -> initialise -> create_backup -> list_backups
    -> delete_old_backups. A new strategy subclasses this and registers itself
    in snapkeeper.modules.MODULES; nothing else has to change.
    """

    name: str = ""
    RULES: Tuple[FieldRule, ...] = ()

    def __init__(
        self,
        provider_factory: Optional[Callable[[JobDefinition], Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.provider_factory = provider_factory
        self.now = now
        self.job: Optional[JobDefinition] = None

    @classmethod
    def resolve_settings(cls, values: Dict[str, Any]) -> Any:
        """Cross-field checks on a validated section; returns the module settings object."""
        return None

    def load_configuration(self, job: JobDefinition) -> None:
        self.job = job

    @abstractmethod
    def initialise(self) -> None:
        ...

    @abstractmethod
    def create_backup(self) -> List[Any]:
        ...

    @abstractmethod
    def list_backups(self) -> List[BackupItem]:
        ...

    @abstractmethod
    def delete_old_backups(self, items: List[BackupItem]) -> List[Any]:
        ...
