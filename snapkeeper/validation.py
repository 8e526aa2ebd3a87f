"""
Rule-driven validation of configuration sections.

A section is a plain mapping as it comes out of the YAML parser. Each
recognized key is described by a FieldRule; validate() turns the raw mapping
into a new, fully defaulted and type-checked dict or raises the first
violation it finds. Keys that no rule names are rejected.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigInvalidValue, ConfigMissingField, ConfigTypeMismatch, ConfigUnknownField

TYPES = ("string", "bool", "integer")

_INT_RE = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class FieldRule:
    name: str
    type: Optional[str] = None
    mandatory: bool = False
    default: Any = None
    allowed: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.type is not None and self.type not in TYPES:
            raise ValueError(f"rule {self.name!r}: unsupported type {self.type!r}")
        if not isinstance(self.allowed, tuple):
            object.__setattr__(self, "allowed", tuple(self.allowed))
        if self.allowed and has_default(self) and render(self.default) not in self.allowed:
            raise ValueError(
                f"rule {self.name!r}: default {render(self.default)!r} is not one of {list(self.allowed)}"
            )


def has_default(rule: FieldRule) -> bool:
    return rule.default is not None and rule.default != ""


def render(value: Any) -> str:
    """String form of a config value, with YAML-style booleans."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "map"
    if isinstance(value, (list, tuple)):
        return "list"
    return type(value).__name__


def coerce(rule: FieldRule, value: Any) -> Any:
    """Return value converted to the rule's type, or raise ConfigTypeMismatch."""
    if rule.type is None:
        return value
    if rule.type == "string" and isinstance(value, str):
        return value
    if rule.type == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
    if rule.type == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and _INT_RE.match(value.strip()):
            return int(value.strip())
    raise ConfigTypeMismatch(
        f'entry "{rule.name}" has the wrong type: found={type_name(value)} value="{render(value)}" '
        f"expected={rule.type}",
        key=rule.name,
    )


def validate(raw: Optional[Mapping[str, Any]], rules: Sequence[FieldRule], section: str = "") -> Dict[str, Any]:
    if raw is None:
        raw = {}
    where = f' in section "{section}"' if section else ""
    if not isinstance(raw, Mapping):
        raise ConfigTypeMismatch(f"configuration section{where} must be a map, found {type_name(raw)}")

    # Unknown keys are rejected before any value is looked at.
    unknown = unknown_keys(raw, rules)
    if unknown:
        raise ConfigUnknownField(
            f'entry "{unknown[0]}" is not a valid entry{where} of the configuration', key=str(unknown[0])
        )

    result: Dict[str, Any] = {}
    for rule in rules:
        if rule.name in raw:
            value = coerce(rule, raw[rule.name])
            if rule.allowed and render(value) not in rule.allowed:
                raise ConfigInvalidValue(
                    f'value "{render(value)}" is invalid for configuration entry "{rule.name}"{where} '
                    f"as it must be one of {list(rule.allowed)}",
                    key=rule.name,
                )
            result[rule.name] = value
        elif rule.mandatory:
            raise ConfigMissingField(f'configuration entry "{rule.name}"{where} must be specified', key=rule.name)
        elif has_default(rule):
            result[rule.name] = rule.default
    return result


def unknown_keys(raw: Mapping[str, Any], rules: Iterable[FieldRule]) -> List[str]:
    known = {r.name for r in rules}
    return [k for k in raw if k not in known]
