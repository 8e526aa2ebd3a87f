"""
Configuration document loading and job definition resolution.

The document is YAML with two sections:

    global:
      loglevel: info
    jobs:
      <job name>:
        module: ebs-snapshot
        ...

The global section is validated once at load time; job sections are resolved
one at a time by the orchestrator so a broken job never stops its siblings.
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError, ConfigInvalidValue, ConfigLoadError, ConfigTypeMismatch
from .models import JobDefinition
from .modules import MODULES
from .validation import FieldRule, render, validate

logger = logging.getLogger(__name__)

CONFIG_DIRNAME = "snapkeeper"
CONFIG_FILENAME = "snapkeeper.yaml"

LOG_LEVELS = ("error", "warn", "info", "debug")

DOCUMENT_RULES = (
    FieldRule("global"),
    FieldRule("jobs"),
)

GLOBAL_RULES = (
    FieldRule("loglevel", "string", default="info", allowed=LOG_LEVELS),
)


@dataclass
class ProgramConfig:
    path: str
    global_settings: Dict[str, Any] = field(default_factory=dict)
    jobs: Dict[str, Any] = field(default_factory=dict)


def candidate_paths() -> List[str]:
    rel = os.path.join(CONFIG_DIRNAME, CONFIG_FILENAME)
    exe_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    paths = [
        os.path.join(os.path.expanduser("~"), rel),
        os.path.join(os.getcwd(), rel),
        os.path.join(exe_dir, rel),
    ]
    if sys.platform.startswith(("linux", "darwin")):
        paths.append(os.path.join("/etc", rel))
    return paths


def find_config_file(explicit: Optional[str] = None) -> str:
    if explicit:
        if not os.path.isfile(explicit):
            raise ConfigLoadError(f"configuration file {explicit} does not exist")
        return explicit
    paths = candidate_paths()
    for p in paths:
        logger.debug('Attempting to find configuration in "%s"', p)
        if os.path.isfile(p):
            return p
    raise ConfigLoadError(
        "could not find the configuration file in any of the following locations: " + ",".join(paths)
    )


def load_document(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except OSError as e:
        raise ConfigLoadError(f"failed to read configuration file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"failed to parse configuration file {path}: {e}")
    if doc is None:
        return {}
    if not isinstance(doc, Mapping):
        raise ConfigLoadError(f"configuration file {path} must contain a map at the top level")
    return dict(doc)


def parse_document(doc: Mapping[str, Any], path: str = "") -> ProgramConfig:
    top = validate(doc, DOCUMENT_RULES)
    global_settings = validate(top.get("global"), GLOBAL_RULES, section="global")
    jobs = top.get("jobs") or {}
    if not isinstance(jobs, Mapping):
        raise ConfigTypeMismatch('section "jobs" must be a map of job names to job definitions', key="jobs")
    if not jobs:
        logger.warning("Have not found any job definition in the configuration, there is nothing to do")
    return ProgramConfig(path=path, global_settings=global_settings, jobs={str(k): v for k, v in jobs.items()})


def load_configuration(path: Optional[str] = None) -> ProgramConfig:
    found = find_config_file(path)
    logger.info("Found configuration file in %s", found)
    return parse_document(load_document(found), found)


def module_rule() -> FieldRule:
    return FieldRule("module", "string", mandatory=True, allowed=tuple(sorted(MODULES)))


def is_disabled(raw: Any) -> bool:
    """Peek at a raw job section; only an explicit false disables a job."""
    return isinstance(raw, Mapping) and render(raw.get("enabled", True)).lower() == "false"


def resolve_job(name: str, raw: Any) -> JobDefinition:
    section = f"jobs.{name}"
    try:
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigTypeMismatch(f'section "{section}" must be a map')
        head = validate({k: v for k, v in raw.items() if k == "module"}, [module_rule()], section=section)
        module_cls = MODULES[head["module"]]
        values = validate(raw, module_cls.RULES, section=section)
        if values["retention"] <= 0:
            raise ConfigInvalidValue('Option "retention" must be a valid number greater than 0', key="retention")
        settings = module_cls.resolve_settings(values)
    except ConfigError as e:
        e.job = name
        raise
    logger.debug('Resolved configuration of job "%s":', name)
    for key in sorted(values):
        logger.debug('- %s="%s"', key, "***" if "secret" in key else render(values[key]))
    return JobDefinition(
        name=name,
        module=values["module"],
        enabled=values["enabled"],
        dry_run=values["dryrun"],
        retention=values["retention"],
        settings=settings,
    )
