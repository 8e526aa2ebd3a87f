"""
Command line entry point, meant to be run from cron.

Exit status:
  0  every enabled job ran successfully
  1  the configuration could not be found, read or validated
  2  at least one job failed
"""
from __future__ import annotations

import argparse
import logging
import platform
from typing import List, Optional

import coloredlogs

from . import __version__
from .common import write_stdout_json
from .config import load_configuration
from .errors import ConfigError
from .orchestrator import report_jobs, run_jobs

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_INVALID_CONFIGURATION = 1
EXIT_JOBS_FAILED = 2

FMT_SHORT = "[%(asctime)s] [%(levelname)s] %(message)s"
FMT_DEBUG = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"

LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def setup_logging(level: str = "info") -> None:
    fmt = FMT_DEBUG if level == "debug" else FMT_SHORT
    coloredlogs.install(level=LEVELS[level], fmt=fmt, datefmt=DATEFMT)


def version_string() -> str:
    return f"snapkeeper version {__version__} running on python {platform.python_version()}"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="snapkeeper", description="Create and rotate EBS snapshots.")
    ap.add_argument("-c", "--config", default=None, help="path to the yaml configuration file")
    ap.add_argument(
        "--list",
        action="store_true",
        help="print the managed snapshots of every enabled job as JSON and exit without changing anything",
    )
    ap.add_argument("-v", "--version", action="version", version=version_string())
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    logger.info("%s starting ...", version_string())

    try:
        cfg = load_configuration(args.config)
    except ConfigError as e:
        logger.error("Failed to read configuration: %s", e)
        return EXIT_INVALID_CONFIGURATION
    setup_logging(cfg.global_settings["loglevel"])

    if args.list:
        report = report_jobs(cfg.jobs)
        write_stdout_json(report)
        return EXIT_JOBS_FAILED if any("error" in r for r in report) else EXIT_SUCCESS

    tally = run_jobs(cfg.jobs)
    return EXIT_SUCCESS if tally.ok else EXIT_JOBS_FAILED
