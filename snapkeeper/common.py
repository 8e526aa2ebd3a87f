"""
Common helpers for talking to AWS through the AWS CLI.
- Ultra-light dependency footprint: uses subprocess + json
- Safe pagination: handles --starting-token/NextToken loops
- Per-call environment so static credentials never leak into os.environ
"""
from __future__ import annotations

import json
import os
import shlex
import subprocess
import sys
from typing import Any, Dict, List, Optional, Tuple


class AwsCliError(RuntimeError):
    """A CLI command exited non-zero or printed something that is not JSON."""

    def __init__(self, message: str, cmd: List[str], stderr: str = "") -> None:
        super().__init__(message)
        self.cmd = cmd
        self.stderr = stderr


def _run(cmd: List[str], env: Optional[Dict[str, str]] = None) -> Tuple[int, str, str]:
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env={**os.environ, **(env or {})},
            text=True,
        )
    except FileNotFoundError as e:
        return 127, "", str(e)
    out, err = proc.communicate()
    return proc.returncode, out, err


def quote(cmd: List[str]) -> str:
    return " ".join(map(shlex.quote, cmd))


def shell_text(cmd: List[str], env: Optional[Dict[str, str]] = None) -> str:
    code, out, err = _run(cmd, env)
    if code != 0:
        raise AwsCliError(f"Command failed: {quote(cmd)}\n{err.strip()}", cmd, err)
    return out


def shell_json(cmd: List[str], env: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Executes an AWS CLI command that returns JSON and parses it.
    Raises AwsCliError if the command fails or output is not JSON.
    Commands with no output (e.g. delete-snapshot) yield an empty dict.
    """
    out = shell_text(cmd, env)
    try:
        return json.loads(out or '{}')
    except json.JSONDecodeError as e:
        raise AwsCliError(f"Invalid JSON from: {quote(cmd)}\n{out}\n{e}", cmd)


def paginate(
    cmd: List[str],
    result_key: str,
    token_key: str = 'NextToken',
    env: Optional[Dict[str, str]] = None,
) -> List[Dict[str, Any]]:
    """
    Paginates AWS CLI v2 commands that support --starting-token and output NextToken.
    Returns a flat list aggregated from pages. Expects each page to have a list under `result_key`.
    """
    items: List[Dict[str, Any]] = []
    starting_token: Optional[str] = None
    while True:
        final_cmd = list(cmd)
        if starting_token:
            final_cmd += ["--starting-token", starting_token]
        page = shell_json(final_cmd, env)
        page_items = page.get(result_key, [])
        if isinstance(page_items, list):
            items.extend(page_items)
        starting_token = page.get(token_key)
        if not starting_token:
            break
    return items


def default_region() -> str:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or "us-east-1"


def ensure_region(region: Optional[str]) -> str:
    return region or default_region()


def aws_base() -> List[str]:
    return ["aws", "--output", "json"]


def with_region(cmd: List[str], region: Optional[str]) -> List[str]:
    r = ensure_region(region)
    return cmd + ["--region", r]


def credentials_env(access_key_id: str, secret_access_key: str) -> Dict[str, str]:
    if not (access_key_id and secret_access_key):
        return {}
    return {"AWS_ACCESS_KEY_ID": access_key_id, "AWS_SECRET_ACCESS_KEY": secret_access_key}


def tags_to_dict(tags: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    return {t.get("Key", ""): t.get("Value", "") for t in (tags or [])}


def write_stdout_json(data: Any) -> None:
    json.dump(data, sys.stdout, indent=2, sort_keys=True, default=str)
    sys.stdout.write("\n")
