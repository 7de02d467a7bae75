"""Normalized CI provider context.

The context file doubles as the `ci-event` artifact and as the provider
metadata of the session, so both providers produce the same keys.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping

from ciupload.errors import ContextError
from ciupload.types import SessionType

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_PATH = ".ciupload/context.json"

Provider = Literal["github", "gitlab"]

SESSION_TYPES: dict[str, SessionType] = {
    "github": SessionType.GITHUB_ACTIONS,
    "gitlab": SessionType.GITLAB_CI,
}


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ContextError(f"{name} is not set; is this running in CI?")
    return value


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ContextError(f"{name} must be an integer, got {value!r}")


def github_context_from_env(env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Build the context of a GitHub Actions pull request run."""
    env = os.environ if env is None else env

    event_path = Path(_require(env, "GITHUB_EVENT_PATH"))
    try:
        event = json.loads(event_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ContextError(f"Cannot read GitHub event at {event_path}: {e}")

    pull_request = event.get("pull_request") if isinstance(event, dict) else None
    if not isinstance(pull_request, dict):
        raise ContextError("GitHub event is not a pull_request event")
    if "number" not in pull_request:
        raise ContextError("GitHub pull_request event has no number")
    head = pull_request.get("head") or {}

    owner, _, repo = _require(env, "GITHUB_REPOSITORY").partition("/")
    return {
        "provider": "github",
        "organization": owner,
        "repo": repo,
        "pull_request": _as_int(pull_request["number"], "pull_request.number"),
        "run": _as_int(_require(env, "GITHUB_RUN_ID"), "GITHUB_RUN_ID"),
        "run_attempt": _as_int(env.get("GITHUB_RUN_ATTEMPT", "1"), "GITHUB_RUN_ATTEMPT"),
        "commit_hash": head.get("sha") or env.get("GITHUB_SHA", ""),
        "branch_name": head.get("ref") or env.get("GITHUB_HEAD_REF", ""),
        "user": env.get("GITHUB_ACTOR"),
    }


def gitlab_context_from_env(env: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Build the context of a GitLab CI merge request pipeline."""
    env = os.environ if env is None else env

    return {
        "provider": "gitlab",
        "organization": _require(env, "CI_PROJECT_NAMESPACE"),
        "repo": _require(env, "CI_PROJECT_NAME"),
        "pull_request": _as_int(_require(env, "CI_MERGE_REQUEST_IID"), "CI_MERGE_REQUEST_IID"),
        "run": _as_int(_require(env, "CI_PIPELINE_ID"), "CI_PIPELINE_ID"),
        "run_attempt": 1,
        "commit_hash": _require(env, "CI_COMMIT_SHA"),
        "branch_name": env.get("CI_MERGE_REQUEST_SOURCE_BRANCH_NAME", ""),
        "user": env.get("GITLAB_USER_LOGIN"),
    }


def context_from_env(provider: Provider, env: Mapping[str, str] | None = None) -> dict[str, Any]:
    if provider == "github":
        return github_context_from_env(env)
    if provider == "gitlab":
        return gitlab_context_from_env(env)
    raise ContextError(f"Unexpected provider '{provider}', supported: github, gitlab")


def write_context(context: dict[str, Any], path: Path) -> bool:
    """Write the context file. Returns False if one already exists."""
    if path.exists():
        logger.info("Context file already exists at %s", path)
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(context))
    return True


def read_context(path: Path) -> dict[str, Any]:
    """Read a context file written by write_context."""
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ContextError(f"Cannot read context file {path}: {e}")
    if not isinstance(data, dict):
        raise ContextError(f"Context file {path} must contain a JSON object")
    return data
