"""GitHub token lookup for fetching review comments.

Order (first hit wins):
  1. GITHUB_TOKEN environment variable, so CI and explicit overrides always apply.
  2. `gh auth token`, so anyone already logged in with the GitHub CLI needs no PAT.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token lookup unavailable: %s", e)
        return None
    if result.returncode != 0:
        logger.debug("gh auth token exited with %d", result.returncode)
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when neither source has one. Never raises."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token
    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from gh CLI session.")
    return token
