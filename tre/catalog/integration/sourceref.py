"""Capture where the code behind a transformation lives.

Asks the ``git`` executable for the repository root, commit and origin
URL. Every lookup is best-effort: outside a repository, or without git
installed, the reference is recorded with empty fields.
"""

import os
import re
import subprocess
from typing import Optional

from tre.catalog.domain.value_objects import SourceRef
from tre.log import logger

logger = logger.getChild(__name__)

_SSH_REMOTE_RE = re.compile(r"^git@([^:]+):(.+?)(?:\.git)?$")


def normalize_remote(url: str) -> str:
    """Rewrite ``git@host:path.git`` as ``https://host/path``."""
    match = _SSH_REMOTE_RE.match(url)
    if match:
        return f"https://{match.group(1)}/{match.group(2)}"
    return re.sub(r"\.git$", "", url)


def _git(cwd: str, *args: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", "-C", cwd, *args],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git %s failed in %s: %s", " ".join(args), cwd, exc)
        return None
    return result.stdout.strip() or None


def git_source_ref(
    script_path: Optional[str] = None,
    directory: Optional[str] = None,
    short: bool = True,
) -> SourceRef:
    """Build a SourceRef for a script from its git checkout.

    Args:
        script_path: Script that ran the transformation.
        directory: Where to look for the repository; defaults to the
                   script's directory, then the working directory.
        short: Abbreviate the commit hash to seven characters.

    Returns:
        A SourceRef; fields that cannot be resolved are None.
    """
    if directory is None:
        directory = os.path.dirname(os.path.abspath(script_path)) if script_path else os.getcwd()
    root = _git(directory, "rev-parse", "--show-toplevel")
    if root is None:
        logger.warning("No git repository at %s; source reference left empty", directory)
        return SourceRef(script_path=script_path)

    commit = _git(root, "rev-parse", "HEAD")
    if commit and short:
        commit = commit[:7]
    remote = _git(root, "config", "--get", "remote.origin.url")
    relpath = None
    if script_path:
        try:
            relpath = os.path.relpath(os.path.abspath(script_path), root)
        except ValueError:
            relpath = script_path
    return SourceRef(
        repo_url=normalize_remote(remote) if remote else None,
        commit=commit,
        script_path=relpath,
    )
