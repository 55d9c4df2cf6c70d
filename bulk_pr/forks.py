"""Make sure the authenticated user has a fork to push to."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from bulk_pr.config import FORK_FRESH_SECONDS, FORK_REMOTE, FORK_WAIT_SECONDS
from bulk_pr.git_workspace import GitWorkspace
from bulk_pr.run_log import RunLog

logger = logging.getLogger(__name__)


def fork_age_seconds(created_at: Any, now: Optional[datetime] = None) -> Optional[float]:
    """Seconds since ``created_at`` (an ISO 8601 timestamp), or None if unparseable."""
    if not created_at:
        return None
    try:
        created = datetime.fromisoformat(str(created_at).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable fork created_at: {created_at!r}")
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (now - created).total_seconds()


def ensure_fork(
    gh,
    workspace: GitWorkspace,
    login: str,
    owner: str,
    repo: str,
    repo_url: str,
    clone: bool,
    log: RunLog,
    sleep=time.sleep,
) -> str:
    """
    Return the URL to push to, creating a fork when ``login`` is not the owner.

    GitHub answers a fork request for an existing fork with that fork, so the
    request is always made. With ``clone`` set the fork is also added to the
    fresh working copy as the ``fork`` remote and fetched; without it the
    existing working copy is assumed to be wired already.

    A fork younger than FORK_FRESH_SECONDS gets FORK_WAIT_SECONDS to become
    fetchable. This is a best-effort wait, not a guarantee.
    """
    if login == owner:
        return repo_url

    owner_repo = f"{owner}/{repo}"
    log.record_transient(f"ensuring fork of {owner_repo}", {"op": "fork", "ownerRepo": owner_repo, "login": login})
    fork = gh.create_fork(owner, repo)
    fork_url = fork["ssh_url"]
    log.record_transient(f"using {fork_url}", {"op": "forkResult", "ownerRepo": owner_repo, "forkUrl": fork_url})

    if not clone:
        return fork_url

    age = fork_age_seconds(fork.get("created_at"))
    if age is not None and age < FORK_FRESH_SECONDS:
        logger.debug(f"Fork {fork_url} is {age:.0f}s old, waiting {FORK_WAIT_SECONDS}s")
        sleep(FORK_WAIT_SECONDS)

    workspace.add_remote(FORK_REMOTE, fork_url)
    workspace.fetch(FORK_REMOTE)
    return fork_url
