"""
GitHub REST API access.

Authentication comes from GH_TOKEN / GITHUB_TOKEN when set, otherwise from
the GitHub CLI (``gh auth status --show-token``). Only the handful of
endpoints the bulk PR run needs are wrapped here. HTTP errors are raised as
``requests.HTTPError``.
"""

import logging
import os
import re
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests
import urllib3

from bulk_pr import __version__
from bulk_pr.commands import run_command
from bulk_pr.config import DEFAULT_HOST
from bulk_pr.errors import AuthenticationError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30

LOGGED_IN_PATTERN = re.compile(r"Logged in to (\S+)")
TOKEN_PATTERN = re.compile(r"Token:\s*(\S+)")


# ============================================================================
# AUTHENTICATION
# ============================================================================

def parse_gh_auth_status(output: str) -> List[Tuple[str, str]]:
    """
    Extract (host, token) pairs from ``gh auth status --show-token`` output.

    Hosts appear in the order gh prints them; a host without a token line
    is left out.
    """
    found = []
    host = None
    for line in output.splitlines():
        match = LOGGED_IN_PATTERN.search(line)
        if match:
            host = match.group(1)
            continue
        match = TOKEN_PATTERN.search(line)
        if match and host and all(h != host for h, _ in found):
            found.append((host, match.group(1)))
    return found


def get_auth(host: Optional[str] = None) -> Tuple[str, str]:
    """
    Find a token and the host it belongs to.

    Args:
        host: Host to authenticate against; defaults to GH_HOST, then to
              whichever host gh reports first.

    Returns:
        Tuple of (token, host)
    """
    host = host or os.environ.get("GH_HOST")

    token = os.environ.get("GH_TOKEN") or os.environ.get("GITHUB_TOKEN")
    if token:
        logger.debug("Using token from environment")
        return token, host or DEFAULT_HOST

    cmd = ["gh", "auth", "status", "--show-token"]
    if host:
        cmd.extend(["--hostname", host])
    try:
        exit_code, stdout, stderr = run_command(cmd, check=False)
    except FileNotFoundError as e:
        raise AuthenticationError("GitHub CLI (gh) not found; install it or set GH_TOKEN") from e

    # older gh releases print the status to stderr
    for found_host, found_token in parse_gh_auth_status(stdout + "\n" + stderr):
        if host is None or found_host == host:
            logger.debug(f"Using gh credentials for {found_host}")
            return found_token, found_host

    detail = (stderr or stdout).strip()
    raise AuthenticationError(
        f"No GitHub token found{' for ' + host if host else ''} (gh exited {exit_code}): {detail}\n"
        "Run 'gh auth login' or set GH_TOKEN."
    )


def api_base_url(host: str) -> str:
    """REST base URL for github.com or a GitHub Enterprise host."""
    if host == DEFAULT_HOST:
        return "https://api.github.com/"
    return f"https://{host}/api/v3/"


# ============================================================================
# CLIENT
# ============================================================================

class GitHubClient:
    """Minimal GitHub REST client over a requests session."""

    def __init__(self, token: str, host: str = DEFAULT_HOST, verify_ssl: bool = True, session: Optional[requests.Session] = None):
        self.host = host
        self.base_url = api_base_url(host)
        self.verify_ssl = verify_ssl
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": f"gh-bulk-pr/{__version__}",
        })
        if not verify_ssl:
            # Disable SSL warnings
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = urljoin(self.base_url, endpoint)
        start = time.monotonic()
        response = self.session.request(method, url, verify=self.verify_ssl, timeout=REQUEST_TIMEOUT, **kwargs)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"{method} {url} - {response.status_code} in {elapsed_ms}ms")
        response.raise_for_status()
        return response.json()

    def get_authenticated_user(self) -> Dict[str, Any]:
        return self._request("GET", "user")

    def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._request("GET", f"repos/{owner}/{repo}")

    def list_pulls(self, owner: str, repo: str, head: str) -> List[Dict[str, Any]]:
        """Open pull requests whose head is ``head`` (``login:branch``)."""
        return self._request("GET", f"repos/{owner}/{repo}/pulls", params={"head": head, "state": "open"})

    def create_fork(self, owner: str, repo: str) -> Dict[str, Any]:
        """Fork into the authenticated account; returns the existing fork if there is one."""
        return self._request("POST", f"repos/{owner}/{repo}/forks")

    def create_pull(self, owner: str, repo: str, title: str, head: str, base: str, body: str, maintainer_can_modify: bool = True) -> Dict[str, Any]:
        data = {
            "title": title,
            "head": head,
            "base": base,
            "body": body,
            "maintainer_can_modify": maintainer_can_modify,
        }
        return self._request("POST", f"repos/{owner}/{repo}/pulls", json=data)
