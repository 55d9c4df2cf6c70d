"""
Shared fixtures.

Orchestrator tests run against FakeGitHub and LocalGitWorkspace: real git
for everything local (status, add, commit, branches, config) with clone,
fetch and push replaced so no network is touched.
"""

import json
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from bulk_pr.commands import run_command
from bulk_pr.config import BulkRunConfig
from bulk_pr.git_workspace import GitWorkspace

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


# ============================================================================
# Helpers
# ============================================================================

def init_repo(path, branch: str = "main", content: str = "hello\n") -> None:
    """Create a one-commit repository whose ``branch`` tracks origin."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    run_command(["git", "init", "-q"], cwd=str(path))
    run_command(["git", "symbolic-ref", "HEAD", f"refs/heads/{branch}"], cwd=str(path))
    (path / "README.md").write_text(content)
    run_command(["git", "add", "README.md"], cwd=str(path))
    run_command(["git", "commit", "-q", "-m", "initial"], cwd=str(path))
    run_command(["git", "config", f"branch.{branch}.remote", "origin"], cwd=str(path))


def parse_json_log(buffer: List[str]) -> List[Dict]:
    return [json.loads(line) for line in buffer]


def ops(buffer: List[str]) -> List[str]:
    return [entry["data"]["op"] for entry in parse_json_log(buffer)]


class FakeGitHub:
    """In-memory stand-in for GitHubClient."""

    host = "github.com"

    def __init__(self, login: str = "testuser", open_pulls=(), archived=(), fork_created_at: Optional[str] = "2000-01-01T00:00:00Z"):
        self.login = login
        self.open_pulls = set(open_pulls)
        self.archived = set(archived)
        self.fork_created_at = fork_created_at
        self.forks = []
        self.created = []
        self.pull_queries = []

    def get_authenticated_user(self):
        return {"login": self.login}

    def list_pulls(self, owner, repo, head):
        self.pull_queries.append((owner, repo, head))
        if repo in self.open_pulls:
            return [{"html_url": f"https://github.com/{owner}/{repo}/pull/42"}]
        return []

    def get_repo(self, owner, repo):
        return {"archived": repo in self.archived}

    def create_fork(self, owner, repo):
        self.forks.append((owner, repo))
        return {"ssh_url": f"git@github.com:{self.login}/{repo}.git", "created_at": self.fork_created_at}

    def create_pull(self, owner, repo, **kwargs):
        self.created.append(dict(kwargs, owner=owner, repo=repo))
        return {"html_url": f"https://github.com/{owner}/{repo}/pull/1"}


class LocalGitWorkspace(GitWorkspace):
    """GitWorkspace whose network operations are recorded instead of run."""

    instances = []

    def __init__(self, path):
        super().__init__(path)
        self.cloned_from = None
        self.fetched = []
        self.pushes = []
        LocalGitWorkspace.instances.append(self)

    @classmethod
    def clone(cls, url, path, cwd=None):
        init_repo(path)
        workspace = cls(path)
        workspace.cloned_from = url
        return workspace

    def fetch(self, remote):
        self.fetched.append(remote)

    def push(self, args):
        self.pushes.append(list(args))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_git(monkeypatch, tmp_path):
    """Keep the user's git config and identity out of the tests."""
    empty = tmp_path / "empty-gitconfig"
    empty.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(empty))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    LocalGitWorkspace.instances = []


@pytest.fixture
def clone_base(tmp_path):
    base = tmp_path / "clones"
    base.mkdir()
    return base


@pytest.fixture
def make_config(clone_base):
    def _make(**overrides) -> BulkRunConfig:
        options = {
            "cmd_line": "echo changes >> README.md",
            "commit_msg": "default commit msg",
            "clone_base_dir": str(clone_base),
            "json": True,
            "buffer": [],
        }
        options.update(overrides)
        return BulkRunConfig(**options)
    return _make
