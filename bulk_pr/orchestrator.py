"""
Per-repository pipeline and the bulk driver around it.

Each repository runs through the same ordered steps. A step either lets the
repository proceed or stops it with a status (``skipped``, ``dry-run``,
``failed``); later steps are then not run and the driver moves on to the
next repository. WorkspaceError means the local environment is broken and
is allowed to propagate, aborting the whole run.
"""

import logging
import os
import shutil
import time
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from bulk_pr.changes import detect_changes
from bulk_pr.commands import run_shell
from bulk_pr.config import FORK_REMOTE, PR_TITLE_PREFIX, UPSTREAM_REMOTE, BulkRunConfig
from bulk_pr.errors import ConfigurationError, GitCommandError, WorkspaceError
from bulk_pr.forks import ensure_fork
from bulk_pr.git_workspace import GitWorkspace
from bulk_pr.github_api import GitHubClient, get_auth
from bulk_pr.pr_message import build_pr_body, read_commit_message, resolve_branch, resolve_title
from bulk_pr.run_log import RunLog, make_run_log

logger = logging.getLogger(__name__)

COMMIT_FLAGS = ["--no-verify", "--no-post-rewrite"]

STATUS_CREATED = "created"
STATUS_SKIPPED = "skipped"
STATUS_DRY_RUN = "dry-run"
STATUS_FAILED = "failed"


# ============================================================================
# RUN STATE
# ============================================================================

class RunContext:
    """Values resolved once per run and shared by every repository."""

    def __init__(self, login: str, host: str, branch: str, title: str, commit_message: str, pr_body: str):
        self.login = login
        self.host = host
        self.branch = branch
        self.title = title
        self.commit_message = commit_message
        self.pr_body = pr_body

    @property
    def head_branch(self) -> str:
        return f"{self.login}:{self.branch}"


class TargetState:
    """What the pipeline has learned about one repository so far."""

    def __init__(self, owner_repo: str, clone_base_dir: str, log: RunLog):
        self.owner_repo = owner_repo
        self.owner, _, self.repo = owner_repo.partition("/")
        self.dir = os.path.join(clone_base_dir, self.owner, self.repo)
        self.log = log
        self.workspace = None
        self.repo_url = None
        self.fork_url = None
        self.push_remote = None
        self.base_branch = None
        self.pr_url = None


class Stop:
    """Returned by a step to end processing of the current repository."""

    def __init__(self, status: str, reason: str):
        self.status = status
        self.reason = reason


def split_owner_repo(owner_repo: str):
    owner, sep, repo = owner_repo.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ConfigurationError(f"Invalid repository '{owner_repo}' (expected owner/repo)")
    return owner, repo


def remove_dir(path: str) -> None:
    logger.debug(f"rm -rf {path}")
    shutil.rmtree(path, ignore_errors=True)


# ============================================================================
# PER-REPOSITORY PIPELINE
# ============================================================================

class RepoPipeline:
    """
    Runs the bulk PR steps for one repository at a time.

    Args:
        config: Run options
        context: Values shared by all repositories
        gh: GitHub client (GitHubClient or anything with the same methods)
        git: Workspace class; must provide ``clone(url, path, cwd)`` and a
             constructor taking the working copy path
        sleep: Used for the fork propagation wait
    """

    STEPS = (
        "check_existing_pr",
        "check_archived",
        "clone_or_attach",
        "ensure_fork",
        "detect_base_branch",
        "checkout_branch",
        "run_command",
        "commit",
        "run_after_commit_command",
        "stop_if_dry_run",
        "push",
        "open_pull_request",
        "cleanup",
    )

    def __init__(self, config: BulkRunConfig, context: RunContext, gh, git=GitWorkspace, sleep=time.sleep):
        self.config = config
        self.context = context
        self.gh = gh
        self.git = git
        self.sleep = sleep

    def process(self, owner_repo: str, log: RunLog) -> Dict[str, Any]:
        """
        Run every step for ``owner_repo`` until one stops it.

        Returns:
            Dictionary with processing results
        """
        state = TargetState(owner_repo, self.config.clone_base_dir, log)
        result = {
            "repo": owner_repo,
            "status": STATUS_CREATED,
            "reason": None,
            "pr_url": None,
            "dir": state.dir,
        }
        for step in self.STEPS:
            outcome = getattr(self, step)(state)
            if isinstance(outcome, Stop):
                logger.debug(f"{owner_repo}: stopped at {step} ({outcome.status}: {outcome.reason})")
                result["status"] = outcome.status
                result["reason"] = outcome.reason
                break
        result["pr_url"] = state.pr_url
        return result

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def check_existing_pr(self, state: TargetState) -> Optional[Stop]:
        pulls = self.gh.list_pulls(state.owner, state.repo, self.context.head_branch)
        if not pulls:
            return None
        state.pr_url = pulls[0].get("html_url")
        state.log.record(f"existing PR: {state.pr_url}", {
            "op": "pr:exists",
            "ownerRepo": state.owner_repo,
            "prURL": state.pr_url,
        })
        return Stop(STATUS_SKIPPED, "PR already exists")

    def check_archived(self, state: TargetState) -> Optional[Stop]:
        if not self.gh.get_repo(state.owner, state.repo).get("archived"):
            return None
        state.log.record("archived repo", {"op": "repo:archived", "ownerRepo": state.owner_repo})
        return Stop(STATUS_SKIPPED, "Repository is archived")

    def clone_or_attach(self, state: TargetState) -> Optional[Stop]:
        state.repo_url = f"git@{self.context.host}:{state.owner_repo}.git"

        if not self.config.clone:
            if not Path(state.dir).is_dir():
                state.log.record(f"✗ no existing clone at {state.dir} for --no-clone", {
                    "op": "clone:missing",
                    "ownerRepo": state.owner_repo,
                    "dir": state.dir,
                })
                return Stop(STATUS_FAILED, "Clone directory missing")
            state.workspace = self.git(state.dir)
            return None

        remove_dir(state.dir)
        Path(state.dir).mkdir(parents=True, exist_ok=True)
        state.log.record_transient("cloning", {"op": "clone", "ownerRepo": state.owner_repo, "dir": state.dir})
        try:
            state.workspace = self.git.clone(state.repo_url, state.dir, cwd=self.config.clone_base_dir)
        except GitCommandError as e:
            state.log.record(f"✗ clone failed: {e}", {
                "op": "clone:error",
                "ownerRepo": state.owner_repo,
                "repoUrl": state.repo_url,
                "stderr": e.stderr,
            })
            return Stop(STATUS_FAILED, "Failed to clone repository")
        return None

    def ensure_fork(self, state: TargetState) -> Optional[Stop]:
        try:
            state.fork_url = ensure_fork(
                self.gh,
                state.workspace,
                self.context.login,
                state.owner,
                state.repo,
                state.repo_url,
                self.config.clone,
                state.log,
                sleep=self.sleep,
            )
        except GitCommandError as e:
            state.log.record(f"✗ could not fetch fork: {e}", {
                "op": "fork:error",
                "ownerRepo": state.owner_repo,
                "stderr": e.stderr,
            })
            return Stop(STATUS_FAILED, "Failed to set up fork remote")
        state.push_remote = UPSTREAM_REMOTE if self.context.login == state.owner else FORK_REMOTE
        return None

    def detect_base_branch(self, state: TargetState) -> Optional[Stop]:
        # WorkspaceError propagates: the whole run stops
        state.base_branch = state.workspace.origin_branch()
        return None

    def checkout_branch(self, state: TargetState) -> Optional[Stop]:
        branch = self.context.branch
        if self.config.clone:
            state.workspace.checkout_local_branch(branch)
            return None
        current = state.workspace.current_branch()
        if current != branch:
            raise WorkspaceError(f"Expected {state.dir} to be on branch {branch} for --no-clone (found {current or 'no branch'})")
        return None

    def run_command(self, state: TargetState) -> Optional[Stop]:
        if not self.config.commit:
            state.log.record_transient("not running cmdline due to --no-commit", {
                "op": "runCommand:skip",
                "ownerRepo": state.owner_repo,
                "cmdLine": self.config.cmd_line,
            })
            return None
        if not self._run_commands(state, self.config.cmd_line, check_changed=True):
            return Stop(STATUS_SKIPPED, "Command failed or made no changes")
        return None

    def commit(self, state: TargetState) -> Optional[Stop]:
        if not self.config.commit:
            return None
        state.log.record_transient(f"committing changes to branch {self.context.branch}", {
            "op": "commit",
            "ownerRepo": state.owner_repo,
            "dir": state.dir,
            "branch": self.context.branch,
        })
        state.workspace.add_all()
        state.workspace.commit(self.context.commit_message, COMMIT_FLAGS)
        return None

    def run_after_commit_command(self, state: TargetState) -> Optional[Stop]:
        cmd_line = self.config.after_commit_cmd_line
        if cmd_line and not self._run_commands(state, cmd_line, check_changed=False):
            return Stop(STATUS_SKIPPED, "After-commit command failed")
        return None

    def stop_if_dry_run(self, state: TargetState) -> Optional[Stop]:
        if not self.config.dry_run:
            return None
        state.log.record_transient(f"⊘ dry run: leaving {state.dir} unpushed", {
            "op": "dryRun",
            "ownerRepo": state.owner_repo,
            "dir": state.dir,
            "branch": self.context.branch,
        })
        return Stop(STATUS_DRY_RUN, "Dry run")

    def push(self, state: TargetState) -> Optional[Stop]:
        branch = self.context.branch
        state.log.record_transient(f"pushing changes to branch {branch}", {
            "op": "push",
            "ownerRepo": state.owner_repo,
            "branch": branch,
            "forkUrl": state.fork_url,
        })
        state.workspace.push(["--force", "--set-upstream", state.push_remote, branch])
        return None

    def open_pull_request(self, state: TargetState) -> Optional[Stop]:
        title = self.context.title
        logger.debug(f"Opening PR on {state.owner_repo}: {self.context.head_branch} -> {state.base_branch}")
        pr = self.gh.create_pull(
            state.owner,
            state.repo,
            title=f"{PR_TITLE_PREFIX}{title}",
            head=self.context.head_branch,
            base=state.base_branch,
            body=self.context.pr_body,
            maintainer_can_modify=True,
        )
        state.pr_url = pr["html_url"]
        state.log.record(f"✓ opened PR: {state.pr_url}", {
            "op": "pr:created",
            "ownerRepo": state.owner_repo,
            "prURL": state.pr_url,
            "title": title,
            "headBranch": self.context.head_branch,
            "baseBranch": state.base_branch,
            "prMsg": self.context.pr_body,
        })
        return None

    def cleanup(self, state: TargetState) -> Optional[Stop]:
        state.log.record_transient(f"removing {state.dir}", {"op": "cleanup", "ownerRepo": state.owner_repo, "dir": state.dir})
        remove_dir(state.dir)
        return None

    # ------------------------------------------------------------------

    def _run_commands(self, state: TargetState, cmd_line: str, check_changed: bool) -> bool:
        """Run ``cmd_line`` in the working copy; True when the repository should proceed."""
        owner_repo = state.owner_repo
        state.log.record_transient(f"running: {cmd_line}", {
            "op": "runCommands:start",
            "ownerRepo": owner_repo,
            "cmdLine": cmd_line,
        })
        result = run_shell(cmd_line, state.dir)

        if not result.ok:
            msg = result.message
            for name, out in (("stdout", result.stdout), ("stderr", result.stderr)):
                if out:
                    msg += f"\n>>> {name} <<<\n{out.strip()}"
            msg += f"\n\n---\nYou may try to fixup {state.dir} and then run:\n"
            msg += f"gh bulk-pr --no-clone ... <same args> {owner_repo}"
            state.log.record(msg, {
                "op": "runCommands:error",
                "ownerRepo": owner_repo,
                "cmdLine": cmd_line,
                "stdout": result.stdout,
                "stderr": result.stderr,
                "code": result.returncode,
            })
            return False

        state.log.record_transient(f"ran successfully in {state.dir}", {
            "op": "runCommands:ok",
            "ownerRepo": owner_repo,
            "cmdLine": cmd_line,
            "stdout": result.stdout,
            "stderr": result.stderr,
        })
        if not check_changed:
            return True

        changed, affected, lines = detect_changes(state.workspace.status())
        data = {"ownerRepo": owner_repo, "cmdLine": cmd_line, **affected}
        if changed:
            data["op"] = "runCommands:changed"
            state.log.record("changes:\n" + "\n".join(lines), data)
        else:
            data["op"] = "runCommands:notChanged"
            state.log.record("⊘ not modified", data)
        return changed


# ============================================================================
# BULK DRIVER
# ============================================================================

def resolve_run_text(config: BulkRunConfig) -> Dict[str, str]:
    """Read message files and derive title, branch and PR body, once per run."""
    commit_message = read_commit_message(config.commit_msg, config.commit_msg_file)
    title = resolve_title(commit_message, config.title)
    branch = resolve_branch(title, config.branch)
    if not branch:
        raise ConfigurationError(f"Could not derive a branch name from title '{title}'; use --branch")
    return {
        "commit_message": commit_message,
        "title": title,
        "branch": branch,
        "pr_body": build_pr_body(config.cmd_line, commit_message, config.pr_msg_file),
    }


def summarize(results: List[Dict[str, Any]], run_log: RunLog) -> Dict[str, int]:
    counts = Counter(result["status"] for result in results)
    summary = {
        "total": len(results),
        STATUS_CREATED: counts[STATUS_CREATED],
        STATUS_SKIPPED: counts[STATUS_SKIPPED],
        STATUS_DRY_RUN: counts[STATUS_DRY_RUN],
        STATUS_FAILED: counts[STATUS_FAILED],
    }
    if not run_log.json_mode:
        for result in results:
            detail = result.get("pr_url") or result.get("reason") or ""
            run_log.record(f"  {result['repo']}: {result['status']} {detail}".rstrip(), {"op": "summary", "repo": result["repo"]})

    message = (
        f"SUMMARY: {summary['total']} repositories, {summary[STATUS_CREATED]} PRs opened, "
        f"{summary[STATUS_SKIPPED]} skipped, {summary[STATUS_DRY_RUN]} dry run, {summary[STATUS_FAILED]} failed"
    )
    run_log.record(message, {"op": "summary", **summary})
    return summary


def run_bulk_pr(
    config: BulkRunConfig,
    repos: List[str],
    gh=None,
    git=GitWorkspace,
    run_log: Optional[RunLog] = None,
    sleep=time.sleep,
) -> List[Dict[str, Any]]:
    """
    Open (or skip) a PR on every repository, one after another.

    Option errors are raised before any network or filesystem work. A
    WorkspaceError from any repository aborts the remaining ones.

    Returns:
        One result dictionary per repository, in input order
    """
    config.validate()
    for owner_repo in repos:
        split_owner_repo(owner_repo)

    text = resolve_run_text(config)

    if run_log is None:
        run_log = make_run_log(config.json, config.buffer)
    if gh is None:
        token, host = get_auth(config.host)
        gh = GitHubClient(token, host, verify_ssl=config.verify_ssl)

    Path(config.clone_base_dir).mkdir(parents=True, exist_ok=True)
    login = gh.get_authenticated_user()["login"]
    context = RunContext(login=login, host=gh.host, **text)
    logger.debug(f"Authenticated as {login} on {gh.host}; head branch {context.head_branch}")

    pipeline = RepoPipeline(config, context, gh, git=git, sleep=sleep)
    results = []
    for i, owner_repo in enumerate(repos, 1):
        logger.debug(f"[{i}/{len(repos)}] {owner_repo}")
        result = pipeline.process(owner_repo, run_log.for_target(owner_repo))
        results.append(result)

    summarize(results, run_log)
    return results
