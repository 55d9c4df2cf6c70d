"""
Command line entry point: gh bulk-pr.

Clone, edit, and open PRs against multiple repos.
"""

import argparse
import logging
import os
import re
import sys
from typing import List, Optional

from bulk_pr import __version__
from bulk_pr.config import DEFAULT_CLONE_BASE_DIR, BulkRunConfig, load_config_file
from bulk_pr.errors import AuthenticationError, ConfigurationError
from bulk_pr.orchestrator import STATUS_FAILED, run_bulk_pr

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"^(?:https?://|git@|ssh://git@)([^/:]+)[:/]([\w\-\.]+)/([\w\-\.]+?)(?:\.git)?/?$")


# ============================================================================
# REPOSITORY LIST
# ============================================================================

def normalize_repo_name(repo: str) -> str:
    """
    Normalize repository identifier to owner/repo format.

    Args:
        repo: Repository identifier (clone/browse URL or owner/repo)

    Returns:
        Normalized owner/repo string (unchanged if it is not a URL)
    """
    match = GITHUB_URL_PATTERN.match(repo.strip())
    if match:
        return f"{match.group(2)}/{match.group(3)}"
    return repo.strip()


def read_repos_file(repos_file: str) -> List[str]:
    """
    Read repository names from a text file.

    Blank lines and lines starting with '#' are ignored; URLs are reduced to
    owner/repo. Lines that are neither are skipped with a warning.

    Args:
        repos_file: Path to the file (one repository per line)

    Returns:
        List of repository identifiers in owner/repo format
    """
    if not os.path.exists(repos_file):
        raise ConfigurationError(f"Repos file not found: {repos_file}")

    repos = []
    with open(repos_file, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            repo = normalize_repo_name(line)
            if len(repo.split("/")) == 2 and all(repo.split("/")):
                repos.append(repo)
            else:
                logger.warning(f"Invalid repository format on line {line_num}: {line} (expected owner/repo)")
    return repos


# ============================================================================
# ARGUMENTS
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh bulk-pr",
        description="clone, edit, and open PRs against multiple repos",
    )
    parser.add_argument("repos", nargs="*", metavar="repo", help="Repositories to open PRs against (owner/repo)")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-c", "--cmd-line",
        required=True,
        metavar="SH",
        help="Run given commands in a shell in the checked out repo (required)",
    )
    parser.add_argument("-j", "--json", action="store_true", help="Return output as JSON rows")
    parser.add_argument(
        "-a", "--after-commit-cmd-line",
        metavar="SH",
        help="Run given commands after the -c results are committed (e.g. for post-commit tests)",
    )
    parser.add_argument(
        "-C", "--no-commit",
        action="store_false",
        dest="commit",
        help="Assume that the commands executed will perform the commits themselves - requires --title",
    )
    parser.add_argument(
        "-t", "--title",
        help="Specify a title for the created PR (by default based on first line of the commit msg)",
    )
    parser.add_argument(
        "-b", "--branch",
        help="Specify branch name to create for PR (defaults to normalized title)",
    )
    parser.add_argument("-m", "--commit-msg", metavar="MSG", help="Use the given single-line commit msg")
    parser.add_argument(
        "-f", "--commit-msg-file",
        metavar="PATH",
        help="Use the (multi-line) commit msg from the given file",
    )
    parser.add_argument(
        "-p", "--pr-msg-file",
        metavar="PATH",
        help="Use the PR msg from the given file; defaults to remaining lines from commit msg",
    )
    parser.add_argument(
        "-d", "--clone-base-dir",
        metavar="DIR",
        default=None,
        help=f"Directory to do clones for PRs into (default: {DEFAULT_CLONE_BASE_DIR})",
    )
    parser.add_argument("--no-clone", action="store_false", dest="clone", help="Use existing clone dir & branch")
    parser.add_argument("-n", "--dry-run", action="store_true", help="Don't actually push branches or open the PR")
    parser.add_argument(
        "--repos-file",
        metavar="PATH",
        help="Read additional repositories from a file (one owner/repo per line)",
    )
    parser.add_argument("--config", metavar="PATH", help="YAML config file (default: ~/.config/gh-bulk-pr/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> BulkRunConfig:
    """Merge command-line arguments over the config file over built-in defaults."""
    settings = load_config_file(args.config)
    clone_base_dir = args.clone_base_dir or settings.get("clone_base_dir") or DEFAULT_CLONE_BASE_DIR
    return BulkRunConfig(
        cmd_line=args.cmd_line,
        after_commit_cmd_line=args.after_commit_cmd_line,
        commit=args.commit,
        title=args.title,
        branch=args.branch,
        commit_msg=args.commit_msg,
        commit_msg_file=args.commit_msg_file,
        pr_msg_file=args.pr_msg_file,
        clone_base_dir=os.path.abspath(os.path.expanduser(clone_base_dir)),
        clone=args.clone,
        dry_run=args.dry_run,
        json=args.json,
        host=settings.get("host"),
        verify_ssl=settings.get("verify_ssl", True),
    )


# ============================================================================
# MAIN FUNCTION
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = config_from_args(args)
        repos = [normalize_repo_name(repo) for repo in args.repos]
        if args.repos_file:
            repos.extend(read_repos_file(args.repos_file))
        if not repos:
            raise ConfigurationError("No repositories given (pass owner/repo arguments or --repos-file)")
        config.validate()
    except ConfigurationError as e:
        parser.error(str(e))

    if config.dry_run:
        logger.info("DRY RUN MODE - nothing will be pushed and no PRs will be opened")

    try:
        results = run_bulk_pr(config, repos)
    except ConfigurationError as e:
        parser.error(str(e))
    except AuthenticationError as e:
        logger.error(str(e))
        return 1

    if any(result["status"] == STATUS_FAILED for result in results):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
