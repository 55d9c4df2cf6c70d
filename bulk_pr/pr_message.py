"""
Commit message, PR title, branch name and PR body.

All of these are resolved once per run and shared by every repository.
"""

import re
from pathlib import Path
from typing import Optional

from bulk_pr.config import NO_COMMIT_MSG, PROJECT_NAME, PROJECT_URL, PROJECT_VERSION

CONVENTIONAL_PREFIX = re.compile(r"^(?:fix|chore|docs|test|feat|refactor|style):\s+")
PR_BODY_SEPARATOR = "\n\n---\n"


def tokenize(text: str) -> str:
    """
    Turn a title into a branch name.

    Drops everything but word characters, whitespace and hyphens, turns runs
    of whitespace/underscores into one hyphen, squeezes repeated hyphens and
    lower-cases. Applying it twice gives the same result as applying it once.
    """
    # word characters are ASCII only, whitespace is any Unicode space
    text = re.sub(r"[^A-Za-z0-9_\s-]", "", text)
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"-{2,}", "-", text)
    return text.lower()


def read_commit_message(commit_msg: Optional[str] = None, commit_msg_file: Optional[str] = None) -> str:
    """Commit message text: the file verbatim, else the literal, else a placeholder."""
    if commit_msg_file:
        return Path(commit_msg_file).read_text(encoding="utf-8")
    return commit_msg or NO_COMMIT_MSG


def resolve_title(commit_message: str, explicit_title: Optional[str] = None) -> str:
    """Explicit title, else the first commit message line minus any ``type:`` prefix."""
    if explicit_title:
        return explicit_title
    first_line = commit_message.split("\n", 1)[0]
    return CONVENTIONAL_PREFIX.sub("", first_line)


def resolve_branch(title: str, explicit_branch: Optional[str] = None) -> str:
    return explicit_branch or tokenize(title)


def pr_footer(cmd_line: str, version: str = PROJECT_VERSION, project_url: str = PROJECT_URL) -> str:
    version_url = f"{project_url}/releases/tag/v{version}"
    return f"This PR created by [`{PROJECT_NAME} -c '{cmd_line}' ...`]({version_url})"


def build_pr_body(
    cmd_line: str,
    commit_message: str = "",
    pr_msg_file: Optional[str] = None,
    version: str = PROJECT_VERSION,
    project_url: str = PROJECT_URL,
) -> str:
    """
    Build the PR description.

    Args:
        cmd_line: Command line run in each repository, quoted in the footer
        commit_message: Resolved commit message; everything after its first
                        line becomes the body when no PR message file is given
        pr_msg_file: File whose contents are used verbatim as the body

    Returns:
        Body text, always ending with the footer link
    """
    if pr_msg_file:
        body = Path(pr_msg_file).read_text(encoding="utf-8")
    else:
        body = re.sub(r"^.*\n*", "", commit_message or "", count=1)

    if re.search(r"\S", body):
        body += PR_BODY_SEPARATOR
    return body + pr_footer(cmd_line, version, project_url)
