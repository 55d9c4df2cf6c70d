"""Classify working copy changes left behind by a command run."""

from typing import Any, Dict, List, Tuple

from bulk_pr.git_workspace import STATUS_CATEGORIES

UNTRACKED_LABEL = "A"


def category_label(category: str) -> str:
    """Single-letter label; untracked files get their own, the rest use their initial."""
    if category == "not_added":
        return UNTRACKED_LABEL
    return category[0].upper()


def describe_entry(entry: Any) -> str:
    if isinstance(entry, dict):
        return f"{entry['from']} → {entry['to']}"
    return str(entry)


def detect_changes(status: Dict[str, list]) -> Tuple[bool, Dict[str, list], List[str]]:
    """
    Decide whether a working copy status contains any change.

    Args:
        status: Output of GitWorkspace.status()

    Returns:
        Tuple of (changed, affected paths by non-empty category, display lines)
    """
    affected = {}
    lines = []
    for category in STATUS_CATEGORIES:
        entries = status.get(category) or []
        if not entries:
            continue
        affected[category] = list(entries)
        for entry in entries:
            lines.append(f"  {category_label(category)} {describe_entry(entry)}")
    return bool(affected), affected, lines
