"""Shared formatting utilities for AutoCoder."""

import pandas as pd

from shared.models import ProjectMetadata


def fmt_enum(value: str) -> str:
    """Convert snake_case enum to Title Case for display.

    Examples:
        'prompt_tool' -> 'Prompt Tool'
        'in_progress' -> 'In Progress'
    """
    return value.replace("_", " ").title() if value else ""


def entity_list_to_df(
    entities: list[dict],
    columns: list[tuple[str, str]],
    empty_columns: list[str] | None = None,
) -> pd.DataFrame:
    """Build a display DataFrame from a list of entity dicts.

    Args:
        entities: List of entity dicts (wire shape).
        columns: List of (display_name, key_spec) tuples.
            Use special prefixes:
                'id:' - truncates to 8 chars (e.g. 'id:id')
                'fmt:' - applies fmt_enum (e.g. 'fmt:category')
                'date:' - truncates to 16 chars (e.g. 'date:lastOpened')
            Dotted keys ('stats.filesCount') reach into nested dicts.
        empty_columns: Column names for the empty DataFrame fallback.
            If None, derived from columns tuples.

    Returns:
        pd.DataFrame with display-ready data.
    """
    col_names = empty_columns or [c[0] for c in columns]
    if not entities:
        return pd.DataFrame(columns=col_names)

    rows = []
    for entity in entities:
        row = {}
        for display_name, spec in columns:
            if spec.startswith("id:"):
                row[display_name] = str(_lookup(entity, spec[3:]) or "")[:8]
            elif spec.startswith("fmt:"):
                row[display_name] = fmt_enum(_lookup(entity, spec[4:]) or "")
            elif spec.startswith("date:"):
                val = _lookup(entity, spec[5:]) or ""
                row[display_name] = str(val).replace("T", " ")[:16]
            else:
                val = _lookup(entity, spec)
                row[display_name] = "" if val is None else val
        rows.append(row)

    return pd.DataFrame(rows, columns=col_names)


def _lookup(entity: dict, key: str):
    value = entity
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def projects_to_df(projects: list[ProjectMetadata]) -> pd.DataFrame:
    """Dashboard table of projects, most recently opened first."""
    ordered = sorted(projects, key=lambda p: p.last_opened, reverse=True)
    return entity_list_to_df([p.to_dict() for p in ordered], [
        ("ID", "id:id"), ("Name", "name"), ("Files", "stats.filesCount"),
        ("Chats", "stats.chatsCount"), ("Tasks", "stats.tasksCount"),
        ("Last Opened", "date:lastOpened"),
    ])
