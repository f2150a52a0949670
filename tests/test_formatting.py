"""Tests for dashboard DataFrame builders."""

from shared.formatting import entity_list_to_df, fmt_enum, projects_to_df
from shared.models import ProjectMetadata, ProjectStats, parse_timestamp


def test_fmt_enum():
    assert fmt_enum("prompt_tool") == "Prompt Tool"
    assert fmt_enum("") == ""


def test_projects_table():
    older = ProjectMetadata(
        name="Older", id="0123456789abcdef",
        last_opened=parse_timestamp("2024-03-01T09:30:00Z"),
        stats=ProjectStats(files_count=3, chats_count=2, tasks_count=1),
    )
    newer = ProjectMetadata(name="Newer", id="fedcba9876543210",
                            last_opened=parse_timestamp("2024-05-01T12:00:00Z"))

    df = projects_to_df([older, newer])

    assert list(df.columns) == ["ID", "Name", "Files", "Chats", "Tasks", "Last Opened"]
    assert list(df["Name"]) == ["Newer", "Older"]
    assert df.iloc[1]["ID"] == "01234567"
    assert df.iloc[1]["Files"] == 3
    assert df.iloc[1]["Last Opened"] == "2024-03-01 09:30"


def test_empty_list_keeps_columns():
    df = entity_list_to_df([], [("Title", "title"), ("Kind", "fmt:type")])

    assert df.empty
    assert list(df.columns) == ["Title", "Kind"]


def test_nested_and_missing_keys():
    df = entity_list_to_df(
        [{"title": "a", "type": "link_video", "meta": {"size": 4}}, {"title": "b"}],
        [("Title", "title"), ("Kind", "fmt:type"), ("Size", "meta.size")],
    )

    assert list(df["Kind"]) == ["Link Video", ""]
    assert list(df["Size"]) == [4, ""]
