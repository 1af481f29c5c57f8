"""
Tests for daily stats deltas, project-group stats and the team matrix.
"""

from datetime import date, datetime, timedelta, timezone

from conftest import make_file, make_pr
from metrics.compute import (build_team_matrix, compute_daily_stats_deltas,
                             compute_project_group_stats)
from metrics.schemas import TeamProjectMatrix

DAY = date(2025, 11, 1)


class TestDailyStatsDeltas:
    def test_pr_counted_once_per_project(self):
        pr = make_pr(
            1,
            [
                make_file("a.cs", "Web", status="added", additions=10),
                make_file("b.cs", "Web", status="modified", additions=2, deletions=3),
                make_file("c.cs", "Core", status="removed", additions=0, deletions=4),
            ],
        )

        deltas = compute_daily_stats_deltas([pr])

        web = deltas.projects[(DAY, "Web")]
        assert (web.pr_count, web.total_lines_changed, web.files_added, web.files_modified) == (1, 15, 1, 1)
        core = deltas.projects[(DAY, "Core")]
        assert (core.pr_count, core.total_lines_changed, core.files_modified) == (1, 4, 1)
        assert deltas.team_projects[(DAY, "Web", "Alpha")].pr_count == 1
        assert deltas.team_projects[(DAY, "Core", "Alpha")].pr_count == 1

    def test_file_order_does_not_matter(self):
        files = [
            make_file("a.cs", "Web", status="added", additions=5),
            make_file("b.cs", "Core", status="renamed", additions=0),
            make_file("c.cs", "Web", status="modified", additions=1),
        ]
        forward = compute_daily_stats_deltas([make_pr(1, files)])
        backward = compute_daily_stats_deltas([make_pr(1, list(reversed(files)))])
        assert forward == backward

    def test_multiple_prs_and_teams(self):
        prs = [
            make_pr(1, [make_file("a", "Web")], team="Alpha"),
            make_pr(2, [make_file("b", "Web"), make_file("c", "Web")], team="Beta"),
            make_pr(3, [make_file("d", "Web")], team="Alpha"),
        ]

        deltas = compute_daily_stats_deltas(prs)

        assert deltas.projects[(DAY, "Web")].pr_count == 3
        assert deltas.team_projects[(DAY, "Web", "Alpha")].pr_count == 2
        assert deltas.team_projects[(DAY, "Web", "Beta")].pr_count == 1

    def test_day_is_utc_date(self):
        # 23:30 at UTC-05:00 is 04:30 the next day in UTC.
        eastern = timezone(timedelta(hours=-5))
        pr = make_pr(1, [make_file("a", "Web")], merged_at=datetime(2025, 11, 1, 23, 30, tzinfo=eastern))
        deltas = compute_daily_stats_deltas([pr])
        assert list(deltas.projects) == [(date(2025, 11, 2), "Web")]

    def test_group_of_override_and_default(self):
        pr = make_pr(1, [make_file("a", "Acme.Web", group="Acme")])
        assert compute_daily_stats_deltas([pr]).projects[(DAY, "Acme.Web")].project_group == "Acme"
        deltas = compute_daily_stats_deltas([pr], group_of=lambda name: name.upper())
        assert deltas.projects[(DAY, "Acme.Web")].project_group == "ACME.WEB"
        assert deltas.team_projects[(DAY, "Acme.Web", "Alpha")].project_group == "ACME.WEB"

    def test_pr_without_files_contributes_nothing(self):
        deltas = compute_daily_stats_deltas([make_pr(1, [])])
        assert deltas.is_empty()


class TestProjectGroupStats:
    def test_includes_untouched_groups(self):
        prs = [
            make_pr(1, [make_file("a", "Web", status="added", additions=4), make_file("b", "Web")]),
            make_pr(2, [make_file("c", "Web", deletions=2, additions=0)]),
        ]

        stats = compute_project_group_stats(prs, ["Core", "Web"])

        assert stats["Core"].pr_count == 0
        assert (stats["Web"].pr_count, stats["Web"].total_lines_changed) == (2, 7)
        assert (stats["Web"].files_added, stats["Web"].files_modified) == (1, 2)

    def test_unknown_group_is_added(self):
        stats = compute_project_group_stats([make_pr(1, [make_file("x", "Unmatched")])], [])
        assert stats["Unmatched"].pr_count == 1


class TestTeamMatrix:
    def test_missing_keys_read_zero(self):
        matrix = TeamProjectMatrix(project_groups=["Web"], teams=["Alpha"])
        assert matrix["Web", "Alpha"] == 0
        assert matrix.get("Nope", "Nobody") == 0

    def test_counts_once_per_group(self):
        prs = [
            make_pr(1, [make_file("a", "Web"), make_file("b", "Web"), make_file("c", "Core")], team="Alpha"),
            make_pr(2, [make_file("d", "Web")], team="Unassigned"),
            make_pr(3, [make_file("e", "Docs")], team="Gamma"),
        ]

        matrix = build_team_matrix(prs, ["Core", "Web"], ["Alpha", "Beta"])

        assert matrix.get("Web", "Alpha") == 1
        assert matrix.get("Core", "Alpha") == 1
        assert matrix.get("Web", "Unassigned") == 1
        assert matrix.get("Web", "Beta") == 0
        assert matrix.project_groups == ["Core", "Web", "Docs"]
        assert matrix.teams == ["Alpha", "Beta", "Unassigned", "Gamma"]
        assert matrix.row("Docs") == {"Alpha": 0, "Beta": 0, "Unassigned": 0, "Gamma": 1}
