from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

import storage
from conftest import make_file, make_pr
from metrics.compute import compute_daily_stats_deltas
from metrics.schemas import AnalysisRunRecord, DailyProjectStatsDelta, StatsDeltas
from models import (AnalysisRun, DailyProjectStats, DailyTeamProjectStats, PrFile,
                    PrProject, PullRequest)
from storage import (PersistenceGateway, TransactionFailure, detect_db_type,
                     normalize_async_url)

DAY = date(2025, 11, 1)


def _run(start=datetime(2025, 11, 1, tzinfo=timezone.utc), end=None, owner="acme", repo="widgets", prs=0):
    return AnalysisRunRecord(
        owner=owner,
        repo=repo,
        start_date=start,
        end_date=end or start.replace(day=start.day + 1),
        base_branch="main",
        run_date=datetime(2025, 11, 5, tzinfo=timezone.utc),
        pr_count=prs,
    )


def _delta(pr_count=3, lines=50):
    delta = DailyProjectStatsDelta(
        day=DAY, project_name="X", project_group="X", pr_count=pr_count, total_lines_changed=lines
    )
    return StatsDeltas(projects={(DAY, "X"): delta})


@pytest_asyncio.fixture
async def gateway(tmp_path):
    """A gateway over a file-backed SQLite database with tables created."""
    async with PersistenceGateway(f"sqlite+aiosqlite:///{tmp_path / 'insights.db'}") as gw:
        yield gw


async def _count(gateway, model):
    async with gateway.session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar() or 0


async def _project_stats(gateway):
    async with gateway.session_factory() as session:
        result = await session.execute(select(DailyProjectStats))
        return {row.project_name: row for row in result.scalars().all()}


class TestDbType:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("sqlite:///x.db", "sqlite"),
            ("sqlite+aiosqlite:///x.db", "sqlite"),
            ("postgresql://u@h/db", "postgres"),
            ("postgres://u@h/db", "postgres"),
            ("postgresql+asyncpg://u@h/db", "postgres"),
        ],
    )
    def test_detect(self, url, expected):
        assert detect_db_type(url) == expected

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="mysql"):
            detect_db_type("mysql://u@h/db")

    def test_normalize_to_async_driver(self):
        assert normalize_async_url("sqlite:///x.db") == "sqlite+aiosqlite:///x.db"
        assert normalize_async_url("postgres://u@h/db") == "postgresql+asyncpg://u@h/db"
        assert normalize_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


@pytest.mark.asyncio
async def test_commit_persists_run_prs_files_and_stats(gateway):
    prs = [
        make_pr(
            1,
            [
                make_file("Acme.Web/a.cs", "Acme.Web", status="added", additions=10, group="Acme"),
                make_file("Acme.Web/b.cs", "Acme.Web", additions=1, deletions=1, group="Acme"),
            ],
        ),
        make_pr(2, [], team="Unassigned", author="dave", merge_commit_sha=None),
    ]

    run_id = await gateway.commit(_run(prs=2), prs, compute_daily_stats_deltas(prs))

    assert run_id is not None
    assert await _count(gateway, AnalysisRun) == 1
    assert await _count(gateway, PullRequest) == 2
    assert await _count(gateway, PrFile) == 2
    async with gateway.session_factory() as session:
        project = (await session.execute(select(PrProject))).scalars().one()
        pr_two = (
            await session.execute(select(PullRequest).where(PullRequest.pr_number == 2))
        ).scalars().one()
    assert (project.project_name, project.project_group, project.file_count) == ("Acme.Web", "Acme", 2)
    assert pr_two.merge_commit_sha == ""
    assert pr_two.analysis_run_id == run_id

    stats = await _project_stats(gateway)
    web = stats["Acme.Web"]
    assert (web.pr_count, web.total_lines_changed, web.files_added, web.files_modified) == (1, 12, 1, 1)
    assert await _count(gateway, DailyTeamProjectStats) == 1


@pytest.mark.asyncio
async def test_stats_accumulate_across_runs(gateway):
    await gateway.commit(_run(), [], _delta())
    assert (await _project_stats(gateway))["X"].pr_count == 3

    await gateway.commit(_run(start=datetime(2025, 11, 2, tzinfo=timezone.utc)), [], _delta())

    row = (await _project_stats(gateway))["X"]
    assert (row.pr_count, row.total_lines_changed) == (6, 100)
    assert await _count(gateway, DailyProjectStats) == 1


@pytest.mark.asyncio
async def test_team_stats_accumulate(gateway):
    prs = [make_pr(1, [make_file("a", "Web")])]
    await gateway.commit(_run(), prs, compute_daily_stats_deltas(prs))
    more = [make_pr(2, [make_file("b", "Web")])]
    await gateway.commit(_run(), more, compute_daily_stats_deltas(more))

    async with gateway.session_factory() as session:
        row = (await session.execute(select(DailyTeamProjectStats))).scalars().one()
    assert (row.team_name, row.pr_count) == ("Alpha", 2)


@pytest.mark.asyncio
async def test_failure_rolls_back_everything(gateway, monkeypatch):
    async def _boom(session, deltas):
        raise RuntimeError("stats write failed")

    monkeypatch.setattr(storage, "upsert_daily_project_stats", _boom)
    prs = [make_pr(1, [make_file("a", "Web")])]

    with pytest.raises(TransactionFailure, match="stats write failed"):
        await gateway.commit(_run(prs=1), prs, compute_daily_stats_deltas(prs))

    for model in (AnalysisRun, PullRequest, PrFile, PrProject, DailyProjectStats, DailyTeamProjectStats):
        assert await _count(gateway, model) == 0


@pytest.mark.asyncio
async def test_duplicate_pr_number_rolls_back_second_run(gateway):
    prs = [make_pr(1, [make_file("a", "Web")])]
    await gateway.commit(_run(prs=1), prs, compute_daily_stats_deltas(prs))

    with pytest.raises(TransactionFailure):
        await gateway.commit(_run(prs=1), prs, compute_daily_stats_deltas(prs))

    assert await _count(gateway, AnalysisRun) == 1
    assert (await _project_stats(gateway))["Web"].pr_count == 1


@pytest.mark.asyncio
async def test_latest_run(gateway):
    assert await gateway.latest_run("acme", "widgets") is None

    await gateway.commit(_run(start=datetime(2025, 11, 3, tzinfo=timezone.utc)), [], StatsDeltas())
    await gateway.commit(_run(start=datetime(2025, 11, 1, tzinfo=timezone.utc)), [], StatsDeltas())
    await gateway.commit(_run(start=datetime(2025, 11, 9, tzinfo=timezone.utc), repo="other"), [], StatsDeltas())

    last = await gateway.latest_run("acme", "widgets")
    assert last.end_date.replace(tzinfo=None) == datetime(2025, 11, 4)
    assert await gateway.latest_run("acme", "nothing") is None
