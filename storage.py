import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from metrics.schemas import (
    AnalysisRunRecord,
    DailyProjectStatsDelta,
    DailyTeamProjectStatsDelta,
    StatsDeltas,
)
from models.insights import (
    AnalysisRun,
    Base,
    DailyProjectStats,
    DailyTeamProjectStats,
    PrFile,
    PrProject,
    PullRequest,
)
from processors.attribution import AttributedPullRequest
from utils import _normalize_datetime

logger = logging.getLogger(__name__)


class TransactionFailure(Exception):
    """A persistence step failed and the whole run was rolled back."""


def detect_db_type(conn_string: str) -> str:
    """
    Detect database type from connection string.

    :param conn_string: Database connection string.
    :return: Database type ('postgres' or 'sqlite').
    :raises ValueError: If database type cannot be determined.
    """
    if not conn_string:
        raise ValueError("Connection string is required")

    conn_lower = conn_string.lower()

    if conn_lower.startswith(("postgresql://", "postgres://", "postgresql+asyncpg://")):
        return "postgres"
    if conn_lower.startswith(("sqlite://", "sqlite+aiosqlite://")):
        return "sqlite"

    scheme = conn_string.split("://", 1)[0] if "://" in conn_string else "unknown"
    raise ValueError(
        f"Could not detect database type from connection string. "
        f"Supported: postgresql://, postgres://, sqlite://, or variations with "
        f"async drivers. Got scheme: '{scheme}'"
    )


def normalize_async_url(conn_string: str) -> str:
    """Point sync-style URLs at the async drivers (aiosqlite, asyncpg)."""
    db_type = detect_db_type(conn_string)
    scheme, rest = conn_string.split("://", 1)
    if db_type == "sqlite" and "+" not in scheme:
        return f"sqlite+aiosqlite://{rest}"
    if db_type == "postgres" and "+" not in scheme:
        return f"postgresql+asyncpg://{rest}"
    return conn_string


def _insert_for_dialect(session: AsyncSession, model: Any):
    dialect = session.bind.dialect.name
    if dialect == "sqlite":
        return sqlite_insert(model)
    if dialect in ("postgres", "postgresql"):
        return pg_insert(model)
    raise ValueError(f"Unsupported SQL dialect for upserts: {dialect}")


async def insert_analysis_run(session: AsyncSession, run: AnalysisRunRecord) -> AnalysisRun:
    row = AnalysisRun(
        github_owner=run.owner,
        github_repo=run.repo,
        start_date=_normalize_datetime(run.start_date),
        end_date=_normalize_datetime(run.end_date),
        base_branch=run.base_branch,
        run_date=_normalize_datetime(run.run_date),
        pr_count=run.pr_count,
    )
    session.add(row)
    await session.flush()
    return row


async def insert_pull_requests(
    session: AsyncSession, run_id: int, prs: Sequence[AttributedPullRequest]
) -> Dict[int, int]:
    """
    Insert PullRequest rows for a run.

    :return: Mapping of PR number to generated row id.
    """
    rows = [
        PullRequest(
            analysis_run_id=run_id,
            pr_number=pr.number,
            title=pr.title,
            author=pr.author,
            team=pr.team,
            merged_at=_normalize_datetime(pr.merged_at),
            merge_commit_sha=pr.merge_commit_sha or "",
            is_rollup_pr=pr.is_rollup,
        )
        for pr in prs
    ]
    session.add_all(rows)
    await session.flush()
    return {row.pr_number: row.id for row in rows}


async def insert_pr_files_and_projects(
    session: AsyncSession,
    pr_ids: Dict[int, int],
    prs: Sequence[AttributedPullRequest],
) -> None:
    file_rows: List[PrFile] = []
    project_rows: List[PrProject] = []
    for pr in prs:
        pull_request_id = pr_ids[pr.number]
        groups: Dict[str, str] = {}
        for f in pr.files:
            groups.setdefault(f.project_name, f.project_group)
            file_rows.append(
                PrFile(
                    pull_request_id=pull_request_id,
                    file_name=f.file_name,
                    project_name=f.project_name,
                    project_group=f.project_group,
                    status=f.status,
                    additions=f.additions,
                    deletions=f.deletions,
                    changes=f.changes,
                )
            )
        for project_name, file_count in pr.file_count_by_project_name.items():
            project_rows.append(
                PrProject(
                    pull_request_id=pull_request_id,
                    project_name=project_name,
                    project_group=groups.get(project_name, project_name),
                    file_count=file_count,
                )
            )
    session.add_all(file_rows)
    session.add_all(project_rows)
    await session.flush()


async def upsert_daily_project_stats(
    session: AsyncSession, deltas: Iterable[DailyProjectStatsDelta]
) -> None:
    """Add ``deltas`` to the stored counters, inserting rows that do not exist yet."""
    rows = [
        {
            "day": d.day,
            "project_name": d.project_name,
            "project_group": d.project_group,
            "pr_count": d.pr_count,
            "total_lines_changed": d.total_lines_changed,
            "files_modified": d.files_modified,
            "files_added": d.files_added,
        }
        for d in deltas
    ]
    if not rows:
        return

    stmt = _insert_for_dialect(session, DailyProjectStats)
    set_ = {
        col: getattr(DailyProjectStats, col) + getattr(stmt.excluded, col)
        for col in ("pr_count", "total_lines_changed", "files_modified", "files_added")
    }
    set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(
        index_elements=[DailyProjectStats.day, DailyProjectStats.project_name],
        set_=set_,
    )
    await session.execute(stmt, rows)


async def upsert_daily_team_project_stats(
    session: AsyncSession, deltas: Iterable[DailyTeamProjectStatsDelta]
) -> None:
    rows = [
        {
            "day": d.day,
            "project_name": d.project_name,
            "project_group": d.project_group,
            "team_name": d.team_name,
            "pr_count": d.pr_count,
        }
        for d in deltas
    ]
    if not rows:
        return

    stmt = _insert_for_dialect(session, DailyTeamProjectStats)
    stmt = stmt.on_conflict_do_update(
        index_elements=[
            DailyTeamProjectStats.day,
            DailyTeamProjectStats.project_name,
            DailyTeamProjectStats.team_name,
        ],
        set_={
            "pr_count": DailyTeamProjectStats.pr_count + stmt.excluded.pr_count,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt, rows)


class PersistenceGateway:
    """Async persistence of analysis runs and daily stats backed by SQLAlchemy."""

    def __init__(self, conn_string: str, echo: bool = False) -> None:
        conn_string = normalize_async_url(conn_string)
        engine_kwargs = {"echo": echo}

        # Only add pooling parameters for databases that support them
        if "sqlite" not in conn_string.lower():
            engine_kwargs.update(
                {
                    "pool_size": 5,
                    "max_overflow": 10,
                    "pool_pre_ping": True,
                    "pool_recycle": 3600,
                }
            )

        self.engine = create_async_engine(conn_string, **engine_kwargs)
        self.session_factory = sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )

    async def ensure_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def __aenter__(self) -> "PersistenceGateway":
        # Create tables for SQLite automatically
        if self.engine.dialect.name == "sqlite":
            await self.ensure_tables()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.engine.dispose()

    async def commit(
        self,
        run: AnalysisRunRecord,
        prs: Sequence[AttributedPullRequest],
        deltas: StatsDeltas,
    ) -> int:
        """
        Persist a run, its PRs and its stats deltas in one transaction.

        :param run: Run metadata.
        :param prs: Attributed PRs recorded by the run.
        :param deltas: Daily stats increments to accumulate.
        :return: Id of the new AnalysisRun row.
        :raises TransactionFailure: If any step fails; nothing is persisted.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    run_row = await insert_analysis_run(session, run)
                    pr_ids = await insert_pull_requests(session, run_row.id, prs)
                    await insert_pr_files_and_projects(session, pr_ids, prs)
                    await upsert_daily_project_stats(session, deltas.projects.values())
                    await upsert_daily_team_project_stats(
                        session, deltas.team_projects.values()
                    )
                    run_id = run_row.id
            except Exception as e:
                logger.error(f"Persisting analysis run failed, rolled back: {e}")
                raise TransactionFailure(f"Failed to persist analysis run: {e}") from e

        logger.info(
            f"Saved analysis run {run_id}: {len(prs)} PRs, "
            f"{len(deltas.projects)} project stats, "
            f"{len(deltas.team_projects)} team stats"
        )
        return run_id

    async def latest_run(self, owner: str, repo: str) -> Optional[AnalysisRun]:
        """Return the run for ``owner/repo`` with the greatest end date, if any."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(AnalysisRun)
                .where(AnalysisRun.github_owner == owner, AnalysisRun.github_repo == repo)
                .order_by(AnalysisRun.end_date.desc(), AnalysisRun.id.desc())
                .limit(1)
            )
            return result.scalars().first()
