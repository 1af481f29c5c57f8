from sqlalchemy import (BigInteger, Boolean, Column, Date, DateTime, ForeignKey,
                        Index, Integer, String, Text, UniqueConstraint, func)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Identifier = BigInteger().with_variant(Integer, "sqlite")


class AnalysisRun(Base):
    __tablename__ = "analysis_runs"

    id = Column(Identifier, primary_key=True, autoincrement=True)
    github_owner = Column(String(255), nullable=False, comment="owner of the analysed repo")
    github_repo = Column(String(255), nullable=False, comment="name of the analysed repo")
    start_date = Column(
        DateTime(timezone=True), nullable=False, comment="inclusive start of the run window"
    )
    end_date = Column(
        DateTime(timezone=True), nullable=False, comment="exclusive end of the run window"
    )
    base_branch = Column(String(255), nullable=False)
    run_date = Column(
        DateTime(timezone=True), nullable=False, comment="when the pipeline ran"
    )
    pr_count = Column(Integer, nullable=False, comment="number of PRs recorded by the run")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PullRequest(Base):
    __tablename__ = "pull_requests"

    id = Column(Identifier, primary_key=True, autoincrement=True)
    analysis_run_id = Column(
        Identifier,
        ForeignKey("analysis_runs.id", ondelete="CASCADE"),
        nullable=False,
        comment="foreign key for analysis_runs.id",
    )
    pr_number = Column(Integer, nullable=False, unique=True, comment="PR number, recorded once")
    title = Column(Text, nullable=False)
    author = Column(String(255), nullable=False)
    team = Column(String(255), nullable=False)
    merged_at = Column(DateTime(timezone=True), nullable=False)
    merge_commit_sha = Column(String(40), nullable=False, default="")
    is_rollup_pr = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PrFile(Base):
    __tablename__ = "pr_files"

    id = Column(Identifier, primary_key=True, autoincrement=True)
    pull_request_id = Column(
        Identifier,
        ForeignKey("pull_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="foreign key for pull_requests.id",
    )
    file_name = Column(Text, nullable=False, comment="path of the changed file")
    project_name = Column(String(255), nullable=False, index=True)
    project_group = Column(String(255), nullable=False, index=True)
    status = Column(String(50), nullable=False, comment="added|removed|modified|renamed")
    additions = Column(Integer, nullable=False)
    deletions = Column(Integer, nullable=False)
    changes = Column(Integer, nullable=False, comment="additions + deletions")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PrProject(Base):
    __tablename__ = "pr_projects"
    __table_args__ = (UniqueConstraint("pull_request_id", "project_name"),)

    id = Column(Identifier, primary_key=True, autoincrement=True)
    pull_request_id = Column(
        Identifier,
        ForeignKey("pull_requests.id", ondelete="CASCADE"),
        nullable=False,
        comment="foreign key for pull_requests.id",
    )
    project_name = Column(String(255), nullable=False)
    project_group = Column(String(255), nullable=False)
    file_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DailyProjectStats(Base):
    __tablename__ = "daily_project_stats"
    __table_args__ = (
        UniqueConstraint("day", "project_name"),
        Index("ix_daily_project_stats_day", "day"),
        Index("ix_daily_project_stats_project_group", "project_group"),
    )

    id = Column(Identifier, primary_key=True, autoincrement=True)
    day = Column(Date, nullable=False, comment="UTC merge date")
    project_name = Column(String(255), nullable=False)
    project_group = Column(String(255), nullable=False)
    pr_count = Column(Integer, nullable=False, default=0)
    total_lines_changed = Column(Integer, nullable=False, default=0)
    files_modified = Column(Integer, nullable=False, default=0)
    files_added = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class DailyTeamProjectStats(Base):
    __tablename__ = "daily_team_project_stats"
    __table_args__ = (
        UniqueConstraint("day", "project_name", "team_name"),
        Index("ix_daily_team_project_stats_day", "day"),
        Index("ix_daily_team_project_stats_project_group", "project_group"),
        Index("ix_daily_team_project_stats_team_name", "team_name"),
    )

    id = Column(Identifier, primary_key=True, autoincrement=True)
    day = Column(Date, nullable=False, comment="UTC merge date")
    project_name = Column(String(255), nullable=False)
    project_group = Column(String(255), nullable=False)
    team_name = Column(String(255), nullable=False)
    pr_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
