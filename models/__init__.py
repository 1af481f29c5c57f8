from .insights import (AnalysisRun, Base, DailyProjectStats,  # noqa: F401
                       DailyTeamProjectStats, PrFile, PrProject, PullRequest)

__all__ = [
    "AnalysisRun",
    "Base",
    "DailyProjectStats",
    "DailyTeamProjectStats",
    "PrFile",
    "PrProject",
    "PullRequest",
]
