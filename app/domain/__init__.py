"""
app/domain package marker.
"""

from app.domain.identity import Admin, Governor, Identity, Operator
from app.domain.imports import ImportIssue, ImportResult, MatchedRow, ReportingPeriod
from app.domain.values import DroppedEntry, UpsertResult, ValueBatch, ValueEntry

__all__ = [
    "Admin",
    "DroppedEntry",
    "Governor",
    "Identity",
    "ImportIssue",
    "ImportResult",
    "MatchedRow",
    "Operator",
    "ReportingPeriod",
    "UpsertResult",
    "ValueBatch",
    "ValueEntry",
]
