"""
app/schemas package marker.
"""

from app.schemas.admin import CreateUserRequest, ResetPasswordRequest, UpdateUserRequest, UserResponse
from app.schemas.auth import ChangePasswordRequest, IdentityResponse, LoginRequest, MessageResponse
from app.schemas.catalog import IndicatorResponse, MunicipalityResponse, ServiceResponse
from app.schemas.dashboard import (
    ComparisonRow,
    IndicatorDynamicsResponse,
    MunicipalityPeriodValues,
    PeriodResponse,
    RecentChange,
    ServicesDashboardResponse,
    StatsResponse,
)
from app.schemas.reports import (
    ExportRequest,
    ImportSummaryResponse,
    SaveValuesRequest,
    SaveValuesResponse,
    StoredValuesResponse,
)

__all__ = [
    "ChangePasswordRequest",
    "ComparisonRow",
    "CreateUserRequest",
    "ExportRequest",
    "IdentityResponse",
    "ImportSummaryResponse",
    "IndicatorDynamicsResponse",
    "IndicatorResponse",
    "LoginRequest",
    "MessageResponse",
    "MunicipalityPeriodValues",
    "MunicipalityResponse",
    "PeriodResponse",
    "RecentChange",
    "ResetPasswordRequest",
    "SaveValuesRequest",
    "SaveValuesResponse",
    "ServiceResponse",
    "ServicesDashboardResponse",
    "StatsResponse",
    "StoredValuesResponse",
    "UpdateUserRequest",
    "UserResponse",
]
