"""
app/services package marker.
"""

from app.services.access_guard import AccessScope, Allow, Deny, authorize, enforce, require_scope
from app.services.auth_service import CredentialVerifier, PasswordService
from app.services.value_store import ValueStore
from app.services.spreadsheet_importer import ImportContext, SpreadsheetImporter
from app.services.dashboard_service import DashboardService
from app.services.export_service import ExportFilePayload, ExportService
from app.services.user_admin_service import UserAdminService, UserView

__all__ = [
    "AccessScope",
    "Allow",
    "CredentialVerifier",
    "DashboardService",
    "Deny",
    "ExportFilePayload",
    "ExportService",
    "ImportContext",
    "PasswordService",
    "SpreadsheetImporter",
    "UserAdminService",
    "UserView",
    "ValueStore",
    "authorize",
    "enforce",
    "require_scope",
]
