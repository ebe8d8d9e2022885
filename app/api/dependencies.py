"""
app/api/dependencies.py

Shared FastAPI dependencies: database context, services, the session
identity and upload validation.
"""

from __future__ import annotations

from fastapi import Depends, File, Request, UploadFile

from app.config import get_import_settings
from app.domain.identity import Identity, identity_from_session
from app.errors import BadRequestError, UnauthorizedError
from app.services.auth_service import CredentialVerifier, PasswordService
from app.services.dashboard_service import DashboardService
from app.services.export_service import ExportService
from app.services.spreadsheet_importer import SpreadsheetImporter
from app.services.user_admin_service import UserAdminService
from app.services.value_store import ValueStore
from db.database import Database

SESSION_IDENTITY_KEY = "identity"

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------------
# Database and services
# ---------------------------------------------------------------------------


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_credential_verifier(database: Database = Depends(get_database)) -> CredentialVerifier:
    return CredentialVerifier(database)


def get_password_service(database: Database = Depends(get_database)) -> PasswordService:
    return PasswordService(database)


def get_value_store(database: Database = Depends(get_database)) -> ValueStore:
    return ValueStore(database)


def get_spreadsheet_importer(database: Database = Depends(get_database)) -> SpreadsheetImporter:
    return SpreadsheetImporter(database)


def get_dashboard_service(database: Database = Depends(get_database)) -> DashboardService:
    return DashboardService(database)


def get_export_service(database: Database = Depends(get_database)) -> ExportService:
    return ExportService(database)


def get_user_admin_service(database: Database = Depends(get_database)) -> UserAdminService:
    return UserAdminService(database)


# ---------------------------------------------------------------------------
# Session identity
# ---------------------------------------------------------------------------


def get_identity(request: Request) -> Identity:
    """
    Return the identity stored at login, or raise ``UnauthorizedError``.
    """

    identity = identity_from_session(request.session.get(SESSION_IDENTITY_KEY))
    if identity is None:
        raise UnauthorizedError()
    return identity


def get_optional_identity(request: Request) -> Identity | None:
    return identity_from_session(request.session.get(SESSION_IDENTITY_KEY))


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def get_spreadsheet_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is an .xlsx workbook by extension or MIME
    type. The size limit is checked when the body is read.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_xlsx_filename = filename.endswith(".xlsx")
    is_xlsx_content_type = content_type == XLSX_CONTENT_TYPE

    if not is_xlsx_filename and not is_xlsx_content_type:
        raise BadRequestError("Only Excel .xlsx files are allowed.")

    return file


def read_upload_limited(file: UploadFile) -> bytes:
    """
    Read an upload fully, rejecting bodies above ``IMPORT_MAX_UPLOAD_MB``.
    """

    max_bytes = get_import_settings().max_upload_bytes
    content = file.file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise BadRequestError(f"File exceeds the {max_bytes // (1024 * 1024)} MB upload limit.")
    return content
