"""
app/api/routers/catalog_router.py

Municipality list and indicator/service catalogs.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import get_database, get_identity, get_optional_identity
from app.domain.identity import Identity, Operator
from app.errors import InternalError, UnauthorizedError
from app.schemas.catalog import IndicatorResponse, MunicipalityResponse, ServiceResponse
from db.database import Database
from db.repositories.catalog_repository import CatalogRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])


@router.get("/municipalities", response_model=list[MunicipalityResponse])
def list_municipalities(
    scope: str | None = Query(default=None, description='"mine" limits the list to the caller\'s municipality'),
    identity: Identity | None = Depends(get_optional_identity),
    database: Database = Depends(get_database),
) -> list[MunicipalityResponse]:
    """
    Active municipalities ordered by name.

    The full list is public (it feeds the login form). ``scope=mine``
    requires a session and narrows an operator's list to their own
    municipality.
    """

    only_ids = None
    if scope == "mine":
        if identity is None:
            raise UnauthorizedError()
        if isinstance(identity, Operator):
            only_ids = [identity.municipality_id]

    try:
        rows = database.run_read(
            lambda session: [
                MunicipalityResponse.model_validate(row)
                for row in CatalogRepository(session).list_municipalities(only_ids=only_ids)
            ]
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to list municipalities")
        raise InternalError("Failed to load municipalities.") from exc
    return rows


@router.get("/catalog/indicators/{form_code}", response_model=list[IndicatorResponse])
def list_indicators(
    form_code: str,
    identity: Identity = Depends(get_identity),
    database: Database = Depends(get_database),
) -> list[IndicatorResponse]:
    try:
        return database.run_read(
            lambda session: [
                IndicatorResponse.model_validate(row) for row in CatalogRepository(session).list_indicators(form_code)
            ]
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to list indicators form_code=%s", form_code)
        raise InternalError("Failed to load indicators.") from exc


@router.get("/catalog/services", response_model=list[ServiceResponse])
def list_services(
    category: str | None = Query(default=None),
    identity: Identity = Depends(get_identity),
    database: Database = Depends(get_database),
) -> list[ServiceResponse]:
    try:
        return database.run_read(
            lambda session: [
                ServiceResponse.model_validate(row)
                for row in CatalogRepository(session).list_services(category=category)
            ]
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to list services")
        raise InternalError("Failed to load services.") from exc
