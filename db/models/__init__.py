"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.catalog import IndicatorDefinition, ServiceDefinition
from db.models.municipality import Municipality
from db.models.user import User, UserRole
from db.models.values import (
    VALUE_KINDS,
    IndicatorValue,
    ServiceValue,
    ValueKind,
    ValueKindName,
    get_value_kind,
)

__all__ = [
    "IndicatorDefinition",
    "IndicatorValue",
    "Municipality",
    "ServiceDefinition",
    "ServiceValue",
    "User",
    "UserRole",
    "VALUE_KINDS",
    "ValueKind",
    "ValueKindName",
    "get_value_kind",
]
