"""
Repository layer exports.
"""

from db.repositories.catalog_repository import CatalogRepository
from db.repositories.user_repository import UserRepository
from db.repositories.value_repository import ValueRepository

__all__ = [
    "CatalogRepository",
    "UserRepository",
    "ValueRepository",
]
