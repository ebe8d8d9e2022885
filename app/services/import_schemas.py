"""
app/services/import_schemas.py

Spreadsheet layouts accepted by the importer, plus the text helpers used to
match spreadsheet labels against stored names.

Layouts
-------
traffic_safety  one row per municipality; period from the sheet title;
                columns B..AQ hold 42 counters (14 groups x total/dead/injured)
services        one row per service; column B holds the value
indicators      one row per form indicator; column B holds the value
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from app.domain.imports import ReportingPeriod
from db.models.values import ValueKindName

TRAFFIC_SAFETY_FORM = "traffic_safety"
DEFAULT_INDICATOR_FORM = "form_1_gmu"


class ImportType:
    TRAFFIC_SAFETY = "traffic_safety"
    SERVICES = "services"
    INDICATORS = "indicators"

    ALL = (TRAFFIC_SAFETY, SERVICES, INDICATORS)


class EntityKind:
    MUNICIPALITY = "municipality"
    CATALOG_ITEM = "catalog_item"


# ---------------------------------------------------------------------------
# Traffic-safety counters
# ---------------------------------------------------------------------------

# (code prefix, display name) in spreadsheet column order
TRAFFIC_SAFETY_GROUPS: tuple[tuple[str, str], ...] = (
    ("dtp_total", "ДТП всего"),
    ("dtp_pedestrians", "ДТП с участием пешеходов"),
    ("dtp_children_16", "ДТП с участием детей до 16 лет"),
    ("dtp_drivers_violation", "ДТП по вине водителей"),
    ("dtp_oncoming_lane", "ДТП с выездом на полосу встречного движения"),
    ("dtp_children_18", "ДТП с участием несовершеннолетних до 18 лет"),
    ("dtp_in_settlements", "ДТП в населённых пунктах"),
    ("dtp_on_highways", "ДТП на автодорогах"),
    ("dtp_railway_crossings", "ДТП на железнодорожных переездах"),
    ("dtp_outside_settlements", "ДТП вне населённых пунктов"),
    ("dtp_hit_and_run", "ДТП с наездом и скрытием"),
    ("dtp_driver_fled", "ДТП с оставлением места водителем"),
    ("dtp_unknown_vehicle", "ДТП с неустановленным транспортным средством"),
    ("dtp_photo_radar", "ДТП в зоне фоторадаров"),
)

_TRAFFIC_SAFETY_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("", ""),
    ("_dead", ", погибло"),
    ("_injured", ", ранено"),
)


def _traffic_safety_columns() -> tuple[tuple[str, str], ...]:
    return tuple(
        (prefix + code_suffix, name + name_suffix)
        for prefix, name in TRAFFIC_SAFETY_GROUPS
        for code_suffix, name_suffix in _TRAFFIC_SAFETY_SUFFIXES
    )


# (indicator code, display name) for columns B..AQ
TRAFFIC_SAFETY_COLUMNS: tuple[tuple[str, str], ...] = _traffic_safety_columns()


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportSchema:
    """
    Column layout of one import type.

    ``value_codes`` lists the catalog codes held by columns B onwards. It is
    empty for single-value layouts, where the row entity itself is the
    catalog item and column B holds its value.
    """

    import_type: str
    value_kind: str
    entity_kind: str
    period_from_title: bool
    value_codes: tuple[str, ...] = ()

    @property
    def min_columns(self) -> int:
        return 1 + max(1, len(self.value_codes))


IMPORT_SCHEMAS: dict[str, ImportSchema] = {
    ImportType.TRAFFIC_SAFETY: ImportSchema(
        import_type=ImportType.TRAFFIC_SAFETY,
        value_kind=ValueKindName.INDICATORS,
        entity_kind=EntityKind.MUNICIPALITY,
        period_from_title=True,
        value_codes=tuple(code for code, _ in TRAFFIC_SAFETY_COLUMNS),
    ),
    ImportType.SERVICES: ImportSchema(
        import_type=ImportType.SERVICES,
        value_kind=ValueKindName.SERVICES,
        entity_kind=EntityKind.CATALOG_ITEM,
        period_from_title=False,
    ),
    ImportType.INDICATORS: ImportSchema(
        import_type=ImportType.INDICATORS,
        value_kind=ValueKindName.INDICATORS,
        entity_kind=EntityKind.CATALOG_ITEM,
        period_from_title=False,
    ),
}


def get_import_schema(import_type: str) -> ImportSchema:
    try:
        return IMPORT_SCHEMAS[import_type]
    except KeyError:
        raise ValueError(
            f"Unknown import type {import_type!r}. Must be one of: {list(ImportType.ALL)}."
        ) from None


# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")
_CITY_PREFIX_RE = re.compile(r"^(?:г\.|город\s)\s*")
_DISTRICT_SUFFIX_RE = re.compile(r"\s*(?:муниципальный\s+)?(?:район|округ)$")


def normalize_label(value: Any) -> str:
    """Case-fold, unify ``ё`` and collapse whitespace."""
    if value is None:
        return ""
    text = str(value).casefold().replace("ё", "е")
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_municipality_name(value: Any) -> str:
    """
    Normalize a municipality label for matching.

    ``"г. Липецк"`` and ``"Липецк"`` match; ``"Грязинский муниципальный район"``
    and ``"Грязинский район"`` both reduce to ``"грязинский"``.
    """

    text = normalize_label(value)
    text = _CITY_PREFIX_RE.sub("", text)
    text = _DISTRICT_SUFFIX_RE.sub("", text)
    return text.strip()


def is_summary_label(value: Any, summary_labels: tuple[str, ...], *, whole_label: bool = False) -> bool:
    """
    True when ``value`` is a totals row.

    Municipality sheets match any label as a substring (``"Итого по Липецкой
    области"``). Catalog sheets carry names such as ``"ДТП всего"``, so there
    the whole label must equal a summary label.
    """

    text = normalize_label(value).rstrip(": ")
    labels = [normalize_label(label) for label in summary_labels if label]
    if whole_label:
        return text in labels
    return any(label in text for label in labels)


# ---------------------------------------------------------------------------
# Period and number parsing
# ---------------------------------------------------------------------------

_MONTHS: dict[str, int] = {
    # nominative
    "январь": 1,
    "февраль": 2,
    "март": 3,
    "апрель": 4,
    "май": 5,
    "июнь": 6,
    "июль": 7,
    "август": 8,
    "сентябрь": 9,
    "октябрь": 10,
    "ноябрь": 11,
    "декабрь": 12,
    # genitive
    "января": 1,
    "февраля": 2,
    "марта": 3,
    "апреля": 4,
    "мая": 5,
    "июня": 6,
    "июля": 7,
    "августа": 8,
    "сентября": 9,
    "октября": 10,
    "ноября": 11,
    "декабря": 12,
}

_YEAR_RE = re.compile(r"^(\d{4})(?:г\.?)?$")
_TOKEN_SPLIT_RE = re.compile(r"[\s,._-]+")


def parse_period_from_title(title: str) -> ReportingPeriod | None:
    """
    Extract the reporting period from a sheet title such as ``"Август 2025"``.

    Returns None when no month word or no four-digit year is present.
    """

    tokens = [token for token in _TOKEN_SPLIT_RE.split(normalize_label(title)) if token]
    month = next((_MONTHS[token] for token in tokens if token in _MONTHS), None)
    year = None
    for token in tokens:
        match = _YEAR_RE.match(token)
        if match:
            year = int(match.group(1))
            break
    if month is None or year is None:
        return None
    return ReportingPeriod(year=year, month=month)


def parse_number(value: Any) -> float:
    """
    Lenient numeric parse for spreadsheet cells.

    Empty or unparsable cells yield 0. Strings may use spaces as thousands
    separators and a comma as the decimal separator (``"1 234,5"``).
    """

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = str(value).strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")
    if not text:
        return 0.0
    try:
        number = float(Decimal(text))
    except (InvalidOperation, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0
