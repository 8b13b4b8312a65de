"""Filter fragments for report queries.

Every report accepts the same dimension filters (date range, platform,
country, app version) plus a few report specific ones. Each dimension turns
into a :class:`Fragment`: either empty, or an ``AND <condition>`` clause whose
values are bound as named parameters rather than written into the SQL text.
Fragments can be concatenated in any order; a parameter name is always bound
to the same value, so merging their parameter dicts is safe.

When both ends of a date range are supplied the reports switch to
acquisition-cohort mode: the ``user_cohorts`` CTE selects users whose first
``first_open`` falls in the window and every metric subquery joins against it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Optional

from game_analytics.core.errors import ClientInputError
from game_analytics.services.event_params import int_param

ALL = "all"
DEFAULT_LEVEL_COUNT = 50

EVENT_DATE = "CAST(make_timestamp(event_timestamp) AS DATE)"


@dataclass(frozen=True)
class Fragment:
    """A possibly empty SQL clause with its bound parameters"""

    sql: str = ""
    params: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.sql)

    def __str__(self) -> str:
        return self.sql

    def __add__(self, other: "Fragment") -> "Fragment":
        return join_fragments(self, other)


EMPTY = Fragment()


def join_fragments(*fragments: Fragment, separator: str = "\n") -> Fragment:
    sql = separator.join(fragment.sql for fragment in fragments if fragment)
    params: dict[str, Any] = {}
    for fragment in fragments:
        params.update(fragment.params)
    return Fragment(sql, params)


def _is_active(value: Optional[str]) -> bool:
    return bool(value) and value != ALL and value.strip() != ""


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if value is None or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ClientInputError(f"{name} must be a date in YYYY-MM-DD format")


def _parse_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or not value.strip() or value.strip() == ALL:
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise ClientInputError(f"{name} must be an integer")


@dataclass(frozen=True)
class ReportFilter:
    """Filters shared by every report, built fresh for each request"""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    platform: str = ALL
    country: str = ALL
    version: str = ALL
    level: Optional[int] = None
    level_count: int = DEFAULT_LEVEL_COUNT

    @classmethod
    def from_query(
            cls,
            start_date: Optional[str] = None,
            end_date: Optional[str] = None,
            platform: Optional[str] = None,
            country: Optional[str] = None,
            version: Optional[str] = None,
            level: Optional[str] = None,
            level_count: Optional[str] = None,
    ) -> "ReportFilter":
        """Build a filter from raw query-string values; blanks mean "no filter" """
        count = _parse_int(level_count, "levelCount")
        if count is not None and count < 0:
            raise ClientInputError("levelCount must be a non-negative integer")
        return cls(
            start_date=_parse_date(start_date, "startDate"),
            end_date=_parse_date(end_date, "endDate"),
            platform=(platform or ALL).strip() or ALL,
            country=country if country is not None else ALL,
            version=version if version is not None else ALL,
            level=_parse_int(level, "level"),
            level_count=count if count is not None else DEFAULT_LEVEL_COUNT,
        )

    def with_level(self, level: Optional[str]) -> "ReportFilter":
        """Copy restricted to one level; only the loadout report reads it"""
        return replace(self, level=_parse_int(level, "level"))

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None


def date_filter(f: ReportFilter) -> Fragment:
    if not f.has_date_range:
        return EMPTY
    return Fragment(
        f"AND {EVENT_DATE} BETWEEN $start_date AND $end_date",
        {"start_date": f.start_date, "end_date": f.end_date},
    )


def platform_filter(f: ReportFilter) -> Fragment:
    if not f.platform or f.platform.lower() == ALL:
        return EMPTY
    return Fragment("AND platform = $platform", {"platform": f.platform.upper()})


def country_filter(f: ReportFilter) -> Fragment:
    if not _is_active(f.country):
        return EMPTY
    return Fragment("AND geo.country = $country", {"country": f.country})


def version_filter(f: ReportFilter) -> Fragment:
    if not _is_active(f.version):
        return EMPTY
    return Fragment("AND app_info.version = $version", {"version": f.version})


def level_filter(f: ReportFilter) -> Fragment:
    if f.level is None:
        return EMPTY
    return Fragment(f"AND {int_param('level')} = $level", {"level": f.level})


def dimension_filters(f: ReportFilter, country: bool = True, version: bool = True) -> Fragment:
    """Platform, country and version fragments for one source subquery"""
    return join_fragments(
        platform_filter(f),
        country_filter(f) if country else EMPTY,
        version_filter(f) if version else EMPTY,
    )


def cohort_cte(f: ReportFilter, table: str, country: bool = True, version: bool = True) -> Fragment:
    """The ``user_cohorts`` CTE (with its trailing comma), or nothing without a date range"""
    if not f.has_date_range:
        return EMPTY

    dims = dimension_filters(f, country=country, version=version)
    sql = f"""user_cohorts AS (
        SELECT
            user_pseudo_id,
            MIN({EVENT_DATE}) AS cohort_date
        FROM {table}
        WHERE event_name = 'first_open'
        {dims}
        GROUP BY user_pseudo_id
        HAVING MIN({EVENT_DATE}) BETWEEN $start_date AND $end_date
    ),"""
    return Fragment(sql, {**dims.params, "start_date": f.start_date, "end_date": f.end_date})


def cohort_join(f: ReportFilter, alias: str = "main") -> Fragment:
    if not f.has_date_range:
        return EMPTY
    return Fragment(f"INNER JOIN user_cohorts uc ON {alias}.user_pseudo_id = uc.user_pseudo_id")
