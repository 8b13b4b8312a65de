"""Day-bucketed acquisition cohorts.

Users are grouped by install date (their earliest ``first_open``). For each
install date and each fixed day offset the query counts the matching events
that happened that many days after install, and the distinct users who were
active at all on that day. The user column counts any event so
it can serve as the denominator for per-user averages.
"""

from __future__ import annotations

from typing import Optional

from game_analytics.core.errors import ClientInputError
from game_analytics.services.event_params import string_param
from game_analytics.services.filters import (
    EVENT_DATE,
    Fragment,
    ReportFilter,
    cohort_cte,
    cohort_join,
    dimension_filters,
)
from game_analytics.services.reports import Query, ReportQueries

DAY_OFFSETS = (0, 1, 2, 3, 4, 5, 6, 7, 14, 30, 45, 60, 75, 90)
COHORT_ROW_LIMIT = 100
WILDCARD = "%"


def _require(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise ClientInputError(f"{name} parameter is required")
    return value


def event_name_match(event_name: str) -> Fragment:
    """Exact match, or a LIKE match when the name contains a wildcard"""
    operator = "LIKE" if WILDCARD in event_name else "="
    return Fragment(f"event_name {operator} $event_name", {"event_name": event_name})


def ad_format_match(ad_format: str) -> Fragment:
    return Fragment(
        "event_name = 'ad_impression' AND ad_format = $ad_format",
        {"ad_format": ad_format},
    )


def day_bucket_columns(match: Fragment) -> str:
    """``day_k_events`` and ``day_k_users`` for every offset, in offset order"""
    columns = []
    for day in DAY_OFFSETS:
        columns.append(
            f"COUNT(CASE WHEN {match} AND days_since_install = {day} THEN 1 END) AS day_{day}_events"
        )
        columns.append(
            f"COUNT(DISTINCT CASE WHEN days_since_install = {day} AND event_name IS NOT NULL "
            f"THEN user_pseudo_id END) AS day_{day}_users"
        )
    return ",\n                ".join(columns)


class CohortQueries(ReportQueries):
    """Retention pivots keyed by install date"""

    def _day_buckets(self, name: str, f: ReportFilter, match: Fragment) -> Query:
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        ad_format = string_param("ad_format", column="e.event_params")

        sql = f"""
            WITH
            {cte}
            user_first_open AS (
                SELECT
                    user_pseudo_id,
                    MIN({EVENT_DATE}) AS install_date
                FROM {self.table}
                WHERE event_name = 'first_open'
                {dims}
                GROUP BY user_pseudo_id
            ),
            cohorted_users AS (
                SELECT ufo.*
                FROM user_first_open ufo
                {cohort_join(f, 'ufo')}
            ),
            all_events AS (
                SELECT
                    cu.install_date,
                    cu.user_pseudo_id,
                    e.event_name,
                    {ad_format} AS ad_format,
                    date_diff('day', cu.install_date, CAST(make_timestamp(e.event_timestamp) AS DATE)) AS days_since_install
                FROM cohorted_users cu
                LEFT JOIN {self.table} e
                    ON cu.user_pseudo_id = e.user_pseudo_id
            )
            SELECT
                install_date,
                COUNT(DISTINCT user_pseudo_id) AS cohort_size,
                {day_bucket_columns(match)}
            FROM all_events
            GROUP BY install_date
            ORDER BY install_date ASC
            LIMIT {COHORT_ROW_LIMIT}
        """
        return self._query(name, sql, cte, dims, match)

    def rewarded_ads_cohort(self, f: ReportFilter, event_name: Optional[str]) -> Query:
        return self._day_buckets(
            "rewarded_ads_cohort", f, event_name_match(_require(event_name, "eventName"))
        )

    def ad_impressions_cohort(self, f: ReportFilter, ad_format: Optional[str]) -> Query:
        return self._day_buckets(
            "ad_impressions_cohort", f, ad_format_match(_require(ad_format, "adFormat"))
        )
