"""Report queries over the Firebase event export.

Each method composes one query from the shared filter fragments, the
``event_params`` extractors and a report specific aggregation. With a date
range, every metric source is inner joined to ``user_cohorts`` so metrics
belong to users acquired in the window, whenever their events happened.
Without one, no join is added and every historical user contributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from game_analytics.core.warehouse import validate_table_name
from game_analytics.services.event_params import float_param, int_param, string_param
from game_analytics.services.filters import (
    Fragment,
    ReportFilter,
    cohort_cte,
    cohort_join,
    date_filter,
    dimension_filters,
    join_fragments,
    level_filter,
)

REWARDED_AD_PATTERN = "RV_Watched_%"
SILVER_COIN_EVENTS = ("RV_Watched_Silver_Coin_Before_Game", "RV_Watched_Silver_Coin_In_Game")
TOP_LOADOUT_LIMIT = 20
COUNTRY_LIMIT = 100
VERSION_LIMIT = 50


@dataclass(frozen=True)
class Query:
    """SQL text plus the values bound to its named parameters"""

    name: str
    sql: str
    params: dict[str, Any] = field(default_factory=dict)


class ReportQueries:
    """Builds the dashboard report queries against one events table"""

    def __init__(self, table: str = "events"):
        self.table = validate_table_name(table)

    def _query(self, name: str, sql: str, *fragments) -> Query:
        return Query(name=name, sql=sql, params=join_fragments(*fragments).params)

    def rewarded_ads(self, f: ReportFilter) -> Query:
        """Per rewarded-ad event: views, viewers and views per (all) users"""
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        dates = date_filter(f)

        sql = f"""
            WITH
            {cte}
            all_events AS (
                SELECT user_pseudo_id
                FROM {self.table}
                WHERE 1=1
                {dims}
            ),
            total_user_count AS (
                SELECT COUNT(DISTINCT ae.user_pseudo_id) AS total_users
                FROM all_events ae
                {cohort_join(f, 'ae')}
            ),
            main AS (
                SELECT
                    event_name,
                    user_pseudo_id
                FROM {self.table}
                WHERE event_name LIKE '{REWARDED_AD_PATTERN}'
                {dates}
                {dims}
            )
            SELECT
                main.event_name,
                COUNT(*) AS total_count,
                COUNT(DISTINCT main.user_pseudo_id) AS unique_users,
                ROUND(CAST(COUNT(*) AS DOUBLE) / NULLIF(COUNT(DISTINCT main.user_pseudo_id), 0), 2) AS avg_per_user,
                tuc.total_users,
                ROUND(CAST(COUNT(*) AS DOUBLE) / NULLIF(tuc.total_users, 0), 2) AS avg_per_all_users
            FROM main
            {cohort_join(f)}
            CROSS JOIN total_user_count tuc
            GROUP BY main.event_name, tuc.total_users
            ORDER BY total_count DESC, main.event_name
        """
        return self._query("rewarded_ads", sql, cte, dims, dates)

    def _level_events(self, f: ReportFilter, extra_columns: str = "") -> tuple[str, Fragment]:
        """``level_events`` and ``level_events_cohorted`` CTEs shared by the level reports"""
        dims = dimension_filters(f)
        level = int_param("level")
        sql = f"""
            level_events AS (
                SELECT
                    user_pseudo_id,
                    event_name,
                    event_timestamp,
                    {level} AS level{extra_columns}
                FROM {self.table}
                WHERE event_name IN ('level_complete', 'level_fail')
                {dims}
                AND {level} IS NOT NULL
            ),
            level_events_cohorted AS (
                SELECT le.*
                FROM level_events le
                {cohort_join(f, 'le')}
            )"""
        return sql, dims

    def level_analysis(self, f: ReportFilter) -> Query:
        """Completion rate, durations and attempts-to-complete per level"""
        cte = cohort_cte(f, self.table)
        level_events, dims = self._level_events(
            f, extra_columns=f",\n                    {float_param('duration_seconds')} AS duration_seconds"
        )

        sql = f"""
            WITH
            {cte}
            {level_events},
            level_stats AS (
                SELECT
                    level,
                    COUNT(CASE WHEN event_name = 'level_complete' THEN 1 END) AS completions,
                    COUNT(CASE WHEN event_name = 'level_fail' THEN 1 END) AS failures,
                    COUNT(*) AS total_attempts,
                    COUNT(DISTINCT user_pseudo_id) AS unique_users,
                    AVG(CASE WHEN event_name = 'level_complete' THEN duration_seconds END) AS avg_duration_complete,
                    AVG(CASE WHEN event_name = 'level_fail' THEN duration_seconds END) AS avg_duration_fail
                FROM level_events_cohorted
                GROUP BY level
            ),
            user_attempts AS (
                SELECT
                    level,
                    user_pseudo_id,
                    COUNT(*) AS attempts,
                    MAX(CASE WHEN event_name = 'level_complete' THEN 1 ELSE 0 END) AS completed
                FROM level_events_cohorted
                GROUP BY level, user_pseudo_id
            ),
            avg_attempts AS (
                SELECT
                    level,
                    ROUND(AVG(CASE WHEN completed = 1 THEN attempts END), 2) AS avg_attempts_to_complete
                FROM user_attempts
                GROUP BY level
            )
            SELECT
                ls.level,
                ls.completions,
                ls.failures,
                ls.total_attempts,
                ls.unique_users,
                ROUND(CAST(ls.completions AS DOUBLE) * 100 / NULLIF(ls.total_attempts, 0), 2) AS completion_rate,
                ROUND(ls.avg_duration_complete, 2) AS avg_duration_complete,
                ROUND(ls.avg_duration_fail, 2) AS avg_duration_fail,
                aa.avg_attempts_to_complete
            FROM level_stats ls
            LEFT JOIN avg_attempts aa ON ls.level = aa.level
            ORDER BY ls.level
            LIMIT {int(f.level_count)}
        """
        return self._query("level_analysis", sql, cte, dims)

    def level_silver_coin_boost(self, f: ReportFilter) -> Query:
        """Completion rates of attempts with and without a prior silver coin ad"""
        cte = cohort_cte(f, self.table)
        level_events, dims = self._level_events(f)
        level = int_param("level")
        boost_events = ", ".join(f"'{name}'" for name in SILVER_COIN_EVENTS)

        sql = f"""
            WITH
            {cte}
            {level_events},
            silver_coin_events AS (
                SELECT
                    user_pseudo_id,
                    {level} AS level,
                    event_timestamp
                FROM {self.table}
                WHERE event_name IN ({boost_events})
                {dims}
                AND {level} IS NOT NULL
            ),
            silver_coin_events_cohorted AS (
                SELECT sc.*
                FROM silver_coin_events sc
                {cohort_join(f, 'sc')}
            ),
            level_with_boost AS (
                SELECT
                    lo.level,
                    lo.event_name,
                    CASE WHEN EXISTS (
                        SELECT 1
                        FROM silver_coin_events_cohorted sc
                        WHERE sc.user_pseudo_id = lo.user_pseudo_id
                        AND sc.level = lo.level
                        AND sc.event_timestamp <= lo.event_timestamp
                    ) THEN 1 ELSE 0 END AS had_silver_boost
                FROM level_events_cohorted lo
            )
            SELECT
                level,
                COUNT(*) AS total_attempts,
                SUM(had_silver_boost) AS attempts_with_boost,
                SUM(CASE WHEN event_name = 'level_complete' AND had_silver_boost = 1 THEN 1 ELSE 0 END) AS completions_with_boost,
                SUM(CASE WHEN event_name = 'level_complete' AND had_silver_boost = 0 THEN 1 ELSE 0 END) AS completions_without_boost,
                ROUND(CAST(SUM(had_silver_boost) AS DOUBLE) * 100 / NULLIF(COUNT(*), 0), 2) AS boost_usage_rate,
                ROUND(
                    CAST(SUM(CASE WHEN event_name = 'level_complete' AND had_silver_boost = 1 THEN 1 ELSE 0 END) AS DOUBLE) * 100
                    / NULLIF(SUM(had_silver_boost), 0), 2
                ) AS completion_rate_with_boost,
                ROUND(
                    CAST(SUM(CASE WHEN event_name = 'level_complete' AND had_silver_boost = 0 THEN 1 ELSE 0 END) AS DOUBLE) * 100
                    / NULLIF(COUNT(*) - SUM(had_silver_boost), 0), 2
                ) AS completion_rate_without_boost
            FROM level_with_boost
            GROUP BY level
            ORDER BY level
            LIMIT {int(f.level_count)}
        """
        return self._query("level_silver_coin_boost", sql, cte, dims)

    def unit_loadout(self, f: ReportFilter) -> Query:
        """Unit frequency and top loadout combinations, tagged by ``result_type``"""
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        levels = level_filter(f)
        unit_names = string_param("unit_names")

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT
                    user_pseudo_id,
                    {unit_names} AS unit_names
                FROM {self.table}
                WHERE event_name = 'battle_start_loadout'
                {dims}
                {levels}
                AND {unit_names} IS NOT NULL
            ),
            loadout_events AS (
                SELECT main.unit_names
                FROM main
                {cohort_join(f)}
            ),
            individual_units AS (
                SELECT
                    TRIM(unit) AS unit_name,
                    unit_names AS full_loadout
                FROM (
                    SELECT
                        unit_names,
                        UNNEST(string_split(unit_names, ',')) AS unit
                    FROM loadout_events
                )
            ),
            unit_frequency AS (
                SELECT
                    unit_name,
                    COUNT(*) AS usage_count,
                    COUNT(DISTINCT full_loadout) AS unique_loadouts
                FROM individual_units
                GROUP BY unit_name
            ),
            loadout_combinations AS (
                SELECT
                    unit_names AS loadout,
                    COUNT(*) AS usage_count
                FROM loadout_events
                GROUP BY unit_names
                ORDER BY usage_count DESC, loadout
                LIMIT {TOP_LOADOUT_LIMIT}
            )
            SELECT
                'unit_frequency' AS result_type,
                unit_name AS name,
                usage_count,
                unique_loadouts AS additional_info
            FROM unit_frequency
            WHERE unit_name IS NOT NULL AND unit_name != ''

            UNION ALL

            SELECT
                'top_loadouts' AS result_type,
                loadout AS name,
                usage_count,
                NULL AS additional_info
            FROM loadout_combinations

            ORDER BY result_type, usage_count DESC, name
        """
        return self._query("unit_loadout", sql, cte, dims, levels)

    def unit_upgrades(self, f: ReportFilter) -> Query:
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        unit_name = string_param("unit_name")
        level = int_param("level")

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT
                    user_pseudo_id,
                    {unit_name} AS unit_name,
                    {level} AS upgrade_level
                FROM {self.table}
                WHERE event_name = 'unit_upgrade'
                {dims}
                AND {unit_name} IS NOT NULL
                AND {level} IS NOT NULL
            ),
            unit_upgrades AS (
                SELECT
                    main.unit_name,
                    main.upgrade_level
                FROM main
                {cohort_join(f)}
            )
            SELECT
                unit_name,
                COUNT(*) AS total_upgrades,
                ROUND(AVG(upgrade_level), 2) AS avg_upgrade_level,
                MIN(upgrade_level) AS min_level,
                MAX(upgrade_level) AS max_level
            FROM unit_upgrades
            WHERE unit_name IS NOT NULL AND unit_name != ''
            GROUP BY unit_name
            ORDER BY total_upgrades DESC, unit_name
        """
        return self._query("unit_upgrades", sql, cte, dims)

    def churn(self, f: ReportFilter) -> Query:
        """Survivors, churn and difficulty per level.

        A user survives to level L when the highest level they ever played is
        at least L; churn at L is survivors(L) - survivors(L + 1).
        """
        cte = cohort_cte(f, self.table)
        level_events, dims = self._level_events(f)

        sql = f"""
            WITH
            {cte}
            {level_events},
            user_max_level AS (
                SELECT
                    user_pseudo_id,
                    MAX(level) AS max_level_reached
                FROM level_events_cohorted
                GROUP BY user_pseudo_id
            ),
            all_levels AS (
                SELECT DISTINCT level
                FROM level_events_cohorted
            ),
            level_reach_counts AS (
                SELECT
                    l.level,
                    COUNT(DISTINCT u.user_pseudo_id) AS users_reached_level
                FROM all_levels l
                LEFT JOIN user_max_level u ON u.max_level_reached >= l.level
                GROUP BY l.level
            ),
            level_difficulty AS (
                SELECT
                    level,
                    COUNT(CASE WHEN event_name = 'level_fail' THEN 1 END) AS failures,
                    COUNT(CASE WHEN event_name = 'level_complete' THEN 1 END) AS completions,
                    COUNT(*) AS total_attempts
                FROM level_events_cohorted
                GROUP BY level
            ),
            level_retention AS (
                SELECT
                    lrc.level,
                    lrc.users_reached_level,
                    LEAD(lrc.users_reached_level) OVER (ORDER BY lrc.level) AS users_reached_next_level,
                    ld.failures,
                    ld.completions,
                    ld.total_attempts
                FROM level_reach_counts lrc
                LEFT JOIN level_difficulty ld ON lrc.level = ld.level
            )
            SELECT
                level,
                users_reached_level,
                COALESCE(users_reached_level - users_reached_next_level, 0) AS users_churned_at_level,
                ROUND(COALESCE(
                    CAST(users_reached_level - users_reached_next_level AS DOUBLE) * 100
                    / NULLIF(users_reached_level, 0), 0), 2) AS churn_rate,
                ROUND(CAST(failures AS DOUBLE) * 100 / NULLIF(total_attempts, 0), 2) AS failure_rate,
                ROUND(CAST(total_attempts AS DOUBLE) / NULLIF(completions, 0), 2) AS difficulty_score
            FROM level_retention
            WHERE level IS NOT NULL
            ORDER BY level
            LIMIT {int(f.level_count)}
        """
        return self._query("churn", sql, cte, dims)

    def booster_boxes(self, f: ReportFilter) -> Query:
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        box_id = string_param("booster_box_ID")

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT
                    user_pseudo_id,
                    {box_id} AS box_id
                FROM {self.table}
                WHERE event_name = 'booster_box_opened'
                {dims}
                AND {box_id} IS NOT NULL
            )
            SELECT
                main.box_id,
                COUNT(*) AS times_opened,
                COUNT(DISTINCT main.user_pseudo_id) AS unique_users,
                ROUND(CAST(COUNT(*) AS DOUBLE) / NULLIF(COUNT(DISTINCT main.user_pseudo_id), 0), 2) AS avg_per_user
            FROM main
            {cohort_join(f)}
            GROUP BY main.box_id
            ORDER BY times_opened DESC, main.box_id
        """
        return self._query("booster_boxes", sql, cte, dims)

    def base_station(self, f: ReportFilter) -> Query:
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)
        skill = string_param("Skill")

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT
                    user_pseudo_id,
                    {skill} AS skill,
                    {int_param('level')} AS upgrade_level
                FROM {self.table}
                WHERE event_name = 'base_station_upgrade'
                {dims}
                AND {skill} IS NOT NULL
            )
            SELECT
                main.skill,
                main.upgrade_level,
                COUNT(*) AS upgrade_count,
                COUNT(DISTINCT main.user_pseudo_id) AS unique_users
            FROM main
            {cohort_join(f)}
            GROUP BY main.skill, main.upgrade_level
            ORDER BY main.skill, main.upgrade_level
        """
        return self._query("base_station", sql, cte, dims)

    def overall_stats(self, f: ReportFilter) -> Query:
        cte = cohort_cte(f, self.table)
        dims = dimension_filters(f)

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT
                    user_pseudo_id,
                    event_name
                FROM {self.table}
                WHERE 1=1
                {dims}
            )
            SELECT
                COUNT(DISTINCT main.user_pseudo_id) AS total_users,
                COUNT(DISTINCT CASE WHEN main.event_name = 'level_start' THEN main.user_pseudo_id END) AS users_who_played,
                COUNT(CASE WHEN main.event_name LIKE '{REWARDED_AD_PATTERN}' THEN 1 END) AS total_rewarded_ads,
                COUNT(CASE WHEN main.event_name = 'level_complete' THEN 1 END) AS total_level_completions,
                COUNT(CASE WHEN main.event_name = 'level_fail' THEN 1 END) AS total_level_failures,
                COUNT(CASE WHEN main.event_name = 'unit_upgrade' THEN 1 END) AS total_unit_upgrades,
                COUNT(CASE WHEN main.event_name = 'booster_box_opened' THEN 1 END) AS total_booster_boxes_opened
            FROM main
            {cohort_join(f)}
        """
        return self._query("overall_stats", sql, cte, dims)

    def available_countries(self, f: ReportFilter) -> Query:
        """Countries with user counts; the country filter itself is ignored"""
        cte = cohort_cte(f, self.table, country=False)
        dims = dimension_filters(f, country=False)

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT DISTINCT
                    user_pseudo_id,
                    geo.country AS country
                FROM {self.table}
                WHERE geo.country IS NOT NULL
                {dims}
            )
            SELECT
                main.country,
                COUNT(DISTINCT main.user_pseudo_id) AS user_count
            FROM main
            {cohort_join(f)}
            GROUP BY main.country
            ORDER BY user_count DESC, main.country
            LIMIT {COUNTRY_LIMIT}
        """
        return self._query("available_countries", sql, cte, dims)

    def available_versions(self, f: ReportFilter) -> Query:
        """App versions with user counts; the version filter itself is ignored"""
        cte = cohort_cte(f, self.table, version=False)
        dims = dimension_filters(f, version=False)

        sql = f"""
            WITH
            {cte}
            main AS (
                SELECT DISTINCT
                    user_pseudo_id,
                    app_info.version AS version
                FROM {self.table}
                WHERE app_info.version IS NOT NULL
                {dims}
            )
            SELECT
                main.version,
                COUNT(DISTINCT main.user_pseudo_id) AS user_count
            FROM main
            {cohort_join(f)}
            GROUP BY main.version
            ORDER BY main.version DESC
            LIMIT {VERSION_LIMIT}
        """
        return self._query("available_versions", sql, cte, dims)
