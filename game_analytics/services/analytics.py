from typing import Any, Dict, List, Optional

import structlog

from game_analytics.core.errors import UpstreamQueryError
from game_analytics.core.warehouse import Warehouse
from game_analytics.schemas.analytics import RewardedAdsResponse, UnitLoadoutResponse
from game_analytics.services import shaping
from game_analytics.services.cohorts import CohortQueries
from game_analytics.services.filters import ReportFilter
from game_analytics.services.reports import Query

logger = structlog.get_logger()


class AnalyticsService:
    """Runs report queries against the warehouse and shapes their rows"""

    def __init__(self, warehouse: Warehouse, table: str = "events"):
        self.warehouse = warehouse
        self.queries = CohortQueries(table)

    def _run(self, query: Query) -> List[Dict[str, Any]]:
        try:
            rows = self.warehouse.query(query.sql, query.params)
        except Exception as e:
            logger.error(
                "warehouse_query_failed",
                query_name=query.name,
                error=str(e),
                query=query.sql,
                params={key: str(value) for key, value in query.params.items()},
            )
            raise UpstreamQueryError(query.name) from e

        logger.info(f"{query.name}_query_executed", row_count=len(rows))
        return rows

    def get_rewarded_ads(self, f: ReportFilter) -> RewardedAdsResponse:
        return shaping.rewarded_ads_response(self._run(self.queries.rewarded_ads(f)))

    def get_level_analysis(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.level_analysis(f))

    def get_level_silver_coin_boost(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.level_silver_coin_boost(f))

    def get_unit_loadout(self, f: ReportFilter) -> UnitLoadoutResponse:
        return shaping.split_unit_loadout(self._run(self.queries.unit_loadout(f)))

    def get_unit_upgrades(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.unit_upgrades(f))

    def get_churn(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.churn(f))

    def get_booster_boxes(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.booster_boxes(f))

    def get_base_station(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.base_station(f))

    def get_overall_stats(self, f: ReportFilter) -> Dict[str, Any]:
        return shaping.first_row(self._run(self.queries.overall_stats(f)))

    def get_available_countries(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.available_countries(f))

    def get_available_versions(self, f: ReportFilter) -> List[Dict[str, Any]]:
        return self._run(self.queries.available_versions(f))

    def get_rewarded_ads_cohort(self, f: ReportFilter, event_name: Optional[str]) -> List[Dict[str, Any]]:
        # Builds (and validates) the query before anything touches the warehouse
        query = self.queries.rewarded_ads_cohort(f, event_name)
        return self._run(query)

    def get_ad_impressions_cohort(self, f: ReportFilter, ad_format: Optional[str]) -> List[Dict[str, Any]]:
        query = self.queries.ad_impressions_cohort(f, ad_format)
        return self._run(query)
