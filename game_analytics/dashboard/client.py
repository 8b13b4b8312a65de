"""Dashboard state: filters, concurrent report fetches and decoded results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from game_analytics.dashboard import contracts
from game_analytics.dashboard.contracts import Contract, FetchResult
from game_analytics.schemas.analytics import (
    BaseStationRow,
    BoosterBoxRow,
    ChurnRow,
    CountryRow,
    LevelAnalysisRow,
    OverallStats,
    RewardedAdsResponse,
    SilverCoinBoostRow,
    UnitLoadoutResponse,
    UnitUpgradeRow,
    VersionRow,
)

logger = structlog.get_logger()

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def _seven_days_ago() -> date:
    return date.today() - timedelta(days=7)


@dataclass
class DashboardFilters:
    """Filter panel state; defaults to the last seven days"""

    start_date: date = field(default_factory=_seven_days_ago)
    end_date: date = field(default_factory=date.today)
    platform: str = "all"
    level_count: int = 50
    country: str = "all"
    version: str = "all"
    loadout_level: str = "all"

    def query_params(self) -> Dict[str, str]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "platform": self.platform,
            "levelCount": str(self.level_count),
            "country": self.country,
            "version": self.version,
        }

    def loadout_query_params(self) -> Dict[str, str]:
        return {**self.query_params(), "level": str(self.loadout_level)}

    def filter_option_params(self) -> Dict[str, str]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "platform": self.platform,
        }


@dataclass
class DashboardData:
    rewarded_ads: RewardedAdsResponse = field(default_factory=RewardedAdsResponse)
    level_analysis: List[LevelAnalysisRow] = field(default_factory=list)
    level_silver_boost: List[SilverCoinBoostRow] = field(default_factory=list)
    unit_loadout: UnitLoadoutResponse = field(default_factory=UnitLoadoutResponse)
    unit_upgrades: List[UnitUpgradeRow] = field(default_factory=list)
    churn_analysis: List[ChurnRow] = field(default_factory=list)
    booster_boxes: List[BoosterBoxRow] = field(default_factory=list)
    base_station_upgrades: List[BaseStationRow] = field(default_factory=list)
    overall_stats: OverallStats = field(default_factory=OverallStats)


@dataclass
class FilterOptions:
    countries: List[CountryRow] = field(default_factory=list)
    versions: List[VersionRow] = field(default_factory=list)


class DashboardClient:
    """
    Fetches dashboard reports from the analytics API.

    Every report is decoded on its own; a failing report becomes its empty
    value. Requests are neither retried nor deduplicated, so when refreshes
    overlap the last one to finish wins.
    """

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.http = http_client or httpx.AsyncClient()
        self.data = DashboardData()
        self.filter_options = FilterOptions()
        self.cohort_data: List[Any] = []
        self.selected_cohort: Optional[Tuple[Contract, str, str]] = None

    async def _get(self, path: str, params: Dict[str, str], headers: Optional[Dict[str, str]] = None) -> FetchResult:
        try:
            return await self.http.get(f"{self.base_url}/{path}", params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("dashboard_request_failed", path=path, error=str(e))
            return e

    async def _fetch(self, contract: Contract, params: Dict[str, str], headers: Optional[Dict[str, str]] = None):
        return contract.decode(await self._get(contract.name, params, headers))

    async def login(self, credential: str) -> Optional[Dict[str, Any]]:
        response = await self.http.post(f"{self.base_url}/auth/login", json={"credential": credential})
        if not response.is_success:
            logger.warning("dashboard_login_failed", status_code=response.status_code)
            return None
        body = self._json_body(response, "auth/login")
        return body.get("user")

    async def check(self) -> bool:
        response = await self.http.get(f"{self.base_url}/auth/check")
        if not response.is_success:
            return False
        return self._json_body(response, "auth/check").get("authenticated") is True

    @staticmethod
    def _json_body(response: httpx.Response, path: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            logger.warning("dashboard_body_not_json", path=path, status_code=response.status_code)
            return {}
        if not isinstance(body, dict):
            logger.warning("dashboard_body_not_object", path=path)
            return {}
        return body

    async def logout(self):
        await self.http.post(f"{self.base_url}/auth/logout")

    async def fetch_reports(self, filters: DashboardFilters) -> DashboardData:
        """
        Fire the nine primary reports at once, then decode each independently.

        An open cohort drill-down is refetched afterwards with the same filters.
        """
        params = filters.query_params()
        requests = [
            self._get(
                contract.name,
                filters.loadout_query_params() if contract is contracts.UNIT_LOADOUT else params,
            )
            for contract in contracts.PRIMARY_REPORTS
        ]
        results = await asyncio.gather(*requests, return_exceptions=True)
        decoded = [contract.decode(result) for contract, result in zip(contracts.PRIMARY_REPORTS, results)]

        self.data = DashboardData(*decoded)

        if self.selected_cohort is not None:
            await self._fetch_cohort(filters, *self.selected_cohort)
        return self.data

    async def fetch_filter_options(self, filters: DashboardFilters) -> FilterOptions:
        params = filters.filter_option_params()
        countries, versions = await asyncio.gather(
            self._get(contracts.AVAILABLE_COUNTRIES.name, params),
            self._get(contracts.AVAILABLE_VERSIONS.name, params),
            return_exceptions=True,
        )
        self.filter_options = FilterOptions(
            countries=contracts.AVAILABLE_COUNTRIES.decode(countries),
            versions=contracts.AVAILABLE_VERSIONS.decode(versions),
        )
        return self.filter_options

    async def _fetch_cohort(self, filters: DashboardFilters, contract: Contract, key: str, value: str) -> List[Any]:
        self.selected_cohort = (contract, key, value)
        params = {**filters.query_params(), key: value}
        params.pop("levelCount")
        self.cohort_data = await self._fetch(contract, params, NO_CACHE_HEADERS)
        return self.cohort_data

    async def fetch_rewarded_ads_cohort(self, filters: DashboardFilters, event_name: str) -> List[Any]:
        return await self._fetch_cohort(filters, contracts.REWARDED_ADS_COHORT, "eventName", event_name)

    async def fetch_ad_impressions_cohort(self, filters: DashboardFilters, ad_format: str) -> List[Any]:
        return await self._fetch_cohort(filters, contracts.AD_IMPRESSIONS_COHORT, "adFormat", ad_format)

    def close_cohort(self):
        self.selected_cohort = None
        self.cohort_data = []

    async def aclose(self):
        await self.http.aclose()
