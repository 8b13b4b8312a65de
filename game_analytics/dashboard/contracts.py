"""Decoders for the report contracts, one per endpoint shape.

A decoder never raises: a transport error, a non-2xx status, a body that is
not JSON or a body of the wrong shape all decode to the contract's empty
value, so one broken report never takes down the rest of the dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from game_analytics.schemas.analytics import (
    BaseStationRow,
    BoosterBoxRow,
    ChurnRow,
    CountryRow,
    DayBucketRow,
    LevelAnalysisRow,
    OverallStats,
    RewardedAdsResponse,
    SilverCoinBoostRow,
    UnitLoadoutResponse,
    UnitUpgradeRow,
    VersionRow,
)

logger = structlog.get_logger()

T = TypeVar("T")

FetchResult = Union[httpx.Response, BaseException, None]


@dataclass(frozen=True)
class Contract(Generic[T]):
    name: str
    adapter: TypeAdapter
    empty: Callable[[], T]
    prepare: Optional[Callable[[Any], Any]] = None

    def decode(self, result: FetchResult) -> T:
        if not isinstance(result, httpx.Response):
            logger.warning("report_fetch_failed", report=self.name, error=str(result))
            return self.empty()

        if not result.is_success:
            logger.warning("report_fetch_failed", report=self.name, status_code=result.status_code)
            return self.empty()

        try:
            payload = result.json()
        except ValueError:
            logger.warning("report_body_not_json", report=self.name)
            return self.empty()

        if self.prepare is not None:
            payload = self.prepare(payload)

        try:
            return self.adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning("report_shape_mismatch", report=self.name, errors=e.error_count())
            return self.empty()


def _rewarded_ads_payload(payload: Any) -> Any:
    # Older backends returned the bare row list
    if isinstance(payload, list):
        return {"rows": payload, "totals": None}
    return payload


def _rows(name: str, row_type) -> Contract:
    return Contract(name, TypeAdapter(List[row_type]), list)


REWARDED_ADS = Contract(
    "rewarded-ads", TypeAdapter(RewardedAdsResponse), RewardedAdsResponse, _rewarded_ads_payload
)
LEVEL_ANALYSIS = _rows("level-analysis", LevelAnalysisRow)
LEVEL_SILVER_COIN_BOOST = _rows("level-silver-coin-boost", SilverCoinBoostRow)
UNIT_LOADOUT = Contract("unit-loadout-analysis", TypeAdapter(UnitLoadoutResponse), UnitLoadoutResponse)
UNIT_UPGRADES = _rows("unit-upgrade-analysis", UnitUpgradeRow)
CHURN = _rows("churn-analysis", ChurnRow)
BOOSTER_BOXES = _rows("booster-box-analysis", BoosterBoxRow)
BASE_STATION = _rows("base-station-analysis", BaseStationRow)
OVERALL_STATS = Contract("overall-stats", TypeAdapter(OverallStats), OverallStats)
AVAILABLE_COUNTRIES = _rows("available-countries", CountryRow)
AVAILABLE_VERSIONS = _rows("available-versions", VersionRow)
REWARDED_ADS_COHORT = _rows("rewarded-ads-cohort", DayBucketRow)
AD_IMPRESSIONS_COHORT = _rows("ad-impressions-cohort", DayBucketRow)

# The nine reports fetched together on every refresh, in request order
PRIMARY_REPORTS = (
    REWARDED_ADS,
    LEVEL_ANALYSIS,
    LEVEL_SILVER_COIN_BOOST,
    UNIT_LOADOUT,
    UNIT_UPGRADES,
    CHURN,
    BOOSTER_BOXES,
    BASE_STATION,
    OVERALL_STATS,
)
