"""Total cost of ownership estimation for IT assets.

Projects the purchase price plus recurring operating costs (power, maintenance,
support labour, software) over a fixed horizon, per asset and aggregated by
category or department.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType

from asset_valuation.valuation.depreciation import AssetFinancialFacts, round_money
from config.settings import settings

logger = logging.getLogger(__name__)

# Typical power draw by category, in watts.
POWER_CONSUMPTION = MappingProxyType({
    "laptop": 65,
    "desktop": 200,
    "monitor": 30,
    "server": 500,
    "printer": 100,
    "phone": 5,
    "tablet": 10,
    "dock": 15,
    "network": 50,
    "storage": 300,
    "default": 100,
})

HOURS_PER_DAY = 8
WORKING_DAYS_PER_YEAR = 250


@dataclass(frozen=True)
class TCOOptions:
    """Operating-cost assumptions."""

    electricity_cost_per_kwh: float = settings.electricity_cost_per_kwh
    annual_maintenance_percent: float = settings.annual_maintenance_percent
    avg_support_hours_per_year: float = settings.avg_support_hours_per_year
    support_cost_per_hour: float = settings.support_cost_per_hour
    years_to_calculate: int = settings.tco_years_to_calculate


@dataclass
class CostBreakdown:
    annual_power: float
    annual_maintenance: float
    annual_support: float
    annual_software: float


@dataclass
class YearlyCost:
    year: int
    annual_cost: float
    cumulative_cost: float


@dataclass
class TCOResult:
    """Cost of ownership for one asset."""

    asset_id: str | None
    asset_name: str | None
    category: str | None
    department: str | None
    purchase_price: float
    annual_operating_cost: float
    total_operating_cost: float
    total_tco: float
    breakdown: CostBreakdown
    yearly_breakdown: list[YearlyCost]
    years_to_calculate: int


@dataclass
class TCOTotals:
    """TCO summed across a set of assets."""

    asset_count: int
    purchase_price: float
    annual_operating_cost: float
    total_operating_cost: float
    total_tco: float
    annual_power: float
    annual_maintenance: float
    annual_support: float
    annual_software: float
    average_tco: float
    operating_cost_percentage: float


@dataclass
class GroupTCO:
    """TCO totals for one category or department."""

    count: int = 0
    purchase_price: float = 0.0
    total_tco: float = 0.0
    annual_operating_cost: float = 0.0
    average_tco: float = 0.0
    average_annual_cost: float = 0.0


@dataclass
class TCOComparison:
    asset1: TCOResult
    asset2: TCOResult
    difference: float
    percent_difference: float
    cheaper: str | None


@dataclass
class TCOReport:
    summary: TCOTotals | None
    by_category: dict[str, GroupTCO]
    by_department: dict[str, GroupTCO]
    generated_at: str
    parameters: dict = field(default_factory=dict)


def power_draw(category: str | None) -> int:
    """Watts drawn by an asset of the given category."""
    key = (category or "").strip().lower()
    return POWER_CONSUMPTION.get(key, POWER_CONSUMPTION["default"])


# ---------------------------------------------------------------------------
# 1. Single asset
# ---------------------------------------------------------------------------


def calculate_asset_tco(
    facts: AssetFinancialFacts,
    options: TCOOptions | None = None,
) -> TCOResult | None:
    """Estimate total cost of ownership for one asset.

    Returns:
        TCOResult, or None if purchase price or purchase date is missing.
    """
    if not facts.has_required_fields:
        return None
    opts = options or TCOOptions()
    price = float(facts.purchase_price)

    kwh_per_year = power_draw(facts.category) / 1000 * HOURS_PER_DAY * WORKING_DAYS_PER_YEAR
    annual_power = kwh_per_year * opts.electricity_cost_per_kwh
    annual_maintenance = price * opts.annual_maintenance_percent
    annual_support = opts.avg_support_hours_per_year * opts.support_cost_per_hour
    annual_software = 0.0  # not yet linked to license costs

    annual_operating = annual_power + annual_maintenance + annual_support + annual_software
    total_operating = annual_operating * opts.years_to_calculate

    yearly: list[YearlyCost] = []
    cumulative = 0.0
    for year in range(1, opts.years_to_calculate + 1):
        year_cost = price + annual_operating if year == 1 else annual_operating
        cumulative += year_cost
        yearly.append(YearlyCost(
            year=year,
            annual_cost=round_money(year_cost),
            cumulative_cost=round_money(cumulative),
        ))

    return TCOResult(
        asset_id=facts.asset_id,
        asset_name=facts.name,
        category=facts.category,
        department=facts.department,
        purchase_price=round_money(price),
        annual_operating_cost=round_money(annual_operating),
        total_operating_cost=round_money(total_operating),
        total_tco=round_money(price + total_operating),
        breakdown=CostBreakdown(
            annual_power=round_money(annual_power),
            annual_maintenance=round_money(annual_maintenance),
            annual_support=round_money(annual_support),
            annual_software=round_money(annual_software),
        ),
        yearly_breakdown=yearly,
        years_to_calculate=opts.years_to_calculate,
    )


# ---------------------------------------------------------------------------
# 2. Aggregates
# ---------------------------------------------------------------------------


def calculate_bulk_tco(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None = None,
) -> list[TCOResult]:
    """TCO for every asset that has a price and purchase date."""
    results = []
    for facts in assets:
        tco = calculate_asset_tco(facts, options)
        if tco is not None:
            results.append(tco)
    return results


def calculate_total_tco(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None = None,
) -> TCOTotals | None:
    """Sum TCO across assets. Returns None when no asset can be costed."""
    results = calculate_bulk_tco(assets, options)
    if not results:
        return None

    total_tco = sum(r.total_tco for r in results)
    total_operating = sum(r.total_operating_cost for r in results)
    return TCOTotals(
        asset_count=len(results),
        purchase_price=round_money(sum(r.purchase_price for r in results)),
        annual_operating_cost=round_money(sum(r.annual_operating_cost for r in results)),
        total_operating_cost=round_money(total_operating),
        total_tco=round_money(total_tco),
        annual_power=round_money(sum(r.breakdown.annual_power for r in results)),
        annual_maintenance=round_money(sum(r.breakdown.annual_maintenance for r in results)),
        annual_support=round_money(sum(r.breakdown.annual_support for r in results)),
        annual_software=round_money(sum(r.breakdown.annual_software for r in results)),
        average_tco=round_money(total_tco / len(results)),
        operating_cost_percentage=round_money(total_operating / total_tco * 100) if total_tco else 0.0,
    )


def _group_tco(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None,
    key_fn,
) -> dict[str, GroupTCO]:
    groups: dict[str, GroupTCO] = {}
    for facts in assets:
        tco = calculate_asset_tco(facts, options)
        if tco is None:
            continue
        group = groups.setdefault(key_fn(facts), GroupTCO())
        group.count += 1
        group.purchase_price += tco.purchase_price
        group.total_tco += tco.total_tco
        group.annual_operating_cost += tco.annual_operating_cost

    for group in groups.values():
        group.purchase_price = round_money(group.purchase_price)
        group.total_tco = round_money(group.total_tco)
        group.annual_operating_cost = round_money(group.annual_operating_cost)
        group.average_tco = round_money(group.total_tco / group.count)
        group.average_annual_cost = round_money(group.annual_operating_cost / group.count)
    return groups


def calculate_tco_by_category(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None = None,
) -> dict[str, GroupTCO]:
    """TCO grouped by asset category ("Unknown" when blank)."""
    return _group_tco(assets, options, lambda f: f.category or "Unknown")


def calculate_tco_by_department(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None = None,
) -> dict[str, GroupTCO]:
    """TCO grouped by the assignee's department ("Unassigned" when blank)."""
    return _group_tco(assets, options, lambda f: f.department or "Unassigned")


def compare_tco(
    asset1: AssetFinancialFacts,
    asset2: AssetFinancialFacts,
    options: TCOOptions | None = None,
) -> TCOComparison | None:
    """Compare two assets; difference is asset2 minus asset1."""
    tco1 = calculate_asset_tco(asset1, options)
    tco2 = calculate_asset_tco(asset2, options)
    if tco1 is None or tco2 is None:
        return None

    difference = tco2.total_tco - tco1.total_tco
    return TCOComparison(
        asset1=tco1,
        asset2=tco2,
        difference=round_money(difference),
        percent_difference=round_money(difference / tco1.total_tco * 100),
        cheaper=asset2.name if difference < 0 else asset1.name,
    )


def generate_tco_report(
    assets: list[AssetFinancialFacts],
    options: TCOOptions | None = None,
) -> TCOReport:
    """Portfolio TCO summary with category and department views."""
    opts = options or TCOOptions()
    summary = calculate_total_tco(assets, opts)
    logger.info(
        "TCO report: %d of %d assets costed over %d years",
        summary.asset_count if summary else 0, len(assets), opts.years_to_calculate,
    )
    return TCOReport(
        summary=summary,
        by_category=calculate_tco_by_category(assets, opts),
        by_department=calculate_tco_by_department(assets, opts),
        generated_at=datetime.now(timezone.utc).isoformat(),
        parameters=asdict(opts),
    )
