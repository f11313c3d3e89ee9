"""Asset depreciation and book value calculation.

Pure functions computing current book value, accumulated depreciation and
year-by-year schedules for IT assets. Three methods are supported:

- straight_line: (cost - salvage) / useful_life per year
- declining_balance: book value * rate / useful_life per year (rate 2 = double-declining)
- sum_of_years: (cost - salvage) * remaining_life / sum_of_years

Elapsed time uses a fixed 365.25-day year; it is not calendar-aware.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType

from config.settings import settings

logger = logging.getLogger(__name__)

STRAIGHT_LINE = "straight_line"
DECLINING_BALANCE = "declining_balance"
SUM_OF_YEARS = "sum_of_years"

DEPRECIATION_METHODS = (STRAIGHT_LINE, DECLINING_BALANCE, SUM_OF_YEARS)

# Standard useful life by asset category, in years.
DEPRECIATION_PERIODS = MappingProxyType({
    "laptop": 3,
    "desktop": 4,
    "monitor": 5,
    "server": 5,
    "phone": 2,
    "tablet": 3,
    "printer": 5,
    "dock": 4,
    "network": 7,
    "storage": 5,
    "software": 3,
    "default": 4,
})

DAYS_PER_YEAR = 365.25


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_float(val) -> float | None:
    """Convert a value to float, returning None on failure."""
    if val is None:
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _naive_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when
    return when.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_date(val) -> datetime | None:
    """Try to parse a value into a naive datetime (aware values are converted to UTC)."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return _naive_utc(val)
    text = str(val).strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
        return _naive_utc(parsed)
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y %H:%M:%S", "%m/%d/%Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def round_money(value: float) -> float:
    """Round half-up to 2 decimal places."""
    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def years_between(start: datetime, end: datetime) -> float:
    """Fractional years from *start* to *end*, never negative."""
    seconds = (end - start).total_seconds()
    return max(seconds / (DAYS_PER_YEAR * 86400), 0.0)


def _add_years(when: datetime, years: int) -> datetime:
    try:
        return when.replace(year=when.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return when.replace(year=when.year + years, day=28)


def default_useful_life(category: str | None) -> int:
    """Useful life in years for a category, falling back to the default period."""
    key = (category or "default").strip().lower()
    return DEPRECIATION_PERIODS.get(key, DEPRECIATION_PERIODS["default"])


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetFinancialFacts:
    """Acquisition facts for a single asset."""

    purchase_price: float | None
    purchase_date: datetime | None
    useful_life_years: float | None = None
    salvage_value: float | None = None
    category: str | None = None
    asset_id: str | None = None
    asset_tag: str | None = None
    name: str | None = None
    department: str | None = None

    def __post_init__(self):
        # Aware datetimes are compared against naive valuation dates
        if self.purchase_date is not None and self.purchase_date.tzinfo is not None:
            object.__setattr__(self, "purchase_date", _parse_date(self.purchase_date))

    @classmethod
    def from_record(cls, record: dict) -> AssetFinancialFacts:
        """Build facts from a loosely shaped asset record (camelCase keys)."""
        assigned = record.get("assignedTo") or {}
        department = record.get("department")
        if isinstance(assigned, dict):
            dept = assigned.get("department")
            if isinstance(dept, dict):
                department = dept.get("name") or department
            elif dept:
                department = dept
        if isinstance(department, dict):
            department = department.get("name")
        asset_id = record.get("_id", record.get("id"))
        return cls(
            purchase_price=_safe_float(record.get("purchasePrice")),
            purchase_date=_parse_date(record.get("purchaseDate")),
            useful_life_years=_safe_float(record.get("usefulLifeYears")),
            salvage_value=_safe_float(record.get("salvageValue")),
            category=record.get("category"),
            asset_id=str(asset_id) if asset_id is not None else None,
            asset_tag=record.get("assetTag"),
            name=record.get("name"),
            department=department,
        )

    @property
    def has_required_fields(self) -> bool:
        return bool(self.purchase_price) and self.purchase_price > 0 and self.purchase_date is not None


@dataclass
class DepreciationResult:
    """Current valuation of one asset."""

    original_value: float
    current_value: float
    accumulated_depreciation: float
    annual_depreciation: float
    depreciation_percentage: float
    remaining_life_years: float
    useful_life_years: float
    salvage_value: float
    is_fully_depreciated: bool
    method: str
    asset_id: str | None = None
    asset_tag: str | None = None
    category: str | None = None
    purchase_date: datetime | None = None


@dataclass
class DepreciationScheduleEntry:
    """Book value at one anniversary of the purchase date."""

    year: int
    date: datetime
    book_value: float
    accumulated_depreciation: float
    yearly_depreciation: float


@dataclass
class DepreciationTotals:
    """Portfolio-wide depreciation totals."""

    original_value: float
    current_value: float
    accumulated_depreciation: float
    annual_depreciation: float
    average_depreciation_percentage: float
    asset_count: int
    fully_depreciated_count: int


# ---------------------------------------------------------------------------
# Accrual
# ---------------------------------------------------------------------------


def _resolve_terms(
    facts: AssetFinancialFacts,
    useful_life_years: float | None,
    salvage_value: float | None,
) -> tuple[float, float, float] | None:
    """Return (price, salvage, life) or None when the inputs are unusable."""
    if not facts.has_required_fields:
        return None
    price = float(facts.purchase_price)

    life = useful_life_years if useful_life_years is not None else facts.useful_life_years
    if life is None:
        life = default_useful_life(facts.category)
    if life <= 0:
        logger.warning("Non-positive useful life %s for asset %s", life, facts.asset_id)
        return None

    salvage = salvage_value if salvage_value is not None else facts.salvage_value
    if salvage is None:
        salvage = round_money(price * settings.default_salvage_rate)
    salvage = min(max(salvage, 0.0), price)
    return price, salvage, float(life)


def _accrue(
    price: float,
    salvage: float,
    life: float,
    years: float,
    method: str,
    rate: float,
) -> tuple[float, float]:
    """Depreciation accrued after *years* of service.

    Returns (accumulated_depreciation, charge for the in-progress year).
    Partial years take a linear share of that year's full charge.
    """
    base = price - salvage
    whole = int(years)
    partial = years - whole

    if method == DECLINING_BALANCE:
        book = price
        year_rate = rate / life
        clamped = False
        for _ in range(whole):
            book -= book * year_rate
            if book < salvage:
                book = salvage
                clamped = True
                break
        if clamped or book <= salvage:
            return base, 0.0
        charge = min(book * year_rate, book - salvage)
        book -= charge * partial
        return price - max(book, salvage), charge

    if method == SUM_OF_YEARS:
        if years >= life:
            return base, 0.0
        soy = life * (life + 1) / 2
        accumulated = 0.0
        for y in range(1, whole + 1):
            accumulated += base * (life - y + 1) / soy
        if whole + 1 <= life:
            charge = base * (life - whole) / soy
            accumulated += charge * partial
        else:
            # Final stub year of a fractional life carries the remainder
            charge = base - accumulated
            accumulated += charge * partial / (life - whole)
        return min(accumulated, base), charge

    annual = base / life
    return min(annual * years, base), annual


# ---------------------------------------------------------------------------
# 1. Depreciation for one asset
# ---------------------------------------------------------------------------


def calculate_depreciation(
    facts: AssetFinancialFacts,
    method: str = STRAIGHT_LINE,
    useful_life_years: float | None = None,
    salvage_value: float | None = None,
    rate: float | None = None,
    as_of: datetime | None = None,
) -> DepreciationResult | None:
    """Compute the current valuation of an asset.

    Args:
        facts: Acquisition facts of the asset.
        method: One of DEPRECIATION_METHODS; unknown names use straight-line.
        useful_life_years: Override for the category default.
        salvage_value: Override for the default salvage value.
        rate: Declining-balance multiplier (defaults to 2, double-declining).
        as_of: Valuation date, defaults to now.

    Returns:
        DepreciationResult, or None if price or purchase date is missing.
    """
    terms = _resolve_terms(facts, useful_life_years, salvage_value)
    if terms is None:
        return None
    price, salvage, life = terms

    if method not in DEPRECIATION_METHODS:
        logger.debug("Unknown depreciation method %r, using straight-line", method)
        method = STRAIGHT_LINE
    if rate is None:
        rate = settings.declining_balance_rate

    years = years_between(facts.purchase_date, _parse_date(as_of) or datetime.now())
    accumulated, charge = _accrue(price, salvage, life, years, method, rate)
    current = max(price - accumulated, salvage)

    rounded_current = round_money(current)
    return DepreciationResult(
        original_value=round_money(price),
        current_value=rounded_current,
        accumulated_depreciation=round_money(accumulated),
        annual_depreciation=round_money(charge),
        depreciation_percentage=round_money(accumulated / price * 100),
        remaining_life_years=round_money(max(life - years, 0.0)),
        useful_life_years=life,
        salvage_value=round_money(salvage),
        is_fully_depreciated=rounded_current <= round_money(salvage),
        method=method,
        asset_id=facts.asset_id,
        asset_tag=facts.asset_tag,
        category=facts.category,
        purchase_date=facts.purchase_date,
    )


# ---------------------------------------------------------------------------
# 2. Schedule
# ---------------------------------------------------------------------------


def get_depreciation_schedule(
    facts: AssetFinancialFacts,
    method: str = STRAIGHT_LINE,
    useful_life_years: float | None = None,
    salvage_value: float | None = None,
    rate: float | None = None,
) -> list[DepreciationScheduleEntry]:
    """Year-by-year book values from purchase (year 0) through end of life."""
    terms = _resolve_terms(facts, useful_life_years, salvage_value)
    if terms is None:
        return []
    price, salvage, life = terms
    if method not in DEPRECIATION_METHODS:
        method = STRAIGHT_LINE
    if rate is None:
        rate = settings.declining_balance_rate

    schedule: list[DepreciationScheduleEntry] = []
    previous = 0.0
    for year in range(math.ceil(life) + 1):
        # A fractional life ends mid-year; the last entry sits at end of life
        elapsed = min(float(year), life)
        accumulated, _ = _accrue(price, salvage, life, elapsed, method, rate)
        accumulated = round_money(accumulated)
        if elapsed == year:
            date = _add_years(facts.purchase_date, year)
        else:
            date = facts.purchase_date + timedelta(days=elapsed * DAYS_PER_YEAR)
        schedule.append(DepreciationScheduleEntry(
            year=year,
            date=date,
            book_value=round_money(max(price - accumulated, salvage)),
            accumulated_depreciation=accumulated,
            yearly_depreciation=round_money(accumulated - previous),
        ))
        previous = accumulated
    return schedule


# ---------------------------------------------------------------------------
# 3. Portfolio
# ---------------------------------------------------------------------------


def calculate_bulk_depreciation(
    assets: list[AssetFinancialFacts],
    method: str = STRAIGHT_LINE,
    as_of: datetime | None = None,
) -> list[DepreciationResult]:
    """Depreciate every asset, skipping those without price or purchase date."""
    results: list[DepreciationResult] = []
    for facts in assets:
        result = calculate_depreciation(facts, method, as_of=as_of)
        if result is not None:
            results.append(result)
    return results


def calculate_total_depreciation(
    assets: list[AssetFinancialFacts],
    method: str = STRAIGHT_LINE,
    as_of: datetime | None = None,
) -> DepreciationTotals:
    """Sum valuations across a set of assets."""
    results = calculate_bulk_depreciation(assets, method, as_of=as_of)

    original = sum(r.original_value for r in results)
    accumulated = sum(r.accumulated_depreciation for r in results)
    avg_pct = accumulated / original * 100 if original > 0 else 0.0

    logger.info("Depreciation totals: %d of %d assets valued", len(results), len(assets))
    return DepreciationTotals(
        original_value=round_money(original),
        current_value=round_money(sum(r.current_value for r in results)),
        accumulated_depreciation=round_money(accumulated),
        annual_depreciation=round_money(sum(r.annual_depreciation for r in results)),
        average_depreciation_percentage=round_money(avg_pct),
        asset_count=len(results),
        fully_depreciated_count=sum(1 for r in results if r.is_fully_depreciated),
    )
