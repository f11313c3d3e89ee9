"""Software license optimization: utilization, savings, compliance, true-up.

Pure functions over a snapshot of license records. Identifies wasted seats,
over-deployment (compliance risk), expiring and expired agreements, and ranks
remediation recommendations by priority and estimated savings.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from asset_valuation.valuation.depreciation import round_money
from config.settings import settings

logger = logging.getLogger(__name__)

OVERUTILIZED = "overutilized"
OPTIMAL = "optimal"
UNDERUTILIZED = "underutilized"
POOR = "poor"
UNKNOWN = "unknown"

PRIORITY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_float(val) -> float | None:
    """Attempt to convert *val* to float, returning None on failure."""
    if val is None:
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _parse_date(val) -> datetime | None:
    """Parse a datetime or ISO-format string into a naive datetime."""
    if val is None:
        return None
    if not isinstance(val, datetime):
        try:
            val = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
        except (TypeError, ValueError):
            return None
    if val.tzinfo is None:
        return val
    return val.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class OptimizationPolicy:
    """Tunable thresholds and heuristics for license analysis."""

    downgrade_headroom: float = settings.downgrade_headroom
    downgrade_savings_share: float = settings.downgrade_savings_share
    consolidation_savings_rate: float = settings.consolidation_savings_rate
    reclaim_seat_threshold: int = settings.reclaim_seat_threshold
    harvest_threshold: int = settings.harvest_threshold
    inactivity_threshold_days: int = settings.inactivity_threshold_days
    expiry_warning_days: int = settings.expiry_warning_days
    expiry_urgent_days: int = settings.expiry_urgent_days


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LicenseAssignment:
    user: str | None
    last_activity: datetime | None = None

    def __post_init__(self):
        if self.last_activity is not None:
            object.__setattr__(self, "last_activity", _parse_date(self.last_activity))


@dataclass(frozen=True)
class LicenseRecord:
    """A software license agreement."""

    license_id: str | None
    name: str
    total_seats: int = 0
    used_seats: int = 0
    cost_per_seat: float | None = None
    annual_cost: float | None = None
    vendor: str | None = None
    category: str | None = None
    expiration_date: datetime | None = None
    assignments: tuple[LicenseAssignment, ...] = ()

    def __post_init__(self):
        if self.expiration_date is not None:
            object.__setattr__(self, "expiration_date", _parse_date(self.expiration_date))

    @classmethod
    def from_record(cls, record: dict) -> LicenseRecord:
        """Build a license from a loosely shaped record (camelCase keys)."""
        assignments = []
        for item in record.get("assignments") or []:
            user = item.get("user")
            if isinstance(user, dict):
                user = user.get("name") or user.get("_id")
            assignments.append(LicenseAssignment(
                user=str(user) if user is not None else None,
                last_activity=_parse_date(item.get("lastActivity")),
            ))
        vendor = record.get("vendor")
        if isinstance(vendor, dict):
            vendor = vendor.get("name")
        license_id = record.get("_id", record.get("id"))
        return cls(
            license_id=str(license_id) if license_id is not None else None,
            name=record.get("name") or "",
            total_seats=int(_safe_float(record.get("totalSeats")) or 0),
            used_seats=int(_safe_float(record.get("usedSeats")) or 0),
            cost_per_seat=_safe_float(record.get("costPerSeat")),
            annual_cost=_safe_float(record.get("annualCost")),
            vendor=vendor,
            category=record.get("category"),
            expiration_date=_parse_date(record.get("expirationDate")),
            assignments=tuple(assignments),
        )

    @property
    def effective_cost_per_seat(self) -> float:
        """Explicit per-seat cost, else annual cost spread over seats, else 0."""
        if self.cost_per_seat:
            return self.cost_per_seat
        if self.annual_cost and self.total_seats > 0:
            return self.annual_cost / self.total_seats
        return 0.0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class LicenseUtilization:
    used_seats: int
    total_seats: int
    available_seats: int
    utilization_percent: float
    status: str
    wasted_seats: int = 0


@dataclass
class InactiveUsersResult:
    total_assignments: int
    inactive_count: int
    inactive_users: list[LicenseAssignment]
    reclaimable_licenses: int
    estimated_savings: float


@dataclass
class DowngradeCandidate:
    license_id: str | None
    name: str
    current_seats: int
    used_seats: int
    recommended_seats: int
    potential_savings: float


@dataclass
class ConsolidationOpportunity:
    category: str
    license_count: int
    licenses: list[str]
    total_cost: float
    potential_savings: float


@dataclass
class SavingsAnalysis:
    total_potential_savings: float
    reclaimable_seats: int
    downgrade_candidates: list[DowngradeCandidate]
    consolidation_opportunities: list[ConsolidationOpportunity]
    unused_seat_savings: float
    consolidation_savings: float


@dataclass
class ComplianceFinding:
    """One license placed in a compliance bucket."""

    license_id: str | None
    name: str
    severity: str
    message: str
    used_seats: int = 0
    total_seats: int = 0
    shortfall: int = 0
    waste: int = 0
    days_until_expiry: int | None = None
    annual_cost: float = 0.0


@dataclass
class ComplianceReport:
    compliance_score: float
    total_licenses: int
    expired: list[ComplianceFinding] = field(default_factory=list)
    under_licensed: list[ComplianceFinding] = field(default_factory=list)
    expiring: list[ComplianceFinding] = field(default_factory=list)
    over_licensed: list[ComplianceFinding] = field(default_factory=list)
    compliant: list[LicenseRecord] = field(default_factory=list)
    monitored: list[LicenseRecord] = field(default_factory=list)


@dataclass
class OptimizationRecommendation:
    license_id: str | None
    license_name: str
    type: str  # "downgrade", "reclaim", "upgrade", "harvest"
    priority: str  # "critical", "high", "medium", "low"
    title: str
    description: str
    estimated_savings: float
    effort: str
    impact: str


@dataclass
class TrueUpDetail:
    license_id: str | None
    name: str
    purchased: int
    in_use: int
    shortfall: int
    cost_per_seat: float
    true_up_cost: float


@dataclass
class TrueUpResult:
    total_true_up_cost: float
    licenses_needing_true_up: int
    details: list[TrueUpDetail]
    audit_ready: bool


@dataclass
class LicenseUsage:
    license_id: str | None
    name: str
    vendor: str | None
    utilization: LicenseUtilization
    annual_cost: float


@dataclass
class OptimizationReport:
    total_licenses: int
    total_annual_cost: float
    total_seats: int
    total_used_seats: int
    overall_utilization: float
    potential_savings: float
    savings_percentage: float
    compliance: ComplianceReport
    savings: SavingsAnalysis
    recommendations: list[OptimizationRecommendation]
    true_up: TrueUpResult
    utilization_data: list[LicenseUsage]
    generated_at: str


# ---------------------------------------------------------------------------
# 1. Utilization
# ---------------------------------------------------------------------------


def calculate_license_utilization(license: LicenseRecord) -> LicenseUtilization:
    """Classify seat usage.

    Thresholds: >=95% overutilized, >=80% optimal, >=50% underutilized,
    otherwise poor. A license with no seats is "unknown" with zeroed counts.
    """
    if license.total_seats <= 0:
        return LicenseUtilization(
            used_seats=0, total_seats=0, available_seats=0,
            utilization_percent=0.0, status=UNKNOWN,
        )

    used = license.used_seats
    total = license.total_seats
    available = total - used  # negative when over-deployed
    pct = used / total * 100

    if pct >= 95:
        status = OVERUTILIZED
    elif pct >= 80:
        status = OPTIMAL
    elif pct >= 50:
        status = UNDERUTILIZED
    else:
        status = POOR

    return LicenseUtilization(
        used_seats=used,
        total_seats=total,
        available_seats=available,
        utilization_percent=round(pct, 1),
        status=status,
        wasted_seats=available if status in (POOR, UNDERUTILIZED) else 0,
    )


def identify_inactive_users(
    license: LicenseRecord,
    inactivity_threshold_days: int | None = None,
    as_of: datetime | None = None,
) -> InactiveUsersResult:
    """Find assignments idle longer than the threshold.

    An assignment with no recorded activity counts as inactive.
    """
    if inactivity_threshold_days is None:
        inactivity_threshold_days = settings.inactivity_threshold_days
    now = _parse_date(as_of) or datetime.now()

    inactive = [
        a for a in license.assignments
        if a.last_activity is None or (now - a.last_activity).days > inactivity_threshold_days
    ]
    return InactiveUsersResult(
        total_assignments=len(license.assignments),
        inactive_count=len(inactive),
        inactive_users=inactive,
        reclaimable_licenses=len(inactive),
        estimated_savings=round_money(len(inactive) * license.effective_cost_per_seat),
    )


# ---------------------------------------------------------------------------
# 2. Savings
# ---------------------------------------------------------------------------


def analyze_savings(
    licenses: list[LicenseRecord],
    policy: OptimizationPolicy | None = None,
) -> SavingsAnalysis:
    """Estimate savings from unused seats, downgrades and consolidation."""
    policy = policy or OptimizationPolicy()
    unused_savings = 0.0
    reclaimable = 0
    downgrades: list[DowngradeCandidate] = []

    for lic in licenses:
        util = calculate_license_utilization(lic)
        if util.status not in (POOR, UNDERUTILIZED):
            continue
        wasted_cost = util.wasted_seats * lic.effective_cost_per_seat
        unused_savings += wasted_cost
        reclaimable += util.wasted_seats

        if util.status == POOR:
            downgrades.append(DowngradeCandidate(
                license_id=lic.license_id,
                name=lic.name,
                current_seats=lic.total_seats,
                used_seats=util.used_seats,
                recommended_seats=math.ceil(util.used_seats * (1 + policy.downgrade_headroom)),
                potential_savings=round_money(wasted_cost),
            ))

    by_category: dict[str, list[LicenseRecord]] = {}
    for lic in licenses:
        by_category.setdefault(lic.category or "Other", []).append(lic)

    consolidation: list[ConsolidationOpportunity] = []
    for category, members in by_category.items():
        if len(members) < 2:
            continue
        total_cost = sum(m.annual_cost or 0.0 for m in members)
        consolidation.append(ConsolidationOpportunity(
            category=category,
            license_count=len(members),
            licenses=[m.name for m in members],
            total_cost=round_money(total_cost),
            potential_savings=round_money(total_cost * policy.consolidation_savings_rate),
        ))

    return SavingsAnalysis(
        total_potential_savings=round_money(unused_savings),
        reclaimable_seats=reclaimable,
        downgrade_candidates=downgrades,
        consolidation_opportunities=consolidation,
        unused_seat_savings=round_money(unused_savings),
        consolidation_savings=round_money(sum(c.potential_savings for c in consolidation)),
    )


# ---------------------------------------------------------------------------
# 3. Compliance
# ---------------------------------------------------------------------------


def _days_until(expiry: datetime, now: datetime) -> int:
    return math.ceil((expiry - now).total_seconds() / 86400)


def analyze_compliance(
    licenses: list[LicenseRecord],
    as_of: datetime | None = None,
    policy: OptimizationPolicy | None = None,
) -> ComplianceReport:
    """Place each license in exactly one compliance bucket.

    Buckets are checked in order: expired, under-licensed (more seats in use
    than purchased), expiring, over-licensed (poor utilization), compliant
    (optimal with no near-term expiry). Anything left is monitored.
    """
    policy = policy or OptimizationPolicy()
    now = _parse_date(as_of) or datetime.now()
    report = ComplianceReport(compliance_score=100.0, total_licenses=len(licenses))

    for lic in licenses:
        util = calculate_license_utilization(lic)
        days = _days_until(lic.expiration_date, now) if lic.expiration_date else None

        if days is not None and days <= 0:
            report.expired.append(ComplianceFinding(
                license_id=lic.license_id,
                name=lic.name,
                severity="critical",
                message=f"License expired {abs(days)} days ago",
                used_seats=lic.used_seats,
                total_seats=lic.total_seats,
                days_until_expiry=days,
                annual_cost=lic.annual_cost or 0.0,
            ))
        elif lic.used_seats > lic.total_seats:
            report.under_licensed.append(ComplianceFinding(
                license_id=lic.license_id,
                name=lic.name,
                severity="high",
                message="More seats in use than purchased - compliance risk",
                used_seats=lic.used_seats,
                total_seats=lic.total_seats,
                shortfall=lic.used_seats - lic.total_seats,
            ))
        elif days is not None and days <= policy.expiry_warning_days:
            report.expiring.append(ComplianceFinding(
                license_id=lic.license_id,
                name=lic.name,
                severity="high" if days <= policy.expiry_urgent_days else "medium",
                message=f"License expires in {days} days",
                used_seats=lic.used_seats,
                total_seats=lic.total_seats,
                days_until_expiry=days,
                annual_cost=lic.annual_cost or 0.0,
            ))
        elif util.status == POOR:
            report.over_licensed.append(ComplianceFinding(
                license_id=lic.license_id,
                name=lic.name,
                severity="medium",
                message=f"{util.utilization_percent:.0f}% utilization - consider downsizing",
                used_seats=util.used_seats,
                total_seats=util.total_seats,
                waste=util.available_seats,
            ))
        elif util.status == OPTIMAL:
            report.compliant.append(lic)
        else:
            report.monitored.append(lic)

    if licenses:
        report.compliance_score = round_money(len(report.compliant) / len(licenses) * 100)
    return report


# ---------------------------------------------------------------------------
# 4. Recommendations
# ---------------------------------------------------------------------------


def generate_recommendations(
    licenses: list[LicenseRecord],
    as_of: datetime | None = None,
    policy: OptimizationPolicy | None = None,
) -> list[OptimizationRecommendation]:
    """Remediation actions ranked by priority, then by estimated savings."""
    policy = policy or OptimizationPolicy()
    recs: list[OptimizationRecommendation] = []

    for lic in licenses:
        util = calculate_license_utilization(lic)
        cost_per_seat = lic.effective_cost_per_seat

        if util.status == POOR:
            target = math.ceil(util.used_seats * (1 + policy.downgrade_headroom))
            recs.append(OptimizationRecommendation(
                license_id=lic.license_id,
                license_name=lic.name,
                type="downgrade",
                priority="high",
                title=f"Downgrade {lic.name}",
                description=(
                    f"Only using {util.utilization_percent:.0f}% of licenses. "
                    f"Reduce from {util.total_seats} to {target} seats."
                ),
                estimated_savings=round_money(
                    util.available_seats * cost_per_seat * policy.downgrade_savings_share
                ),
                effort="medium",
                impact="high",
            ))

        if util.available_seats > policy.reclaim_seat_threshold:
            recs.append(OptimizationRecommendation(
                license_id=lic.license_id,
                license_name=lic.name,
                type="reclaim",
                priority="medium",
                title=f"Reclaim unused {lic.name} licenses",
                description=f"{util.available_seats} unused seats available for reassignment.",
                estimated_savings=0.0,
                effort="low",
                impact="medium",
            ))

        if util.status == OVERUTILIZED:
            recs.append(OptimizationRecommendation(
                license_id=lic.license_id,
                license_name=lic.name,
                type="upgrade",
                priority="critical",
                title=f"Increase {lic.name} licenses",
                description=(
                    f"Currently {util.used_seats} seats used of {util.total_seats} purchased."
                ),
                estimated_savings=0.0,
                effort="low",
                impact="critical",
            ))

        inactive = identify_inactive_users(lic, policy.inactivity_threshold_days, as_of)
        if inactive.reclaimable_licenses >= policy.harvest_threshold:
            recs.append(OptimizationRecommendation(
                license_id=lic.license_id,
                license_name=lic.name,
                type="harvest",
                priority="medium",
                title=f"Harvest inactive {lic.name} licenses",
                description=(
                    f"{inactive.reclaimable_licenses} users inactive for "
                    f"{policy.inactivity_threshold_days}+ days."
                ),
                estimated_savings=inactive.estimated_savings,
                effort="medium",
                impact="medium",
            ))

    recs.sort(key=lambda r: (-PRIORITY_ORDER.get(r.priority, 0), -r.estimated_savings))
    return recs


# ---------------------------------------------------------------------------
# 5. True-up
# ---------------------------------------------------------------------------


def calculate_true_up_costs(licenses: list[LicenseRecord]) -> TrueUpResult:
    """Cost of buying the seats deployed beyond what was purchased."""
    details: list[TrueUpDetail] = []
    for lic in licenses:
        if lic.used_seats <= lic.total_seats:
            continue
        shortfall = lic.used_seats - lic.total_seats
        cost_per_seat = lic.effective_cost_per_seat
        details.append(TrueUpDetail(
            license_id=lic.license_id,
            name=lic.name,
            purchased=lic.total_seats,
            in_use=lic.used_seats,
            shortfall=shortfall,
            cost_per_seat=cost_per_seat,
            true_up_cost=round_money(shortfall * cost_per_seat),
        ))

    return TrueUpResult(
        total_true_up_cost=round_money(sum(d.true_up_cost for d in details)),
        licenses_needing_true_up=len(details),
        details=details,
        audit_ready=not details,
    )


# ---------------------------------------------------------------------------
# 6. Combined report
# ---------------------------------------------------------------------------


def generate_optimization_report(
    licenses: list[LicenseRecord],
    as_of: datetime | None = None,
    policy: OptimizationPolicy | None = None,
) -> OptimizationReport:
    """Run every license analysis over one portfolio snapshot."""
    policy = policy or OptimizationPolicy()
    savings = analyze_savings(licenses, policy)
    compliance = analyze_compliance(licenses, as_of, policy)
    recommendations = generate_recommendations(licenses, as_of, policy)
    true_up = calculate_true_up_costs(licenses)

    usage = [
        LicenseUsage(
            license_id=lic.license_id,
            name=lic.name,
            vendor=lic.vendor,
            utilization=calculate_license_utilization(lic),
            annual_cost=lic.annual_cost or 0.0,
        )
        for lic in licenses
    ]

    total_cost = sum(lic.annual_cost or 0.0 for lic in licenses)
    total_seats = sum(lic.total_seats for lic in licenses)
    used_seats = sum(lic.used_seats for lic in licenses)
    potential = savings.total_potential_savings + savings.consolidation_savings

    logger.info(
        "License optimization: %d licenses, %d recommendations, compliance %.1f%%",
        len(licenses), len(recommendations), compliance.compliance_score,
    )
    return OptimizationReport(
        total_licenses=len(licenses),
        total_annual_cost=round_money(total_cost),
        total_seats=total_seats,
        total_used_seats=used_seats,
        overall_utilization=round(used_seats / total_seats * 100, 1) if total_seats > 0 else 0.0,
        potential_savings=round_money(potential),
        savings_percentage=round_money(potential / total_cost * 100) if total_cost > 0 else 0.0,
        compliance=compliance,
        savings=savings,
        recommendations=recommendations,
        true_up=true_up,
        utilization_data=usage,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
