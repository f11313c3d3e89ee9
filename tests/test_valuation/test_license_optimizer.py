"""Tests for software license optimization analysis."""

from datetime import datetime, timedelta, timezone

from asset_valuation.valuation.license_optimizer import (
    LicenseAssignment,
    LicenseRecord,
    OptimizationPolicy,
    analyze_compliance,
    analyze_savings,
    calculate_license_utilization,
    calculate_true_up_costs,
    generate_optimization_report,
    generate_recommendations,
    identify_inactive_users,
)

NOW = datetime(2026, 6, 1, 12, 0, 0)


def _license(name="Suite", total=100, used=50, **kwargs) -> LicenseRecord:
    return LicenseRecord(license_id=f"lic-{name}", name=name, total_seats=total, used_seats=used, **kwargs)


# ---------------------------------------------------------------------------
# Utilization
# ---------------------------------------------------------------------------


class TestUtilization:
    def test_status_thresholds(self):
        assert calculate_license_utilization(_license(used=96)).status == "overutilized"
        assert calculate_license_utilization(_license(used=95)).status == "overutilized"
        assert calculate_license_utilization(_license(used=85)).status == "optimal"
        assert calculate_license_utilization(_license(used=80)).status == "optimal"
        assert calculate_license_utilization(_license(used=60)).status == "underutilized"
        assert calculate_license_utilization(_license(used=50)).status == "underutilized"
        assert calculate_license_utilization(_license(used=30)).status == "poor"

    def test_counts(self):
        util = calculate_license_utilization(_license(used=60))
        assert util.used_seats == 60
        assert util.total_seats == 100
        assert util.available_seats == 40
        assert util.utilization_percent == 60.0
        assert util.wasted_seats == 40

    def test_no_waste_when_optimal(self):
        assert calculate_license_utilization(_license(used=85)).wasted_seats == 0

    def test_zero_seats_is_unknown(self):
        util = calculate_license_utilization(_license(total=0, used=12))
        assert util.status == "unknown"
        assert util.used_seats == 0
        assert util.total_seats == 0
        assert util.available_seats == 0
        assert util.utilization_percent == 0

    def test_over_deployment_reports_negative_availability(self):
        util = calculate_license_utilization(_license(total=50, used=55))
        assert util.available_seats == -5
        assert util.status == "overutilized"


class TestInactiveUsers:
    def _with_assignments(self):
        return _license(
            cost_per_seat=20,
            assignments=(
                LicenseAssignment("never"),
                LicenseAssignment("stale", NOW - timedelta(days=61)),
                LicenseAssignment("boundary", NOW - timedelta(days=60)),
                LicenseAssignment("active", NOW - timedelta(days=10)),
            ),
        )

    def test_inactive_detection(self):
        result = identify_inactive_users(self._with_assignments(), as_of=NOW)
        assert result.total_assignments == 4
        assert result.inactive_count == 2
        assert [a.user for a in result.inactive_users] == ["never", "stale"]
        assert result.reclaimable_licenses == 2
        assert result.estimated_savings == 40

    def test_custom_threshold(self):
        result = identify_inactive_users(self._with_assignments(), 5, as_of=NOW)
        assert result.inactive_count == 4

    def test_no_assignments(self):
        result = identify_inactive_users(_license(), as_of=NOW)
        assert result.inactive_count == 0
        assert result.estimated_savings == 0

    def test_aware_activity_against_naive_as_of(self):
        stale = (NOW - timedelta(days=61)).replace(tzinfo=timezone.utc)
        lic = _license(assignments=(LicenseAssignment("stale", stale),))
        assert lic.assignments[0].last_activity == NOW - timedelta(days=61)
        assert identify_inactive_users(lic, as_of=NOW).inactive_count == 1


# ---------------------------------------------------------------------------
# Savings
# ---------------------------------------------------------------------------


class TestSavings:
    def test_unused_seat_savings(self):
        licenses = [
            _license("Poor", used=30, cost_per_seat=10),
            _license("Under", used=60, cost_per_seat=10),
            _license("Good", used=90, cost_per_seat=10),
        ]
        result = analyze_savings(licenses)
        assert result.total_potential_savings == 1100
        assert result.reclaimable_seats == 110
        assert len(result.downgrade_candidates) == 1
        candidate = result.downgrade_candidates[0]
        assert candidate.name == "Poor"
        assert candidate.recommended_seats == 36
        assert candidate.potential_savings == 700

    def test_cost_per_seat_derived_from_annual_cost(self):
        result = analyze_savings([_license(used=20, annual_cost=5000)])
        # 80 wasted seats at 5000 / 100
        assert result.total_potential_savings == 4000

    def test_consolidation(self):
        licenses = [
            _license("Docs", used=90, category="Productivity", annual_cost=1000),
            _license("Sheets", used=90, category="Productivity", annual_cost=3000),
            _license("IDE", used=90, category="Development", annual_cost=2000),
        ]
        result = analyze_savings(licenses)
        assert len(result.consolidation_opportunities) == 1
        opp = result.consolidation_opportunities[0]
        assert opp.category == "Productivity"
        assert opp.license_count == 2
        assert opp.licenses == ["Docs", "Sheets"]
        assert opp.potential_savings == 600
        assert result.consolidation_savings == 600

    def test_uncategorised_licenses_group_as_other(self):
        result = analyze_savings([_license("A", used=90), _license("B", used=90)])
        assert result.consolidation_opportunities[0].category == "Other"

    def test_policy_parameters(self):
        policy = OptimizationPolicy(downgrade_headroom=0.5, consolidation_savings_rate=0.25)
        licenses = [
            _license("A", used=20, category="X", annual_cost=400),
            _license("B", used=90, category="X", annual_cost=400),
        ]
        result = analyze_savings(licenses, policy)
        assert result.downgrade_candidates[0].recommended_seats == 30
        assert result.consolidation_savings == 200


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------


class TestCompliance:
    def test_under_licensed_shortfall(self):
        report = analyze_compliance([_license(total=50, used=55)], as_of=NOW)
        assert len(report.under_licensed) == 1
        finding = report.under_licensed[0]
        assert finding.shortfall == 5
        assert finding.severity == "high"

    def test_each_license_in_one_bucket(self):
        licenses = [
            _license("Expired", used=85, expiration_date=NOW - timedelta(days=10)),
            _license("Short", total=50, used=55),
            _license("Soon", used=85, expiration_date=NOW + timedelta(days=20)),
            _license("Later", used=85, expiration_date=NOW + timedelta(days=60)),
            _license("Waste", used=10),
            _license("Fine", used=85, expiration_date=NOW + timedelta(days=365)),
            _license("Half", used=60),
        ]
        report = analyze_compliance(licenses, as_of=NOW)
        assert [f.name for f in report.expired] == ["Expired"]
        assert report.expired[0].severity == "critical"
        assert [f.name for f in report.under_licensed] == ["Short"]
        assert [f.name for f in report.expiring] == ["Soon", "Later"]
        assert report.expiring[0].severity == "high"
        assert report.expiring[1].severity == "medium"
        assert report.expiring[0].days_until_expiry == 20
        assert [f.name for f in report.over_licensed] == ["Waste"]
        assert report.over_licensed[0].waste == 90
        assert [lic.name for lic in report.compliant] == ["Fine"]
        assert [lic.name for lic in report.monitored] == ["Half"]
        total = (
            len(report.expired) + len(report.under_licensed) + len(report.expiring)
            + len(report.over_licensed) + len(report.compliant) + len(report.monitored)
        )
        assert total == len(licenses)

    def test_compliance_score(self):
        licenses = [_license("A", used=85), _license("B", used=85), _license("C", used=10),
                    _license("D", used=60)]
        report = analyze_compliance(licenses, as_of=NOW)
        assert report.compliance_score == 50
        assert report.total_licenses == 4

    def test_empty_portfolio_is_fully_compliant(self):
        assert analyze_compliance([], as_of=NOW).compliance_score == 100

    def test_aware_dates_mix_with_naive(self):
        expiry = (NOW + timedelta(days=20)).replace(tzinfo=timezone.utc)
        report = analyze_compliance(
            [_license(used=85, expiration_date=expiry)],
            as_of=NOW.replace(tzinfo=timezone.utc),
        )
        assert report.expiring[0].days_until_expiry == 20


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------


class TestRecommendations:
    def test_critical_sorts_before_high(self):
        poor = _license("Poor", used=30, cost_per_seat=10)
        over = _license("Over", used=96, cost_per_seat=10)
        recs = generate_recommendations([poor, over], as_of=NOW)
        assert [(r.license_name, r.type) for r in recs] == [
            ("Over", "upgrade"),
            ("Poor", "downgrade"),
            ("Poor", "reclaim"),
        ]
        assert recs[0].priority == "critical"
        assert recs[1].priority == "high"
        assert recs[1].estimated_savings == 560

    def test_order_independent_of_input(self):
        poor = _license("Poor", used=30, cost_per_seat=10)
        over = _license("Over", used=96, cost_per_seat=10)
        first = generate_recommendations([poor, over], as_of=NOW)
        second = generate_recommendations([over, poor], as_of=NOW)
        assert [r.type for r in first] == [r.type for r in second]

    def test_harvest_ranks_by_savings_within_priority(self):
        lic = _license(
            "Team",
            used=90,
            cost_per_seat=20,
            assignments=tuple(LicenseAssignment(f"u{i}") for i in range(3)),
        )
        recs = generate_recommendations([lic], as_of=NOW)
        assert [r.type for r in recs] == ["harvest", "reclaim"]
        assert recs[0].estimated_savings == 60

    def test_healthy_license_has_no_recommendations(self):
        assert generate_recommendations([_license(total=10, used=9)], as_of=NOW) == []


# ---------------------------------------------------------------------------
# True-up and report
# ---------------------------------------------------------------------------


class TestTrueUp:
    def test_shortfall_cost(self):
        result = calculate_true_up_costs([
            _license("Short", total=50, used=55, cost_per_seat=30),
            _license("Ok", total=50, used=40, cost_per_seat=30),
        ])
        assert result.total_true_up_cost == 150
        assert result.licenses_needing_true_up == 1
        assert result.details[0].shortfall == 5
        assert result.details[0].true_up_cost == 150
        assert result.audit_ready is False

    def test_audit_ready(self):
        result = calculate_true_up_costs([_license(used=40)])
        assert result.audit_ready is True
        assert result.total_true_up_cost == 0


class TestOptimizationReport:
    def test_summary(self):
        licenses = [
            _license("Poor", used=30, cost_per_seat=10, annual_cost=1000, category="Office"),
            _license("Fine", used=85, cost_per_seat=10, annual_cost=1000, category="Office"),
        ]
        report = generate_optimization_report(licenses, as_of=NOW)
        assert report.total_licenses == 2
        assert report.total_seats == 200
        assert report.total_used_seats == 115
        assert report.overall_utilization == 57.5
        # 700 unused + 15% of 2000 consolidation
        assert report.potential_savings == 1000
        assert report.savings_percentage == 50
        assert report.compliance.compliance_score == 50
        assert len(report.utilization_data) == 2
        assert report.true_up.audit_ready is True


class TestFromRecord:
    def test_parses_loose_record(self):
        lic = LicenseRecord.from_record({
            "_id": "L1",
            "name": "Office",
            "vendor": {"name": "Contoso"},
            "totalSeats": "100",
            "usedSeats": 42,
            "annualCost": 12000,
            "expirationDate": "2026-12-31T00:00:00Z",
            "assignments": [
                {"user": {"name": "ana"}, "lastActivity": "2026-05-01T00:00:00Z"},
                {"user": "bo"},
            ],
        })
        assert lic.license_id == "L1"
        assert lic.vendor == "Contoso"
        assert lic.total_seats == 100
        assert lic.used_seats == 42
        assert lic.effective_cost_per_seat == 120
        assert lic.expiration_date == datetime(2026, 12, 31)
        assert lic.assignments[0].user == "ana"
        assert lic.assignments[1].last_activity is None
