"""Tests for the custom report builder."""

import json
from datetime import datetime, timedelta

from asset_valuation.valuation.depreciation import AssetFinancialFacts, calculate_total_depreciation
from asset_valuation.valuation.license_optimizer import LicenseRecord, generate_optimization_report
from asset_valuation.valuation.report_builder import (
    AVAILABLE_FIELDS,
    REPORT_TEMPLATES,
    ReportConfig,
    ReportGroup,
    build_custom_report,
    calculate_report_stats,
    export_to_csv,
    export_to_json,
    format_valuation_report,
)
from asset_valuation.valuation.tco import generate_tco_report

ROWS = [
    {"name": "Laptop A", "category": "laptop", "purchasePrice": 1200, "currentValue": 840,
     "department": "Engineering"},
    {"name": "Laptop B", "category": "laptop", "purchasePrice": 1500, "currentValue": 1100,
     "department": "Sales"},
    {"name": "Server", "category": "server", "purchasePrice": 9000, "currentValue": 6000},
    {"name": "Dock", "category": "dock", "purchasePrice": None, "currentValue": None,
     "department": "Engineering"},
]


class TestCatalogue:
    def test_templates(self):
        assert len(REPORT_TEMPLATES) == 8
        tco = REPORT_TEMPLATES["tco_analysis"]
        assert tco.data_source == "assets"
        assert "totalTCO" in tco.default_fields

    def test_fields(self):
        assert AVAILABLE_FIELDS["licenses"]["utilization"].type == "percentage"
        assert AVAILABLE_FIELDS["assets"]["purchaseDate"].label == "Purchase Date"


class TestBuildCustomReport:
    def test_scalar_filter(self):
        result = build_custom_report(ROWS, ReportConfig(filters={"category": "laptop"}))
        assert [r["name"] for r in result] == ["Laptop A", "Laptop B"]

    def test_list_filter_and_empty_filter_ignored(self):
        config = ReportConfig(filters={"category": ["server", "dock"], "department": ""})
        result = build_custom_report(ROWS, config)
        assert [r["name"] for r in result] == ["Server", "Dock"]

    def test_group_by(self):
        result = build_custom_report(ROWS, ReportConfig(group_by="department"))
        assert all(isinstance(g, ReportGroup) for g in result)
        counts = {g.group: g.count for g in result}
        assert counts == {"Engineering": 2, "Sales": 1, "Unknown": 1}

    def test_sort_desc_puts_missing_last(self):
        config = ReportConfig(sort_by="purchasePrice", sort_order="desc")
        result = build_custom_report(ROWS, config)
        assert [r["name"] for r in result] == ["Server", "Laptop B", "Laptop A", "Dock"]

    def test_sort_asc(self):
        result = build_custom_report(ROWS, ReportConfig(sort_by="name"))
        assert [r["name"] for r in result][0] == "Dock"

    def test_does_not_mutate_input(self):
        rows = list(ROWS)
        build_custom_report(rows, ReportConfig(sort_by="name"))
        assert rows == ROWS


class TestReportStats:
    def test_empty(self):
        assert calculate_report_stats([]) is None

    def test_asset_stats(self):
        stats = calculate_report_stats(ROWS, "assets")
        assert stats.total_records == 4
        assert stats.total_value == 11700
        assert stats.current_value == 7940
        assert stats.categories == 3
        assert stats.avg_purchase_price == 2925

    def test_license_stats(self):
        rows = [
            {"annualCost": 1000, "totalSeats": 10, "usedSeats": 5},
            {"annualCost": 500, "totalSeats": 10, "usedSeats": 10},
        ]
        stats = calculate_report_stats(rows, "licenses")
        assert stats.total_cost == 1500
        assert stats.total_seats == 20
        assert stats.used_seats == 15
        assert stats.avg_utilization == 75


class TestExport:
    def test_csv_labels_and_formatting(self):
        rows = [
            {"name": "Laptop A", "purchasePrice": 1200, "purchaseDate": "2023-01-15"},
            {"name": "Dock", "purchasePrice": None},
        ]
        lines = export_to_csv(rows, ["name", "purchasePrice", "purchaseDate"]).splitlines()
        assert lines[0] == "Asset Name,Purchase Price,Purchase Date"
        assert lines[1] == 'Laptop A,"$1,200.00",2023-01-15'
        assert lines[2] == "Dock,N/A,N/A"

    def test_csv_unknown_field_uses_raw_name(self):
        lines = export_to_csv([{"owner": "ana", "utilization": 80}], ["owner", "utilization"]).splitlines()
        assert lines[0] == "owner,Utilization %"
        assert lines[1] == "ana,80%"

    def test_json_export(self):
        stats = calculate_report_stats(ROWS, "assets")
        data = json.loads(export_to_json(stats))
        assert data["total_records"] == 4

    def test_json_export_datetimes(self):
        data = json.loads(export_to_json([{"when": datetime(2024, 1, 2)}]))
        assert data[0]["when"] == "2024-01-02T00:00:00"


class TestFormatValuationReport:
    def test_no_data(self):
        text = format_valuation_report()
        assert "No analysis data provided." in text

    def test_all_sections(self):
        purchased = datetime(2023, 1, 1)
        assets = [AssetFinancialFacts(1200.0, purchased, category="laptop", name="A")]
        licenses = [LicenseRecord("L1", "Suite", total_seats=100, used_seats=96, cost_per_seat=5)]
        text = format_valuation_report(
            depreciation=calculate_total_depreciation(assets, as_of=purchased + timedelta(days=365.25)),
            tco=generate_tco_report(assets),
            licenses=generate_optimization_report(licenses, as_of=purchased),
        )
        assert "Depreciation" in text
        assert "Current value: 840.00" in text
        assert "Total Cost of Ownership" in text
        assert "laptop: 1 assets" in text
        assert "License Optimization" in text
        assert "[CRITICAL] Increase Suite licenses" in text
