"""Custom report builder: templates, filtering, grouping, export, text rendering.

Operates on plain row dicts (asset or license records merged with their
computed valuation fields) and renders valuation results as text reports.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from types import MappingProxyType

import pandas as pd

from asset_valuation.valuation.depreciation import DepreciationTotals
from asset_valuation.valuation.license_optimizer import OptimizationReport
from asset_valuation.valuation.tco import TCOReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportTemplate:
    id: str
    name: str
    description: str
    category: str
    data_source: str  # "assets", "licenses", "combined"
    default_fields: tuple[str, ...]


@dataclass(frozen=True)
class FieldSpec:
    label: str
    type: str  # "string", "currency", "date", "number", "percentage"


REPORT_TEMPLATES = MappingProxyType({
    t.id: t for t in (
        ReportTemplate(
            "asset_depreciation", "Asset Depreciation Report",
            "Depreciation schedules and current values", "Financial", "assets",
            ("name", "category", "purchasePrice", "purchaseDate", "currentValue", "depreciation"),
        ),
        ReportTemplate(
            "eol_forecast", "End-of-Life Forecast",
            "Assets approaching EOL with replacement costs", "Planning", "assets",
            ("name", "category", "purchaseDate", "eolDate", "yearsOld", "status"),
        ),
        ReportTemplate(
            "warranty_status", "Warranty Status Report",
            "All warranties with expiration tracking", "Compliance", "assets",
            ("name", "manufacturer", "warrantyProvider", "warrantyExpiry", "status"),
        ),
        ReportTemplate(
            "license_utilization", "License Utilization Report",
            "Software license usage and optimization", "Financial", "licenses",
            ("name", "vendor", "totalSeats", "usedSeats", "utilization", "annualCost"),
        ),
        ReportTemplate(
            "tco_analysis", "Total Cost of Ownership",
            "Complete TCO breakdown by asset", "Financial", "assets",
            ("name", "category", "purchasePrice", "annualOperatingCost", "totalTCO"),
        ),
        ReportTemplate(
            "department_allocation", "Department Cost Allocation",
            "Assets and costs by department", "Financial", "assets",
            ("department", "assetCount", "totalValue", "annualCost"),
        ),
        ReportTemplate(
            "compliance_audit", "Compliance Audit Report",
            "Full audit trail for compliance", "Compliance", "combined",
            ("type", "name", "status", "complianceStatus", "expiryDate", "owner"),
        ),
        ReportTemplate(
            "vendor_spending", "Vendor Spending Analysis",
            "Total spend by vendor", "Procurement", "assets",
            ("vendor", "assetCount", "totalSpend", "averageCost"),
        ),
    )
})

ASSET_FIELDS = MappingProxyType({
    "name": FieldSpec("Asset Name", "string"),
    "assetTag": FieldSpec("Asset Tag", "string"),
    "serialNumber": FieldSpec("Serial Number", "string"),
    "category": FieldSpec("Category", "string"),
    "manufacturer": FieldSpec("Manufacturer", "string"),
    "model": FieldSpec("Model", "string"),
    "status": FieldSpec("Status", "string"),
    "condition": FieldSpec("Condition", "string"),
    "location": FieldSpec("Location", "string"),
    "purchasePrice": FieldSpec("Purchase Price", "currency"),
    "currentValue": FieldSpec("Current Value", "currency"),
    "depreciation": FieldSpec("Depreciation", "currency"),
    "purchaseDate": FieldSpec("Purchase Date", "date"),
    "warrantyExpiry": FieldSpec("Warranty Expiry", "date"),
    "warrantyProvider": FieldSpec("Warranty Provider", "string"),
    "assignedTo": FieldSpec("Assigned To", "string"),
    "department": FieldSpec("Department", "string"),
    "eolDate": FieldSpec("EOL Date", "date"),
    "yearsOld": FieldSpec("Age (Years)", "number"),
    "totalTCO": FieldSpec("Total TCO", "currency"),
    "annualOperatingCost": FieldSpec("Annual Operating Cost", "currency"),
})

LICENSE_FIELDS = MappingProxyType({
    "name": FieldSpec("License Name", "string"),
    "vendor": FieldSpec("Vendor", "string"),
    "licenseType": FieldSpec("License Type", "string"),
    "totalSeats": FieldSpec("Total Seats", "number"),
    "usedSeats": FieldSpec("Used Seats", "number"),
    "utilization": FieldSpec("Utilization %", "percentage"),
    "annualCost": FieldSpec("Annual Cost", "currency"),
    "costPerSeat": FieldSpec("Cost per Seat", "currency"),
    "expirationDate": FieldSpec("Expiration Date", "date"),
    "status": FieldSpec("Status", "string"),
})

AVAILABLE_FIELDS = MappingProxyType({"assets": ASSET_FIELDS, "licenses": LICENSE_FIELDS})


@dataclass
class ReportConfig:
    """Field selection and shaping for a custom report."""

    fields: list[str] = field(default_factory=list)
    filters: dict = field(default_factory=dict)
    group_by: str | None = None
    sort_by: str | None = None
    sort_order: str = "asc"


@dataclass
class ReportGroup:
    group: str
    items: list[dict]
    count: int


@dataclass
class ReportStats:
    total_records: int
    total_value: float | None = None
    current_value: float | None = None
    categories: int | None = None
    avg_purchase_price: float | None = None
    total_cost: float | None = None
    total_seats: int | None = None
    used_seats: int | None = None
    avg_utilization: float | None = None


def _field_spec(name: str) -> FieldSpec | None:
    return ASSET_FIELDS.get(name) or LICENSE_FIELDS.get(name)


# ---------------------------------------------------------------------------
# 1. Build
# ---------------------------------------------------------------------------


def build_custom_report(rows: list[dict], config: ReportConfig) -> list[dict] | list[ReportGroup]:
    """Filter, then group or sort, a list of row dicts.

    A list filter value matches membership; a scalar matches equality; empty
    filter values are ignored. Grouping takes precedence over sorting.
    """
    filtered = list(rows)
    for key, wanted in config.filters.items():
        if wanted is None or wanted == "" or wanted == [] or wanted == ():
            continue
        if isinstance(wanted, (list, tuple, set)):
            filtered = [r for r in filtered if r.get(key) in wanted]
        else:
            filtered = [r for r in filtered if r.get(key) == wanted]

    if config.group_by:
        grouped: dict[str, list[dict]] = {}
        for row in filtered:
            grouped.setdefault(str(row.get(config.group_by) or "Unknown"), []).append(row)
        return [ReportGroup(group=k, items=v, count=len(v)) for k, v in grouped.items()]

    if config.sort_by:
        key = config.sort_by
        present = [r for r in filtered if r.get(key) is not None]
        missing = [r for r in filtered if r.get(key) is None]
        present.sort(key=lambda r: r[key], reverse=config.sort_order == "desc")
        filtered = present + missing
    return filtered


def calculate_report_stats(rows: list[dict], data_source: str = "assets") -> ReportStats | None:
    """Headline figures for a report's rows."""
    if not rows:
        return None

    stats = ReportStats(total_records=len(rows))
    if data_source == "assets":
        stats.total_value = sum(r.get("purchasePrice") or 0 for r in rows)
        stats.current_value = sum(r.get("currentValue") or 0 for r in rows)
        stats.categories = len({r.get("category") for r in rows})
        stats.avg_purchase_price = stats.total_value / len(rows)
    elif data_source == "licenses":
        stats.total_cost = sum(r.get("annualCost") or 0 for r in rows)
        stats.total_seats = sum(r.get("totalSeats") or 0 for r in rows)
        stats.used_seats = sum(r.get("usedSeats") or 0 for r in rows)
        stats.avg_utilization = (
            stats.used_seats / stats.total_seats * 100 if stats.total_seats > 0 else 0.0
        )
    return stats


# ---------------------------------------------------------------------------
# 2. Export
# ---------------------------------------------------------------------------


def _format_cell(value, spec: FieldSpec | None) -> str:
    if value is None or value == "":
        return "N/A"
    if spec is not None:
        if spec.type == "date":
            when = pd.to_datetime(value, errors="coerce")
            return "N/A" if pd.isna(when) else when.strftime("%Y-%m-%d")
        if spec.type == "currency":
            return f"${float(value):,.2f}"
        if spec.type == "percentage":
            return f"{value}%"
    return str(value)


def export_to_csv(rows: list[dict], fields: list[str]) -> str:
    """Render rows as CSV text with labelled headers and formatted cells."""
    columns = {}
    for name in fields:
        spec = _field_spec(name)
        label = spec.label if spec else name
        columns[label] = [_format_cell(r.get(name), spec) for r in rows]
    df = pd.DataFrame(columns, columns=list(columns))
    logger.debug("CSV export: %d rows x %d fields", len(rows), len(fields))
    return df.to_csv(index=False)


def _to_jsonable(obj):
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def export_to_json(data) -> str:
    """Serialize rows or result dataclasses as indented JSON."""
    if is_dataclass(data) and not isinstance(data, type):
        data = asdict(data)
    return json.dumps(data, indent=2, default=_to_jsonable)


# ---------------------------------------------------------------------------
# 3. Text report
# ---------------------------------------------------------------------------


def format_valuation_report(
    depreciation: DepreciationTotals | None = None,
    tco: TCOReport | None = None,
    licenses: OptimizationReport | None = None,
) -> str:
    """Combined text report; each section appears only when its result is given."""
    sections: list[str] = []
    sections.append("IT Asset Valuation Report")
    sections.append("=" * 45)

    if depreciation is not None:
        lines = ["", "Depreciation", "-" * 43]
        lines.append(f"  Assets valued: {depreciation.asset_count}")
        lines.append(f"  Original value: {depreciation.original_value:,.2f}")
        lines.append(f"  Current value: {depreciation.current_value:,.2f}")
        lines.append(f"  Accumulated depreciation: {depreciation.accumulated_depreciation:,.2f}")
        lines.append(f"  Average depreciation: {depreciation.average_depreciation_percentage:.1f}%")
        lines.append(f"  Fully depreciated: {depreciation.fully_depreciated_count}")
        sections.append("\n".join(lines))

    if tco is not None:
        lines = ["", "Total Cost of Ownership", "-" * 43]
        if tco.summary is None:
            lines.append("  No assets with purchase data.")
        else:
            s = tco.summary
            lines.append(f"  Assets: {s.asset_count}")
            lines.append(f"  Total TCO: {s.total_tco:,.2f} (avg {s.average_tco:,.2f})")
            lines.append(f"  Annual operating cost: {s.annual_operating_cost:,.2f}")
            lines.append(f"  Operating share of TCO: {s.operating_cost_percentage:.1f}%")
        for name, group in sorted(tco.by_category.items()):
            lines.append(f"    {name}: {group.count} assets, TCO {group.total_tco:,.2f}")
        sections.append("\n".join(lines))

    if licenses is not None:
        lines = ["", "License Optimization", "-" * 43]
        lines.append(f"  Licenses: {licenses.total_licenses}")
        lines.append(f"  Overall utilization: {licenses.overall_utilization:.1f}%")
        lines.append(f"  Compliance score: {licenses.compliance.compliance_score:.1f}%")
        lines.append(f"  Potential savings: {licenses.potential_savings:,.2f}")
        lines.append(f"  True-up cost: {licenses.true_up.total_true_up_cost:,.2f}")
        for rec in licenses.recommendations:
            lines.append(f"    [{rec.priority.upper()}] {rec.title}")
        sections.append("\n".join(lines))

    if depreciation is None and tco is None and licenses is None:
        sections.append("\nNo analysis data provided.")

    return "\n".join(sections)
