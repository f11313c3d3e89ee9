"""Storage for saved custom report configurations.

Callers receive a ``ReportConfigStore`` and never reach for process-wide
state; ``InMemoryReportStore`` suits previews and tests, ``SqlReportStore``
persists through an injected async SQLAlchemy session.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from asset_valuation.db.models import SavedReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedReportConfig:
    name: str
    template_id: str | None = None
    description: str | None = None
    fields: list[str] = field(default_factory=list)
    filters: dict = field(default_factory=dict)
    group_by: str | None = None
    sort_by: str | None = None
    sort_order: str = "asc"
    id: str | None = None
    created_at: datetime | None = None


class ReportConfigStore(Protocol):
    async def save(self, config: SavedReportConfig) -> SavedReportConfig: ...

    async def load(self) -> list[SavedReportConfig]: ...

    async def delete(self, report_id: str) -> bool: ...


def _stamp(config: SavedReportConfig) -> SavedReportConfig:
    """Assign an id and creation time to a new configuration."""
    return replace(
        config,
        id=config.id or f"report_{time.time_ns() // 1_000_000}_{uuid.uuid4().hex[:6]}",
        created_at=config.created_at or datetime.now(timezone.utc),
    )


class InMemoryReportStore:
    """Report configurations held for the lifetime of this instance."""

    def __init__(self, configs: list[SavedReportConfig] | None = None) -> None:
        self._configs: list[SavedReportConfig] = list(configs or [])

    async def save(self, config: SavedReportConfig) -> SavedReportConfig:
        saved = _stamp(config)
        self._configs.append(saved)
        return saved

    async def load(self) -> list[SavedReportConfig]:
        return list(self._configs)

    async def delete(self, report_id: str) -> bool:
        before = len(self._configs)
        self._configs = [c for c in self._configs if c.id != report_id]
        return len(self._configs) < before


def _to_config(row: SavedReport) -> SavedReportConfig:
    return SavedReportConfig(
        id=row.id,
        name=row.name,
        template_id=row.template_id,
        description=row.description,
        fields=list(row.fields or []),
        filters=dict(row.filters or {}),
        group_by=row.group_by,
        sort_by=row.sort_by,
        sort_order=row.sort_order or "asc",
        created_at=row.created_at,
    )


class SqlReportStore:
    """Report configurations persisted in the ``saved_report_configs`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save(self, config: SavedReportConfig) -> SavedReportConfig:
        saved = _stamp(config)
        self.session.add(SavedReport(
            id=saved.id,
            name=saved.name,
            template_id=saved.template_id,
            description=saved.description,
            fields=saved.fields,
            filters=saved.filters,
            group_by=saved.group_by,
            sort_by=saved.sort_by,
            sort_order=saved.sort_order,
            created_at=saved.created_at,
        ))
        await self.session.commit()
        logger.info("Saved report config %s (%s)", saved.id, saved.name)
        return saved

    async def load(self) -> list[SavedReportConfig]:
        result = await self.session.execute(
            select(SavedReport).order_by(SavedReport.created_at)
        )
        return [_to_config(row) for row in result.scalars().all()]

    async def delete(self, report_id: str) -> bool:
        result = await self.session.execute(
            delete(SavedReport).where(SavedReport.id == report_id)
        )
        await self.session.commit()
        return result.rowcount > 0
