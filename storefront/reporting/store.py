"""
Snapshot Store

Reads and writes the single dashboard snapshot row.

The computed document and the conversion rate are written independently:
a refresh never touches the rate column and a rate change never touches the
document, so neither can undo the other when they overlap.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import ReportingSettings
from storefront.database.models import DashboardSnapshot
from storefront.reporting.schemas import Snapshot

DEFAULT_TTL = timedelta(hours=1)


class SnapshotStore:
    """
    Singleton snapshot persistence.

    ``load`` distinguishes "never created" (None) from a stored snapshot;
    ``get`` always returns a snapshot, falling back to a zero-valued default.
    Neither triggers recomputation.
    """

    def __init__(self, session: AsyncSession, settings: ReportingSettings):
        self.session = session
        self.settings = settings

    async def load(self) -> Optional[Snapshot]:
        row = await self.session.get(DashboardSnapshot, DashboardSnapshot.SINGLETON_ID)
        if row is None:
            return None
        snapshot = Snapshot.model_validate(row.data)
        # Columns are authoritative for the independently updated fields
        snapshot.currency_conversion_rate = row.currency_conversion_rate
        snapshot.last_updated = row.last_updated
        return snapshot

    async def get(self) -> Snapshot:
        snapshot = await self.load()
        if snapshot is None:
            snapshot = Snapshot(currency_conversion_rate=self.settings.default_currency_rate)
        return snapshot

    async def save(self, snapshot: Snapshot) -> Decimal:
        """
        Write the snapshot document and its timestamp. Caller commits.

        An existing row keeps its conversion rate; the rate stored after the
        write is returned. A new row takes the snapshot's rate.
        """
        data = snapshot.model_dump(mode="json", by_alias=True)
        result = await self.session.execute(
            update(DashboardSnapshot)
            .where(DashboardSnapshot.id == DashboardSnapshot.SINGLETON_ID)
            .values(data=data, last_updated=snapshot.last_updated)
        )
        if result.rowcount == 0:
            self.session.add(DashboardSnapshot(
                id=DashboardSnapshot.SINGLETON_ID,
                data=data,
                currency_conversion_rate=snapshot.currency_conversion_rate,
                last_updated=snapshot.last_updated,
            ))
            await self.session.flush()
            return snapshot.currency_conversion_rate
        return await self._stored_rate()

    async def save_rate(self, rate: Decimal, updated_at: datetime) -> None:
        """
        Write the conversion rate and bump the timestamp. Caller commits.

        Without a row, a zero-valued snapshot carrying the rate is inserted
        with no timestamp, so it reads as stale.
        """
        result = await self.session.execute(
            update(DashboardSnapshot)
            .where(DashboardSnapshot.id == DashboardSnapshot.SINGLETON_ID)
            .values(currency_conversion_rate=rate, last_updated=updated_at)
        )
        if result.rowcount == 0:
            self.session.add(DashboardSnapshot(
                id=DashboardSnapshot.SINGLETON_ID,
                data=Snapshot(currency_conversion_rate=rate).model_dump(mode="json", by_alias=True),
                currency_conversion_rate=rate,
                last_updated=None,
            ))
        await self.session.flush()

    async def _stored_rate(self) -> Decimal:
        result = await self.session.execute(
            select(DashboardSnapshot.currency_conversion_rate)
            .where(DashboardSnapshot.id == DashboardSnapshot.SINGLETON_ID)
        )
        return result.scalar_one()

    @staticmethod
    def is_stale(snapshot: Optional[Snapshot], now: datetime, ttl: timedelta = DEFAULT_TTL) -> bool:
        """True when there is no snapshot or it is older than ``ttl``."""
        if snapshot is None or snapshot.last_updated is None:
            return True
        return now - snapshot.last_updated > ttl
