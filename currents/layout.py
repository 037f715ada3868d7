"""Layout border persistence.

Divider positions are not part of the chat tree, but they ride the same sync
queue so they survive going offline.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from currents.remote.base import RemoteStore
from currents.sync.executor import SyncExecutor
from currents.sync.operations import OperationType, utc_now_iso

logger = logging.getLogger(__name__)

AXES = ("x", "y")


@dataclass
class LayoutBorder:
    border_id: str
    axis: str
    position: float
    updated_at: str | None = None

    def __post_init__(self):
        if self.axis not in AXES:
            raise ValueError(f"Border axis must be 'x' or 'y', got {self.axis!r}")
        self.position = float(self.position)

    def to_row(self) -> dict[str, Any]:
        return {
            "border_id": self.border_id,
            "axis": self.axis,
            "position": self.position,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LayoutBorder":
        return cls(
            border_id=row["border_id"],
            axis=row["axis"],
            position=row["position"],
            updated_at=row.get("updated_at"),
        )


class LayoutPersistence:
    def __init__(self, executor: SyncExecutor, store: RemoteStore | None = None):
        self.executor = executor
        self.store = store or executor.store

    async def persist_border(self, border_id: str, axis: str, position: float) -> bool:
        """Submit one border position.

        Returns:
            True if written immediately, False if queued
        """
        border = LayoutBorder(border_id, axis, position, updated_at=utc_now_iso())
        return await self.executor.submit(OperationType.UPSERT_BORDER, border.to_row())

    async def persist_borders(self, borders: list[LayoutBorder]) -> list[bool]:
        return list(
            await asyncio.gather(
                *(self.persist_border(b.border_id, b.axis, b.position) for b in borders)
            )
        )

    async def fetch_borders(self) -> dict[str, LayoutBorder]:
        """Load stored border positions keyed by border id.

        Returns an empty mapping when the store cannot be read.
        """
        try:
            rows = await self.store.select("layout_borders")
        except Exception as e:
            logger.warning(f"Failed to load layout borders: {e}")
            return {}

        borders = {}
        for row in rows:
            try:
                border = LayoutBorder.from_row(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid layout border row: {e}")
                continue
            borders[border.border_id] = border
        return borders
