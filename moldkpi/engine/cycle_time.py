"""
Cycle-Time Lookup — Per-Mold Cycle Duration from the Mapping Dataset.

The mold mapping is a reference device in the store whose rows carry a mold
name and its nominal cycle time in seconds. The lookup never raises: any
failure degrades to 0, which callers read as "unknown cycle time".
"""

import asyncio
from typing import Optional

import structlog

from moldkpi.config import EngineConfig
from moldkpi.connectors.store_client import DocumentStore, StoreError
from moldkpi.engine.normalize import coerce_number, coerce_text

logger = structlog.get_logger()


class CycleTimeLookup:
    """
    Resolves the cycle time of a mold.

    Attributes:
        store: Document store holding the mapping device
        config: Engine configuration (reference device, field codes, timeout)
    """

    def __init__(self, store: DocumentStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    async def lookup(self, mold: str) -> float:
        """
        Cycle time of a mold in seconds.

        Args:
            mold: Mold identifier (trimmed before matching)

        Returns:
            First finite positive cycle time among rows naming the mold, else 0
        """
        try:
            rows = await asyncio.wait_for(
                self.store.fetch_reference(
                    self.config.reference_device_id,
                    limit=self.config.reference_fetch_limit,
                ),
                timeout=self.config.request_timeout_seconds,
            )
        except (StoreError, asyncio.TimeoutError) as e:
            logger.warning(
                "cycle_time_lookup_failed",
                mold=mold,
                error=str(e) or type(e).__name__,
            )
            return 0.0

        return self.find_cycle_time(rows, mold)

    def find_cycle_time(self, rows: list, mold: str) -> float:
        """Scan mapping rows for the mold's cycle time."""
        fields = self.config.fields
        selected = str(mold).strip()

        for row in rows:
            data = row.get("data") if isinstance(row, dict) else None
            if not isinstance(data, dict):
                continue
            name = coerce_text(data.get(fields.mapping_mold_name))
            if not name or name.strip() != selected:
                continue

            cycle_time = coerce_number(data.get(fields.mapping_cycle_time))
            if cycle_time is not None and cycle_time > 0:
                logger.debug("cycle_time_found", mold=selected, cycle_time_seconds=cycle_time)
                return cycle_time

            logger.debug(
                "cycle_time_invalid",
                mold=selected,
                raw_value=data.get(fields.mapping_cycle_time),
            )

        logger.info("cycle_time_not_found", mold=selected, mapping_rows=len(rows))
        return 0.0
