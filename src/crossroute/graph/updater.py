"""Background refresh of the liquidity graphs."""

import asyncio
import logging
import time
from typing import Optional

from crossroute.graph.builder import GraphBuilder
from crossroute.graph.liquidity_graph import GraphStats

logger = logging.getLogger(__name__)


class GraphUpdater:
    """Rebuilds every configured chain's graph on a fixed interval."""

    def __init__(self, builder: GraphBuilder, chain_ids: list[int], interval_seconds: int = 300):
        self.builder = builder
        self.chain_ids = list(chain_ids)
        self.interval = interval_seconds
        self.last_update: Optional[float] = None
        self._updating = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Graph updater stopped")

    async def run(self) -> None:
        """Run the refresh loop until cancelled."""
        logger.info(f"Starting graph updater for chains {self.chain_ids} (interval: {self.interval}s)")
        while True:
            try:
                await self.update_all()
            except Exception as e:
                logger.error(f"Graph updater error: {e}")
            await asyncio.sleep(self.interval)

    async def update_all(self) -> dict[int, GraphStats]:
        """Rebuild all chains; skipped while a previous cycle is still running."""
        if self._updating:
            logger.debug("Graph update already in progress, skipping")
            return {}

        self._updating = True
        results = {}
        try:
            for chain_id in self.chain_ids:
                try:
                    results[chain_id] = await self.builder.build_graph(chain_id)
                except Exception as e:
                    logger.error(f"Graph build failed for chain {chain_id}: {type(e).__name__}: {e}")
            self.last_update = time.time()
        finally:
            self._updating = False
        return results

    async def force_update(self, chain_id: Optional[int] = None) -> dict[int, GraphStats]:
        if chain_id is None:
            return await self.update_all()
        return {chain_id: await self.builder.build_graph(chain_id)}
