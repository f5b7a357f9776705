"""Operator control surface: start a batch, request a stop, report status.

Only one batch runs at a time. ``start`` validates and resolves everything before a
single task is scheduled, so configuration problems never produce partial batches.
"""

import asyncio
import logging
import random
import time
import uuid
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from selfsend.cancellation import CancellationToken
from selfsend.catalog import Catalog, is_valid_token_address
from selfsend.chain import ChainConnector
from selfsend.constants import BATCH_HISTORY, Severity, TaskState
from selfsend.credentials import Credential
from selfsend.errors import InvalidConfiguration
from selfsend.events import Event, EventSink
from selfsend.models import Asset, BatchRun, FeeConfig, NetworkInfo, TimingConfig
from selfsend.scheduler import BatchScheduler, Sleep, build_tasks

log = logging.getLogger("selfsend.control")

ConnectorFactory = Callable[[NetworkInfo], ChainConnector]


@dataclass
class BatchRunHandle:
    batch_id: str
    network: NetworkInfo
    asset: Asset
    size: int
    token: CancellationToken
    scheduler: BatchScheduler
    task: asyncio.Task | None = None
    started_at: float = field(default_factory=time.time)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def result(self) -> BatchRun | None:
        if self.task is None or not self.task.done() or self.task.cancelled() or self.task.exception():
            return None
        return self.task.result()

    async def wait(self) -> BatchRun:
        if self.task is None:
            raise RuntimeError(f"batch {self.batch_id} was never started")
        return await asyncio.shield(self.task)

    def status(self) -> dict:
        states = Counter(s.value for s in self.scheduler.states.values())
        result = self.result
        return {
            "batch_id": self.batch_id,
            "network": self.network.id,
            "asset": self.asset.symbol,
            "tasks": self.size,
            "running": self.running,
            "stop_requested": self.token.is_set(),
            "started_at": self.started_at,
            "finished_at": result.finished_at if result else None,
            "states": {s.value: states.get(s.value, 0) for s in TaskState},
            "summary": result.summary() if result else None,
        }


class BatchController:
    def __init__(
        self,
        catalog: Catalog,
        sink: EventSink,
        connector_factory: ConnectorFactory,
        *,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        history: int = BATCH_HISTORY,
    ) -> None:
        self.catalog = catalog
        self.sink = sink
        self.connector_factory = connector_factory
        self._rng = rng
        self._sleep = sleep
        self.history = history
        self.batches: dict[str, BatchRunHandle] = {}
        self.current: BatchRunHandle | None = None

    async def start(
        self,
        network_id: str,
        asset_ref: str,
        credentials: Sequence[Credential],
        timing: TimingConfig,
        fee: FeeConfig,
        *,
        token_symbol: str | None = None,
        token_decimals: int | None = None,
    ) -> BatchRunHandle:
        self.ensure_idle()
        if not credentials:
            raise InvalidConfiguration("no credentials supplied")
        dupes = [a for a, n in Counter(c.address for c in credentials).items() if n > 1]
        if dupes:
            raise InvalidConfiguration(f"{len(dupes)} credentials supplied more than once")

        network = self.catalog.resolve_network(network_id)
        connector = self.connector_factory(network)
        asset = await self._resolve_asset(network, connector, asset_ref, token_symbol, token_decimals)

        batch_id = uuid.uuid4().hex[:8]
        token = CancellationToken()
        scheduler = BatchScheduler(connector, self.sink, batch_id=batch_id, rng=self._rng, sleep=self._sleep)
        tasks = build_tasks(credentials, network, asset, timing, fee)
        handle = BatchRunHandle(batch_id=batch_id, network=network, asset=asset, size=len(tasks),
                                token=token, scheduler=scheduler)
        handle.task = asyncio.create_task(scheduler.run(tasks, token), name=f"batch-{batch_id}")
        handle.task.add_done_callback(self._finished)
        self.batches[batch_id] = handle
        self.current = handle
        self._prune()
        log.info("Started batch %s: %d %s transfers on %s", batch_id, len(tasks), asset.symbol, network.name)
        return handle

    async def _resolve_asset(self, network, connector, asset_ref, symbol, decimals) -> Asset:
        try:
            return self.catalog.resolve_asset(network, asset_ref, symbol=symbol, decimals=decimals)
        except InvalidConfiguration:
            if not is_valid_token_address(asset_ref):
                raise
        # Custom token: fill in whatever the caller left out from the contract itself.
        chain_symbol, chain_decimals = await connector.read_token_metadata(asset_ref)
        return self.catalog.resolve_asset(
            network,
            asset_ref,
            symbol=symbol if symbol is not None else chain_symbol,
            decimals=decimals if decimals is not None else chain_decimals,
        )

    def ensure_idle(self) -> None:
        if self.current is not None and self.current.running:
            raise InvalidConfiguration(f"batch {self.current.batch_id} is still running")

    def _prune(self) -> None:
        finished = [b for b, h in self.batches.items() if not h.running]
        for batch_id in finished[: max(len(self.batches) - self.history, 0)]:
            del self.batches[batch_id]

    def _finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            log.warning("Batch task %s was cancelled", task.get_name())
        elif task.exception() is not None:
            log.error("Batch task %s crashed", task.get_name(), exc_info=task.exception())

    def get(self, batch_id: str) -> BatchRunHandle:
        try:
            return self.batches[batch_id]
        except KeyError:
            raise KeyError(f"unknown batch {batch_id!r}") from None

    def request_stop(self, handle: BatchRunHandle | str) -> bool:
        """Set the batch's cancellation token and return without waiting for tasks."""
        if isinstance(handle, str):
            handle = self.get(handle)
        first = handle.token.set()
        if first:
            log.info("Stop requested for batch %s", handle.batch_id)
            self.sink.emit(Event(Severity.WARNING, "Stop requested, waiting tasks will be cancelled",
                                 batch_id=handle.batch_id))
        return first

    async def shutdown(self, grace: float = 5.0) -> None:
        """Stop the running batch; cancel it if tasks are still submitting after ``grace`` seconds."""
        current = self.current
        if current is None or not current.running:
            return
        self.request_stop(current)
        try:
            async with asyncio.timeout(grace):
                await current.wait()
        except TimeoutError:
            log.warning("Batch %s still submitting after %.0fs, cancelling", current.batch_id, grace)
            current.task.cancel()
