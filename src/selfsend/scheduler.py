"""Batch fan-out: one independent transfer task per credential.

Task lifecycle::

    PENDING -> WAITING -> CHECKING_CANCELLATION -> ESTIMATING -> SUBMITTING -> CONFIRMING -> TERMINAL

Cancellation is checked once, right after the random pre-delay, and before any network
call. A task that got past that checkpoint runs to completion. Every failure inside a
task becomes that task's FAILED outcome; nothing escapes to sibling tasks.
"""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from selfsend import randoms
from selfsend.amounts import covers_fee, select_native_amount, select_token_amount
from selfsend.cancellation import CancellationToken
from selfsend.chain import ChainConnector
from selfsend.constants import NATIVE_TRANSFER_GAS, OutcomeStatus, Severity, TaskState
from selfsend.credentials import Credential
from selfsend.errors import SelfSendError
from selfsend.events import Event, EventSink
from selfsend.fee import FeeEstimator
from selfsend.formatters import format_units, short_tx_hash
from selfsend.models import Asset, BatchRun, FeeConfig, NetworkInfo, TimingConfig, TransferOutcome
from selfsend.txn_factory.builder import TransferSubmitter, native_transfer, token_transfer, with_gas

log = logging.getLogger("selfsend.scheduler")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class TransferTask:
    """Everything one task needs, owned by that task alone."""

    credential: Credential
    network: NetworkInfo
    asset: Asset
    timing: TimingConfig
    fee: FeeConfig

    @property
    def account(self) -> str:
        return self.credential.address

    @property
    def ref(self) -> str:
        return self.credential.ref


def build_tasks(
    credentials: Iterable[Credential],
    network: NetworkInfo,
    asset: Asset,
    timing: TimingConfig,
    fee: FeeConfig,
) -> list[TransferTask]:
    return [TransferTask(credential=c, network=network, asset=asset, timing=timing, fee=fee) for c in credentials]


class BatchScheduler:
    def __init__(
        self,
        connector: ChainConnector,
        sink: EventSink,
        *,
        batch_id: str | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.connector = connector
        self.sink = sink
        self.batch_id = batch_id or uuid.uuid4().hex[:8]
        self.rng = rng or randoms.rng
        self.sleep = sleep
        self.clock = clock
        self.fees = FeeEstimator(connector, rng=self.rng)
        self.submitter = TransferSubmitter(connector)
        # Each task only ever writes its own key.
        self.states: dict[str, TaskState] = {}

    def _emit(self, severity: Severity, message: str, ref: str = "") -> None:
        self.sink.emit(Event(severity, message, account_ref=ref, batch_id=self.batch_id, timestamp=self.clock()))

    def _set_state(self, task: TransferTask, state: TaskState) -> None:
        self.states[task.account] = state
        log.debug("%s %s -> %s", self.batch_id, task.ref, state)

    def _outcome(self, task: TransferTask, status: OutcomeStatus, started: float, **fields) -> TransferOutcome:
        return TransferOutcome(
            account=task.account,
            account_ref=task.ref,
            status=status,
            started_at=started,
            finished_at=self.clock(),
            **fields,
        )

    async def run(self, tasks: Sequence[TransferTask], token: CancellationToken) -> BatchRun:
        """Run every task concurrently and return once all of them are terminal."""
        network_id = tasks[0].network.id if tasks else ""
        symbol = tasks[0].asset.symbol if tasks else ""
        batch = BatchRun(batch_id=self.batch_id, network_id=network_id, asset_symbol=symbol, started_at=self.clock())
        for task in tasks:
            self._set_state(task, TaskState.PENDING)

        self._emit(Severity.INFO, f"Starting {len(tasks)} {symbol} self-transfer tasks on {network_id}")
        async with asyncio.TaskGroup() as tg:
            running = [tg.create_task(self._run_task(t, token), name=f"transfer-{t.ref}") for t in tasks]

        batch.outcomes = [r.result() for r in running]
        batch.finished_at = self.clock()
        batch.stop_requested = token.is_set()
        summary = ", ".join(f"{k}={v}" for k, v in batch.summary().items() if v)
        self._emit(Severity.SUCCESS, f"All {len(tasks)} transfer tasks finished ({summary or 'nothing to do'})")
        log.info("Batch %s finished: %s", self.batch_id, batch.summary())
        return batch

    async def _run_task(self, task: TransferTask, token: CancellationToken) -> TransferOutcome:
        started = self.clock()
        try:
            outcome = await self._transfer(task, token, started)
        except SelfSendError as e:
            log.warning("Transfer task %s failed: %s", task.ref, e)
            outcome = self._outcome(task, OutcomeStatus.FAILED, started, reason=str(e))
        except Exception as e:
            log.error("Unexpected error in transfer task %s", task.ref, exc_info=True)
            outcome = self._outcome(task, OutcomeStatus.FAILED, started, reason=f"{e.__class__.__name__}: {e}")
        self._set_state(task, TaskState.TERMINAL)
        self._report(task, outcome)
        return outcome

    def _report(self, task: TransferTask, outcome: TransferOutcome) -> None:
        ref, status = task.ref, outcome.status
        if status == OutcomeStatus.SUCCESS:
            self._emit(Severity.SUCCESS, f"Transfer confirmed, hash: {outcome.tx_hash}", ref)
            self._emit(Severity.INFO, f"Details: {task.network.tx_url(outcome.tx_hash)}", ref)
        elif status == OutcomeStatus.SKIPPED_ZERO_BALANCE:
            self._emit(Severity.WARNING, f"{task.asset.symbol} balance is zero, skipping", ref)
        elif status == OutcomeStatus.SKIPPED_INSUFFICIENT_FOR_FEE:
            self._emit(Severity.WARNING,
                       f"{task.network.native.symbol} balance does not cover the transaction fee, skipping", ref)
        elif status == OutcomeStatus.CANCELLED:
            self._emit(Severity.WARNING, "Transfer cancelled before touching the network", ref)
        else:
            self._emit(Severity.ERROR, f"Transfer failed: {outcome.reason}", ref)

    async def _wait(self, delay: float, token: CancellationToken) -> None:
        """Sleep ``delay`` seconds, returning early if a stop is requested."""
        if token.is_set():
            return
        sleeper = asyncio.create_task(self.sleep(delay))
        halt = asyncio.create_task(token.wait())
        try:
            await asyncio.wait({sleeper, halt}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in (sleeper, halt):
                t.cancel()

    async def _transfer(self, task: TransferTask, token: CancellationToken, started: float) -> TransferOutcome:
        ref, account, asset, network = task.ref, task.account, task.asset, task.network

        self._set_state(task, TaskState.WAITING)
        lo, hi = task.timing.min_delay, task.timing.max_delay
        delay = min(max(self.rng.uniform(lo, hi), lo), hi)
        self._emit(Severity.INFO, f"Waiting {delay:.1f}s before transfer", ref)
        await self._wait(delay, token)

        self._set_state(task, TaskState.CHECKING_CANCELLATION)
        if token.is_set():
            return self._outcome(task, OutcomeStatus.CANCELLED, started)

        self._set_state(task, TaskState.ESTIMATING)
        balance = await self.connector.read_balance(account, asset)
        self._emit(Severity.INFO, f"{asset.symbol} balance: {format_units(balance, asset.decimals)}", ref)
        if balance == 0:
            return self._outcome(task, OutcomeStatus.SKIPPED_ZERO_BALANCE, started, amount=0)

        quote = await self.fees.estimate(task.fee)
        nonce = await self.connector.read_sequence_number(account)

        if asset.is_native:
            selection = select_native_amount(balance, quote.price * NATIVE_TRANSFER_GAS, self.rng)
            if not selection.ok:
                return self._outcome(task, selection.skipped, started, fee_price=quote.price)
            payload = native_transfer(account, selection.amount, quote.price, nonce, network.chain_id)
        else:
            selection = select_token_amount(balance, self.rng)
            payload = token_transfer(account, asset, selection.amount, quote.price, nonce, network.chain_id)
            estimate, limit = await self.submitter.estimate_gas(payload)
            native_balance = await self.connector.read_balance(account, network.native)
            if not covers_fee(native_balance, quote.price * limit):
                return self._outcome(task, OutcomeStatus.SKIPPED_INSUFFICIENT_FOR_FEE, started,
                                     fee_price=quote.price)
            payload = with_gas(payload, limit)

        self._set_state(task, TaskState.SUBMITTING)
        self._emit(Severity.INFO,
                   f"Submitting self-transfer of {format_units(selection.amount, asset.decimals)} {asset.symbol}"
                   f" (nonce {nonce}, gas price {quote.price} wei)", ref)

        def submitted(handle: str) -> None:
            self._set_state(task, TaskState.CONFIRMING)
            self._emit(Severity.INFO, f"Submitted {short_tx_hash(handle)}, waiting for confirmation", ref)

        confirmation = await self.submitter.send(payload, task.credential, on_submitted=submitted)
        return self._outcome(task, OutcomeStatus.SUCCESS, started, tx_hash=confirmation.tx_hash,
                             amount=selection.amount, fee_price=quote.price)
