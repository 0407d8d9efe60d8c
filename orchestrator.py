# orchestrator.py
import asyncio
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import config
from claim_transfer import ClaimOutcome, ClaimWorker
from logger import get_logger
from utils import Account

logger = get_logger("Orchestrator", config.LOG_LEVEL)


@dataclass
class ClaimWindow:
    start_block: Optional[int] = None
    observed_block: Optional[int] = None


@dataclass
class ProgressCounters:
    total_accounts: int
    accounts_completed: int = 0
    claims_succeeded: int = 0
    transfers_succeeded: int = 0


class ClaimOrchestrator:
    """Waits for the claim window to open, then claims for every account once.

    ``on_open`` and ``on_block`` are fed by the block watcher; both may be
    called again after a reconnect, with heights lower than already seen.
    """

    def __init__(self, accounts: List[Account], gateway: Any, worker: ClaimWorker):
        self.accounts = list(accounts)
        self.gateway = gateway
        self.worker = worker
        self.window = ClaimWindow()
        self.counters = ProgressCounters(total_accounts=len(self.accounts))
        self.outcomes: List[ClaimOutcome] = []
        self.started = False
        self.finished = asyncio.Event()
        self._gate_lock = asyncio.Lock()
        self._counter_lock = asyncio.Lock()
        self._tasks: List[asyncio.Task] = []

    async def on_open(self, current_block: int) -> None:
        if self.started:
            logger.info(f"Connection (re)opened at block {current_block}, claim already running")
            return
        start_block = await self._start_block()
        logger.info(f"Script started: current block {current_block}, claim starts at block {start_block}")
        await self._evaluate(current_block)

    async def on_block(self, block: int) -> None:
        if self.started:
            return
        await self._evaluate(block)

    async def _start_block(self) -> int:
        if self.window.start_block is None:
            self.window.start_block = int(await self.gateway.claim_period_start())
        return self.window.start_block

    async def _evaluate(self, block: int) -> bool:
        async with self._gate_lock:
            if self.started:
                return False
            start_block = await self._start_block()
            self.window.observed_block = block
            if block >= start_block:
                logger.info(f"Block {block}: claim window is open, starting claim")
                self._start()
                return True
            logger.info(f"Block {block}: claim not started yet, {start_block - block} blocks left")
            return False

    def _start(self) -> None:
        self.started = True
        if not self.accounts:
            self._finish()
            return
        for account in self.accounts:
            self._tasks.append(asyncio.create_task(self._claim(account)))

    async def _claim(self, account: Account) -> None:
        outcome = await self.worker.run(account)
        await self._record(outcome)

    async def _record(self, outcome: ClaimOutcome) -> None:
        async with self._counter_lock:
            self.outcomes.append(outcome)
            self.counters.accounts_completed += 1
            if outcome.claimed:
                self.counters.claims_succeeded += 1
            if outcome.transferred:
                self.counters.transfers_succeeded += 1
            done = self.counters.accounts_completed == self.counters.total_accounts
        if done:
            self._finish()

    def _finish(self) -> None:
        summary = self.summary()
        logger.info(
            f"Results: transfers ok {summary['transfers_succeeded']}, "
            f"claims ok {summary['claims_succeeded']}, "
            f"accounts done {summary['accounts_completed']}/{summary['total_accounts']}"
        )
        self.finished.set()

    def summary(self) -> Dict[str, int]:
        return asdict(self.counters)

    async def wait_finished(self) -> Dict[str, int]:
        await self.finished.wait()
        return self.summary()
