# tests/test_orchestrator.py
import asyncio

from claim_transfer import ClaimOutcome, ClaimStatus, ClaimWorker, GasMode
from orchestrator import ClaimOrchestrator
from fakes import FakeGateway, make_account


class CountingWorker:
    def __init__(self):
        self.runs = []

    async def run(self, account):
        self.runs.append(account.address)
        await asyncio.sleep(0)
        return ClaimOutcome(account.label, ClaimStatus.SKIPPED, reason="nothing to claim")


async def drain(orchestrator):
    await asyncio.wait_for(orchestrator.finished.wait(), 1)


def test_gate_waits_for_start_block_then_claims_for_every_account():
    accounts = [make_account(1), make_account(2), make_account(3)]
    gateway = FakeGateway(
        claimable={accounts[2].address: 10 ** 18},
        start_block=100,
    )
    worker = ClaimWorker(gateway, gas_mode=GasMode.DISABLED, max_attempts=3, retry_delay=0, over_ceiling_delay=0)
    orchestrator = ClaimOrchestrator(accounts, gateway, worker)

    async def scenario():
        await orchestrator.on_open(95)
        assert not orchestrator.started
        assert orchestrator.window.observed_block == 95
        await orchestrator.on_block(101)
        assert orchestrator.started
        await drain(orchestrator)

    asyncio.run(scenario())
    assert orchestrator.summary() == {
        "total_accounts": 3,
        "accounts_completed": 3,
        "claims_succeeded": 1,
        "transfers_succeeded": 0,
    }
    statuses = sorted(o.status.value for o in orchestrator.outcomes)
    assert statuses == ["skipped", "skipped", "success"]
    assert len(gateway.claims) == 1


def test_starts_immediately_when_window_already_open():
    worker = CountingWorker()
    orchestrator = ClaimOrchestrator([make_account(1)], FakeGateway(start_block=100), worker)

    async def scenario():
        await orchestrator.on_open(100)
        await drain(orchestrator)

    asyncio.run(scenario())
    assert worker.runs == [make_account(1).address]


def test_concurrent_heights_past_threshold_start_once():
    accounts = [make_account(n) for n in range(1, 5)]
    worker = CountingWorker()
    gateway = FakeGateway(start_block=100)
    orchestrator = ClaimOrchestrator(accounts, gateway, worker)

    async def scenario():
        await asyncio.gather(
            orchestrator.on_open(101),
            orchestrator.on_block(102),
            orchestrator.on_block(103),
            orchestrator.on_block(101),
        )
        await drain(orchestrator)

    asyncio.run(scenario())
    assert sorted(worker.runs) == sorted(a.address for a in accounts)
    assert orchestrator.counters.accounts_completed == 4


def test_reconnect_at_lower_height_does_not_restart():
    worker = CountingWorker()
    gateway = FakeGateway(start_block=100)
    orchestrator = ClaimOrchestrator([make_account(1), make_account(2)], gateway, worker)

    async def scenario():
        await orchestrator.on_open(98)
        await orchestrator.on_block(100)
        # reconnect resumes below the height already seen
        await orchestrator.on_open(99)
        await orchestrator.on_block(99)
        await orchestrator.on_block(100)
        await drain(orchestrator)

    asyncio.run(scenario())
    assert len(worker.runs) == 2
    assert gateway.start_block_reads == 1


def test_completion_fires_once_with_summed_counters():
    accounts = [make_account(n, forward_to="0x" + "ee" * 20) for n in range(1, 4)]
    gateway = FakeGateway(
        claimable={accounts[0].address: 1, accounts[1].address: 1},
        balances={accounts[0].address: 1, accounts[1].address: 1},
        claim_results=[True, False],
        transfer_results=[False],
    )
    worker = ClaimWorker(
        gateway, gas_mode=GasMode.DISABLED, max_attempts=1, retry_delay=0, over_ceiling_delay=0,
        transfer_retries=1,
    )
    orchestrator = ClaimOrchestrator(accounts, gateway, worker)
    finishes = []
    original_finish = orchestrator._finish

    def counting_finish():
        finishes.append(orchestrator.summary())
        original_finish()

    orchestrator._finish = counting_finish

    async def scenario():
        await orchestrator.on_open(200)
        await drain(orchestrator)
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert len(finishes) == 1
    outcomes = orchestrator.outcomes
    assert finishes[0]["accounts_completed"] == len(outcomes) == 3
    assert finishes[0]["claims_succeeded"] == sum(o.claimed for o in outcomes)
    assert finishes[0]["transfers_succeeded"] == sum(bool(o.transferred) for o in outcomes)


def test_empty_account_list_finishes_on_start():
    orchestrator = ClaimOrchestrator([], FakeGateway(start_block=1), CountingWorker())

    async def scenario():
        await orchestrator.on_block(5)
        return await asyncio.wait_for(orchestrator.wait_finished(), 1)

    summary = asyncio.run(scenario())
    assert summary["accounts_completed"] == summary["total_accounts"] == 0
