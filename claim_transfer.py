# claim_transfer.py
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from web3 import Web3

import config
from errors import ClaimerError, ConfigurationOrDataError, TransientNetworkError, TransactionRejected
from logger import get_logger, get_account_logger
from utils import Account

logger = get_logger("ClaimTransfer", config.LOG_LEVEL)


class GasMode(str, Enum):
    ALWAYS = "estimate_always"
    ONCE = "estimate_once"
    DISABLED = "disabled"


def gas_mode_from_flags(estimate_gas: bool, estimate_once: bool) -> GasMode:
    if not estimate_gas:
        return GasMode.DISABLED
    return GasMode.ONCE if estimate_once else GasMode.ALWAYS


class GasOrigin(str, Enum):
    MEASURED = "measured"
    DEFAULT = "default"
    INFLATED = "inflated"


@dataclass(frozen=True)
class GasEstimate:
    value: int
    origin: GasOrigin

    def inflated(self) -> "GasEstimate":
        # +1/3 of the current value, compounding across retries
        return GasEstimate(self.value + self.value // 3, GasOrigin.INFLATED)


class SharedGasEstimate:
    """Gas limit measured once and shared by every worker (estimate-once mode)."""

    def __init__(self):
        self._estimate: Optional[GasEstimate] = None
        self._lock = asyncio.Lock()

    @property
    def estimate(self) -> Optional[GasEstimate]:
        return self._estimate

    async def get_or_measure(self, measure) -> GasEstimate:
        async with self._lock:
            if self._estimate is None:
                self._estimate = GasEstimate(int(await measure()), GasOrigin.MEASURED)
            return self._estimate

    async def raise_to(self, estimate: GasEstimate) -> None:
        async with self._lock:
            if self._estimate is None or estimate.value > self._estimate.value:
                self._estimate = estimate


class ClaimStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ClaimOutcome:
    account: str
    status: ClaimStatus
    tx_hash: Optional[str] = None
    amount: int = 0
    reason: str = ""
    # None when no forwarding was attempted
    transferred: Optional[bool] = None
    attempts: int = 0

    @property
    def claimed(self) -> bool:
        return self.status is ClaimStatus.SUCCESS


def format_amount(amount: int) -> str:
    return f"{amount / 1e18:.6f}"


class ClaimWorker:
    """Runs the claim (and optional transfer) sequence for one account at a time.

    One instance is shared by all accounts; per-account state lives in ``run``.
    """

    def __init__(
        self,
        gateway: Any,
        gas_mode: GasMode = GasMode.DISABLED,
        shared_gas: Optional[SharedGasEstimate] = None,
        default_gas_limit: int = config.DEFAULT_GAS_LIMIT,
        max_fee_wei: int = Web3.to_wei(config.MAX_FEE_AMOUNT, "ether"),
        max_attempts: int = config.MAX_CLAIM_ATTEMPTS,
        over_ceiling_delay: float = config.OVER_CEILING_DELAY_SEC,
        retry_delay: float = config.RETRY_DELAY_SEC,
        transfer_retries: int = config.TRANSFER_RETRIES,
        forward: bool = True,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.gateway = gateway
        self.gas_mode = gas_mode
        if gas_mode is GasMode.ONCE and shared_gas is None:
            shared_gas = SharedGasEstimate()
        self.shared_gas = shared_gas
        self.default_gas_limit = default_gas_limit
        self.max_fee_wei = max_fee_wei
        self.max_attempts = max_attempts
        self.over_ceiling_delay = over_ceiling_delay
        self.retry_delay = retry_delay
        self.transfer_retries = transfer_retries
        self.forward = forward

    @classmethod
    def from_config(cls, gateway: Any, forward: bool = True) -> "ClaimWorker":
        return cls(
            gateway,
            gas_mode=gas_mode_from_flags(config.ESTIMATE_GAS, config.ESTIMATE_ONCE),
            forward=forward,
        )

    async def run(self, account: Account) -> ClaimOutcome:
        """Always returns a terminal outcome; errors become ``FAILED``."""
        log = get_account_logger(logger, account.label)
        try:
            return await self._run(account)
        except ClaimerError as e:
            log.error(f"claim aborted: {e}")
            return ClaimOutcome(account.label, ClaimStatus.FAILED, reason=str(e))
        except Exception as e:
            log.exception(f"unexpected error: {e}")
            return ClaimOutcome(account.label, ClaimStatus.FAILED, reason=f"unexpected error: {e}")

    async def _run(self, account: Account) -> ClaimOutcome:
        log = get_account_logger(logger, account.label)
        claimable = await self.gateway.claimable_tokens(account.address)
        if claimable is None:
            raise ConfigurationOrDataError("claimable amount missing")
        if claimable <= 0:
            log.warning("nothing to claim, skipping")
            return ClaimOutcome(account.label, ClaimStatus.SKIPPED, reason="nothing to claim")

        estimate: Optional[GasEstimate] = None
        # hash of a submitted claim whose receipt is still unknown
        pending: Optional[str] = None
        submitted = False
        for attempt in range(1, self.max_attempts + 1):
            try:
                if pending is None:
                    if submitted and await self._landed(account):
                        log.info("claimable is 0, earlier claim landed")
                        return await self._claimed(account, None, claimable, attempt - 1)
                    gas_price = await self.gateway.gas_price()
                    estimate = await self._gas_limit(account, estimate)
                    log.info(
                        f"claim attempt {attempt}/{self.max_attempts}, "
                        f"gas limit {estimate.value} ({estimate.origin.value})"
                    )
                    submitted = True
                    pending = await self.gateway.submit_claim(account, gas_price=gas_price, gas_limit=estimate.value)
                else:
                    log.info(f"waiting again for tx {pending}")
                ok = await self.gateway.wait_for_receipt(pending)
            except TransientNetworkError as e:
                log.warning(f"network error on attempt {attempt}: {e}")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue

            tx_hash, pending = pending, None
            if ok:
                return await self._claimed(account, tx_hash, claimable, attempt)

            log.warning(f"claim failed, tx: {tx_hash}")
            estimate = await self._inflate(estimate)
            cost = estimate.value * gas_price
            if attempt == self.max_attempts:
                break
            if cost <= self.max_fee_wei:
                log.info(f"retrying with gas limit {estimate.value}")
            else:
                log.warning(
                    f"cost {Web3.from_wei(cost, 'ether')} ETH above ceiling, "
                    f"retrying in {self.over_ceiling_delay}s"
                )
                await asyncio.sleep(self.over_ceiling_delay)

        if submitted and await self._landed(account):
            log.info("claimable is 0, earlier claim landed")
            return await self._claimed(account, pending, claimable, self.max_attempts)
        log.error(f"claim failed after {self.max_attempts} attempts")
        return ClaimOutcome(
            account.label, ClaimStatus.FAILED, reason="claim attempts exhausted", attempts=self.max_attempts,
        )

    async def _landed(self, account: Account) -> bool:
        """True when a claim already sent has emptied the claimable amount."""
        log = get_account_logger(logger, account.label)
        try:
            remaining = await self.gateway.claimable_tokens(account.address)
        except TransientNetworkError as e:
            log.warning(f"claimable re-check failed: {e}")
            return False
        return remaining is not None and remaining <= 0

    async def _claimed(self, account: Account, tx_hash: Optional[str], amount: int, attempts: int) -> ClaimOutcome:
        log = get_account_logger(logger, account.label)
        log.info(f"claimed {format_amount(amount)} tokens, tx: {tx_hash}")
        transferred = None
        if self.forward and account.forward_to:
            transferred = await self._forward(account)
        return ClaimOutcome(
            account.label, ClaimStatus.SUCCESS, tx_hash=tx_hash, amount=amount,
            transferred=transferred, attempts=attempts,
        )

    async def _gas_limit(self, account: Account, previous: Optional[GasEstimate]) -> GasEstimate:
        """Picks the gas limit for the next attempt; never below ``previous``."""
        log = get_account_logger(logger, account.label)
        if self.gas_mode is GasMode.DISABLED:
            return previous or GasEstimate(self.default_gas_limit, GasOrigin.DEFAULT)

        try:
            if self.gas_mode is GasMode.ONCE:
                current = await self.shared_gas.get_or_measure(
                    lambda: self.gateway.estimate_claim_gas(account)
                )
            else:
                current = GasEstimate(int(await self.gateway.estimate_claim_gas(account)), GasOrigin.MEASURED)
        except TransactionRejected as e:
            log.warning(f"gas estimation reverted ({e}), using fallback limit")
            return previous or GasEstimate(self.default_gas_limit, GasOrigin.DEFAULT)

        if previous is not None and previous.value > current.value:
            return previous
        return current

    async def _inflate(self, estimate: GasEstimate) -> GasEstimate:
        inflated = estimate.inflated()
        if self.gas_mode is GasMode.ONCE:
            await self.shared_gas.raise_to(inflated)
        return inflated

    async def _forward(self, account: Account) -> bool:
        log = get_account_logger(logger, account.label)
        try:
            balance = await self.gateway.token_balance(account.address)
        except ClaimerError as e:
            log.error(f"balance check failed: {e}")
            return False
        if balance <= 0:
            log.warning("token balance is 0, nothing to transfer")
            return False

        for attempt in range(1, self.transfer_retries + 1):
            try:
                gas_price = await self.gateway.gas_price()
                tx_hash = await self.gateway.submit_transfer(
                    account, account.forward_to, balance, gas_price=gas_price
                )
                if await self.gateway.wait_for_receipt(tx_hash):
                    log.info(
                        f"transferred {format_amount(balance)} tokens, tx: {tx_hash}"
                    )
                    return True
                log.warning(f"transfer reverted, tx: {tx_hash}")
            except ClaimerError as e:
                log.warning(f"transfer attempt {attempt} failed: {e}")
            if attempt < self.transfer_retries:
                await asyncio.sleep(self.retry_delay)

        log.error(f"transfer failed after {self.transfer_retries} attempts")
        return False
