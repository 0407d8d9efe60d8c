# gateway.py
import asyncio
from concurrent.futures import Executor
from typing import Any, Callable, List, Optional

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

import config
from errors import TransientNetworkError, TransactionRejected
from logger import get_logger
from utils import Account, load_abi, get_w3_with_retry

logger = get_logger("Gateway", config.LOG_LEVEL)


class LedgerGateway:
    """Reads and writes against the distributor and token contracts.

    Every call runs the blocking web3 request in ``executor`` and falls back
    to the next RPC client when one fails.
    """

    def __init__(
        self,
        clients: List[Web3],
        distributor_abi: Any,
        token_abi: Any,
        distributor_address: str = config.DISTRIBUTOR_ADDRESS,
        token_address: str = config.TOKEN_ADDRESS,
        executor: Optional[Executor] = None,
        tx_timeout: int = config.TX_TIMEOUT,
        transfer_gas_multiplier: float = config.TRANSFER_GAS_MULTIPLIER,
    ):
        self._clients = list(clients)
        self._distributor_abi = distributor_abi
        self._token_abi = token_abi
        self._distributor_address = Web3.to_checksum_address(distributor_address)
        self._token_address = Web3.to_checksum_address(token_address)
        self._executor = executor
        self.tx_timeout = tx_timeout
        self.transfer_gas_multiplier = transfer_gas_multiplier

    @classmethod
    def from_config(cls, executor: Optional[Executor] = None) -> "LedgerGateway":
        clients = []
        for rpc in config.RPC_LIST:
            w3 = get_w3_with_retry(rpc, config.HTTP_PROXY)
            if w3 is None:
                logger.warning(f"RPC {rpc} unreachable, skipping")
                continue
            clients.append(w3)
        if not clients:
            raise TransientNetworkError("No RPC endpoint reachable")
        return cls(
            clients,
            load_abi(config.DISTRIBUTOR_ABI_PATH),
            load_abi(config.ERC20_ABI_PATH),
            executor=executor,
        )

    async def _call(self, label: str, fn: Callable[[Web3], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._call_sync, label, fn)

    def _call_sync(self, label: str, fn: Callable[[Web3], Any]) -> Any:
        last_error = None
        for w3 in self._clients:
            try:
                return fn(w3)
            except ContractLogicError as e:
                raise TransactionRejected(f"{label}: {e}") from e
            except TimeExhausted as e:
                raise TransientNetworkError(f"{label}: {e}") from e
            except (RequestException, Web3Exception, ValueError, OSError) as e:
                logger.warning(f"{label} failed on {_endpoint(w3)}: {e}")
                last_error = e
        raise TransientNetworkError(f"{label} failed on all RPCs: {last_error}")

    def _distributor(self, w3: Web3):
        return w3.eth.contract(address=self._distributor_address, abi=self._distributor_abi)

    def _token(self, w3: Web3):
        return w3.eth.contract(address=self._token_address, abi=self._token_abi)

    async def block_number(self) -> int:
        return int(await self._call("eth_blockNumber", lambda w3: w3.eth.block_number))

    async def claim_period_start(self) -> int:
        return int(await self._call(
            "claimPeriodStart", lambda w3: self._distributor(w3).functions.claimPeriodStart().call()
        ))

    async def claimable_tokens(self, address: str) -> int:
        return int(await self._call(
            "claimableTokens", lambda w3: self._distributor(w3).functions.claimableTokens(address).call()
        ))

    async def token_balance(self, address: str) -> int:
        return int(await self._call(
            "balanceOf", lambda w3: self._token(w3).functions.balanceOf(address).call()
        ))

    async def gas_price(self) -> int:
        return int(await self._call("eth_gasPrice", lambda w3: w3.eth.gas_price))

    async def estimate_claim_gas(self, account: Account) -> int:
        return int(await self._call(
            "estimateGas(claim)",
            lambda w3: self._distributor(w3).functions.claim().estimate_gas({"from": account.address}),
        ))

    async def submit_claim(self, account: Account, *, gas_price: int, gas_limit: int) -> str:
        def send(w3: Web3) -> str:
            tx = self._distributor(w3).functions.claim().build_transaction({
                "from": account.address,
                "nonce": w3.eth.get_transaction_count(account.address),
                "gas": gas_limit,
                "gasPrice": gas_price,
                "chainId": w3.eth.chain_id,
            })
            return _sign_and_send(w3, account, tx)

        return await self._call("claim", send)

    async def submit_transfer(self, account: Account, to: str, amount: int, *, gas_price: int) -> str:
        def send(w3: Web3) -> str:
            transfer = self._token(w3).functions.transfer(to, amount)
            gas_limit = int(transfer.estimate_gas({"from": account.address}) * self.transfer_gas_multiplier)
            tx = transfer.build_transaction({
                "from": account.address,
                "nonce": w3.eth.get_transaction_count(account.address),
                "gas": gas_limit,
                "gasPrice": gas_price,
                "chainId": w3.eth.chain_id,
            })
            return _sign_and_send(w3, account, tx)

        return await self._call("transfer", send)

    async def wait_for_receipt(self, tx_hash: str) -> bool:
        def wait(w3: Web3) -> bool:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
            return receipt["status"] == 1

        return await self._call("waitForTransaction", wait)


def _sign_and_send(w3: Web3, account: Account, tx: dict) -> str:
    signed = w3.eth.account.sign_transaction(tx, account.private_key)
    try:
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    except (Web3Exception, ValueError) as e:
        # same signed tx already broadcast through another RPC
        if "already known" in str(e).lower():
            logger.info(f"Transaction {Web3.to_hex(signed.hash)} already known to {_endpoint(w3)}")
            return Web3.to_hex(signed.hash)
        raise
    return Web3.to_hex(tx_hash)


def _endpoint(w3: Any) -> str:
    return getattr(w3.provider, "endpoint_uri", "unknown RPC")
