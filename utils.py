# utils.py
import json
from dataclasses import dataclass, field
from typing import List, Any, Optional

import pandas as pd
from eth_account import Account as EthAccount
from requests import Session
from web3 import Web3, HTTPProvider

import config
from logger import get_logger

logger = get_logger("Utils", config.LOG_LEVEL)


def shorten_address(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}"


def validate_private_key(private_key: str) -> None:
    if not isinstance(private_key, str):
        raise ValueError("Private key must be a string")
    if not private_key.startswith("0x") or len(private_key) != 66:
        raise ValueError("Invalid private key format: must be 0x + 64 hex chars")
    if not all(c in "0123456789abcdefABCDEF" for c in private_key[2:]):
        raise ValueError("Private key contains non-hex characters")


@dataclass(frozen=True)
class Account:
    """A claiming account. Only ``label`` (short address) is ever logged."""
    private_key: str = field(repr=False)
    address: str
    forward_to: Optional[str] = None

    @property
    def label(self) -> str:
        return shorten_address(self.address)

    @classmethod
    def from_key(cls, private_key: str, forward_to: Optional[str] = None) -> "Account":
        validate_private_key(private_key)
        address = EthAccount.from_key(private_key).address
        if forward_to is not None:
            forward_to = Web3.to_checksum_address(forward_to)
        return cls(private_key=private_key, address=address, forward_to=forward_to)


def _normalize_key(pk: Any) -> Any:
    if isinstance(pk, (int, float)):
        pk = str(pk)
    if not isinstance(pk, str):
        return pk
    pk = pk.strip()
    # allow keys both '0x...' and without 0x
    if not pk.startswith("0x"):
        pk = "0x" + pk
    return pk


def load_accounts(excel_path: str) -> List[Account]:
    """Loads accounts from Excel file. Validates row-by-row and returns only valid entries.
    Expected columns: private_key, optional cex_deposit_address (forwarding destination).
    """
    df = pd.read_excel(excel_path, engine="openpyxl")
    df.columns = df.columns.str.lower().str.strip()
    if "private_key" not in df.columns:
        raise ValueError("Excel must contain column: private_key")

    if "cex_deposit_address" in df.columns:
        df["cex_deposit_address"] = df["cex_deposit_address"].astype(object).where(
            pd.notnull(df["cex_deposit_address"]), None
        )

    accounts = []
    for idx, row in df.iterrows():
        pk = _normalize_key(row["private_key"])
        deposit = row.get("cex_deposit_address", None)
        if isinstance(deposit, str):
            deposit = deposit.strip() or None

        if deposit is not None and (not isinstance(deposit, str) or not deposit.startswith("0x") or len(deposit) != 42):
            logger.error(f"Row {idx+2}: invalid cex_deposit_address ({deposit}), skipping")
            continue

        try:
            accounts.append(Account.from_key(pk, deposit))
        except ValueError as e:
            logger.error(f"Row {idx+2}: {e}, skipping")

    logger.info(f"Loaded {len(accounts)} valid accounts from {excel_path}")
    return accounts


def load_abi(path: str) -> Any:
    """Loads contract ABI from JSON file."""
    with open(path) as f:
        return json.load(f)


def get_w3(rpc_url: str, proxy: Optional[str] = None) -> Web3:
    """Returns Web3 connection to RPC (with optional HTTP proxy session)."""
    if proxy:
        session = Session()
        session.proxies = {'http': proxy, 'https': proxy}
        provider = HTTPProvider(rpc_url, request_kwargs={'timeout': 30}, session=session)
    else:
        provider = HTTPProvider(rpc_url, request_kwargs={'timeout': 30})
    return Web3(provider)


def get_w3_with_retry(rpc_url: str, proxy: Optional[str] = None) -> Optional[Web3]:
    """Returns Web3 connection with retries and verifies chain_id matches config.CHAIN_ID."""
    for attempt in range(1, config.RPC_TRY + 1):
        try:
            w3 = get_w3(rpc_url, proxy)
            chain_id = w3.eth.chain_id
            if chain_id == config.CHAIN_ID:
                return w3
            logger.warning(f"{rpc_url}: unexpected chain_id {chain_id} (expected {config.CHAIN_ID})")
            return None
        except Exception as e:
            logger.warning(f"Attempt {attempt}/{config.RPC_TRY} failed for {rpc_url}: {e}")
    logger.error(f"All attempts failed for {rpc_url}")
    return None
