# tests/test_utils.py
import pandas as pd
import pytest
from eth_account import Account as EthAccount

from utils import Account, load_accounts, shorten_address, validate_private_key

KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
DEST = "0x" + "ab" * 20


def test_shorten_address():
    assert shorten_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"


def test_validate_private_key():
    validate_private_key(KEY)
    for bad in (KEY[2:], KEY[:-1], "0x" + "zz" * 32, 123):
        with pytest.raises(ValueError):
            validate_private_key(bad)


def test_account_hides_key():
    account = Account.from_key(KEY)
    assert account.address == EthAccount.from_key(KEY).address
    assert KEY not in repr(account)
    assert KEY[2:10] not in account.label
    assert account.forward_to is None


def test_load_accounts_skips_invalid_rows(tmp_path):
    path = tmp_path / "wallets.xlsx"
    pd.DataFrame({
        "Private_Key ": [KEY, KEY[2:], "0x1234", KEY],
        "cex_deposit_address": [DEST, None, DEST, "0xnope"],
    }).to_excel(path, index=False)

    accounts = load_accounts(str(path))
    assert len(accounts) == 2
    assert accounts[0].forward_to.lower() == DEST
    assert accounts[1].forward_to is None


def test_load_accounts_requires_key_column(tmp_path):
    path = tmp_path / "wallets.xlsx"
    pd.DataFrame({"address": [DEST]}).to_excel(path, index=False)
    with pytest.raises(ValueError):
        load_accounts(str(path))
