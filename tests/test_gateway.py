# tests/test_gateway.py
import asyncio
from types import SimpleNamespace

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from web3.exceptions import ContractLogicError, TimeExhausted

from errors import TransientNetworkError, TransactionRejected
from gateway import LedgerGateway, _sign_and_send

DISTRIBUTOR = "0x67a24CE4321aB3aF51c2D0a4801c3E111D88C9d9"
TOKEN = "0x912CE59144191C1204E64559FE8253a0e49E6548"


class FakeEth:
    def __init__(self, block_number=None, error=None):
        self._block_number = block_number
        self._error = error
        self.receipt_waits = 0

    @property
    def block_number(self):
        if self._error is not None:
            raise self._error
        return self._block_number

    def wait_for_transaction_receipt(self, tx_hash, timeout):
        self.receipt_waits += 1
        if self._error is not None:
            raise self._error
        return {"status": 1}


def client(uri, **kwargs):
    return SimpleNamespace(eth=FakeEth(**kwargs), provider=SimpleNamespace(endpoint_uri=uri))


def make_gateway(*clients):
    return LedgerGateway(list(clients), [], [], distributor_address=DISTRIBUTOR, token_address=TOKEN)


def test_falls_back_to_next_rpc():
    gateway = make_gateway(
        client("http://a", error=RequestsConnectionError("refused")),
        client("http://b", block_number=42),
    )
    assert asyncio.run(gateway.block_number()) == 42


def test_all_rpcs_failing_is_transient():
    gateway = make_gateway(
        client("http://a", error=RequestsConnectionError("refused")),
        client("http://b", error=OSError("reset")),
    )
    with pytest.raises(TransientNetworkError):
        asyncio.run(gateway.block_number())


def test_contract_revert_is_rejected_without_fallback():
    second = client("http://b", block_number=1)
    gateway = make_gateway(client("http://a", error=ContractLogicError("execution reverted")), second)
    with pytest.raises(TransactionRejected):
        asyncio.run(gateway.block_number())


def test_receipt_timeout_is_transient_and_not_repeated():
    first = client("http://a", error=TimeExhausted("not mined"))
    second = client("http://b")
    gateway = make_gateway(first, second)
    with pytest.raises(TransientNetworkError):
        asyncio.run(gateway.wait_for_receipt("0xabc"))
    assert second.eth.receipt_waits == 0


def test_receipt_status():
    gateway = make_gateway(client("http://a"))
    assert asyncio.run(gateway.wait_for_receipt("0xabc")) is True


def _signing_client(send_error=None):
    def send_raw_transaction(raw):
        if send_error is not None:
            raise send_error
        return b"\x11" * 32

    signed = SimpleNamespace(raw_transaction=b"\x01", hash=b"\xab" * 32)
    eth = SimpleNamespace(
        account=SimpleNamespace(sign_transaction=lambda tx, key: signed),
        send_raw_transaction=send_raw_transaction,
    )
    return SimpleNamespace(eth=eth, provider=SimpleNamespace(endpoint_uri="http://a"))


def test_rebroadcast_of_known_tx_returns_its_hash():
    account = SimpleNamespace(private_key="0x" + "01" * 32)
    w3 = _signing_client(ValueError({"code": -32000, "message": "already known"}))
    assert _sign_and_send(w3, account, {}) == "0x" + "ab" * 32


def test_other_send_errors_propagate():
    account = SimpleNamespace(private_key="0x" + "01" * 32)
    w3 = _signing_client(ValueError("nonce too low"))
    with pytest.raises(ValueError):
        _sign_and_send(w3, account, {})
    assert _sign_and_send(_signing_client(), account, {}) == "0x" + "11" * 32
