# tests/test_main.py
import asyncio

import pytest

import config
import main
from fakes import FakeGateway, FakeSocket, block_number_reply, make_account, make_connect, new_head


def test_claim_run_gates_on_block_height_and_exits_with_summary(monkeypatch, capsys):
    accounts = [make_account(1), make_account(2), make_account(3)]
    gateway = FakeGateway(claimable={accounts[2].address: 10 ** 18}, start_block=100)
    socket = FakeSocket([block_number_reply(95), new_head(101)])

    async def unreachable():
        pass

    connect = make_connect([socket], unreachable)
    monkeypatch.setattr(main, "load_accounts", lambda path: accounts)
    monkeypatch.setattr(main.LedgerGateway, "from_config", classmethod(lambda cls, executor=None: gateway))
    monkeypatch.setattr(main.websockets, "connect", connect)

    with pytest.raises(SystemExit) as exc:
        asyncio.run(main.run_claimer(forward=True))

    assert exc.value.code == config.EXIT_CODE
    out = capsys.readouterr().out
    assert "Transfers ok: 0" in out
    assert "Claims ok: 1" in out
    assert "Accounts done: 3/3" in out
    assert gateway.start_block_reads == 1
    assert len(gateway.claims) == 1
    assert socket.closed
    assert connect.calls == [config.WSS_RPC]


def test_claim_run_without_accounts_returns(monkeypatch):
    monkeypatch.setattr(main, "load_accounts", lambda path: [])
    assert asyncio.run(main.run_claimer()) is None
