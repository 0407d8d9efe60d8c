# main.py
import asyncio
import contextlib
import sys
from concurrent.futures import ThreadPoolExecutor

import websockets

import config
from claim_transfer import ClaimWorker
from gateway import LedgerGateway
from logger import get_logger
from orchestrator import ClaimOrchestrator
from utils import load_accounts, get_w3_with_retry
from watcher import LivenessWatcher

logger = get_logger("Main", config.LOG_LEVEL)

ASCII_BANNER = r"""
     _    ____  ____     ____ _        _    ___ __  __ _____ ____
    / \  |  _ \| __ )   / ___| |      / \  |_ _|  \/  | ____|  _ \
   / _ \ | |_) |  _ \  | |   | |     / _ \  | || |\/| |  _| | |_) |
  / ___ \|  _ <| |_) | | |___| |___ / ___ \ | || |  | | |___|  _ <
 /_/   \_\_| \_\____/   \____|_____/_/   \_\___|_|  |_|_____|_| \_\
"""


def print_banner() -> None:
    print(ASCII_BANNER)


def menu() -> None:
    print("Select an action:")
    print("1. Start claim and transfer")
    print("2. Start claim only")
    print("3. Check RPC connection")
    print("4. Exit")


async def check_rpc() -> None:
    """Checks availability of RPC nodes and the block watcher endpoint"""
    print("Checking RPC connectivity...\n")
    for rpc_url in config.RPC_LIST:
        try:
            w3 = get_w3_with_retry(rpc_url, config.HTTP_PROXY)
            status = "OK" if w3 and w3.eth.chain_id == config.CHAIN_ID else "FAIL"
            chain_id = w3.eth.chain_id if w3 else "N/A"
            print(f"{rpc_url}: {status} (chain_id: {chain_id})")
        except Exception as e:
            print(f"{rpc_url}: ERROR ({e})")
    try:
        async with websockets.connect(config.WSS_RPC, open_timeout=10) as ws:
            await ws.send('{"jsonrpc":"2.0","id":1,"method":"eth_blockNumber","params":[]}')
            reply = await asyncio.wait_for(ws.recv(), 10)
            print(f"{config.WSS_RPC}: OK ({reply})")
    except Exception as e:
        print(f"{config.WSS_RPC}: ERROR ({e})")
    print()


async def run_claimer(forward: bool = True) -> None:
    accounts = load_accounts(config.EXCEL_PATH)
    if not accounts:
        logger.warning("No valid accounts loaded, nothing to do")
        return
    logger.info(f"Loaded {len(accounts)} accounts for {'claim and transfer' if forward else 'claim only'}")

    # ThreadPoolExecutor runs the blocking web3 calls
    executor = ThreadPoolExecutor(max_workers=max(4, len(accounts) * 2))
    try:
        gateway = LedgerGateway.from_config(executor)
        worker = ClaimWorker.from_config(gateway, forward=forward)
        orchestrator = ClaimOrchestrator(accounts, gateway, worker)
        watcher = LivenessWatcher(
            config.WSS_RPC, orchestrator.on_open, orchestrator.on_block, connect=websockets.connect,
        )

        watch_task = asyncio.create_task(watcher.run())
        try:
            summary = await orchestrator.wait_finished()
        finally:
            await watcher.stop()
            watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watch_task
    finally:
        executor.shutdown(wait=False)

    print(
        f"\nTransfers ok: {summary['transfers_succeeded']}\n"
        f"Claims ok: {summary['claims_succeeded']}\n"
        f"Accounts done: {summary['accounts_completed']}/{summary['total_accounts']}\n"
    )
    sys.exit(config.EXIT_CODE)


async def main_loop() -> None:
    print_banner()
    while True:
        try:
            menu()
            choice = input("Enter action number: ").strip()
            if choice == "1":
                logger.info("Starting claim and transfer process...")
                await run_claimer(forward=True)
            elif choice == "2":
                logger.info("Starting claim only process...")
                await run_claimer(forward=False)
            elif choice == "3":
                logger.info("Checking RPC connectivity...")
                await check_rpc()
            elif choice == "4":
                logger.info("Exiting...")
                sys.exit(0)
            else:
                print("Invalid input, please try again.\n")
        except Exception as e:
            logger.error(f"Error in main loop: {e}")
            print("An error occurred, please restart the script.\n")


if __name__ == "__main__":
    asyncio.run(main_loop())
