# watcher.py
"""
Block-height watcher over a WebSocket JSON-RPC endpoint.

- subscribes to ``newHeads`` and reads the current block on every connect
- pings every ``keep_alive_interval``; a missing pong aborts the socket
- any close or error tears the connection down and reconnects with a
  doubling, capped delay; nothing from the old connection is reused
"""

import asyncio
import contextlib
import json
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets

import config
from errors import ClaimerError, LivenessLost
from logger import get_logger

logger = get_logger("Watcher", config.LOG_LEVEL)

SUBSCRIBE_ID = 1
BLOCK_NUMBER_ID = 2

HeightHandler = Callable[[int], Awaitable[None]]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    DEGRADED = "degraded"  # ping sent, pong not yet received
    CLOSED = "closed"


def parse_quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise ValueError(f"not a quantity: {value!r}")


class LivenessWatcher:
    def __init__(
        self,
        url: str,
        on_open: HeightHandler,
        on_block: HeightHandler,
        keep_alive_interval: float = config.KEEP_ALIVE_CHECK_INTERVAL,
        expected_pong_back: float = config.EXPECTED_PONG_BACK,
        reconnect_delay: float = config.RECONNECT_DELAY_SEC,
        reconnect_max_delay: float = config.RECONNECT_MAX_DELAY_SEC,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.url = url
        self._on_open = on_open
        self._on_block = on_block
        self.keep_alive_interval = keep_alive_interval
        self.expected_pong_back = expected_pong_back
        self.reconnect_delay = reconnect_delay
        self.reconnect_max_delay = reconnect_max_delay
        self._connect = connect

        self.state = ConnectionState.CLOSED
        self.reconnects = 0
        self.subscription_id: Optional[str] = None
        self._running = False
        self._failures = 0
        self._ws = None
        self._keep_alive: Optional[asyncio.Task] = None

    async def run(self) -> None:
        """Keeps a connection alive until ``stop`` is called."""
        self._running = True
        while self._running:
            try:
                await self._session()
                logger.warning("Connection closed by remote")
            except (websockets.WebSocketException, OSError, asyncio.TimeoutError, ClaimerError) as e:
                logger.warning(f"Connection lost: {e!r}")
            except Exception as e:
                logger.exception(f"Unexpected watcher error: {e!r}")
            if not self._running:
                break
            delay = self.next_delay()
            logger.warning(f"Reconnecting in {delay:.1f}s...")
            await asyncio.sleep(delay)
            self.reconnects += 1
        self.state = ConnectionState.CLOSED

    async def stop(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()

    def next_delay(self) -> float:
        delay = min(self.reconnect_delay * (2 ** self._failures), self.reconnect_max_delay)
        self._failures += 1
        return delay

    async def _session(self) -> None:
        self.state = ConnectionState.CONNECTING
        try:
            async with self._connect(self.url, ping_interval=None) as ws:
                self._ws = ws
                self.subscription_id = None
                self.state = ConnectionState.OPEN
                self._failures = 0
                logger.info(f"Connected to {self.url}")
                self._keep_alive = asyncio.create_task(self._keep_alive_loop(ws))

                await ws.send(json.dumps({
                    "jsonrpc": "2.0", "id": SUBSCRIBE_ID, "method": "eth_subscribe", "params": ["newHeads"],
                }))
                await ws.send(json.dumps({
                    "jsonrpc": "2.0", "id": BLOCK_NUMBER_ID, "method": "eth_blockNumber", "params": [],
                }))
                async for message in ws:
                    await self._handle_message(message)
        finally:
            await self._teardown()

    async def _teardown(self) -> None:
        task, self._keep_alive = self._keep_alive, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._ws = None
        self.state = ConnectionState.CLOSED

    async def _keep_alive_loop(self, ws) -> None:
        while True:
            await asyncio.sleep(self.keep_alive_interval)
            try:
                pong_waiter = await ws.ping()
                self.state = ConnectionState.DEGRADED
                await asyncio.wait_for(pong_waiter, self.expected_pong_back)
            except asyncio.TimeoutError:
                logger.warning(f"No pong within {self.expected_pong_back}s, terminating connection")
                ws.transport.abort()
                return
            except websockets.ConnectionClosed:
                return
            self.state = ConnectionState.OPEN

    async def _handle_message(self, message) -> None:
        try:
            payload = json.loads(message)
        except ValueError as e:
            logger.warning(f"Ignoring malformed message: {e}")
            return
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring unexpected message: {payload!r}")
            return

        if payload.get("method") == "eth_subscription":
            head = (payload.get("params") or {}).get("result") or {}
            try:
                height = parse_quantity(head.get("number"))
            except ValueError as e:
                logger.warning(f"Ignoring head without block number: {e}")
                return
            await self._dispatch(self._on_block, height)
            return

        if "error" in payload:
            raise LivenessLost(f"RPC error for request {payload.get('id')}: {payload['error']}")

        if payload.get("id") == SUBSCRIBE_ID:
            self.subscription_id = payload.get("result")
            logger.debug(f"Subscribed to new heads: {self.subscription_id}")
        elif payload.get("id") == BLOCK_NUMBER_ID:
            try:
                height = parse_quantity(payload.get("result"))
            except ValueError as e:
                logger.warning(f"Ignoring block number reply: {e}")
                return
            await self._dispatch(self._on_open, height)

    async def _dispatch(self, handler: HeightHandler, height: int) -> None:
        try:
            await handler(height)
        except ClaimerError as e:
            logger.warning(f"Block {height}: handler failed: {e}")
        except Exception as e:
            logger.exception(f"Block {height}: unexpected handler error: {e}")
