"""
Solana JSON-RPC over aiohttp.

HTTP calls share one session, one lock and a 100ms minimum spacing.
logs_subscribe() opens a websocket logsSubscribe for one program and
yields LogNotification objects until the server closes the stream.

Uses raw JSON-RPC (no solana-py dependency).
"""
import asyncio
import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator

import aiohttp

from raydium.state import TokenAmount

logger = logging.getLogger("ray_rpc")

MIN_RPC_INTERVAL = 0.1  # seconds between HTTP calls


class RpcError(Exception):
    """JSON-RPC call failed or returned an error object."""


class TransactionNotFound(RpcError):
    pass


class AccountNotFound(RpcError):
    pass


@dataclass(frozen=True)
class LogNotification:
    signature: str
    logs: list
    err: object = None


class SolanaRpc:
    def __init__(self, http_url: str, wss_url: str, timeout: float = 30.0):
        self.http_url = http_url
        self.wss_url = wss_url
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None
        self._lock = asyncio.Lock()
        self._last_call: float = 0.0
        self._request_id = 0

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _call(self, method: str, params: list):
        await self._ensure_session()
        async with self._lock:
            wait = MIN_RPC_INTERVAL - (time.time() - self._last_call)
            if wait > 0:
                await asyncio.sleep(wait)

            self._request_id += 1
            try:
                async with self._session.post(
                    self.http_url,
                    json={
                        "jsonrpc": "2.0",
                        "id": self._request_id,
                        "method": method,
                        "params": params,
                    },
                ) as resp:
                    self._last_call = time.time()
                    if resp.status != 200:
                        raise RpcError(f"{method}: HTTP {resp.status}")
                    data = await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
                raise RpcError(f"{method}: {e}") from e

        if "error" in data:
            raise RpcError(f"{method}: {data['error']}")
        return data.get("result")

    # ── Transactions ─────────────────────────────────────────

    async def get_transaction(self, signature: str) -> dict:
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if result is None:
            raise TransactionNotFound(f"transaction {signature[:16]}... not found")
        return result

    # ── Accounts ─────────────────────────────────────────────

    async def get_account_data(self, address: str) -> bytes:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": "confirmed"}],
        )
        value = (result or {}).get("value")
        if value is None:
            raise AccountNotFound(f"account {address[:8]}... not found")
        data = value.get("data") or []
        if not data:
            raise RpcError(f"account {address[:8]}... has no data")
        return base64.b64decode(data[0])

    async def get_token_account_balance(self, account: str) -> TokenAmount:
        result = await self._call(
            "getTokenAccountBalance", [account, {"commitment": "confirmed"}]
        )
        return self._token_amount(result, account)

    async def get_token_supply(self, mint: str) -> TokenAmount:
        result = await self._call("getTokenSupply", [mint, {"commitment": "confirmed"}])
        return self._token_amount(result, mint)

    async def get_token_largest_accounts(self, mint: str) -> list[tuple[str, int]]:
        """Largest token accounts of a mint as (address, raw amount), biggest first."""
        result = await self._call(
            "getTokenLargestAccounts", [mint, {"commitment": "confirmed"}]
        )
        value = (result or {}).get("value") or []
        return [(entry["address"], int(entry["amount"])) for entry in value]

    async def get_token_account_owners(self, accounts: list[str]) -> dict[str, str]:
        """Owner wallet of each token account (missing accounts are omitted)."""
        if not accounts:
            return {}
        result = await self._call(
            "getMultipleAccounts",
            [accounts, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        )
        owners = {}
        for address, value in zip(accounts, (result or {}).get("value") or []):
            if not value:
                continue
            data = value.get("data")
            if not isinstance(data, dict):
                continue
            owner = (data.get("parsed") or {}).get("info", {}).get("owner")
            if owner:
                owners[address] = owner
        return owners

    @staticmethod
    def _token_amount(result, address: str) -> TokenAmount:
        value = (result or {}).get("value")
        if value is None:
            raise AccountNotFound(f"token account {address[:8]}... not found")
        return TokenAmount(amount=int(value["amount"]), decimals=int(value["decimals"]))

    # ── Subscriptions ────────────────────────────────────────

    async def logs_subscribe(
        self, program_id: str, commitment: str = "processed"
    ) -> AsyncIterator[LogNotification]:
        """
        Yield log notifications for transactions mentioning program_id.
        Returns when the server closes the socket.
        """
        await self._ensure_session()
        async with self._session.ws_connect(
            self.wss_url,
            heartbeat=30,
            max_msg_size=0,  # no limit
        ) as ws:
            await ws.send_json({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "logsSubscribe",
                "params": [
                    {"mentions": [program_id]},
                    {"commitment": commitment},
                ],
            })

            resp = await ws.receive_json(timeout=10)
            sub_id = resp.get("result")
            if sub_id is None:
                raise RpcError(f"logsSubscribe failed: {resp.get('error', {})}")
            logger.info(f"logsSubscribe active (id={sub_id}, commitment={commitment})")

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        logger.debug(f"Message parse error: {e}")
                        continue
                    note = self._to_notification(data)
                    if note is not None:
                        yield note
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    logger.warning("Solana WebSocket closed")
                    break

    @staticmethod
    def _to_notification(data: dict) -> LogNotification | None:
        if data.get("method") != "logsNotification":
            return None
        value = data.get("params", {}).get("result", {}).get("value", {})
        signature = value.get("signature")
        if not signature:
            return None
        return LogNotification(
            signature=signature,
            logs=value.get("logs") or [],
            err=value.get("err"),
        )
