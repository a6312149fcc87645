"""
Raydium AMM V4 new-pool listener.

Flow per log notification:
  1. Skip failed txs and logs without the "init_pc_amount" marker
  2. Skip signatures already dispatched (bounded LRU)
  3. Fetch the tx (jsonParsed, confirmed) with exponential backoff,
     pausing while too many positions are still open
  4. Assemble the pool descriptor → trust pipeline
  5. Accepted: decode the market, derive its authority, publish a buy

Events are handled one at a time in delivery order. Nothing that goes
wrong with a single candidate stops the loop.
"""
import asyncio
import logging
from collections import Counter

import aiohttp

from raydium.assembler import assemble_pool, build_pool_keys
from raydium.constants import INIT_LOG_MARKER, RAYDIUM_AMM_V4, WSOL
from raydium.layouts import decode_market_state, derive_authority
from raydium.retry import Backoff, RetriesExhausted
from raydium.rpc import LogNotification, RpcError
from raydium.state import BuyCommand, PoolDescriptor, SeenSignatures

logger = logging.getLogger("ray_listener")

FETCH_ERRORS = (RpcError, aiohttp.ClientError, asyncio.TimeoutError)


class RaydiumListener:
    def __init__(
        self,
        rpc,
        pipeline,
        sender,
        positions,
        program_id: str = RAYDIUM_AMM_V4,
        native_mint: str = WSOL,
        trade_size_sol: float = 0.005,
        seen: SeenSignatures | None = None,
        max_retries: int = 3,
        initial_retry_delay: float = 2.0,
        max_open_positions: int = 3,
        throttle_cooldown: float = 600.0,
        sleep=asyncio.sleep,
    ):
        self.rpc = rpc
        self.pipeline = pipeline
        self.sender = sender
        self.positions = positions
        self.program_id = program_id
        self.native_mint = native_mint
        self.trade_size_sol = trade_size_sol
        # An empty cache has len() == 0, so test against None
        self.seen = seen if seen is not None else SeenSignatures()
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.max_open_positions = max_open_positions
        self.throttle_cooldown = throttle_cooldown
        self._sleep = sleep
        # Stats
        self.candidates: int = 0
        self.duplicates: int = 0
        self.dropped: int = 0
        self.not_pools: int = 0
        self.bought: int = 0
        self.reject_reasons: Counter = Counter()

    async def run(self, notifications) -> None:
        """Consume notifications until the stream ends."""
        logger.info(f"Listening for Raydium pool creation ({self.program_id[:8]}..)")
        async for note in notifications:
            try:
                await self.handle_notification(note)
            except Exception as e:
                logger.error(f"Candidate {note.signature[:16]}... failed: {e}")
                self.dropped += 1
        logger.info("Log stream ended")

    async def handle_notification(self, note: LogNotification) -> bool:
        """Returns True if the notification was dispatched for processing."""
        if note.err is not None:
            return False
        if not any(INIT_LOG_MARKER in line for line in note.logs):
            return False
        if not self.seen.add(note.signature):
            self.duplicates += 1
            logger.debug(f"Duplicate delivery {note.signature[:16]}...")
            return False

        self.candidates += 1
        logger.info(f"[init] pool creation in {note.signature[:16]}...")
        await self.process_signature(note.signature)
        return True

    async def process_signature(self, signature: str) -> None:
        tx = await self._fetch_transaction(signature)
        if tx is None:
            return

        pool = assemble_pool(tx, self.program_id, self.native_mint)
        if pool is None:
            self.not_pools += 1
            logger.debug(f"No pool info in {signature[:16]}...")
            return

        logger.info(
            f"[pool] {pool.base_mint[:8]}.. / {pool.quote_mint[:8]}.. "
            f"amm={pool.id[:8]}.. lp_reserve={pool.lp_reserve}"
        )

        verdict = await self.pipeline.evaluate(pool)
        if not verdict.accepted:
            self.reject_reasons[verdict.kind.value] += 1
            logger.info(
                f"[reject] {pool.base_mint[:8]}... {verdict.kind.value}: {verdict.reason}"
            )
            return

        await self._buy(pool)

    async def _fetch_transaction(self, signature: str) -> dict | None:
        backoff = Backoff(
            max_retries=self.max_retries,
            initial_delay=self.initial_retry_delay,
            retry_on=FETCH_ERRORS,
            sleep=self._sleep,
        )
        try:
            return await backoff.run(
                lambda: self.rpc.get_transaction(signature),
                before_attempt=self._wait_for_capacity,
            )
        except RetriesExhausted as e:
            self.dropped += 1
            logger.warning(f"Failed to get transaction {signature[:16]}...: {e}")
            return None

    async def _wait_for_capacity(self) -> None:
        """Hold off while more than max_open_positions trades are unsold."""
        while True:
            open_count = await self.positions.count()
            if open_count <= self.max_open_positions:
                return
            logger.info(
                f"{open_count} positions still open (> {self.max_open_positions}), "
                f"pausing {self.throttle_cooldown:g}s"
            )
            await self._sleep(self.throttle_cooldown)

    async def _buy(self, pool: PoolDescriptor) -> None:
        market = decode_market_state(await self.rpc.get_account_data(pool.market_id))
        market_authority = derive_authority(pool.market_program_id, pool.market_id)
        keys = build_pool_keys(pool, market, market_authority)

        command = BuyCommand(
            input_token=pool.quote_mint,
            output_token=pool.base_mint,
            input_amount=self.trade_size_sol,
            pool_keys=keys,
            lp_decimals=pool.lp_decimals,
        )
        await self.sender.send_buy(command)
        self.bought += 1
        logger.info(f"[buy] {pool.base_mint} for {self.trade_size_sol} SOL")

    def get_stats(self) -> dict:
        return {
            "candidates": self.candidates,
            "duplicates": self.duplicates,
            "dropped": self.dropped,
            "not_pools": self.not_pools,
            "rejected": sum(self.reject_reasons.values()),
            "bought": self.bought,
            "reject_reasons": dict(self.reject_reasons),
            "seen": len(self.seen),
        }
