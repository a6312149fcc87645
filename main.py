"""
Raydium New-Pool Sniper — Main Orchestrator.

Watches the Raydium AMM V4 program for pool creation, runs each new
pool through the trust checks, and publishes a buy command for the
execution process over Redis.

Usage:
    python main.py               # normal mode (reads .env)
    DRY_RUN=true python main.py  # dry run (log buys, publish nothing)
"""
import asyncio
import logging
import signal as signal_module
import sys

import redis.asyncio as aioredis

import config
from dexscreener import DexScreenerClient
from raydium.listener import RaydiumListener
from raydium.rpc import SolanaRpc
from raydium.safety import TrustPipeline
from raydium.state import SeenSignatures
from rugcheck import RugCheckClient
from trade_sender import OpenPositions, TradeSender

# ── Logging ──
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s | %(name)-14s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("main")
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("aiohttp").setLevel(logging.WARNING)

RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0


class Sniper:
    """Main application — wires up all components and runs them concurrently."""

    def __init__(self):
        self.rpc = SolanaRpc(config.RPC_URL, config.WSS_URL)
        self.dex_client = DexScreenerClient()
        self.rugcheck = RugCheckClient(config.RUGCHECK_URL) if config.RUGCHECK_ENABLED else None

        self.redis = None
        if config.REDIS_URL:
            self.redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)

        self.pipeline = TrustPipeline(
            self.rpc,
            self.dex_client,
            report_client=self.rugcheck,
            min_burn_pct=config.MIN_BURN_PCT,
            burn_poll_interval=config.BURN_POLL_INTERVAL_S,
            burn_timeout=config.BURN_TIMEOUT_S,
            min_liquidity_usd=config.MIN_LIQUIDITY_USD,
            max_holder_pct=config.MAX_HOLDER_PCT,
        )
        self.sender = TradeSender(
            self.redis, channel=config.TRADING_CHANNEL, dry_run=config.DRY_RUN
        )
        self.positions = OpenPositions(self.redis, key=config.OPEN_POSITIONS_KEY)
        self.listener = RaydiumListener(
            self.rpc,
            self.pipeline,
            self.sender,
            self.positions,
            program_id=config.PROGRAM_ADDRESS,
            trade_size_sol=config.TRADE_SIZE_SOL,
            seen=SeenSignatures(config.SEEN_SIGNATURES_CAPACITY),
            max_retries=config.FETCH_MAX_RETRIES,
            initial_retry_delay=config.FETCH_INITIAL_DELAY_S,
            max_open_positions=config.MAX_OPEN_POSITIONS,
            throttle_cooldown=config.THROTTLE_COOLDOWN_S,
        )
        self._tasks: list[asyncio.Task] = []

    async def start(self):
        logger.info("=" * 60)
        logger.info("  RAYDIUM NEW-POOL SNIPER")
        logger.info(f"  Program:    {config.PROGRAM_ADDRESS}")
        logger.info(f"  Mode:       {'DRY RUN' if config.DRY_RUN else 'LIVE'}")
        logger.info(f"  Trade size: {config.TRADE_SIZE_SOL} SOL")
        logger.info(f"  Min burn:   {config.MIN_BURN_PCT:g}% within {config.BURN_TIMEOUT_S:g}s")
        logger.info(f"  Min liq:    ${config.MIN_LIQUIDITY_USD:,.0f}")
        logger.info(f"  Max holder: {config.MAX_HOLDER_PCT:g}%")
        logger.info(f"  RugCheck:   {'on' if self.rugcheck else 'off'}")
        logger.info("=" * 60)

        self._tasks = [
            asyncio.create_task(self._listen_loop(), name="listener"),
            asyncio.create_task(self._stats_loop(), name="stats"),
        ]
        done, pending = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if not task.cancelled() and task.exception():
                logger.error(f"Task {task.get_name()} crashed: {task.exception()}")
        for task in pending:
            task.cancel()

    async def _listen_loop(self):
        """Resubscribe whenever the log stream ends or breaks."""
        delay = RECONNECT_INITIAL_DELAY
        while True:
            try:
                logger.info(f"Connecting to {config.WSS_URL[:50]}...")
                await self.listener.run(self.rpc.logs_subscribe(config.PROGRAM_ADDRESS))
                delay = RECONNECT_INITIAL_DELAY
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Subscription error: {e}")
            logger.warning(f"Reconnecting in {delay:g}s...")
            await asyncio.sleep(delay)
            delay = min(delay * 2, RECONNECT_MAX_DELAY)

    async def _stats_loop(self):
        while True:
            await asyncio.sleep(300)
            stats = self.listener.get_stats()
            logger.info(
                f"[stats] candidates={stats['candidates']} "
                f"duplicates={stats['duplicates']} dropped={stats['dropped']} "
                f"not_pools={stats['not_pools']} rejected={stats['rejected']} "
                f"bought={stats['bought']} seen={stats['seen']}"
            )
            if stats["reject_reasons"]:
                top = sorted(stats["reject_reasons"].items(), key=lambda x: -x[1])[:5]
                logger.info(f"[stats] top rejections: {dict(top)}")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await self.rpc.close()
        await self.dex_client.close()
        if self.rugcheck:
            await self.rugcheck.close()
        if self.redis is not None:
            await self.redis.aclose()


async def main():
    missing = config.missing_required()
    if missing:
        logger.error(f"Missing required settings: {', '.join(missing)}")
        sys.exit(1)

    sniper = Sniper()
    loop = asyncio.get_running_loop()
    for sig in (signal_module.SIGINT, signal_module.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(_shutdown(sniper)))
    await sniper.start()


async def _shutdown(sniper: Sniper):
    logger.info("Shutting down...")
    await sniper.stop()
    logger.info("Goodbye.")


if __name__ == "__main__":
    asyncio.run(main())
