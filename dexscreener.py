"""
DexScreener REST API — USD price source for the native token.

The pool's liquidity floor is checked in USD, so every candidate that
passes the burn check needs a fresh SOL/USD price. Prices are cached for
a short window to stay well under the rate limit.
"""
import asyncio
import logging
import time
import aiohttp

logger = logging.getLogger("dexscreener")

# DexScreener API base
BASE_URL = "https://api.dexscreener.com"

# Rate limit: 300 req/min for token/pair endpoints
# We self-limit to ~200/min to stay safe
MIN_REQUEST_INTERVAL = 0.3  # seconds between requests

STABLE_QUOTES = ("USDC", "USDT")


class PriceUnavailable(Exception):
    pass


class DexScreenerClient:
    """Async DexScreener API client for Solana token prices."""

    def __init__(self, base_url: str = BASE_URL, cache_ttl: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.cache_ttl = cache_ttl
        self._session: aiohttp.ClientSession | None = None
        self._last_request: float = 0.0
        self._request_lock = asyncio.Lock()
        self._prices: dict[str, tuple[float, float]] = {}  # mint -> (price, fetched_at)

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=5),
                headers={"Accept": "application/json"},
            )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _rate_limited_get(self, url: str):
        """GET with rate limiting. Raises PriceUnavailable on any failure."""
        async with self._request_lock:
            now = time.time()
            wait = MIN_REQUEST_INTERVAL - (now - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)

            await self._ensure_session()
            try:
                async with self._session.get(url) as resp:
                    self._last_request = time.time()
                    if resp.status == 429:
                        logger.warning("DexScreener rate limited")
                        raise PriceUnavailable("rate limited")
                    if resp.status != 200:
                        raise PriceUnavailable(f"HTTP {resp.status} for {url}")
                    return await resp.json()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                raise PriceUnavailable(f"DexScreener request failed: {e}") from e

    async def get_token_pairs(self, token_address: str, chain: str = "solana") -> list[dict]:
        """All pairs for a token on a chain."""
        data = await self._rate_limited_get(
            f"{self.base_url}/tokens/v1/{chain}/{token_address}"
        )
        # Response is a list of pair objects
        if isinstance(data, list):
            return data
        return []

    async def get_usd_price(self, mint: str) -> float:
        cached = self._prices.get(mint)
        if cached and time.time() - cached[1] < self.cache_ttl:
            return cached[0]

        pairs = await self.get_token_pairs(mint)
        price = pick_usd_price(pairs, mint)
        if price is None:
            raise PriceUnavailable(f"no USD price for {mint[:8]}...")
        self._prices[mint] = (price, time.time())
        logger.debug(f"{mint[:8]}.. price: ${price:,.4f}")
        return price


def pick_usd_price(pairs: list[dict], mint: str) -> float | None:
    """
    Price of `mint` from pairs where it is the base token. Stablecoin
    quoted pairs win; otherwise the first base pair with a price.
    """
    based = [p for p in pairs if (p.get("baseToken") or {}).get("address") == mint]
    stable = [
        p for p in based
        if (p.get("quoteToken") or {}).get("symbol") in STABLE_QUOTES
    ]
    for pair in stable + based:
        price_str = pair.get("priceUsd")
        if not price_str:
            continue
        try:
            price = float(price_str)
        except ValueError:
            continue
        if price > 0:
            return price
    return None
