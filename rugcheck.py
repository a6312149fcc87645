"""
RugCheck token report client.

Optional second opinion next to the on-chain checks: mint/freeze
authorities as RugCheck sees them plus the top holders by owner wallet.
Any failure (HTTP error, timeout, unexpected body) raises
ReportUnavailable and the caller falls back to on-chain data.
"""
import asyncio
import logging
from dataclasses import dataclass, field

import aiohttp

from raydium.state import Holder

logger = logging.getLogger("rugcheck")

BASE_URL = "https://api.rugcheck.xyz/v1"


class ReportUnavailable(Exception):
    pass


@dataclass(frozen=True)
class TokenReport:
    mint: str
    mint_authority: str | None
    freeze_authority: str | None
    top_holders: list[Holder] = field(default_factory=list)
    lp_locked_pct: float | None = None


class RugCheckClient:
    def __init__(self, base_url: str = BASE_URL, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"accept": "application/json"},
            )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def fetch_report(self, mint: str) -> TokenReport:
        await self._ensure_session()
        url = f"{self.base_url}/tokens/{mint}/report"
        try:
            async with self._session.get(url) as resp:
                if resp.status != 200:
                    raise ReportUnavailable(f"RugCheck HTTP {resp.status} for {mint[:8]}...")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ReportUnavailable(f"RugCheck request failed: {e}") from e
        return parse_report(mint, data)


def parse_report(mint: str, data) -> TokenReport:
    if not isinstance(data, dict) or not isinstance(data.get("token"), dict):
        raise ReportUnavailable(f"RugCheck report for {mint[:8]}... has no token section")

    token = data["token"]
    holders = []
    for entry in data.get("topHolders") or []:
        owner = entry.get("owner")
        pct = entry.get("pct")
        if not owner or not isinstance(pct, (int, float)):
            continue
        holders.append(Holder(owner=owner, pct=float(pct)))

    lp = data.get("lp") or {}
    lp_locked = lp.get("lpLockedPct")
    return TokenReport(
        mint=mint,
        mint_authority=token.get("mintAuthority"),
        freeze_authority=token.get("freezeAuthority"),
        top_holders=holders,
        lp_locked_pct=float(lp_locked) if isinstance(lp_locked, (int, float)) else None,
    )
