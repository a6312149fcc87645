"""
Trust verification for a freshly created pool.

Stages run in order and stop at the first rejection:
  1. native guard   — base must not be wrapped SOL
  2. authorities    — mint + freeze authority must both be revoked
                      (on-chain record; RugCheck report as second opinion)
  3. LP burn        — poll the lp mint until >80% of the minted LP is
                      burnt, or give up after the timeout
  4. liquidity      — pooled value in USD must clear a floor
  5. holders        — the AMM authority must be the top holder and nobody
                      else may hold more than 20% of supply

Any unexpected failure ends the run with an OTHER verdict.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

import aiohttp

from raydium.constants import RAYDIUM_AUTHORITY_V4, WSOL
from raydium.layouts import DecodeError, decode_mint
from raydium.retry import PollingWindow
from raydium.rpc import RpcError
from raydium.state import Holder, PoolDescriptor
from rugcheck import ReportUnavailable, TokenReport

logger = logging.getLogger("ray_safety")

# Failures that only mean "not yet" while polling the lp mint
TRANSIENT_ERRORS = (RpcError, DecodeError, aiohttp.ClientError, asyncio.TimeoutError)


class VerdictKind(Enum):
    ACCEPTED = "accepted"
    BASE_IS_NATIVE = "base_is_native"
    AUTHORITY_PRESENT = "authority_present"
    LOW_BURN = "low_burn"
    LOW_LIQUIDITY = "low_liquidity"
    CONCENTRATED_HOLDER = "concentrated_holder"
    OTHER = "other"


@dataclass(frozen=True)
class TrustVerdict:
    kind: VerdictKind
    reason: str = ""

    @property
    def accepted(self) -> bool:
        return self.kind is VerdictKind.ACCEPTED

    @classmethod
    def accept(cls) -> "TrustVerdict":
        return cls(VerdictKind.ACCEPTED)

    @classmethod
    def reject(cls, kind: VerdictKind, reason: str) -> "TrustVerdict":
        return cls(kind, reason)


# ── Pure rules ───────────────────────────────────────────────


def burn_percentage(lp_reserve: int, supply: int, decimals: int) -> float:
    """Share of the initially minted LP that no longer exists, in percent."""
    scale = 10 ** decimals
    reserve = lp_reserve / scale
    if reserve <= 0:
        return 0.0
    burnt = reserve - supply / scale
    return burnt * 100 / reserve


def authority_reasons(mint_authority, freeze_authority) -> list[str]:
    reasons = []
    if mint_authority is not None:
        reasons.append(f"Mint authority active: {mint_authority[:8]}...")
    if freeze_authority is not None:
        reasons.append(f"Freeze authority active: {freeze_authority[:8]}...")
    return reasons


def concentration_reason(
    holders: list[Holder], pool_owner: str, max_pct: float
) -> str | None:
    """None if the holder list looks healthy, else why it does not."""
    if not holders:
        return "no holder data"
    ranked = sorted(holders, key=lambda h: h.pct, reverse=True)
    top = ranked[0]
    if top.owner != pool_owner:
        return f"top holder {top.owner[:8]}... ({top.pct:.1f}%) is not the pool"
    for holder in ranked[1:]:
        if holder.owner != pool_owner and holder.pct > max_pct:
            return f"holder {holder.owner[:8]}... owns {holder.pct:.1f}% (> {max_pct:g}%)"
    return None


def lp_lock_note(report: TokenReport | None) -> str:
    """RugCheck's LP lock figure, appended to burn results when known."""
    if report is None or report.lp_locked_pct is None:
        return ""
    return f" (RugCheck {report.mint[:8]}...: {report.lp_locked_pct:.1f}% LP locked)"


def pooled_value_usd(
    base_ui: float, quote_ui: float, native_usd: float
) -> float:
    """Both sides valued in USD at the pool's own price, which puts the
    base side at parity with the quote side."""
    quote_usd = quote_ui * native_usd
    if base_ui <= 0:
        return quote_usd
    return 2 * quote_usd


# ── Pipeline ─────────────────────────────────────────────────


class TrustPipeline:
    """
    Runs the staged checks for one pool at a time.

    rpc            — SolanaRpc-like: get_account_data, get_token_account_balance,
                     get_token_supply, get_token_largest_accounts,
                     get_token_account_owners
    price_service  — get_usd_price(mint)
    report_client  — fetch_report(mint), optional
    """

    def __init__(
        self,
        rpc,
        price_service,
        report_client=None,
        native_mint: str = WSOL,
        amm_authority: str = RAYDIUM_AUTHORITY_V4,
        min_burn_pct: float = 80.0,
        burn_poll_interval: float = 15.0,
        burn_timeout: float = 220.0,
        min_liquidity_usd: float = 3000.0,
        max_holder_pct: float = 20.0,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.rpc = rpc
        self.price_service = price_service
        self.report_client = report_client
        self.native_mint = native_mint
        self.amm_authority = amm_authority
        self.min_burn_pct = min_burn_pct
        self.burn_poll_interval = burn_poll_interval
        self.burn_timeout = burn_timeout
        self.min_liquidity_usd = min_liquidity_usd
        self.max_holder_pct = max_holder_pct
        self._sleep = sleep
        self._clock = clock

    async def evaluate(self, pool: PoolDescriptor) -> TrustVerdict:
        mint = pool.base_mint
        if mint == self.native_mint:
            return TrustVerdict.reject(VerdictKind.BASE_IS_NATIVE, "base mint is wrapped SOL")

        try:
            report = await self._fetch_report(mint)
            verdict = (
                await self.check_authorities(mint, report)
                or await self.check_burn(pool, report)
                or await self.check_liquidity(pool)
                or await self.check_holders(pool, report)
            )
        except Exception as e:
            logger.error(f"[safety-error] {mint[:8]}... {type(e).__name__}: {e}")
            return TrustVerdict.reject(VerdictKind.OTHER, f"{type(e).__name__}: {e}")

        if verdict is not None:
            return verdict
        logger.info(f"[safe] {mint[:8]}... passed all checks")
        return TrustVerdict.accept()

    async def _fetch_report(self, mint: str) -> TokenReport | None:
        if self.report_client is None:
            return None
        try:
            return await self.report_client.fetch_report(mint)
        except ReportUnavailable as e:
            logger.debug(f"RugCheck unavailable for {mint[:8]}..., on-chain only: {e}")
            return None

    # ── Stage 2 ──

    async def check_authorities(
        self, mint: str, report: TokenReport | None = None
    ) -> TrustVerdict | None:
        info = decode_mint(await self.rpc.get_account_data(mint))
        reasons = authority_reasons(info.mint_authority, info.freeze_authority)
        if report is not None and not reasons:
            reasons = [
                f"RugCheck: {r}"
                for r in authority_reasons(report.mint_authority, report.freeze_authority)
            ]
        if reasons:
            logger.info(f"[sol-unsafe] {mint[:8]}... — {', '.join(reasons)}")
            return TrustVerdict.reject(VerdictKind.AUTHORITY_PRESENT, "; ".join(reasons))
        logger.debug(f"[sol-safe] {mint[:8]}... authorities revoked")
        return None

    # ── Stage 3 ──

    async def check_burn(
        self, pool: PoolDescriptor, report: TokenReport | None = None
    ) -> TrustVerdict | None:
        window = PollingWindow(
            interval=self.burn_poll_interval,
            timeout=self.burn_timeout,
            sleep=self._sleep,
            clock=self._clock,
        )
        best = 0.0
        async for attempt in window:
            try:
                info = decode_mint(await self.rpc.get_account_data(pool.lp_mint))
            except TRANSIENT_ERRORS as e:
                logger.debug(f"LP mint poll {attempt} failed for {pool.lp_mint[:8]}...: {e}")
                continue
            pct = burn_percentage(pool.lp_reserve, info.supply, pool.lp_decimals)
            best = max(best, pct)
            if pct > self.min_burn_pct:
                logger.info(
                    f"[burn] {pool.base_mint[:8]}... {pct:.1f}% LP burnt{lp_lock_note(report)}"
                )
                return None

        reason = (
            f"LP burn {best:.1f}% <= {self.min_burn_pct:g}% after "
            f"{self.burn_timeout:g}s ({window.polls} polls)"
        )
        logger.info(f"[low-burn] {pool.base_mint[:8]}... {reason}{lp_lock_note(report)}")
        return TrustVerdict.reject(VerdictKind.LOW_BURN, reason)

    # ── Stage 4 ──

    async def check_liquidity(self, pool: PoolDescriptor) -> TrustVerdict | None:
        if pool.quote_mint != self.native_mint:
            return TrustVerdict.reject(
                VerdictKind.OTHER, f"quote mint {pool.quote_mint[:8]}... is not wrapped SOL"
            )
        base_balance = await self.rpc.get_token_account_balance(pool.base_vault)
        quote_balance = await self.rpc.get_token_account_balance(pool.quote_vault)
        native_usd = await self.price_service.get_usd_price(self.native_mint)

        base_ui = base_balance.amount / 10 ** pool.base_decimals
        quote_ui = quote_balance.amount / 10 ** pool.quote_decimals
        value = pooled_value_usd(base_ui, quote_ui, native_usd)
        if value < self.min_liquidity_usd:
            reason = f"liquidity ${value:,.0f} < ${self.min_liquidity_usd:,.0f}"
            logger.info(f"[low-liq] {pool.base_mint[:8]}... {reason}")
            return TrustVerdict.reject(VerdictKind.LOW_LIQUIDITY, reason)
        logger.debug(f"[liq] {pool.base_mint[:8]}... ${value:,.0f}")
        return None

    # ── Stage 5 ──

    async def check_holders(
        self, pool: PoolDescriptor, report: TokenReport | None = None
    ) -> TrustVerdict | None:
        if report is not None and report.top_holders:
            holders = report.top_holders
        else:
            holders = await self.onchain_holders(pool.base_mint)

        reason = concentration_reason(holders, self.amm_authority, self.max_holder_pct)
        if reason is not None:
            logger.info(f"[concentrated] {pool.base_mint[:8]}... {reason}")
            return TrustVerdict.reject(VerdictKind.CONCENTRATED_HOLDER, reason)
        return None

    async def onchain_holders(self, mint: str) -> list[Holder]:
        supply = await self.rpc.get_token_supply(mint)
        if supply.amount <= 0:
            return []
        largest = await self.rpc.get_token_largest_accounts(mint)
        owners = await self.rpc.get_token_account_owners([addr for addr, _ in largest])
        return [
            Holder(owner=owners.get(addr, addr), pct=amount / supply.amount * 100)
            for addr, amount in largest
        ]
