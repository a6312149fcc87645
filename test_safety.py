"""
Tests for the trust pipeline — authorities, LP burn polling, liquidity
floor and holder concentration.
Run: python3 test_safety.py
"""
import asyncio
import sys
from unittest.mock import patch

# Ensure project root is on path
sys.path.insert(0, ".")

from dexscreener import PriceUnavailable
from raydium.constants import RAYDIUM_AUTHORITY_V4, WSOL
from raydium.retry import Backoff, Phase, PollingWindow, RetriesExhausted
from raydium.rpc import RpcError
from raydium.safety import (
    TrustPipeline,
    VerdictKind,
    burn_percentage,
    concentration_reason,
    lp_lock_note,
    pooled_value_usd,
)
from raydium.state import Holder, TokenAmount
from rugcheck import ReportUnavailable, TokenReport
from testkit import (
    LP_MINT,
    TOKEN_MINT,
    FakeClock,
    FakePrice,
    FakeReport,
    FakeRpc,
    addr,
    make_pool,
    mint_blob,
)

passed = 0
failed = 0

LP = 10**9  # one LP token at 9 decimals


def run(coro):
    return asyncio.run(coro)


def run_test(name, func):
    global passed, failed
    try:
        func()
        print(f"  PASS  {name}")
        passed += 1
    except Exception as e:
        print(f"  FAIL  {name}: {e}")
        failed += 1


def make_holders_rpc(rpc: FakeRpc, second_holder_amount: int, top_owner=RAYDIUM_AUTHORITY_V4):
    """Supply 1000, pool vault first, one other wallet second."""
    rpc.supplies[TOKEN_MINT] = TokenAmount(1000, 6)
    rpc.largest[TOKEN_MINT] = [(addr(70), 700), (addr(71), second_holder_amount)]
    rpc.owners.update({addr(70): top_owner, addr(71): addr(80)})
    return rpc


def make_healthy_rpc(lp_supply: int = 150 * LP, quote_sol: float = 20.0) -> FakeRpc:
    pool = make_pool()
    rpc = FakeRpc(
        accounts={
            TOKEN_MINT: mint_blob(1000, decimals=6),
            LP_MINT: mint_blob(lp_supply),
        },
        balances={
            pool.base_vault: TokenAmount(500_000_000, 6),
            pool.quote_vault: TokenAmount(int(quote_sol * 10**9), 9),
        },
    )
    return make_holders_rpc(rpc, 100)


def make_pipeline(rpc, clock=None, price=None, report_client=None, **kwargs) -> TrustPipeline:
    clock = clock or FakeClock()
    return TrustPipeline(
        rpc,
        price or FakePrice(150.0),
        report_client=report_client,
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )


# ══════════════════════════════════════════════════════════════
#  PURE RULES
# ══════════════════════════════════════════════════════════════


def test_lp_lock_note():
    assert lp_lock_note(None) == ""
    assert lp_lock_note(TokenReport(TOKEN_MINT, None, None)) == ""
    note = lp_lock_note(TokenReport(TOKEN_MINT, None, None, lp_locked_pct=99.2))
    assert note == f" (RugCheck {TOKEN_MINT[:8]}...: 99.2% LP locked)"


def test_burn_percentage():
    assert burn_percentage(1000 * LP, 150 * LP, 9) == 85.0
    assert burn_percentage(1000 * LP, 300 * LP, 9) == 70.0
    assert burn_percentage(1000 * LP, 0, 9) == 100.0
    assert burn_percentage(0, 10, 9) == 0.0


def test_concentration_reason():
    pool = RAYDIUM_AUTHORITY_V4
    healthy = [Holder(pool, 70.0), Holder(addr(1), 19.0), Holder(addr(2), 5.0)]
    assert concentration_reason(healthy, pool, 20) is None
    heavy = [Holder(pool, 70.0), Holder(addr(1), 21.0)]
    assert "21.0%" in concentration_reason(heavy, pool, 20)
    not_pool_top = [Holder(addr(1), 60.0), Holder(pool, 30.0)]
    assert "is not the pool" in concentration_reason(not_pool_top, pool, 20)
    assert concentration_reason([], pool, 20) == "no holder data"


def test_pooled_value_usd():
    # 10 SOL on each side's worth at $150/SOL
    assert pooled_value_usd(1_000_000, 10, 150) == 3000
    assert pooled_value_usd(0, 10, 150) == 1500


# ══════════════════════════════════════════════════════════════
#  RETRY PRIMITIVES
# ══════════════════════════════════════════════════════════════


def test_backoff_delays_then_success():
    clock = FakeClock()
    outcomes = [RpcError("a"), RpcError("b"), RpcError("c"), "tx"]

    async def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    backoff = Backoff(sleep=clock.sleep)
    assert run(backoff.run(operation)) == "tx"
    assert clock.sleeps == [2, 4, 8]
    assert backoff.attempts == 4
    assert backoff.phase is Phase.DONE


def test_backoff_exhausted():
    clock = FakeClock()

    async def operation():
        raise RpcError("down")

    backoff = Backoff(sleep=clock.sleep)
    try:
        run(backoff.run(operation))
        raise AssertionError("no RetriesExhausted")
    except RetriesExhausted as e:
        assert e.attempts == 4
        assert isinstance(e.last_error, RpcError)
    assert clock.sleeps == [2, 4, 8]
    assert backoff.phase is Phase.EXHAUSTED


def test_backoff_does_not_retry_other_errors():
    clock = FakeClock()

    async def operation():
        raise KeyError("bug")

    try:
        run(Backoff(retry_on=(RpcError,), sleep=clock.sleep).run(operation))
        raise AssertionError("KeyError swallowed")
    except KeyError:
        pass
    assert clock.sleeps == []


def test_polling_window_bounds():
    clock = FakeClock()
    window = PollingWindow(interval=15, timeout=220, sleep=clock.sleep, clock=clock)

    async def drain():
        return [attempt async for attempt in window]

    attempts = run(drain())
    # Polls at t = 0, 15, ..., 210
    assert attempts == list(range(1, 16))
    assert window.timed_out
    assert clock.now == 225


# ══════════════════════════════════════════════════════════════
#  STAGES
# ══════════════════════════════════════════════════════════════


def test_base_is_native_rejected():
    verdict = run(make_pipeline(FakeRpc()).evaluate(make_pool(base_mint=WSOL)))
    assert verdict.kind is VerdictKind.BASE_IS_NATIVE


def test_authority_present_rejected():
    rpc = make_healthy_rpc()
    rpc.accounts[TOKEN_MINT] = mint_blob(1000, mint_authority=addr(9))
    verdict = run(make_pipeline(rpc).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.AUTHORITY_PRESENT
    assert "Mint authority" in verdict.reason
    # Stops before polling the lp mint
    assert rpc.count("get_account_data", LP_MINT) == 0


def test_freeze_authority_rejected():
    rpc = make_healthy_rpc()
    rpc.accounts[TOKEN_MINT] = mint_blob(1000, freeze_authority=addr(9))
    verdict = run(make_pipeline(rpc).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.AUTHORITY_PRESENT
    assert "Freeze authority" in verdict.reason


def test_report_authority_is_second_opinion():
    rpc = make_healthy_rpc()
    report = TokenReport(mint=TOKEN_MINT, mint_authority=None, freeze_authority=addr(9))
    verdict = run(make_pipeline(rpc, report_client=FakeReport(report)).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.AUTHORITY_PRESENT
    assert verdict.reason.startswith("RugCheck")


def test_burn_accepts_above_threshold():
    clock = FakeClock()
    pipeline = make_pipeline(make_healthy_rpc(lp_supply=150 * LP), clock)
    assert run(pipeline.check_burn(make_pool())) is None
    assert clock.sleeps == []


def test_burn_waits_for_later_burn():
    clock = FakeClock()
    rpc = make_healthy_rpc()
    rpc.accounts[LP_MINT] = [mint_blob(1000 * LP), mint_blob(1000 * LP), mint_blob(150 * LP)]
    assert run(make_pipeline(rpc, clock).check_burn(make_pool())) is None
    assert clock.sleeps == [15, 15]
    assert rpc.count("get_account_data", LP_MINT) == 3


def test_burn_below_threshold_times_out():
    clock = FakeClock()
    rpc = make_healthy_rpc(lp_supply=300 * LP)
    verdict = run(make_pipeline(rpc, clock).check_burn(make_pool()))
    assert verdict.kind is VerdictKind.LOW_BURN
    assert "70.0%" in verdict.reason
    # Kept polling for the whole window instead of stopping early
    assert rpc.count("get_account_data", LP_MINT) == 15
    assert clock.sleeps == [15] * 15


def test_burn_poll_survives_transient_errors():
    clock = FakeClock()
    rpc = make_healthy_rpc()
    rpc.accounts[LP_MINT] = [RpcError("timeout"), mint_blob(100 * LP)]
    assert run(make_pipeline(rpc, clock).check_burn(make_pool())) is None
    assert clock.sleeps == [15]


def test_burn_log_carries_rugcheck_lock():
    report = TokenReport(TOKEN_MINT, None, None, lp_locked_pct=95.5)
    pipeline = make_pipeline(make_healthy_rpc(lp_supply=150 * LP))
    with patch("raydium.safety.logger") as log:
        assert run(pipeline.check_burn(make_pool(), report)) is None
    [line] = [c.args[0] for c in log.info.call_args_list if c.args[0].startswith("[burn]")]
    assert "85.0% LP burnt" in line
    assert f"RugCheck {TOKEN_MINT[:8]}...: 95.5% LP locked" in line


def test_low_liquidity_rejected():
    rpc = make_healthy_rpc(quote_sol=5.0)  # 2 * 5 SOL * $150 = $1500
    verdict = run(make_pipeline(rpc).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.LOW_LIQUIDITY


def test_non_native_quote_is_other():
    verdict = run(make_pipeline(make_healthy_rpc()).check_liquidity(make_pool(quote_mint=addr(33))))
    assert verdict.kind is VerdictKind.OTHER


def test_holder_at_19_pct_accepted():
    rpc = make_holders_rpc(FakeRpc(), 190)
    assert run(make_pipeline(rpc).check_holders(make_pool())) is None


def test_holder_at_21_pct_rejected():
    rpc = make_holders_rpc(FakeRpc(), 210)
    verdict = run(make_pipeline(rpc).check_holders(make_pool()))
    assert verdict.kind is VerdictKind.CONCENTRATED_HOLDER


def test_holder_ranking_read_whole_every_time():
    rpc = make_holders_rpc(FakeRpc(), 210)
    pipeline = make_pipeline(rpc)
    for _ in range(2):
        verdict = run(pipeline.check_holders(make_pool()))
        assert verdict.kind is VerdictKind.CONCENTRATED_HOLDER
        assert "21.0%" in verdict.reason
    assert rpc.count("get_token_largest_accounts", TOKEN_MINT) == 2
    assert len(rpc.largest[TOKEN_MINT]) == 2


def test_top_holder_not_pool_rejected():
    rpc = make_holders_rpc(FakeRpc(), 100, top_owner=addr(81))
    verdict = run(make_pipeline(rpc).check_holders(make_pool()))
    assert verdict.kind is VerdictKind.CONCENTRATED_HOLDER
    assert "is not the pool" in verdict.reason


def test_report_holders_preferred():
    rpc = FakeRpc()  # no on-chain holder data at all
    report = TokenReport(
        mint=TOKEN_MINT,
        mint_authority=None,
        freeze_authority=None,
        top_holders=[Holder(RAYDIUM_AUTHORITY_V4, 80.0), Holder(addr(1), 10.0)],
    )
    assert run(make_pipeline(rpc).check_holders(make_pool(), report)) is None
    assert rpc.calls == []


# ══════════════════════════════════════════════════════════════
#  FULL PIPELINE
# ══════════════════════════════════════════════════════════════


def test_healthy_pool_accepted():
    verdict = run(make_pipeline(make_healthy_rpc()).evaluate(make_pool()))
    assert verdict.accepted, verdict.reason


def test_report_unavailable_falls_back_to_onchain():
    report_client = FakeReport(error=ReportUnavailable("HTTP 502"))
    verdict = run(make_pipeline(make_healthy_rpc(), report_client=report_client).evaluate(make_pool()))
    assert verdict.accepted, verdict.reason
    assert report_client.calls == [TOKEN_MINT]


def test_unexpected_error_is_other():
    price = FakePrice(error=PriceUnavailable("rate limited"))
    verdict = run(make_pipeline(make_healthy_rpc(), price=price).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.OTHER
    assert "PriceUnavailable" in verdict.reason


def test_missing_mint_account_is_other():
    rpc = make_healthy_rpc()
    del rpc.accounts[TOKEN_MINT]
    verdict = run(make_pipeline(rpc).evaluate(make_pool()))
    assert verdict.kind is VerdictKind.OTHER


if __name__ == "__main__":
    print("\n── Rule Tests ──")
    run_test("burn_percentage", test_burn_percentage)
    run_test("lp_lock_note", test_lp_lock_note)
    run_test("concentration_reason", test_concentration_reason)
    run_test("pooled_value_usd", test_pooled_value_usd)

    print("\n── Retry Tests ──")
    run_test("backoff_delays_then_success", test_backoff_delays_then_success)
    run_test("backoff_exhausted", test_backoff_exhausted)
    run_test("backoff_does_not_retry_other_errors", test_backoff_does_not_retry_other_errors)
    run_test("polling_window_bounds", test_polling_window_bounds)

    print("\n── Stage Tests ──")
    run_test("base_is_native_rejected", test_base_is_native_rejected)
    run_test("authority_present_rejected", test_authority_present_rejected)
    run_test("freeze_authority_rejected", test_freeze_authority_rejected)
    run_test("report_authority_is_second_opinion", test_report_authority_is_second_opinion)
    run_test("burn_accepts_above_threshold", test_burn_accepts_above_threshold)
    run_test("burn_waits_for_later_burn", test_burn_waits_for_later_burn)
    run_test("burn_below_threshold_times_out", test_burn_below_threshold_times_out)
    run_test("burn_poll_survives_transient_errors", test_burn_poll_survives_transient_errors)
    run_test("burn_log_carries_rugcheck_lock", test_burn_log_carries_rugcheck_lock)
    run_test("low_liquidity_rejected", test_low_liquidity_rejected)
    run_test("non_native_quote_is_other", test_non_native_quote_is_other)
    run_test("holder_at_19_pct_accepted", test_holder_at_19_pct_accepted)
    run_test("holder_at_21_pct_rejected", test_holder_at_21_pct_rejected)
    run_test("holder_ranking_read_whole_every_time", test_holder_ranking_read_whole_every_time)
    run_test("top_holder_not_pool_rejected", test_top_holder_not_pool_rejected)
    run_test("report_holders_preferred", test_report_holders_preferred)

    print("\n── Pipeline Tests ──")
    run_test("healthy_pool_accepted", test_healthy_pool_accepted)
    run_test("report_unavailable_falls_back_to_onchain", test_report_unavailable_falls_back_to_onchain)
    run_test("unexpected_error_is_other", test_unexpected_error_is_other)
    run_test("missing_mint_account_is_other", test_missing_mint_account_is_other)

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed out of {passed + failed}")
    if failed:
        sys.exit(1)
    else:
        print("All tests passed!")
