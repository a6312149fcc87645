"""
Tests for the pool-creation listener — filtering, dedup, fetch retries,
open-position throttling and the buy hand-off.
Run: python3 test_listener.py
"""
import asyncio
import sys

# Ensure project root is on path
sys.path.insert(0, ".")

from raydium.constants import WSOL
from raydium.layouts import derive_authority
from raydium.listener import RaydiumListener
from raydium.rpc import LogNotification, RpcError
from raydium.safety import TrustVerdict, VerdictKind
from raydium.state import SeenSignatures
from testkit import (
    MARKET_DEFAULTS,
    MARKET_ID,
    MARKET_PROGRAM,
    POOL_ID,
    TOKEN_MINT,
    FakeClock,
    FakePipeline,
    FakePositions,
    FakeRpc,
    FakeSender,
    init_note,
    make_pool_tx,
    market_blob,
)

passed = 0
failed = 0


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


def make_listener(
    transactions=None,
    pipeline=None,
    positions=None,
    clock=None,
    **kwargs,
) -> RaydiumListener:
    rpc = FakeRpc(
        accounts={MARKET_ID: market_blob()},
        transactions=transactions if transactions is not None else {"5sig": make_pool_tx()},
    )
    clock = clock or FakeClock()
    return RaydiumListener(
        rpc,
        pipeline or FakePipeline(),
        FakeSender(),
        positions or FakePositions(),
        trade_size_sol=0.005,
        sleep=clock.sleep,
        **kwargs,
    )


async def stream(*notes: LogNotification):
    for note in notes:
        yield note


# ══════════════════════════════════════════════════════════════
#  FILTERING
# ══════════════════════════════════════════════════════════════


def test_failed_transaction_ignored():
    listener = make_listener()
    assert run(listener.handle_notification(init_note(err={"InstructionError": [0, "x"]}))) is False
    assert listener.rpc.calls == []


def test_logs_without_marker_ignored():
    listener = make_listener()
    note = LogNotification(signature="5sig", logs=["Program log: ray_log: swap"])
    assert run(listener.handle_notification(note)) is False
    assert listener.rpc.calls == []
    assert listener.candidates == 0


def test_duplicate_delivery_fetched_once():
    listener = make_listener()
    run(listener.run(stream(init_note(), init_note())))
    assert listener.rpc.count("get_transaction") == 1
    assert listener.candidates == 1
    assert listener.duplicates == 1


def test_seen_capacity_is_respected():
    transactions = {sig: make_pool_tx() for sig in ("a", "b", "c")}
    seen = SeenSignatures(capacity=2)
    listener = make_listener(
        transactions=transactions,
        pipeline=FakePipeline(TrustVerdict.reject(VerdictKind.LOW_BURN, "x")),
        seen=seen,
    )
    assert listener.seen is seen
    run(listener.run(stream(init_note("a"), init_note("b"), init_note("c"), init_note("a"))))
    # "a" was evicted by "c", so its redelivery is processed again
    assert listener.rpc.count("get_transaction", "a") == 2
    assert listener.duplicates == 0
    assert len(seen) == 2


def test_shared_seen_cache_spans_listeners():
    # A restarted listener reuses the cache handed to its predecessor
    seen = SeenSignatures(capacity=8)
    first = make_listener(seen=seen)
    run(first.run(stream(init_note())))
    second = make_listener(seen=seen)
    run(second.run(stream(init_note())))
    assert second.rpc.count("get_transaction") == 0
    assert second.duplicates == 1


# ══════════════════════════════════════════════════════════════
#  FETCH RETRIES + THROTTLE
# ══════════════════════════════════════════════════════════════


def test_fetch_retries_with_backoff():
    clock = FakeClock()
    tx_outcomes = [RpcError("a"), RpcError("b"), RpcError("c"), make_pool_tx()]
    pipeline = FakePipeline(TrustVerdict.reject(VerdictKind.LOW_BURN, "x"))
    listener = make_listener(transactions={"5sig": tx_outcomes}, pipeline=pipeline, clock=clock)
    run(listener.handle_notification(init_note()))
    assert clock.sleeps == [2, 4, 8]
    assert listener.rpc.count("get_transaction") == 4
    assert len(pipeline.pools) == 1


def test_fetch_exhaustion_drops_candidate():
    clock = FakeClock()
    pipeline = FakePipeline()
    listener = make_listener(
        transactions={"5sig": [RpcError("not yet")]}, pipeline=pipeline, clock=clock
    )
    run(listener.run(stream(init_note())))
    assert listener.rpc.count("get_transaction") == 4
    assert clock.sleeps == [2, 4, 8]
    assert listener.dropped == 1
    assert pipeline.pools == []


def test_throttle_waits_for_open_positions():
    clock = FakeClock()
    positions = FakePositions(counts=[5, 4, 3])
    pipeline = FakePipeline(TrustVerdict.reject(VerdictKind.LOW_BURN, "x"))
    listener = make_listener(positions=positions, pipeline=pipeline, clock=clock)
    run(listener.handle_notification(init_note()))
    assert clock.sleeps == [600, 600]
    assert positions.calls == 3
    assert listener.rpc.count("get_transaction") == 1


def test_throttle_checked_before_every_attempt():
    clock = FakeClock()
    positions = FakePositions(counts=[0])
    listener = make_listener(
        transactions={"5sig": [RpcError("a"), make_pool_tx()]},
        positions=positions,
        pipeline=FakePipeline(TrustVerdict.reject(VerdictKind.LOW_BURN, "x")),
        clock=clock,
    )
    run(listener.handle_notification(init_note()))
    assert positions.calls == 2


# ══════════════════════════════════════════════════════════════
#  PROCESSING
# ══════════════════════════════════════════════════════════════


def test_not_a_pool_skipped():
    pipeline = FakePipeline()
    listener = make_listener(
        transactions={"5sig": make_pool_tx(with_mint_to=False)}, pipeline=pipeline
    )
    run(listener.handle_notification(init_note()))
    assert listener.not_pools == 1
    assert pipeline.pools == []
    assert listener.sender.commands == []


def test_rejected_pool_counted():
    pipeline = FakePipeline(TrustVerdict.reject(VerdictKind.CONCENTRATED_HOLDER, "whale"))
    listener = make_listener(pipeline=pipeline)
    run(listener.handle_notification(init_note()))
    assert listener.reject_reasons["concentrated_holder"] == 1
    assert listener.sender.commands == []
    assert listener.get_stats()["rejected"] == 1


def test_accepted_pool_sends_buy():
    listener = make_listener()
    run(listener.handle_notification(init_note()))
    assert listener.bought == 1
    [command] = listener.sender.commands
    assert command.action == "buy"
    assert command.input_token == WSOL
    assert command.output_token == TOKEN_MINT
    assert command.input_amount == 0.005
    assert command.lp_decimals == 9
    keys = command.pool_keys
    assert keys.id == POOL_ID
    assert keys.market_id == MARKET_ID
    assert keys.market_bids == MARKET_DEFAULTS["bids"]
    assert keys.market_asks == MARKET_DEFAULTS["asks"]
    assert keys.market_event_queue == MARKET_DEFAULTS["event_queue"]
    assert keys.market_base_vault == MARKET_DEFAULTS["base_vault"]
    assert keys.market_authority == derive_authority(MARKET_PROGRAM, MARKET_ID)


def test_swapped_pool_buys_the_token():
    tx = make_pool_tx(coin_mint=WSOL, pc_mint=TOKEN_MINT)
    listener = make_listener(transactions={"5sig": tx})
    run(listener.handle_notification(init_note()))
    [command] = listener.sender.commands
    assert command.input_token == WSOL
    assert command.output_token == TOKEN_MINT


def test_candidate_failure_does_not_stop_loop():
    transactions = {"a": make_pool_tx(), "b": make_pool_tx()}
    pipeline = FakePipeline(error=RuntimeError("boom"))
    listener = make_listener(transactions=transactions, pipeline=pipeline)
    run(listener.run(stream(init_note("a"), init_note("b"))))
    assert len(pipeline.pools) == 2
    assert listener.dropped == 2


def test_missing_market_account_drops_candidate():
    listener = make_listener()
    del listener.rpc.accounts[MARKET_ID]
    run(listener.run(stream(init_note())))
    assert listener.bought == 0
    assert listener.dropped == 1


if __name__ == "__main__":
    print("\n── Filtering Tests ──")
    run_test("failed_transaction_ignored", test_failed_transaction_ignored)
    run_test("logs_without_marker_ignored", test_logs_without_marker_ignored)
    run_test("duplicate_delivery_fetched_once", test_duplicate_delivery_fetched_once)
    run_test("seen_capacity_is_respected", test_seen_capacity_is_respected)
    run_test("shared_seen_cache_spans_listeners", test_shared_seen_cache_spans_listeners)

    print("\n── Fetch Tests ──")
    run_test("fetch_retries_with_backoff", test_fetch_retries_with_backoff)
    run_test("fetch_exhaustion_drops_candidate", test_fetch_exhaustion_drops_candidate)
    run_test("throttle_waits_for_open_positions", test_throttle_waits_for_open_positions)
    run_test("throttle_checked_before_every_attempt", test_throttle_checked_before_every_attempt)

    print("\n── Processing Tests ──")
    run_test("not_a_pool_skipped", test_not_a_pool_skipped)
    run_test("rejected_pool_counted", test_rejected_pool_counted)
    run_test("accepted_pool_sends_buy", test_accepted_pool_sends_buy)
    run_test("swapped_pool_buys_the_token", test_swapped_pool_buys_the_token)
    run_test("candidate_failure_does_not_stop_loop", test_candidate_failure_does_not_stop_loop)
    run_test("missing_market_account_drops_candidate", test_missing_market_account_drops_candidate)

    print(f"\n{'='*50}")
    print(f"Results: {passed} passed, {failed} failed out of {passed + failed}")
    if failed:
        sys.exit(1)
    else:
        print("All tests passed!")
