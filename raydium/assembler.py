"""
Pool assembly: extractor fields + fixed constants → PoolDescriptor,
and PoolDescriptor + decoded market → PoolKeys for execution.
"""
import logging

from raydium.constants import (
    MARKET_VERSION,
    POOL_VERSION,
    SOL_DECIMALS,
    WITHDRAW_QUEUE_PLACEHOLDER,
)
from raydium.extractor import extract_pool_fields, find_pre_balance_decimals
from raydium.instructions import ExtractionError
from raydium.state import MarketState, PoolDescriptor, PoolKeys

logger = logging.getLogger("ray_assemble")


def assemble_pool(tx: dict, program_id: str, native_mint: str) -> PoolDescriptor | None:
    """
    Build the canonical descriptor for a pool-creation transaction.

    Returns None when the transaction is not a pool creation or any
    required field is missing. Base/quote are swapped (mints, vaults,
    reserves) when the raw base side is the native mint.

    Decimals come from the pre-balance of the raw base mint only. That
    value lands on the base side, and the other side carries the SOL
    constant. After a swap the two are crossed: base gets the constant
    and quote gets the raw base (native) pre-balance decimals.
    """
    try:
        fields = extract_pool_fields(tx, program_id)
    except ExtractionError as e:
        logger.debug(f"No pool info: {type(e).__name__}: {e}")
        return None

    base_mint, quote_mint = fields.base_mint, fields.quote_mint
    base_vault, quote_vault = fields.base_vault, fields.quote_vault
    base_reserve, quote_reserve = fields.base_reserve, fields.quote_reserve

    swapped = base_mint == native_mint
    if swapped:
        base_mint, quote_mint = quote_mint, base_mint
        base_vault, quote_vault = quote_vault, base_vault
        base_reserve, quote_reserve = quote_reserve, base_reserve

    pre_balances = (tx.get("meta") or {}).get("preTokenBalances") or []
    raw_base_decimals = find_pre_balance_decimals(pre_balances, fields.base_mint)
    if raw_base_decimals is None:
        logger.debug(f"No pool info: no pre-balance decimals for {fields.base_mint[:8]}..")
        return None

    if swapped:
        base_decimals, quote_decimals = SOL_DECIMALS, raw_base_decimals
    else:
        base_decimals, quote_decimals = raw_base_decimals, SOL_DECIMALS

    return PoolDescriptor(
        id=fields.id,
        base_mint=base_mint,
        quote_mint=quote_mint,
        lp_mint=fields.lp_mint,
        base_decimals=base_decimals,
        quote_decimals=quote_decimals,
        lp_decimals=fields.lp_decimals,
        version=POOL_VERSION,
        program_id=program_id,
        authority=fields.authority,
        open_orders=fields.open_orders,
        target_orders=fields.target_orders,
        base_vault=base_vault,
        quote_vault=quote_vault,
        withdraw_queue=WITHDRAW_QUEUE_PLACEHOLDER,
        lp_vault=fields.lp_vault,
        market_version=MARKET_VERSION,
        market_program_id=fields.market_program_id,
        market_id=fields.market_id,
        base_reserve=base_reserve,
        quote_reserve=quote_reserve,
        lp_reserve=fields.lp_reserve,
        open_time=fields.open_time,
    )


def build_pool_keys(
    pool: PoolDescriptor, market: MarketState, market_authority: str
) -> PoolKeys:
    return PoolKeys(
        id=pool.id,
        base_mint=pool.base_mint,
        quote_mint=pool.quote_mint,
        lp_mint=pool.lp_mint,
        base_decimals=pool.base_decimals,
        quote_decimals=pool.quote_decimals,
        lp_decimals=pool.lp_decimals,
        version=pool.version,
        program_id=pool.program_id,
        authority=pool.authority,
        open_orders=pool.open_orders,
        target_orders=pool.target_orders,
        base_vault=pool.base_vault,
        quote_vault=pool.quote_vault,
        withdraw_queue=pool.withdraw_queue,
        lp_vault=pool.lp_vault,
        market_version=pool.market_version,
        market_program_id=pool.market_program_id,
        market_id=pool.market_id,
        market_authority=market_authority,
        market_base_vault=market.base_vault,
        market_quote_vault=market.quote_vault,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
    )
