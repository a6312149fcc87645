"""
Raydium pool records.

Everything here is built once and never mutated, except SeenSignatures,
the listener's bounded memory of signatures it already dispatched.
"""
from collections import OrderedDict
from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class MarketState:
    """OpenBook market account (MarketStateLayoutV3), addresses as base58."""

    own_address: str
    vault_signer_nonce: int
    base_mint: str
    quote_mint: str
    base_vault: str
    base_deposits_total: int
    base_fees_accrued: int
    quote_vault: str
    quote_deposits_total: int
    quote_fees_accrued: int
    quote_dust_threshold: int
    request_queue: str
    event_queue: str
    bids: str
    asks: str
    base_lot_size: int
    quote_lot_size: int
    fee_rate_bps: int
    referrer_rebates_accrued: int


@dataclass(frozen=True)
class MintInfo:
    """SPL token mint record. None authority = revoked."""

    mint_authority: str | None
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: str | None


@dataclass(frozen=True)
class TokenAmount:
    amount: int
    decimals: int

    @property
    def ui_amount(self) -> float:
        return self.amount / 10 ** self.decimals


@dataclass(frozen=True)
class Holder:
    owner: str
    pct: float


@dataclass(frozen=True)
class PoolDescriptor:
    """
    Canonical description of a freshly initialized AMM V4 pool.

    Base/quote are normalized: the wrapped-SOL side is never the base.
    Reserves are in smallest units, open_time in unix seconds.
    """

    id: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int
    program_id: str
    authority: str
    open_orders: str
    target_orders: str
    base_vault: str
    quote_vault: str
    withdraw_queue: str
    lp_vault: str
    market_version: int
    market_program_id: str
    market_id: str
    base_reserve: int
    quote_reserve: int
    lp_reserve: int
    open_time: int


@dataclass(frozen=True)
class PoolKeys:
    """String-serialized pool + market keys handed to the execution process."""

    id: str
    base_mint: str
    quote_mint: str
    lp_mint: str
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int
    program_id: str
    authority: str
    open_orders: str
    target_orders: str
    base_vault: str
    quote_vault: str
    withdraw_queue: str
    lp_vault: str
    market_version: int
    market_program_id: str
    market_id: str
    market_authority: str
    market_base_vault: str
    market_quote_vault: str
    market_bids: str
    market_asks: str
    market_event_queue: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BuyCommand:
    input_token: str
    output_token: str
    input_amount: float
    pool_keys: PoolKeys
    lp_decimals: int
    action: str = field(default="buy")

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "input_token": self.input_token,
            "output_token": self.output_token,
            "input_amount": self.input_amount,
            "pool_keys": self.pool_keys.to_dict(),
            "lp_decimals": self.lp_decimals,
        }


class SeenSignatures:
    """
    Fixed-capacity LRU of transaction signatures.

    The stream may deliver the same pool-creation event more than once;
    remembering the most recent signatures is enough to dispatch each one
    once. The oldest entry is evicted when capacity is reached.
    """

    def __init__(self, capacity: int = 10_000):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[str, None] = OrderedDict()
        self.evicted: int = 0

    def add(self, signature: str) -> bool:
        """Record a signature. Returns False if it was already present."""
        if signature in self._entries:
            self._entries.move_to_end(signature)
            return False
        self._entries[signature] = None
        if len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evicted += 1
        return True

    def __contains__(self, signature: str) -> bool:
        return signature in self._entries

    def __len__(self) -> int:
        return len(self._entries)
