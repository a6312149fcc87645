"""
Binary account layouts and program-derived addresses.

MarketStateLayoutV3 is the 388-byte OpenBook market account Raydium AMM V4
pools trade against. Mint is the 82-byte SPL token mint record. Both are
decoded all-or-nothing: a buffer that does not match raises DecodeError.

Program-derived addresses go through solders' Pubkey, with the
nonce search for the market authority done here.
"""
from construct import (
    Adapter,
    Bytes,
    ConstructError,
    Flag,
    Int32ul,
    Int64ul,
    Int8ul,
    Padding,
    Struct,
)
from solders.pubkey import Pubkey

from raydium.constants import AUTHORITY_NONCE_LIMIT, AUTHORITY_SEED_PADDING
from raydium.state import MarketState, MintInfo


class DecodeError(Exception):
    """Account data does not match the expected layout."""


class OnCurveError(ValueError):
    """Derived address lies on the ed25519 curve (has a private key)."""


class AuthorityNotFound(Exception):
    """No nonce in the search range yields a program-derived address."""


class PubkeyAdapter(Adapter):
    """32 raw bytes <-> base58 text."""

    def _decode(self, obj, context, path):
        return str(Pubkey.from_bytes(bytes(obj)))

    def _encode(self, obj, context, path):
        return bytes(Pubkey.from_string(obj))


PUBKEY = PubkeyAdapter(Bytes(32))

MARKET_STATE_LAYOUT_V3 = Struct(
    Padding(13),
    "own_address" / PUBKEY,
    "vault_signer_nonce" / Int64ul,
    "base_mint" / PUBKEY,
    "quote_mint" / PUBKEY,
    "base_vault" / PUBKEY,
    "base_deposits_total" / Int64ul,
    "base_fees_accrued" / Int64ul,
    "quote_vault" / PUBKEY,
    "quote_deposits_total" / Int64ul,
    "quote_fees_accrued" / Int64ul,
    "quote_dust_threshold" / Int64ul,
    "request_queue" / PUBKEY,
    "event_queue" / PUBKEY,
    "bids" / PUBKEY,
    "asks" / PUBKEY,
    "base_lot_size" / Int64ul,
    "quote_lot_size" / Int64ul,
    "fee_rate_bps" / Int64ul,
    "referrer_rebates_accrued" / Int64ul,
    Padding(7),
)
MARKET_STATE_SIZE = MARKET_STATE_LAYOUT_V3.sizeof()  # 388

MINT_LAYOUT = Struct(
    "mint_authority_option" / Int32ul,
    "mint_authority" / PUBKEY,
    "supply" / Int64ul,
    "decimals" / Int8ul,
    "is_initialized" / Flag,
    "freeze_authority_option" / Int32ul,
    "freeze_authority" / PUBKEY,
)
MINT_SIZE = MINT_LAYOUT.sizeof()  # 82

_MARKET_FIELDS = tuple(MarketState.__dataclass_fields__)


def decode_market_state(data: bytes) -> MarketState:
    if len(data) != MARKET_STATE_SIZE:
        raise DecodeError(
            f"market account is {len(data)} bytes, expected {MARKET_STATE_SIZE}"
        )
    try:
        parsed = MARKET_STATE_LAYOUT_V3.parse(data)
    except ConstructError as e:
        raise DecodeError(f"market decode failed: {e}") from e
    return MarketState(**{name: parsed[name] for name in _MARKET_FIELDS})


def decode_mint(data: bytes) -> MintInfo:
    """
    Decode an SPL mint record. Token-2022 mints carry extensions after the
    base record, so only the first 82 bytes are read.
    """
    if len(data) < MINT_SIZE:
        raise DecodeError(f"mint account is {len(data)} bytes, expected {MINT_SIZE}")
    try:
        parsed = MINT_LAYOUT.parse(data[:MINT_SIZE])
    except ConstructError as e:
        raise DecodeError(f"mint decode failed: {e}") from e
    if not parsed.is_initialized:
        raise DecodeError("mint is not initialized")
    return MintInfo(
        mint_authority=parsed.mint_authority if parsed.mint_authority_option else None,
        supply=parsed.supply,
        decimals=parsed.decimals,
        is_initialized=True,
        freeze_authority=(
            parsed.freeze_authority if parsed.freeze_authority_option else None
        ),
    )


# ═══════════════════════════════════════════════════════════════
#  PROGRAM-DERIVED ADDRESSES
# ═══════════════════════════════════════════════════════════════

MAX_SEEDS = 16
MAX_SEED_LEN = 32


def decode_address(address: str) -> bytes:
    return bytes(Pubkey.from_string(address))


def create_program_address(seeds: list[bytes], program_id: str) -> str:
    """Seed limits are checked here, so a solders failure means on-curve."""
    if len(seeds) > MAX_SEEDS:
        raise ValueError(f"too many seeds: {len(seeds)}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise ValueError(f"seed longer than {MAX_SEED_LEN} bytes")

    program = Pubkey.from_string(program_id)
    try:
        derived = Pubkey.create_program_address(seeds, program)
    except Exception as e:
        raise OnCurveError(f"derived address is on curve: {e}") from e
    return str(derived)


def derive_authority(program_id: str, market_id: str) -> str:
    """
    Market vault-signer authority: first nonce in [0, 100) whose seeds
    (market, nonce, 7 zero bytes) give an off-curve address.
    """
    market_bytes = decode_address(market_id)
    for nonce in range(AUTHORITY_NONCE_LIMIT):
        try:
            return create_program_address(
                [market_bytes, bytes([nonce]), AUTHORITY_SEED_PADDING], program_id
            )
        except OnCurveError:
            continue
    raise AuthorityNotFound(
        f"no authority for market {market_id} under {program_id}"
    )
