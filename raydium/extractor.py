"""
Pool-creation field extraction from a jsonParsed transaction.

Sources inside one confirmed initialize2 transaction:
  - top-level Raydium instruction  → fixed-position accounts
  - inner initializeMint (lp mint) → lp decimals
  - inner mintTo (lp mint)         → lp reserve + lp vault; absence means
                                     the tx did not create a pool
  - inner transfers into vaults    → base/quote reserves
  - "init_pc_amount" log line      → open_time
  - preTokenBalances               → token decimals
"""
import json
import logging
import re
from dataclasses import dataclass

from raydium.constants import (
    INIT_LOG_MARKER,
    RAYDIUM_IX_AMM,
    RAYDIUM_IX_AUTHORITY,
    RAYDIUM_IX_COIN_MINT,
    RAYDIUM_IX_COIN_VAULT,
    RAYDIUM_IX_LP_MINT,
    RAYDIUM_IX_MARKET,
    RAYDIUM_IX_MARKET_PROGRAM,
    RAYDIUM_IX_OPEN_ORDERS,
    RAYDIUM_IX_PC_MINT,
    RAYDIUM_IX_PC_VAULT,
    RAYDIUM_IX_TARGET_ORDERS,
    TOKEN_PROGRAM,
)
from raydium.instructions import (
    ExtractionError,
    InitializeMint,
    MintTo,
    MissingField,
    PartiallyDecoded,
    Transfer,
    iter_inner,
    parse_instruction,
)

logger = logging.getLogger("ray_extract")


class NoPoolInstruction(ExtractionError):
    """No top-level instruction targets the AMM program."""


class NotPoolCreation(ExtractionError):
    """No lp mintTo: the transaction did not initialize a pool."""


class MalformedLogEntry(ExtractionError):
    """The init_pc_amount log entry could not be repaired into JSON."""


@dataclass(frozen=True)
class PoolFields:
    """Raw pool fields, base/quote exactly as the instruction orders them."""

    id: str
    authority: str
    open_orders: str
    target_orders: str
    lp_mint: str
    base_mint: str
    quote_mint: str
    base_vault: str
    quote_vault: str
    market_program_id: str
    market_id: str
    lp_vault: str
    lp_decimals: int
    base_reserve: int
    quote_reserve: int
    lp_reserve: int
    open_time: int


# ── Instruction lookups ──────────────────────────────────────


def find_program_instruction(instructions: list[dict], program_id: str) -> PartiallyDecoded:
    """First top-level instruction of program_id (scan order)."""
    for raw in instructions:
        ix = parse_instruction(raw)
        if isinstance(ix, PartiallyDecoded) and ix.program_id == program_id:
            return ix
    raise NoPoolInstruction(f"no instruction for {program_id}")


def find_initialize_mint(inner_groups: list[dict], mint: str) -> InitializeMint | None:
    for ix in iter_inner(inner_groups):
        if isinstance(ix, InitializeMint) and ix.mint == mint:
            return ix
    return None


def find_mint_to(inner_groups: list[dict], mint: str) -> MintTo | None:
    for ix in iter_inner(inner_groups):
        if isinstance(ix, MintTo) and ix.mint == mint:
            return ix
    return None


def find_transfer_to(
    inner_groups: list[dict], destination: str, program_id: str | None = None
) -> Transfer | None:
    for ix in iter_inner(inner_groups):
        if not isinstance(ix, Transfer) or ix.destination != destination:
            continue
        if program_id is None or ix.program_id == program_id:
            return ix
    return None


# ── Log entries ──────────────────────────────────────────────


def find_log_entry(marker: str, logs: list[str]) -> str | None:
    for line in logs:
        if marker in line:
            return line
    return None


_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def repair_relaxed_json(text: str) -> str:
    """{ nonce: 254, open_time: 17 } → {"nonce": 254, "open_time": 17}"""
    fixed = text.replace("'", '"')
    fixed = _BARE_KEY.sub(r'\1"\2":', fixed)
    return _TRAILING_COMMA.sub(r"\1", fixed)


def parse_init_log_entry(line: str) -> dict:
    start = line.find("{")
    if start < 0:
        raise MalformedLogEntry(f"no payload in log entry: {line[:80]}")
    payload = line[start:]
    try:
        data = json.loads(repair_relaxed_json(payload))
    except json.JSONDecodeError as e:
        raise MalformedLogEntry(f"unparseable log payload: {e}") from e
    if not isinstance(data, dict):
        raise MalformedLogEntry("log payload is not an object")
    return data


def extract_open_time(logs: list[str]) -> int:
    line = find_log_entry(INIT_LOG_MARKER, logs)
    if line is None:
        raise MissingField(INIT_LOG_MARKER)
    open_time = parse_init_log_entry(line).get("open_time")
    if not isinstance(open_time, int) or isinstance(open_time, bool):
        raise MissingField("open_time")
    return open_time


# ── Token balances ───────────────────────────────────────────


def find_pre_balance_decimals(pre_balances: list[dict], mint: str) -> int | None:
    for balance in pre_balances:
        if balance.get("mint") != mint:
            continue
        decimals = (balance.get("uiTokenAmount") or {}).get("decimals")
        if isinstance(decimals, int):
            return decimals
    return None


# ── Entry point ──────────────────────────────────────────────


def _account(accounts: tuple, index: int, name: str) -> str:
    if len(accounts) <= index:
        raise MissingField(name)
    return accounts[index]


def extract_pool_fields(tx: dict, program_id: str) -> PoolFields:
    """
    Pull every pool field out of a getTransaction(jsonParsed) result.
    Raises an ExtractionError subclass naming the first missing piece.
    """
    transaction = tx.get("transaction")
    meta = tx.get("meta")
    if not isinstance(transaction, dict) or not isinstance(meta, dict):
        raise NoPoolInstruction("transaction is not jsonParsed")

    instructions = (transaction.get("message") or {}).get("instructions") or []
    inner_groups = meta.get("innerInstructions") or []
    logs = meta.get("logMessages") or []

    init_ix = find_program_instruction(instructions, program_id)
    accounts = init_ix.accounts

    lp_mint = _account(accounts, RAYDIUM_IX_LP_MINT, "lp_mint")
    base_vault = _account(accounts, RAYDIUM_IX_COIN_VAULT, "base_vault")
    quote_vault = _account(accounts, RAYDIUM_IX_PC_VAULT, "quote_vault")

    lp_mint_to = find_mint_to(inner_groups, lp_mint)
    if lp_mint_to is None:
        raise NotPoolCreation(f"no mintTo for lp mint {lp_mint}")

    lp_init = find_initialize_mint(inner_groups, lp_mint)
    if lp_init is None:
        raise MissingField("lp_decimals")

    base_transfer = find_transfer_to(inner_groups, base_vault, TOKEN_PROGRAM)
    if base_transfer is None:
        raise MissingField("base_reserve")
    quote_transfer = find_transfer_to(inner_groups, quote_vault, TOKEN_PROGRAM)
    if quote_transfer is None:
        raise MissingField("quote_reserve")

    return PoolFields(
        id=_account(accounts, RAYDIUM_IX_AMM, "id"),
        authority=_account(accounts, RAYDIUM_IX_AUTHORITY, "authority"),
        open_orders=_account(accounts, RAYDIUM_IX_OPEN_ORDERS, "open_orders"),
        target_orders=_account(accounts, RAYDIUM_IX_TARGET_ORDERS, "target_orders"),
        lp_mint=lp_mint,
        base_mint=_account(accounts, RAYDIUM_IX_COIN_MINT, "base_mint"),
        quote_mint=_account(accounts, RAYDIUM_IX_PC_MINT, "quote_mint"),
        base_vault=base_vault,
        quote_vault=quote_vault,
        market_program_id=_account(accounts, RAYDIUM_IX_MARKET_PROGRAM, "market_program_id"),
        market_id=_account(accounts, RAYDIUM_IX_MARKET, "market_id"),
        lp_vault=lp_mint_to.account,
        lp_decimals=lp_init.decimals,
        base_reserve=base_transfer.amount,
        quote_reserve=quote_transfer.amount,
        lp_reserve=lp_mint_to.amount,
        open_time=extract_open_time(logs),
    )
