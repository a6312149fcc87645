"""
Shared fakes and builders for the test scripts.
"""
import struct

from solders.pubkey import Pubkey

from raydium.constants import RAYDIUM_AMM_V4, TOKEN_PROGRAM, WSOL
from raydium.rpc import AccountNotFound, LogNotification
from raydium.safety import TrustVerdict
from raydium.state import PoolDescriptor, TokenAmount


def addr(i: int) -> str:
    """Deterministic base58 address (i >= 1; 0 would be the system program)."""
    return str(Pubkey.from_bytes(bytes([i]) * 32))


def raw(address: str) -> bytes:
    return bytes(Pubkey.from_string(address))


TOKEN_MINT = addr(1)
LP_MINT = addr(2)
POOL_ID = addr(3)
MARKET_ID = addr(4)
MARKET_PROGRAM = addr(5)
LP_VAULT = addr(6)


# ── Account blobs ────────────────────────────────────────────


def mint_blob(
    supply: int,
    decimals: int = 9,
    mint_authority: str | None = None,
    freeze_authority: str | None = None,
    initialized: bool = True,
    extra: bytes = b"",
) -> bytes:
    return struct.pack(
        "<I32sQBBI32s",
        1 if mint_authority else 0,
        raw(mint_authority) if mint_authority else bytes(32),
        supply,
        decimals,
        1 if initialized else 0,
        1 if freeze_authority else 0,
        raw(freeze_authority) if freeze_authority else bytes(32),
    ) + extra


MARKET_DEFAULTS = dict(
    own_address=MARKET_ID,
    vault_signer_nonce=1,
    base_mint=TOKEN_MINT,
    quote_mint=WSOL,
    base_vault=addr(40),
    base_deposits_total=0,
    base_fees_accrued=0,
    quote_vault=addr(41),
    quote_deposits_total=0,
    quote_fees_accrued=0,
    quote_dust_threshold=500,
    request_queue=addr(42),
    event_queue=addr(43),
    bids=addr(44),
    asks=addr(45),
    base_lot_size=1_000_000,
    quote_lot_size=1_000,
    fee_rate_bps=25,
    referrer_rebates_accrued=7,
)


def market_blob(**overrides) -> bytes:
    f = dict(MARKET_DEFAULTS, **overrides)
    return b"".join([
        bytes(13),
        raw(f["own_address"]),
        struct.pack("<Q", f["vault_signer_nonce"]),
        raw(f["base_mint"]),
        raw(f["quote_mint"]),
        raw(f["base_vault"]),
        struct.pack("<QQ", f["base_deposits_total"], f["base_fees_accrued"]),
        raw(f["quote_vault"]),
        struct.pack(
            "<QQQ",
            f["quote_deposits_total"],
            f["quote_fees_accrued"],
            f["quote_dust_threshold"],
        ),
        raw(f["request_queue"]),
        raw(f["event_queue"]),
        raw(f["bids"]),
        raw(f["asks"]),
        struct.pack(
            "<QQQQ",
            f["base_lot_size"],
            f["quote_lot_size"],
            f["fee_rate_bps"],
            f["referrer_rebates_accrued"],
        ),
        bytes(7),
    ])


# ── Transactions ─────────────────────────────────────────────

INIT_LOG = (
    "Program log: initialize2: InitializeInstruction2 { nonce: 254, "
    "open_time: 1712345678, init_pc_amount: 79000000000, "
    "init_coin_amount: 206900000000000 }"
)


def pool_accounts(coin_mint: str = TOKEN_MINT, pc_mint: str = WSOL) -> list[str]:
    accounts = [addr(100 + i) for i in range(21)]
    accounts[4] = POOL_ID
    accounts[7] = LP_MINT
    accounts[8] = coin_mint
    accounts[9] = pc_mint
    accounts[15] = MARKET_PROGRAM
    accounts[16] = MARKET_ID
    return accounts


def token_ix(kind: str, program_id: str = TOKEN_PROGRAM, **info) -> dict:
    return {
        "program": "spl-token",
        "programId": program_id,
        "parsed": {"type": kind, "info": info},
        "stackHeight": 2,
    }


def make_pool_tx(
    coin_mint: str = TOKEN_MINT,
    pc_mint: str = WSOL,
    coin_amount: int = 206_900_000_000_000,
    pc_amount: int = 79_000_000_000,
    lp_reserve: int = 1000 * 10**9,
    lp_decimals: int = 9,
    token_decimals: int = 6,
    with_mint_to: bool = True,
    logs: list[str] | None = None,
) -> dict:
    accounts = pool_accounts(coin_mint, pc_mint)
    coin_vault, pc_vault = accounts[10], accounts[11]
    inner = [
        {
            "program": "system",
            "programId": "11111111111111111111111111111111",
            "parsed": {
                "type": "transfer",
                "info": {"source": addr(60), "destination": addr(61), "lamports": 2039280},
            },
        },
        token_ix("initializeMint", mint=LP_MINT, decimals=lp_decimals,
                 mintAuthority=accounts[5]),
        token_ix("transfer", source=addr(62), destination=coin_vault,
                 amount=str(coin_amount), authority=addr(60)),
        token_ix("transfer", source=addr(63), destination=pc_vault,
                 amount=str(pc_amount), authority=addr(60)),
    ]
    if with_mint_to:
        inner.append(token_ix("mintTo", mint=LP_MINT, account=LP_VAULT,
                              amount=str(lp_reserve), mintAuthority=accounts[5]))

    token = coin_mint if coin_mint != WSOL else pc_mint
    return {
        "slot": 260_000_000,
        "transaction": {
            "signatures": ["sig"],
            "message": {
                "instructions": [
                    {
                        "programId": "ComputeBudget111111111111111111111111111111",
                        "accounts": [],
                        "data": "3DTZbgwsozUF",
                    },
                    {"programId": RAYDIUM_AMM_V4, "accounts": accounts, "data": "4YxqLnp2"},
                ],
            },
        },
        "meta": {
            "err": None,
            "innerInstructions": [{"index": 1, "instructions": inner}],
            "logMessages": logs if logs is not None else [
                f"Program {RAYDIUM_AMM_V4} invoke [1]",
                INIT_LOG,
                f"Program {RAYDIUM_AMM_V4} success",
            ],
            "preTokenBalances": [
                {
                    "accountIndex": 3,
                    "mint": token,
                    "owner": addr(60),
                    "uiTokenAmount": {"amount": "1", "decimals": token_decimals},
                },
                {
                    "accountIndex": 4,
                    "mint": WSOL,
                    "owner": addr(60),
                    "uiTokenAmount": {"amount": "1", "decimals": 9},
                },
            ],
        },
    }


def make_pool(**overrides) -> PoolDescriptor:
    """A normalized pool: TOKEN_MINT base, WSOL quote."""
    defaults = dict(
        id=POOL_ID,
        base_mint=TOKEN_MINT,
        quote_mint=WSOL,
        lp_mint=LP_MINT,
        base_decimals=6,
        quote_decimals=9,
        lp_decimals=9,
        version=4,
        program_id=RAYDIUM_AMM_V4,
        authority=addr(105),
        open_orders=addr(106),
        target_orders=addr(113),
        base_vault=addr(110),
        quote_vault=addr(111),
        withdraw_queue="11111111111111111111111111111111",
        lp_vault=LP_VAULT,
        market_version=3,
        market_program_id=MARKET_PROGRAM,
        market_id=MARKET_ID,
        base_reserve=206_900_000_000_000,
        quote_reserve=79_000_000_000,
        lp_reserve=1000 * 10**9,
        open_time=1712345678,
    )
    defaults.update(overrides)
    return PoolDescriptor(**defaults)


def init_note(signature: str = "5sig", err=None) -> LogNotification:
    return LogNotification(
        signature=signature,
        logs=[f"Program {RAYDIUM_AMM_V4} invoke [1]", INIT_LOG],
        err=err,
    )


# ── Fakes ────────────────────────────────────────────────────


def _next_outcome(store: dict, key: str, error=None):
    """
    Stored values may be a single outcome or a list consumed one per call
    (the last entry repeats). Exception instances are raised.
    """
    if key not in store:
        raise error or AccountNotFound(f"account {key[:8]}... not found")
    outcome = store[key]
    if isinstance(outcome, list):
        outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class FakeClock:
    """Virtual time: sleep() records the delay and advances the clock."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRpc:
    def __init__(
        self,
        accounts=None,
        transactions=None,
        balances=None,
        supplies=None,
        largest=None,
        owners=None,
    ):
        self.accounts = accounts or {}
        self.transactions = transactions or {}
        self.balances = balances or {}
        self.supplies = supplies or {}
        self.largest = largest or {}
        self.owners = owners or {}
        self.calls: list[tuple[str, str]] = []

    def count(self, method: str, key: str | None = None) -> int:
        return sum(1 for m, k in self.calls if m == method and (key is None or k == key))

    async def get_transaction(self, signature: str) -> dict:
        self.calls.append(("get_transaction", signature))
        return _next_outcome(self.transactions, signature)

    async def get_account_data(self, address: str) -> bytes:
        self.calls.append(("get_account_data", address))
        return _next_outcome(self.accounts, address)

    async def get_token_account_balance(self, account: str) -> TokenAmount:
        self.calls.append(("get_token_account_balance", account))
        return _next_outcome(self.balances, account)

    async def get_token_supply(self, mint: str) -> TokenAmount:
        self.calls.append(("get_token_supply", mint))
        return _next_outcome(self.supplies, mint)

    async def get_token_largest_accounts(self, mint: str) -> list[tuple[str, int]]:
        self.calls.append(("get_token_largest_accounts", mint))
        # The stored list is the whole ranking, never a queue of outcomes
        if mint not in self.largest:
            raise AccountNotFound(f"mint {mint[:8]}... not found")
        largest = self.largest[mint]
        if isinstance(largest, Exception):
            raise largest
        return list(largest)

    async def get_token_account_owners(self, accounts: list[str]) -> dict[str, str]:
        self.calls.append(("get_token_account_owners", ",".join(accounts)))
        return {a: self.owners[a] for a in accounts if a in self.owners}


class FakePrice:
    def __init__(self, price: float = 150.0, error: Exception | None = None):
        self.price = price
        self.error = error
        self.calls: list[str] = []

    async def get_usd_price(self, mint: str) -> float:
        self.calls.append(mint)
        if self.error is not None:
            raise self.error
        return self.price


class FakeReport:
    def __init__(self, report=None, error: Exception | None = None):
        self.report = report
        self.error = error
        self.calls: list[str] = []

    async def fetch_report(self, mint: str):
        self.calls.append(mint)
        if self.error is not None:
            raise self.error
        return self.report


class FakePositions:
    def __init__(self, counts=(0,)):
        self.counts = list(counts)
        self.calls = 0

    async def count(self) -> int:
        self.calls += 1
        return self.counts.pop(0) if len(self.counts) > 1 else self.counts[0]


class FakeSender:
    def __init__(self):
        self.commands = []

    async def send_buy(self, command):
        self.commands.append(command)


class FakePipeline:
    def __init__(self, verdict: TrustVerdict | None = None, error: Exception | None = None):
        self.verdict = verdict or TrustVerdict.accept()
        self.error = error
        self.pools: list[PoolDescriptor] = []

    async def evaluate(self, pool: PoolDescriptor) -> TrustVerdict:
        self.pools.append(pool)
        if self.error is not None:
            raise self.error
        return self.verdict


class FakeRedis:
    def __init__(self, receivers: int = 1, members: int = 0):
        self.receivers = receivers
        self.members = members
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return self.receivers

    async def scard(self, key: str) -> int:
        return self.members
