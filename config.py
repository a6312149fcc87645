"""
Configuration loader — reads .env and exposes all settings.
"""
import os
from dotenv import load_dotenv

from raydium.constants import RAYDIUM_AMM_V4

load_dotenv()


# ── Solana RPC ──────────────────────────────────────────────────
# Helius/Triton recommended. Public endpoint drops logsSubscribe often.
WSS_URL = os.getenv("WSS_URL", "")
RPC_URL = os.getenv("RPC_URL", "")
PROGRAM_ADDRESS = os.getenv("PROGRAM_ADDRESS", RAYDIUM_AMM_V4)

# ── Trade ──────────────────────────────────────────────────────
TRADE_SIZE_SOL = float(os.getenv("TRADE_SIZE_SOL", "0.005"))
MAX_OPEN_POSITIONS = int(os.getenv("MAX_OPEN_POSITIONS", "3"))
# Pause before fetching the next candidate while too many positions are open
THROTTLE_COOLDOWN_S = float(os.getenv("THROTTLE_COOLDOWN_S", "600"))

# ── Trust Thresholds ───────────────────────────────────────────
MIN_BURN_PCT = float(os.getenv("MIN_BURN_PCT", "80"))
BURN_POLL_INTERVAL_S = float(os.getenv("BURN_POLL_INTERVAL_S", "15"))
BURN_TIMEOUT_S = float(os.getenv("BURN_TIMEOUT_S", "220"))
MIN_LIQUIDITY_USD = float(os.getenv("MIN_LIQUIDITY_USD", "3000"))
MAX_HOLDER_PCT = float(os.getenv("MAX_HOLDER_PCT", "20"))

# ── RugCheck (second opinion) ──────────────────────────────────
RUGCHECK_ENABLED = os.getenv("RUGCHECK_ENABLED", "true").lower() == "true"
RUGCHECK_URL = os.getenv("RUGCHECK_URL", "https://api.rugcheck.xyz/v1")

# ── Fetch Retry ────────────────────────────────────────────────
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "3"))
FETCH_INITIAL_DELAY_S = float(os.getenv("FETCH_INITIAL_DELAY_S", "2"))
SEEN_SIGNATURES_CAPACITY = int(os.getenv("SEEN_SIGNATURES_CAPACITY", "10000"))

# ── Redis (execution hand-off) ─────────────────────────────────
REDIS_URL = os.getenv("REDIS_URL", "")
TRADING_CHANNEL = os.getenv("TRADING_CHANNEL", "trading")
OPEN_POSITIONS_KEY = os.getenv("OPEN_POSITIONS_KEY", "solsniper:open_positions")

# ── Mode ───────────────────────────────────────────────────────
DRY_RUN = os.getenv("DRY_RUN", "true").lower() == "true"

# ── Logging ────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def missing_required() -> list[str]:
    missing = [name for name in ("WSS_URL", "RPC_URL") if not globals()[name]]
    if not DRY_RUN and not REDIS_URL:
        missing.append("REDIS_URL")
    return missing
