"""
Solana program IDs, addresses and fixed layout constants for Raydium
AMM V4 pool detection.
"""

# ═══════════════════════════════════════════════════════════════
#  SOLANA TOKEN ADDRESSES
# ═══════════════════════════════════════════════════════════════

# Wrapped SOL (SPL token)
WSOL = "So11111111111111111111111111111111111111112"
SOL_DECIMALS = 9

# SPL Token Programs
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SYSTEM_PROGRAM = "11111111111111111111111111111111"

# ═══════════════════════════════════════════════════════════════
#  DEX PROGRAM IDS
# ═══════════════════════════════════════════════════════════════

RAYDIUM_AMM_V4 = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"

# Owner of every AMM V4 vault. A healthy new pool is its token's top holder.
RAYDIUM_AUTHORITY_V4 = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"

POOL_VERSION = 4
MARKET_VERSION = 3

# AMM V4 pools no longer use a withdraw queue; the system program
# address stands in for "unused".
WITHDRAW_QUEUE_PLACEHOLDER = SYSTEM_PROGRAM

# ═══════════════════════════════════════════════════════════════
#  POOL CREATION LOG MARKER
#
#  initialize2 logs a relaxed-JSON line such as:
#    Program log: initialize2: InitializeInstruction2 { nonce: 254,
#      open_time: 1712345678, init_pc_amount: 79000000000, ... }
# ═══════════════════════════════════════════════════════════════

INIT_LOG_MARKER = "init_pc_amount"

# ═══════════════════════════════════════════════════════════════
#  RAYDIUM INITIALIZE2 — INSTRUCTION ACCOUNT INDICES
#
#  Fixed account order of the initialize2 instruction.
# ═══════════════════════════════════════════════════════════════

RAYDIUM_IX_AMM = 4
RAYDIUM_IX_AUTHORITY = 5
RAYDIUM_IX_OPEN_ORDERS = 6
RAYDIUM_IX_LP_MINT = 7
RAYDIUM_IX_COIN_MINT = 8
RAYDIUM_IX_PC_MINT = 9
RAYDIUM_IX_COIN_VAULT = 10
RAYDIUM_IX_PC_VAULT = 11
RAYDIUM_IX_TARGET_ORDERS = 13
RAYDIUM_IX_MARKET_PROGRAM = 15
RAYDIUM_IX_MARKET = 16

# ═══════════════════════════════════════════════════════════════
#  MARKET AUTHORITY DERIVATION
# ═══════════════════════════════════════════════════════════════

AUTHORITY_NONCE_LIMIT = 100
AUTHORITY_SEED_PADDING = bytes(7)
