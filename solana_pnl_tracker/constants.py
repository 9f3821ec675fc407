# =========================
# Mints
# =========================

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
JUP_MINT = "JUPyiwrYFCKSxgErm6QdRTxgj4BA6uEjVrDPctE9D2Ad"
STABLE_MINTS = {USDC_MINT, USDT_MINT}

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# Native SOL is never tracked as an SPL mint; positions collapse onto this key.
NATIVE_KEY = "SOL"
NATIVE_SYMBOL = "SOL"
NATIVE_ADDRESS = "Solana"
LAMPORTS_PER_SOL = 1e9

KNOWN_TOKENS = {
    SOL_MINT: ("SOL", "Solana"),
    USDC_MINT: ("USDC", "USD Coin"),
    USDT_MINT: ("USDT", "Tether"),
    JUP_MINT: ("JUP", "Jupiter"),
}

# =========================
# Trade sides
# =========================

BUY = "BUY"
SELL = "SELL"
SWAP = "SWAP"

# =========================
# RPC / retry defaults
# =========================

RPC_THROTTLE_MS = 300
RPC_MAX_CONCURRENCY = 4
RPC_TIMEOUT_SEC = 60
RPC_SIGNATURE_PAGE_MAX = 1000

RETRY_MAX_RETRIES = 5
RETRY_BASE_DELAY_SEC = 0.5
RETRY_GROWTH = 1.8
RETRY_MAX_DELAY_SEC = 5.0
RETRY_MAX_JITTER_SEC = 0.2

BACKFILL_MAX_TX = 10
PRICE_CACHE_SECONDS = 30
PRICE_CACHE_MIN_SECONDS = 5
