GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Lifecycle defaults
DEFAULT_SLIPPAGE_TOLERANCE = 0.05
DEFAULT_DEADLINE_WINDOW_SECONDS = 20 * 60
DEFAULT_REWARD_WAIT_SECONDS = 5
DEFAULT_TOKEN_DECIMALS = 18
MAX_TOKEN_DECIMALS = 18
LP_TOKEN_DECIMALS = 18

# Timeout constants (seconds)
# Base L2 (and some RPC providers) can occasionally take >2 minutes to index/return receipts,
# even if the transaction is eventually mined.
DEFAULT_TRANSACTION_TIMEOUT = 300
DEFAULT_RECEIPT_POLL_INTERVAL = 0.1
DEFAULT_CONFIRMATIONS = 1
