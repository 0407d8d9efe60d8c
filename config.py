# config.py
# Configuration

# HTTP RPC endpoints of the chain the distributor lives on (tried in order)
RPC_LIST = [
    "https://arb1.arbitrum.io/rpc",
    "https://arbitrum.drpc.org",
    "https://arbitrum-one.publicnode.com",
]

# Number of RPC retry attempts (per RPC entry)
RPC_TRY = 3

# Chain ID for Arbitrum One (used for validation)
CHAIN_ID = 42161

# WebSocket endpoint of the chain whose block height opens the claim window
WSS_RPC = "wss://ethereum-rpc.publicnode.com"

# Optional HTTP proxy for RPC requests (None to disable)
HTTP_PROXY = None

# Address of the token distributor contract
DISTRIBUTOR_ADDRESS = "0x67a24CE4321aB3aF51c2D0a4801c3E111D88C9d9"

# Address of the $ARB token contract
TOKEN_ADDRESS = "0x912CE59144191C1204E64559FE8253a0e49E6548"

# Paths to ABI files
DISTRIBUTOR_ABI_PATH = "abis/distributor.json"
ERC20_ABI_PATH = "abis/erc20.json"

# Path to Excel file with accounts (private_key, optional cex_deposit_address)
EXCEL_PATH = "wallets.xlsx"

# Gas estimation: ESTIMATE_GAS=False always uses DEFAULT_GAS_LIMIT,
# ESTIMATE_ONCE=True measures once and shares the result between accounts
ESTIMATE_GAS = True
ESTIMATE_ONCE = True
DEFAULT_GAS_LIMIT = 2_000_000

# Maximum acceptable fee per claim transaction (in ETH)
MAX_FEE_AMOUNT = 0.01

# Claim attempts per account before giving up
MAX_CLAIM_ATTEMPTS = 25

# Delay before retrying when the inflated gas cost is above MAX_FEE_AMOUNT (seconds)
OVER_CEILING_DELAY_SEC = 0.5

# Delay after a network error before the next attempt (seconds)
RETRY_DELAY_SEC = 2

# Number of transfer attempts per account
TRANSFER_RETRIES = 3

# Safety multiplier for estimated transfer gas
TRANSFER_GAS_MULTIPLIER = 1.2

# Transaction timeout in seconds
TX_TIMEOUT = 120

# WebSocket keep-alive (seconds)
KEEP_ALIVE_CHECK_INTERVAL = 5
EXPECTED_PONG_BACK = 10

# Reconnect backoff (seconds): doubles per failed connection, capped
RECONNECT_DELAY_SEC = 1
RECONNECT_MAX_DELAY_SEC = 30

# Process exit status once every account has reported
EXIT_CODE = 0

# Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
LOG_LEVEL = "INFO"

# Log file path
LOG_FILE = "claim_log.txt"
