"""Escrow spec configuration constants."""

# Identities
ADDRESS_SIZE = 32
ZERO_ADDRESS = bytes(ADDRESS_SIZE)
ESCROW_ID_SIZE = 32

# Amounts
U64_MAX = (1 << 64) - 1

# Free-text / opaque payload limits
MAX_REASON_LEN = 1024
MAX_EVIDENCE_LEN = 1024

# Time units (seconds)
ONE_HOUR = 3600
ONE_DAY = 24 * ONE_HOUR

# Default arbitration windows
DEFAULT_DISPUTE_WINDOW = 7 * ONE_DAY
DEFAULT_RESPONSE_WINDOW = 3 * ONE_DAY
DEFAULT_AUTO_RESOLVE_TIMEOUT = 14 * ONE_DAY

# Domain separators for derived identifiers
DISPUTE_ID_DOMAIN = b"escrow-spec/dispute-id/v1"
ADDRESS_DOMAIN = b"escrow-spec/address/v1"
STATE_DIGEST_DOMAIN = b"escrow-spec/state-digest/v1"

# Environment variables read by ArbitrationSettings.from_env
ENV_DISPUTE_WINDOW = "ESCROW_DISPUTE_WINDOW"
ENV_RESPONSE_WINDOW = "ESCROW_RESPONSE_WINDOW"
ENV_AUTO_RESOLVE_TIMEOUT = "ESCROW_AUTO_RESOLVE_TIMEOUT"
