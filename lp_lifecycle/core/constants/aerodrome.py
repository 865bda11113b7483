from eth_utils import to_checksum_address

# Aerodrome (Base) core addresses
# Source: https://github.com/aerodrome-finance/contracts (Base deployments)

# Tokens
BASE_AERO = to_checksum_address("0x940181a94A35A4569E4529A3CDfB74e38FD98631")

# Core protocol contracts
AERODROME_ROUTER = to_checksum_address("0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43")
AERODROME_POOL_FACTORY = to_checksum_address(
    "0x420DD381b31aEf6683db6B902084cB0FFECe40Da"
)
