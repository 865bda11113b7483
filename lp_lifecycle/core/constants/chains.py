CHAIN_ID_BASE = 8453

# the UserLPManager factory and the Aerodrome deployment it wraps live on Base only
SUPPORTED_CHAINS: tuple[int, ...] = (CHAIN_ID_BASE,)
