def _view(name: str, inputs: list[tuple[str, str]], outputs: list[dict]) -> dict:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": outputs,
    }


def _write(name: str, inputs: list[tuple[str, str]]) -> dict:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [],
    }


def _event(name: str, inputs: list[tuple[str, str]]) -> dict:
    return {
        "name": name,
        "type": "event",
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": False} for n, t in inputs],
    }


_UINT = [{"type": "uint256"}]
_ADDRESS = [{"type": "address"}]

LIQUIDITY_ADDED_EVENT_INPUTS = [
    ("tokenA", "address"),
    ("tokenB", "address"),
    ("stable", "bool"),
    ("amountA", "uint256"),
    ("amountB", "uint256"),
    ("liquidity", "uint256"),
]
LIQUIDITY_REMOVED_EVENT_INPUTS = [
    ("tokenA", "address"),
    ("tokenB", "address"),
    ("stable", "bool"),
    ("amountA", "uint256"),
    ("amountB", "uint256"),
    ("liquidity", "uint256"),
]
REWARDS_CLAIMED_EVENT_INPUTS = [
    ("lpToken", "address"),
    ("rewardToken", "address"),
    ("amount", "uint256"),
]
FEES_CLAIMED_EVENT_INPUTS = [
    ("pool", "address"),
    ("amount0", "uint256"),
    ("amount1", "uint256"),
]

USER_LP_MANAGER_ABI = [
    _view("owner", [], _ADDRESS),
    _view("aerodromeRouter", [], _ADDRESS),
    _view("aerodromeFactory", [], _ADDRESS),
    _view("getTokenBalance", [("token", "address")], _UINT),
    _view(
        "getAerodromePools",
        [("tokenA", "address"), ("tokenB", "address")],
        [
            {"name": "stablePool", "type": "address"},
            {"name": "volatilePool", "type": "address"},
        ],
    ),
    _view("getGaugeForPool", [("lpToken", "address")], _ADDRESS),
    _view("getGaugeBalance", [("lpToken", "address")], _UINT),
    _view("getEarnedRewards", [("lpToken", "address")], _UINT),
    _view("getRewardToken", [("lpToken", "address")], _ADDRESS),
    _view(
        "getClaimableRewards",
        [("lpToken", "address")],
        [
            {"name": "amount", "type": "uint256"},
            {"name": "rewardToken", "type": "address"},
        ],
    ),
    _view(
        "getPositions",
        [],
        [
            {
                "name": "",
                "type": "tuple[]",
                "components": [
                    {"name": "tokenAddress", "type": "address"},
                    {"name": "balance", "type": "uint256"},
                ],
            }
        ],
    ),
    _write("depositTokens", [("token", "address"), ("amount", "uint256")]),
    _write(
        "withdrawTokens",
        [("token", "address"), ("to", "address"), ("amount", "uint256")],
    ),
    _write("withdrawETH", [("amount", "uint256")]),
    _write("withdraw", [("token", "address"), ("amount", "uint256")]),
    _write(
        "addLiquidityAerodrome",
        [
            ("tokenA", "address"),
            ("tokenB", "address"),
            ("stable", "bool"),
            ("amountADesired", "uint256"),
            ("amountBDesired", "uint256"),
            ("amountAMin", "uint256"),
            ("amountBMin", "uint256"),
            ("deadline", "uint256"),
        ],
    ),
    _write(
        "removeLiquidityAerodrome",
        [
            ("tokenA", "address"),
            ("tokenB", "address"),
            ("stable", "bool"),
            ("liquidity", "uint256"),
            ("amountAMin", "uint256"),
            ("amountBMin", "uint256"),
            ("deadline", "uint256"),
        ],
    ),
    _write("stakeLPTokens", [("lpToken", "address"), ("amount", "uint256")]),
    # amount == 0 unstakes the whole gauge balance
    _write("unstakeLPTokens", [("lpToken", "address"), ("amount", "uint256")]),
    _write("claimRewards", [("lpToken", "address")]),
    _view(
        "getClaimableFees",
        [("tokenA", "address"), ("tokenB", "address"), ("stable", "bool")],
        [
            {"name": "lpBalance", "type": "uint256"},
            {"name": "claimable0", "type": "uint256"},
            {"name": "claimable1", "type": "uint256"},
        ],
    ),
    _write(
        "claimFees",
        [("tokenA", "address"), ("tokenB", "address"), ("stable", "bool")],
    ),
    _event("AerodromeLiquidityAdded", LIQUIDITY_ADDED_EVENT_INPUTS),
    _event("AerodromeLiquidityRemoved", LIQUIDITY_REMOVED_EVENT_INPUTS),
    _event("RewardsClaimed", REWARDS_CLAIMED_EVENT_INPUTS),
    _event("FeesClaimed", FEES_CLAIMED_EVENT_INPUTS),
]

USER_LP_MANAGER_FACTORY_ABI = [
    _view("aerodromeRouter", [], _ADDRESS),
    _view("getUserManager", [("user", "address")], _ADDRESS),
]
