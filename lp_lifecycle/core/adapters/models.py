from pydantic import BaseModel, ConfigDict


class DecodedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_hash: str | None = None


class LiquidityAdded(DecodedEvent):
    token_a: str
    token_b: str
    stable: bool
    amount_a: int
    amount_b: int
    liquidity: int
    # LP token minted to the manager; the pool contract is the LP token
    pool: str | None = None


class LiquidityRemoved(DecodedEvent):
    token_a: str
    token_b: str
    stable: bool
    amount_a: int
    amount_b: int
    liquidity: int


class RewardsClaimed(DecodedEvent):
    lp_token: str
    reward_token: str
    amount: int


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_address: str
    balance: int


class FeesClaimed(DecodedEvent):
    # amounts follow the pool's token0/token1 order, not the caller's pair order
    pool: str
    amount0: int
    amount1: int


class ClaimableFees(BaseModel):
    model_config = ConfigDict(frozen=True)

    lp_balance: int
    claimable0: int
    claimable1: int
