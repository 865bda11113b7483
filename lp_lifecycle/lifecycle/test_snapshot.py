import pytest

from lp_lifecycle.lifecycle.config import AERO, USDC
from lp_lifecycle.lifecycle.errors import SnapshotError
from lp_lifecycle.lifecycle.snapshot import BalanceSnapshotter
from lp_lifecycle.lifecycle.types import Holder


class DictReader:
    def __init__(self, balances, failing=()):
        self.balances = balances
        self.failing = set(failing)
        self.reads = []

    async def read_balance(self, holder, token):
        self.reads.append((holder, token))
        if (holder, token) in self.failing:
            raise ConnectionError("rpc down")
        return self.balances.get((holder, token), 0)


class StaticClock:
    def now(self) -> float:
        return 42.0


@pytest.mark.asyncio
class TestBalanceSnapshotter:
    async def test_snapshot_covers_every_holder(self):
        reader = DictReader({(Holder.WALLET, USDC): 7, (Holder.CUSTODY, AERO): 3})
        snapshotter = BalanceSnapshotter(reader, StaticClock())

        snap = await snapshotter.snapshot([USDC, AERO, USDC])

        assert snap.balance(USDC, Holder.WALLET) == 7
        assert snap.balance(AERO, Holder.CUSTODY) == 3
        assert snap.balance(USDC, Holder.CUSTODY) == 0
        assert len(snap.balances) == 4
        assert snap.taken_at == 42.0

    async def test_duplicate_keys_read_once(self):
        reader = DictReader({})
        snapshotter = BalanceSnapshotter(reader)

        await snapshotter.snapshot_keys([(Holder.STAKED, USDC), (Holder.STAKED, USDC)])

        assert reader.reads == [(Holder.STAKED, USDC)]

    async def test_any_failed_read_fails_the_snapshot(self):
        reader = DictReader({}, failing=[(Holder.CUSTODY, AERO)])
        snapshotter = BalanceSnapshotter(reader)

        with pytest.raises(SnapshotError, match="AERO"):
            await snapshotter.snapshot([USDC, AERO])

    async def test_empty_key_set(self):
        snap = await BalanceSnapshotter(DictReader({})).snapshot_keys([])
        assert dict(snap.balances) == {}
