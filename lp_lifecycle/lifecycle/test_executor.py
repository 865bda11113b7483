import pytest

from lp_lifecycle.core.utils.transaction import TransactionRevertedError
from lp_lifecycle.lifecycle.config import USDC
from lp_lifecycle.lifecycle.executor import Action, StepExecutor, StepSpec
from lp_lifecycle.lifecycle.snapshot import BalanceSnapshotter
from lp_lifecycle.lifecycle.types import Holder, StepStatus

WATCH = ((Holder.CUSTODY, USDC),)


class Ledger:
    """Balance reader whose state the scripted submitter mutates on confirm."""

    def __init__(self, custody: int = 0):
        self.balances = {(Holder.CUSTODY, USDC): custody}
        self.fail_reads_after: int | None = None
        self.reads = 0

    async def read_balance(self, holder, token):
        self.reads += 1
        if self.fail_reads_after is not None and self.reads > self.fail_reads_after:
            raise ConnectionError("rpc down")
        return self.balances.get((holder, token), 0)


class ScriptedSubmitter:
    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self.submitted = []
        self.reject = set()
        self.revert = set()
        self.timeout = set()
        self.effects = {}

    async def submit(self, transaction):
        fn = transaction["fn"]
        if fn in self.reject:
            raise RuntimeError("nonce too low")
        self.submitted.append(fn)
        return f"0x{len(self.submitted):064x}:{fn}"

    async def confirm(self, txn_hash):
        fn = txn_hash.split(":")[1]
        if fn in self.revert:
            raise TransactionRevertedError(txn_hash, {"status": 0})
        if fn in self.timeout:
            raise TimeoutError("receipt not found")
        self.ledger.balances[(Holder.CUSTODY, USDC)] += self.effects.get(fn, 0)
        return {"transactionHash": txn_hash, "status": 1, "logs": []}


def _action(fn: str, decode=None) -> Action:
    async def build():
        return {"fn": fn}

    return Action(fn, build, decode)


def _grew(before, after, _receipt):
    if after.delta(before, USDC) > 0:
        return None
    return "custody did not grow"


@pytest.fixture
def ledger():
    return Ledger(custody=100)


@pytest.fixture
def submitter(ledger):
    return ScriptedSubmitter(ledger)


@pytest.fixture
def executor(ledger, submitter):
    return StepExecutor(BalanceSnapshotter(ledger), submitter)


@pytest.mark.asyncio
class TestSkips:
    async def test_precondition_reason_skips_without_submitting(
        self, executor, submitter
    ):
        async def precondition():
            return "nothing to deposit"

        result = await executor.execute(
            StepSpec("deposit:USDC", (_action("deposit"),), WATCH, precondition)
        )

        assert result.status is StepStatus.SKIPPED_PRECONDITION
        assert result.skip_reason == "nothing to deposit"
        assert not result.attempted
        assert result.before == result.after
        assert result.before.balance(USDC) == 100
        assert submitter.submitted == []

    async def test_raising_precondition_is_a_skip(self, executor):
        async def precondition():
            raise ConnectionError("allowance read failed")

        result = await executor.execute(
            StepSpec("approve:USDC", (_action("approve"),), WATCH, precondition)
        )

        assert result.status is StepStatus.SKIPPED_PRECONDITION
        assert result.skip_reason == "precondition check failed"
        assert "allowance read failed" in result.error_detail

    async def test_prebuilt_skip_keeps_annotations(self, executor):
        step = StepSpec.skip(
            "add_liquidity:X",
            "pool does not exist",
            annotations={"warning": "creation disabled"},
            warnings=("creation disabled",),
        )

        result = await executor.execute(step)

        assert result.skipped
        assert result.annotations["warning"] == "creation disabled"
        assert result.warnings == ("creation disabled",)

    async def test_no_actions_is_a_skip(self, executor):
        result = await executor.execute(StepSpec("noop", watch=WATCH))
        assert result.skip_reason == "nothing to submit"

    async def test_snapshot_failure_while_skipping_is_a_warning(self, executor, ledger):
        ledger.fail_reads_after = 0
        result = await executor.execute(StepSpec.skip("x", "nope", watch=WATCH))

        assert result.skipped
        assert dict(result.before.balances) == {}
        assert any("snapshot failed" in w for w in result.warnings)


@pytest.mark.asyncio
class TestStatuses:
    async def test_success(self, executor, submitter):
        submitter.effects["deposit"] = 5
        decoded = []

        def decode(receipt):
            decoded.append(receipt["transactionHash"])
            return "decoded"

        result = await executor.execute(
            StepSpec(
                "deposit:USDC",
                (_action("deposit", decode),),
                WATCH,
                postcondition=_grew,
                annotations={"pool": "p"},
            )
        )

        assert result.status is StepStatus.SUCCEEDED
        assert result.attempted
        assert result.action == "deposit"
        assert result.outcome == "decoded"
        assert result.after.delta(result.before, USDC) == 5
        assert decoded == [result.tx_hash]
        assert result.annotations["pool"] == "p"

    async def test_submission_failure(self, executor, submitter):
        submitter.reject.add("deposit")

        result = await executor.execute(
            StepSpec("deposit:USDC", (_action("deposit"),), WATCH)
        )

        assert result.status is StepStatus.SUBMISSION_FAILURE
        assert result.attempted
        assert "nonce too low" in result.error_detail
        assert result.after == result.before

    async def test_build_failure_is_a_submission_failure(self, executor):
        async def build():
            raise ValueError("Failed to encode depositTokens")

        result = await executor.execute(
            StepSpec("deposit:USDC", (Action("deposit", build),), WATCH)
        )

        assert result.status is StepStatus.SUBMISSION_FAILURE

    async def test_revert_is_an_execution_failure(self, executor, submitter):
        submitter.revert.add("deposit")

        result = await executor.execute(
            StepSpec("deposit:USDC", (_action("deposit"),), WATCH)
        )

        assert result.status is StepStatus.EXECUTION_FAILURE
        assert result.tx_hash is not None
        assert "reverted" in result.error_detail

    async def test_confirmation_timeout_is_an_execution_failure(
        self, executor, submitter
    ):
        submitter.timeout.add("deposit")

        result = await executor.execute(
            StepSpec("deposit:USDC", (_action("deposit"),), WATCH)
        )

        assert result.status is StepStatus.EXECUTION_FAILURE
        assert "receipt not found" in result.error_detail

    async def test_effect_not_observed(self, executor):
        result = await executor.execute(
            StepSpec("deposit:USDC", (_action("deposit"),), WATCH, postcondition=_grew)
        )

        assert result.status is StepStatus.EFFECT_NOT_OBSERVED
        assert result.error_detail == "custody did not grow"
        assert result.tx_hash is not None

    async def test_raising_postcondition_is_effect_not_observed(self, executor):
        def broken(before, after, receipt):
            raise KeyError("missing")

        result = await executor.execute(
            StepSpec("x", (_action("deposit"),), WATCH, postcondition=broken)
        )

        assert result.status is StepStatus.EFFECT_NOT_OBSERVED

    async def test_unreadable_after_snapshot(self, executor, ledger):
        ledger.fail_reads_after = 1

        result = await executor.execute(
            StepSpec("x", (_action("deposit"),), WATCH, postcondition=_grew)
        )

        assert result.status is StepStatus.EFFECT_NOT_OBSERVED
        assert "could not be read" in result.error_detail
        assert result.after == result.before

    async def test_unreadable_before_snapshot(self, executor, ledger, submitter):
        ledger.fail_reads_after = 0

        result = await executor.execute(StepSpec("x", (_action("deposit"),), WATCH))

        assert result.status is StepStatus.SUBMISSION_FAILURE
        assert not result.attempted
        assert submitter.submitted == []


@pytest.mark.asyncio
class TestAlternatives:
    async def test_falls_through_to_next_action(self, executor, submitter):
        submitter.revert.add("withdrawETH")
        submitter.effects["withdraw"] = 1

        result = await executor.execute(
            StepSpec(
                "recover_native",
                (_action("withdrawETH"), _action("withdraw")),
                WATCH,
                postcondition=_grew,
            )
        )

        assert result.status is StepStatus.SUCCEEDED
        assert result.action == "withdraw"
        assert submitter.submitted == ["withdrawETH", "withdraw"]
        assert any("withdrawETH" in w for w in result.warnings)

    async def test_first_success_stops(self, executor, submitter):
        result = await executor.execute(
            StepSpec("x", (_action("a"), _action("b")), WATCH)
        )

        assert result.action == "a"
        assert submitter.submitted == ["a"]

    async def test_all_alternatives_failing(self, executor, submitter):
        submitter.revert.update({"a", "b"})

        result = await executor.execute(
            StepSpec("x", (_action("a"), _action("b")), WATCH)
        )

        assert result.status is StepStatus.EXECUTION_FAILURE
        assert "a: reverted" in result.error_detail
        assert "b: reverted" in result.error_detail

    async def test_mined_revert_outranks_later_submission_failure(
        self, executor, submitter
    ):
        submitter.revert.add("withdrawETH")
        submitter.reject.add("withdraw")

        result = await executor.execute(
            StepSpec(
                "recover_native",
                (_action("withdrawETH"), _action("withdraw")),
                WATCH,
            )
        )

        assert result.status is StepStatus.EXECUTION_FAILURE
        assert "withdrawETH: reverted" in result.error_detail
        assert "withdraw: submission failed" in result.error_detail

    async def test_only_submission_failures(self, executor, submitter):
        submitter.reject.update({"a", "b"})

        result = await executor.execute(
            StepSpec("x", (_action("a"), _action("b")), WATCH)
        )

        assert result.status is StepStatus.SUBMISSION_FAILURE
        assert submitter.submitted == []


@pytest.mark.asyncio
class TestOutcome:
    async def test_decode_failure_is_only_a_warning(self, executor):
        def decode(_receipt):
            raise ValueError("event not found in receipt")

        result = await executor.execute(
            StepSpec("x", (_action("a", decode),), WATCH)
        )

        assert result.status is StepStatus.SUCCEEDED
        assert result.outcome is None
        assert any("receipt decode failed" in w for w in result.warnings)

    async def test_annotate_outcome_merges(self, executor):
        async def annotate(outcome):
            return {"pool:X": outcome}

        result = await executor.execute(
            StepSpec(
                "x",
                (_action("a", lambda _r: "0xpool"),),
                WATCH,
                annotations={"static": 1},
                annotate_outcome=annotate,
            )
        )

        assert result.annotations == {"static": 1, "pool:X": "0xpool"}
