"""Reduce per-transaction outcomes into a run-level result."""

from typing import Iterable

from .models import ExecutionMode, ExecutionResult, SkippedTransaction, TransactionOutcome


def aggregate(
    outcomes: Iterable[TransactionOutcome],
    skipped: Iterable[SkippedTransaction] = (),
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
) -> ExecutionResult:
    outcome_list = list(outcomes)
    return ExecutionResult(
        attempted=len(outcome_list),
        succeeded=sum(1 for o in outcome_list if o.is_success),
        outcomes=outcome_list,
        skipped=list(skipped),
        mode=mode,
    )
