"""Transactions built from a list of operations.

Each operation receives the connection (or a ``SavepointScope`` over it) and
returns one of:

    None / CONTINUE     run the next operation
    COMMIT_NOW          stop here and commit
    Abort(reason)       stop here; Abort(StatusCode.OK) commits, anything else
                        rolls back and raises ``reason``

An exception escaping an operation rolls the transaction back and is re-raised
unchanged. If the rollback itself fails the caller gets ``DoubleFaultError``
carrying both failures.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from .base_engine import Transactable
from .logging_util import debug, error, warn
from .status import DoubleFaultError, StatusCode, UnrecoverableError, error_for


class _Signal:
    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


CONTINUE = _Signal("CONTINUE")
COMMIT_NOW = _Signal("COMMIT_NOW")


@dataclass(frozen=True)
class Abort:
    """Stop the transaction. ``reason`` is a status code or an exception."""
    reason: Any = StatusCode.OK

    @property
    def commits(self) -> bool:
        return self.reason is None or (isinstance(self.reason, int) and self.reason == StatusCode.OK)


Operation = Callable[[Transactable], Any]


class SavepointScope:
    """Transactable view of a connection that maps begin/commit/rollback onto a savepoint.

    Everything else (execute, prepare, ...) is forwarded to the connection.
    """

    def __init__(self, db, savepoint: Any):
        self.db = db
        self.savepoint = savepoint

    def __getattr__(self, name: str):
        return getattr(self.db, name)

    def begin(self) -> None:
        self.db.mark(self.savepoint)

    def commit(self) -> None:
        self.db.merge_steps(self.savepoint)

    def rollback(self) -> None:
        # ROLLBACK TO keeps the savepoint open; release it so the scope leaves nothing behind.
        self.db.release(self.savepoint)
        self.db.merge_steps(self.savepoint)


def _condition(reason: Any) -> BaseException:
    if isinstance(reason, BaseException):
        return reason
    if isinstance(reason, int) and not isinstance(reason, bool):
        return error_for(reason)
    return UnrecoverableError(f"unrecognized abort reason {reason!r}")


class Transaction:
    def __init__(self, operations: Optional[Iterable[Operation]] = None):
        self.operations: List[Operation] = list(operations or [])

    def __len__(self) -> int:
        return len(self.operations)

    def append(self, operation: Operation) -> "Transaction":
        self.operations.append(operation)
        return self

    def execute(self, db, savepoint: Any = None) -> None:
        """Run every operation inside BEGIN/COMMIT (or a savepoint when ``savepoint`` is given)."""
        scope = db if savepoint is None else SavepointScope(db, savepoint)
        scope.begin()
        for position, operation in enumerate(self.operations):
            try:
                result = operation(scope)
            except Exception as e:
                self._rollback_and_raise(scope, e, position)
            if result is None or result is CONTINUE:
                continue
            if result is COMMIT_NOW:
                break
            if isinstance(result, Abort):
                if result.commits:
                    break
                self._rollback_and_raise(scope, _condition(result.reason), position)
            self._rollback_and_raise(
                scope, UnrecoverableError(f"unrecognized transaction step result {result!r}"), position)
        scope.commit()
        debug("transaction_committed", operations=len(self.operations), savepoint=savepoint)

    @staticmethod
    def _rollback_and_raise(scope, condition: BaseException, position: int):
        try:
            scope.rollback()
        except Exception as rollback_error:
            error("transaction_double_fault", operation=position,
                  original=str(condition), rollback_error=str(rollback_error))
            raise DoubleFaultError(condition, rollback_error) from condition
        warn("transaction_rolled_back", operation=position, reason=str(condition))
        raise condition
