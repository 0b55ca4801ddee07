"""Abort condition factories.

An abort condition is a predicate over ``(result, failure)``. Exactly one of the
two is meaningful for a given attempt: ``failure`` is None when the attempt
returned normally.
"""

from typing import Any, Callable, Optional, Sequence, Tuple, Type

AbortCondition = Callable[[Any, Optional[BaseException]], bool]


def failure_types_condition(failure_types: Sequence[Type[BaseException]]) -> AbortCondition:
    """Match failures that are instances of any of ``failure_types``"""
    types: Tuple[Type[BaseException], ...] = tuple(failure_types)

    def _condition(result: Any, failure: Optional[BaseException]) -> bool:
        return failure is not None and isinstance(failure, types)

    return _condition


def failure_condition(predicate: Callable[[BaseException], bool]) -> AbortCondition:
    """Match failures accepted by ``predicate``. Not invoked for results."""

    def _condition(result: Any, failure: Optional[BaseException]) -> bool:
        return failure is not None and bool(predicate(failure))

    return _condition


def result_condition(predicate: Callable[[Any], bool]) -> AbortCondition:
    """Match results accepted by ``predicate``. Not invoked for failures."""

    def _condition(result: Any, failure: Optional[BaseException]) -> bool:
        return failure is None and bool(predicate(result))

    return _condition


def result_equals_condition(expected: Any) -> AbortCondition:
    """Match results equal to ``expected``"""

    def _condition(result: Any, failure: Optional[BaseException]) -> bool:
        return failure is None and result == expected

    return _condition
