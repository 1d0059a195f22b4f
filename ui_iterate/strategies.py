"""
Ordered strategy cascade: try callables in turn, keep the first usable result.

Shared by payload recovery (parse attempts) and the asset retry matrix
(format x scale requests).
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StrategyHit(Generic[T]):
    """Name of the winning strategy and the value it produced."""

    name: str
    value: T


def is_usable(value: Any) -> bool:
    """Default success test: anything that is not None and not empty."""
    if value is None:
        return False
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) > 0
    return True


def first_success(
    strategies: Iterable[Tuple[str, Callable[..., T]]],
    *args: Any,
    accept: Callable[[Any], bool] = is_usable,
    tolerate: Tuple[Type[BaseException], ...] = (ValueError,),
) -> Optional[StrategyHit[T]]:
    """Run (name, fn) pairs in order; return the first accepted result.

    An exception listed in ``tolerate`` counts as a miss; anything else
    propagates.
    """
    for name, fn in strategies:
        try:
            value = fn(*args)
        except tolerate as e:
            logger.debug("strategy %s raised %s: %s", name, type(e).__name__, e)
            continue
        if accept(value):
            return StrategyHit(name=name, value=value)
        logger.debug("strategy %s produced nothing usable", name)
    return None


async def afirst_success(
    strategies: Iterable[Tuple[str, Callable[..., Awaitable[T]]]],
    *args: Any,
    accept: Callable[[Any], bool] = is_usable,
    tolerate: Tuple[Type[BaseException], ...] = (ValueError,),
) -> Optional[StrategyHit[T]]:
    """Async variant of first_success. Strategies are awaited one at a time."""
    for name, fn in strategies:
        try:
            value = await fn(*args)
        except tolerate as e:
            logger.debug("strategy %s raised %s: %s", name, type(e).__name__, e)
            continue
        if accept(value):
            return StrategyHit(name=name, value=value)
        logger.debug("strategy %s produced nothing usable", name)
    return None
