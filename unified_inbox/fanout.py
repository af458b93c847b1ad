"""Concurrent fan-out where every branch reports Ok or Err instead of raising."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

import anyio

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class Ok(Generic[R]):
    value: R


@dataclass(frozen=True)
class Err:
    error: Exception


Result = Union[Ok[R], Err]


async def gather_results(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    limit: int = 0,
) -> list[Result[R]]:
    """Run ``fn`` over every item concurrently and collect one result per item.

    Results are returned in input order, regardless of completion order.
    ``limit`` caps how many branches run at once; 0 means no cap.
    A branch that raises becomes an ``Err`` — nothing escapes this call
    except cancellation.
    """
    limiter = anyio.CapacityLimiter(limit) if limit > 0 else None

    async def _branch(item: T) -> Result[R]:
        try:
            if limiter is None:
                return Ok(await fn(item))
            async with limiter:
                return Ok(await fn(item))
        except Exception as exc:  # noqa: BLE001
            return Err(exc)

    return list(await asyncio.gather(*(_branch(item) for item in items)))


def ok_values(results: Sequence[Result[R]]) -> list[R]:
    """Values of the Ok branches, in order. Err branches contribute nothing."""
    return [r.value for r in results if isinstance(r, Ok)]
