"""
"First success wins" over an ordered list of providers.

Providers are tried sequentially. A provider answering None means "no data
here"; UpstreamError (timeouts included) means "could not ask", and the
chain moves on either way.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from medsafe.exceptions import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Provider(Generic[T]):
    """A named step in a fallback chain."""
    name: str
    fetch: Callable[..., Awaitable[Optional[T]]]


@dataclass
class FallbackOutcome(Generic[T]):
    value: Optional[T] = None
    source: Optional[str] = None
    errors: List[UpstreamError] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def degraded(self) -> bool:
        """True when nothing was found and at least one provider failed."""
        return self.value is None and bool(self.errors)


async def first_success(
    providers: Sequence[Provider[T]],
    *args: Any,
    timeout: Optional[float] = None,
) -> FallbackOutcome[T]:
    """
    Ask each provider in order and return the first non-None answer.

    Args:
        providers: ordered chain
        *args: passed to every provider
        timeout: per-provider timeout in seconds
    """
    outcome: FallbackOutcome[T] = FallbackOutcome()
    for provider in providers:
        try:
            if timeout is None:
                value = await provider.fetch(*args)
            else:
                value = await asyncio.wait_for(provider.fetch(*args), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{provider.name} timed out, trying next source")
            outcome.errors.append(UpstreamTimeout(provider.name, timeout or 0))
            continue
        except UpstreamError as e:
            logger.warning(f"{provider.name} failed ({e.detail}), trying next source")
            outcome.errors.append(e)
            continue

        if value is not None:
            outcome.value = value
            outcome.source = provider.name
            return outcome

    return outcome
