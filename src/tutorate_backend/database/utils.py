'''
Store helpers shared by the services.
'''
import asyncio
import datetime
from typing import Any, Awaitable

from ..common.exceptions import ServiceUnavailableError
from ..common.logger import log


async def gather_with_timeout(*aws: Awaitable[Any], timeout: float, label: str = "fan-out") -> list[Any]:
    """
    Runs independent reads concurrently and joins their results in order.
    A single timeout bounds the whole fan-out; on expiry every pending read is
    cancelled and a retriable ServiceUnavailableError is raised.
    """
    try:
        return list(await asyncio.wait_for(asyncio.gather(*aws), timeout=timeout))
    except asyncio.TimeoutError:
        log.error(f"{label} did not complete within {timeout}s.")
        raise ServiceUnavailableError(
            "The request took too long to complete. Please try again.",
            code="STORE_TIMEOUT",
            context={"label": label, "timeout": timeout},
        )


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """sqlite hands back naive datetimes; everything is stored in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)
