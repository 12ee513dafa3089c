from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from ..config import get_settings


@asynccontextmanager
async def provider_client(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or open a short-lived one for this call.

    A client passed in is never closed here; its owner manages its lifetime.
    """
    if client is not None:
        yield client
        return
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_S) as owned:
        yield owned
