from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    dispatcher = app.state.dispatcher
    await dispatcher.start()
    logger.info(
        "Serving %d function(s) with the %s runtime (policy=%s, timeout=%ss)",
        len(dispatcher.iface.functions),
        dispatcher.runtime.name,
        dispatcher.policy.value,
        dispatcher.timeout,
    )
    yield
    await dispatcher.shutdown()
