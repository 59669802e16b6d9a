"""Per-function HTTP endpoints that call into the hosted component.

A request moves through Received -> Validated -> Decoded -> Invoked and ends
Succeeded (200), Faulted (500) or TimedOut (504).  Calls run on a dedicated
thread pool under a deadline.  With the shared policy one context serves every
request behind an ``asyncio.Lock`` (FIFO, so calls observe lock-acquisition
order); with the per-request policy each request gets, and then closes, its own
context.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from wasm2openapi.core.codec import ValueCodec
from wasm2openapi.core.ports.runtime import ComponentRuntime, InvocationContext
from wasm2openapi.errors import InternalError, InvalidRequest, InvocationFault, InvocationTimeout, RequestError
from wasm2openapi.models import ComponentInterface, FunctionDescriptor
from wasm2openapi.settings import InstancePolicy

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
# nginx's "client closed request"; nobody is left to read it
CLIENT_CLOSED_REQUEST = 499


class InvocationDispatcher:
    def __init__(
        self,
        iface: ComponentInterface,
        runtime: ComponentRuntime,
        policy: InstancePolicy = InstancePolicy.SHARED,
        timeout: float | None = 5.0,
        codec: ValueCodec | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.iface = iface
        self.runtime = runtime
        self.policy = InstancePolicy(policy)
        self.timeout = timeout
        self.codec = codec or ValueCodec(iface.definitions)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="wasm2openapi-call")
        self._lock = asyncio.Lock()
        self._shared: InvocationContext | None = None
        self.replacements = 0

    # --- Lifecycle ---

    async def start(self) -> None:
        if self.policy is InstancePolicy.SHARED:
            self._shared = await self._instantiate()

    async def shutdown(self) -> None:
        if self._shared is not None:
            self._shared.close()
            self._shared = None
        # Calls abandoned after a timeout may still occupy workers; don't wait for them
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.runtime.close()

    @property
    def shared_context_live(self) -> bool:
        return self._shared is not None

    async def _instantiate(self) -> InvocationContext:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.runtime.instantiate)

    # --- Invocation ---

    async def invoke(self, function: FunctionDescriptor, payload: Any) -> dict[str, Any]:
        """Decode ``payload``, call ``function`` and encode its results."""
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")
        if self.policy is InstancePolicy.SHARED:
            async with self._lock:
                if self._shared is None:
                    self._shared = await self._instantiate()
                    logger.info("Shared invocation context re-created")
                try:
                    return await self._call(self._shared, function, payload)
                except (InvocationFault, InvocationTimeout) as exc:
                    await self._replace_shared(exc)
                    raise
        context = await self._instantiate()
        try:
            return await self._call(context, function, payload)
        finally:
            context.close()

    async def _call(
        self, context: InvocationContext, function: FunctionDescriptor, payload: dict[str, Any]
    ) -> dict[str, Any]:
        args = self.codec.decode_params(payload, function, context.handles)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, context.call, function, args, self.timeout)
        try:
            values = await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            context.interrupt()
            logger.warning("Call to '%s' timed out after %ss", function.qualified_name, self.timeout)
            raise InvocationTimeout(function.qualified_name, self.timeout or 0.0) from None
        except InvocationFault as exc:
            logger.warning("Call to '%s' faulted: %s", function.qualified_name, exc)
            raise
        for token in self.codec.moved_params(payload, function):
            context.handles.forget(token)
        return self.codec.encode_results(values, function, context.handles)

    async def _replace_shared(self, cause: Exception) -> None:
        """Swap in a fresh context; the old one may still be running or be unusable after a trap."""
        old, self._shared = self._shared, None
        if old is not None:
            old.close()
        try:
            self._shared = await self._instantiate()
        except InvocationFault:
            logger.exception("Could not re-create the shared invocation context")
            return
        self.replacements += 1
        logger.info("Replaced shared invocation context after %s", type(cause).__name__)

    # --- HTTP ---

    def route(self, function: FunctionDescriptor) -> Callable[[Request], Awaitable[Response]]:
        """FastAPI endpoint bound to ``function``."""

        async def endpoint(request: Request) -> Response:
            content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type != JSON_MEDIA_TYPE:
                raise InvalidRequest(f"Content-Type must be {JSON_MEDIA_TYPE}")
            try:
                payload = await request.json()
            except ValueError as exc:
                raise InvalidRequest(f"Request body is not valid JSON: {exc}") from exc
            try:
                body = await self.invoke(function, payload)
            except RequestError:
                raise
            except Exception as exc:
                logger.exception("Unexpected error while dispatching '%s'", function.qualified_name)
                raise InternalError(f"Unexpected error while dispatching '{function.qualified_name}'") from exc
            if await request.is_disconnected():
                logger.info("Client went away; discarding result of '%s'", function.qualified_name)
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            return JSONResponse(body)

        endpoint.__name__ = function.qualified_name
        return endpoint
