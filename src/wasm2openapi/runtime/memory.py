"""In-process runtime whose "component" is a table of Python callables.

Useful for tests and for exercising the HTTP layer without compiling a
component: each ``instantiate`` calls the factory again, so state captured by
the callables is per context exactly as guest state is per instance.
"""

import itertools
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from wasm2openapi.core.handles import ResourceHandleTable
from wasm2openapi.core.ports.runtime import unpack_results
from wasm2openapi.errors import InvocationFault
from wasm2openapi.models import FunctionDescriptor

logger = logging.getLogger(__name__)

FunctionTable = Mapping[str, Callable[..., Any]]


class InMemoryInvocationContext:
    def __init__(self, functions: FunctionTable, context_id: int) -> None:
        self.functions = functions
        self.context_id = context_id
        self.handles = ResourceHandleTable()
        self.interrupted = threading.Event()
        self.closed = False
        self.calls = 0

    def call(self, function: FunctionDescriptor, args: list[Any], timeout: float | None = None) -> list[Any]:
        if self.closed:
            raise InvocationFault("Invocation context is closed")
        target = self.functions.get(function.qualified_name)
        if target is None:
            raise InvocationFault(f"No implementation for '{function.qualified_name}'", trap="unreachable")
        self.calls += 1
        try:
            value = target(*args)
        except InvocationFault:
            raise
        except Exception as exc:
            raise InvocationFault(f"'{function.qualified_name}' failed: {exc}", trap=type(exc).__name__) from exc
        return unpack_results(function, value)

    def interrupt(self) -> None:
        # Python code cannot be preempted; the callable may poll ``interrupted``
        self.interrupted.set()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.handles.close()


class InMemoryComponentRuntime:
    name = "memory"

    def __init__(self, factory: Callable[[], FunctionTable]) -> None:
        self.factory = factory
        self.contexts: list[InMemoryInvocationContext] = []
        self._ids = itertools.count(1)

    def instantiate(self) -> InMemoryInvocationContext:
        context = InMemoryInvocationContext(self.factory(), next(self._ids))
        self.contexts.append(context)
        logger.debug("Instantiated in-memory context %d", context.context_id)
        return context

    def close(self) -> None:
        for context in self.contexts:
            context.close()
