from typing import Any, Protocol

from wasm2openapi.core.handles import ResourceHandleTable
from wasm2openapi.models import FunctionDescriptor


class InvocationContext(Protocol):
    """One sandboxed instantiation of the component.

    ``call`` blocks the calling thread; the dispatcher runs it on a worker.
    Implementations raise ``InvocationFault`` for traps and host failures.
    """

    handles: ResourceHandleTable

    def call(self, function: FunctionDescriptor, args: list[Any], timeout: float | None = None) -> list[Any]: ...

    def interrupt(self) -> None: ...

    def close(self) -> None: ...


class ComponentRuntime(Protocol):
    name: str

    def instantiate(self) -> InvocationContext: ...

    def close(self) -> None: ...


def unpack_results(function: FunctionDescriptor, value: Any) -> list[Any]:
    """Spread a single return value over the function's declared results."""
    if not function.results:
        return []
    if len(function.results) == 1:
        return [value]
    return list(value)
