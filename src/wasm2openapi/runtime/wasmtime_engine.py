"""Invocation contexts backed by wasmtime's component model support.

The component is compiled once per runtime; every context gets its own
``Store`` and instance.  Deadlines use epoch interruption: a ticker thread
advances the engine epoch and each call arms the store with the number of
ticks it may run for, so a runaway guest traps instead of pinning a worker.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
from collections.abc import Mapping
from typing import Any

import wasmtime
from wasmtime import component as wc

from wasm2openapi import models
from wasm2openapi.core.handles import ResourceHandleTable
from wasm2openapi.core.ports.runtime import unpack_results
from wasm2openapi.errors import InvalidComponent, InvocationFault, InvocationTimeout
from wasm2openapi.models import ComponentInterface, FunctionDescriptor, StructuralType, TypeDefinitions
from wasm2openapi.settings import Settings

logger = logging.getLogger(__name__)


class EpochTicker:
    """Daemon thread calling ``engine.increment_epoch()`` every ``interval`` seconds."""

    def __init__(self, engine: wasmtime.Engine, interval: float) -> None:
        self.engine = engine
        self.interval = interval
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="wasm2openapi-epoch", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.engine.increment_epoch()


# --- Value conversion between host values and wasmtime's component values ---


def _field_attr(name: str) -> str:
    return name.replace("-", "_")


def to_wasmtime(value: Any, t: StructuralType, definitions: TypeDefinitions) -> Any:
    t = definitions.resolve(t)
    match t:
        case models.List(element):
            return [to_wasmtime(v, element, definitions) for v in value]
        case models.Option(inner):
            if value is None:
                return None
            if isinstance(value, models.Some):
                value = value.value
            return to_wasmtime(value, inner, definitions)
        case models.Result(ok, err):
            tag, inner = ("ok", ok) if isinstance(value, models.Ok) else ("err", err)
            payload = to_wasmtime(value.value, inner, definitions) if inner is not None else None
            return wc.Variant(tag, payload)
        case models.Tuple(elements):
            return tuple(to_wasmtime(v, e, definitions) for v, e in zip(value, elements))
        case models.Record(fields):
            record = wc.Record()
            for f in fields:
                setattr(record, _field_attr(f.name), to_wasmtime(value[f.name], f.type, definitions))
            return record
        case models.Variant():
            case = t.case(value.case)
            payload = to_wasmtime(value.value, case.type, definitions) if case and case.type is not None else None
            return wc.Variant(value.case, payload)
        case models.Flags():
            return set(value)
    return value


def from_wasmtime(value: Any, t: StructuralType, definitions: TypeDefinitions) -> Any:
    resolved = definitions.resolve(t)
    match resolved:
        case models.List(element):
            if isinstance(value, (bytes, bytearray)):
                return list(value)
            return [from_wasmtime(v, element, definitions) for v in value]
        case models.Option(inner):
            if value is None:
                return None
            converted = from_wasmtime(value, inner, definitions)
            if isinstance(definitions.resolve(inner), models.Option):
                return models.Some(converted)
            return converted
        case models.Result(ok, err):
            is_ok = getattr(value, "tag", "ok") == "ok"
            inner = ok if is_ok else err
            payload = getattr(value, "payload", None)
            converted = from_wasmtime(payload, inner, definitions) if inner is not None else None
            return models.Ok(converted) if is_ok else models.Err(converted)
        case models.Tuple(elements):
            return tuple(from_wasmtime(v, e, definitions) for v, e in zip(value, elements))
        case models.Record(fields):
            if isinstance(value, Mapping):
                return {f.name: from_wasmtime(value[f.name], f.type, definitions) for f in fields}
            return {f.name: from_wasmtime(getattr(value, _field_attr(f.name)), f.type, definitions) for f in fields}
        case models.Variant():
            case = resolved.case(value.tag)
            payload = None
            if case is not None and case.type is not None:
                payload = from_wasmtime(value.payload, case.type, definitions)
            return models.VariantValue(value.tag, payload)
        case models.Flags():
            return frozenset(value)
    return value


# --- Runtime ---


class WasmtimeInvocationContext:
    def __init__(
        self,
        runtime: WasmtimeComponentRuntime,
        store: wasmtime.Store,
        instance: Any,
        context_id: int,
    ) -> None:
        self.runtime = runtime
        self.store = store
        self.instance = instance
        self.context_id = context_id
        self.handles = ResourceHandleTable()
        self.closed = False
        self._funcs: dict[str, Any] = {}

    def _func(self, function: FunctionDescriptor) -> Any:
        func = self._funcs.get(function.qualified_name)
        if func is not None:
            return func
        parent = None
        if function.interface:
            parent = self.instance.get_export_index(self.store, function.interface)
        index = None
        if function.interface is None or parent is not None:
            index = self.instance.get_export_index(self.store, function.name, parent)
        if index is None:
            raise InvocationFault(f"Export '{function.qualified_name}' not found in the instance")
        func = self.instance.get_func(self.store, index)
        if func is None:
            raise InvocationFault(f"Export '{function.qualified_name}' is not a function")
        self._funcs[function.qualified_name] = func
        return func

    def call(self, function: FunctionDescriptor, args: list[Any], timeout: float | None = None) -> list[Any]:
        if self.closed:
            raise InvocationFault("Invocation context is closed")
        definitions = self.runtime.definitions
        func = self._func(function)
        converted = [to_wasmtime(a, p.type, definitions) for a, p in zip(args, function.params)]
        timeout = self.runtime.settings.timeout if timeout is None else timeout
        call_id = self.runtime.arm(self.store, timeout)
        try:
            value = func(self.store, *converted)
        except wasmtime.Trap as trap:
            if trap.trap_code == wasmtime.TrapCode.INTERRUPT:
                raise InvocationTimeout(function.qualified_name, timeout) from trap
            code = trap.trap_code.name.lower() if trap.trap_code is not None else None
            raise InvocationFault(f"'{function.qualified_name}' trapped: {trap.message}", trap=code) from trap
        except wasmtime.WasmtimeError as exc:
            raise InvocationFault(f"'{function.qualified_name}' failed: {exc}") from exc
        except ValueError as exc:
            # wasmtime refuses resource handles that were already moved or dropped
            raise InvocationFault(f"'{function.qualified_name}' rejected its arguments: {exc}") from exc
        finally:
            self.runtime.disarm(call_id)
        values = unpack_results(function, value)
        return [from_wasmtime(v, r.type, definitions) for v, r in zip(values, function.results)]

    def interrupt(self) -> None:
        # The armed epoch deadline stops the guest; a store cannot be touched
        # from another thread while it runs, so only mark the context unusable.
        self.closed = True

    def close(self) -> None:
        self.closed = True
        self.handles.close()
        self._funcs.clear()


class WasmtimeComponentRuntime:
    name = "wasmtime"

    def __init__(self, iface: ComponentInterface, settings: Settings) -> None:
        self.definitions = iface.definitions
        self.settings = settings
        config = wasmtime.Config()
        config.epoch_interruption = True
        self.engine = wasmtime.Engine(config)
        try:
            self.component = wc.Component(self.engine, iface.binary)
        except wasmtime.WasmtimeError as exc:
            raise InvalidComponent(f"wasmtime rejected the component: {exc}") from exc
        self.linker = wc.Linker(self.engine)
        if settings.wasi:
            self.linker.add_wasip2()
        self.closed = False
        self._ids = itertools.count(1)
        self._call_ids = itertools.count(1)
        # call id -> epoch ticks it was granted, for every guest call in flight
        self._armed: dict[int, int] = {}
        self._armed_lock = threading.Lock()
        self.ticker = EpochTicker(self.engine, settings.epoch_tick_ms / 1000)
        self.ticker.start()

    def deadline_ticks(self, timeout: float) -> int:
        # one extra tick: the current epoch period may already be partly over
        return max(1, math.ceil(timeout * 1000 / self.settings.epoch_tick_ms)) + 1

    def arm(self, store: wasmtime.Store, timeout: float) -> int:
        """Set the epoch deadline for the next guest entry on ``store``."""
        ticks = self.deadline_ticks(timeout)
        with self._armed_lock:
            if self.closed:
                raise InvocationFault("Runtime is shut down")
            call_id = next(self._call_ids)
            self._armed[call_id] = ticks
            store.set_epoch_deadline(ticks)
        return call_id

    def disarm(self, call_id: int) -> None:
        with self._armed_lock:
            self._armed.pop(call_id, None)

    @property
    def calls_in_flight(self) -> int:
        with self._armed_lock:
            return len(self._armed)

    def instantiate(self) -> WasmtimeInvocationContext:
        store = wasmtime.Store(self.engine)
        if self.settings.wasi:
            store.set_wasi(wasmtime.WasiConfig())
        # start functions run under the same deadline as calls
        call_id = self.arm(store, self.settings.timeout)
        try:
            instance = self.linker.instantiate(store, self.component)
        except (wasmtime.Trap, wasmtime.WasmtimeError) as exc:
            raise InvocationFault(f"Instantiation failed: {exc}") from exc
        finally:
            self.disarm(call_id)
        context = WasmtimeInvocationContext(self, store, instance, next(self._ids))
        logger.debug("Instantiated wasmtime context %d", context.context_id)
        return context

    def close(self) -> None:
        with self._armed_lock:
            self.closed = True
            pending = max(self._armed.values(), default=0)
        self.ticker.stop()
        # Without the ticker a guest still running would never reach its
        # deadline; advance the epoch past every armed one.
        for _ in range(pending + 1):
            self.engine.increment_epoch()
        if pending:
            logger.info("Interrupted guest calls still running at shutdown")
