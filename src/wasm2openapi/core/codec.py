"""Type-driven conversion between JSON values and host values.

Decoding walks the client payload and the declared type in lock-step and
reports the first mismatch as a ``DecodeError`` carrying its JSON pointer.
Encoding converts values returned by a component; a mismatch there is a host
defect and raises ``InternalError``.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from wasm2openapi import models
from wasm2openapi.core.handles import ResourceHandleTable
from wasm2openapi.core.type_mapper import nested_option
from wasm2openapi.errors import DecodeError, InternalError, UnknownResourceHandle, format_path
from wasm2openapi.models import Err, FunctionDescriptor, Ok, Some, StructuralType, TypeDefinitions, VariantValue

Path = tuple[str | int, ...]

_SURROGATES = range(0xD800, 0xE000)


def json_kind(value: Any) -> str:
    """Name of the JSON kind of a parsed value, for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def narrow_f32(value: float) -> float:
    """Round a double to the nearest single-precision value; raises OverflowError if out of range."""
    return struct.unpack("<f", struct.pack("<f", value))[0]


class ValueCodec:
    def __init__(self, definitions: TypeDefinitions) -> None:
        self.definitions = definitions

    # --- Decoding (JSON -> host) ---

    def decode(
        self,
        payload: Any,
        t: StructuralType,
        handles: ResourceHandleTable | None = None,
        path: Path = (),
    ) -> Any:
        def fail(expected: str, found: str | None = None) -> DecodeError:
            return DecodeError(path, expected, found if found is not None else json_kind(payload))

        match t:
            case models.Bool():
                if not isinstance(payload, bool):
                    raise fail("boolean")
                return payload
            case _ if type(t) in models.INTEGER_WIDTHS:
                # JSON Schema counts 2.0 as an integer
                if isinstance(payload, float) and payload.is_integer():
                    payload = int(payload)
                if isinstance(payload, bool) or not isinstance(payload, int):
                    raise fail(f"{models.type_label(t)} integer")
                lo, hi = models.integer_bounds(t)
                if not lo <= payload <= hi:
                    raise fail(f"{models.type_label(t)} in [{lo}, {hi}]", str(payload))
                return payload
            case models.F32() | models.F64():
                if isinstance(payload, bool) or not isinstance(payload, (int, float)):
                    raise fail("number")
                value = float(payload)
                if not math.isfinite(value):
                    raise fail("finite number", str(value))
                if isinstance(t, models.F32):
                    try:
                        return narrow_f32(value)
                    except OverflowError:
                        raise fail("f32 in range", str(payload)) from None
                return value
            case models.Char():
                if not isinstance(payload, str):
                    raise fail("char (single-character string)")
                if len(payload) != 1 or ord(payload) in _SURROGATES:
                    raise fail("char (single Unicode scalar value)", f"string of length {len(payload)}")
                return payload
            case models.String():
                if not isinstance(payload, str):
                    raise fail("string")
                try:
                    payload.encode("utf-8")
                except UnicodeEncodeError:
                    raise fail("string of Unicode scalar values", "string with lone surrogate") from None
                return payload
            case models.List(element):
                if not isinstance(payload, list):
                    raise fail(f"array ({models.type_label(t)})")
                return [self.decode(item, element, handles, path + (i,)) for i, item in enumerate(payload)]
            case models.Option(inner):
                if payload is None:
                    return None
                if nested_option(self.definitions, t):
                    if not isinstance(payload, dict) or set(payload) != {"some"}:
                        raise fail('null or {"some": ...}')
                    return Some(self.decode(payload["some"], inner, handles, path + ("some",)))
                return self.decode(payload, inner, handles, path)
            case models.Result(ok, err):
                if not isinstance(payload, dict) or len(payload) != 1 or not set(payload) <= {"ok", "err"}:
                    raise fail('{"ok": ...} or {"err": ...}')
                key = next(iter(payload))
                inner_type = ok if key == "ok" else err
                wrapper = Ok if key == "ok" else Err
                if inner_type is None:
                    if payload[key] is not None:
                        raise DecodeError(path + (key,), "null", json_kind(payload[key]))
                    return wrapper(None)
                return wrapper(self.decode(payload[key], inner_type, handles, path + (key,)))
            case models.Tuple(elements):
                if not isinstance(payload, list):
                    raise fail(f"array ({models.type_label(t)})")
                if len(payload) != len(elements):
                    raise fail(f"array of length {len(elements)}", f"array of length {len(payload)}")
                return tuple(
                    self.decode(item, element, handles, path + (i,))
                    for i, (item, element) in enumerate(zip(payload, elements))
                )
            case models.Record(fields):
                if not isinstance(payload, dict):
                    raise fail("object")
                return self._decode_fields(payload, [(f.name, f.type) for f in fields], handles, path)
            case models.Variant():
                return self._decode_variant(payload, t, handles, path)
            case models.Enum(names):
                if not isinstance(payload, str):
                    raise fail("string")
                if payload not in names:
                    raise fail("one of " + ", ".join(names), repr(payload))
                return payload
            case models.Flags(names):
                if not isinstance(payload, list):
                    raise fail("array of flag names")
                flags: set[str] = set()
                for i, name in enumerate(payload):
                    if not isinstance(name, str) or name not in names:
                        raise DecodeError(path + (i,), "one of " + ", ".join(names), repr(name))
                    if name in flags:
                        raise DecodeError(path + (i,), "unique flag name", f"duplicate {name!r}")
                    flags.add(name)
                return frozenset(flags)
            case models.Resource():
                if not isinstance(payload, str):
                    raise fail(f"{t.name} resource handle (string)")
                if handles is None:
                    raise UnknownResourceHandle(payload, path)
                return handles.lookup(payload, t, path)
            case models.Named(identity, _):
                return self.decode(payload, self.definitions[identity].type, handles, path)
        raise InternalError(f"Cannot decode values of type {t!r}")

    def _decode_fields(
        self,
        payload: dict[str, Any],
        fields: Sequence[tuple[str, StructuralType]],
        handles: ResourceHandleTable | None,
        path: Path,
    ) -> dict[str, Any]:
        known = [name for name, _ in fields]
        for key in payload:
            if key not in known:
                raise DecodeError(path + (key,), "no such field (expected " + ", ".join(known) + ")", "unknown field")
        result = {}
        for name, field_type in fields:
            if name not in payload:
                raise DecodeError(path + (name,), models.type_label(field_type), "missing")
            result[name] = self.decode(payload[name], field_type, handles, path + (name,))
        return result

    def _decode_variant(
        self, payload: Any, t: models.Variant, handles: ResourceHandleTable | None, path: Path
    ) -> VariantValue:
        if not isinstance(payload, dict) or "case" not in payload:
            raise DecodeError(path, '{"case": ..., "value": ...}', json_kind(payload))
        for key in payload:
            if key not in ("case", "value"):
                raise DecodeError(path + (key,), "case or value", "unknown field")
        names = [c.name for c in t.cases]
        case = t.case(payload["case"]) if isinstance(payload["case"], str) else None
        if case is None:
            raise DecodeError(path + ("case",), "one of " + ", ".join(names), repr(payload["case"]))
        if case.type is None:
            if "value" in payload:
                raise DecodeError(path + ("value",), f"no value for case '{case.name}'", json_kind(payload["value"]))
            return VariantValue(case.name)
        if "value" not in payload:
            raise DecodeError(path + ("value",), models.type_label(case.type), "missing")
        return VariantValue(case.name, self.decode(payload["value"], case.type, handles, path + ("value",)))

    def decode_params(
        self, payload: Mapping[str, Any], function: FunctionDescriptor, handles: ResourceHandleTable | None = None
    ) -> list[Any]:
        """Decode a request body into positional arguments."""
        params = list(zip(function.param_keys(), (p.type for p in function.params)))
        return list(self._decode_fields(dict(payload), params, handles, ()).values())

    def moved_tokens(self, payload: Any, t: StructuralType) -> Iterator[str]:
        """Tokens of ``own`` handles in an already decoded ``payload``.

        The callee takes ownership of these, so they must not be used again
        after a successful call.
        """
        match t:
            case models.Resource(owned=True):
                yield payload
            case models.List(element):
                for item in payload:
                    yield from self.moved_tokens(item, element)
            case models.Option(inner):
                if payload is None:
                    return
                if nested_option(self.definitions, t):
                    payload = payload["some"]
                yield from self.moved_tokens(payload, inner)
            case models.Result(ok, err):
                key = next(iter(payload))
                inner_type = ok if key == "ok" else err
                if inner_type is not None:
                    yield from self.moved_tokens(payload[key], inner_type)
            case models.Tuple(elements):
                for item, element in zip(payload, elements):
                    yield from self.moved_tokens(item, element)
            case models.Record(fields):
                for f in fields:
                    yield from self.moved_tokens(payload[f.name], f.type)
            case models.Variant():
                case = t.case(payload["case"])
                if case is not None and case.type is not None:
                    yield from self.moved_tokens(payload["value"], case.type)
            case models.Named(identity, _):
                yield from self.moved_tokens(payload, self.definitions[identity].type)

    def moved_params(self, payload: Mapping[str, Any], function: FunctionDescriptor) -> list[str]:
        tokens: list[str] = []
        for key, param in zip(function.param_keys(), function.params):
            tokens.extend(self.moved_tokens(payload[key], param.type))
        return tokens

    # --- Encoding (host -> JSON) ---

    def encode(
        self,
        value: Any,
        t: StructuralType,
        handles: ResourceHandleTable | None = None,
        path: Path = (),
    ) -> Any:
        def fail(expected: str) -> InternalError:
            pointer = format_path(path) or "/"
            return InternalError(
                f"Component returned {type(value).__name__} where {expected} was expected at '{pointer}'"
            )

        match t:
            case models.Bool():
                if not isinstance(value, bool):
                    raise fail("bool")
                return value
            case _ if type(t) in models.INTEGER_WIDTHS:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise fail(models.type_label(t))
                lo, hi = models.integer_bounds(t)
                if not lo <= value <= hi:
                    raise fail(f"{models.type_label(t)} in [{lo}, {hi}]")
                return value
            case models.F32() | models.F64():
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise fail(models.type_label(t))
                if not math.isfinite(value):
                    raise fail("finite number (JSON has no NaN or infinity)")
                return float(value)
            case models.Char():
                if not isinstance(value, str) or len(value) != 1:
                    raise fail("char")
                return value
            case models.String():
                if not isinstance(value, str):
                    raise fail("string")
                return value
            case models.List(element):
                if isinstance(value, bytes) and isinstance(element, models.U8):
                    return list(value)
                if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
                    raise fail(models.type_label(t))
                return [self.encode(item, element, handles, path + (i,)) for i, item in enumerate(value)]
            case models.Option(inner):
                if value is None:
                    return None
                if nested_option(self.definitions, t):
                    if not isinstance(value, Some):
                        raise fail("Some(...) for a nested option")
                    return {"some": self.encode(value.value, inner, handles, path + ("some",))}
                return self.encode(value, inner, handles, path)
            case models.Result(ok, err):
                if isinstance(value, Ok):
                    key, inner_type = "ok", ok
                elif isinstance(value, Err):
                    key, inner_type = "err", err
                else:
                    raise fail("Ok(...) or Err(...)")
                if inner_type is None:
                    return {key: None}
                return {key: self.encode(value.value, inner_type, handles, path + (key,))}
            case models.Tuple(elements):
                if not isinstance(value, (tuple, list)) or len(value) != len(elements):
                    raise fail(models.type_label(t))
                return [self.encode(v, e, handles, path + (i,)) for i, (v, e) in enumerate(zip(value, elements))]
            case models.Record(fields):
                if not isinstance(value, Mapping):
                    raise fail("record")
                result = {}
                for f in fields:
                    if f.name not in value:
                        raise InternalError(f"Component record is missing field '{f.name}' at '{format_path(path)}'")
                    result[f.name] = self.encode(value[f.name], f.type, handles, path + (f.name,))
                return result
            case models.Variant():
                if not isinstance(value, VariantValue) or t.case(value.case) is None:
                    raise fail("variant case")
                case = t.case(value.case)
                if case.type is None:
                    return {"case": case.name}
                return {"case": case.name, "value": self.encode(value.value, case.type, handles, path + ("value",))}
            case models.Enum(names):
                if value not in names:
                    raise fail("enum case")
                return value
            case models.Flags(names):
                if isinstance(value, str) or not all(name in names for name in value):
                    raise fail("set of flag names")
                present = set(value)
                return [name for name in names if name in present]
            case models.Resource():
                if handles is None:
                    raise InternalError("Cannot return a resource handle without a handle table")
                return handles.mint(value, t)
            case models.Named(identity, _):
                return self.encode(value, self.definitions[identity].type, handles, path)
        raise InternalError(f"Cannot encode values of type {t!r}")

    def encode_results(
        self, values: Sequence[Any], function: FunctionDescriptor, handles: ResourceHandleTable | None = None
    ) -> dict[str, Any]:
        """Encode a function's results as the response object."""
        if len(values) != len(function.results):
            raise InternalError(
                f"'{function.qualified_name}' returned {len(values)} value(s), expected {len(function.results)}"
            )
        return {
            key: self.encode(value, result.type, handles, (key,))
            for key, value, result in zip(function.result_keys(), values, function.results)
        }
