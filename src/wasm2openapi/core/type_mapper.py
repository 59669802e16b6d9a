"""Translate component model types into JSON Schema (OpenAPI 3.1 dialect)."""

from __future__ import annotations

import re
from typing import Any

from wasm2openapi import models
from wasm2openapi.models import StructuralType, TypeDefinitions

REF_PREFIX = "#/components/schemas/"
RESOURCE_HANDLE_FORMAT = "resource-handle"

# Schema keys the document builder adds itself
RESERVED_KEYS = frozenset({"Error"})

_INTEGER_FORMATS = {
    models.U8: "uint8",
    models.U16: "uint16",
    models.U32: "uint32",
    models.U64: "uint64",
    models.S8: "int8",
    models.S16: "int16",
    models.S32: "int32",
    models.S64: "int64",
}

_SCHEMA_KEY_INVALID = re.compile(r"[^A-Za-z0-9._-]+")


def schema_key(name: str) -> str:
    """Component schema keys must match ``^[a-zA-Z0-9.\\-_]+$``."""
    return _SCHEMA_KEY_INVALID.sub("-", name).strip("-") or "type"


def ref(key: str) -> dict[str, Any]:
    return {"$ref": REF_PREFIX + key}


def null_schema() -> dict[str, Any]:
    return {"type": "null"}


def single_key_object(key: str, schema: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {key: schema},
        "required": [key],
        "additionalProperties": False,
    }


def nested_option(definitions: TypeDefinitions, option: models.Option) -> bool:
    """An option directly wrapping another option needs an explicit ``{"some": ...}`` layer."""
    return isinstance(definitions.resolve(option.inner), models.Option)


class TypeMapper:
    """Maps types to schema nodes, collecting named types into ``schemas``.

    ``schemas`` is keyed by schema key and ordered by first visit; a mapper
    instance is meant to be used for exactly one document.
    """

    def __init__(self, definitions: TypeDefinitions) -> None:
        self.definitions = definitions
        self.schemas: dict[str, dict[str, Any]] = {}
        self._keys: dict[str, str] = {}

    def component_name(self, identity: str) -> str:
        """Stable schema key of a named definition, suffixed on collision."""
        if identity in self._keys:
            return self._keys[identity]
        base = schema_key(self.definitions[identity].name)
        taken = set(self._keys.values()) | RESERVED_KEYS
        key, n = base, 2
        while key in taken:
            key = f"{base}-{n}"
            n += 1
        self._keys[identity] = key
        return key

    def map_type(self, t: StructuralType, seen: set[str] | None = None) -> dict[str, Any]:
        seen = set() if seen is None else seen
        match t:
            case models.Bool():
                return {"type": "boolean"}
            case _ if type(t) in _INTEGER_FORMATS:
                lo, hi = models.integer_bounds(t)
                return {"type": "integer", "format": _INTEGER_FORMATS[type(t)], "minimum": lo, "maximum": hi}
            case models.F32():
                return {"type": "number", "format": "float"}
            case models.F64():
                return {"type": "number", "format": "double"}
            case models.Char():
                return {"type": "string", "minLength": 1, "maxLength": 1}
            case models.String():
                return {"type": "string"}
            case models.List(element):
                return {"type": "array", "items": self.map_type(element, seen)}
            case models.Option(inner):
                inner_schema = self.map_type(inner, seen)
                if nested_option(self.definitions, t):
                    inner_schema = single_key_object("some", inner_schema)
                return {"anyOf": [inner_schema, null_schema()]}
            case models.Result(ok, err):
                return {
                    "oneOf": [
                        single_key_object("ok", self.map_type(ok, seen) if ok is not None else null_schema()),
                        single_key_object("err", self.map_type(err, seen) if err is not None else null_schema()),
                    ]
                }
            case models.Tuple(elements):
                return {
                    "type": "array",
                    "prefixItems": [self.map_type(e, seen) for e in elements],
                    "minItems": len(elements),
                    "maxItems": len(elements),
                    "items": False,
                }
            case models.Record(fields):
                return {
                    "type": "object",
                    "properties": {f.name: self.map_type(f.type, seen) for f in fields},
                    "required": [f.name for f in fields],
                    "additionalProperties": False,
                }
            case models.Variant(cases):
                return {"oneOf": [self._case_schema(c, seen) for c in cases]}
            case models.Enum(names):
                return {"type": "string", "enum": list(names)}
            case models.Flags(names):
                if not names:
                    return {"type": "array", "maxItems": 0}
                return {"type": "array", "items": {"type": "string", "enum": list(names)}, "uniqueItems": True}
            case models.Resource(_, name, owned):
                description = f"Handle to a `{name}` resource. Only valid within the session that issued it."
                if owned:
                    description += " Passing it as an argument hands the resource over; the handle is then spent."
                return {"type": "string", "format": RESOURCE_HANDLE_FORMAT, "description": description}
            case models.Named(identity, _):
                return self._named(identity, seen)
        raise TypeError(f"Not a structural type: {t!r}")

    def _case_schema(self, case: models.Case, seen: set[str]) -> dict[str, Any]:
        properties: dict[str, Any] = {"case": {"const": case.name}}
        required = ["case"]
        if case.type is not None:
            properties["value"] = self.map_type(case.type, seen)
            required.append("value")
        return {
            "type": "object",
            "title": case.name,
            "properties": properties,
            "required": required,
            "additionalProperties": False,
        }

    def _named(self, identity: str, seen: set[str]) -> dict[str, Any]:
        key = self.component_name(identity)
        if identity in seen or key in self.schemas:
            return ref(key)
        # Reserve the slot first so the table keeps first-visit order
        self.schemas[key] = {}
        definition = self.definitions[identity]
        schema = self.map_type(definition.type, seen | {identity})
        schema.setdefault("title", definition.name)
        self.schemas[key] = schema
        return ref(key)
