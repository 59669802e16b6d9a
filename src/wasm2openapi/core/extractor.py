"""Recover exported function signatures from a component binary.

Only the component layer is parsed: sections are walked to rebuild the type,
function, instance and component index spaces of every (nested) component, and
the top-level exports are resolved through them.  Core modules are skipped and
no code is executed; wasmtime validates the whole binary, core modules
included, once the interface has been read.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import wasmtime
from wasmtime import component as wc

from wasm2openapi import models
from wasm2openapi.core.binary import BinaryReader, decode_signed_leb128, decode_unsigned_leb128
from wasm2openapi.errors import InvalidComponent, UnsupportedType
from wasm2openapi.models import (
    ComponentInterface,
    FunctionDescriptor,
    Named,
    Param,
    StructuralType,
    TypeDefinition,
    TypeDefinitions,
)

logger = logging.getLogger(__name__)

WASM_MAGIC = b"\x00asm"
COMPONENT_VERSION = 0x0D
COMPONENT_LAYER = 1

# Section IDs
SECTION_CUSTOM = 0
SECTION_CORE_MODULE = 1
SECTION_CORE_INSTANCE = 2
SECTION_CORE_TYPE = 3
SECTION_COMPONENT = 4
SECTION_INSTANCE = 5
SECTION_ALIAS = 6
SECTION_TYPE = 7
SECTION_CANON = 8
SECTION_START = 9
SECTION_IMPORT = 10
SECTION_EXPORT = 11
SECTION_VALUE = 12

# Sorts
SORT_CORE = 0x00
SORT_FUNC = 0x01
SORT_VALUE = 0x02
SORT_TYPE = 0x03
SORT_COMPONENT = 0x04
SORT_INSTANCE = 0x05

_SORT_NAMES = {
    SORT_FUNC: "func",
    SORT_VALUE: "value",
    SORT_TYPE: "type",
    SORT_COMPONENT: "component",
    SORT_INSTANCE: "instance",
}

PRIMITIVE_TYPES = {
    0x7F: "bool",
    0x7E: "s8",
    0x7D: "u8",
    0x7C: "s16",
    0x7B: "u16",
    0x7A: "s32",
    0x79: "u32",
    0x78: "s64",
    0x77: "u64",
    0x76: "f32",
    0x75: "f64",
    0x74: "char",
    0x73: "string",
    0x64: "error-context",
}

_PRIMITIVE_STRUCTURAL: dict[str, StructuralType] = {
    "bool": models.Bool(),
    "s8": models.S8(),
    "u8": models.U8(),
    "s16": models.S16(),
    "u16": models.U16(),
    "s32": models.S32(),
    "u32": models.U32(),
    "s64": models.S64(),
    "u64": models.U64(),
    "f32": models.F32(),
    "f64": models.F64(),
    "char": models.Char(),
    "string": models.String(),
}

# wit-component names the type imports of its shim components "import-type-<name>"
_GENERATED_NAME_PREFIXES = ("import-type-",)

PACKAGE_DOCS_SECTION = "package-docs"

# A value type is either a primitive name or an index into the type space
ValType = str | int


# --- Index space entries ---


@dataclass(eq=False)
class _Scope:
    uid: str
    parent: _Scope | None = None
    types: list[Any] = field(default_factory=list)
    funcs: list[Any] = field(default_factory=list)
    instances: list[Any] = field(default_factory=list)
    components: list[Any] = field(default_factory=list)
    # name -> reference to the exported (or, in type declarators, declared) item
    exports: dict[str, _Ref] = field(default_factory=dict)
    # instantiation arguments, once this component has been instantiated
    bindings: dict[str, _Ref] = field(default_factory=dict)
    _children: int = 0

    def child(self, tag: str) -> _Scope:
        self._children += 1
        return _Scope(uid=f"{self.uid}.{tag}{self._children}", parent=self)

    def space(self, sort: str) -> list[Any]:
        return {
            "type": self.types,
            "func": self.funcs,
            "instance": self.instances,
            "component": self.components,
        }[sort]

    def lookup(self, sort: str, index: int) -> Any:
        space = self.space(sort)
        if not 0 <= index < len(space):
            raise InvalidComponent(f"{sort} index {index} out of bounds in component scope {self.uid}")
        return space[index]

    def outer(self, count: int) -> _Scope:
        scope: _Scope | None = self
        for _ in range(count):
            scope = scope.parent if scope else None
        if scope is None:
            raise InvalidComponent(f"Outer alias count {count} escapes the outermost component")
        return scope


@dataclass(frozen=True, eq=False)
class _Ref:
    """An entry of ``scope``'s ``sort`` index space (``functype`` means a type index holding a function type)."""

    scope: _Scope
    sort: str
    index: int


@dataclass(frozen=True, eq=False)
class _MemberRef:
    """An export of an instance, reached through an ``alias export``."""

    scope: _Scope
    instance: int
    name: str
    sort: str


@dataclass(eq=False)
class _ValTypeDef:
    identity: str
    scope: _Scope
    kind: str
    data: Any = None


@dataclass(eq=False)
class _FuncTypeDef:
    params: list[tuple[str, ValType]]
    results: list[tuple[str | None, ValType]]
    is_async: bool = False


@dataclass(eq=False)
class _ResourceDef:
    identity: str
    name: str | None = None


@dataclass(eq=False)
class _ImportedType:
    """A type entering a scope under a name: import, export or export declaration."""

    scope: _Scope
    name: str
    identity: str
    eq: _Ref | None = None  # None means ``(sub resource)``


@dataclass(eq=False)
class _InstanceTypeDef:
    scope: _Scope


@dataclass(eq=False)
class _ComponentTypeDef:
    scope: _Scope


@dataclass(eq=False)
class _UnsupportedTypeDef:
    construct: str


@dataclass(eq=False)
class _InstanceFromType:
    type: _Ref


@dataclass(eq=False)
class _InlineInstance:
    members: dict[str, _Ref]


@dataclass(eq=False)
class _Instantiation:
    component: _Ref
    args: dict[str, _Ref]


@dataclass(eq=False)
class _ComponentFromType:
    type: _Ref


@dataclass(eq=False)
class _ComponentDef:
    scope: _Scope


# --- Binary parsing ---


def read_preamble(reader: BinaryReader) -> None:
    magic = reader.read_bytes(4) if reader.remaining() >= 4 else b""
    if magic != WASM_MAGIC:
        raise InvalidComponent("Not a WebAssembly binary (bad magic number)")
    if reader.remaining() < 4:
        raise reader.error("Truncated preamble")
    version = int.from_bytes(reader.read_bytes(2), "little")
    layer = int.from_bytes(reader.read_bytes(2), "little")
    if layer == 0:
        raise InvalidComponent("Binary is a core module, not a component (it has no typed interface)")
    if layer != COMPONENT_LAYER:
        raise InvalidComponent(f"Unknown binary layer {layer}")
    if version != COMPONENT_VERSION:
        raise InvalidComponent(f"Unsupported component encoding version 0x{version:02x}")


def _read_valtype(reader: BinaryReader) -> ValType:
    value = decode_signed_leb128(reader, max_bits=33)
    if value >= 0:
        return value
    code = value & 0x7F
    if code not in PRIMITIVE_TYPES:
        raise reader.error(f"Unknown primitive value type 0x{code:02x}")
    return PRIMITIVE_TYPES[code]


def _read_optional(reader: BinaryReader) -> bool:
    flag = reader.read_byte()
    if flag not in (0x00, 0x01):
        raise reader.error(f"Invalid option flag 0x{flag:02x}")
    return flag == 0x01


def _read_extern_name(reader: BinaryReader) -> str:
    kind = reader.read_byte()
    name = reader.read_name()
    if kind == 0x01:
        # version suffix (or, in older encodings, a URL)
        reader.read_name()
    elif kind != 0x00:
        raise reader.error(f"Invalid extern name prefix 0x{kind:02x}")
    return name


def _read_sort(reader: BinaryReader) -> str | None:
    """Read a sort; core sorts are returned as ``None``."""
    sort = reader.read_byte()
    if sort == SORT_CORE:
        reader.read_byte()
        return None
    if sort not in _SORT_NAMES:
        raise reader.error(f"Unknown sort 0x{sort:02x}")
    return _SORT_NAMES[sort]


def _read_sortidx(reader: BinaryReader) -> tuple[str | None, int]:
    sort = _read_sort(reader)
    return sort, reader.read_u32()


@dataclass
class _ExternDesc:
    sort: str
    type_index: int | None = None
    eq: int | None = None  # type bound: index for ``eq``, None for ``sub resource``


def _read_externdesc(reader: BinaryReader) -> _ExternDesc:
    kind = reader.read_byte()
    if kind == 0x00:
        if reader.read_byte() != 0x11:
            raise reader.error("Invalid core module extern descriptor")
        return _ExternDesc("module", reader.read_u32())
    if kind == 0x01:
        return _ExternDesc("func", reader.read_u32())
    if kind == 0x02:
        bound = reader.read_byte()
        if bound == 0x00:
            reader.read_u32()
        else:
            _read_valtype(reader)
        return _ExternDesc("value")
    if kind == 0x03:
        bound = reader.read_byte()
        if bound == 0x00:
            return _ExternDesc("type", eq=reader.read_u32())
        if bound == 0x01:
            return _ExternDesc("type")
        raise reader.error(f"Invalid type bound 0x{bound:02x}")
    if kind == 0x04:
        return _ExternDesc("component", reader.read_u32())
    if kind == 0x05:
        return _ExternDesc("instance", reader.read_u32())
    raise reader.error(f"Invalid extern descriptor 0x{kind:02x}")


def _skip_core_valtype(reader: BinaryReader) -> None:
    byte = reader.read_byte()
    if byte in (0x63, 0x64):
        decode_signed_leb128(reader, max_bits=33)


def _skip_limits(reader: BinaryReader) -> None:
    flags = reader.read_byte()
    bits = 64 if flags & 0x04 else 32
    decode_unsigned_leb128(reader, max_bits=bits)
    if flags & 0x01:
        decode_unsigned_leb128(reader, max_bits=bits)


def _skip_core_importdesc(reader: BinaryReader) -> None:
    kind = reader.read_byte()
    if kind == 0x00:
        reader.read_u32()
    elif kind == 0x01:
        _skip_core_valtype(reader)
        _skip_limits(reader)
    elif kind == 0x02:
        _skip_limits(reader)
    elif kind == 0x03:
        _skip_core_valtype(reader)
        reader.read_byte()
    elif kind == 0x04:
        reader.read_byte()
        reader.read_u32()
    else:
        raise reader.error(f"Invalid core import descriptor 0x{kind:02x}")


def _skip_core_type(reader: BinaryReader) -> None:
    form = reader.read_byte()
    if form == 0x60:
        for _ in range(reader.read_vec_len()):
            _skip_core_valtype(reader)
        for _ in range(reader.read_vec_len()):
            _skip_core_valtype(reader)
    elif form == 0x50:
        for _ in range(reader.read_vec_len()):
            decl = reader.read_byte()
            if decl == 0x00:
                reader.read_name()
                reader.read_name()
                _skip_core_importdesc(reader)
            elif decl == 0x01:
                _skip_core_type(reader)
            elif decl == 0x02:
                reader.read_byte()
                if reader.read_byte() != 0x01:
                    raise reader.error("Invalid core alias in module type")
                reader.read_u32()
                reader.read_u32()
            elif decl == 0x03:
                reader.read_name()
                _skip_core_importdesc(reader)
            else:
                raise reader.error(f"Invalid module type declaration 0x{decl:02x}")
    else:
        raise reader.error(f"Unsupported core type form 0x{form:02x}")


class _Parser:
    """Builds the index spaces of a component and its nested components."""

    def __init__(self) -> None:
        self.docs: dict[str, Any] | None = None

    def parse_component(self, reader: BinaryReader, scope: _Scope) -> None:
        read_preamble(reader)
        while not reader.eof():
            section_id = reader.read_byte()
            size = reader.read_u32()
            body = reader.sub_reader(size)
            if section_id == SECTION_CUSTOM:
                self._custom_section(body)
                continue
            if section_id in (SECTION_CORE_MODULE, SECTION_CORE_INSTANCE, SECTION_CORE_TYPE):
                continue
            if section_id in (SECTION_START, SECTION_VALUE):
                continue
            if section_id == SECTION_COMPONENT:
                nested = scope.child("c")
                self.parse_component(body, nested)
                scope.components.append(_ComponentDef(nested))
                continue
            handler = {
                SECTION_INSTANCE: self._instance_section,
                SECTION_ALIAS: self._alias_section,
                SECTION_TYPE: self._type_section,
                SECTION_CANON: self._canon_section,
                SECTION_IMPORT: self._import_section,
                SECTION_EXPORT: self._export_section,
            }.get(section_id)
            if handler is None:
                raise body.error(f"Unknown section id {section_id}")
            handler(body, scope)
            if not body.eof():
                raise body.error(f"Section {section_id} has {body.remaining()} trailing bytes")

    # Sections

    def _custom_section(self, body: BinaryReader) -> None:
        name = body.read_name()
        if name != PACKAGE_DOCS_SECTION or self.docs is not None:
            return
        payload = body.read_bytes(body.remaining())
        try:
            docs = json.loads(payload[1:].decode("utf-8"))
        except (ValueError, IndexError) as exc:
            logger.debug("Ignoring unreadable %s section: %s", PACKAGE_DOCS_SECTION, exc)
            return
        if isinstance(docs, dict):
            self.docs = docs

    def _type_section(self, body: BinaryReader, scope: _Scope) -> None:
        for _ in range(body.read_vec_len()):
            scope.types.append(self._read_deftype(body, scope))

    def _import_section(self, body: BinaryReader, scope: _Scope) -> None:
        for _ in range(body.read_vec_len()):
            name = _read_extern_name(body)
            desc = _read_externdesc(body)
            self._add_extern(scope, name, desc)

    def _export_section(self, body: BinaryReader, scope: _Scope) -> None:
        for _ in range(body.read_vec_len()):
            name = _read_extern_name(body)
            sort, index = _read_sortidx(body)
            desc = _read_externdesc(body) if _read_optional(body) else None
            if sort is None or sort == "value":
                continue
            # Exporting introduces a new index for the exported item
            item: Any
            if sort == "func":
                item = _Ref(scope, "functype", desc.type_index) if desc else _Ref(scope, "func", index)
            elif sort == "type":
                identity = f"{scope.uid}:t{len(scope.types)}"
                item = _ImportedType(scope, name, identity, eq=_Ref(scope, "type", index))
            else:
                item = _Ref(scope, sort, index)
            space = scope.space(sort)
            space.append(item)
            scope.exports[name] = _Ref(scope, sort, len(space) - 1)

    def _alias_section(self, body: BinaryReader, scope: _Scope) -> None:
        for _ in range(body.read_vec_len()):
            self._read_alias(body, scope)

    def _read_alias(self, body: BinaryReader, scope: _Scope) -> None:
        sort = _read_sort(body)
        target = body.read_byte()
        if target == 0x00:
            instance = body.read_u32()
            name = body.read_name()
            if sort is not None and sort != "value":
                scope.space(sort).append(_MemberRef(scope, instance, name, sort))
        elif target == 0x01:
            body.read_u32()
            body.read_name()
        elif target == 0x02:
            count = body.read_u32()
            index = body.read_u32()
            if sort is not None and sort != "value":
                scope.space(sort).append(_Ref(scope.outer(count), sort, index))
        else:
            raise body.error(f"Invalid alias target 0x{target:02x}")

    def _instance_section(self, body: BinaryReader, scope: _Scope) -> None:
        for _ in range(body.read_vec_len()):
            kind = body.read_byte()
            if kind == 0x00:
                component = body.read_u32()
                args: dict[str, _Ref] = {}
                for _ in range(body.read_vec_len()):
                    name = body.read_name()
                    sort, index = _read_sortidx(body)
                    if sort is not None and sort != "value":
                        args[name] = _Ref(scope, sort, index)
                scope.instances.append(_Instantiation(_Ref(scope, "component", component), args))
            elif kind == 0x01:
                members: dict[str, _Ref] = {}
                for _ in range(body.read_vec_len()):
                    name = _read_extern_name(body)
                    sort, index = _read_sortidx(body)
                    if sort is not None and sort != "value":
                        members[name] = _Ref(scope, sort, index)
                scope.instances.append(_InlineInstance(members))
            else:
                raise body.error(f"Invalid instance form 0x{kind:02x}")

    def _canon_section(self, body: BinaryReader, scope: _Scope) -> None:
        count = body.read_vec_len()
        for i in range(count):
            op = body.read_byte()
            if op == 0x00:
                if body.read_byte() != 0x00:
                    raise body.error("Invalid canon lift encoding")
                body.read_u32()
                self._skip_canon_opts(body)
                scope.funcs.append(_Ref(scope, "functype", body.read_u32()))
            elif op == 0x01:
                if body.read_byte() != 0x00:
                    raise body.error("Invalid canon lower encoding")
                body.read_u32()
                self._skip_canon_opts(body)
            elif op in (0x02, 0x03, 0x04, 0x07):
                body.read_u32()
            elif op in (0x05, 0x08, 0x0D):
                pass
            elif op in (0x0A, 0x0B):
                body.read_byte()
                body.read_u32()
            elif op == 0x09:
                self._read_resultlist(body)
                self._skip_canon_opts(body)
            else:
                # Remaining canonical built-ins only define core functions
                logger.debug("Skipping %d canon entries after unknown opcode 0x%02x", count - i, op)
                body.read_bytes(body.remaining())
                return

    @staticmethod
    def _skip_canon_opts(body: BinaryReader) -> None:
        for _ in range(body.read_vec_len()):
            opt = body.read_byte()
            if opt in (0x03, 0x04, 0x05, 0x07):
                body.read_u32()

    # Types

    def _read_deftype(self, reader: BinaryReader, scope: _Scope) -> Any:
        identity = f"{scope.uid}:t{len(scope.types)}"
        form = reader.read_byte()
        if form in (0x40, 0x43):
            params = [(reader.read_name(), _read_valtype(reader)) for _ in range(reader.read_vec_len())]
            results = self._read_resultlist(reader)
            return _FuncTypeDef(params, results, is_async=form == 0x43)
        if form == 0x41:
            decl_scope = scope.child("ct")
            for _ in range(reader.read_vec_len()):
                self._read_decl(reader, decl_scope, component=True)
            return _ComponentTypeDef(decl_scope)
        if form == 0x42:
            decl_scope = scope.child("it")
            for _ in range(reader.read_vec_len()):
                self._read_decl(reader, decl_scope, component=False)
            return _InstanceTypeDef(decl_scope)
        if form == 0x3F:
            if reader.read_byte() != 0x7F:
                raise reader.error("Invalid resource representation")
            if _read_optional(reader):
                reader.read_u32()
            return _ResourceDef(identity)
        if form == 0x3E:
            if reader.read_byte() != 0x7F:
                raise reader.error("Invalid resource representation")
            for _ in range(2):
                if _read_optional(reader):
                    reader.read_u32()
            return _ResourceDef(identity)
        return self._read_defvaltype(reader, form, identity, scope)

    def _read_resultlist(self, reader: BinaryReader) -> list[tuple[str | None, ValType]]:
        kind = reader.read_byte()
        if kind == 0x00:
            return [(None, _read_valtype(reader))]
        if kind == 0x01:
            return [(reader.read_name(), _read_valtype(reader)) for _ in range(reader.read_vec_len())]
        raise reader.error(f"Invalid result list 0x{kind:02x}")

    def _read_defvaltype(self, reader: BinaryReader, form: int, identity: str, scope: _Scope) -> Any:
        if form in PRIMITIVE_TYPES:
            return _ValTypeDef(identity, scope, "primitive", PRIMITIVE_TYPES[form])
        if form == 0x72:
            fields = [(reader.read_name(), _read_valtype(reader)) for _ in range(reader.read_vec_len())]
            return _ValTypeDef(identity, scope, "record", fields)
        if form == 0x71:
            cases = []
            for _ in range(reader.read_vec_len()):
                name = reader.read_name()
                payload = _read_valtype(reader) if _read_optional(reader) else None
                if _read_optional(reader):
                    reader.read_u32()
                cases.append((name, payload))
            return _ValTypeDef(identity, scope, "variant", cases)
        if form == 0x70:
            return _ValTypeDef(identity, scope, "list", _read_valtype(reader))
        if form == 0x6F:
            return _ValTypeDef(identity, scope, "tuple", [_read_valtype(reader) for _ in range(reader.read_vec_len())])
        if form == 0x6E:
            return _ValTypeDef(identity, scope, "flags", [reader.read_name() for _ in range(reader.read_vec_len())])
        if form == 0x6D:
            return _ValTypeDef(identity, scope, "enum", [reader.read_name() for _ in range(reader.read_vec_len())])
        if form == 0x6B:
            return _ValTypeDef(identity, scope, "option", _read_valtype(reader))
        if form == 0x6A:
            ok = _read_valtype(reader) if _read_optional(reader) else None
            err = _read_valtype(reader) if _read_optional(reader) else None
            return _ValTypeDef(identity, scope, "result", (ok, err))
        if form in (0x69, 0x68):
            return _ValTypeDef(identity, scope, "own" if form == 0x69 else "borrow", reader.read_u32())
        if form == 0x67:
            _read_valtype(reader)
            reader.read_u32()
            return _UnsupportedTypeDef("fixed-size list")
        if form in (0x66, 0x65):
            if _read_optional(reader):
                _read_valtype(reader)
            return _UnsupportedTypeDef("stream" if form == 0x66 else "future")
        raise reader.error(f"Unknown type form 0x{form:02x}")

    def _read_decl(self, reader: BinaryReader, scope: _Scope, component: bool) -> None:
        kind = reader.read_byte()
        if kind == 0x00:
            _skip_core_type(reader)
        elif kind == 0x01:
            scope.types.append(self._read_deftype(reader, scope))
        elif kind == 0x02:
            self._read_alias(reader, scope)
        elif kind == 0x03 and component:
            # imports of a component type never surface as exported functions
            name = _read_extern_name(reader)
            self._add_extern(scope, name, _read_externdesc(reader), export=False)
        elif kind == 0x04:
            name = _read_extern_name(reader)
            self._add_extern(scope, name, _read_externdesc(reader), export=True)
        else:
            raise reader.error(f"Invalid type declaration 0x{kind:02x}")

    def _add_extern(self, scope: _Scope, name: str, desc: _ExternDesc, export: bool = False) -> None:
        """Add an imported (or declared) item to its index space."""
        item: Any
        if desc.sort == "func":
            item = _Ref(scope, "functype", desc.type_index)
        elif desc.sort == "type":
            identity = f"{scope.uid}:t{len(scope.types)}"
            eq = _Ref(scope, "type", desc.eq) if desc.eq is not None else None
            item = _ImportedType(scope, name, identity, eq=eq)
        elif desc.sort == "instance":
            item = _InstanceFromType(_Ref(scope, "type", desc.type_index))
        elif desc.sort == "component":
            item = _ComponentFromType(_Ref(scope, "type", desc.type_index))
        else:
            return
        space = scope.space(desc.sort)
        space.append(item)
        if export:
            scope.exports[name] = _Ref(scope, desc.sort, len(space) - 1)


# --- Resolution ---


class _Resolver:
    """Resolves references across scopes and converts type entries to ``StructuralType``."""

    def __init__(self) -> None:
        self.definitions: dict[str, TypeDefinition | None] = {}

    # Generic dereferencing

    def deref(self, item: Any, sort: str) -> Any:
        visited: set[int] = set()
        while isinstance(item, (_Ref, _MemberRef)):
            if id(item) in visited:
                raise InvalidComponent(f"Circular {sort} alias")
            visited.add(id(item))
            if isinstance(item, _MemberRef):
                item = self.member(item.scope, item.instance, item.name, sort)
            elif item.sort == "functype":
                return item
            else:
                item = item.scope.lookup(item.sort, item.index)
        return item

    def members(self, instance: Any) -> dict[str, _Ref]:
        instance = self.deref(instance, "instance")
        if isinstance(instance, _InlineInstance):
            return instance.members
        if isinstance(instance, _InstanceFromType):
            type_def = self.type_entry(instance.type)
            if not isinstance(type_def, _InstanceTypeDef):
                raise InvalidComponent("Instance is described by a type that is not an instance type")
            return type_def.scope.exports
        if isinstance(instance, _Instantiation):
            component = self.deref(instance.component, "component")
            if isinstance(component, _ComponentDef):
                for name, arg in instance.args.items():
                    component.scope.bindings.setdefault(name, arg)
                return component.scope.exports
            if isinstance(component, _ComponentFromType):
                type_def = self.type_entry(component.type)
                if not isinstance(type_def, _ComponentTypeDef):
                    raise InvalidComponent("Component is described by a type that is not a component type")
                return type_def.scope.exports
        raise InvalidComponent("Unresolvable instance")

    def member(self, scope: _Scope, instance: int, name: str, sort: str) -> _Ref:
        members = self.members(scope.lookup("instance", instance))
        if name not in members:
            raise InvalidComponent(f"Instance {instance} in scope {scope.uid} has no export '{name}'")
        ref = members[name]
        if ref.sort != sort:
            raise InvalidComponent(f"Export '{name}' is a {ref.sort}, not a {sort}")
        return ref

    def func_type(self, ref: _Ref) -> tuple[_FuncTypeDef, _Scope]:
        target = self.deref(ref, "func")
        if not isinstance(target, _Ref) or target.sort != "functype":
            raise InvalidComponent("Function has no function type")
        func_type = self.type_entry(_Ref(target.scope, "type", target.index))
        if not isinstance(func_type, _FuncTypeDef):
            raise InvalidComponent(f"Type index {target.index} is not a function type")
        return func_type, target.scope

    def type_entry(self, ref: _Ref | _MemberRef) -> Any:
        """Follow aliases and named imports to the defining type entry."""
        return self._walk_type(ref)[0]

    def _walk_type(self, item: Any) -> tuple[Any, str | None]:
        name: str | None = None
        visited: set[int] = set()
        while True:
            if id(item) in visited:
                raise InvalidComponent("Circular type alias")
            visited.add(id(item))
            if isinstance(item, _MemberRef):
                item = self.member(item.scope, item.instance, item.name, "type")
            elif isinstance(item, _Ref):
                item = item.scope.lookup("type", item.index)
            elif isinstance(item, _ImportedType):
                name = name or _display_name(item.name)
                bound = item.scope.bindings.get(item.name)
                if bound is not None and bound.sort == "type":
                    item = bound
                elif item.eq is not None:
                    item = item.eq
                else:
                    return _ResourceDef(item.identity, item.name), name
            else:
                return item, name

    # Conversion

    def valtype(self, scope: _Scope, vt: ValType) -> StructuralType:
        if isinstance(vt, str):
            if vt not in _PRIMITIVE_STRUCTURAL:
                raise UnsupportedType(vt)
            return _PRIMITIVE_STRUCTURAL[vt]
        entry, name = self._walk_type(_Ref(scope, "type", vt))
        if isinstance(entry, _ResourceDef):
            return models.Resource(entry.identity, name or entry.name or "resource")
        if isinstance(entry, _UnsupportedTypeDef):
            raise UnsupportedType(entry.construct)
        if not isinstance(entry, _ValTypeDef):
            raise InvalidComponent(f"Type index {vt} does not refer to a value type")
        if name is None:
            return self.structural(entry)
        if entry.identity not in self.definitions:
            self.definitions[entry.identity] = None
            self.definitions[entry.identity] = TypeDefinition(entry.identity, name, self.structural(entry))
        existing = self.definitions[entry.identity]
        return Named(entry.identity, existing.name if existing else name)

    def structural(self, entry: _ValTypeDef) -> StructuralType:
        scope = entry.scope
        kind, data = entry.kind, entry.data
        if kind == "primitive":
            return self.valtype(scope, data)
        if kind == "record":
            return models.Record(tuple(models.Field(n, self.valtype(scope, t)) for n, t in data))
        if kind == "variant":
            return models.Variant(
                tuple(models.Case(n, self.valtype(scope, t) if t is not None else None) for n, t in data)
            )
        if kind == "list":
            return models.List(self.valtype(scope, data))
        if kind == "tuple":
            return models.Tuple(tuple(self.valtype(scope, t) for t in data))
        if kind == "flags":
            return models.Flags(tuple(data))
        if kind == "enum":
            return models.Enum(tuple(data))
        if kind == "option":
            return models.Option(self.valtype(scope, data))
        if kind == "result":
            ok, err = data
            return models.Result(
                self.valtype(scope, ok) if ok is not None else None,
                self.valtype(scope, err) if err is not None else None,
            )
        if kind in ("own", "borrow"):
            resource, name = self._walk_type(_Ref(scope, "type", data))
            if not isinstance(resource, _ResourceDef):
                raise InvalidComponent(f"Handle type refers to type {data}, which is not a resource")
            return models.Resource(resource.identity, name or resource.name or "resource", owned=kind == "own")
        raise InvalidComponent(f"Unknown value type kind '{kind}'")

    def descriptor(
        self, name: str, ref: _Ref, interface: str | None, docs: str | None
    ) -> FunctionDescriptor:
        qualified = f"{interface}#{name}" if interface else name
        try:
            func_type, scope = self.func_type(ref)
            if func_type.is_async:
                raise UnsupportedType("async func")
            params = tuple(Param(label, self.valtype(scope, t)) for label, t in func_type.params)
            results = tuple(Param(label, self.valtype(scope, t)) for label, t in func_type.results)
        except UnsupportedType as exc:
            raise UnsupportedType(exc.construct, function=qualified) from exc
        return FunctionDescriptor(name=name, params=params, results=results, interface=interface, docs=docs)


def _display_name(name: str) -> str:
    for prefix in _GENERATED_NAME_PREFIXES:
        if name.startswith(prefix):
            return name[len(prefix) :]
    return name


def _interface_short_name(interface: str) -> str:
    """``ns:pkg/iface@1.0.0`` -> ``iface``."""
    return interface.split("/")[-1].split("@")[0]


def _lookup_docs(docs: dict[str, Any] | None, name: str, interface: str | None) -> str | None:
    if not docs:
        return None

    def _text(value: Any) -> str | None:
        if isinstance(value, str):
            return value
        if isinstance(value, dict) and isinstance(value.get("docs"), str):
            return value["docs"]
        return None

    if interface is None:
        for world in (docs.get("worlds") or {}).values():
            if not isinstance(world, dict):
                continue
            for key in ("func_exports", "funcs"):
                text = _text((world.get(key) or {}).get(name))
                if text:
                    return text
        return None
    short = _interface_short_name(interface)
    interfaces = docs.get("interfaces") or {}
    candidates = [interfaces.get(short), interfaces.get(interface)]
    for world in (docs.get("worlds") or {}).values():
        if isinstance(world, dict):
            candidates.append((world.get("interface_exports") or {}).get(short))
    for candidate in candidates:
        if isinstance(candidate, dict):
            text = _text((candidate.get("funcs") or {}).get(name))
            if text:
                return text
    return None


def _exported_functions(resolver: _Resolver, root: _Scope) -> Iterator[tuple[str, _Ref, str | None]]:
    for export_name, ref in root.exports.items():
        if ref.sort == "func":
            yield export_name, ref, None
        elif ref.sort == "instance":
            for member_name, member in resolver.members(ref).items():
                if member.sort == "func":
                    yield member_name, member, export_name


def validate(data: bytes) -> None:
    """Raise ``InvalidComponent`` unless wasmtime accepts the binary."""
    try:
        wc.Component(wasmtime.Engine(), data)
    except wasmtime.WasmtimeError as exc:
        raise InvalidComponent(f"Component failed validation: {exc}") from exc


def load(data: bytes, validate_binary: bool = True) -> ComponentInterface:
    """Parse a component binary into its exported interface.

    ``validate_binary=False`` skips the wasmtime check and only reads the
    component layer.
    """
    parser = _Parser()
    root = _Scope(uid="c0")
    parser.parse_component(BinaryReader(bytes(data)), root)

    resolver = _Resolver()
    functions = tuple(
        resolver.descriptor(name, ref, interface, _lookup_docs(parser.docs, name, interface))
        for name, ref, interface in _exported_functions(resolver, root)
    )
    definitions = TypeDefinitions({k: v for k, v in resolver.definitions.items() if v is not None})
    if validate_binary:
        validate(bytes(data))
    logger.info(
        "Loaded component: %d exported function(s), %d named type(s)", len(functions), len(definitions)
    )
    package_docs = parser.docs.get("docs") if parser.docs else None
    return ComponentInterface(
        functions=functions,
        definitions=definitions,
        binary=bytes(data),
        docs=package_docs if isinstance(package_docs, str) else None,
    )


def load_file(path: str | Path) -> ComponentInterface:
    return load(Path(path).read_bytes())
