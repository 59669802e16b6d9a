"""Minimal encoder for component binaries, enough to exercise the extractor.

Only the component layer is produced; canonical lifts point at a core function
that does not exist, so wasmtime would reject these binaries and tests read them
with ``load(..., validate_binary=False)``.
"""

from __future__ import annotations

from collections.abc import Sequence

PREAMBLE = b"\x00asm\x0d\x00\x01\x00"
CORE_MODULE_PREAMBLE = b"\x00asm\x01\x00\x00\x00"

PRIMITIVES = {
    "bool": 0x7F,
    "s8": 0x7E,
    "u8": 0x7D,
    "s16": 0x7C,
    "u16": 0x7B,
    "s32": 0x7A,
    "u32": 0x79,
    "s64": 0x78,
    "u64": 0x77,
    "f32": 0x76,
    "f64": 0x75,
    "char": 0x74,
    "string": 0x73,
    "error-context": 0x64,
}

SORTS = {"func": 0x01, "type": 0x03, "component": 0x04, "instance": 0x05}

ValType = str | int


def uleb(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def sleb(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        done = (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40)
        out.append(byte if done else byte | 0x80)
        if done:
            return bytes(out)


def name(text: str) -> bytes:
    data = text.encode("utf-8")
    return uleb(len(data)) + data


def vec(items: Sequence[bytes]) -> bytes:
    return uleb(len(items)) + b"".join(items)


def valtype(vt: ValType) -> bytes:
    if isinstance(vt, str):
        return bytes([PRIMITIVES[vt]])
    return sleb(vt)


def optional(vt: ValType | None) -> bytes:
    return b"\x00" if vt is None else b"\x01" + valtype(vt)


def section(section_id: int, content: bytes) -> bytes:
    return bytes([section_id]) + uleb(len(content)) + content


# --- deftype encoders ---


def record(fields: Sequence[tuple[str, ValType]]) -> bytes:
    return b"\x72" + vec([name(n) + valtype(t) for n, t in fields])


def variant(cases: Sequence[tuple[str, ValType | None]]) -> bytes:
    return b"\x71" + vec([name(n) + optional(t) + b"\x00" for n, t in cases])


def list_of(vt: ValType) -> bytes:
    return b"\x70" + valtype(vt)


def tuple_of(elements: Sequence[ValType]) -> bytes:
    return b"\x6f" + vec([valtype(t) for t in elements])


def flags(names: Sequence[str]) -> bytes:
    return b"\x6e" + vec([name(n) for n in names])


def enum(names: Sequence[str]) -> bytes:
    return b"\x6d" + vec([name(n) for n in names])


def option(vt: ValType) -> bytes:
    return b"\x6b" + valtype(vt)


def result(ok: ValType | None = None, err: ValType | None = None) -> bytes:
    return b"\x6a" + optional(ok) + optional(err)


def own(resource_index: int) -> bytes:
    return b"\x69" + uleb(resource_index)


def borrow(resource_index: int) -> bytes:
    return b"\x68" + uleb(resource_index)


def resource() -> bytes:
    return b"\x3f\x7f\x00"


def stream(vt: ValType | None = None) -> bytes:
    return b"\x66" + optional(vt)


def func(
    params: Sequence[tuple[str, ValType]],
    results: ValType | Sequence[tuple[str, ValType]] | None = None,
) -> bytes:
    encoded = b"\x40" + vec([name(n) + valtype(t) for n, t in params])
    if results is None:
        return encoded + b"\x01\x00"
    if isinstance(results, (str, int)):
        return encoded + b"\x00" + valtype(results)
    return encoded + b"\x01" + vec([name(n) + valtype(t) for n, t in results])


class ComponentBuilder:
    """Appends one section per call and tracks the index spaces it grows."""

    def __init__(self) -> None:
        self.sections: list[bytes] = []
        self.types = 0
        self.funcs = 0
        self.instances = 0
        self.components = 0

    def _grow(self, space: str) -> int:
        index = getattr(self, space)
        setattr(self, space, index + 1)
        return index

    def type(self, deftype: bytes) -> int:
        self.sections.append(section(7, vec([deftype])))
        return self._grow("types")

    def lift(self, type_index: int) -> int:
        """``canon lift`` of core function 0 with no options."""
        self.sections.append(section(8, vec([b"\x00\x00" + uleb(0) + vec([]) + uleb(type_index)])))
        return self._grow("funcs")

    def export(self, export_name: str, sort: str, index: int, ascribed_type: int | None = None) -> int:
        entry = b"\x00" + name(export_name) + bytes([SORTS[sort]]) + uleb(index)
        if ascribed_type is None:
            entry += b"\x00"
        else:
            entry += b"\x01" + bytes([SORTS[sort]]) + uleb(ascribed_type)
        self.sections.append(section(11, vec([entry])))
        return self._grow(sort + "s")

    def export_type(self, export_name: str, index: int) -> int:
        return self.export(export_name, "type", index)

    def export_func(self, export_name: str, index: int) -> int:
        return self.export(export_name, "func", index)

    def inline_instance(self, exports: Sequence[tuple[str, str, int]]) -> int:
        items = [b"\x00" + name(n) + bytes([SORTS[sort]]) + uleb(i) for n, sort, i in exports]
        self.sections.append(section(5, vec([b"\x01" + vec(items)])))
        return self._grow("instances")

    def nested(self, component: bytes) -> int:
        self.sections.append(section(4, component))
        return self._grow("components")

    def instantiate(self, component_index: int, args: Sequence[tuple[str, str, int]] = ()) -> int:
        items = [name(n) + bytes([SORTS[sort]]) + uleb(i) for n, sort, i in args]
        self.sections.append(section(5, vec([b"\x00" + uleb(component_index) + vec(items)])))
        return self._grow("instances")

    def alias_export(self, instance_index: int, export_name: str, sort: str) -> int:
        entry = bytes([SORTS[sort]]) + b"\x00" + uleb(instance_index) + name(export_name)
        self.sections.append(section(6, vec([entry])))
        return self._grow(sort + "s")

    def import_type(self, import_name: str, eq: int | None = None) -> int:
        bound = b"\x01" if eq is None else b"\x00" + uleb(eq)
        self.sections.append(section(10, vec([b"\x00" + name(import_name) + b"\x03" + bound])))
        return self._grow("types")

    def custom(self, custom_name: str, payload: bytes) -> None:
        self.sections.append(section(0, name(custom_name) + payload))

    def build(self) -> bytes:
        return PREAMBLE + b"".join(self.sections)
