"""Interface model of a hosted component.

``StructuralType`` covers the value types of the component model.  Named types
are not expanded inline; ``Named`` points into the interface's
``TypeDefinitions`` table, which is the only place cycles can appear.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

# --- Structural types ---


@dataclass(frozen=True)
class Bool:
    pass


@dataclass(frozen=True)
class U8:
    pass


@dataclass(frozen=True)
class U16:
    pass


@dataclass(frozen=True)
class U32:
    pass


@dataclass(frozen=True)
class U64:
    pass


@dataclass(frozen=True)
class S8:
    pass


@dataclass(frozen=True)
class S16:
    pass


@dataclass(frozen=True)
class S32:
    pass


@dataclass(frozen=True)
class S64:
    pass


@dataclass(frozen=True)
class F32:
    pass


@dataclass(frozen=True)
class F64:
    pass


@dataclass(frozen=True)
class Char:
    pass


@dataclass(frozen=True)
class String:
    pass


@dataclass(frozen=True)
class List:
    element: StructuralType


@dataclass(frozen=True)
class Option:
    inner: StructuralType


@dataclass(frozen=True)
class Result:
    ok: StructuralType | None = None
    err: StructuralType | None = None


@dataclass(frozen=True)
class Tuple:
    elements: tuple[StructuralType, ...]


@dataclass(frozen=True)
class Field:
    name: str
    type: StructuralType


@dataclass(frozen=True)
class Record:
    fields: tuple[Field, ...]


@dataclass(frozen=True)
class Case:
    name: str
    type: StructuralType | None = None


@dataclass(frozen=True)
class Variant:
    cases: tuple[Case, ...]

    def case(self, name: str) -> Case | None:
        for c in self.cases:
            if c.name == name:
                return c
        return None


@dataclass(frozen=True)
class Enum:
    names: tuple[str, ...]


@dataclass(frozen=True)
class Flags:
    names: tuple[str, ...]


@dataclass(frozen=True)
class Resource:
    """Handle to an opaque resource; ``identity`` distinguishes resource types.

    ``owned`` handles (``own<T>``) move into the callee when passed as an
    argument; ``borrow<T>`` handles stay with the caller.
    """

    identity: str
    name: str
    owned: bool = True


@dataclass(frozen=True)
class Named:
    """Reference to an entry of ``TypeDefinitions``."""

    identity: str
    name: str


StructuralType = Union[
    Bool,
    U8,
    U16,
    U32,
    U64,
    S8,
    S16,
    S32,
    S64,
    F32,
    F64,
    Char,
    String,
    List,
    Option,
    Result,
    Tuple,
    Record,
    Variant,
    Enum,
    Flags,
    Resource,
    Named,
]

# (bits, signed) per integer type
INTEGER_WIDTHS: dict[type, tuple[int, bool]] = {
    U8: (8, False),
    U16: (16, False),
    U32: (32, False),
    U64: (64, False),
    S8: (8, True),
    S16: (16, True),
    S32: (32, True),
    S64: (64, True),
}


def integer_bounds(t: StructuralType) -> tuple[int, int]:
    bits, signed = INTEGER_WIDTHS[type(t)]
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1


def type_label(t: StructuralType | None) -> str:
    """Short WIT-like spelling of a type, used in error messages."""
    match t:
        case None:
            return "_"
        case List(element):
            return f"list<{type_label(element)}>"
        case Option(inner):
            return f"option<{type_label(inner)}>"
        case Result(ok, err):
            return f"result<{type_label(ok)}, {type_label(err)}>"
        case Tuple(elements):
            return "tuple<" + ", ".join(type_label(e) for e in elements) + ">"
        case Record():
            return "record"
        case Variant():
            return "variant"
        case Enum():
            return "enum"
        case Flags():
            return "flags"
        case Resource(_, name, owned):
            return name if owned else f"borrow<{name}>"
        case Named(_, name):
            return name
        case _:
            return type(t).__name__.lower()


@dataclass(frozen=True)
class TypeDefinition:
    identity: str
    name: str
    type: StructuralType


class TypeDefinitions(Mapping[str, TypeDefinition]):
    """Read-only, insertion-ordered table of named type definitions."""

    def __init__(self, definitions: Mapping[str, TypeDefinition] | None = None) -> None:
        self._definitions: dict[str, TypeDefinition] = dict(definitions or {})

    def __getitem__(self, identity: str) -> TypeDefinition:
        return self._definitions[identity]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def resolve(self, t: StructuralType) -> StructuralType:
        """Follow ``Named`` references until a structural type is reached."""
        visited: set[str] = set()
        while isinstance(t, Named):
            if t.identity in visited:
                raise ValueError(f"Type '{t.name}' is an alias of itself")
            visited.add(t.identity)
            t = self._definitions[t.identity].type
        return t


# --- Functions and interfaces ---


@dataclass(frozen=True)
class Param:
    label: str | None
    type: StructuralType


@dataclass(frozen=True)
class FunctionDescriptor:
    name: str
    params: tuple[Param, ...] = ()
    results: tuple[Param, ...] = ()
    interface: str | None = None
    docs: str | None = None

    @property
    def qualified_name(self) -> str:
        if self.interface:
            return f"{self.interface}#{self.name}"
        return self.name

    def param_keys(self) -> list[str]:
        return [p.label if p.label is not None else f"arg{i}" for i, p in enumerate(self.params)]

    def result_keys(self) -> list[str]:
        """Response object keys: result labels, or ``result0``, ``result1``, ... when unlabeled."""
        return [r.label if r.label is not None else f"result{i}" for i, r in enumerate(self.results)]


@dataclass(frozen=True)
class ComponentInterface:
    functions: tuple[FunctionDescriptor, ...]
    definitions: TypeDefinitions = field(default_factory=TypeDefinitions)
    binary: bytes = field(default=b"", repr=False)
    docs: str | None = None


# --- Host values ---


@dataclass(frozen=True)
class Some:
    """Present value of an ``option`` whose payload is itself an ``option``."""

    value: Any


@dataclass(frozen=True)
class Ok:
    value: Any = None


@dataclass(frozen=True)
class Err:
    value: Any = None


@dataclass(frozen=True)
class VariantValue:
    case: str
    value: Any = None
