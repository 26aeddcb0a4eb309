"""
IR Types

Structural types of the program graph. Types are frozen dataclasses, so two
types are interchangeable exactly when they compare equal.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class VoidType:
    """The type of instructions that produce no value."""

    def __repr__(self):
        return "void"


@dataclass(frozen=True)
class IntType:
    """An integer of a fixed bit width (i1 is the boolean type)."""
    width: int

    def __post_init__(self):
        if self.width <= 0:
            raise ValueError(f"IntType width must be positive, got {self.width}")

    @property
    def mask(self) -> int:
        return (1 << self.width) - 1

    def __repr__(self):
        return f"i{self.width}"


@dataclass(frozen=True)
class PointerType:
    """A pointer to a value of `pointee` in address space `addrspace`."""
    pointee: "Type"
    addrspace: int = 0

    def __repr__(self):
        if self.addrspace:
            return f"{self.pointee!r} addrspace({self.addrspace})*"
        return f"{self.pointee!r}*"


@dataclass(frozen=True)
class VectorType:
    """A fixed-length vector of integers."""
    element: IntType
    count: int

    def __post_init__(self):
        if self.count <= 0:
            raise ValueError(f"VectorType must have at least one lane, got {self.count}")

    def __repr__(self):
        return f"<{self.count} x {self.element!r}>"


@dataclass(frozen=True)
class StructType:
    """A literal aggregate of ordered fields."""
    fields: tuple["Type", ...]

    def __repr__(self):
        return "{ " + ", ".join(repr(f) for f in self.fields) + " }"


@dataclass(frozen=True)
class FunctionType:
    """Signature of a function: return type plus ordered parameter types."""
    ret: "Type"
    params: tuple["Type", ...] = ()

    def __repr__(self):
        return f"{self.ret!r} ({', '.join(repr(p) for p in self.params)})"


Type = Union[VoidType, IntType, PointerType, VectorType, StructType, FunctionType]

VOID = VoidType()
I1 = IntType(1)
I8 = IntType(8)
I16 = IntType(16)
I32 = IntType(32)
I64 = IntType(64)


def pointer_to(ty: Type, addrspace: int = 0) -> PointerType:
    return PointerType(ty, addrspace)


def is_function_pointer(ty: Type) -> bool:
    """True for pointers whose pointee is a function type."""
    return isinstance(ty, PointerType) and isinstance(ty.pointee, FunctionType)


def is_integer_like(ty: Type) -> bool:
    """True for integers and vectors of integers."""
    return isinstance(ty, (IntType, VectorType))


def scalar_type(ty: Type) -> IntType:
    """Element type of a vector, or the integer type itself."""
    if isinstance(ty, VectorType):
        return ty.element
    if isinstance(ty, IntType):
        return ty
    raise TypeError(f"Expected integer or vector type, got {ty!r}")


def scalar_width(ty: Type) -> int:
    return scalar_type(ty).width


def with_scalar(ty: Type, scalar: IntType) -> Type:
    """Same shape as `ty` with the element type replaced (i32 -> i1, <4 x i32> -> <4 x i1>)."""
    if isinstance(ty, VectorType):
        return VectorType(scalar, ty.count)
    return scalar


def store_size(ty: Type) -> int:
    """Bytes occupied in memory. Aggregates are laid out packed."""
    if isinstance(ty, IntType):
        return (ty.width + 7) // 8
    if isinstance(ty, PointerType):
        return 8
    if isinstance(ty, VectorType):
        return store_size(ty.element) * ty.count
    if isinstance(ty, StructType):
        return sum(store_size(f) for f in ty.fields)
    raise TypeError(f"Type {ty!r} has no in-memory size")


def mangle_type(ty: Type) -> str:
    """Intrinsic name suffix for a type: i32, v4i32, p0i8, sl_i32i1s, p0f_isVoidi32f."""
    if isinstance(ty, IntType):
        return f"i{ty.width}"
    if isinstance(ty, VectorType):
        return f"v{ty.count}{mangle_type(ty.element)}"
    if isinstance(ty, PointerType):
        return f"p{ty.addrspace}{mangle_type(ty.pointee)}"
    if isinstance(ty, StructType):
        return "sl_" + "".join(mangle_type(f) for f in ty.fields) + "s"
    if isinstance(ty, VoidType):
        return "isVoid"
    if isinstance(ty, FunctionType):
        return "f_" + "".join(mangle_type(t) for t in (ty.ret, *ty.params)) + "f"
    raise TypeError(f"Cannot mangle type {ty!r}")
