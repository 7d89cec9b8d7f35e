"""
Type nodes describing the on-chain data layout of a program.

Every node is an immutable value. The codec resolver dispatches on the node
class, so adding a new kind means adding a class here and a handler there.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class NumberFormat(Enum):
    """Numeric wire formats with their byte width."""
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    I128 = "i128"
    F32 = "f32"
    F64 = "f64"
    SHORT_U16 = "shortU16"

    @property
    def byte_width(self) -> Optional[int]:
        """Width in bytes, or None for the compact (variable) encoding."""
        return _NUMBER_WIDTHS[self]

    @property
    def is_float(self) -> bool:
        return self in (NumberFormat.F32, NumberFormat.F64)

    @property
    def is_signed(self) -> bool:
        return self.value.startswith("i") or self.is_float

    @property
    def is_wide(self) -> bool:
        """64-bit and wider integers."""
        width = self.byte_width
        return not self.is_float and width is not None and width >= 8

    @classmethod
    def parse(cls, value: str) -> "NumberFormat":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown number format: {value}") from None


_NUMBER_WIDTHS: Dict[NumberFormat, Optional[int]] = {
    NumberFormat.U8: 1,
    NumberFormat.U16: 2,
    NumberFormat.U32: 4,
    NumberFormat.U64: 8,
    NumberFormat.U128: 16,
    NumberFormat.I8: 1,
    NumberFormat.I16: 2,
    NumberFormat.I32: 4,
    NumberFormat.I64: 8,
    NumberFormat.I128: 16,
    NumberFormat.F32: 4,
    NumberFormat.F64: 8,
    NumberFormat.SHORT_U16: None,
}


class TypeNode:
    """Base class of all type nodes."""
    kind = "typeNode"


@dataclass(frozen=True, eq=False)
class NumberTypeNode(TypeNode):
    format: NumberFormat
    kind = "numberTypeNode"


@dataclass(frozen=True, eq=False)
class BooleanTypeNode(TypeNode):
    size: NumberFormat = NumberFormat.U8
    kind = "booleanTypeNode"


@dataclass(frozen=True, eq=False)
class StringTypeNode(TypeNode):
    """UTF-8 string, length prefixed on the wire."""
    prefix: NumberFormat = NumberFormat.U32
    kind = "stringTypeNode"


@dataclass(frozen=True, eq=False)
class BytesTypeNode(TypeNode):
    prefix: NumberFormat = NumberFormat.U32
    kind = "bytesTypeNode"


@dataclass(frozen=True, eq=False)
class PublicKeyTypeNode(TypeNode):
    kind = "publicKeyTypeNode"


@dataclass(frozen=True, eq=False)
class ArrayTypeNode(TypeNode):
    """
    Ordered collection.

    A `count` makes the array fixed length; otherwise the length is
    written first using `prefix`.
    """
    item: TypeNode
    count: Optional[int] = None
    prefix: NumberFormat = NumberFormat.U32
    kind = "arrayTypeNode"

    def __post_init__(self):
        if self.count is not None and self.count < 0:
            raise ValueError(f"Array count must be non-negative, got {self.count}")


@dataclass(frozen=True, eq=False)
class OptionTypeNode(TypeNode):
    item: TypeNode
    prefix: NumberFormat = NumberFormat.U8
    kind = "optionTypeNode"


@dataclass(frozen=True, eq=False)
class SetTypeNode(TypeNode):
    item: TypeNode
    prefix: NumberFormat = NumberFormat.U32
    kind = "setTypeNode"


@dataclass(frozen=True, eq=False)
class MapTypeNode(TypeNode):
    key: TypeNode
    value: TypeNode
    prefix: NumberFormat = NumberFormat.U32
    kind = "mapTypeNode"


@dataclass(frozen=True, eq=False)
class TupleTypeNode(TypeNode):
    items: Tuple[TypeNode, ...] = ()
    kind = "tupleTypeNode"


@dataclass(frozen=True, eq=False)
class FixedSizeTypeNode(TypeNode):
    item: TypeNode
    size: int
    kind = "fixedSizeTypeNode"

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"Fixed size must be non-negative, got {self.size}")


@dataclass(frozen=True, eq=False)
class SizePrefixTypeNode(TypeNode):
    item: TypeNode
    prefix: NumberFormat = NumberFormat.U32
    kind = "sizePrefixTypeNode"


@dataclass(frozen=True, eq=False)
class DefinedTypeLinkNode(TypeNode):
    name: str
    kind = "definedTypeLinkNode"


@dataclass(frozen=True, eq=False)
class StructFieldTypeNode(TypeNode):
    name: str
    type: TypeNode
    docs: Tuple[str, ...] = ()
    default_value: Any = None
    kind = "structFieldTypeNode"


@dataclass(frozen=True, eq=False)
class StructTypeNode(TypeNode):
    fields: Tuple[StructFieldTypeNode, ...] = ()
    kind = "structTypeNode"

    def get_field(self, name: str) -> Optional[StructFieldTypeNode]:
        for struct_field in self.fields:
            if struct_field.name == name:
                return struct_field
        return None


@dataclass(frozen=True, eq=False)
class EnumEmptyVariantTypeNode(TypeNode):
    name: str
    kind = "enumEmptyVariantTypeNode"


@dataclass(frozen=True, eq=False)
class EnumTupleVariantTypeNode(TypeNode):
    name: str
    tuple: TupleTypeNode
    kind = "enumTupleVariantTypeNode"


@dataclass(frozen=True, eq=False)
class EnumStructVariantTypeNode(TypeNode):
    name: str
    struct: StructTypeNode
    kind = "enumStructVariantTypeNode"


@dataclass(frozen=True, eq=False)
class EnumTypeNode(TypeNode):
    variants: Tuple[TypeNode, ...] = ()
    size: NumberFormat = NumberFormat.U8
    kind = "enumTypeNode"


@dataclass(frozen=True, eq=False)
class UnsupportedTypeNode(TypeNode):
    """A type the IDL adapter could not map (kept so generation can degrade)."""
    type_kind: str
    raw: Any = None
    kind = "unsupportedTypeNode"


ENUM_VARIANT_NODES = (
    EnumEmptyVariantTypeNode,
    EnumTupleVariantTypeNode,
    EnumStructVariantTypeNode,
)


def number(format: str) -> NumberTypeNode:
    """Shorthand used by the IDL adapter and tests."""
    return NumberTypeNode(NumberFormat.parse(format))


def struct(*fields: StructFieldTypeNode) -> StructTypeNode:
    return StructTypeNode(fields=tuple(fields))


def struct_field(name: str, type: TypeNode, docs=(), default_value=None) -> StructFieldTypeNode:
    return StructFieldTypeNode(name=name, type=type, docs=tuple(docs), default_value=default_value)



