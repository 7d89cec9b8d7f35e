"""
Manifests produced by the codec resolver.

A TypeManifest bundles, for one type subtree, the Python type used in the
generated code, the Borsh codec needed to read and write it, the imports it
needs and the auxiliary classes the caller must also emit.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple

from ..errors import OpaqueCodecError
from ..idl.types import NumberFormat, TypeNode
from .imports import ImportSet


class CodecKind(Enum):
    """Coarse wire category of a codec."""
    FIXED_WIDTH_INT = "fixed-width-int"
    FIXED_WIDTH_FLOAT = "fixed-width-float"
    BOOL = "bool"
    UTF8_STRING = "utf8-string"
    RAW_BYTES = "raw-bytes"
    FIXED_BYTES = "fixed-bytes"
    LENGTH_PREFIXED = "length-prefixed"
    COMPOSITE = "composite"
    OPAQUE = "opaque"


class CodecShape(Enum):
    """Structure of the value a codec reads and writes."""
    SCALAR = "scalar"
    STRING = "string"
    BYTES = "bytes"
    PUBLIC_KEY = "publicKey"
    OPTION = "option"
    LIST = "list"
    PACKED_ARRAY = "packedArray"
    SET = "set"
    MAP = "map"
    TUPLE = "tuple"
    STRUCT = "struct"
    ENUM = "enum"
    REFERENCE = "reference"
    SIZED = "sized"
    OPAQUE = "opaque"


# array.array typecodes for packed numeric arrays (128-bit has none)
PACKED_TYPECODES = {
    NumberFormat.U8: "B",
    NumberFormat.U16: "H",
    NumberFormat.U32: "I",
    NumberFormat.U64: "Q",
    NumberFormat.I8: "b",
    NumberFormat.I16: "h",
    NumberFormat.I32: "i",
    NumberFormat.I64: "q",
    NumberFormat.F32: "f",
    NumberFormat.F64: "d",
}

SHORT_U16_MAX_SIZE = 3


@dataclass(frozen=True)
class CodecDescriptor:
    """
    How a value is laid out on the wire.

    `byte_width` is set exactly when the encoding has a statically known
    size; otherwise the value is variable length (prefixed, optional or
    unbounded). `fields` holds struct fields, tuple items or enum variants,
    always in declaration order, which is the wire order.
    """
    kind: CodecKind
    shape: CodecShape = CodecShape.SCALAR
    byte_width: Optional[int] = None
    number_format: Optional[NumberFormat] = None
    prefix: Optional[NumberFormat] = None
    count: Optional[int] = None
    element: Optional["CodecDescriptor"] = None
    value: Optional["CodecDescriptor"] = None
    fields: Tuple[Tuple[str, Optional["CodecDescriptor"]], ...] = ()
    reference: Optional[str] = None
    # "struct" or "enum" for references to generated classes
    reference_kind: Optional[str] = None
    # Reference to a class emitted in the same module
    local: bool = False
    target: Optional["CodecDescriptor"] = field(default=None, compare=False)
    type_kind: Optional[str] = None

    @property
    def fixed_size(self) -> Optional[int]:
        if self.is_opaque:
            return None
        return self.byte_width

    @property
    def is_fixed_width(self) -> bool:
        return self.byte_width is not None and not self.is_opaque

    @property
    def is_opaque(self) -> bool:
        """True when this codec or any codec it contains is opaque."""
        if self.kind is CodecKind.OPAQUE:
            return True
        return any(child.is_opaque for child in self._children())

    def _children(self) -> Tuple["CodecDescriptor", ...]:
        children = (self.element, self.value, self.target) + tuple(c for _, c in self.fields)
        return tuple(c for c in children if c is not None)

    def _opaque_kind(self) -> Optional[str]:
        if self.kind is CodecKind.OPAQUE:
            return self.type_kind
        return next((c._opaque_kind() for c in self._children() if c.is_opaque), None)

    @property
    def max_size(self) -> Optional[int]:
        """
        Worst-case encoded size, or None when unbounded.

        Raises OpaqueCodecError for degraded codecs, which have no size.
        """
        if self.is_opaque:
            raise OpaqueCodecError(f"Opaque codec for '{self._opaque_kind()}' has no size")
        if self.byte_width is not None:
            return self.byte_width
        if self.number_format is NumberFormat.SHORT_U16:
            return SHORT_U16_MAX_SIZE
        if self.shape is CodecShape.OPTION:
            item = self.element.max_size
            return None if item is None else _prefix_width(self.prefix) + item
        if self.shape is CodecShape.ENUM:
            sizes = [0 if c is None else c.max_size for _, c in self.fields]
            if any(s is None for s in sizes):
                return None
            return _prefix_width(self.prefix) + max(sizes, default=0)
        if self.shape in (CodecShape.STRUCT, CodecShape.TUPLE):
            sizes = [c.max_size for _, c in self.fields]
            return None if any(s is None for s in sizes) else sum(sizes)
        if self.shape is CodecShape.REFERENCE:
            return self.target.max_size if self.target is not None else None
        if self.shape is CodecShape.LIST and self.count is not None:
            item = self.element.max_size
            return None if item is None else item * self.count
        return None


def _prefix_width(prefix: Optional[NumberFormat]) -> int:
    if prefix is None:
        return 1
    return prefix.byte_width or SHORT_U16_MAX_SIZE


def sum_widths(codecs) -> Optional[int]:
    """Total width when every codec is fixed width, else None."""
    total = 0
    for codec in codecs:
        if codec is None:
            continue
        if not codec.is_fixed_width:
            return None
        total += codec.byte_width
    return total


def opaque_codec(type_kind: str) -> CodecDescriptor:
    return CodecDescriptor(kind=CodecKind.OPAQUE, shape=CodecShape.OPAQUE, type_kind=type_kind)


@dataclass(frozen=True)
class FieldManifest:
    """A resolved struct field, tuple item or instruction argument."""
    name: str
    target_type: str
    codec: CodecDescriptor
    docs: Tuple[str, ...] = ()
    default_value: Any = None
    arbitrary_precision: bool = False
    type_node: Optional[TypeNode] = field(default=None, compare=False)


@dataclass(frozen=True)
class VariantManifest:
    """A resolved enum variant; its index is its position."""
    name: str
    index: int
    variant_kind: str  # "empty", "tuple" or "struct"
    fields: Tuple[FieldManifest, ...] = ()
    codec: Optional[CodecDescriptor] = None


@dataclass(frozen=True)
class NestedDeclaration:
    """An anonymous struct or enum that needs its own generated class."""
    name: str
    codec: CodecDescriptor
    fields: Tuple[FieldManifest, ...] = ()
    variants: Tuple[VariantManifest, ...] = ()
    origin: Optional[TypeNode] = field(default=None, compare=False)


@dataclass(frozen=True)
class TypeManifest:
    target_type: str
    codec: CodecDescriptor
    imports: ImportSet = field(default_factory=ImportSet)
    nested_declarations: Tuple[NestedDeclaration, ...] = ()
    fields: Tuple[FieldManifest, ...] = ()
    variants: Tuple[VariantManifest, ...] = ()
    # Set when the type is (or links to) an enum
    is_defined_enum: bool = False
    arbitrary_precision: bool = False

    @property
    def fixed_size(self) -> Optional[int]:
        return self.codec.fixed_size


def merge_nested_declarations(*groups) -> Tuple[NestedDeclaration, ...]:
    """Concatenate declarations bottom-up, dropping repeats of the same origin node."""
    seen = set()
    merged = []
    for group in groups:
        for declaration in group:
            key = id(declaration.origin) if declaration.origin is not None else declaration.name
            if key in seen:
                continue
            seen.add(key)
            merged.append(declaration)
    return tuple(merged)


@dataclass(frozen=True)
class ResolveContext:
    """
    Explicit resolver state, threaded through every recursive call.

    parent_name names anonymous structs and enums; nested marks a type
    appearing as a field (so inline structs become nested declarations);
    inline marks the body of a struct variant, which stays in place even
    when nested; visiting lists the defined types currently being
    expanded, to stop on recursive definitions.
    """
    parent_name: Optional[str] = None
    nested: bool = False
    inline: bool = False
    depth: int = 0
    visiting: Tuple[str, ...] = ()

    def child(self, **changes) -> "ResolveContext":
        return replace(self, depth=self.depth + 1, **changes)
