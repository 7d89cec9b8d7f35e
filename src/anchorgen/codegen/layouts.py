"""
Borsh layouts for codec descriptors.

`to_construct` builds a live `borsh_construct` object, used to check
layouts and to serialise PDA seeds at generation time. `layout_expression`
renders the same layout as Python source for the generated package, whose
`shared` module carries the adapters defined here.
"""

from array import array
from typing import Callable, List, Optional, Sequence, Tuple

import borsh_construct as borsh
import construct
from solders.pubkey import Pubkey

from ..errors import GenerationError, OpaqueCodecError
from ..idl.types import NumberFormat
from .imports import ImportSet
from .manifest import PACKED_TYPECODES, CodecDescriptor, CodecKind, CodecShape


class _BorshPubkey(construct.Adapter):
    def _decode(self, obj: bytes, context, path) -> Pubkey:
        return Pubkey.from_bytes(obj)

    def _encode(self, obj: Pubkey, context, path) -> bytes:
        return bytes(obj)


BorshPubkey = _BorshPubkey(construct.Bytes(32))


class PackedArray(construct.Adapter):
    """Fixed-count numeric array decoded into an `array.array`."""

    def __init__(self, typecode: str, subcon, count: int):
        super().__init__(construct.Array(count, subcon))
        self.typecode = typecode
        self.count = count

    def _decode(self, obj, context, path) -> array:
        return array(self.typecode, obj)

    def _encode(self, obj, context, path) -> list:
        return list(obj)


class PrefixedOption(construct.Adapter):
    """Option whose presence flag is wider than one byte."""

    def __init__(self, prefix, subcon):
        super().__init__(construct.Struct(
            "tag" / prefix,
            "value" / construct.If(construct.this.tag != 0, subcon),
        ))

    def _decode(self, obj, context, path):
        return obj.value if obj.tag else None

    def _encode(self, obj, context, path):
        return {"tag": 0 if obj is None else 1, "value": obj}


class EnumLayout(construct.Adapter):
    """
    Borsh enum: a variant index followed by the variant payload.

    Decodes to {"kind": <variant name>, "value": <payload>}.
    """

    def __init__(self, variants: Sequence[Tuple[str, object]], prefix=borsh.U8):
        self.variant_names = [name for name, _ in variants]
        cases = {index: subcon for index, (_, subcon) in enumerate(variants)}
        super().__init__(construct.Struct(
            "index" / prefix,
            "value" / construct.Switch(construct.this.index, cases),
        ))

    def _decode(self, obj, context, path) -> dict:
        if obj.index >= len(self.variant_names):
            raise construct.MappingError(f"Unknown variant index {obj.index}", path=path)
        return {"kind": self.variant_names[obj.index], "value": obj.value}

    def _encode(self, obj, context, path) -> dict:
        kind = obj["kind"]
        if kind not in self.variant_names:
            raise construct.MappingError(f"Unknown variant {kind!r}", path=path)
        return {"index": self.variant_names.index(kind), "value": obj.get("value")}


class Opaque(construct.Construct):
    """Placeholder for a type that could not be mapped; refuses any I/O."""

    def __init__(self, type_kind: str):
        super().__init__()
        self.type_kind = type_kind

    def _parse(self, stream, context, path):
        raise construct.ExplicitError(f"Cannot decode unsupported type '{self.type_kind}'", path=path)

    def _build(self, obj, stream, context, path):
        raise construct.ExplicitError(f"Cannot encode unsupported type '{self.type_kind}'", path=path)

    def _sizeof(self, context, path):
        raise construct.SizeofError(f"Unsupported type '{self.type_kind}' has no size", path=path)


_NUMBER_LAYOUTS = {
    NumberFormat.U8: "U8",
    NumberFormat.U16: "U16",
    NumberFormat.U32: "U32",
    NumberFormat.U64: "U64",
    NumberFormat.U128: "U128",
    NumberFormat.I8: "I8",
    NumberFormat.I16: "I16",
    NumberFormat.I32: "I32",
    NumberFormat.I64: "I64",
    NumberFormat.I128: "I128",
    NumberFormat.F32: "F32",
    NumberFormat.F64: "F64",
}


def number_construct(fmt: NumberFormat):
    if fmt is NumberFormat.SHORT_U16:
        # Solana's compact-u16 is a little-endian base-128 varint
        return construct.VarInt
    return getattr(borsh, _NUMBER_LAYOUTS[fmt])


def number_expression(fmt: NumberFormat) -> str:
    if fmt is NumberFormat.SHORT_U16:
        return "construct.VarInt"
    return f"borsh.{_NUMBER_LAYOUTS[fmt]}"


def to_construct(codec: CodecDescriptor):
    """Build the live layout for `codec`."""
    kind, shape = codec.kind, codec.shape
    if kind is CodecKind.OPAQUE:
        raise OpaqueCodecError(f"Opaque codec for '{codec.type_kind}' has no binary layout")

    if kind in (CodecKind.FIXED_WIDTH_INT, CodecKind.FIXED_WIDTH_FLOAT):
        return number_construct(codec.number_format)
    if kind is CodecKind.BOOL:
        return borsh.Bool
    if kind is CodecKind.UTF8_STRING:
        if codec.prefix is NumberFormat.U32:
            return borsh.String
        return construct.PascalString(number_construct(codec.prefix), "utf8")
    if kind is CodecKind.RAW_BYTES:
        if codec.prefix is NumberFormat.U32:
            return borsh.Bytes
        return construct.Prefixed(number_construct(codec.prefix), construct.GreedyBytes)

    if shape is CodecShape.PUBLIC_KEY:
        return BorshPubkey
    if shape is CodecShape.STRING:
        return construct.PaddedString(codec.byte_width, "utf8")
    if shape is CodecShape.BYTES:
        return construct.Bytes(codec.byte_width)
    if shape is CodecShape.OPTION:
        item = to_construct(codec.element)
        if codec.prefix in (None, NumberFormat.U8):
            return borsh.Option(item)
        return PrefixedOption(number_construct(codec.prefix), item)
    if shape is CodecShape.PACKED_ARRAY:
        item = codec.element
        return PackedArray(PACKED_TYPECODES[item.number_format], to_construct(item), codec.count)
    if shape is CodecShape.LIST:
        item = to_construct(codec.element)
        if codec.count is not None:
            return construct.Array(codec.count, item)
        if codec.prefix is NumberFormat.U32:
            return borsh.Vec(item)
        return construct.PrefixedArray(number_construct(codec.prefix), item)
    if shape is CodecShape.SET:
        item = to_construct(codec.element)
        if codec.prefix is NumberFormat.U32:
            return borsh.HashSet(item)
        return construct.PrefixedArray(number_construct(codec.prefix), item)
    if shape is CodecShape.MAP:
        return borsh.HashMap(to_construct(codec.element), to_construct(codec.value))
    if shape is CodecShape.TUPLE:
        return borsh.TupleStruct(*(to_construct(c) for _, c in codec.fields))
    if shape is CodecShape.STRUCT:
        return borsh.CStruct(*(name / to_construct(c) for name, c in codec.fields))
    if shape is CodecShape.ENUM:
        return EnumLayout(
            [(name, construct.Pass if c is None else to_construct(c)) for name, c in codec.fields],
            number_construct(codec.prefix or NumberFormat.U8),
        )
    if shape is CodecShape.REFERENCE:
        if codec.target is None:
            raise GenerationError(f"Recursive type '{codec.reference}' has no static layout")
        return to_construct(codec.target)
    if shape is CodecShape.SIZED:
        item = to_construct(codec.element)
        if codec.byte_width is not None:
            return construct.FixedSized(codec.byte_width, item)
        return construct.Prefixed(number_construct(codec.prefix), item)
    raise GenerationError(f"No layout for codec {kind.value}/{shape.value}")


def layout_expression(codec: CodecDescriptor, field_name: Optional[Callable[[str], str]] = None) -> str:
    """
    Render the layout of `codec` as Python source.

    `field_name` maps raw struct field names to the keys used by the
    generated classes.
    """
    field_name = field_name or (lambda name: name)
    kind, shape = codec.kind, codec.shape

    def sub(child: CodecDescriptor) -> str:
        return layout_expression(child, field_name)

    if kind is CodecKind.OPAQUE:
        return f'Opaque("{codec.type_kind}")'
    if kind in (CodecKind.FIXED_WIDTH_INT, CodecKind.FIXED_WIDTH_FLOAT):
        return number_expression(codec.number_format)
    if kind is CodecKind.BOOL:
        return "borsh.Bool"
    if kind is CodecKind.UTF8_STRING:
        if codec.prefix is NumberFormat.U32:
            return "borsh.String"
        return f'construct.PascalString({number_expression(codec.prefix)}, "utf8")'
    if kind is CodecKind.RAW_BYTES:
        if codec.prefix is NumberFormat.U32:
            return "borsh.Bytes"
        return f"construct.Prefixed({number_expression(codec.prefix)}, construct.GreedyBytes)"

    if shape is CodecShape.PUBLIC_KEY:
        return "BorshPubkey"
    if shape is CodecShape.STRING:
        return f'construct.PaddedString({codec.byte_width}, "utf8")'
    if shape is CodecShape.BYTES:
        return f"construct.Bytes({codec.byte_width})"
    if shape is CodecShape.OPTION:
        if codec.prefix in (None, NumberFormat.U8):
            return f"borsh.Option({sub(codec.element)})"
        return f"PrefixedOption({number_expression(codec.prefix)}, {sub(codec.element)})"
    if shape is CodecShape.PACKED_ARRAY:
        item = codec.element
        typecode = PACKED_TYPECODES[item.number_format]
        return f'PackedArray("{typecode}", {sub(item)}, {codec.count})'
    if shape is CodecShape.LIST:
        if codec.count is not None:
            return f"construct.Array({codec.count}, {sub(codec.element)})"
        if codec.prefix is NumberFormat.U32:
            return f"borsh.Vec({sub(codec.element)})"
        return f"construct.PrefixedArray({number_expression(codec.prefix)}, {sub(codec.element)})"
    if shape is CodecShape.SET:
        if codec.prefix is NumberFormat.U32:
            return f"borsh.HashSet({sub(codec.element)})"
        return f"construct.PrefixedArray({number_expression(codec.prefix)}, {sub(codec.element)})"
    if shape is CodecShape.MAP:
        return f"borsh.HashMap({sub(codec.element)}, {sub(codec.value)})"
    if shape is CodecShape.TUPLE:
        return f"borsh.TupleStruct({', '.join(sub(c) for _, c in codec.fields)})"
    if shape is CodecShape.STRUCT:
        parts = [f'"{field_name(name)}" / {sub(c)}' for name, c in codec.fields]
        return f"borsh.CStruct({', '.join(parts)})"
    if shape is CodecShape.ENUM:
        variants = ", ".join(
            f'("{name}", {"construct.Pass" if c is None else sub(c)})' for name, c in codec.fields
        )
        return f"EnumLayout([{variants}], {number_expression(codec.prefix or NumberFormat.U8)})"
    if shape is CodecShape.REFERENCE:
        if codec.target is None:
            return f"construct.LazyBound(lambda: {codec.reference}.layout)"
        return f"{codec.reference}.layout"
    if shape is CodecShape.SIZED:
        if codec.byte_width is not None:
            return f"construct.FixedSized({codec.byte_width}, {sub(codec.element)})"
        return f"construct.Prefixed({number_expression(codec.prefix)}, {sub(codec.element)})"
    raise GenerationError(f"No layout for codec {kind.value}/{shape.value}")


def layout_imports(codec: CodecDescriptor) -> ImportSet:
    """Imports needed by `layout_expression(codec)`."""
    imports = ImportSet()
    for expression in _helper_names(codec):
        if expression == "borsh":
            imports = imports.add_alias("borsh_construct", "borsh")
        elif expression == "construct":
            imports = imports.add("construct")
        else:
            imports = imports.add("shared", expression)
    return imports


def _helper_names(codec: CodecDescriptor) -> List[str]:
    names = []
    kind, shape = codec.kind, codec.shape
    if kind is CodecKind.OPAQUE:
        return ["Opaque"]
    if codec.number_format is NumberFormat.SHORT_U16 or codec.prefix is NumberFormat.SHORT_U16:
        names.append("construct")
    if shape is CodecShape.PUBLIC_KEY:
        names.append("BorshPubkey")
    elif shape is CodecShape.PACKED_ARRAY:
        names.append("PackedArray")
    elif shape is CodecShape.ENUM:
        names.append("EnumLayout")
        if any(c is None for _, c in codec.fields):
            names.append("construct")
    elif shape is CodecShape.OPTION and codec.prefix not in (None, NumberFormat.U8):
        names.append("PrefixedOption")
    elif shape is CodecShape.REFERENCE:
        if codec.target is None:
            names.append("construct")
        # The referenced class carries its own layout
        return names
    if shape in (CodecShape.STRING, CodecShape.BYTES, CodecShape.SIZED) or (
        shape in (CodecShape.LIST, CodecShape.SET) and (codec.count is not None or codec.prefix is not NumberFormat.U32)
    ) or (kind in (CodecKind.UTF8_STRING, CodecKind.RAW_BYTES) and codec.prefix is not NumberFormat.U32):
        names.append("construct")
    if shape is not CodecShape.PUBLIC_KEY:
        names.append("borsh")
    for child in (codec.element, codec.value):
        if child is not None:
            names.extend(_helper_names(child))
    for _, child in codec.fields:
        if child is not None:
            names.extend(_helper_names(child))
    return names
