"""Tests for the codec resolver."""

import hashlib
import logging
from array import array

import construct
import pytest
from solders.pubkey import Pubkey

from anchorgen.codegen.discriminators import extract_discriminator
from anchorgen.codegen.layouts import layout_expression, to_construct
from anchorgen.codegen.manifest import CodecKind, CodecShape, ResolveContext
from anchorgen.codegen.type_manifest import TypeManifestResolver, resolve_type
from anchorgen.errors import OpaqueCodecError, UnknownDefinedTypeError, UnsupportedNodeError
from anchorgen.idl.models import AccountNode, DefinedTypeNode, ProgramNode
from anchorgen.idl.types import (
    ArrayTypeNode,
    BooleanTypeNode,
    DefinedTypeLinkNode,
    EnumEmptyVariantTypeNode,
    EnumStructVariantTypeNode,
    EnumTupleVariantTypeNode,
    EnumTypeNode,
    FixedSizeTypeNode,
    MapTypeNode,
    NumberFormat,
    OptionTypeNode,
    PublicKeyTypeNode,
    SetTypeNode,
    SizePrefixTypeNode,
    StringTypeNode,
    TupleTypeNode,
    TypeNode,
    UnsupportedTypeNode,
    number,
    struct,
    struct_field,
)


def u64_bytes(value: int) -> bytes:
    return value.to_bytes(8, "little")


class TestNumbers:
    """Fixed-width numbers."""

    @pytest.mark.parametrize(
        "fmt,width",
        [
            ("u8", 1), ("u16", 2), ("u32", 4), ("u64", 8), ("u128", 16),
            ("i8", 1), ("i16", 2), ("i32", 4), ("i64", 8), ("i128", 16),
            ("f32", 4), ("f64", 8),
        ],
    )
    def test_byte_width(self, fmt: str, width: int) -> None:
        """Each format resolves to a fixed-width codec of its size."""
        manifest = resolve_type(number(fmt))

        assert manifest.codec.byte_width == width
        assert manifest.codec.is_fixed_width
        assert to_construct(manifest.codec).sizeof() == width

    def test_python_types(self) -> None:
        """Integers map to int and floats to float."""
        assert resolve_type(number("u32")).target_type == "int"
        assert resolve_type(number("f64")).target_type == "float"
        assert resolve_type(number("f64")).codec.kind is CodecKind.FIXED_WIDTH_FLOAT

    def test_wide_integers_are_flagged(self) -> None:
        """64-bit and wider integers carry the arbitrary-precision flag."""
        assert resolve_type(number("u64")).arbitrary_precision
        assert resolve_type(number("i128")).arbitrary_precision
        assert not resolve_type(number("u32")).arbitrary_precision
        assert not resolve_type(number("f64")).arbitrary_precision

    def test_u128_round_trips_beyond_64_bits(self) -> None:
        """u128 values above 2**64 survive encoding."""
        layout = to_construct(resolve_type(number("u128")).codec)
        value = 2**100 + 7

        assert layout.parse(layout.build(value)) == value

    def test_short_u16_is_variable(self) -> None:
        """Compact u16 has no fixed width and at most 3 bytes."""
        codec = resolve_type(number("shortU16")).codec

        assert codec.byte_width is None
        assert codec.max_size == 3
        assert to_construct(codec).build(300) == b"\xac\x02"


class TestLeaves:
    """Booleans, strings, bytes and public keys."""

    def test_bool(self) -> None:
        """Booleans are one byte."""
        manifest = resolve_type(BooleanTypeNode())

        assert manifest.target_type == "bool"
        assert manifest.codec.byte_width == 1
        assert to_construct(manifest.codec).build(True) == b"\x01"

    def test_string_is_length_prefixed(self) -> None:
        """Strings carry a u32 length prefix and no fixed width."""
        manifest = resolve_type(StringTypeNode())

        assert manifest.target_type == "str"
        assert manifest.codec.kind is CodecKind.UTF8_STRING
        assert manifest.codec.byte_width is None
        assert to_construct(manifest.codec).build("hi") == b"\x02\x00\x00\x00hi"

    def test_public_key(self) -> None:
        """Public keys are 32 raw bytes decoded into solders Pubkeys."""
        manifest = resolve_type(PublicKeyTypeNode())
        key = Pubkey.new_unique()
        layout = to_construct(manifest.codec)

        assert manifest.target_type == "Pubkey"
        assert manifest.codec.byte_width == 32
        assert manifest.imports.has("solders.pubkey", "Pubkey")
        assert layout.build(key) == bytes(key)
        assert layout.parse(bytes(key)) == key

    def test_fixed_size_string(self) -> None:
        """A fixed-size string is padded to its width."""
        manifest = resolve_type(FixedSizeTypeNode(item=StringTypeNode(), size=8))

        assert manifest.codec.shape is CodecShape.STRING
        assert manifest.codec.byte_width == 8
        assert to_construct(manifest.codec).build("ab") == b"ab" + b"\x00" * 6

    def test_size_prefixed_string(self) -> None:
        """A size prefix replaces the default u32 length."""
        manifest = resolve_type(SizePrefixTypeNode(item=StringTypeNode(), prefix=NumberFormat.U8))

        assert manifest.codec.prefix is NumberFormat.U8
        assert to_construct(manifest.codec).build("hi") == b"\x02hi"

    def test_fixed_size_of_matching_item(self) -> None:
        """A fixed size equal to the item width is the item itself."""
        item = resolve_type(number("u32"))
        manifest = resolve_type(FixedSizeTypeNode(item=number("u32"), size=4))

        assert manifest.codec == item.codec

    def test_fixed_size_pads_item(self) -> None:
        """A wider fixed size pads the encoded item."""
        manifest = resolve_type(FixedSizeTypeNode(item=number("u32"), size=8))

        assert manifest.codec.shape is CodecShape.SIZED
        assert manifest.codec.byte_width == 8
        assert to_construct(manifest.codec).build(1) == b"\x01" + b"\x00" * 7


class TestCollections:
    """Arrays, options, sets, maps and tuples."""

    def test_fixed_numeric_array_is_packed(self) -> None:
        """A fixed-count u8 array decodes into an array.array."""
        manifest = resolve_type(ArrayTypeNode(item=number("u8"), count=32))
        layout = to_construct(manifest.codec)

        assert manifest.target_type == "array"
        assert manifest.codec.shape is CodecShape.PACKED_ARRAY
        assert manifest.codec.byte_width == 32
        assert layout.parse(bytes(range(32))) == array("B", range(32))

    def test_fixed_array_of_keys_is_a_list(self) -> None:
        """Non-numeric fixed arrays stay lists with a known width."""
        manifest = resolve_type(ArrayTypeNode(item=PublicKeyTypeNode(), count=2))

        assert manifest.target_type == "list[Pubkey]"
        assert manifest.codec.shape is CodecShape.LIST
        assert manifest.codec.byte_width == 64

    def test_vec_is_length_prefixed(self) -> None:
        """A vec has a u32 count and no fixed width."""
        manifest = resolve_type(ArrayTypeNode(item=number("u64")))

        assert manifest.target_type == "list[int]"
        assert manifest.codec.kind is CodecKind.LENGTH_PREFIXED
        assert manifest.codec.byte_width is None
        assert to_construct(manifest.codec).build([1, 2]) == b"\x02\x00\x00\x00" + u64_bytes(1) + u64_bytes(2)

    def test_option_parses_none(self) -> None:
        """A zero tag parses to None."""
        manifest = resolve_type(OptionTypeNode(item=number("u64")))
        layout = to_construct(manifest.codec)

        assert manifest.target_type == "Optional[int]"
        assert manifest.imports.has("typing", "Optional")
        assert layout.parse(b"\x00") is None
        assert layout.parse(b"\x01" + u64_bytes(5)) == 5

    def test_option_size_counts_the_tag(self) -> None:
        """Option is variable width; its max size is the item plus the tag."""
        codec = resolve_type(OptionTypeNode(item=number("u64"))).codec

        assert codec.byte_width is None
        assert codec.max_size == 9

    def test_option_with_wide_tag(self) -> None:
        """A u32 presence flag is written in four bytes."""
        codec = resolve_type(OptionTypeNode(item=number("u64"), prefix=NumberFormat.U32)).codec
        layout = to_construct(codec)

        assert codec.max_size == 12
        assert layout.build(None) == b"\x00" * 4
        assert layout.build(7) == b"\x01\x00\x00\x00" + u64_bytes(7)
        assert layout.parse(b"\x00" * 4) is None

    def test_set_and_map(self) -> None:
        """Sets and maps resolve to Python sets and dicts."""
        assert resolve_type(SetTypeNode(item=number("u8"))).target_type == "set[int]"
        manifest = resolve_type(MapTypeNode(key=StringTypeNode(), value=number("u8")))

        assert manifest.target_type == "dict[str, int]"
        assert manifest.codec.shape is CodecShape.MAP

    def test_tuple(self) -> None:
        """Tuples sum fixed widths when every item is fixed."""
        mixed = resolve_type(TupleTypeNode(items=(number("u8"), StringTypeNode())))
        fixed = resolve_type(TupleTypeNode(items=(number("u8"), number("u16"))))

        assert mixed.target_type == "tuple[int, str]"
        assert mixed.codec.byte_width is None
        assert fixed.codec.byte_width == 3


class TestStructs:
    """Struct codecs."""

    def test_field_order_is_wire_order(self) -> None:
        """Fields are encoded in declaration order."""
        node = struct(struct_field("a", number("u8")), struct_field("b", number("u16")))
        manifest = resolve_type(node)

        assert [f.name for f in manifest.fields] == ["a", "b"]
        assert manifest.codec.byte_width == 3
        assert to_construct(manifest.codec).build({"a": 1, "b": 2}) == b"\x01\x02\x00"

        swapped = resolve_type(struct(struct_field("b", number("u16")), struct_field("a", number("u8"))))
        assert [f.name for f in swapped.fields] == ["b", "a"]
        assert to_construct(swapped.codec).build({"a": 1, "b": 2}) == b"\x02\x00\x01"

    def test_variable_field_makes_struct_variable(self) -> None:
        """One variable field is enough to lose the fixed width."""
        node = struct(struct_field("a", number("u8")), struct_field("name", StringTypeNode()))

        assert resolve_type(node).codec.byte_width is None

    def test_inline_struct_becomes_nested_declaration(self) -> None:
        """An anonymous struct field gets its own class named after its parent."""
        node = struct(struct_field("inner", struct(struct_field("x", number("u8")))))
        manifest = TypeManifestResolver().resolve(node, ResolveContext(parent_name="Position"))

        assert [d.name for d in manifest.nested_declarations] == ["PositionInner"]
        inner = manifest.fields[0]
        assert inner.target_type == "PositionInner"
        assert inner.codec.shape is CodecShape.REFERENCE
        assert inner.codec.local
        assert manifest.codec.byte_width == 1

    def test_inline_struct_stays_in_place(self) -> None:
        """A struct variant body is resolved in place even when nested."""
        node = struct(struct_field("x", number("u8")))
        resolver = TypeManifestResolver()

        nested = resolver.resolve(node, ResolveContext(parent_name="Body", nested=True))
        inline = resolver.resolve(node, ResolveContext(parent_name="Body", nested=True, inline=True))

        assert nested.codec.shape is CodecShape.REFERENCE
        assert inline.codec.shape is CodecShape.STRUCT
        assert [f.name for f in inline.fields] == ["x"]
        assert inline.nested_declarations == ()

    def test_struct_variant_of_nested_enum(self) -> None:
        """Only the enum becomes a declaration, its struct variant body does not."""
        variant = EnumStructVariantTypeNode("Named", struct(struct_field("x", number("u8"))))
        node = struct(struct_field("state", EnumTypeNode(variants=(variant,))))
        manifest = TypeManifestResolver().resolve(node, ResolveContext(parent_name="Holder"))

        [declaration] = manifest.nested_declarations
        assert declaration.name == "HolderState"
        assert declaration.variants[0].codec.shape is CodecShape.STRUCT


class TestEnums:
    """Enum codecs."""

    def test_scalar_enum(self) -> None:
        """An enum without payloads is one byte."""
        node = EnumTypeNode(variants=(EnumEmptyVariantTypeNode("A"), EnumEmptyVariantTypeNode("B")))
        manifest = resolve_type(node)
        layout = to_construct(manifest.codec)

        assert manifest.is_defined_enum
        assert manifest.codec.byte_width == 1
        assert layout.build({"kind": "B", "value": None}) == b"\x01"
        assert layout.parse(b"\x00") == {"kind": "A", "value": None}

    def test_data_enum(self) -> None:
        """Payload widths differ, so the enum is variable with a bounded size."""
        node = EnumTypeNode(variants=(
            EnumEmptyVariantTypeNode("Idle"),
            EnumTupleVariantTypeNode("Moved", TupleTypeNode(items=(number("u8"), number("u16")))),
            EnumStructVariantTypeNode("Named", struct(struct_field("x", number("u64")))),
        ))
        manifest = resolve_type(node)
        layout = to_construct(manifest.codec)

        assert manifest.codec.byte_width is None
        assert manifest.codec.max_size == 9
        assert [v.variant_kind for v in manifest.variants] == ["empty", "tuple", "struct"]
        assert [f.name for f in manifest.variants[1].fields] == ["item_0", "item_1"]
        assert layout.build({"kind": "Moved", "value": [1, 2]}) == b"\x01\x01\x02\x00"
        parsed = layout.parse(b"\x02" + u64_bytes(9))
        assert parsed["kind"] == "Named"
        assert parsed["value"].x == 9

    def test_unknown_variant_index(self) -> None:
        """Decoding an out-of-range index fails."""
        node = EnumTypeNode(variants=(EnumEmptyVariantTypeNode("A"),))
        layout = to_construct(resolve_type(node).codec)

        with pytest.raises(construct.ConstructError):
            layout.parse(b"\x05")


class TestDefinedTypes:
    """Links to defined types."""

    @pytest.fixture
    def program(self) -> ProgramNode:
        point = struct(struct_field("x", number("i32")), struct_field("y", number("i32")))
        list_node = struct(
            struct_field("value", number("u8")),
            struct_field("next", OptionTypeNode(item=DefinedTypeLinkNode("ListNode"))),
        )
        return ProgramNode(
            name="demo",
            defined_types=(
                DefinedTypeNode("Point", point),
                DefinedTypeNode("Amount", number("u64")),
                DefinedTypeNode("ListNode", list_node),
            ),
        )

    def test_struct_link_is_a_reference(self, program: ProgramNode) -> None:
        """A struct link references the generated class and keeps its width."""
        manifest = TypeManifestResolver(program).resolve(DefinedTypeLinkNode("Point"))
        layout = to_construct(manifest.codec)

        assert manifest.target_type == "Point"
        assert manifest.codec.shape is CodecShape.REFERENCE
        assert manifest.codec.byte_width == 8
        assert manifest.imports.has("generatedTypes.point", "Point")
        assert layout.build({"x": 1, "y": -1}) == b"\x01\x00\x00\x00" + b"\xff" * 4

    def test_alias_link_uses_target_codec(self, program: ProgramNode) -> None:
        """An alias is annotated with its name but encoded like its target."""
        manifest = TypeManifestResolver(program).resolve(DefinedTypeLinkNode("Amount"))

        assert manifest.target_type == "Amount"
        assert manifest.codec.kind is CodecKind.FIXED_WIDTH_INT
        assert manifest.codec.byte_width == 8

    def test_unknown_link_is_an_error(self, program: ProgramNode) -> None:
        """Linking an undeclared type raises."""
        with pytest.raises(UnknownDefinedTypeError):
            TypeManifestResolver(program).resolve(DefinedTypeLinkNode("Missing"))

    def test_recursive_type_is_bound_lazily(self, program: ProgramNode) -> None:
        """A self-referencing type renders a lazy layout instead of recursing."""
        resolver = TypeManifestResolver(program)
        manifest = resolver.resolve_defined_type(program.get_defined_type("ListNode"))

        assert manifest.codec.byte_width is None
        assert "construct.LazyBound(lambda: ListNode.layout)" in layout_expression(manifest.codec)


class TestUnsupported:
    """Degraded codecs for unknown types."""

    def test_unsupported_type_degrades(self, caplog: pytest.LogCaptureFixture) -> None:
        """Unknown types become opaque and log a warning."""
        with caplog.at_level(logging.WARNING):
            manifest = resolve_type(UnsupportedTypeNode(type_kind="generic"))

        assert manifest.target_type == "typing.Any"
        assert manifest.codec.is_opaque
        assert "generic" in caplog.text
        assert layout_expression(manifest.codec) == 'Opaque("generic")'

    def test_opaque_codec_is_never_fixed_width(self) -> None:
        """Size queries on an opaque codec, or a struct containing one, fail."""
        node = struct(struct_field("a", number("u8")), struct_field("b", UnsupportedTypeNode(type_kind="generic")))
        codec = resolve_type(node).codec

        assert codec.is_opaque
        assert codec.fixed_size is None
        assert not codec.is_fixed_width
        with pytest.raises(OpaqueCodecError):
            codec.max_size
        with pytest.raises(OpaqueCodecError):
            to_construct(codec)

    def test_sized_opaque_codec_has_no_size(self) -> None:
        """A fixed-size wrapper does not give an opaque codec a width."""
        sized = FixedSizeTypeNode(item=UnsupportedTypeNode(type_kind="generic"), size=10)
        codec = resolve_type(sized).codec

        assert codec.shape is CodecShape.SIZED
        assert codec.is_opaque
        assert codec.fixed_size is None
        assert not codec.is_fixed_width
        with pytest.raises(OpaqueCodecError, match="generic"):
            codec.max_size

        outer = resolve_type(struct(struct_field("a", number("u8")), struct_field("b", sized))).codec
        assert outer.fixed_size is None
        with pytest.raises(OpaqueCodecError):
            outer.max_size

    def test_unknown_node_class_is_structural(self) -> None:
        """A node class without a handler is a structural error."""

        class WeirdTypeNode(TypeNode):
            kind = "weirdTypeNode"

        with pytest.raises(UnsupportedNodeError):
            resolve_type(WeirdTypeNode())


class TestAccountScenario:
    """An account resolved end to end."""

    def test_token_account(self) -> None:
        """Owner and amount give a 40-byte layout and the hashed discriminator."""
        account = AccountNode(
            name="TokenAccount",
            data=struct(struct_field("owner", PublicKeyTypeNode()), struct_field("amount", number("u64"))),
        )
        manifest = TypeManifestResolver().resolve_account(account)

        assert [f.codec.byte_width for f in manifest.fields] == [32, 8]
        assert manifest.codec.fixed_size == 40
        assert extract_discriminator(account) == hashlib.sha256(b"account:TokenAccount").digest()[:8]

        owner = Pubkey.new_unique()
        data = to_construct(manifest.codec).build({"owner": owner, "amount": 5})
        assert data == bytes(owner) + u64_bytes(5)
