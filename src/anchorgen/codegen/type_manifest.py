"""
Codec resolver.

Maps a type node to a TypeManifest: the Python type written in generated
code, the Borsh codec, the imports and any nested classes. Resolution is a
pure function of the node and an explicit ResolveContext.
"""

import logging
from typing import Optional, Set

from ..config import GeneratorConfig
from ..errors import UnknownDefinedTypeError, UnsupportedNodeError
from ..idl.models import AccountNode, DefinedTypeNode, InstructionNode, ProgramNode
from ..idl.types import (
    ArrayTypeNode,
    BooleanTypeNode,
    BytesTypeNode,
    DefinedTypeLinkNode,
    EnumEmptyVariantTypeNode,
    EnumStructVariantTypeNode,
    EnumTupleVariantTypeNode,
    EnumTypeNode,
    FixedSizeTypeNode,
    MapTypeNode,
    NumberTypeNode,
    OptionTypeNode,
    PublicKeyTypeNode,
    SetTypeNode,
    SizePrefixTypeNode,
    StringTypeNode,
    StructFieldTypeNode,
    StructTypeNode,
    TupleTypeNode,
    TypeNode,
    UnsupportedTypeNode,
)
from .imports import ImportSet, merge_imports
from .manifest import (
    PACKED_TYPECODES,
    CodecDescriptor,
    CodecKind,
    CodecShape,
    FieldManifest,
    NestedDeclaration,
    ResolveContext,
    TypeManifest,
    VariantManifest,
    merge_nested_declarations,
    opaque_codec,
    sum_widths,
)
from .names import DEFAULT_NAME_API, NameApi, pascal_case

logger = logging.getLogger(__name__)


class TypeManifestResolver:
    """
    Resolve type nodes of one program.

    `defined_type_names` is the set of type names collected before
    rendering; links to names outside of it are structural errors.
    """

    def __init__(
        self,
        program: Optional[ProgramNode] = None,
        name_api: NameApi = DEFAULT_NAME_API,
        config: Optional[GeneratorConfig] = None,
        defined_type_names: Optional[Set[str]] = None,
    ):
        self.program = program
        self.names = name_api
        self.config = config or GeneratorConfig()
        if defined_type_names is None and program is not None:
            defined_type_names = {t.name for t in program.defined_types}
        self.defined_type_names = defined_type_names
        self._handlers = {
            NumberTypeNode: self._resolve_number,
            BooleanTypeNode: self._resolve_boolean,
            StringTypeNode: self._resolve_string,
            BytesTypeNode: self._resolve_bytes,
            PublicKeyTypeNode: self._resolve_public_key,
            ArrayTypeNode: self._resolve_array,
            OptionTypeNode: self._resolve_option,
            SetTypeNode: self._resolve_set,
            MapTypeNode: self._resolve_map,
            TupleTypeNode: self._resolve_tuple,
            FixedSizeTypeNode: self._resolve_fixed_size,
            SizePrefixTypeNode: self._resolve_size_prefix,
            DefinedTypeLinkNode: self._resolve_defined_type_link,
            StructTypeNode: self._resolve_struct,
            EnumTypeNode: self._resolve_enum,
            UnsupportedTypeNode: self._resolve_unsupported,
        }

    def resolve(self, node: TypeNode, context: Optional[ResolveContext] = None) -> TypeManifest:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise UnsupportedNodeError(node)
        return handler(node, context or ResolveContext())

    # ------------------------------------------------------------------
    # Program items
    # ------------------------------------------------------------------

    def resolve_account(self, account: AccountNode) -> TypeManifest:
        return self.resolve(account.data, ResolveContext(parent_name=self.names.account_type(account.name)))

    def resolve_instruction_arguments(self, instruction: InstructionNode) -> TypeManifest:
        context = ResolveContext(parent_name=self.names.instruction_args_type(instruction.name))
        return self.resolve(instruction.arguments_struct(), context)

    def resolve_defined_type(self, defined_type: DefinedTypeNode) -> TypeManifest:
        context = ResolveContext(
            parent_name=self.names.defined_type(defined_type.name),
            visiting=(defined_type.name,),
        )
        return self.resolve(defined_type.type, context)

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _resolve_number(self, node: NumberTypeNode, context: ResolveContext) -> TypeManifest:
        fmt = node.format
        kind = CodecKind.FIXED_WIDTH_FLOAT if fmt.is_float else CodecKind.FIXED_WIDTH_INT
        codec = CodecDescriptor(kind=kind, byte_width=fmt.byte_width, number_format=fmt)
        return TypeManifest(
            target_type="float" if fmt.is_float else "int",
            codec=codec,
            arbitrary_precision=fmt.is_wide,
        )

    def _resolve_boolean(self, node: BooleanTypeNode, context: ResolveContext) -> TypeManifest:
        codec = CodecDescriptor(kind=CodecKind.BOOL, byte_width=node.size.byte_width, number_format=node.size)
        return TypeManifest(target_type="bool", codec=codec)

    def _resolve_string(self, node: StringTypeNode, context: ResolveContext) -> TypeManifest:
        codec = CodecDescriptor(kind=CodecKind.UTF8_STRING, shape=CodecShape.STRING, prefix=node.prefix)
        return TypeManifest(target_type="str", codec=codec)

    def _resolve_bytes(self, node: BytesTypeNode, context: ResolveContext) -> TypeManifest:
        codec = CodecDescriptor(kind=CodecKind.RAW_BYTES, shape=CodecShape.BYTES, prefix=node.prefix)
        return TypeManifest(target_type="bytes", codec=codec)

    def _resolve_public_key(self, node: PublicKeyTypeNode, context: ResolveContext) -> TypeManifest:
        codec = CodecDescriptor(kind=CodecKind.FIXED_BYTES, shape=CodecShape.PUBLIC_KEY, byte_width=32)
        return TypeManifest(
            target_type="Pubkey",
            codec=codec,
            imports=ImportSet().add("solders.pubkey", "Pubkey"),
        )

    def _resolve_unsupported(self, node: UnsupportedTypeNode, context: ResolveContext) -> TypeManifest:
        where = f" in {context.parent_name}" if context.parent_name else ""
        logger.warning("Unsupported type '%s'%s, falling back to an opaque codec", node.type_kind, where)
        return TypeManifest(
            target_type="typing.Any",
            codec=opaque_codec(node.type_kind),
            imports=ImportSet().add("typing"),
        )

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _resolve_array(self, node: ArrayTypeNode, context: ResolveContext) -> TypeManifest:
        item = self.resolve(node.item, context.child())
        item_format = item.codec.number_format if isinstance(node.item, NumberTypeNode) else None

        if node.count is not None and item_format in PACKED_TYPECODES:
            codec = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.PACKED_ARRAY,
                byte_width=node.count * item.codec.byte_width,
                count=node.count,
                element=item.codec,
            )
            return TypeManifest(
                target_type="array",
                codec=codec,
                imports=item.imports.add("array", "array"),
                arbitrary_precision=item.arbitrary_precision,
            )

        if node.count is not None:
            width = item.codec.byte_width * node.count if item.codec.is_fixed_width else None
            codec = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.LIST,
                byte_width=width,
                count=node.count,
                element=item.codec,
            )
        else:
            codec = CodecDescriptor(
                kind=CodecKind.LENGTH_PREFIXED,
                shape=CodecShape.LIST,
                prefix=node.prefix,
                element=item.codec,
            )
        return TypeManifest(
            target_type=f"list[{item.target_type}]",
            codec=codec,
            imports=item.imports,
            nested_declarations=item.nested_declarations,
            arbitrary_precision=item.arbitrary_precision,
        )

    def _resolve_option(self, node: OptionTypeNode, context: ResolveContext) -> TypeManifest:
        item = self.resolve(node.item, context.child())
        codec = CodecDescriptor(
            kind=CodecKind.COMPOSITE,
            shape=CodecShape.OPTION,
            prefix=node.prefix,
            element=item.codec,
        )
        return TypeManifest(
            target_type=f"Optional[{item.target_type}]",
            codec=codec,
            imports=item.imports.add("typing", "Optional"),
            nested_declarations=item.nested_declarations,
            is_defined_enum=item.is_defined_enum,
            arbitrary_precision=item.arbitrary_precision,
        )

    def _resolve_set(self, node: SetTypeNode, context: ResolveContext) -> TypeManifest:
        item = self.resolve(node.item, context.child())
        codec = CodecDescriptor(
            kind=CodecKind.LENGTH_PREFIXED,
            shape=CodecShape.SET,
            prefix=node.prefix,
            element=item.codec,
        )
        return TypeManifest(
            target_type=f"set[{item.target_type}]",
            codec=codec,
            imports=item.imports,
            nested_declarations=item.nested_declarations,
            arbitrary_precision=item.arbitrary_precision,
        )

    def _resolve_map(self, node: MapTypeNode, context: ResolveContext) -> TypeManifest:
        key = self.resolve(node.key, context.child())
        value = self.resolve(node.value, context.child())
        codec = CodecDescriptor(
            kind=CodecKind.LENGTH_PREFIXED,
            shape=CodecShape.MAP,
            prefix=node.prefix,
            element=key.codec,
            value=value.codec,
        )
        return TypeManifest(
            target_type=f"dict[{key.target_type}, {value.target_type}]",
            codec=codec,
            imports=merge_imports(key.imports, value.imports),
            nested_declarations=merge_nested_declarations(key.nested_declarations, value.nested_declarations),
            arbitrary_precision=key.arbitrary_precision or value.arbitrary_precision,
        )

    def _resolve_tuple(self, node: TupleTypeNode, context: ResolveContext) -> TypeManifest:
        items = [
            self.resolve(item, context.child(
                parent_name=f"{context.parent_name or ''}Item{index}",
                nested=True,
                inline=False,
            ))
            for index, item in enumerate(node.items)
        ]
        codecs = [item.codec for item in items]
        codec = CodecDescriptor(
            kind=CodecKind.COMPOSITE,
            shape=CodecShape.TUPLE,
            byte_width=sum_widths(codecs),
            fields=tuple((str(index), c) for index, c in enumerate(codecs)),
        )
        return TypeManifest(
            target_type=f"tuple[{', '.join(item.target_type for item in items)}]",
            codec=codec,
            imports=merge_imports(*(item.imports for item in items)),
            nested_declarations=merge_nested_declarations(*(item.nested_declarations for item in items)),
            arbitrary_precision=any(item.arbitrary_precision for item in items),
        )

    # ------------------------------------------------------------------
    # Size wrappers
    # ------------------------------------------------------------------

    def _resolve_fixed_size(self, node: FixedSizeTypeNode, context: ResolveContext) -> TypeManifest:
        if isinstance(node.item, StringTypeNode):
            codec = CodecDescriptor(kind=CodecKind.FIXED_BYTES, shape=CodecShape.STRING, byte_width=node.size)
            return TypeManifest(target_type="str", codec=codec)
        if isinstance(node.item, BytesTypeNode):
            codec = CodecDescriptor(kind=CodecKind.FIXED_BYTES, shape=CodecShape.BYTES, byte_width=node.size)
            return TypeManifest(target_type="bytes", codec=codec)

        item = self.resolve(node.item, context.child())
        if item.codec.fixed_size == node.size:
            return item
        codec = CodecDescriptor(
            kind=CodecKind.COMPOSITE,
            shape=CodecShape.SIZED,
            byte_width=node.size,
            element=item.codec,
        )
        return TypeManifest(
            target_type=item.target_type,
            codec=codec,
            imports=item.imports,
            nested_declarations=item.nested_declarations,
            is_defined_enum=item.is_defined_enum,
            arbitrary_precision=item.arbitrary_precision,
        )

    def _resolve_size_prefix(self, node: SizePrefixTypeNode, context: ResolveContext) -> TypeManifest:
        if isinstance(node.item, StringTypeNode):
            return self._resolve_string(StringTypeNode(prefix=node.prefix), context)
        if isinstance(node.item, BytesTypeNode):
            return self._resolve_bytes(BytesTypeNode(prefix=node.prefix), context)

        item = self.resolve(node.item, context.child())
        codec = CodecDescriptor(
            kind=CodecKind.LENGTH_PREFIXED,
            shape=CodecShape.SIZED,
            prefix=node.prefix,
            element=item.codec,
        )
        return TypeManifest(
            target_type=item.target_type,
            codec=codec,
            imports=item.imports,
            nested_declarations=item.nested_declarations,
            is_defined_enum=item.is_defined_enum,
            arbitrary_precision=item.arbitrary_precision,
        )

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def _resolve_defined_type_link(self, node: DefinedTypeLinkNode, context: ResolveContext) -> TypeManifest:
        program_name = self.program.name if self.program is not None else None
        if self.defined_type_names is not None and node.name not in self.defined_type_names:
            raise UnknownDefinedTypeError(node.name, program_name)
        defined = self.program.get_defined_type(node.name) if self.program is not None else None
        if defined is None:
            raise UnknownDefinedTypeError(node.name, program_name)

        class_name = self.names.defined_type(defined.name)
        module = self.config.link_overrides.get(
            defined.name, f"generatedTypes.{self.names.module_name(defined.name)}"
        )
        imports = ImportSet().add(module, class_name)
        is_enum = isinstance(defined.type, EnumTypeNode)

        if defined.name in context.visiting:
            # Recursive definition, bound lazily in the generated layout
            codec = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.REFERENCE,
                reference=class_name,
                reference_kind="enum" if is_enum else "struct",
            )
            return TypeManifest(target_type=class_name, codec=codec, imports=imports, is_defined_enum=is_enum)

        target = self.resolve(defined.type, ResolveContext(
            parent_name=class_name,
            depth=context.depth + 1,
            visiting=context.visiting + (defined.name,),
        ))
        if isinstance(defined.type, (StructTypeNode, EnumTypeNode)):
            codec = CodecDescriptor(
                kind=target.codec.kind,
                shape=CodecShape.REFERENCE,
                byte_width=target.codec.fixed_size,
                reference=class_name,
                reference_kind="enum" if is_enum else "struct",
                target=target.codec,
            )
            return TypeManifest(
                target_type=class_name,
                codec=codec,
                imports=imports,
                is_defined_enum=is_enum,
                arbitrary_precision=target.arbitrary_precision,
            )

        # Alias of a plain type: the alias name annotates, the target encodes
        return TypeManifest(
            target_type=class_name,
            codec=target.codec,
            imports=merge_imports(imports, target.imports),
            arbitrary_precision=target.arbitrary_precision,
        )

    # ------------------------------------------------------------------
    # Structs and enums
    # ------------------------------------------------------------------

    def _resolve_struct(self, node: StructTypeNode, context: ResolveContext) -> TypeManifest:
        parent = context.parent_name or "AnonymousStruct"
        resolved = [self._resolve_field(f, parent, context) for f in node.fields]
        fields = tuple(field_manifest for field_manifest, _ in resolved)
        codecs = [f.codec for f in fields]
        codec = CodecDescriptor(
            kind=CodecKind.COMPOSITE,
            shape=CodecShape.STRUCT,
            byte_width=sum_widths(codecs),
            fields=tuple((f.name, f.codec) for f in fields),
        )
        imports = merge_imports(*(m.imports for _, m in resolved))
        nested = merge_nested_declarations(*(m.nested_declarations for _, m in resolved))
        arbitrary = any(f.arbitrary_precision for f in fields)

        if context.nested and not context.inline:
            declaration = NestedDeclaration(name=parent, codec=codec, fields=fields, origin=node)
            reference = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.REFERENCE,
                byte_width=codec.byte_width,
                reference=parent,
                reference_kind="struct",
                local=True,
                target=codec,
            )
            return TypeManifest(
                target_type=parent,
                codec=reference,
                imports=imports,
                nested_declarations=merge_nested_declarations(nested, (declaration,)),
                arbitrary_precision=arbitrary,
            )

        return TypeManifest(
            target_type=parent,
            codec=codec,
            imports=imports,
            nested_declarations=nested,
            fields=fields,
            arbitrary_precision=arbitrary,
        )

    def _resolve_field(self, node: StructFieldTypeNode, parent: str, context: ResolveContext):
        manifest = self.resolve(node.type, context.child(
            parent_name=f"{parent}{pascal_case(node.name)}",
            nested=True,
            inline=False,
        ))
        field_manifest = FieldManifest(
            name=node.name,
            target_type=manifest.target_type,
            codec=manifest.codec,
            docs=tuple(node.docs),
            default_value=node.default_value,
            arbitrary_precision=manifest.arbitrary_precision,
            type_node=node.type,
        )
        return field_manifest, manifest

    def _resolve_enum(self, node: EnumTypeNode, context: ResolveContext) -> TypeManifest:
        name = context.parent_name or "AnonymousEnum"
        variants = []
        manifests = []
        for index, variant in enumerate(node.variants):
            variant_manifest, parts = self._resolve_variant(variant, index, name, context)
            variants.append(variant_manifest)
            manifests.extend(parts)

        payloads = [v.codec for v in variants]
        widths = {0 if c is None else c.fixed_size for c in payloads}
        byte_width = None
        if None not in widths and len(widths) <= 1:
            byte_width = node.size.byte_width + (widths.pop() if widths else 0)
        codec = CodecDescriptor(
            kind=CodecKind.COMPOSITE,
            shape=CodecShape.ENUM,
            byte_width=byte_width,
            prefix=node.size,
            fields=tuple((v.name, v.codec) for v in variants),
        )
        imports = merge_imports(*(m.imports for m in manifests))
        nested = merge_nested_declarations(*(m.nested_declarations for m in manifests))
        arbitrary = any(m.arbitrary_precision for m in manifests)

        if context.nested:
            declaration = NestedDeclaration(name=name, codec=codec, variants=tuple(variants), origin=node)
            reference = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.REFERENCE,
                byte_width=byte_width,
                reference=name,
                reference_kind="enum",
                local=True,
                target=codec,
            )
            return TypeManifest(
                target_type=name,
                codec=reference,
                imports=imports,
                nested_declarations=merge_nested_declarations(nested, (declaration,)),
                is_defined_enum=True,
                arbitrary_precision=arbitrary,
            )

        return TypeManifest(
            target_type=name,
            codec=codec,
            imports=imports,
            nested_declarations=nested,
            variants=tuple(variants),
            is_defined_enum=True,
            arbitrary_precision=arbitrary,
        )

    def _resolve_variant(self, variant: TypeNode, index: int, enum_name: str, context: ResolveContext):
        variant_class = f"{enum_name}{pascal_case(variant.name)}"
        if isinstance(variant, EnumEmptyVariantTypeNode):
            return VariantManifest(name=variant.name, index=index, variant_kind="empty"), []

        if isinstance(variant, EnumTupleVariantTypeNode):
            parts = [
                self.resolve(item, context.child(parent_name=f"{variant_class}Item{i}", nested=True, inline=False))
                for i, item in enumerate(variant.tuple.items)
            ]
            fields = tuple(
                FieldManifest(
                    name=f"item_{i}",
                    target_type=part.target_type,
                    codec=part.codec,
                    arbitrary_precision=part.arbitrary_precision,
                    type_node=item,
                )
                for i, (part, item) in enumerate(zip(parts, variant.tuple.items))
            )
            codec = CodecDescriptor(
                kind=CodecKind.COMPOSITE,
                shape=CodecShape.TUPLE,
                byte_width=sum_widths(f.codec for f in fields),
                fields=tuple((str(i), f.codec) for i, f in enumerate(fields)),
            )
            return VariantManifest(name=variant.name, index=index, variant_kind="tuple", fields=fields, codec=codec), parts

        if isinstance(variant, EnumStructVariantTypeNode):
            body = self.resolve(variant.struct, context.child(parent_name=variant_class, inline=True))
            variant_manifest = VariantManifest(
                name=variant.name,
                index=index,
                variant_kind="struct",
                fields=body.fields,
                codec=body.codec,
            )
            return variant_manifest, [body]

        raise UnsupportedNodeError(variant)


def resolve_type(node: TypeNode, program: Optional[ProgramNode] = None, **kwargs) -> TypeManifest:
    """Resolve a single node with a default resolver."""
    return TypeManifestResolver(program=program, **kwargs).resolve(node)
