"""Dataclass and enum sources for generated types."""

from typing import Callable, List, Sequence, Tuple

from ..imports import ImportSet
from ..layouts import layout_expression, layout_imports
from ..manifest import CodecDescriptor, FieldManifest, NestedDeclaration, TypeManifest, VariantManifest
from ..names import constant_case
from .common import INDENT, decode_value, docstring, encode_value, indent, length_checks

# Imports every class body needs
CLASS_IMPORTS = (
    ImportSet()
    .add("__future__", "annotations")
    .add("dataclasses", "dataclass")
    .add("typing")
    .add("construct")
)


def field_layout(codec: CodecDescriptor, field_name: Callable[[str], str]) -> str:
    return layout_expression(codec, field_name)


def struct_class(
    name: str,
    fields: Sequence[FieldManifest],
    codec: CodecDescriptor,
    field_name: Callable[[str], str],
    docs: Sequence[str] = (),
    extra: Sequence[str] = (),
) -> Tuple[List[str], ImportSet]:
    """
    A `@dataclass` with a Borsh layout and conversion helpers.

    Returns the source lines and the helper imports the layout needs.
    """
    lines = ["@dataclass", f"class {name}:"]
    lines.extend(docstring(list(docs)))
    if docs:
        lines.append("")
    layout = field_layout(codec, field_name)
    lines.append(f"{INDENT}layout: typing.ClassVar = {layout}")

    if fields:
        lines.append("")
    for f in fields:
        for doc in f.docs:
            lines.append(f"{INDENT}# {doc}")
        lines.append(f"{INDENT}{field_name(f.name)}: {f.target_type}")

    checks = []
    for f in fields:
        checks.extend(length_checks(f.codec, f"self.{field_name(f.name)}", field_name(f.name)))
    if checks:
        lines.extend(["", f"{INDENT}def __post_init__(self):"])
        lines.extend(indent(checks, 2))

    lines.extend(["", f"{INDENT}@classmethod", f'{INDENT}def from_decoded(cls, obj: construct.Container) -> "{name}":'])
    if fields:
        lines.append(f"{INDENT * 2}return cls(")
        for f in fields:
            key = field_name(f.name)
            lines.append(f"{INDENT * 3}{key}={decode_value(f.codec, f'obj.{key}')},")
        lines.append(f"{INDENT * 2})")
    else:
        lines.append(f"{INDENT * 2}return cls()")

    lines.extend(["", f"{INDENT}def to_encodable(self) -> dict[str, typing.Any]:"])
    if fields:
        lines.append(f"{INDENT * 2}return {{")
        for f in fields:
            key = field_name(f.name)
            lines.append(f'{INDENT * 3}"{key}": {encode_value(f.codec, f"self.{key}")},')
        lines.append(f"{INDENT * 2}}}")
    else:
        lines.append(f"{INDENT * 2}return {{}}")

    lines.extend([
        "",
        f"{INDENT}def to_borsh(self) -> bytes:",
        f"{INDENT * 2}return self.layout.build(self.to_encodable())",
        "",
        f"{INDENT}@classmethod",
        f'{INDENT}def from_borsh(cls, data: bytes) -> "{name}":',
        f"{INDENT * 2}return cls.from_decoded(cls.layout.parse(data))",
    ])
    if extra:
        lines.append("")
        lines.extend(extra)

    imports = CLASS_IMPORTS.merge(layout_imports(codec))
    if checks:
        imports = imports.add("shared", "check_length")
    return lines, imports


def enum_base_class(name: str, codec: CodecDescriptor, field_name, docs: Sequence[str] = ()) -> Tuple[List[str], ImportSet]:
    """
    Base class of an enum; every variant class subclasses it and registers
    itself under its variant name.
    """
    lines = [f"class {name}:"]
    lines.extend(docstring(list(docs) or [f"Base class of the {name} variants."]))
    lines.extend([
        "",
        f"{INDENT}layout: typing.ClassVar = {field_layout(codec, field_name)}",
        f"{INDENT}kind: typing.ClassVar[str] = \"\"",
        f"{INDENT}index: typing.ClassVar[int] = -1",
        f"{INDENT}variants: typing.ClassVar[dict[str, type]] = {{}}",
        "",
        f"{INDENT}def __init_subclass__(cls, **kwargs):",
        f"{INDENT * 2}super().__init_subclass__(**kwargs)",
        f"{INDENT * 2}{name}.variants[cls.kind] = cls",
        "",
        f"{INDENT}@classmethod",
        f'{INDENT}def from_decoded(cls, obj: dict) -> "{name}":',
        f"{INDENT * 2}variant = {name}.variants.get(obj[\"kind\"])",
        f"{INDENT * 2}if variant is None:",
        f'{INDENT * 3}raise ValueError(f"Unknown {name} variant: {{obj[\'kind\']}}")',
        f"{INDENT * 2}return variant.from_payload(obj[\"value\"])",
        "",
        f"{INDENT}@classmethod",
        f"{INDENT}def from_payload(cls, payload: typing.Any):",
        f"{INDENT * 2}raise NotImplementedError",
        "",
        f"{INDENT}def to_payload(self) -> typing.Any:",
        f"{INDENT * 2}raise NotImplementedError",
        "",
        f"{INDENT}def to_encodable(self) -> dict:",
        f'{INDENT * 2}return {{"kind": self.kind, "value": self.to_payload()}}',
        "",
        f"{INDENT}def to_borsh(self) -> bytes:",
        f"{INDENT * 2}return {name}.layout.build(self.to_encodable())",
        "",
        f"{INDENT}@classmethod",
        f'{INDENT}def from_borsh(cls, data: bytes) -> "{name}":',
        f"{INDENT * 2}return {name}.from_decoded({name}.layout.parse(data))",
    ])
    imports = (
        ImportSet()
        .add("__future__", "annotations")
        .add("typing")
        .merge(layout_imports(codec))
    )
    return lines, imports


def variant_class(base: str, class_name: str, variant: VariantManifest, field_name) -> Tuple[List[str], ImportSet]:
    """A dataclass for one enum variant, subclassing the enum base."""
    lines = ["@dataclass", f"class {class_name}({base}):"]
    lines.append(f'{INDENT}kind: typing.ClassVar[str] = "{variant.name}"')
    lines.append(f"{INDENT}index: typing.ClassVar[int] = {variant.index}")
    fields = variant.fields
    if fields:
        lines.append("")
    for f in fields:
        lines.append(f"{INDENT}{field_name(f.name)}: {f.target_type}")

    checks = []
    for f in fields:
        checks.extend(length_checks(f.codec, f"self.{field_name(f.name)}", field_name(f.name)))
    if checks:
        lines.extend(["", f"{INDENT}def __post_init__(self):"])
        lines.extend(indent(checks, 2))

    lines.extend(["", f"{INDENT}@classmethod", f'{INDENT}def from_payload(cls, payload: typing.Any) -> "{class_name}":'])
    if variant.variant_kind == "empty":
        lines.append(f"{INDENT * 2}return cls()")
    elif variant.variant_kind == "tuple":
        args = ", ".join(
            f"{field_name(f.name)}={decode_value(f.codec, f'payload[{i}]')}" for i, f in enumerate(fields)
        )
        lines.append(f"{INDENT * 2}return cls({args})")
    else:
        args = ", ".join(
            f"{field_name(f.name)}={decode_value(f.codec, f'payload.{field_name(f.name)}')}" for f in fields
        )
        lines.append(f"{INDENT * 2}return cls({args})")

    lines.extend(["", f"{INDENT}def to_payload(self) -> typing.Any:"])
    if variant.variant_kind == "empty":
        lines.append(f"{INDENT * 2}return None")
    elif variant.variant_kind == "tuple":
        items = ", ".join(encode_value(f.codec, f"self.{field_name(f.name)}") for f in fields)
        lines.append(f"{INDENT * 2}return [{items}]")
    else:
        items = ", ".join(
            f'"{field_name(f.name)}": {encode_value(f.codec, f"self.{field_name(f.name)}")}' for f in fields
        )
        lines.append(f"{INDENT * 2}return {{{items}}}")

    imports = ImportSet().add("__future__", "annotations").add("dataclasses", "dataclass").add("typing")
    if checks:
        imports = imports.add("shared", "check_length")
    return lines, imports


def nested_sources(
    declarations: Sequence[NestedDeclaration],
    field_name,
    class_name,
) -> Tuple[List[str], ImportSet]:
    """Classes for anonymous structs and enums, in dependency order."""
    lines: List[str] = []
    imports = ImportSet()
    for declaration in declarations:
        if declaration.variants:
            body, needed = enum_with_variants(declaration.name, declaration.codec, declaration.variants, field_name, class_name)
        else:
            body, needed = struct_class(declaration.name, declaration.fields, declaration.codec, field_name)
        lines.extend(body)
        lines.extend(["", ""])
        imports = imports.merge(needed)
    return lines, imports


def enum_with_variants(name, codec, variants, field_name, class_name) -> Tuple[List[str], ImportSet]:
    """Base class and variant classes in one module."""
    lines, imports = enum_base_class(name, codec, field_name)
    for variant in variants:
        body, needed = variant_class(name, f"{name}{class_name(variant.name)}", variant, field_name)
        lines.extend(["", ""])
        lines.extend(body)
        imports = imports.merge(needed)
    return lines, imports


def alias_source(name: str, manifest: TypeManifest, docs: Sequence[str] = ()) -> Tuple[List[str], ImportSet]:
    """A type alias plus its layout, for defined types that are neither structs nor enums."""
    lines = []
    for doc in docs:
        lines.append(f"# {doc}")
    lines.append(f"{name} = {manifest.target_type}")
    lines.append(f"{constant_case(name)}_LAYOUT = {layout_expression(manifest.codec)}")
    imports = ImportSet().merge(layout_imports(manifest.codec))
    return lines, imports
