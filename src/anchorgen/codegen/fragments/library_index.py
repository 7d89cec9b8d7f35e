"""Package-level files: shared runtime helpers, indexes and the descriptor."""

from typing import List, Sequence, Tuple

from .common import HEADER

SHARED_MODULE = '''from __future__ import annotations

import typing
from array import array

import borsh_construct as borsh
import construct
from solders.pubkey import Pubkey


class AccountNotFoundError(Exception):
    """Raised when an account to decode does not exist."""


class AccountInvalidDiscriminatorError(Exception):
    """Raised when account data does not start with the expected discriminator."""


def check_length(value: typing.Sized, expected: int, name: str, exact: bool = True) -> None:
    """Validate the length of a fixed-size field."""
    length = len(value)
    if exact and length != expected:
        raise ValueError(f"{name} must have length {expected}, got {length}")
    if not exact and length > expected:
        raise ValueError(f"{name} must be at most {expected} bytes, got {length}")


class _BorshPubkey(construct.Adapter):
    def _decode(self, obj: bytes, context, path) -> Pubkey:
        return Pubkey.from_bytes(obj)

    def _encode(self, obj: Pubkey, context, path) -> bytes:
        return bytes(obj)


BorshPubkey = _BorshPubkey(construct.Bytes(32))


class PackedArray(construct.Adapter):
    """Fixed-count numeric array decoded into an array.array."""

    def __init__(self, typecode: str, subcon, count: int):
        super().__init__(construct.Array(count, subcon))
        self.typecode = typecode

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
    """Borsh enum decoded to {"kind": <variant name>, "value": <payload>}."""

    def __init__(self, variants, prefix=borsh.U8):
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
    """Layout of a type the generator could not map; refuses any I/O."""

    def __init__(self, type_kind: str):
        super().__init__()
        self.type_kind = type_kind

    def _parse(self, stream, context, path):
        raise construct.ExplicitError(f"Cannot decode unsupported type '{self.type_kind}'", path=path)

    def _build(self, obj, stream, context, path):
        raise construct.ExplicitError(f"Cannot encode unsupported type '{self.type_kind}'", path=path)

    def _sizeof(self, context, path):
        raise construct.SizeofError(f"Unsupported type '{self.type_kind}' has no size", path=path)
'''

GENERATED_DEPENDENCIES = (
    "borsh-construct>=0.1.0",
    "construct>=2.10",
    "solders>=0.21",
    "solana>=0.30",
)


def shared_module() -> str:
    return f"{HEADER}\n\n{SHARED_MODULE}"


def package_index(exports: Sequence[Tuple[str, Sequence[str]]], docs: str = "") -> str:
    """
    An `__init__.py` re-exporting names from sibling modules.

    `exports` pairs a relative module (".position") with the names it
    provides, in output order.
    """
    lines = [HEADER]
    if docs:
        lines.extend(["", f'"""{docs}"""'])
    if exports:
        lines.append("")
    names: List[str] = []
    for module, symbols in exports:
        if symbols:
            lines.append(f"from {module} import {', '.join(symbols)}")
            names.extend(symbols)
        else:
            lines.append(f"from . import {module.lstrip('.')}")
            names.append(module.lstrip("."))
    if names:
        lines.extend(["", "__all__ = ["])
        lines.extend(f'    "{name}",' for name in names)
        lines.append("]")
    return "\n".join(lines) + "\n"


def pyproject_descriptor(library_name: str, package: str, version: str, programs: Sequence[str]) -> str:
    """pyproject.toml of the generated package."""
    description = f"Python client for the {', '.join(programs)} program{'s' if len(programs) > 1 else ''}"
    dependencies = "\n".join(f'    "{dep}",' for dep in GENERATED_DEPENDENCIES)
    return (
        "[build-system]\n"
        'requires = ["setuptools>=61.0"]\n'
        'build-backend = "setuptools.build_meta"\n'
        "\n"
        "[project]\n"
        f'name = "{library_name}"\n'
        f'version = "{version}"\n'
        f'description = "{description}"\n'
        'requires-python = ">=3.10"\n'
        "dependencies = [\n"
        f"{dependencies}\n"
        "]\n"
        "\n"
        "[tool.setuptools.packages.find]\n"
        f'include = ["{package}*"]\n'
    )
