"""Source of an account module."""

from typing import List, Sequence, Tuple

from ..imports import ImportSet
from ..manifest import FieldManifest, TypeManifest
from .common import INDENT
from .type_page import nested_sources, struct_class


def account_page(
    class_name: str,
    manifest: TypeManifest,
    fields: Sequence[FieldManifest],
    discriminator: bytes,
    program_module: str,
    program_constant: str,
    field_name,
    class_name_of,
    docs: Sequence[str] = (),
) -> Tuple[List[str], ImportSet]:
    """
    Dataclass for an account with discriminator checks and an async fetch.

    `fields` excludes the discriminator field, which is written as a
    prefix instead.
    """
    lines = [
        f"DISCRIMINATOR = {discriminator!r}",
        "DISCRIMINATOR_SIZE = len(DISCRIMINATOR)",
        "",
        "",
    ]
    nested, nested_imports = nested_sources(manifest.nested_declarations, field_name, class_name_of)
    lines.extend(nested)

    extra = [
        f"{INDENT}discriminator: typing.ClassVar[bytes] = DISCRIMINATOR",
        "",
        f"{INDENT}@classmethod",
        f"{INDENT}async def fetch(",
        f"{INDENT * 2}cls,",
        f"{INDENT * 2}conn: AsyncClient,",
        f"{INDENT * 2}address: Pubkey,",
        f"{INDENT * 2}commitment: typing.Optional[Commitment] = None,",
        f"{INDENT * 2}program_id: Pubkey = {program_constant},",
        f'{INDENT}) -> typing.Optional["{class_name}"]:',
        f"{INDENT * 2}resp = await conn.get_account_info(address, commitment=commitment)",
        f"{INDENT * 2}info = resp.value",
        f"{INDENT * 2}if info is None:",
        f"{INDENT * 3}return None",
        f"{INDENT * 2}if info.owner != program_id:",
        f'{INDENT * 3}raise ValueError("Account does not belong to this program")',
        f"{INDENT * 2}return cls.decode(info.data)",
        "",
        f"{INDENT}@classmethod",
        f"{INDENT}async def fetch_multiple(",
        f"{INDENT * 2}cls,",
        f"{INDENT * 2}conn: AsyncClient,",
        f"{INDENT * 2}addresses: list[Pubkey],",
        f"{INDENT * 2}commitment: typing.Optional[Commitment] = None,",
        f"{INDENT * 2}program_id: Pubkey = {program_constant},",
        f'{INDENT}) -> list[typing.Optional["{class_name}"]]:',
        f"{INDENT * 2}resp = await conn.get_multiple_accounts(addresses, commitment=commitment)",
        f"{INDENT * 2}result = []",
        f"{INDENT * 2}for info in resp.value:",
        f"{INDENT * 3}if info is None:",
        f"{INDENT * 4}result.append(None)",
        f"{INDENT * 4}continue",
        f"{INDENT * 3}if info.owner != program_id:",
        f'{INDENT * 4}raise ValueError("Account does not belong to this program")',
        f"{INDENT * 3}result.append(cls.decode(info.data))",
        f"{INDENT * 2}return result",
        "",
        f"{INDENT}@classmethod",
        f'{INDENT}def decode(cls, data: bytes) -> "{class_name}":',
        f"{INDENT * 2}if data[:DISCRIMINATOR_SIZE] != DISCRIMINATOR:",
        f"{INDENT * 3}raise AccountInvalidDiscriminatorError(",
        f'{INDENT * 4}"The discriminator for this account is invalid"',
        f"{INDENT * 3})",
        f"{INDENT * 2}return cls.from_decoded(cls.layout.parse(data[DISCRIMINATOR_SIZE:]))",
        "",
        f"{INDENT}def encode(self) -> bytes:",
        f"{INDENT * 2}return DISCRIMINATOR + self.to_borsh()",
    ]
    body, imports = struct_class(class_name, fields, manifest.codec, field_name, docs=docs, extra=extra)
    lines.extend(body)

    imports = (
        imports.merge(manifest.imports, nested_imports)
        .add("solders.pubkey", "Pubkey")
        .add("solana.rpc.async_api", "AsyncClient")
        .add("solana.rpc.commitment", "Commitment")
        .add("shared", "AccountInvalidDiscriminatorError")
        .add(program_module, program_constant)
    )
    return lines, imports
