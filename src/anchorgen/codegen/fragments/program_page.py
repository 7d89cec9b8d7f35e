"""Source of a program module."""

from typing import List, Optional, Tuple

from ..imports import ImportSet
from .common import INDENT


def program_page(
    program_constant: str,
    program_class: str,
    program_name: str,
    address: str,
    version: Optional[str],
    error_module: Optional[str] = None,
) -> Tuple[List[str], ImportSet]:
    lines = [
        f'{program_constant} = Pubkey.from_string("{address}")',
        "",
        "",
        f"class {program_class}:",
        f'{INDENT}"""Constants describing the {program_name} program."""',
        "",
        f'{INDENT}name: typing.ClassVar[str] = "{program_name}"',
        f"{INDENT}version: typing.ClassVar[typing.Optional[str]] = {version!r}",
        f"{INDENT}address: typing.ClassVar[Pubkey] = {program_constant}",
    ]
    imports = ImportSet().add("__future__", "annotations").add("typing").add("solders.pubkey", "Pubkey")
    if error_module:
        imports = imports.add(error_module, "from_code")
        lines.extend([
            "",
            f"{INDENT}@staticmethod",
            f"{INDENT}def error_from_code(code: int) -> typing.Optional[Exception]:",
            f"{INDENT * 2}return from_code(code)",
        ])
    return lines, imports
