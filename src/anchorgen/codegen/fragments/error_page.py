"""Source of a program errors module."""

from typing import List, Sequence, Tuple

from ...idl.models import ErrorNode
from ..imports import ImportSet
from .common import INDENT


def error_page(
    base_class: str,
    errors: Sequence[ErrorNode],
    names,
) -> Tuple[List[str], ImportSet]:
    lines = [
        f"class {base_class}(Exception):",
        f'{INDENT}"""Base class of the custom errors of this program."""',
        "",
        f"{INDENT}code: typing.ClassVar[int]",
        f"{INDENT}name: typing.ClassVar[str]",
        f"{INDENT}msg: typing.ClassVar[str]",
        "",
        f"{INDENT}def __init__(self) -> None:",
        f'{INDENT * 2}super().__init__(f"{{self.code}}: {{self.msg}}")',
        "",
        "",
    ]
    for error in errors:
        lines.append(f"{names.error_constant(error.name)} = {error.code:#x}")
    if errors:
        lines.extend(["", ""])

    for error in errors:
        class_name = names.error_type(error.name)
        lines.append(f"class {class_name}({base_class}):")
        for doc in error.docs:
            lines.append(f"{INDENT}# {doc}")
        lines.append(f"{INDENT}code = {error.code}")
        lines.append(f'{INDENT}name = "{error.name}"')
        lines.append(f"{INDENT}msg = {error.message!r}")
        lines.extend(["", ""])

    lines.append(f"CUSTOM_ERROR_MAP: dict[int, type[{base_class}]] = {{")
    for error in errors:
        lines.append(f"{INDENT}{error.code}: {names.error_type(error.name)},")
    lines.append("}")
    lines.extend([
        "",
        "",
        f"def from_code(code: int) -> typing.Optional[{base_class}]:",
        f"{INDENT}error = CUSTOM_ERROR_MAP.get(code)",
        f"{INDENT}if error is None:",
        f"{INDENT * 2}return None",
        f"{INDENT}return error()",
    ])
    imports = ImportSet().add("__future__", "annotations").add("typing")
    return lines, imports
