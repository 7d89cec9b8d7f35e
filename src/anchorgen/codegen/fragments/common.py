"""
Helpers shared by the page fragments.

`decode_value` and `encode_value` return Python source converting between
what `construct` parses/builds and the types used by generated classes.
"""

from typing import Iterable, List, Optional, Sequence

from ...idl.models import (
    ArrayValueNode,
    BooleanValueNode,
    BytesValueNode,
    NumberValueNode,
    PublicKeyValueNode,
    StringValueNode,
)
from ..manifest import CodecDescriptor, CodecShape

HEADER = "# Code generated by anchorgen. DO NOT EDIT."
INDENT = "    "

_TRIVIAL_SHAPES = (
    CodecShape.SCALAR,
    CodecShape.STRING,
    CodecShape.BYTES,
    CodecShape.PUBLIC_KEY,
    CodecShape.PACKED_ARRAY,
    CodecShape.OPAQUE,
)


def _needs_conversion(codec: Optional[CodecDescriptor]) -> bool:
    if codec is None or codec.shape in _TRIVIAL_SHAPES:
        return False
    if codec.shape is CodecShape.REFERENCE:
        return True
    if codec.shape is CodecShape.TUPLE:
        return True
    children = [codec.element, codec.value] + [c for _, c in codec.fields]
    return codec.shape in (CodecShape.LIST, CodecShape.SET, CodecShape.MAP) or any(
        _needs_conversion(c) for c in children
    )


def decode_value(codec: CodecDescriptor, expr: str, depth: int = 0) -> str:
    """Source turning a parsed value `expr` into the generated Python type."""
    shape = codec.shape
    if shape is CodecShape.REFERENCE:
        return f"{codec.reference}.from_decoded({expr})"
    if shape is CodecShape.OPTION:
        inner = decode_value(codec.element, expr, depth + 1)
        return expr if inner == expr else f"(None if {expr} is None else {inner})"
    if shape is CodecShape.SIZED:
        return decode_value(codec.element, expr, depth)
    if shape in (CodecShape.LIST, CodecShape.SET):
        item = f"item{depth}"
        inner = decode_value(codec.element, item, depth + 1)
        if inner == item:
            return f"{'set' if shape is CodecShape.SET else 'list'}({expr})"
        brackets = "{}" if shape is CodecShape.SET else "[]"
        return f"{brackets[0]}{inner} for {item} in {expr}{brackets[1]}"
    if shape is CodecShape.MAP:
        key, value = f"key{depth}", f"value{depth}"
        key_src = decode_value(codec.element, key, depth + 1)
        value_src = decode_value(codec.value, value, depth + 1)
        if key_src == key and value_src == value:
            return f"dict({expr})"
        return f"{{{key_src}: {value_src} for {key}, {value} in {expr}.items()}}"
    if shape is CodecShape.TUPLE:
        items = [decode_value(c, f"{expr}[{i}]", depth + 1) for i, (_, c) in enumerate(codec.fields)]
        if not any(_needs_conversion(c) for _, c in codec.fields):
            return f"tuple({expr})"
        return f"({', '.join(items)},)"
    return expr


def encode_value(codec: CodecDescriptor, expr: str, depth: int = 0) -> str:
    """Source turning a generated Python value `expr` into something `construct` builds."""
    shape = codec.shape
    if shape is CodecShape.REFERENCE:
        return f"{expr}.to_encodable()"
    if shape is CodecShape.OPTION:
        inner = encode_value(codec.element, expr, depth + 1)
        return expr if inner == expr else f"(None if {expr} is None else {inner})"
    if shape is CodecShape.SIZED:
        return encode_value(codec.element, expr, depth)
    if shape in (CodecShape.LIST, CodecShape.SET):
        item = f"item{depth}"
        inner = encode_value(codec.element, item, depth + 1)
        if inner == item:
            return expr
        brackets = "{}" if shape is CodecShape.SET else "[]"
        return f"{brackets[0]}{inner} for {item} in {expr}{brackets[1]}"
    if shape is CodecShape.MAP:
        key, value = f"key{depth}", f"value{depth}"
        key_src = encode_value(codec.element, key, depth + 1)
        value_src = encode_value(codec.value, value, depth + 1)
        if key_src == key and value_src == value:
            return expr
        return f"{{{key_src}: {value_src} for {key}, {value} in {expr}.items()}}"
    if shape is CodecShape.TUPLE:
        if not any(_needs_conversion(c) for _, c in codec.fields):
            return expr
        items = [encode_value(c, f"{expr}[{i}]", depth + 1) for i, (_, c) in enumerate(codec.fields)]
        return f"[{', '.join(items)}]"
    return expr


def length_checks(codec: CodecDescriptor, expr: str, label: str) -> List[str]:
    """`check_length` calls for fixed-length bytes, strings and arrays, also inside options."""
    shape = codec.shape
    if shape is CodecShape.OPTION:
        inner = length_checks(codec.element, expr, label)
        return ([f"if {expr} is not None:"] + indent(inner)) if inner else []
    if shape is CodecShape.SIZED:
        return length_checks(codec.element, expr, label)
    if shape is CodecShape.BYTES and codec.byte_width is not None:
        return [f'check_length({expr}, {codec.byte_width}, "{label}")']
    if shape in (CodecShape.LIST, CodecShape.PACKED_ARRAY) and codec.count is not None:
        return [f'check_length({expr}, {codec.count}, "{label}")']
    if shape is CodecShape.STRING and codec.byte_width is not None:
        return [f'check_length({expr}.encode("utf-8"), {codec.byte_width}, "{label}", exact=False)']
    return []


def docstring(lines: Sequence[str], indent: str = INDENT) -> List[str]:
    """Docstring lines, or nothing when there are no docs."""
    lines = [line.replace('"""', "'''") for line in lines if line is not None]
    if not lines:
        return []
    if len(lines) == 1:
        return [f'{indent}"""{lines[0]}"""']
    return [f'{indent}"""'] + [f"{indent}{line}" if line else "" for line in lines] + [f'{indent}"""']


def indent(lines: Iterable[str], level: int = 1) -> List[str]:
    return [f"{INDENT * level}{line}" if line else "" for line in lines]


def python_literal(value) -> Optional[str]:
    """Source for a literal value node, or None when it has no literal form."""
    if isinstance(value, NumberValueNode):
        return repr(value.number)
    if isinstance(value, BooleanValueNode):
        return repr(value.boolean)
    if isinstance(value, StringValueNode):
        return repr(value.string)
    if isinstance(value, BytesValueNode):
        return repr(value.data)
    if isinstance(value, PublicKeyValueNode):
        return f'Pubkey.from_string("{value.public_key}")'
    if isinstance(value, ArrayValueNode):
        items = [python_literal(i) for i in value.items]
        if any(i is None for i in items):
            return None
        return f"[{', '.join(items)}]"
    return None


def module(imports_source: str, body: Sequence[str], docs: Sequence[str] = ()) -> str:
    """Assemble a generated module."""
    parts = [HEADER]
    doc = docstring(list(docs), indent="")
    if doc:
        parts.append("\n".join(doc))
    if imports_source:
        parts.append(imports_source)
    text = "\n\n".join(parts)
    return f"{text}\n\n\n" + "\n".join(body).rstrip() + "\n"


def collect_local_references(codecs: Iterable[Optional[CodecDescriptor]]) -> List[str]:
    """Names of same-module classes referenced by the given codecs."""
    names = []
    stack = [c for c in codecs if c is not None]
    while stack:
        codec = stack.pop()
        if codec.shape is CodecShape.REFERENCE:
            if codec.local and codec.reference not in names:
                names.append(codec.reference)
            continue
        stack.extend(c for c in (codec.element, codec.value) if c is not None)
        stack.extend(c for _, c in codec.fields if c is not None)
    return names
