"""Identifier spelling for generated Python code."""

import keyword
import re
from dataclasses import dataclass, fields, replace
from typing import Callable

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def split_words(name: str):
    parts = re.split(r"[^A-Za-z0-9]+", name)
    words = []
    for part in parts:
        if part:
            words.extend(w for w in _WORD_BOUNDARY.split(part) if w)
    return words


def snake_case(name: str) -> str:
    return "_".join(w.lower() for w in split_words(name))


def pascal_case(name: str) -> str:
    return "".join(_capitalize(w) for w in split_words(name))


def _capitalize(word: str) -> str:
    if word.isupper() and len(word) > 1:
        return word.capitalize()
    return word[:1].upper() + word[1:]


def constant_case(name: str) -> str:
    return snake_case(name).upper()


def safe_identifier(name: str) -> str:
    """Avoid Python keywords and leading digits."""
    if not name:
        return "_"
    if name[0].isdigit():
        name = f"_{name}"
    if keyword.iskeyword(name) or name in ("self", "cls"):
        name = f"{name}_"
    return name


@dataclass(frozen=True)
class NameApi:
    """
    How raw IDL identifiers are spelled in the generated package.

    Each attribute maps a raw name to an identifier; override any of them
    with `NameApi().with_overrides(...)`.
    """
    account_type: Callable[[str], str] = pascal_case
    account_field: Callable[[str], str] = lambda n: safe_identifier(snake_case(n))
    defined_type: Callable[[str], str] = pascal_case
    instruction_function: Callable[[str], str] = lambda n: safe_identifier(snake_case(n))
    instruction_args_type: Callable[[str], str] = lambda n: f"{pascal_case(n)}Args"
    instruction_field: Callable[[str], str] = lambda n: safe_identifier(snake_case(n))
    error_constant: Callable[[str], str] = constant_case
    error_type: Callable[[str], str] = lambda n: f"{pascal_case(n)}Error"
    program_error_class: Callable[[str], str] = lambda n: f"{pascal_case(n)}Error"
    program_type: Callable[[str], str] = lambda n: f"{pascal_case(n)}Program"
    program_constant: Callable[[str], str] = constant_case
    pda_function: Callable[[str], str] = lambda n: f"find_{snake_case(n)}_pda"
    module_name: Callable[[str], str] = lambda n: safe_identifier(snake_case(n))

    def with_overrides(self, **overrides) -> "NameApi":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown name transformers: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


DEFAULT_NAME_API = NameApi()
