"""
Import sets for generated modules.

An ImportSet maps a module (or a configured alias such as
`generatedTypes`) to the names imported from it. Sets are values: every
operation returns a new set, so manifests can share them freely.
"""

import sys
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

Symbols = Union[str, Iterable[str]]

FUTURE_MODULE = "__future__"


def _as_symbols(symbols: Optional[Symbols]) -> FrozenSet[str]:
    if symbols is None:
        return frozenset()
    if isinstance(symbols, str):
        return frozenset([symbols])
    return frozenset(symbols)


class ImportSet:
    """Deduplicated, order-insensitive collection of imports."""

    __slots__ = ("_imports", "_modules")

    def __init__(
        self,
        imports: Optional[Mapping[str, Iterable[str]]] = None,
        modules: Iterable[str] = (),
    ):
        self._imports: Dict[str, FrozenSet[str]] = {}
        for module, symbols in (imports or {}).items():
            symbols = _as_symbols(symbols)
            if symbols:
                self._imports[module] = symbols
        # Plain `import module [as alias]` entries, stored as (module, alias)
        self._modules: FrozenSet[Tuple[str, Optional[str]]] = frozenset(
            m if isinstance(m, tuple) else (m, None) for m in modules
        )

    def add(self, module: str, symbols: Optional[Symbols] = None) -> "ImportSet":
        """Return a copy importing `symbols` from `module` (or the module itself)."""
        new_symbols = _as_symbols(symbols)
        result = self._copy()
        if not new_symbols:
            result._modules = result._modules | {(module, None)}
            return result
        result._imports[module] = result._imports.get(module, frozenset()) | new_symbols
        return result

    def add_alias(self, module: str, alias: str) -> "ImportSet":
        """Return a copy with `import module as alias`."""
        result = self._copy()
        result._modules = result._modules | {(module, alias)}
        return result

    def remove(self, module: str, symbols: Optional[Symbols] = None) -> "ImportSet":
        """
        Return a copy without the given (module, symbol) pairs.

        Without symbols the whole module entry is dropped.
        """
        result = self._copy()
        if symbols is None:
            result._imports.pop(module, None)
            result._modules = frozenset(m for m in result._modules if m[0] != module)
            return result
        if module not in result._imports:
            return result
        remaining = result._imports[module] - _as_symbols(symbols)
        if remaining:
            result._imports[module] = remaining
        else:
            del result._imports[module]
        return result

    def merge(self, *others: "ImportSet") -> "ImportSet":
        result = self._copy()
        for other in others:
            for module, symbols in other._imports.items():
                result._imports[module] = result._imports.get(module, frozenset()) | symbols
            result._modules = result._modules | other._modules
        return result

    def has(self, module: str, symbol: Optional[str] = None) -> bool:
        if symbol is None:
            return module in self._imports or any(m[0] == module for m in self._modules)
        return symbol in self._imports.get(module, frozenset())

    def is_empty(self) -> bool:
        return not self._imports and not self._modules

    def as_dict(self) -> Dict[str, FrozenSet[str]]:
        return dict(self._imports)

    def resolve(self, dependency_map: Optional[Mapping[str, str]] = None) -> "ImportSet":
        """Replace module aliases using `dependency_map`."""
        dependency_map = dependency_map or {}
        result = ImportSet()
        for module, symbols in self._imports.items():
            result = result.add(resolve_module(module, dependency_map), symbols)
        for module, alias in self._modules:
            resolved = resolve_module(module, dependency_map)
            result = result.add_alias(resolved, alias) if alias else result.add(resolved)
        return result

    def to_string(self, dependency_map: Optional[Mapping[str, str]] = None) -> str:
        """Render import statements grouped stdlib, third-party, relative."""
        resolved = self.resolve(dependency_map)
        groups: Dict[int, List[str]] = {0: [], 1: [], 2: [], 3: []}
        modules = sorted(
            set(resolved._imports) | {m for m, _ in resolved._modules},
            key=_module_sort_key,
        )
        for module in modules:
            group = groups[_module_group(module)]
            for plain, alias in sorted(resolved._modules, key=lambda m: (m[0], m[1] or "")):
                if plain != module:
                    continue
                group.append(f"import {module} as {alias}" if alias else f"import {module}")
            symbols = resolved._imports.get(module)
            if symbols:
                group.append(f"from {module} import {', '.join(sorted(symbols))}")
        return "\n\n".join("\n".join(lines) for _, lines in sorted(groups.items()) if lines)

    def _copy(self) -> "ImportSet":
        result = ImportSet()
        result._imports = dict(self._imports)
        result._modules = self._modules
        return result

    def __eq__(self, other) -> bool:
        if not isinstance(other, ImportSet):
            return NotImplemented
        return self._imports == other._imports and self._modules == other._modules

    def __hash__(self):
        return hash((frozenset(self._imports.items()), self._modules))

    def __repr__(self) -> str:
        entries = {m: sorted(s) for m, s in sorted(self._imports.items())}
        return f"ImportSet({entries!r}, modules={sorted(self._modules, key=str)!r})"


def merge_imports(*sets: ImportSet) -> ImportSet:
    return ImportSet().merge(*sets)


def resolve_module(module: str, dependency_map: Mapping[str, str]) -> str:
    if module in dependency_map:
        return dependency_map[module]
    if module.startswith("."):
        return module
    head, sep, rest = module.partition(".")
    if sep and head in dependency_map:
        target = dependency_map[head]
        return f"{target}{rest}" if target.endswith(".") else f"{target}.{rest}"
    return module


def _module_group(module: str) -> int:
    if module == FUTURE_MODULE:
        return 0
    if module.startswith("."):
        return 3
    if module.split(".")[0] in sys.stdlib_module_names:
        return 1
    return 2


def _module_sort_key(module: str):
    return (_module_group(module), module)
