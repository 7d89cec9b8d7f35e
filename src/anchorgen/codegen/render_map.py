"""
Render-tree visitor.

Walks a RootNode depth first and produces a RenderMap: one Python module
per account, instruction, defined type, PDA and program, plus the package
indexes. A unit that fails is recorded and skipped; its siblings still
render.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from ..config import GeneratorConfig
from ..errors import GenerationError, MissingProgramError, UnitFailure, UnknownPdaError, UnsupportedNodeError
from ..idl.models import (
    AccountNode,
    DefinedTypeNode,
    InstructionAccountNode,
    InstructionNode,
    PdaNode,
    PdaValueNode,
    ProgramIdValueNode,
    ProgramNode,
    PublicKeyValueNode,
    RootNode,
    resolve_pda,
)
from ..idl.types import EnumTypeNode, StructTypeNode
from .discriminators import discriminator_field_names, extract_discriminator
from .fragments.account_page import account_page
from .fragments.common import collect_local_references, module
from .fragments.error_page import error_page
from .fragments.instruction_page import AccountPlan, instruction_page
from .fragments.library_index import package_index, pyproject_descriptor, shared_module
from .fragments.pda_page import inline_derivation, pda_function_lines
from .fragments.program_page import program_page
from .fragments.type_page import alias_source, enum_base_class, nested_sources, struct_class, variant_class
from .imports import ImportSet
from .manifest import TypeManifest, sum_widths
from .names import DEFAULT_NAME_API, NameApi, constant_case, safe_identifier
from .pda import PdaResolution, PdaSeedResolver, SeedKind
from .type_manifest import TypeManifestResolver

logger = logging.getLogger(__name__)

DESCRIPTOR_PATH = "pyproject.toml"
SHARED_PATH = "shared.py"
UNIT_DIRECTORIES = ("accounts", "errors", "instructions", "pdas", "programs", "types")

# Builder parameters that account names must not shadow
RESERVED_PARAMETERS = {"args", "program_id", "remaining_accounts", "keys", "data"}


@dataclass
class RenderMap:
    """Ordered mapping of relative paths to file contents, plus failures."""
    files: Dict[str, str] = field(default_factory=dict)
    failures: List[UnitFailure] = field(default_factory=list)
    # Names each module makes available to the package indexes
    exports: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def add(self, path: str, content: str, exports: Sequence[str] = ()) -> "RenderMap":
        self.files[path] = content
        if exports:
            self.exports[path] = tuple(exports)
        return self

    def fail(self, failure: UnitFailure) -> "RenderMap":
        self.failures.append(failure)
        return self

    def merge(self, *others: "RenderMap") -> "RenderMap":
        for other in others:
            self.files.update(other.files)
            self.exports.update(other.exports)
            self.failures.extend(other.failures)
        return self

    def get(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def paths(self) -> List[str]:
        return list(self.files)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __contains__(self, path: str) -> bool:
        return path in self.files

    def __len__(self) -> int:
        return len(self.files)


class NodeStack:
    """Ancestors of the node being visited."""

    def __init__(self):
        self._nodes: List[object] = []

    def push(self, node) -> None:
        self._nodes.append(node)

    def pop(self):
        return self._nodes.pop()

    @contextmanager
    def visiting(self, node) -> Iterator[None]:
        self.push(node)
        try:
            yield
        finally:
            self.pop()

    def find(self, node_class):
        for node in reversed(self._nodes):
            if isinstance(node, node_class):
                return node
        return None

    def find_program(self, item=None) -> ProgramNode:
        """The enclosing program; structural error when there is none."""
        program = self.find(ProgramNode)
        if program is None:
            kind = getattr(item, "kind", "node")
            name = getattr(item, "name", "?")
            raise MissingProgramError(kind, name)
        return program

    def path(self) -> List[str]:
        return [getattr(node, "name", getattr(node, "kind", "?")) for node in self._nodes]

    def __len__(self) -> int:
        return len(self._nodes)


def collect_defined_type_names(program: ProgramNode) -> Set[str]:
    """Every type name declared by `program`, gathered before rendering."""
    names = set()
    for defined_type in program.defined_types:
        names.add(defined_type.name)
    return names


@dataclass
class _ProgramScope:
    program: ProgramNode
    resolver: TypeManifestResolver
    pdas: PdaSeedResolver
    module: str
    constant: str


class RenderMapVisitor:
    """Render a root (or any program item inside a program) to a RenderMap."""

    def __init__(self, config: Optional[GeneratorConfig] = None, name_api: NameApi = DEFAULT_NAME_API):
        self.config = config or GeneratorConfig()
        self.names = name_api
        self.stack = NodeStack()
        self._type_names: Dict[str, Set[str]] = {}
        self._scopes: Dict[int, _ProgramScope] = {}
        self._dispatch = {
            RootNode: self.visit_root,
            ProgramNode: self.visit_program,
            AccountNode: self.visit_account,
            InstructionNode: self.visit_instruction,
            DefinedTypeNode: self.visit_defined_type,
            PdaNode: self.visit_pda,
        }

    def visit(self, node) -> RenderMap:
        handler = self._dispatch.get(type(node))
        if handler is None:
            raise UnsupportedNodeError(node)
        return handler(node)

    # ------------------------------------------------------------------
    # Root and programs
    # ------------------------------------------------------------------

    def visit_root(self, root: RootNode) -> RenderMap:
        render_map = RenderMap()
        # First pass: names must be known before any unit renders
        for program in root.programs:
            self._type_names[program.name] = collect_defined_type_names(program)

        with self.stack.visiting(root):
            for program in root.programs:
                render_map.merge(self.visit_program(program))

        render_map.add(SHARED_PATH, shared_module())
        self._render_indexes(render_map)
        render_map.add(DESCRIPTOR_PATH, pyproject_descriptor(
            self.config.library_name,
            self.package_name,
            self.config.library_version,
            [p.name for p in root.programs],
        ))
        if render_map.failures:
            logger.warning("%d unit(s) failed to render", len(render_map.failures))
        return render_map

    @property
    def package_name(self) -> str:
        return safe_identifier(self.config.library_name.replace("-", "_"))

    def visit_program(self, program: ProgramNode) -> RenderMap:
        render_map = RenderMap()
        self._type_names.setdefault(program.name, collect_defined_type_names(program))
        with self.stack.visiting(program):
            for account in program.accounts:
                render_map.merge(self.visit_account(account))
            for instruction in program.instructions:
                render_map.merge(self.visit_instruction(instruction))
            for defined_type in program.defined_types:
                render_map.merge(self.visit_defined_type(defined_type))
            for pda in program.pdas:
                render_map.merge(self.visit_pda(pda))
            if program.errors:
                path = f"errors/{self.names.module_name(program.name)}.py"
                self._unit(render_map, path, program, lambda: self._render_errors(program, path))
            path = f"programs/{self.names.module_name(program.name)}.py"
            self._unit(render_map, path, program, lambda: self._render_program(program, path))
        return render_map

    def _scope(self, item) -> _ProgramScope:
        program = self.stack.find_program(item)
        scope = self._scopes.get(id(program))
        if scope is None:
            type_names = self._type_names.get(program.name) or collect_defined_type_names(program)
            resolver = TypeManifestResolver(program, self.names, self.config, type_names)
            scope = _ProgramScope(
                program=program,
                resolver=resolver,
                pdas=PdaSeedResolver(resolver, self.names, self.config),
                module=f"generatedPrograms.{self.names.module_name(program.name)}",
                constant=f"{self.names.program_constant(program.name)}_PROGRAM_ID",
            )
            self._scopes[id(program)] = scope
        return scope

    def _unit(self, render_map: RenderMap, path: str, node, render: Callable) -> None:
        """
        Render one unit, recording a failure instead of propagating it.

        A unit spanning several files is added only when all of them render.
        """
        try:
            files = list(render())
        except GenerationError as exc:
            failure = UnitFailure(path=path, node_kind=node.kind, name=node.name, message=str(exc))
            logger.error("Failed to render %s", failure)
            render_map.fail(failure)
            return
        for file_path, content, exports in files:
            render_map.add(file_path, content, exports)

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def visit_account(self, account: AccountNode) -> RenderMap:
        render_map = RenderMap()
        path = f"accounts/{self.names.module_name(account.name)}.py"
        self._unit(render_map, path, account, lambda: self._render_account(account, path))
        return render_map

    def visit_instruction(self, instruction: InstructionNode) -> RenderMap:
        render_map = RenderMap()
        path = f"instructions/{self.names.module_name(instruction.name)}.py"
        self._unit(render_map, path, instruction, lambda: self._render_instruction(instruction, path))
        return render_map

    def visit_defined_type(self, defined_type: DefinedTypeNode) -> RenderMap:
        render_map = RenderMap()
        module_name = self.names.module_name(defined_type.name)
        if isinstance(defined_type.type, EnumTypeNode):
            path = f"types/{module_name}/__init__.py"
        else:
            path = f"types/{module_name}.py"
        self._unit(render_map, path, defined_type, lambda: self._render_defined_type(defined_type, module_name))
        return render_map

    def visit_pda(self, pda: PdaNode) -> RenderMap:
        render_map = RenderMap()
        path = f"pdas/{self.names.module_name(pda.name)}.py"
        self._unit(render_map, path, pda, lambda: self._render_pda(pda, path))
        return render_map

    def _render_account(self, account: AccountNode, path: str):
        scope = self._scope(account)
        class_name = self.names.account_type(account.name)
        manifest = scope.resolver.resolve_account(account)
        fields, codec = _without_fields(manifest, discriminator_field_names(account))
        manifest = replace(manifest, codec=codec)
        lines, imports = account_page(
            class_name=class_name,
            manifest=manifest,
            fields=fields,
            discriminator=extract_discriminator(account),
            program_module=scope.module,
            program_constant=scope.constant,
            field_name=self.names.account_field,
            class_name_of=self._class_name,
            docs=account.docs,
        )
        own = f"generatedAccounts.{self.names.module_name(account.name)}"
        content = self._module(path, lines, imports, own, {class_name})
        yield path, content, (class_name,)

    def _render_instruction(self, instruction: InstructionNode, path: str):
        scope = self._scope(instruction)
        function_name = self.names.instruction_function(instruction.name)
        args_class = self.names.instruction_args_type(instruction.name)
        manifest = scope.resolver.resolve_instruction_arguments(instruction)
        fields, codec = _without_fields(manifest, discriminator_field_names(instruction))
        manifest = replace(manifest, codec=codec)

        plans, order, plan_imports = self._account_plans(instruction, scope, fields)
        lines, imports = instruction_page(
            function_name=function_name,
            args_class=args_class,
            manifest=manifest,
            fields=fields,
            discriminator=extract_discriminator(instruction),
            accounts=plans,
            program_module=scope.module,
            program_constant=scope.constant,
            field_name=self.names.instruction_field,
            class_name_of=self._class_name,
            default_order=order,
            docs=instruction.docs,
        )
        exports = (function_name, args_class) if fields else (function_name,)
        own = f"generatedInstructions.{self.names.module_name(instruction.name)}"
        content = self._module(path, lines, imports.merge(plan_imports), own, set(exports))
        yield path, content, exports

    def _account_plans(self, instruction: InstructionNode, scope: _ProgramScope, fields):
        """Builder parameters, the order defaults are assigned in, and their imports."""
        params = {a.name: self._account_parameter(a.name) for a in instruction.accounts}
        argument_names = {f.name for f in fields}
        # Accounts that hold a key whenever defaults run
        available = [
            a.name for a in instruction.accounts
            if not (a.is_optional and a.default_value is None)
        ]
        plans: Dict[str, AccountPlan] = {}
        dependencies: Dict[str, Set[str]] = {}
        imports = ImportSet()

        for account in instruction.accounts:
            default, depends_on, needed = self._account_default(
                account, instruction, scope, params, available, argument_names,
            )
            imports = imports.merge(needed)
            plans[account.name] = AccountPlan(
                name=params[account.name],
                is_signer=account.is_signer,
                is_writable=account.is_writable,
                is_optional=account.is_optional,
                default=default,
                docs=account.docs,
            )
            dependencies[account.name] = depends_on

        order = _default_order(instruction, plans, dependencies)
        circular = [name for name, plan in plans.items() if plan.default is not None and name not in order]
        for name in circular:
            logger.warning(
                "Account '%s' of instruction '%s' has circular seeds and must be passed explicitly",
                name, instruction.name,
            )
            plans[name] = replace(plans[name], default=None)
        ordered = list(order) + [n for n in plans if n not in order]
        return (
            [plans[a.name] for a in instruction.accounts],
            [params[n] for n in ordered],
            imports,
        )

    def _account_default(self, account: InstructionAccountNode, instruction, scope, params, available, arguments):
        """Source of the default for `account`, the accounts it needs and its imports."""
        value = account.default_value
        if isinstance(value, PublicKeyValueNode):
            return f'Pubkey.from_string("{value.public_key}")', set(), ImportSet()
        if isinstance(value, ProgramIdValueNode):
            return "program_id", set(), ImportSet()
        if isinstance(value, PdaValueNode):
            pda = resolve_pda(value, scope.program)
            if pda is None:
                raise UnknownPdaError(value.pda.name)
            resolution = scope.pdas.resolve_seeds(pda, value.seeds, accounts=available)
            if not self._derivable(resolution, arguments):
                return None, set(), ImportSet()

            def bound(expression):
                if expression.kind is SeedKind.ACCOUNT:
                    return params[expression.bound_to]
                return f"args.{self.names.instruction_field(expression.bound_to)}"

            depends_on = {e.bound_to for e in resolution.expressions if e.kind is SeedKind.ACCOUNT}
            return inline_derivation(resolution, bound), depends_on, resolution.imports

        address = self.config.get_builtin_program_address(account.name)
        if address is not None and value is None:
            return f'Pubkey.from_string("{address}")', set(), ImportSet()
        return None, set(), ImportSet()

    def _derivable(self, resolution: PdaResolution, arguments: Set[str]) -> bool:
        if not resolution.is_auto_derivable:
            return False
        for expression in resolution.expressions:
            if expression.kind is SeedKind.ARGUMENT and expression.bound_to not in arguments:
                return False
        return True

    def _account_parameter(self, name: str) -> str:
        parameter = self.names.instruction_field(name)
        if parameter in RESERVED_PARAMETERS:
            parameter = f"{parameter}_account"
        return parameter

    def _render_defined_type(self, defined_type: DefinedTypeNode, module_name: str):
        scope = self._scope(defined_type)
        class_name = self.names.defined_type(defined_type.name)
        manifest = scope.resolver.resolve_defined_type(defined_type)
        field_name = self.names.account_field
        own = f"generatedTypes.{module_name}"

        if isinstance(defined_type.type, StructTypeNode):
            path = f"types/{module_name}.py"
            nested, nested_imports = nested_sources(manifest.nested_declarations, field_name, self._class_name)
            body, imports = struct_class(class_name, manifest.fields, manifest.codec, field_name, docs=defined_type.docs)
            imports = imports.merge(manifest.imports, nested_imports)
            content = self._module(path, nested + body, imports, own, {class_name})
            yield path, content, (class_name,)
            return

        if isinstance(defined_type.type, EnumTypeNode):
            yield from self._render_enum(defined_type, class_name, manifest, module_name, own)
            return

        path = f"types/{module_name}.py"
        body, imports = alias_source(class_name, manifest, defined_type.docs)
        imports = imports.merge(manifest.imports).add("__future__", "annotations")
        layout_name = f"{constant_case(class_name)}_LAYOUT"
        content = self._module(path, body, imports, own, {class_name, layout_name})
        yield path, content, (class_name, layout_name)

    def _render_enum(self, defined_type, class_name: str, manifest: TypeManifest, module_name: str, own: str):
        field_name = self.names.account_field
        base_path = f"types/{module_name}/{module_name}.py"
        nested, nested_imports = nested_sources(manifest.nested_declarations, field_name, self._class_name)
        base, base_imports = enum_base_class(class_name, manifest.codec, field_name, defined_type.docs)
        imports = base_imports.merge(manifest.imports, nested_imports)
        nested_names = {d.name for d in manifest.nested_declarations}
        defined = {class_name} | nested_names
        yield base_path, self._module(base_path, nested + base, imports, own, defined), ()

        exports = [("." + module_name, (class_name,))]
        for variant in manifest.variants:
            variant_class_name = self._variant_class_name(class_name, variant.name)
            variant_module = self.names.module_name(variant.name)
            if variant_module == module_name:
                variant_module = f"{variant_module}_variant"
            path = f"types/{module_name}/{variant_module}.py"
            body, needed = variant_class(class_name, variant_class_name, variant, field_name)
            local = collect_local_references(f.codec for f in variant.fields)
            needed = (
                needed.merge(manifest.imports)
                .add(f".{module_name}", [class_name] + [n for n in local if n in nested_names])
            )
            yield path, self._module(path, body, needed, own, {class_name}), (variant_class_name,)
            exports.append(("." + variant_module, (variant_class_name,)))

        index_path = f"types/{module_name}/__init__.py"
        yield index_path, package_index(exports), (class_name,)

    def _variant_class_name(self, enum_class: str, variant_name: str) -> str:
        name = self._class_name(variant_name)
        return f"{enum_class}{name}" if name == enum_class else name

    def _render_pda(self, pda: PdaNode, path: str):
        scope = self._scope(pda)
        function_name = self.names.pda_function(pda.name)
        resolution = scope.pdas.resolve_seeds(pda)
        lines, imports = pda_function_lines(function_name, resolution, scope.constant, pda.docs)
        imports = imports.add("__future__", "annotations").add(scope.module, scope.constant)
        own = f"generatedPdas.{self.names.module_name(pda.name)}"
        yield path, self._module(path, lines, imports, own, {function_name}), (function_name,)

    def _render_errors(self, program: ProgramNode, path: str):
        base = self.names.program_error_class(program.name)
        lines, imports = error_page(base, program.errors, self.names)
        own = f"generatedErrors.{self.names.module_name(program.name)}"
        yield path, self._module(path, lines, imports, own, {base}), (base, "from_code")

    def _render_program(self, program: ProgramNode, path: str):
        scope = self._scope(program)
        address = program.public_key or self.config.fallback_program_id
        if not address:
            raise GenerationError(f"Program '{program.name}' has no address")
        error_module = None
        if program.errors:
            error_module = f"generatedErrors.{self.names.module_name(program.name)}"
        program_class = self.names.program_type(program.name)
        lines, imports = program_page(
            scope.constant, program_class, program.name, address, program.version, error_module,
        )
        content = self._module(path, lines, imports, scope.module, {scope.constant, program_class})
        yield path, content, (scope.constant, program_class)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _class_name(self, name: str) -> str:
        return safe_identifier(self.names.defined_type(name))

    def _module(self, path: str, lines: List[str], imports: ImportSet, own_module: str, defined: Set[str]) -> str:
        """Assemble a module, dropping imports of names it defines itself."""
        imports = imports.remove(own_module, defined)
        return module(imports.to_string(self.dependency_map_for(path)), lines)

    def dependency_map_for(self, path: str) -> Dict[str, str]:
        """Import aliases with relative prefixes matching the depth of `path`."""
        prefix = "." * (path.count("/") + 1)
        resolved = {}
        for alias, target in self.config.dependency_map.items():
            if target.startswith(".."):
                rest = target[2:]
                resolved[alias] = f"{prefix}{rest}" if rest else prefix
            else:
                resolved[alias] = target
        return resolved

    def _render_indexes(self, render_map: RenderMap) -> None:
        directory_exports: Dict[str, List[Tuple[str, Tuple[str, ...]]]] = {d: [] for d in UNIT_DIRECTORIES}
        for path, names in render_map.exports.items():
            parts = path.split("/")
            if len(parts) == 2 and parts[0] in directory_exports:
                directory_exports[parts[0]].append((f".{parts[1][:-3]}", names))
            elif len(parts) == 3 and parts[2] == "__init__.py" and parts[0] in directory_exports:
                directory_exports[parts[0]].append((f".{parts[1]}", names))

        root_exports = []
        for directory in UNIT_DIRECTORIES:
            exports = sorted(directory_exports[directory])
            if not exports:
                continue
            render_map.add(f"{directory}/__init__.py", package_index(exports))
            root_exports.append((f".{directory}", ()))
            names = tuple(n for _, group in exports for n in group)
            if directory != "errors" and names:
                root_exports.append((f".{directory}", names))
        render_map.add("__init__.py", package_index(root_exports, docs=f"Client for {self.config.library_name}."))


def _without_fields(manifest: TypeManifest, excluded: Set[str]):
    """Fields and struct codec without the discriminator fields."""
    fields = tuple(f for f in manifest.fields if f.name not in excluded)
    if len(fields) == len(manifest.fields):
        return fields, manifest.codec
    codec = replace(
        manifest.codec,
        fields=tuple((f.name, f.codec) for f in fields),
        byte_width=sum_widths(f.codec for f in fields),
    )
    return fields, codec


def _default_order(instruction: InstructionNode, plans: Dict[str, AccountPlan], dependencies: Dict[str, Set[str]]):
    """Account names in an order where every default follows what it depends on."""
    resolved = {name for name, plan in plans.items() if plan.default is None}
    order = []
    pending = [a.name for a in instruction.accounts if plans[a.name].default is not None]
    progress = True
    while pending and progress:
        progress = False
        for name in list(pending):
            if dependencies[name] <= resolved | set(order):
                order.append(name)
                pending.remove(name)
                progress = True
    return order
