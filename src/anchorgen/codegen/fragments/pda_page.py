"""Source of a PDA finder module."""

from typing import List, Tuple

from ..imports import ImportSet
from ..names import safe_identifier, snake_case
from ..pda import PdaResolution
from .common import INDENT, docstring

OWNER_PARAMETER = "pda_program_id"


def pda_function_lines(
    function_name: str,
    resolution: PdaResolution,
    program_constant: str,
    docs=(),
) -> Tuple[List[str], ImportSet]:
    """
    `find_<name>_pda(seed params..., program_id=...)` returning (address, bump).

    PDAs owned by another program also take `pda_program_id`, the program
    the address is derived under.

    Every variable seed is a parameter; constant seeds are inlined.
    """
    pda = resolution.pda
    params = []
    for expression in resolution.expressions:
        if expression.is_variable:
            params.append(f"{_seed_parameter(expression)}: {expression.target_type}")
    keywords = [f"program_id: Pubkey = {program_constant}"]
    derivation_program = "program_id"
    if pda.program_id:
        # Seeds see the calling program, the address belongs to the other one
        keywords.append(f'{OWNER_PARAMETER}: Pubkey = Pubkey.from_string("{pda.program_id}")')
        derivation_program = OWNER_PARAMETER
    signature = ", ".join(params + ["*"] + keywords)

    lines = [f"def {function_name}({signature}) -> tuple[Pubkey, int]:"]
    lines.extend(docstring(list(docs)))
    lines.append(f"{INDENT}seeds = [")
    for expression in resolution.expressions:
        if expression.is_variable:
            lines.append(f"{INDENT * 2}{expression.render(_seed_parameter(expression))},")
        else:
            lines.append(f"{INDENT * 2}{expression.source},")
    lines.append(f"{INDENT}]")
    lines.append(f"{INDENT}return Pubkey.find_program_address(seeds, {derivation_program})")

    imports = resolution.imports.add("solders.pubkey", "Pubkey")
    return lines, imports


def _seed_parameter(expression) -> str:
    return safe_identifier(snake_case(expression.seed_name))


def inline_derivation(resolution: PdaResolution, bound_expression) -> str:
    """
    Source deriving the address inside an instruction builder.

    `bound_expression(expression)` returns the source of a variable seed.
    """
    seeds = []
    for expression in resolution.expressions:
        if expression.is_variable:
            seeds.append(expression.render(bound_expression(expression)))
        else:
            seeds.append(expression.source)
    if resolution.pda.program_id:
        program = f'Pubkey.from_string("{resolution.pda.program_id}")'
    else:
        program = "program_id"
    return f"Pubkey.find_program_address([{', '.join(seeds)}], {program})[0]"
