"""
CLI entry point for anchorgen.

Usage:
    anchorgen generate target/idl/vault.json -o clients/ --name vault-client
    anchorgen inspect target/idl/vault.json
    anchorgen discriminator global initialize
    anchorgen pda target/idl/vault.json vault --seed owner=<PUBKEY>
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

console = Console()


def load_env():
    """Load .env file from parent directories."""
    current = Path.cwd()
    for _ in range(5):  # Check up to 5 parent dirs
        env_file = current / ".env"
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, value = line.split("=", 1)
                        os.environ.setdefault(key.strip(), value.strip())
            break
        current = current.parent


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def load_idl(source: str):
    """Parse an IDL from a file path or an http(s) URL."""
    from anchorgen.idl import IDLParser

    parser = IDLParser()
    if source.startswith(("http://", "https://")):
        return parser.parse_url(source)
    return parser.parse_file(source)


def run_generate(args: argparse.Namespace) -> int:
    """Generate a client package from an IDL."""
    load_env()

    from anchorgen.config import GeneratorConfig
    from anchorgen.codegen import render_to_directory
    from anchorgen.errors import GenerationError

    try:
        root = load_idl(args.idl)
    except FileNotFoundError:
        console.print(f"[red]Error: IDL file not found: {args.idl}[/red]")
        return 1
    except GenerationError as e:
        console.print(f"[red]Error parsing IDL: {e}[/red]")
        return 1

    config = GeneratorConfig.from_env(
        library_name=args.name,
        derive_pdas_from_arguments=True if args.derive_from_arguments else None,
        format_code=True if args.format else None,
    )
    if args.keep_existing:
        config.delete_folder_before_rendering = False

    console.print()
    console.print(Panel(
        f"[bold cyan]{args.idl}[/bold cyan]\n\n"
        f"[dim]Output: {args.output}[/dim]\n"
        f"[dim]Package: {config.library_name}[/dim]",
        title="[bold]anchorgen[/bold]",
    ))

    try:
        render_map = render_to_directory(root, args.output, config)
    except GenerationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[green]✓ Wrote {len(render_map)} files[/green]")
    if render_map.ok:
        return 0

    table = Table(title="Failed Units")
    table.add_column("Path", style="cyan")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Error", style="red")
    for failure in render_map.failures:
        table.add_row(failure.path, failure.node_kind, failure.name, failure.message)
    console.print(table)
    return 1


def run_inspect(args: argparse.Namespace) -> int:
    """Show what would be generated for an IDL."""
    from anchorgen.codegen import PdaSeedResolver, extract_discriminator
    from anchorgen.config import GeneratorConfig
    from anchorgen.errors import GenerationError

    try:
        root = load_idl(args.idl)
    except FileNotFoundError:
        console.print(f"[red]Error: IDL file not found: {args.idl}[/red]")
        return 1
    except GenerationError as e:
        console.print(f"[red]Error parsing IDL: {e}[/red]")
        return 1

    config = GeneratorConfig.from_env()
    for program in root.programs:
        console.print()
        console.print(f"[bold]{program.name}[/bold] [dim]{program.public_key or 'no address'}[/dim]")

        table = Table(title="Accounts")
        table.add_column("Name", style="cyan")
        table.add_column("Discriminator", style="dim")
        table.add_column("Fields", justify="right")
        for account in program.accounts:
            table.add_row(account.name, extract_discriminator(account).hex(), str(len(account.data.fields)))
        console.print(table)

        resolver = PdaSeedResolver(config=config)
        table = Table(title="Instructions")
        table.add_column("Name", style="cyan")
        table.add_column("Discriminator", style="dim")
        table.add_column("Args", justify="right")
        table.add_column("Accounts", justify="right")
        table.add_column("Derived")
        for ix in program.instructions:
            account_names = [a.name for a in ix.accounts]
            derived = []
            for account in ix.accounts:
                pda_value = account.default_value
                pda = program.get_pda(pda_value.pda.name) if getattr(pda_value, "pda", None) else None
                if pda is None:
                    continue
                resolution = resolver.resolve_seeds(pda, pda_value.seeds, account_names)
                mark = "[green]✓[/green]" if resolution.is_auto_derivable else "[yellow]~[/yellow]"
                derived.append(f"{mark} {account.name}")
            table.add_row(
                ix.name,
                extract_discriminator(ix).hex(),
                str(len(ix.arguments)),
                str(len(ix.accounts)),
                "\n".join(derived),
            )
        console.print(table)

        if program.pdas:
            table = Table(title="PDAs")
            table.add_column("Name", style="cyan")
            table.add_column("Seeds")
            for pda in program.pdas:
                table.add_row(pda.name, ", ".join(_describe_seed(s) for s in pda.seeds))
            console.print(table)

        console.print(f"[dim]Types: {len(program.defined_types)} | Errors: {len(program.errors)}[/dim]")
    return 0


def _describe_seed(seed) -> str:
    name = getattr(seed, "name", None)
    if name is not None:
        return name
    value = seed.value
    if hasattr(value, "string"):
        return repr(value.string)
    return value.kind


def run_discriminator(args: argparse.Namespace) -> int:
    """Print the Anchor discriminator of a name."""
    from anchorgen.codegen import compute_anchor_discriminator

    discriminator = compute_anchor_discriminator(args.namespace, args.name)
    console.print(f"{discriminator.hex()}  [dim]{list(discriminator)}[/dim]")
    return 0


def run_pda(args: argparse.Namespace) -> int:
    """Derive a PDA address from seed values."""
    from anchorgen.codegen import PdaSeedResolver
    from anchorgen.errors import GenerationError

    try:
        root = load_idl(args.idl)
    except FileNotFoundError:
        console.print(f"[red]Error: IDL file not found: {args.idl}[/red]")
        return 1
    except GenerationError as e:
        console.print(f"[red]Error parsing IDL: {e}[/red]")
        return 1

    program = root.program
    pda = program.get_pda(args.name) if program else None
    if pda is None:
        console.print(f"[red]Error: unknown PDA '{args.name}'[/red]")
        return 1

    program_id = args.program_id or program.public_key
    if not program_id:
        console.print("[red]Error: the IDL has no address, pass --program-id[/red]")
        return 1

    values = {}
    for item in args.seed or []:
        if "=" not in item:
            console.print(f"[red]Error: seeds are name=value, got '{item}'[/red]")
            return 1
        key, value = item.split("=", 1)
        values[key.strip()] = bytes.fromhex(value[2:]) if value.startswith("0x") else value

    try:
        resolution = PdaSeedResolver().resolve_seeds(pda)
        address, bump = resolution.derive(program_id, values)
    except KeyError as e:
        console.print(f"[red]Error: {e.args[0]}[/red]")
        return 1
    except (GenerationError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(f"[cyan]{pda.name}:[/cyan] {address}  [dim]bump {bump}[/dim]")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="anchorgen",
        description="Generate Python clients for Anchor programs",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # generate command
    generate_parser = subparsers.add_parser("generate", help="Generate a client package")
    generate_parser.add_argument("idl", type=str, help="Path or URL of an Anchor IDL JSON file")
    generate_parser.add_argument("--output", "-o", type=str, default=".", help="Output directory")
    generate_parser.add_argument("--name", type=str, help="Distribution name of the generated package")
    generate_parser.add_argument(
        "--derive-from-arguments",
        action="store_true",
        help="Derive PDAs whose seeds come from instruction arguments",
    )
    generate_parser.add_argument("--format", action="store_true", help="Run the formatter on the output")
    generate_parser.add_argument(
        "--keep-existing",
        action="store_true",
        help="Do not delete the package folder before writing",
    )

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Show accounts, instructions and PDAs of an IDL")
    inspect_parser.add_argument("idl", type=str, help="Path or URL of an Anchor IDL JSON file")

    # discriminator command
    disc_parser = subparsers.add_parser("discriminator", help="Compute an Anchor discriminator")
    disc_parser.add_argument("namespace", type=str, help="'account' or 'global'")
    disc_parser.add_argument("name", type=str, help="Account or instruction name")

    # pda command
    pda_parser = subparsers.add_parser("pda", help="Derive a PDA declared in an IDL")
    pda_parser.add_argument("idl", type=str, help="Path or URL of an Anchor IDL JSON file")
    pda_parser.add_argument("name", type=str, help="PDA name")
    pda_parser.add_argument(
        "--seed", "-s",
        action="append",
        help="Seed value as name=value (0x-prefixed values are hex bytes)",
    )
    pda_parser.add_argument("--program-id", type=str, help="Program address (default: from the IDL)")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)

    if args.command == "generate":
        return run_generate(args)
    elif args.command == "inspect":
        return run_inspect(args)
    elif args.command == "discriminator":
        return run_discriminator(args)
    elif args.command == "pda":
        return run_pda(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
