import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from wasm2openapi.core.extractor import load_file
from wasm2openapi.core.schema import build_document
from wasm2openapi.errors import InvalidComponent, UnsupportedType
from wasm2openapi.models import ComponentInterface

console = Console(stderr=True)

FileOption = Annotated[Path, typer.Option("--file", "-f", help="Path to the WASM component binary.")]


def load_component(file: Path) -> ComponentInterface:
    """Load ``file`` or exit: 2 if it does not exist, 1 if it is not a usable component."""
    if not file.is_file():
        console.print(f"[red]File not found:[/red] {escape(str(file))}")
        raise typer.Exit(2)
    try:
        return load_file(file)
    except (InvalidComponent, UnsupportedType) as exc:
        console.print(f"[red]Cannot load {escape(str(file))}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


def convert(
    file: FileOption,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the document here instead of stdout.")
    ] = None,
    indent: Annotated[int, typer.Option(help="JSON indentation (0 for compact output).")] = 2,
) -> None:
    """Print the OpenAPI document describing the component's exported functions."""
    iface = load_component(file)
    text = json.dumps(build_document(iface), indent=indent or None)
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]Wrote[/green] {len(iface.functions)} operation(s) to {escape(str(output))}")
