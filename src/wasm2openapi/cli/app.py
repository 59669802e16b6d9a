from typing import Annotated

import typer

from wasm2openapi.cli.convert import convert
from wasm2openapi.cli.serve import serve
from wasm2openapi.log import setup_logging

app = typer.Typer(
    name="wasm2openapi",
    help="wasm2openapi: describe a WASM component as an OpenAPI document and serve it over HTTP.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
) -> None:
    setup_logging(verbose)


app.command("convert")(convert)
app.command("serve")(serve)


def main() -> None:
    app()
