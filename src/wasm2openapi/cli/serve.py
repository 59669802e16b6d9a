from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from wasm2openapi.cli.convert import FileOption, load_component
from wasm2openapi.errors import InvalidComponent
from wasm2openapi.settings import InstancePolicy, get_settings

console = Console()


def serve(
    file: FileOption,
    swagger: Annotated[bool, typer.Option("--swagger", help="Serve Swagger UI at /swagger-ui.")] = False,
    host: Annotated[str | None, typer.Option(help="Bind address [env WASM2OPENAPI_HOST, default 127.0.0.1].")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port [env WASM2OPENAPI_PORT, default 8080].")] = None,
    policy: Annotated[
        InstancePolicy | None,
        typer.Option(
            case_sensitive=False,
            help="'shared': one instance for all requests, calls serialised (keeps component state). "
            "'per-request': a fresh instance per request. [env WASM2OPENAPI_POLICY, default shared]",
        ),
    ] = None,
    timeout: Annotated[
        float | None, typer.Option(help="Per-call deadline in seconds [env WASM2OPENAPI_TIMEOUT, default 5].")
    ] = None,
) -> None:
    """Serve every exported function as a POST endpoint."""
    import uvicorn

    from wasm2openapi.api.app import create_app
    from wasm2openapi.runtime.wasmtime_engine import WasmtimeComponentRuntime

    try:
        settings = get_settings().with_overrides(host=host, port=port, policy=policy, timeout=timeout)
    except ValueError as exc:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(2) from exc

    iface = load_component(file)
    try:
        runtime = WasmtimeComponentRuntime(iface, settings)
    except InvalidComponent as exc:
        console.print(f"[red]Cannot compile {escape(str(file))}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    app = create_app(iface, runtime, settings, swagger=swagger)
    console.print(f"[green]Serving {len(iface.functions)} function(s) on {settings.base_url}[/green]")
    console.print(f"  Policy:     {settings.policy.value} (timeout {settings.timeout:g}s)")
    console.print(f"  OpenAPI:    {settings.base_url}/api-docs/openapi.json")
    if swagger:
        console.print(f"  Swagger UI: {settings.base_url}/swagger-ui")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
