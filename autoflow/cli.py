"""Command-line interface for Autoflow - credential-gated workflow compiler."""

import json
import sys

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from autoflow import __version__
from autoflow.credentials.registry import ENGINE_CREDENTIAL_TYPES, get_credential_requirements, list_services
from autoflow.errors import AutoflowError

console = Console()
err_console = Console(stderr=True)


@click.group()
@click.version_option(version=__version__)
def main():
    """
    Autoflow - turn workflow specs into engine-ready documents.

    Stores encrypted service credentials and compiles abstract workflow
    specs for the external workflow engine.
    """
    pass


@main.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to (default: 8000)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, help="Number of worker processes")
def serve(host: str, port: int, reload: bool, workers: int):
    """Start the Autoflow API server."""
    url = f"http://{'localhost' if host == '0.0.0.0' else host}:{port}"
    console.print(
        Panel.fit(
            f"""[bold cyan]Autoflow API[/bold cyan]

[dim]Host:[/dim] {host}
[dim]Port:[/dim] {port}
[dim]Workers:[/dim] {workers}
[dim]Reload:[/dim] {reload}

[yellow]API docs at:[/yellow] [link]{url}/docs[/link]""",
            title="Server Configuration",
            border_style="cyan",
        )
    )
    try:
        uvicorn.run(
            "autoflow.main:app",
            host=host,
            port=port,
            reload=reload,
            workers=workers if not reload else 1,
            log_level="info",
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")
        sys.exit(0)


@main.command()
def services():
    """List the services credentials can be stored for."""
    table = Table(title="Supported Services")
    table.add_column("Service", style="cyan")
    table.add_column("Name")
    table.add_column("Auth")
    table.add_column("Engine credential type", style="dim")

    for config in list_services():
        engine_type = ENGINE_CREDENTIAL_TYPES.get(config.service_id)
        table.add_row(
            config.service_id,
            config.display_name,
            config.auth_kind.value,
            engine_type.type if engine_type else "-",
        )
    console.print(table)


@main.command()
@click.argument("service")
def requirements(service: str):
    """Show what is needed to connect SERVICE."""
    try:
        descriptor = get_credential_requirements(service)
    except AutoflowError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    console.print_json(json.dumps(descriptor))


def _parse_credential_option(values) -> dict:
    credentials = {}
    for value in values:
        service, sep, credential_id = value.partition("=")
        if not sep or not service or not credential_id:
            raise click.BadParameter(f"expected service=credentialId, got '{value}'")
        credentials[service] = credential_id
    return credentials


@main.command("compile")
@click.argument("spec_file", type=click.File("r"))
@click.option(
    "--credential",
    "-c",
    "credential_options",
    multiple=True,
    help="Credential to reference, as service=credentialId (repeatable)",
)
@click.option("--strict", is_flag=True, help="Fail instead of skipping unsupported actions")
def compile_spec(spec_file, credential_options, strict: bool):
    """Compile the workflow spec in SPEC_FILE and print the engine document."""
    from autoflow.workflows.compiler import compile_workflow, find_unsupported_actions
    from autoflow.workflows.schemas import parse_workflow_spec

    credentials = _parse_credential_option(credential_options)
    try:
        spec = parse_workflow_spec(json.load(spec_file))
    except json.JSONDecodeError as e:
        err_console.print(f"[red]SPEC_FILE is not valid JSON: {e.msg}[/red]")
        sys.exit(1)
    except AutoflowError as e:
        err_console.print(f"[red]{e.message}[/red]")
        for error in e.detail.get("errors", []):
            err_console.print(f"  [dim]{'.'.join(str(p) for p in error.get('loc', ()))}:[/dim] {error.get('msg')}")
        sys.exit(1)

    unsupported = find_unsupported_actions(spec)
    if unsupported:
        listing = ", ".join(f"#{index} '{kind}'" for index, kind in unsupported)
        if strict:
            err_console.print(f"[red]Unsupported actions: {listing}[/red]")
            sys.exit(1)
        err_console.print(f"[yellow]Skipping unsupported actions: {listing}[/yellow]", highlight=False)

    missing = [s for s in dict.fromkeys(spec.required_services) if s not in credentials]
    if missing:
        err_console.print(f"[yellow]No credential given for: {', '.join(missing)}[/yellow]")

    try:
        document = compile_workflow(spec, credentials)
    except AutoflowError as e:
        err_console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    click.echo(json.dumps(document.to_engine_payload(), indent=2))


if __name__ == "__main__":
    main()
