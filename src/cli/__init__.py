"""Main CLI application module."""

import typer

from .key_commands import keys_app

# Create the main CLI application
app = typer.Typer(
    help="🛠️  NextChat Gateway CLI - credential and server tooling",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(keys_app, name="keys")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: app.host)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default: app.port)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    """Run the gateway HTTP server."""
    import uvicorn

    from src.gateway.runtime.context import get_config
    from src.gateway.runtime.settings import EnvironmentVariables

    config = get_config()
    uvicorn.run(
        "src.gateway.api.http.app:app",
        host=host or config.app.host,
        port=port or config.app.port,
        reload=reload,
        log_level=EnvironmentVariables().log_level.lower(),
        access_log=False,  # request logging happens in middleware
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
