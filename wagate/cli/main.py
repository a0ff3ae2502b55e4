"""
wagate CLI main module.

Launches uvicorn against the bundled gateway (``wagate.main:asgi``) or a
user file exposing a Gateway instance.
"""

import os
import subprocess
import sys
from pathlib import Path

import typer

app = typer.Typer(help="wagate messaging session gateway CLI")

DEFAULT_TARGET = "wagate.main:asgi"


def _resolve_module_name(file_path: str) -> str:
    """
    Convert a file path to a dotted module name importable from the cwd.

        main.py -> "main"
        deploy/gateway.py -> "deploy.gateway"
    """
    path = Path(file_path)
    if path.suffix == ".py":
        path = path.with_suffix("")
    return str(path).replace(os.path.sep, ".")


def _import_string(file_path: str | None, app_var: str) -> str:
    if file_path is None:
        return DEFAULT_TARGET
    if not Path(file_path).exists():
        typer.echo(f"❌ File not found: {file_path}", err=True)
        raise typer.Exit(1)
    return f"{_resolve_module_name(file_path)}:{app_var}.asgi"


def _run_uvicorn(cmd: list[str], label: str, import_string: str, port: int) -> None:
    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        typer.echo(f"❌ {label} server failed to start (exit code: {e.returncode})", err=True)
        typer.echo("", err=True)
        typer.echo("Common issues:", err=True)
        typer.echo(f"• {import_string} cannot be imported", err=True)
        typer.echo(f"• Port {port} already in use (try --port)", err=True)
        typer.echo("• ADAPTER_FACTORY not set or not importable", err=True)
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        typer.echo(f"👋 {label} server stopped")


@app.command()
def dev(
    file_path: str | None = typer.Argument(
        None, help="Python file with a Gateway instance (default: bundled app)"
    ),
    app_var: str = typer.Option("gateway", "--app", "-a", help="Gateway variable name"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(4000, "--port", "-p", help="Port to bind to"),
):
    """
    Run development server with auto-reload.

    Examples:
        wagate dev
        wagate dev deploy/gateway.py --port 8080
    """
    import_string = _import_string(file_path, app_var)
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        import_string,
        "--reload",
        "--host",
        host,
        "--port",
        str(port),
    ]

    typer.echo("🚀 Starting wagate development server...")
    typer.echo(f"📡 Import: {import_string}")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    typer.echo(f"📝 Docs: http://{host}:{port}/docs")
    typer.echo("💡 Press CTRL+C to stop")
    typer.echo()
    _run_uvicorn(cmd, "Development", import_string, port)


@app.command()
def prod(
    file_path: str | None = typer.Argument(
        None, help="Python file with a Gateway instance (default: bundled app)"
    ),
    app_var: str = typer.Option("gateway", "--app", "-a", help="Gateway variable name"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(4000, "--port", "-p", help="Port to bind to"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
):
    """
    Run production server (no auto-reload).

    Session runtimes live in process memory and every worker would bootstrap
    the same persisted sessions, so --workers above 1 is clamped to 1.

    Examples:
        wagate prod
        wagate prod --port 8080
    """
    if workers > 1:
        typer.echo(
            f"⚠️ --workers {workers} ignored: sessions are owned by one process, using 1 worker",
            err=True,
        )
        workers = 1

    import_string = _import_string(file_path, app_var)
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        import_string,
        "--host",
        host,
        "--port",
        str(port),
        "--workers",
        str(workers),
    ]

    typer.echo("🚀 Starting wagate production server...")
    typer.echo(f"📡 Import: {import_string}")
    typer.echo(f"🌐 Server: http://{host}:{port}")
    typer.echo(f"👥 Workers: {workers}")
    typer.echo("💡 Press CTRL+C to stop")
    typer.echo()
    _run_uvicorn(cmd, "Production", import_string, port)


if __name__ == "__main__":
    app()
