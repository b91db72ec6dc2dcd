"""CLI commands for validation-bridge.

Each command starts a runner client, performs one operation, prints the
runner's JSON result and stops the client again.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from validation_bridge import __version__
from validation_bridge.cli.shared.logging_utils import configure_stderr_logging, ensure_rotating_log_file
from validation_bridge.config.loader import load_config
from validation_bridge.config.schema import Config, RunnerConfig
from validation_bridge.errors import ValidationBridgeError
from validation_bridge.runner.lifecycle import ValidationClient

app = typer.Typer(
    name="validation-bridge",
    help="Drive the validation-lib runner over JSON-RPC from the command line",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


@dataclass
class CliContext:
    """Options shared by every command."""
    config: Config
    runner_overrides: dict[str, Any]


def version_callback(value: bool):
    if value:
        console.print(f"validation-bridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
    script_path: Optional[str] = typer.Option(None, "--script-path", help="validation-lib directory (runner cwd)"),
    python: Optional[str] = typer.Option(None, "--python", help="Python executable used to launch the runner"),
    debug: Optional[bool] = typer.Option(None, "--debug/--no-debug", help="Launch the runner with --debug"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait for each response"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (default from config)"),
):
    """validation-bridge - JSON-RPC client for the validation runner."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(2)

    level = log_level or config.logging.level
    configure_stderr_logging(level)
    if config.logging.file:
        ensure_rotating_log_file(Path(config.logging.file), level=level)

    overrides: dict[str, Any] = {
        "script_path": script_path,
        "python_executable": python,
        "debug": debug,
        "read_timeout_seconds": timeout,
    }
    ctx.obj = CliContext(
        config=config,
        runner_overrides={k: v for k, v in overrides.items() if v is not None},
    )


def resolve_runner_config(cli: CliContext) -> RunnerConfig:
    """Merge the config file's runner section with command-line overrides."""
    base = cli.config.runner.model_dump() if cli.config.runner else {}
    base.update(cli.runner_overrides)
    if not base.get("script_path"):
        raise typer.BadParameter(
            "runner script path is not configured; pass --script-path or set runner.scriptPath in config.json",
            param_hint="--script-path",
        )
    try:
        return RunnerConfig.model_validate(base)
    except ValidationError as e:
        raise typer.BadParameter(str(e)) from e


def _run(ctx: typer.Context, operation: Callable[[ValidationClient], Any]) -> None:
    cli: CliContext = ctx.obj
    client = ValidationClient(resolve_runner_config(cli))
    client.install_shutdown_hook()
    try:
        client.start()
        result = operation(client)
    except ValidationBridgeError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        err_console.print_json(data=e.to_dict())
        raise typer.Exit(1)
    finally:
        client.stop()
    console.print_json(data=result)


def _parse_json_option(value: str, name: str) -> Any:
    """Parse an inline JSON value, or ``@path`` to read JSON from a file."""
    try:
        if value.startswith("@"):
            return json.loads(Path(value[1:]).expanduser().read_text(encoding="utf-8"))
        return json.loads(value)
    except (OSError, json.JSONDecodeError) as e:
        raise typer.BadParameter(f"invalid JSON: {e}", param_hint=name) from e


def _ruleset(ctx: typer.Context, ruleset: str | None) -> str:
    return ruleset or ctx.obj.config.default_ruleset


@app.command("rulesets")
def rulesets_command(ctx: typer.Context):
    """List the rulesets known to the runner."""
    _run(ctx, lambda client: client.discover_rulesets())


@app.command("validate")
def validate_command(
    ctx: typer.Context,
    entity_type: str = typer.Argument(..., help="Entity type, e.g. loan"),
    data: str = typer.Option(..., "--data", "-d", help="Entity JSON, or @file.json"),
    ruleset: Optional[str] = typer.Option(None, "--ruleset", "-r", help="Ruleset name"),
):
    """Validate one entity."""
    entity_data = _parse_json_option(data, "--data")
    ruleset_name = _ruleset(ctx, ruleset)
    _run(ctx, lambda client: client.validate(entity_type, entity_data, ruleset_name))


@app.command("rules")
def rules_command(
    ctx: typer.Context,
    entity_type: str = typer.Argument(..., help="Entity type, e.g. loan"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Sample entity JSON, or @file.json"),
    schema_url: Optional[str] = typer.Option(None, "--schema-url", help="Schema URL used as the sample entity's $schema"),
    ruleset: Optional[str] = typer.Option(None, "--ruleset", "-r", help="Ruleset name"),
):
    """Describe the rules that apply to an entity type."""
    entity_data = _parse_json_option(data, "--data") if data else {}
    if schema_url:
        entity_data = {**entity_data, "$schema": schema_url}
    ruleset_name = _ruleset(ctx, ruleset)
    _run(ctx, lambda client: client.discover_rules(entity_type, entity_data, ruleset_name))


@app.command("batch")
def batch_command(
    ctx: typer.Context,
    entities: str = typer.Option(..., "--entities", "-e", help="JSON array of entities, or @file.json"),
    id_field: list[str] = typer.Option(..., "--id-field", help="Identifying field (repeatable)"),
    ruleset: Optional[str] = typer.Option(None, "--ruleset", "-r", help="Ruleset name"),
):
    """Validate a batch of entities."""
    rows = _parse_json_option(entities, "--entities")
    if not isinstance(rows, list):
        raise typer.BadParameter("entities must be a JSON array", param_hint="--entities")
    ruleset_name = _ruleset(ctx, ruleset)
    _run(ctx, lambda client: client.batch_validate(rows, list(id_field), ruleset_name))


@app.command("batch-file")
def batch_file_command(
    ctx: typer.Context,
    file_uri: str = typer.Argument(..., help="URI of the file holding the entities"),
    entity_type: list[str] = typer.Option(..., "--entity-type", help="Entity type present in the file (repeatable)"),
    id_field: list[str] = typer.Option(..., "--id-field", help="Identifying field (repeatable)"),
    ruleset: Optional[str] = typer.Option(None, "--ruleset", "-r", help="Ruleset name"),
):
    """Validate the entities stored in a file."""
    ruleset_name = _ruleset(ctx, ruleset)
    _run(
        ctx,
        lambda client: client.batch_file_validate(file_uri, list(entity_type), list(id_field), ruleset_name),
    )


@app.command("reload")
def reload_command(ctx: typer.Context):
    """Ask the runner to reload its business logic."""
    _run(ctx, lambda client: client.reload_logic())


@app.command("cache-age")
def cache_age_command(ctx: typer.Context):
    """Show the age of the runner's logic cache."""
    _run(ctx, lambda client: client.get_cache_age())


@app.command("call")
def call_command(
    ctx: typer.Context,
    method: str = typer.Argument(..., help="Runner method name"),
    params: str = typer.Option("{}", "--params", "-p", help="JSON object of params, or @file.json"),
):
    """Call any runner method with raw params."""
    payload = _parse_json_option(params, "--params")
    if not isinstance(payload, dict):
        raise typer.BadParameter("params must be a JSON object", param_hint="--params")
    _run(ctx, lambda client: client.call(method, payload))


if __name__ == "__main__":
    app()
