"""
apimacro CLI - record, inspect, generate and replay API macros.

Commands:
    apimacro record <calls.json> --name NAME   - Build a macro from captured calls
    apimacro list                              - List stored macros
    apimacro show <id>                         - Show a macro
    apimacro analyze <id>                      - Show detected patterns and parameters
    apimacro generate <id>                     - Generate a tool from a macro
    apimacro play <id> --param k=v             - Replay a macro
    apimacro delete <id>                       - Delete a macro
    apimacro export <file> / import <file>     - Move macros between stores
    apimacro version                           - Show version
"""

import asyncio
import json
import sys
from typing import Optional

import click

from apimacro.config import Config
from apimacro.core.models import CallError, CallResponse
from apimacro.errors import MacroError
from apimacro.logging import setup_logging
from apimacro.record.player import MacroPlayer, PlaybackOptions, ResultStatus
from apimacro.record.recorder import Recorder
from apimacro.state import MacroStore


@click.group(invoke_without_command=True)
@click.option('--db', 'db_path', help='Macro database (default: $APIMACRO_STORAGE_PATH)')
@click.option('--log-level', help='Log level (default: $APIMACRO_LOG_LEVEL or INFO)')
@click.pass_context
def cli(ctx, db_path: Optional[str], log_level: Optional[str]):
    """apimacro - Record API call sequences and replay them as tools."""
    config = Config.from_env()
    if db_path:
        config.storage_path = db_path
    if log_level:
        config.log_level = log_level.upper()

    problems = config.validate()
    if problems:
        for problem in problems:
            click.secho(f"Config error: {problem}", fg="red")
        sys.exit(1)

    setup_logging(config.log_level)
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument('calls_file', type=click.Path(exists=True))
@click.option('--name', '-n', required=True, help='Macro name')
@click.option('--description', '-d', default='', help='Macro description')
@click.pass_obj
def record(config: Config, calls_file: str, name: str, description: str):
    """
    Build and save a macro from a JSON list of captured calls.

    Each item needs "method" and "path"; "payload", "params", "response"
    ({"status": ..., "data": ...}) and "error" are optional.

    Example:
        apimacro record calls.json --name "Add backend"
    """
    try:
        with open(calls_file, "r") as f:
            captured = json.load(f)
    except json.JSONDecodeError as e:
        click.secho(f"Error reading {calls_file}: {e}", fg="red")
        sys.exit(1)

    if not isinstance(captured, list):
        click.secho(f"Error reading {calls_file}: expected a list of calls", fg="red")
        sys.exit(1)

    try:
        with MacroStore(config.storage_path) as store:
            recorder = Recorder(storage=store)
            recorder.start_recording(name, description)
            for item in captured:
                response = item.get("response")
                error = item.get("error")
                recorder.record_api_call(
                    item["method"],
                    item["path"],
                    item.get("payload"),
                    params=item.get("params"),
                    response=CallResponse.from_dict(response) if response else None,
                    error=CallError.from_dict(error) if error else None,
                    duration=item.get("duration"),
                    metadata=item.get("metadata"),
                )
            recording = recorder.stop_recording()
            recorder.save_macro(recording)
    except (KeyError, TypeError) as e:
        click.secho(f"Malformed call in {calls_file}: {e}", fg="red")
        sys.exit(1)
    except MacroError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)

    click.echo(f"Recorded {len(recording.calls)} calls, {len(recording.parameters)} parameters")
    click.echo(recording.id)


@cli.command("list")
@click.option('--name', help='Filter by name substring')
@click.option('--tag', 'tags', multiple=True, help='Require tag (repeatable)')
@click.option('--category', help='Filter by category')
@click.pass_obj
def list_macros(config: Config, name: Optional[str], tags: tuple, category: Optional[str]):
    """List stored macros."""
    with MacroStore(config.storage_path) as store:
        if name or tags or category:
            macros = store.search(name=name, tags=list(tags), category=category)
        else:
            macros = store.list()

    if not macros:
        click.echo("No macros found.")
        click.echo("Run 'apimacro record' to create one.")
        return

    click.echo(f"{'ID':<38} {'NAME':<30} {'CALLS':<6} {'UPDATED'}")
    click.echo("-" * 92)

    for macro in macros:
        click.echo(f"{macro.id:<38} {macro.name:<30} {len(macro.calls):<6} {macro.updated.strftime('%Y-%m-%d %H:%M')}")


@cli.command()
@click.argument('macro_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the stored document')
@click.pass_obj
def show(config: Config, macro_id: str, as_json: bool):
    """Show a macro's calls and parameters."""
    recording = _load(config, macro_id)

    if as_json:
        click.echo(json.dumps(recording.to_dict(), indent=2))
        return

    click.echo(f"Macro: {recording.name}")
    click.echo(f"ID: {recording.id}")
    if recording.description:
        click.echo(f"Description: {recording.description}")
    click.echo(f"Updated: {recording.updated.strftime('%Y-%m-%d %H:%M:%S')}")

    click.echo(f"\nCalls ({len(recording.calls)}):")
    for index, call in enumerate(recording.calls):
        symbol = click.style("✗", fg="red") if call.failed else click.style("✓", fg="green")
        click.echo(f"  {symbol} [{index}] {call.method.value:<6} {call.path}")

    if recording.parameters:
        click.echo(f"\nParameters ({len(recording.parameters)}):")
        for param in recording.parameters:
            required = "required" if param.required else f"default={param.default_value!r}"
            click.echo(f"  {param.name} ({param.type}, {required})")
            if param.description:
                click.echo(f"      {param.description}")


@cli.command()
@click.argument('macro_id')
@click.pass_obj
def analyze(config: Config, macro_id: str):
    """Show detected patterns, dependencies and parameters."""
    recording = _load(config, macro_id)
    recorder = Recorder()
    analysis = recorder.analyze_macro(recording)

    click.echo(f"Analysis of {recording.name}:\n")
    for pattern, commands in analysis.patterns.items():
        if commands:
            click.echo(f"  {pattern}: {', '.join(commands)}")

    if analysis.side_effects:
        click.echo("\nSide effects:")
        for effect in analysis.side_effects:
            click.echo(f"  {effect}")

    if analysis.dependencies:
        click.echo("\nDependencies:")
        for hint in analysis.dependencies:
            click.echo(f"  [{hint.call_index}] {hint}")

    click.echo("\nSuggested parameters:")
    if not analysis.parameter_suggestions:
        click.echo("  (none)")
    for param in analysis.parameter_suggestions:
        marker = "*" if param.required else " "
        click.echo(f"  {marker} {param.name:<24} {param.type:<8} {param.path}")


@cli.command()
@click.argument('macro_id')
@click.option('--output', '-o', help='Write a standalone module to this file')
@click.option('--schema', is_flag=True, help='Print the tool definition as JSON')
@click.pass_obj
def generate(config: Config, macro_id: str, output: Optional[str], schema: bool):
    """
    Generate a tool from a macro.

    Example:
        apimacro generate <id> -o add_backend.py
    """
    recording = _load(config, macro_id)
    recorder = Recorder()

    try:
        if output:
            module = recorder.generator.generate_tool_module(recording)
            with open(output, "w") as f:
                f.write(module)
            click.secho(f"Tool written to {output}", fg="green")
            return

        tool = recorder.generate_tool(recording)
    except MacroError as e:
        click.secho(f"Error generating tool: {e}", fg="red")
        sys.exit(1)

    if schema:
        definition = tool.to_dict()
        definition.pop("implementation", None)
        click.echo(json.dumps(definition, indent=2))
    else:
        click.echo(tool.implementation, nl=False)


@cli.command()
@click.argument('macro_id')
@click.option('--param', '-p', 'params', multiple=True, help='Parameter as name=value (repeatable)')
@click.option('--dry-run', is_flag=True, help='Substitute without issuing calls')
@click.option('--stop-on-error', is_flag=True, help='Abort on the first failed call')
@click.option('--base-url', help='API base URL (default: $APIMACRO_BASE_URL)')
@click.pass_obj
def play(config: Config, macro_id: str, params: tuple, dry_run: bool,
         stop_on_error: bool, base_url: Optional[str]):
    """
    Replay a macro.

    Example:
        apimacro play <id> -p hostname=web01.example.com --stop-on-error
        apimacro play <id> --dry-run
    """
    try:
        parameters = _parse_params(params)
    except ValueError as e:
        click.secho(str(e), fg="red")
        sys.exit(1)

    base_url = base_url or config.base_url
    if not dry_run and not base_url:
        click.secho("No base URL: pass --base-url or set APIMACRO_BASE_URL", fg="red")
        sys.exit(1)

    options = PlaybackOptions(
        parameters=parameters,
        dry_run=dry_run,
        stop_on_error=stop_on_error,
    )

    try:
        results = asyncio.run(_play(config, macro_id, options, base_url))
    except MacroError as e:
        click.secho(f"Playback failed: {e}", fg="red")
        sys.exit(1)

    failed = [r for r in results if r.status in (ResultStatus.ERROR, ResultStatus.SUBSTITUTION_FAILED)]
    for result in failed:
        click.secho(f"  ! [{result.index}] {result.error}", fg="red")

    if failed:
        click.secho(f"\n{len(failed)} of {len(results)} calls failed", fg="red")
        sys.exit(1)

    click.secho(f"\n{len(results)} calls {'checked' if dry_run else 'replayed'}", fg="green")


async def _play(config: Config, macro_id: str, options: PlaybackOptions, base_url: Optional[str]):
    from apimacro.transport import HTTPCallIssuer

    with MacroStore(config.storage_path) as store:
        if options.dry_run:
            return await MacroPlayer(store).play_macro(macro_id, options)

        async with HTTPCallIssuer(base_url, token=config.api_token, timeout=config.timeout) as issuer:
            return await MacroPlayer(store, issuer).play_macro(macro_id, options)


@cli.command()
@click.argument('macro_id')
@click.option('--yes', '-y', is_flag=True, help='Skip confirmation')
@click.pass_obj
def delete(config: Config, macro_id: str, yes: bool):
    """Delete a macro."""
    if not yes and not click.confirm(f"Delete macro {macro_id}?"):
        click.echo("Aborted.")
        return

    try:
        with MacroStore(config.storage_path) as store:
            store.delete(macro_id)
    except MacroError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)

    click.secho(f"Deleted {macro_id}", fg="green")


@cli.command("export")
@click.argument('export_file', type=click.Path())
@click.pass_obj
def export_macros(config: Config, export_file: str):
    """Export all macros to a JSON file."""
    try:
        with MacroStore(config.storage_path) as store:
            count = store.export_all(export_file)
    except MacroError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)

    click.secho(f"Exported {count} macros to {export_file}", fg="green")


@cli.command("import")
@click.argument('import_file', type=click.Path(exists=True))
@click.option('--overwrite', is_flag=True, help='Replace macros that already exist')
@click.pass_obj
def import_macros(config: Config, import_file: str, overwrite: bool):
    """Import macros from a JSON export file."""
    try:
        with MacroStore(config.storage_path) as store:
            count = store.import_all(import_file, overwrite=overwrite)
    except MacroError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)

    click.secho(f"Imported {count} macros from {import_file}", fg="green")


@cli.command()
def version():
    """Show apimacro version."""
    from apimacro import __version__
    click.echo(f"apimacro version {__version__}")


def _load(config: Config, macro_id: str):
    """Load a macro or exit with an error."""
    try:
        with MacroStore(config.storage_path) as store:
            recording = store.load(macro_id)
    except MacroError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)

    if recording is None:
        click.secho(f"Macro not found: {macro_id}", fg="red")
        sys.exit(1)
    return recording


def _parse_params(params: tuple) -> dict:
    """
    Parse name=value pairs.

    Values are read as JSON when possible, so 8080 is an int and true a bool;
    anything else stays a string.
    """
    parsed = {}
    for item in params:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise ValueError(f"Invalid parameter '{item}': expected name=value")
        try:
            parsed[name] = json.loads(raw)
        except ValueError:
            parsed[name] = raw
    return parsed


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
