"""CLI interface for schemax using Typer framework."""

import json as jsonlib
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from schemax import __description__, __version__
from schemax.config import SchemaxConfig, load_config
from schemax.errors import SchemaxError
from schemax.models import LogLevel
from schemax.reload import ReloadStatus
from schemax.service import ValidationEngine

app = typer.Typer(
    name="schemax",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

_LOG_LEVELS = {
    LogLevel.ERROR.value: logging.ERROR,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.DEBUG.value: logging.DEBUG,
}

_STATUS_STYLES = {
    ReloadStatus.OK: "green",
    ReloadStatus.PARTIAL: "yellow",
    ReloadStatus.FAILED: "red",
    ReloadStatus.SKIPPED: "dim",
}

ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Configuration file path (default: search for .schemax.json)")
]


def setup_logging(level: str) -> None:
    """Route schemax log records through rich at the configured level."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
    root = logging.getLogger("schemax")
    root.handlers = [handler]
    root.setLevel(_LOG_LEVELS.get(str(level), logging.INFO))
    root.propagate = False


def _load(config_path: Path | None) -> SchemaxConfig:
    try:
        config = load_config(config_path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    setup_logging(config.logging.level)
    return config


def _engine(config_path: Path | None) -> ValidationEngine:
    engine = ValidationEngine(_load(config_path))
    for result in engine.reload_all():
        if not result.ok:
            console.print(f"[yellow]WARN[/yellow] {result.component}: {result.status.value} {list(result.errors)}")
    return engine


def version_callback(value: bool) -> None:
    """Show version information and exit."""
    if value:
        console.print(f"schemax version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, help="Show version and exit")
    ] = False,
) -> None:
    """schemax - Validation rule compilation and suppression engine."""


@app.command("reload")
def reload_command(config: ConfigOption = None) -> None:
    """Reload profiles, schemas and rule-sets and show the outcome per subsystem."""
    engine = ValidationEngine(_load(config))
    results = engine.reload_all()

    table = Table(title="Reload")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Loaded", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Errors")
    for result in results:
        style = _STATUS_STYLES[result.status]
        table.add_row(
            result.component,
            f"[{style}]{result.status.value}[/{style}]",
            str(result.loaded_count),
            str(result.duration_ms),
            "\n".join(result.errors),
        )
    console.print(table)

    if not all(result.ok for result in results):
        raise typer.Exit(1)


@app.command("compile")
def compile_command(
    rule_set_type: Annotated[str, typer.Argument(help="Rule-set type, e.g. UBLTR_MAIN")],
    out: Annotated[
        Path,
        typer.Option("--out", "-o", help="Write the generated stylesheet to this file")
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Compile one rule-set with the global assertions injected."""
    engine = ValidationEngine(_load(config))
    engine.registry.reload()
    try:
        artifact = engine.compile_rule_set(rule_set_type)
    except (SchemaxError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    parameters = ", ".join(sorted(artifact.parameters)) or "-"
    console.print(f"[green]OK[/green] {artifact.name} compiled (parameters: {parameters})")
    if out:
        out.write_bytes(artifact.generated_source)
        console.print(f"[blue]Generated stylesheet:[/blue] {out}")


@app.command("profiles")
def list_profiles(config: ConfigOption = None) -> None:
    """List the loaded validation profiles."""
    engine = ValidationEngine(_load(config))
    result = engine.registry.reload()
    for error in result.errors:
        console.print(f"[yellow]WARN[/yellow] {error}")

    table = Table(title="Validation Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Extends")
    table.add_column("Rules", justify="right")
    table.add_column("Overrides", justify="right")
    table.add_column("Assertions", justify="right")
    table.add_column("Description")
    for name, profile in sorted(engine.profiles().items()):
        table.add_row(
            name,
            profile.parent or "-",
            str(len(profile.suppression_rules)),
            str(sum(len(o) for o in profile.xsd_overrides.values())),
            str(sum(len(a) for a in profile.custom_assertions.values())),
            profile.description,
        )
    console.print(table)


@app.command("profile")
def show_profile(
    name: Annotated[str, typer.Argument(help="Profile name")],
    config: ConfigOption = None,
) -> None:
    """Show the effective (inherited) content of one profile."""
    engine = ValidationEngine(_load(config))
    engine.registry.reload()
    profile = engine.resolve_profile(name)
    if profile is None:
        console.print(f"[red]Error:[/red] Profile '{name}' not found.")
        raise typer.Exit(1)

    console.print(f"[bold]{profile.name}[/bold] {profile.description}")
    if profile.parent:
        console.print(f"[dim]extends {profile.parent}[/dim]")

    rules = Table(title="Suppression rules")
    rules.add_column("Match", style="cyan")
    rules.add_column("Pattern")
    rules.add_column("Scope")
    rules.add_column("Description")
    for rule in profile.suppression_rules:
        scope = "*" if rule.is_global() else ", ".join(sorted(rule.scope))
        rules.add_row(rule.match.value, rule.pattern, scope, rule.description or "")
    console.print(rules)

    if profile.xsd_overrides:
        overrides = Table(title="XSD overrides")
        overrides.add_column("Schema", style="cyan")
        overrides.add_column("Element")
        overrides.add_column("minOccurs")
        overrides.add_column("maxOccurs")
        for schema_type, entries in profile.xsd_overrides.items():
            for override in entries:
                overrides.add_row(schema_type, override.element, override.min_occurs or "", override.max_occurs or "")
        console.print(overrides)

    if profile.custom_assertions:
        assertions = Table(title="Custom assertions")
        assertions.add_column("Rule-set", style="cyan")
        assertions.add_column("Id")
        assertions.add_column("Context")
        assertions.add_column("Test")
        for rule_set_type, entries in profile.custom_assertions.items():
            for assertion in entries:
                assertions.add_row(rule_set_type, assertion.id or "", assertion.context or "", assertion.test or "")
        console.print(assertions)


@app.command()
def validate(
    document: Annotated[Path, typer.Argument(help="XML document to validate")],
    rule_set: Annotated[str, typer.Option("--rule-set", "-r", help="Rule-set type, e.g. UBLTR_MAIN")],
    schema: Annotated[str, typer.Option("--schema", "-s", help="Schema type, e.g. INVOICE")] = None,
    profile: Annotated[str, typer.Option("--profile", "-p", help="Validation profile")] = None,
    suppress: Annotated[
        list[str],
        typer.Option("--suppress", help="Ad-hoc suppression (id, 'test:...' or 'text:...'; can be used multiple times)")
    ] = None,
    subtype: Annotated[str, typer.Option("--subtype", help="Runtime document subtype, e.g. earsiv")] = None,
    json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
    config: ConfigOption = None,
) -> None:
    """Validate a document and print active and suppressed findings."""
    if not document.is_file():
        console.print(f"[red]Error:[/red] Document not found: {document}")
        raise typer.Exit(1)

    engine = _engine(config)
    try:
        report = engine.validate(
            document.read_bytes(),
            rule_set,
            schema_type=schema,
            profile=profile,
            suppressions=suppress,
            subtype=subtype,
            source_name=str(document.resolve()),
        )
    except (SchemaxError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if json:
        console.print_json(jsonlib.dumps(report.model_dump(mode="json", by_alias=True)))
    else:
        for error in report.schema_errors:
            console.print(f"[red]SCHEMA[/red] {error}")
        for finding in report.findings.active:
            console.print(f"[red]{finding.rule_id or '-'}[/red] {finding.message}")
        for finding in report.findings.suppressed:
            console.print(f"[dim]suppressed {finding.rule_id or '-'}: {finding.message}[/dim]")
        summary = (
            f"{len(report.schema_errors)} schema error(s), {len(report.findings.active)} finding(s), "
            f"{report.findings.suppressed_count + report.suppressed_schema_errors} suppressed"
        )
        if report.is_valid:
            console.print(f"[green]OK[/green] {summary}")
        else:
            console.print(f"[red]INVALID[/red] {summary}")

    if not report.is_valid:
        raise typer.Exit(1)


@app.command()
def impact(
    rule_set_type: Annotated[str, typer.Argument(help="Rule-set type, e.g. UBLTR_MAIN")],
    new_source: Annotated[Path, typer.Argument(help="New version of the rule-set source")],
    json: Annotated[bool, typer.Option("--json", help="Print the warnings as JSON")] = False,
    config: ConfigOption = None,
) -> None:
    """Report suppression rules that a new rule-set version would break."""
    if not new_source.is_file():
        console.print(f"[red]Error:[/red] File not found: {new_source}")
        raise typer.Exit(1)

    engine = ValidationEngine(_load(config))
    try:
        warnings = engine.analyze_impact(rule_set_type, new_source.read_bytes())
    except (SchemaxError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if json:
        console.print_json(jsonlib.dumps([w.to_dict() for w in warnings]))
        return
    if not warnings:
        console.print("[green]OK[/green] No suppression rule is affected")
        return

    table = Table(title=f"Suppression impact: {rule_set_type}")
    table.add_column("Severity")
    table.add_column("Profile", style="cyan")
    table.add_column("Pattern")
    table.add_column("Removed id")
    table.add_column("Possible new id")
    for warning in warnings:
        style = "red" if warning.severity.value == "critical" else "yellow"
        table.add_row(
            f"[{style}]{warning.severity.value}[/{style}]",
            warning.profile_name,
            warning.pattern,
            warning.rule_id,
            warning.possible_new_id or "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
