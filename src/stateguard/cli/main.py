"""stateguard CLI entry point."""

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from stateguard import __version__

console = Console()

SEVERITIES = ["error", "warning", "info"]


def _split_rules(values: tuple[str, ...]) -> list[str]:
    """Accept repeated options and comma-separated lists alike."""
    rules: list[str] = []
    for value in values:
        rules.extend(part.strip() for part in value.split(",") if part.strip())
    return rules


@click.group()
@click.version_option(__version__, prog_name="stateguard")
def cli() -> None:
    """stateguard - keep dependency-injected services stateless."""
    pass


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project root directory. Defaults to current directory.",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to stateguard.yaml config file.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format.",
)
@click.option("--select", multiple=True, help="Only run these rules (codes or names).")
@click.option("--ignore", multiple=True, help="Skip these rules (codes or names).")
@click.option(
    "--fail-on",
    type=click.Choice(SEVERITIES),
    default=None,
    help="Lowest severity that fails the run (default from config: error).",
)
@click.option("--no-suggestions", is_flag=True, help="Hide refactor suggestions.")
@click.option("--debug", is_flag=True, help="Enable debug output.")
def check(
    paths: tuple[Path, ...],
    project: Path | None,
    config: Path | None,
    output_format: str,
    select: tuple[str, ...],
    ignore: tuple[str, ...],
    fail_on: str | None,
    no_suggestions: bool,
    debug: bool,
) -> None:
    """Check Python files for setter-based and per-call state.

    PATHS are files or directories. Defaults to the configured paths.
    """
    from stateguard.analysis.model import Severity
    from stateguard.config import load_config, resolve_paths
    from stateguard.logger import setup_logging
    from stateguard.runner import check_paths, exit_code, format_results

    setup_logging(debug)
    project_root = project or Path.cwd()

    try:
        cfg = load_config(config_path=config, project_root=project_root)
        updates: dict = {}
        if select:
            updates["select"] = _split_rules(select)
        if ignore:
            updates["ignore"] = cfg.ignore + _split_rules(ignore)
        if fail_on:
            updates["fail_on"] = Severity(fail_on)
        cfg = resolve_paths(cfg.model_copy(update=updates), project_root)

        targets = list(paths) or [Path(p) for p in cfg.paths]
        report = check_paths(targets, cfg)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1)

    code = exit_code(report, cfg.fail_on)

    if output_format == "json":
        click.echo(report.model_dump_json(indent=2))
        raise SystemExit(code)

    output = escape(format_results(report, show_suggestions=not no_suggestions))
    if code:
        console.print(Panel(output, title="[red]Stateful services found[/red]", border_style="red"))
    else:
        console.print(Panel(output, title="[green]Services are stateless[/green]", border_style="green"))
    raise SystemExit(code)


@cli.command()
@click.argument("rule")
def explain(rule: str) -> None:
    """Explain a rule.

    RULE is a rule code (SG001) or name (setter-state).
    """
    from stateguard.analysis.rules import RULES, get_rule

    found = get_rule(rule)
    if found is None:
        known = ", ".join(f"{r.code} ({r.name})" for r in RULES.values())
        console.print(f"[red]Unknown rule:[/red] {escape(rule)}\n[dim]Known rules: {known}[/dim]")
        raise SystemExit(1)

    body = f"{escape(found.summary)}\n\n{escape(found.explanation)}\n\n[dim]Default severity: {found.severity.value}[/dim]"
    console.print(Panel(body, title=f"{found.code} {found.name}"))


@cli.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project root directory. Defaults to current directory.",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to stateguard.yaml config file.",
)
@click.option("--debug", is_flag=True, help="Enable debug output.")
def probe(scenario: Path, project: Path | None, config: Path | None, debug: bool) -> None:
    """Call a service and report any state the calls leave behind.

    SCENARIO is a YAML file naming a target class and the calls to make.
    """
    from stateguard.config import load_config
    from stateguard.diagnostics import ConstructionError, ResolutionError
    from stateguard.logger import setup_logging
    from stateguard.probe import ServiceResolver, format_probe, load_scenario, run_probe

    project_root = project or Path.cwd()

    try:
        cfg = load_config(config_path=config, project_root=project_root)
        if debug:
            cfg.probe.debug_mode = True
        setup_logging(cfg.probe.debug_mode)

        plan = load_scenario(scenario)
        resolver = ServiceResolver(project_root=project_root, config=cfg.probe)
        report = run_probe(plan, resolver)
    except (ValueError, ResolutionError, ConstructionError) as e:
        console.print(f"[red]Error loading probe:[/red] {escape(str(e))}")
        raise SystemExit(1)

    console.print(f"[dim]Probing {plan.target} from {scenario}[/dim]\n")
    output = escape(format_probe(report))
    if report.stateless:
        console.print(Panel(output, title="[green]No state changes[/green]", border_style="green"))
    else:
        console.print(Panel(output, title="[red]State changed[/red]", border_style="red"))
        raise SystemExit(1)


@cli.command()
def init() -> None:
    """Initialize stateguard in the current directory.

    Creates:
    - probes/factories/
    - probes/scenarios/
    - stateguard.yaml
    """
    project_root = Path.cwd()

    dirs = [
        project_root / "probes" / "factories",
        project_root / "probes" / "scenarios",
    ]

    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)
        console.print(f"[green]✓[/green] Created {d.relative_to(project_root)}/")

    config_file = project_root / "stateguard.yaml"
    if not config_file.exists():
        config_file.write_text(
            """\
# stateguard configuration
version: "0.1"

# Files and directories checked by 'stateguard check' with no arguments
paths:
  - src

# fnmatch patterns matched against each path component
# exclude: [".venv", "__pycache__", "build", "dist"]

# Run only some rules, or skip some (codes or names)
# select: [SG001]
# ignore: [fluent-setter]

# Lowest severity that fails the run: error | warning | info
# fail_on: error

# Per-rule switches
# rules:
#   mutable-state:
#     severity: error

analysis:
  # Method-name prefixes that mark a setter
  # setter_prefixes: ["set"]

  # Class names (fnmatch) to skip
  # ignore_classes: ["*Builder"]

probe:
  # Paths to add to Python's sys.path for module resolution
  # source_paths:
  #   - "./src"

  # Directory containing factory functions (default: probes/factories)
  # factories: "./probes/factories"

  # Default timeout for each probed call
  # timeout_ms: 1000
"""
        )
        console.print(f"[green]✓[/green] Created {config_file.name}")
    else:
        console.print(f"[yellow]-[/yellow] {config_file.name} already exists")

    console.print("\n[dim]stateguard initialized. Run 'stateguard check' to scan src/[/dim]")


@cli.command()
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project root directory. Defaults to current directory.",
)
def config(project: Path | None) -> None:
    """Show the current configuration."""
    from stateguard.config import load_config

    project_root = project or Path.cwd()
    try:
        cfg = load_config(project_root=project_root)
    except ValueError as e:
        console.print(f"[red]Invalid config:[/red] {escape(str(e))}")
        raise SystemExit(1)

    console.print(Panel(escape(cfg.model_dump_json(indent=2)), title="stateguard config"))


if __name__ == "__main__":
    cli()
