"""
DELILA reader CLI.

Commands:
- info: Header metadata and footer summary
- validate: Full decode with footer cross-checks (exit 1 when invalid)
- dump: Print decoded events
- stats: Per module/channel statistics
- list: Validation status of every file in a directory
- config: Configuration management
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .. import __version__
from ..config import ReaderConfig, load_config, generate_default_config
from ..core.errors import DecodeError
from ..core.report import DecodeReport
from ..formats.reader import DelilaReader
from ..schema.event_flags import EventFlags
from ..sinks import ListSink, SampleCapSink, StatisticsSink


app = typer.Typer(
    name="delila-reader",
    help="Decode DELILA event-stream files",
    add_completion=False,
)
console = Console()

_state = {'verbose': False}


class OutputFormat(str, Enum):
    json = "json"
    table = "table"


def _setup_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(config_path: Optional[Path]) -> ReaderConfig:
    try:
        cfg = load_config(config_path)
    except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {e}")
        raise typer.Exit(1)

    errors = cfg.validate()
    if errors:
        console.print("[red]Invalid configuration:[/]")
        for e in errors:
            console.print(f"  - {e}")
        raise typer.Exit(1)

    _setup_logging('DEBUG' if _state['verbose'] else cfg.logging.level)
    return cfg


def _open(path: Path, cfg: ReaderConfig):
    try:
        return DelilaReader.open(path, cfg)
    except DecodeError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)


def _print_diagnostics(report: DecodeReport) -> None:
    for error in report.errors:
        console.print(f"[red]{error['code']}[/] {error['message']}")
    for warning in report.warnings:
        console.print(f"[yellow]{warning['code']}[/] {warning['message']}")


def _dict_table(title: str, data: dict) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    return table


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
):
    """Decode DELILA event-stream files."""
    _state['verbose'] = verbose


# === INFO COMMAND ===

@app.command()
def info(
    data_file: Path = typer.Argument(..., help="DELILA file path", exists=True),
    format: OutputFormat = typer.Option(OutputFormat.table, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Show header metadata and footer."""
    cfg = _load(config_path)

    with _open(data_file, cfg) as handle:
        try:
            footer = DelilaReader.footer(handle)
        except DecodeError as e:
            console.print(f"[red]Error:[/] {e}")
            raise typer.Exit(1)
        report = handle.report

        if format == OutputFormat.json:
            typer.echo(json.dumps({
                'file': str(data_file),
                'file_size': handle.file_size,
                'header': report.header,
                'footer': report.footer,
                'warnings': report.warnings,
            }, indent=2))
            return

        console.print(f"[bold blue]{data_file}[/] ({handle.file_size:,} bytes)")
        console.print(_dict_table("Header", report.header or {}))
        if footer is not None:
            console.print(_dict_table("Footer", footer.to_dict()))
        else:
            console.print("[yellow]No footer[/]")
        _print_diagnostics(report)


# === VALIDATE COMMAND ===

@app.command()
def validate(
    data_file: Path = typer.Argument(..., help="DELILA file path", exists=True),
    format: OutputFormat = typer.Option(OutputFormat.table, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Decode the whole file and check it against its footer."""
    cfg = _load(config_path)
    result = DelilaReader.validate(data_file, cfg)

    if format == OutputFormat.json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        table = Table(title="Validation")
        table.add_column("Check")
        table.add_column("Result", justify="right")
        table.add_row("Blocks decoded", f"{result.recoverable_blocks:,}")
        table.add_row("Events decoded", f"{result.recoverable_events:,}")
        if result.footer is not None:
            table.add_row("Footer events", f"{result.footer['total_events']:,}")
            table.add_row("Write complete", str(result.footer['write_complete']))
        checksum = {True: "ok", False: "mismatch", None: "not checked"}[result.checksum_ok]
        table.add_row("Checksum", checksum)
        console.print(table)

        for e in result.errors:
            console.print(f"  [red]✗[/] {e}")
        for w in result.warnings:
            console.print(f"  [yellow]⚠[/] {w}")

        if result.is_valid:
            console.print("[bold green]VALID[/]")
        elif result.needs_recovery:
            console.print("[bold yellow]INVALID (data recoverable)[/]")
        else:
            console.print("[bold red]INVALID[/]")

    if not result.is_valid:
        raise typer.Exit(1)


# === DUMP COMMAND ===

@app.command()
def dump(
    data_file: Path = typer.Argument(..., help="DELILA file path", exists=True),
    max_events: Optional[int] = typer.Option(None, "-n", "--max-events", help="Stop after N events"),
    waveform: bool = typer.Option(False, "--waveform/--no-waveform", help="Decode waveforms"),
    format: OutputFormat = typer.Option(OutputFormat.table, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Print decoded events."""
    cfg = _load(config_path)
    cfg.decode.include_waveform = waveform

    collected = ListSink()
    sink = collected
    if waveform:
        sink = SampleCapSink(collected, cfg.decode.max_waveform_samples)

    with _open(data_file, cfg) as handle:
        report = DelilaReader.drain(handle, sink, max_events)
    events = collected.events

    if format == OutputFormat.json:
        typer.echo(json.dumps([e.to_dict() for e in events], indent=2))
    else:
        table = Table(title=f"{len(events):,} events")
        for column in ("src", "mod", "ch", "energy", "e_short", "timestamp_ns", "flags"):
            table.add_column(column, justify="right")
        if waveform:
            table.add_column("samples", justify="right")

        for e in events:
            row = [
                str(e.source_id),
                str(e.module),
                str(e.channel),
                str(e.energy),
                str(e.energy_short),
                f"{e.timestamp_ns:.3f}",
                ','.join(EventFlags.names(e.flags)) or '-',
            ]
            if waveform:
                row.append(str(e.waveform.n_samples) if e.waveform else '-')
            table.add_row(*row)
        console.print(table)

    if report.failed:
        console.print(f"[red]Decode stopped:[/] {report.failure['message']}")
        raise typer.Exit(1)


# === STATS COMMAND ===

@app.command()
def stats(
    data_file: Path = typer.Argument(..., help="DELILA file path", exists=True),
    format: OutputFormat = typer.Option(OutputFormat.table, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """Per module/channel statistics."""
    cfg = _load(config_path)
    cfg.decode.include_waveform = False

    sink = StatisticsSink()
    with _open(data_file, cfg) as handle:
        report = DelilaReader.drain(handle, sink)

    summary = sink.stats
    if format == OutputFormat.json:
        data = summary.to_dict()
        data['status'] = report.status.value
        typer.echo(json.dumps(data, indent=2))
    else:
        table = Table(title="Channels")
        table.add_column("mod:ch")
        table.add_column("Events", justify="right")
        table.add_column("E min", justify="right")
        table.add_column("E max", justify="right")
        table.add_column("E mean", justify="right")
        table.add_column("Pileup", justify="right")
        for (module, channel), ch in sorted(summary.channels.items()):
            table.add_row(
                f"{module}:{channel}",
                f"{ch.count:,}",
                str(ch.energy_min),
                str(ch.energy_max),
                f"{ch.energy_mean:.1f}",
                f"{ch.pileup:,}",
            )
        console.print(table)
        console.print(f"Total: {summary.total_events:,} events, {summary.duration_ns:.0f} ns span")
        _print_diagnostics(report)

    if report.failed:
        raise typer.Exit(1)


# === LIST COMMAND ===

@app.command("list")
def list_cmd(
    directory: Path = typer.Argument(..., help="Directory to scan", exists=True, file_okay=False),
    recursive: bool = typer.Option(False, "-r", "--recursive", help="Include subdirectories"),
    format: OutputFormat = typer.Option(OutputFormat.table, "-f", "--format"),
    config_path: Optional[Path] = typer.Option(None, "-c", "--config"),
):
    """List .delila files with their validation status."""
    cfg = _load(config_path)

    pattern = "**/*.delila" if recursive else "*.delila"
    files = sorted(p for p in directory.glob(pattern) if p.is_file())

    rows = []
    for path in files:
        result = DelilaReader.validate(path, cfg)
        if result.is_valid:
            status = "valid"
            events = result.footer['total_events']
        elif result.needs_recovery:
            status = "needs_recovery"
            events = result.recoverable_events
        else:
            status = "corrupted"
            events = 0
        rows.append({
            'file': str(path.relative_to(directory)),
            'size': path.stat().st_size,
            'events': events,
            'status': status,
        })

    if format == OutputFormat.json:
        typer.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        console.print(f"No .delila files found in {directory}")
        return

    styles = {
        'valid': "[green]✓ Valid[/]",
        'needs_recovery': "[yellow]⚠ Needs recovery[/]",
        'corrupted': "[red]✗ Corrupted[/]",
    }
    table = Table(title=str(directory))
    table.add_column("File")
    table.add_column("Events", justify="right")
    table.add_column("Size (MB)", justify="right")
    table.add_column("Status")
    for row in rows:
        table.add_row(
            row['file'],
            f"{row['events']:,}",
            f"{row['size'] / 1e6:.2f}",
            styles[row['status']],
        )
    console.print(table)

    counts = {s: sum(1 for r in rows if r['status'] == s) for s in styles}
    console.print(
        f"Total: {len(rows)} files, {sum(r['events'] for r in rows):,} events "
        f"({counts['valid']} valid, {counts['needs_recovery']} need recovery, "
        f"{counts['corrupted']} corrupted)"
    )


# === CONFIG COMMAND ===

@app.command("config")
def config_cmd(
    action: str = typer.Argument(..., help="Action: init|validate|dump"),
    path: Optional[Path] = typer.Argument(None, help="Config file path"),
):
    """Configuration management."""
    if action == "init":
        typer.echo(generate_default_config())

    elif action == "validate":
        if not path:
            console.print("[red]Path required for validate[/]")
            raise typer.Exit(1)
        try:
            cfg = ReaderConfig.load(path)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Error:[/] {e}")
            raise typer.Exit(1)
        errors = cfg.validate()
        if errors:
            console.print("[red]Invalid configuration:[/]")
            for e in errors:
                console.print(f"  - {e}")
            raise typer.Exit(1)
        console.print(f"[green]Valid:[/] {path}")

    elif action == "dump":
        cfg = ReaderConfig.load(path) if path else load_config()
        typer.echo(cfg.to_yaml())

    else:
        console.print(f"[red]Unknown action:[/] {action}")
        console.print("Valid actions: init, validate, dump")
        raise typer.Exit(1)


# === VERSION COMMAND ===

@app.command()
def version():
    """Show version information."""
    console.print(f"[bold blue]delila-reader v{__version__}[/]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
