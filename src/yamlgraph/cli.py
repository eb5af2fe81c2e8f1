"""CLI interface for yamlgraph using Typer framework."""

import json as jsonlib
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from yamlgraph import __description__, __version__
from yamlgraph.config import LogLevel, YamlGraphConfig, load_config
from yamlgraph.engine import ConversionEngine, NodeNotFoundError
from yamlgraph.models import GraphType
from yamlgraph.parser import DocumentLoader, YamlEditError, YamlPathError, YamlSyntaxError
from yamlgraph.registry import DomainNotFoundError, GraphTypeRegistry, create_registry
from yamlgraph.schemas import SEVERITY_ERROR, SchemaResolver

app = typer.Typer(
    name="yamlgraph",
    help=__description__,
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

LOG_LEVELS = {
    LogLevel.ERROR.value: logging.ERROR,
    LogLevel.WARN.value: logging.WARNING,
    LogLevel.INFO.value: logging.INFO,
    LogLevel.DEBUG.value: logging.DEBUG,
}

_verbose = False


def version_callback(value: bool) -> None:
    """Show version information and exit."""
    if value:
        console.print(f"yamlgraph version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-V", callback=version_callback, help="Show version and exit")
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """yamlgraph - Convert YAML graph documents into Mermaid diagrams."""
    global _verbose
    _verbose = verbose


def _setup_logging(config: YamlGraphConfig) -> None:
    level = logging.DEBUG if _verbose else LOG_LEVELS.get(config.logging.level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load(config_path: Optional[Path]) -> tuple[YamlGraphConfig, GraphTypeRegistry]:
    """Load configuration and the graph type registry, reporting load problems."""
    config = load_config(config_path)
    _setup_logging(config)
    registry, problems = create_registry(config)
    for problem in problems:
        console.print(f"[yellow]{problem}[/yellow]")
    return config, registry


def _resolve_graph_type(registry: GraphTypeRegistry, data, file: Path,
                        graph_type_id: Optional[str]) -> GraphType:
    if graph_type_id:
        graph_type = registry.get(graph_type_id)
        if graph_type is None:
            raise DomainNotFoundError(f"Graph type '{graph_type_id}' is not registered")
        return graph_type
    return registry.resolve_for_document(data, filename=str(file))


def _print_errors(errors) -> None:
    table = Table(title=f"Problems ({len(errors)} found)")
    table.add_column("Severity", style="white")
    table.add_column("Path", style="cyan")
    table.add_column("Location", style="dim")
    table.add_column("Message", style="white")
    for error in errors:
        color = "red" if error.severity == SEVERITY_ERROR else "yellow"
        table.add_row(
            f"[{color}]{error.severity.upper()}[/{color}]",
            error.path,
            str(error.source_range) if error.source_range else "",
            error.message,
        )
    console.print(table)


def _parse_value(raw: str):
    """Command-line values are YAML scalars ('true', '42'); anything unparsable stays text."""
    if not raw:
        return ""
    try:
        return yaml.load(raw, Loader=DocumentLoader)
    except yaml.YAMLError:
        return raw


@app.command()
def convert(
    file: Annotated[
        Path,
        typer.Argument(help="YAML graph document to convert")
    ],
    graph_type: Annotated[
        Optional[str],
        typer.Option("--graph-type", "-t", help="Graph type id (default: resolve from document or file name)")
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the diagram to this file instead of stdout")
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: mermaid, json (default: mermaid)")
    ] = "mermaid",
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .yamlgraph.json)")
    ] = None,
) -> None:
    """Convert a YAML document into diagram source."""
    valid_formats = ["mermaid", "json"]
    if format not in valid_formats:
        console.print(f"[red]Error:[/red] Invalid format '{format}'. Must be one of: {', '.join(valid_formats)}")
        raise typer.Exit(1)

    try:
        yamlgraph_config, registry = _load(config)
        engine = ConversionEngine(config=yamlgraph_config)
        parsed = engine.parser.parse(file.read_text(encoding="utf-8"))
        resolved = _resolve_graph_type(registry, parsed.data, file, graph_type)
        result = engine.convert(parsed, resolved)
    except (OSError, ValueError, DomainNotFoundError) as e:
        # YamlSyntaxError and config errors are ValueErrors
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    text = jsonlib.dumps(result.to_dict(), indent=2) if format == "json" else result.diagram_text
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Wrote[/green] {output} ({resolved.version_key})")
    else:
        typer.echo(text)

    if result.errors and format != "json":
        _print_errors(result.errors)


@app.command()
def validate(
    file: Annotated[
        Path,
        typer.Argument(help="YAML graph document to validate")
    ],
    graph_type: Annotated[
        Optional[str],
        typer.Option("--graph-type", "-t", help="Graph type id (default: resolve from document or file name)")
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table, json (default: table)")
    ] = "table",
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .yamlgraph.json)")
    ] = None,
) -> None:
    """Validate a YAML document against its graph type schema."""
    try:
        yamlgraph_config, registry = _load(config)
        engine = ConversionEngine(config=yamlgraph_config)
        text = file.read_text(encoding="utf-8")
        try:
            parsed = engine.parser.parse(text)
            resolved = _resolve_graph_type(registry, parsed.data, file, graph_type)
        except YamlSyntaxError as e:
            console.print(f"[red]Invalid YAML:[/red] {e}")
            raise typer.Exit(1)
        result = engine.convert(parsed, resolved)
    except (OSError, ValueError, DomainNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if format == "json":
        typer.echo(jsonlib.dumps({
            "graphType": resolved.version_key,
            "valid": not result.has_errors,
            "errors": [error.to_dict() for error in result.errors],
        }, indent=2))
    elif result.errors:
        _print_errors(result.errors)
    else:
        console.print(f"[green]✓ {file.name} is valid ({resolved.version_key})[/green]")

    if result.has_errors:
        raise typer.Exit(1)


@app.command()
def types(
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table, json (default: table)")
    ] = "table",
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .yamlgraph.json)")
    ] = None,
) -> None:
    """List registered graph types."""
    try:
        _, registry = _load(config)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    graph_types = registry.list()
    if format == "json":
        typer.echo(jsonlib.dumps([
            {
                "id": gt.id,
                "version": gt.version,
                "mermaidType": gt.mapping.mermaid_type,
                "filePatterns": gt.file_patterns,
            }
            for gt in graph_types
        ], indent=2))
        return

    table = Table(title=f"Graph types ({len(graph_types)} found)")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Version", justify="right")
    table.add_column("Diagram", style="magenta")
    table.add_column("File patterns", style="dim")
    for gt in graph_types:
        table.add_row(gt.id, str(gt.version), gt.mapping.mermaid_type, ", ".join(gt.file_patterns))
    console.print(table)

    domains = registry.list_domain_ids()
    if domains:
        console.print(f"[blue]Domains:[/blue] {', '.join(domains)}")


@app.command()
def fields(
    graph_type: Annotated[
        str,
        typer.Argument(help="Graph type id")
    ],
    version: Annotated[
        Optional[int],
        typer.Option("--version", help="Graph type version (default: highest)")
    ] = None,
    section: Annotated[
        Optional[str],
        typer.Option("--section", "-s", help="Schema section (default: the node collection)")
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: table, json (default: table)")
    ] = "table",
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .yamlgraph.json)")
    ] = None,
) -> None:
    """Show the editable fields derived from a graph type schema."""
    try:
        _, registry = _load(config)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    resolved = registry.get(graph_type, version)
    if resolved is None:
        console.print(f"[red]Error:[/red] Graph type '{graph_type}' is not registered")
        raise typer.Exit(1)

    resolver = SchemaResolver(resolved.json_schema)
    section = section or resolved.mapping.node_shapes.source_path
    schema = resolver.extract_node_sub_schema(section)
    if schema is None:
        console.print(f"[red]Error:[/red] Section '{section}' not found in {resolved.version_key} schema")
        raise typer.Exit(1)
    field_schemas = resolver.build_field_schemas(schema)

    if format == "json":
        typer.echo(jsonlib.dumps([f.to_dict() for f in field_schemas], indent=2))
        return

    table = Table(title=f"{resolved.version_key} {section} fields")
    table.add_column("Path", style="cyan")
    table.add_column("Label")
    table.add_column("Type", style="magenta")
    table.add_column("Required", justify="center")
    table.add_column("Details", style="dim")
    for field in field_schemas:
        details = []
        if field.options:
            details.append(" | ".join(str(o) for o in field.options))
        if field.multiline:
            details.append("multiline")
        if field.description:
            details.append(field.description)
        table.add_row(field.path, field.label, str(field.field_type),
                      "✓" if field.required else "", "; ".join(details))
    console.print(table)


@app.command()
def edit(
    file: Annotated[
        Path,
        typer.Argument(help="YAML graph document to edit")
    ],
    node_id: Annotated[
        str,
        typer.Argument(help="Node id (__meta__ for document metadata)")
    ],
    assignments: Annotated[
        list[str],
        typer.Option("--set", "-s", help="Field assignment path=value (value parsed as YAML scalar)")
    ],
    graph_type: Annotated[
        Optional[str],
        typer.Option("--graph-type", "-t", help="Graph type id (default: resolve from document or file name)")
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Print the edited document instead of writing it")
    ] = False,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file path (default: search for .yamlgraph.json)")
    ] = None,
) -> None:
    """Edit node fields in place, preserving comments and formatting."""
    edits = []
    for assignment in assignments:
        if "=" not in assignment:
            console.print(f"[red]Error:[/red] Invalid assignment '{assignment}' (expected path=value)")
            raise typer.Exit(1)
        path, raw = assignment.split("=", 1)
        edits.append({"path": path.strip(), "value": _parse_value(raw)})

    try:
        yamlgraph_config, registry = _load(config)
        engine = ConversionEngine(config=yamlgraph_config)
        parsed = engine.parser.parse(file.read_text(encoding="utf-8"))
        resolved = _resolve_graph_type(registry, parsed.data, file, graph_type)
        updated = engine.apply_edit(parsed, node_id, edits, resolved)
    except (NodeNotFoundError, YamlPathError, YamlEditError) as e:
        console.print(f"[red]Edit failed:[/red] {e}")
        raise typer.Exit(1)
    except (OSError, ValueError, DomainNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    text = engine.parser.serialize(updated)
    if dry_run:
        typer.echo(text, nl=False)
        return
    file.write_text(text, encoding="utf-8")
    console.print(f"[green]Updated[/green] {node_id} in {file} ({len(edits)} edit(s))")


if __name__ == "__main__":
    app()
