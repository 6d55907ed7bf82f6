import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from noderun._errors import NodeRunError
from noderun._eval_engine import run_graph
from noderun._gizmos import IgnoreGizmos, RunGizmosOut
from noderun._io import GraphFileError, dump_parameters_to_toml, load_graph_from_toml, load_parameters_from_toml
from noderun._model import Graph
from noderun._operations import OperationRegistry, load_registry
from noderun._params import ExternalParameter, ExternalParameterValues

from .config import ConfigError, NoderunConfig, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Noderun CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]✗ {escape(message)}[/red]")
    return typer.Exit(code=1)


def _load_config() -> NoderunConfig:
    try:
        return get_config()
    except ConfigError as e:
        raise _fail(str(e)) from e


def _load_graph(graph_path: Path | None, config: NoderunConfig) -> Graph:
    graph_path = graph_path or config.graph
    if graph_path is None:
        msg = "No graph file given and no [tool.noderun].graph configured"
        raise _fail(msg)
    err_console.print(f"[cyan]Loading graph from:[/cyan] {graph_path}")
    try:
        return load_graph_from_toml(graph_path)
    except GraphFileError as e:
        raise _fail(str(e)) from e


def _load_params(params_path: Path | None, config: NoderunConfig, graph: Graph) -> ExternalParameterValues:
    params_path = params_path or config.params
    if params_path is None:
        return ExternalParameterValues()
    err_console.print(f"[cyan]Loading parameters from:[/cyan] {params_path}")
    try:
        return load_parameters_from_toml(params_path, graph)
    except GraphFileError as e:
        raise _fail(str(e)) from e


def _load_operations(ops_path: str | None, config: NoderunConfig) -> OperationRegistry:
    ops_path = ops_path or config.operations
    if ops_path is None:
        msg = "No operation registry given and no [tool.noderun].operations configured"
        raise _fail(msg)

    # Registries usually live next to the project, not in an installed package
    extra_sys_path = str(config.project_root or Path.cwd())
    if extra_sys_path not in sys.path:
        sys.path.insert(0, extra_sys_path)

    err_console.print(f"[cyan]Loading operations from:[/cyan] {ops_path}")
    try:
        return load_registry(ops_path)
    except (ImportError, AttributeError, ValueError, TypeError) as e:
        logger.debug("Could not load registry", exc_info=True)
        raise _fail(f"Could not load operation registry '{ops_path}': {e}") from e


@app.command()
def run(
    graph_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the graph TOML file"),
    ] = None,
    *,
    target: Annotated[
        str,
        typer.Option("-t", "--target", help="Id of the node to evaluate"),
    ],
    ops: Annotated[
        str | None,
        typer.Option("--ops", help="Operation registry (e.g., mypkg.ops:registry)"),
    ] = None,
    params: Annotated[
        Path | None,
        typer.Option("-p", "--params", help="Path to the parameter TOML file"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Write updated parameter values to this TOML file"),
    ] = None,
    gizmos: Annotated[
        bool,
        typer.Option("--gizmos", help="Run the target's post_gizmo hook and show the gizmos"),
    ] = False,
) -> None:
    """Evaluate a target node and show its result."""
    err_console.print()
    config = _load_config()
    graph = _load_graph(graph_path, config)
    registry = _load_operations(ops, config)
    values = _load_params(params, config, graph)
    err_console.print()

    err_console.print(f"[cyan]Evaluating[/cyan] [bold]{escape(target)}[/bold][cyan]...[/cyan]")
    try:
        result = run_graph(graph, target, values, registry, RunGizmosOut() if gizmos else IgnoreGizmos())
    except NodeRunError as e:
        logger.debug("Evaluation failed", exc_info=True)
        raise _fail(str(e)) from e
    err_console.print()

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row(
        "Result",
        escape(repr(result.renderable.value)) if result.renderable is not None else "[dim](no return value)[/dim]",
    )
    if result.updated_gizmos is not None:
        table.add_row("Gizmos", escape(repr(result.updated_gizmos)))
    out_console.print(Panel(table, title=f"[bold]{escape(target)}[/bold]", border_style="cyan"))

    output = output or config.output
    if output is not None:
        err_console.print(f"[cyan]Exporting parameters to:[/cyan] {output}")
        try:
            dump_parameters_to_toml(result.updated_values, output)
        except TypeError as e:
            raise _fail(f"Cannot export parameters to {output}: {e}") from e

    err_console.print()
    err_console.print("[green]✓ Evaluation complete[/green]")


@app.command()
def deps(
    graph_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the graph TOML file"),
    ] = None,
    *,
    target: Annotated[
        str,
        typer.Option("-t", "--target", help="Id of the node to inspect"),
    ],
    params: Annotated[
        Path | None,
        typer.Option("-p", "--params", help="Path to the parameter TOML file"),
    ] = None,
) -> None:
    """Show the nodes a target needs and whether their parameters are set."""
    config = _load_config()
    graph = _load_graph(graph_path, config)
    values = _load_params(params, config, graph)

    if target not in graph:
        raise _fail(f"Node '{target}' is not part of the graph")

    ancestors = graph.ancestors(target)
    needed = [node_id for node_id in graph.nodes if node_id in ancestors or node_id == target]

    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Node")
    table.add_column("Operation", style="dim")
    table.add_column("External parameters")

    missing = 0
    for node_id in needed:
        cells: list[str] = []
        for _, param in graph.external_parameters(node_id):
            if ExternalParameter(node_id, param.name) in values:
                cells.append(f"[green]{escape(param.name)}[/green]")
            else:
                missing += 1
                cells.append(f"[red]{escape(param.name)} (missing)[/red]")
        table.add_row(escape(node_id), escape(graph.nodes[node_id].op_name), ", ".join(cells))

    out_console.print(Panel(table, title=f"[bold]Dependencies of {escape(target)}[/bold]", border_style="cyan"))

    if missing:
        err_console.print(f"[yellow]⚠ {missing} external parameter(s) have no value[/yellow]")


@app.command()
def check(
    graph_path: Annotated[
        Path | None,
        typer.Argument(help="Path to the graph TOML file"),
    ] = None,
    *,
    ops: Annotated[
        str | None,
        typer.Option("--ops", help="Operation registry (e.g., mypkg.ops:registry)"),
    ] = None,
) -> None:
    """Check that a graph is well formed and all its operations are registered."""
    err_console.print()
    config = _load_config()
    graph = _load_graph(graph_path, config)
    registry = _load_operations(ops, config)
    err_console.print()

    problems = graph.validate()
    for node_id, node in graph.nodes.items():
        node_def = registry.node_def(node.op_name)
        if node_def is None:
            problems.append(f"Node '{node_id}' uses unknown operation '{node.op_name}'")
            continue
        if node_def.has_gizmo:
            problems.extend(
                f"Operation '{node.op_name}' has gizmos but no '{hook}' hook"
                for hook in ("pre_gizmo", "post_gizmo")
                if getattr(node_def, hook) is None
            )
    if problems:
        for problem in problems:
            err_console.print(f"  [red]•[/red] {escape(problem)}")
        err_console.print()
        raise _fail(f"{len(problems)} problem(s) found")

    err_console.print(f"[green]✓ {len(graph)} node(s) checked[/green]")


def main() -> None:
    app()
