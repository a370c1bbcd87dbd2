#!/usr/bin/env python3
"""taskgraph CLI - query and edit a project's task dependency graph."""
from __future__ import annotations
import functools
import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import click
from pydantic import ValidationError
from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import editing
from .core import load_config, load_project, save_project
from .graph import DependencyError, DependencyGraph
from .logging import configure_logging, get_console
from .models import Project, Task
from .visualizer import GraphVisualizer

console = get_console()


class AliasedGroup(click.Group):
    """Support command aliases."""

    def get_command(self, ctx, cmd_name):
        aliases = {
            "s": "status",
            "b": "blockers",
            "d": "dependents",
            "o": "order",
            "cp": "critical-path",
            "v": "validate",
        }
        cmd_name = aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, cmd_name)


@click.group(cls=AliasedGroup, invoke_without_command=True)
@click.option("--project", "-p", "project_file", type=click.Path(dir_okay=False), default=None,
              help="Project snapshot (default: project_file from .taskgraphrc)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None, help="Log level")
@click.option("--log-file", type=click.Path(), default=None, help="Log file path")
@click.version_option(version="1.0.0", prog_name="taskgraph")
@click.pass_context
def cli(ctx, project_file: Optional[str], output_json: bool, log_level: Optional[str], log_file: Optional[str]):
    """taskgraph - dependency graph engine for project tasks.

    \b
    Quick start:
      taskgraph status api          # Can 'api' start? What blocks it?
      taskgraph validate api db     # Would 'api depends on db' be allowed?
      taskgraph set-deps api db     # Validate, then write the snapshot
      taskgraph order               # Dependencies before dependents

    \b
    Aliases:
      s → status, b → blockers, d → dependents, o → order,
      cp → critical-path, v → validate
    """
    config = load_config(Path.cwd())
    log_path = log_file or config.log_file
    configure_logging(
        level=log_level or config.log_level,
        log_file=Path(log_path) if log_path else None,
        json_format=config.json_logs,
    )

    ctx.ensure_object(dict)
    ctx.obj["project_path"] = Path(project_file or config.project_file)
    ctx.obj["json"] = output_json or config.output_format == "json"
    ctx.obj["plain"] = config.output_format == "plain"

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def reports_errors(f: Callable) -> Callable:
    """Print engine and snapshot errors in red and exit 1."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (DependencyError, FileNotFoundError, ValidationError) as e:
            console.print(f"[red]Error: {escape(str(e))}")
            click.get_current_context().exit(1)

    return wrapper


def _load(ctx) -> Project:
    return load_project(ctx.obj["project_path"])


def _save(ctx, project: Project) -> None:
    save_project(project, ctx.obj["project_path"])


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _task_dicts(tasks: list[Task]) -> list[dict]:
    return [t.model_dump(by_alias=True) for t in tasks]


def _warn_missing(graph: DependencyGraph, task_id: str) -> None:
    if task_id not in graph:
        console.print(f"[yellow]Task not found: {escape(task_id)}")


def _status_label(graph: DependencyGraph, task: Task) -> str:
    if task.completed:
        return "[green]done"
    if not graph.can_start(task.id):
        return "[red]blocked"
    return "[cyan]ready"


def _print_tasks(ctx, graph: DependencyGraph, title: str, tasks: list[Task], numbered: bool = False) -> None:
    if ctx.obj["json"]:
        _echo_json(_task_dicts(tasks))
        return

    if ctx.obj["plain"]:
        for task in tasks:
            click.echo(task.id)
        return

    if not tasks:
        console.print(f"[dim]{escape(title)}: none")
        return

    table = Table(title=title, box=box.ROUNDED)
    if numbered:
        table.add_column("#", justify="right")
    table.add_column("Task", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Depends on")

    for i, task in enumerate(tasks, 1):
        row = [
            escape(task.id),
            escape(task.name),
            _status_label(graph, task),
            escape(", ".join(task.dependencies)),
        ]
        if numbered:
            row.insert(0, str(i))
        table.add_row(*row)

    console.print(table)


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def status(ctx, task_id: str):
    """Show whether a task can start, what blocks it, and what it blocks."""
    graph = DependencyGraph(_load(ctx))
    result = graph.dependency_status(task_id)

    if ctx.obj["json"]:
        _echo_json(result.model_dump(by_alias=True))
        return

    _warn_missing(graph, task_id)
    blockers = ", ".join(t.label for t in result.blocking_tasks) or "-"
    dependents = ", ".join(t.label for t in result.dependent_tasks) or "-"
    verdict = "[green]yes" if result.can_start else "[red]no"
    console.print(Panel(
        f"Can start: {verdict}[/]\n"
        f"Blocked by: {escape(blockers)}\n"
        f"Blocks: {escape(dependents)}",
        title=escape(task_id),
        border_style="cyan",
    ))


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def blockers(ctx, task_id: str):
    """List incomplete dependencies of a task, in declared order."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, f"Blocking {task_id}", graph.get_blocking_tasks(task_id))


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def dependents(ctx, task_id: str):
    """List tasks that depend on a task."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, f"Depending on {task_id}", graph.get_dependent_tasks(task_id))


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def unblocks(ctx, task_id: str):
    """Preview tasks that become startable once a task is completed."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, f"Unblocked by {task_id}", graph.get_tasks_unblocked_by(task_id))


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def depth(ctx, task_id: str):
    """Show the length of the longest dependency chain ending at a task."""
    graph = DependencyGraph(_load(ctx))
    value = graph.dependency_depth(task_id)
    if ctx.obj["json"]:
        _echo_json({"task_id": task_id, "depth": value})
    else:
        click.echo(value)


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def chain(ctx, task_id: str):
    """List every task connected to a task through dependencies."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, f"Connected to {task_id}", graph.dependency_chain(task_id))


@cli.command()
@click.pass_context
@reports_errors
def order(ctx):
    """List tasks so that every task follows its dependencies."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, "Topological order", graph.topological_order(), numbered=True)


@cli.command("critical-path")
@click.pass_context
@reports_errors
def critical_path(ctx):
    """Show the longest dependency chain in the project."""
    graph = DependencyGraph(_load(ctx))
    _print_tasks(ctx, graph, "Critical path", graph.critical_path(), numbered=True)


@cli.command()
@click.pass_context
@reports_errors
def stats(ctx):
    """Show dependency statistics."""
    graph = DependencyGraph(_load(ctx))
    result = graph.stats()

    if ctx.obj["json"]:
        _echo_json(result.model_dump())
        return

    click.echo(GraphVisualizer(graph).render_summary())


@cli.command()
@click.pass_context
@reports_errors
def cycles(ctx):
    """Scan the whole graph for cycles (exit 1 if any)."""
    found = DependencyGraph(_load(ctx)).find_cycles()

    if ctx.obj["json"]:
        _echo_json(found)
    elif not found:
        console.print("[green]No cycles")
    else:
        for cycle in found:
            console.print(f"[red]{escape(' -> '.join(cycle))}")

    if found:
        ctx.exit(1)


@cli.command()
@click.pass_context
@reports_errors
def tree(ctx):
    """Render the dependency tree from root tasks down."""
    visualizer = GraphVisualizer(DependencyGraph(_load(ctx)))
    click.echo(visualizer.render_tree())


@cli.command()
@click.argument("task_id")
@click.argument("deps", nargs=-1)
@click.pass_context
@reports_errors
def validate(ctx, task_id: str, deps: tuple[str, ...]):
    """Check whether TASK_ID may depend on exactly DEPS (exit 1 if not).

    \b
    Examples:
      taskgraph validate deploy build test
      taskgraph validate deploy          # clearing all dependencies
    """
    result = DependencyGraph(_load(ctx)).validate_dependency_change(task_id, deps)

    if ctx.obj["json"]:
        _echo_json({
            "valid": result.valid,
            "task_id": result.task_id,
            "error": result.error.value if result.error else None,
            "unknown_ids": result.unknown_ids,
            "cycle": result.cycle,
            "message": result.message,
        })
    elif result.valid:
        console.print("[green]OK")
    else:
        console.print(f"[red]{escape(result.message)}")

    if not result.valid:
        ctx.exit(1)


@cli.command("set-deps")
@click.argument("task_id")
@click.argument("deps", nargs=-1)
@click.pass_context
@reports_errors
def set_deps(ctx, task_id: str, deps: tuple[str, ...]):
    """Replace a task's dependencies, then write the snapshot."""
    project = editing.set_dependencies(_load(ctx), task_id, deps)
    _save(ctx, project)
    console.print(f"[green]✓ {escape(task_id)} depends on: {escape(', '.join(deps)) or '-'}")


@cli.command()
@click.argument("task_id")
@click.option("--name", default="", help="Display name")
@click.option("--dep", "deps", multiple=True, help="Dependency id (repeatable)")
@click.pass_context
@reports_errors
def add(ctx, task_id: str, name: str, deps: tuple[str, ...]):
    """Add a task with optional dependencies."""
    project = editing.add_task(_load(ctx), Task(id=task_id, name=name, dependencies=list(deps)))
    _save(ctx, project)
    console.print(f"[green]✓ Added {escape(task_id)}")


@cli.command()
@click.argument("task_id")
@click.option("--undo", is_flag=True, help="Mark as not completed")
@click.pass_context
@reports_errors
def complete(ctx, task_id: str, undo: bool):
    """Mark a task completed and refresh blocked flags."""
    before = DependencyGraph(_load(ctx))
    unblocked = [] if undo else [t for t in before.get_tasks_unblocked_by(task_id) if not t.completed]

    project = editing.set_completed(before.project, task_id, not undo)
    _save(ctx, project)

    if ctx.obj["json"]:
        _echo_json({"task_id": task_id, "completed": not undo, "unblocked": _task_dicts(unblocked)})
        return

    console.print(f"[green]✓ {escape(task_id)} {'reopened' if undo else 'completed'}")
    for task in unblocked:
        console.print(f"  → now startable: {escape(task.label)}")


@cli.command()
@click.argument("task_id")
@click.pass_context
@reports_errors
def remove(ctx, task_id: str):
    """Delete a task and clear it from every other task's dependencies."""
    graph = DependencyGraph(_load(ctx))
    if task_id not in graph:
        console.print(f"[yellow]Task not found: {escape(task_id)}")
        return

    cleared = graph.get_dependent_tasks(task_id)
    _save(ctx, editing.remove_task(graph.project, task_id))

    console.print(f"[green]✓ Removed {escape(task_id)}")
    for task in cleared:
        console.print(f"  • cleared from {escape(task.label)}")


def main():
    """Entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
