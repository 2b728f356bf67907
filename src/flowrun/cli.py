"""flowrun CLI: work through a maintenance procedure from the terminal.

Installed as the ``flowrun`` console_script.
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from flowrun import __version__
from flowrun import log
from flowrun.completion import is_step_complete, step_progress
from flowrun.config import Config
from flowrun.errors import FlowrunError, ProcedureValidationError
from flowrun.layout import LAYOUT_MODES
from flowrun.notify import notify_finished
from flowrun.procedure.io import load_procedure
from flowrun.procedure.validate import validate, validate_and_report
from flowrun.store import JsonFileStore
from flowrun.technicians import SessionContext, load_directory
from flowrun.tracker import ServiceRun, load_session, save_session


class FlowrunGroup(click.Group):
    """Turn ``FlowrunError`` from any subcommand into an error line and exit 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except FlowrunError as exc:
            if isinstance(exc, ProcedureValidationError):
                log.error("Procedure is invalid:")
                for e in exc.errors:
                    log.error(f"  - {e}")
            else:
                log.error(str(exc))
            ctx.exit(1)


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

procedure_argument = click.argument(
    "procedure_file", type=click.Path(dir_okay=False, path_type=Path),
)


def _open_run(cfg: Config, procedure_file: Path) -> ServiceRun:
    """Load, validate and merge saved progress for *procedure_file*."""
    procedure = load_procedure(procedure_file)
    errors = validate(procedure, strict_ids=cfg.strict_ids)
    if errors:
        raise ProcedureValidationError(errors)

    directory = None
    if cfg.technicians_file:
        directory = load_directory(Path(cfg.technicians_file))

    store = JsonFileStore(cfg.store_path())
    run = ServiceRun(
        procedure,
        store,
        session=load_session(store),
        directory=directory,
        on_finished=lambda p: notify_finished(p.name or p.id),
        layout_mode=cfg.layout_mode,
    )
    run.load()
    return run


def _print_active(run: ServiceRun) -> None:
    if run.finished:
        log.success("All steps complete")
    elif run.active_step_ids:
        log.info(f"Active: {', '.join(run.active_step_ids)}")


# ── group ────────────────────────────────────────────────────────────


@click.group(cls=FlowrunGroup, context_settings=CONTEXT_SETTINGS)
@click.option("--store-dir", default="", help="Progress store directory (default: .flowrun)")
@click.option("--technicians", "technicians_file", default="", help="Technician roster (YAML/JSON)")
@click.option("--strict-ids", is_flag=True, help="Reject step ids without a major[.minor] ordinal")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.option("-q", "--quiet", is_flag=True, help="Only print warnings, errors and tables")
@click.version_option(__version__, prog_name="flowrun")
@click.pass_context
def main(
    ctx: click.Context,
    store_dir: str,
    technicians_file: str,
    strict_ids: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """flowrun: track a service run through its procedure.

    \b
    EXAMPLES:
      flowrun validate procedures/pm-4y.yaml
      flowrun start procedures/pm-4y.yaml --tech-a t-001 --tech-b t-002
      flowrun toggle procedures/pm-4y.yaml 2.1 2.1-1
      flowrun show procedures/pm-4y.yaml
      flowrun layout procedures/pm-4y.yaml --mode sequence-aligned
    """
    log.set_verbose(verbose)
    log.set_quiet(quiet)
    try:
        ctx.obj = Config(
            store_dir=store_dir,
            technicians_file=technicians_file,
            strict_ids=strict_ids,
            verbose=verbose,
        )
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


# ── subcommands ──────────────────────────────────────────────────────


@main.command("validate")
@procedure_argument
@click.pass_obj
def validate_cmd(cfg: Config, procedure_file: Path) -> None:
    """Check a procedure definition for structural problems."""
    procedure = load_procedure(procedure_file)
    if not validate_and_report(procedure, strict_ids=cfg.strict_ids):
        raise click.exceptions.Exit(1)
    log.success(
        f"{procedure.id}: {len(procedure.steps)} steps, {len(procedure.edges)} edges"
    )


@main.command()
@procedure_argument
@click.pass_obj
def show(cfg: Config, procedure_file: Path) -> None:
    """Show per-step progress of the current run."""
    run = _open_run(cfg, procedure_file)
    active = set(run.active_step_ids)

    table = Table(title=run.procedure.name or run.procedure.id)
    table.add_column("Step", style="cyan")
    table.add_column("Title")
    table.add_column("Tech")
    table.add_column("Checklist", justify="right")
    table.add_column("Status")

    for step in run.steps:
        done, total = step_progress(step)
        if is_step_complete(step):
            by = step.completed_by_initials or step.completed_by or ""
            status = f"[green]done[/green] {by}".rstrip()
        elif step.id in active:
            status = "[yellow]active[/yellow]"
        else:
            status = "[dim]pending[/dim]"
        table.add_row(step.id, step.title, step.technician, f"{done}/{total}", status)
    log.console.print(table)

    m = run.progress()
    state = "finished" if run.finished else "started" if run.started else "not started"
    log.console.print(
        f"Run {state}: {m.completed_steps}/{m.total_steps} steps, "
        f"{m.completed_tasks}/{m.total_tasks} tasks ({m.percent:.0f}%), "
        f"{m.total_actual_minutes} min logged"
    )


@main.command()
@procedure_argument
@click.option("--tech-a", default="", help="Technician id for role A")
@click.option("--tech-b", default="", help="Technician id for role B")
@click.pass_obj
def start(cfg: Config, procedure_file: Path, tech_a: str, tech_b: str) -> None:
    """Start the service run (opens the checklist)."""
    run = _open_run(cfg, procedure_file)
    if tech_a or tech_b:
        session = SessionContext(
            role_a=tech_a or run.session.role_a,
            role_b=tech_b or run.session.role_b,
        )
        for tech_id in filter(None, (session.role_a, session.role_b)):
            if run.directory is not None and tech_id not in run.directory:
                log.warn(f"Technician {tech_id} is not in the roster")
        save_session(run.store, session)
        run.session = session
    run.start()
    _print_active(run)


@main.command()
@procedure_argument
@click.argument("step_id")
@click.argument("task_id")
@click.pass_obj
def toggle(cfg: Config, procedure_file: Path, step_id: str, task_id: str) -> None:
    """Check or uncheck one task."""
    run = _open_run(cfg, procedure_file)
    before = run.get_step(step_id)
    result = run.toggle_task(step_id, task_id)
    step = run.get_step(step_id)
    task = step.get_task(task_id) if step else None
    if task is None or step is before:
        log.warn(f"No task {task_id} in step {step_id}; nothing changed")
        return
    mark = "checked" if task.completed else "unchecked"
    log.info(f"{step_id} / {task_id} {mark}")
    if result.step_just_completed or not task.completed:
        _print_active(run)


@main.command("time")
@procedure_argument
@click.argument("step_id")
@click.argument("task_id")
@click.argument("minutes", type=click.IntRange(min=0))
@click.pass_obj
def time_cmd(cfg: Config, procedure_file: Path, step_id: str, task_id: str, minutes: int) -> None:
    """Record the actual time spent on a task."""
    run = _open_run(cfg, procedure_file)
    run.set_task_time(step_id, task_id, minutes)
    log.success(f"{step_id} / {task_id}: {minutes} min")


@main.command()
@procedure_argument
@click.argument("step_id")
@click.argument("task_id")
@click.argument("text")
@click.pass_obj
def note(cfg: Config, procedure_file: Path, step_id: str, task_id: str, text: str) -> None:
    """Append a note to a task."""
    run = _open_run(cfg, procedure_file)
    event = run.add_note(step_id, task_id, text)
    log.success(f"Added note {event.id}")


@main.command("edit-note")
@procedure_argument
@click.argument("step_id")
@click.argument("task_id")
@click.argument("note_id")
@click.argument("text")
@click.pass_obj
def edit_note_cmd(
    cfg: Config, procedure_file: Path, step_id: str, task_id: str, note_id: str, text: str,
) -> None:
    """Add a new version of a note (earlier versions are kept)."""
    run = _open_run(cfg, procedure_file)
    event = run.edit_note(step_id, task_id, note_id, text)
    log.success(f"Note {event.id} is now at version {event.version}")


@main.command()
@procedure_argument
@click.argument("step_id")
@click.argument("technician_id", required=False, default="")
@click.pass_obj
def assign(cfg: Config, procedure_file: Path, step_id: str, technician_id: str) -> None:
    """Bind a technician to a step (omit TECHNICIAN_ID to clear)."""
    run = _open_run(cfg, procedure_file)
    step = run.assign_technician(step_id, technician_id or None)
    if step.assigned_technician_id:
        who = step.assigned_technician_initials or step.assigned_technician_id
        log.success(f"Step {step_id} assigned to {who}")
    else:
        log.success(f"Step {step_id} unassigned")


@main.command("layout")
@procedure_argument
@click.option("--mode", type=click.Choice(LAYOUT_MODES), default=None, help="Layout strategy (default: centered)")
@click.option("--grid-unit", type=click.IntRange(min=1), default=None, help="Grid unit in px")
@click.pass_obj
def layout_cmd(cfg: Config, procedure_file: Path, mode: str | None, grid_unit: int | None) -> None:
    """Recompute step positions and edges."""
    run = _open_run(cfg, procedure_file)
    result = run.relayout(mode or cfg.layout_mode, grid_unit or cfg.grid_unit or None)

    table = Table(title=f"Layout ({mode or cfg.layout_mode})")
    table.add_column("Step", style="cyan")
    table.add_column("x", justify="right")
    table.add_column("y", justify="right")
    for step_id, pos in result.positions.items():
        table.add_row(step_id, str(pos.x), str(pos.y))
    log.console.print(table)
    log.success(f"{len(result.positions)} steps placed, {len(result.edges)} edges")


@main.command()
@procedure_argument
@click.confirmation_option(prompt="Discard all saved progress for this procedure?")
@click.pass_obj
def reset(cfg: Config, procedure_file: Path) -> None:
    """Discard saved progress and start over."""
    run = _open_run(cfg, procedure_file)
    run.reset()
