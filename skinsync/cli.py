"""CLI interface for SkinSync."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .cli_progress import TransferProgressDisplay
from .config import config
from .exceptions import SkinSyncCancelledError, SkinSyncError
from .output import OutputFormatter
from .progress import ProgressCallback
from .project import Project, load_project
from .project_log import append_project_log, read_recent_logs
from .sync.engine import SyncEngine
from .sync.results import OperationStatus
from .sync.state import JsonMetadataStore
from .transport import FtpTransport

logger = logging.getLogger(__name__)


def _get_projects_root(ctx: Any) -> Path:
    projects_root = ctx.obj.get("projects_root")
    if projects_root:
        return Path(projects_root).expanduser()
    return config.projects_root


def _build_engine(ctx: Any) -> SyncEngine:
    """Create a sync engine wired to the configured transport and store."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        transport = FtpTransport(
            timeout=config.ftp_timeout,
            max_attempts=config.max_retries,
            progress_every=config.progress_every,
        )
    except SkinSyncError as e:
        out.error(str(e))
        ctx.exit(1)
    store = JsonMetadataStore(_get_projects_root(ctx))
    return SyncEngine(transport, store, output=out)


def _run_operation(
    ctx: Any,
    project: Project,
    label: str,
    operation: Callable[[Optional[ProgressCallback]], Any],
) -> Any:
    """Run an engine operation with a progress display and project logging.

    Args:
        ctx: Click context
        project: Project the operation runs on
        label: Human readable operation name
        operation: Callable receiving the progress callback

    Returns:
        The operation result
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        if out.quiet or out.json_output:
            result = operation(None)
        else:
            with TransferProgressDisplay(label) as display:
                result = operation(display.create_callback())
    except (KeyboardInterrupt, SkinSyncCancelledError):
        append_project_log(project.project_path, f"{label} cancelled")
        out.warning(f"{label} cancelled by user")
        ctx.exit(130)
    except SkinSyncError as e:
        append_project_log(project.project_path, f"{label} failed: {e}")
        out.error(str(e))
        ctx.exit(1)

    append_project_log(project.project_path, f"{label}: {result.message}")
    return result


def _load(ctx: Any, project_key: str) -> Project:
    out: OutputFormatter = ctx.obj["out"]
    try:
        return load_project(_get_projects_root(ctx), project_key)
    except SkinSyncError as e:
        out.error(str(e))
        ctx.exit(1)


def _print_list(out: OutputFormatter, title: str, paths: list[str]) -> None:
    if not paths:
        return
    out.print(f"{title} ({len(paths)}):")
    for path in paths:
        out.print(f"  {path}")


@click.group()
@click.option(
    "--projects-root",
    envvar="SKINSYNC_PROJECTS_ROOT",
    type=click.Path(file_okay=False),
    help="Directory holding the project directories",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="skinsync")
@click.pass_context
def main(
    ctx: Any,
    projects_root: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """SkinSync - Keep storefront skin projects in sync over FTP."""
    ctx.ensure_object(dict)
    ctx.obj["projects_root"] = projects_root
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("skinsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command("init-sync")
@click.argument("project_key")
@click.pass_context
def init_sync(ctx: Any, project_key: str) -> None:
    """Download the remote skin and record the baseline.

    The local working copy is replaced by the remote tree. Files that
    exist right after this step are protected from remote deletion.
    """
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)
    engine = _build_engine(ctx)

    result = _run_operation(
        ctx,
        project,
        "Initial sync",
        lambda callback: engine.initial_sync(project, progress_callback=callback),
    )

    if out.json_output:
        out.output_json(result.to_dict())
    elif result.mode == "manual":
        out.info(result.message)
    else:
        out.success(result.message)


@main.command()
@click.argument("project_key")
@click.option(
    "--changed",
    "-c",
    multiple=True,
    help="Relative path created or modified locally (repeatable)",
)
@click.option(
    "--deleted",
    "-d",
    multiple=True,
    help="Relative path deleted locally (repeatable)",
)
@click.pass_context
def upload(
    ctx: Any, project_key: str, changed: tuple[str, ...], deleted: tuple[str, ...]
) -> None:
    """Upload changed files and propagate safe deletions.

    Deleted baseline files are restored locally instead of being removed
    from the server.

    Examples:
        skinsync upload shop1 -c css/main.css -d img/old.png
    """
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)
    engine = _build_engine(ctx)

    result = _run_operation(
        ctx,
        project,
        "Auto-upload",
        lambda callback: engine.auto_upload_changed_files(
            project, list(changed), list(deleted), progress_callback=callback
        ),
    )

    if out.json_output:
        out.output_json(result.to_dict())
        return

    if result.status == OperationStatus.SUCCESS:
        out.success(result.message)
    elif result.status == OperationStatus.PARTIAL:
        out.warning(result.message)
    else:
        out.info(result.message)
    _print_list(out, "Restored protected files", result.restored_protected)
    _print_list(out, "Skipped untracked deletions", result.skipped_untracked)


@main.command()
@click.argument("project_key")
@click.pass_context
def deploy(ctx: Any, project_key: str) -> None:
    """Upload every file changed since the last deploy.

    Deploy never deletes files on the server.
    """
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)
    engine = _build_engine(ctx)

    result = _run_operation(
        ctx,
        project,
        "Deploy",
        lambda callback: engine.deploy(project, progress_callback=callback),
    )

    if out.json_output:
        out.output_json(result.to_dict())
        return

    out.success(result.message)
    out.print_summary(
        "Deploy Summary",
        [
            ("Mode", result.mode),
            ("Remote path", result.remote_path),
            ("Uploaded", result.uploaded_count),
            ("Unchanged", result.unchanged_count),
        ],
    )


@main.command()
@click.argument("project_key")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def restore(ctx: Any, project_key: str, yes: bool) -> None:
    """Restore the local copy and the server to the initial download.

    Local edits are discarded and files added since the initial sync are
    deleted from the server.
    """
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)

    if not yes and not click.confirm(
        f"Discard all changes to {project.name} since the initial sync?",
        default=False,
    ):
        out.info("Restore cancelled")
        return

    engine = _build_engine(ctx)
    result = _run_operation(
        ctx,
        project,
        "Restore",
        lambda callback: engine.restore_initial(project, progress_callback=callback),
    )

    if out.json_output:
        out.output_json(result.to_dict())
        return

    if result.status == OperationStatus.PARTIAL:
        out.warning(result.message)
        _print_list(out, "Missing from the baseline mirror", result.missing_from_mirror)
    else:
        out.success(result.message)


@main.command()
@click.argument("project_key")
@click.pass_context
def status(ctx: Any, project_key: str) -> None:
    """Show the sync state of a project."""
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)
    engine = _build_engine(ctx)

    try:
        pending = engine.pending_changes(project)
    except SkinSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        data = pending.to_dict()
        data["credentialsComplete"] = project.credential.is_complete
        out.output_json(data)
        return

    out.print_summary(
        f"Project {project.name}",
        [
            ("Key", project.key),
            ("Solution type", project.solution_type.value),
            ("Remote path", project.remote_path),
            ("State", pending.state.value),
            ("Baseline files", pending.baseline_file_count),
            ("Tracked new server files", len(pending.tracked_new_server_files)),
            ("Last deploy", pending.last_deployed_at or "never"),
            ("Changed since deploy", len(pending.upserted)),
            (
                "Credentials",
                "complete" if project.credential.is_complete else "missing",
            ),
        ],
    )


@main.command()
@click.argument("project_key")
@click.pass_context
def diff(ctx: Any, project_key: str) -> None:
    """List local changes since the last deploy without uploading."""
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)
    engine = _build_engine(ctx)

    try:
        pending = engine.pending_changes(project)
    except SkinSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            {
                "projectKey": pending.project_key,
                "upserted": pending.upserted,
                "deleted": pending.deleted,
            }
        )
        return

    if not pending.upserted and not pending.deleted:
        out.info("No changes since the last deploy")
        return

    rows = [["changed", path] for path in pending.upserted]
    rows.extend(["deleted", path] for path in pending.deleted)
    out.output_table(["Change", "Path"], rows, title=f"Pending changes: {project.key}")


@main.command()
@click.argument("project_key")
@click.option(
    "--lines", "-n", type=int, default=80, show_default=True, help="Lines to show"
)
@click.pass_context
def log(ctx: Any, project_key: str, lines: int) -> None:
    """Show the most recent project log lines."""
    out: OutputFormatter = ctx.obj["out"]
    project = _load(ctx, project_key)

    recent = read_recent_logs(project.project_path, max_lines=lines)
    if out.json_output:
        out.output_json({"projectKey": project.key, "lines": recent})
        return

    if not recent:
        out.info("No log entries yet")
        return
    for line in recent:
        out.print(line)


if __name__ == "__main__":
    main()
