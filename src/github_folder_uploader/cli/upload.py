"""Upload and path validation commands."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from github_folder_uploader.cli.common import (
    DryRunOption,
    OutputFormatOption,
    RepoArgument,
    console,
    run_async_command,
    validate_repo,
)
from github_folder_uploader.config import get_settings
from github_folder_uploader.github import UploadService
from github_folder_uploader.paths import PathValidator
from github_folder_uploader.schemas import (
    BatchConfig,
    BatchStatus,
    BatchSubmission,
    EventKind,
    OutputFormat,
    RateLimitExceededEvent,
)
from github_folder_uploader.sources import load_source

SourceArgument = Annotated[
    Path,
    typer.Argument(exists=True, help="Directory or .zip archive to upload"),
]


def upload(
    source: SourceArgument,
    repo: RepoArgument,
    branch: str = typer.Option(
        "",
        "--branch",
        "-b",
        help="Target branch (default from config: main)",
    ),
    base_path: str = typer.Option(
        "",
        "--base-path",
        "-p",
        help="Directory inside the repository to upload into",
    ),
    message: str = typer.Option(
        "",
        "--message",
        "-m",
        help="Commit message used for every file",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-c",
        min=1,
        help="Maximum simultaneous uploads (default from config: 3)",
    ),
    dry_run: DryRunOption = False,
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Upload a directory or zip archive to a repository.

    Every file becomes its own commit through the contents API. Existing
    files are updated, missing files are created.

    Examples:
        ghupload upload ./site octocat/website
        ghupload upload build.zip octocat/website --branch gh-pages --base-path docs
        ghupload upload ./site octocat/website --dry-run --format json
    """
    owner, name = validate_repo(repo)

    settings = get_settings()
    if concurrency:
        settings = settings.model_copy(
            update={"upload": settings.upload.model_copy(update={"concurrency": concurrency})}
        )

    batch_config = BatchConfig(
        owner=owner,
        repo=name,
        branch=branch,
        base_path=base_path,
        commit_message=message,
    )

    async def _upload() -> dict[str, Any]:
        files = load_source(source)

        async with UploadService(settings=settings) as service:
            submission = service.submit_batch(files, batch_config)
            if dry_run:
                return _submission_result(submission, dry_run=True)

            batch_id = submission.batch_id
            subscription = service.subscribe(batch_id)
            await service.start_batch(batch_id)

            quiet = output_format == OutputFormat.JSON
            with Progress(
                TextColumn("[bold]Uploading[/bold]"),
                BarColumn(bar_width=40),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=console,
                transient=True,
                disable=quiet,
            ) as progress:
                task = progress.add_task("", total=submission.file_count)
                processed = 0
                async with subscription:
                    while processed < submission.file_count:
                        try:
                            event = await subscription.get(timeout=1.0)
                        except TimeoutError:
                            status = service.get_batch_status(batch_id).status
                            if BatchStatus(status).is_terminal:
                                break
                            continue

                        if event.kind in (EventKind.JOB_COMPLETE, EventKind.JOB_ERROR):
                            processed += 1
                            progress.advance(task)
                        elif isinstance(event, RateLimitExceededEvent) and not quiet:
                            wait_s = event.wait_ms / 1000
                            progress.console.print(
                                f"[yellow]Rate limit exceeded, pausing {wait_s:.0f}s[/yellow]"
                            )

            report = await service.wait_for_batch(batch_id, timeout=30.0)
            result = _submission_result(submission, dry_run=False)
            result["status"] = report.status
            result["percentage"] = report.percentage
            result["stats"] = report.stats.model_dump()
            result["jobs"] = [
                {
                    "path": job.path,
                    "status": job.status.value,
                    "sha": job.sha,
                    "url": job.url,
                    "error": job.error_message,
                    "code": job.error_code,
                }
                for job in service.tracker.jobs_for(batch_id)
            ]
            return result

    result = run_async_command(_upload(), error_prefix="Upload failed")

    # JSON output
    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps(result))
        return

    # Text output
    for path, reason in result["rejected"].items():
        console.print(f"[yellow]Skipped[/yellow] {path}: {reason}")

    if dry_run:
        console.print(
            f"[dim](dry-run)[/dim] Would upload [bold]{result['file_count']}[/bold] file(s) "
            f"({result['total_size_bytes']} bytes) to {owner}/{name}"
        )
        for entry in result["files"]:
            console.print(f"  {entry['path']} ({entry['size']} bytes)")
        return

    table = Table(title=f"Upload to {owner}/{name}")
    table.add_column("Path", style="cyan")
    table.add_column("Status")
    table.add_column("Detail", max_width=60)
    for job in result["jobs"]:
        if job["status"] == "done":
            table.add_row(job["path"], "[green]done[/green]", (job["sha"] or "")[:12])
        elif job["status"] == "error":
            table.add_row(job["path"], "[red]error[/red]", job["error"] or "")
        else:
            table.add_row(job["path"], f"[dim]{job['status']}[/dim]", "")
    console.print(table)

    stats = result["stats"]
    console.print(
        f"\n[bold]{result['status'].title()}[/bold]: "
        f"{stats['completed']} uploaded, {stats['failed']} failed of {stats['total']}"
    )
    if stats["failed"]:
        raise typer.Exit(1)


def _submission_result(submission: BatchSubmission, *, dry_run: bool) -> dict[str, Any]:
    data = submission.model_dump()
    data["dry_run"] = dry_run
    return data


def check_path(
    paths: Annotated[list[str], typer.Argument(help="Paths to validate")],
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Check paths against the upload path rules.

    Examples:
        ghupload check-path docs/index.md ../../etc/passwd
        ghupload check-path "a/b/../c" --format json
    """
    validator = PathValidator()
    checks = {path: validator.validate(path) for path in paths}

    if output_format == OutputFormat.JSON:
        console.print_json(
            json.dumps(
                [
                    {
                        "path": path,
                        "valid": check.valid,
                        "normalized": check.normalized or None,
                        "reason": check.reason,
                    }
                    for path, check in checks.items()
                ]
            )
        )
    else:
        for path, check in checks.items():
            if check.valid:
                console.print(f"[green]✓[/green] {path} -> {check.normalized}")
            else:
                console.print(f"[red]✗[/red] {path}: {check.reason}")

    if not all(checks.values()):
        raise typer.Exit(1)
