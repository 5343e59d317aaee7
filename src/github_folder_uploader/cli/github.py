"""GitHub API commands."""

import typer
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from github_folder_uploader.cli.common import console, format_time_remaining, run_async_command
from github_folder_uploader.config import get_settings
from github_folder_uploader.github import (
    GitHubAuthenticationError,
    GitHubClient,
    QuotaSnapshot,
)

app = typer.Typer(help="GitHub API commands")


@app.command("rate-limit")
def show_rate_limit(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed information",
    ),
) -> None:
    """Show the core request quota of the configured token.

    Examples:
        ghupload github rate-limit
        ghupload github rate-limit -v
    """

    async def _check() -> None:
        settings = get_settings()

        if not settings.github_token:
            console.print("[red]Error:[/red] GITHUB_TOKEN not set in environment")
            raise typer.Exit(1)

        try:
            async with GitHubClient() as client:
                snapshot = QuotaSnapshot.from_api_response(await client.get_rate_limit())
        except GitHubAuthenticationError:
            console.print("[red]Error:[/red] Invalid GitHub token")
            raise typer.Exit(1) from None

        remaining = snapshot.remaining or 0
        limit = snapshot.limit or 0
        warning_threshold = settings.rate_limit.warning_threshold

        if remaining == 0:
            status = "[bold red]EXHAUSTED[/bold red]"
        elif remaining < warning_threshold:
            status = "[yellow]LOW[/yellow]"
        else:
            status = "[green]OK[/green]"

        table = Table(title="GitHub API Rate Limit")
        table.add_column("Pool", style="bold")
        table.add_column("Status")
        table.add_column("Remaining", justify="right")
        table.add_column("Limit", justify="right")
        table.add_column("Resets In", justify="right")
        table.add_row(
            snapshot.resource,
            status,
            str(remaining),
            str(limit),
            format_time_remaining(snapshot.seconds_until_reset),
        )

        console.print()
        console.print(table)

        if limit:
            remaining_pct = remaining / limit * 100
            console.print()
            with Progress(
                TextColumn("[bold]Core quota:[/bold]"),
                BarColumn(bar_width=40, complete_style="green", finished_style="green"),
                TextColumn(f"{remaining_pct:.1f}% remaining"),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("", total=100)
                progress.update(task, completed=remaining_pct)
                progress.refresh()

        if verbose and snapshot.reset_at:
            console.print("\n[bold]Detailed Information[/bold]")
            console.print(f"  Used: {snapshot.used}")
            console.print(f"  Resets at: {snapshot.reset_at:%Y-%m-%d %H:%M:%S UTC}")

        if remaining == 0:
            console.print(
                f"\n[red]Rate limit exhausted![/red] Uploads would pause for "
                f"{format_time_remaining(snapshot.seconds_until_reset)}."
            )

    run_async_command(_check(), error_prefix="Rate limit check failed")
