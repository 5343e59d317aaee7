"""Main CLI application for GitHub Folder Uploader."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from github_folder_uploader import __version__
from github_folder_uploader.cli import github as github_cmd
from github_folder_uploader.cli import upload as upload_cmd
from github_folder_uploader.config import get_settings
from github_folder_uploader.logging import setup_logging

app = typer.Typer(
    name="ghupload",
    help="Upload local folders and zip archives to a GitHub repository.",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ghupload version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """GitHub Folder Uploader - push files to GitHub through the contents API."""
    settings = get_settings()
    log_config = settings.logging

    # Setup logging with CLI overrides
    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


# Register commands
app.command("upload")(upload_cmd.upload)
app.command("check-path")(upload_cmd.check_path)
app.add_typer(github_cmd.app, name="github")


if __name__ == "__main__":
    app()
