"""Command line interface for GitHub Folder Uploader."""
