"""GitHub Folder Uploader - push local folders and archives to a GitHub repository."""

__version__ = "0.1.0"
