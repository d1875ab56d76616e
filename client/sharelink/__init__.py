"""ShareLink client: share a workspace as a project and keep it in sync."""

__version__ = "0.1.0"
