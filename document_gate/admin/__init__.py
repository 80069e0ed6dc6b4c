"""Admin console: document uploads and access log review."""

from .console import AdminConsole, format_size_kb, make_storage_path

__all__ = ["AdminConsole", "format_size_kb", "make_storage_path"]
