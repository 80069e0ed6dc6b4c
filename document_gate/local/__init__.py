"""
Local persistence.

File helpers with atomic writes, and the gate token store that lets a
returning visitor skip the email form.
"""

from .file_ops import (
    append_jsonl,
    read_json,
    read_jsonl,
    write_json_atomic,
    write_jsonl_atomic,
)
from .token_store import FileGateTokenStore, MemoryGateTokenStore

__all__ = [
    "FileGateTokenStore",
    "MemoryGateTokenStore",
    # Low-level file operations
    "read_json",
    "write_json_atomic",
    "read_jsonl",
    "write_jsonl_atomic",
    "append_jsonl",
]
