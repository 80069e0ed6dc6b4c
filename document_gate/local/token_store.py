"""
Gate token persistence.

The gate token only tells the view to skip the email form on a later
visit. It is a convenience cache with no expiry and never grants
anything on its own.
"""

from pathlib import Path

from ..protocol import GateTokenStore
from .file_ops import read_json, write_json_atomic


class FileGateTokenStore(GateTokenStore):
    """Key/value pairs kept in a single JSON file.

    Default location: ~/.document_gate/local_storage.json
    """

    def __init__(self, path: Path | None = None):
        self.path = path or Path.home() / ".document_gate" / "local_storage.json"

    async def get(self, key: str) -> str | None:
        data = await read_json(self.path) or {}
        value = data.get(key)
        return str(value) if value is not None else None

    async def set(self, key: str, value: str) -> None:
        data = await read_json(self.path) or {}
        data[key] = value
        await write_json_atomic(self.path, data)

    async def delete(self, key: str) -> None:
        data = await read_json(self.path) or {}
        if key in data:
            del data[key]
            await write_json_atomic(self.path, data)


class MemoryGateTokenStore(GateTokenStore):
    """In-process store, forgotten when the process exits."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
