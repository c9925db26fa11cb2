"""Stdio JSON-RPC transport."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from acpsession.logging import TRACE, get_logger

log = get_logger("transport")

# Agents may emit large single-line messages (file contents, diffs)
STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class JsonRpcMessage:
    """Parsed JSON-RPC message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    method: str | None = None
    params: dict[str, Any] | None = None
    result: Any = None
    error: dict[str, Any] | None = None

    def is_request(self) -> bool:
        """Check if this is a request (has method and id)."""
        return self.method is not None and self.id is not None

    def is_notification(self) -> bool:
        """Check if this is a notification (has method but no id)."""
        return self.method is not None and self.id is None

    def is_response(self) -> bool:
        """Check if this is a response (has id but no method).

        A successful response may carry a null result.
        """
        return self.method is None and self.id is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            d["id"] = self.id
        if self.method is not None:
            d["method"] = self.method
        if self.params is not None:
            d["params"] = self.params
        if self.error is not None:
            d["error"] = self.error
        elif self.is_response():
            d["result"] = self.result
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        """Parse from dictionary."""
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            id=data.get("id"),
            method=data.get("method"),
            params=data.get("params"),
            result=data.get("result"),
            error=data.get("error"),
        )


@dataclass
class StdioTransport:
    """Async JSON-RPC transport over a pair of byte streams.

    Handles newline-delimited JSON messages. Lines that are not valid JSON
    objects are logged and skipped.
    """

    reader: asyncio.StreamReader | None = None
    writer: asyncio.StreamWriter | None = None
    _read_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @classmethod
    def from_process(cls, process: asyncio.subprocess.Process) -> StdioTransport:
        """Create transport from subprocess stdin/stdout."""
        if process.stdin is None or process.stdout is None:
            raise ValueError("Process must have stdin and stdout pipes")
        return cls(reader=process.stdout, writer=process.stdin)

    async def read_message(self) -> JsonRpcMessage | None:
        """Read the next JSON-RPC message.

        Returns None on EOF.
        """
        if self.reader is None:
            return None

        async with self._read_lock:
            while True:
                line = await self.reader.readline()
                if not line:
                    return None
                text = line.decode("utf-8", errors="replace").strip()
                if not text:
                    continue
                try:
                    data = json.loads(text)
                except json.JSONDecodeError as e:
                    log.warning("Skipping non-JSON line from agent: %s", e)
                    continue
                if not isinstance(data, dict):
                    log.warning("Skipping non-object JSON-RPC message")
                    continue
                log.log(TRACE, "<- %s", text)
                return JsonRpcMessage.from_dict(data)

    async def write_message(self, msg: JsonRpcMessage) -> None:
        """Write a JSON-RPC message.

        Raises:
            ConnectionError: If the transport has no writer or the pipe is closed.
        """
        if self.writer is None:
            raise ConnectionError("Transport is not writable")

        data = json.dumps(msg.to_dict(), separators=(",", ":"))
        log.log(TRACE, "-> %s", data)
        async with self._write_lock:
            if self.writer.is_closing():
                raise ConnectionError("Agent stdin is closed")
            self.writer.write(f"{data}\n".encode())
            await self.writer.drain()

    async def messages(self) -> AsyncIterator[JsonRpcMessage]:
        """Iterate over incoming messages until EOF."""
        while True:
            msg = await self.read_message()
            if msg is None:
                break
            yield msg

    async def close(self) -> None:
        """Close the transport."""
        if self.writer is not None and not self.writer.is_closing():
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                log.debug("Error closing agent stdin: %s", e)
