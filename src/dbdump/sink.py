"""Output sink for the generated SQL script."""

import sys
from pathlib import Path
from typing import Any, BinaryIO, Optional

from dbdump.exceptions import SinkWriteError


class OutputSink:
    """Write SQL text to a file or to stdout.

    Every statement is written in a single call together with its
    terminator, so an interrupted dump never ends in half a statement.
    Streams passed in by the caller are flushed but never closed.
    """

    def __init__(self, stream: BinaryIO, *, owns_stream: bool = False, encoding: str = "utf-8"):
        self._stream = stream
        self._owns_stream = owns_stream
        self._encoding = encoding
        self.bytes_written = 0
        self.statements_written = 0

    @classmethod
    def open(cls, path: Optional[Path] = None) -> "OutputSink":
        """Open a sink on path, or on stdout when path is None."""
        if path is None:
            return cls(sys.stdout.buffer)
        try:
            return cls(open(path, "wb"), owns_stream=True)
        except OSError as e:
            raise SinkWriteError(f"Cannot open output file {path}: {e}") from e

    def write(self, data: bytes) -> None:
        try:
            self._stream.write(data)
        except OSError as e:
            raise SinkWriteError(f"Failed to write output: {e}") from e
        self.bytes_written += len(data)

    def write_text(self, text: str) -> None:
        self.write(text.encode(self._encoding))

    def write_line(self, line: str = "") -> None:
        self.write_text(line + "\n")

    def write_comment(self, comment: str) -> None:
        for line in comment.splitlines() or [""]:
            self.write_line(f"-- {line}".rstrip())

    def write_statement(self, sql: str) -> None:
        """Write one complete statement followed by ';' and a newline."""
        self.write_text(sql.rstrip().rstrip(";") + ";\n")
        self.statements_written += 1

    def flush(self) -> None:
        try:
            self._stream.flush()
        except OSError as e:
            raise SinkWriteError(f"Failed to flush output: {e}") from e

    def close(self) -> None:
        try:
            self.flush()
        finally:
            if self._owns_stream:
                try:
                    self._stream.close()
                except OSError as e:
                    raise SinkWriteError(f"Failed to close output: {e}") from e

    def __enter__(self) -> "OutputSink":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
