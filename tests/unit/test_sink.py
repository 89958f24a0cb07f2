"""Tests for OutputSink."""

import io
from unittest.mock import MagicMock

import pytest

from dbdump.exceptions import SinkWriteError
from dbdump.sink import OutputSink


class TestOutputSink:
    def test_statement_terminated_once(self):
        buffer = io.BytesIO()
        sink = OutputSink(buffer)
        sink.write_statement("USE `shop`")
        sink.write_statement("SET NAMES utf8mb4;")
        assert buffer.getvalue() == b"USE `shop`;\nSET NAMES utf8mb4;\n"
        assert sink.statements_written == 2

    def test_comment_lines(self):
        buffer = io.BytesIO()
        sink = OutputSink(buffer)
        sink.write_comment("one\ntwo")
        sink.write_comment("")
        assert buffer.getvalue() == b"-- one\n-- two\n--\n"

    def test_utf8_and_byte_count(self):
        buffer = io.BytesIO()
        sink = OutputSink(buffer)
        sink.write_line("é")
        assert buffer.getvalue() == "é\n".encode()
        assert sink.bytes_written == 3

    def test_write_error(self):
        stream = MagicMock()
        stream.write.side_effect = OSError("No space left on device")
        with pytest.raises(SinkWriteError) as exc_info:
            OutputSink(stream).write_line("x")
        assert "No space left" in str(exc_info.value)

    def test_flush_error(self):
        stream = MagicMock()
        stream.flush.side_effect = OSError("Broken pipe")
        with pytest.raises(SinkWriteError):
            OutputSink(stream).flush()

    def test_borrowed_stream_not_closed(self):
        stream = MagicMock()
        with OutputSink(stream):
            pass
        stream.flush.assert_called_once()
        stream.close.assert_not_called()

    def test_open_file(self, tmp_path):
        path = tmp_path / "dump.sql"
        with OutputSink.open(path) as sink:
            sink.write_statement("SELECT 1")
        assert path.read_text() == "SELECT 1;\n"

    def test_open_unwritable_path(self, tmp_path):
        with pytest.raises(SinkWriteError):
            OutputSink.open(tmp_path / "missing" / "dump.sql")
