"""Unit tests for LineFramer."""

from __future__ import annotations

from yeelight_lan.protocol import LineFramer


class TestLineFramer:
    """Tests for stream line framing."""

    def test_single_complete_line(self):
        """Test that one terminated line is returned without its terminator."""
        framer = LineFramer()

        assert framer.feed(b'{"id":1,"result":["ok"]}\r\n') == [b'{"id":1,"result":["ok"]}']
        assert framer.buffer == bytearray()

    def test_partial_line_is_buffered(self):
        """Test that a line split across reads is joined."""
        framer = LineFramer()

        assert framer.feed(b'{"id":1,"res') == []
        assert framer.feed(b'ult":["ok"]}\r\n') == [b'{"id":1,"result":["ok"]}']

    def test_split_terminator(self):
        """Test that a CR and LF arriving in separate reads still end one line."""
        framer = LineFramer()

        assert framer.feed(b'{"id":1}\r') == []
        assert framer.feed(b"\n") == [b'{"id":1}']

    def test_multiple_lines_in_one_read(self):
        """Test that several lines in one chunk are returned in order."""
        framer = LineFramer()

        lines = framer.feed(b'{"id":1}\r\n{"id":2}\r\n{"id":3')

        assert lines == [b'{"id":1}', b'{"id":2}']
        assert bytes(framer.buffer) == b'{"id":3'

    def test_blank_lines_skipped(self):
        """Test that empty lines are ignored."""
        framer = LineFramer()

        assert framer.feed(b"\r\n\r\n{}\r\n") == [b"{}"]

    def test_bare_newline_terminator(self):
        """Test that LF without CR also terminates a line."""
        framer = LineFramer()

        assert framer.feed(b"a\nb\n") == [b"a", b"b"]

    def test_overflow_discards_buffer(self):
        """Test that an unterminated line past the limit is dropped."""
        framer = LineFramer()

        assert framer.feed(b"x" * (LineFramer.MAX_LINE_SIZE + 1)) == []
        assert framer.buffer == bytearray()
        assert framer.feed(b"ok\r\n") == [b"ok"]

    def test_reset(self):
        """Test that reset drops a partial line."""
        framer = LineFramer()
        framer.feed(b"partial")

        framer.reset()

        assert framer.feed(b"next\r\n") == [b"next"]
