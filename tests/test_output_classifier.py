"""Tests for EncoderOutputClassifier line splitting and classification."""

import pytest

from relay_keeper.domain.models.signal import SignalClass
from relay_keeper.infrastructure.process.output_classifier import (
    MAX_LINE_LENGTH,
    EncoderOutputClassifier,
)


@pytest.fixture
def classifier():
    return EncoderOutputClassifier()


class TestClassify:

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("[rtsp @ 0x55] Connection refused: error while opening input", SignalClass.FATAL_ERROR),
            ("Error opening output rtsp://relay/cam_1", SignalClass.FATAL_ERROR),
            ("[hevc @ 0x7f] Could not find ref with POC 12", SignalClass.BENIGN_WARNING),
            ("[hevc @ 0x7f] Error constructing the frame RPS.", SignalClass.BENIGN_WARNING),
            ("[hevc @ 0x7f] Skipping invalid undecodable NALU: 1", SignalClass.BENIGN_WARNING),
            ("frame=  120 fps= 25 q=23.0 size=  512kB", SignalClass.PROGRESS),
            ("Stream #0:0: Video: hevc (Main), yuvj420p", SignalClass.CONNECTION),
            ("Output #0, rtsp, to 'rtsp://relay/cam_1':", SignalClass.CONNECTION),
            ("Press [q] to stop", SignalClass.INFO),
        ],
    )
    def test_rule_table(self, classifier, line, expected):
        assert classifier.classify(line) is expected

    def test_error_rule_wins_over_progress(self, classifier):
        assert classifier.classify("frame=  10 error in packet") is SignalClass.FATAL_ERROR


class TestFeed:

    def test_splits_on_carriage_return(self, classifier):
        signals = classifier.feed(b"frame=  1 fps=0.0\rframe=  2 fps=1.0\r\n")

        assert [s.line for s in signals] == ["frame=  1 fps=0.0", "frame=  2 fps=1.0"]
        assert all(s.signal is SignalClass.PROGRESS for s in signals)

    def test_partial_line_is_buffered(self, classifier):
        assert classifier.feed(b"Stream #0:0: Vid") == []

        signals = classifier.feed(b"eo: h264\n")

        assert len(signals) == 1
        assert signals[0].line == "Stream #0:0: Video: h264"
        assert signals[0].signal is SignalClass.CONNECTION

    def test_crlf_split_across_chunks_yields_single_line(self, classifier):
        first = classifier.feed(b"Output #0, rtsp\r")
        second = classifier.feed(b"\nPress [q] to stop\n")

        lines = [s.line for s in first + second]
        assert lines == ["Output #0, rtsp", "Press [q] to stop"]

    def test_blank_lines_skipped(self, classifier):
        assert classifier.feed(b"\n\n  \r\n") == []

    def test_invalid_utf8_replaced(self, classifier):
        signals = classifier.feed(b"\xff\xfe error\n")

        assert len(signals) == 1
        assert signals[0].is_error

    def test_flush_returns_remaining_line(self, classifier):
        classifier.feed("frame=  99")

        signals = classifier.flush()

        assert [s.line for s in signals] == ["frame=  99"]
        assert classifier.flush() == []

    def test_multibyte_character_split_across_chunks(self, classifier):
        encoded = "Input #0, 카메라\n".encode("utf-8")
        cut = encoded.index("카".encode("utf-8")) + 1

        assert classifier.feed(encoded[:cut]) == []
        signals = classifier.feed(encoded[cut:])

        assert [s.line for s in signals] == ["Input #0, 카메라"]
        assert "\ufffd" not in signals[0].line

    def test_unterminated_output_is_bounded(self, classifier):
        signals = classifier.feed(b"x" * (MAX_LINE_LENGTH + 1))

        assert len(signals) == 1
        assert len(signals[0].line) == MAX_LINE_LENGTH + 1
        assert classifier.flush() == []
