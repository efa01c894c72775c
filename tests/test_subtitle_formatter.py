import pytest

from polysub.exceptions import FormattingError
from polysub.models import SubtitleLine, TranscriptSegment
from polysub.subtitle_formatter import (
    SRTFormatter,
    format_srt,
    lines_to_segments,
    parse_subtitles,
    segments_to_lines,
    vtt_to_srt,
)

SRT = """1
00:00:01,000 --> 00:00:03,000
Hello there.

2
00:00:03,500 --> 00:00:05,000
<i>How are</i>
you?
"""


def test_parse_basic_srt():
    lines = parse_subtitles(SRT)

    assert lines == [
        SubtitleLine(1, "00:00:01,000", "00:00:03,000", "Hello there.", "Hello there."),
        SubtitleLine(2, "00:00:03,500", "00:00:05,000", "How are you?", "How are you?"),
    ]


def test_parse_vtt_with_header_settings_and_notes():
    vtt = (
        "WEBVTT\r\nKind: captions\r\n\r\n"
        "00:01.000 --> 00:02.500 align:start position:0%\r\n"
        "{\\an8}First <c.yellow>cue</c>\r\n\r\n"
        "NOTE this is a comment\r\n\r\n"
        "00:00:03.000 --> 00:00:04.000\r\nSecond cue\r\n"
    )

    lines = parse_subtitles(vtt)

    assert [(l.id, l.start_time, l.end_time, l.text) for l in lines] == [
        (1, "00:00:01,000", "00:00:02,500", "First cue"),
        (2, "00:00:03,000", "00:00:04,000", "Second cue"),
    ]


def test_exact_repeat_extends_previous_line():
    data = "1\n00:00:01,000 --> 00:00:02,000\nHello!\n\n2\n00:00:02,000 --> 00:00:03,000\nhello\n"

    lines = parse_subtitles(data)

    assert len(lines) == 1
    assert lines[0].end_time == "00:00:03,000"


def test_accumulating_caption_keeps_new_words():
    data = (
        "1\n00:00:01,000 --> 00:00:02,000\nI am going\n\n"
        "2\n00:00:02,000 --> 00:00:03,000\nI am going to the store\n"
    )

    lines = parse_subtitles(data)

    assert [l.text for l in lines] == ["I am going", "to the store"]
    assert lines[1].original_text == "to the store"


def test_rolling_overlap_removed():
    data = (
        "1\n00:00:01,000 --> 00:00:02,000\nwe are going to the\n\n"
        "2\n00:00:02,000 --> 00:00:03,000\nto the store now\n"
    )

    lines = parse_subtitles(data)

    assert [l.text for l in lines] == ["we are going to the", "store now"]


def test_fully_overlapping_caption_merges_into_previous():
    data = (
        "1\n00:00:01,000 --> 00:00:02,000\nsee you at the park\n\n"
        "2\n00:00:02,000 --> 00:00:04,000\nthe park\n"
    )

    lines = parse_subtitles(data)

    assert len(lines) == 1
    assert lines[0].end_time == "00:00:04,000"


def test_ids_renumbered_after_merges():
    data = (
        "7\n00:00:01,000 --> 00:00:02,000\nA\n\n"
        "8\n00:00:02,000 --> 00:00:03,000\nA\n\n"
        "9\n00:00:03,000 --> 00:00:04,000\nB\n"
    )
    assert [l.id for l in parse_subtitles(data)] == [1, 2]


def test_block_with_bad_timing_skipped():
    data = "1\n00:00:01 --> 00:00:02\nbad\n\n2\n00:00:03,000 --> 00:00:04,000\ngood\n"
    assert [l.text for l in parse_subtitles(data)] == ["good"]


def test_format_srt():
    lines = [
        SubtitleLine(1, "00:00:01,000", "00:00:02,000", "Hola"),
        SubtitleLine(2, "00:00:03,000", "00:00:04,000", "Adiós"),
    ]
    assert format_srt(lines) == "1\n00:00:01,000 --> 00:00:02,000\nHola\n\n2\n00:00:03,000 --> 00:00:04,000\nAdiós\n"
    assert format_srt([]) == ""


def test_vtt_to_srt():
    assert vtt_to_srt("WEBVTT\n\n00:00:01.000 --> 00:00:02.000\nHi\n") == "1\n00:00:01,000 --> 00:00:02,000\nHi\n"


def test_segments_and_lines_convert_both_ways():
    segments = [TranscriptSegment(0, 1500, "one"), TranscriptSegment(2000, 3250, "two")]

    lines = segments_to_lines(segments)

    assert [(l.id, l.start_time, l.end_time, l.original_text) for l in lines] == [
        (1, "00:00:00,000", "00:00:01,500", "one"),
        (2, "00:00:02,000", "00:00:03,250", "two"),
    ]
    assert lines_to_segments(lines) == segments


def test_srt_formatter_writes_file(tmp_path):
    path = tmp_path / "out.srt"
    SRTFormatter().write(parse_subtitles(SRT), str(path))

    assert path.read_text(encoding="utf-8").startswith("1\n00:00:01,000 --> 00:00:03,000\nHello there.\n\n2\n")


def test_srt_formatter_reports_write_errors(tmp_path):
    with pytest.raises(FormattingError):
        SRTFormatter().write([], str(tmp_path))
