import json

import pytest

from polysub.exceptions import TranscriptionError, TransportFailure
from polysub.models import TranscriptSegment
from polysub.rate_governor import RateGovernor
from polysub.transcriber import Transcriber, TranscriptionEndpoint, audio_mime_type, extract_segments, language_code


class FakeTranscriptionEndpoint(TranscriptionEndpoint):
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def transcribe(self, audio, mime_type, source_lang):
        self.calls.append((audio, mime_type, source_lang))
        if isinstance(self.payload, BaseException):
            raise self.payload
        return self.payload


def test_extract_segments_from_list():
    payload = [{"start": "00:00:01,000", "end": "00:00:02,000", "text": "hi"}]
    assert extract_segments(payload) == [TranscriptSegment(1000, 2000, "hi")]


def test_extract_segments_from_srt_text():
    srt = "```srt\n1\n00:00:01,000 --> 00:00:02,500\nhello\n```"
    assert extract_segments(srt) == [TranscriptSegment(1000, 2500, "hello")]


def test_extract_segments_from_fenced_json():
    text = "```json\n" + json.dumps([{"start": "00:00:00,500", "end": "00:00:01,000", "text": "a"}]) + "\n```"
    assert extract_segments(text) == [TranscriptSegment(500, 1000, "a")]


def test_flat_transcript_rejected():
    with pytest.raises(TranscriptionError):
        extract_segments("just some words with no timing at all")


def test_transcribe_normalizes_and_uses_governor(clock):
    governor = RateGovernor(5, clock=clock.now, sleep=clock.sleep)
    endpoint = FakeTranscriptionEndpoint([
        {"start": "00:00:03,000", "end": "00:00:04,000", "text": "second"},
        {"start": "00:00:01,000", "end": "00:00:03,500", "text": "  first  "},
        {"start": "00:00:05,000", "end": "00:00:06,000", "text": "   "},
    ])
    transcriber = Transcriber(endpoint, governor)

    result = transcriber.transcribe(b"RIFF", "audio/wav", "Spanish")

    assert result.language == "es"
    assert [s.text for s in result.segments] == ["first", "second"]
    assert result.segments[0].end_ms <= result.segments[1].start_ms
    assert endpoint.calls == [(b"RIFF", "audio/wav", "Spanish")]
    assert governor.in_window() == 1


def test_transport_failure_becomes_transcription_error(unlimited_governor):
    transcriber = Transcriber(FakeTranscriptionEndpoint(TransportFailure("down")), unlimited_governor)

    with pytest.raises(TranscriptionError):
        transcriber.transcribe(b"data", "audio/mpeg")


def test_empty_audio_rejected(unlimited_governor):
    endpoint = FakeTranscriptionEndpoint([])
    with pytest.raises(TranscriptionError):
        Transcriber(endpoint, unlimited_governor).transcribe(b"", "audio/mpeg")
    assert endpoint.calls == []


def test_no_segments_is_an_error(unlimited_governor):
    with pytest.raises(TranscriptionError):
        Transcriber(FakeTranscriptionEndpoint([]), unlimited_governor).transcribe(b"data", "audio/mpeg")


def test_transcribe_file(tmp_path, unlimited_governor):
    path = tmp_path / "clip.wav"
    path.write_bytes(b"RIFFdata")
    endpoint = FakeTranscriptionEndpoint("1\n00:00:00,000 --> 00:00:01,000\nhey\n")

    result = Transcriber(endpoint, unlimited_governor).transcribe_file(str(path))

    assert result.source_path == str(path)
    assert result.language is None
    assert endpoint.calls[0][0] == b"RIFFdata"


@pytest.mark.parametrize("name, code", [("Spanish", "es"), ("fr", "fr"), ("auto", None), ("Klingon", None), (None, None)])
def test_language_code(name, code):
    assert language_code(name) == code


@pytest.mark.parametrize("path, mime_type", [
    ("talk.m4a", "audio/mp4"),
    ("TALK.AAC", "audio/aac"),
    ("talk.mp3", "audio/mpeg"),
    ("talk.unknownext", "application/octet-stream"),
])
def test_audio_mime_type(path, mime_type):
    assert audio_mime_type(path) == mime_type


def test_transcribe_file_sends_m4a_as_audio_mp4(tmp_path, monkeypatch, unlimited_governor):
    # platforms without a system mime table know nothing about .m4a
    monkeypatch.setattr("polysub.transcriber.mimetypes.guess_type", lambda path: (None, None))
    path = tmp_path / "voice.m4a"
    path.write_bytes(b"....ftypM4A")
    endpoint = FakeTranscriptionEndpoint("1\n00:00:00,000 --> 00:00:01,000\nhey\n")

    Transcriber(endpoint, unlimited_governor).transcribe_file(str(path))

    assert endpoint.calls[0][1] == "audio/mp4"
