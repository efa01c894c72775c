import json
from typing import Callable, List, Optional

import pytest

from polysub.models import SubtitleLine, TranslationRequest
from polysub.rate_governor import RateGovernor
from polysub.translator import TranslationEndpoint


class FakeClock:
    """Millisecond clock whose sleep() just moves time forward."""

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.now_ms

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now_ms += seconds * 1000.0


class FakeTranslationEndpoint(TranslationEndpoint):
    """Answers each request through ``respond`` and records what was sent."""

    def __init__(self, respond: Optional[Callable[[TranslationRequest], str]] = None):
        self.requests: List[TranslationRequest] = []
        self._respond = respond or self.prefix_all

    @staticmethod
    def prefix_all(request: TranslationRequest) -> str:
        return json.dumps([{"id": item.id, "text": f"T:{item.text}"} for item in request.items])

    def send(self, request: TranslationRequest) -> str:
        self.requests.append(request)
        return self._respond(request)


class ScriptedEndpoint(TranslationEndpoint):
    """Plays back a list of responses; exceptions in the list are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.requests: List[TranslationRequest] = []

    def send(self, request: TranslationRequest) -> str:
        self.requests.append(request)
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


def make_lines(count: int, start_id: int = 1) -> List[SubtitleLine]:
    lines = []
    for offset in range(count):
        line_id = start_id + offset
        seconds = offset * 2
        lines.append(SubtitleLine(
            id=line_id,
            start_time=f"00:00:{seconds:02d},000" if seconds < 60 else f"00:01:{seconds - 60:02d},000",
            end_time=f"00:00:{seconds:02d},900" if seconds < 60 else f"00:01:{seconds - 60:02d},900",
            text=f"line {line_id}",
            original_text=f"line {line_id}",
        ))
    return lines


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def unlimited_governor() -> RateGovernor:
    return RateGovernor("unlimited")
