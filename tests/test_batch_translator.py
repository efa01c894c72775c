import json
import threading

import pytest

from conftest import FakeTranslationEndpoint, ScriptedEndpoint, make_lines
from polysub.cancellation import CancellationToken
from polysub.exceptions import InvalidResponseShape, OperationCancelled, TransportFailure
from polysub.models import SubtitleLine
from polysub.rate_governor import RateGovernor
from polysub.translator import BatchTranslator, build_translation_prompt


GOOD = json.dumps([{"id": 1, "text": "uno"}, {"id": 2, "text": "dos"}])


def make_translator(endpoint, governor, sleeps, **kwargs):
    return BatchTranslator(endpoint, governor, sleep=sleeps.append, **kwargs)


def test_success_on_first_attempt(unlimited_governor):
    sleeps = []
    endpoint = ScriptedEndpoint([GOOD])

    outcome = make_translator(endpoint, unlimited_governor, sleeps).translate(make_lines(2), "English", "Spanish")

    assert outcome.ok
    assert outcome.attempts == 1
    assert [r.text for r in outcome.results] == ["uno", "dos"]
    assert sleeps == []


def test_request_uses_current_text_not_original(unlimited_governor):
    endpoint = FakeTranslationEndpoint()
    line = SubtitleLine(id=7, start_time="00:00:00,000", end_time="00:00:01,000", text="edited", original_text="source")

    make_translator(endpoint, unlimited_governor, []).translate([line], "auto", "French")

    request = endpoint.requests[0]
    assert request.as_payload() == [{"id": 7, "text": "edited"}]
    assert request.source_language == "auto"
    assert request.target_language == "French"


def test_retries_with_exponential_backoff(unlimited_governor):
    sleeps = []
    endpoint = ScriptedEndpoint([TransportFailure("503"), "not json at all", GOOD])

    outcome = make_translator(endpoint, unlimited_governor, sleeps).translate(make_lines(2), "auto", "Spanish")

    assert outcome.ok
    assert outcome.attempts == 3
    assert sleeps == [pytest.approx(2.0), pytest.approx(3.0)]


def test_exhausted_retries_return_last_error(unlimited_governor):
    sleeps = []
    endpoint = ScriptedEndpoint([TransportFailure("a"), TransportFailure("b"), '{"oops": true}'])

    outcome = make_translator(endpoint, unlimited_governor, sleeps).translate(make_lines(2), "auto", "Spanish")

    assert not outcome.ok
    assert isinstance(outcome.error, InvalidResponseShape)
    assert outcome.attempts == 3
    assert len(endpoint.requests) == 3
    assert len(sleeps) == 2


def test_unexpected_exception_is_wrapped_as_transport_failure(unlimited_governor):
    endpoint = ScriptedEndpoint([ConnectionError("reset")])

    outcome = make_translator(endpoint, unlimited_governor, [], max_retries=1).translate(make_lines(1), "auto", "es")

    assert isinstance(outcome.error, TransportFailure)
    assert isinstance(outcome.error.__cause__, ConnectionError)


def test_every_attempt_passes_through_governor(clock):
    governor = RateGovernor(100, clock=clock.now, sleep=clock.sleep)
    endpoint = ScriptedEndpoint([TransportFailure("x"), GOOD])

    make_translator(endpoint, governor, []).translate(make_lines(2), "auto", "es")

    assert governor.in_window() == 2


def test_backoff_delay_sequence(unlimited_governor):
    translator = BatchTranslator(FakeTranslationEndpoint(), unlimited_governor, retry_base_delay_ms=1000, backoff_factor=2)
    assert [translator.backoff_delay_ms(n) for n in (1, 2, 3)] == [1000, 2000, 4000]


def test_hung_call_times_out_and_is_retried(unlimited_governor):
    release = threading.Event()
    calls = []

    class SlowThenFast(FakeTranslationEndpoint):
        def send(self, request):
            calls.append(request)
            if len(calls) == 1:
                release.wait(5)
            return GOOD

    try:
        outcome = make_translator(SlowThenFast(), unlimited_governor, [], timeout_seconds=0.05).translate(
            make_lines(2), "auto", "es"
        )
    finally:
        release.set()

    assert outcome.ok
    assert outcome.attempts == 2


def test_cancelled_before_first_attempt(unlimited_governor):
    token = CancellationToken()
    token.cancel()
    endpoint = ScriptedEndpoint([GOOD])

    with pytest.raises(OperationCancelled):
        make_translator(endpoint, unlimited_governor, []).translate(make_lines(1), "auto", "es", token)
    assert endpoint.requests == []


def test_cancelled_between_retries_skips_backoff(unlimited_governor):
    token = CancellationToken()
    sleeps = []

    class CancelOnFailure(FakeTranslationEndpoint):
        def send(self, request):
            token.cancel()
            raise TransportFailure("down")

    with pytest.raises(OperationCancelled):
        make_translator(CancelOnFailure(), unlimited_governor, sleeps).translate(make_lines(1), "auto", "es", token)
    assert sleeps == []


def test_empty_batch_rejected(unlimited_governor):
    with pytest.raises(ValueError):
        make_translator(FakeTranslationEndpoint(), unlimited_governor, []).translate([], "auto", "es")


def test_prompt_embeds_items_and_languages():
    request = BatchTranslator.build_request(make_lines(2), "auto", "German")
    prompt = build_translation_prompt(request)

    assert "from the detected language to German" in prompt
    assert '[{"id": 1, "text": "line 1"}, {"id": 2, "text": "line 2"}]' in prompt
