import json

import pytest

from polysub.exceptions import InvalidResponseShape
from polysub.models import TranslationResult
from polysub.response_repair import load_json_array, parse_translation_results, repair, strip_code_fences


def test_repair_strips_code_fences():
    raw = '```json\n[{"id":1,"text":"hi"}]\n```'
    assert json.loads(repair(raw)) == [{"id": 1, "text": "hi"}]


def test_repair_drops_surrounding_prose():
    raw = 'Sure! Here you go: [{"id": 1, "text": "a"}, {"id": 2, "text": "b"}] Hope this helps.'
    assert json.loads(repair(raw)) == [{"id": 1, "text": "a"}, {"id": 2, "text": "b"}]


def test_repair_closes_truncated_array():
    raw = '[{"id": 1, "text": "a"}, {"id": 2, "text": "b"}'
    assert json.loads(repair(raw)) == [{"id": 1, "text": "a"}, {"id": 2, "text": "b"}]


def test_repair_without_bracket_returns_empty_array():
    assert repair("I could not translate this.") == "[]"
    assert repair("") == "[]"


def test_repair_without_objects_returns_empty_array():
    assert repair("[]") == "[]"


def test_repair_known_limitation_trailing_array():
    raw = '[{"id": 1, "text": "a"}] and also [1, 2]'
    with pytest.raises(json.JSONDecodeError):
        json.loads(repair(raw + " }"))


def test_strip_code_fences_other_languages():
    assert strip_code_fences("```srt\n1\n```") == "1"


def test_load_json_array_unwraps_object():
    raw = '{"translations": [{"id": 1, "text": "hola"}]}'
    assert load_json_array(raw) == [{"id": 1, "text": "hola"}]


@pytest.mark.parametrize("raw", ["", "   ", "no json here", '{"error": "quota"}', "[{broken"])
def test_load_json_array_rejects(raw):
    with pytest.raises(InvalidResponseShape):
        load_json_array(raw)


def test_parse_translation_results_filters_entries():
    raw = json.dumps([
        {"id": 1, "text": "uno"},
        {"id": "2", "text": "dos"},
        {"id": 3},
        {"id": "x", "text": "bad"},
        {"id": True, "text": "bool"},
        "stray",
    ])

    assert parse_translation_results(raw) == [
        TranslationResult(id=1, text="uno"),
        TranslationResult(id=2, text="dos"),
    ]
