"""Tests for structured-payload recovery."""

import json

import pytest

from ui_iterate.payload_recovery import (
    find_balanced_object,
    isolate_payload,
    recover_payload,
    repair_json_text,
    strip_code_fence,
)


class TestIsolatePayload:
    def test_json_fence(self):
        text = 'Sure!\n```json\n{"a": 1}\n```\nAnything else?'
        assert strip_code_fence(text) == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_unclosed_fence(self):
        assert strip_code_fence('```json\n{"a": 1') == '{"a": 1'

    def test_no_fence(self):
        assert strip_code_fence('{"a": 1}') is None

    def test_balanced_object_in_prose(self):
        text = 'The result is {"a": {"b": 2}} and that is all {"c": 3}'
        assert find_balanced_object(text) == '{"a": {"b": 2}}'

    def test_braces_inside_strings_do_not_count(self):
        text = 'prefix {"text": "a } b", "n": 1} suffix'
        assert find_balanced_object(text) == '{"text": "a } b", "n": 1}'

    def test_unbalanced_keeps_tail(self):
        assert isolate_payload('junk {"a": [1, 2') == '{"a": [1, 2'

    def test_top_level_array(self):
        assert isolate_payload('[{"type": "button"}] trailing') == '[{"type": "button"}]'


class TestRepairJsonText:
    def test_valid_json_parses_identically(self):
        original = {"components": [{"type": "card", "attributes": {"text": "a {b} [c]"}}]}
        repaired = repair_json_text(json.dumps(original))
        assert json.loads(repaired) == original

    def test_comments_removed(self):
        text = '{\n  "a": 1, // first\n  /* block */ "b": 2\n}'
        assert json.loads(repair_json_text(text)) == {"a": 1, "b": 2}

    def test_trailing_commas_removed(self):
        assert json.loads(repair_json_text('{"a": [1, 2,], "b": 3,}')) == {"a": [1, 2], "b": 3}

    def test_doubled_commas_removed(self):
        assert json.loads(repair_json_text("[1,,2,]")) == [1, 2]

    def test_smart_quotes(self):
        text = "{“type”: “button”}"
        assert json.loads(repair_json_text(text)) == {"type": "button"}

    def test_single_quotes_and_bare_keys(self):
        text = "{type: 'button', label: 'Say \"hi\"'}"
        assert json.loads(repair_json_text(text)) == {"type": "button", "label": 'Say "hi"'}

    def test_escaped_apostrophe_in_single_quotes(self):
        assert json.loads(repair_json_text("{'text': 'Don\\'t'}")) == {"text": "Don't"}

    def test_python_literals(self):
        text = "{'visible': True, 'hidden': False, 'state': None}"
        assert json.loads(repair_json_text(text)) == {"visible": True, "hidden": False, "state": None}

    def test_raw_control_characters_in_strings(self):
        text = '{"text": "line one\nline two\tend"}'
        assert json.loads(repair_json_text(text)) == {"text": "line one\nline two\tend"}

    def test_stray_brackets_in_strings(self):
        repaired = repair_json_text('{"text": "use {name} or [x]"}')
        assert "{name}" not in repaired
        assert json.loads(repaired) == {"text": "use {name} or [x]"}

    def test_bare_values_quoted(self):
        text = "{type: button, padding: 8px 16px, color: #fff}"
        assert json.loads(repair_json_text(text)) == {
            "type": "button",
            "padding": "8px 16px",
            "color": "#fff",
        }

    def test_truncated_payload_closed(self):
        assert json.loads(repair_json_text('{"a": [1, {"b": "c')) == {"a": [1, {"b": "c"}]}

    def test_missing_comma_between_objects(self):
        assert json.loads(repair_json_text('[{"a": 1}\n{"a": 2}]')) == [{"a": 1}, {"a": 2}]

    def test_unescaped_inner_quotes(self):
        text = '{"text": "Click "Submit" now", "n": 1}'
        assert json.loads(repair_json_text(text)) == {"text": 'Click "Submit" now', "n": 1}

    @pytest.mark.parametrize(
        "text",
        [
            "{type: 'button', boundingBox:{x:10,y:20,width:30,height:8}, attributes:{text:'Go',}}",
            "{'a': 'x {y} [z]', // note\n b: True,}",
            '{"components": [{"type": "card", "text": "a\nb"},,]}',
            "[1,,2,]",
            '{"a": [1, {"b": "c',
            "I'm sorry, I can't analyze images.",
            '```json\n{"a": 1}\n```',
            "{“type”: ‘button’}",
            '{"text": "Click "Submit" now"}',
            "",
        ],
    )
    def test_idempotent(self, text):
        once = repair_json_text(text)
        assert repair_json_text(once) == once


class TestRecoverPayload:
    def test_example_component(self):
        text = "{type: 'button', boundingBox:{x:10,y:20,width:30,height:8}, attributes:{text:'Go',}}"
        result = recover_payload(text)
        assert result.recovered is True
        assert result.strategy == "parse"
        assert result.items == [
            {
                "type": "button",
                "boundingBox": {"x": 10, "y": 20, "width": 30, "height": 8},
                "attributes": {"text": "Go"},
            }
        ]

    def test_fenced_with_prose(self, detection_json):
        result = recover_payload(detection_json)
        assert result.strategy == "parse"
        assert [c["type"] for c in result.items] == ["button", "input"]

    def test_top_level_array_wrapped(self):
        result = recover_payload('[{"type": "button"}, {"type": "input"}]')
        assert result.data == {"components": [{"type": "button"}, {"type": "input"}]}

    def test_sub_array_when_whole_fails(self):
        text = '{"components": [{"type": "card"}], "meta": ::}'
        result = recover_payload(text)
        assert result.strategy == "sub_array"
        assert result.items == [{"type": "card"}]

    def test_fragments_when_truncated(self):
        text = (
            '{"components": [{"type": "button", "boundingBox": {"x": 1}}, '
            '{"type": "card", "boundingBox": {"x":'
        )
        result = recover_payload(text)
        assert result.strategy == "fragments"
        assert result.items == [{"type": "button", "boundingBox": {"x": 1}}]

    def test_custom_keys(self):
        text = 'noise {"improvements": [{"componentId": "component-0"}], "designSystem": {}}'
        result = recover_payload(text, array_key="improvements", item_key="componentId")
        assert result.items == [{"componentId": "component-0"}]
        assert "designSystem" in result.data

    def test_prose_falls_back(self):
        result = recover_payload("I'm sorry, I can't analyze images.")
        assert result.recovered is False
        assert result.strategy == "fallback"
        assert result.data == {"components": []}

    def test_custom_fallback(self):
        fallback = {"components": [{"type": "placeholder"}]}
        result = recover_payload("nothing here", fallback=fallback)
        assert result.data is fallback

    @pytest.mark.parametrize("text", [None, "", "   ", "{", "}", "```", "[[[", '"'])
    def test_never_raises(self, text):
        result = recover_payload(text)
        assert isinstance(result.data, dict)
