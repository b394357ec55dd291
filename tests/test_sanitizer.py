import json

import pytest

from tamagotchat.models import RedirectionType
from tamagotchat.sanitizer import (
    EMPTY_RESPONSE_PLACEHOLDER,
    aggressive_reescape,
    coerce_confidence,
    sanitize_llm_response,
    strip_think_blocks,
)


def test_well_formed_answer_is_parsed(structured_answer):
    reply = sanitize_llm_response(structured_answer)

    assert reply.content.startswith("Define a Node class")
    assert reply.confidence == 85
    assert reply.parsing_error is False
    assert len(reply.redirections) == 1
    assert reply.redirections[0].type == RedirectionType.DOCUMENTATION
    assert reply.redirections[0].url == "https://docs.python.org/3/"


def test_think_block_and_json_fence_are_removed(structured_answer):
    raw = "<think>reasoning {not json}</think>\nHere you go:\n```json\n" + structured_answer + "\n```"

    reply = sanitize_llm_response(raw)

    assert reply.confidence == 85
    assert reply.parsing_error is False


def test_out_of_range_confidence_falls_back_to_default():
    reply = sanitize_llm_response(json.dumps({"content": "ok", "confidence": 150}))

    assert reply.confidence == 80


def test_missing_confidence_defaults_to_80():
    assert sanitize_llm_response(json.dumps({"content": "ok"})).confidence == 80


def test_non_list_redirections_become_empty():
    reply = sanitize_llm_response(json.dumps({"content": "ok", "confidence": 90, "redirections": "see google"}))

    assert reply.redirections == []


def test_php_namespace_backslashes_are_repaired():
    raw = r'{"content": "Register App\Http\Middleware\Auth in the kernel", "confidence": 90}'

    reply = sanitize_llm_response(raw)

    assert reply.content == r"Register App\Http\Middleware\Auth in the kernel"
    assert reply.parsing_error is False


def test_double_escaped_namespace_is_collapsed():
    raw = r'{"content": "Use App\\\\Models\\\\User", "confidence": 90}'

    assert sanitize_llm_response(raw).content == r"Use App\Models\User"


def test_escaped_single_quote_is_repaired():
    raw = r"""{"content": "It\'s fine", "confidence": 60}"""

    reply = sanitize_llm_response(raw)

    assert reply.content == "It's fine"
    assert reply.confidence == 60


def test_aggressive_reescape_handles_windows_paths():
    raw = r'{"content": "Open C:\users\bob", "confidence": 50}'

    reply = sanitize_llm_response(raw)

    assert reply.content == r"Open C:\users\bob"
    assert reply.confidence == 50


def test_supplementary_fields_are_appended_to_content():
    raw = json.dumps({
        "content": "Main",
        "confidence": 90,
        "Kernel.php": "<?php echo 1;",
        "extra_content": "More",
        "note": "ignored",
    })

    reply = sanitize_llm_response(raw)

    assert reply.content == "Main\n\nKernel.php:\n<?php echo 1;\n\nextra_content:\nMore"


def test_field_extraction_labels_multiple_fields():
    raw = '{"content": "First part", "confidence": 75, "Kernel.php": "<?php echo 1;", "redirections": [oops'

    reply = sanitize_llm_response(raw)

    assert reply.content == "content:\nFirst part\n\nKernel.php:\n<?php echo 1;"
    assert reply.confidence == 75
    assert reply.parsing_error is False


def test_field_extraction_single_field_is_unescaped():
    raw = '{"content": "Line one\\nLine two", "confidence": oops}'

    reply = sanitize_llm_response(raw)

    assert reply.content == "Line one\nLine two"
    assert reply.confidence == 70


def test_unparseable_text_is_returned_verbatim():
    reply = sanitize_llm_response("I cannot produce JSON today.")

    assert reply.content == "I cannot produce JSON today."
    assert reply.confidence == 70
    assert reply.parsing_error is True


def test_empty_response_gets_placeholder():
    reply = sanitize_llm_response("")

    assert reply.content == EMPTY_RESPONSE_PLACEHOLDER
    assert reply.parsing_error is True


@pytest.mark.parametrize("value,expected", [
    (90, 90),
    ("90", 90),
    (99.6, 100),
    ("high", 80),
    (True, 80),
    (None, 80),
    (-5, 80),
])
def test_coerce_confidence(value, expected):
    assert coerce_confidence(value) == expected


def test_strip_think_blocks():
    assert strip_think_blocks("<think>a</think>answer") == "answer"
    assert strip_think_blocks("</think>answer") == "answer"
    assert strip_think_blocks("<think>only thoughts</think>") == "<think>only thoughts</think>"


def test_aggressive_reescape_leaves_escaped_quotes():
    assert aggressive_reescape(r"C:\path") == r"C:\\path"
    assert aggressive_reescape(r'say \"hi\"') == r'say \"hi\"'
