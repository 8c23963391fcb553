import pytest

from indigo_core.domain.exceptions import ToolArgumentError
from indigo_core.tools.arguments import ToolArguments


def test_string_and_missing_required():
    args = ToolArguments({"issueKey": "SETI-1", "n": 12})
    assert args.string("issueKey") == "SETI-1"
    assert args.string("n") == "12"
    with pytest.raises(ToolArgumentError) as err:
        args.string("comment")
    assert err.value.code == "MISSING_ARGUMENT"
    assert err.value.message == "Missing required parameter: comment"


def test_optional_returns_default():
    args = ToolArguments({"type": None})
    assert args.string("type", required=False, default="Story") == "Story"
    assert args.integer("maxResults", required=False, default=50) == 50
    assert "type" not in args


def test_integer_coercions():
    args = ToolArguments({"a": 7200, "b": 1.9, "c": "3600", "d": "2.5", "e": True, "f": "soon"})
    assert args.integer("a") == 7200
    assert args.integer("b") == 1
    assert args.integer("c") == 3600
    assert args.integer("d") == 2
    with pytest.raises(ToolArgumentError) as err:
        args.integer("e")
    assert "expected integer, got boolean" in err.value.message
    with pytest.raises(ToolArgumentError):
        args.integer("f")


def test_boolean_mapping_and_lists():
    args = ToolArguments({"flag": "TRUE", "no": False, "fields": {"summary": "x"}, "labels": "a, b,", "comps": ["UI", "API"]})
    assert args.boolean("flag") is True
    assert args.boolean("no") is False
    assert args.mapping("fields") == {"summary": "x"}
    assert args.string_list("labels") == ["a", "b"]
    assert args.string_list("comps") == ["UI", "API"]
    with pytest.raises(ToolArgumentError) as err:
        args.mapping("labels")
    assert err.value.code == "INVALID_ARGUMENT"
    assert err.value.message == "Invalid type for parameter 'labels': expected object, got string"
