"""Unit tests for {{path}} reference resolution."""

from __future__ import annotations

from conftest import make_email

from mailflow.automation.workflow.actions import ActionResult
from mailflow.automation.workflow.context import ExecutionContext
from mailflow.automation.workflow.events import TriggerData
from mailflow.automation.workflow.references import (
    MISSING,
    iter_references,
    navigate,
    resolve_references,
    split_reference,
)


def _context() -> ExecutionContext:
    context = ExecutionContext(trigger=TriggerData.from_email(make_email()))
    context.record("classify", ActionResult.ok("URGENT"))
    context.record("send", ActionResult.ok({"message_id": "msg-7"}))
    context.record("senders", ActionResult.ok(["a@example.com", "b@example.com"]))
    return context


def test_split_reference() -> None:
    assert split_reference("step1.data.message_id") == ("step1", ["data", "message_id"])
    assert split_reference(" trigger ") == ("trigger", [])


def test_navigate_walks_mappings_and_lists() -> None:
    value = {"a": {"b": [10, {"c": "deep"}]}}
    assert navigate(value, ["a", "b", "1", "c"]) == "deep"
    assert navigate(value, ["a", "b", "5"]) is MISSING
    assert navigate(value, ["a", "x"]) is MISSING
    assert navigate({"a": None}, ["a"]) is MISSING
    assert navigate({"a": None}, ["a", "b"]) is MISSING
    assert navigate("text", ["length"]) is MISSING


def test_whole_placeholder_keeps_value_type() -> None:
    context = _context()
    assert resolve_references("{{senders.data}}", context) == ["a@example.com", "b@example.com"]
    assert resolve_references("{{ send.success }}", context) is True


def test_embedded_placeholders_are_interpolated() -> None:
    context = _context()
    resolved = resolve_references(
        "From {{trigger.email.from.email}}: {{classify.data}} ({{senders.data}})", context
    )
    assert resolved == 'From client@example.com: URGENT (["a@example.com", "b@example.com"])'


def test_structure_is_preserved_and_non_strings_pass_through() -> None:
    context = _context()
    value = {
        "to": ["{{trigger.email.from.email}}", "fixed@example.com"],
        "count": 3,
        "flag": False,
        "nothing": None,
        "nested": {"id": "{{send.data.message_id}}"},
    }
    resolved = resolve_references(value, context)
    assert resolved == {
        "to": ["client@example.com", "fixed@example.com"],
        "count": 3,
        "flag": False,
        "nothing": None,
        "nested": {"id": "msg-7"},
    }
    assert list(resolved) == list(value)
    # Input is not mutated.
    assert value["nested"] == {"id": "{{send.data.message_id}}"}


def test_unresolved_placeholders_stay_verbatim_and_are_reported() -> None:
    context = _context()
    seen: list[str] = []
    resolved = resolve_references(
        {"a": "{{missing.data}}", "b": "x {{send.data.nope}} y", "c": "{{trigger.email.cc.0}}"},
        context,
        on_unresolved=seen.append,
    )
    assert resolved == {
        "a": "{{missing.data}}",
        "b": "x {{send.data.nope}} y",
        "c": "{{trigger.email.cc.0}}",
    }
    assert seen == ["missing.data", "send.data.nope", "trigger.email.cc.0"]


def test_resolving_plain_values_twice_changes_nothing() -> None:
    context = _context()
    value = {
        "subject": "Re: {{trigger.email.subject}}",
        "body": "{{classify.data}} and {{unknown.data}}",
        "ids": ["{{trigger.email_id}}"],
    }
    once = resolve_references(value, context, on_unresolved=lambda _ref: None)
    twice = resolve_references(once, context, on_unresolved=lambda _ref: None)
    assert once == twice


def test_placeholder_text_inside_a_value_is_not_rescanned() -> None:
    context = ExecutionContext(
        trigger=TriggerData.from_email(make_email(subject="{{trigger.email_id}}"))
    )
    once = resolve_references("Re: {{trigger.email.subject}}", context)
    assert once == "Re: {{trigger.email_id}}"
    assert resolve_references(once, context) == "Re: email-1"


def test_iter_references_reports_locations() -> None:
    found = list(
        iter_references({"to": ["{{a.data}}"], "body": "{{ b.success }} and {{trigger.email_id}}"})
    )
    assert found == [("to.0", "a.data"), ("body", "b.success"), ("body", "trigger.email_id")]
