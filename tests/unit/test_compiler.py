"""Tests for transition compilation."""

from durable_workflows.engine import compile_definition
from durable_workflows.validation import validate_definition


def _guard_a(args):
    return args.event.get("route") == "a"


def _guard_b(args):
    return True


def _definition():
    return validate_definition(
        {
            "id": "compiled",
            "initial": "start",
            "context": {},
            "states": {
                "start": {
                    "on": {
                        "GO": [
                            {"target": "a", "guard": _guard_a},
                            {"target": "b", "guard": _guard_b},
                            "c",
                        ],
                        "NOTE": {"actions": lambda args: None},
                    },
                    "always": [{"target": "c", "guard": lambda args: False}],
                },
                "a": {},
                "b": {},
                "c": {"final": True},
            },
        }
    )


def test_preserves_declaration_order():
    table = compile_definition(_definition())
    go = table["start"].for_event("GO")
    assert [t.target for t in go] == ["a", "b", "c"]
    assert go[0].guard is _guard_a
    assert go[1].guard is _guard_b
    assert go[2].guard is None
    assert all(t.source == "start" for t in go)


def test_assigns_unique_names_in_order():
    table = compile_definition(_definition())
    names = [t.name for t in table["start"].for_event("GO")]
    names += [t.name for t in table["start"].for_event("NOTE")]
    names += [t.name for t in table["start"].always]
    assert names == ["tr0", "tr1", "tr2", "tr3", "tr4"]


def test_targetless_rule_keeps_actions():
    table = compile_definition(_definition())
    (note,) = table["start"].for_event("NOTE")
    assert note.target is None
    assert len(note.actions) == 1


def test_every_state_has_an_entry():
    table = compile_definition(_definition())
    assert set(table) == {"start", "a", "b", "c"}
    assert table["c"].always == ()
    assert table["c"].for_event("GO") == ()


def test_compilation_is_deterministic():
    definition = _definition()
    first = compile_definition(definition)
    second = compile_definition(definition)
    assert first == second
