from screenplay_agent.ensemble.strategies import build_result
from screenplay_agent.sequencing import SPACER_TABLE, SpacingStateMachine, needs_spacer, spacer_result
from screenplay_agent.types import ElementType, Line, SourceTag

E = ElementType


def test_spacer_between_scene_heading_and_action() -> None:
    assert SpacingStateMachine.plan([E.SCENE_HEADING_1, E.ACTION]) == [1]


def test_no_spacer_before_first_element_or_after_invocation() -> None:
    assert SpacingStateMachine.plan([E.SCENE_HEADING_1]) == []
    assert SpacingStateMachine.plan([E.INVOCATION, E.SCENE_HEADING_1]) == []
    assert not needs_spacer(E.EMPTY_LINE, E.SCENE_HEADING_2)


def test_dialogue_exchange_spacing() -> None:
    stream = [E.CHARACTER, E.DIALOGUE, E.CHARACTER, E.PARENTHETICAL, E.DIALOGUE, E.ACTION, E.TRANSITION]

    assert SpacingStateMachine.plan(stream) == [2, 5, 6]


def test_only_table_pairs_insert_spacers() -> None:
    assert not needs_spacer(E.CHARACTER, E.DIALOGUE)
    assert not needs_spacer(E.ACTION, E.ACTION)
    assert not needs_spacer(E.TRANSITION, E.ACTION)
    assert needs_spacer(E.PARENTHETICAL, E.TRANSITION)
    assert needs_spacer(E.SCENE_HEADING_3, E.CHARACTER)
    assert all(prev is not E.INVOCATION for prev, _ in SPACER_TABLE)


def test_plan_is_idempotent() -> None:
    stream = [E.INVOCATION, E.SCENE_HEADING_1, E.ACTION, E.CHARACTER, E.DIALOGUE, E.SCENE_HEADING_2]

    assert SpacingStateMachine.plan(stream) == SpacingStateMachine.plan(stream)
    assert SpacingStateMachine.plan(stream) == [2, 3, 5]


def test_interleave_inserts_contentless_spacers() -> None:
    machine = SpacingStateMachine()
    heading = build_result(E.SCENE_HEADING_1, 0.95, Line.from_raw("مشهد 1"), source=SourceTag.AGENT_CHAIN, producer="t")
    action = build_result(E.ACTION, 0.85, Line.from_raw("يجلس."), source=SourceTag.AGENT_CHAIN, producer="t")

    output = machine.interleave([heading, action])

    assert [item.element_type for item in output] == [E.SCENE_HEADING_1, E.SPACER, E.ACTION]
    assert output[1].text == ""
    assert output[1].payload.text == ""
    assert machine.last_type is E.ACTION
    assert spacer_result().confidence == 1.0

    machine.reset()
    assert machine.last_type is None


def test_blank_lines_do_not_reset_spacing_state() -> None:
    stream = [E.ACTION, E.EMPTY_LINE, E.SCENE_HEADING_1, E.EMPTY_LINE, E.ACTION]

    assert SpacingStateMachine.plan(stream) == [2, 4]
    assert SpacingStateMachine.plan([E.EMPTY_LINE, E.SCENE_HEADING_1]) == []


def test_interleave_places_spacer_after_blank_line() -> None:
    machine = SpacingStateMachine()
    action = build_result(E.ACTION, 0.85, Line.from_raw("يجلس."), source=SourceTag.AGENT_CHAIN, producer="t")
    blank = build_result(E.EMPTY_LINE, 1.0, Line.from_raw(""), source=SourceTag.AGENT_CHAIN, producer="t")
    heading = build_result(E.SCENE_HEADING_1, 0.95, Line.from_raw("مشهد 2"), source=SourceTag.AGENT_CHAIN, producer="t")

    output = machine.interleave([action, blank, heading])

    assert [item.element_type for item in output] == [E.ACTION, E.EMPTY_LINE, E.SPACER, E.SCENE_HEADING_1]
    assert machine.last_type is E.SCENE_HEADING_1
