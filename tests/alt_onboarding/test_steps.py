"""
Tests for the onboarding step graph and routing table.
"""

import pytest

from onboarding.steps import (
    CONTINUE,
    ENTRY_OPTIONS,
    ENTRY_ROUTING,
    PATH_STEPS,
    InvalidEntryAnswer,
    Location,
    Path,
    Stage,
    StepGraphError,
    StepKind,
    describe_graph,
    first_step,
    neutral_return_step_id,
    path_for_entry_answer,
    previous_step,
    progress_percent,
    registration_anchor_step_id,
    step_by_id,
    step_index,
    validate_step_graph,
    _step,
)


class TestEntryRouting:
    """Entry answers route to their fixed path."""

    @pytest.mark.parametrize(
        "answer_id,expected",
        [
            ("entry_1", Path.A),
            ("entry_2", Path.B),
            ("entry_3", Path.B),
            ("entry_4", Path.B),
            ("entry_5", Path.C),
        ],
    )
    def test_routing_table(self, answer_id, expected):
        assert path_for_entry_answer(answer_id) == expected

    def test_bare_numbers(self):
        assert path_for_entry_answer(1) == Path.A
        assert path_for_entry_answer(5) == Path.C

    @pytest.mark.parametrize("bad", ["entry_0", "entry_6", "", "A", 0, 6, None, True])
    def test_unknown_answer_raises(self, bad):
        with pytest.raises(InvalidEntryAnswer):
            path_for_entry_answer(bad)

    def test_every_option_is_routed(self):
        assert {o.id for o in ENTRY_OPTIONS} == set(ENTRY_ROUTING)


class TestPathShape:
    """Step ids, order and kinds per path."""

    def test_step_ids(self):
        assert [s.id for s in PATH_STEPS[Path.A]] == ["A1", "A2", "A3", "A4"]
        assert [s.id for s in PATH_STEPS[Path.B]] == ["B1", "B2", "B3", "B4", "B5"]
        assert [s.id for s in PATH_STEPS[Path.C]] == ["C1", "C2"]

    def test_kinds(self):
        assert step_by_id(Path.A, "A1").kind == StepKind.MULTI
        assert step_by_id(Path.A, "A3").kind == StepKind.DEMOGRAPHICS
        assert step_by_id(Path.A, "A4").kind == StepKind.DECISION
        assert step_by_id(Path.B, "B4").kind == StepKind.DECISION
        assert step_by_id(Path.C, "C1").kind == StepKind.INFO

    def test_required_fields(self):
        assert step_by_id(Path.A, "A1").required_fields == {"A1"}
        assert step_by_id(Path.A, "A3").required_fields == {"ageRange", "addressingContext", "languagePreference"}
        assert step_by_id(Path.C, "C2").required_fields == {
            "relationshipToPerson",
            "thirdPersonAgeRange",
            "thirdPersonLanguagePreference",
        }
        assert step_by_id(Path.C, "C1").required_fields == frozenset()

    def test_book_call_option_carries_cta(self):
        book_call = next(o for o in step_by_id(Path.B, "B1").options if o.id == "book_call")
        assert book_call.cta_label == "Termin buchen"
        assert book_call.cta_url.startswith("https://")

    def test_transitions_are_read_only(self):
        step = step_by_id(Path.A, "A1")
        with pytest.raises(TypeError):
            step.transitions["other"] = Location.neutral()


class TestQueries:
    """Lookup helpers over the graph."""

    def test_step_by_id_unknown(self):
        assert step_by_id(Path.A, "B1") is None
        assert step_by_id(Path.A, None) is None

    def test_step_index(self):
        assert step_index(Path.B, "B3") == 2
        assert step_index(Path.B, "A1") == -1

    def test_first_and_previous(self):
        assert first_step(Path.C).id == "C1"
        assert previous_step(Path.A, "A2").id == "A1"
        assert previous_step(Path.A, "A1") is None

    def test_anchors(self):
        assert registration_anchor_step_id(Path.A) == "A4"
        assert registration_anchor_step_id(Path.B) == "B5"
        assert registration_anchor_step_id(Path.C) == "C2"
        assert neutral_return_step_id(Path.A) == "A4"
        assert neutral_return_step_id(Path.B) == "B4"
        assert neutral_return_step_id(Path.C) == "C2"

    def test_progress_percent(self):
        assert progress_percent(Path.A, "A1") == 25
        assert progress_percent(Path.A, "A4") == 100
        assert progress_percent(Path.C, "C1") == 50
        assert progress_percent(Path.B, "nope") == 0


class TestGraphValidation:
    """The shipped graph is closed; broken graphs are rejected."""

    def test_shipped_graph_is_valid(self):
        validate_step_graph()

    def test_transitions_stay_within_path(self):
        for path, steps in PATH_STEPS.items():
            ids = {s.id for s in steps}
            for step in steps:
                for target in step.transitions.values():
                    if target.stage == Stage.PATH:
                        assert target.step_id in ids

    def test_unknown_target_rejected(self):
        broken = {Path.A: (_step("A1", StepKind.INFO, "x", {CONTINUE: Location.at_step("A9")}),)}
        with pytest.raises(StepGraphError, match="A9"):
            validate_step_graph(broken)

    def test_cross_path_target_rejected(self):
        broken = {Path.C: (_step("C1", StepKind.INFO, "x", {CONTINUE: Location.at_step("A1")}),)}
        with pytest.raises(StepGraphError):
            validate_step_graph(broken)


class TestDescribeGraph:
    def test_shape(self):
        graph = describe_graph()
        assert len(graph["entry"]["options"]) == 5
        assert graph["entry"]["options"][4]["path"] == "C"
        assert set(graph["paths"]) == {"A", "B", "C"}

    def test_transition_serialization(self):
        a4 = describe_graph()["paths"]["A"]["steps"][3]
        assert a4["transitions"] == {
            "start_storytelling": {"stage": "neutral"},
            "go_registration": {"stage": "registration"},
        }
        a1 = describe_graph()["paths"]["A"]["steps"][0]
        assert a1["transitions"] == {"continue": {"stage": "path", "stepId": "A2"}}
