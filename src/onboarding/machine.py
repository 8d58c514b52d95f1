"""
Onboarding State Machine.

States: idle, one per (path, step), neutral, registration.

resolve_next_location and is_step_response_valid are the pure core. The
draft transitions below them are what a wizard UI does in response to one
user action: each takes a draft and returns a new one.
"""

import logging
from typing import Any, Mapping

from .draft import EntryAnswer, OnboardingDraft
from .steps import (
    CONTINUE,
    Location,
    Path,
    Stage,
    Step,
    StepKind,
    first_step,
    neutral_return_step_id,
    path_for_entry_answer,
    previous_step,
    registration_anchor_step_id,
    step_by_id,
)

logger = logging.getLogger(__name__)


class UnknownTransitionOption(LookupError):
    """The caller chose an option the step never declared."""


class IncompleteStepResponse(ValueError):
    """Advancement attempted before the step's required fields were answered."""


class InvalidTransition(ValueError):
    """The draft is not in a stage that allows the requested transition."""


# =============================================================================
# Pure Core
# =============================================================================


def resolve_next_location(path: Path, step: Step, option_id: str = CONTINUE) -> Location:
    """
    Map (path, step, chosen option) to the next location.

    Returns the option's declared target verbatim. Branch semantics live in
    the step graph, not here.
    """
    if step.path != path:
        raise ValueError(f"Step {step.id} does not belong to path {path.value}")

    try:
        return step.transitions[option_id]
    except KeyError:
        raise UnknownTransitionOption(
            f"Step {step.id} has no option {option_id!r} "
            f"(declared: {', '.join(sorted(step.transitions))})"
        ) from None


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, frozenset, Mapping)):
        return len(value) > 0
    return True


def is_step_response_valid(step: Step, responses: Any) -> bool:
    """
    True when every required field of the step has a non-empty answer.

    Total: invalid or missing responses yield False, never an exception.
    """
    if not step.required_fields:
        return True
    if not isinstance(responses, Mapping):
        return False
    return all(_has_value(responses.get(name)) for name in step.required_fields)


def option_for_step(step: Step, responses: Mapping[str, Any]) -> str:
    """The transition option implied by the recorded answer."""
    if step.kind == StepKind.DECISION:
        choice = responses.get(step.id)
        return choice if isinstance(choice, str) else ""
    return CONTINUE


# =============================================================================
# Answer Helpers
# =============================================================================


def toggle_multi_value(existing: Any, option_id: str) -> list[str]:
    """Add or remove option_id from a multi-select answer."""
    current = list(existing) if isinstance(existing, (list, tuple)) else []
    if option_id in current:
        return [v for v in current if v != option_id]
    return current + [option_id]


def has_answered_selection(value: Any) -> bool:
    """Whether any selection has been made (used for 'unsaved changes' hints)."""
    if isinstance(value, Mapping):
        return any(_has_value(v) for v in value.values())
    return _has_value(value)


# =============================================================================
# Draft Transitions
# =============================================================================


def _current_step(draft: OnboardingDraft) -> Step:
    if draft.stage != Stage.PATH or draft.path is None:
        raise InvalidTransition(f"Draft is not inside a path (stage={draft.stage.value})")
    step = step_by_id(draft.path, draft.current_step_id)
    if step is None:
        raise InvalidTransition(f"Unknown step {draft.current_step_id!r} in path {draft.path.value}")
    return step


def choose_entry(draft: OnboardingDraft, answer_id: str | int) -> OnboardingDraft:
    """Route the draft into the path for answer_id, at its first step."""
    path = path_for_entry_answer(answer_id)
    entry_id = answer_id if isinstance(answer_id, str) else f"entry_{answer_id}"
    responses = dict(draft.responses)
    responses["entry"] = entry_id

    return draft.updated(
        stage=Stage.PATH,
        path=path,
        entry=EntryAnswer(answer_id=entry_id, path=path),
        current_step_id=first_step(path).id,
        responses=responses,
    )


def record_answers(draft: OnboardingDraft, answers: Mapping[str, Any]) -> OnboardingDraft:
    """Merge one step's field set into the draft's responses."""
    responses = dict(draft.responses)
    responses.update(answers)
    return draft.updated(responses=responses)


def advance(draft: OnboardingDraft) -> OnboardingDraft:
    """
    Move past the current step using its recorded answer.

    Raises IncompleteStepResponse if required fields are missing, and
    UnknownTransitionOption if a decision step holds an undeclared choice.
    """
    step = _current_step(draft)
    if not is_step_response_valid(step, draft.responses):
        missing = sorted(n for n in step.required_fields if not _has_value(draft.responses.get(n)))
        raise IncompleteStepResponse(f"Step {step.id} is missing: {', '.join(missing)}")

    target = resolve_next_location(draft.path, step, option_for_step(step, draft.responses))
    logger.debug(f"Onboarding {draft.path.value}/{step.id} -> {target.to_dict()}")

    if target.stage == Stage.NEUTRAL:
        return draft.updated(stage=Stage.NEUTRAL, current_step_id=None, neutral_block_visited=True)
    if target.stage == Stage.REGISTRATION:
        return draft.updated(
            stage=Stage.REGISTRATION,
            current_step_id=None,
            route_to_registration_source="path",
        )
    return draft.updated(stage=Stage.PATH, current_step_id=target.step_id)


def step_back(draft: OnboardingDraft) -> OnboardingDraft:
    """Go to the previous step, or back to the entry question from the first one."""
    step = _current_step(draft)
    previous = previous_step(draft.path, step.id)
    if previous is None:
        return draft.updated(stage=Stage.IDLE, current_step_id=None)
    return draft.updated(current_step_id=previous.id)


def continue_from_neutral(draft: OnboardingDraft) -> OnboardingDraft:
    """Leave the neutral block towards registration."""
    if draft.stage != Stage.NEUTRAL:
        raise InvalidTransition(f"Draft is not in the neutral block (stage={draft.stage.value})")
    return draft.updated(
        stage=Stage.REGISTRATION,
        route_to_registration_source="neutral",
        neutral_block_visited=True,
    )


def return_from_neutral(draft: OnboardingDraft) -> OnboardingDraft:
    """Leave the neutral block back into the origin path."""
    if draft.stage != Stage.NEUTRAL:
        raise InvalidTransition(f"Draft is not in the neutral block (stage={draft.stage.value})")
    if draft.path is None:
        return draft.updated(stage=Stage.IDLE)
    return draft.updated(stage=Stage.PATH, current_step_id=neutral_return_step_id(draft.path))


def back_from_registration(draft: OnboardingDraft) -> OnboardingDraft:
    """Undo the move into registration, returning where the user came from."""
    if draft.stage != Stage.REGISTRATION:
        raise InvalidTransition(f"Draft is not at registration (stage={draft.stage.value})")
    if draft.path is None:
        return draft.updated(stage=Stage.IDLE)

    if draft.route_to_registration_source == "neutral":
        return draft.updated(stage=Stage.NEUTRAL, current_step_id=None, route_to_registration_source=None)

    return draft.updated(
        stage=Stage.PATH,
        current_step_id=registration_anchor_step_id(draft.path),
        route_to_registration_source=None,
    )
