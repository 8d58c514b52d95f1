"""
Onboarding Step Graph.

Static definition of the three alternate onboarding paths. A user picks one
of five entry answers, which routes them into path A, B or C. Each path is an
ordered list of steps; each step declares the response fields it requires and
the transitions its options lead to.

The graph is pure data. Behaviour lives in machine.py.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Path(str, Enum):
    """Branching question sequences."""
    A = "A"
    B = "B"
    C = "C"


class Stage(str, Enum):
    """Coarse phase of the onboarding flow."""
    IDLE = "idle"                  # No entry answer chosen yet
    PATH = "path"                  # Mid-sequence within a path
    NEUTRAL = "neutral"            # Shared storytelling block
    REGISTRATION = "registration"  # Terminal: hand off to account creation


class StepKind(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    DECISION = "decision"
    DEMOGRAPHICS = "demographics"
    INFO = "info"


# Option id used by steps that do not branch
CONTINUE = "continue"


class InvalidEntryAnswer(ValueError):
    """Entry answer id outside entry_1..entry_5."""


class StepGraphError(ValueError):
    """Step graph references a step that does not exist."""


# =============================================================================
# Graph Types
# =============================================================================


@dataclass(frozen=True)
class Location:
    """Where the flow goes next: a step in the current path, neutral, or registration."""
    stage: Stage
    step_id: str | None = None

    @classmethod
    def at_step(cls, step_id: str) -> "Location":
        return cls(stage=Stage.PATH, step_id=step_id)

    @classmethod
    def neutral(cls) -> "Location":
        return cls(stage=Stage.NEUTRAL)

    @classmethod
    def registration(cls) -> "Location":
        return cls(stage=Stage.REGISTRATION)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"stage": self.stage.value}
        if self.stage == Stage.PATH:
            data["stepId"] = self.step_id
        return data


@dataclass(frozen=True)
class Option:
    """An answer choice shown on a step."""
    id: str
    label: str
    description: str | None = None
    cta_label: str | None = None
    cta_url: str | None = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "label": self.label}
        if self.description:
            data["description"] = self.description
        if self.cta_label and self.cta_url:
            data["ctaLabel"] = self.cta_label
            data["ctaUrl"] = self.cta_url
        return data


@dataclass(frozen=True)
class DemographicField:
    """One select field of a demographics step."""
    id: str
    label: str
    options: tuple[Option, ...]
    multiple: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "multiple": self.multiple,
            "options": [o.to_dict() for o in self.options],
        }


@dataclass(frozen=True)
class Step:
    """
    A single question within a path.

    `required_fields` gate advancement (see machine.is_step_response_valid).
    `transitions` maps option ids to target locations; non-branching steps
    declare a single CONTINUE transition.
    """
    id: str
    path: Path
    kind: StepKind
    title: str
    text: str
    transitions: Mapping[str, Location]
    options: tuple[Option, ...] = ()
    fields: tuple[DemographicField, ...] = ()
    required_fields: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path.value,
            "kind": self.kind.value,
            "title": self.title,
            "text": self.text,
            "options": [o.to_dict() for o in self.options],
            "fields": [f.to_dict() for f in self.fields],
            "requiredFields": sorted(self.required_fields),
            "transitions": {k: v.to_dict() for k, v in self.transitions.items()},
        }


def _step(
    step_id: str,
    kind: StepKind,
    text: str,
    transitions: dict[str, Location],
    options: tuple[Option, ...] = (),
    fields: tuple[DemographicField, ...] = (),
) -> Step:
    """Build a step, deriving its required fields from its kind."""
    if kind == StepKind.INFO:
        required: frozenset[str] = frozenset()
    elif kind == StepKind.DEMOGRAPHICS:
        required = frozenset(f.id for f in fields)
    else:
        required = frozenset({step_id})

    return Step(
        id=step_id,
        path=Path(step_id[0]),
        kind=kind,
        title=f"Step {step_id}",
        text=text,
        transitions=MappingProxyType(dict(transitions)),
        options=options,
        fields=fields,
        required_fields=required,
    )


def _go(step_id: str) -> dict[str, Location]:
    return {CONTINUE: Location.at_step(step_id)}


_TO_REGISTRATION = {CONTINUE: Location.registration()}


# =============================================================================
# Entry Question
# =============================================================================

ENTRY_QUESTION = "Wie teilst du deine Gedanken und Erlebnisse am liebsten mit anderen?"

ENTRY_OPTIONS: tuple[Option, ...] = (
    Option("entry_1", "Ich erzähle einfach drauflos", "Schneller Einstieg mit klaren Schritten."),
    Option("entry_2", "Ich brauche Leitfragen", "Geführter Einstieg mit mehr Orientierung."),
    Option("entry_3", "Ich bin noch unsicher", "Behutsam starten und Tempo selbst festlegen."),
    Option("entry_4", "Ich möchte es strukturiert", "Klare Anleitung in kleinen Schritten."),
    Option("entry_5", "Für eine andere Person", "Einrichtung für einen dritten Menschen."),
)

ENTRY_ROUTING: Mapping[str, Path] = MappingProxyType({
    "entry_1": Path.A,
    "entry_2": Path.B,
    "entry_3": Path.B,
    "entry_4": Path.B,
    "entry_5": Path.C,
})


# =============================================================================
# Demographic Fields
# =============================================================================

DEMOGRAPHIC_FIELDS_STANDARD: tuple[DemographicField, ...] = (
    DemographicField(
        id="ageRange",
        label="Welche Altersgruppe trifft am ehesten zu?",
        options=(
            Option("18_29", "18-29"),
            Option("30_39", "30-39"),
            Option("40_49", "40-49"),
            Option("50_64", "50-64"),
            Option("65_plus", "65+"),
            Option("prefer_not_say", "Keine Angabe"),
        ),
    ),
    DemographicField(
        id="addressingContext",
        label="Wie mögen wir Fragen für dich formulieren?",
        options=(
            Option("very_gentle", "Sehr behutsam"),
            Option("balanced", "Ausgewogen"),
            Option("direct", "Direkt und klar"),
        ),
    ),
    DemographicField(
        id="languagePreference",
        label="In welcher Sprache möchtest du vorwiegend schreiben?",
        options=(
            Option("de", "Deutsch"),
            Option("en", "Englisch"),
            Option("mixed", "Gemischt"),
        ),
    ),
)

DEMOGRAPHIC_FIELDS_THIRD_PERSON: tuple[DemographicField, ...] = (
    DemographicField(
        id="relationshipToPerson",
        label="In welcher Beziehung stehen Sie zur Person?",
        options=(
            Option("family", "Familie"),
            Option("friend", "Freundin/Freund"),
            Option("caregiver", "Pflege/Betreuung"),
            Option("other", "Andere"),
        ),
    ),
    DemographicField(
        id="thirdPersonAgeRange",
        label="Welche Altersgruppe trifft auf die Person zu?",
        options=(
            Option("under_40", "Unter 40"),
            Option("40_64", "40-64"),
            Option("65_79", "65-79"),
            Option("80_plus", "80+"),
            Option("unknown", "Unbekannt"),
        ),
    ),
    DemographicField(
        id="thirdPersonLanguagePreference",
        label="Welche Sprache passt für die Fragen am besten?",
        options=(
            Option("de", "Deutsch"),
            Option("en", "Englisch"),
            Option("both", "Beides"),
        ),
    ),
)


# =============================================================================
# Paths
# =============================================================================

PATH_STEPS: Mapping[Path, tuple[Step, ...]] = MappingProxyType({
    Path.A: (
        _step(
            "A1", StepKind.MULTI,
            "Worüber würdest du als Erstes gern erzählen? Eher über dein Leben allgemein, "
            "bestimmte Erlebnisse oder Menschen, die dir wichtig sind?",
            _go("A2"),
            options=(
                Option("general_life", "Mein Leben allgemein"),
                Option("specific_experiences", "Bestimmte Erlebnisse"),
                Option("important_people", "Wichtige Menschen"),
            ),
        ),
        _step(
            "A2", StepKind.SINGLE,
            "Für wen möchtest du das vor allem festhalten?",
            _go("A3"),
            options=(
                Option("for_myself", "Für mich selbst"),
                Option("for_family", "Für Familie"),
                Option("for_children", "Für Kinder/Enkel"),
                Option("for_public_archive", "Für ein offenes Vermächtnis"),
            ),
        ),
        _step(
            "A3", StepKind.DEMOGRAPHICS,
            "Wir möchten dir möglichst passende Fragen stellen. "
            "Bitte ordne dich deshalb im Folgenden zu:",
            _go("A4"),
            fields=DEMOGRAPHIC_FIELDS_STANDARD,
        ),
        _step(
            "A4", StepKind.DECISION,
            "Alles klar, möchtest du jetzt direkt mit deiner ersten Erzählung starten?",
            {
                "start_storytelling": Location.neutral(),
                "go_registration": Location.registration(),
            },
            options=(
                Option("start_storytelling", "Ja, zuerst Storytelling starten"),
                Option("go_registration", "Nein, direkt Registrierung"),
            ),
        ),
    ),
    Path.B: (
        _step(
            "B1", StepKind.SINGLE,
            "Wie möchtest du deine Erlebnisse, Erfahrungen, Gedanken am liebsten festhalten?",
            _go("B2"),
            options=(
                Option("guided_questions", "Mit geführten Fragen"),
                Option("free_talk", "Erst frei erzählen, dann strukturieren"),
                Option(
                    "book_call",
                    "Mit professioneller Begleitung",
                    description="Du kannst direkt einen Termin buchen.",
                    cta_label="Termin buchen",
                    cta_url="https://calendar.app.google/hTLQhe9koce2qVXp9",
                ),
            ),
        ),
        _step(
            "B2", StepKind.SINGLE,
            "Wie persönlich dürfen die Fragen für dich am Anfang sein?",
            _go("B3"),
            options=(
                Option("light", "Eher leicht und vorsichtig"),
                Option("medium", "Ausgewogen"),
                Option("deep", "Ich bin offen für tiefere Fragen"),
            ),
        ),
        _step(
            "B3", StepKind.MULTI,
            "Was ist dir bei Nality am wichtigsten?",
            _go("B4"),
            options=(
                Option("clarity", "Klare Struktur"),
                Option("privacy", "Datenschutz"),
                Option("pace", "Eigenes Tempo"),
                Option("family_legacy", "Etwas für Familie hinterlassen"),
            ),
        ),
        _step(
            "B4", StepKind.DECISION,
            "Damit wir dir passende Fragen in deinem Tempo anbieten können, richten wir dir "
            "jetzt deinen persönlichen Bereich ein. Du bestimmst jederzeit, was du teilen möchtest.",
            {
                "continue_guided": Location.at_step("B5"),
                "jump_to_neutral": Location.neutral(),
            },
            options=(
                Option("continue_guided", "Weiter zur Zuordnung"),
                Option("jump_to_neutral", "Vorher neutral Storytelling ansehen"),
            ),
        ),
        _step(
            "B5", StepKind.DEMOGRAPHICS,
            "Im ersten Schritt hast du die Möglichkeit dich zuzuordnen. "
            "Das hilft uns, dir möglichst passende Fragen zu stellen.",
            _TO_REGISTRATION,
            fields=DEMOGRAPHIC_FIELDS_STANDARD,
        ),
    ),
    Path.C: (
        _step(
            "C1", StepKind.INFO,
            "Super, dann richten wir in weniger als 1 Minute einen persönlichen Erinnerungsraum ein.",
            _go("C2"),
        ),
        _step(
            "C2", StepKind.DEMOGRAPHICS,
            "Um den persönlichen Erinnerungsraum bestmöglich nutzen zu können, "
            "teilen Sie uns bitte mit:",
            _TO_REGISTRATION,
            fields=DEMOGRAPHIC_FIELDS_THIRD_PERSON,
        ),
    ),
})

# Where "back" from registration lands, and where "back" from neutral lands
_REGISTRATION_ANCHORS = {Path.A: "A4", Path.B: "B5", Path.C: "C2"}
_NEUTRAL_RETURNS = {Path.A: "A4", Path.B: "B4", Path.C: "C2"}

_PATH_LABELS = {
    Path.A: "Pfad A - Extrovertiert",
    Path.B: "Pfad B - Geführter Einstieg",
    Path.C: "Pfad C - Für Dritte",
}


# =============================================================================
# Queries
# =============================================================================


def path_for_entry_answer(entry_id: str | int) -> Path:
    """
    Map an entry answer to its path.

    Accepts "entry_1".."entry_5" or the bare numbers 1-5.
    Raises InvalidEntryAnswer for anything else.
    """
    key = entry_id
    if isinstance(entry_id, int) and not isinstance(entry_id, bool):
        key = f"entry_{entry_id}"

    if not isinstance(key, str) or key not in ENTRY_ROUTING:
        raise InvalidEntryAnswer(f"Unknown entry answer: {entry_id!r}")

    return ENTRY_ROUTING[key]


def step_by_id(path: Path, step_id: str | None) -> Step | None:
    """Look up a step within one path. Returns None when it does not exist."""
    for step in PATH_STEPS.get(path, ()):
        if step.id == step_id:
            return step
    return None


def step_index(path: Path, step_id: str | None) -> int:
    """Position of a step within its path, or -1 when not found."""
    for index, step in enumerate(PATH_STEPS.get(path, ())):
        if step.id == step_id:
            return index
    return -1


def first_step(path: Path) -> Step:
    steps = PATH_STEPS[path]
    if not steps:
        raise StepGraphError(f"Missing first step for path {path.value}")
    return steps[0]


def previous_step(path: Path, step_id: str) -> Step | None:
    index = step_index(path, step_id)
    if index <= 0:
        return None
    return PATH_STEPS[path][index - 1]


def registration_anchor_step_id(path: Path) -> str:
    """Step a user returns to when backing out of registration."""
    return _REGISTRATION_ANCHORS[path]


def neutral_return_step_id(path: Path) -> str:
    """Step a user returns to when backing out of the neutral block."""
    return _NEUTRAL_RETURNS[path]


def path_label(path: Path) -> str:
    return _PATH_LABELS[path]


def progress_percent(path: Path, step_id: str | None) -> int:
    """Progress through a path for the header bar. 0 when the step is unknown."""
    index = step_index(path, step_id)
    if index < 0:
        return 0
    return round((index + 1) * 100 / len(PATH_STEPS[path]))


def validate_step_graph(graph: Mapping[Path, tuple[Step, ...]] = PATH_STEPS) -> None:
    """
    Check that every transition targets a step of its own path
    (or the neutral/registration stages).

    Raises StepGraphError on the first violation.
    """
    for path, steps in graph.items():
        ids = [s.id for s in steps]
        if len(ids) != len(set(ids)):
            raise StepGraphError(f"Duplicate step ids in path {path.value}")

        for step in steps:
            if step.path != path:
                raise StepGraphError(f"Step {step.id} declared in path {path.value} belongs to {step.path.value}")
            if not step.transitions:
                raise StepGraphError(f"Step {step.id} has no transitions")
            for option_id, target in step.transitions.items():
                if target.stage == Stage.PATH and target.step_id not in ids:
                    raise StepGraphError(
                        f"Step {step.id} option {option_id!r} targets unknown step {target.step_id!r}"
                    )
                if target.stage == Stage.IDLE:
                    raise StepGraphError(f"Step {step.id} option {option_id!r} targets the idle stage")
            if step.kind == StepKind.DECISION:
                option_ids = {o.id for o in step.options}
                if option_ids != set(step.transitions):
                    raise StepGraphError(f"Decision step {step.id} options and transitions differ")


def describe_graph() -> dict:
    """JSON-ready dump of the entry question and all paths (for UI clients)."""
    return {
        "entry": {
            "question": ENTRY_QUESTION,
            "options": [
                {**o.to_dict(), "path": ENTRY_ROUTING[o.id].value}
                for o in ENTRY_OPTIONS
            ],
        },
        "paths": {
            path.value: {
                "label": path_label(path),
                "steps": [s.to_dict() for s in steps],
            }
            for path, steps in PATH_STEPS.items()
        },
    }


validate_step_graph()
