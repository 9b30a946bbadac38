from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from .errors import InvalidOperationError, NotFoundError


CORE_TRAITS: tuple[str, ...] = (
    "extroversion",
    "openness",
    "conscientiousness",
    "agreeableness",
    "emotional_stability",
    "growth_mindset",
    "collectivism",
    "spiritual_inclination",
)
LIFESTYLE_TRAITS: tuple[str, ...] = (
    "veganism_support",
    "environmental_consciousness",
    "health_focus",
    "social_justice",
)
ALL_TRAITS: tuple[str, ...] = CORE_TRAITS + LIFESTYLE_TRAITS

NEUTRAL_SCORE = Decimal("0.50")
TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0")
_ONE = Decimal("1")


def to_fixed(value: Any) -> Decimal:
    """Coerce a number into a 2-decimal fixed-point value, rounding half up."""
    if isinstance(value, bool):
        raise ValueError(f"not a numeric value: {value!r}")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float, str)):
        try:
            d = Decimal(str(value).strip())
        except ArithmeticError as exc:
            raise ValueError(f"not a numeric value: {value!r}") from exc
    else:
        raise ValueError(f"not a numeric value: {value!r}")
    if not d.is_finite():
        raise ValueError(f"not a finite value: {value!r}")
    return d.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _unit_interval(value: Any, *, label: str) -> Decimal:
    d = to_fixed(value)
    if d < _ZERO or d > _ONE:
        raise ValueError(f"{label} must be within [0, 1], got {d}")
    return d


@dataclass(frozen=True)
class TraitVector:
    extroversion: Decimal
    openness: Decimal
    conscientiousness: Decimal
    agreeableness: Decimal
    emotional_stability: Decimal
    growth_mindset: Decimal
    collectivism: Decimal
    spiritual_inclination: Decimal
    veganism_support: Decimal
    environmental_consciousness: Decimal
    health_focus: Decimal
    social_justice: Decimal

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> TraitVector:
        missing = [t for t in ALL_TRAITS if values.get(t) is None]
        if missing:
            raise ValueError(f"trait vector is missing: {', '.join(missing)}")
        return cls(**{t: _unit_interval(values[t], label=t) for t in ALL_TRAITS})

    @classmethod
    def neutral(cls) -> TraitVector:
        return cls(**{t: NEUTRAL_SCORE for t in ALL_TRAITS})

    def value(self, trait: str) -> Decimal:
        return getattr(self, trait)

    def as_decimals(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def as_dict(self) -> dict[str, float]:
        return {name: float(v) for name, v in self.as_decimals().items()}


@dataclass(frozen=True)
class QuestionDefinition:
    id: str
    options: tuple[str, ...]
    # weights[i] is the partial trait contribution of options[i]
    weights: tuple[dict[str, Decimal], ...]
    question_number: int = 0
    category: str = ""
    text: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> QuestionDefinition:
        qid = str(row.get("id") or "").strip()
        if not qid:
            raise ValueError("question definition requires an id")
        options = row.get("options")
        raw_weights = row.get("scoring_weights")
        if not isinstance(options, list) or not options:
            raise ValueError(f"question {qid}: options must be a non-empty list")
        if not isinstance(raw_weights, list) or len(raw_weights) != len(options):
            raise ValueError(f"question {qid}: scoring_weights must list one table per option")

        weights: list[dict[str, Decimal]] = []
        for idx, table in enumerate(raw_weights):
            if not isinstance(table, dict):
                raise ValueError(f"question {qid}: weight table {idx} must be an object")
            parsed: dict[str, Decimal] = {}
            for trait, weight in table.items():
                if trait not in ALL_TRAITS:
                    raise ValueError(f"question {qid}: unknown trait {trait!r}")
                parsed[trait] = _unit_interval(weight, label=f"question {qid} weight {trait}")
            weights.append(parsed)

        return cls(
            id=qid,
            options=tuple(str(o) for o in options),
            weights=tuple(weights),
            question_number=int(row.get("question_number") or 0),
            category=str(row.get("category") or ""),
            text=str(row.get("question_text") or ""),
        )

    def weights_for(self, option_index: int) -> dict[str, Decimal]:
        if option_index < 0 or option_index >= len(self.weights):
            raise InvalidOperationError(
                f"Option index {option_index} is out of range for question {self.id}",
                code="invalid_option",
            )
        return self.weights[option_index]

    def option_text(self, option_index: int) -> str:
        self.weights_for(option_index)
        return self.options[option_index]

    def public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question_number": self.question_number,
            "category": self.category,
            "question": self.text,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class Answer:
    question_id: str
    option_index: int


def index_questions(questions: Iterable[QuestionDefinition]) -> dict[str, QuestionDefinition]:
    return {q.id: q for q in questions}


def compute_trait_vector(questions: Mapping[str, QuestionDefinition], answers: Iterable[Answer]) -> TraitVector:
    sums: dict[str, Decimal] = {t: _ZERO for t in ALL_TRAITS}
    counts: dict[str, int] = {t: 0 for t in ALL_TRAITS}
    seen: set[str] = set()

    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            raise NotFoundError(f"Question not found: {answer.question_id}", code="question_not_found")
        if answer.question_id in seen:
            raise InvalidOperationError(
                f"Question {answer.question_id} was answered more than once",
                code="duplicate_answer",
            )
        seen.add(answer.question_id)
        for trait, weight in question.weights_for(answer.option_index).items():
            sums[trait] += weight
            counts[trait] += 1

    scores = {
        t: (sums[t] / counts[t]).quantize(TWO_PLACES, rounding=ROUND_HALF_UP) if counts[t] else NEUTRAL_SCORE
        for t in ALL_TRAITS
    }
    return TraitVector(**scores)
