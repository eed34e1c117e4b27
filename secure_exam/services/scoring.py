"""
Correctness and score calculation for submitted answers.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Iterable, List, Optional, Sequence, Union

SEPARATOR = ","

Selection = Union[str, Sequence[str], None]


@dataclass(frozen=True)
class ScoredAnswer:
    question_id: int
    selected_option: Optional[str]
    is_correct: bool
    partial_score: Optional[Fraction]  # set for multi-select only

    @property
    def contribution(self) -> Fraction:
        if self.partial_score is not None:
            return self.partial_score
        return Fraction(1) if self.is_correct else Fraction(0)


def parse_letters(selection: Selection) -> List[str]:
    """Uppercased, trimmed, de-duplicated and sorted letters of a selection."""
    if selection is None:
        return []
    if isinstance(selection, str):
        parts = selection.split(SEPARATOR)
    else:
        parts = [p for item in selection if item is not None for p in str(item).split(SEPARATOR)]
    return sorted({p.strip().upper() for p in parts if p and p.strip()})


def is_multi_select(allows_multiple: bool, correct_option: Optional[str]) -> bool:
    return bool(allows_multiple) and SEPARATOR in (correct_option or "")


def partial_credit(selected: Iterable[str], correct: Iterable[str]) -> Fraction:
    """+1/k per correct letter chosen, -1/k per wrong one, clamped to [0, 1]."""
    correct_set = set(correct)
    k = len(correct_set)
    if k == 0:
        return Fraction(0)
    selected_set = set(selected)
    hits = len(selected_set & correct_set)
    misses = len(selected_set - correct_set)
    return Fraction(max(0, min(k, hits - misses)), k)


def score_answer(
    question_id: int,
    selection: Selection,
    correct_option: Optional[str],
    allows_multiple: bool,
) -> ScoredAnswer:
    letters = parse_letters(selection)
    if is_multi_select(allows_multiple, correct_option):
        partial = partial_credit(letters, parse_letters(correct_option))
        return ScoredAnswer(
            question_id=question_id,
            selected_option=SEPARATOR.join(letters) or None,
            is_correct=partial == 1,
            partial_score=partial,
        )

    selected = SEPARATOR.join(letters) or None
    expected = (correct_option or "").strip().upper()
    return ScoredAnswer(
        question_id=question_id,
        selected_option=selected,
        is_correct=bool(expected) and selected == expected,
        partial_score=None,
    )


def to_decimal(value: Fraction, places: str = "0.01") -> Decimal:
    return (Decimal(value.numerator) / Decimal(value.denominator)).quantize(
        Decimal(places), rounding=ROUND_HALF_UP
    )


def total_score(answers: Iterable[ScoredAnswer]) -> Decimal:
    """Sum of per-question contributions, rounded to two decimals."""
    return to_decimal(sum((a.contribution for a in answers), Fraction(0)))
