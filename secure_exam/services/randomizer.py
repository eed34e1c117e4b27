"""
Per-candidate question ordering.

Groups (a header plus its ordered members) move as one contiguous block while
standalone questions interleave freely around them. Display numbers are given
to answerable questions only, so Q1..Qn stays contiguous however the blocks
land.
"""
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

_system_random = random.SystemRandom()


class QuestionLike(Protocol):
    id: int
    question_group_id: Optional[str]
    is_group_header: bool
    group_order: Optional[int]


@dataclass(frozen=True)
class AssignedQuestion:
    question_id: int
    position: int
    sequence: Optional[int]
    is_group_header: bool


@dataclass
class QuestionGroup:
    group_id: str
    header: Optional[QuestionLike]
    members: List[QuestionLike]

    def flatten(self) -> List[QuestionLike]:
        return ([self.header] if self.header is not None else []) + self.members


Unit = Union[QuestionGroup, QuestionLike]


def _member_key(question: QuestionLike):
    # Missing group_order sorts after explicit ones, then by id for stability.
    return (question.group_order is None, question.group_order or 0, question.id)


def partition(questions: Sequence[QuestionLike]):
    """Split questions into standalone questions and ordered groups."""
    standalone: List[QuestionLike] = []
    groups: Dict[str, QuestionGroup] = {}
    for question in questions:
        group_id = question.question_group_id
        if group_id is None:
            standalone.append(question)
            continue
        group = groups.setdefault(group_id, QuestionGroup(group_id, None, []))
        if question.is_group_header and group.header is None:
            group.header = question
        else:
            group.members.append(question)
    for group in groups.values():
        group.members.sort(key=_member_key)
    return standalone, list(groups.values())


def build_assignment(
    questions: Sequence[QuestionLike],
    rng: Optional[random.Random] = None,
) -> List[AssignedQuestion]:
    """Return the randomized display order for one candidate.

    The result holds exactly the input questions, each once. Headers keep
    ``sequence=None``; every other question is numbered 1..n in display order.
    ``rng`` defaults to an OS-entropy source and should only be supplied by tests.
    """
    rng = rng or _system_random
    standalone, groups = partition(questions)

    rng.shuffle(standalone)
    rng.shuffle(groups)
    units: List[Unit] = [*groups, *standalone]
    rng.shuffle(units)

    flattened: List[QuestionLike] = []
    for unit in units:
        if isinstance(unit, QuestionGroup):
            flattened.extend(unit.flatten())
        else:
            flattened.append(unit)

    assignment: List[AssignedQuestion] = []
    sequence = 0
    for position, question in enumerate(flattened):
        if question.is_group_header:
            assignment.append(AssignedQuestion(question.id, position, None, True))
            continue
        sequence += 1
        assignment.append(AssignedQuestion(question.id, position, sequence, False))

    logger.debug("Built assignment: %d questions, %d groups", sequence, len(groups))
    return assignment
