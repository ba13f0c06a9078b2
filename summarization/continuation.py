"""
Auto-continuation of drafts that left questions unanswered.

Each round asks only for the questions still missing, appends the reply
to the draft and recomputes what has been answered. The loop stops when
nothing is missing, when the attempt cap is reached, or as soon as a
round produces nothing.
"""
import re
from typing import Callable, List

from prompts.validators import answered_numbers
from summarization.models import ContinuationResult, ContinuationState, QuestionReference
from utils.errors import PipelineError
from utils.logger import setup_logger
from utils.numerals import normalize_numerals
import config

logger = setup_logger(__name__)

# A repair function receives the missing questions, lowest number first,
# and returns the new answers as markdown.
RepairFn = Callable[[List[QuestionReference]], str]

_TOP_LEVEL_HEADER = re.compile(r"^#{1,2}[ \t]+.*$\n?", re.MULTILINE)


def missing_questions(state: ContinuationState, required: List[QuestionReference]) -> List[QuestionReference]:
    """Required questions not yet answered in the state, ascending."""
    answered = set(state.answered)
    missing = [q for q in required if q.number not in answered]
    return sorted(missing, key=lambda q: int(q.number))


def reduce_round(state: ContinuationState, new_content: str) -> ContinuationState:
    """Fold one round's reply into the accumulator.

    The reply is appended, never substituted. Top level headers in the
    reply are dropped so the draft keeps its single section layout.

    Args:
        state: Accumulator before the round
        new_content: Markdown returned by the round

    Returns:
        New accumulator with the attempt counter advanced
    """
    addition = _TOP_LEVEL_HEADER.sub("", new_content).strip()
    draft_text = state.draft_text.rstrip()
    if addition:
        draft_text = f"{draft_text}\n\n{addition}"

    return ContinuationState(
        draft_text=draft_text,
        answered=list(dict.fromkeys(answered_numbers(normalize_numerals(draft_text)))),
        attempt=state.attempt + 1,
    )


class ContinuationController:
    """Bounded repair loop over missing questions."""

    def __init__(self, max_attempts: int = config.MAX_CONTINUATION_ATTEMPTS):
        self.max_attempts = max_attempts

    def run(
        self,
        draft_text: str,
        questions: List[QuestionReference],
        repair_fn: RepairFn,
    ) -> ContinuationResult:
        """Request missing answers until none are left or attempts run out.

        Args:
            draft_text: Current draft
            questions: Every question the page requires
            repair_fn: Produces answers for the given questions

        Returns:
            ContinuationResult; ``success`` only when nothing is missing
        """
        state = ContinuationState(
            draft_text=draft_text,
            answered=list(dict.fromkeys(answered_numbers(normalize_numerals(draft_text)))),
        )
        missing = missing_questions(state, questions)

        while missing and state.attempt < self.max_attempts:
            numbers = [q.number for q in missing]
            logger.info(f"Continuation round {state.attempt + 1}: requesting {', '.join(numbers)}")

            try:
                reply = repair_fn(missing)
            except PipelineError as e:
                logger.warning(f"Continuation round {state.attempt + 1} failed: {e}")
                state = state.model_copy(update={"attempt": state.attempt + 1})
                break

            if not reply or not reply.strip():
                logger.warning(f"Continuation round {state.attempt + 1} returned no content")
                state = state.model_copy(update={"attempt": state.attempt + 1})
                break

            state = reduce_round(state, reply)
            missing = missing_questions(state, questions)

        if missing:
            logger.warning(
                f"Still missing after {state.attempt} continuation rounds: "
                f"{', '.join(q.number for q in missing)}"
            )

        return ContinuationResult(
            draft_text=state.draft_text,
            success=not missing,
            attempts=state.attempt,
            missing_questions=[q.number for q in missing],
        )
