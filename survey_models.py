"""
survey_models.py

Shared data structures for the survey builder:
- Survey / SurveyQuestion (what the normalizer produces)
- SingleAnswer / MultipleAnswer (what a respondent gives per question)
- SurveyResponse (one respondent's answers, keyed by question key)
- the error taxonomy raised by the builder, recorder and lifecycle gate
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union


# -------------------
# QUESTION TYPES
# -------------------
SINGLE_CHOICE = "single-choice"
MULTIPLE_CHOICE = "multiple-choice"
LIKERT_5 = "likert-5"
TEXT = "text"
BINARY = "binary"

# Kinds the AI is asked to produce. BINARY is accepted from a payload but never requested.
AI_QUESTION_TYPES = [SINGLE_CHOICE, MULTIPLE_CHOICE, LIKERT_5, TEXT]


# -------------------
# DATA STRUCTURES
# -------------------
@dataclass(frozen=True)
class SurveyQuestion:
    id: int
    text: str
    type: str
    options: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return question_key(self.id)


@dataclass(frozen=True)
class Survey:
    title: str
    questions: Tuple[SurveyQuestion, ...] = ()

    def find(self, question_id: int) -> Optional[SurveyQuestion]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


@dataclass(frozen=True)
class SingleAnswer:
    value: str

    def is_empty(self) -> bool:
        return not self.value.strip()


@dataclass(frozen=True)
class MultipleAnswer:
    values: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return len(self.values) == 0


Answer = Union[SingleAnswer, MultipleAnswer]
SurveyResponse = Dict[str, Answer]


def question_key(question_id: int) -> str:
    return f"q-{question_id}"


def as_answer(value: Any) -> Answer:
    """Coerce a raw widget value (str, list/tuple of str, or an Answer) into an Answer."""
    if isinstance(value, (SingleAnswer, MultipleAnswer)):
        return value
    if isinstance(value, (list, tuple)):
        return MultipleAnswer(values=tuple(str(v) for v in value))
    if value is None:
        return SingleAnswer(value="")
    return SingleAnswer(value=str(value))


@dataclass(frozen=True)
class ShareLinks:
    editor: str
    participant: str
    editor_id: str
    survey_id: str


# -------------------
# ERRORS
# -------------------
class SurveyError(Exception):
    """Base class for every recoverable survey error. The session stays usable after any of them."""


class SchemaError(SurveyError):
    """The AI returned unparseable or structurally incomplete survey data."""


class ResponseValidationError(SurveyError):
    def __init__(self, question: SurveyQuestion):
        self.question = question
        super().__init__(f'Please answer all questions before submitting. First unanswered question: "{question.text}"')


class LifecycleError(SurveyError):
    def __init__(self, message: str = "This survey is currently closed and is not accepting new responses."):
        super().__init__(message)


class SourceFileError(SurveyError):
    """The uploaded question file could not be read."""


class SurveyNotReadyError(SurveyError):
    def __init__(self, message: str = "No survey has been built yet."):
        super().__init__(message)


class GenerationInProgressError(SurveyError):
    def __init__(self, message: str = "A survey is already being built. Please wait for it to finish."):
        super().__init__(message)
