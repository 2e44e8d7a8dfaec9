"""
survey_session.py

Single-session state for one owner and the respondents answering on the same screen.

Every operation takes a SurveySession and returns a new one (deep copy). The input session
is never mutated, so a failed action leaves the caller's state exactly as it was.
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from survey_models import (
    GenerationInProgressError,
    LifecycleError,
    ResponseValidationError,
    ShareLinks,
    Survey,
    SurveyNotReadyError,
    SurveyQuestion,
    SurveyResponse,
    as_answer,
    question_key,
)

logger = logging.getLogger(__name__)

MAX_LOGS = 200


@dataclass
class SurveySession:
    survey: Optional[Survey] = None
    responses: Tuple[SurveyResponse, ...] = ()
    survey_open: bool = True
    working: SurveyResponse = field(default_factory=dict)
    pending_request: Optional[str] = None
    share_links: Optional[ShareLinks] = None
    error: Optional[str] = None
    logs: List[str] = field(default_factory=list)


def new_session() -> SurveySession:
    return SurveySession()


def _clone(session: SurveySession) -> SurveySession:
    return copy.deepcopy(session)


def _log(session: SurveySession, msg: str) -> None:
    session.logs.append(msg)
    if len(session.logs) > MAX_LOGS:
        del session.logs[: len(session.logs) - MAX_LOGS]
    logger.info(msg)


# -------------------
# SURVEY REPLACEMENT
# -------------------
def install_survey(session: SurveySession, survey: Survey) -> SurveySession:
    """Replace the current survey. Responses and the working response are cleared, lifecycle goes back to open."""
    s = _clone(session)
    s.survey = survey
    s.responses = ()
    s.working = {}
    s.survey_open = True
    s.share_links = None
    s.error = None
    _log(s, f"✅ Survey installed: {survey.title or '(untitled)'} ({len(survey.questions)} questions).")
    return s


def _clear_survey(s: SurveySession) -> None:
    s.survey = None
    s.responses = ()
    s.working = {}
    s.survey_open = True
    s.pending_request = None
    s.share_links = None
    s.error = None


def delete_survey(session: SurveySession) -> SurveySession:
    s = _clone(session)
    had_survey = s.survey is not None
    _clear_survey(s)
    if had_survey:
        _log(s, "🗑️ Survey deleted with all of its responses.")
    return s


def reset_upload(session: SurveySession) -> SurveySession:
    """A new source file was picked: drop the current survey and forget any in-flight build."""
    s = _clone(session)
    _clear_survey(s)
    return s


# -------------------
# IN-FLIGHT AI REQUEST
# -------------------
def is_generating(session: SurveySession) -> bool:
    return session.pending_request is not None


def begin_generation(session: SurveySession) -> Tuple[SurveySession, str]:
    if session.pending_request is not None:
        raise GenerationInProgressError()
    s = _clone(session)
    token = uuid.uuid4().hex
    s.pending_request = token
    s.error = None
    return s, token


def finish_generation(session: SurveySession, token: str, survey: Survey) -> SurveySession:
    """Install the survey only if `token` is still the current build attempt; stale results are dropped."""
    if session.pending_request != token:
        logger.warning("Discarding survey from stale build attempt %s", token)
        return session
    s = install_survey(session, survey)
    s.pending_request = None
    return s


def fail_generation(session: SurveySession, token: str, message: str) -> SurveySession:
    if session.pending_request != token:
        return session
    s = _clone(session)
    s.pending_request = None
    s.error = message
    _log(s, f"❌ Survey build failed: {message}")
    return s


# -------------------
# LIFECYCLE
# -------------------
def is_open(session: SurveySession) -> bool:
    return session.survey_open


def toggle_lifecycle(session: SurveySession) -> SurveySession:
    s = _clone(session)
    s.survey_open = not s.survey_open
    _log(s, "🔓 Survey opened for responses." if s.survey_open else "🔒 Survey closed for responses.")
    return s


# -------------------
# RESPONSE RECORDER
# -------------------
def record_answer(session: SurveySession, question_id: int, value: Any) -> SurveySession:
    s = _clone(session)
    s.working[question_key(question_id)] = as_answer(value)
    return s


def first_unanswered(survey: Survey, response: SurveyResponse) -> Optional[SurveyQuestion]:
    for q in survey.questions:
        answer = response.get(q.key)
        if answer is None or answer.is_empty():
            return q
    return None


def submit_response(session: SurveySession) -> SurveySession:
    if session.survey is None:
        raise SurveyNotReadyError()
    if not session.survey_open:
        raise LifecycleError()

    missing = first_unanswered(session.survey, session.working)
    if missing is not None:
        raise ResponseValidationError(missing)

    s = _clone(session)
    s.responses = s.responses + (dict(s.working),)
    s.working = {}
    _log(s, f"✅ Response #{len(s.responses)} recorded.")
    return s


# -------------------
# OWNER EXTRAS
# -------------------
def set_share_links(session: SurveySession, links: ShareLinks) -> SurveySession:
    if session.survey is None:
        raise SurveyNotReadyError()
    s = _clone(session)
    s.share_links = links
    _log(s, "🔗 Share links generated.")
    return s


def set_error(session: SurveySession, message: Optional[str]) -> SurveySession:
    s = _clone(session)
    s.error = message
    return s
