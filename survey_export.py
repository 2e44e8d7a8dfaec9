"""
survey_export.py

Turns stored answers into what the owner sees and downloads:
- display_value: one answer as text (likert label -> 1..5, multi-select joined)
- responses_table: the on-screen table, one row per respondent
- export_responses_csv: the survey_responses.csv download (UTF-8 with BOM, every cell quoted)
"""

import csv
import secrets
import string
import time
from typing import Any, List, Sequence

import pandas as pd

from survey_models import (
    LIKERT_5,
    MultipleAnswer,
    ShareLinks,
    Survey,
    SurveyQuestion,
    SurveyResponse,
    as_answer,
)

EXPORT_FILE_NAME = "survey_responses.csv"
EXPORT_MIME = "text/csv"
BOM = "\ufeff"


def display_value(question: SurveyQuestion, answer: Any) -> str:
    if answer is None:
        return ""
    answer = as_answer(answer)
    if isinstance(answer, MultipleAnswer):
        return ", ".join(answer.values)
    value = answer.value
    if question.type == LIKERT_5 and value in question.options:
        return str(question.options.index(value) + 1)
    return value


def _display_rows(survey: Survey, responses: Sequence[SurveyResponse]) -> List[List[str]]:
    return [
        [display_value(q, res.get(q.key)) for q in survey.questions]
        for res in responses
    ]


def responses_table(survey: Survey, responses: Sequence[SurveyResponse]) -> pd.DataFrame:
    """One row per respondent (index `#`, 1-based), one column per question (`Q<id>`)."""
    df = pd.DataFrame(
        _display_rows(survey, responses),
        columns=[f"Q{q.id}" for q in survey.questions],
    )
    df.index = pd.RangeIndex(start=1, stop=len(df) + 1, name="#")
    return df


def export_responses_csv(survey: Survey, responses: Sequence[SurveyResponse]) -> bytes:
    """
    Header = question texts, then one row per response in submission order.
    Returns b"" when there is nothing to export; callers should not offer the download then.
    """
    if not responses or not survey.questions:
        return b""

    df = pd.DataFrame(
        _display_rows(survey, responses),
        columns=[q.text for q in survey.questions],
    )
    text = df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    if text.endswith("\n"):
        text = text[:-1]
    return (BOM + text).encode("utf-8")


# -------------------
# SHARE LINKS
# -------------------
_B36 = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    if n <= 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def make_share_token() -> str:
    return _base36(int(time.time() * 1000)) + _base36(secrets.randbits(52))


def make_share_links(base_url: str) -> ShareLinks:
    """Editor and participant links. Tokens are opaque strings; nothing resolves them back to a session."""
    base = (base_url or "").split("?", 1)[0].split("#", 1)[0]
    editor_id = make_share_token()
    survey_id = make_share_token()
    return ShareLinks(
        editor=f"{base}?editor_id={editor_id}",
        participant=f"{base}?survey_id={survey_id}",
        editor_id=editor_id,
        survey_id=survey_id,
    )
