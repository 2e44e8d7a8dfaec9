"""
survey_builder.py

Text-to-survey builder: turns a plain-text list of questions into a structured Survey.

Core goal:
- Hand the raw question text to OpenAI and ask for a survey JSON matching a fixed schema.
- Normalize whatever comes back so the rest of the app can trust it:
  ids always present and unique, likert-5 options always the canonical scale.
- Reject payloads that are not usable instead of installing a half-built survey.

How the LLM is used:
1) One structured-output call per uploaded file (title + questions).
2) Nothing else. Options, ids and likert labels are fixed up locally, never re-asked.

Env vars:
- OPENAI_API_KEY required to build a survey
- OPENAI_MODEL default: gpt-4o-mini
- OPENAI_TEMPERATURE default: 0.2
- OPENAI_TIMEOUT default: 60 (seconds, handed to the OpenAI client)
- SURVEY_LANGUAGE default: ar (ar or en; prompt language + likert/yes-no labels)

Run:
  python survey_builder.py questions.txt [out.json]

Requires:
  pip install pydantic python-dotenv openai streamlit pandas
"""

import os
import sys
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

from survey_models import (
    AI_QUESTION_TYPES,
    BINARY,
    LIKERT_5,
    TEXT,
    SchemaError,
    SourceFileError,
    Survey,
    SurveyQuestion,
)

logger = logging.getLogger(__name__)


# -------------------
# CONFIG
# -------------------
OUT_PATH = "survey.json"


def _get_setting(name: str, default: str) -> str:
    try:
        import streamlit as st
        v = st.secrets.get(name)
        return str(v) if v is not None else os.getenv(name, default)
    except Exception:
        return os.getenv(name, default)


MODEL = _get_setting("OPENAI_MODEL", "gpt-4o-mini")
TEMP = float(_get_setting("OPENAI_TEMPERATURE", "0.2"))
TIMEOUT = float(_get_setting("OPENAI_TIMEOUT", "60"))
SURVEY_LANGUAGE = _get_setting("SURVEY_LANGUAGE", "ar").strip().lower() or "ar"

SUPPORTED_LANGUAGES = {"ar", "en"}

# Canonical 5-point agreement scale, lowest to highest.
LIKERT_LABELS: Dict[str, List[str]] = {
    "ar": ["لا أوافق بشدة", "لا أوافق", "محايد", "أوافق", "أوافق بشدة"],
    "en": ["Strongly disagree", "Disagree", "Neutral", "Agree", "Strongly agree"],
}

BINARY_LABELS: Dict[str, List[str]] = {
    "ar": ["نعم", "لا"],
    "en": ["Yes", "No"],
}


def resolve_language(language: Optional[str] = None) -> str:
    lang = (language or SURVEY_LANGUAGE or "ar").strip().lower()
    return lang if lang in SUPPORTED_LANGUAGES else "ar"


# -------------------
# OPENAI (Structured Output)
# -------------------
SURVEY_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "Survey title"},
        "questions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "number"},
                    "text": {"type": "string", "description": "Question text"},
                    "type": {"type": "string", "enum": list(AI_QUESTION_TYPES)},
                    "options": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["id", "text", "type", "options"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["title", "questions"],
    "additionalProperties": False,
}


class QuestionDraft(BaseModel):
    id: Optional[Any] = None
    text: str = Field(min_length=1)
    type: str
    options: Optional[List[Any]] = None


class SurveyDraft(BaseModel):
    title: str
    questions: List[QuestionDraft]


def build_prompt(source_text: str, language: str) -> str:
    labels = LIKERT_LABELS[language]
    quoted = ", ".join(f'"{x}"' for x in labels)
    if language == "ar":
        return (
            "أنت خبير في بناء استبيانات البحث العلمي. يحتوي النص التالي على أسئلة استبيان قدمها المستخدم.\n"
            "حوّل النص إلى كائن JSON منظم وفق القواعد التالية:\n"
            "1. استخرج العنوان الرئيسي للاستبيان إن وجد، وإلا اترك العنوان فارغاً.\n"
            '2. اختر لكل سؤال النوع الأنسب من بين: "single-choice", "multiple-choice", "likert-5", "text".\n'
            f'3. في أسئلة "likert-5" يجب أن تكون الخيارات بالضبط: {quoted}.\n'
            '4. في أسئلة "single-choice" و "multiple-choice" استخرج الخيارات من النص كما هي.\n'
            '5. أسئلة "text" مفتوحة، لذا تكون مصفوفة "options" فارغة.\n'
            "6. رقّم الأسئلة بالترتيب بدءاً من 1.\n"
            "7. التزم بمخطط JSON المطلوب حرفياً.\n\n"
            f"النص:\n```\n{source_text}\n```\n"
            "أجب بكائن JSON فقط."
        )
    return (
        "You are an expert in building research surveys. The text below contains survey questions supplied by a user.\n"
        "Convert it into a structured JSON object using these rules:\n"
        "1. Extract the main survey title if there is one, otherwise leave the title empty.\n"
        '2. Pick the best type for each question from: "single-choice", "multiple-choice", "likert-5", "text".\n'
        f'3. For "likert-5" questions the options must be exactly: {quoted}.\n'
        '4. For "single-choice" and "multiple-choice" questions, take the options from the text as written.\n'
        '5. "text" questions are open-ended, so their "options" array is empty.\n'
        "6. Number the questions in order starting at 1.\n"
        "7. Follow the requested JSON schema strictly.\n\n"
        f"Text:\n```\n{source_text}\n```\n"
        "Reply with the JSON object only."
    )


def make_client() -> Any:
    """
    Works in:
    - Local dev: reads OPENAI_API_KEY from env or .env (optional)
    - Streamlit Cloud: reads OPENAI_API_KEY from st.secrets
    """
    # Try Streamlit secrets first (Streamlit Cloud)
    key = None
    try:
        import streamlit as st
        key = st.secrets.get("OPENAI_API_KEY")
    except Exception:
        pass

    # Fallback to env / .env (local)
    if not key:
        load_dotenv()
        key = os.getenv("OPENAI_API_KEY")

    if not key:
        raise RuntimeError(
            "OPENAI_API_KEY not set. Add it to Streamlit secrets or your environment."
        )

    return OpenAI(api_key=key, timeout=TIMEOUT)


def draft_survey_json_openai(
    client: Any,
    *,
    source_text: str,
    language: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> str:
    """Ask the model for a survey JSON document. Returns the raw output text, unparsed."""
    lang = resolve_language(language)
    resp = client.responses.create(
        model=model or MODEL,
        temperature=TEMP if temperature is None else temperature,
        input=[
            {"role": "system", "content": "You convert plain-text questionnaires into structured survey JSON."},
            {"role": "user", "content": build_prompt(source_text, lang)},
        ],
        text={
            "format": {
                "type": "json_schema",
                "name": "survey",
                "schema": SURVEY_JSON_SCHEMA,
                "strict": True,
            }
        },
    )
    return (resp.output_text or "").strip()


SurveyDrafter = Callable[[str], str]


def make_openai_drafter(
    client: Any,
    *,
    language: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> SurveyDrafter:
    def _draft(source_text: str) -> str:
        return draft_survey_json_openai(
            client,
            source_text=source_text,
            language=language,
            model=model,
            temperature=temperature,
        )
    return _draft


# -------------------
# UTILITIES
# -------------------
def _norm_label(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def dedupe_options(options: List[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for o in (options or []):
        t = (o or "").strip()
        if not t:
            continue
        n = _norm_label(t)
        if n in seen:
            continue
        seen.add(n)
        out.append(t)
    return out


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        n = int(value.strip())
        return n if n > 0 else None
    return None


def assign_question_ids(raw_ids: List[Any]) -> List[int]:
    """
    Supplied positive ids are kept (first occurrence wins).
    Missing, non-positive or repeated ids get index + 1, or the next free id above the max if that is taken.
    """
    kept: List[Optional[int]] = []
    used = set()
    for rid in raw_ids:
        n = _positive_int(rid)
        if n is not None and n not in used:
            used.add(n)
            kept.append(n)
        else:
            kept.append(None)

    out: List[int] = []
    for i, n in enumerate(kept):
        if n is None:
            n = i + 1
            if n in used:
                n = max(used) + 1
            used.add(n)
        out.append(n)
    return out


def _normalize_options(qtype: str, options: Optional[List[Any]], language: str) -> List[str]:
    if qtype == LIKERT_5:
        return list(LIKERT_LABELS[language])
    if qtype == TEXT:
        return []
    labels = dedupe_options([str(o) for o in (options or []) if o is not None])
    if qtype == BINARY and not labels:
        return list(BINARY_LABELS[language])
    return labels


# -------------------
# NORMALIZATION
# -------------------
def normalize_survey_payload(payload: Any, language: Optional[str] = None) -> Survey:
    lang = resolve_language(language)
    if not isinstance(payload, dict):
        raise SchemaError("The AI response is not a JSON object.")
    if "title" not in payload:
        raise SchemaError("The AI response has no survey title.")
    if not isinstance(payload.get("questions"), list):
        raise SchemaError("The AI response has no list of questions.")

    try:
        draft = SurveyDraft.model_validate(payload)
    except ValidationError as e:
        raise SchemaError(f"The AI response does not match the survey schema: {e.error_count()} problem(s).") from e

    ids = assign_question_ids([q.id for q in draft.questions])
    questions = []
    for qid, q in zip(ids, draft.questions):
        if not q.text.strip():
            raise SchemaError(f"Question {qid} has no text.")
        qtype = q.type.strip()
        questions.append(
            SurveyQuestion(
                id=qid,
                text=q.text.strip(),
                type=qtype,
                options=tuple(_normalize_options(qtype, q.options, lang)),
            )
        )
    return Survey(title=draft.title.strip(), questions=tuple(questions))


def normalize_survey_json(raw: str, language: Optional[str] = None) -> Survey:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error("Failed to parse survey JSON: %s; payload=%r", e, (raw or "")[:500])
        raise SchemaError("The AI failed to produce a valid survey.") from e
    return normalize_survey_payload(payload, language=language)


def create_survey_from_text(text: str, drafter: SurveyDrafter, language: Optional[str] = None) -> Survey:
    raw = drafter(text)
    survey = normalize_survey_json(raw, language=language)
    logger.info("Built survey %r with %d question(s)", survey.title, len(survey.questions))
    return survey


def read_source_text(data: bytes, filename: str = "") -> str:
    name = (filename or "").strip()
    if name and not name.lower().endswith(".txt"):
        raise SourceFileError("Only plain-text (.txt) files are supported.")
    if isinstance(data, str):
        text = data.lstrip("\ufeff")
    else:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise SourceFileError("Failed to read file.") from e
    if not text.strip():
        raise SourceFileError("The file is empty.")
    return text


# -------------------
# EXPORT (JSON)
# -------------------
def survey_to_dict(survey: Survey) -> Dict[str, Any]:
    return {
        "title": survey.title,
        "questions": [
            {"id": q.id, "text": q.text, "type": q.type, "options": list(q.options)}
            for q in survey.questions
        ],
    }


def survey_to_json(survey: Survey) -> str:
    return json.dumps(survey_to_dict(survey), ensure_ascii=False, indent=2)


# -------------------
# PRETTY PRINT
# -------------------
def neat_preview(survey: Survey, show_types: bool = True) -> str:
    lines: List[str] = []
    lines.append(f"=== {survey.title or '(untitled survey)'} ===\n")
    for q in survey.questions:
        if show_types:
            lines.append(f"Q{q.id} [{q.type}] {q.text}")
        else:
            lines.append(f"Q{q.id} {q.text}")
        for o in q.options:
            lines.append(f"   - {o}")
    return "\n".join(lines)


# -------------------
# MAIN
# -------------------
def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    args = sys.argv[1:]
    src_path = args[0] if args else input("Path to the questions file (.txt): ").strip()
    out_path = args[1] if len(args) > 1 else OUT_PATH

    try:
        with open(src_path, "rb") as f:
            text = read_source_text(f.read(), src_path)
    except OSError as e:
        raise SystemExit(f"Failed to read file: {e}")

    client = make_client()
    survey = create_survey_from_text(text, make_openai_drafter(client))

    with open(out_path, "w", encoding="utf-8") as f:
        f.write(survey_to_json(survey))
    print(f"\n✅ Exported: {out_path}")
    print(neat_preview(survey))


if __name__ == "__main__":
    main()
