import os
import logging

import streamlit as st
from openai import OpenAIError

from survey_builder import (
    MODEL,
    SURVEY_LANGUAGE,
    SUPPORTED_LANGUAGES,
    TEMP,
    create_survey_from_text,
    make_client,
    make_openai_drafter,
    neat_preview,
    read_source_text,
    survey_to_dict,
    survey_to_json,
)
from survey_export import (
    EXPORT_FILE_NAME,
    EXPORT_MIME,
    export_responses_csv,
    make_share_links,
    responses_table,
)
from survey_models import (
    BINARY,
    LIKERT_5,
    MULTIPLE_CHOICE,
    SINGLE_CHOICE,
    ResponseValidationError,
    SchemaError,
    SourceFileError,
    SurveyError,
)
from survey_session import (
    begin_generation,
    delete_survey,
    fail_generation,
    finish_generation,
    is_generating,
    is_open,
    new_session,
    record_answer,
    reset_upload,
    set_error,
    set_share_links,
    submit_response,
    toggle_lifecycle,
)

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Streamlit config (ONLY ONCE, MUST BE FIRST st.* call)
# ------------------------------------------------------------
st.set_page_config(page_title="Research Survey Builder", layout="wide")
st.title("Research Survey Builder")

# ------------------------------------------------------------
# Session state
# ------------------------------------------------------------
if "session" not in st.session_state:
    st.session_state.session = new_session()
if "last_upload" not in st.session_state:
    st.session_state.last_upload = None
if "confirm_delete" not in st.session_state:
    st.session_state.confirm_delete = False
if "form_nonce" not in st.session_state:
    # bumped after each accepted response so the respondent form starts empty
    st.session_state.form_nonce = 0
if "flash" not in st.session_state:
    st.session_state.flash = None
if "uploader_nonce" not in st.session_state:
    # bumped on delete so the file uploader comes back empty
    st.session_state.uploader_nonce = 0


# -----------------------
# Small helpers (UI-side only)
# -----------------------
def reset_on_upload_change(uploaded) -> None:
    """A different file (or no file) was picked: the old survey and its responses go away."""
    sig = (uploaded.name, uploaded.size) if uploaded is not None else None
    prev = st.session_state.last_upload
    if sig != prev:
        st.session_state.last_upload = sig
        if prev is not None or sig is not None:
            st.session_state.session = reset_upload(st.session_state.session)
            st.session_state.confirm_delete = False


def build_survey(uploaded, *, language: str, model: str, temperature: float) -> None:
    session = st.session_state.session
    try:
        text = read_source_text(uploaded.getvalue(), uploaded.name)
    except SourceFileError as e:
        st.session_state.session = set_error(reset_upload(session), str(e))
        return

    session, token = begin_generation(session)
    st.session_state.session = session

    try:
        client = make_client()
        drafter = make_openai_drafter(client, language=language, model=model, temperature=temperature)
        with st.spinner("Processing…"):
            survey = create_survey_from_text(text, drafter, language=language)
    except SchemaError as e:
        st.session_state.session = fail_generation(
            st.session_state.session, token, f"The AI failed to build the survey correctly. {e}"
        )
        return
    except (OpenAIError, RuntimeError) as e:
        logger.exception("Survey build failed")
        st.session_state.session = fail_generation(st.session_state.session, token, f"Survey build failed: {e}")
        return
    except Exception as e:
        logger.exception("Unexpected error while building survey")
        st.session_state.session = fail_generation(
            st.session_state.session, token, f"An unknown error occurred: {e}"
        )
        return
    except BaseException:
        # rerun/stop raised mid-request: release the build slot before streamlit unwinds the script
        st.session_state.session = fail_generation(
            st.session_state.session, token, "Survey build was interrupted. Please try again."
        )
        raise

    st.session_state.session = finish_generation(st.session_state.session, token, survey)


def answer_widget(q, key: str):
    options = list(q.options)
    label = f"{q.id}. {q.text}"
    if q.type == MULTIPLE_CHOICE:
        return st.multiselect(label, options, default=[], key=key)
    if q.type in {SINGLE_CHOICE, LIKERT_5, BINARY} or options:
        horizontal = q.type in {LIKERT_5, BINARY}
        return st.radio(label, options, index=None, horizontal=horizontal, key=key) or ""
    return st.text_area(label, height=90, placeholder="Type your answer here…", key=key)


# -----------------------
# Sidebar: Config
# -----------------------
st.sidebar.header("Config")
st.sidebar.markdown(
    "- Upload a **.txt** file with your questions\n"
    "- Click **Build survey**\n"
    "- Collect answers in **Respond**\n"
    "- Download results in **Responses**\n"
)

st.sidebar.subheader("OpenAI")
model = st.sidebar.text_input("OPENAI_MODEL", value=MODEL)
temp = st.sidebar.slider(
    "OPENAI_TEMPERATURE",
    min_value=0.0,
    max_value=1.0,
    value=TEMP,
    step=0.05,
)
langs = sorted(SUPPORTED_LANGUAGES)
language = st.sidebar.selectbox(
    "Survey language",
    langs,
    index=langs.index(SURVEY_LANGUAGE) if SURVEY_LANGUAGE in langs else 0,
)

key_mode = st.sidebar.radio("API key source", ["Use env var", "Paste in UI"], index=0)
if key_mode == "Paste in UI":
    ui_key = st.sidebar.text_input("OPENAI_API_KEY", type="password", value="")
    if ui_key:
        os.environ["OPENAI_API_KEY"] = ui_key

base_url = st.sidebar.text_input("App URL (for share links)", value=os.getenv("APP_BASE_URL", "http://localhost:8501/"))

# Tabs
tab_build, tab_respond, tab_responses, tab_advanced = st.tabs(
    ["Build", "Respond", "Responses", "Advanced"]
)

# -----------------------
# BUILD TAB
# -----------------------
with tab_build:
    st.subheader("Question file")
    st.caption("Upload your questions as a plain-text (.txt) file; it will be turned into a survey automatically.")

    uploaded = st.file_uploader("Choose file", type=["txt"], key=f"source_file_{st.session_state.uploader_nonce}")
    reset_on_upload_change(uploaded)

    build_btn = st.button(
        "Build survey",
        type="primary",
        disabled=uploaded is None or is_generating(st.session_state.session),
    )
    if build_btn and uploaded is not None:
        build_survey(uploaded, language=language, model=model, temperature=temp)

    session = st.session_state.session
    if session.error:
        st.error(session.error)

    survey = session.survey
    if survey is not None:
        st.divider()
        st.subheader(survey.title or "(untitled survey)")

        if is_open(session):
            st.success("Status: open for responses")
        else:
            st.error("Status: closed")

        c1, c2, c3 = st.columns([1, 1, 1])
        with c1:
            if st.button("Close responses" if is_open(session) else "Open responses", key="toggle_status"):
                st.session_state.session = toggle_lifecycle(session)
                st.rerun()
        with c2:
            if st.button("Generate links", key="gen_links"):
                st.session_state.session = set_share_links(session, make_share_links(base_url))
                st.rerun()
        with c3:
            if st.button("Delete survey", key="delete_survey"):
                st.session_state.confirm_delete = True

        if st.session_state.confirm_delete:
            st.warning("Delete this survey? All questions and responses will be lost permanently.")
            d1, d2 = st.columns(2)
            with d1:
                if st.button("Yes, delete", key="confirm_delete_yes"):
                    st.session_state.session = delete_survey(st.session_state.session)
                    st.session_state.confirm_delete = False
                    st.session_state.uploader_nonce += 1
                    st.rerun()
            with d2:
                if st.button("Cancel", key="confirm_delete_no"):
                    st.session_state.confirm_delete = False
                    st.rerun()

        links = session.share_links
        if links is not None:
            st.caption("Editor link")
            st.code(links.editor, language="text")
            st.caption("Participant link")
            st.code(links.participant, language="text")

        for q in survey.questions:
            with st.container(border=True):
                st.markdown(f"**{q.id}. {q.text}**")
                if q.options:
                    st.markdown(" · ".join(q.options))
                else:
                    st.caption(f"({q.type})")

        st.download_button(
            label="Download survey.json",
            data=survey_to_json(survey).encode("utf-8"),
            file_name="survey.json",
            mime="application/json",
        )

# -----------------------
# RESPOND TAB
# -----------------------
with tab_respond:
    session = st.session_state.session
    if session.survey is None:
        st.info("Build a survey in the **Build** tab first.")
    elif not is_open(session):
        st.error("This survey is currently closed and is not accepting new responses.")
    else:
        survey = session.survey
        st.subheader(survey.title or "(untitled survey)")

        if st.session_state.flash:
            st.success(st.session_state.flash)
            st.session_state.flash = None

        nonce = st.session_state.form_nonce
        with st.form(f"respondent_form_{nonce}"):
            values = {}
            for q in survey.questions:
                values[q.id] = answer_widget(q, key=f"answer_{nonce}_{q.id}")
            submitted = st.form_submit_button("Submit response", type="primary")

        if submitted:
            working = session
            for qid, v in values.items():
                working = record_answer(working, qid, v)
            try:
                st.session_state.session = submit_response(working)
            except ResponseValidationError as e:
                # keep what was typed so the respondent can fix it and resubmit
                st.session_state.session = working
                st.warning(str(e))
            except SurveyError as e:
                st.error(str(e))
            else:
                st.session_state.form_nonce += 1
                st.session_state.flash = "Thank you, your response was recorded."
                st.rerun()

# -----------------------
# RESPONSES TAB
# -----------------------
with tab_responses:
    session = st.session_state.session
    if session.survey is None:
        st.info("Build a survey in the **Build** tab first.")
    elif not session.responses:
        st.info("No responses collected yet.")
    else:
        survey = session.survey
        st.subheader(f"Collected responses ({len(session.responses)})")
        st.dataframe(responses_table(survey, session.responses))
        st.download_button(
            label="Download (CSV)",
            data=export_responses_csv(survey, session.responses),
            file_name=EXPORT_FILE_NAME,
            mime=EXPORT_MIME,
        )

# -----------------------
# ADVANCED TAB
# -----------------------
with tab_advanced:
    st.subheader("Advanced (optional)")
    session = st.session_state.session
    if session.survey is None:
        st.info("Build a survey in the **Build** tab first.")
    else:
        st.code(neat_preview(session.survey, show_types=True), language="text")
        st.json(survey_to_dict(session.survey))

    if session.logs:
        st.markdown("**Recent logs**")
        st.code("\n\n".join(session.logs[-10:]), language="text")
