"""Tests for the Streamlit app: rendering and the respondent form through streamlit's AppTest
harness, and the build flow by calling build_survey directly with a fake OpenAI client."""

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from openai import OpenAIError
from streamlit.runtime.scriptrunner_utils.exceptions import RerunException, StopException
from streamlit.testing.v1 import AppTest

from survey_models import MultipleAnswer, SingleAnswer
from survey_session import (
    install_survey,
    is_generating,
    new_session,
    record_answer,
    submit_response,
    toggle_lifecycle,
)

APP_PATH = str(Path(__file__).resolve().parents[1] / "app_streamlit.py")


def run_app(session=None) -> AppTest:
    at = AppTest.from_file(APP_PATH, default_timeout=30)
    if session is not None:
        at.session_state["session"] = session
    return at.run()


def button_labelled(at: AppTest, label: str):
    return next(b for b in at.button if b.label == label)


class RaisingClient:
    def __init__(self, exc: BaseException):
        self.exc = exc
        self.responses = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        raise self.exc


@pytest.fixture
def app(monkeypatch):
    import app_streamlit

    monkeypatch.setattr(app_streamlit.st, "session_state", SimpleNamespace(session=new_session()))
    return app_streamlit


@pytest.fixture
def uploaded():
    data = b"Which campus do you attend? North / South\n"
    return SimpleNamespace(name="questions.txt", size=len(data), getvalue=lambda: data)


def build(app, uploaded):
    app.build_survey(uploaded, language="en", model="gpt-4o-mini", temperature=0.2)
    return app.st.session_state.session


# -----------------------
# Rendering
# -----------------------
@pytest.mark.ui
def test_app_renders_without_a_survey():
    at = run_app()
    assert not at.exception
    assert at.title[0].value == "Research Survey Builder"
    assert any("Build a survey" in i.value for i in at.info)


@pytest.mark.ui
def test_closed_survey_shows_notice_instead_of_form(en_survey):
    at = run_app(toggle_lifecycle(install_survey(new_session(), en_survey)))
    assert not at.exception
    assert any("not accepting new responses" in e.value for e in at.error)


@pytest.mark.ui
def test_collected_responses_are_tabulated(en_survey):
    s = install_survey(new_session(), en_survey)
    s = record_answer(s, 1, "North")
    s = record_answer(s, 2, ["Gym"])
    s = record_answer(s, 3, "Agree")
    s = record_answer(s, 4, "fine")
    s = submit_response(s)

    at = run_app(s)
    assert not at.exception
    assert any("Collected responses (1)" in h.value for h in at.subheader)
    assert len(at.dataframe) == 1
    df = at.dataframe[0].value
    assert list(df.columns) == ["Q1", "Q2", "Q3", "Q4"]
    assert df.iloc[0]["Q3"] == "4"


# -----------------------
# Respondent form
# -----------------------
@pytest.mark.ui
def test_incomplete_submit_warns_and_keeps_answers(en_survey):
    at = run_app(install_survey(new_session(), en_survey))
    at.radio(key="answer_0_1").set_value("North")
    button_labelled(at, "Submit response").click().run()

    assert not at.exception
    assert any('First unanswered question: "Which services do you use?"' in w.value for w in at.warning)
    session = at.session_state["session"]
    assert session.responses == ()
    assert session.working["q-1"] == SingleAnswer("North")
    assert at.session_state["form_nonce"] == 0
    assert at.radio(key="answer_0_1").value == "North"


@pytest.mark.ui
def test_complete_submit_records_one_response_and_resets_form(en_survey):
    at = run_app(install_survey(new_session(), en_survey))
    at.radio(key="answer_0_1").set_value("North")
    at.multiselect(key="answer_0_2").set_value(["Gym", "Library"])
    at.radio(key="answer_0_3").set_value("Agree")
    at.text_area(key="answer_0_4").input("Longer opening hours please")
    button_labelled(at, "Submit response").click().run()

    assert not at.exception
    session = at.session_state["session"]
    assert len(session.responses) == 1
    recorded = session.responses[0]
    assert recorded["q-1"] == SingleAnswer("North")
    assert isinstance(recorded["q-2"], MultipleAnswer)
    assert set(recorded["q-2"].values) == {"Gym", "Library"}
    assert recorded["q-3"] == SingleAnswer("Agree")
    assert session.working == {}

    assert at.session_state["form_nonce"] == 1
    assert at.radio(key="answer_1_1").value is None
    assert any("your response was recorded" in s.value for s in at.success)


# -----------------------
# Delete
# -----------------------
@pytest.mark.ui
def test_confirmed_delete_drops_survey_and_clears_uploader(en_survey):
    at = run_app(install_survey(new_session(), en_survey))
    at.button(key="delete_survey").click().run()
    at.button(key="confirm_delete_yes").click().run()

    assert not at.exception
    assert at.session_state["session"].survey is None
    assert at.session_state["uploader_nonce"] == 1
    assert button_labelled(at, "Build survey").disabled


# -----------------------
# Build flow
# -----------------------
@pytest.mark.ui
def test_build_installs_normalized_survey(app, uploaded, monkeypatch, fake_client, raw_payload):
    client = fake_client(json.dumps(raw_payload))
    monkeypatch.setattr(app, "make_client", lambda: client)

    session = build(app, uploaded)

    assert session.survey.title == "Campus Services"
    assert session.error is None
    assert not is_generating(session)
    assert client.responses.calls[0]["model"] == "gpt-4o-mini"


@pytest.mark.ui
def test_build_with_unparseable_reply_reports_schema_error(app, uploaded, monkeypatch, fake_client):
    monkeypatch.setattr(app, "make_client", lambda: fake_client("not json at all"))

    session = build(app, uploaded)

    assert session.survey is None
    assert session.error.startswith("The AI failed to build the survey correctly.")
    assert not is_generating(session)


@pytest.mark.ui
def test_build_with_transport_error_reports_failure(app, uploaded, monkeypatch):
    monkeypatch.setattr(app, "make_client", lambda: RaisingClient(OpenAIError("quota exceeded")))

    session = build(app, uploaded)

    assert session.survey is None
    assert session.error == "Survey build failed: quota exceeded"
    assert not is_generating(session)


@pytest.mark.ui
@pytest.mark.parametrize("interruption", [RerunException(None), StopException()])
def test_interrupted_build_releases_slot_and_can_be_retried(
    app, uploaded, monkeypatch, fake_client, raw_payload, interruption
):
    monkeypatch.setattr(app, "make_client", lambda: RaisingClient(interruption))
    with pytest.raises(type(interruption)):
        build(app, uploaded)

    session = app.st.session_state.session
    assert not is_generating(session)
    assert session.survey is None

    monkeypatch.setattr(app, "make_client", lambda: fake_client(json.dumps(raw_payload)))
    assert build(app, uploaded).survey.title == "Campus Services"
