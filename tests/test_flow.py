import json

import pytest

from flow import (
    PROGRESS_EXPIRY_SECONDS,
    STEP_COMPLETE,
    STEP_CONTACT,
    STEP_DEPARTMENT,
    STEP_INTRO,
    STEP_POSITION,
    STEP_QUESTIONS,
    VARIANT_DIAGNOSTIC,
    VARIANT_SURVEY,
    ContactInfo,
    FlowError,
    QuizFlow,
    load_flow,
)
from quiz_data import CUSTOM_OPTION, DIAGNOSTIC_DEPARTMENT, DIAGNOSTIC_QUESTIONS, POSITION_EMPLOYEE


def _contact(**overrides):
    values = {"name": "Ivan", "phone": "+375291234567", "email": "ivan@example.com", "company": "Acme"}
    values.update(overrides)
    return ContactInfo(**values)


def _answered_diagnostic(rating="3"):
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    for _ in DIAGNOSTIC_QUESTIONS:
        flow.select([rating])
        flow.advance()
    return flow


def _employee_survey():
    flow = QuizFlow(variant=VARIANT_SURVEY)
    flow.start()
    flow.choose_department("it")
    flow.choose_position(POSITION_EMPLOYEE)
    return flow


def test_diagnostic_starts_at_first_question():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    assert flow.step == STEP_INTRO
    flow.start()
    assert flow.step == STEP_QUESTIONS
    assert flow.current_question.id == 1
    assert flow.progress_percent == 6


def test_cannot_advance_without_answer():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    assert not flow.can_advance()
    with pytest.raises(FlowError):
        flow.advance()
    assert flow.index == 0


def test_values_outside_scale_are_ignored():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    flow.select(["7"])
    assert flow.current_answer.values == []
    assert not flow.can_advance()


def test_single_choice_keeps_first_value():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    flow.select(["2", "5"])
    assert flow.current_answer.values == ["2"]


def test_last_answer_moves_to_contact_step():
    flow = _answered_diagnostic()
    assert flow.step == STEP_CONTACT
    assert flow.current_question is None


def test_back_preserves_answers():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    flow.select(["4"])
    flow.advance()
    flow.back()
    assert flow.index == 0
    assert flow.current_answer.values == ["4"]
    assert flow.can_advance()

    flow.back()
    assert flow.step == STEP_INTRO


def test_back_from_contact_returns_to_last_question():
    flow = _answered_diagnostic()
    flow.back()
    assert flow.step == STEP_QUESTIONS
    assert flow.current_question.id == DIAGNOSTIC_QUESTIONS[-1].id


def test_custom_option_requires_text():
    flow = _employee_survey()
    flow.select(["Ввод данных", CUSTOM_OPTION])
    assert not flow.can_advance()
    flow.select(["Ввод данных", CUSTOM_OPTION], "  ")
    assert not flow.can_advance()
    flow.select(["Ввод данных", CUSTOM_OPTION], "Сверка таблиц")
    assert flow.can_advance()


def test_custom_text_dropped_without_custom_option():
    flow = _employee_survey()
    flow.select(["Ввод данных"], "ignored")
    assert flow.current_answer.custom == ""


def test_survey_steps_and_back_navigation():
    flow = QuizFlow(variant=VARIANT_SURVEY)
    flow.start()
    assert flow.step == STEP_DEPARTMENT
    with pytest.raises(FlowError):
        flow.choose_department("finance")
    flow.choose_department("hr")
    assert flow.step == STEP_POSITION
    with pytest.raises(FlowError):
        flow.choose_position("Стажер")
    flow.choose_position(POSITION_EMPLOYEE)
    assert flow.step == STEP_QUESTIONS
    flow.back()
    assert flow.step == STEP_POSITION
    flow.back()
    assert flow.step == STEP_DEPARTMENT


def test_survey_last_answer_signals_ready():
    flow = _employee_survey()
    flow.select(["Ввод данных"])
    assert flow.advance() is False
    flow.select(["1-2 часа"])
    assert flow.advance() is False
    flow.select(["Нет"])
    assert flow.advance() is True
    assert flow.step == STEP_QUESTIONS


def test_diagnostic_record_carries_scores_and_contact():
    flow = _answered_diagnostic("4")
    flow.set_contact(_contact(wants_deep_audit=True))
    record = flow.build_record()

    assert record["department"] == DIAGNOSTIC_DEPARTMENT
    assert record["position"] == DIAGNOSTIC_DEPARTMENT
    assert len(json.loads(record["questions"])) == 16
    answers = json.loads(record["answers"])
    assert answers["totalScore"] == 16
    assert answers["categoryScores"] == {"data": 4, "processes": 4, "people": 4, "results": 4}
    assert answers["contactInfo"]["wantsDeepAudit"] is True
    assert answers["responses"][0] == {
        "questionId": 1,
        "questionText": DIAGNOSTIC_QUESTIONS[0].text,
        "rating": 4,
        "category": "data",
    }


def test_diagnostic_record_requires_contact():
    flow = _answered_diagnostic()
    with pytest.raises(FlowError):
        flow.build_record()


def test_contact_only_accepted_after_questions():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    with pytest.raises(FlowError):
        flow.set_contact(_contact())


def test_survey_record_uses_single_and_multi_formats():
    flow = _employee_survey()
    flow.select(["Ввод данных", CUSTOM_OPTION], "Сверка таблиц")
    flow.advance()
    flow.select(["3-4 часа"])
    flow.advance()
    flow.select(["Иногда"])
    record = flow.build_record()

    assert record["department"] == "it"
    assert record["position"] == POSITION_EMPLOYEE
    answers = json.loads(record["answers"])
    assert answers[0]["answers"] == ["Ввод данных", CUSTOM_OPTION]
    assert answers[0]["customAnswers"] == ["Сверка таблиц"]
    assert answers[1] == {"questionText": answers[1]["questionText"], "answer": "3-4 часа", "customAnswer": ""}


def test_complete_records_audit_number():
    flow = _answered_diagnostic()
    flow.set_contact(_contact())
    flow.complete(7)
    assert flow.step == STEP_COMPLETE
    assert flow.audit_number == 7


def test_session_serialization_survives_json():
    flow = _answered_diagnostic("2")
    flow.set_contact(_contact())
    restored = QuizFlow.from_dict(json.loads(json.dumps(flow.to_dict(now=100.0))))

    assert restored.step == STEP_CONTACT
    assert restored.answers == flow.answers
    assert restored.contact == flow.contact
    assert restored.saved_at == 100.0


def test_load_flow_restores_recent_progress():
    flow = _answered_diagnostic()
    data = flow.to_dict(now=1000.0)
    restored = load_flow(data, VARIANT_DIAGNOSTIC, now=1000.0 + PROGRESS_EXPIRY_SECONDS)
    assert restored.step == STEP_CONTACT


def test_load_flow_discards_expired_progress():
    data = _answered_diagnostic().to_dict(now=1000.0)
    restored = load_flow(data, VARIANT_DIAGNOSTIC, now=1001.0 + PROGRESS_EXPIRY_SECONDS)
    assert restored.step == STEP_INTRO
    assert restored.answers == {}


def test_load_flow_ignores_other_variant():
    data = _answered_diagnostic().to_dict(now=1000.0)
    restored = load_flow(data, VARIANT_SURVEY, now=1000.0)
    assert restored.variant == VARIANT_SURVEY
    assert restored.step == STEP_INTRO


def test_contact_form_validation():
    contact, errors = ContactInfo.from_form({"name": " Ivan ", "phone": "123", "email": "bad", "wants_deep_audit": "on"})
    assert contact.name == "Ivan"
    assert contact.wants_deep_audit is True
    assert len(errors) == 2

    _, errors = ContactInfo.from_form(
        {"name": "Ivan", "phone": "123", "email": "ivan@example.com", "consent": "1"}
    )
    assert errors == []
