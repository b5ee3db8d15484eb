"""Quiz flow state machine shared by the diagnostic and the department survey.

The flow is a plain object that serializes to a dict so it can live in the
signed Flask session between requests.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from quiz_data import (
    CUSTOM_OPTION,
    DEPARTMENT_BY_ID,
    DIAGNOSTIC_DEPARTMENT,
    DIAGNOSTIC_QUESTIONS,
    RATING_VALUES,
    Question,
    find_section,
)
from scoring import DiagnosticScore, score_diagnostic

VARIANT_DIAGNOSTIC = "diagnostic"
VARIANT_SURVEY = "survey"

STEP_INTRO = "intro"
STEP_DEPARTMENT = "department"
STEP_POSITION = "position"
STEP_QUESTIONS = "questions"
STEP_CONTACT = "contact"
STEP_COMPLETE = "complete"

PROGRESS_EXPIRY_SECONDS = 7 * 24 * 60 * 60


class FlowError(Exception):
    pass


@dataclass
class Answer:
    values: List[str] = field(default_factory=list)
    custom: str = ""

    def is_filled(self) -> bool:
        if not self.values:
            return False
        if CUSTOM_OPTION in self.values and not self.custom.strip():
            return False
        return True


@dataclass
class ContactInfo:
    name: str
    phone: str
    email: str
    company: str = ""
    telegram: str = ""
    wants_deep_audit: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "company": self.company,
            "phone": self.phone,
            "telegram": self.telegram,
            "email": self.email,
            "wantsDeepAudit": self.wants_deep_audit,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "ContactInfo":
        return cls(
            name=str(data.get("name") or ""),
            phone=str(data.get("phone") or ""),
            email=str(data.get("email") or ""),
            company=str(data.get("company") or ""),
            telegram=str(data.get("telegram") or ""),
            wants_deep_audit=bool(data.get("wantsDeepAudit")),
        )

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> Tuple["ContactInfo", List[str]]:
        contact = cls(
            name=(form.get("name") or "").strip(),
            phone=(form.get("phone") or "").strip(),
            email=(form.get("email") or "").strip(),
            company=(form.get("company") or "").strip(),
            telegram=(form.get("telegram") or "").strip(),
            wants_deep_audit=form.get("wants_deep_audit") in ("1", "on", "true"),
        )
        errors: List[str] = []
        if not contact.name:
            errors.append("Укажите имя.")
        if not contact.phone:
            errors.append("Укажите телефон.")
        if not contact.email or "@" not in contact.email:
            errors.append("Укажите корректный email.")
        if form.get("consent") not in ("1", "on", "true"):
            errors.append("Необходимо согласие на обработку персональных данных.")
        return contact, errors


@dataclass
class QuizFlow:
    variant: str = VARIANT_DIAGNOSTIC
    step: str = STEP_INTRO
    index: int = 0
    answers: Dict[int, Answer] = field(default_factory=dict)
    department: Optional[str] = None
    position: Optional[str] = None
    contact: Optional[ContactInfo] = None
    audit_number: Optional[int] = None
    saved_at: float = 0.0

    @property
    def questions(self) -> List[Question]:
        if self.variant == VARIANT_DIAGNOSTIC:
            return DIAGNOSTIC_QUESTIONS
        section = find_section(self.department, self.position)
        return list(section.questions) if section else []

    @property
    def current_question(self) -> Optional[Question]:
        if self.step != STEP_QUESTIONS:
            return None
        questions = self.questions
        if 0 <= self.index < len(questions):
            return questions[self.index]
        return None

    @property
    def current_answer(self) -> Answer:
        question = self.current_question
        if question is None:
            return Answer()
        return self.answers.get(question.id, Answer())

    @property
    def is_last_question(self) -> bool:
        return self.index >= len(self.questions) - 1

    @property
    def progress_percent(self) -> int:
        total = len(self.questions)
        if not total:
            return 0
        return int((self.index + 1) / total * 100)

    def start(self) -> None:
        self.answers = {}
        self.index = 0
        self.contact = None
        self.audit_number = None
        if self.variant == VARIANT_DIAGNOSTIC:
            self.step = STEP_QUESTIONS
        else:
            self.department = None
            self.position = None
            self.step = STEP_DEPARTMENT

    def choose_department(self, department_id: str) -> None:
        if department_id not in DEPARTMENT_BY_ID:
            raise FlowError(f"Unknown department {department_id!r}")
        self.department = department_id
        self.position = None
        self.step = STEP_POSITION

    def choose_position(self, position: str) -> None:
        if find_section(self.department, position) is None:
            raise FlowError(f"Unknown position {position!r} for department {self.department!r}")
        self.position = position
        self.answers = {}
        self.index = 0
        self.step = STEP_QUESTIONS

    def _allowed_values(self, question: Question) -> Tuple[str, ...]:
        return question.options if question.options else RATING_VALUES

    def select(self, values: List[str], custom: str = "") -> None:
        question = self.current_question
        if question is None:
            raise FlowError("No active question")
        allowed = self._allowed_values(question)
        chosen: List[str] = []
        for value in values:
            if value in allowed and value not in chosen:
                chosen.append(value)
        if not question.multiple:
            chosen = chosen[:1]
        if CUSTOM_OPTION not in chosen:
            custom = ""
        self.answers[question.id] = Answer(values=chosen, custom=custom)

    def can_advance(self) -> bool:
        if self.current_question is None:
            return False
        return self.current_answer.is_filled()

    def advance(self) -> bool:
        """Move past the active question.

        Returns True when the survey variant has no questions left and is
        ready to be submitted.
        """
        if not self.can_advance():
            raise FlowError("The active question has no answer")
        if not self.is_last_question:
            self.index += 1
            return False
        if self.variant == VARIANT_DIAGNOSTIC:
            self.step = STEP_CONTACT
            return False
        return True

    def back(self) -> None:
        if self.step == STEP_CONTACT:
            self.step = STEP_QUESTIONS
            self.index = len(self.questions) - 1
        elif self.step == STEP_QUESTIONS:
            if self.index > 0:
                self.index -= 1
            elif self.variant == VARIANT_DIAGNOSTIC:
                self.step = STEP_INTRO
            else:
                self.step = STEP_POSITION
        elif self.step == STEP_POSITION:
            self.step = STEP_DEPARTMENT

    def set_contact(self, contact: ContactInfo) -> None:
        if self.step != STEP_CONTACT:
            raise FlowError("Contact details are only collected after the last question")
        self.contact = contact

    def is_answered(self) -> bool:
        questions = self.questions
        return bool(questions) and all(
            self.answers.get(question.id, Answer()).is_filled() for question in questions
        )

    def responses(self) -> List[Tuple[int, int, str]]:
        result = []
        for question in DIAGNOSTIC_QUESTIONS:
            answer = self.answers.get(question.id)
            if answer and answer.values:
                result.append((question.id, int(answer.values[0]), question.category))
        return result

    def score(self) -> DiagnosticScore:
        return score_diagnostic(self.responses())

    def build_record(self) -> Dict[str, object]:
        """Return the row inserted into the responses table."""
        if not self.is_answered():
            raise FlowError("Not every question has been answered")
        questions = self.questions
        serialized_questions = json.dumps([q.to_dict() for q in questions], ensure_ascii=False)

        if self.variant == VARIANT_DIAGNOSTIC:
            if self.contact is None:
                raise FlowError("Contact details are missing")
            score = self.score()
            answers: object = {
                "responses": [
                    {
                        "questionId": question.id,
                        "questionText": question.text,
                        "rating": int(self.answers[question.id].values[0]),
                        "category": question.category,
                    }
                    for question in questions
                ],
                "totalScore": score.total,
                "categoryScores": score.category_scores,
                "interpretation": score.interpretation.title,
                "contactInfo": self.contact.to_dict(),
            }
            return {
                "department": DIAGNOSTIC_DEPARTMENT,
                "position": DIAGNOSTIC_DEPARTMENT,
                "questions": serialized_questions,
                "answers": json.dumps(answers, ensure_ascii=False),
            }

        processed = []
        for question in questions:
            answer = self.answers[question.id]
            customs = [answer.custom] if answer.custom else []
            if question.multiple:
                processed.append(
                    {"questionText": question.text, "answers": list(answer.values), "customAnswers": customs}
                )
            else:
                processed.append(
                    {"questionText": question.text, "answer": answer.values[0], "customAnswer": answer.custom}
                )
        return {
            "department": self.department,
            "position": self.position,
            "questions": serialized_questions,
            "answers": json.dumps(processed, ensure_ascii=False),
        }

    def complete(self, audit_number: Optional[int] = None) -> None:
        self.audit_number = audit_number
        self.step = STEP_COMPLETE

    def to_dict(self, now: Optional[float] = None) -> Dict[str, object]:
        return {
            "variant": self.variant,
            "step": self.step,
            "index": self.index,
            "answers": {
                str(question_id): {"values": answer.values, "custom": answer.custom}
                for question_id, answer in self.answers.items()
            },
            "department": self.department,
            "position": self.position,
            "contact": self.contact.to_dict() if self.contact else None,
            "audit_number": self.audit_number,
            "saved_at": time.time() if now is None else now,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "QuizFlow":
        raw_answers = data.get("answers") or {}
        answers = {
            int(question_id): Answer(values=list(item.get("values") or []), custom=str(item.get("custom") or ""))
            for question_id, item in raw_answers.items()  # type: ignore[union-attr]
        }
        contact = data.get("contact")
        return cls(
            variant=str(data.get("variant") or VARIANT_DIAGNOSTIC),
            step=str(data.get("step") or STEP_INTRO),
            index=int(data.get("index") or 0),  # type: ignore[arg-type]
            answers=answers,
            department=data.get("department"),  # type: ignore[arg-type]
            position=data.get("position"),  # type: ignore[arg-type]
            contact=ContactInfo.from_dict(contact) if isinstance(contact, Mapping) else None,
            audit_number=data.get("audit_number"),  # type: ignore[arg-type]
            saved_at=float(data.get("saved_at") or 0.0),  # type: ignore[arg-type]
        )


def load_flow(data: Optional[Mapping[str, object]], variant: str, now: Optional[float] = None) -> QuizFlow:
    """Restore saved progress, or start fresh when none exists or it has expired."""
    now = time.time() if now is None else now
    if data and data.get("variant") == variant:
        try:
            flow = QuizFlow.from_dict(data)
        except (TypeError, ValueError, AttributeError):
            return QuizFlow(variant=variant)
        if now - flow.saved_at <= PROGRESS_EXPIRY_SECONDS:
            return flow
    return QuizFlow(variant=variant)
