from __future__ import annotations

import csv
import io
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from quiz_data import DEPARTMENT_BY_ID, DIAGNOSTIC_DEPARTMENT, POSITION_EMPLOYEE, POSITION_MANAGER
from storage import parse_maybe_json

CSV_HEADERS = ["ID", "Отдел", "Позиция", "Дата завершения", "Вопросы и ответы"]

LEGACY_POSITIONS: Dict[str, str] = {
    "top": POSITION_MANAGER,
    "middle": POSITION_EMPLOYEE,
    "junior": POSITION_EMPLOYEE,
}


def check_password(candidate: str | None, expected: str) -> bool:
    return bool(candidate) and candidate.strip() == expected


def normalize_rows(rows: Iterable[Dict[str, Any]], local_archived_ids: Sequence[str] = ()) -> Tuple[List[Dict[str, Any]], bool]:
    """Decode JSON fields and resolve the archived flag.

    The archived flag comes from the backend column when the table has one,
    otherwise from the locally kept list of archived ids. Returns the rows and
    whether the column exists.
    """
    rows = list(rows)
    has_column = bool(rows) and "archived" in rows[0]
    archived_ids = set(local_archived_ids)
    normalized = []
    for row in rows:
        item = dict(row)
        answers = parse_maybe_json(item.get("answers"))
        questions = parse_maybe_json(item.get("questions"))
        item["answers"] = answers if answers is not None else []
        item["questions"] = questions if questions is not None else []
        if has_column:
            item["archived"] = item.get("archived") is True
        else:
            item["archived"] = item.get("id") in archived_ids
        normalized.append(item)
    return normalized, has_column


def filter_rows(rows: Iterable[Dict[str, Any]], archived: bool) -> List[Dict[str, Any]]:
    return [row for row in rows if bool(row.get("archived")) == archived]


def department_name(department: str | None) -> str:
    if department == DIAGNOSTIC_DEPARTMENT:
        return "Диагностика"
    entry = DEPARTMENT_BY_ID.get(department or "")
    return entry.name if entry else (department or "")


def position_name(position: str | None) -> str:
    if position in (POSITION_MANAGER, POSITION_EMPLOYEE):
        return position  # type: ignore[return-value]
    return LEGACY_POSITIONS.get(position or "", position or "")


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    text = str(value).replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_timestamp(value: Any) -> str:
    moment = parse_timestamp(value)
    if moment is None:
        return str(value or "")
    return moment.strftime("%d.%m.%Y, %H:%M:%S")


def compute_stats(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    by_department = Counter(row.get("department") for row in rows)
    by_position = Counter(row.get("position") for row in rows)
    latest = parse_timestamp(rows[0].get("completed_at")) if rows else None
    return {
        "total": len(rows),
        "by_department": dict(by_department),
        "by_position": dict(by_position),
        "latest": latest,
    }


def _format_answer(index: int, answer: Dict[str, Any]) -> str:
    question_text = answer.get("questionText", "")
    if isinstance(answer.get("answers"), list):
        answers_str = ", ".join(str(value) for value in answer["answers"])
        customs = answer.get("customAnswers") or []
        custom_str = f" (Свой: {', '.join(str(value) for value in customs)})" if customs else ""
        return f"Q{index}: {question_text}\nA: {answers_str}{custom_str}"
    if "rating" in answer:
        return f"Q{index}: {question_text}\nA: {answer['rating']}"
    custom = answer.get("customAnswer")
    custom_str = f" ({custom})" if custom else ""
    return f"Q{index}: {question_text}\nA: {answer.get('answer', '')}{custom_str}"


def flatten_answers(answers: Any) -> str:
    """Render stored answers as ``Q<n>: question`` / ``A: answer`` blocks."""
    answers = parse_maybe_json(answers)
    if isinstance(answers, dict):
        answers = answers.get("responses") or []
    if not isinstance(answers, list):
        return ""
    return "\n---\n".join(
        _format_answer(index, answer)
        for index, answer in enumerate(answers, start=1)
        if isinstance(answer, dict)
    )


def export_csv(rows: Iterable[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(
            [
                row.get("id", ""),
                row.get("department", ""),
                row.get("position", ""),
                format_timestamp(row.get("completed_at")),
                flatten_answers(row.get("answers")),
            ]
        )
    # no terminator after the last row
    return buffer.getvalue().rstrip("\n")


def export_filename(day: date | None = None) -> str:
    day = day or date.today()
    return f"quiz-responses-{day.isoformat()}.csv"


def toggle_local_archive(archived_ids: Sequence[str], response_id: str, currently_archived: bool) -> List[str]:
    ids = [value for value in archived_ids if value != response_id]
    if not currently_archived:
        ids.append(response_id)
    return ids
