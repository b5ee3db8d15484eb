import csv
import io
import json
from datetime import date

from admin_panel import (
    CSV_HEADERS,
    check_password,
    compute_stats,
    department_name,
    export_csv,
    export_filename,
    filter_rows,
    flatten_answers,
    format_timestamp,
    normalize_rows,
    position_name,
    toggle_local_archive,
)
from storage import parse_maybe_json

SURVEY_ANSWERS = [
    {"questionText": "Какие задачи?", "answers": ["Отчетность", "Свой вариант"], "customAnswers": ['Сверка "1С"']},
    {"questionText": "Как решаете?", "answer": "Коллегиально", "customAnswer": ""},
]


def _rows():
    return [
        {
            "id": "b",
            "department": "it",
            "position": "Сотрудник",
            "completed_at": "2024-05-02T09:15:00+00:00",
            "answers": json.dumps(SURVEY_ANSWERS, ensure_ascii=False),
            "questions": "[]",
        },
        {
            "id": "a",
            "department": "diagnostic",
            "position": "diagnostic",
            "completed_at": "2024-05-01T08:00:00+00:00",
            "answers": json.dumps(
                {"responses": [{"questionText": "Данные собираются", "rating": 4}], "totalScore": 16}
            ),
            "questions": "[]",
        },
    ]


def test_password_check():
    assert check_password("125690", "125690")
    assert check_password(" 125690 ", "125690")
    assert not check_password("", "125690")
    assert not check_password(None, "125690")
    assert not check_password("12345", "125690")


def test_parse_maybe_json_unwraps_double_encoding():
    payload = {"totalScore": 12}
    assert parse_maybe_json(json.dumps(json.dumps(payload))) == payload
    assert parse_maybe_json("not json") == "not json"
    assert parse_maybe_json([1, 2]) == [1, 2]


def test_flatten_answers_formats():
    text = flatten_answers(json.dumps(SURVEY_ANSWERS, ensure_ascii=False))
    assert text == (
        'Q1: Какие задачи?\nA: Отчетность, Свой вариант (Свой: Сверка "1С")'
        "\n---\n"
        "Q2: Как решаете?\nA: Коллегиально"
    )
    assert flatten_answers({"responses": [{"questionText": "Данные", "rating": 3}]}) == "Q1: Данные\nA: 3"
    assert flatten_answers("oops") == ""


def test_csv_export_round_trips_through_csv_reader():
    content = export_csv(_rows())
    parsed = list(csv.reader(io.StringIO(content)))

    assert parsed[0] == CSV_HEADERS
    assert len(parsed) == 3
    survey = parsed[1]
    assert survey[0] == "b"
    assert survey[3] == "02.05.2024, 09:15:00"
    assert 'Сверка "1С"' in survey[4]
    assert "\n---\n" in survey[4]
    assert parsed[2][4] == "Q1: Данные собираются\nA: 4"


def test_csv_export_quotes_every_field_without_trailing_newline():
    rows = [{"id": "x1", "department": "hr", "position": "top", "completed_at": None, "answers": SURVEY_ANSWERS}]
    content = export_csv(rows)
    header, body = content.split("\n", 1)
    assert header == '"ID","Отдел","Позиция","Дата завершения","Вопросы и ответы"'
    assert body.startswith('"x1","hr","top","","Q1: Какие задачи?\nA: Отчетность, Свой вариант (Свой: Сверка ""1С"")')
    assert not content.endswith("\n")
    assert export_csv([]) == header


def test_export_filename():
    assert export_filename(date(2024, 5, 1)) == "quiz-responses-2024-05-01.csv"


def test_normalize_rows_without_archived_column_uses_local_ids():
    rows, has_column = normalize_rows(_rows(), ["a"])
    assert has_column is False
    assert [row["archived"] for row in rows] == [False, True]
    assert rows[0]["answers"][1]["answer"] == "Коллегиально"
    assert [row["id"] for row in filter_rows(rows, archived=True)] == ["a"]


def test_normalize_rows_prefers_archived_column():
    raw = [dict(row, archived=index == 0) for index, row in enumerate(_rows())]
    rows, has_column = normalize_rows(raw, ["a"])
    assert has_column is True
    assert [row["archived"] for row in rows] == [True, False]


def test_stats_and_labels():
    rows, _ = normalize_rows(_rows())
    stats = compute_stats(rows)
    assert stats["total"] == 2
    assert stats["by_department"] == {"it": 1, "diagnostic": 1}
    assert stats["latest"].day == 2
    assert department_name("diagnostic") == "Диагностика"
    assert department_name("it") == "IT отдел"
    assert position_name("top") == "Руководитель"
    assert position_name("Сотрудник") == "Сотрудник"
    assert format_timestamp("garbage") == "garbage"


def test_toggle_local_archive():
    assert toggle_local_archive([], "a", currently_archived=False) == ["a"]
    assert toggle_local_archive(["a", "b"], "a", currently_archived=True) == ["b"]
