from datetime import date, datetime
from io import BytesIO

import pytest
from PyPDF2 import PdfReader

from flow import ContactInfo
from pdf_report import (
    PAGE_NUMBER_Y,
    SAFE_ZONE_BOTTOM,
    RectOp,
    ReportCanvas,
    ReportData,
    ReportError,
    TextOp,
    format_audit_number,
    generate_report,
    layout_report,
    mm_to_pt,
    report_filename,
    sanitize_for_pdf,
    transliterate,
    wrap_lines,
)
from scoring import score_from_category_scores


def narrow_measure(text, size):
    return len(text) * size * 0.5


def wide_measure(text, size):
    return len(text) * size * 4


def _report(scores=None, wants_deep_audit=False, audit_number=42):
    scores = scores or {"data": 2, "processes": 2, "people": 1, "results": 2}
    return ReportData(
        audit_number=audit_number,
        score=score_from_category_scores(scores),
        contact=ContactInfo(
            name="Ivan Petrov",
            phone="+375291234567",
            email="ivan@example.com",
            company="Acme",
            wants_deep_audit=wants_deep_audit,
        ),
        completed_at=datetime(2024, 5, 1, 12, 30),
    )


def _texts(canvas):
    return [op.text for ops in canvas.pages for op in ops if isinstance(op, TextOp)]


@pytest.mark.parametrize("measure", [narrow_measure, wide_measure])
def test_content_stays_above_footer(measure):
    canvas = layout_report(_report(), measure, today=date(2024, 5, 1))
    for ops in canvas.pages:
        for op in ops:
            if isinstance(op, TextOp) and not op.footer:
                assert op.y <= SAFE_ZONE_BOTTOM
            if isinstance(op, RectOp):
                assert op.y + op.height <= SAFE_ZONE_BOTTOM + 10


@pytest.mark.parametrize("measure", [narrow_measure, wide_measure])
def test_every_page_is_numbered_with_final_count(measure):
    canvas = layout_report(_report(), measure, today=date(2024, 5, 1))
    total = canvas.page_count
    assert total >= 2
    assert canvas.page_labels == [f"{index} из {total}" for index in range(1, total + 1)]
    for ops in canvas.pages:
        footers = [op for op in ops if isinstance(op, TextOp) and op.footer]
        assert len(footers) == 1
        assert footers[0].y == PAGE_NUMBER_Y


def test_first_page_carries_summary():
    canvas = layout_report(_report(), narrow_measure, today=date(2024, 5, 1))
    first_page = [op.text for op in canvas.pages[0] if isinstance(op, TextOp)]
    assert "№ 000042" in first_page
    assert "7" in first_page
    assert "01.05.2024" in first_page


def test_low_scores_list_category_warnings():
    texts = _texts(layout_report(_report(), narrow_measure, today=date(2024, 5, 1)))
    assert sum(1 for text in texts if text.startswith("⚠️")) == 4


def test_promo_box_shown_without_deep_audit_request():
    canvas = layout_report(_report(), narrow_measure, today=date(2024, 5, 1))
    texts = _texts(canvas)
    assert "Акция действует до: 11.05.2024" in texts
    assert any(isinstance(op, RectOp) for ops in canvas.pages for op in ops)


def test_deep_audit_request_replaces_promo():
    canvas = layout_report(_report(wants_deep_audit=True), narrow_measure, today=date(2024, 5, 1))
    texts = _texts(canvas)
    assert "✅ Запрошена углубленная диагностика" in texts
    assert not any(text.startswith("Акция действует") for text in texts)
    assert not any(isinstance(op, RectOp) for ops in canvas.pages for op in ops)


def test_long_contact_lines_are_wrapped():
    data = _report()
    long_company = " ".join(["Корпорация"] * 40)
    data = ReportData(
        audit_number=data.audit_number,
        score=data.score,
        contact=ContactInfo(name="Ivan", phone="1", email="i@example.com", company=long_company),
        completed_at=data.completed_at,
    )
    canvas = layout_report(data, narrow_measure, today=date(2024, 5, 1))
    company_lines = [text for text in _texts(canvas) if text.startswith("Корпорация")]

    assert len(company_lines) > 1
    assert " ".join(company_lines) == long_company
    assert all(narrow_measure(text, 10) <= mm_to_pt(155) for text in company_lines)


def test_tall_block_is_split_across_pages():
    canvas = ReportCanvas(measure=narrow_measure)
    canvas.y = canvas.content_start
    lines = canvas.write_wrapped(" ".join(["слово"] * 400), 25, 9, max_width=20, line_height=5)
    assert lines > 60
    assert canvas.page_count > 1
    for ops in canvas.pages:
        assert all(op.y <= canvas.bottom for op in ops)


def test_wrap_lines_keeps_long_word_on_its_own_line():
    lines = wrap_lines("a bb supercalifragilistic c", 4, len)
    assert lines == ["a bb", "supercalifragilistic", "c"]


def test_report_data_from_stored_row():
    row = {
        "audit_number": 12,
        "created_at": "2024-05-01T10:00:00+00:00",
        "answers": '{"categoryScores": {"data": 4, "processes": 4, "people": 4, "results": 3}, '
        '"contactInfo": {"name": "Anna", "phone": "1", "email": "a@b.c", "wantsDeepAudit": true}}',
    }
    data = ReportData.from_row(row)
    assert data.audit_number == 12
    assert data.score.total == 15
    assert data.contact.wants_deep_audit is True
    assert data.completed_at.year == 2024


def test_report_data_rejects_survey_rows():
    with pytest.raises(ReportError):
        ReportData.from_row({"audit_number": 1, "answers": "[]"})


def test_text_helpers():
    assert format_audit_number(5) == "000005"
    assert sanitize_for_pdf("🔴 Зона — риска") == "Зона - риска"
    assert transliterate("Щука Ёж") == "Shchuka Ezh"
    assert report_filename("Ivan Petrov", date(2024, 5, 1)) == "Diagnostika_AI_Ivan_Petrov_2024-05-01.pdf"
    assert report_filename("  ", date(2024, 5, 1)) == "Diagnostika_AI_report_2024-05-01.pdf"


def test_generate_report_merges_each_page_onto_template(tmp_path):
    pdf_bytes = generate_report(_report(), template_path=tmp_path / "missing.pdf", today=date(2024, 5, 1))
    assert pdf_bytes.startswith(b"%PDF")
    reader = PdfReader(BytesIO(pdf_bytes))
    assert len(reader.pages) >= 2
    assert "AI READINESS AUDIT" in reader.pages[-1].extract_text()
