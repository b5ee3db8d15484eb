"""Diagnostic PDF report.

Content is laid out in millimetres on a ``ReportCanvas`` (first pass), page
numbers are stamped once the page count is known (second pass), the pages are
drawn with fpdf2 and every page is merged onto a copy of the template's first
page with PyPDF2.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from fpdf import FPDF
from PyPDF2 import PdfReader, PdfWriter

from flow import ContactInfo
from quiz_data import CATEGORIES, CATEGORY_BY_ID
from scoring import DiagnosticScore, score_from_category_scores
from storage import parse_maybe_json

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
FONT_DIR = BASE_DIR / "fonts"
PDF_FONT_FAMILY = "PTSans"
FONT_CANDIDATES = [
    FONT_DIR / "PTSans-Regular.ttf",
    FONT_DIR / "DejaVuSans.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
]

PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
SAFE_ZONE_TOP = 50.0  # header with logo and QR code above this line
SAFE_ZONE_BOTTOM = 255.0  # footer with contacts below this line
PAGE_NUMBER_Y = 283.0
PAGE_CENTER_X = 105.0
PROMO_DAYS = 10

Color = Tuple[int, int, int]
COLORS: Dict[str, Color] = {
    "text_dark": (10, 10, 10),
    "muted": (120, 120, 120),
    "green": (34, 197, 94),
    "amber": (234, 179, 8),
    "red": (239, 68, 68),
    "white": (255, 255, 255),
    "header": (0, 0, 0),
}

Measure = Callable[[str, float], float]  # (text, font size) -> width in points


class ReportError(Exception):
    pass


def mm_to_pt(mm: float) -> float:
    return mm * 72 / 25.4


def wrap_lines(text: str, max_width_pt: float, measure: Callable[[str], float]) -> List[str]:
    """Greedy word wrap; a single word wider than the line stays on its own line."""
    lines: List[str] = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if measure(candidate) <= max_width_pt:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def score_color(total: int) -> Color:
    if total <= 8:
        return COLORS["red"]
    if total <= 14:
        return COLORS["amber"]
    return COLORS["green"]


def format_audit_number(audit_number: int) -> str:
    return str(audit_number).zfill(6)


@dataclass
class TextOp:
    text: str
    x: float
    y: float
    size: float
    color: Color = COLORS["text_dark"]
    align: str = "left"
    footer: bool = False


@dataclass
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    color: Color = COLORS["muted"]
    thickness: float = 0.5


@dataclass
class RectOp:
    x: float
    y: float
    width: float
    height: float
    color: Color = COLORS["amber"]
    thickness: float = 2.0


Op = Union[TextOp, LineOp, RectOp]


@dataclass
class ReportCanvas:
    """Page-aware layout surface working in millimetres from the page top.

    ``place`` draws at a fixed position on the current page; ``write`` and
    ``write_wrapped`` flow from the cursor ``y`` and open a new page when the
    block would cross the safe bottom.
    """

    measure: Measure
    top: float = SAFE_ZONE_TOP
    bottom: float = SAFE_ZONE_BOTTOM
    pages: List[List[Op]] = field(default_factory=lambda: [[]])
    current: int = 0
    y: float = SAFE_ZONE_TOP
    page_labels: List[str] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def content_start(self) -> float:
        return self.top + 10

    def add_page(self) -> None:
        self.pages.append([])
        self.current = len(self.pages) - 1
        self.y = self.top

    def ensure(self, required: float) -> None:
        if self.y + required > self.bottom:
            self.add_page()
            self.y = self.content_start

    def skip(self, mm: float) -> None:
        self.y += mm

    def wrap(self, text: str, max_width_mm: float, size: float) -> List[str]:
        return wrap_lines(text, mm_to_pt(max_width_mm), lambda value: self.measure(value, size))

    def place(self, text: str, x: float, y: float, size: float, color: Color = COLORS["text_dark"], align: str = "left") -> None:
        self.pages[self.current].append(TextOp(text, x, y, size, color, align))

    def place_wrapped(
        self,
        text: str,
        x: float,
        y: float,
        size: float,
        max_width: float,
        line_height: float,
        color: Color = COLORS["text_dark"],
    ) -> int:
        lines = self.wrap(text, max_width, size)
        for index, line in enumerate(lines):
            self.place(line, x, y + index * line_height, size, color)
        return len(lines)

    def write(
        self,
        text: str,
        x: float,
        size: float,
        advance: float,
        color: Color = COLORS["text_dark"],
        align: str = "left",
        required: Optional[float] = None,
    ) -> None:
        self.ensure(max(required or 0.0, advance, 1.0))
        self.place(text, x, self.y, size, color, align)
        self.y += advance

    def write_wrapped(
        self,
        text: str,
        x: float,
        size: float,
        max_width: float,
        line_height: float,
        color: Color = COLORS["text_dark"],
        after: float = 0.0,
    ) -> int:
        lines = self.wrap(text, max_width, size)
        block_height = len(lines) * line_height
        if block_height <= self.bottom - self.content_start:
            self.ensure(block_height)
        for line in lines:
            # blocks taller than a page are split line by line
            self.ensure(line_height)
            self.place(line, x, self.y, size, color)
            self.y += line_height
        self.y += after
        return len(lines)

    def rule(self, x1: float, x2: float, required: float = 5.0, advance: float = 5.0) -> None:
        self.ensure(required)
        self.pages[self.current].append(LineOp(x1, self.y, x2, self.y))
        self.y += advance

    def box(self, x: float, y: float, width: float, height: float, color: Color = COLORS["amber"]) -> None:
        self.pages[self.current].append(RectOp(x, y, width, height, color))

    def stamp_page_numbers(self) -> None:
        total = self.page_count
        self.page_labels = []
        for index, ops in enumerate(self.pages, start=1):
            label = f"{index} из {total}"
            self.page_labels.append(label)
            ops.append(TextOp(label, PAGE_CENTER_X, PAGE_NUMBER_Y, 9, COLORS["muted"], "center", footer=True))


@dataclass(frozen=True)
class ReportData:
    audit_number: int
    score: DiagnosticScore
    contact: ContactInfo
    completed_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ReportData":
        answers = parse_maybe_json(row.get("answers"))
        if not isinstance(answers, Mapping):
            raise ReportError("Stored answers carry no diagnostic result")
        scores = answers.get("categoryScores") or {}
        contact = answers.get("contactInfo") or {}
        created = row.get("created_at") or row.get("completed_at")
        try:
            completed_at = datetime.fromisoformat(str(created).replace("Z", "+00:00"))
        except ValueError:
            completed_at = datetime.now()
        return cls(
            audit_number=int(row.get("audit_number") or 0),
            score=score_from_category_scores(scores),
            contact=ContactInfo.from_dict(contact),
            completed_at=completed_at,
        )


CTA_TEXT = (
    "Наш эксперт свяжется с вами в течение 24 часов для согласования деталей бесплатного аудита "
    "2-х процессов вашей компании с конкретным планом внедрения ИИ."
)


def layout_report(data: ReportData, measure: Measure, today: Optional[date] = None) -> ReportCanvas:
    today = today or date.today()
    canvas = ReportCanvas(measure=measure)
    score = data.score
    interpretation = score.interpretation
    audit = format_audit_number(data.audit_number)
    total_color = score_color(score.total)
    top = SAFE_ZONE_TOP

    # Page 1: summary at fixed positions.
    canvas.place(f"№ {audit}", 30, 45, 14)
    canvas.place(data.completed_at.strftime("%d.%m.%Y"), 135, 45, 11)
    canvas.place("РЕЗУЛЬТАТЫ ДИАГНОСТИКИ", 30, top + 10, 18)
    canvas.place("из 20 баллов", 180, top + 10, 11, COLORS["muted"], align="right")
    canvas.place(str(score.total), PAGE_CENTER_X, top + 28, 48, total_color, align="center")
    canvas.place(f"{interpretation.emoji} {interpretation.title}", 30, top + 42, 16, total_color)
    canvas.place_wrapped(interpretation.description, 30, top + 53, 10, max_width=150, line_height=5, color=COLORS["muted"])

    rec_start = top + 80
    canvas.place("Рекомендации:", 30, rec_start, 12)
    y = rec_start + 10
    line_height = 4.5
    overflow: List[str] = []
    for index, recommendation in enumerate(interpretation.recommendations, start=1):
        numbered = f"{index}. {recommendation}"
        lines = canvas.wrap(numbered, 150, 9)
        block_height = len(lines) * line_height + 2
        if overflow or y + block_height > SAFE_ZONE_BOTTOM:
            overflow.append(numbered)
            continue
        for line_index, line in enumerate(lines):
            canvas.place(line, 35, y + line_index * line_height, 9, COLORS["muted"])
        y += block_height

    # Page 2+: category analysis, flowing across template pages.
    canvas.add_page()
    canvas.place("ДЕТАЛЬНЫЙ АНАЛИЗ ПО КАТЕГОРИЯМ", PAGE_CENTER_X, top, 16, align="center")
    canvas.place(f"Аудит № {audit}", PAGE_CENTER_X, top + 10, 10, COLORS["muted"], align="center")
    canvas.y = top + 20

    if overflow:
        canvas.write("Рекомендации (продолжение):", 25, 12, advance=8, required=15)
        for numbered in overflow:
            canvas.write_wrapped(numbered, 30, 9, max_width=150, line_height=4, color=COLORS["muted"], after=3)
        canvas.skip(5)

    canvas.write(f"Средний балл по категориям: {score.average:g} / 5", 25, 10, advance=10, color=COLORS["muted"], required=15)

    weakest = CATEGORY_BY_ID[score.weakest]
    strongest = CATEGORY_BY_ID[score.strongest]
    canvas.write_wrapped(
        f"Основной риск: {weakest.emoji} {weakest.name.capitalize()} - {score.category_scores[weakest.id]} / 5.",
        30, 9, max_width=160, line_height=4, color=COLORS["red"], after=4,
    )
    canvas.write_wrapped(
        f"Сильная сторона: {strongest.emoji} {strongest.name.capitalize()} - {score.category_scores[strongest.id]} / 5.",
        30, 9, max_width=160, line_height=4, color=COLORS["green"], after=6,
    )

    canvas.write("ДЕТАЛЬНЫЙ АНАЛИЗ ПО ОБЛАСТЯМ", 25, 12, advance=8, required=20)
    for index, category in enumerate(CATEGORIES):
        category_score = score.category_scores[category.id]
        warning = category.is_warning(category_score)

        canvas.ensure(30)
        canvas.write(f"{category.emoji} {category.name}", 25, 14, advance=0, required=8)
        canvas.write(
            f"{category_score} / 5", 180, 12, advance=8,
            color=COLORS["red"] if warning else COLORS["green"], align="right",
        )
        canvas.write_wrapped(category.full_description, 25, 9, max_width=160, line_height=4, after=3)

        if warning:
            canvas.write(f"⚠️ {category.warning_text}:", 25, 10, advance=5, color=COLORS["amber"], required=25)
            canvas.write_wrapped(category.detailed_warning, 25, 9, max_width=160, line_height=4, color=COLORS["muted"], after=5)
        else:
            canvas.skip(3)

        if index < len(CATEGORIES) - 1:
            canvas.rule(25, 185)

    contact = data.contact
    if contact.wants_deep_audit:
        canvas.skip(10)
        canvas.write("СЛЕДУЮЩИЕ ШАГИ", 25, 14, advance=8, required=20)
        canvas.write("✅ Запрошена углубленная диагностика", 25, 11, advance=5, color=COLORS["green"], required=25)
        canvas.write_wrapped(CTA_TEXT, 25, 9, max_width=160, line_height=4, color=COLORS["muted"], after=10)

    canvas.skip(10)
    canvas.ensure(45)
    canvas.write("Контактная информация:", 25, 12, advance=8)
    for value in (contact.name, contact.company, contact.phone, contact.email):
        if value:
            canvas.write_wrapped(value, 30, 10, max_width=155, line_height=5, color=COLORS["muted"], after=3)

    if contact.wants_deep_audit:
        canvas.write("✓ Запрошен углубленный аудит", 30, 10, advance=8, color=COLORS["green"])
    else:
        canvas.skip(7)
        canvas.ensure(80)
        canvas.box(20, canvas.y - 5, 165, 85)
        promo_end = (today + timedelta(days=PROMO_DAYS)).strftime("%d.%m.%Y")
        canvas.write("💡 Хотите углубленную диагностику?", 25, 12, advance=10, color=COLORS["amber"])
        canvas.write_wrapped(
            "Мы предлагаем бесплатный аудит 2-х процессов вашей компании с конкретным планом внедрения ИИ.",
            25, 9, max_width=155, line_height=4, after=5,
        )
        canvas.write_wrapped(
            "Вы можете обратиться к нам или в другую компанию с этой информацией.",
            25, 9, max_width=155, line_height=4, color=COLORS["muted"], after=4,
        )
        canvas.write("⏰ СПЕЦИАЛЬНОЕ ПРЕДЛОЖЕНИЕ", 25, 11, advance=7, color=COLORS["amber"])
        canvas.write_wrapped(
            "Углубленная диагностика 2-х процессов обычно стоит 1500 рублей.",
            25, 9, max_width=155, line_height=4, after=2,
        )
        canvas.write("Для вас - БЕСПЛАТНО!", 25, 11, advance=8, color=COLORS["green"])
        canvas.write(f"Акция действует до: {promo_end}", 25, 10, advance=10, color=COLORS["red"])
        canvas.write_wrapped(
            "📞 Свяжитесь с нами по контактам ниже, чтобы воспользоваться бесплатной углубленной диагностикой.",
            25, 9, max_width=155, line_height=4, color=COLORS["muted"],
        )

    canvas.stamp_page_numbers()
    return canvas


PDF_REPLACEMENTS = {
    "⚠️": "!",
    "⚠": "!",
    "✅": "+",
    "✓": "+",
    "—": "-",
    "–": "-",
    "«": '"',
    "»": '"',
}
EMOJI_PATTERN = re.compile("[\U00010000-\U0010FFFF\u2600-\u27bf\u2b00-\u2bff\u23e9-\u23fa\ufe0f\u200d]")

CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "e", "ж": "zh",
    "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m", "н": "n", "о": "o",
    "п": "p", "р": "r", "с": "s", "т": "t", "у": "u", "ф": "f", "х": "kh", "ц": "ts",
    "ч": "ch", "ш": "sh", "щ": "shch", "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu",
    "я": "ya", "№": "No.",
}


def sanitize_for_pdf(text: str) -> str:
    for src, dest in PDF_REPLACEMENTS.items():
        text = text.replace(src, dest)
    return EMOJI_PATTERN.sub("", text).strip()


def transliterate(text: str) -> str:
    result = []
    for char in text:
        lower = char.lower()
        if lower in CYRILLIC_TO_LATIN:
            latin = CYRILLIC_TO_LATIN[lower]
            result.append(latin.capitalize() if char != lower else latin)
        else:
            result.append(char)
    return "".join(result).encode("latin-1", "replace").decode("latin-1")


def resolve_font_path(configured: Optional[Path] = None) -> Optional[Path]:
    candidates = ([configured] if configured else []) + FONT_CANDIDATES
    for candidate in candidates:
        if candidate.exists():
            return candidate
    if configured:
        logger.warning("Report font %s not found", configured)
    return None


class OverlayRenderer:
    """Draws canvas pages with fpdf2 in point units on A4."""

    def __init__(self, font_path: Optional[Path] = None) -> None:
        self.pdf = FPDF(orientation="P", unit="pt", format="A4")
        self.pdf.set_auto_page_break(auto=False)
        self.family = "Helvetica"
        self.unicode = False
        if font_path is not None:
            try:
                self.pdf.add_font(PDF_FONT_FAMILY, "", str(font_path))
                self.family = PDF_FONT_FAMILY
                self.unicode = True
            except (RuntimeError, OSError) as exc:
                logger.warning("Could not load report font %s: %s", font_path, exc)
        if not self.unicode:
            logger.info("Rendering report with the core Helvetica font, Cyrillic is transliterated")

    def prepare(self, text: str) -> str:
        text = sanitize_for_pdf(text)
        return text if self.unicode else transliterate(text)

    def measure(self, text: str, size: float) -> float:
        self.pdf.set_font(self.family, "", size)
        return self.pdf.get_string_width(self.prepare(text))

    def _draw_text(self, op: TextOp) -> None:
        text = self.prepare(op.text)
        if not text:
            return
        self.pdf.set_font(self.family, "", op.size)
        self.pdf.set_text_color(*op.color)
        x = mm_to_pt(op.x)
        width = self.pdf.get_string_width(text)
        if op.align == "center":
            x -= width / 2
        elif op.align == "right":
            x -= width
        self.pdf.text(x, mm_to_pt(op.y), text)

    def render(self, canvas: ReportCanvas) -> bytes:
        for ops in canvas.pages:
            self.pdf.add_page()
            for op in ops:
                if isinstance(op, TextOp):
                    self._draw_text(op)
                elif isinstance(op, LineOp):
                    self.pdf.set_draw_color(*op.color)
                    self.pdf.set_line_width(op.thickness)
                    self.pdf.line(mm_to_pt(op.x1), mm_to_pt(op.y1), mm_to_pt(op.x2), mm_to_pt(op.y2))
                elif isinstance(op, RectOp):
                    self.pdf.set_draw_color(*op.color)
                    self.pdf.set_line_width(op.thickness)
                    self.pdf.rect(mm_to_pt(op.x), mm_to_pt(op.y), mm_to_pt(op.width), mm_to_pt(op.height), style="D")
        return bytes(self.pdf.output())


def build_default_template() -> bytes:
    """Single-page A4 letterhead used when no template PDF is configured."""
    pdf = FPDF(orientation="P", unit="pt", format="A4")
    pdf.set_auto_page_break(auto=False)
    pdf.add_page()
    page_width = mm_to_pt(PAGE_WIDTH_MM)

    pdf.set_fill_color(*COLORS["header"])
    pdf.rect(0, 0, page_width, mm_to_pt(38), style="F")
    pdf.set_text_color(*COLORS["white"])
    pdf.set_font("Helvetica", "B", 22)
    pdf.text(mm_to_pt(20), mm_to_pt(20), "AI READINESS AUDIT")
    pdf.set_font("Helvetica", "", 10)
    pdf.text(mm_to_pt(20), mm_to_pt(29), "M.AI.N x Utlik")

    pdf.set_draw_color(*COLORS["muted"])
    pdf.set_line_width(0.5)
    pdf.line(mm_to_pt(20), mm_to_pt(262), page_width - mm_to_pt(20), mm_to_pt(262))
    pdf.set_text_color(*COLORS["muted"])
    pdf.set_font("Helvetica", "", 8)
    pdf.text(mm_to_pt(20), mm_to_pt(270), "M.AI.N - AI Community: t.me/maincomby")
    pdf.text(mm_to_pt(20), mm_to_pt(275), "Utlik. Co: linkedin.com/in/utlik")
    return bytes(pdf.output())


def load_template_bytes(template_path: Optional[Path] = None) -> bytes:
    if template_path is not None:
        if template_path.exists():
            return template_path.read_bytes()
        logger.warning("Report template %s not found, using the default letterhead", template_path)
    return build_default_template()


def merge_with_template(overlay_bytes: bytes, template_bytes: bytes) -> bytes:
    overlay = PdfReader(BytesIO(overlay_bytes))
    writer = PdfWriter()
    for overlay_page in overlay.pages:
        # a fresh reader per page gives every page its own copy of the template
        page = PdfReader(BytesIO(template_bytes)).pages[0]
        page.merge_page(overlay_page)
        writer.add_page(page)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def generate_report(
    data: ReportData,
    template_path: Optional[Path] = None,
    font_path: Optional[Path] = None,
    today: Optional[date] = None,
) -> bytes:
    try:
        renderer = OverlayRenderer(resolve_font_path(font_path))
        canvas = layout_report(data, renderer.measure, today=today)
        overlay = renderer.render(canvas)
        return merge_with_template(overlay, load_template_bytes(template_path))
    except ReportError:
        raise
    except Exception as exc:
        logger.exception("PDF generation failed for audit %s", data.audit_number)
        raise ReportError(str(exc)) from exc


def report_filename(name: str, day: Optional[date] = None) -> str:
    day = day or date.today()
    safe_name = re.sub(r"\s+", "_", name.strip())
    safe_name = re.sub(r'[\\/:*?"<>|]', "", safe_name) or "report"
    return f"Diagnostika_AI_{safe_name}_{day.isoformat()}.pdf"
