from __future__ import annotations

import logging
import math
from datetime import timedelta
from functools import wraps
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from flask import (
    Flask,
    Response,
    flash,
    redirect,
    render_template,
    request,
    send_file,
    session,
    url_for,
)

from admin_panel import (
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
from config import Settings, configure_logging, load_environment
from flow import (
    STEP_CONTACT,
    VARIANT_DIAGNOSTIC,
    VARIANT_SURVEY,
    ContactInfo,
    FlowError,
    QuizFlow,
    load_flow,
)
from notifier import send_telegram_notification
from pdf_report import ReportData, ReportError, format_audit_number, generate_report, report_filename
from quiz_data import CATEGORIES, CATEGORY_BY_ID, CUSTOM_OPTION, DEPARTMENT_BY_ID, DEPARTMENTS, RATING_SCALE
from scoring import MAX_RATING, interpretation_by_title
from storage import MemoryResponseStore, MissingColumnError, StorageError, SupabaseResponseStore, parse_maybe_json

load_environment()
settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_mapping(settings.flask_config())
app.permanent_session_lifetime = timedelta(days=7)

FLOW_SESSION_KEYS: Dict[str, str] = {
    VARIANT_DIAGNOSTIC: "diagnostic_flow",
    VARIANT_SURVEY: "survey_flow",
}

COPY: Dict[str, Dict[str, str]] = {
    "site": {
        "title": "AI Readiness Диагностика",
        "tagline": "Оценка готовности компании к внедрению ИИ",
        "footer": "Разработано с любовью в Utlik. Co & M.AI.N - AI Community",
    },
    "errors": {
        "select_answer": "Выберите ответ, чтобы продолжить.",
        "custom_answer": "Укажите ваш вариант ответа.",
        "save_failed": "Не удалось сохранить ответы. Попробуйте еще раз.",
        "not_found": "Результаты не найдены. Проверьте номер аудита и попробуйте еще раз.",
        "load_failed": "Не удалось загрузить результаты.",
        "pdf_failed": "Не удалось создать PDF. Попробуйте еще раз позже.",
        "admin_load_failed": "Не удалось загрузить данные опросов.",
        "wrong_password": "Неверный пароль. Попробуйте снова.",
        "archive_failed": "Не удалось изменить статус архивирования.",
        "delete_failed": "Не удалось удалить опрос.",
        "bulk_failed": "Не удалось обработать некоторые записи.",
    },
    "messages": {
        "saved": "Спасибо за участие! Ваши ответы успешно сохранены.",
        "archived": "Опрос перемещен в архив.",
        "unarchived": "Опрос восстановлен из архива.",
        "archived_locally": "Архивирование работает локально: в таблице нет колонки archived.",
        "deleted": "Опрос успешно удален.",
        "bulk_done": "Обработано записей: {count}.",
        "bulk_deleted": "Удалено записей: {count}.",
    },
}


def get_store():
    store = app.config.get("RESPONSE_STORE")
    if store is None:
        if app.config.get("SUPABASE_URL"):
            store = SupabaseResponseStore(
                app.config["SUPABASE_URL"],
                app.config.get("SUPABASE_KEY", ""),
                table=app.config.get("RESPONSES_TABLE", "quiz_responses"),
                timeout=app.config.get("REQUEST_TIMEOUT", 10.0),
            )
        else:
            logger.warning("SUPABASE_URL is not set, responses are kept in memory")
            store = MemoryResponseStore()
        app.config["RESPONSE_STORE"] = store
    return store


@app.context_processor
def inject_copy():
    return {
        "copy": COPY,
        "custom_option": CUSTOM_OPTION,
        "department_name": department_name,
        "position_name": position_name,
        "format_timestamp": format_timestamp,
        "format_audit_number": format_audit_number,
    }


def load_session_flow(variant: str) -> QuizFlow:
    return load_flow(session.get(FLOW_SESSION_KEYS[variant]), variant)


def save_session_flow(flow: QuizFlow) -> None:
    session[FLOW_SESSION_KEYS[flow.variant]] = flow.to_dict()
    session.permanent = True


def guard_message(flow: QuizFlow) -> str:
    answer = flow.current_answer
    if answer.values and CUSTOM_OPTION in answer.values:
        return COPY["errors"]["custom_answer"]
    return COPY["errors"]["select_answer"]


def submit_flow(flow: QuizFlow) -> Optional[dict]:
    """Insert the finished flow; on failure flash an error and leave the flow as is."""
    try:
        record = flow.build_record()
        row = get_store().insert(record)
    except (StorageError, FlowError) as exc:
        logger.error("Error saving %s response: %s", flow.variant, exc)
        flash(COPY["errors"]["save_failed"], "error")
        return None
    logger.info("Saved %s response %s", flow.variant, row.get("id"))
    flow.complete(row.get("audit_number"))
    save_session_flow(flow)
    flash(COPY["messages"]["saved"], "success")
    return row


def render_diagnostic(flow: QuizFlow, error: str | None = None, contact: ContactInfo | None = None, status: int = 200):
    return (
        render_template(
            "quiz.html",
            flow=flow,
            question=flow.current_question,
            answer=flow.current_answer,
            rating_scale=RATING_SCALE,
            categories=CATEGORIES,
            can_advance=flow.can_advance(),
            error=error,
            contact=contact or flow.contact,
        ),
        status,
    )


@app.get("/")
def questionnaire():
    return render_diagnostic(load_session_flow(VARIANT_DIAGNOSTIC))


@app.post("/quiz/start")
def start_quiz():
    flow = QuizFlow(variant=VARIANT_DIAGNOSTIC)
    flow.start()
    save_session_flow(flow)
    return redirect(url_for("questionnaire"))


@app.post("/quiz/answer")
def answer_question():
    flow = load_session_flow(VARIANT_DIAGNOSTIC)
    if flow.current_question is None:
        return redirect(url_for("questionnaire"))

    flow.select(request.form.getlist("answer"), request.form.get("custom", ""))
    try:
        flow.advance()
    except FlowError:
        save_session_flow(flow)
        return render_diagnostic(flow, error=guard_message(flow), status=400)
    save_session_flow(flow)
    return redirect(url_for("questionnaire"))


@app.post("/quiz/back")
def previous_question():
    flow = load_session_flow(VARIANT_DIAGNOSTIC)
    if flow.current_question is not None and request.form.getlist("answer"):
        flow.select(request.form.getlist("answer"), request.form.get("custom", ""))
    flow.back()
    save_session_flow(flow)
    return redirect(url_for("questionnaire"))


@app.post("/quiz/contact")
def submit_contact():
    flow = load_session_flow(VARIANT_DIAGNOSTIC)
    if flow.step != STEP_CONTACT:
        return redirect(url_for("questionnaire"))

    contact, errors = ContactInfo.from_form(request.form)
    if errors:
        return render_diagnostic(flow, error=" ".join(errors), contact=contact, status=400)

    pending = QuizFlow.from_dict(flow.to_dict())
    pending.set_contact(contact)
    row = submit_flow(pending)
    if row is None:
        return render_diagnostic(flow, contact=contact, status=502)

    answers = parse_maybe_json(row.get("answers"))
    send_telegram_notification(
        app.config.get("TELEGRAM_BOT_TOKEN", ""),
        app.config.get("TELEGRAM_ADMIN_CHAT_ID", ""),
        answers if isinstance(answers, dict) else {},
        url_for("admin_dashboard", _external=True),
        timeout=app.config.get("REQUEST_TIMEOUT", 10.0),
    )

    if pending.audit_number:
        return redirect(url_for("results", audit_number=pending.audit_number))
    return redirect(url_for("questionnaire"))


@app.post("/quiz/reset")
def reset_quiz():
    session.pop(FLOW_SESSION_KEYS[VARIANT_DIAGNOSTIC], None)
    return redirect(url_for("questionnaire"))


def render_survey(flow: QuizFlow, error: str | None = None, status: int = 200):
    department = DEPARTMENT_BY_ID.get(flow.department or "")
    return (
        render_template(
            "survey.html",
            flow=flow,
            departments=DEPARTMENTS,
            department=department,
            question=flow.current_question,
            answer=flow.current_answer,
            can_advance=flow.can_advance(),
            error=error,
        ),
        status,
    )


@app.get("/survey")
def survey():
    return render_survey(load_session_flow(VARIANT_SURVEY))


@app.post("/survey/start")
def start_survey():
    flow = QuizFlow(variant=VARIANT_SURVEY)
    flow.start()
    save_session_flow(flow)
    return redirect(url_for("survey"))


@app.post("/survey/department")
def choose_department():
    flow = load_session_flow(VARIANT_SURVEY)
    try:
        flow.choose_department(request.form.get("department", ""))
    except FlowError:
        return render_survey(flow, error="Выберите отдел из списка.", status=400)
    save_session_flow(flow)
    return redirect(url_for("survey"))


@app.post("/survey/position")
def choose_position():
    flow = load_session_flow(VARIANT_SURVEY)
    try:
        flow.choose_position(request.form.get("position", ""))
    except FlowError:
        return render_survey(flow, error="Выберите должностную категорию.", status=400)
    save_session_flow(flow)
    return redirect(url_for("survey"))


@app.post("/survey/answer")
def answer_survey_question():
    flow = load_session_flow(VARIANT_SURVEY)
    if flow.current_question is None:
        return redirect(url_for("survey"))

    flow.select(request.form.getlist("answer"), request.form.get("custom", ""))
    try:
        ready = flow.advance()
    except FlowError:
        save_session_flow(flow)
        return render_survey(flow, error=guard_message(flow), status=400)

    if ready:
        if submit_flow(flow) is None:
            save_session_flow(flow)
            return render_survey(flow, status=502)
        return redirect(url_for("survey"))

    save_session_flow(flow)
    return redirect(url_for("survey"))


@app.post("/survey/back")
def previous_survey_step():
    flow = load_session_flow(VARIANT_SURVEY)
    if flow.current_question is not None and request.form.getlist("answer"):
        flow.select(request.form.getlist("answer"), request.form.get("custom", ""))
    flow.back()
    save_session_flow(flow)
    return redirect(url_for("survey"))


@app.post("/survey/reset")
def reset_survey():
    session.pop(FLOW_SESSION_KEYS[VARIANT_SURVEY], None)
    return redirect(url_for("survey"))


def load_report_data(audit_number: int) -> Optional[ReportData]:
    try:
        row = get_store().get_by_audit_number(audit_number)
    except StorageError as exc:
        logger.error("Error fetching results %s: %s", audit_number, exc)
        flash(COPY["errors"]["load_failed"], "error")
        return None
    if row is None:
        flash(COPY["errors"]["not_found"], "error")
        return None
    try:
        return ReportData.from_row(row)
    except ReportError as exc:
        logger.error("Stored result %s is unreadable: %s", audit_number, exc)
        flash(COPY["errors"]["load_failed"], "error")
        return None


def radar_chart(scores: Dict[str, int], size: int = 300, radius: float = 110.0) -> Dict[str, object]:
    """SVG geometry for the category radar: one axis per category, domain 0-5, first axis on top."""
    center = size / 2

    def point(index: int, value: float) -> Tuple[float, float]:
        angle = -math.pi / 2 + 2 * math.pi * index / len(CATEGORIES)
        distance = radius * value / MAX_RATING
        return center + distance * math.cos(angle), center + distance * math.sin(angle)

    def polygon(values: List[float]) -> str:
        return " ".join("%.1f,%.1f" % point(index, value) for index, value in enumerate(values))

    axes = []
    for index, category in enumerate(CATEGORIES):
        end_x, end_y = point(index, MAX_RATING)
        label_x, label_y = point(index, MAX_RATING + 1)
        axes.append(
            {
                "label": category.name.capitalize(),
                "x": round(end_x, 1),
                "y": round(end_y, 1),
                "label_x": round(label_x, 1),
                "label_y": round(label_y, 1),
            }
        )
    return {
        "size": size,
        "center": center,
        "axes": axes,
        "rings": [polygon([level] * len(CATEGORIES)) for level in range(1, MAX_RATING + 1)],
        "points": polygon([scores.get(category.id, 0) for category in CATEGORIES]),
    }


@app.get("/results/<int:audit_number>")
def results(audit_number: int):
    data = load_report_data(audit_number)
    if data is None:
        return redirect(url_for("questionnaire"))
    return render_template(
        "result.html",
        data=data,
        score=data.score,
        categories=CATEGORIES,
        category_by_id=CATEGORY_BY_ID,
        radar=radar_chart(data.score.category_scores),
    )


@app.get("/results/<int:audit_number>/pdf")
def export_pdf(audit_number: int):
    data = load_report_data(audit_number)
    if data is None:
        return redirect(url_for("questionnaire"))

    try:
        pdf_bytes = generate_report(
            data,
            template_path=app.config.get("REPORT_TEMPLATE_PATH"),
            font_path=app.config.get("REPORT_FONT_PATH"),
        )
    except ReportError:
        flash(COPY["errors"]["pdf_failed"], "error")
        return redirect(url_for("results", audit_number=audit_number))

    return send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=report_filename(data.contact.name),
    )


def is_admin() -> bool:
    return session.get("admin_authorized") is True


def authorize_admin() -> None:
    session["admin_authorized"] = True
    session.permanent = True


def admin_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not is_admin():
            return redirect(url_for("admin_dashboard"))
        return view(*args, **kwargs)

    return wrapped


def load_admin_rows():
    rows = get_store().list_responses()
    normalized, has_column = normalize_rows(rows, session.get("archived_ids", []))
    if has_column and session.get("archived_ids"):
        session.pop("archived_ids")
    return normalized


@app.get("/admin")
def admin_dashboard():
    if not is_admin():
        if check_password(request.args.get("pw"), app.config["ADMIN_PASSWORD"]):
            authorize_admin()
        else:
            return render_template("admin_login.html")

    show_archived = request.args.get("archived") == "1"
    try:
        rows = load_admin_rows()
    except StorageError as exc:
        logger.error("Error fetching responses: %s", exc)
        flash(COPY["errors"]["admin_load_failed"], "error")
        rows = []

    return render_template(
        "admin.html",
        rows=filter_rows(rows, show_archived),
        stats=compute_stats(rows),
        show_archived=show_archived,
    )


@app.post("/admin/login")
def admin_login():
    if check_password(request.form.get("password"), app.config["ADMIN_PASSWORD"]):
        authorize_admin()
        return redirect(url_for("admin_dashboard"))
    flash(COPY["errors"]["wrong_password"], "error")
    return render_template("admin_login.html"), 401


@app.post("/admin/logout")
def admin_logout():
    session.pop("admin_authorized", None)
    return redirect(url_for("questionnaire"))


@app.get("/admin/responses/<response_id>")
@admin_required
def admin_response_detail(response_id: str):
    try:
        rows = load_admin_rows()
    except StorageError as exc:
        logger.error("Error fetching response %s: %s", response_id, exc)
        flash(COPY["errors"]["admin_load_failed"], "error")
        return redirect(url_for("admin_dashboard"))
    row = next((item for item in rows if str(item.get("id")) == response_id), None)
    if row is None:
        return redirect(url_for("admin_dashboard"))
    answers = row.get("answers")
    interpretation = interpretation_by_title(answers.get("interpretation")) if isinstance(answers, dict) else None
    return render_template(
        "admin_detail.html",
        row=row,
        answers_text=flatten_answers(answers),
        interpretation=interpretation,
    )


def toggle_archive(response_id: str, currently_archived: bool) -> bool:
    """Flip the archived flag; returns False when it was kept locally in the session."""
    try:
        get_store().set_archived(response_id, not currently_archived)
    except MissingColumnError:
        logger.warning("Column archived does not exist, archiving %s locally", response_id)
        session["archived_ids"] = toggle_local_archive(session.get("archived_ids", []), response_id, currently_archived)
        return False
    return True


@app.post("/admin/responses/<response_id>/archive")
@admin_required
def admin_archive(response_id: str):
    currently_archived = request.form.get("archived") == "1"
    try:
        in_backend = toggle_archive(response_id, currently_archived)
    except StorageError as exc:
        logger.error("Error toggling archive for %s: %s", response_id, exc)
        flash(COPY["errors"]["archive_failed"], "error")
    else:
        if not in_backend:
            flash(COPY["messages"]["archived_locally"], "info")
        else:
            flash(COPY["messages"]["unarchived" if currently_archived else "archived"], "success")
    return redirect(url_for("admin_dashboard", archived="1" if currently_archived else None))


@app.post("/admin/responses/<response_id>/delete")
@admin_required
def admin_delete(response_id: str):
    try:
        get_store().delete(response_id)
    except StorageError as exc:
        logger.error("Error deleting response %s: %s", response_id, exc)
        flash(COPY["errors"]["delete_failed"], "error")
    else:
        flash(COPY["messages"]["deleted"], "success")
    return redirect(url_for("admin_dashboard"))


@app.post("/admin/bulk")
@admin_required
def admin_bulk():
    selected = request.form.getlist("ids")
    action = request.form.get("action")
    if not selected:
        return redirect(url_for("admin_dashboard"))

    try:
        if action == "delete":
            get_store().delete_many(selected)
            flash(COPY["messages"]["bulk_deleted"].format(count=len(selected)), "success")
        elif action == "archive":
            archived_by_id = {str(row.get("id")): bool(row.get("archived")) for row in load_admin_rows()}
            for response_id in selected:
                if response_id in archived_by_id:
                    toggle_archive(response_id, archived_by_id[response_id])
            flash(COPY["messages"]["bulk_done"].format(count=len(selected)), "success")
    except StorageError as exc:
        logger.error("Error in bulk %s: %s", action, exc)
        flash(COPY["errors"]["bulk_failed"], "error")
    return redirect(url_for("admin_dashboard"))


@app.get("/admin/export.csv")
@admin_required
def admin_export():
    try:
        rows = load_admin_rows()
    except StorageError as exc:
        logger.error("Error exporting responses: %s", exc)
        flash(COPY["errors"]["admin_load_failed"], "error")
        return redirect(url_for("admin_dashboard"))
    return Response(
        export_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={export_filename()}"},
    )


@app.get("/privacy-policy")
def privacy_policy():
    return render_template("privacy.html")


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    app.run(debug=True, port=5001)
