from __future__ import annotations

import logging
from html import escape
from typing import Any, Dict, Mapping

import requests

from scoring import find_interpretation

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def build_message(payload: Mapping[str, Any], admin_url: str) -> str:
    contact: Mapping[str, Any] = payload.get("contactInfo") or {}
    scores: Mapping[str, Any] = payload.get("categoryScores") or {}
    total = int(payload.get("totalScore") or 0)
    interpretation = find_interpretation(total)

    def field(key: str) -> str:
        return escape(str(contact.get(key) or "-"))

    lines = [
        "🎯 <b>Новое прохождение квиза!</b>",
        "",
        "👤 <b>Контакт:</b>",
        f"• Имя: {field('name')}",
        f"• Компания: {field('company')}",
        f"• Телефон: {field('phone')}",
        f"• Telegram: {field('telegram')}",
        f"• Email: {field('email')}",
        "",
        "📊 <b>Результаты:</b>",
        f"• Общий балл: <b>{total}/20</b>",
        f"• Данные: {scores.get('data', 0)}/5",
        f"• Процессы: {scores.get('processes', 0)}/5",
        f"• Люди: {scores.get('people', 0)}/5",
        f"• Результаты: {scores.get('results', 0)}/5",
        "",
        f"{interpretation.emoji} <b>{escape(interpretation.title)}</b>",
        escape(interpretation.description),
        "",
        f'🔗 <a href="{escape(admin_url)}">Открыть админку</a>',
    ]
    return "\n".join(lines)


def send_telegram_notification(
    bot_token: str,
    chat_id: str,
    payload: Mapping[str, Any],
    admin_url: str,
    timeout: float = 10.0,
) -> bool:
    """Post a submission summary to the admin chat; never raises."""
    if not bot_token or not chat_id:
        logger.warning("Telegram bot credentials not configured")
        return False

    body: Dict[str, Any] = {
        "chat_id": chat_id,
        "text": build_message(payload, admin_url),
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }
    try:
        response = requests.post(TELEGRAM_API_URL.format(token=bot_token), json=body, timeout=timeout)
    except requests.RequestException as exc:
        logger.error("Failed to send Telegram notification: %s", exc)
        return False

    if not response.ok:
        logger.error("Telegram API error %s: %s", response.status_code, response.text)
        return False

    logger.info("Telegram notification sent")
    return True
