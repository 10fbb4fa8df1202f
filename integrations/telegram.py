"""
Telegram bot integration for operator alerts.

Partial fulfillment failures are not reported back to the shop platform
(the webhook was already accepted), so they are pushed to a Telegram chat.
"""

from typing import Optional
import requests
import structlog

from config import settings
from models.fulfillment import OrderReport, ReconciliationReport

logger = structlog.get_logger(__name__)


class TelegramError(Exception):
    """Telegram API error."""
    pass


def get_telegram_config() -> tuple[Optional[str], Optional[str]]:
    """
    Get Telegram configuration from settings.

    Returns:
        tuple: (bot_token, chat_id)
    """
    bot_token = settings.telegram_bot_token
    chat_id = settings.telegram_chat_id

    if not bot_token or not chat_id:
        logger.debug(
            "telegram_not_configured",
            has_token=bool(bot_token),
            has_chat_id=bool(chat_id)
        )

    return bot_token, chat_id


def code_span(value) -> str:
    """
    Wrap a value in a Markdown code span.

    Telegram Markdown reads `_` and `*` literally inside a code span.
    Backticks in the value become single quotes.

    Example:
        code_span("ASSET_NOT_FOUND") -> "`ASSET_NOT_FOUND`"
    """
    return "`" + str(value).replace("`", "'") + "`"


def format_order_alert(report: OrderReport) -> str:
    """
    Format an order report as a Telegram message.

    Args:
        report: Report of an order that needs attention

    Returns:
        Formatted message string
    """
    lines = [
        "⚠️ *Custom design fulfillment needs attention*",
        "",
        f"Order: {code_span(report.order_name)}",
        f"Status: {code_span(report.status.value)}",
        f"Designs stored: {len(report.links)}/{len(report.items)}",
    ]

    for item in report.failed_items:
        lines.append(
            f"• item {code_span(item.line_item_id)} ({code_span(item.title)}) "
            f"failed at {code_span(item.stage.value)}: {code_span(item.error_code)}"
        )
        if item.template_key:
            lines.append(f"  template: {code_span(item.template_key)}")

    if report.annotation and not report.annotation.succeeded:
        lines.append(f"• annotation: {code_span(report.annotation.status.value)}")

    if report.error_code:
        lines.append(f"• order error: {code_span(report.error_code)}")

    return "\n".join(lines)


def format_replay_summary(report: ReconciliationReport) -> str:
    """Format a replay run summary."""
    lines = ["🔁 *Manual recovery finished*", ""]
    for status, count in report.summary.items():
        lines.append(f"{code_span(status)}: {count}")
    return "\n".join(lines)


def send_message(message: str, parse_mode: str = "Markdown") -> bool:
    """
    Send message to Telegram.

    Args:
        message: Message text to send
        parse_mode: Telegram parse mode (Markdown or HTML)

    Returns:
        True if sent, False if Telegram is not configured

    Raises:
        TelegramError: If send fails
    """
    bot_token, chat_id = get_telegram_config()

    if not bot_token or not chat_id:
        logger.debug("telegram_not_configured_skipping_send")
        return False

    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"

    payload = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    }

    try:
        logger.info("sending_telegram_message", chat_id=chat_id)

        response = requests.post(url, json=payload, timeout=10)
        response.raise_for_status()

        result = response.json()

        if not result.get("ok"):
            error_msg = result.get("description", "Unknown error")
            logger.error("telegram_api_error", error=error_msg)
            raise TelegramError(f"Telegram API error: {error_msg}")

        logger.info("telegram_message_sent", message_id=result.get("result", {}).get("message_id"))
        return True

    except requests.exceptions.RequestException as e:
        logger.error("telegram_request_failed", error=str(e))
        raise TelegramError(f"Failed to send Telegram message: {str(e)}")


def send_order_alert(report: OrderReport) -> bool:
    """
    Alert operators about an order that needs attention.

    Never raises: an alerting failure is logged and must not affect the
    order's own outcome.
    """
    try:
        return send_message(format_order_alert(report))
    except TelegramError as e:
        logger.warning("order_alert_not_sent", order_name=report.order_name, error=str(e))
        return False
