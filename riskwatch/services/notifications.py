from typing import Any, Dict, Optional

import requests

from riskwatch.config import Config
from riskwatch.logger import get_logger
from riskwatch.risk.errors import NotificationError

logger = get_logger(__name__)


def format_alert(alert: Dict[str, Any]) -> str:
    checks = ", ".join(alert.get("failed_checks") or []) or "none"
    lines = [
        f"<b>[{alert.get('severity')}] RiskWatch alert #{alert.get('id')}</b>",
        f"subject: {alert.get('subject_id')}",
        f"status: {alert.get('status')}",
        f"failed checks: {checks}",
    ]
    if alert.get("reason"):
        lines.append(f"reason: {alert['reason']}")
    return "\n".join(lines)


class LogComplianceNotifier:
    """Fallback notifier when no Telegram bot is configured."""

    def notify(self, alert: Dict[str, Any]) -> None:
        logger.info("compliance_notified", channel="log", alert_id=alert.get("id"), subject_id=alert.get("subject_id"))


class TelegramComplianceNotifier:
    def __init__(self, token: str, chat_id: str, timeout: float = 10):
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout

    def notify(self, alert: Dict[str, Any]) -> None:
        url = f"https://api.telegram.org/bot{self.token}/sendMessage"
        try:
            resp = requests.post(
                url,
                json={
                    "chat_id": self.chat_id,
                    "text": format_alert(alert),
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(f"telegram delivery failed: {exc}", alert_id=alert.get("id")) from exc
        logger.info("compliance_notified", channel="telegram", alert_id=alert.get("id"), subject_id=alert.get("subject_id"))


def build_notifier(token: Optional[str] = None, chat_id: Optional[str] = None):
    token = token or Config.TELEGRAM_BOT_TOKEN
    chat_id = chat_id or Config.TELEGRAM_CHAT_ID
    if token and chat_id:
        return TelegramComplianceNotifier(token, chat_id)
    return LogComplianceNotifier()


def notify_safely(notifier, alert: Dict[str, Any]) -> bool:
    """Deliver ``alert`` best-effort. Delivery failures are logged, never raised."""
    try:
        notifier.notify(alert)
        return True
    except NotificationError as exc:
        logger.warning("compliance_notification_failed", alert_id=alert.get("id"), error=exc.message)
    except Exception as exc:
        logger.warning("compliance_notification_failed", alert_id=alert.get("id"), error=str(exc))
    return False
