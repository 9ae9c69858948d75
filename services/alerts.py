"""Telegram notifications for sweep failures and error-level log records."""
from __future__ import annotations

import asyncio
import logging
import sys
import traceback
from datetime import UTC, datetime
from html import escape
from typing import Sequence

from aiogram import Bot


MAX_ALERT_LENGTH = 3500


async def send_critical_alert(bot: Bot, admin_chat_ids: Sequence[int], message: str) -> int:
    """Send ``message`` to every admin chat and return how many deliveries succeeded.

    Delivery problems are written to stderr; alerting must never break the
    caller.
    """
    if not admin_chat_ids:
        return 0

    full_message = f"🚨 <b>Luna Analytics alert</b>\n\n{message[:MAX_ALERT_LENGTH]}"
    delivered = 0
    for chat_id in admin_chat_ids:
        try:
            await bot.send_message(chat_id, full_message, parse_mode="HTML")
            delivered += 1
        except Exception as exc:
            sys.stderr.write(f"Failed to send alert to {chat_id}: {exc!r}\n")
    return delivered


def format_sweep_failures(failures: Sequence[dict[str, object]], total: int) -> str:
    lines = [f"Daily sweep finished with {len(failures)} of {total} analyses failing.", ""]
    for failure in failures[:10]:
        url = escape(str(failure.get("url")), quote=True)
        message = escape(str(failure.get("message")))
        lines.append(f"• {url}: {message}")
    if len(failures) > 10:
        lines.append(f"… and {len(failures) - 10} more")
    return "\n".join(lines)


class AdminAlertHandler(logging.Handler):
    """Logging handler that forwards error records to the admin chats."""

    def __init__(
        self,
        bot: Bot,
        admin_chat_ids: Sequence[int],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(level=logging.ERROR)
        self._bot = bot
        self._admin_chat_ids = tuple(admin_chat_ids)
        self._loop = loop
        self.setFormatter(logging.Formatter("%(message)s"))

    async def _notify(self, message: str) -> None:
        for chat_id in self._admin_chat_ids:
            try:
                await self._bot.send_message(chat_id, message)
            except Exception as exc:  # pragma: no cover - best-effort logging
                sys.stderr.write(f"Failed to notify admin {chat_id}: {exc!r}\n")

    def _build_message(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S %Z")

        if record.exc_info:
            details = "".join(traceback.format_exception(*record.exc_info))
        else:
            details = self.format(record)

        details = details[-MAX_ALERT_LENGTH:]
        return (
            f"⚠️ {record.levelname} in {record.name}\n"
            f"Time: {timestamp}\n"
            f"Source: {record.pathname}:{record.lineno}\n\n"
            f"{details}"
        )

    def emit(self, record: logging.LogRecord) -> None:
        if not self._admin_chat_ids or record.levelno < logging.ERROR:
            return

        coroutine = self._notify(self._build_message(record))

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        loop = self._loop if self._loop is not None and not self._loop.is_closed() else running
        if loop is None or not loop.is_running():
            asyncio.run(coroutine)
        elif loop is running:
            loop.call_soon(asyncio.create_task, coroutine)
        else:
            loop.call_soon_threadsafe(asyncio.create_task, coroutine)


__all__ = ["AdminAlertHandler", "MAX_ALERT_LENGTH", "format_sweep_failures", "send_critical_alert"]
