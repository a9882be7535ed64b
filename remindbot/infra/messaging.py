from __future__ import annotations

import logging
from typing import Any, Protocol

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import BadRequest

from remindbot.core.models import Keyboard

LOGGER = logging.getLogger(__name__)

_NOT_MODIFIED = "message is not modified"
_GONE_MARKERS = ("message to edit not found", "message can't be edited", "query is too old", "query id is invalid")


class Messenger(Protocol):
    async def send(self, chat_id: int, text: str, controls: Keyboard | None = None) -> int: ...

    async def edit_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        controls: Keyboard | None = None,
    ) -> None: ...

    async def edit_controls(self, chat_id: int, message_id: int, controls: Keyboard | None) -> None: ...

    async def answer(self, callback_id: str, text: str | None = None) -> None: ...


def build_inline_keyboard(controls: Keyboard | None) -> InlineKeyboardMarkup | None:
    if not controls:
        return None
    rows = [
        [InlineKeyboardButton(text=action.label, callback_data=action.id) for action in row]
        for row in controls
        if row
    ]
    return InlineKeyboardMarkup(rows) if rows else None


class TelegramMessenger:
    """Отправка и правка сообщений через Bot API. «message is not modified» считается успехом."""

    def __init__(self, bot: Any) -> None:
        self._bot = bot

    async def send(self, chat_id: int, text: str, controls: Keyboard | None = None) -> int:
        message = await self._bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=build_inline_keyboard(controls),
        )
        return message.message_id

    async def edit_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        controls: Keyboard | None = None,
    ) -> None:
        try:
            await self._bot.edit_message_text(
                chat_id=chat_id,
                message_id=message_id,
                text=text,
                reply_markup=build_inline_keyboard(controls),
            )
        except BadRequest as exc:
            self._raise_unless_harmless(exc, "edit_text", chat_id, message_id)

    async def edit_controls(self, chat_id: int, message_id: int, controls: Keyboard | None) -> None:
        try:
            await self._bot.edit_message_reply_markup(
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=build_inline_keyboard(controls),
            )
        except BadRequest as exc:
            self._raise_unless_harmless(exc, "edit_controls", chat_id, message_id)

    async def answer(self, callback_id: str, text: str | None = None) -> None:
        try:
            await self._bot.answer_callback_query(callback_query_id=callback_id, text=text)
        except BadRequest as exc:
            msg = str(exc).lower()
            # Нормально для устаревших кнопок (callback уже протух).
            if any(marker in msg for marker in _GONE_MARKERS):
                LOGGER.info("Telegram rejected callback answer (expired): %s", exc)
                return
            raise

    @staticmethod
    def _raise_unless_harmless(exc: BadRequest, operation: str, chat_id: int, message_id: int) -> None:
        msg = str(exc).lower()
        if _NOT_MODIFIED in msg:
            LOGGER.debug("Telegram %s skipped, not modified: chat_id=%s message_id=%s", operation, chat_id, message_id)
            return
        if any(marker in msg for marker in _GONE_MARKERS):
            LOGGER.info("Telegram %s skipped, message gone: chat_id=%s message_id=%s", operation, chat_id, message_id)
            return
        raise exc
