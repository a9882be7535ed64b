from __future__ import annotations

import logging
from typing import Any

from telegram import Update
from telegram.ext import ContextTypes

from remindbot.core import texts
from remindbot.core.errors import InvalidPostponeTarget, ReminderError, ReminderNotFound
from remindbot.core.lifecycle import ReminderLifecycleManager
from remindbot.core.models import live_message_ids
from remindbot.core.postpone_presets import CUSTOM_OPTION, DONE_OP, CallbackCommand, parse_callback
from remindbot.core.reminder_list import (
    DEFAULT_PAGE_SIZE,
    LIST_CLOSE_OP,
    LIST_DELETE_MODE_OP,
    LIST_DELETE_OP,
    ListCommand,
    parse_list_callback,
    render_page,
)

LOGGER = logging.getLogger(__name__)

PENDING_POSTPONE_KEY = "pending_postpone"
STALE_BUTTON_TEXT = "Кнопка устарела."


def _get_lifecycle(context: ContextTypes.DEFAULT_TYPE) -> ReminderLifecycleManager:
    return context.application.bot_data["lifecycle"]


def _get_messenger(context: ContextTypes.DEFAULT_TYPE) -> Any:
    return context.application.bot_data["messenger"]


def _get_settings_store(context: ContextTypes.DEFAULT_TYPE) -> Any:
    return context.application.bot_data["settings_store"]


def _get_page_size(context: ContextTypes.DEFAULT_TYPE) -> int:
    return context.application.bot_data.get("list_page_size", DEFAULT_PAGE_SIZE)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _get_messenger(context).send(update.effective_chat.id, texts.START_TEXT)


async def list_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id = update.effective_user.id
    page = _render_list(context, user_id, 0, delete_mode=False)
    await _get_messenger(context).send(update.effective_chat.id, page.text, page.controls or None)


async def delete_all_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    removed = _get_lifecycle(context).delete_all(update.effective_user.id)
    context.chat_data.pop(PENDING_POSTPONE_KEY, None)
    LOGGER.info("Delete all requested: user_id=%s removed=%s", update.effective_user.id, removed)
    await _get_messenger(context).send(update.effective_chat.id, texts.DELETED_ALL_TEXT)


async def text_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if message is None or not message.text:
        return
    chat_id = update.effective_chat.id
    user_id = update.effective_user.id
    messenger = _get_messenger(context)
    lifecycle = _get_lifecycle(context)

    pending = context.chat_data.pop(PENDING_POSTPONE_KEY, None)
    if pending:
        await _postpone_from_text(context, chat_id, pending, message.text)
        return

    result = lifecycle.create(user_id, chat_id, message.text)
    if result.status == "parse_error" and result.error is not None:
        await messenger.send(chat_id, texts.parse_error_text(result.error.message))
        return
    if result.status == "duplicate" or result.reminder is None:
        await messenger.send(chat_id, texts.DUPLICATE_TEXT)
        return
    settings = _get_settings_store(context).get(user_id)
    await messenger.send(chat_id, texts.confirmation_text(result.reminder, settings.zone))


async def callback_query(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if query is None:
        return
    command = parse_callback(query.data)
    if command is not None:
        await _handle_reminder_callback(update, context, command)
        return
    list_cmd = parse_list_callback(query.data)
    if list_cmd is not None:
        await _handle_list_callback(update, context, list_cmd)
        return
    LOGGER.info("Unknown callback data: data=%r", query.data)
    await _get_messenger(context).answer(query.id, STALE_BUTTON_TEXT)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    LOGGER.exception("Unhandled exception", exc_info=context.error)
    if isinstance(update, Update) and update.effective_chat is not None:
        await _get_messenger(context).send(update.effective_chat.id, texts.SERVER_ERROR_TEXT)


async def _handle_reminder_callback(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    command: CallbackCommand,
) -> None:
    query = update.callback_query
    messenger = _get_messenger(context)
    lifecycle = _get_lifecycle(context)
    chat_id, message_id = query.message.chat.id, query.message.message_id

    reminder = lifecycle.get(command.reminder_id)
    if reminder is None or reminder.completed or reminder.user_id != update.effective_user.id:
        await messenger.answer(query.id, texts.NOT_FOUND_TEXT)
        await messenger.edit_controls(chat_id, message_id, None)
        return

    if command.op == DONE_OP:
        try:
            done = lifecycle.mark_done(command.reminder_id)
        except ReminderError as exc:
            await messenger.answer(query.id, exc.user_message)
            await messenger.edit_controls(chat_id, message_id, None)
            return
        await messenger.answer(query.id, texts.DONE_CONFIRMATION)
        await lifecycle.release_controls(done, (message_id, *live_message_ids(done)))
        return

    if command.option == CUSTOM_OPTION:
        context.chat_data[PENDING_POSTPONE_KEY] = {"reminder_id": command.reminder_id, "message_id": message_id}
        await messenger.answer(query.id)
        await messenger.send(chat_id, texts.CUSTOM_POSTPONE_PROMPT)
        return

    try:
        result = lifecycle.postpone(command.reminder_id, command.option or "")
    except InvalidPostponeTarget as exc:
        await messenger.answer(query.id, exc.user_message)
        return
    except ReminderError as exc:
        await messenger.answer(query.id, exc.user_message)
        await messenger.edit_controls(chat_id, message_id, None)
        return
    await messenger.answer(query.id, result.ack_text)
    await lifecycle.release_controls(result.reminder, (message_id, *result.released_message_ids))


async def _postpone_from_text(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    pending: dict[str, Any],
    text: str,
) -> None:
    messenger = _get_messenger(context)
    lifecycle = _get_lifecycle(context)
    try:
        result = lifecycle.postpone(pending["reminder_id"], text)
    except InvalidPostponeTarget as exc:
        context.chat_data[PENDING_POSTPONE_KEY] = pending
        await messenger.send(chat_id, exc.user_message)
        return
    except ReminderError as exc:
        await messenger.send(chat_id, exc.user_message)
        return
    # Пока ждали ввода, мог прийти новый пинок: снимаем кнопки со всех живых сообщений.
    stale = [pending["message_id"]] if pending.get("message_id") is not None else []
    await lifecycle.release_controls(result.reminder, (*stale, *result.released_message_ids))
    await messenger.send(chat_id, result.ack_text)


async def _handle_list_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, command: ListCommand) -> None:
    query = update.callback_query
    messenger = _get_messenger(context)
    user_id = update.effective_user.id
    chat_id, message_id = query.message.chat.id, query.message.message_id

    if command.op == LIST_CLOSE_OP:
        await messenger.answer(query.id)
        await messenger.edit_controls(chat_id, message_id, None)
        return

    answer_text: str | None = None
    if command.op == LIST_DELETE_OP and command.reminder_id:
        lifecycle = _get_lifecycle(context)
        reminder = lifecycle.get(command.reminder_id)
        if reminder is None or reminder.user_id != user_id:
            answer_text = texts.NOT_FOUND_TEXT
        else:
            try:
                lifecycle.delete(command.reminder_id)
                answer_text = texts.DELETED_TEXT
            except ReminderNotFound:
                answer_text = texts.NOT_FOUND_TEXT

    delete_mode = command.op in {LIST_DELETE_MODE_OP, LIST_DELETE_OP}
    page = _render_list(context, user_id, command.page, delete_mode=delete_mode)
    await messenger.answer(query.id, answer_text)
    await messenger.edit_text(chat_id, message_id, page.text, page.controls or None)


def _render_list(context: ContextTypes.DEFAULT_TYPE, user_id: int, page: int, *, delete_mode: bool):
    reminders = _get_lifecycle(context).list(user_id)
    settings = _get_settings_store(context).get(user_id)
    return render_page(
        reminders,
        page,
        settings.zone,
        page_size=_get_page_size(context),
        delete_mode=delete_mode,
    )
