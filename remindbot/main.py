from __future__ import annotations

import asyncio
import logging

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from remindbot.bot import handlers
from remindbot.core.dispatch import ReminderDispatchScheduler
from remindbot.core.job_registry import JobRegistry
from remindbot.core.lifecycle import ReminderLifecycleManager
from remindbot.infra.config import Settings, load_settings
from remindbot.infra.logging_config import configure_logging
from remindbot.infra.messaging import TelegramMessenger
from remindbot.infra.reminder_store import ReminderStore
from remindbot.infra.user_settings_store import UserSettingsStore

LOGGER = logging.getLogger(__name__)


def _register_handlers(application: Application) -> None:
    application.add_handler(CommandHandler("start", handlers.start))
    application.add_handler(CommandHandler("help", handlers.start))
    application.add_handler(CommandHandler("list", handlers.list_command))
    application.add_handler(CommandHandler("deleteall", handlers.delete_all_command))
    application.add_handler(CallbackQueryHandler(handlers.callback_query))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handlers.text_message))
    application.add_error_handler(handlers.error_handler)


def build_application(settings: Settings) -> Application:
    application = Application.builder().token(settings.bot_token).build()
    reminder_store = ReminderStore(settings.db_path)
    settings_store = UserSettingsStore(
        settings.db_path,
        default_timezone=settings.default_timezone,
        default_auto_postpone_minutes=settings.inertia_default_minutes,
    )
    messenger = TelegramMessenger(application.bot)
    registry = JobRegistry(timezone=settings.zone, misfire_grace_seconds=settings.misfire_grace_seconds)
    dispatch = ReminderDispatchScheduler(
        store=reminder_store,
        messenger=messenger,
        registry=registry,
        settings_store=settings_store,
    )
    lifecycle = ReminderLifecycleManager(store=reminder_store, dispatch=dispatch, settings_store=settings_store)

    application.bot_data["settings"] = settings
    application.bot_data["reminder_store"] = reminder_store
    application.bot_data["settings_store"] = settings_store
    application.bot_data["messenger"] = messenger
    application.bot_data["job_registry"] = registry
    application.bot_data["lifecycle"] = lifecycle
    application.bot_data["list_page_size"] = settings.list_page_size

    async def _post_init(app: Application) -> None:
        registry.start()
        if not settings.reminders_enabled:
            LOGGER.info("Reminders disabled by config")
            return
        lifecycle.restore_all()

    async def _post_shutdown(app: Application) -> None:
        registry.shutdown(wait=False)
        reminder_store.close()
        settings_store.close()

    application.post_init = _post_init
    application.post_shutdown = _post_shutdown
    _register_handlers(application)
    return application


def main() -> None:
    configure_logging()
    try:
        settings = load_settings()
    except RuntimeError as exc:
        LOGGER.exception("Startup failed: %s", exc)
        raise SystemExit(1) from exc

    application = build_application(settings)
    if settings.dry_run:
        LOGGER.info("DRY_RUN: application built, polling skipped db_path=%s", settings.db_path)
        return

    LOGGER.info("Bot started: timezone=%s db_path=%s", settings.default_timezone, settings.db_path)
    try:
        asyncio.get_event_loop()
    except RuntimeError:
        asyncio.set_event_loop(asyncio.new_event_loop())
    application.run_polling()


if __name__ == "__main__":
    main()
