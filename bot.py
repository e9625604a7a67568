"""
bot.py — Telegram front-end.

All visual formatting is delegated to style.py.
Lookups go through image_search.py, CSV files through batch.py.
The chosen store is kept in-memory per user_id.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Optional

from telegram import InputFile, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import batch
import config
import image_proxy
import style
from batch import BatchState, ProcessingStatus
from image_search import SearchState, find_product_image
from retailers import RetailerProfile, UnknownRetailerError, get_retailer
from search_backends.base import SearchConfigError

logger = logging.getLogger(__name__)

MAX_CSV_BYTES = 5 * 1024 * 1024


# ── Session ────────────────────────────────────────────────────────────────────

@dataclass
class UserSession:
    store: str = ""

    @property
    def profile(self) -> RetailerProfile:
        return get_retailer(self.store or config.DEFAULT_STORE)


_sessions: dict[int, UserSession] = {}


def get_session(user_id: int) -> UserSession:
    if user_id not in _sessions:
        _sessions[user_id] = UserSession()
    return _sessions[user_id]


# ── Rate limiter ───────────────────────────────────────────────────────────────
# Every lookup costs one search-API query, so keep individual users in check.
RATE_MAX_REQUESTS = 5
RATE_WINDOW_SECS  = 60
_rate_buckets: dict[int, deque] = defaultdict(deque)


def _is_rate_limited(user_id: int) -> bool:
    now    = time.monotonic()
    bucket = _rate_buckets[user_id]
    while bucket and now - bucket[0] > RATE_WINDOW_SECS:
        bucket.popleft()
    if len(bucket) >= RATE_MAX_REQUESTS:
        return True
    bucket.append(now)
    return False


# ── Handlers ───────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = get_session(update.effective_user.id)
    await update.message.reply_text(style.welcome(session.profile), parse_mode="MarkdownV2")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = get_session(update.effective_user.id)
    await update.message.reply_text(style.help_text(session.profile), parse_mode="MarkdownV2")


async def cmd_stores(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = get_session(update.effective_user.id)
    await update.message.reply_text(style.stores_list(session.profile), parse_mode="MarkdownV2")


async def cmd_store(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    session = get_session(update.effective_user.id)
    args = context.args or []
    if not args:
        await update.message.reply_text(style.stores_list(session.profile), parse_mode="MarkdownV2")
        return
    try:
        profile = get_retailer(" ".join(args))
    except UnknownRetailerError as exc:
        await update.message.reply_text(style.error_invalid_input(str(exc)), parse_mode="MarkdownV2")
        return
    session.store = profile.tag
    await update.message.reply_text(style.store_changed(profile), parse_mode="MarkdownV2")


async def cmd_search(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _lookup(update, context, " ".join(context.args or []))


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _lookup(update, context, update.message.text or "")


async def _lookup(update: Update, context: ContextTypes.DEFAULT_TYPE, term: str) -> None:
    user_id = update.effective_user.id
    profile = get_session(user_id).profile

    if not term.strip():
        await update.message.reply_text(
            style.error_invalid_input("Please enter a search term"), parse_mode="MarkdownV2"
        )
        return

    if _is_rate_limited(user_id):
        await update.message.reply_text(
            style.error_rate_limited(RATE_MAX_REQUESTS, RATE_WINDOW_SECS),
            parse_mode="MarkdownV2",
        )
        return

    msg = await update.message.reply_text(
        style.loading_search(profile, term.strip()), parse_mode="MarkdownV2"
    )

    try:
        outcome = await find_product_image(profile.tag, term)
    except SearchConfigError:
        await msg.edit_text(style.error_no_backend(), parse_mode="MarkdownV2")
        return
    except ValueError as exc:
        await msg.edit_text(style.error_invalid_input(str(exc)), parse_mode="MarkdownV2")
        return

    if outcome.state is SearchState.ERRORED:
        await msg.edit_text(style.error_search_failed(outcome.message), parse_mode="MarkdownV2")
        return
    if outcome.state is SearchState.NOT_FOUND:
        await msg.edit_text(style.not_found(profile, outcome.term), parse_mode="MarkdownV2")
        return

    # Telegram can't always fetch retailer CDNs itself, so download through the proxy
    try:
        image = await image_proxy.fetch_image(outcome.image_url)
    except image_proxy.ImageFetchError as exc:
        logger.warning("Could not download %s for Telegram: %s", outcome.image_url, exc)
        await msg.edit_text(
            style.image_link(profile, outcome.term, outcome.image_url),
            parse_mode="MarkdownV2",
            disable_web_page_preview=True,
        )
        return

    await update.message.reply_photo(
        photo=image.body,
        caption=style.image_caption(profile, outcome.term, outcome.image_url),
        parse_mode="MarkdownV2",
    )
    await msg.delete()


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user_id  = update.effective_user.id
    profile  = get_session(user_id).profile
    document = update.message.document

    if not (document.file_name or "").lower().endswith(".csv"):
        await update.message.reply_text(style.not_a_csv(), parse_mode="MarkdownV2")
        return
    if document.file_size and document.file_size > MAX_CSV_BYTES:
        await update.message.reply_text(
            style.batch_failed(f"CSV is larger than {MAX_CSV_BYTES // (1024 * 1024)} MB"),
            parse_mode="MarkdownV2",
        )
        return
    if _is_rate_limited(user_id):
        await update.message.reply_text(
            style.error_rate_limited(RATE_MAX_REQUESTS, RATE_WINDOW_SECS),
            parse_mode="MarkdownV2",
        )
        return

    tg_file  = await context.bot.get_file(document.file_id)
    csv_data = bytes(await tg_file.download_as_bytearray())

    status = ProcessingStatus()
    msg = await update.message.reply_text(
        style.batch_progress(profile, status), parse_mode="MarkdownV2"
    )
    on_progress = _progress_editor(msg, profile)

    result = await batch.run_batch(profile.tag, csv_data, status=status, on_progress=on_progress)

    if status.state is not BatchState.COMPLETE or result.archive is None:
        await msg.edit_text(style.batch_failed(status.message), parse_mode="MarkdownV2")
        return

    await msg.edit_text(style.batch_complete(profile, status), parse_mode="MarkdownV2")
    await update.message.reply_document(
        document=InputFile(result.archive, filename=result.archive_name),
    )


def _progress_editor(msg, profile: RetailerProfile):
    """
    Build an on_progress callback that edits msg every BATCH_PROGRESS_EVERY rows.
    Telegram limits message edits, so most updates are dropped.
    """
    last_shown = {"row": -1}

    async def on_progress(status: ProcessingStatus) -> None:
        if status.finished or status.total == 0:
            return
        if status.current == last_shown["row"]:
            return
        if status.current % max(1, config.BATCH_PROGRESS_EVERY) and status.current != 1:
            return
        last_shown["row"] = status.current
        try:
            await msg.edit_text(style.batch_progress(profile, status), parse_mode="MarkdownV2")
        except TelegramError as exc:
            logger.debug("Progress edit skipped: %s", exc)

    return on_progress


# ── App factory ────────────────────────────────────────────────────────────────

def build_application(token: Optional[str] = None) -> Application:
    app = Application.builder().token(token or config.TELEGRAM_BOT_TOKEN).build()

    app.add_handler(CommandHandler("start",  cmd_start))
    app.add_handler(CommandHandler("help",   cmd_help))
    app.add_handler(CommandHandler("stores", cmd_stores))
    app.add_handler(CommandHandler("store",  cmd_store))
    app.add_handler(CommandHandler("search", cmd_search))
    app.add_handler(MessageHandler(filters.Document.ALL,            handle_document))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    return app
