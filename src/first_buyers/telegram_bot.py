"""
Telegram bot interface for the First Buyers Agent.

Commands
--------
/start                      – Welcome message
/help                       – Usage
/analyze <address> [a-b]    – First buyers of a token, optionally ranks a..b
<address>                   – Same as /analyze with the default window
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from telegram import LinkPreviewOptions, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from config import (
    ANALYSIS_TIMEOUT_SECONDS,
    DEFAULT_BUYER_LIMIT,
    TELEGRAM_BOT_TOKEN,
    WEBHOOK_PORT,
    WEBHOOK_URL,
)
from .analyzer import analyze_first_buyers
from .data_sources._clients import DataSources, build_data_sources
from .exceptions import AnalysisError
from .logging_config import setup_logging
from .report_formatter import esc, format_report, parse_range
from .utils import is_eth_address

logger = logging.getLogger(__name__)

_SOURCES_KEY = "sources"


def _fetch_limit(window: Optional[tuple[int, int]]) -> int:
    """Buyers to fetch so the whole window is covered; the pipeline caps it."""
    if window is None:
        return DEFAULT_BUYER_LIMIT
    return max(DEFAULT_BUYER_LIMIT, window[1])


# ------------------------------------------------------------------
# Handlers
# ------------------------------------------------------------------


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send a welcome message and usage instructions."""
    text = (
        "🤖 *First Buyers Agent*\n\n"
        "I list the first wallets to buy an Ethereum token and split them "
        "into the launch *bundle* and the *snipers* that followed\\.\n\n"
        "1️⃣ Send a token contract address\n"
        "2️⃣ Get the ranked first buyers\n\n"
        "*Example:*\n"
        "`0x1234567890123456789012345678901234567890`\n\n"
        "⏱️ _An analysis takes 1\\-2 minutes_"
    )
    await update.message.reply_text(text, parse_mode="MarkdownV2")


async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send help / usage instructions."""
    text = (
        "🤖 *First Buyers Agent \\– Help*\n\n"
        "*Commands:*\n"
        "• /analyze `<address>` \\– First buyers of a token\n"
        "• /analyze `<address>` `1-20` \\– Only show ranks 1 to 20\n"
        "• /help \\– Show this message\n\n"
        "📦 marks buyers inside the launch bundle, 🎯 marks snipers\\.\n"
        "Paste a contract address to get started\\."
    )
    await update.message.reply_text(text, parse_mode="MarkdownV2")


async def unknown_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Respond to unrecognised messages/commands."""
    await update.message.reply_text(
        "❓ I don't understand that\\.\n"
        "Send a token address or use /help\\.",
        parse_mode="MarkdownV2",
    )


async def analyze_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle ``/analyze <address> [start-end]``."""
    if not context.args:
        await update.message.reply_text(
            "Usage: /analyze <address> \\[start\\-end\\]", parse_mode="MarkdownV2"
        )
        return

    address = context.args[0]
    window: Optional[tuple[int, int]] = None
    if len(context.args) > 1:
        window = parse_range(context.args[1])
        if window is None:
            await update.message.reply_text(
                "❌ Invalid range\\. Use `start-end`, e\\.g\\. `1-20`\\.",
                parse_mode="MarkdownV2",
            )
            return
    await _run_analysis(update, context, address, window)


async def address_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """A bare contract address sent as a message."""
    await _run_analysis(update, context, update.message.text.strip(), None)


async def _run_analysis(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    address: str,
    window: Optional[tuple[int, int]],
) -> None:
    if not is_eth_address(address):
        await update.message.reply_text("❌ Invalid contract address\\.", parse_mode="MarkdownV2")
        return

    sources: DataSources = context.application.bot_data[_SOURCES_KEY]
    logger.info("Received analyze request for %s (window=%s)", address, window)
    notice = await update.message.reply_text(
        "🔍 Analyzing first buyers… please wait 1\\-2 minutes\\.",
        parse_mode="MarkdownV2",
    )

    try:
        result = await asyncio.wait_for(
            analyze_first_buyers(address, _fetch_limit(window), sources=sources),
            timeout=ANALYSIS_TIMEOUT_SECONDS,
        )
    except AnalysisError as exc:
        logger.info("Analysis of %s stopped: %s", address, exc)
        await _drop_notice(notice)
        await update.message.reply_text(f"❌ {esc(exc.user_message)}\\.", parse_mode="MarkdownV2")
        return
    except asyncio.TimeoutError:
        logger.warning("Analysis of %s timed out after %ss", address, ANALYSIS_TIMEOUT_SECONDS)
        await _drop_notice(notice)
        await update.message.reply_text(
            "⏱️ The analysis took too long\\. Please try again later\\.",
            parse_mode="MarkdownV2",
        )
        return
    except Exception:
        logger.exception("Analysis error for %s", address)
        await _drop_notice(notice)
        await update.message.reply_text(
            "❌ Something went wrong while analyzing this token\\. Please try again later\\.",
            parse_mode="MarkdownV2",
        )
        return

    start_rank, end_rank = window if window else (1, None)
    await _drop_notice(notice)
    for chunk in format_report(result, start_rank, end_rank):
        await update.message.reply_text(
            chunk,
            parse_mode="MarkdownV2",
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )


async def _drop_notice(notice) -> None:
    try:
        await notice.delete()
    except TelegramError as exc:
        logger.debug("Could not delete progress notice: %s", exc)


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


async def _post_init(application: Application) -> None:
    application.bot_data[_SOURCES_KEY] = build_data_sources()


async def _post_shutdown(application: Application) -> None:
    sources: Optional[DataSources] = application.bot_data.pop(_SOURCES_KEY, None)
    if sources is not None:
        await sources.aclose()


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Telegram update failed: %s", context.error, exc_info=context.error)


def build_application(token: str = TELEGRAM_BOT_TOKEN) -> Application:
    application = (
        ApplicationBuilder()
        .token(token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_cmd))
    application.add_handler(CommandHandler("analyze", analyze_cmd))
    application.add_handler(
        MessageHandler(filters.TEXT & filters.Regex(r"^\s*0x[0-9a-fA-F]{40}\s*$"), address_message)
    )
    # Catch-all for unknown commands / messages
    application.add_handler(MessageHandler(filters.COMMAND, unknown_cmd))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, unknown_cmd))
    application.add_error_handler(_on_error)
    return application


# ------------------------------------------------------------------
# Entrypoint
# ------------------------------------------------------------------


def main() -> None:
    """Start the Telegram bot and run it until interrupted."""
    if not TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")
    setup_logging()
    application = build_application()

    if WEBHOOK_URL:
        logger.info("Starting bot in webhook mode on port %d…", WEBHOOK_PORT)
        application.run_webhook(
            listen="0.0.0.0",
            port=WEBHOOK_PORT,
            url_path=TELEGRAM_BOT_TOKEN,
            webhook_url=f"{WEBHOOK_URL}/{TELEGRAM_BOT_TOKEN}",
        )
    else:
        logger.info("Starting bot in polling mode…")
        application.run_polling()


if __name__ == "__main__":
    main()
