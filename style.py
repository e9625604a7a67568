"""
style.py — visual style system for the Telegram front-end.

Design language:
  • Structured cards with consistent emoji icons
  • Unicode box-drawing dividers
  • Clear visual hierarchy: header → body → footer
  • MarkdownV2 throughout

All text that goes into Telegram messages should be formatted through this module.
"""
from __future__ import annotations

from retailers import RETAILERS, RetailerProfile

# ── Escape ────────────────────────────────────────────────────────────────────

def esc(text: str) -> str:
    """Escape all MarkdownV2 special characters."""
    for ch in r"\_*[]()~`>#+-=|{}.!":
        text = text.replace(ch, f"\\{ch}")
    return text


# ── Visual constants ──────────────────────────────────────────────────────────

DIV   = "━━━━━━━━━━━━━━━━━━━━━━━━━━"    # thick divider
SDIV  = "┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄"    # subtle divider

BAR_WIDTH = 12


def progress_bar(percent: int) -> str:
    filled = max(0, min(BAR_WIDTH, round(percent / 100 * BAR_WIDTH)))
    return "▰" * filled + "▱" * (BAR_WIDTH - filled)


# ══════════════════════════════════════════════════════════════════════════════
# START / WELCOME
# ══════════════════════════════════════════════════════════════════════════════

def welcome(store: RetailerProfile) -> str:
    return (
        f"🖼️ *PRODUCT PHOTO FINDER*\n"
        f"{DIV}\n\n"
        f"Send a product ID or name and I'll find its photo\n"
        f"the way *{esc(store.label)}* shows it\\.\n\n"
        f"✨  *What I can do*\n"
        f"▸ Look up one product photo\n"
        f"▸ Turn a CSV of products into a zip of photos\n"
        f"▸ Target, Best Buy, Home Depot and Lowe's\n\n"
        f"{DIV}\n"
        f"_🔎 Just type a product ID to get started_"
    )


def help_text(store: RetailerProfile) -> str:
    return (
        f"📖 *HOW TO USE*\n"
        f"{DIV}\n\n"
        f"*1️⃣  Pick a store*\n"
        f"_/store TARGET · BESTBUY · HOMEDEPOT · LOWES_\n\n"
        f"*2️⃣  Search one product*\n"
        f"_Type the ID or name, or /search <term>_\n\n"
        f"*3️⃣  Or send a CSV*\n"
        f"_Header row required; one product per row_\n"
        f"_Column for {esc(store.label)}: *{esc(store.id_column)}*_\n\n"
        f"{DIV}\n"
        f"🏬  Current store: *{esc(store.label)}*\n\n"
        f"_Commands: /start · /help · /stores · /store · /search_"
    )


def stores_list(current: RetailerProfile) -> str:
    lines = [f"🏬 *STORES*", DIV, ""]
    for p in RETAILERS.values():
        marker = "▸" if p.tag == current.tag else "▹"
        lines.append(f"{marker} *{esc(p.tag)}*  {esc(p.label)}  ·  CSV column _{esc(p.id_column)}_")
    lines += ["", f"_Switch with /store <TAG>_"]
    return "\n".join(lines)


def store_changed(store: RetailerProfile) -> str:
    return (
        f"✅ Store set to *{esc(store.label)}*\n"
        f"{SDIV}\n"
        f"CSV files need a *{esc(store.id_column)}* column\\."
    )


# ══════════════════════════════════════════════════════════════════════════════
# SINGLE LOOKUP
# ══════════════════════════════════════════════════════════════════════════════

def loading_search(store: RetailerProfile, term: str) -> str:
    return (
        f"🔍 *Searching {esc(store.label)}*\n"
        f"{SDIV}\n"
        f"⠋ Looking for _{esc(term[:80])}_…"
    )


def image_caption(store: RetailerProfile, term: str, image_url: str) -> str:
    return (
        f"🖼️ *{esc(store.label)}*  ·  {esc(term[:80])}\n"
        f"{SDIV}\n"
        f"{esc(image_url)}"
    )


def image_link(store: RetailerProfile, term: str, image_url: str) -> str:
    """Used when the photo itself couldn't be downloaded for upload."""
    return (
        f"🖼️ *{esc(store.label)}*  ·  {esc(term[:80])}\n"
        f"{SDIV}\n"
        f"Found an image but couldn't download it, open it here:\n"
        f"{esc(image_url)}"
    )


def not_found(store: RetailerProfile, term: str) -> str:
    return (
        f"😔 *No Matching Image Found*\n"
        f"{DIV}\n\n"
        f"Nothing usable for _{esc(term[:80])}_ at {esc(store.label)}\\.\n\n"
        f"Try:\n"
        f"▸ The exact product ID\n"
        f"▸ A different store with /store\n"
    )


def error_search_failed(message: str) -> str:
    return (
        f"❌ *Search Failed*\n"
        f"{DIV}\n\n"
        f"{esc(message[:300])}\n\n"
        f"_Please try again\\._"
    )


def error_invalid_input(message: str) -> str:
    return f"⚠️ {esc(message)}"


# ══════════════════════════════════════════════════════════════════════════════
# CSV BATCH
# ══════════════════════════════════════════════════════════════════════════════

def batch_progress(store: RetailerProfile, status) -> str:
    return (
        f"📦 *CSV → {esc(store.label)} photos*\n"
        f"{SDIV}\n"
        f"{esc(status.message)}\n\n"
        f"{progress_bar(status.percent)}  {status.current} of {status.total} \\({status.percent}%\\)"
    )


def batch_complete(store: RetailerProfile, status) -> str:
    return (
        f"✅ *Processing Complete*\n"
        f"{DIV}\n\n"
        f"🏬 Store:          *{esc(store.label)}*\n"
        f"📄 Rows:           *{status.total}*\n"
        f"🖼️ Images added:   *{status.added}*\n"
        f"🔍 No image found: *{status.not_found}*\n"
        f"⚠️ Skipped:        *{status.skipped}*\n\n"
        f"_Your zip is attached below\\._"
    )


def batch_failed(message: str) -> str:
    return (
        f"❌ *CSV Processing Failed*\n"
        f"{DIV}\n\n"
        f"{esc(message[:300])}"
    )


def not_a_csv() -> str:
    return (
        f"📄 *Send a CSV*\n"
        f"{SDIV}\n"
        f"Only \\.csv files can be batch processed\\.\n"
        f"_Export your sheet as CSV and send it here\\!_"
    )


# ══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGES
# ══════════════════════════════════════════════════════════════════════════════

def error_no_backend() -> str:
    return (
        f"⚠️ *Image Search Not Configured*\n"
        f"{DIV}\n\n"
        f"The server needs a Google Custom Search key\\.\n\n"
        f"▸ Set *GOOGLE\\_API\\_KEY* and *GOOGLE\\_CX*\n"
        f"▸ Restart the service\n\n"
        f"_Keys at console\\.cloud\\.google\\.com_"
    )


def error_rate_limited(max_requests: int, window_secs: int) -> str:
    return (
        f"⏱ *Slow Down\\!*\n"
        f"{SDIV}\n"
        f"You can run up to *{max_requests} searches* every *{window_secs} seconds*\\.\n\n"
        f"_Please wait a moment before searching again\\._"
    )
