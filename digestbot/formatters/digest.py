"""
Plain-text digest formatting for digestbot notifications.
"""
from datetime import datetime
from typing import List, Optional

from digestbot.core.article import DigestResult

TELEGRAM_MAX_LENGTH = 4096
# Room kept free in every part for the "[Часть i/n]" marker
PART_HEADER_RESERVE = 32


def format_result(result: DigestResult, index: int) -> str:
    """
    Format one digest block.

    Args:
        result: Digest to format
        index: 1-based position in the message

    Returns:
        Multi-line block ending with a separator
    """
    humor = [f"  • {meme}" for meme in result.memes] + [f"  • {joke}" for joke in result.jokes]
    lines = [
        f"📄 Статья {index}:",
        f"🔗 Источник: {result.source}",
        f"📌 Заголовок: {result.title}",
        f"🌐 URL: {result.url}",
        f"📝 Краткое содержание: {result.summary}",
        "",
        "😄 Мемы и шутки:",
        *humor,
        "",
        "---",
    ]
    return "\n".join(lines)


def format_digest(results: List[DigestResult], now: Optional[datetime] = None) -> str:
    """
    Build the notification message for a batch of digests.

    Args:
        results: Digests to include
        now: Timestamp for the footer, defaults to the local time

    Returns:
        Header with the count, one block per digest and a timestamped footer
    """
    now = now or datetime.now()
    header = f"📰 Обработано новостей: {len(results)}\n\n"
    body = "\n\n".join(format_result(result, i) for i, result in enumerate(results, 1))
    footer = f"\n⏰ Обработано: {now.strftime('%d.%m.%Y, %H:%M:%S')}"
    return header + body + footer


def _split_lines(text: str, limit: int) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    size = 0

    for line in text.split("\n"):
        # A line that can never fit is cut into fixed-size chunks
        while len(line) > limit:
            if current:
                parts.append("\n".join(current))
                current, size = [], 0
            parts.append(line[:limit])
            line = line[limit:]

        added = len(line) + (1 if current else 0)
        if current and size + added > limit:
            parts.append("\n".join(current))
            current, size = [line], len(line)
        else:
            current.append(line)
            size += added

    if current:
        parts.append("\n".join(current))
    return [part for part in parts if part.strip()]


def split_message(text: str, limit: int = TELEGRAM_MAX_LENGTH) -> List[str]:
    """
    Split a message into parts no longer than ``limit`` characters.

    Splitting happens on line boundaries; a single line longer than the
    budget is hard-chunked. When more than one part results, each part is
    prefixed with "[Часть i/n]".

    Args:
        text: Message text
        limit: Maximum length of each part, marker included

    Returns:
        Ordered list of parts
    """
    if len(text) <= limit:
        return [text]

    budget = max(1, limit - PART_HEADER_RESERVE)
    parts = _split_lines(text, budget)
    if len(parts) == 1:
        return parts
    total = len(parts)
    return [f"[Часть {i}/{total}]\n{part}" for i, part in enumerate(parts, 1)]
