"""Sessions layer — Transcript rendering and archiving."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ticketgate.platform.provider import HistoryMessage


@dataclass(frozen=True)
class Transcript:
    session_id: str
    text: str
    message_count: int
    generated_at: float
    path: Path | None = None


def _fmt(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def render_transcript(
    channel_label: str,
    messages: list[HistoryMessage],
    generated_at: float | None = None,
) -> str:
    """Render *messages* oldest first as a plain-text transcript."""
    generated_at = generated_at or time.time()
    ordered = sorted(messages, key=lambda m: m.timestamp)
    lines = [
        "=== TICKET TRANSCRIPT ===",
        f"Channel: {channel_label}",
        f"Date: {_fmt(generated_at)}",
        f"Total messages: {len(ordered)}",
        "=========================",
        "",
    ]
    for m in ordered:
        lines.append(f"[{_fmt(m.timestamp)}] {m.author}: {m.text or '[embed/attachment]'}")
        if m.embeds:
            lines.append(f"    [Embed: {m.embeds[0] or 'untitled'}]")
        for name in m.attachments:
            lines.append(f"    [Attachment: {name}]")
    return "\n".join(lines) + "\n"


def archive_transcript(directory: Path, session_id: str, text: str, generated_at: float) -> Path:
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"transcript-{session_id}-{int(generated_at * 1000)}.txt"
    path.write_text(text, encoding="utf-8")
    return path
