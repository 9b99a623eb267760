"""Render-ready projections of a message list."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import List, Optional, Sequence, Union

from .models import Message


@dataclass(frozen=True)
class MessageItem:
    id: str
    message: Message


@dataclass(frozen=True)
class DateSeparator:
    id: str
    label: str
    day: date


DisplayItem = Union[MessageItem, DateSeparator]


def local_day(timestamp: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of ``timestamp`` in ``tz`` (the local zone when omitted)."""

    return timestamp.astimezone(tz).date()


def format_date_label(day: date, today: date) -> str:
    diff_days = (today - day).days
    if diff_days == 0:
        return "Today"
    if diff_days == 1:
        return "Yesterday"
    return f"{day:%a}, {day:%B} {day.day}"


def build_display_items(
    messages: Sequence[Message],
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> List[DisplayItem]:
    """Interleave day separators into a newest-first message list.

    A separator follows a message whenever the next (older) message falls on
    another calendar day, and after the oldest message. In an inverted list
    it renders above the first message of each day.
    """

    if today is None:
        today = datetime.now(tz).date() if tz is not None else datetime.now().date()
    days = [local_day(message.created_at, tz) for message in messages]
    items: List[DisplayItem] = []
    for index, message in enumerate(messages):
        items.append(MessageItem(id=message.id, message=message))
        day = days[index]
        next_day = days[index + 1] if index + 1 < len(messages) else None
        if day != next_day:
            items.append(
                DateSeparator(id=f"date-{day.isoformat()}", label=format_date_label(day, today), day=day)
            )
    return items


def format_chat_time(timestamp: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Short timestamp for conversation list previews."""

    if timestamp is None:
        return ""
    if now is None:
        now = datetime.now().astimezone()
    elif now.tzinfo is None:
        now = now.astimezone()
    local = timestamp.astimezone(now.tzinfo)
    if local.date() == now.date():
        return f"{local:%H:%M}"
    diff_days = int((now - local).total_seconds() // 86_400)
    if diff_days < 7:
        return f"{local:%a}"
    return f"{local:%d/%m}"
