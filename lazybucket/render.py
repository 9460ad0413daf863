from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from rich.style import Style
from rich.text import Text

from .navigation import KeyMap, Mode, NavigationState
from .s3 import Entry, canonical_uri

APP_TITLE = "LazyBucket"
TITLE_WIDTH = 30
DETAILS_MIN_WIDTH = 80
DETAILS_WIDTH = 40

ONE_MB = 1024**2
HUNDRED_MB = 100 * ONE_MB
ONE_GB = 1024**3
TEN_GB = 10 * ONE_GB

SHORT_HELP = ("up", "down", "enter", "back", "help", "quit")
FULL_HELP = (
    ("up", "down", "enter"),
    ("back", "view", "refresh"),
    ("download", "copy_uri"),
    ("help", "quit"),
)
HELP_LABELS = {
    "up": "up",
    "down": "down",
    "page_up": "page up",
    "page_down": "page down",
    "top": "top",
    "bottom": "bottom",
    "enter": "open",
    "back": "go back",
    "quit": "quit",
    "view": "view file",
    "help": "help",
    "refresh": "refresh",
    "download": "download file",
    "copy_uri": "copy S3 URI",
}
KEY_LABELS = {
    "up": "↑",
    "down": "↓",
    "question_mark": "?",
    "pageup": "pgup",
    "pagedown": "pgdn",
    "backspace": "bksp",
    "ctrl+c": "^c",
}


@dataclass(frozen=True)
class Theme:
    title: Style = Style(bold=True, color="#FFFFFF", bgcolor="#4A86CF")
    path: Style = Style(color="#FFFFFF", bgcolor="#727272")
    status: Style = Style(color="#EEEEEE")
    notice: Style = Style(color="#00FF00")
    help: Style = Style(color="#626262")
    selected: Style = Style(bold=True, color="#FFFFFF", bgcolor="#2F4F6F")
    bucket: Style = Style(bold=True, color="#2F80ED")
    folder: Style = Style(color="#4A86CF")
    file: Style = Style(color="#EEEEEE")
    muted: Style = Style(color="#8A8A8A")
    details_header: Style = Style(bold=True, color="#FFFFFF", bgcolor="#4A86CF")
    details_label: Style = Style(bold=True, color="#4A86CF")
    details_value: Style = Style(color="#EEEEEE")
    border: Style = Style(color="#4A86CF")


DEFAULT_THEME = Theme()


def format_size(size: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} PB"


def size_style(size: int) -> str:
    if size < ONE_MB:
        return "green"
    if size < HUNDRED_MB:
        return "#ffd700"
    if size < ONE_GB:
        return "#ff8c00"
    if size < TEN_GB:
        return "red"
    return "bold red"


def format_time(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d %H:%M")


def entry_icon(entry: Entry) -> str:
    if entry.is_up:
        return "📁"
    if entry.is_bucket:
        return "🪣"
    if entry.is_container:
        return "📁"
    return "📄"


def key_label(keymap: KeyMap, action: str) -> str:
    labels: list[str] = []
    for key in getattr(keymap, action):
        label = KEY_LABELS.get(key, key)
        if label not in labels:
            labels.append(label)
    return "/".join(labels[:2])


def fit(text: Text, width: int) -> Text:
    line = text.copy()
    line.truncate(max(0, width), overflow="ellipsis", pad=True)
    return line


def render(
    state: NavigationState, keymap: KeyMap, theme: Theme = DEFAULT_THEME
) -> Text:
    width = max(1, state.width)
    lines: list[Text] = [_title_line(state, width, theme), Text("")]
    if state.mode is Mode.VIEWING_FILE:
        lines.extend(_viewer_lines(state, width, theme))
    else:
        lines.extend(_browser_lines(state, width, keymap, theme))
    lines.append(fit(_status_line(state, theme), width))
    lines.extend(fit(line, width) for line in _help_lines(state, keymap, theme))
    return Text("\n", no_wrap=True).join(lines)


def _title_line(state: NavigationState, width: int, theme: Theme) -> Text:
    title = Text(f" {APP_TITLE} ", style=theme.title)
    title.truncate(min(TITLE_WIDTH, width), pad=True)
    path = Text(f" {state.current_path or '/'}", style=theme.path)
    path.truncate(max(0, width - title.cell_len), overflow="ellipsis", pad=True)
    return Text.assemble(title, path)


def _status_line(state: NavigationState, theme: Theme) -> Text:
    line = Text()
    if state.notice:
        line.append(state.notice, style=theme.notice)
        if state.status_message:
            line.append("  ")
    line.append(state.status_message, style=theme.status)
    return line


def _help_lines(state: NavigationState, keymap: KeyMap, theme: Theme) -> list[Text]:
    if not state.show_help:
        items = [
            f"{key_label(keymap, action)} {HELP_LABELS[action]}"
            for action in SHORT_HELP
        ]
        return [Text(" • ".join(items), style=theme.help)]
    lines = []
    for group in FULL_HELP:
        items = [
            f"{key_label(keymap, action):<12} {HELP_LABELS[action]}"
            for action in group
        ]
        lines.append(Text("    ".join(items), style=theme.help))
    return lines


def _body_height(state: NavigationState) -> int:
    extra = len(FULL_HELP) - 1 if state.show_help else 0
    return max(1, state.list_height - extra)


def _viewer_lines(state: NavigationState, width: int, theme: Theme) -> list[Text]:
    height = _body_height(state)
    lines = [fit(Text(f"── {state.viewport_title} ", style=theme.border), width)]
    content = state.viewport_lines
    start = state.viewport_offset
    visible = content[start : start + max(0, height - 2)]
    for value in visible:
        lines.append(fit(Text(" " + value.expandtabs(4)), width))
    while len(lines) < height - 1:
        lines.append(fit(Text(""), width))
    total = len(content)
    end = min(total, start + len(visible))
    footer = f"── lines {start + 1 if total else 0}-{end} of {total} "
    lines.append(fit(Text(footer, style=theme.border), width))
    return lines[:height]


def _list_window(state: NavigationState, height: int) -> tuple[int, int]:
    total = len(state.entries)
    if total <= height:
        return 0, total
    start = max(0, state.selected_index - height + 1)
    start = min(start, total - height)
    if state.selected_index < start:
        start = state.selected_index
    return start, start + height


def _entry_line(entry: Entry, selected: bool, width: int, theme: Theme) -> Text:
    if entry.is_bucket:
        style = theme.bucket
    elif entry.is_container:
        style = theme.folder
    else:
        style = theme.file
    marker = "> " if selected else "  "
    line = Text(marker)
    line.append(f"{entry_icon(entry)} {entry.name}", style=style)
    if not entry.is_container:
        size = format_size(entry.size_bytes)
        room = width - line.cell_len - len(size) - 1
        if room > 0:
            line.append(" " * room)
            line.append(size, style=size_style(entry.size_bytes))
    line = fit(line, width)
    if selected:
        line.stylize(theme.selected)
    return line


def _browser_lines(
    state: NavigationState, width: int, keymap: KeyMap, theme: Theme
) -> list[Text]:
    height = _body_height(state)
    show_details = width >= DETAILS_MIN_WIDTH
    list_width = width // 2 if show_details else width
    rows: list[Text] = []
    if not state.entries:
        rows.append(fit(Text("  (no items)", style=theme.muted), list_width))
    else:
        start, end = _list_window(state, height)
        for index in range(start, end):
            entry = state.entries[index]
            rows.append(
                _entry_line(entry, index == state.selected_index, list_width, theme)
            )
    while len(rows) < height:
        rows.append(fit(Text(""), list_width))
    if not show_details:
        return rows
    details = _details_lines(state.selected_entry, width - list_width, keymap, theme)
    joined = []
    for index, row in enumerate(rows):
        line = row.copy()
        if index < len(details):
            line.append_text(details[index])
        joined.append(line)
    return joined


def _details_lines(
    entry: Optional[Entry], width: int, keymap: KeyMap, theme: Theme
) -> list[Text]:
    if entry is None or entry.is_container or width < 4:
        return []
    inner = min(DETAILS_WIDTH, width) - 4
    fields = [
        ("Name", entry.name),
        ("Size", format_size(entry.size_bytes)),
        ("Last Modified", format_time(entry.last_modified) or "-"),
        ("Storage Class", entry.storage_class or "-"),
        ("Full Path", entry.full_path),
        ("S3 URI", canonical_uri(entry.full_path)),
    ]
    body: list[Text] = [
        Text("File Details".center(inner), style=theme.details_header),
        Text(""),
    ]
    for label, value in fields:
        body.append(Text(f"{label}:", style=theme.details_label))
        body.append(Text(value, style=theme.details_value))
    body.append(Text(""))
    body.append(Text("Actions:", style=theme.details_label))
    body.append(
        Text(
            f"Press '{key_label(keymap, 'download')}' to download",
            style=theme.details_value,
        )
    )
    body.append(
        Text(
            f"Press '{key_label(keymap, 'copy_uri')}' to copy S3 URI",
            style=theme.details_value,
        )
    )

    lines = [Text(" ╭" + "─" * inner + "╮", style=theme.border)]
    for value in body:
        line = Text(" │", style=theme.border)
        line.append_text(fit(value, inner))
        line.append("│", style=theme.border)
        lines.append(line)
    lines.append(Text(" ╰" + "─" * inner + "╯", style=theme.border))
    return lines
