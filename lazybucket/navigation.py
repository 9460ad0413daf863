"""Navigation state machine.

The controller owns the single ``NavigationState``. Key presses and
background results are fed to ``NavigationController.dispatch`` one at a
time; each call mutates the state and returns the effects the application
has to run. Results of effects come back as events tagged with the request
id they were issued under, and results of superseded requests are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional, Union

from .s3 import Entry, canonical_uri, parse_address

logger = logging.getLogger(__name__)

NOTICE_TICKS = 3
COPY_NOTICE = "URI copied to clipboard!"
CHROME_LINES = 4
VIEWER_CHROME_LINES = 6


class Mode(Enum):
    BROWSING = "browsing"
    LOADING = "loading"
    VIEWING_FILE = "viewing_file"


@dataclass(frozen=True)
class KeyMap:
    up: tuple[str, ...] = ("up", "k")
    down: tuple[str, ...] = ("down", "j")
    page_up: tuple[str, ...] = ("pageup",)
    page_down: tuple[str, ...] = ("pagedown",)
    top: tuple[str, ...] = ("home", "g")
    bottom: tuple[str, ...] = ("end",)
    enter: tuple[str, ...] = ("enter",)
    back: tuple[str, ...] = ("backspace", "b")
    quit: tuple[str, ...] = ("q", "ctrl+c")
    view: tuple[str, ...] = ("v",)
    help: tuple[str, ...] = ("question_mark", "?", "h")
    refresh: tuple[str, ...] = ("r",)
    download: tuple[str, ...] = ("d",)
    copy_uri: tuple[str, ...] = ("c",)

    def action_for(self, key: str) -> Optional[str]:
        for action in ACTIONS:
            if key in getattr(self, action):
                return action
        return None

    def with_overrides(self, overrides: Mapping[str, object]) -> "KeyMap":
        changes: dict[str, tuple[str, ...]] = {}
        for action, keys in overrides.items():
            if action not in ACTIONS:
                logger.warning("ignoring keybinding for unknown action %r", action)
                continue
            if isinstance(keys, str):
                keys = [keys]
            if not isinstance(keys, (list, tuple)):
                logger.warning("ignoring malformed keybinding for %r", action)
                continue
            values = tuple(key for key in keys if isinstance(key, str) and key)
            if values:
                changes[action] = values
        return replace(self, **changes)


ACTIONS = (
    "up",
    "down",
    "page_up",
    "page_down",
    "top",
    "bottom",
    "enter",
    "back",
    "quit",
    "view",
    "help",
    "refresh",
    "download",
    "copy_uri",
)


# Events


@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class WindowResized:
    width: int
    height: int


@dataclass(frozen=True)
class EntriesLoaded:
    request_id: int
    path: str
    entries: tuple[Entry, ...]


@dataclass(frozen=True)
class ListingFailed:
    request_id: int
    path: str
    error: Exception


@dataclass(frozen=True)
class FileLoaded:
    request_id: int
    entry: Entry
    content: str


@dataclass(frozen=True)
class FileLoadFailed:
    request_id: int
    entry: Entry
    error: Exception


@dataclass(frozen=True)
class DownloadCompleted:
    request_id: int
    path: str


@dataclass(frozen=True)
class DownloadFailed:
    request_id: int
    name: str
    error: Exception


@dataclass(frozen=True)
class ClipboardCopyCompleted:
    uri: str


@dataclass(frozen=True)
class ClipboardCopyFailed:
    uri: str
    error: Exception


@dataclass(frozen=True)
class TimerTick:
    pass


Event = Union[
    KeyPressed,
    WindowResized,
    EntriesLoaded,
    ListingFailed,
    FileLoaded,
    FileLoadFailed,
    DownloadCompleted,
    DownloadFailed,
    ClipboardCopyCompleted,
    ClipboardCopyFailed,
    TimerTick,
]


# Effects


@dataclass(frozen=True)
class ListEntries:
    request_id: int
    path: str


@dataclass(frozen=True)
class FetchContent:
    request_id: int
    entry: Entry

    @property
    def address(self) -> tuple[str, str]:
        return parse_address(self.entry.full_path)


@dataclass(frozen=True)
class DownloadObject:
    request_id: int
    entry: Entry
    filename: str

    @property
    def address(self) -> tuple[str, str]:
        return parse_address(self.entry.full_path)


@dataclass(frozen=True)
class CopyToClipboard:
    uri: str


@dataclass(frozen=True)
class Quit:
    pass


Effect = Union[ListEntries, FetchContent, DownloadObject, CopyToClipboard, Quit]


@dataclass
class NavigationState:
    current_path: str = ""
    path_history: list[str] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)
    selected_index: int = 0
    mode: Mode = Mode.LOADING
    status_message: str = "Loading..."
    notice: str = ""
    notice_ticks: int = 0
    viewport_content: Optional[str] = None
    viewport_title: str = ""
    viewport_offset: int = 0
    width: int = 80
    height: int = 24
    show_help: bool = False

    @property
    def selected_entry(self) -> Optional[Entry]:
        if not self.entries:
            return None
        if 0 <= self.selected_index < len(self.entries):
            return self.entries[self.selected_index]
        return None

    @property
    def list_height(self) -> int:
        return max(1, self.height - CHROME_LINES)

    @property
    def viewport_height(self) -> int:
        return max(1, self.height - VIEWER_CHROME_LINES)

    @property
    def viewport_lines(self) -> list[str]:
        if not self.viewport_content:
            return []
        return self.viewport_content.splitlines()

    @property
    def max_viewport_offset(self) -> int:
        return max(0, len(self.viewport_lines) - self.viewport_height)


@dataclass(frozen=True)
class PendingListing:
    request_id: int
    path: str
    history: tuple[str, ...]


class NavigationController:
    def __init__(self, keymap: Optional[KeyMap] = None) -> None:
        self.keymap = keymap or KeyMap()
        self.state = NavigationState()
        self._listing_token = 0
        self._content_token = 0
        self._download_token = 0
        self._pending_listing: Optional[PendingListing] = None
        self._pending_content: Optional[int] = None
        self.downloads_in_flight: dict[int, str] = {}

    @property
    def pending_listing(self) -> Optional[PendingListing]:
        return self._pending_listing

    def start(self) -> list[Effect]:
        return self._start_listing(
            self.state.current_path, self.state.path_history, "Loading..."
        )

    def dispatch(self, event: Event) -> list[Effect]:
        if isinstance(event, KeyPressed):
            return self._on_key(event.key)
        if isinstance(event, WindowResized):
            return self._on_resize(event)
        if isinstance(event, EntriesLoaded):
            return self._on_entries_loaded(event)
        if isinstance(event, ListingFailed):
            return self._on_listing_failed(event)
        if isinstance(event, FileLoaded):
            return self._on_file_loaded(event)
        if isinstance(event, FileLoadFailed):
            return self._on_file_load_failed(event)
        if isinstance(event, DownloadCompleted):
            return self._on_download_completed(event)
        if isinstance(event, DownloadFailed):
            return self._on_download_failed(event)
        if isinstance(event, ClipboardCopyCompleted):
            logger.debug("copied %s", event.uri)
            return []
        if isinstance(event, ClipboardCopyFailed):
            logger.warning("clipboard copy of %s failed: %s", event.uri, event.error)
            self.state.status_message = f"Error: {event.error}"
            return []
        if isinstance(event, TimerTick):
            return self._on_tick()
        raise TypeError(f"unhandled event {event!r}")

    def _on_key(self, key: str) -> list[Effect]:
        action = self.keymap.action_for(key)
        if self.state.mode is Mode.VIEWING_FILE:
            return self._on_viewer_key(action)
        if action is None:
            return []
        if action == "quit":
            return [Quit()]
        if action == "help":
            self.state.show_help = not self.state.show_help
            return []
        if action in {"up", "down", "page_up", "page_down", "top", "bottom"}:
            self._move_selection(action)
            return []
        if action == "enter":
            return self._open_selected()
        if action == "back":
            return self._go_back()
        if action == "refresh":
            return self._start_listing(
                self.state.current_path, self.state.path_history, "Refreshing..."
            )
        if action == "view":
            return self._view_selected()
        if action == "download":
            return self._download_selected()
        if action == "copy_uri":
            return self._copy_selected()
        return []

    def _on_viewer_key(self, action: Optional[str]) -> list[Effect]:
        state = self.state
        if action == "quit":
            return [Quit()]
        if action == "back":
            state.mode = (
                Mode.LOADING if self._pending_listing is not None else Mode.BROWSING
            )
            return []
        step = {
            "up": -1,
            "down": 1,
            "page_up": -state.viewport_height,
            "page_down": state.viewport_height,
        }
        if action in step:
            offset = state.viewport_offset + step[action]
        elif action == "top":
            offset = 0
        elif action == "bottom":
            offset = state.max_viewport_offset
        else:
            return []
        state.viewport_offset = max(0, min(offset, state.max_viewport_offset))
        return []

    def _move_selection(self, action: str) -> None:
        state = self.state
        if not state.entries:
            state.selected_index = 0
            return
        last = len(state.entries) - 1
        if action == "up":
            index = state.selected_index - 1
        elif action == "down":
            index = state.selected_index + 1
        elif action == "page_up":
            index = state.selected_index - state.list_height
        elif action == "page_down":
            index = state.selected_index + state.list_height
        elif action == "top":
            index = 0
        else:
            index = last
        state.selected_index = max(0, min(index, last))

    def _open_selected(self) -> list[Effect]:
        entry = self.state.selected_entry
        if entry is None or not entry.is_container:
            return []
        if entry.is_up:
            return self._ascend(f"Navigating to {entry.name}")
        history = list(self.state.path_history)
        if self.state.current_path:
            history.append(self.state.current_path)
        return self._start_listing(
            entry.full_path, history, f"Navigating to {entry.name}"
        )

    def _ascend(self, status: str) -> list[Effect]:
        history = list(self.state.path_history)
        target = history.pop() if history else ""
        return self._start_listing(target, history, status)

    def _go_back(self) -> list[Effect]:
        if not self.state.path_history and not self.state.current_path:
            self.state.status_message = "Already at root level"
            return []
        return self._ascend("Loading items...")

    def _start_listing(
        self, path: str, history: list[str], status: str
    ) -> list[Effect]:
        self._listing_token += 1
        self._pending_listing = PendingListing(
            request_id=self._listing_token, path=path, history=tuple(history)
        )
        if self.state.mode is not Mode.VIEWING_FILE:
            self.state.mode = Mode.LOADING
        self.state.status_message = status
        return [ListEntries(request_id=self._listing_token, path=path)]

    def _on_entries_loaded(self, event: EntriesLoaded) -> list[Effect]:
        pending = self._pending_listing
        if pending is None or pending.request_id != event.request_id:
            logger.debug("dropping stale listing %s for %r", event.request_id, event.path)
            return []
        state = self.state
        same_path = pending.path == state.current_path
        if not same_path:
            # Content requested from the previous location no longer applies.
            self._pending_content = None
        previous = state.selected_entry
        self._pending_listing = None
        state.current_path = pending.path
        state.path_history = list(pending.history)
        state.entries = list(event.entries)
        state.selected_index = 0
        if same_path and previous is not None:
            state.selected_index = _reselect(state.entries, previous)
        if state.mode is Mode.LOADING:
            state.mode = Mode.BROWSING
        state.status_message = f"Loaded {len(state.entries)} items"
        return []

    def _on_listing_failed(self, event: ListingFailed) -> list[Effect]:
        pending = self._pending_listing
        if pending is None or pending.request_id != event.request_id:
            logger.debug("dropping stale listing error %s", event.request_id)
            return []
        logger.warning("listing %r failed: %s", event.path, event.error)
        self._pending_listing = None
        if self.state.mode is Mode.LOADING:
            self.state.mode = Mode.BROWSING
        self.state.status_message = f"Error: {event.error}"
        return []

    def _view_selected(self) -> list[Effect]:
        entry = self.state.selected_entry
        if entry is None or entry.is_container:
            return []
        self._content_token += 1
        self._pending_content = self._content_token
        self.state.status_message = f"Opening {entry.name}..."
        return [FetchContent(request_id=self._content_token, entry=entry)]

    def _on_file_loaded(self, event: FileLoaded) -> list[Effect]:
        if self._pending_content != event.request_id:
            logger.debug("dropping stale content %s", event.request_id)
            return []
        self._pending_content = None
        state = self.state
        state.viewport_content = event.content
        state.viewport_title = event.entry.full_path
        state.viewport_offset = 0
        state.mode = Mode.VIEWING_FILE
        state.status_message = f"Viewing {event.entry.name}"
        return []

    def _on_file_load_failed(self, event: FileLoadFailed) -> list[Effect]:
        if self._pending_content != event.request_id:
            logger.debug("dropping stale content error %s", event.request_id)
            return []
        logger.warning("fetching %s failed: %s", event.entry.full_path, event.error)
        self._pending_content = None
        self.state.status_message = f"Error: {event.error}"
        return []

    def _download_selected(self) -> list[Effect]:
        entry = self.state.selected_entry
        if entry is None or entry.is_container:
            return []
        self._download_token += 1
        self.downloads_in_flight[self._download_token] = entry.name
        self.state.status_message = (
            f"Downloading {entry.name} to current directory..."
        )
        return [
            DownloadObject(
                request_id=self._download_token, entry=entry, filename=entry.name
            )
        ]

    def _on_download_completed(self, event: DownloadCompleted) -> list[Effect]:
        self.downloads_in_flight.pop(event.request_id, None)
        message = f"Downloaded file to {event.path}"
        if self.downloads_in_flight:
            message = f"{message} ({len(self.downloads_in_flight)} still downloading)"
        self.state.status_message = message
        return []

    def _on_download_failed(self, event: DownloadFailed) -> list[Effect]:
        self.downloads_in_flight.pop(event.request_id, None)
        logger.warning("download of %s failed: %s", event.name, event.error)
        self.state.status_message = f"Error: {event.error}"
        return []

    def _copy_selected(self) -> list[Effect]:
        entry = self.state.selected_entry
        if entry is None or entry.is_container:
            return []
        uri = canonical_uri(entry.full_path)
        self.state.status_message = f"Copied URI for {entry.name}"
        self.state.notice = COPY_NOTICE
        self.state.notice_ticks = NOTICE_TICKS
        return [CopyToClipboard(uri=uri)]

    def _on_tick(self) -> list[Effect]:
        state = self.state
        if state.notice_ticks > 0:
            state.notice_ticks -= 1
            if state.notice_ticks == 0:
                state.notice = ""
        return []

    def _on_resize(self, event: WindowResized) -> list[Effect]:
        state = self.state
        state.width = max(1, event.width)
        state.height = max(1, event.height)
        state.viewport_offset = min(state.viewport_offset, state.max_viewport_offset)
        return []


def _reselect(entries: list[Entry], previous: Entry) -> int:
    for index, entry in enumerate(entries):
        if entry.full_path == previous.full_path:
            return index
    return 0
