from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.widget import Widget

from .config import ENDPOINT_ENV, LOG_FILE_ENV, load_keymap, resolve_profile
from .effects import copy_to_clipboard, write_local_file
from .errors import ClipboardError, ConfigurationError, GatewayError, LocalIOError
from .navigation import (
    ClipboardCopyCompleted,
    ClipboardCopyFailed,
    CopyToClipboard,
    DownloadCompleted,
    DownloadFailed,
    DownloadObject,
    Effect,
    EntriesLoaded,
    Event,
    FetchContent,
    FileLoaded,
    FileLoadFailed,
    KeyMap,
    KeyPressed,
    ListEntries,
    ListingFailed,
    NavigationController,
    Quit,
    TimerTick,
    WindowResized,
)
from .render import DEFAULT_THEME, Theme, render
from .s3 import S3Service

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0


class ControllerEvent(Message):
    def __init__(self, event: Event) -> None:
        super().__init__()
        self.event = event


class BrowserView(Widget):
    can_focus = True

    def __init__(
        self, controller: NavigationController, style_theme: Theme, **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self._controller = controller
        self._style_theme = style_theme

    def render(self) -> Text:
        return render(self._controller.state, self._controller.keymap, self._style_theme)

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.post_message(ControllerEvent(KeyPressed(event.key)))


class LazyBucketApp(App):
    TITLE = "LazyBucket"

    CSS = """
    Screen {
        overflow: hidden;
    }

    #browser {
        width: 100%;
        height: 100%;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(
        self,
        service: S3Service,
        keymap: Optional[KeyMap] = None,
        style_theme: Theme = DEFAULT_THEME,
        download_dir: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self.service = service
        self.controller = NavigationController(keymap)
        self._style_theme = style_theme
        self._download_dir = download_dir

    def compose(self) -> ComposeResult:
        yield BrowserView(self.controller, self._style_theme, id="browser")

    def on_mount(self) -> None:
        self.browser = self.query_one("#browser", BrowserView)
        self.set_focus(self.browser)
        self._install_signal_handlers()
        self.set_interval(TICK_SECONDS, self._tick)
        self.apply_event(WindowResized(self.size.width, self.size.height))
        self._run_effects(self.controller.start())

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.exit)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("cannot install handler for %s", signum)

    def _tick(self) -> None:
        self.post_message(ControllerEvent(TimerTick()))

    def on_resize(self, event: events.Resize) -> None:
        self.apply_event(WindowResized(event.size.width, event.size.height))

    def on_controller_event(self, message: ControllerEvent) -> None:
        self.apply_event(message.event)

    def apply_event(self, event: Event) -> None:
        effects = self.controller.dispatch(event)
        if hasattr(self, "browser"):
            self.browser.refresh()
        self._run_effects(effects)

    def _run_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Quit):
                self.exit()
                return
            if isinstance(effect, ListEntries):
                self.run_worker(self._list_entries(effect), group="listing")
            elif isinstance(effect, FetchContent):
                self.run_worker(self._fetch_content(effect), group="content")
            elif isinstance(effect, DownloadObject):
                self.run_worker(self._download(effect), group="download")
            elif isinstance(effect, CopyToClipboard):
                self.run_worker(self._copy(effect), group="clipboard")
            else:
                raise TypeError(f"unhandled effect {effect!r}")

    async def _list_entries(self, effect: ListEntries) -> None:
        try:
            entries = await self.service.list_path(effect.path)
        except GatewayError as exc:
            event: Event = ListingFailed(effect.request_id, effect.path, exc)
        else:
            event = EntriesLoaded(effect.request_id, effect.path, tuple(entries))
        self.post_message(ControllerEvent(event))

    async def _fetch_content(self, effect: FetchContent) -> None:
        bucket, key = effect.address
        try:
            data = await self.service.fetch_content(bucket, key)
        except GatewayError as exc:
            event: Event = FileLoadFailed(effect.request_id, effect.entry, exc)
        else:
            content = data.decode("utf-8", errors="replace")
            event = FileLoaded(effect.request_id, effect.entry, content)
        self.post_message(ControllerEvent(event))

    async def _download(self, effect: DownloadObject) -> None:
        bucket, key = effect.address
        try:
            data = await self.service.fetch_content(bucket, key)
            destination = await asyncio.to_thread(
                write_local_file, effect.filename, data, self._download_dir
            )
        except (GatewayError, LocalIOError) as exc:
            event: Event = DownloadFailed(effect.request_id, effect.filename, exc)
        else:
            event = DownloadCompleted(effect.request_id, str(destination))
        self.post_message(ControllerEvent(event))

    async def _copy(self, effect: CopyToClipboard) -> None:
        try:
            await asyncio.to_thread(copy_to_clipboard, effect.uri)
        except ClipboardError as exc:
            event: Event = ClipboardCopyFailed(effect.uri, exc)
        else:
            event = ClipboardCopyCompleted(effect.uri)
        self.post_message(ControllerEvent(event))


def _configure_logging(log_file: Optional[str]) -> None:
    if not log_file:
        logging.getLogger("lazybucket").addHandler(logging.NullHandler())
        return
    logging.basicConfig(
        filename=log_file,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for noisy in ("botocore", "boto3", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lazybucket", description="Terminal browser for S3 buckets"
    )
    parser.add_argument(
        "--profile",
        help="AWS profile to browse with (defaults to $AWS_PROFILE)",
    )
    parser.add_argument(
        "--region",
        help="AWS region override for the S3 client",
    )
    parser.add_argument(
        "--endpoint-url",
        default=os.environ.get(ENDPOINT_ENV),
        help="Endpoint URL for S3-compatible storage",
    )
    parser.add_argument(
        "--log-file",
        default=os.environ.get(LOG_FILE_ENV),
        help="Write debug logs to this file",
    )
    return parser


def _run_browser(
    profile: str, region: Optional[str], endpoint_url: Optional[str]
) -> int:
    try:
        service = S3Service(profile=profile, region=region, endpoint_url=endpoint_url)
    except GatewayError as exc:
        logger.warning("startup failed: %s", exc)
        print(f"Error creating S3 client: {exc}", file=sys.stderr)
        print("Make sure you are authenticated with AWS:", file=sys.stderr)
        print(f"  aws configure --profile {profile}", file=sys.stderr)
        return 1
    app = LazyBucketApp(service, keymap=load_keymap())
    app.run()
    return app.return_code or 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_file)
    try:
        profile = resolve_profile(args.profile)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        for hint in exc.hints:
            print(hint, file=sys.stderr)
        return 1
    return _run_browser(profile, args.region, args.endpoint_url)


if __name__ == "__main__":
    sys.exit(main())
