"""Reader for the systemd journal.

Sources look like ``:sd_journal[/<scope>][?FIELD=value&...]``. The reader runs
``journalctl --follow --output=json`` and exports one field of every entry
(``MESSAGE`` by default) as a line. The journal cursor of the last entry can
be persisted so that a restart resumes where the previous run stopped.

Scopes:
    local-default (or none): journalctl defaults
    system: ``--system``
    current-user, user: ``--user``
    namespace-root, root: ``--root=<root option>``
"""

import asyncio
import json
import re
from contextlib import suppress
from dataclasses import dataclass, field
from urllib.parse import parse_qsl

from logmonitor.adapters.readers.options import option_float, option_str
from logmonitor.adapters.storage.sqlite_cursors import SQLiteCursorStore
from logmonitor.core.errors import (
    NoMatchError,
    OpenError,
    ReadError,
    StopError,
    StorageError,
)
from logmonitor.core.logs import get_logger
from logmonitor.core.models import SourceSpec
from logmonitor.core.ports import CursorStorePort

logger = get_logger(__name__)

JOURNAL_PREFIX = ":sd_journal"
JOURNAL_PRIORITY = 100
DEFAULT_FIELD = "MESSAGE"
DEFAULT_WAIT_TIMEOUT = 1.0
DEFAULT_RETRY_INTERVAL = 1.0

_FIELD_RE = re.compile(r"^[A-Z0-9_]+$")

_SCOPES = {
    "local-default": (),
    "system": ("--system",),
    "current-user": ("--user",),
    "user": ("--user",),
    "namespace-root": ("--root",),
    "root": ("--root",),
}


@dataclass(frozen=True)
class JournalSelector:
    """Parsed journal source identifier."""

    scope: str = "local-default"
    matches: tuple[tuple[str, str], ...] = field(default_factory=tuple)


def parse_journal_source(source: str) -> JournalSelector | None:
    """Parse a ``:sd_journal`` identifier.

    Returns:
        The selector, or None if the identifier is not a valid journal source.
    """
    if not source.startswith(JOURNAL_PREFIX):
        return None
    rest, _, query = source[len(JOURNAL_PREFIX) :].partition("?")
    if rest and not rest.startswith("/"):
        return None
    scope = rest[1:] or "local-default"
    if scope not in _SCOPES:
        return None
    matches = tuple(parse_qsl(query, keep_blank_values=True))
    if any(not _FIELD_RE.match(name) for name, _ in matches):
        return None
    return JournalSelector(scope=scope, matches=matches)


def _field_text(value: object) -> str:
    # journalctl encodes binary values as byte arrays and repeated fields as lists
    if isinstance(value, list):
        if all(isinstance(v, int) for v in value):
            return bytes(value).decode("utf-8", errors="replace")
        return "\n".join(_field_text(v) for v in value)
    return str(value)


class JournalReader:
    """Follows the systemd journal through a ``journalctl`` child process.

    Options:
        field: Entry field exported as the line (default MESSAGE).
        root: Directory for the namespace-root scope (default "/").
        cursor_db: SQLite file storing the resumption cursor.
        journalctl: Executable to run (default "journalctl").
        wait_timeout: Seconds to wait for the child to exit on stop (default 1).
        retry_interval: Seconds before restarting a dead child (default 1).

    Args:
        spec: Source configuration.
        cursor_store: Store for resumption cursors; built from ``cursor_db``
            when omitted.
    """

    @classmethod
    def match_priority(cls, spec: SourceSpec) -> int:
        if parse_journal_source(spec.source) is None:
            return -1
        return JOURNAL_PRIORITY

    def __init__(
        self, spec: SourceSpec, cursor_store: CursorStorePort | None = None
    ) -> None:
        selector = parse_journal_source(spec.source)
        if selector is None:
            raise NoMatchError(spec.source, "not a journal source")
        opts = spec.options
        self.source = spec.source
        self.selector = selector
        self.field = option_str(spec.source, opts, "field", DEFAULT_FIELD) or ""
        self.root = option_str(spec.source, opts, "root", "/")
        self.journalctl = option_str(spec.source, opts, "journalctl", "journalctl")
        self.wait_timeout = option_float(
            spec.source, opts, "wait_timeout", DEFAULT_WAIT_TIMEOUT
        )
        self.retry_interval = option_float(
            spec.source, opts, "retry_interval", DEFAULT_RETRY_INTERVAL
        )
        cursor_db = option_str(spec.source, opts, "cursor_db", None)
        if cursor_store is None and cursor_db is not None:
            cursor_store = SQLiteCursorStore(cursor_db)
        self.cursor_store = cursor_store
        self.cursor: str | None = None
        self._proc: asyncio.subprocess.Process | None = None
        self._started = False
        self._stopping = False
        self._resuming = False
        self._entries = 0
        self._wakeup: asyncio.Event | None = None
        self._log = logger.with_fields(source=spec.source)

    def command(self, cursor: str | None = None) -> list[str]:
        """Return the journalctl command line."""
        args = [self.journalctl or "journalctl", "--follow", "--output=json"]
        for flag in _SCOPES[self.selector.scope]:
            args.append(f"--root={self.root}" if flag == "--root" else flag)
        if cursor:
            args.append(f"--after-cursor={cursor}")
        else:
            args.append("--lines=0")
        args.extend(f"{name}={value}" for name, value in self.selector.matches)
        return args

    async def start(self) -> None:
        """Load the saved cursor and spawn journalctl.

        Raises:
            OpenError: If journalctl cannot be run or the reader is running.
        """
        if self._started:
            raise OpenError(self.source, "reader already started")
        self._stopping = False
        self._wakeup = asyncio.Event()
        self.cursor = await self._load_cursor()
        await self._spawn()
        self._started = True

    async def _spawn(self) -> None:
        self._resuming = self.cursor is not None
        self._entries = 0
        args = self.command(self.cursor)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self._proc = None
            raise OpenError(self.source, f"cannot run {args[0]}: {e}") from e
        if self._resuming:
            self._log.info("resuming journal after saved cursor")
        self._log.debug("journalctl started (pid %d)", self._proc.pid)

    async def read_line(self) -> str:
        """Return the configured field of the next journal entry.

        Entries without the field yield "".

        Raises:
            ReadError: If journalctl exits, cannot be restarted, or prints
                something that is not a JSON object.
        """
        while self._started and not self._stopping:
            if self._proc is None:
                await self._wait(self.retry_interval)
                if self._stopping:
                    break
                try:
                    await self._spawn()
                except OpenError as e:
                    raise ReadError(self.source, str(e)) from e
            proc = self._proc
            assert proc is not None and proc.stdout is not None
            try:
                raw = await proc.stdout.readline()
            except ValueError as e:
                raise ReadError(self.source, f"entry too long: {e}") from e
            if raw:
                return self._extract(raw)
            if self._stopping:
                break
            await self._handle_exit(proc)
        return ""

    def _extract(self, raw: bytes) -> str:
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ReadError(self.source, f"invalid journal entry: {e}") from e
        if not isinstance(entry, dict):
            raise ReadError(self.source, "journal entry is not an object")
        self._entries += 1
        cursor = entry.get("__CURSOR")
        if isinstance(cursor, str):
            self.cursor = cursor
        value = entry.get(self.field)
        if value is None:
            return ""
        return _field_text(value)

    async def _handle_exit(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = None
        code = await proc.wait()
        if self._resuming and self._entries == 0:
            # A cursor journalctl cannot seek to makes it exit at once
            self._log.warning("cannot resume from saved cursor, seeking to tail")
            self.cursor = None
            await self._forget_cursor()
        raise ReadError(self.source, f"journalctl exited with status {code}")

    async def _wait(self, delay: float) -> None:
        assert self._wakeup is not None
        with suppress(TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), delay)

    async def stop(self) -> None:
        """Terminate journalctl and persist the cursor.

        Raises:
            StopError: If the child cannot be signalled or the cursor cannot
                be saved.
        """
        if not self._started:
            return
        self._stopping = True
        self._started = False
        if self._wakeup is not None:
            self._wakeup.set()
        proc, self._proc = self._proc, None
        if proc is not None and proc.returncode is None:
            await self._terminate(proc)
        await self._save_cursor()

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        try:
            with suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), self.wait_timeout)
            except TimeoutError:
                self._log.warning(
                    "journalctl did not exit within %.1fs, killing it",
                    self.wait_timeout,
                )
                with suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        except OSError as e:
            raise StopError(self.source, f"cannot stop journalctl: {e}") from e

    async def _load_cursor(self) -> str | None:
        if self.cursor_store is None:
            return None
        try:
            return await self.cursor_store.load(self.source)
        except StorageError as e:
            self._log.warning("cannot load cursor, starting at tail: %s", e)
            return None

    async def _save_cursor(self) -> None:
        if self.cursor_store is None or self.cursor is None:
            return
        try:
            await self.cursor_store.save(self.source, self.cursor)
        except StorageError as e:
            raise StopError(self.source, f"cannot save cursor: {e}") from e
        self._log.debug("cursor saved")

    async def _forget_cursor(self) -> None:
        if self.cursor_store is None:
            return
        try:
            await self.cursor_store.delete(self.source)
        except StorageError as e:
            self._log.warning("cannot delete cursor: %s", e)
