"""
Durable local log of every stamp the generator intended to send.

The log is newline-delimited JSON, one `{"id": ..., "ts": ...}` object per
line, so it can be appended to one record at a time and replayed while it
is still being written. A process killed in the middle of a write leaves an
unterminated last line: replay treats it as the end of the log. A complete
line that does not decode is a fatal `LogDecodeError`. Before the first append
of a handle, such an unterminated tail is terminated when it holds a whole
entry and cut off otherwise, so new entries always start on a fresh line.

Usage:
    with LocalLog.open("/tmp/failover_probe.data", reset=True) as local_log:
        local_log.append(Stamp(id=1, ts=now))

    with LocalLog.open("/tmp/failover_probe.data") as local_log:
        for stamp in local_log:
            ...
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from pydantic import ValidationError

from failover_probe.domain.models import Stamp
from failover_probe.errors import LocalLogError, LogDecodeError
from failover_probe.utils.logging import get_logger

log = get_logger(__name__)

_FIELDS = {"id", "ts"}
_CHUNK_SIZE = 4096


class LocalLog:
    """
    Append-only stamp store with a forward-only replay cursor.

    The replay cursor keeps its own offset, so appends (which always seek to
    the end of the file first) do not disturb it. It cannot be rewound: open
    a new handle to replay from the start again.
    """

    def __init__(self, path: Path, handle: BinaryIO, fsync: bool = True) -> None:
        self.path = path
        self._fh: Optional[BinaryIO] = handle
        self._fsync = fsync
        self._offset = 0
        self._count = 0
        self._tail_checked = False

    @classmethod
    def open(
        cls, path: Union[str, Path], reset: bool = False, fsync: bool = True
    ) -> "LocalLog":
        """
        Open or create the log at `path`.

        Parameters
        ----------
        path : str | Path
            Location of the log file.
        reset : bool
            Truncate the file first, discarding its history.
        fsync : bool
            Force every append to stable storage before returning.

        Raises
        ------
        LocalLogError
            If the file cannot be opened or created.
        """
        flags = os.O_RDWR | os.O_CREAT
        if reset:
            flags |= os.O_TRUNC

        try:
            fd = os.open(path, flags, 0o644)
        except OSError as exc:
            raise LocalLogError(f"could not open file {path}: {exc}") from exc

        if reset:
            log.info("Local log truncated", extra={"path": str(path)})
        return cls(Path(path), os.fdopen(fd, "r+b"), fsync=fsync)

    @property
    def count(self) -> int:
        """Number of stamps returned by the replay cursor so far."""
        return self._count

    @property
    def closed(self) -> bool:
        return self._fh is None

    def _handle(self) -> BinaryIO:
        if self._fh is None:
            raise LocalLogError(f"local log {self.path} is closed")
        return self._fh

    def append(self, stamp: Stamp) -> None:
        """
        Write one stamp at the current end of the file.

        Only `id` and `ts` are stored; a `Record` payload is not persisted
        locally.
        """
        fh = self._handle()
        line = stamp.model_dump_json(include=_FIELDS).encode("utf-8") + b"\n"
        try:
            if not self._tail_checked:
                self._repair_tail(fh)
                self._tail_checked = True
            # The file may have grown or shrunk since the last write.
            fh.seek(0, os.SEEK_END)
            fh.write(line)
            fh.flush()
            if self._fsync:
                os.fsync(fh.fileno())
        except OSError as exc:
            raise LocalLogError(f"could not store id {stamp.id}: {exc}") from exc

    def _repair_tail(self, fh: BinaryIO) -> None:
        size = fh.seek(0, os.SEEK_END)
        if size == 0:
            return
        fh.seek(size - 1)
        if fh.read(1) == b"\n":
            return

        keep = _last_line_end(fh, size)
        fh.seek(keep)
        tail = fh.read(size - keep)
        try:
            Stamp.model_validate_json(tail)
        except ValidationError:
            log.warning(
                "Discarding incomplete entry at end of local log",
                extra={"path": str(self.path), "bytes": size - keep},
            )
            fh.truncate(keep)
        else:
            fh.seek(0, os.SEEK_END)
            fh.write(b"\n")
        fh.flush()
        if self._fsync:
            os.fsync(fh.fileno())

    def produce_next(self) -> Optional[Stamp]:
        """
        Return the next stamp in file order, or None at the end of the log.

        Raises
        ------
        LogDecodeError
            If a complete entry cannot be decoded. `count` holds the number
            of stamps read before it.
        LocalLogError
            If the file cannot be read.
        """
        fh = self._handle()
        while True:
            try:
                fh.seek(self._offset)
                line = fh.readline()
            except OSError as exc:
                raise LocalLogError(f"could not read {self.path}: {exc}") from exc

            if not line:
                return None
            self._offset += len(line)
            complete = line.endswith(b"\n")

            if not line.strip():
                if complete:
                    continue
                return None

            try:
                stamp = Stamp.model_validate_json(line)
            except ValidationError as exc:
                if not complete:
                    log.warning(
                        "Ignoring incomplete entry at end of local log",
                        extra={"path": str(self.path), "records": self._count},
                    )
                    return None
                raise LogDecodeError(f"decode error in {self.path}: {exc}", self._count) from exc

            self._count += 1
            return stamp

    def __iter__(self) -> Iterator[Stamp]:
        while True:
            stamp = self.produce_next()
            if stamp is None:
                return
            yield stamp

    def close(self) -> None:
        if self._fh is None:
            return
        fh, self._fh = self._fh, None
        try:
            fh.close()
        except OSError as exc:
            raise LocalLogError(f"could not close {self.path}: {exc}") from exc

    def __enter__(self) -> "LocalLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _last_line_end(fh: BinaryIO, size: int) -> int:
    """Offset just past the last newline before `size`, 0 when there is none."""
    pos = size
    while pos > 0:
        start = max(0, pos - _CHUNK_SIZE)
        fh.seek(start)
        chunk = fh.read(pos - start)
        idx = chunk.rfind(b"\n")
        if idx >= 0:
            return start + idx + 1
        pos = start
    return 0


__all__ = ["LocalLog"]
