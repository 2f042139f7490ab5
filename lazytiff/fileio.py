# fileio.py

"""Binary file handle for lazytiff."""

from __future__ import annotations

import contextlib
import io
import os
from typing import IO, TYPE_CHECKING, cast, final

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Any, Literal, Self

from .utils import snipstr


@final
class FileHandle:
    """Binary file handle.

    A limited, special purpose binary file handle that can:

    - open files by name or wrap seekable binary streams.
    - read and write bytes at arbitrary positions.
    - report the file size.

    FileHandle instances are not thread-safe.

    Parameters:
        file:
            File name or seekable binary stream, such as open file or
            BytesIO.
        mode:
            File open mode if `file` is file name.
            The default is 'rb'. Files are always opened in binary mode.
        name:
            Name of file if `file` is binary stream.

    """

    __slots__ = (
        '_close',
        '_dir',
        '_fh',
        '_file',
        '_mode',
        '_name',
    )

    _file: str | os.PathLike[Any] | IO[bytes] | None
    _fh: IO[bytes] | None
    _mode: str
    _name: str
    _dir: str
    _close: bool

    def __init__(
        self,
        file: str | os.PathLike[Any] | IO[bytes],
        /,
        mode: Literal['r', 'r+', 'w', 'x', 'rb', 'r+b', 'wb', 'xb'] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        self._mode = 'rb' if mode is None else mode
        self._fh = None
        self._file = file
        self._name = name if name else ''
        self._dir = ''
        self._close = True
        self.open()
        assert self._fh is not None

    def open(self) -> None:
        """Open file or wrap binary stream."""
        if self._fh is not None:
            return  # file is open

        if isinstance(self._file, os.PathLike):
            self._file = os.fspath(self._file)

        if isinstance(self._file, str):
            # file name
            if self._mode[-1:] != 'b':
                self._mode += 'b'
            if self._mode not in {'rb', 'r+b', 'wb', 'xb'}:
                msg = f'invalid mode {self._mode}'
                raise ValueError(msg)
            self._file = os.path.realpath(self._file)
            self._dir, self._name = os.path.split(self._file)
            self._fh = open(  # noqa: SIM115
                self._file, self._mode, encoding=None
            )
            self._close = True
        elif hasattr(self._file, 'seek'):
            # binary stream: open file, BytesIO
            if isinstance(self._file, io.TextIOBase):
                msg = f'{self._file!r} is not open in binary mode'
                raise TypeError(msg)
            self._fh = cast(IO[bytes], self._file)
            try:
                self._fh.tell()
            except Exception:
                msg = 'binary stream is not seekable'
                raise ValueError(msg) from None
            self._close = False
            if not self._name:
                try:
                    self._dir, self._name = os.path.split(self._fh.name)
                except (AttributeError, TypeError):
                    self._name = 'Unnamed binary stream'
            with contextlib.suppress(AttributeError):
                self._mode = self._fh.mode
        else:
            msg = (
                'the first parameter must be a file name '
                'or seekable binary file object, '
                f'not {type(self._file)!r}'
            )
            raise ValueError(msg)

    def close(self) -> None:
        """Close file handle."""
        if self._close and self._fh is not None:
            with contextlib.suppress(Exception):
                self._fh.close()
        self._fh = None

    def tell(self) -> int:
        """Return file's current position."""
        assert self._fh is not None
        return self._fh.tell()

    def seek(self, offset: int, /, whence: int = 0) -> int:
        """Set file's current position.

        Parameters:
            offset:
                Position of file handle relative to position indicated
                by `whence`.
            whence:
                Relative position of `offset`.
                0 (`os.SEEK_SET`) beginning of file (default).
                1 (`os.SEEK_CUR`) current position.
                2 (`os.SEEK_END`) end of file.

        """
        assert self._fh is not None
        return self._fh.seek(offset, whence)

    def read(self, size: int = -1, /) -> bytes:
        """Return bytes read from file.

        Parameters:
            size:
                Number of bytes to read from file.
                By default, read until the end of the file.

        """
        assert self._fh is not None
        return self._fh.read(size)

    def write(self, buffer: bytes | memoryview[Any], /) -> int:
        """Write bytes to file and return number of bytes written."""
        assert self._fh is not None
        return self._fh.write(buffer)

    def flush(self) -> None:
        """Flush write buffers of stream if applicable."""
        assert self._fh is not None
        if hasattr(self._fh, 'flush'):
            self._fh.flush()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'<lazytiff.FileHandle {snipstr(self._name, 32)!r}>'

    @property
    def name(self) -> str:
        """Name of file or stream."""
        return self._name

    @property
    def path(self) -> str:
        """Absolute path of file."""
        return os.path.join(self._dir, self._name)

    @property
    def size(self) -> int:
        """Size of file in bytes."""
        assert self._fh is not None
        pos = self._fh.tell()
        size = self._fh.seek(0, os.SEEK_END)
        self._fh.seek(pos)
        return size

    @property
    def closed(self) -> bool:
        """File is closed."""
        return self._fh is None
