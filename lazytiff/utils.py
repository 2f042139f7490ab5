# utils.py

"""Exceptions and utility functions for lazytiff."""

from __future__ import annotations

import enum
import logging
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class TiffError(Exception):
    """Base class of lazytiff exceptions."""


class TiffFileError(TiffError, ValueError):
    """Exception to indicate invalid or unsupported TIFF structure."""


# lifecycle


class OpenError(TiffError, OSError):
    """File could not be opened as TIFF."""


class InvalidReferenceError(TiffError, ValueError):
    """Operation on image whose file handle was released."""


class WrongModeError(TiffError, ValueError):
    """Operation not permitted in mode the image was opened with."""


class FlushError(TiffError, OSError):
    """Pending writes could not be flushed to storage."""


class UnsupportedTypeError(TiffError, TypeError):
    """Channel element type is not supported."""


class IncorrectChannelSizeError(TiffError, ValueError):
    """Channel type size does not match BitsPerSample of file."""

    bitspersample: int
    """Value of BitsPerSample tag in file."""

    def __init__(self, bitspersample: int, itemsize: int, /) -> None:
        self.bitspersample = bitspersample
        super().__init__(
            f'BitsPerSample {bitspersample} does not match '
            f'{itemsize * 8}-bit channel type'
        )


# region I/O


class AreaOutOfBoundsError(TiffError, IndexError):
    """Area exceeds bounds of image."""


class PartialScanlineError(TiffError, NotImplementedError):
    """Writing partial scanlines is not supported."""


class ScanlineReadError(TiffError, OSError):
    """Scanline could not be read."""


class ScanlineWriteError(TiffError, OSError):
    """Scanline could not be written."""


class InternalInconsistencyError(TiffError, RuntimeError):
    """Scanline geometry of file does not match image attributes."""


class NoBaseAddressError(TiffError, ValueError):
    """Empty buffer passed to write."""


# metadata codec


class TagNotFoundError(TiffError, KeyError):
    """Tag is not present in file."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ''


class TagMemoryError(TiffError, ValueError):
    """Tag is present in file but its value could not be loaded."""


class DirectoryHeaderTooShortError(TiffError, ValueError):
    """GeoKeyDirectory has fewer than 4 values."""

    length: int
    """Number of values in GeoKeyDirectory."""

    def __init__(self, length: int, /) -> None:
        self.length = length
        super().__init__(
            f'GeoKeyDirectory header too short, {length} < 4 values'
        )


class DirectorySizeIncorrectError(TiffError, ValueError):
    """Size of GeoKeyDirectory does not match its declared key count."""

    expected: int
    """Number of values expected from declared key count."""

    got: int
    """Number of values in GeoKeyDirectory."""

    def __init__(self, expected: int, got: int, /) -> None:
        self.expected = expected
        self.got = got
        super().__init__(
            f'GeoKeyDirectory size incorrect, expected {expected} values, '
            f'got {got}'
        )


class UnrecognisedGeoKeyError(TiffError, ValueError):
    """GeoKeyDirectory entry contains unknown key identifier."""

    key: int | str
    """Raw key identifier, or name of unknown key."""

    def __init__(self, key: int | str, /) -> None:
        self.key = key
        super().__init__(f'unrecognised GeoKey {key}')


class FailedToAddTagsError(TiffError, ValueError):
    """Field definitions could not be merged into field registry."""


def logger() -> logging.Logger:
    """Return logger for lazytiff module."""
    return logging.getLogger('lazytiff')


def snipstr(string: str, /, width: int = 79, *, ellipsis: str = '…') -> str:
    """Return single line string cut in the middle to specified length.

    >>> snipstr('abcdefghijklmnop', 8, ellipsis='...')
    'abc...op'

    """
    length = len(string)
    if length <= width:
        return string
    esize = len(ellipsis)
    if width < esize + 4:
        return string[: width - esize] + ellipsis
    split = math.floor(length * 0.5)
    snip = length - width + esize
    end1 = split - snip // 2
    return string[:end1] + ellipsis + string[end1 + snip :]


def enumarg(enum: type[enum.IntEnum], arg: Any, /) -> enum.IntEnum:
    """Return enum member from its name or value.

    Parameters:
        enum: Type of IntEnum.
        arg: Name or value of enum member.

    Returns:
        Enum member matching name or value.

    Raises:
        ValueError: No enum member matches name or value.

    Examples:
        >>> from lazytiff.enums import PHOTOMETRIC
        >>> enumarg(PHOTOMETRIC, 2)
        <PHOTOMETRIC.RGB: 2>
        >>> enumarg(PHOTOMETRIC, 'RGB')
        <PHOTOMETRIC.RGB: 2>

    """
    try:
        return enum(arg)
    except Exception:
        try:
            return enum[arg.upper()]
        except Exception as exc:
            msg = f'invalid argument {arg!r}'
            raise ValueError(msg) from exc


def enumstr(value: Any, /) -> str:
    """Return short string representation of Enum member or value.

    >>> from lazytiff.enums import PHOTOMETRIC
    >>> enumstr(PHOTOMETRIC.RGB)
    'RGB'
    >>> enumstr(7)
    '7'

    """
    name = getattr(value, 'name', None)
    if name is None:
        name = str(value)
    return name
