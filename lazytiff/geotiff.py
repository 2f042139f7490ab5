# geotiff.py

"""GeoTIFF key directory and model tags."""

from __future__ import annotations

import numbers
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, final

from .enums import DATATYPE, GEOKEY, GEOTIFFTAG
from .lazytiff import LazyTiffImage
from .tags import TiffFieldInfo, TiffTag
from .utils import (
    DirectoryHeaderTooShortError,
    DirectorySizeIncorrectError,
    FailedToAddTagsError,
    TagMemoryError,
    TagNotFoundError,
    UnrecognisedGeoKeyError,
    WrongModeError,
    enumarg,
)

if TYPE_CHECKING:
    from typing import Any, TypeAlias

    from .handle import TiffHandle

    GeoKeyValue: TypeAlias = int | float | tuple[Any, ...] | str

__all__ = [
    'GEOTIFF_FIELDS',
    'DirectoryEntry',
    'GeoKeyDirectory',
    'GeoTiffImage',
]

GEOTIFF_FIELDS = (
    TiffFieldInfo(33550, 'ModelPixelScaleTag', DATATYPE.DOUBLE, 3),
    TiffFieldInfo(33922, 'ModelTiepointTag', DATATYPE.DOUBLE),
    TiffFieldInfo(34264, 'ModelTransformationTag', DATATYPE.DOUBLE, 16),
    TiffFieldInfo(34735, 'GeoKeyDirectoryTag', DATATYPE.SHORT),
    TiffFieldInfo(34736, 'GeoDoubleParamsTag', DATATYPE.DOUBLE),
    TiffFieldInfo(34737, 'GeoAsciiParamsTag', DATATYPE.ASCII),
)
"""Definitions of GeoTIFF tags registered with file handles."""


@dataclass(frozen=True)
class DirectoryEntry:
    """Entry of GeoTIFF key directory.

    Attributes:
        keyid:
            GeoKey identifier.
        tifftag:
            Code of tag storing value, or *None* if value is stored inline.
            Tag code 0 is reserved for inline values.
        valuecount:
            Number of values.
        valueorindex:
            Value if stored inline, else index of first value in tag.

    """

    keyid: GEOKEY
    tifftag: int | None
    valuecount: int
    valueorindex: int

    @property
    def isinline(self) -> bool:
        """Value is stored in directory entry."""
        return self.tifftag is None

    def astuple(self) -> tuple[int, int, int, int]:
        """Return entry as four integers."""
        return (
            int(self.keyid),
            0 if self.tifftag is None else int(self.tifftag),
            int(self.valuecount),
            int(self.valueorindex),
        )


@dataclass(frozen=True)
class GeoKeyDirectory:
    """GeoTIFF key directory.

    The number of keys in the encoded directory is the number of entries.

    Attributes:
        majorversion: Version of key directory (KeyDirectoryVersion).
        minorversion: Revision of keys (KeyRevision).
        revision: Minor revision of keys (MinorRevision).
        entries: Directory entries.

    Examples:
        >>> directory = GeoKeyDirectory.fromtuple(
        ...     (1, 1, 0, 2, 1024, 0, 1, 1, 1026, 34737, 9, 0)
        ... )
        >>> directory.keycount
        2
        >>> directory.entries[0].isinline
        True
        >>> directory.entries[1].keyid, directory.entries[1].tifftag
        (<GEOKEY.GTCITATION: 1026>, 34737)
        >>> directory.astuple()
        (1, 1, 0, 2, 1024, 0, 1, 1, 1026, 34737, 9, 0)

    """

    majorversion: int = 1
    minorversion: int = 1
    revision: int = 0
    entries: tuple[DirectoryEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, 'entries', tuple(self.entries))

    @property
    def keycount(self) -> int:
        """Number of keys in directory."""
        return len(self.entries)

    @classmethod
    def fromtuple(cls, values: Iterable[int], /) -> GeoKeyDirectory:
        """Return key directory decoded from GeoKeyDirectoryTag value.

        Parameters:
            values: Unsigned 16-bit integers of GeoKeyDirectoryTag.

        Raises:
            DirectoryHeaderTooShortError:
                Fewer than 4 values.
            DirectorySizeIncorrectError:
                Number of values does not match declared number of keys.
            UnrecognisedGeoKeyError:
                Entry contains unknown key identifier.

        """
        values = tuple(int(value) for value in values)
        if len(values) < 4:
            raise DirectoryHeaderTooShortError(len(values))
        keycount = values[3]
        expected = 4 + 4 * keycount
        if len(values) != expected:
            raise DirectorySizeIncorrectError(expected, len(values))
        entries = []
        for i in range(keycount):
            keyid, tifftag, valuecount, valueorindex = values[
                4 + 4 * i : 8 + 4 * i
            ]
            try:
                key = GEOKEY(keyid)
            except ValueError as exc:
                raise UnrecognisedGeoKeyError(keyid) from exc
            entries.append(
                DirectoryEntry(
                    key,
                    None if tifftag == 0 else tifftag,
                    valuecount,
                    valueorindex,
                )
            )
        return cls(values[0], values[1], values[2], tuple(entries))

    def astuple(self) -> tuple[int, ...]:
        """Return key directory encoded as GeoKeyDirectoryTag value.

        Raises:
            ValueError: Value does not fit unsigned 16-bit integer.

        """
        values = [
            int(self.majorversion),
            int(self.minorversion),
            int(self.revision),
            len(self.entries),
        ]
        for entry in self.entries:
            values.extend(entry.astuple())
        for value in values:
            if not 0 <= value <= 65535:
                msg = f'GeoKeyDirectory value {value} out of range'
                raise ValueError(msg)
        return tuple(values)


@final
class GeoTiffImage(LazyTiffImage):
    """Read or write regions and GeoTIFF tags of image in TIFF file.

    The GeoTIFF tag definitions are registered with the file handle when
    the image is opened. GeoTIFF tags can be set while the image is open
    for writing and are written with the image file directory.

    Parameters:
        *args, **kwargs: Arguments passed to :py:class:`LazyTiffImage`.

    Raises:
        FailedToAddTagsError:
            GeoTIFF tag definitions conflict with registered tags.

    """

    __slots__ = ()

    def _register_fields(self, handle: TiffHandle, /) -> None:
        try:
            handle.merge_field_info(GEOTIFF_FIELDS)
        except ValueError as exc:
            msg = f'{self!r} failed to register GeoTIFF tags'
            raise FailedToAddTagsError(msg) from exc

    def _writablehandle(self) -> TiffHandle:
        handle = self._checkhandle()
        if self._mode != 'w':
            msg = f'{self!r} not opened for writing'
            raise WrongModeError(msg)
        return handle

    def _get_array(self, code: int, /) -> tuple[Any, ...]:
        """Return values of tag.

        Raises:
            TagNotFoundError: Tag is not in file.
            TagMemoryError: Tag value could not be loaded.

        """
        result = self._checkhandle().get_custom_array(code)
        if result is None:
            msg = f'{_tagname(code)} not found in {self!r}'
            raise TagNotFoundError(msg)
        count, values = result
        if values is None:
            msg = f'failed to load {count} values of {_tagname(code)}'
            raise TagMemoryError(msg)
        return values

    def _get_doubles(self, code: int, /) -> tuple[float, ...]:
        return tuple(float(value) for value in self._get_array(code))

    def get_directory(self) -> GeoKeyDirectory:
        """Return decoded GeoKeyDirectoryTag."""
        return GeoKeyDirectory.fromtuple(
            self._get_array(GEOTIFFTAG.GEOKEYDIRECTORY)
        )

    def set_directory(self, directory: GeoKeyDirectory, /) -> None:
        """Set GeoKeyDirectoryTag from key directory."""
        self._writablehandle().set_custom_array(
            GEOTIFFTAG.GEOKEYDIRECTORY, directory.astuple()
        )

    def get_pixel_scale(self) -> tuple[float, ...]:
        """Return values of ModelPixelScaleTag (ScaleX, ScaleY, ScaleZ)."""
        return self._get_doubles(GEOTIFFTAG.MODELPIXELSCALE)

    def set_pixel_scale(self, scale: Iterable[float], /) -> None:
        """Set ModelPixelScaleTag from 3 values."""
        values = tuple(float(value) for value in scale)
        if len(values) != 3:
            msg = f'ModelPixelScaleTag requires 3 values, got {len(values)}'
            raise ValueError(msg)
        self._writablehandle().set_custom_array(
            GEOTIFFTAG.MODELPIXELSCALE, values
        )

    def get_tiepoint(self) -> tuple[float, ...]:
        """Return values of ModelTiepointTag.

        Each tiepoint is (I, J, K, X, Y, Z), raster and model coordinates.

        """
        return self._get_doubles(GEOTIFFTAG.MODELTIEPOINT)

    def set_tiepoint(self, tiepoints: Iterable[float], /) -> None:
        """Set ModelTiepointTag from multiple of 6 values."""
        values = tuple(float(value) for value in tiepoints)
        if not values or len(values) % 6:
            msg = (
                'ModelTiepointTag requires a multiple of 6 values, '
                f'got {len(values)}'
            )
            raise ValueError(msg)
        self._writablehandle().set_custom_array(
            GEOTIFFTAG.MODELTIEPOINT, values
        )

    def get_transformation(self) -> tuple[float, ...]:
        """Return 4x4 matrix of ModelTransformationTag in row-major order."""
        return self._get_doubles(GEOTIFFTAG.MODELTRANSFORMATION)

    def set_transformation(self, matrix: Iterable[Any], /) -> None:
        """Set ModelTransformationTag from 4x4 matrix or 16 values."""
        values = []
        for row in matrix:
            if isinstance(row, Iterable):
                values.extend(float(value) for value in row)
            else:
                values.append(float(row))
        if len(values) != 16:
            msg = (
                f'ModelTransformationTag requires 16 values, got {len(values)}'
            )
            raise ValueError(msg)
        self._writablehandle().set_custom_array(
            GEOTIFFTAG.MODELTRANSFORMATION, values
        )

    def get_double_params(self) -> tuple[float, ...]:
        """Return values of GeoDoubleParamsTag."""
        return self._get_doubles(GEOTIFFTAG.GEODOUBLEPARAMS)

    def set_double_params(self, params: Iterable[float], /) -> None:
        """Set GeoDoubleParamsTag."""
        self._writablehandle().set_custom_array(
            GEOTIFFTAG.GEODOUBLEPARAMS, (float(value) for value in params)
        )

    def get_projection(self) -> str:
        """Return text of GeoAsciiParamsTag.

        The text contains one or more '|' terminated strings.

        """
        handle = self._checkhandle()
        code = GEOTIFFTAG.GEOASCIIPARAMS
        if code not in handle:
            msg = f'{_tagname(code)} not found in {self!r}'
            raise TagNotFoundError(msg)
        text = handle.get_custom_ascii(code)
        if text is None:
            msg = f'failed to load {_tagname(code)}'
            raise TagMemoryError(msg)
        return text

    def set_projection(self, text: str, /) -> None:
        """Set GeoAsciiParamsTag to text terminated by '|'."""
        self._writablehandle().set_custom_ascii(
            GEOTIFFTAG.GEOASCIIPARAMS, text + '|'
        )

    def get_geokeys(self) -> dict[GEOKEY, GeoKeyValue]:
        """Return values of all keys in GeoTIFF key directory.

        Inline values are returned as int. Values referencing
        GeoDoubleParamsTag are returned as float or tuple of floats.
        Values referencing GeoAsciiParamsTag are returned as str without
        the terminating '|'.

        """
        directory = self.get_directory()
        result: dict[GEOKEY, GeoKeyValue] = {}
        doubles: tuple[float, ...] | None = None
        ascii: str | None = None
        for entry in directory.entries:
            start = entry.valueorindex
            stop = start + entry.valuecount
            value: GeoKeyValue
            if entry.tifftag is None:
                value = entry.valueorindex
            elif entry.tifftag == GEOTIFFTAG.GEOASCIIPARAMS:
                if ascii is None:
                    ascii = self.get_projection()
                if stop > len(ascii):
                    msg = (
                        f'{entry.keyid!r} references text beyond '
                        f'{_tagname(entry.tifftag)}'
                    )
                    raise TagMemoryError(msg)
                value = ascii[start:stop].rstrip('|')
            else:
                if entry.tifftag == GEOTIFFTAG.GEODOUBLEPARAMS:
                    if doubles is None:
                        doubles = self.get_double_params()
                    values = doubles
                else:
                    values = self._get_array(entry.tifftag)
                value = tuple(values[start:stop])
                if len(value) != entry.valuecount:
                    msg = (
                        f'{entry.keyid!r} references values beyond '
                        f'{_tagname(entry.tifftag)}'
                    )
                    raise TagMemoryError(msg)
                if entry.valuecount == 1:
                    value = value[0]
            result[entry.keyid] = value
        return result

    def set_geokeys(
        self,
        geokeys: Mapping[GEOKEY | int | str, GeoKeyValue],
        /,
        *,
        majorversion: int = 1,
        minorversion: int = 1,
        revision: int = 0,
    ) -> None:
        """Set GeoTIFF key directory and parameter tags from key values.

        Entries are sorted by key identifier.
        Integer values are stored inline, str values in GeoAsciiParamsTag,
        and float values or sequences of numbers in GeoDoubleParamsTag.

        Raises:
            UnrecognisedGeoKeyError: Key is not a known GeoKey.
            ValueError: Value cannot be encoded. No tag is changed.

        """
        handle = self._writablehandle()
        keys: dict[GEOKEY, GeoKeyValue] = {}
        for key, value in geokeys.items():
            try:
                keys[enumarg(GEOKEY, key)] = value  # type: ignore[index]
            except ValueError as exc:
                raise UnrecognisedGeoKeyError(key) from exc

        entries = []
        doubles: list[float] = []
        ascii = ''
        for key in sorted(keys):
            value = keys[key]
            if isinstance(value, str):
                text = value + '|'
                entries.append(
                    DirectoryEntry(
                        key, GEOTIFFTAG.GEOASCIIPARAMS, len(text), len(ascii)
                    )
                )
                ascii += text
            elif isinstance(value, numbers.Integral):
                entries.append(DirectoryEntry(key, None, 1, int(value)))
            else:
                if isinstance(value, Iterable):
                    values = [float(v) for v in value]
                else:
                    values = [float(value)]
                entries.append(
                    DirectoryEntry(
                        key,
                        GEOTIFFTAG.GEODOUBLEPARAMS,
                        len(values),
                        len(doubles),
                    )
                )
                doubles.extend(values)

        directory = GeoKeyDirectory(
            majorversion, minorversion, revision, tuple(entries)
        )
        # encode all values before any tag is set
        tags = [(GEOTIFFTAG.GEOKEYDIRECTORY, directory.astuple())]
        if doubles:
            tag = TiffTag.fromvalue(
                GEOTIFFTAG.GEODOUBLEPARAMS, DATATYPE.DOUBLE, doubles
            )
            tag.tobytes(handle.tiff.byteorder)
            tags.append((tag.code, tag.value))
        if ascii:
            tag = TiffTag.fromvalue(
                GEOTIFFTAG.GEOASCIIPARAMS, DATATYPE.ASCII, ascii
            )
            tags.append((tag.code, tag.value))
        for code, value in tags:
            handle.set_field(code, value)


def _tagname(code: int, /) -> str:
    try:
        return GEOTIFFTAG(code).name
    except ValueError:
        return f'tag {code}'
