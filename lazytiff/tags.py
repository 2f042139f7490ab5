# tags.py

"""TIFF tag classes."""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, final

from .enums import DATATYPE
from .utils import TiffFileError, enumstr, logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any

    from .codecs import TiffFormat
    from .fileio import FileHandle


@dataclass(frozen=True)
class TiffFieldInfo:
    """Definition of TIFF field that can be set on file handle.

    Attributes:
        code: Decimal code of tag.
        name: Name of tag.
        dtype: :py:class:`DATATYPE` of tag value items.
        count: Number of items in tag value or *None* if variable.

    """

    code: int
    name: str
    dtype: DATATYPE
    count: int | None = None


@final
class TiffFieldRegistry:
    """Registry of TIFF field definitions by tag code.

    Adding a field that is already registered with an identical definition
    has no effect. Adding a conflicting definition for a registered code
    raises ValueError.

    Parameters:
        fields: Field definitions to register.

    Examples:
        >>> from lazytiff.enums import DATATYPE
        >>> fields = TiffFieldRegistry([TiffFieldInfo(256, 'ImageWidth', 4, 1)])
        >>> fields.add(TiffFieldInfo(256, 'ImageWidth', 4, 1))
        >>> fields[256].name
        'ImageWidth'
        >>> fields.add(TiffFieldInfo(256, 'ImageWidth', 3, 1))
        Traceback (most recent call last):
        ...
        ValueError: conflicting definition of tag 256 'ImageWidth'

    """

    __slots__ = ('_dict',)

    _dict: dict[int, TiffFieldInfo]

    def __init__(self, fields: Iterable[TiffFieldInfo] = (), /) -> None:
        self._dict = {}
        self.update(fields)

    def update(self, fields: Iterable[TiffFieldInfo], /) -> None:
        """Add field definitions to registry.

        Definitions are validated before any is added.

        """
        fields = tuple(fields)
        for field in fields:
            self._check(field)
        for field in fields:
            self._dict[field.code] = field

    def add(self, field: TiffFieldInfo, /) -> None:
        """Add field definition to registry."""
        self._check(field)
        self._dict[field.code] = field

    def _check(self, field: TiffFieldInfo, /) -> None:
        existing = self._dict.get(field.code)
        if existing is not None and existing != field:
            msg = (
                f'conflicting definition of tag {field.code} '
                f'{existing.name!r}'
            )
            raise ValueError(msg)

    def get(
        self, code: int, /, default: TiffFieldInfo | None = None
    ) -> TiffFieldInfo | None:
        """Return field definition of tag code if registered, else default."""
        return self._dict.get(code, default)

    def name(self, code: int, /) -> str:
        """Return name of tag code or code as string."""
        field = self._dict.get(code)
        return str(code) if field is None else field.name

    def __getitem__(self, code: int, /) -> TiffFieldInfo:
        return self._dict[code]

    def __contains__(self, code: object, /) -> bool:
        return code in self._dict

    def __iter__(self) -> Iterator[TiffFieldInfo]:
        yield from self._dict.values()

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f'<lazytiff.TiffFieldRegistry @0x{id(self):016X}>'


@final
class TiffTag:
    """TIFF tag structure.

    The value of tags read from file is loaded eagerly. Values that could
    not be loaded are *None*.

    Parameters:
        code:
            Decimal code of tag.
        dtype:
            Data type of tag value item.
        count:
            Number of items in tag value.
        value:
            Value of tag. ASCII values are str, others tuples of numbers.
        offset:
            Position of tag structure in file.
        valueoffset:
            Position of tag value in file.

    """

    __slots__ = (
        'code',
        'count',
        'dtype',
        'offset',
        'value',
        'valueoffset',
    )

    code: int
    """Decimal code of tag."""

    dtype: DATATYPE | int
    """:py:class:`DATATYPE` of tag value item."""

    count: int
    """Number of items in tag value."""

    value: Any
    """Value of tag or *None* if value could not be loaded."""

    offset: int
    """Position of tag structure in file."""

    valueoffset: int
    """Position of tag value in file."""

    def __init__(
        self,
        code: int,
        dtype: DATATYPE | int,
        count: int,
        value: Any,
        /,
        offset: int = 0,
        valueoffset: int = 0,
    ) -> None:
        self.code = int(code)
        self.count = int(count)
        self.value = value
        self.offset = int(offset)
        self.valueoffset = int(valueoffset)
        try:
            self.dtype = DATATYPE(dtype)
        except ValueError:
            self.dtype = int(dtype)

    @classmethod
    def fromvalue(cls, code: int, dtype: DATATYPE | int, value: Any, /) -> TiffTag:
        """Return TiffTag instance to be written to file.

        Parameters:
            code: Decimal code of tag.
            dtype: Data type of tag value item.
            value: Text for ASCII tags, else number or sequence of numbers.

        Raises:
            ValueError: Value cannot be stored with data type.

        """
        if dtype == DATATYPE.ASCII:
            if isinstance(value, bytes):
                value = value.decode('ascii')
            if not isinstance(value, str):
                msg = f'tag {code} requires a str value, not {type(value)!r}'
                raise ValueError(msg)
            try:
                value.encode('ascii')
            except UnicodeEncodeError as exc:
                msg = 'TIFF strings must be 7-bit ASCII'
                raise ValueError(msg) from exc
            value = value.rstrip('\x00')
            return cls(code, dtype, len(value) + 1, value)
        if isinstance(value, Iterable):
            value = tuple(value)
        else:
            value = (value,)
        if dtype in {DATATYPE.RATIONAL, DATATYPE.SRATIONAL}:
            if len(value) % 2:
                msg = f'tag {code} requires numerator and denominator pairs'
                raise ValueError(msg)
            return cls(code, dtype, len(value) // 2, value)
        return cls(code, dtype, len(value), value)

    @classmethod
    def fromfile(
        cls,
        fh: FileHandle,
        tiff: TiffFormat,
        /,
        *,
        offset: int | None = None,
        header: bytes | None = None,
    ) -> TiffTag:
        """Return TiffTag instance from file.

        Parameters:
            fh:
                File handle tag is read from.
            tiff:
                Format of file.
            offset:
                Position of tag structure in file.
                The default is the position of the file handle.
            header:
                Tag structure as bytes.
                The default is read from the file.

        Raises:
            TiffFileError: Tag structure is truncated.

        """
        from .lazytiff import TIFF

        if header is None:
            if offset is None:
                offset = fh.tell()
            else:
                fh.seek(offset)
            header = fh.read(tiff.tagsize)
        elif offset is None:
            offset = fh.tell()

        if len(header) != tiff.tagsize:
            msg = f'<lazytiff.TiffTag @{offset}> truncated tag structure'
            raise TiffFileError(msg)

        valueoffset = offset + tiff.tagsize - tiff.tagoffsetthreshold
        code, dtype, count, value = struct.unpack(
            tiff.tagformat1 + tiff.tagformat2[1:], header
        )

        try:
            valueformat = TIFF.DATA_FORMATS[dtype]
        except KeyError:
            logger().warning(
                f'<lazytiff.TiffTag {code} @{offset}> '
                f'invalid data type {dtype!r}'
            )
            return cls(code, dtype, count, None, offset, 0)

        valuesize = count * struct.calcsize(valueformat)
        if valuesize > tiff.tagoffsetthreshold:
            valueoffset = struct.unpack(tiff.offsetformat, value)[0]
            if valueoffset < 8 or valueoffset + valuesize > fh.size:
                logger().warning(
                    f'<lazytiff.TiffTag {code} @{offset}> '
                    f'invalid value offset {valueoffset}'
                )
                return cls(code, dtype, count, None, offset, valueoffset)
            fh.seek(valueoffset)
            value = fh.read(valuesize)
        else:
            value = value[:valuesize]

        if dtype not in {1, 2, 7}:
            # not BYTES, ASCII, UNDEFINED
            value = struct.unpack(
                f'{tiff.byteorder}'
                f'{count * int(valueformat[0])}'
                f'{valueformat[1]}',
                value,
            )
        value = TiffTag._process_value(value, code, dtype, offset)
        return cls(code, dtype, count, value, offset, valueoffset)

    @staticmethod
    def _process_value(value: Any, code: int, dtype: int, offset: int, /) -> Any:
        """Process tag value."""
        if dtype == 2:
            # ASCII fields may contain several NUL terminated strings
            value = value.rstrip(b'\x00')
            try:
                value = value.decode('utf-8')
            except UnicodeDecodeError:
                value = value.decode('cp1252', errors='replace')
                logger().warning(
                    f'<lazytiff.TiffTag {code} @{offset}> '
                    'coercing invalid ASCII'
                )
            return value
        if dtype in {1, 7}:
            # BYTE, UNDEFINED
            return tuple(value)
        return value

    def tobytes(self, byteorder: str, /) -> bytes:
        """Return tag value packed in byte order.

        Raises:
            ValueError: Value cannot be packed with data type of tag.

        """
        from .lazytiff import TIFF

        if self.value is None:
            msg = f'{self!r} has no value'
            raise ValueError(msg)
        dataformat = TIFF.DATA_FORMATS[self.dtype]
        if self.dtype == 2:
            return self.value.encode('ascii') + b'\x00'
        count = self.count * int(dataformat[0])
        try:
            return struct.pack(
                f'{byteorder}{count}{dataformat[1]}', *self.value
            )
        except struct.error as exc:
            msg = f'{self!r} cannot pack value {self.value!r:.64}'
            raise ValueError(msg) from exc

    @property
    def valuebytecount(self) -> int:
        """Number of bytes of tag value in file."""
        from .lazytiff import TIFF

        return self.count * struct.calcsize(TIFF.DATA_FORMATS[self.dtype])

    def __repr__(self) -> str:
        return (
            f'<lazytiff.TiffTag {self.code} {enumstr(self.dtype)}'
            f'[{self.count}] @{self.offset}>'
        )
