# handle.py

"""Scanline oriented access to strips of single page TIFF files."""

from __future__ import annotations

import math
import os
import struct
import sys
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, final

import numpy

from .fileio import FileHandle
from .tags import TiffFieldRegistry, TiffTag
from .utils import TiffFileError, WrongModeError, logger, snipstr

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType
    from typing import Any, Literal, Self

    from numpy.typing import NDArray

    from .codecs import TiffFormat
    from .tags import TiffFieldInfo

__all__ = ['TiffHandle']


@dataclass(frozen=True)
class StripLayout:
    """Geometry of strips in image directory.

    Attributes:
        width: Number of pixels per scanline.
        length: Number of scanlines per sample plane.
        samples: Number of samples per pixel in one scanline.
        planes: Number of sample planes.
        bitspersample: Number of bits per sample.
        sampleformat: Value of SampleFormat tag.
        rowsperstrip: Number of scanlines per strip.
        compression: Value of Compression tag.
        predictor: Value of Predictor tag.

    """

    width: int
    length: int
    samples: int
    planes: int
    bitspersample: int
    sampleformat: int
    rowsperstrip: int
    compression: int
    predictor: int

    @property
    def scanlinesize(self) -> int:
        """Number of bytes in decoded scanline."""
        return self.width * self.samples * (self.bitspersample // 8)

    @property
    def stripsperplane(self) -> int:
        """Number of strips per sample plane."""
        return math.ceil(self.length / self.rowsperstrip)

    @property
    def stripcount(self) -> int:
        """Number of strips in image."""
        return self.stripsperplane * self.planes

    def striprows(self, index: int, /) -> int:
        """Return number of scanlines in strip."""
        start = (index % self.stripsperplane) * self.rowsperstrip
        return min(self.rowsperstrip, self.length - start)

    def stripindex(self, row: int, sample: int, /) -> int:
        """Return index of strip containing scanline."""
        return sample * self.stripsperplane + row // self.rowsperstrip

    def sampledtype(self, byteorder: str, /) -> numpy.dtype[Any]:
        """Return dtype of samples in byte order."""
        from .lazytiff import TIFF

        key = (self.sampleformat, self.bitspersample)
        try:
            return numpy.dtype(byteorder + TIFF.SAMPLE_DTYPES[key])
        except KeyError as exc:
            msg = (
                f'SampleFormat {self.sampleformat} and BitsPerSample '
                f'{self.bitspersample} not supported'
            )
            raise TiffFileError(msg) from exc

    @classmethod
    def fromhandle(cls, handle: TiffHandle, /) -> StripLayout:
        """Return strip layout from tags of handle.

        Raises:
            TiffFileError: Tags describe image that cannot be accessed by
                scanline.

        """
        from .lazytiff import TIFF

        width = handle.get_field(256)
        length = handle.get_field(257)
        if width is None or length is None:
            msg = f'{handle!r} ImageWidth or ImageLength not set'
            raise TiffFileError(msg)
        if 322 in handle or 324 in handle:
            msg = f'{handle!r} tiled images not supported'
            raise TiffFileError(msg)

        def uniform(code: int) -> int:
            value = handle.get_field(code, TIFF.TAG_DEFAULTS[code])
            if isinstance(value, tuple):
                if len(set(value)) != 1:
                    msg = f'{handle!r} non-uniform {TIFF.FIELDS.name(code)}'
                    raise TiffFileError(msg)
                value = value[0]
            return int(value)

        bitspersample = uniform(258)
        if bitspersample % 8 or bitspersample == 0:
            msg = f'{handle!r} BitsPerSample {bitspersample} not supported'
            raise TiffFileError(msg)
        samplesperpixel = int(handle.get_field(277, 1))
        planar = int(handle.get_field(284, 1))
        rowsperstrip = int(handle.get_field(278, TIFF.TAG_DEFAULTS[278]))
        rowsperstrip = max(1, min(rowsperstrip, int(length)))
        contig = planar == 1 or samplesperpixel == 1
        return cls(
            width=int(width),
            length=int(length),
            samples=samplesperpixel if contig else 1,
            planes=1 if contig else samplesperpixel,
            bitspersample=bitspersample,
            sampleformat=uniform(339),
            rowsperstrip=rowsperstrip,
            compression=int(handle.get_field(259, 1)),
            predictor=int(handle.get_field(317, 1)),
        )


@final
class TiffHandle:
    """Read or write scanlines of first image in TIFF file.

    Images are stored in strips of one or more scanlines. Strips are
    decoded and encoded as a whole. When reading, the most recently decoded
    strip is cached. When writing, scanlines are collected until their
    strip is complete, then the strip is encoded and appended to the file.
    The image file directory is written by :py:meth:`TiffHandle.flush`
    after the strips.

    TiffHandle instances are not thread-safe.

    Parameters:
        file:
            File name or seekable binary stream.
        mode:
            'r' to read existing file, 'w' to create new file.
        bigtiff:
            Write 64-bit BigTIFF format. Only applies to mode 'w'.
        byteorder:
            Byte order of written file, '<' or '>'.
            The default is the system's native byte order.

    Raises:
        TiffFileError: File is not a valid TIFF file.

    """

    __slots__ = (
        '_bytecounts',
        '_dirty',
        '_fh',
        '_layout',
        '_lastwrite',
        '_mode',
        '_offsets',
        '_pending',
        '_strip',
        '_tags',
        '_tiff',
        'fields',
    )

    fields: TiffFieldRegistry
    """Definitions of fields that can be set."""

    _fh: FileHandle
    _tiff: TiffFormat
    _mode: Literal['r', 'w']
    _tags: dict[int, TiffTag]
    _layout: StripLayout | None
    _offsets: list[int]
    _bytecounts: list[int]
    _strip: tuple[int, NDArray[Any]] | None
    _pending: tuple[int, bytearray] | None
    _lastwrite: tuple[int, int]
    _dirty: bool

    def __init__(
        self,
        file: str | os.PathLike[Any] | IO[bytes],
        /,
        mode: Literal['r', 'w'] = 'r',
        *,
        bigtiff: bool = False,
        byteorder: Literal['<', '>', '=', '|'] | None = None,
    ) -> None:
        from .lazytiff import TIFF

        if mode not in {'r', 'w'}:
            msg = f'invalid mode {mode!r}'
            raise ValueError(msg)
        if byteorder in {None, '=', '|'}:
            byteorder = '<' if sys.byteorder == 'little' else '>'
        elif byteorder not in {'<', '>'}:
            msg = f'invalid byteorder {byteorder!r}'
            raise ValueError(msg)

        self.fields = TiffFieldRegistry(TIFF.FIELDS)
        self._mode = mode
        self._tags = {}
        self._layout = None
        self._offsets = []
        self._bytecounts = []
        self._strip = None
        self._pending = None
        self._lastwrite = (-1, -1)
        self._dirty = False

        self._fh = FileHandle(file, mode='rb' if mode == 'r' else 'wb')
        try:
            if mode == 'r':
                self._fromfile()
            else:
                if bigtiff:
                    tiff = TIFF.BIG_LE if byteorder == '<' else TIFF.BIG_BE
                else:
                    tiff = (
                        TIFF.CLASSIC_LE if byteorder == '<' else TIFF.CLASSIC_BE
                    )
                self._tiff = tiff
                self._writeheader()
                self._dirty = True
        except Exception:
            self._fh.close()
            raise
        logger().debug(f'{self!r} opened {self._tiff!r} in mode {mode!r}')

    def _fromfile(self) -> None:
        """Read header and first image file directory."""
        from .lazytiff import TIFF

        fh = self._fh
        fh.seek(0)
        header = fh.read(4)
        try:
            byteorder = {b'II': '<', b'MM': '>'}[header[:2]]
        except KeyError as exc:
            msg = f'{self!r} not a TIFF file {header!r}'
            raise TiffFileError(msg) from exc
        if len(header) != 4:
            msg = f'{self!r} not a TIFF file {header!r}'
            raise TiffFileError(msg)
        version = struct.unpack(byteorder + 'H', header[2:4])[0]
        if version == 43:
            offsetsize, zero = struct.unpack(byteorder + 'HH', fh.read(4))
            if offsetsize != 8 or zero != 0:
                msg = f'{self!r} invalid BigTIFF offset size {offsetsize}'
                raise TiffFileError(msg)
            tiff = TIFF.BIG_LE if byteorder == '<' else TIFF.BIG_BE
        elif version == 42:
            tiff = TIFF.CLASSIC_LE if byteorder == '<' else TIFF.CLASSIC_BE
        else:
            msg = f'{self!r} not a TIFF file, version {version}'
            raise TiffFileError(msg)
        self._tiff = tiff

        data = fh.read(tiff.offsetsize)
        if len(data) != tiff.offsetsize:
            msg = f'{self!r} truncated TIFF header'
            raise TiffFileError(msg)
        ifdoffset = struct.unpack(tiff.offsetformat, data)[0]
        if ifdoffset < tiff.headersize or ifdoffset >= fh.size:
            msg = f'{self!r} invalid IFD offset {ifdoffset}'
            raise TiffFileError(msg)

        fh.seek(ifdoffset)
        tagno = struct.unpack(tiff.tagnoformat, fh.read(tiff.tagnosize))[0]
        if tagno > 4096:
            msg = f'{self!r} suspicious number of tags {tagno}'
            raise TiffFileError(msg)
        tagsize = tiff.tagsize
        data = fh.read(tagsize * tagno)
        if len(data) != tagsize * tagno:
            msg = f'{self!r} truncated IFD'
            raise TiffFileError(msg)
        nextifd = fh.read(tiff.offsetsize)

        tagoffset = ifdoffset + tiff.tagnosize
        for i in range(tagno):
            tag = TiffTag.fromfile(
                fh,
                tiff,
                offset=tagoffset + i * tagsize,
                header=data[i * tagsize : (i + 1) * tagsize],
            )
            if tag.code in self._tags:
                logger().warning(f'{self!r} ignoring duplicate {tag!r}')
                continue
            self._tags[tag.code] = tag

        if (
            len(nextifd) == tiff.offsetsize
            and struct.unpack(tiff.offsetformat, nextifd)[0] != 0
        ):
            logger().warning(f'{self!r} ignoring additional IFDs')

    def _writeheader(self) -> None:
        """Write file header with IFD offset to be patched on flush."""
        tiff = self._tiff
        fh = self._fh
        fh.seek(0)
        fh.write(b'II' if tiff.byteorder == '<' else b'MM')
        if tiff.is_bigtiff:
            fh.write(struct.pack(tiff.byteorder + 'HHH', 43, 8, 0))
        else:
            fh.write(struct.pack(tiff.byteorder + 'H', 42))
        fh.write(struct.pack(tiff.offsetformat, 0))

    def _check_open(self) -> None:
        if self._fh.closed:
            msg = f'{self!r} is closed'
            raise ValueError(msg)

    def get_field(self, code: int, /, default: Any = None) -> Any:
        """Return value of tag in image file directory.

        Single item values are returned as scalars, except for tags whose
        values are always tuples.

        Parameters:
            code: Decimal code of tag.
            default: Value to return if tag is absent or not loaded.

        """
        from .lazytiff import TIFF

        tag = self._tags.get(code)
        if tag is None or tag.value is None:
            return default
        value = tag.value
        if (
            isinstance(value, tuple)
            and len(value) == 1
            and code not in TIFF.TAG_TUPLE
        ):
            return value[0]
        return value

    def set_field(self, code: int, value: Any, /) -> None:
        """Set value of registered tag.

        Parameters:
            code: Decimal code of tag.
            value: Text or number(s) matching field definition.

        Raises:
            WrongModeError: Handle is not opened for writing.
            KeyError: Tag is not registered.
            ValueError: Tag cannot be set or value does not match definition.

        """
        from .lazytiff import TIFF

        self._check_open()
        if self._mode != 'w':
            msg = f'{self!r} not opened for writing'
            raise WrongModeError(msg)
        field = self.fields.get(code)
        if field is None:
            msg = f'tag {code} is not registered'
            raise KeyError(msg)
        if code in {273, 279}:
            msg = f'{field.name} is managed by {self!r}'
            raise ValueError(msg)
        if self._layout is not None and code in TIFF.TAG_STRUCTURE:
            msg = (
                f'cannot change {field.name} after first scanline was written'
            )
            raise ValueError(msg)
        tag = TiffTag.fromvalue(code, field.dtype, value)
        if field.count is not None and tag.count != field.count:
            msg = (
                f'{field.name} requires {field.count} values, '
                f'got {tag.count}'
            )
            raise ValueError(msg)
        # validate value can be packed
        tag.tobytes(self._tiff.byteorder)
        self._tags[code] = tag
        self._dirty = True

    def get_custom_array(
        self, code: int, /
    ) -> tuple[int, tuple[Any, ...] | None] | None:
        """Return count and values of tag, or None if tag is absent.

        The values are None if they could not be loaded from file.

        """
        tag = self._tags.get(code)
        if tag is None:
            return None
        value = tag.value
        if value is not None and not isinstance(value, tuple):
            value = None
        return tag.count, value

    def set_custom_array(self, code: int, values: Iterable[Any], /) -> None:
        """Set values of registered array tag."""
        self.set_field(code, tuple(values))

    def get_custom_ascii(self, code: int, /) -> str | None:
        """Return text of ASCII tag, or None if tag is absent or not loaded."""
        tag = self._tags.get(code)
        if tag is None or not isinstance(tag.value, str):
            return None
        return tag.value

    def set_custom_ascii(self, code: int, text: str, /) -> None:
        """Set text of registered ASCII tag."""
        self.set_field(code, text)

    def merge_field_info(self, fields: Iterable[TiffFieldInfo], /) -> None:
        """Register field definitions.

        Raises:
            ValueError: Definition conflicts with registered field.

        """
        self.fields.update(fields)

    def scanline_size(self) -> int:
        """Return number of bytes in decoded scanline."""
        self._check_open()
        return self._striplayout().scanlinesize

    def _striplayout(self) -> StripLayout:
        if self._layout is not None:
            return self._layout
        layout = StripLayout.fromhandle(self)
        if self._mode == 'r':
            offsets = self.get_field(273)
            bytecounts = self.get_field(279)
            if offsets is None or bytecounts is None:
                msg = f'{self!r} StripOffsets or StripByteCounts missing'
                raise TiffFileError(msg)
            if (
                len(offsets) != layout.stripcount
                or len(bytecounts) != layout.stripcount
            ):
                msg = (
                    f'{self!r} expected {layout.stripcount} strips, '
                    f'got {len(offsets)}'
                )
                raise TiffFileError(msg)
            self._offsets = list(offsets)
            self._bytecounts = list(bytecounts)
            self._layout = layout
        return layout

    def read_scanline(
        self, out: NDArray[Any], row: int, /, sample: int = 0
    ) -> None:
        """Read decoded scanline into array.

        The bytes of the scanline are interpreted as items of `out.dtype`
        in the byte order of the file.

        Parameters:
            out:
                C-contiguous array of `scanline_size()` bytes.
            row:
                Index of scanline.
            sample:
                Index of sample plane if samples are stored separately.

        Raises:
            WrongModeError: Handle is not opened for reading.
            IndexError: Row or sample out of range.
            TiffFileError: Strip cannot be decoded.

        """
        self._check_open()
        if self._mode != 'r':
            msg = f'{self!r} not opened for reading'
            raise WrongModeError(msg)
        layout = self._striplayout()
        if not 0 <= row < layout.length:
            msg = f'row {row} out of range [0, {layout.length})'
            raise IndexError(msg)
        if not 0 <= sample < layout.planes:
            msg = f'sample {sample} out of range [0, {layout.planes})'
            raise IndexError(msg)
        if out.nbytes != layout.scanlinesize or not out.flags.c_contiguous:
            msg = (
                f'output array of {out.nbytes} bytes does not match '
                f'scanline of {layout.scanlinesize} bytes'
            )
            raise ValueError(msg)

        index = layout.stripindex(row, sample)
        if self._strip is None or self._strip[0] != index:
            self._strip = index, self._readstrip(index, layout)
        data = self._strip[1][row % layout.rowsperstrip]
        out.reshape(-1)[:] = data.view(
            out.dtype.newbyteorder(self._tiff.byteorder)
        )

    def _readstrip(self, index: int, layout: StripLayout, /) -> NDArray[Any]:
        """Return decoded strip as 2D array of bytes."""
        from .lazytiff import TIFF

        rows = layout.striprows(index)
        size = rows * layout.scanlinesize
        offset = self._offsets[index]
        bytecount = self._bytecounts[index]
        if offset == 0 or bytecount == 0:
            logger().warning(f'{self!r} strip {index} is missing')
            return numpy.zeros((rows, layout.scanlinesize), numpy.uint8)

        self._fh.seek(offset)
        data: Any = self._fh.read(bytecount)
        if layout.compression > 1:
            decompress = TIFF.DECOMPRESSORS[layout.compression]
            data = decompress(data, out=size)
        if len(data) < size:
            msg = f'{self!r} strip {index} is truncated'
            raise TiffFileError(msg)
        strip = numpy.frombuffer(data, numpy.uint8, count=size)
        if layout.predictor > 1:
            unpredict = TIFF.UNPREDICTORS[layout.predictor]
            dtype = layout.sampledtype(self._tiff.byteorder)
            strip = strip.view(dtype).reshape(rows, layout.width, -1)
            strip = unpredict(strip, axis=-2)
            strip = numpy.ascontiguousarray(strip).view(numpy.uint8)
        return strip.reshape(rows, layout.scanlinesize)

    def write_scanline(
        self, data: NDArray[Any], row: int, /, sample: int = 0
    ) -> None:
        """Write scanline.

        Scanlines must be written in increasing order. Image structure
        fields cannot be changed after the first scanline was written.

        Parameters:
            data:
                Array of `scanline_size()` bytes. Items are stored in the
                byte order of the file.
            row:
                Index of scanline.
            sample:
                Index of sample plane if samples are stored separately.

        Raises:
            WrongModeError: Handle is not opened for writing.
            IndexError: Row or sample out of range or out of order.
            ValueError: Size of data does not match scanline.

        """
        self._check_open()
        if self._mode != 'w':
            msg = f'{self!r} not opened for writing'
            raise WrongModeError(msg)
        if self._layout is None:
            if 278 not in self._tags:
                self.set_field(278, 1)
            layout = StripLayout.fromhandle(self)
            self._offsets = [0] * layout.stripcount
            self._bytecounts = [0] * layout.stripcount
            self._layout = layout
        layout = self._layout

        if not 0 <= row < layout.length:
            msg = f'row {row} out of range [0, {layout.length})'
            raise IndexError(msg)
        if not 0 <= sample < layout.planes:
            msg = f'sample {sample} out of range [0, {layout.planes})'
            raise IndexError(msg)
        index = layout.stripindex(row, sample)
        if (index, row) <= self._lastwrite:
            msg = f'row {row} of sample {sample} written out of order'
            raise IndexError(msg)

        data = numpy.asarray(data)
        buffer = data.astype(
            data.dtype.newbyteorder(self._tiff.byteorder), copy=False
        ).tobytes()
        if len(buffer) != layout.scanlinesize:
            msg = (
                f'scanline of {len(buffer)} bytes does not match '
                f'scanline size {layout.scanlinesize}'
            )
            raise ValueError(msg)

        if self._pending is not None and self._pending[0] != index:
            self._writestrip(*self._pending)
            self._pending = None
        if self._pending is None:
            self._pending = (
                index,
                bytearray(layout.striprows(index) * layout.scanlinesize),
            )
        start = (row % layout.rowsperstrip) * layout.scanlinesize
        self._pending[1][start : start + len(buffer)] = buffer
        self._lastwrite = (index, row)
        self._dirty = True

        last = min(
            (index % layout.stripsperplane + 1) * layout.rowsperstrip,
            layout.length,
        )
        if row == last - 1:
            self._writestrip(*self._pending)
            self._pending = None

    def _writestrip(self, index: int, buffer: bytearray, /) -> None:
        """Encode strip and append it to file."""
        from .lazytiff import TIFF

        layout = self._layout
        assert layout is not None
        data: Any = buffer
        if layout.predictor > 1:
            predict = TIFF.PREDICTORS[layout.predictor]
            dtype = layout.sampledtype(self._tiff.byteorder)
            data = numpy.frombuffer(bytes(buffer), dtype).reshape(
                layout.striprows(index), layout.width, -1
            )
            data = predict(data, axis=-2)
        if layout.compression > 1:
            compress = TIFF.COMPRESSORS[layout.compression]
            data = compress(data)
        if isinstance(data, numpy.ndarray):
            data = data.tobytes()
        else:
            data = bytes(data)

        fh = self._fh
        offset = fh.seek(0, os.SEEK_END)
        self._checkoffset(offset + len(data))
        fh.write(data)
        self._offsets[index] = offset
        self._bytecounts[index] = len(data)

    def _checkoffset(self, offset: int, /) -> None:
        if not self._tiff.is_bigtiff and offset > 2**32 - 1:
            msg = f'{self!r} data too large for classic TIFF, use BigTIFF'
            raise TiffFileError(msg)

    def flush(self) -> None:
        """Write pending strip and image file directory to file.

        The image file directory is appended to the file and the header
        is patched to point to it.

        """
        self._check_open()
        if self._mode != 'w':
            return
        if self._pending is not None:
            # rows not yet written are zero
            self._writestrip(*self._pending)

        tiff = self._tiff
        byteorder = tiff.byteorder
        fh = self._fh

        tags = dict(self._tags)
        if self._layout is None:
            try:
                stripcount = StripLayout.fromhandle(self).stripcount
            except TiffFileError:
                stripcount = 0
            offsets = [0] * stripcount
            bytecounts = [0] * stripcount
        else:
            offsets = self._offsets
            bytecounts = self._bytecounts
        if offsets:
            dtype = 16 if tiff.is_bigtiff else 4
            tags[273] = TiffTag.fromvalue(273, dtype, offsets)
            tags[279] = TiffTag.fromvalue(279, dtype, bytecounts)

        ifdoffset = fh.seek(0, os.SEEK_END)
        if ifdoffset % 2:
            # word align
            fh.write(b'\x00')
            ifdoffset += 1
        ifdsize = tiff.tagnosize + len(tags) * tiff.tagsize + tiff.offsetsize
        valueoffset = ifdoffset + ifdsize

        ifd = [struct.pack(tiff.tagnoformat, len(tags))]
        values = []
        for code in sorted(tags):
            tag = tags[code]
            value = tag.tobytes(byteorder)
            ifd.append(struct.pack(tiff.tagformat1, code, tag.dtype))
            if len(value) <= tiff.tagoffsetthreshold:
                ifd.append(struct.pack(tiff.tagformat2, tag.count, value))
                continue
            ifd.append(
                struct.pack(
                    tiff.tagformat2,
                    tag.count,
                    struct.pack(tiff.offsetformat, valueoffset),
                )
            )
            values.append(value)
            valueoffset += len(value)
            if valueoffset % 2:
                values.append(b'\x00')
                valueoffset += 1
        ifd.append(struct.pack(tiff.offsetformat, 0))
        self._checkoffset(valueoffset)

        fh.write(b''.join(ifd))
        fh.write(b''.join(values))
        fh.seek(tiff.headersize - tiff.offsetsize)
        fh.write(struct.pack(tiff.offsetformat, ifdoffset))
        fh.flush()
        self._dirty = False
        logger().debug(
            f'{self!r} wrote IFD with {len(tags)} tags @{ifdoffset}'
        )

    def close(self) -> None:
        """Flush pending writes and close file. Closing twice has no effect."""
        if self._fh.closed:
            return
        try:
            if self._mode == 'w' and self._dirty:
                self.flush()
        finally:
            self._fh.close()
            self._strip = None
            logger().debug(f'{self!r} closed')

    @property
    def tiff(self) -> TiffFormat:
        """Format of file."""
        return self._tiff

    @property
    def byteorder(self) -> Literal['<', '>']:
        """Byte order of file."""
        return self._tiff.byteorder

    @property
    def mode(self) -> Literal['r', 'w']:
        """Mode handle was opened with."""
        return self._mode

    @property
    def name(self) -> str:
        """Name of file."""
        return self._fh.name

    @property
    def path(self) -> str:
        """Absolute path of file."""
        return self._fh.path

    @property
    def closed(self) -> bool:
        """File is closed."""
        return self._fh.closed

    def __contains__(self, code: object, /) -> bool:
        return code in self._tags

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
        return f'<lazytiff.TiffHandle {snipstr(self._fh.name, 32)!r}>'
