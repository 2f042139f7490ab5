# lazytiff.py

# Copyright (c) 2008-2026, Christoph Gohlke
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

r"""Read and write regions of scanline TIFF and GeoTIFF files.

Lazytiff is a Python library to

(1) read and write rectangular regions of channel-typed raster images
    stored in strips of full-width scanlines, and
(2) read and write the GeoTIFF key directory and its auxiliary tags.

Image data are transferred scanline by scanline between the file and
NumPy arrays. Only the rows of the requested region are decoded.
Images are written with one scanline per strip, in classic TIFF or BigTIFF
format, in little or big-endian byte order.

Strips can be compressed with LZW, PackBits, Deflate, LZMA, or Zstd and
filtered with horizontal or floating-point predictors via the imagecodecs
library.

:License: BSD-3-Clause
:Version: 2026.1.28

Requirements
------------

This revision was tested with the following requirements and dependencies
(other versions may work):

- `CPython <https://www.python.org>`_ 3.11, 3.12, 3.13, 3.14 64-bit
- `NumPy <https://pypi.org/project/numpy>`_ 2.4.1
- `Imagecodecs <https://pypi.org/project/imagecodecs/>`_ 2026.1.14
  (required for encoding or decoding compressed or predicted strips)

Notes
-----

Only the first image file directory of a file is read and only one is
written. Tiled images, bilevel images, and images with separately stored
samples are not supported by :py:class:`LazyTiffImage`.

Regions can only be written as full-width scanlines, in increasing row
order. Scanlines already written cannot be read back from an image opened
for writing, hence partial-width regions cannot be merged into existing
scanlines.

:py:attr:`LazyTiffImage.hasalpha` reports whether an image has four
samples per pixel. This is an approximation: four-sample images without
alpha are misreported, and grayscale images with alpha are not detected.

Examples
--------

Write a NumPy array to a single-page RGB TIFF file:

>>> data = numpy.zeros((100, 100, 3), 'uint8')
>>> data[..., 0] = 255
>>> imwrite('temp.tif', data)

Read a region of the image from the file:

>>> region = imread('temp.tif', area=Area(Point(10, 20), Size(30, 5)))
>>> region.shape
(5, 30, 3)
>>> int(region[0, 0, 0])
255

Create an image and write it one scanline at a time:

>>> with LazyTiffImage.create(
...     'temp.tif', Size(100, 100), 3, CHANNEL.UINT8
... ) as image:
...     for y in range(100):
...         row = numpy.full((1, 100, 3), y * 2, 'uint8')
...         image.write(Area(Point(0, y), Size(100, 1)), row)
...

Open the image and check its attributes:

>>> with LazyTiffImage.open('temp.tif') as image:
...     image.channel, image.size, image.channelcount
...
(<CHANNEL.UINT8: 'B'>, Size(width=100, height=100), 3)

Write a GeoTIFF file with pixel scale, tiepoint, and geokeys:

>>> with GeoTiffImage.create(
...     'temp.tif', Size(10, 10), 1, CHANNEL.FLOAT32
... ) as image:
...     image.set_pixel_scale((1.0, 1.0, 0.0))
...     image.set_tiepoint((0.0, 0.0, 0.0, 500000.0, 4000000.0, 0.0))
...     image.set_geokeys(
...         {
...             GEOKEY.GTMODELTYPE: 1,
...             GEOKEY.PROJECTEDCSTYPE: 32633,
...             GEOKEY.PCSCITATION: 'WGS 84 / UTM zone 33N',
...         }
...     )
...     image.write(Area.full(image.size), numpy.zeros((10, 10), 'float32'))
...
>>> with GeoTiffImage.open('temp.tif') as image:
...     image.get_geokeys()[GEOKEY.PROJECTEDCSTYPE]
...
32633

"""

from __future__ import annotations

__version__ = '2026.1.28'

__all__ = [
    'CHANNEL',
    'COMPRESSION',
    'DATATYPE',
    'EXTRASAMPLE',
    'GEOKEY',
    'GEOTIFFTAG',
    'ORIENTATION',
    'PHOTOMETRIC',
    'PLANARCONFIG',
    'PREDICTOR',
    'SAMPLEFORMAT',
    'TIFF',
    '_TIFF',  # private
    'Area',
    'AreaOutOfBoundsError',
    'DirectoryEntry',
    'DirectoryHeaderTooShortError',
    'DirectorySizeIncorrectError',
    'FailedToAddTagsError',
    'FileHandle',
    'FlushError',
    'GeoKeyDirectory',
    'GeoTiffImage',
    'IncorrectChannelSizeError',
    'InternalInconsistencyError',
    'InvalidReferenceError',
    'LazyTiffImage',
    'NoBaseAddressError',
    'OpenError',
    'PartialScanlineError',
    'Point',
    'ScanlineReadError',
    'ScanlineWriteError',
    'Size',
    'TagMemoryError',
    'TagNotFoundError',
    'TiffAttributes',
    'TiffError',
    'TiffFieldInfo',
    'TiffFieldRegistry',
    'TiffFileError',
    'TiffFormat',
    'TiffHandle',
    'TiffTag',
    'UnrecognisedGeoKeyError',
    'UnsupportedTypeError',
    'WrongModeError',
    '__version__',
    'enumarg',
    'enumstr',
    'imread',
    'imwrite',
    'logger',
]

import contextlib
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import IO, TYPE_CHECKING, final

import numpy

from .codecs import CompressionCodec, PredictorCodec, TiffFormat
from .enums import (
    CHANNEL,
    COMPRESSION,
    DATATYPE,
    EXTRASAMPLE,
    GEOKEY,
    GEOTIFFTAG,
    ORIENTATION,
    PHOTOMETRIC,
    PLANARCONFIG,
    PREDICTOR,
    SAMPLEFORMAT,
)
from .fileio import FileHandle
from .geometry import Area, Point, Size
from .handle import TiffHandle
from .tags import TiffFieldInfo, TiffFieldRegistry, TiffTag
from .utils import (
    AreaOutOfBoundsError,
    DirectoryHeaderTooShortError,
    DirectorySizeIncorrectError,
    FailedToAddTagsError,
    FlushError,
    IncorrectChannelSizeError,
    InternalInconsistencyError,
    InvalidReferenceError,
    NoBaseAddressError,
    OpenError,
    PartialScanlineError,
    ScanlineReadError,
    ScanlineWriteError,
    TagMemoryError,
    TagNotFoundError,
    TiffError,
    TiffFileError,
    UnrecognisedGeoKeyError,
    UnsupportedTypeError,
    WrongModeError,
    enumarg,
    enumstr,
    logger,
    snipstr,
)

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Any, Literal, Self

    from numpy.typing import ArrayLike, DTypeLike, NDArray

    ChannelLike = CHANNEL | DTypeLike

# errors reported by file handle on failed scanline, strip, or IFD access
_CODEC_ERRORS = (TiffError, OSError, ValueError, IndexError, KeyError)


def imread(
    file: str | os.PathLike[Any] | IO[bytes],
    /,
    channel: ChannelLike | None = None,
    area: Area | None = None,
) -> NDArray[Any]:
    """Return region of image from TIFF file as NumPy array.

    Parameters:
        file:
            File name or seekable binary stream.
        channel:
            Channel type of image.
            By default, the channel type is determined from the SampleFormat
            and BitsPerSample tags.
        area:
            Region of image to read. The default is the whole image.

    Returns:
        Image data of shape (height, width, samplesperpixel).

    """
    with LazyTiffImage.open(file, channel) as image:
        return image.read(area)


def imwrite(
    file: str | os.PathLike[Any] | IO[bytes],
    /,
    data: ArrayLike,
    hasalpha: bool = False,  # noqa: FBT001, FBT002
    bigtiff: bool = False,  # noqa: FBT001, FBT002
    **kwargs: Any,
) -> None:
    """Write NumPy array to single-page TIFF file.

    Parameters:
        file:
            File name or writable seekable binary stream.
        data:
            Image data of shape (height, width) or
            (height, width, samplesperpixel).
            The data type determines the channel type of the file.
        hasalpha:
            Last sample is associated alpha.
        bigtiff:
            Write 64-bit BigTIFF format.
        **kwargs:
            Additional arguments passed to :py:meth:`LazyTiffImage.create`,
            for example, `byteorder`, `compression`, or `predictor`.

    """
    data = numpy.asarray(data)
    if data.ndim == 2:
        data = data[..., numpy.newaxis]
    elif data.ndim != 3:
        msg = f'cannot write {data.ndim}-dimensional array'
        raise ValueError(msg)
    height, width, samplesperpixel = data.shape
    with LazyTiffImage.create(
        file,
        Size(width, height),
        samplesperpixel,
        CHANNEL.get(data.dtype),
        hasalpha,
        bigtiff,
        **kwargs,
    ) as image:
        image.write(Area.full(image.size), data)


@final
@dataclass(frozen=True)
class TiffAttributes:
    """Standard image attributes stored in TIFF tags.

    Attributes are read from or written to the tags of a
    :py:class:`TiffHandle`. Absent optional tags assume TIFF default values.

    """

    width: int
    """Number of pixels per scanline. Value of ImageWidth tag."""

    height: int
    """Number of scanlines. Value of ImageLength tag."""

    samplesperpixel: int = 1
    """Number of samples per pixel. Value of SamplesPerPixel tag."""

    bitspersample: int = 8
    """Number of bits per sample. Value of BitsPerSample tag."""

    sampleformat: SAMPLEFORMAT | int = SAMPLEFORMAT.UINT
    """Data type of samples. Value of SampleFormat tag."""

    photometric: PHOTOMETRIC | int = PHOTOMETRIC.MINISBLACK
    """Color space of image. Value of PhotometricInterpretation tag."""

    planarconfig: PLANARCONFIG | int = PLANARCONFIG.CONTIG
    """Storage of samples. Value of PlanarConfiguration tag."""

    orientation: ORIENTATION | int = ORIENTATION.TOPLEFT
    """Orientation of image. Value of Orientation tag."""

    extrasamples: tuple[EXTRASAMPLE | int, ...] = ()
    """Interpretation of extra samples. Value of ExtraSamples tag."""

    rowsperstrip: int = 1
    """Number of scanlines per strip. Value of RowsPerStrip tag."""

    compression: COMPRESSION | int = COMPRESSION.NONE
    """Compression scheme of strips. Value of Compression tag."""

    predictor: PREDICTOR | int = PREDICTOR.NONE
    """Predictor applied before compression. Value of Predictor tag."""

    @property
    def size(self) -> Size:
        """Width and height of image."""
        return Size(self.width, self.height)

    @property
    def hasalpha(self) -> bool:
        """Image has four samples per pixel.

        Approximates whether the image has an alpha channel.

        """
        return self.samplesperpixel == 4

    @classmethod
    def read(cls, handle: TiffHandle, /) -> TiffAttributes:
        """Return attributes from tags of TIFF file.

        Raises:
            TiffFileError:
                ImageWidth or ImageLength tags are missing,
                BitsPerSample or SampleFormat differ between samples,
                the image is tiled, or samples are stored separately.

        """
        width = handle.get_field(256)
        height = handle.get_field(257)
        if width is None or height is None:
            msg = f'{handle!r} ImageWidth or ImageLength tag missing'
            raise TiffFileError(msg)
        if 322 in handle or 324 in handle:
            msg = f'{handle!r} tiled images not supported'
            raise TiffFileError(msg)
        samplesperpixel = int(handle.get_field(277, 1))
        planarconfig = _enum(PLANARCONFIG, handle.get_field(284, 1))
        if planarconfig == PLANARCONFIG.SEPARATE and samplesperpixel > 1:
            msg = f'{handle!r} separate samples not supported'
            raise TiffFileError(msg)
        photometric = handle.get_field(262)
        if photometric is None:
            logger().warning(
                f'{handle!r} PhotometricInterpretation tag missing'
            )
            photometric = (
                PHOTOMETRIC.MINISBLACK
                if samplesperpixel < 3
                else PHOTOMETRIC.RGB
            )
        return cls(
            width=int(width),
            height=int(height),
            samplesperpixel=samplesperpixel,
            bitspersample=_uniform(handle, 258),
            sampleformat=_enum(SAMPLEFORMAT, _uniform(handle, 339)),
            photometric=_enum(PHOTOMETRIC, photometric),
            planarconfig=planarconfig,
            orientation=_enum(ORIENTATION, handle.get_field(274, 1)),
            extrasamples=tuple(
                _enum(EXTRASAMPLE, value)
                for value in handle.get_field(338, ())
            ),
            rowsperstrip=min(
                int(handle.get_field(278, TIFF.TAG_DEFAULTS[278])),
                int(height),
            ),
            compression=_enum(COMPRESSION, handle.get_field(259, 1)),
            predictor=_enum(PREDICTOR, handle.get_field(317, 1)),
        )

    @classmethod
    def write(
        cls,
        handle: TiffHandle,
        /,
        size: Size,
        samplesperpixel: int,
        channel: ChannelLike,
        hasalpha: bool = False,  # noqa: FBT001, FBT002
        *,
        compression: COMPRESSION | int | str | None = None,
        predictor: PREDICTOR | int | str | None = None,
    ) -> TiffAttributes:
        """Set attribute tags of TIFF file opened for writing.

        Parameters:
            handle:
                TIFF file opened for writing.
            size:
                Width and height of image.
            samplesperpixel:
                Number of samples per pixel.
            channel:
                Channel type. Determines BitsPerSample and SampleFormat.
            hasalpha:
                Last sample is associated alpha.
            compression:
                Compression scheme of strips.
            predictor:
                Predictor applied before compression.

        Raises:
            UnsupportedTypeError: Channel type is not supported.
            ValueError: Attributes are invalid.

        """
        channel = CHANNEL.get(channel)
        samplesperpixel = int(samplesperpixel)
        if samplesperpixel < 1:
            msg = f'invalid samplesperpixel {samplesperpixel}'
            raise ValueError(msg)
        if hasalpha and samplesperpixel < 2:
            msg = 'alpha requires at least two samples per pixel'
            raise ValueError(msg)
        photometric = (
            PHOTOMETRIC.MINISBLACK if samplesperpixel == 1 else PHOTOMETRIC.RGB
        )
        extrasamples = (EXTRASAMPLE.ASSOCALPHA,) if hasalpha else ()
        compression = (
            COMPRESSION.NONE
            if compression is None
            else enumarg(COMPRESSION, compression)
        )
        predictor = (
            PREDICTOR.NONE
            if predictor is None
            else enumarg(PREDICTOR, predictor)
        )

        handle.set_field(256, size.width)
        handle.set_field(257, size.height)
        handle.set_field(258, (channel.bitspersample,) * samplesperpixel)
        handle.set_field(277, samplesperpixel)
        handle.set_field(278, 1)
        handle.set_field(262, photometric)
        handle.set_field(284, PLANARCONFIG.CONTIG)
        handle.set_field(274, ORIENTATION.TOPLEFT)
        if extrasamples:
            handle.set_field(338, extrasamples)
        handle.set_field(339, (channel.sampleformat,) * samplesperpixel)
        if compression:
            handle.set_field(259, compression)
        if predictor:
            handle.set_field(317, predictor)

        return cls(
            width=size.width,
            height=size.height,
            samplesperpixel=samplesperpixel,
            bitspersample=channel.bitspersample,
            sampleformat=channel.sampleformat,
            photometric=photometric,
            planarconfig=PLANARCONFIG.CONTIG,
            orientation=ORIENTATION.TOPLEFT,
            extrasamples=extrasamples,
            rowsperstrip=1,
            compression=compression,
            predictor=predictor,
        )


def _enum(enum: Any, value: Any, /) -> Any:
    """Return enum member of value or value if not a member."""
    try:
        return enum(value)
    except ValueError:
        return int(value)


def _uniform(handle: TiffHandle, code: int, /) -> int:
    """Return value of tag that must be identical for all samples."""
    value = handle.get_field(code, TIFF.TAG_DEFAULTS[code])
    if isinstance(value, tuple):
        if len(set(value)) != 1:
            msg = (
                f'{handle!r} {TIFF.FIELDS.name(code)} differs between '
                f'samples {value}'
            )
            raise TiffFileError(msg)
        value = value[0]
    return int(value)


class LazyTiffImage:
    """Read or write regions of channel-typed image in TIFF file.

    LazyTiffImage instances own exactly one :py:class:`TiffHandle`, which
    is flushed and closed by :py:meth:`LazyTiffImage.close`, on exit of the
    context manager, or when the instance is garbage collected.
    All operations raise :py:class:`InvalidReferenceError` after the image
    was closed.

    LazyTiffImage instances are not thread-safe.

    Parameters:
        file:
            File name or seekable binary stream.
        mode:
            'r' to read existing file, 'w' to create new file.
        channel:
            Channel type of image. Required for mode 'w'.
            For mode 'r', the BitsPerSample of the file must match the
            channel type. By default, the channel type is determined from
            the SampleFormat and BitsPerSample tags.
        size:
            Width and height of image. Required for mode 'w'.
        samplesperpixel:
            Number of samples per pixel. Only applies to mode 'w'.
        hasalpha:
            Last sample is associated alpha. Only applies to mode 'w'.
        bigtiff:
            Write 64-bit BigTIFF format. Only applies to mode 'w'.
        byteorder:
            Byte order of written file. Only applies to mode 'w'.
        compression:
            Compression scheme of strips. Only applies to mode 'w'.
        predictor:
            Predictor applied before compression. Only applies to mode 'w'.

    Raises:
        OpenError:
            File cannot be opened or is not a TIFF file.
        TiffFileError:
            Image structure is not supported.
        IncorrectChannelSizeError:
            BitsPerSample of file does not match channel type.
        UnsupportedTypeError:
            Channel type is not supported.

    """

    __slots__ = ('_attributes', '_channel', '_handle', '_mode', '_name')

    _handle: TiffHandle | None
    _attributes: TiffAttributes
    _channel: CHANNEL
    _mode: Literal['r', 'w']
    _name: str

    def __init__(
        self,
        file: str | os.PathLike[Any] | IO[bytes],
        /,
        mode: Literal['r', 'w'] = 'r',
        channel: ChannelLike | None = None,
        *,
        size: Size | tuple[int, int] | None = None,
        samplesperpixel: int = 1,
        hasalpha: bool = False,
        bigtiff: bool = False,
        byteorder: Literal['<', '>', '=', '|'] | None = None,
        compression: COMPRESSION | int | str | None = None,
        predictor: PREDICTOR | int | str | None = None,
    ) -> None:
        self._handle = None
        if mode not in {'r', 'w'}:
            msg = f'invalid mode {mode!r}'
            raise ValueError(msg)
        self._mode = mode
        self._name = (
            os.path.basename(os.fspath(file))
            if isinstance(file, (str, os.PathLike))
            else str(getattr(file, 'name', 'Unnamed binary stream'))
        )
        if mode == 'r':
            self._open(file, channel)
            return
        if size is None or channel is None:
            msg = "mode 'w' requires size and channel"
            raise ValueError(msg)
        if not isinstance(size, Size):
            size = Size(*size)
        self._create(
            file,
            size,
            samplesperpixel,
            channel,
            hasalpha,
            bigtiff,
            byteorder=byteorder,
            compression=compression,
            predictor=predictor,
        )

    @classmethod
    def open(
        cls,
        file: str | os.PathLike[Any] | IO[bytes],
        /,
        channel: ChannelLike | None = None,
    ) -> Self:
        """Return image opened for reading.

        Parameters:
            file: File name or seekable binary stream.
            channel: Channel type of image.

        """
        return cls(file, 'r', channel)

    @classmethod
    def create(
        cls,
        file: str | os.PathLike[Any] | IO[bytes],
        /,
        size: Size | tuple[int, int],
        samplesperpixel: int,
        channel: ChannelLike,
        hasalpha: bool = False,  # noqa: FBT001, FBT002
        bigtiff: bool = False,  # noqa: FBT001, FBT002
        *,
        byteorder: Literal['<', '>', '=', '|'] | None = None,
        compression: COMPRESSION | int | str | None = None,
        predictor: PREDICTOR | int | str | None = None,
    ) -> Self:
        """Return image created for writing.

        Existing files are overwritten.

        Parameters:
            file: File name or writable seekable binary stream.
            size: Width and height of image.
            samplesperpixel: Number of samples per pixel.
            channel: Channel type of image.
            hasalpha: Last sample is associated alpha.
            bigtiff: Write 64-bit BigTIFF format.
            byteorder: Byte order of file. The default is native.
            compression: Compression scheme of strips.
            predictor: Predictor applied before compression.

        """
        return cls(
            file,
            'w',
            channel,
            size=size,
            samplesperpixel=samplesperpixel,
            hasalpha=hasalpha,
            bigtiff=bigtiff,
            byteorder=byteorder,
            compression=compression,
            predictor=predictor,
        )

    def _open(
        self,
        file: str | os.PathLike[Any] | IO[bytes],
        channel: ChannelLike | None,
        /,
    ) -> None:
        try:
            handle = TiffHandle(file, 'r')
        except (TiffError, OSError) as exc:
            msg = f'failed to open {self._name!r} for reading'
            raise OpenError(msg) from exc
        self._handle = handle
        try:
            self._register_fields(handle)
            attributes = TiffAttributes.read(handle)
            if channel is None:
                channel = CHANNEL.fromformat(
                    attributes.sampleformat, attributes.bitspersample
                )
            else:
                channel = CHANNEL.get(channel)
                if attributes.bitspersample != channel.bitspersample:
                    raise IncorrectChannelSizeError(
                        attributes.bitspersample, channel.itemsize
                    )
                sampleformat = attributes.sampleformat
                if sampleformat == SAMPLEFORMAT.VOID:
                    sampleformat = SAMPLEFORMAT.UINT
                if sampleformat != channel.sampleformat:
                    logger().warning(
                        f'{self!r} reading SampleFormat '
                        f'{enumstr(attributes.sampleformat)} as {channel!r}'
                    )
        except BaseException:
            self.close()
            raise
        self._attributes = attributes
        self._channel = channel
        logger().debug(f'{self!r} opened {channel!r} image for reading')

    def _create(
        self,
        file: str | os.PathLike[Any] | IO[bytes],
        size: Size,
        samplesperpixel: int,
        channel: ChannelLike,
        hasalpha: bool,  # noqa: FBT001
        bigtiff: bool,  # noqa: FBT001
        /,
        *,
        byteorder: Literal['<', '>', '=', '|'] | None,
        compression: COMPRESSION | int | str | None,
        predictor: PREDICTOR | int | str | None,
    ) -> None:
        channel = CHANNEL.get(channel)
        # fail before file is created if codecs are not available
        if compression is not None:
            TIFF.COMPRESSORS[enumarg(COMPRESSION, compression)]
        if predictor is not None:
            TIFF.PREDICTORS[enumarg(PREDICTOR, predictor)]
        try:
            handle = TiffHandle(
                file, 'w', bigtiff=bigtiff, byteorder=byteorder
            )
        except (TiffError, OSError) as exc:
            msg = f'failed to open {self._name!r} for writing'
            raise OpenError(msg) from exc
        self._handle = handle
        try:
            self._register_fields(handle)
            attributes = TiffAttributes.write(
                handle,
                size,
                samplesperpixel,
                channel,
                hasalpha,
                compression=compression,
                predictor=predictor,
            )
        except BaseException:
            self.close()
            raise
        self._attributes = attributes
        self._channel = channel
        logger().debug(f'{self!r} created {channel!r} image for writing')

    def _register_fields(self, handle: TiffHandle, /) -> None:
        """Register additional tag definitions with file handle."""

    def _checkhandle(self) -> TiffHandle:
        """Return file handle or raise InvalidReferenceError if closed."""
        if self._handle is None:
            msg = f'{self!r} is closed'
            raise InvalidReferenceError(msg)
        return self._handle

    def read(self, area: Area | None = None, /) -> NDArray[Any]:
        """Return region of image as NumPy array.

        Parameters:
            area: Region of image to read. The default is the whole image.

        Returns:
            Image data of shape (height, width, samplesperpixel) and
            channel dtype.

        Raises:
            WrongModeError: Image is not opened for reading.
            AreaOutOfBoundsError: Region exceeds image.
            ScanlineReadError: Scanline could not be read.

        """
        handle = self._checkhandle()
        if self._mode != 'r':
            msg = f'{self!r} not opened for reading'
            raise WrongModeError(msg)
        size = self._attributes.size
        if area is None:
            area = Area.full(size)
        elif not area.within(size):
            msg = (
                f'{area} exceeds image of size {size.width}x{size.height}'
            )
            raise AreaOutOfBoundsError(msg)

        samples = self._attributes.samplesperpixel
        width = area.size.width
        dtype = self._channel.dtype
        result = numpy.empty((area.size.height, width, samples), dtype)
        out = result.reshape(-1)
        scanline = numpy.empty((size.width, samples), dtype)
        columns = slice(area.origin.x, area.right)
        rowsize = width * samples
        for line in range(area.size.height):
            row = area.origin.y + line
            try:
                handle.read_scanline(scanline, row)
            except _CODEC_ERRORS as exc:
                msg = f'{self!r} failed to read scanline {row}'
                raise ScanlineReadError(msg) from exc
            offset = line * rowsize
            out[offset : offset + rowsize] = scanline[columns].reshape(-1)
        return result

    def write(self, area: Area, buffer: ArrayLike, /) -> None:
        """Write region of image from buffer.

        Only full-width regions can be written. Regions must be written in
        increasing row order.

        Parameters:
            area:
                Region of image to write.
            buffer:
                Image data of channel dtype, containing at least
                ``height * width * samplesperpixel`` items of region
                in row-major order.

        Raises:
            WrongModeError: Image is not opened for writing.
            AreaOutOfBoundsError: Region exceeds image.
            PartialScanlineError: Region is not full-width.
            NoBaseAddressError: Buffer is empty.
            UnsupportedTypeError: Buffer does not match channel type.
            InternalInconsistencyError:
                Scanline size of file does not match image attributes.
            ScanlineWriteError: Scanline could not be written.

        """
        handle = self._checkhandle()
        if self._mode != 'w':
            msg = f'{self!r} not opened for writing'
            raise WrongModeError(msg)
        size = self._attributes.size
        if not area.within(size):
            msg = (
                f'{area} exceeds image of size {size.width}x{size.height}'
            )
            raise AreaOutOfBoundsError(msg)
        if area.origin.x != 0 or area.size.width != size.width:
            msg = 'writing partial scanlines is not supported'
            raise PartialScanlineError(msg)

        data = numpy.asarray(buffer)
        if data.size == 0:
            msg = 'buffer is empty'
            raise NoBaseAddressError(msg)
        samples = self._attributes.samplesperpixel
        count = area.size.height * area.size.width * samples
        if data.size < count:
            msg = f'buffer of {data.size} items too small for {count} items'
            raise ValueError(msg)
        if CHANNEL.get(data.dtype) != self._channel:
            msg = f'buffer of {data.dtype} does not match {self._channel!r}'
            raise UnsupportedTypeError(msg)

        expected = size.width * samples * self._channel.itemsize
        try:
            scanlinesize = handle.scanline_size()
        except TiffFileError as exc:
            msg = f'{self!r} scanline size not available'
            raise InternalInconsistencyError(msg) from exc
        if scanlinesize != expected:
            msg = (
                f'{self!r} scanline size {scanlinesize} does not match '
                f'{expected} bytes expected from image attributes'
            )
            raise InternalInconsistencyError(msg)

        rows = data.reshape(-1)[:count].reshape(
            area.size.height, size.width * samples
        )
        for line in range(area.size.height):
            row = area.origin.y + line
            try:
                handle.write_scanline(rows[line], row)
            except _CODEC_ERRORS as exc:
                msg = f'{self!r} failed to write scanline {row}'
                raise ScanlineWriteError(msg) from exc

    def flush(self) -> None:
        """Write pending data to file.

        Raises:
            FlushError: Pending data could not be written.

        """
        handle = self._checkhandle()
        try:
            handle.flush()
        except _CODEC_ERRORS as exc:
            msg = f'{self!r} failed to flush'
            raise FlushError(msg) from exc

    def close(self) -> None:
        """Flush pending data and close file.

        Closing a closed image has no effect.

        Raises:
            FlushError: Pending data could not be written.

        """
        handle = getattr(self, '_handle', None)
        if handle is None:
            return
        self._handle = None
        try:
            handle.close()
        except _CODEC_ERRORS as exc:
            msg = f'{self!r} failed to flush'
            raise FlushError(msg) from exc

    @property
    def attributes(self) -> TiffAttributes:
        """Standard image attributes."""
        self._checkhandle()
        return self._attributes

    @property
    def size(self) -> Size:
        """Width and height of image."""
        self._checkhandle()
        return self._attributes.size

    @property
    def hasalpha(self) -> bool:
        """Image has four samples per pixel.

        Approximates whether the image has an alpha channel.

        """
        self._checkhandle()
        return self._attributes.hasalpha

    @property
    def channelcount(self) -> int:
        """Number of samples per pixel."""
        self._checkhandle()
        return self._attributes.samplesperpixel

    @property
    def channel(self) -> CHANNEL:
        """Channel type of image."""
        return self._channel

    @property
    def mode(self) -> Literal['r', 'w']:
        """Mode image was opened with."""
        return self._mode

    @property
    def path(self) -> str:
        """Absolute path of file."""
        return self._checkhandle().path

    @property
    def closed(self) -> bool:
        """File handle was released."""
        return getattr(self, '_handle', None) is None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        # exceptions cannot propagate from finalizer
        with contextlib.suppress(Exception):
            self.close()

    def __repr__(self) -> str:
        name = getattr(self, '_name', '')
        return f'<lazytiff.{type(self).__name__} {snipstr(name, 32)!r}>'


from .geotiff import (  # noqa: E402
    DirectoryEntry,
    GeoKeyDirectory,
    GeoTiffImage,
)


class _TIFF:
    """Delay-loaded constants, accessible via :py:attr:`TIFF` instance."""

    @cached_property
    def CLASSIC_LE(self) -> TiffFormat:
        """32-bit little-endian TIFF format."""
        return TiffFormat(
            version=42,
            byteorder='<',
            offsetsize=4,
            offsetformat='<I',
            tagnosize=2,
            tagnoformat='<H',
            tagsize=12,
            tagformat1='<HH',
            tagformat2='<I4s',
            tagoffsetthreshold=4,
        )

    @cached_property
    def CLASSIC_BE(self) -> TiffFormat:
        """32-bit big-endian TIFF format."""
        return TiffFormat(
            version=42,
            byteorder='>',
            offsetsize=4,
            offsetformat='>I',
            tagnosize=2,
            tagnoformat='>H',
            tagsize=12,
            tagformat1='>HH',
            tagformat2='>I4s',
            tagoffsetthreshold=4,
        )

    @cached_property
    def BIG_LE(self) -> TiffFormat:
        """64-bit little-endian TIFF format."""
        return TiffFormat(
            version=43,
            byteorder='<',
            offsetsize=8,
            offsetformat='<Q',
            tagnosize=8,
            tagnoformat='<Q',
            tagsize=20,
            tagformat1='<HH',
            tagformat2='<Q8s',
            tagoffsetthreshold=8,
        )

    @cached_property
    def BIG_BE(self) -> TiffFormat:
        """64-bit big-endian TIFF format."""
        return TiffFormat(
            version=43,
            byteorder='>',
            offsetsize=8,
            offsetformat='>Q',
            tagnosize=8,
            tagnoformat='>Q',
            tagsize=20,
            tagformat1='>HH',
            tagformat2='>Q8s',
            tagoffsetthreshold=8,
        )

    @cached_property
    def FIELDS(self) -> TiffFieldRegistry:
        """Registry of baseline TIFF fields that can be written."""
        return TiffFieldRegistry(
            (
                TiffFieldInfo(254, 'NewSubfileType', DATATYPE.LONG, 1),
                TiffFieldInfo(256, 'ImageWidth', DATATYPE.LONG, 1),
                TiffFieldInfo(257, 'ImageLength', DATATYPE.LONG, 1),
                TiffFieldInfo(258, 'BitsPerSample', DATATYPE.SHORT),
                TiffFieldInfo(259, 'Compression', DATATYPE.SHORT, 1),
                TiffFieldInfo(
                    262, 'PhotometricInterpretation', DATATYPE.SHORT, 1
                ),
                TiffFieldInfo(270, 'ImageDescription', DATATYPE.ASCII),
                TiffFieldInfo(273, 'StripOffsets', DATATYPE.LONG),
                TiffFieldInfo(274, 'Orientation', DATATYPE.SHORT, 1),
                TiffFieldInfo(277, 'SamplesPerPixel', DATATYPE.SHORT, 1),
                TiffFieldInfo(278, 'RowsPerStrip', DATATYPE.LONG, 1),
                TiffFieldInfo(279, 'StripByteCounts', DATATYPE.LONG),
                TiffFieldInfo(284, 'PlanarConfiguration', DATATYPE.SHORT, 1),
                TiffFieldInfo(305, 'Software', DATATYPE.ASCII),
                TiffFieldInfo(306, 'DateTime', DATATYPE.ASCII, 20),
                TiffFieldInfo(317, 'Predictor', DATATYPE.SHORT, 1),
                TiffFieldInfo(338, 'ExtraSamples', DATATYPE.SHORT),
                TiffFieldInfo(339, 'SampleFormat', DATATYPE.SHORT),
            )
        )

    @cached_property
    def TAG_DEFAULTS(self) -> dict[int, Any]:
        """Default values of TIFF tags."""
        return {
            254: 0,  # NewSubfileType
            258: 1,  # BitsPerSample
            259: 1,  # Compression
            274: 1,  # Orientation
            277: 1,  # SamplesPerPixel
            278: 2**32 - 1,  # RowsPerStrip
            284: 1,  # PlanarConfiguration
            317: 1,  # Predictor
            338: (),  # ExtraSamples
            339: 1,  # SampleFormat
        }

    @cached_property
    def TAG_TUPLE(self) -> frozenset[int]:
        # tags whose values must be stored as tuples
        return frozenset(
            (
                273,
                279,
                338,
                33550,
                33922,
                34264,
                34735,
                34736,
            )
        )

    @cached_property
    def TAG_STRUCTURE(self) -> frozenset[int]:
        # tags defining the layout of strips
        return frozenset((256, 257, 258, 259, 277, 278, 284, 317, 339))

    @cached_property
    def DATA_FORMATS(self) -> dict[int, str]:
        """Map :py:class:`DATATYPE` to Python struct formats."""
        return {
            1: '1B',
            2: '1s',
            3: '1H',
            4: '1I',
            5: '2I',
            6: '1b',
            7: '1B',
            8: '1h',
            9: '1i',
            10: '2i',
            11: '1f',
            12: '1d',
            13: '1I',
            # 14: '',
            # 15: '',
            16: '1Q',
            17: '1q',
            18: '1Q',
        }

    @cached_property
    def SAMPLE_DTYPES(self) -> dict[tuple[int, int], str]:
        """Map :py:class:`SAMPLEFORMAT` and BitsPerSample to NumPy dtype."""
        return {
            # UINT
            (1, 8): 'B',
            (1, 16): 'H',
            (1, 32): 'I',
            (1, 64): 'Q',
            # INT
            (2, 8): 'b',
            (2, 16): 'h',
            (2, 32): 'i',
            (2, 64): 'q',
            # IEEEFP
            (3, 16): 'e',
            (3, 32): 'f',
            (3, 64): 'd',
            # VOID : treat as UINT
            (4, 8): 'B',
            (4, 16): 'H',
            (4, 32): 'I',
            (4, 64): 'Q',
        }

    @cached_property
    def PREDICTORS(self) -> Mapping[int, Callable[..., Any]]:
        """Map :py:class:`PREDICTOR` value to encode function."""
        return PredictorCodec(encode=True)

    @cached_property
    def UNPREDICTORS(self) -> Mapping[int, Callable[..., Any]]:
        """Map :py:class:`PREDICTOR` value to decode function."""
        return PredictorCodec(encode=False)

    @cached_property
    def COMPRESSORS(self) -> Mapping[int, Callable[..., Any]]:
        """Map :py:class:`COMPRESSION` value to compress function."""
        return CompressionCodec(encode=True)

    @cached_property
    def DECOMPRESSORS(self) -> Mapping[int, Callable[..., Any]]:
        """Map :py:class:`COMPRESSION` value to decompress function."""
        return CompressionCodec(encode=False)


TIFF = _TIFF()
