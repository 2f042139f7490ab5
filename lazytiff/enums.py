# enums.py

"""TIFF and GeoTIFF enumeration types."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

import numpy

if TYPE_CHECKING:
    from typing import Any

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
]


class DATATYPE(enum.IntEnum):
    """TIFF tag data types."""

    BYTE = 1
    """8-bit unsigned integer."""
    ASCII = 2
    """8-bit byte with last byte null, containing 7-bit ASCII code."""
    SHORT = 3
    """16-bit unsigned integer."""
    LONG = 4
    """32-bit unsigned integer."""
    RATIONAL = 5
    """Two 32-bit unsigned integers, numerator and denominator of fraction."""
    SBYTE = 6
    """8-bit signed integer."""
    UNDEFINED = 7
    """8-bit byte that may contain anything."""
    SSHORT = 8
    """16-bit signed integer."""
    SLONG = 9
    """32-bit signed integer."""
    SRATIONAL = 10
    """Two 32-bit signed integers, numerator and denominator of fraction."""
    FLOAT = 11
    """Single precision (4-byte) IEEE format."""
    DOUBLE = 12
    """Double precision (8-byte) IEEE format."""
    IFD = 13
    """Unsigned 4 byte IFD offset."""
    LONG8 = 16
    """Unsigned 8 byte integer (BigTIFF)."""
    SLONG8 = 17
    """Signed 8 byte integer (BigTIFF)."""
    IFD8 = 18
    """Unsigned 8 byte IFD offset (BigTIFF)."""


class COMPRESSION(enum.IntEnum):
    """Values of Compression tag.

    Only schemes that operate on whole strips of raw samples are listed.

    """

    NONE = 1
    """No compression (default)."""
    LZW = 5
    """Lempel-Ziv-Welch."""
    ADOBE_DEFLATE = 8
    """Deflate, aka ZLIB."""
    PACKBITS = 32773
    """PackBits, aka Macintosh RLE."""
    DEFLATE = 32946
    LZMA = 34925
    """Lempel-Ziv-Markov chain Algorithm."""
    ZSTD = 50000
    """Zstandard."""

    def __bool__(self) -> bool:
        return self > 1


class PREDICTOR(enum.IntEnum):
    """Values of Predictor tag.

    A mathematical operator that is applied to the image data before
    compression.

    """

    NONE = 1
    """No prediction scheme used (default)."""
    HORIZONTAL = 2
    """Horizontal differencing."""
    FLOATINGPOINT = 3
    """Floating-point horizontal differencing."""

    def __bool__(self) -> bool:
        return self > 1


class PHOTOMETRIC(enum.IntEnum):
    """Values of PhotometricInterpretation tag.

    The color space of the image.

    """

    MINISWHITE = 0
    """For bilevel and grayscale images, 0 is imaged as white."""
    MINISBLACK = 1
    """For bilevel and grayscale images, 0 is imaged as black."""
    RGB = 2
    """Chroma components are Red, Green, Blue."""
    PALETTE = 3
    """Single chroma component is index into colormap."""
    MASK = 4
    SEPARATED = 5
    """Chroma components are Cyan, Magenta, Yellow, and Key (black)."""
    YCBCR = 6
    """Chroma components are Luma, blue-difference, and red-difference."""
    CIELAB = 8
    ICCLAB = 9
    ITULAB = 10


class ORIENTATION(enum.IntEnum):
    """Values of Orientation tag.

    The orientation of the image with respect to the rows and columns.

    """

    TOPLEFT = 1  # default
    TOPRIGHT = 2
    BOTRIGHT = 3
    BOTLEFT = 4
    LEFTTOP = 5
    RIGHTTOP = 6
    RIGHTBOT = 7
    LEFTBOT = 8


class PLANARCONFIG(enum.IntEnum):
    """Values of PlanarConfiguration tag.

    Specifies how components of each pixel are stored.

    """

    CONTIG = 1
    """Chunky, component values are stored contiguously (default)."""
    SEPARATE = 2
    """Planar, component values are stored in separate planes."""


class EXTRASAMPLE(enum.IntEnum):
    """Values of ExtraSamples tag.

    Interpretation of extra components in a pixel.

    """

    UNSPECIFIED = 0
    """Unspecified data."""
    ASSOCALPHA = 1
    """Associated alpha data with premultiplied color."""
    UNASSALPHA = 2
    """Unassociated alpha data."""


class SAMPLEFORMAT(enum.IntEnum):
    """Values of SampleFormat tag.

    Data type of samples in a pixel.

    """

    UINT = 1
    """Unsigned integer."""
    INT = 2
    """Signed integer."""
    IEEEFP = 3
    """IEEE floating-point"""
    VOID = 4
    """Undefined."""


class CHANNEL(enum.Enum):
    """Channel element types of images.

    The value of each member is the NumPy type character of one sample.
    The type fixes the BitsPerSample and SampleFormat tags of written files.

    """

    UINT8 = 'B'
    UINT16 = 'H'
    UINT32 = 'I'
    UINT64 = 'Q'
    INT8 = 'b'
    INT16 = 'h'
    INT32 = 'i'
    INT64 = 'q'
    FLOAT32 = 'f'
    FLOAT64 = 'd'

    @property
    def dtype(self) -> numpy.dtype[Any]:
        """NumPy data type of channel in native byte order."""
        return numpy.dtype(self.value)

    @property
    def itemsize(self) -> int:
        """Size of one sample in bytes."""
        return self.dtype.itemsize

    @property
    def bitspersample(self) -> int:
        """Value of BitsPerSample tag."""
        return self.dtype.itemsize * 8

    @property
    def sampleformat(self) -> SAMPLEFORMAT:
        """Value of SampleFormat tag."""
        kind = self.dtype.kind
        if kind == 'f':
            return SAMPLEFORMAT.IEEEFP
        if kind == 'i':
            return SAMPLEFORMAT.INT
        return SAMPLEFORMAT.UINT

    @classmethod
    def get(cls, value: Any, /) -> CHANNEL:
        """Return channel type from CHANNEL, NumPy dtype, or dtype name.

        Raises:
            UnsupportedTypeError: Value is not a supported channel type.

        """
        from .utils import UnsupportedTypeError

        if isinstance(value, CHANNEL):
            return value
        if isinstance(value, str) and value.upper() in cls.__members__:
            return cls[value.upper()]
        try:
            dtype = numpy.dtype(value)
        except TypeError as exc:
            msg = f'{value!r} is not a supported channel type'
            raise UnsupportedTypeError(msg) from exc
        try:
            return cls(dtype.char)
        except ValueError:
            pass
        # 'l' and 'L' alias 'q' or 'i' depending on platform
        for channel in cls:
            if channel.dtype == dtype.newbyteorder('='):
                return channel
        msg = f'{dtype} is not a supported channel type'
        raise UnsupportedTypeError(msg)

    @classmethod
    def fromformat(cls, sampleformat: int, bitspersample: int, /) -> CHANNEL:
        """Return channel type matching SampleFormat and BitsPerSample.

        Raises:
            UnsupportedTypeError: No channel type matches.

        """
        from .utils import UnsupportedTypeError

        if sampleformat == SAMPLEFORMAT.VOID:
            sampleformat = SAMPLEFORMAT.UINT
        for channel in cls:
            if (
                channel.sampleformat == sampleformat
                and channel.bitspersample == bitspersample
            ):
                return channel
        msg = (
            f'no channel type for SampleFormat {sampleformat} '
            f'and BitsPerSample {bitspersample}'
        )
        raise UnsupportedTypeError(msg)


class GEOTIFFTAG(enum.IntEnum):
    """Codes of private GeoTIFF tags."""

    MODELPIXELSCALE = 33550
    """Size of raster pixel in model space units (3 doubles)."""
    MODELTIEPOINT = 33922
    """Raster to model tiepoint pairs (6 doubles per pair)."""
    MODELTRANSFORMATION = 34264
    """Affine raster to model transformation matrix (16 doubles)."""
    GEOKEYDIRECTORY = 34735
    """Directory of GeoKeys (SHORT array)."""
    GEODOUBLEPARAMS = 34736
    """Double valued GeoKeys referenced from the directory."""
    GEOASCIIPARAMS = 34737
    """ASCII valued GeoKeys referenced from the directory, '|' terminated."""


class GEOKEY(enum.IntEnum):
    """GeoTIFF GeoKey identifiers.

    As enumerated by OGC GeoTIFF 1.1 (19-008r4).

    """

    # GeoTIFF configuration keys
    GTMODELTYPE = 1024
    GTRASTERTYPE = 1025
    GTCITATION = 1026
    # geodetic CRS parameter keys
    GEOGRAPHICTYPE = 2048
    GEOGCITATION = 2049
    GEOGGEODETICDATUM = 2050
    GEOGPRIMEMERIDIAN = 2051
    GEOGLINEARUNITS = 2052
    GEOGLINEARUNITSIZE = 2053
    GEOGANGULARUNITS = 2054
    GEOGANGULARUNITSIZE = 2055
    GEOGELLIPSOID = 2056
    GEOGSEMIMAJORAXIS = 2057
    GEOGSEMIMINORAXIS = 2058
    GEOGINVFLATTENING = 2059
    GEOGAZIMUTHUNITS = 2060
    GEOGPRIMEMERIDIANLONG = 2061
    GEOGTOWGS84 = 2062
    # projected CRS parameter keys
    PROJECTEDCSTYPE = 3072
    PCSCITATION = 3073
    PROJECTION = 3074
    PROJCOORDTRANS = 3075
    PROJLINEARUNITS = 3076
    PROJLINEARUNITSIZE = 3077
    PROJSTDPARALLEL1 = 3078
    PROJSTDPARALLEL2 = 3079
    PROJNATORIGINLONG = 3080
    PROJNATORIGINLAT = 3081
    PROJFALSEEASTING = 3082
    PROJFALSENORTHING = 3083
    PROJFALSEORIGINLONG = 3084
    PROJFALSEORIGINLAT = 3085
    PROJFALSEORIGINEASTING = 3086
    PROJFALSEORIGINNORTHING = 3087
    PROJCENTERLONG = 3088
    PROJCENTERLAT = 3089
    PROJCENTEREASTING = 3090
    PROJCENTERNORTHING = 3091
    PROJSCALEATNATORIGIN = 3092
    PROJSCALEATCENTER = 3093
    PROJAZIMUTHANGLE = 3094
    PROJSTRAIGHTVERTPOLELONG = 3095
    PROJRECTIFIEDGRIDANGLE = 3096
    # vertical CRS parameter keys
    VERTICALCSTYPE = 4096
    VERTICALCITATION = 4097
    VERTICALDATUM = 4098
    VERTICALUNITS = 4099
    # GeoTIFF 1.1
    COORDINATEEPOCH = 5120
