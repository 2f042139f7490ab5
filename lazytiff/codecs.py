# codecs.py

"""TIFF format, compression, and predictor codec classes."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, final

from .enums import COMPRESSION

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any, Literal

__all__ = [
    'CompressionCodec',
    'PredictorCodec',
    'TiffFormat',
]


def _identityfunc(arg: Any, /, *args: Any, **kwargs: Any) -> Any:
    """Single argument identity function."""
    return arg


@final
class TiffFormat:
    """TIFF format properties."""

    __slots__ = (
        '_hash',
        'byteorder',
        'offsetformat',
        'offsetsize',
        'tagformat1',
        'tagformat2',
        'tagnoformat',
        'tagnosize',
        'tagoffsetthreshold',
        'tagsize',
        'version',
    )

    version: int
    """Version of TIFF header."""

    byteorder: Literal['>', '<']
    """Byteorder of TIFF header."""

    offsetsize: int
    """Size of offsets."""

    offsetformat: str
    """Struct format for offset values."""

    tagnosize: int
    """Size of `tagnoformat`."""

    tagnoformat: str
    """Struct format for number of TIFF tags."""

    tagsize: int
    """Size of `tagformat1` and `tagformat2`."""

    tagformat1: str
    """Struct format for code and dtype of TIFF tag."""

    tagformat2: str
    """Struct format for count and value of TIFF tag."""

    tagoffsetthreshold: int
    """Size of inline tag values."""

    _hash: int

    def __init__(
        self,
        version: int,
        byteorder: Literal['>', '<'],
        offsetsize: int,
        offsetformat: str,
        tagnosize: int,
        tagnoformat: str,
        tagsize: int,
        tagformat1: str,
        tagformat2: str,
        tagoffsetthreshold: int,
    ) -> None:
        self.version = version
        self.byteorder = byteorder
        self.offsetsize = offsetsize
        self.offsetformat = offsetformat
        self.tagnosize = tagnosize
        self.tagnoformat = tagnoformat
        self.tagsize = tagsize
        self.tagformat1 = tagformat1
        self.tagformat2 = tagformat2
        self.tagoffsetthreshold = tagoffsetthreshold
        self._hash = hash((version, byteorder, offsetsize))

    @property
    def is_bigtiff(self) -> bool:
        """Format is 64-bit BigTIFF."""
        return self.version == 43

    @property
    def headersize(self) -> int:
        """Size of file header up to and including first IFD offset."""
        return 16 if self.version == 43 else 8

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, TiffFormat)
            and self.version == other.version
            and self.byteorder == other.byteorder
        )

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        bits = '32' if self.version == 42 else '64'
        endian = 'little' if self.byteorder == '<' else 'big'
        return f'<lazytiff.TiffFormat {bits}-bit {endian}-endian>'


class CompressionCodec(Mapping[int, Callable[..., object]]):
    """Map :py:class:`COMPRESSION` value to encode or decode function.

    Codecs other than NONE are provided by the `imagecodecs` package,
    which is imported on first use.

    Parameters:
        encode: If *True*, return encode functions, else decode functions.

    """

    _codecs: dict[int, Callable[..., Any]]
    _encode: bool

    def __init__(self, /, *, encode: bool) -> None:
        self._codecs = {1: _identityfunc}
        self._encode = bool(encode)

    def __getitem__(self, key: int, /) -> Callable[..., Any]:
        if key in self._codecs:
            return self._codecs[key]
        codec: Callable[..., Any]
        try:
            import imagecodecs

            match key:
                case 5:
                    if self._encode:
                        codec = imagecodecs.lzw_encode
                    else:
                        codec = imagecodecs.lzw_decode
                case 8 | 32946:
                    if self._encode:
                        codec = imagecodecs.zlib_encode
                    else:
                        codec = imagecodecs.zlib_decode
                case 32773:
                    if self._encode:
                        codec = imagecodecs.packbits_encode
                    else:
                        codec = imagecodecs.packbits_decode
                case 34925:
                    if self._encode:
                        codec = imagecodecs.lzma_encode
                    else:
                        codec = imagecodecs.lzma_decode
                case 50000:
                    if self._encode:
                        codec = imagecodecs.zstd_encode
                    else:
                        codec = imagecodecs.zstd_decode
                case _:
                    try:
                        msg = f'{COMPRESSION(key)!r} not supported'
                    except ValueError:
                        msg = f'{key} is not a known COMPRESSION'
                    raise KeyError(msg)
        except (AttributeError, ImportError) as exc:
            msg = f"COMPRESSION {key} requires the 'imagecodecs' package"
            raise KeyError(msg) from exc
        self._codecs[key] = codec
        return codec

    def __contains__(self, key: Any, /) -> bool:
        try:
            self[key]
        except KeyError:
            return False
        return True

    def __iter__(self) -> Iterator[int]:
        yield 1  # dummy

    def __len__(self) -> int:
        return 1  # dummy


@final
class PredictorCodec(Mapping[int, Callable[..., object]]):
    """Map :py:class:`PREDICTOR` value to encode or decode function.

    Parameters:
        encode: If *True*, return encode functions, else decode functions.

    """

    _codecs: dict[int, Callable[..., Any]]
    _encode: bool

    def __init__(self, /, *, encode: bool) -> None:
        self._codecs = {1: _identityfunc}
        self._encode = bool(encode)

    def __getitem__(self, key: int, /) -> Callable[..., Any]:
        if key in self._codecs:
            return self._codecs[key]
        codec: Callable[..., Any]
        try:
            import imagecodecs

            match key:
                case 2:
                    if self._encode:
                        codec = imagecodecs.delta_encode
                    else:
                        codec = imagecodecs.delta_decode
                case 3:
                    if self._encode:
                        codec = imagecodecs.floatpred_encode
                    else:
                        codec = imagecodecs.floatpred_decode
                case _:
                    msg = f'{key} is not a known PREDICTOR'
                    raise KeyError(msg)
        except (AttributeError, ImportError) as exc:
            msg = f"PREDICTOR {key} requires the 'imagecodecs' package"
            raise KeyError(msg) from exc
        self._codecs[key] = codec
        return codec

    def __contains__(self, key: Any, /) -> bool:
        try:
            self[key]
        except KeyError:
            return False
        return True

    def __iter__(self) -> Iterator[int]:
        yield 1  # dummy

    def __len__(self) -> int:
        return 1  # dummy
