"""Tests for scanline access to TIFF strips."""

from __future__ import annotations

import io
import logging
import sys

import numpy
import pytest

from lazytiff import (
    CHANNEL,
    COMPRESSION,
    DATATYPE,
    PREDICTOR,
    Area,
    LazyTiffImage,
    Size,
    TiffFieldInfo,
    TiffFieldRegistry,
    TiffFileError,
    TiffHandle,
    TiffTag,
    WrongModeError,
    imread,
    imwrite,
)
from lazytiff.codecs import CompressionCodec, PredictorCodec


def write_gray(file, rows, rowsperstrip=None, **kwargs):
    """Write uint8 rows with TiffHandle."""
    rows = numpy.asarray(rows, numpy.uint8)
    with TiffHandle(file, 'w', **kwargs) as handle:
        handle.set_field(256, rows.shape[1])
        handle.set_field(257, rows.shape[0])
        handle.set_field(258, 8)
        handle.set_field(262, 1)
        if rowsperstrip is not None:
            handle.set_field(278, rowsperstrip)
        for row, data in enumerate(rows):
            handle.write_scanline(data, row)


def read_gray(file):
    """Return all rows read with TiffHandle."""
    with TiffHandle(file) as handle:
        width = handle.get_field(256)
        rows = numpy.empty((handle.get_field(257), width), numpy.uint8)
        for row in range(rows.shape[0]):
            handle.read_scanline(rows[row], row)
    return rows


class TestTiffHandle:
    """Read and write fields and scanlines."""

    def test_fields(self, tmp_path):
        fname = tmp_path / 'fields.tif'
        with TiffHandle(fname, 'w') as handle:
            assert handle.mode == 'w'
            handle.set_field(256, 3)
            handle.set_field(257, 2)
            handle.set_field(258, (16, 16))
            handle.set_field(277, 2)
            handle.set_field(270, 'image description')
            assert handle.get_field(256) == 3
            assert handle.get_field(258) == (16, 16)
            assert handle.get_field(274) is None
            assert handle.get_field(274, 1) == 1
            assert handle.scanline_size() == 12
        with TiffHandle(fname) as handle:
            assert handle.mode == 'r'
            assert handle.get_field(256) == 3
            assert handle.get_field(257) == 2
            assert handle.get_field(258) == (16, 16)
            assert handle.get_field(270) == 'image description'
            assert handle.get_custom_ascii(270) == 'image description'
            assert handle.get_field(273) == (0,)
            assert handle.scanline_size() == 12
            assert 256 in handle
            assert 33550 not in handle

    def test_set_field_errors(self, tmp_path):
        with TiffHandle(tmp_path / 'errors.tif', 'w') as handle:
            with pytest.raises(KeyError):
                handle.set_field(65000, 1)
            with pytest.raises(ValueError, match='managed'):
                handle.set_field(273, (8,))
            with pytest.raises(ValueError, match='requires 1 values'):
                handle.set_field(256, (1, 2))
            with pytest.raises(ValueError, match='cannot pack'):
                handle.set_field(256, -1)
            with pytest.raises(ValueError, match='ASCII'):
                handle.set_field(270, 'Zürich')

    def test_set_field_read_mode(self, tmp_path):
        fname = tmp_path / 'readonly.tif'
        write_gray(fname, [[1, 2]])
        with TiffHandle(fname) as handle:
            with pytest.raises(WrongModeError):
                handle.set_field(270, 'text')
            with pytest.raises(WrongModeError):
                handle.write_scanline(numpy.zeros(2, numpy.uint8), 0)

    def test_read_write_mode(self, tmp_path):
        fname = tmp_path / 'writeonly.tif'
        with TiffHandle(fname, 'w') as handle:
            with pytest.raises(WrongModeError):
                handle.read_scanline(numpy.zeros(1, numpy.uint8), 0)

    def test_structure_locked(self, tmp_path):
        with TiffHandle(tmp_path / 'locked.tif', 'w') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 2)
            handle.set_field(258, 8)
            handle.write_scanline(numpy.zeros(2, numpy.uint8), 0)
            assert handle.get_field(278) == 1
            with pytest.raises(ValueError, match='after first scanline'):
                handle.set_field(256, 4)
            # descriptive fields can still be set
            handle.set_field(270, 'written after scanline')

    def test_rowsperstrip(self, tmp_path):
        fname = tmp_path / 'rowsperstrip.tif'
        data = numpy.arange(15, dtype=numpy.uint8).reshape(5, 3)
        write_gray(fname, data, rowsperstrip=2)
        with TiffHandle(fname) as handle:
            assert handle.get_field(278) == 2
            assert len(handle.get_field(273)) == 3
            assert handle.get_field(279) == (6, 6, 3)
        numpy.testing.assert_array_equal(read_gray(fname), data)

    def test_rowsperstrip_larger_than_image(self, tmp_path):
        fname = tmp_path / 'onestrip.tif'
        data = numpy.arange(6, dtype=numpy.uint8).reshape(3, 2)
        write_gray(fname, data, rowsperstrip=2**32 - 1)
        with TiffHandle(fname) as handle:
            assert handle.get_field(279) == (6,)
        numpy.testing.assert_array_equal(read_gray(fname), data)

    def test_random_access(self, tmp_path):
        fname = tmp_path / 'random.tif'
        data = numpy.arange(40, dtype=numpy.uint8).reshape(8, 5)
        write_gray(fname, data, rowsperstrip=3)
        out = numpy.empty(5, numpy.uint8)
        with TiffHandle(fname) as handle:
            for row in (7, 0, 4, 3, 3, 6, 1):
                handle.read_scanline(out, row)
                numpy.testing.assert_array_equal(out, data[row])

    def test_row_order(self, tmp_path):
        with TiffHandle(tmp_path / 'order.tif', 'w') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 4)
            handle.set_field(258, 8)
            row = numpy.zeros(2, numpy.uint8)
            handle.write_scanline(row, 1)
            with pytest.raises(IndexError, match='out of order'):
                handle.write_scanline(row, 1)
            with pytest.raises(IndexError, match='out of order'):
                handle.write_scanline(row, 0)
            with pytest.raises(IndexError, match='out of range'):
                handle.write_scanline(row, 4)
            handle.write_scanline(row, 3)

    def test_scanline_size_mismatch(self, tmp_path):
        with TiffHandle(tmp_path / 'size.tif', 'w') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 1)
            handle.set_field(258, 8)
            with pytest.raises(ValueError, match='scanline size'):
                handle.write_scanline(numpy.zeros(3, numpy.uint8), 0)

    def test_read_errors(self, tmp_path):
        fname = tmp_path / 'read.tif'
        write_gray(fname, [[1, 2], [3, 4]])
        with TiffHandle(fname) as handle:
            with pytest.raises(IndexError):
                handle.read_scanline(numpy.empty(2, numpy.uint8), 2)
            with pytest.raises(IndexError):
                handle.read_scanline(numpy.empty(2, numpy.uint8), 0, 1)
            with pytest.raises(ValueError, match='does not match'):
                handle.read_scanline(numpy.empty(3, numpy.uint8), 0)

    def test_missing_strips(self, tmp_path, caplog):
        fname = tmp_path / 'missing.tif'
        with TiffHandle(fname, 'w') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 3)
            handle.set_field(258, 8)
            handle.write_scanline(numpy.array([5, 6], numpy.uint8), 0)
        with caplog.at_level(logging.WARNING, logger='lazytiff'):
            rows = read_gray(fname)
        assert 'strip 1 is missing' in caplog.text
        numpy.testing.assert_array_equal(rows, [[5, 6], [0, 0], [0, 0]])

    def test_pending_strip_flushed(self, tmp_path):
        fname = tmp_path / 'pending.tif'
        with TiffHandle(fname, 'w') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 3)
            handle.set_field(258, 8)
            handle.set_field(278, 3)
            handle.write_scanline(numpy.array([1, 2], numpy.uint8), 0)
            handle.flush()
            numpy.testing.assert_array_equal(
                read_gray(fname), [[1, 2], [0, 0], [0, 0]]
            )
            handle.write_scanline(numpy.array([3, 4], numpy.uint8), 1)
            handle.write_scanline(numpy.array([5, 6], numpy.uint8), 2)
        numpy.testing.assert_array_equal(
            read_gray(fname), [[1, 2], [3, 4], [5, 6]]
        )

    def test_flush_rewrites_directory(self, tmp_path):
        fname = tmp_path / 'reflush.tif'
        with TiffHandle(fname, 'w') as handle:
            handle.set_field(270, 'first')
            handle.flush()
            with TiffHandle(fname) as reader:
                assert reader.get_field(270) == 'first'
            handle.set_field(270, 'second')
        with TiffHandle(fname) as reader:
            assert reader.get_field(270) == 'second'

    def test_flush_read_mode(self, tmp_path):
        fname = tmp_path / 'noflush.tif'
        write_gray(fname, [[1]])
        size = fname.stat().st_size
        with TiffHandle(fname) as handle:
            handle.flush()
        assert fname.stat().st_size == size

    def test_close(self, tmp_path):
        handle = TiffHandle(tmp_path / 'close.tif', 'w')
        assert not handle.closed
        handle.close()
        handle.close()
        assert handle.closed
        with pytest.raises(ValueError, match='closed'):
            handle.set_field(256, 1)

    @pytest.mark.parametrize('bigtiff', [False, True])
    @pytest.mark.parametrize('byteorder', ['<', '>'])
    def test_formats(self, tmp_path, bigtiff, byteorder):
        fname = tmp_path / 'format.tif'
        data = numpy.arange(12, dtype=numpy.uint8).reshape(4, 3)
        write_gray(fname, data, bigtiff=bigtiff, byteorder=byteorder)
        with TiffHandle(fname) as handle:
            assert handle.byteorder == byteorder
            assert handle.tiff.is_bigtiff == bigtiff
            assert handle.tiff.headersize == (16 if bigtiff else 8)
        numpy.testing.assert_array_equal(read_gray(fname), data)

    def test_byteorder_interpretation(self, tmp_path):
        fname = tmp_path / 'uint16.tif'
        with TiffHandle(fname, 'w', byteorder='>') as handle:
            handle.set_field(256, 2)
            handle.set_field(257, 1)
            handle.set_field(258, 16)
            handle.write_scanline(numpy.array([1, 258], numpy.uint16), 0)
        with open(fname, 'rb') as fh:
            assert b'\x00\x01\x01\x02' in fh.read()
        out = numpy.empty(2, numpy.uint16)
        with TiffHandle(fname) as handle:
            handle.read_scanline(out, 0)
        numpy.testing.assert_array_equal(out, [1, 258])

    def test_binary_stream(self):
        buffer = io.BytesIO()
        data = numpy.arange(6, dtype=numpy.uint8).reshape(2, 3)
        write_gray(buffer, data)
        assert not buffer.closed
        assert buffer.getvalue()[:2] in {b'II', b'MM'}
        buffer.seek(0)
        numpy.testing.assert_array_equal(read_gray(buffer), data)
        numpy.testing.assert_array_equal(imread(buffer)[..., 0], data)

    def test_invalid_files(self, tmp_path):
        fname = tmp_path / 'invalid.tif'
        for content in (
            b'',
            b'II',
            b'XX*\x00\x08\x00\x00\x00',
            b'II\x2b\x00\x04\x00\x00\x00',
            b'II*\x00\x00\x00\x00\x00',
            b'II*\x00\xff\x00\x00\x00',
        ):
            fname.write_bytes(content)
            with pytest.raises(TiffFileError):
                TiffHandle(fname)

    def test_invalid_arguments(self, tmp_path):
        with pytest.raises(ValueError, match='mode'):
            TiffHandle(tmp_path / 'a.tif', 'a')
        with pytest.raises(ValueError, match='byteorder'):
            TiffHandle(tmp_path / 'b.tif', 'w', byteorder='!')

    def test_repr(self, tmp_path):
        with TiffHandle(tmp_path / 'repr.tif', 'w') as handle:
            assert repr(handle) == "<lazytiff.TiffHandle 'repr.tif'>"


class TestCustomFields:
    """Register, write, and read fields not defined by baseline TIFF."""

    def test_array(self, tmp_path):
        fname = tmp_path / 'custom.tif'
        with TiffHandle(fname, 'w') as handle:
            handle.merge_field_info(
                [TiffFieldInfo(65000, 'CustomDoubles', DATATYPE.DOUBLE)]
            )
            handle.set_custom_array(65000, [1.5, 2.5, -3.0])
            assert handle.get_custom_array(65000) == (3, (1.5, 2.5, -3.0))
        with TiffHandle(fname) as handle:
            assert 65000 not in handle.fields
            assert handle.get_custom_array(65000) == (3, (1.5, 2.5, -3.0))
            assert handle.get_custom_array(65001) is None

    def test_ascii(self, tmp_path):
        fname = tmp_path / 'ascii.tif'
        with TiffHandle(fname, 'w') as handle:
            handle.merge_field_info(
                [TiffFieldInfo(65010, 'CustomText', DATATYPE.ASCII)]
            )
            handle.set_custom_ascii(65010, 'a|b|')
        with TiffHandle(fname) as handle:
            assert handle.get_custom_ascii(65010) == 'a|b|'
            assert handle.get_custom_ascii(65011) is None

    def test_merge_identical(self, tmp_path):
        field = TiffFieldInfo(65020, 'Custom', DATATYPE.SHORT, 2)
        with TiffHandle(tmp_path / 'merge.tif', 'w') as handle:
            handle.merge_field_info([field])
            handle.merge_field_info([field])
            assert handle.fields[65020] is field
            with pytest.raises(ValueError, match='conflicting'):
                handle.merge_field_info(
                    [TiffFieldInfo(65020, 'Custom', DATATYPE.LONG, 2)]
                )
            with pytest.raises(ValueError, match='requires 2 values'):
                handle.set_custom_array(65020, [1])

    def test_registry_per_handle(self, tmp_path):
        field = TiffFieldInfo(65030, 'Custom', DATATYPE.BYTE)
        with TiffHandle(tmp_path / 'one.tif', 'w') as one:
            one.merge_field_info([field])
            with TiffHandle(tmp_path / 'two.tif', 'w') as two:
                assert 65030 in one.fields
                assert 65030 not in two.fields


class TestTiffFieldRegistry:
    """Field definition registry."""

    def test_registry(self):
        fields = TiffFieldRegistry(
            [
                TiffFieldInfo(256, 'ImageWidth', DATATYPE.LONG, 1),
                TiffFieldInfo(270, 'ImageDescription', DATATYPE.ASCII),
            ]
        )
        assert len(fields) == 2
        assert 256 in fields
        assert fields.name(270) == 'ImageDescription'
        assert fields.name(1) == '1'
        assert fields.get(1) is None
        assert [field.code for field in fields] == [256, 270]
        with pytest.raises(KeyError):
            fields[1]


class TestTiffTag:
    """Tag values and their encoding."""

    def test_fromvalue(self):
        tag = TiffTag.fromvalue(270, DATATYPE.ASCII, 'abc')
        assert tag.count == 4
        assert tag.tobytes('<') == b'abc\x00'
        tag = TiffTag.fromvalue(258, DATATYPE.SHORT, (8, 8, 8))
        assert tag.count == 3
        assert tag.tobytes('>') == b'\x00\x08\x00\x08\x00\x08'
        assert tag.valuebytecount == 6
        tag = TiffTag.fromvalue(282, DATATYPE.RATIONAL, (72, 1))
        assert tag.count == 1
        assert tag.valuebytecount == 8
        tag = TiffTag.fromvalue(256, DATATYPE.LONG, 7)
        assert tag.value == (7,)

    def test_fromvalue_errors(self):
        with pytest.raises(ValueError):
            TiffTag.fromvalue(270, DATATYPE.ASCII, 1)
        with pytest.raises(ValueError):
            TiffTag.fromvalue(282, DATATYPE.RATIONAL, (72, 1, 3))
        with pytest.raises(ValueError):
            TiffTag.fromvalue(256, DATATYPE.SHORT, 70000).tobytes('<')

    def test_repr(self):
        tag = TiffTag(256, 4, 1, (7,), 10)
        assert repr(tag) == '<lazytiff.TiffTag 256 LONG[1] @10>'


class TestCodecs:
    """Compression and predictor codecs."""

    def test_uncompressed(self):
        codecs = CompressionCodec(encode=True)
        assert 1 in codecs
        assert codecs[1](b'abc') == b'abc'

    def test_unknown(self):
        assert 7 not in CompressionCodec(encode=False)
        with pytest.raises(KeyError):
            CompressionCodec(encode=False)[12345]
        with pytest.raises(KeyError):
            PredictorCodec(encode=True)[34892]

    def test_imagecodecs_missing(self, monkeypatch):
        monkeypatch.setitem(sys.modules, 'imagecodecs', None)
        with pytest.raises(KeyError, match='imagecodecs'):
            CompressionCodec(encode=True)[COMPRESSION.ADOBE_DEFLATE]
        with pytest.raises(KeyError, match='imagecodecs'):
            PredictorCodec(encode=False)[PREDICTOR.HORIZONTAL]

    @pytest.mark.parametrize(
        'compression',
        [
            COMPRESSION.LZW,
            COMPRESSION.ADOBE_DEFLATE,
            COMPRESSION.DEFLATE,
            COMPRESSION.PACKBITS,
            COMPRESSION.LZMA,
            COMPRESSION.ZSTD,
        ],
    )
    def test_compression(self, tmp_path, compression):
        pytest.importorskip('imagecodecs')
        if compression not in CompressionCodec(encode=True):
            pytest.skip(f'{compression!r} not available')
        fname = tmp_path / 'compressed.tif'
        data = numpy.zeros((16, 20, 3), numpy.uint8)
        data[4:12, 5:15] = 200
        imwrite(fname, data, compression=compression)
        with LazyTiffImage.open(fname) as image:
            assert image.attributes.compression == compression
            numpy.testing.assert_array_equal(image.read(), data)
            numpy.testing.assert_array_equal(
                image.read(Area.fromtuple(5, 4, 10, 8)), 200
            )

    @pytest.mark.parametrize(
        ('channel', 'predictor'),
        [
            (CHANNEL.UINT8, PREDICTOR.HORIZONTAL),
            (CHANNEL.UINT16, PREDICTOR.HORIZONTAL),
            (CHANNEL.INT32, PREDICTOR.HORIZONTAL),
            (CHANNEL.FLOAT32, PREDICTOR.FLOATINGPOINT),
            (CHANNEL.FLOAT64, PREDICTOR.FLOATINGPOINT),
        ],
    )
    def test_predictor(self, tmp_path, channel, predictor):
        pytest.importorskip('imagecodecs')
        fname = tmp_path / 'predicted.tif'
        data = (
            numpy.arange(7 * 9 * 2).reshape(7, 9, 2) % 50 - 10
        ).astype(channel.dtype)
        with LazyTiffImage.create(
            fname,
            Size(9, 7),
            2,
            channel,
            compression=COMPRESSION.ADOBE_DEFLATE,
            predictor=predictor,
        ) as image:
            image.write(Area.full(image.size), data)
        with LazyTiffImage.open(fname, channel) as image:
            assert image.attributes.predictor == predictor
            numpy.testing.assert_array_equal(image.read(), data)
