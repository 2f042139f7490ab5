"""Tests for GeoTIFF key directory and tags."""

from __future__ import annotations

import struct

import numpy
import pytest

import lazytiff.geotiff
from lazytiff import (
    CHANNEL,
    DATATYPE,
    GEOKEY,
    GEOTIFFTAG,
    Area,
    DirectoryEntry,
    DirectoryHeaderTooShortError,
    DirectorySizeIncorrectError,
    FailedToAddTagsError,
    GeoKeyDirectory,
    GeoTiffImage,
    LazyTiffImage,
    Size,
    TagMemoryError,
    TagNotFoundError,
    TiffError,
    TiffFieldInfo,
    TiffHandle,
    UnrecognisedGeoKeyError,
    WrongModeError,
    imread,
    imwrite,
)

TRANSFORMATION = (
    (10.0, 0.0, 0.0, 500000.0),
    (0.0, -10.0, 0.0, 4000000.0),
    (0.0, 0.0, 0.0, 0.0),
    (0.0, 0.0, 0.0, 1.0),
)


def create_geotiff(fname, **tags):
    """Write 4x3 GeoTIFF with tags set by GeoTiffImage setters."""
    data = numpy.arange(12, dtype=numpy.uint8).reshape(3, 4, 1)
    with GeoTiffImage.create(fname, Size(4, 3), 1, CHANNEL.UINT8) as image:
        for name, value in tags.items():
            getattr(image, f'set_{name}')(value)
        image.write(Area.full(image.size), data)
    return data


def corrupt_value_offset(fname, code):
    """Point value of tag in little-endian classic TIFF beyond end of file."""
    with open(fname, 'r+b') as fh:
        fh.seek(4)
        ifdoffset = struct.unpack('<I', fh.read(4))[0]
        fh.seek(ifdoffset)
        tagno = struct.unpack('<H', fh.read(2))[0]
        for i in range(tagno):
            entry = ifdoffset + 2 + i * 12
            fh.seek(entry)
            if struct.unpack('<H', fh.read(2))[0] == code:
                fh.seek(entry + 8)
                fh.write(struct.pack('<I', 2**31))
                return
    msg = f'tag {code} not found'
    raise ValueError(msg)


# --- Key directory ---


class TestGeoKeyDirectory:
    """Decode and encode GeoKeyDirectoryTag values."""

    def test_fromtuple(self):
        values = (1, 1, 0, 3)
        values += (1024, 0, 1, 1, 1026, 34737, 7, 0, 3078, 34736, 2, 0)
        directory = GeoKeyDirectory.fromtuple(values)
        assert directory.majorversion == 1
        assert directory.minorversion == 1
        assert directory.revision == 0
        assert directory.keycount == 3
        assert directory.entries[0] == DirectoryEntry(
            GEOKEY.GTMODELTYPE, None, 1, 1
        )
        assert directory.entries[0].isinline
        assert directory.entries[1].tifftag == GEOTIFFTAG.GEOASCIIPARAMS
        assert directory.entries[2].keyid is GEOKEY.PROJSTDPARALLEL1
        assert directory.entries[2].valuecount == 2
        assert directory.astuple() == values

    def test_empty(self):
        directory = GeoKeyDirectory.fromtuple([1, 1, 0, 0])
        assert directory.keycount == 0
        assert directory == GeoKeyDirectory()
        assert GeoKeyDirectory().astuple() == (1, 1, 0, 0)

    def test_entries_list(self):
        entry = DirectoryEntry(GEOKEY.GTRASTERTYPE, None, 1, 1)
        directory = GeoKeyDirectory(1, 1, 0, [entry])
        assert directory.entries == (entry,)
        assert hash(directory) == hash(GeoKeyDirectory(1, 1, 0, (entry,)))

    @pytest.mark.parametrize(
        'directory',
        [
            GeoKeyDirectory(),
            GeoKeyDirectory(
                1,
                1,
                0,
                (
                    DirectoryEntry(GEOKEY.GTMODELTYPE, None, 1, 2),
                    DirectoryEntry(
                        GEOKEY.GTCITATION, GEOTIFFTAG.GEOASCIIPARAMS, 22, 0
                    ),
                    DirectoryEntry(
                        GEOKEY.GEOGTOWGS84, GEOTIFFTAG.GEODOUBLEPARAMS, 7, 3
                    ),
                ),
            ),
            GeoKeyDirectory(
                65535,
                65535,
                65535,
                (
                    DirectoryEntry(GEOKEY.PROJECTEDCSTYPE, None, 65535, 65535),
                    DirectoryEntry(GEOKEY.PCSCITATION, 65535, 65535, 65535),
                ),
            ),
        ],
    )
    def test_roundtrip(self, directory):
        assert GeoKeyDirectory.fromtuple(directory.astuple()) == directory

    @pytest.mark.parametrize('length', [0, 1, 3])
    def test_header_too_short(self, length):
        with pytest.raises(DirectoryHeaderTooShortError) as excinfo:
            GeoKeyDirectory.fromtuple((1, 1, 0)[:length])
        assert excinfo.value.length == length

    @pytest.mark.parametrize(
        ('values', 'expected', 'got'),
        [
            ((1, 1, 0, 1), 8, 4),
            ((1, 1, 0, 1, 1024, 0, 1), 8, 7),
            ((1, 1, 0, 0, 1024, 0, 1, 1), 4, 8),
        ],
    )
    def test_size_incorrect(self, values, expected, got):
        with pytest.raises(DirectorySizeIncorrectError) as excinfo:
            GeoKeyDirectory.fromtuple(values)
        assert excinfo.value.expected == expected
        assert excinfo.value.got == got

    def test_unrecognised_key(self):
        with pytest.raises(UnrecognisedGeoKeyError) as excinfo:
            GeoKeyDirectory.fromtuple(
                (1, 1, 0, 2, 1024, 0, 1, 1, 9999, 0, 1, 0)
            )
        assert excinfo.value.key == 9999

    def test_value_out_of_range(self):
        directory = GeoKeyDirectory(
            entries=(DirectoryEntry(GEOKEY.GEOGRAPHICTYPE, None, 1, 70000),)
        )
        with pytest.raises(ValueError, match='out of range'):
            directory.astuple()

    def test_errors(self):
        for error in (
            DirectoryHeaderTooShortError,
            DirectorySizeIncorrectError,
            UnrecognisedGeoKeyError,
        ):
            assert issubclass(error, TiffError)
            assert issubclass(error, ValueError)


# --- Tags ---


class TestGeoTiffTags:
    """Write and read GeoTIFF tags of image files."""

    def test_model_tags(self, tmp_path):
        fname = tmp_path / 'model.tif'
        data = create_geotiff(
            fname,
            pixel_scale=(10, 10, 0),
            tiepoint=(0, 0, 0, 500000, 4000000, 0),
            transformation=TRANSFORMATION,
            double_params=(6378137.0, 298.257223563),
            projection='WGS 84 / UTM zone 33N',
        )
        with GeoTiffImage.open(fname) as image:
            assert image.get_pixel_scale() == (10.0, 10.0, 0.0)
            assert image.get_tiepoint() == (
                0.0,
                0.0,
                0.0,
                500000.0,
                4000000.0,
                0.0,
            )
            transformation = image.get_transformation()
            assert len(transformation) == 16
            assert transformation[:4] == TRANSFORMATION[0]
            assert image.get_double_params() == (6378137.0, 298.257223563)
            assert image.get_projection() == 'WGS 84 / UTM zone 33N|'
            numpy.testing.assert_array_equal(image.read(), data)

    def test_tags_readable_while_writing(self, tmp_path):
        with GeoTiffImage.create(
            tmp_path / 'write.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            image.set_pixel_scale([1, 2, 3])
            image.set_projection('NAD83')
            assert image.get_pixel_scale() == (1.0, 2.0, 3.0)
            assert image.get_projection() == 'NAD83|'

    def test_flat_transformation(self, tmp_path):
        fname = tmp_path / 'flat.tif'
        flat = tuple(float(i) for i in range(16))
        create_geotiff(fname, transformation=flat)
        with GeoTiffImage.open(fname) as image:
            assert image.get_transformation() == flat

    def test_directory(self, tmp_path):
        fname = tmp_path / 'directory.tif'
        directory = GeoKeyDirectory(
            1,
            1,
            0,
            (
                DirectoryEntry(GEOKEY.GTMODELTYPE, None, 1, 1),
                DirectoryEntry(GEOKEY.GTRASTERTYPE, None, 1, 1),
                DirectoryEntry(GEOKEY.PROJECTEDCSTYPE, None, 1, 32633),
            ),
        )
        create_geotiff(fname, directory=directory)
        with GeoTiffImage.open(fname) as image:
            assert image.get_directory() == directory
        with TiffHandle(fname) as handle:
            assert handle.get_field(34735) == directory.astuple()

    def test_geokeys(self, tmp_path):
        fname = tmp_path / 'geokeys.tif'
        geokeys = {
            GEOKEY.PROJECTEDCSTYPE: 32633,
            GEOKEY.GTMODELTYPE: 1,
            'GTCITATION': 'WGS 84 / UTM zone 33N',
            GEOKEY.GEOGCITATION: 'WGS 84',
            GEOKEY.GEOGSEMIMAJORAXIS: 6378137.0,
            GEOKEY.GEOGTOWGS84: (1.0, 2.0, 3.0),
            1025: 1,
        }
        with GeoTiffImage.create(fname, Size(2, 2), 1, CHANNEL.UINT8) as im:
            im.set_geokeys(geokeys)
        with GeoTiffImage.open(fname) as image:
            result = image.get_geokeys()
            directory = image.get_directory()
            projection = image.get_projection()
            doubles = image.get_double_params()
        assert result == {
            GEOKEY.GTMODELTYPE: 1,
            GEOKEY.GTRASTERTYPE: 1,
            GEOKEY.GTCITATION: 'WGS 84 / UTM zone 33N',
            GEOKEY.GEOGCITATION: 'WGS 84',
            GEOKEY.GEOGSEMIMAJORAXIS: 6378137.0,
            GEOKEY.GEOGTOWGS84: (1.0, 2.0, 3.0),
            GEOKEY.PROJECTEDCSTYPE: 32633,
        }
        keyids = [entry.keyid for entry in directory.entries]
        assert keyids == sorted(keyids)
        assert directory.keycount == 7
        assert projection == 'WGS 84 / UTM zone 33N|WGS 84|'
        assert doubles == (6378137.0, 1.0, 2.0, 3.0)

    def test_geokeys_version(self, tmp_path):
        fname = tmp_path / 'version.tif'
        with GeoTiffImage.create(fname, Size(2, 2), 1, CHANNEL.UINT8) as im:
            im.set_geokeys({GEOKEY.GTMODELTYPE: 2}, minorversion=2)
        with GeoTiffImage.open(fname) as image:
            directory = image.get_directory()
        assert (directory.majorversion, directory.minorversion) == (1, 2)

    def test_geokeys_unrecognised(self, tmp_path):
        with GeoTiffImage.create(
            tmp_path / 'unknown.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            with pytest.raises(UnrecognisedGeoKeyError) as excinfo:
                image.set_geokeys({9999: 1})
        assert excinfo.value.key == 9999

    def test_geokeys_unrecognised_name(self, tmp_path):
        with GeoTiffImage.create(
            tmp_path / 'unknown.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            with pytest.raises(UnrecognisedGeoKeyError) as excinfo:
                image.set_geokeys({'NOTAGEOKEY': 1})
        assert excinfo.value.key == 'NOTAGEOKEY'

    def test_geokeys_failure_changes_nothing(self, tmp_path):
        fname = tmp_path / 'unchanged.tif'
        with GeoTiffImage.create(fname, Size(2, 2), 1, CHANNEL.UINT8) as im:
            with pytest.raises(ValueError, match='ASCII'):
                im.set_geokeys(
                    {
                        GEOKEY.GTMODELTYPE: 1,
                        GEOKEY.GEOGSEMIMAJORAXIS: 6378137.0,
                        GEOKEY.GTCITATION: 'Zürich',
                    }
                )
            with pytest.raises(TagNotFoundError):
                im.get_directory()
            with pytest.raises(TagNotFoundError):
                im.get_double_params()
        with GeoTiffImage.open(fname) as image:
            with pytest.raises(TagNotFoundError):
                image.get_directory()
            with pytest.raises(TagNotFoundError):
                image.get_geokeys()

    def test_geokeys_failure_keeps_previous(self, tmp_path):
        fname = tmp_path / 'previous.tif'
        with GeoTiffImage.create(fname, Size(2, 2), 1, CHANNEL.UINT8) as im:
            im.set_geokeys({GEOKEY.GTMODELTYPE: 2, GEOKEY.GTCITATION: 'a'})
            with pytest.raises(ValueError):
                im.set_geokeys(
                    {GEOKEY.GTMODELTYPE: 1, GEOKEY.GEOGGEODETICDATUM: 70000}
                )
        with GeoTiffImage.open(fname) as image:
            assert image.get_geokeys() == {
                GEOKEY.GTMODELTYPE: 2,
                GEOKEY.GTCITATION: 'a',
            }

    def test_geokeys_text_beyond_ascii_params(self, tmp_path):
        fname = tmp_path / 'ascii.tif'
        directory = GeoKeyDirectory(
            entries=(
                DirectoryEntry(
                    GEOKEY.GTCITATION, GEOTIFFTAG.GEOASCIIPARAMS, 50, 0
                ),
            )
        )
        create_geotiff(fname, directory=directory, projection='abc')
        with GeoTiffImage.open(fname) as image:
            assert image.get_projection() == 'abc|'
            with pytest.raises(TagMemoryError):
                image.get_geokeys()

    def test_tags_not_found(self, tmp_path):
        fname = tmp_path / 'plain.tif'
        imwrite(fname, numpy.zeros((2, 2), numpy.uint8))
        with GeoTiffImage.open(fname) as image:
            for getter in (
                image.get_pixel_scale,
                image.get_tiepoint,
                image.get_transformation,
                image.get_double_params,
                image.get_projection,
                image.get_directory,
                image.get_geokeys,
            ):
                with pytest.raises(TagNotFoundError):
                    getter()

    def test_tag_not_loaded(self, tmp_path):
        fname = tmp_path / 'corrupt.tif'
        with GeoTiffImage.create(
            fname, Size(2, 2), 1, CHANNEL.UINT8, byteorder='<'
        ) as image:
            image.set_pixel_scale((1, 1, 0))
            image.set_projection('WGS 84')
        corrupt_value_offset(fname, GEOTIFFTAG.MODELPIXELSCALE)
        corrupt_value_offset(fname, GEOTIFFTAG.GEOASCIIPARAMS)
        with GeoTiffImage.open(fname) as image:
            with pytest.raises(TagMemoryError):
                image.get_pixel_scale()
            with pytest.raises(TagMemoryError):
                image.get_projection()

    def test_setters_in_read_mode(self, tmp_path):
        fname = tmp_path / 'readonly.tif'
        create_geotiff(fname)
        with GeoTiffImage.open(fname) as image:
            with pytest.raises(WrongModeError):
                image.set_pixel_scale((1, 1, 0))
            with pytest.raises(WrongModeError):
                image.set_tiepoint((0, 0, 0, 0, 0, 0))
            with pytest.raises(WrongModeError):
                image.set_transformation(TRANSFORMATION)
            with pytest.raises(WrongModeError):
                image.set_projection('WGS 84')
            with pytest.raises(WrongModeError):
                image.set_directory(GeoKeyDirectory())
            with pytest.raises(WrongModeError):
                image.set_geokeys({GEOKEY.GTMODELTYPE: 1})

    @pytest.mark.parametrize(
        ('setter', 'values'),
        [
            ('set_pixel_scale', (1, 1)),
            ('set_pixel_scale', (1, 1, 1, 1)),
            ('set_tiepoint', ()),
            ('set_tiepoint', (0, 0, 0, 0, 0)),
            ('set_transformation', tuple(range(15))),
            ('set_transformation', ((1, 0, 0), (0, 1, 0), (0, 0, 1))),
        ],
    )
    def test_invalid_count(self, tmp_path, setter, values):
        with GeoTiffImage.create(
            tmp_path / 'count.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            with pytest.raises(ValueError, match='requires'):
                getattr(image, setter)(values)

    def test_projection_ascii(self, tmp_path):
        with GeoTiffImage.create(
            tmp_path / 'ascii.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            with pytest.raises(ValueError, match='ASCII'):
                image.set_projection('Zürich')

    def test_closed(self, tmp_path):
        fname = tmp_path / 'closed.tif'
        create_geotiff(fname, pixel_scale=(1, 1, 0))
        image = GeoTiffImage.open(fname)
        image.close()
        with pytest.raises(TiffError):
            image.get_pixel_scale()

    def test_plain_reader(self, tmp_path):
        fname = tmp_path / 'plain_reader.tif'
        data = create_geotiff(fname, pixel_scale=(2, 2, 0))
        numpy.testing.assert_array_equal(imread(fname), data)
        with LazyTiffImage.open(fname) as image:
            numpy.testing.assert_array_equal(image.read(), data)

    def test_plain_writer_rejects_geotiff_tags(self, tmp_path):
        with TiffHandle(tmp_path / 'unregistered.tif', 'w') as handle:
            with pytest.raises(KeyError):
                handle.set_custom_array(33550, (1.0, 1.0, 0.0))


class TestFieldRegistration:
    """Register GeoTIFF tag definitions with file handles."""

    def test_conflicting_definition(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            lazytiff.geotiff,
            'GEOTIFF_FIELDS',
            lazytiff.geotiff.GEOTIFF_FIELDS
            + (TiffFieldInfo(256, 'ImageWidth', DATATYPE.DOUBLE, 1),),
        )
        with pytest.raises(FailedToAddTagsError):
            GeoTiffImage.create(
                tmp_path / 'conflict.tif', Size(2, 2), 1, CHANNEL.UINT8
            )

    def test_no_partial_registration(self, tmp_path):
        with TiffHandle(tmp_path / 'partial.tif', 'w') as handle:
            with pytest.raises(ValueError, match='conflicting'):
                handle.merge_field_info(
                    [
                        TiffFieldInfo(65000, 'Custom', DATATYPE.SHORT),
                        TiffFieldInfo(256, 'ImageWidth', DATATYPE.DOUBLE, 1),
                    ]
                )
            assert 65000 not in handle.fields

    def test_registered_fields(self, tmp_path):
        with GeoTiffImage.create(
            tmp_path / 'fields.tif', Size(2, 2), 1, CHANNEL.UINT8
        ) as image:
            handle = image._handle
            for field in lazytiff.geotiff.GEOTIFF_FIELDS:
                assert handle.fields[field.code] == field
