"""
Tests for the chunk build pipeline.

Tests:
  height_field:      uniform mid-gray scenario, height bounds, axis mapping
  slope_painter:     steepness values, monotonicity, blend sum, channel checks
  structure_placer:  alpha threshold, single red pixel scenario, first match
                     wins, bounds / wraparound asymmetry, derived positions,
                     sink failures
  terrain_chunk:     end-to-end build, descriptor validation, neighbours
  config / export:   JSON chunk definitions, PNG/JSON export, CLI template

Runs standalone (python tests/test_terrain_pipeline.py) or under pytest.
"""

import os
import sys
import json
import shutil
import tempfile
import traceback

# Ensure the project root is on the path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

import numpy as np
from PIL import Image

from terrain_builder.coord_helper import euler_rotation, uv_to_rotation
from terrain_builder.texture_sampler import Texture
from terrain_builder.chunk_descriptor import (ChunkDescriptor, ChunkConfigError,
                                              SplatDefinition, StructureColor,
                                              is_power_of_two_plus_one,
                                              load_descriptor, save_descriptor)
from terrain_builder.height_field import HeightFieldGenerator, generate_height_field
from terrain_builder.slope_painter import (SlopeBlendPainter, calculate_steepness,
                                           cliffiness_from_angle)
from terrain_builder.structure_placer import (StructurePlacer, StructureRegistry,
                                              fold_positive_wraparound,
                                              angular_offset, is_within_chunk,
                                              ZERO_POSITION, IDENTITY_ROTATION)
from terrain_builder.terrain_data import TerrainData
from terrain_builder.terrain_chunk import DynamicTerrainChunk, build_chunk
from terrain_builder.chunk_exporter import read_heightmap_png, read_blend_png
from terrain_builder import build_chunk_from_file


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_PASSED = 0
_FAILED = 0
_ERRORS = []

_SPLATS = [SplatDefinition('ground.png', 15), SplatDefinition('cliff.png', 20)]
_RED = (255, 0, 0)
_GREEN = (0, 255, 0)
_BLUE = (0, 0, 255)


def _test(name, fn):
    """Run a test function, track pass/fail."""
    global _PASSED, _FAILED
    try:
        fn()
        _PASSED += 1
        print("  PASS  {}".format(name))
    except Exception as e:
        _FAILED += 1
        _ERRORS.append((name, e))
        print("  FAIL  {} -- {}".format(name, e))
        traceback.print_exc()


def _expect_raises(exc_type, fn, *args, **kwargs):
    try:
        fn(*args, **kwargs)
    except exc_type as e:
        return e
    raise AssertionError("Expected {}".format(exc_type.__name__))


def _descriptor(height_map=None, **kwargs):
    """Small, fast descriptor with sensible defaults."""
    if height_map is None:
        height_map = Texture.solid(3, 3, (0.5, 0.5, 0.5))
    params = {
        'chunk_rotation': euler_rotation(0.0, 0.0),
        'degrees_per_chunk': 10.0,
        'world_units_per_chunk': 100.0,
        'height_map': height_map,
        'splats': _SPLATS,
        'heightmap_resolution': 9,
        'alphamap_resolution': 8,
    }
    params.update(kwargs)
    return ChunkDescriptor(**params)


def _structure_map(pixels, width=4, height=4):
    """Transparent map with {(x, y): (r, g, b, a)} set."""
    data = np.zeros((height, width, 4), dtype=np.uint8)
    for (x, y), rgba in pixels.items():
        data[y, x] = rgba
    return Texture(data)


def _center_chunk(structure_map, palette, **kwargs):
    """Chunk centred on uv (0.5, 0.5), i.e. pixel (2, 2) of a 4x4 map."""
    params = {
        'chunk_rotation': uv_to_rotation(0.5, 0.5),
        'degrees_per_chunk': 90.0,
        'structure_map': structure_map,
        'structure_colors': palette,
    }
    params.update(kwargs)
    return _descriptor(**params)


class _ExplodingTexture:
    """Height map that must never be sampled."""

    name = 'exploding'

    def grayscale_bilinear(self, u, v):
        raise AssertionError("Texture sampled before validation")


# ---------------------------------------------------------------------------
# Height field
# ---------------------------------------------------------------------------

def test_uniform_mid_gray_gives_quarter_height():
    for rotation in (euler_rotation(0.0, 0.0), euler_rotation(35.0, -120.0, 10.0)):
        for dpc in (1.0, 10.0, 45.0):
            desc = _descriptor(chunk_rotation=rotation, degrees_per_chunk=dpc)
            heights = generate_height_field(desc)
            assert heights.shape == (9, 9), "Shape: {}".format(heights.shape)
            assert np.allclose(heights, 0.25, atol=1e-12), \
                "Expected 0.25 everywhere, got {}..{}".format(heights.min(), heights.max())


def test_heights_stay_within_dampened_range():
    rng = np.random.RandomState(7)
    texture = Texture(rng.randint(0, 256, size=(16, 32, 4)).astype(np.uint8))
    for dampening in (1.0, 2.0, 4.0):
        desc = _descriptor(height_map=texture, height_dampening=dampening,
                           chunk_rotation=euler_rotation(-20.0, 170.0),
                           degrees_per_chunk=40.0, heightmap_resolution=17)
        heights = generate_height_field(desc)
        assert heights.min() >= 0.0, "Negative height {}".format(heights.min())
        assert heights.max() <= 1.0 / dampening, \
            "Height {} above 1/{}".format(heights.max(), dampening)


def test_yaw_offset_follows_longitude():
    """y walks east along the texture; x has no effect on longitude."""
    width = 64
    ramp = (np.arange(width) + 0.5) / width
    texture = Texture(np.tile(ramp, (8, 1)))
    desc = _descriptor(height_map=texture, degrees_per_chunk=40.0,
                       heightmap_resolution=17)
    heights = generate_height_field(desc)
    assert np.all(np.diff(heights[0, :]) > 0), "Heights should rise along y"
    assert np.allclose(heights[0, :], heights[-1, :], atol=1e-9), \
        "Longitude ramp should not vary along x"


def test_pitch_offset_follows_latitude():
    """Positive pitch points south, so heights fall along x on a v ramp."""
    height = 32
    ramp = (np.arange(height) + 0.5) / height
    texture = Texture(np.tile(ramp[:, np.newaxis], (1, 8)))
    desc = _descriptor(height_map=texture, degrees_per_chunk=40.0,
                       heightmap_resolution=17)
    heights = generate_height_field(desc)
    assert np.all(np.diff(heights[:, 0]) < 0), "Heights should fall along x"
    assert np.allclose(heights[:, 0], heights[:, -1], atol=1e-9), \
        "Latitude ramp should not vary along y"


def test_sample_uvs_centre_on_chunk():
    desc = _descriptor(chunk_rotation=uv_to_rotation(0.3, 0.6),
                       degrees_per_chunk=2.0, heightmap_resolution=17)
    u, v = HeightFieldGenerator(desc).sample_uvs()
    assert u.shape == (17, 17)
    assert abs(u.mean() - 0.3) < 0.01, "u centre {}".format(u.mean())
    assert abs(v.mean() - 0.6) < 0.01, "v centre {}".format(v.mean())


# ---------------------------------------------------------------------------
# Slope painter
# ---------------------------------------------------------------------------

def test_steepness_of_linear_ramp():
    heights = np.tile(np.linspace(0.0, 1.0, 5)[:, np.newaxis], (1, 5))
    # 4 cells over 400 units, 100 units of rise -> 25 up per 100 across
    angle = calculate_steepness(heights, (400.0, 400.0), 100.0)
    expected = np.degrees(np.arctan(0.25))
    assert np.allclose(angle, expected), "Expected {}, got {}".format(expected, angle)


def test_flat_terrain_is_all_ground():
    desc = _descriptor()
    blend = SlopeBlendPainter(desc).paint(np.full((9, 9), 0.3))
    assert blend.shape == (8, 8, 2), "Shape: {}".format(blend.shape)
    assert np.allclose(blend[..., 0], 1.0) and np.allclose(blend[..., 1], 0.0)


def test_steepness_is_monotonic_in_gradient():
    painter = SlopeBlendPainter(_descriptor())
    ramp = np.tile(np.linspace(0.0, 1.0, 9)[:, np.newaxis], (1, 9))
    previous = None
    for scale in (0.0, 0.01, 0.1, 0.3, 0.7, 1.0):
        angle = painter.steepness_grid(ramp * scale)
        if previous is not None:
            assert np.all(angle >= previous - 1e-12), \
                "Steepness fell when gradient grew (scale {})".format(scale)
        previous = angle


def test_blend_channels_sum_to_one():
    rng = np.random.RandomState(3)
    heights = rng.uniform(0.0, 1.0, size=(9, 9))
    desc = _descriptor(world_units_per_chunk=10.0, alphamap_resolution=16)
    blend = SlopeBlendPainter(desc).paint(heights)
    assert np.allclose(blend.sum(axis=2), 1.0), "Channels must sum to 1"
    assert blend.min() >= 0.0 and blend.max() <= 1.0
    assert blend[..., 1].max() > 0.5, "Rough terrain should produce cliffs"


def test_cliffiness_is_clamped():
    assert cliffiness_from_angle(95.0) == 1.0
    assert cliffiness_from_angle(-1.0) == 0.0
    assert abs(cliffiness_from_angle(45.0) - 0.5) < 1e-12


def test_painter_requires_two_splats():
    for splats in ([], _SPLATS[:1], _SPLATS + [SplatDefinition('snow.png', 10)]):
        desc = _descriptor(splats=splats)
        _expect_raises(ChunkConfigError, SlopeBlendPainter, desc)


# ---------------------------------------------------------------------------
# Structure placer
# ---------------------------------------------------------------------------

def test_single_red_pixel_places_one_structure():
    smap = _structure_map({(2, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_BLUE, 'hut'),
                                StructureColor(_RED, 'red_tower')])
    report = StructurePlacer(desc).place_all()
    assert len(report.requests) == 1, "Expected 1 request, got {}".format(report.requests)
    request = report.requests[0]
    assert request.structure == 'red_tower'
    assert request.pixel == (2, 2)
    assert request.position == ZERO_POSITION
    assert request.rotation == IDENTITY_ROTATION


def test_alpha_threshold():
    palette = [StructureColor(_RED, 'red_tower')]
    skipped = StructurePlacer(
        _center_chunk(_structure_map({(2, 2): _RED + (127,)}), palette)).place_all()
    assert skipped.scanned == 0 and not skipped.requests, "Alpha 127 must be skipped"

    eligible = StructurePlacer(
        _center_chunk(_structure_map({(2, 2): _RED + (128,)}), palette)).place_all()
    assert eligible.scanned == 1 and len(eligible.requests) == 1, \
        "Alpha 128 must be eligible"


def test_first_palette_match_wins():
    smap = _structure_map({(2, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_RED, 'first'),
                                StructureColor(_RED, 'second')])
    for _ in range(3):
        report = StructurePlacer(desc).place_all()
        assert [r.structure for r in report.requests] == ['first']


def test_unmatched_color_is_skipped():
    smap = _structure_map({(2, 2): _GREEN + (255,)})
    report = StructurePlacer(
        _center_chunk(smap, [StructureColor(_RED, 'red_tower')])).place_all()
    assert report.scanned == 1 and report.matched == 0 and not report.requests


def test_pixels_outside_chunk_are_skipped():
    # (3, 2) is 90 degrees east of the chunk centre
    smap = _structure_map({(2, 2): _RED + (255,), (3, 2): _RED + (255,)})
    report = StructurePlacer(
        _center_chunk(smap, [StructureColor(_RED, 'red_tower')],
                      degrees_per_chunk=20.0)).place_all()
    assert [r.pixel for r in report.requests] == [(2, 2)]
    assert report.matched == 2


def test_bounds_edge_is_inclusive():
    assert is_within_chunk(5.0, 0.0, 10.0)
    assert is_within_chunk(-5.0, 5.0, 10.0)
    assert not is_within_chunk(5.0001, 0.0, 10.0)
    assert not is_within_chunk(0.0, -5.0001, 10.0)


def test_pixel_exactly_half_a_chunk_away_is_placed():
    # (3, 2) is 90 degrees east of the centre pixel: half of a 180 degree chunk
    smap = _structure_map({(3, 2): _RED + (255,)})
    report = StructurePlacer(
        _center_chunk(smap, [StructureColor(_RED, 'red_tower')],
                      degrees_per_chunk=180.0)).place_all()
    assert [r.pixel for r in report.requests] == [(3, 2)], \
        "Edge pixel should be placed: {}".format(report.requests)
    pitch_delta, yaw_delta = report.requests[0].angular_offset
    assert abs(yaw_delta - 90.0) < 1e-9 and abs(pitch_delta) < 1e-9

    narrower = StructurePlacer(
        _center_chunk(smap, [StructureColor(_RED, 'red_tower')],
                      degrees_per_chunk=179.0)).place_all()
    assert not narrower.requests, "Pixel beyond half a chunk must be skipped"


def test_wraparound_folds_positive_side_only():
    assert fold_positive_wraparound(190.0) == -170.0
    assert fold_positive_wraparound(180.0) == 180.0
    assert fold_positive_wraparound(-190.0) == -190.0
    assert fold_positive_wraparound(-10.0) == -10.0


def test_wraparound_asymmetry_near_zero_yaw():
    east = euler_rotation(0.0, 5.0)
    west = euler_rotation(0.0, 355.0)

    # 355 - 5 = 350 folds to -10: inside a 30 degree chunk
    _, yaw_delta = angular_offset(west, east)
    assert abs(yaw_delta + 10.0) < 1e-6, "Expected -10, got {}".format(yaw_delta)
    assert is_within_chunk(0.0, yaw_delta, 30.0)

    # 5 - 355 = -350 is not folded: outside, although only 10 degrees away
    _, yaw_delta = angular_offset(east, west)
    assert abs(yaw_delta + 350.0) < 1e-6, "Expected -350, got {}".format(yaw_delta)
    assert not is_within_chunk(0.0, yaw_delta, 30.0)


def test_derived_mode_positions_structures():
    smap = _structure_map({(2, 2): _RED + (255,), (3, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_RED, 'red_tower')],
                         degrees_per_chunk=200.0, placement_mode='derived')
    report = StructurePlacer(desc).place_all()
    positions = dict((r.pixel, r.position) for r in report.requests)
    assert np.allclose(positions[(2, 2)], (50.0, 0.0, 50.0), atol=1e-6), \
        "Centre pixel: {}".format(positions[(2, 2)])
    # 90 degrees east of centre in a 200 degree chunk
    assert np.allclose(positions[(3, 2)], (50.0, 0.0, 95.0), atol=1e-6), \
        "East pixel: {}".format(positions[(3, 2)])


def test_sink_failure_does_not_stop_scan():
    smap = _structure_map({(1, 2): _BLUE + (255,), (2, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_RED, 'castle'),
                                StructureColor(_BLUE, 'ghost')],
                         degrees_per_chunk=200.0)
    registry = StructureRegistry({'castle': lambda request: ('castle', request.pixel)})
    report = StructurePlacer(desc, registry).place_all()

    assert len(report.requests) == 2, "Both pixels should be requested"
    assert len(report.failed) == 1 and report.failed[0][0].structure == 'ghost'
    assert isinstance(report.failed[0][1], KeyError)
    assert len(report.placed) == 1 and report.placed[0][1] == ('castle', (2, 2))
    assert registry.instances == [('castle', (2, 2))]


def test_no_structure_map_is_empty_report():
    report = StructurePlacer(_descriptor()).place_all()
    assert not report.requests and report.scanned == 0


# ---------------------------------------------------------------------------
# Chunk assembly
# ---------------------------------------------------------------------------

def test_build_chunk_end_to_end():
    smap = _structure_map({(2, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_RED, 'red_tower')])
    registry = StructureRegistry({'red_tower': lambda request: request.structure})
    chunk = DynamicTerrainChunk(desc, registry)
    terrain = chunk.build_terrain()

    assert terrain is chunk.terrain_data
    assert terrain.heightmap_resolution == 9 and terrain.alphamap_resolution == 8
    assert terrain.size == (100.0, 512.0, 100.0), "Size: {}".format(terrain.size)
    assert np.allclose(terrain.get_heights(), 0.25)
    blend = terrain.get_alphamaps()
    assert blend.shape == (8, 8, 2)
    assert np.allclose(blend[..., 0], 1.0), "Flat terrain should be pure ground"
    assert [p.tile_size for p in terrain.splat_prototypes] == [(15.0, 15.0), (20.0, 20.0)]
    assert len(chunk.placement_report.requests) == 1
    assert registry.instances == ['red_tower']


def test_build_chunk_returns_terrain_data():
    terrain = build_chunk(_descriptor())
    assert isinstance(terrain, TerrainData)


def test_build_chunk_reports_sink_failures():
    smap = _structure_map({(2, 2): _RED + (255,)})
    desc = _center_chunk(smap, [StructureColor(_RED, 'red_tower')])
    terrain = build_chunk(desc, StructureRegistry({}))

    report = terrain.placement_report
    assert report is not None, "Placement report missing from terrain data"
    assert len(report.requests) == 1 and not report.placed
    assert len(report.failed) == 1, "Expected 1 failure, got {}".format(report.failed)
    request, error = report.failed[0]
    assert request.structure == 'red_tower'
    assert isinstance(error, KeyError)


def test_numpy_integer_resolutions_accepted():
    assert is_power_of_two_plus_one(np.int64(129))
    assert not is_power_of_two_plus_one(np.int64(128))
    assert not is_power_of_two_plus_one(True)
    desc = _descriptor(heightmap_resolution=np.int64(9),
                       alphamap_resolution=np.int32(8))
    terrain = build_chunk(desc)
    assert terrain.get_heights().shape == (9, 9)
    assert terrain.get_alphamaps().shape == (8, 8, 2)


def test_validation_runs_before_sampling():
    bad = [
        {'degrees_per_chunk': 0.0},
        {'degrees_per_chunk': -5.0},
        {'world_units_per_chunk': 0.0},
        {'heightmap_resolution': 100},
        {'heightmap_resolution': 2},
        {'alphamap_resolution': 0},
        {'height_dampening': 0.0},
        {'placement_mode': 'teleport'},
        {'splats': _SPLATS[:1]},
    ]
    for overrides in bad:
        desc = _descriptor(height_map=_ExplodingTexture(), **overrides)
        _expect_raises(ChunkConfigError, build_chunk, desc)


def test_power_of_two_plus_one():
    for value in (3, 5, 9, 33, 129, 513, 4097):
        assert is_power_of_two_plus_one(value), value
    for value in (0, 1, 2, 4, 100, 128, 130, 9.0):
        assert not is_power_of_two_plus_one(value), value


def test_descriptor_is_immutable():
    desc = _descriptor()
    _expect_raises(AttributeError, setattr, desc, 'degrees_per_chunk', 5.0)
    assert isinstance(desc.splats, tuple) and isinstance(desc.structure_colors, tuple)


def test_structure_color_validation():
    _expect_raises(ChunkConfigError, StructureColor, (256, 0, 0), 'x')
    _expect_raises(ChunkConfigError, StructureColor, (1, 2), 'x')
    assert StructureColor((1, 2, 3, 4), 'x').color == (1, 2, 3)


def test_set_neighbors_records_handles():
    left = DynamicTerrainChunk(_descriptor())
    centre = DynamicTerrainChunk(_descriptor())
    left.build_terrain()
    centre.build_terrain()
    heights_before = centre.terrain_data.get_heights()

    centre.set_neighbors(left, None, None, None)
    neighbors = centre.terrain_data.neighbors
    assert neighbors['left'] is left.terrain_data
    assert neighbors['top'] is None and neighbors['right'] is None
    assert neighbors['bottom'] is None
    assert np.array_equal(centre.terrain_data.get_heights(), heights_before)


def test_set_neighbors_requires_build():
    chunk = DynamicTerrainChunk(_descriptor())
    _expect_raises(RuntimeError, chunk.set_neighbors, None, None, None, None)


def test_terrain_data_shape_checks_and_steepness():
    terrain = TerrainData()
    terrain.heightmap_resolution = 5
    terrain.set_size(400.0, 100.0, 400.0)
    _expect_raises(ValueError, terrain.set_heights, np.zeros((4, 4)))
    terrain.set_heights(np.tile(np.linspace(0.0, 1.0, 5)[:, np.newaxis], (1, 5)))
    angle = terrain.get_steepness(0.5, 0.5)
    assert abs(angle - np.degrees(np.arctan(0.25))) < 1e-9, "Angle {}".format(angle)
    assert terrain.heightmap_scale() == (100.0, 100.0, 100.0)


# ---------------------------------------------------------------------------
# Config / export
# ---------------------------------------------------------------------------

def _write_definition(root, **overrides):
    gray = np.full((8, 16), 128, dtype=np.uint8)
    Image.fromarray(gray).save(os.path.join(root, 'heightmap.png'))
    structures = np.zeros((4, 4, 4), dtype=np.uint8)
    structures[1, 2] = _RED + (255,)  # Pillow row 1 of 4 -> texture y = 2
    Image.fromarray(structures).save(os.path.join(root, 'structures.png'))

    definition = {
        'name': 'test_chunk',
        'chunk_rotation': {'pitch': 0.0, 'yaw': 0.0},
        'degrees_per_chunk': 60.0,
        'world_units_per_chunk': 500.0,
        'heightmap_resolution': 17,
        'alphamap_resolution': 16,
        'height_map': 'heightmap.png',
        'structure_map': 'structures.png',
        'splats': [{'texture': 'ground.png', 'size': 15},
                   {'texture': 'cliff.png', 'size': 15}],
        'structure_colors': [{'color': [255, 0, 0], 'structure': 'castle'}],
    }
    definition.update(overrides)
    path = os.path.join(root, 'chunk.json')
    with open(path, 'w') as f:
        json.dump(definition, f)
    return path


def test_load_definition_and_export():
    root = tempfile.mkdtemp(prefix='terrain_builder_test_')
    try:
        path = _write_definition(root)
        out_dir = os.path.join(root, 'out')
        result = build_chunk_from_file(path, output_dir=out_dir)

        assert result['chunk'].descriptor.name == 'test_chunk'
        assert [r.structure for r in result['placements']] == ['castle']
        for key in ('heightmap', 'blend', 'placements', 'meta'):
            assert os.path.isfile(result['files'][key]), "Missing {}".format(key)

        heights = result['terrain_data'].get_heights()
        assert np.allclose(heights, 128.0 / 255.0 / 2.0, atol=1e-9)
        written = read_heightmap_png(result['files']['heightmap'])
        assert written.shape == heights.shape
        assert np.allclose(written, heights, atol=1.0 / 65535), "Heightmap PNG drifted"

        blend = read_blend_png(result['files']['blend'])
        assert blend.shape == (16, 16, 2)
        assert np.allclose(blend.sum(axis=2), 1.0, atol=2.0 / 255)

        with open(result['files']['placements']) as f:
            placements = json.load(f)
        assert placements[0]['structure'] == 'castle'
        assert placements[0]['pixel'] == [2, 2]

        with open(result['files']['meta']) as f:
            meta = json.load(f)
        assert meta['structure_count'] == 1
        assert meta['terrain_size'] == [500.0, 512.0, 500.0]
    finally:
        shutil.rmtree(root, ignore_errors=True)


def test_descriptor_save_and_reload():
    root = tempfile.mkdtemp(prefix='terrain_builder_test_')
    try:
        path = _write_definition(root, chunk_rotation={'pitch': 12.0, 'yaw': -40.0})
        desc = load_descriptor(path)
        copy_path = os.path.join(root, 'copy', 'chunk.json')
        save_descriptor(desc, copy_path)
        reloaded = load_descriptor(copy_path)

        assert reloaded.name == desc.name
        assert reloaded.degrees_per_chunk == desc.degrees_per_chunk
        assert reloaded.structure_colors[0].color == (255, 0, 0)
        delta = (reloaded.chunk_rotation * desc.chunk_rotation.inv()).magnitude()
        assert delta < 1e-9, "Rotation changed by {} rad".format(delta)
    finally:
        shutil.rmtree(root, ignore_errors=True)


def test_definition_missing_key():
    root = tempfile.mkdtemp(prefix='terrain_builder_test_')
    try:
        path = _write_definition(root)
        with open(path) as f:
            data = json.load(f)
        del data['degrees_per_chunk']
        with open(path, 'w') as f:
            json.dump(data, f)
        _expect_raises(ChunkConfigError, load_descriptor, path)
    finally:
        shutil.rmtree(root, ignore_errors=True)


def test_cli_template_builds():
    sys.path.insert(0, os.path.join(PROJECT_ROOT, 'tools'))
    import chunk_converter

    root = tempfile.mkdtemp(prefix='terrain_builder_test_')
    try:
        path = chunk_converter.write_template(root, seed=3)
        result = build_chunk_from_file(path)
        heights = result['terrain_data'].get_heights()
        assert heights.shape == (129, 129)
        assert heights.min() >= 0.0 and heights.max() <= 0.5
        assert result['files'] is None
    finally:
        shutil.rmtree(root, ignore_errors=True)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main():
    print("=" * 70)
    print("terrain_builder pipeline tests")
    print("=" * 70)

    print("\n--- Height field ---")
    _test("uniform_mid_gray_gives_quarter_height",
          test_uniform_mid_gray_gives_quarter_height)
    _test("heights_stay_within_dampened_range",
          test_heights_stay_within_dampened_range)
    _test("yaw_offset_follows_longitude", test_yaw_offset_follows_longitude)
    _test("pitch_offset_follows_latitude", test_pitch_offset_follows_latitude)
    _test("sample_uvs_centre_on_chunk", test_sample_uvs_centre_on_chunk)

    print("\n--- Slope painter ---")
    _test("steepness_of_linear_ramp", test_steepness_of_linear_ramp)
    _test("flat_terrain_is_all_ground", test_flat_terrain_is_all_ground)
    _test("steepness_is_monotonic_in_gradient",
          test_steepness_is_monotonic_in_gradient)
    _test("blend_channels_sum_to_one", test_blend_channels_sum_to_one)
    _test("cliffiness_is_clamped", test_cliffiness_is_clamped)
    _test("painter_requires_two_splats", test_painter_requires_two_splats)

    print("\n--- Structure placer ---")
    _test("single_red_pixel_places_one_structure",
          test_single_red_pixel_places_one_structure)
    _test("alpha_threshold", test_alpha_threshold)
    _test("first_palette_match_wins", test_first_palette_match_wins)
    _test("unmatched_color_is_skipped", test_unmatched_color_is_skipped)
    _test("pixels_outside_chunk_are_skipped", test_pixels_outside_chunk_are_skipped)
    _test("bounds_edge_is_inclusive", test_bounds_edge_is_inclusive)
    _test("pixel_exactly_half_a_chunk_away_is_placed",
          test_pixel_exactly_half_a_chunk_away_is_placed)
    _test("wraparound_folds_positive_side_only",
          test_wraparound_folds_positive_side_only)
    _test("wraparound_asymmetry_near_zero_yaw",
          test_wraparound_asymmetry_near_zero_yaw)
    _test("derived_mode_positions_structures",
          test_derived_mode_positions_structures)
    _test("sink_failure_does_not_stop_scan", test_sink_failure_does_not_stop_scan)
    _test("no_structure_map_is_empty_report", test_no_structure_map_is_empty_report)

    print("\n--- Chunk assembly ---")
    _test("build_chunk_end_to_end", test_build_chunk_end_to_end)
    _test("build_chunk_returns_terrain_data", test_build_chunk_returns_terrain_data)
    _test("build_chunk_reports_sink_failures",
          test_build_chunk_reports_sink_failures)
    _test("numpy_integer_resolutions_accepted",
          test_numpy_integer_resolutions_accepted)
    _test("validation_runs_before_sampling", test_validation_runs_before_sampling)
    _test("power_of_two_plus_one", test_power_of_two_plus_one)
    _test("descriptor_is_immutable", test_descriptor_is_immutable)
    _test("structure_color_validation", test_structure_color_validation)
    _test("set_neighbors_records_handles", test_set_neighbors_records_handles)
    _test("set_neighbors_requires_build", test_set_neighbors_requires_build)
    _test("terrain_data_shape_checks_and_steepness",
          test_terrain_data_shape_checks_and_steepness)

    print("\n--- Config / export ---")
    _test("load_definition_and_export", test_load_definition_and_export)
    _test("descriptor_save_and_reload", test_descriptor_save_and_reload)
    _test("definition_missing_key", test_definition_missing_key)
    _test("cli_template_builds", test_cli_template_builds)

    print("\n" + "=" * 70)
    print("Results: {} passed, {} failed".format(_PASSED, _FAILED))
    if _ERRORS:
        print("\nFailures:")
        for name, err in _ERRORS:
            print("  {} -- {}".format(name, err))
    print("=" * 70)
    return 0 if _FAILED == 0 else 1


if __name__ == '__main__':
    sys.exit(main())
