"""
Terrain Builder - Spherical planet terrain chunks from equirectangular maps.

Derives one rectangular terrain chunk of a planet's surface at a time:
heights sampled from a shared equirectangular height texture, ground/cliff
blend weights painted from slope, and structures placed from a
color-coded structure map.  Chunks are independent of each other; each is
described by an immutable ChunkDescriptor, usually loaded from a JSON chunk
definition.
"""

import os

from .coord_helper import (rotation_to_uv, uv_to_rotation, euler_rotation,
                           euler_angles)
from .texture_sampler import Texture
from .chunk_descriptor import (ChunkDescriptor, ChunkConfigError, SplatDefinition,
                               StructureColor, load_descriptor, save_descriptor)
from .height_field import HeightFieldGenerator, generate_height_field
from .slope_painter import SlopeBlendPainter, calculate_steepness, paint_cliffs
from .structure_placer import (StructurePlacer, StructureRegistry, PlacementRequest,
                               PlacementReport, place_structures)
from .terrain_data import TerrainData, SplatPrototype
from .terrain_chunk import DynamicTerrainChunk, build_chunk
from .chunk_exporter import export_chunk


def build_chunk_from_file(definition_path, output_dir=None, structure_sink=None):
    """
    High-level API: load a chunk definition, build it, optionally export it.

    Args:
        definition_path: Path to a chunk definition JSON file.
        output_dir:      If given, heightmap/blend PNGs, placements and
                         meta JSON are written here.
        structure_sink:  Optional callable receiving PlacementRequests.

    Returns:
        dict: {
            'chunk': DynamicTerrainChunk,
            'terrain_data': TerrainData,
            'placements': list[PlacementRequest],
            'failed': list[(PlacementRequest, Exception)],
            'files': dict or None,
        }
    """
    descriptor = load_descriptor(definition_path)
    chunk = DynamicTerrainChunk(descriptor, structure_sink)
    terrain_data = chunk.build_terrain()

    files = None
    if output_dir:
        files = export_chunk(chunk, os.path.abspath(output_dir))

    return {
        'chunk': chunk,
        'terrain_data': terrain_data,
        'placements': chunk.placement_report.requests,
        'failed': chunk.placement_report.failed,
        'files': files,
    }
