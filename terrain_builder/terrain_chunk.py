"""
Chunk assembly: builds the terrain data for one chunk of a spherical planet.

Pipeline (in order):
    1. validate the descriptor (fails before any sampling)
    2. height field from the equirectangular height map
    3. splat prototypes (ground, cliff)
    4. ground/cliff blend painted from slope
    5. structures placed from the color-coded structure map

Usage:
    from terrain_builder.terrain_chunk import build_chunk

    terrain_data = build_chunk(descriptor, structure_sink=registry)
"""

import logging

log = logging.getLogger(__name__)

from .height_field import HeightFieldGenerator
from .slope_painter import SlopeBlendPainter
from .structure_placer import StructurePlacer
from .terrain_data import TerrainData, SplatPrototype


class DynamicTerrainChunk:
    """
    One terrain chunk and the pipeline that builds it.

    Attributes:
        descriptor:       The ChunkDescriptor being built.
        structure_sink:   Callable receiving PlacementRequests, or None.
        terrain_data:     TerrainData once built, else None.
        placement_report: PlacementReport from the last build, else None.
    """

    def __init__(self, descriptor, structure_sink=None):
        self.descriptor = descriptor
        self.structure_sink = structure_sink
        self.terrain_data = None
        self.placement_report = None

    def __repr__(self):
        return "DynamicTerrainChunk({!r})".format(self.descriptor.name)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_terrain(self):
        """
        Run the full pipeline.

        Returns:
            TerrainData with heights, splat prototypes and blend grid set.

        Raises:
            ChunkConfigError: If the descriptor is malformed.
        """
        self.descriptor.validate()

        terrain_data = TerrainData()
        self.build_terrain_data(terrain_data)
        self.build_splats(terrain_data)
        self.paint_cliffs(terrain_data)
        self.terrain_data = terrain_data

        self.placement_report = self.build_structures()
        terrain_data.placement_report = self.placement_report

        log.info("Built chunk '%s': %dx%d heights, %dx%d blend, %d structure(s)",
                 self.descriptor.name,
                 terrain_data.heightmap_resolution, terrain_data.heightmap_resolution,
                 terrain_data.alphamap_resolution, terrain_data.alphamap_resolution,
                 len(self.placement_report.requests))
        return terrain_data

    def build_terrain_data(self, terrain_data):
        """Set resolutions and size, then fill the height grid."""
        desc = self.descriptor
        terrain_data.heightmap_resolution = desc.heightmap_resolution
        terrain_data.alphamap_resolution = desc.alphamap_resolution
        terrain_data.base_map_resolution = desc.base_map_resolution
        terrain_data.set_detail_resolution(desc.detail_resolution,
                                           desc.detail_resolution_per_patch)
        # Size after resolution: the sample spacing derives from both
        terrain_data.set_size(desc.world_units_per_chunk, desc.terrain_height,
                              desc.world_units_per_chunk)

        heights = HeightFieldGenerator(desc).generate()
        terrain_data.set_heights(heights)

    def build_splats(self, terrain_data):
        terrain_data.splat_prototypes = [
            SplatPrototype(splat.texture, (splat.size, splat.size))
            for splat in self.descriptor.splats
        ]

    def paint_cliffs(self, terrain_data):
        painter = SlopeBlendPainter(self.descriptor)
        blend = painter.paint(terrain_data.get_heights(),
                              terrain_data.alphamap_resolution)
        terrain_data.set_alphamaps(blend)

    def build_structures(self):
        placer = StructurePlacer(self.descriptor, self.structure_sink)
        return placer.place_all()

    # ------------------------------------------------------------------
    # Neighbours
    # ------------------------------------------------------------------

    def set_neighbors(self, left, top, right, bottom):
        """
        Pass adjacent chunks' terrain to this chunk's terrain data as an
        LOD hint.  Any side may be None.  Seams between chunks are not
        corrected.
        """
        if self.terrain_data is None:
            raise RuntimeError(
                "Chunk {!r} must be built before neighbours are set".format(
                    self.descriptor.name))

        def _terrain(chunk):
            return None if chunk is None else chunk.terrain_data

        self.terrain_data.set_neighbors(_terrain(left), _terrain(top),
                                        _terrain(right), _terrain(bottom))


def build_chunk(descriptor, structure_sink=None):
    """
    Build one chunk and return its TerrainData.

    The placement report, including sink failures, is on
    ``terrain_data.placement_report``.
    """
    return DynamicTerrainChunk(descriptor, structure_sink).build_terrain()
