"""
In-memory terrain storage.

TerrainData is the hand-off point between chunk generation and whatever
renders or collides with the terrain: it owns copies of the finished
height and blend grids plus the resolution/size metadata they belong to.
"""

import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for terrain_data. "
        "Install it with: pip install numpy"
    )

from .slope_painter import height_gradient, sample_steepness


class SplatPrototype:
    """A registered surface texture and its tiling size (width, length)."""

    __slots__ = ('texture', 'tile_size')

    def __init__(self, texture, tile_size):
        self.texture = texture
        self.tile_size = tuple(tile_size)

    def __repr__(self):
        return "SplatPrototype({!r}, {})".format(self.texture, self.tile_size)


class TerrainData:
    """
    Height, splat and blend storage for one chunk.

    Set the resolutions before ``set_size``; the size is width (x),
    height (vertical) and length (z) in world units.
    ``placement_report`` holds the PlacementReport of the build that filled
    it, if any.
    """

    def __init__(self):
        self.heightmap_resolution = 33
        self.alphamap_resolution = 512
        self.base_map_resolution = 513
        self.detail_resolution = 1024
        self.detail_resolution_per_patch = 32
        self.size = (1.0, 1.0, 1.0)
        self.splat_prototypes = []
        self.neighbors = {'left': None, 'top': None, 'right': None, 'bottom': None}
        self.placement_report = None
        self._heights = None
        self._alphamaps = None

    def __repr__(self):
        return "TerrainData(heightmap={0}x{0}, alphamap={1}x{1}, size={2})".format(
            self.heightmap_resolution, self.alphamap_resolution, self.size)

    # ------------------------------------------------------------------
    # Resolution / size
    # ------------------------------------------------------------------

    def set_detail_resolution(self, detail_resolution, resolution_per_patch):
        self.detail_resolution = detail_resolution
        self.detail_resolution_per_patch = resolution_per_patch

    def set_size(self, width, height, length):
        self.size = (float(width), float(height), float(length))

    def heightmap_scale(self):
        """World distance between neighbouring height samples (x, y, z)."""
        cells = float(self.heightmap_resolution - 1)
        return (self.size[0] / cells, self.size[1], self.size[2] / cells)

    # ------------------------------------------------------------------
    # Heights
    # ------------------------------------------------------------------

    def get_heights(self):
        """Copy of the height grid ([x, y]); zeros if none set yet."""
        if self._heights is None:
            return np.zeros((self.heightmap_resolution, self.heightmap_resolution))
        return self._heights.copy()

    def set_heights(self, heights):
        heights = np.array(heights, dtype=np.float64)
        expected = (self.heightmap_resolution, self.heightmap_resolution)
        if heights.shape != expected:
            raise ValueError(
                "Height grid shape {} does not match heightmap resolution {}".format(
                    heights.shape, expected))
        self._heights = heights

    # ------------------------------------------------------------------
    # Splats / blend
    # ------------------------------------------------------------------

    def get_alphamaps(self):
        """Copy of the blend grid ([x, y, layer]); zeros if none set yet."""
        if self._alphamaps is None:
            return np.zeros((self.alphamap_resolution, self.alphamap_resolution,
                             len(self.splat_prototypes)))
        return self._alphamaps.copy()

    def set_alphamaps(self, alphamaps):
        alphamaps = np.array(alphamaps, dtype=np.float64)
        expected = (self.alphamap_resolution, self.alphamap_resolution,
                    len(self.splat_prototypes))
        if alphamaps.shape != expected:
            raise ValueError(
                "Blend grid shape {} does not match {} (alphamap resolution, "
                "splat count)".format(alphamaps.shape, expected))
        self._alphamaps = alphamaps

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_steepness(self, norm_x, norm_y):
        """Steepness in degrees at a normalised (0..1) position."""
        grad_x, grad_y = height_gradient(self.get_heights(),
                                         (self.size[0], self.size[2]),
                                         self.size[1])
        angle = sample_steepness(grad_x, grad_y,
                                 np.atleast_1d(norm_x), np.atleast_1d(norm_y))
        return float(angle[0])

    def set_neighbors(self, left, top, right, bottom):
        """
        Record adjacent terrain for level-of-detail hinting.  None means
        there is no chunk on that side.  Geometry is left untouched.
        """
        self.neighbors = {
            'left': left,
            'top': top,
            'right': right,
            'bottom': bottom,
        }
        log.debug("Neighbours set: %s",
                  ", ".join(side for side, t in sorted(self.neighbors.items())
                            if t is not None) or "none")
