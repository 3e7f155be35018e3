"""
Height field generation from an equirectangular height texture.

Every grid point of the chunk is turned into an orientation by composing
the chunk's own orientation with a small local angular offset, projected to
UV and sampled from the shared height texture.  Chunks never need to know
about their neighbours; the price is that adjacent chunk edges do not match
exactly (seams are not corrected here).
"""

import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for height_field. "
        "Install it with: pip install numpy"
    )

from .coord_helper import euler_rotation, rotation_to_uv


def normalized_grid(resolution):
    """
    Return (x_pos, y_pos) arrays of shape (resolution, resolution), indexed
    ``[x, y]``, holding x / resolution and y / resolution (so 0..1 exclusive).
    """
    steps = np.arange(resolution, dtype=np.float64) / resolution
    return np.meshgrid(steps, steps, indexing='ij')


def local_offsets(resolution, degrees_per_chunk):
    """
    Stacked rotation of the per-point offsets from the chunk center.

    Point (x, y) is pitched by ``x_pos * dpc - dpc / 2`` and yawed by
    ``y_pos * dpc - dpc / 2``; entries are in ``[x, y]`` C order.
    """
    half = degrees_per_chunk / 2.0
    x_pos, y_pos = normalized_grid(resolution)
    return euler_rotation(x_pos * degrees_per_chunk - half,
                          y_pos * degrees_per_chunk - half)


class HeightFieldGenerator:
    """Samples a chunk's height grid through the orientation projector."""

    def __init__(self, descriptor):
        self.descriptor = descriptor

    def sample_uvs(self, resolution=None):
        """
        UV of every grid point.

        Returns:
            (u, v) arrays of shape (resolution, resolution), indexed [x, y].
        """
        if resolution is None:
            resolution = self.descriptor.heightmap_resolution
        offsets = local_offsets(resolution, self.descriptor.degrees_per_chunk)
        points = self.descriptor.chunk_rotation * offsets
        u, v = rotation_to_uv(points)
        shape = (resolution, resolution)
        return u.reshape(shape), v.reshape(shape)

    def generate(self, resolution=None):
        """
        Build the height field.

        Returns:
            float64 array (resolution, resolution) indexed [x, y], values in
            [0, 1 / height_dampening].
        """
        u, v = self.sample_uvs(resolution)
        gray = self.descriptor.height_map.grayscale_bilinear(u, v)
        heights = gray / self.descriptor.height_dampening
        log.debug("Height field for '%s': %dx%d, range %.4f..%.4f",
                  self.descriptor.name, heights.shape[0], heights.shape[1],
                  float(heights.min()), float(heights.max()))
        return heights


def generate_height_field(descriptor):
    """Convenience wrapper around HeightFieldGenerator.generate()."""
    return HeightFieldGenerator(descriptor).generate()
