"""
Slope-based ground/cliff blend painting.

Steepness is the tilt of the surface normal away from vertical, taken from
finite differences of the height field in world units.  The blend map may
have a different resolution from the height field; texels are matched to
the height field by proportional position and the gradient is bilinearly
interpolated there.
"""

import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for slope_painter. "
        "Install it with: pip install numpy"
    )

try:
    from scipy.ndimage import map_coordinates
except ImportError:
    raise ImportError(
        "scipy is required for slope_painter. "
        "Install it with: pip install scipy"
    )

GROUND_CHANNEL = 0
CLIFF_CHANNEL = 1


# ===================================================================
# Steepness
# ===================================================================

def height_gradient(heights, world_size, terrain_height):
    """
    World-space height gradient of a height field.

    Args:
        heights:        2D array indexed [x, y], normalised 0..1 heights.
        world_size:     (size_x, size_y) physical extent of the grid.
        terrain_height: World height of a normalised height of 1.0.

    Returns:
        (grad_x, grad_y) arrays, rise over run along each axis.
    """
    heights = np.asarray(heights, dtype=np.float64) * terrain_height
    spacing_x = world_size[0] / float(heights.shape[0] - 1)
    spacing_y = world_size[1] / float(heights.shape[1] - 1)
    grad_x, grad_y = np.gradient(heights, spacing_x, spacing_y)
    return grad_x, grad_y


def gradient_to_angle(grad_x, grad_y):
    """Angle in degrees between the gradient's surface normal and vertical."""
    return np.degrees(np.arctan(np.hypot(grad_x, grad_y)))


def calculate_steepness(heights, world_size, terrain_height):
    """
    Per-vertex steepness in degrees (0 = flat, 90 = vertical).

    Uses numpy.gradient for finite differences.
    """
    grad_x, grad_y = height_gradient(heights, world_size, terrain_height)
    return gradient_to_angle(grad_x, grad_y)


def sample_steepness(grad_x, grad_y, norm_x, norm_y):
    """
    Steepness at normalised positions (0..1 across the grid).

    The gradient components are bilinearly interpolated before the angle is
    taken, so a larger gradient never yields a smaller angle.
    """
    norm_x = np.asarray(norm_x, dtype=np.float64)
    norm_y = np.asarray(norm_y, dtype=np.float64)
    coords = np.array([norm_x * (grad_x.shape[0] - 1),
                       norm_y * (grad_x.shape[1] - 1)])
    gx = map_coordinates(grad_x, coords, order=1, mode='nearest')
    gy = map_coordinates(grad_y, coords, order=1, mode='nearest')
    return gradient_to_angle(gx, gy)


def cliffiness_from_angle(angle):
    """0 for flat ground, 1 for a vertical cliff; clamped against noise."""
    return np.clip(np.asarray(angle, dtype=np.float64) / 90.0, 0.0, 1.0)


# ===================================================================
# Blend painter
# ===================================================================

class SlopeBlendPainter:
    """
    Paints the two-channel ground/cliff blend grid of a chunk.

    Channel 0 (ground) is ``1 - cliffiness``, channel 1 (cliff) is
    ``cliffiness``, so the two always sum to one.
    """

    def __init__(self, descriptor):
        descriptor.validate_splats()
        self.descriptor = descriptor

    def world_size(self):
        size = self.descriptor.world_units_per_chunk
        return (size, size)

    def steepness_grid(self, heights, resolution=None):
        """Steepness sampled at every blend texel, shape (res, res), [x, y]."""
        if resolution is None:
            resolution = self.descriptor.alphamap_resolution
        grad_x, grad_y = height_gradient(heights, self.world_size(),
                                         self.descriptor.terrain_height)
        steps = np.arange(resolution, dtype=np.float64) / resolution
        norm_x, norm_y = np.meshgrid(steps, steps, indexing='ij')
        return sample_steepness(grad_x, grad_y, norm_x, norm_y)

    def paint(self, heights, resolution=None):
        """
        Build the blend grid for *heights*.

        Returns:
            float64 array (res, res, 2) indexed [x, y, channel].
        """
        angle = self.steepness_grid(heights, resolution)
        cliffiness = cliffiness_from_angle(angle)

        blend = np.empty(angle.shape + (len(self.descriptor.splats),))
        blend[..., GROUND_CHANNEL] = 1.0 - cliffiness
        blend[..., CLIFF_CHANNEL] = cliffiness

        log.debug("Painted cliffs for '%s': %d texels, max steepness %.2f deg",
                  self.descriptor.name, angle.size, float(angle.max()))
        return blend


def paint_cliffs(descriptor, heights):
    """Convenience wrapper around SlopeBlendPainter.paint()."""
    return SlopeBlendPainter(descriptor).paint(heights)
