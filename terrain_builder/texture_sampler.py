"""
In-memory textures with equirectangular-aware sampling.

A :class:`Texture` holds an RGBA float image (values 0..1) whose row 0 is
the *bottom* of the picture, the same orientation texture UVs use
(v = 0 at the bottom).  Images loaded from disk via Pillow are flipped on
the way in.

Sampling rules:
    - u wraps toroidally (longitude seam)
    - v clamps to the first/last row (poles)
so sampling never fails, whatever UV it is asked for.

Dependencies:
    numpy   - pixel storage and vectorized sampling
    Pillow  - image file I/O
"""

import os
import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for texture_sampler. "
        "Install it with: pip install numpy"
    )

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for texture_sampler.  "
        "Install with: pip install Pillow"
    )


# Perceptual grayscale weights (ITU-R BT.601)
LUMINANCE_WEIGHTS = np.array([0.299, 0.587, 0.114])


# ---------------------------------------------------------------------------
# Sampling helpers
# ---------------------------------------------------------------------------

def _bilinear_sample(plane, u, v):
    """
    Bilinearly sample *plane* (H x W or H x W x C) at texel-centred UVs.

    u wraps, v clamps.  *u* and *v* may be scalars or arrays of any (equal)
    shape; the result has that shape (plus the channel axis if present).
    """
    height, width = plane.shape[:2]
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)

    x = u * width - 0.5
    y = np.clip(v * height - 0.5, 0.0, height - 1)

    x0 = np.floor(x)
    y0 = np.floor(y)
    fx = x - x0
    fy = y - y0

    x0 = x0.astype(np.int64) % width
    x1 = (x0 + 1) % width
    y0 = y0.astype(np.int64)
    y1 = np.minimum(y0 + 1, height - 1)

    if plane.ndim == 3:
        fx = fx[..., np.newaxis]
        fy = fy[..., np.newaxis]

    return (plane[y0, x0] * (1.0 - fx) * (1.0 - fy)
            + plane[y0, x1] * fx * (1.0 - fy)
            + plane[y1, x0] * (1.0 - fx) * fy
            + plane[y1, x1] * fx * fy)


def luminance(rgb):
    """Perceptual grayscale of an (..., 3+) color array."""
    rgb = np.asarray(rgb, dtype=np.float64)
    return rgb[..., :3] @ LUMINANCE_WEIGHTS


# ---------------------------------------------------------------------------
# Texture
# ---------------------------------------------------------------------------

class Texture:
    """
    Read-only RGBA texture.

    Attributes:
        pixels:  float64 array (height, width, 4), values 0..1, row 0 = bottom.
        width:   Texture width in pixels.
        height:  Texture height in pixels.
        name:    Source path or label (used for logging / export).
    """

    __slots__ = ('pixels', 'width', 'height', 'name', '_grayscale')

    def __init__(self, pixels, name=None):
        """
        Args:
            pixels: array (H, W), (H, W, 3) or (H, W, 4).  uint8 data is
                    scaled from 0..255, anything else is taken as 0..1.
                    Missing channels are filled in (gray -> RGB, alpha = 1).
            name:   Optional label.
        """
        data = np.asarray(pixels)
        if data.dtype == np.uint8:
            data = data.astype(np.float64) / 255.0
        else:
            data = data.astype(np.float64)

        if data.ndim == 2:
            data = np.repeat(data[..., np.newaxis], 3, axis=2)
        if data.ndim != 3 or data.shape[2] not in (3, 4):
            raise ValueError(
                "Texture pixels must be HxW, HxWx3 or HxWx4, got shape {}".format(
                    data.shape)
            )
        if data.shape[2] == 3:
            alpha = np.ones(data.shape[:2] + (1,))
            data = np.concatenate([data, alpha], axis=2)
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ValueError("Texture must have at least one pixel")

        data.setflags(write=False)
        self.pixels = data
        self.height, self.width = data.shape[:2]
        self.name = name
        self._grayscale = None

    def __repr__(self):
        return "Texture({!r}, {}x{})".format(self.name, self.width, self.height)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_image(cls, image, name=None):
        """Build a texture from a PIL image (top row first, as Pillow stores it)."""
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        data = np.asarray(image, dtype=np.uint8)
        return cls(np.flipud(data), name=name)

    @classmethod
    def load(cls, filepath):
        """
        Load an image file (any format Pillow reads) as a texture.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        if not os.path.isfile(filepath):
            raise FileNotFoundError(
                "Texture file not found: {}".format(filepath)
            )
        with Image.open(filepath) as img:
            img.load()
            texture = cls.from_image(img, name=filepath)
        log.info("Loaded texture: %s (%dx%d)", filepath,
                 texture.width, texture.height)
        return texture

    @classmethod
    def solid(cls, width, height, color, name=None):
        """
        Uniform texture.  *color* is an (r, g, b) or (r, g, b, a) tuple,
        integers as 0..255 bytes, floats as 0..1.
        """
        color = np.asarray(color)
        if color.dtype.kind in 'iu':
            color = color.astype(np.uint8)
        data = np.empty((height, width, len(color)), dtype=color.dtype)
        data[...] = color
        return cls(data, name=name)

    def to_image(self):
        """Convert back to a PIL RGBA image (top row first)."""
        return Image.fromarray(np.ascontiguousarray(np.flipud(self.get_pixels32())))

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def get_pixel_bilinear(self, u, v):
        """Bilinear RGBA sample, shape (..., 4)."""
        return _bilinear_sample(self.pixels, u, v)

    def grayscale_bilinear(self, u, v):
        """Bilinear sample of the luminance plane, clamped to [0, 1]."""
        if self._grayscale is None:
            self._grayscale = luminance(self.pixels)
        return np.clip(_bilinear_sample(self._grayscale, u, v), 0.0, 1.0)

    def get_pixels32(self):
        """
        Return the pixel grid as uint8 RGBA, shape (height, width, 4).

        Indexed ``[y, x]`` with y = 0 the bottom row.
        """
        return np.round(self.pixels * 255.0).astype(np.uint8)
