"""
Color-coded structure placement.

Scans a structure map texture pixel by pixel.  Opaque pixels whose RGB
exactly matches a palette entry are projected onto the sphere and, if they
fall inside the chunk's angular bounds, turned into a PlacementRequest that
is handed to an instantiation sink.

Bounds test: pitch and yaw of the pixel and of the chunk center are each
taken in [0, 360) and subtracted.  Only a difference above +180 is folded
back (minus 360); a difference below -180 is left alone, so a chunk just
below 360 degrees does not see pixels just above 0.  That behaviour is
kept as is in :func:`fold_positive_wraparound`.

Placement position: in ``legacy`` mode every request sits at the chunk
origin with identity rotation.  ``derived`` mode places the structure at
the pixel's location in the chunk's flat grid instead.
"""

import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for structure_placer. "
        "Install it with: pip install numpy"
    )

from .coord_helper import uv_to_rotation, euler_angles
from .chunk_descriptor import PLACEMENT_DERIVED

# Pixels with alpha below this (out of 255) hold no structure
ALPHA_THRESHOLD = 128

ZERO_POSITION = (0.0, 0.0, 0.0)
IDENTITY_ROTATION = (0.0, 0.0, 0.0, 1.0)


# ---------------------------------------------------------------------------
# Data holders
# ---------------------------------------------------------------------------

class PlacementRequest:
    """
    One structure to instantiate.

    Attributes:
        structure:      Structure identifier from the palette entry.
        position:       Local (x, y, z) position inside the chunk.
        rotation:       Local rotation quaternion (x, y, z, w).
        pixel:          (x, y) of the source structure-map pixel.
        uv:             (u, v) of that pixel.
        angular_offset: (pitch_delta, yaw_delta) from the chunk center, degrees.
    """

    __slots__ = ('structure', 'position', 'rotation', 'pixel', 'uv',
                 'angular_offset')

    def __init__(self, structure, position=ZERO_POSITION,
                 rotation=IDENTITY_ROTATION, pixel=None, uv=None,
                 angular_offset=None):
        self.structure = structure
        self.position = tuple(position)
        self.rotation = tuple(rotation)
        self.pixel = pixel
        self.uv = uv
        self.angular_offset = angular_offset

    def __repr__(self):
        return "PlacementRequest({!r}, pixel={}, position={})".format(
            self.structure, self.pixel, self.position)

    def to_dict(self):
        return {
            'structure': self.structure,
            'position': list(self.position),
            'rotation': list(self.rotation),
            'pixel': list(self.pixel) if self.pixel is not None else None,
            'uv': list(self.uv) if self.uv is not None else None,
            'angular_offset': (list(self.angular_offset)
                               if self.angular_offset is not None else None),
        }


class PlacementReport:
    """
    Outcome of one structure-map scan.

    Attributes:
        requests: Every PlacementRequest emitted, in scan order.
        placed:   (request, instance) pairs the sink accepted.
        failed:   (request, exception) pairs the sink rejected.
        scanned:  Number of pixels that passed the alpha test.
        matched:  Number of those whose color matched the palette.
    """

    def __init__(self):
        self.requests = []
        self.placed = []
        self.failed = []
        self.scanned = 0
        self.matched = 0

    def __repr__(self):
        return "PlacementReport(requests={}, placed={}, failed={})".format(
            len(self.requests), len(self.placed), len(self.failed))


class StructureRegistry:
    """
    Instantiation sink mapping structure identifiers to factories.

    Calling the registry with a PlacementRequest runs the matching factory
    and keeps the result in ``instances``.  Unknown identifiers raise
    KeyError.
    """

    def __init__(self, factories=None):
        self.factories = dict(factories or {})
        self.instances = []

    def register(self, structure, factory):
        self.factories[structure] = factory

    def __call__(self, request):
        try:
            factory = self.factories[request.structure]
        except KeyError:
            raise KeyError(
                "No factory registered for structure {!r}".format(request.structure))
        instance = factory(request)
        self.instances.append(instance)
        return instance


# ---------------------------------------------------------------------------
# Bounds helpers
# ---------------------------------------------------------------------------

def fold_positive_wraparound(delta):
    """
    Fold an angle difference from (180, 360) down to (-180, 0).

    Differences at or below -180 are returned unchanged.
    """
    if delta > 180.0:
        return delta - 360.0
    return delta


def angular_offset(rotation, chunk_rotation):
    """(pitch_delta, yaw_delta) of *rotation* relative to *chunk_rotation*."""
    pitch, yaw, _ = euler_angles(rotation)
    chunk_pitch, chunk_yaw, _ = euler_angles(chunk_rotation)
    return (fold_positive_wraparound(pitch - chunk_pitch),
            fold_positive_wraparound(yaw - chunk_yaw))


def is_within_chunk(pitch_delta, yaw_delta, degrees_per_chunk):
    """True unless either delta is more than half a chunk away."""
    half = degrees_per_chunk / 2.0
    return not (abs(pitch_delta) > half or abs(yaw_delta) > half)


def match_structure_color(structure_colors, r, g, b):
    """First palette entry with this exact RGB, or None."""
    for entry in structure_colors:
        if entry.matches(r, g, b):
            return entry
    return None


# ---------------------------------------------------------------------------
# Placer
# ---------------------------------------------------------------------------

class StructurePlacer:
    """
    Places the structures of one chunk.

    Args:
        descriptor: ChunkDescriptor providing the structure map, palette,
                    chunk orientation and size.
        sink:       Optional callable receiving each PlacementRequest.
    """

    def __init__(self, descriptor, sink=None):
        self.descriptor = descriptor
        self.sink = sink

    def candidate_pixels(self, pixels):
        """
        (x, y) of every pixel with alpha >= ALPHA_THRESHOLD, x outer, y inner.

        Args:
            pixels: uint8 array (height, width, 4) indexed [y, x].
        """
        opaque = pixels[..., 3] >= ALPHA_THRESHOLD
        xs, ys = np.nonzero(opaque.T)
        return list(zip(xs.tolist(), ys.tolist()))

    def local_position(self, pitch_delta, yaw_delta):
        """Position of an angular offset within the chunk's flat grid."""
        if self.descriptor.placement_mode != PLACEMENT_DERIVED:
            return ZERO_POSITION
        dpc = self.descriptor.degrees_per_chunk
        size = self.descriptor.world_units_per_chunk
        return ((pitch_delta / dpc + 0.5) * size,
                0.0,
                (yaw_delta / dpc + 0.5) * size)

    def place_all(self):
        """
        Scan the whole structure map.

        Returns:
            PlacementReport.  An empty report if the chunk has no structure
            map or no palette.
        """
        report = PlacementReport()
        texture = self.descriptor.structure_map
        if texture is None or not self.descriptor.structure_colors:
            log.debug("Chunk '%s' has no structure map or palette",
                      self.descriptor.name)
            return report

        pixels = texture.get_pixels32()
        width, height = texture.width, texture.height

        for x, y in self.candidate_pixels(pixels):
            report.scanned += 1
            r, g, b, a = (int(c) for c in pixels[y, x])
            log.debug("Not transparent: (%d, %d) = (%d, %d, %d, %d)",
                      x, y, r, g, b, a)

            entry = match_structure_color(self.descriptor.structure_colors, r, g, b)
            if entry is None:
                continue
            report.matched += 1
            log.debug("Color match at (%d, %d): %r", x, y, entry.structure)

            u = x / float(width)
            v = y / float(height)
            rotation = uv_to_rotation(u, v)
            pitch_delta, yaw_delta = angular_offset(
                rotation, self.descriptor.chunk_rotation)

            if not is_within_chunk(pitch_delta, yaw_delta,
                                   self.descriptor.degrees_per_chunk):
                continue

            request = PlacementRequest(
                entry.structure,
                position=self.local_position(pitch_delta, yaw_delta),
                rotation=IDENTITY_ROTATION,
                pixel=(x, y),
                uv=(u, v),
                angular_offset=(pitch_delta, yaw_delta),
            )
            report.requests.append(request)
            self._dispatch(request, report)

        log.info("Chunk '%s': %d structure(s) requested, %d failed",
                 self.descriptor.name, len(report.requests), len(report.failed))
        return report

    def _dispatch(self, request, report):
        if self.sink is None:
            return
        try:
            instance = self.sink(request)
        except Exception as e:
            log.exception("Failed to instantiate %r at pixel %s",
                          request.structure, request.pixel)
            report.failed.append((request, e))
            return
        report.placed.append((request, instance))


def place_structures(descriptor, sink=None):
    """Convenience wrapper around StructurePlacer.place_all()."""
    return StructurePlacer(descriptor, sink).place_all()
