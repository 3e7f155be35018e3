"""
Chunk descriptors: the immutable per-chunk build configuration.

A descriptor is created once by whatever lays out the planet's chunk grid
and is never modified afterwards.  It can be built in code or loaded from a
JSON chunk definition::

    {
        "name": "chunk_0_0",
        "chunk_rotation": {"pitch": 0, "yaw": 0, "roll": 0},
        "degrees_per_chunk": 10.0,
        "world_units_per_chunk": 1000.0,
        "height_dampening": 2.0,
        "heightmap_resolution": 129,
        "alphamap_resolution": 512,
        "terrain_height": 512,
        "placement_mode": "legacy",
        "height_map": "heightmap.png",
        "structure_map": "structures.png",
        "splats": [{"texture": "ground.png", "size": 15},
                   {"texture": "cliff.png", "size": 15}],
        "structure_colors": [{"color": [255, 0, 0], "structure": "castle"}]
    }

``chunk_rotation`` may also be given as ``{"quaternion": [x, y, z, w]}``.
Relative image paths resolve against the definition file's directory.
"""

import os
import json
import numbers
import logging

log = logging.getLogger(__name__)

try:
    from scipy.spatial.transform import Rotation
except ImportError:
    raise ImportError(
        "scipy is required for chunk_descriptor. "
        "Install it with: pip install scipy"
    )

from .coord_helper import euler_rotation, euler_angles
from .texture_sampler import Texture


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_HEIGHT_DAMPENING = 2.0
DEFAULT_HEIGHTMAP_RESOLUTION = 128 + 1
DEFAULT_ALPHAMAP_RESOLUTION = 512
DEFAULT_BASE_MAP_RESOLUTION = 512 + 1
DEFAULT_DETAIL_RESOLUTION = 1024
DEFAULT_DETAIL_RESOLUTION_PER_PATCH = 32
DEFAULT_TERRAIN_HEIGHT = 512.0

PLACEMENT_LEGACY = 'legacy'
PLACEMENT_DERIVED = 'derived'
PLACEMENT_MODES = (PLACEMENT_LEGACY, PLACEMENT_DERIVED)

# Index 0 = ground, index 1 = cliff
REQUIRED_SPLAT_COUNT = 2


class ChunkConfigError(ValueError):
    """Malformed chunk configuration; raised before any sampling starts."""


def is_power_of_two_plus_one(value):
    """True for 3, 5, 9, 17, ... 129, 257, 513, ..."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        return False
    value = int(value)
    if value < 3:
        return False
    n = value - 1
    return n & (n - 1) == 0


# ---------------------------------------------------------------------------
# JSON I/O helpers
# ---------------------------------------------------------------------------

def load_json(filepath):
    """Load and parse a JSON file."""
    with open(filepath, 'r') as f:
        return json.load(f)


def save_json(filepath, data, indent=2):
    """
    Write a dict to a JSON file, creating parent directories as needed.

    Args:
        filepath: Destination file path.
        data: Dict (or list) to serialize.
        indent: JSON indentation level (default 2).
    """
    parent = os.path.dirname(filepath)
    if parent and not os.path.exists(parent):
        os.makedirs(parent)
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=indent)


# ---------------------------------------------------------------------------
# Palette / splat entries
# ---------------------------------------------------------------------------

class SplatDefinition:
    """
    One terrain surface layer.

    Attributes:
        texture: Texture path (or Texture) used for rendering.
        size:    Tile size in world units.
    """

    __slots__ = ('texture', 'size')

    def __init__(self, texture, size):
        self.texture = texture
        self.size = float(size)

    def __repr__(self):
        return "SplatDefinition({!r}, {})".format(self.texture, self.size)

    def to_dict(self):
        texture = self.texture
        if isinstance(texture, Texture):
            texture = texture.name
        return {'texture': texture, 'size': self.size}


class StructureColor:
    """
    Structure-map palette entry: an exact RGB color and what to spawn for it.

    Attributes:
        color:     (r, g, b) tuple of 0..255 ints.
        structure: Structure identifier / prefab reference.
    """

    __slots__ = ('color', 'structure')

    def __init__(self, color, structure):
        color = tuple(int(c) for c in color)
        if len(color) < 3:
            raise ChunkConfigError(
                "Structure color needs r, g, b components: {!r}".format(color))
        color = color[:3]
        for c in color:
            if not 0 <= c <= 255:
                raise ChunkConfigError(
                    "Structure color component out of range: {!r}".format(color))
        self.color = color
        self.structure = structure

    def __repr__(self):
        return "StructureColor({}, {!r})".format(self.color, self.structure)

    def matches(self, r, g, b):
        """Exact RGB comparison; alpha plays no part."""
        return self.color[0] == r and self.color[1] == g and self.color[2] == b

    def to_dict(self):
        return {'color': list(self.color), 'structure': self.structure}


# ---------------------------------------------------------------------------
# ChunkDescriptor
# ---------------------------------------------------------------------------

class ChunkDescriptor:
    """
    Immutable configuration for building one terrain chunk.

    Attributes:
        chunk_rotation:        Rotation whose forward axis points at the
                               chunk's center on the sphere.
        degrees_per_chunk:     Angular width/height the chunk grid spans.
        world_units_per_chunk: Flat-space width/length of the chunk.
        height_map:            Equirectangular height Texture.
        structure_map:         Color-coded structure Texture, or None.
        splats:                Tuple of SplatDefinition (ground, cliff).
        structure_colors:      Tuple of StructureColor, first match wins.
        height_dampening:      Heights are divided by this (larger = flatter).
        heightmap_resolution:  Height grid edge length, 2^k + 1.
        alphamap_resolution:   Blend grid edge length.
        base_map_resolution:   Distant composite texture resolution.
        detail_resolution:     Detail (grass etc.) map resolution.
        detail_resolution_per_patch: Detail patch size.
        terrain_height:        Vertical world size of a height of 1.0.
        placement_mode:        'legacy' (zero offset) or 'derived'.
        name:                  Label for logging and export.
    """

    __slots__ = (
        'chunk_rotation', 'degrees_per_chunk', 'world_units_per_chunk',
        'height_map', 'structure_map', 'splats', 'structure_colors',
        'height_dampening', 'heightmap_resolution', 'alphamap_resolution',
        'base_map_resolution', 'detail_resolution',
        'detail_resolution_per_patch', 'terrain_height', 'placement_mode',
        'name',
    )

    def __init__(self, chunk_rotation, degrees_per_chunk, world_units_per_chunk,
                 height_map, structure_map=None, splats=(), structure_colors=(),
                 height_dampening=DEFAULT_HEIGHT_DAMPENING,
                 heightmap_resolution=DEFAULT_HEIGHTMAP_RESOLUTION,
                 alphamap_resolution=DEFAULT_ALPHAMAP_RESOLUTION,
                 base_map_resolution=DEFAULT_BASE_MAP_RESOLUTION,
                 detail_resolution=DEFAULT_DETAIL_RESOLUTION,
                 detail_resolution_per_patch=DEFAULT_DETAIL_RESOLUTION_PER_PATCH,
                 terrain_height=DEFAULT_TERRAIN_HEIGHT,
                 placement_mode=PLACEMENT_LEGACY, name='chunk'):
        if chunk_rotation is None:
            chunk_rotation = Rotation.identity()
        _set = object.__setattr__
        _set(self, 'chunk_rotation', chunk_rotation)
        _set(self, 'degrees_per_chunk', float(degrees_per_chunk))
        _set(self, 'world_units_per_chunk', float(world_units_per_chunk))
        _set(self, 'height_map', height_map)
        _set(self, 'structure_map', structure_map)
        _set(self, 'splats', tuple(splats))
        _set(self, 'structure_colors', tuple(structure_colors))
        _set(self, 'height_dampening', float(height_dampening))
        _set(self, 'heightmap_resolution', heightmap_resolution)
        _set(self, 'alphamap_resolution', alphamap_resolution)
        _set(self, 'base_map_resolution', base_map_resolution)
        _set(self, 'detail_resolution', detail_resolution)
        _set(self, 'detail_resolution_per_patch', detail_resolution_per_patch)
        _set(self, 'terrain_height', float(terrain_height))
        _set(self, 'placement_mode', placement_mode)
        _set(self, 'name', name)

    def __setattr__(self, key, value):
        raise AttributeError(
            "ChunkDescriptor is immutable (tried to set {!r})".format(key))

    def __repr__(self):
        pitch, yaw, _ = euler_angles(self.chunk_rotation)
        return "ChunkDescriptor({!r}, pitch={:.3f}, yaw={:.3f}, {} deg)".format(
            self.name, pitch, yaw, self.degrees_per_chunk)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self):
        """
        Check the descriptor before any sampling happens.

        Raises:
            ChunkConfigError: On the first problem found.
        """
        if not self.degrees_per_chunk > 0:
            raise ChunkConfigError(
                "degrees_per_chunk must be positive, got {}".format(
                    self.degrees_per_chunk))
        if not self.world_units_per_chunk > 0:
            raise ChunkConfigError(
                "world_units_per_chunk must be positive, got {}".format(
                    self.world_units_per_chunk))
        if not self.height_dampening > 0:
            raise ChunkConfigError(
                "height_dampening must be positive, got {}".format(
                    self.height_dampening))
        if not self.terrain_height > 0:
            raise ChunkConfigError(
                "terrain_height must be positive, got {}".format(
                    self.terrain_height))
        if not is_power_of_two_plus_one(self.heightmap_resolution):
            raise ChunkConfigError(
                "heightmap_resolution must be a power of two plus one "
                "(e.g. 129), got {!r}".format(self.heightmap_resolution))
        if (not isinstance(self.alphamap_resolution, numbers.Integral)
                or self.alphamap_resolution < 1):
            raise ChunkConfigError(
                "alphamap_resolution must be a positive integer, got {!r}".format(
                    self.alphamap_resolution))
        if self.placement_mode not in PLACEMENT_MODES:
            raise ChunkConfigError(
                "Unknown placement_mode {!r} (expected one of {})".format(
                    self.placement_mode, ", ".join(PLACEMENT_MODES)))
        if self.height_map is None:
            raise ChunkConfigError("Chunk {!r} has no height map".format(self.name))
        self.validate_splats()

    def validate_splats(self):
        """Blend painting writes exactly two channels: ground and cliff."""
        if len(self.splats) != REQUIRED_SPLAT_COUNT:
            raise ChunkConfigError(
                "Slope painting needs exactly {} splats (ground, cliff), "
                "chunk {!r} has {}".format(
                    REQUIRED_SPLAT_COUNT, self.name, len(self.splats)))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data, base_dir=None):
        """
        Build a descriptor from a chunk definition dict.

        Args:
            data:     Parsed chunk definition (see module docstring).
            base_dir: Directory relative texture paths resolve against.

        Returns:
            ChunkDescriptor (not yet validated).
        """
        def _resolve(path):
            if path is None or os.path.isabs(path) or base_dir is None:
                return path
            return os.path.join(base_dir, path)

        try:
            degrees_per_chunk = data['degrees_per_chunk']
            world_units_per_chunk = data['world_units_per_chunk']
            height_map_path = data['height_map']
        except KeyError as e:
            raise ChunkConfigError(
                "Chunk definition is missing required key {}".format(e))

        height_map = Texture.load(_resolve(height_map_path))
        structure_map = None
        if data.get('structure_map'):
            structure_map = Texture.load(_resolve(data['structure_map']))

        for texture in (height_map, structure_map):
            if texture is not None and texture.width != 2 * texture.height:
                log.warning("%s is %dx%d, not 2:1 equirectangular; "
                            "pixels will be stretched", texture.name,
                            texture.width, texture.height)

        splats = [SplatDefinition(s['texture'], s.get('size', 15.0))
                  for s in data.get('splats', [])]
        structure_colors = [StructureColor(s['color'], s['structure'])
                            for s in data.get('structure_colors', [])]

        return cls(
            chunk_rotation=rotation_from_dict(data.get('chunk_rotation')),
            degrees_per_chunk=degrees_per_chunk,
            world_units_per_chunk=world_units_per_chunk,
            height_map=height_map,
            structure_map=structure_map,
            splats=splats,
            structure_colors=structure_colors,
            height_dampening=data.get('height_dampening', DEFAULT_HEIGHT_DAMPENING),
            heightmap_resolution=data.get('heightmap_resolution',
                                          DEFAULT_HEIGHTMAP_RESOLUTION),
            alphamap_resolution=data.get('alphamap_resolution',
                                         DEFAULT_ALPHAMAP_RESOLUTION),
            base_map_resolution=data.get('base_map_resolution',
                                         DEFAULT_BASE_MAP_RESOLUTION),
            detail_resolution=data.get('detail_resolution',
                                       DEFAULT_DETAIL_RESOLUTION),
            detail_resolution_per_patch=data.get(
                'detail_resolution_per_patch', DEFAULT_DETAIL_RESOLUTION_PER_PATCH),
            terrain_height=data.get('terrain_height', DEFAULT_TERRAIN_HEIGHT),
            placement_mode=data.get('placement_mode', PLACEMENT_LEGACY),
            name=data.get('name', 'chunk'),
        )

    def to_dict(self):
        """Serializable form; textures are written as their source names."""
        structure_map = self.structure_map.name if self.structure_map else None
        return {
            'name': self.name,
            'chunk_rotation': {
                'quaternion': [float(c) for c in self.chunk_rotation.as_quat()],
            },
            'degrees_per_chunk': self.degrees_per_chunk,
            'world_units_per_chunk': self.world_units_per_chunk,
            'height_dampening': self.height_dampening,
            'heightmap_resolution': self.heightmap_resolution,
            'alphamap_resolution': self.alphamap_resolution,
            'base_map_resolution': self.base_map_resolution,
            'detail_resolution': self.detail_resolution,
            'detail_resolution_per_patch': self.detail_resolution_per_patch,
            'terrain_height': self.terrain_height,
            'placement_mode': self.placement_mode,
            'height_map': self.height_map.name if self.height_map else None,
            'structure_map': structure_map,
            'splats': [s.to_dict() for s in self.splats],
            'structure_colors': [s.to_dict() for s in self.structure_colors],
        }


def rotation_from_dict(data):
    """
    Parse a chunk_rotation entry: None (identity), euler degrees
    ``{"pitch", "yaw", "roll"}`` or ``{"quaternion": [x, y, z, w]}``.
    """
    if data is None:
        return Rotation.identity()
    if 'quaternion' in data:
        quat = data['quaternion']
        if len(quat) != 4:
            raise ChunkConfigError(
                "chunk_rotation quaternion needs 4 components, got {!r}".format(quat))
        return Rotation.from_quat(quat)
    return euler_rotation(data.get('pitch', 0.0), data.get('yaw', 0.0),
                          data.get('roll', 0.0))


def load_descriptor(filepath):
    """Load a chunk definition JSON file into a validated ChunkDescriptor."""
    data = load_json(filepath)
    base_dir = os.path.dirname(os.path.abspath(filepath))
    descriptor = ChunkDescriptor.from_dict(data, base_dir=base_dir)
    descriptor.validate()
    log.info("Loaded chunk definition '%s' from %s", descriptor.name, filepath)
    return descriptor


def save_descriptor(descriptor, filepath):
    """Write *descriptor* as a chunk definition JSON file."""
    save_json(filepath, descriptor.to_dict())
    log.info("Saved chunk definition '%s' to %s", descriptor.name, filepath)
