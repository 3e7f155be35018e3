"""
Writes built chunks to disk as compact PNG + JSON files.

Output layout for one chunk::

    <output_dir>/
        heightmap.png     16-bit grayscale, one pixel per height sample
        blend.png         8-bit RGB(A), band i = splat channel i
        placements.json   list of placement requests
        meta.json         chunk definition plus height range

Images are written top row first with x to the right and y up, so the
PNGs look the way the chunk does from above.
"""

import os
import logging

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for chunk_exporter. "
        "Install it with: pip install numpy"
    )

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for chunk_exporter.  "
        "Install with: pip install Pillow"
    )

from .chunk_descriptor import save_json, load_json

HEIGHTMAP_FILENAME = 'heightmap.png'
BLEND_FILENAME = 'blend.png'
PLACEMENTS_FILENAME = 'placements.json'
META_FILENAME = 'meta.json'

_UINT16_MAX = 65535


def _ensure_parent(filepath):
    parent = os.path.dirname(filepath)
    if parent and not os.path.exists(parent):
        os.makedirs(parent)


def _grid_to_image_rows(grid):
    """[x, y] grid -> [row, col] image array with y = 0 at the bottom."""
    return np.ascontiguousarray(np.flipud(np.swapaxes(grid, 0, 1)))


def _image_rows_to_grid(rows):
    return np.ascontiguousarray(np.swapaxes(np.flipud(rows), 0, 1))


# ---------------------------------------------------------------------------
# Heightmap
# ---------------------------------------------------------------------------

def write_heightmap_png(heights, filepath):
    """
    Write a height grid (values 0..1, indexed [x, y]) as 16-bit grayscale.

    Returns:
        str: *filepath*.
    """
    heights = np.clip(np.asarray(heights, dtype=np.float64), 0.0, 1.0)
    data = np.round(heights * _UINT16_MAX).astype(np.uint16)
    _ensure_parent(filepath)
    Image.fromarray(_grid_to_image_rows(data)).save(filepath, 'PNG')
    log.info("Wrote heightmap %s (%dx%d)", filepath, heights.shape[0],
             heights.shape[1])
    return filepath


def read_heightmap_png(filepath):
    """Read a PNG written by write_heightmap_png back into a [x, y] grid."""
    with Image.open(filepath) as img:
        rows = np.asarray(img, dtype=np.float64)
    if rows.ndim == 3:
        rows = rows[..., 0]
    return _image_rows_to_grid(rows) / _UINT16_MAX


# ---------------------------------------------------------------------------
# Blend map
# ---------------------------------------------------------------------------

def write_blend_png(blend, filepath):
    """
    Write a blend grid (indexed [x, y, channel], up to 4 channels) as an
    8-bit image.  Channels map to R, G, B, A; unused colour bands are 0.
    """
    blend = np.clip(np.asarray(blend, dtype=np.float64), 0.0, 1.0)
    channels = blend.shape[2]
    if channels > 4:
        raise ValueError(
            "Blend PNG holds at most 4 channels, got {}".format(channels))

    bands = 4 if channels == 4 else 3
    data = np.zeros(blend.shape[:2] + (bands,), dtype=np.uint8)
    data[..., :channels] = np.round(blend * 255.0).astype(np.uint8)

    _ensure_parent(filepath)
    Image.fromarray(_grid_to_image_rows(data)).save(filepath, 'PNG')
    log.info("Wrote blend map %s (%dx%d, %d channel(s))", filepath,
             blend.shape[0], blend.shape[1], channels)
    return filepath


def read_blend_png(filepath, channels=2):
    """Read the first *channels* bands of a blend PNG as a [x, y, c] grid."""
    with Image.open(filepath) as img:
        rows = np.asarray(img, dtype=np.float64)
    return _image_rows_to_grid(rows[..., :channels]) / 255.0


# ---------------------------------------------------------------------------
# Placements / bundle
# ---------------------------------------------------------------------------

def write_placements_json(requests, filepath):
    save_json(filepath, [r.to_dict() for r in requests])
    log.info("Wrote %d placement(s) to %s", len(requests), filepath)
    return filepath


def read_placements_json(filepath):
    """Placement requests as plain dicts."""
    return load_json(filepath)


def export_chunk(chunk, output_dir):
    """
    Write every output of a built DynamicTerrainChunk.

    Args:
        chunk:      A DynamicTerrainChunk after build_terrain().
        output_dir: Destination directory (created if missing).

    Returns:
        dict: {'heightmap', 'blend', 'placements', 'meta'} -> file path.
    """
    if chunk.terrain_data is None:
        raise RuntimeError(
            "Chunk {!r} has not been built yet".format(chunk.descriptor.name))

    if not os.path.exists(output_dir):
        os.makedirs(output_dir)

    terrain_data = chunk.terrain_data
    heights = terrain_data.get_heights()
    requests = chunk.placement_report.requests if chunk.placement_report else []

    paths = {
        'heightmap': write_heightmap_png(
            heights, os.path.join(output_dir, HEIGHTMAP_FILENAME)),
        'blend': write_blend_png(
            terrain_data.get_alphamaps(), os.path.join(output_dir, BLEND_FILENAME)),
        'placements': write_placements_json(
            requests, os.path.join(output_dir, PLACEMENTS_FILENAME)),
    }

    meta = chunk.descriptor.to_dict()
    meta['height_min'] = float(heights.min())
    meta['height_max'] = float(heights.max())
    meta['terrain_size'] = list(terrain_data.size)
    meta['structure_count'] = len(requests)
    meta_path = os.path.join(output_dir, META_FILENAME)
    save_json(meta_path, meta)
    paths['meta'] = meta_path

    log.info("Exported chunk '%s' to %s", chunk.descriptor.name, output_dir)
    return paths
