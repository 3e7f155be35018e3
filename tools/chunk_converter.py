#!/usr/bin/env python
"""
Chunk definition -> terrain files converter.

Builds a terrain chunk from a JSON chunk definition and writes the height
map, blend map, structure placements and metadata to a directory.  Can
also write a sample definition with synthetic textures to start from.

Usage:
  python chunk_converter.py build <chunk.json> [-o output_dir] [-v]
  python chunk_converter.py template <output_dir> [--seed N]
"""

import os
import sys
import logging
import argparse

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

import numpy as np
from PIL import Image

from terrain_builder import build_chunk_from_file
from terrain_builder.chunk_descriptor import save_json

# Synthetic template textures
_TEMPLATE_HEIGHTMAP_SIZE = (512, 256)
_TEMPLATE_STRUCTURE_SIZE = (128, 64)
_TEMPLATE_STRUCTURES = [
    ((255, 0, 0), 'castle'),
    ((0, 0, 255), 'village'),
]


# ===================================================================
# Template generation
# ===================================================================

def _synthetic_heightmap(width, height, seed):
    """Smooth random equirectangular relief, seamless across the u seam."""
    rng = np.random.RandomState(seed)
    lon = np.linspace(0.0, 2.0 * np.pi, width, endpoint=False)
    lat = np.linspace(-0.5 * np.pi, 0.5 * np.pi, height)
    lon_grid, lat_grid = np.meshgrid(lon, lat)

    relief = np.zeros((height, width))
    for octave in range(1, 6):
        phase = rng.uniform(0.0, 2.0 * np.pi, size=2)
        amplitude = 1.0 / octave
        relief += amplitude * (np.sin(octave * lon_grid + phase[0])
                               * np.cos(octave * lat_grid + phase[1]))

    relief -= relief.min()
    relief /= max(relief.max(), 1e-9)
    return Image.fromarray((relief * 255.0).astype(np.uint8))


def _synthetic_structure_map(width, height, seed):
    """Transparent map with a few color-coded structure pixels."""
    rng = np.random.RandomState(seed + 1)
    data = np.zeros((height, width, 4), dtype=np.uint8)
    for color, _ in _TEMPLATE_STRUCTURES:
        for _ in range(8):
            x = rng.randint(0, width)
            y = rng.randint(height // 4, 3 * height // 4)
            data[y, x, :3] = color
            data[y, x, 3] = 255
    return Image.fromarray(data)


def write_template(output_dir, seed=0):
    """
    Write a sample chunk definition plus the textures it references.

    Returns:
        str: Path of the written chunk definition.
    """
    if not os.path.exists(output_dir):
        os.makedirs(output_dir)

    _synthetic_heightmap(*_TEMPLATE_HEIGHTMAP_SIZE, seed=seed).save(
        os.path.join(output_dir, 'heightmap.png'), 'PNG')
    _synthetic_structure_map(*_TEMPLATE_STRUCTURE_SIZE, seed=seed).save(
        os.path.join(output_dir, 'structures.png'), 'PNG')

    definition = {
        'name': 'chunk_0_0',
        'chunk_rotation': {'pitch': 0.0, 'yaw': 0.0, 'roll': 0.0},
        'degrees_per_chunk': 30.0,
        'world_units_per_chunk': 1000.0,
        'height_dampening': 2.0,
        'heightmap_resolution': 129,
        'alphamap_resolution': 128,
        'terrain_height': 512.0,
        'placement_mode': 'legacy',
        'height_map': 'heightmap.png',
        'structure_map': 'structures.png',
        'splats': [
            {'texture': 'ground.png', 'size': 15},
            {'texture': 'cliff.png', 'size': 15},
        ],
        'structure_colors': [
            {'color': list(color), 'structure': name}
            for color, name in _TEMPLATE_STRUCTURES
        ],
    }
    path = os.path.join(output_dir, 'chunk.json')
    save_json(path, definition)
    return path


# ===================================================================
# CLI
# ===================================================================

def main():
    parser = argparse.ArgumentParser(
        description='Build spherical terrain chunks from JSON chunk definitions')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')

    # -- build ----------------------------------------------------------
    p_build = subparsers.add_parser('build', help='Build a chunk definition')
    p_build.add_argument('input', help='Input chunk definition .json file')
    p_build.add_argument('-o', '--output',
                         help='Output directory (default: <input>_out)')

    # -- template -------------------------------------------------------
    p_tpl = subparsers.add_parser('template',
                                  help='Write a sample definition and textures')
    p_tpl.add_argument('output', help='Output directory')
    p_tpl.add_argument('--seed', type=int, default=0,
                       help='Seed for the synthetic textures')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s')

    if args.command == 'build':
        output = args.output or os.path.splitext(args.input)[0] + '_out'
        result = build_chunk_from_file(args.input, output_dir=output)
        print("Built chunk: {}".format(result['chunk'].descriptor.name))
        print("  Structures: {}".format(len(result['placements'])))
        for name, path in sorted(result['files'].items()):
            print("  {:<11} {}".format(name + ':', path))
    elif args.command == 'template':
        path = write_template(args.output, seed=args.seed)
        print("Wrote template: {}".format(path))
    else:
        parser.print_help()
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
