#!/usr/bin/env python3
"""
Debug script to summarize which colors touch which in an image
"""

import sys
from collections import defaultdict

import numpy as np

import color_adjacency


def summarize_adjacencies(image_path, full_adjacencies=False, top=20):
    """Print the colors with the most distinct neighbors, with pixel counts."""
    try:
        dims, buffer = color_adjacency.load_image_pixels(image_path)
    except color_adjacency.ImageLoadError as e:
        print(e)
        return

    print(f"Image shape: {dims.rows}x{dims.columns}")

    # Count pixels per color
    unique_colors, counts = np.unique(buffer, return_counts=True)
    pixel_counts = {color_adjacency.unpack_color(color): int(count) for color, count in zip(unique_colors, counts)}

    offsets = color_adjacency.get_adjacency_offsets(full_adjacencies)
    pairs = color_adjacency.aggregate_adjacencies(buffer, dims, offsets, use_parallel=False)
    pairs = color_adjacency.close_symmetry(pairs)

    neighbors = defaultdict(set)
    for pair in pairs:
        neighbors[pair.origin].add(pair.neighbor)

    print(f"\nFound {len(pixel_counts)} unique colors and {len(pairs)} adjacencies")
    print(f"\nTop {top} colors by number of distinct neighbors:")
    print("RGBA                  Pixels   Neighbors")
    print("-" * 45)

    ranked = sorted(pixel_counts, key=lambda c: (-len(neighbors[c]), c))
    for color in ranked[:top]:
        r, g, b, a = color
        print(f"({r:3d},{g:3d},{b:3d},{a:3d})   {pixel_counts[color]:8d}   {len(neighbors[color]):9d}")

    isolated = sum(1 for color in pixel_counts if not neighbors[color])
    print(f"\nColors with no differing neighbors: {isolated}")


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3) or (len(sys.argv) == 3 and sys.argv[2] != "--full"):
        print("Usage: python debug_adjacencies.py image.png [--full]")
        sys.exit(1)

    summarize_adjacencies(sys.argv[1], full_adjacencies=len(sys.argv) == 3)
