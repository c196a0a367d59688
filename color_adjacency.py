#!/usr/bin/env python3
"""
Color Adjacency Finder

This script finds every pair of differing colors that touch each other in an
image. Each pixel is compared against a small set of "forward" neighbors
(down and right, plus the two downward diagonals in full mode), the pairs are
collected in parallel, and the result is made bidirectional before printing.

The output is a tab-separated table with one row per unique ordered color
pair, or just the number of pairs when --count is given.

Usage: python color_adjacency.py --file input_image.png [--full-adjacencies] [--count]
"""

import numpy as np
import cv2
import argparse
import sys
import time
import multiprocessing as mp
from typing import NamedTuple


# Use multiprocessing automatically above this many pixels
PARALLEL_PIXEL_THRESHOLD = 250_000
# Limit to 8 worker processes to avoid memory issues
MAX_WORKERS = 8
# Not worth parallelizing for chunks smaller than this
MIN_CHUNK_SIZE = 10_000
# More chunks than workers so fast workers pick up extra chunks
CHUNKS_PER_WORKER = 4

TABLE_HEADER = "r\tg\tb\ta\tadj_r\tadj_g\tadj_b\tadj_a"

OUTPUT_MODES = ("table", "count")


class ImageLoadError(ValueError):
    """Base class for failures while turning an image file into pixels."""


class ImageOpenError(ImageLoadError):
    """The image file could not be opened or read."""


class ImageDecodeError(ImageLoadError):
    """The image file was read but could not be decoded into a pixel grid."""


class Dimensions(NamedTuple):
    rows: int
    columns: int


class Location(NamedTuple):
    row: int
    column: int


class Offset(NamedTuple):
    d_row: int
    d_column: int


class PixelPair(NamedTuple):
    """
    Two differing colors found next to each other.

    Colors are (r, g, b, a) tuples, so the natural tuple ordering sorts pairs
    by origin bytes first and neighbor bytes second.
    """
    origin: tuple
    neighbor: tuple

    def swap(self):
        """Return the same adjacency seen from the neighbor's side."""
        return PixelPair(self.neighbor, self.origin)


DOWN = Offset(1, 0)
RIGHT = Offset(0, 1)
DOWN_LEFT = Offset(1, -1)
DOWN_RIGHT = Offset(1, 1)

# Only forward directions are checked; close_symmetry() restores the reverse ones
FOUR_CONNECTED = (DOWN, RIGHT)
EIGHT_CONNECTED = (DOWN, RIGHT, DOWN_LEFT, DOWN_RIGHT)


def format_time(seconds):
    """Format time in a human-readable way."""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds:.1f}s"


def log(message):
    """Print a progress message to stderr so stdout only carries results."""
    print(message, file=sys.stderr)


def to_index(location, dimensions):
    """Linear buffer index of an in-bounds location (bounds are not checked)."""
    return location.row * dimensions.columns + location.column


def from_index(index, dimensions):
    """Inverse of to_index() for 0 <= index < rows * columns."""
    row, column = divmod(index, dimensions.columns)
    return Location(row, column)


def in_bounds(location, dimensions):
    """Check that a location lies inside the image on both axes."""
    return 0 <= location.row < dimensions.rows and 0 <= location.column < dimensions.columns


def offset_location(location, offset):
    """Move a location by an offset, coordinate by coordinate."""
    return Location(location.row + offset.d_row, location.column + offset.d_column)


def get_adjacency_offsets(full_adjacencies=False):
    """
    Select the neighbor directions checked for every pixel.

    Args:
        full_adjacencies (bool): Include the two downward diagonals (8-connected)
            instead of only down and right (4-connected)

    Returns:
        tuple: Offsets in the fixed order they are checked
    """
    return EIGHT_CONNECTED if full_adjacencies else FOUR_CONNECTED


def pack_colors(pixels):
    """
    Pack RGBA pixels into one uint32 per pixel.

    R lands in the highest byte and A in the lowest, so comparing packed values
    orders colors the same way as comparing (r, g, b, a) tuples.

    Args:
        pixels (numpy.ndarray): Array of shape (..., 4), values 0-255

    Returns:
        numpy.ndarray: uint32 array with the leading shape of pixels
    """
    pixels = np.asarray(pixels, dtype=np.uint8)
    return (pixels[..., 0].astype(np.uint32) * 16777216 + pixels[..., 1].astype(np.uint32) * 65536
            + pixels[..., 2].astype(np.uint32) * 256 + pixels[..., 3].astype(np.uint32))


def unpack_colors(packed):
    """Inverse of pack_colors(): uint32 values to an (..., 4) uint8 array."""
    packed = np.asarray(packed, dtype=np.uint32)
    return np.stack([
        (packed // 16777216) % 256,
        (packed // 65536) % 256,
        (packed // 256) % 256,
        packed % 256,
    ], axis=-1).astype(np.uint8)


def unpack_color(value):
    """Turn one packed color back into an (r, g, b, a) tuple of ints."""
    value = int(value)
    return ((value >> 24) & 255, (value >> 16) & 255, (value >> 8) & 255, value & 255)


def as_packed_buffer(buffer):
    """
    Return the buffer as a flat uint32 array of packed colors.

    Packed arrays are returned unchanged; lists of (r, g, b, a) tuples and
    (N, 4) arrays are packed.
    """
    if isinstance(buffer, np.ndarray) and buffer.dtype == np.uint32 and buffer.ndim == 1:
        return buffer
    return pack_colors(np.asarray(buffer, dtype=np.uint8).reshape(-1, 4))


def validate_buffer(buffer, dimensions):
    """Raise ValueError unless the buffer holds exactly rows * columns pixels."""
    if dimensions.rows < 0 or dimensions.columns < 0:
        raise ValueError(f"Invalid image dimensions: {dimensions.rows}x{dimensions.columns}")
    expected = dimensions.rows * dimensions.columns
    if len(buffer) != expected:
        raise ValueError(
            f"Pixel buffer length {len(buffer)} does not match image dimensions "
            f"{dimensions.rows}x{dimensions.columns} ({expected} pixels)"
        )


def extract_pairs(buffer, dimensions, offsets, index):
    """
    Yield the (pixel, neighbor) color pairs for one pixel.

    Neighbors that fall outside the image or share the pixel's color are skipped.
    This is the per-pixel form of what _offset_pair_codes() computes for a whole
    block of rows at once.

    Args:
        buffer (list): Row-major list of (r, g, b, a) tuples
        dimensions (Dimensions): Image size in rows and columns
        offsets (tuple): Neighbor directions, checked in order
        index (int): Buffer index of the pixel to process

    Yields:
        PixelPair: One pair per valid, differently-colored neighbor
    """
    location = from_index(index, dimensions)
    pixel = buffer[index]
    for offset in offsets:
        neighbor_location = offset_location(location, offset)
        if not in_bounds(neighbor_location, dimensions):
            continue
        neighbor = buffer[to_index(neighbor_location, dimensions)]
        if neighbor == pixel:
            continue
        yield PixelPair(pixel, neighbor)


def _offset_pair_codes(grid, offset, row_start, row_end):
    """
    Pair codes for one offset, for origin pixels in rows [row_start, row_end).

    The origin block and the block shifted by the offset are compared
    element-wise; where they differ, origin and neighbor are packed into one
    uint64 as origin * 2**32 + neighbor.
    """
    rows, columns = grid.shape
    d_row, d_column = offset
    # Clip the origin block so the shifted block stays inside the image
    r0, r1 = max(row_start, -d_row), min(row_end, rows - d_row)
    c0, c1 = max(0, -d_column), min(columns, columns - d_column)
    if r0 >= r1 or c0 >= c1:
        return np.empty(0, dtype=np.uint64)

    origin = grid[r0:r1, c0:c1]
    neighbor = grid[r0 + d_row:r1 + d_row, c0 + d_column:c1 + d_column]
    differ = origin != neighbor
    return (origin[differ].astype(np.uint64) << np.uint64(32)) | neighbor[differ].astype(np.uint64)


def _collect_pair_codes(grid, offsets, row_start, row_end):
    """Deduplicated pair codes for every origin pixel in rows [row_start, row_end)."""
    codes = [_offset_pair_codes(grid, offset, row_start, row_end) for offset in offsets]
    if not codes:
        return np.empty(0, dtype=np.uint64)
    return np.unique(np.concatenate(codes))


def decode_pairs(codes):
    """
    Turn uint64 pair codes back into a set of PixelPair.

    Args:
        codes (numpy.ndarray): origin * 2**32 + neighbor, packed colors

    Returns:
        set: PixelPair entries with (r, g, b, a) tuple colors
    """
    codes = np.asarray(codes, dtype=np.uint64)
    origins = unpack_colors((codes >> np.uint64(32)).astype(np.uint32))
    neighbors = unpack_colors((codes & np.uint64(0xFFFFFFFF)).astype(np.uint32))
    return {
        PixelPair(tuple(origin), tuple(neighbor))
        for origin, neighbor in zip(origins.tolist(), neighbors.tolist())
    }


def partition_indices(total, num_chunks):
    """
    Split range(total) into contiguous (start, end) chunks of near-equal size.

    The last chunk gets the remainder. Empty input gives no chunks.
    """
    if total <= 0:
        return []
    num_chunks = max(1, min(num_chunks, total))
    chunk_size = total // num_chunks

    chunks = []
    for i in range(num_chunks):
        start_idx = i * chunk_size
        if i == num_chunks - 1:
            end_idx = total  # Last chunk gets remainder
        else:
            end_idx = (i + 1) * chunk_size
        chunks.append((start_idx, end_idx))
    return chunks


def merge_adjacency_sets(first, second):
    """
    Union two sorted, deduplicated pair-code arrays.

    An empty side is skipped so the other array is returned as-is.
    """
    if len(first) == 0:
        return second
    if len(second) == 0:
        return first
    return np.union1d(first, second)


def reduce_adjacency_sets(sets):
    """Merge a list of pair-code arrays pairwise, level by level, into one array."""
    sets = list(sets)
    if not sets:
        return np.empty(0, dtype=np.uint64)
    while len(sets) > 1:
        merged = []
        for i in range(0, len(sets) - 1, 2):
            merged.append(merge_adjacency_sets(sets[i], sets[i + 1]))
        if len(sets) % 2 == 1:
            merged.append(sets[-1])
        sets = merged
    return sets[0]


# Read-only state installed in each worker process by _init_worker()
_worker_grid = None
_worker_offsets = None


def _init_worker(grid, offsets):
    """Pool initializer: share the packed pixel grid with a worker process once."""
    global _worker_grid, _worker_offsets
    _worker_grid = grid
    _worker_offsets = offsets


def _process_row_chunk(chunk):
    """Process one (start, end) block of rows. Used by parallel processing."""
    row_start, row_end = chunk
    return _collect_pair_codes(_worker_grid, _worker_offsets, row_start, row_end)


def _aggregate_single(grid, offsets):
    """Single-threaded aggregation over the whole packed grid."""
    return _collect_pair_codes(grid, offsets, 0, grid.shape[0])


def _aggregate_parallel(grid, offsets, num_workers=None, min_chunk_size=MIN_CHUNK_SIZE):
    """
    Parallel aggregation using multiprocessing.

    The grid is split into blocks of whole rows. Every worker returns the
    deduplicated pair codes of each block it is handed; the arrays are merged
    afterwards in the parent process.
    """
    if num_workers is None:
        num_workers = min(mp.cpu_count(), MAX_WORKERS)
    rows, columns = grid.shape
    total = rows * columns
    num_chunks = num_workers * CHUNKS_PER_WORKER
    if total // num_chunks < min_chunk_size:
        num_chunks = max(1, total // max(min_chunk_size, 1))
    num_chunks = min(num_chunks, rows)

    if num_workers < 2 or num_chunks < 2:
        log("Not enough work to split across workers, using single-threaded adjacency search...")
        return _aggregate_single(grid, offsets)

    chunks = partition_indices(rows, num_chunks)
    num_workers = min(num_workers, len(chunks))
    log(f"Using parallel processing ({num_workers} workers, {len(chunks)} row blocks)...")

    with mp.Pool(num_workers, initializer=_init_worker, initargs=(grid, offsets)) as pool:
        chunk_results = pool.map(_process_row_chunk, chunks)

    return reduce_adjacency_sets(chunk_results)


def aggregate_adjacencies(buffer, dimensions, offsets, use_parallel=None, num_workers=None):
    """
    Find every one-directional adjacency between differing colors.

    Args:
        buffer: Row-major pixels, either a packed uint32 array from
            image_to_buffer() or a list of (r, g, b, a) tuples
        dimensions (Dimensions): Image size in rows and columns
        offsets (tuple): Neighbor directions checked for every pixel
        use_parallel (bool): Use multiprocessing (None=auto-detect from pixel count)
        num_workers (int): Worker processes for the parallel path (None=CPU count, max 8)

    Returns:
        set: PixelPair entries, one per distinct (origin, neighbor) found

    Raises:
        ValueError: If the buffer length does not match the dimensions
    """
    validate_buffer(buffer, dimensions)
    offsets = tuple(offsets)
    grid = as_packed_buffer(buffer).reshape(dimensions.rows, dimensions.columns)

    if use_parallel is None:
        use_parallel = grid.size > PARALLEL_PIXEL_THRESHOLD

    if use_parallel:
        codes = _aggregate_parallel(grid, offsets, num_workers)
    else:
        log("Using single-threaded adjacency search...")
        codes = _aggregate_single(grid, offsets)

    return decode_pairs(codes)


def close_symmetry(pairs):
    """
    Make an adjacency set bidirectional.

    Returns a new set holding every pair and its swapped counterpart. The swaps
    are taken from a snapshot of the input, which is left unchanged.
    """
    snapshot = frozenset(pairs)
    closed = set(snapshot)
    closed.update(pair.swap() for pair in snapshot)
    return closed


def sort_pairs(pairs):
    """Sort pairs by origin color bytes, then neighbor color bytes."""
    return sorted(pairs)


def project_output(pairs, mode="table"):
    """
    Turn the final adjacency set into the data for one output mode.

    Args:
        pairs (set): Symmetry-closed PixelPair set
        mode (str): "count" for the number of pairs, "table" for sorted rows

    Returns:
        int or list: The pair count, or a list of 8-tuples
            (r, g, b, a, adj_r, adj_g, adj_b, adj_a) in sorted order
    """
    if mode == "count":
        return len(pairs)
    if mode == "table":
        return [tuple(pair.origin) + tuple(pair.neighbor) for pair in sort_pairs(pairs)]
    raise ValueError(f"Unknown output mode '{mode}', expected one of: {', '.join(OUTPUT_MODES)}")


def format_table(rows):
    """Render table rows as TSV with a header line."""
    lines = [TABLE_HEADER]
    lines.extend("\t".join(str(value) for value in row) for row in rows)
    return "\n".join(lines) + "\n"


def format_count(count):
    """One-line summary used by count mode."""
    return f"Found {count} unique adjacencies"


def image_to_buffer(image_rgba):
    """
    Flatten an RGBA image array into dimensions plus a row-major packed buffer.

    Args:
        image_rgba (numpy.ndarray): Array of shape (height, width, 4), values 0-255

    Returns:
        tuple: (Dimensions, flat uint32 array of packed colors, see pack_colors())
    """
    if image_rgba.ndim != 3 or image_rgba.shape[2] != 4:
        raise ValueError(f"Expected an RGBA image of shape (height, width, 4), got {image_rgba.shape}")

    height, width = image_rgba.shape[:2]
    buffer = pack_colors(image_rgba.astype(np.uint8)).reshape(-1)
    return Dimensions(height, width), buffer


def load_image_pixels(image_path):
    """
    Load an image file as RGBA pixels.

    Grayscale, BGR and BGRA images are all converted to RGBA; 16-bit images
    are scaled down to 8 bits per channel.

    Args:
        image_path (str): Path to the input image

    Returns:
        tuple: (Dimensions, flat uint32 array of packed colors)

    Raises:
        ImageOpenError: If the file cannot be read
        ImageDecodeError: If the file contents are not a decodable image
    """
    try:
        with open(image_path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ImageOpenError(f"Failed to open image file '{image_path}': {e}") from e

    try:
        image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise ImageDecodeError(f"Failed to read image file data from '{image_path}': {e}") from e
    if image is None:
        raise ImageDecodeError(f"Failed to read image file data from '{image_path}'")

    if image.dtype == np.uint16:
        image = np.round(image / 257.0).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ImageDecodeError(f"Unsupported pixel type {image.dtype} in '{image_path}'")

    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    elif image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    else:
        raise ImageDecodeError(f"Unsupported channel count {image.shape[2]} in '{image_path}'")

    return image_to_buffer(image)


def main(argv=None):
    """Main function to run the color adjacency finder."""
    parser = argparse.ArgumentParser(
        description="Find every pair of differing colors that are adjacent in an image"
    )
    parser.add_argument("-f", "--file", required=True, help="The image file to analyze")
    parser.add_argument("-a", "--full-adjacencies", action="store_true",
                       help="Also check diagonal neighbors (8-connected) instead of only the 4 cardinal directions")
    parser.add_argument("-c", "--count", action="store_true",
                       help="Instead of a TSV table, just output the number of unique pairs")
    parser.add_argument("--parallel", action="store_true",
                       help="Force parallel processing for the adjacency search")
    parser.add_argument("--no-parallel", action="store_true",
                       help="Disable parallel processing and use a single process")
    parser.add_argument("--workers", type=int, default=None,
                       help=f"Number of worker processes for parallel processing (default: CPU count, max {MAX_WORKERS})")

    args = parser.parse_args(argv)

    # Handle parallel processing options
    use_parallel = None
    if args.parallel and args.no_parallel:
        print("Error: Cannot specify both --parallel and --no-parallel", file=sys.stderr)
        return 1
    elif args.parallel:
        use_parallel = True
    elif args.no_parallel:
        use_parallel = False

    if args.workers is not None and args.workers < 1:
        print("Error: --workers must be at least 1", file=sys.stderr)
        return 1

    try:
        total_start = time.time()

        log(f"Loading image: {args.file}")
        load_start = time.time()
        dimensions, buffer = load_image_pixels(args.file)
        log(f"Image size: {dimensions.columns}x{dimensions.rows} ({len(buffer):,} pixels), "
            f"loaded in {format_time(time.time() - load_start)}")

        offsets = get_adjacency_offsets(args.full_adjacencies)
        log(f"Calculating adjacencies ({'8' if args.full_adjacencies else '4'}-connected)...")
        search_start = time.time()
        pairs = aggregate_adjacencies(buffer, dimensions, offsets, use_parallel, args.workers)
        log(f"Adjacency search completed in {format_time(time.time() - search_start)}")

        # Only forward directions were searched; make the set bidirectional
        pairs = close_symmetry(pairs)

        if args.count:
            output = format_count(project_output(pairs, "count")) + "\n"
        else:
            output = format_table(project_output(pairs, "table"))

        log(f"Total processing completed in {format_time(time.time() - total_start)}")

    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
