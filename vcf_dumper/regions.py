"""Genomic window planning.

Splits a chromosome into fixed-size, non-overlapping windows so each store
query returns a bounded number of records.
"""

import logging

from vcf_dumper.cellbase import ChromosomeCatalog
from vcf_dumper.config import DEFAULT_WINDOW_SIZE
from vcf_dumper.exceptions import InvalidArgumentError, NotFoundError
from vcf_dumper.models import Region

logger = logging.getLogger(__name__)


def split_into_windows(chromosome: str, length: int, window_size: int = DEFAULT_WINDOW_SIZE) -> list[Region]:
    """Split [1, length] into consecutive windows.

    Args:
        chromosome: Chromosome name
        length: Chromosome length in bases
        window_size: Span of every window but the last

    Returns:
        ceil(length / window_size) ascending regions; the last one ends at length

    Raises:
        InvalidArgumentError: If length or window_size is not positive

    Example:
        >>> [str(r) for r in split_into_windows("1", 45000, 20000)]
        ["1:1-20000", "1:20001-40000", "1:40001-45000"]
    """
    if window_size < 1:
        raise InvalidArgumentError(f"Window size must be positive: {window_size}")
    if length < 1:
        raise InvalidArgumentError(f"Chromosome {chromosome} length must be positive: {length}")

    return [
        Region(chromosome, start, min(start + window_size - 1, length))
        for start in range(1, length + 1, window_size)
    ]


class WindowPlanner:
    """Plans the windows of each chromosome from catalog lengths.

    Usage:
        planner = WindowPlanner(catalog, window_size=20000)
        for region in planner.plan("22"):
            ...
    """

    def __init__(self, catalog: ChromosomeCatalog, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        if window_size < 1:
            raise InvalidArgumentError(f"Window size must be positive: {window_size}")
        self.catalog = catalog
        self.window_size = window_size

    def plan(self, chromosome: str) -> list[Region]:
        """Return the windows covering a whole chromosome.

        Raises:
            NotFoundError: If the chromosome length is unknown
        """
        length = self.catalog.get_chromosome_length(chromosome)
        if length is None:
            raise NotFoundError(f"Length of chromosome {chromosome} is unknown")

        windows = split_into_windows(chromosome, length, self.window_size)
        logger.debug(f"Chromosome {chromosome}: {length:,} bp in {len(windows)} windows")
        return windows

    def plan_regions(self, chromosome: str, regions: list[Region]) -> list[Region]:
        """Return the windows covering the requested regions of a chromosome.

        Bounded regions are merged and cut on the same grid as plan(), so a
        window never extends past a requested region. Without regions, or
        when any region spans the whole chromosome, this is plan().
        """
        regions = [r for r in regions if r.chromosome == chromosome]
        if not regions or any(not r.is_bounded for r in regions):
            return self.plan(chromosome)

        windows: list[Region] = []
        for start, end in merge_intervals([(r.start, r.end) for r in regions]):
            grid_start = ((start - 1) // self.window_size) * self.window_size + 1
            for window_start in range(grid_start, end + 1, self.window_size):
                window_end = window_start + self.window_size - 1
                windows.append(Region(chromosome, max(window_start, start), min(window_end, end)))
        return windows


def merge_intervals(intervals: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or adjacent closed intervals, ascending.

    Example:
        >>> merge_intervals([(50, 80), (1, 10), (5, 20), (21, 30)])
        [(1, 30), (50, 80)]
    """
    merged: list[tuple[int, int]] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1] + 1:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged
