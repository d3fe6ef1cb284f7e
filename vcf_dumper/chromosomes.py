"""Chromosome resolution for an export run."""

import logging
import re

from vcf_dumper.cellbase import ChromosomeCatalog
from vcf_dumper.exceptions import NotFoundError
from vcf_dumper.models import ExportQuery

logger = logging.getLogger(__name__)


def chromosome_sort_key(chromosome: str) -> tuple[int, int, str]:
    """Natural chromosome order: numeric first (1, 2, ..., 22), then X, Y, MT, others.

    Example:
        >>> sorted(["X", "10", "2", "MT"], key=chromosome_sort_key)
        ["2", "10", "X", "MT"]
    """
    name = re.sub(r"^chr", "", chromosome, flags=re.IGNORECASE)
    if name.isdigit():
        return (0, int(name), chromosome)
    named = {"X": 1, "Y": 2, "XY": 3, "M": 4, "MT": 4}
    if name.upper() in named:
        return (1, named[name.upper()], chromosome)
    return (2, 0, chromosome)


def chromosomes_from_regions(regions: tuple[str, ...] | list[str]) -> set[str]:
    """Chromosome tokens (text before the first ":") of region filter strings."""
    return {region.split(":", 1)[0] for region in regions if region}


class ChromosomeResolver:
    """Determines which chromosomes a run exports.

    Chromosomes come from the query's region filter when there is one,
    otherwise from the species catalog.
    """

    def __init__(self, catalog: ChromosomeCatalog, species: str) -> None:
        self.catalog = catalog
        self.species = species

    def resolve(self, query: ExportQuery) -> set[str]:
        """Return the chromosomes to export.

        Raises:
            NotFoundError: If no chromosome is found
        """
        if query.regions:
            chromosomes = chromosomes_from_regions(query.regions)
        else:
            chromosomes = self.catalog.get_chromosomes()

        if not chromosomes:
            raise NotFoundError(f"No chromosomes found for species {self.species}")

        logger.debug(f"Chromosomes: {', '.join(sorted(chromosomes, key=chromosome_sort_key))}")
        return chromosomes
