"""Store query construction.

Builds the ExportQuery for a run from the study/file selection and the
externally supplied filters, keeping only accepted query parameters.
"""

import logging
from typing import Iterable, Mapping

from vcf_dumper.models import ExportQuery

logger = logging.getLogger(__name__)

REGION = "region"

# Query parameters understood by the variant store
ACCEPTED_QUERY_PARAMS: frozenset[str] = frozenset({
    "id",
    "region",
    "chromosome",
    "gene",
    "type",
    "reference",
    "alternate",
    "annot-ct",
    "annot-xref",
    "polyphen",
    "sift",
    "maf",
    "missing-alleles",
    "missing-genotypes",
})


def _as_values(values: str | Iterable[str]) -> list[str]:
    if isinstance(values, str):
        return [values]
    return [value for value in values]


def build_query(
    studies: Iterable[str],
    files: Iterable[str] | None = None,
    query_parameters: Mapping[str, str | Iterable[str]] | None = None,
) -> ExportQuery:
    """Build the store query for an export.

    Args:
        studies: Study identifiers
        files: File identifiers (None or empty for every file in the studies)
        query_parameters: Filter name -> one or more values

    Returns:
        ExportQuery with accepted filters only; multiple values are joined
        with "," and the region filter is split into separate regions
        (so region positions cannot carry thousands separators)

    Example:
        >>> build_query(["PRJEB1"], None, {"region": ["1:1-100", "2"]}).regions
        ("1:1-100", "2")
    """
    filters: dict[str, str] = {}
    regions: list[str] = []

    for name, values in (query_parameters or {}).items():
        if name not in ACCEPTED_QUERY_PARAMS:
            logger.debug(f"Ignoring unsupported query parameter '{name}'")
            continue
        joined = ",".join(_as_values(values))
        if name == REGION:
            regions.extend(region.strip() for region in joined.split(",") if region.strip())
        elif joined:
            filters[name] = joined

    return ExportQuery(
        studies=tuple(studies),
        files=tuple(files or ()),
        regions=tuple(regions),
        filters=filters,
    )
