"""
Variant store adaptors.

Defines the store interface the exporter consumes and a parquet-backed
implementation. A database is a directory holding two tables:

- variants.parquet: one row per (variant, file) with chromosome, start, end,
  reference, alternate, ids, type, study_id, file_id, attributes (JSON),
  format and samples_data (JSON)
- sources.parquet: one row per loaded file with study_id, file_id,
  file_name, samples and header
"""

import json
import logging
from abc import ABC, abstractmethod
from itertools import groupby
from pathlib import Path
from typing import Any, Iterator, List, Optional

import pandas as pd

from vcf_dumper.exceptions import IOFailureError, NotFoundError
from vcf_dumper.models import ExportQuery, Region, SourceEntry, VariantRecord, VariantSource

logger = logging.getLogger(__name__)

VARIANTS_TABLE = "variants.parquet"
SOURCES_TABLE = "sources.parquet"

# Filters this backend evaluates; other accepted filters are ignored
SUPPORTED_FILTERS = {"id", "chromosome", "type", "reference", "alternate"}

_VARIANT_KEY = ["chromosome", "start", "end", "reference", "alternate"]


class SourceAdaptor(ABC):
    """Access to the metadata of loaded files."""

    @abstractmethod
    def get_sources(self, study_ids: List[str]) -> List[VariantSource]:
        """Return the sources of every file in the given studies."""
        pass


class VariantStore(ABC):
    """Queryable variant store."""

    @abstractmethod
    def iterator(self, query: ExportQuery) -> Iterator[VariantRecord]:
        """Return the records matching a query, ordered by chromosome and start.

        The returned iterator must be exhausted or closed before the next
        one is opened.
        """
        pass

    @abstractmethod
    def get_source_adaptor(self) -> SourceAdaptor:
        pass


def save_parquet(df: pd.DataFrame, path: Path, compression: str = "snappy") -> None:
    """
    Save a store table to parquet.

    Args:
        df: DataFrame to save
        path: Output path
        compression: Compression algorithm (snappy, gzip, lz4)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_parquet(path, compression=compression, index=False, engine="pyarrow")
    logger.info(f"Saved {len(df)} rows to {path}")


def read_parquet(
    path: Path,
    filters: Optional[List] = None,
    columns: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Read a store table with optional pyarrow filters.

    Args:
        path: Path to parquet file
        filters: PyArrow filters (e.g., [('chromosome', '=', '1')])
        columns: Columns to read (None for all)

    Returns:
        DataFrame with requested data

    Raises:
        NotFoundError: If the table does not exist
        IOFailureError: If the table cannot be read
    """
    if not path.exists():
        raise NotFoundError(f"Store table not found: {path}")
    try:
        df = pd.read_parquet(path, filters=filters, columns=columns, engine="pyarrow")
    except Exception as e:
        logger.error(f"Failed to read parquet from {path}: {e}")
        raise IOFailureError(f"Failed to read {path}: {e}") from e
    logger.debug(f"Read {len(df)} rows from {path}")
    return df


def write_database(
    root: Path,
    database: str,
    variants: pd.DataFrame,
    sources: pd.DataFrame,
) -> Path:
    """Write the two tables of a database.

    Returns:
        Path to the database directory
    """
    db_path = Path(root) / database
    save_parquet(variants, db_path / VARIANTS_TABLE)
    save_parquet(sources, db_path / SOURCES_TABLE)
    return db_path


def _load_json(value: Any) -> dict:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return {}
    return json.loads(value)


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value)


def _split(value: Any, sep: str) -> list[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return []
    return [item for item in str(value).split(sep) if item]


def _region_mask(df: pd.DataFrame, regions: tuple[str, ...]) -> pd.Series:
    """Rows overlapping any of the regions."""
    mask = pd.Series(False, index=df.index)
    for value in regions:
        region = Region.parse(value)
        region_mask = df["chromosome"] == region.chromosome
        if region.end is not None:
            region_mask &= df["start"] <= region.end
        if region.start is not None:
            region_mask &= df["end"] >= region.start
        mask |= region_mask
    return mask


class ParquetSourceAdaptor(SourceAdaptor):
    """Serves VariantSource rows from sources.parquet."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get_sources(self, study_ids: List[str]) -> List[VariantSource]:
        df = read_parquet(self.path, filters=[("study_id", "in", list(study_ids))])
        return [
            VariantSource(
                study_id=row.study_id,
                file_id=row.file_id,
                file_name=row.file_name,
                samples=[] if row.samples is None else [str(s) for s in row.samples],
                header=row.header or "",
            )
            for row in df.itertuples(index=False)
        ]


class ParquetVariantStore(VariantStore):
    """Variant store backed by parquet tables.

    Usage:
        store = ParquetVariantStore(Path("/data/store"), "eva_hsapiens")
        for variant in store.iterator(query):
            ...
    """

    def __init__(self, root: Path, database: str) -> None:
        self.root = Path(root)
        self.database = database
        self.db_path = self.root / database
        if not self.db_path.is_dir():
            raise NotFoundError(f"Database '{database}' not found under {self.root}")

    def get_source_adaptor(self) -> ParquetSourceAdaptor:
        return ParquetSourceAdaptor(self.db_path / SOURCES_TABLE)

    def _select(self, query: ExportQuery) -> pd.DataFrame:
        filters: list[tuple[str, str, Any]] = [("study_id", "in", list(query.studies))]
        if query.files:
            filters.append(("file_id", "in", list(query.files)))
        regions = [Region.parse(r) for r in query.regions]
        if len(regions) == 1 and regions[0].is_bounded:
            # Window queries: overlap is evaluated by pyarrow
            region = regions[0]
            filters.extend([
                ("chromosome", "=", region.chromosome),
                ("start", "<=", region.end),
                ("end", ">=", region.start),
            ])
        elif regions:
            filters.append(("chromosome", "in", sorted({r.chromosome for r in regions})))

        df = read_parquet(self.db_path / VARIANTS_TABLE, filters=filters)

        if len(regions) > 1 and not df.empty:
            df = df[_region_mask(df, query.regions)]

        for name, value in query.filters.items():
            if name not in SUPPORTED_FILTERS:
                logger.debug(f"Filter '{name}' is not supported by the parquet store, ignoring")
                continue
            accepted = set(value.split(","))
            if name == "id":
                df = df[df["ids"].map(lambda ids: bool(accepted & set(_split(ids, ";"))))]
            else:
                df = df[df[name].astype(str).isin(accepted)]

        return df.sort_values(_VARIANT_KEY, kind="stable")

    def iterator(self, query: ExportQuery) -> Iterator[VariantRecord]:
        df = self._select(query)
        rows = df.itertuples(index=False)
        for key, group in groupby(rows, key=lambda row: tuple(getattr(row, c) for c in _VARIANT_KEY)):
            chromosome, start, end, reference, alternate = key
            group_rows = list(group)
            yield VariantRecord(
                chromosome=str(chromosome),
                start=int(start),
                end=int(end),
                reference=_text(reference),
                alternate=_text(alternate),
                ids=_split(group_rows[0].ids, ";"),
                type=group_rows[0].type,
                source_entries=[
                    SourceEntry(
                        study_id=row.study_id,
                        file_id=row.file_id,
                        attributes=_load_json(row.attributes),
                        format=_split(row.format, ":") or ["GT"],
                        samples_data=_load_json(row.samples_data),
                    )
                    for row in group_rows
                ],
            )
