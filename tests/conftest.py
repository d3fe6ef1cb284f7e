"""Pytest fixtures for vcf_dumper tests."""

from pathlib import Path
from typing import Iterator

import pandas as pd
import pytest

from vcf_dumper.cellbase import ChromosomeCatalog, ReferenceSequence
from vcf_dumper.config import ExportConfig
from vcf_dumper.exceptions import IOFailureError
from vcf_dumper.logging_config import reset_logging
from vcf_dumper.models import ExportQuery, Region, SourceEntry, VariantRecord, VariantSource
from vcf_dumper.store import SourceAdaptor, VariantStore, write_database

SOURCE_HEADER = (
    "##fileformat=VCFv4.1\n"
    '##INFO=<ID=AF,Number=A,Type=Float,Description="Allele Frequency">\n'
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">\n'
    "##contig=<ID=1,length=100000>\n"
    "##contig=<ID=2,length=50000>\n"
    "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tS1\tS2\n"
)


def make_variant(
    chromosome: str,
    start: int,
    reference: str = "A",
    alternate: str = "G",
    study_id: str = "S1",
    file_id: str = "F1",
    ids: list[str] | None = None,
    attributes: dict[str, str] | None = None,
    samples_data: dict[str, dict[str, str]] | None = None,
) -> VariantRecord:
    """Build a store record with one source entry."""
    return VariantRecord(
        chromosome=chromosome,
        start=start,
        end=start + max(len(reference), 1) - 1,
        reference=reference,
        alternate=alternate,
        ids=ids or [],
        type="SNV" if len(reference) == len(alternate) == 1 else "INDEL",
        source_entries=[
            SourceEntry(
                study_id=study_id,
                file_id=file_id,
                attributes=attributes or {},
                samples_data=samples_data or {},
            )
        ],
    )


class FakeCatalog(ChromosomeCatalog, ReferenceSequence):
    """In-memory chromosome catalog and reference sequence."""

    def __init__(
        self,
        lengths: dict[str, int | None] | None = None,
        bases: dict[tuple[str, int], str] | None = None,
    ) -> None:
        self.lengths = {"1": 100000, "2": 50000} if lengths is None else lengths
        self.bases = bases or {}
        self.chromosome_calls = 0
        self.sequence_calls: list[Region] = []

    def get_chromosomes(self) -> set[str]:
        self.chromosome_calls += 1
        return set(self.lengths)

    def get_chromosome_length(self, chromosome: str) -> int | None:
        return self.lengths.get(chromosome)

    def get_sequence(self, region: Region) -> str:
        self.sequence_calls.append(region)
        key = (region.chromosome, region.start)
        if key not in self.bases:
            raise IOFailureError(f"No sequence for {region}")
        return self.bases[key]


class FakeSourceAdaptor(SourceAdaptor):
    def __init__(self, sources: list[VariantSource]) -> None:
        self.sources = sources

    def get_sources(self, study_ids: list[str]) -> list[VariantSource]:
        return [s for s in self.sources if s.study_id in study_ids]


class FakeStore(VariantStore):
    """In-memory variant store that records queries and iterator lifetimes."""

    def __init__(self, records: list[VariantRecord], sources: list[VariantSource]) -> None:
        self.records = records
        self.sources = sources
        self.queries: list[ExportQuery] = []
        self.open_iterators = 0
        self.max_open_iterators = 0

    def get_source_adaptor(self) -> FakeSourceAdaptor:
        return FakeSourceAdaptor(self.sources)

    def _matches(self, record: VariantRecord, query: ExportQuery) -> bool:
        if not any(e.study_id in query.studies for e in record.source_entries):
            return False
        for value in query.regions:
            region = Region.parse(value)
            if region.chromosome != record.chromosome:
                continue
            if region.start is None or (record.start <= region.end and record.end >= region.start):
                return True
        return not query.regions

    def iterator(self, query: ExportQuery) -> Iterator[VariantRecord]:
        self.queries.append(query)

        def generate() -> Iterator[VariantRecord]:
            self.open_iterators += 1
            self.max_open_iterators = max(self.max_open_iterators, self.open_iterators)
            try:
                for record in self.records:
                    if self._matches(record, query):
                        yield record
            finally:
                self.open_iterators -= 1

        return generate()


@pytest.fixture(autouse=True)
def clean_logging() -> Iterator[None]:
    """Reset logging configured by the CLI between tests."""
    yield
    reset_logging()


@pytest.fixture
def source() -> VariantSource:
    return VariantSource(
        study_id="S1",
        file_id="F1",
        file_name="study1.vcf.gz",
        samples=["S1", "S2"],
        header=SOURCE_HEADER,
    )


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(bases={("1", 199): "T", ("2", 1): "G"})


@pytest.fixture
def records() -> list[VariantRecord]:
    """Records on two chromosomes, deliberately out of position order.

    Chromosome 1 windows (20 kb): 1-20000 holds 500, 100 and an indel at
    200; 20001-40000 holds 25000.
    """
    return [
        make_variant("1", 500, "C", "T", ids=["rs5"]),
        make_variant(
            "1", 100, "A", "G",
            ids=["rs1"],
            attributes={"AF": "0.5", "QUAL": "50", "FILTER": "PASS"},
            samples_data={"S1": {"GT": "0|1"}},
        ),
        make_variant("1", 200, "", "TT"),
        make_variant("1", 25000, "G", "A"),
        make_variant("2", 300, "T", "C"),
    ]


@pytest.fixture
def store(records: list[VariantRecord], source: VariantSource) -> FakeStore:
    return FakeStore(records, [source])


@pytest.fixture
def config() -> ExportConfig:
    """Stream-mode configuration (no output directory)."""
    return ExportConfig(species="hsapiens", database="eva_hsapiens", studies=["S1"])


@pytest.fixture
def parquet_store(tmp_path: Path) -> Path:
    """Write a two-file parquet database and return the store root."""
    root = tmp_path / "store"
    variants = pd.DataFrame({
        "chromosome": ["1", "1", "1", "1", "2"],
        "start": [100, 100, 500, 30000, 300],
        "end": [100, 100, 500, 30000, 300],
        "reference": ["A", "A", "C", "G", "T"],
        "alternate": ["G", "G", "T", "A", "C"],
        "ids": ["rs1", "rs1", "rs5", "", "rs9;rs10"],
        "type": ["SNV"] * 5,
        "study_id": ["S1", "S1", "S1", "S1", "S2"],
        "file_id": ["F1", "F2", "F1", "F1", "F3"],
        "attributes": ['{"AF": "0.5"}', '{"AF": "0.4"}', "", '{"QUAL": "10"}', ""],
        "format": ["GT", "GT", "GT", "GT", "GT"],
        "samples_data": ['{"S1": {"GT": "0|1"}}', '{"S3": {"GT": "1|1"}}', "", "", ""],
    })
    sources = pd.DataFrame({
        "study_id": ["S1", "S1", "S2"],
        "file_id": ["F1", "F2", "F3"],
        "file_name": ["a.vcf.gz", "b.vcf.gz", "c.vcf.gz"],
        "samples": [["S1", "S2"], ["S3"], ["S1"]],
        "header": [SOURCE_HEADER, SOURCE_HEADER.replace("\tS1\tS2", "\tS3"), SOURCE_HEADER.replace("\tS1\tS2", "\tS1")],
    })
    write_database(root, "eva_hsapiens", variants, sources)
    return root
