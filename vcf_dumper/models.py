"""Data models for the VCF export pipeline.

Queries, genomic regions, store records, per-file source metadata, the
merged VCF header and the converted output records.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Mapping


class ExportState(Enum):
    """Lifecycle of one export run."""

    INITIALIZED = auto()
    HEADER_READY = auto()
    EXPORTING = auto()
    CLOSED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class Region:
    """Genomic region, 1-based and inclusive.

    Attributes:
        chromosome: Chromosome name
        start: First base of the region (None when unbounded)
        end: Last base of the region (None when unbounded)
    """

    chromosome: str
    start: int | None = None
    end: int | None = None

    def __post_init__(self) -> None:
        if not self.chromosome:
            raise ValueError("Region chromosome must not be empty")
        if self.start is not None and self.start < 1:
            raise ValueError(f"Region start must be >= 1: {self.start}")
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError(f"Region start {self.start} is after end {self.end}")

    @property
    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None

    def contains(self, position: int) -> bool:
        """Check whether a position falls inside the region."""
        if self.start is not None and position < self.start:
            return False
        if self.end is not None and position > self.end:
            return False
        return True

    def __str__(self) -> str:
        if self.start is None:
            return self.chromosome
        if self.end is None:
            return f"{self.chromosome}:{self.start}"
        return f"{self.chromosome}:{self.start}-{self.end}"

    @classmethod
    def parse(cls, value: str) -> "Region":
        """Parse a region string.

        Args:
            value: Region as "chrom", "chrom:pos" or "chrom:start-end"

        Returns:
            Parsed Region ("chrom:pos" becomes a single-base region)

        Raises:
            ValueError: If positions are not plain integers or out of order.
                Thousands separators are rejected: "," separates regions
                in a region filter.

        Example:
            >>> str(Region.parse("1:1000-2000"))
            "1:1000-2000"
        """
        chromosome, _, positions = value.strip().partition(":")
        if not positions:
            return cls(chromosome)
        start, _, end = positions.partition("-")
        start_pos = int(start)
        end_pos = int(end) if end else start_pos
        return cls(chromosome, start_pos, end_pos)


@dataclass(frozen=True)
class ExportQuery:
    """Store query for one export run.

    Attributes:
        studies: Study identifiers (never empty)
        files: File identifiers (empty means every file in the studies)
        regions: Region filter strings (empty means whole genome)
        filters: Accepted extra filters, multiple values comma-joined
    """

    studies: tuple[str, ...]
    files: tuple[str, ...] = ()
    regions: tuple[str, ...] = ()
    filters: Mapping[str, str] = field(default_factory=dict)

    def with_region(self, region: Region) -> "ExportQuery":
        """Return a copy of this query restricted to a single region."""
        return replace(self, regions=(str(region),))


@dataclass(slots=True)
class SourceEntry:
    """Data contributed to one variant by one file of one study.

    Attributes:
        study_id: Study identifier
        file_id: File identifier within the study
        attributes: INFO attributes reported by the file
        format: FORMAT keys of the sample data (GT first)
        samples_data: Sample name -> FORMAT key -> value
    """

    study_id: str
    file_id: str
    attributes: dict[str, str] = field(default_factory=dict)
    format: list[str] = field(default_factory=lambda: ["GT"])
    samples_data: dict[str, dict[str, str]] = field(default_factory=dict)


@dataclass(slots=True)
class VariantRecord:
    """Variant as stored in the variant store.

    Indels use normalised notation: the shared context base is stripped,
    so one of reference or alternate may be empty.

    Attributes:
        chromosome: Chromosome
        start: First base of the variant
        end: Last base of the variant
        reference: Reference allele (may be empty)
        alternate: Alternate allele (may be empty)
        ids: Variant identifiers (rsIDs)
        type: Variant type (SNV, INDEL, ...)
        source_entries: Per-file data
    """

    chromosome: str
    start: int
    end: int
    reference: str
    alternate: str
    ids: list[str] = field(default_factory=list)
    type: str = "SNV"
    source_entries: list[SourceEntry] = field(default_factory=list)


@dataclass(slots=True)
class VariantSource:
    """Metadata of one loaded file.

    Attributes:
        study_id: Study identifier
        file_id: File identifier
        file_name: Original file name
        samples: Sample names in file column order
        header: Raw VCF header text of the file
    """

    study_id: str
    file_id: str
    file_name: str
    samples: list[str] = field(default_factory=list)
    header: str = ""


@dataclass(frozen=True)
class HeaderLine:
    """One "##" meta-information line.

    Attributes:
        key: Line key (INFO, FORMAT, FILTER, contig, fileformat, ...)
        value: Raw value after "="
        fields: Parsed key/value pairs for structured "<...>" values
    """

    key: str
    value: str
    fields: tuple[tuple[str, str], ...] = ()

    @property
    def id(self) -> str | None:
        for name, value in self.fields:
            if name == "ID":
                return value
        return None

    def get(self, name: str) -> str | None:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        return None

    @property
    def merge_key(self) -> tuple[str, str]:
        """Key used to deduplicate lines across studies."""
        line_id = self.id
        return (self.key, line_id if line_id is not None else self.value)


@dataclass(frozen=True, slots=True)
class ContigRecord:
    """Sequence dictionary entry."""

    name: str
    length: int


@dataclass(frozen=True)
class SequenceDictionary:
    """Ordered contigs with their lengths."""

    contigs: tuple[ContigRecord, ...]


@dataclass(frozen=True)
class VcfHeader:
    """Merged header written once at the top of the output.

    Attributes:
        meta_lines: Deduplicated "##" lines from every source
        samples: Output sample columns
    """

    meta_lines: tuple[HeaderLine, ...]
    samples: tuple[str, ...] = ()

    def lines_for(self, key: str) -> list[HeaderLine]:
        return [line for line in self.meta_lines if line.key == key]

    def sequence_dictionary(self) -> SequenceDictionary | None:
        """Build the sequence dictionary from the ##contig lines.

        Returns:
            SequenceDictionary, or None when there are no contig lines or
            any of them lacks a usable ID or length
        """
        contigs: list[ContigRecord] = []
        for line in self.lines_for("contig"):
            name = line.id
            length = line.get("length")
            if not name or length is None or not length.isdigit():
                return None
            contigs.append(ContigRecord(name, int(length)))
        if not contigs:
            return None
        return SequenceDictionary(tuple(contigs))


@dataclass(slots=True)
class VcfRecord:
    """Exported VCF data line.

    Attributes:
        chromosome: CHROM column
        start: POS column, used to order records within a window
        ids: ID column values
        reference: REF column
        alternates: ALT column values
        qual: QUAL column
        filter: FILTER column
        info: INFO key -> value ("" for flags)
        format: FORMAT keys
        samples: Per output sample, one value per FORMAT key
    """

    chromosome: str
    start: int
    reference: str
    alternates: list[str]
    ids: list[str] = field(default_factory=list)
    qual: str = "."
    filter: str = "."
    info: dict[str, str] = field(default_factory=dict)
    format: list[str] = field(default_factory=list)
    samples: list[list[str]] = field(default_factory=list)


@dataclass
class WindowResult:
    """Outcome of exporting one window.

    Attributes:
        region: Window that was exported
        records: Converted records in store order
        failed: Records that failed conversion in this window
    """

    region: Region
    records: list[VcfRecord] = field(default_factory=list)
    failed: int = 0
