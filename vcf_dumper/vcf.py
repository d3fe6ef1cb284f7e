"""VCF text encoding and header parsing.

Writes VCF 4.2 header and data lines and parses the "##" meta-information
lines stored with each loaded file.

Example:
    lines, samples = parse_header_lines(source.header)
    text = format_record(record)
"""

import re

from vcf_dumper.models import HeaderLine, SequenceDictionary, VcfHeader, VcfRecord

VCF_VERSION = "VCFv4.2"

FIXED_COLUMNS = ["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO"]

MISSING = "."

# key=value pairs inside "<...>", values may be quoted and contain commas
_STRUCTURED_FIELD = re.compile(r'([A-Za-z0-9_.]+)=("(?:[^"\\]|\\.)*"|[^,]*)')


def parse_header_line(line: str) -> HeaderLine:
    """Parse one "##key=value" line.

    Args:
        line: Header line including the leading "##"

    Returns:
        HeaderLine with structured fields parsed when the value is "<...>"

    Raises:
        ValueError: If the line is not a "##key=value" line

    Example:
        >>> parse_header_line('##INFO=<ID=AF,Number=A,Type=Float,Description="Freq">').id
        "AF"
    """
    if not line.startswith("##") or "=" not in line:
        raise ValueError(f"Malformed VCF meta line: {line!r}")

    key, value = line[2:].split("=", 1)
    if not key:
        raise ValueError(f"Malformed VCF meta line: {line!r}")

    fields: tuple[tuple[str, str], ...] = ()
    if value.startswith("<") and value.endswith(">"):
        fields = tuple(
            (name, raw.strip('"') if name == "Description" else raw)
            for name, raw in _STRUCTURED_FIELD.findall(value[1:-1])
        )
    return HeaderLine(key=key, value=value, fields=fields)


def parse_header_lines(text: str) -> tuple[list[HeaderLine], list[str]]:
    """Parse the header of a VCF file.

    Args:
        text: Header text ("##" lines followed by the "#CHROM" line)

    Returns:
        Tuple of (meta lines, sample names from the #CHROM line)

    Raises:
        ValueError: If any line is malformed
    """
    meta_lines: list[HeaderLine] = []
    samples: list[str] = []

    for raw in text.splitlines():
        line = raw.rstrip("\r")
        if not line:
            continue
        if line.startswith("##"):
            meta_lines.append(parse_header_line(line))
        elif line.startswith("#CHROM"):
            columns = line.split("\t")
            if columns[: len(FIXED_COLUMNS)] != FIXED_COLUMNS:
                raise ValueError(f"Malformed #CHROM line: {line!r}")
            samples = columns[len(FIXED_COLUMNS) + 1:]
        else:
            raise ValueError(f"Unexpected line in VCF header: {line!r}")

    return meta_lines, samples


def format_header(
    header: VcfHeader,
    sequence_dictionary: SequenceDictionary | None = None,
) -> str:
    """Render the merged header as VCF text.

    Contig lines come from the sequence dictionary only, so a header
    without one carries no contig metadata.

    Args:
        header: Merged header
        sequence_dictionary: Contigs to declare (optional)

    Returns:
        Header text ending with a newline
    """
    lines = [f"##fileformat={VCF_VERSION}"]

    for meta in header.meta_lines:
        if meta.key in ("fileformat", "contig"):
            continue
        lines.append(f"##{meta.key}={meta.value}")

    if sequence_dictionary is not None:
        for contig in sequence_dictionary.contigs:
            lines.append(f"##contig=<ID={contig.name},length={contig.length}>")

    columns = list(FIXED_COLUMNS)
    if header.samples:
        columns.append("FORMAT")
        columns.extend(header.samples)
    lines.append("\t".join(columns))

    return "\n".join(lines) + "\n"


def format_info(info: dict[str, str]) -> str:
    """Render the INFO column ("" values are written as flags)."""
    if not info:
        return MISSING
    return ";".join(key if value == "" else f"{key}={value}" for key, value in info.items())


def format_record(record: VcfRecord) -> str:
    """Render one data line (without trailing newline).

    Args:
        record: Converted record

    Returns:
        Tab-separated VCF data line
    """
    columns = [
        record.chromosome,
        str(record.start),
        ";".join(record.ids) if record.ids else MISSING,
        record.reference,
        ",".join(record.alternates) if record.alternates else MISSING,
        record.qual,
        record.filter,
        format_info(record.info),
    ]
    if record.format:
        columns.append(":".join(record.format))
        columns.extend(":".join(values) for values in record.samples)
    return "\t".join(columns)
