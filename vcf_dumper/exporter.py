"""Conversion of store records into VCF records.

The exporter builds the merged header from the sources of every study and
converts the records of one window at a time. Records that cannot be
converted are counted, never fatal.
"""

import logging
import re
from typing import Iterator

from vcf_dumper.cellbase import ReferenceSequence
from vcf_dumper.exceptions import IOFailureError, RecordConversionError, VcfDumperError
from vcf_dumper.models import (
    HeaderLine,
    Region,
    VariantRecord,
    VariantSource,
    VcfHeader,
    VcfRecord,
    WindowResult,
)
from vcf_dumper.store import SourceAdaptor
from vcf_dumper.vcf import parse_header_lines

logger = logging.getLogger(__name__)

# Plain bases, the spanning deletion allele, or a symbolic allele such as <DEL>
_VALID_ALLELE = re.compile(r"^([ACGTN]+|\*|<[^<>]+>)$")

# Source attributes written to QUAL/FILTER instead of INFO
_QUAL = "QUAL"
_FILTER = "FILTER"


def _missing_value(key: str) -> str:
    return "./." if key == "GT" else "."


class VariantExporter:
    """Converts store records to VCF records for one export run.

    Usage:
        exporter = VariantExporter(cellbase_client)
        sources = exporter.get_sources(store.get_source_adaptor(), studies)
        header = exporter.get_merged_vcf_header(sources)
        result = exporter.export(store.iterator(query), region)
    """

    def __init__(self, reference: ReferenceSequence) -> None:
        self.reference = reference
        # (study_id, sample name) -> output sample column
        self._sample_columns: dict[tuple[str, str], int] = {}
        self._samples: tuple[str, ...] = ()

    def get_sources(
        self,
        source_adaptor: SourceAdaptor,
        study_ids: list[str],
    ) -> dict[str, list[VariantSource]]:
        """Fetch the sources of every study.

        Returns:
            Study id -> sources of its files, in study order

        Raises:
            IOFailureError: If sources cannot be read or a study has none
        """
        try:
            sources = source_adaptor.get_sources(list(study_ids))
        except VcfDumperError as e:
            raise IOFailureError(f"Error getting sources: {e}") from e

        by_study: dict[str, list[VariantSource]] = {study_id: [] for study_id in study_ids}
        for source in sources:
            if source.study_id in by_study:
                by_study[source.study_id].append(source)

        missing = [study_id for study_id, files in by_study.items() if not files]
        if missing:
            raise IOFailureError(f"No sources found for studies: {', '.join(missing)}")

        return by_study

    def get_merged_vcf_header(self, sources: dict[str, list[VariantSource]]) -> VcfHeader:
        """Merge the headers of all sources into one.

        Meta lines are deduplicated by key and ID (first occurrence wins).
        A sample name used by more than one study is prefixed with the
        study id; files of the same study share sample columns.

        Raises:
            IOFailureError: If any source header cannot be parsed
        """
        meta_lines: dict[tuple[str, str], HeaderLine] = {}
        study_samples: list[tuple[str, str]] = []

        for study_id, study_sources in sources.items():
            for source in study_sources:
                try:
                    lines, header_samples = parse_header_lines(source.header)
                except ValueError as e:
                    raise IOFailureError(
                        f"Error parsing VCF header of file {source.file_id} in study {study_id}: {e}"
                    ) from e

                for line in lines:
                    if line.key == "fileformat":
                        continue
                    meta_lines.setdefault(line.merge_key, line)

                for sample in source.samples or header_samples:
                    if (study_id, sample) not in study_samples:
                        study_samples.append((study_id, sample))

        studies_by_name: dict[str, set[str]] = {}
        for study_id, sample in study_samples:
            studies_by_name.setdefault(sample, set()).add(study_id)

        names = [
            f"{study_id}_{sample}" if len(studies_by_name[sample]) > 1 else sample
            for study_id, sample in study_samples
        ]
        if len(set(names)) != len(names):
            raise IOFailureError("Sample names still collide after prefixing with study ids")

        self._sample_columns = {key: index for index, key in enumerate(study_samples)}
        self._samples = tuple(names)

        logger.info(
            f"Merged header: {len(meta_lines)} meta lines, {len(names)} samples "
            f"from {sum(len(s) for s in sources.values())} files"
        )
        return VcfHeader(meta_lines=tuple(meta_lines.values()), samples=self._samples)

    def export(self, iterator: Iterator[VariantRecord], region: Region) -> WindowResult:
        """Convert the records of one window.

        Records starting outside the window are left to the window that
        contains their start. The iterator is closed before returning.

        Args:
            iterator: Store iterator for the window query
            region: Window being exported

        Returns:
            WindowResult with records in iterator order and the failure count
        """
        result = WindowResult(region=region)
        try:
            for variant in iterator:
                if not region.contains(variant.start):
                    continue
                try:
                    result.records.append(self.convert(variant))
                except RecordConversionError as e:
                    result.failed += 1
                    logger.warning(
                        f"Variant {variant.chromosome}:{variant.start}:"
                        f"{variant.reference or '-'}:{variant.alternate or '-'} not exported: {e}"
                    )
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

        logger.debug(f"Region {region}: {len(result.records)} exported, {result.failed} failed")
        return result

    def convert(self, variant: VariantRecord) -> VcfRecord:
        """Convert one store record.

        Raises:
            RecordConversionError: If the alleles are invalid, the context
                base cannot be fetched or sample data does not fit the header
        """
        position, reference, alternate = self._vcf_alleles(variant)

        for allele in (reference, alternate):
            if not _VALID_ALLELE.match(allele):
                raise RecordConversionError(f"Invalid allele '{allele}'")

        record = VcfRecord(
            chromosome=variant.chromosome,
            start=position,
            reference=reference,
            alternates=[alternate],
            ids=list(variant.ids),
        )
        self._fill_site_fields(record, variant)
        if self._samples:
            self._fill_samples(record, variant)
        return record

    def _vcf_alleles(self, variant: VariantRecord) -> tuple[int, str, str]:
        """Restore the context base of normalised indels.

        VCF needs the base before the indel (or after it, at position 1).
        """
        reference = variant.reference.upper()
        alternate = variant.alternate.upper()
        if reference and alternate:
            return variant.start, reference, alternate

        if variant.start > 1:
            context = Region(variant.chromosome, variant.start - 1, variant.start - 1)
        else:
            following = variant.start + len(reference)
            context = Region(variant.chromosome, following, following)

        try:
            base = self.reference.get_sequence(context)
        except VcfDumperError as e:
            raise RecordConversionError(f"Context base at {context} not available: {e}") from e
        if len(base) != 1:
            raise RecordConversionError(f"Expected one context base at {context}, got '{base}'")

        if variant.start > 1:
            return variant.start - 1, base + reference, base + alternate
        return variant.start, reference + base, alternate + base

    def _fill_site_fields(self, record: VcfRecord, variant: VariantRecord) -> None:
        quals: set[str] = set()
        filters: set[str] = set()
        for entry in variant.source_entries:
            for key, value in entry.attributes.items():
                if key == _QUAL:
                    quals.add(value)
                elif key == _FILTER:
                    filters.add(value)
                else:
                    record.info.setdefault(key, value)

        # Conflicting values across files cannot be represented
        if len(quals) == 1:
            record.qual = quals.pop()
        if len(filters) == 1:
            record.filter = filters.pop()

    def _fill_samples(self, record: VcfRecord, variant: VariantRecord) -> None:
        keys: list[str] = ["GT"]
        for entry in variant.source_entries:
            for key in entry.format:
                if key not in keys:
                    keys.append(key)

        samples = [[_missing_value(key) for key in keys] for _ in self._samples]
        for entry in variant.source_entries:
            for sample, data in entry.samples_data.items():
                column = self._sample_columns.get((entry.study_id, sample))
                if column is None:
                    raise RecordConversionError(
                        f"Sample '{sample}' of study {entry.study_id} is not in the header"
                    )
                for key, value in data.items():
                    if key not in keys:
                        raise RecordConversionError(f"FORMAT key '{key}' not declared by file {entry.file_id}")
                    samples[column][keys.index(key)] = value

        record.format = keys
        record.samples = samples
