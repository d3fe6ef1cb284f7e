"""Tests for data models."""

import pytest

from vcf_dumper.models import ContigRecord, ExportQuery, HeaderLine, Region, VcfHeader


class TestRegion:
    """Tests for Region formatting and parsing."""

    def test_str_bounded(self) -> None:
        """Bounded regions format as chrom:start-end."""
        assert str(Region("1", 1000, 2000)) == "1:1000-2000"

    def test_str_unbounded(self) -> None:
        """Whole-chromosome regions format as the chromosome."""
        assert str(Region("X")) == "X"

    def test_parse_bounded(self) -> None:
        """chrom:start-end parses to a bounded region."""
        region = Region.parse("22:16000000-17000000")
        assert region == Region("22", 16000000, 17000000)

    def test_parse_chromosome_only(self) -> None:
        """A bare chromosome parses to an unbounded region."""
        region = Region.parse("MT")
        assert region.chromosome == "MT"
        assert region.start is None
        assert not region.is_bounded

    def test_parse_single_position(self) -> None:
        """chrom:pos parses to a single-base region."""
        assert Region.parse("1:500") == Region("1", 500, 500)

    def test_parse_invalid_position(self) -> None:
        """Non-numeric positions are rejected."""
        with pytest.raises(ValueError):
            Region.parse("1:abc-200")

    def test_parse_thousands_separator_rejected(self) -> None:
        """Commas separate regions, so they are never part of a position."""
        with pytest.raises(ValueError):
            Region.parse("1:1,000-2,000")

    def test_start_after_end_rejected(self) -> None:
        """Start after end is rejected."""
        with pytest.raises(ValueError):
            Region("1", 200, 100)

    def test_contains(self) -> None:
        """contains() is inclusive at both ends."""
        region = Region("1", 100, 200)
        assert region.contains(100)
        assert region.contains(200)
        assert not region.contains(99)
        assert not region.contains(201)
        assert Region("1").contains(5)


class TestExportQuery:
    """Tests for ExportQuery."""

    def test_with_region_replaces_region_filter(self) -> None:
        """with_region returns a copy restricted to one window."""
        query = ExportQuery(studies=("S1",), regions=("1", "2"), filters={"type": "SNV"})

        window_query = query.with_region(Region("1", 1, 20000))

        assert window_query.regions == ("1:1-20000",)
        assert window_query.studies == ("S1",)
        assert window_query.filters == {"type": "SNV"}
        # Original is unchanged
        assert query.regions == ("1", "2")


class TestSequenceDictionary:
    """Tests for building a sequence dictionary from header contigs."""

    def _contig(self, **fields: str) -> HeaderLine:
        value = "<" + ",".join(f"{k}={v}" for k, v in fields.items()) + ">"
        return HeaderLine("contig", value, tuple(fields.items()))

    def test_valid_contigs(self) -> None:
        """Contig lines with ID and length build the dictionary."""
        header = VcfHeader(meta_lines=(
            self._contig(ID="1", length="1000"),
            self._contig(ID="2", length="500"),
        ))

        dictionary = header.sequence_dictionary()

        assert dictionary is not None
        assert dictionary.contigs == (ContigRecord("1", 1000), ContigRecord("2", 500))

    def test_missing_length_gives_none(self) -> None:
        """A contig without length gives no dictionary."""
        header = VcfHeader(meta_lines=(
            self._contig(ID="1", length="1000"),
            self._contig(ID="2"),
        ))

        assert header.sequence_dictionary() is None

    def test_non_numeric_length_gives_none(self) -> None:
        """A non-numeric contig length gives no dictionary."""
        header = VcfHeader(meta_lines=(self._contig(ID="1", length="big"),))

        assert header.sequence_dictionary() is None

    def test_no_contigs_gives_none(self) -> None:
        """No contig lines gives no dictionary."""
        assert VcfHeader(meta_lines=()).sequence_dictionary() is None
