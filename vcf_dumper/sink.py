"""VCF output sink.

Writes the merged header and the exported records either to a new
compressed file in a directory or to a caller-supplied byte stream.

Output files:
- <species>_exported_<ISO-8601 local timestamp>.vcf.gz - gzip compressed
  VCF, no index
- <name>.partial while the export is running; renamed on close(), removed
  on abort()
"""

import gzip
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import BinaryIO, Callable

from vcf_dumper.models import SequenceDictionary, VcfHeader, VcfRecord
from vcf_dumper.vcf import format_header, format_record

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"
INCOMPLETE_MARKER = "#EXPORT_INCOMPLETE"


def output_file_name(species: str, now: datetime) -> str:
    """Build the output filename for a directory export.

    Example:
        >>> output_file_name("hsapiens", datetime(2016, 1, 20, 10, 15, 30))
        "hsapiens_exported_2016-01-20T10:15:30.000.vcf.gz"
    """
    return f"{species}_exported_{now.isoformat(timespec='milliseconds')}.vcf.gz"


@dataclass(frozen=True)
class _FileTarget:
    path: Path


@dataclass(frozen=True)
class _StreamTarget:
    stream: BinaryIO


class OutputSink:
    """Single writer for the exported VCF.

    Build with to_directory() or to_stream(); exactly one target is
    always set. write_header() must be called once before any add();
    close() must be called at most once.

    Usage:
        with OutputSink.to_directory(out_dir, "hsapiens") as sink:
            sink.write_header(header)
            for record in records:
                sink.add(record)
        print(sink.output_path)
    """

    def __init__(
        self,
        target: _FileTarget | _StreamTarget,
        sequence_dictionary: SequenceDictionary | None = None,
    ) -> None:
        self._target = target
        self.sequence_dictionary = sequence_dictionary
        self.header_written = False
        self.closed = False
        self.records_written = 0

        if sequence_dictionary is None:
            logger.warning("Incorrect or missing sequence / contig meta-data")
            logger.warning("It won't be included in output VCF header")

        if isinstance(target, _FileTarget):
            target.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle: BinaryIO = gzip.open(self.partial_path, "wb")
        else:
            self._handle = target.stream

    @classmethod
    def to_directory(
        cls,
        directory: Path,
        species: str,
        sequence_dictionary: SequenceDictionary | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "OutputSink":
        """Create a sink writing <species>_exported_<timestamp>.vcf.gz in directory."""
        path = Path(directory) / output_file_name(species, clock())
        return cls(_FileTarget(path), sequence_dictionary)

    @classmethod
    def to_stream(
        cls,
        stream: BinaryIO,
        sequence_dictionary: SequenceDictionary | None = None,
    ) -> "OutputSink":
        """Create a sink writing uncompressed VCF to a binary stream."""
        return cls(_StreamTarget(stream), sequence_dictionary)

    @property
    def output_path(self) -> Path | None:
        """Final output path (None in stream mode)."""
        if isinstance(self._target, _FileTarget):
            return self._target.path
        return None

    @property
    def partial_path(self) -> Path | None:
        if isinstance(self._target, _FileTarget):
            return self._target.path.with_name(self._target.path.name + PARTIAL_SUFFIX)
        return None

    def _write(self, text: str) -> None:
        self._handle.write(text.encode("utf-8"))

    def write_header(self, header: VcfHeader) -> None:
        """Write the header. Must be called once, before any record."""
        if self.closed:
            raise RuntimeError("Sink is closed")
        if self.header_written:
            raise RuntimeError("VCF header already written")
        self._write(format_header(header, self.sequence_dictionary))
        self.header_written = True

    def add(self, record: VcfRecord) -> None:
        """Append one record as given."""
        if self.closed:
            raise RuntimeError("Sink is closed")
        if not self.header_written:
            raise RuntimeError("VCF header must be written before records")
        self._write(format_record(record) + "\n")
        self.records_written += 1

    def close(self) -> None:
        """Flush, release the target and publish the file under its final name."""
        if self.closed:
            raise RuntimeError("Sink already closed")
        self.closed = True

        if isinstance(self._target, _FileTarget):
            self._handle.close()
            self.partial_path.replace(self._target.path)
            logger.info(f"Wrote {self.records_written:,} records to {self._target.path}")
        else:
            self._handle.flush()
            logger.info(f"Wrote {self.records_written:,} records to output stream")

    def abort(self, reason: str) -> None:
        """Mark the output as incomplete.

        Files are deleted before they get their final name; streams get a
        trailing marker line that no VCF reader accepts as a record.
        """
        if self.closed:
            return
        self.closed = True
        logger.error(f"Export aborted after {self.records_written:,} records: {reason}")

        if isinstance(self._target, _FileTarget):
            self._handle.close()
            self.partial_path.unlink(missing_ok=True)
        else:
            self._write(f"{INCOMPLETE_MARKER}: {reason}\n")
            self._handle.flush()

    def __enter__(self) -> "OutputSink":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - close on success, abort on error."""
        if exc_val is not None:
            self.abort(str(exc_val) or exc_type.__name__)
        elif not self.closed:
            self.close()
