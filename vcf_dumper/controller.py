"""Export orchestration.

Implements VariantExporterController, which coordinates one export run:
1. Merge the VCF headers of every study
2. Resolve the chromosomes to export
3. Open the output sink and write the header
4. For each chromosome and each of its windows: query the store, convert
   the records, sort them by position and write them
5. Close the sink

Windows are written in ascending order, so sorting inside each window is
enough to keep the whole chromosome ordered by position.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from operator import attrgetter
from pathlib import Path
from typing import BinaryIO, Callable

from vcf_dumper.cellbase import CellbaseClient, ChromosomeCatalog, ReferenceSequence
from vcf_dumper.chromosomes import ChromosomeResolver, chromosome_sort_key
from vcf_dumper.config import ExportConfig
from vcf_dumper.exceptions import ExportCancelled, InvalidArgumentError
from vcf_dumper.exporter import VariantExporter
from vcf_dumper.models import ExportState, Region, VcfHeader, WindowResult
from vcf_dumper.query import build_query
from vcf_dumper.regions import WindowPlanner
from vcf_dumper.sink import OutputSink
from vcf_dumper.store import ParquetVariantStore, VariantStore

logger = logging.getLogger(__name__)

WindowCallback = Callable[[WindowResult], None]


class VariantExporterController:
    """Runs one export of a set of studies into a single VCF.

    A controller writes either to config.output_dir (compressed file) or to
    output_stream, never both. It is single use: run() may be called once.

    Usage:
        controller = VariantExporterController.from_config(config)
        controller.run()
        print(controller.output_file_path, controller.failed_variants)
    """

    def __init__(
        self,
        config: ExportConfig,
        store: VariantStore,
        catalog: ChromosomeCatalog,
        reference: ReferenceSequence | None = None,
        output_stream: BinaryIO | None = None,
        cancel_event: threading.Event | None = None,
        on_window: WindowCallback | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Export configuration
            store: Variant store to read from
            catalog: Chromosome catalog of the species
            reference: Reference sequence for indel context bases
                (defaults to the catalog when it provides sequences)
            output_stream: Binary stream to write to instead of a file
            cancel_event: Set to stop the run between windows
            on_window: Called after each window is written

        Raises:
            InvalidArgumentError: If required parameters are missing, both or
                neither output targets are given, or a region filter is invalid
        """
        _check_params(config, output_stream)

        if reference is None:
            if not isinstance(catalog, ReferenceSequence):
                raise InvalidArgumentError("A reference sequence service is required")
            reference = catalog

        self.config = config
        self.species = config.species
        self.studies = list(config.studies)
        self.store = store
        self.query = build_query(config.studies, config.files, config.query_parameters)
        try:
            self._requested_regions = [Region.parse(r) for r in self.query.regions]
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid region filter: {e}") from e

        self.resolver = ChromosomeResolver(catalog, config.species)
        self.planner = WindowPlanner(catalog, config.window_size)
        self.exporter = VariantExporter(reference)

        self._output_stream = output_stream
        self._cancel_event = cancel_event or threading.Event()
        self._on_window = on_window

        # Run state
        self.state = ExportState.INITIALIZED
        self._sink: OutputSink | None = None
        self._failed_variants = 0
        self._output_file_path: Path | None = None

    @classmethod
    def from_config(
        cls,
        config: ExportConfig,
        output_stream: BinaryIO | None = None,
        **kwargs,
    ) -> "VariantExporterController":
        """Build a controller with the parquet store and the CellBase client.

        Parameters are validated before the store is opened.
        """
        _check_params(config, output_stream)
        if config.store_root is None:
            raise InvalidArgumentError("'store_root' is required")

        store = ParquetVariantStore(config.store_root, config.database)
        client = CellbaseClient(
            config.species,
            base_url=config.cellbase_url,
            version=config.cellbase_version,
            timeout=config.request_timeout,
        )
        return cls(config, store, client, client, output_stream=output_stream, **kwargs)

    @property
    def failed_variants(self) -> int:
        """Records that failed conversion so far."""
        return self._failed_variants

    @property
    def output_file_path(self) -> Path | None:
        """Path of the written file (directory mode, after a successful run)."""
        return self._output_file_path

    @property
    def records_written(self) -> int:
        return self._sink.records_written if self._sink is not None else 0

    def cancel(self) -> None:
        """Request the run to stop before the next window."""
        self._cancel_event.set()

    def run(self) -> None:
        """Export every resolved chromosome into the output.

        Raises:
            IOFailureError: If the merged header cannot be built
            NotFoundError: If no chromosome (or chromosome length) is found
            ExportCancelled: If cancel() was called during the run
            RuntimeError: If the controller was already run
        """
        if self.state is not ExportState.INITIALIZED:
            raise RuntimeError(f"Export already run (state: {self.state.name})")

        try:
            header = self._build_header()
            self.state = ExportState.HEADER_READY

            chromosomes = sorted(self.resolver.resolve(self.query), key=chromosome_sort_key)
            self.state = ExportState.EXPORTING

            self._sink = self._open_sink(header)
            self._sink.write_header(header)

            for chromosome in chromosomes:
                self._export_chromosome(chromosome)

            self._sink.close()
            self._output_file_path = self._sink.output_path
            self.state = ExportState.CLOSED
        except Exception as e:
            self.state = ExportState.FAILED
            if self._sink is not None and not self._sink.closed:
                self._sink.abort(str(e) or type(e).__name__)
            raise

        logger.info(
            f"Export complete: {self._sink.records_written:,} variants written, "
            f"{self._failed_variants:,} failed"
        )

    def _build_header(self) -> VcfHeader:
        logger.info("Generating VCF headers ...")
        sources = self.exporter.get_sources(self.store.get_source_adaptor(), self.studies)
        return self.exporter.get_merged_vcf_header(sources)

    def _open_sink(self, header: VcfHeader) -> OutputSink:
        sequence_dictionary = header.sequence_dictionary()
        if self._output_stream is not None:
            return OutputSink.to_stream(self._output_stream, sequence_dictionary)
        return OutputSink.to_directory(self.config.output_dir, self.species, sequence_dictionary)

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ExportCancelled("Export cancelled")

    def _export_chromosome(self, chromosome: str) -> None:
        windows = self.planner.plan_regions(chromosome, self._requested_regions)
        logger.info(f"Exporting chromosome {chromosome} ({len(windows)} windows)")

        if self.config.max_workers == 1:
            for region in windows:
                self._check_cancelled()
                self._write_window(self._export_window(region))
            return

        # Results are consumed in submission order, so the sink sees the
        # same sequence as the sequential path
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            pending: deque[Future[WindowResult]] = deque()
            try:
                for region in windows:
                    self._check_cancelled()
                    pending.append(executor.submit(self._export_window, region))
                    if len(pending) >= 2 * self.config.max_workers:
                        self._write_window(pending.popleft().result())
                while pending:
                    self._check_cancelled()
                    self._write_window(pending.popleft().result())
            finally:
                for future in pending:
                    future.cancel()

    def _export_window(self, region: Region) -> WindowResult:
        iterator = self.store.iterator(self.query.with_region(region))
        return self.exporter.export(iterator, region)

    def _write_window(self, result: WindowResult) -> None:
        for record in sorted(result.records, key=attrgetter("start")):
            self._sink.add(record)
        self._failed_variants += result.failed

        if self._on_window is not None:
            self._on_window(result)


def _check_params(config: ExportConfig, output_stream: BinaryIO | None) -> None:
    """Validate construction parameters before any connection is opened."""
    if output_stream is not None and config.output_dir is not None:
        raise InvalidArgumentError("Output directory and output stream are mutually exclusive")
    config.require_valid(require_output_dir=output_stream is None)
