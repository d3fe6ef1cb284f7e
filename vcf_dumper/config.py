"""Configuration dataclass for the VCF dumper.

Construction parameters of one export run, validated before any store or
network connection is opened.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from vcf_dumper.exceptions import InvalidArgumentError

DEFAULT_WINDOW_SIZE = 20000
DEFAULT_CELLBASE_URL = "https://www.ebi.ac.uk/cellbase/webservices/rest"
DEFAULT_CELLBASE_VERSION = "v4"


@dataclass
class ExportConfig:
    """Configuration for one VCF export.

    Attributes:
        species: Species name, used for the catalog and the output filename
        database: Variant store database name
        studies: Study identifiers to export
        files: File identifiers (empty means every file in the studies)
        output_dir: Output directory (None when writing to a stream)
        query_parameters: Filter name -> values, restricted to accepted parameters
        window_size: Span of each genomic window in bases
        max_workers: Windows processed concurrently (1 means sequential)
        store_root: Root directory of the parquet variant store
        cellbase_url: CellBase REST base URL
        cellbase_version: CellBase API version
        request_timeout: Timeout in seconds for CellBase requests
    """

    species: str
    database: str
    studies: list[str]
    files: list[str] = field(default_factory=list)
    output_dir: Path | None = None
    query_parameters: dict[str, list[str]] = field(default_factory=dict)

    # Pipeline options
    window_size: int = DEFAULT_WINDOW_SIZE
    max_workers: int = 1

    # Collaborators
    store_root: Path | None = None
    cellbase_url: str = field(
        default_factory=lambda: os.environ.get("VCF_DUMPER_CELLBASE_URL", DEFAULT_CELLBASE_URL)
    )
    cellbase_version: str = field(
        default_factory=lambda: os.environ.get("VCF_DUMPER_CELLBASE_VERSION", DEFAULT_CELLBASE_VERSION)
    )
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Normalise paths and collections."""
        if isinstance(self.output_dir, str):
            self.output_dir = Path(self.output_dir)
        if isinstance(self.store_root, str):
            self.store_root = Path(self.store_root)
        self.studies = list(self.studies or [])
        self.files = list(self.files or [])

    def validate(self, require_output_dir: bool = True) -> list[str]:
        """Validate configuration and return list of errors.

        Args:
            require_output_dir: Whether an output directory is mandatory
                (False when the caller supplies an output stream)

        Returns:
            List of error messages (empty if valid)
        """
        errors: list[str] = []

        if not self.species:
            errors.append("'species' is required")
        if not self.studies or not all(self.studies):
            errors.append("'studies' is required")
        if require_output_dir and not self.output_dir:
            errors.append("'outputDir' is required")
        if not self.database:
            errors.append("'dbName' is required")

        if self.window_size < 1:
            errors.append(f"window_size must be positive: {self.window_size}")
        if self.max_workers < 1:
            errors.append(f"max_workers must be positive: {self.max_workers}")

        return errors

    def require_valid(self, require_output_dir: bool = True) -> None:
        """Raise InvalidArgumentError if the configuration is not valid."""
        errors = self.validate(require_output_dir=require_output_dir)
        if errors:
            raise InvalidArgumentError("; ".join(errors))
