"""CellBase web service client.

Provides the chromosome catalog of a species (names and lengths) and
reference sequence lookups used to restore the context base of indels.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests
from pydantic import BaseModel, Field, ValidationError

from vcf_dumper.config import DEFAULT_CELLBASE_URL, DEFAULT_CELLBASE_VERSION
from vcf_dumper.exceptions import IOFailureError
from vcf_dumper.models import Region

logger = logging.getLogger(__name__)


class ChromosomeInfo(BaseModel):
    """Chromosome entry of the genome info endpoint."""

    name: str
    size: int | None = Field(default=None, ge=1)


class GenomeInfo(BaseModel):
    chromosomes: list[ChromosomeInfo] = Field(default_factory=list)


class SequenceResult(BaseModel):
    sequence: str


class QueryResult(BaseModel):
    result: list[dict[str, Any]] = Field(default_factory=list)


class CellbaseResponse(BaseModel):
    """Envelope shared by every CellBase REST response."""

    response: list[QueryResult] = Field(default_factory=list)

    def first_result(self) -> dict[str, Any] | None:
        if not self.response or not self.response[0].result:
            return None
        return self.response[0].result[0]


class ChromosomeCatalog(ABC):
    """Chromosome names and lengths of one species."""

    @abstractmethod
    def get_chromosomes(self) -> set[str]:
        """Return every chromosome name of the species."""
        pass

    @abstractmethod
    def get_chromosome_length(self, chromosome: str) -> int | None:
        """Return the chromosome length, or None when unknown."""
        pass


class ReferenceSequence(ABC):
    """Reference genome sequence lookups."""

    @abstractmethod
    def get_sequence(self, region: Region) -> str:
        """Return the reference bases of a bounded region.

        Raises:
            IOFailureError: If the sequence cannot be retrieved
        """
        pass


class CellbaseClient(ChromosomeCatalog, ReferenceSequence):
    """CellBase REST client for one species.

    Usage:
        client = CellbaseClient("hsapiens")
        chromosomes = client.get_chromosomes()
        length = client.get_chromosome_length("1")
    """

    def __init__(
        self,
        species: str,
        base_url: str = DEFAULT_CELLBASE_URL,
        version: str = DEFAULT_CELLBASE_VERSION,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.species = species
        self.base_url = base_url.rstrip("/")
        self.version = version
        self.timeout = timeout
        self.session = session or requests.Session()
        self._chromosome_sizes: dict[str, int | None] | None = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{self.version}/{self.species}/{path}"

    def _get(self, path: str) -> CellbaseResponse:
        url = self._url(path)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return CellbaseResponse.model_validate(response.json())
        except requests.RequestException as e:
            raise IOFailureError(f"CellBase request failed ({url}): {e}") from e
        except (ValueError, ValidationError) as e:
            raise IOFailureError(f"Unexpected CellBase response ({url}): {e}") from e

    def _load_chromosomes(self) -> dict[str, int | None]:
        if self._chromosome_sizes is None:
            payload = self._get("genomic/chromosome/all").first_result()
            try:
                genome = GenomeInfo.model_validate(payload or {})
            except ValidationError as e:
                raise IOFailureError(f"Unexpected CellBase genome info: {e}") from e
            self._chromosome_sizes = {c.name: c.size for c in genome.chromosomes}
            logger.debug(
                f"Loaded {len(self._chromosome_sizes)} chromosomes for {self.species} from CellBase"
            )
        return self._chromosome_sizes

    def get_chromosomes(self) -> set[str]:
        return set(self._load_chromosomes())

    def get_chromosome_length(self, chromosome: str) -> int | None:
        return self._load_chromosomes().get(chromosome)

    def get_sequence(self, region: Region) -> str:
        payload = self._get(f"genomic/region/{region}/sequence").first_result()
        if payload is None:
            raise IOFailureError(f"No reference sequence returned for {region}")
        try:
            return SequenceResult.model_validate(payload).sequence.upper()
        except ValidationError as e:
            raise IOFailureError(f"Unexpected CellBase sequence for {region}: {e}") from e
