"""
FastAPI application for VCF export.

Streams the variants of one or more genomic segments as VCF, using the
same controller as the CLI in stream mode.
"""

import io
import logging
import os
from pathlib import Path
from typing import Callable, List

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import Response

from vcf_dumper import __version__
from vcf_dumper.cellbase import CellbaseClient, ChromosomeCatalog
from vcf_dumper.config import ExportConfig
from vcf_dumper.controller import VariantExporterController
from vcf_dumper.exceptions import InvalidArgumentError, IOFailureError, NotFoundError
from vcf_dumper.query import ACCEPTED_QUERY_PARAMS
from vcf_dumper.store import ParquetVariantStore, VariantStore

logger = logging.getLogger(__name__)

VCF_MEDIA_TYPE = "text/plain"

StoreFactory = Callable[[str], VariantStore]
CatalogFactory = Callable[[str], ChromosomeCatalog]


def _default_store_factory(database: str) -> VariantStore:
    root = Path(os.environ.get("VCF_DUMPER_STORE_ROOT", "."))
    return ParquetVariantStore(root, database)


def _default_catalog_factory(species: str) -> ChromosomeCatalog:
    config = ExportConfig(species=species, database="", studies=[])
    return CellbaseClient(
        species,
        base_url=config.cellbase_url,
        version=config.cellbase_version,
        timeout=config.request_timeout,
    )


def create_app(
    store_factory: StoreFactory = _default_store_factory,
    catalog_factory: CatalogFactory = _default_catalog_factory,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        store_factory: Returns the variant store of a database name
        catalog_factory: Returns the chromosome catalog (and reference
            sequence service) of a species

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="VCF Dumper API",
        description="Export variants of one or more studies as VCF.",
        version=__version__,
    )

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    @app.get("/v1/segments/{regions}/variants")
    def segment_variants(
        regions: str,
        request: Request,
        species: str = Query(..., description="Species name, e.g. hsapiens"),
        database: str = Query(..., description="Variant store database name"),
        studies: List[str] = Query(..., description="Study identifiers"),
        files: List[str] = Query(default=[], description="File identifiers"),
    ):
        """
        Export the variants of comma-separated regions as VCF.

        Extra query parameters in the accepted filter list (gene, type,
        annot-ct, ...) are applied to the store query.
        """
        query_parameters: dict[str, list[str]] = {"region": [regions]}
        for name in ACCEPTED_QUERY_PARAMS:
            if name != "region" and name in request.query_params:
                query_parameters[name] = request.query_params.getlist(name)

        config = ExportConfig(
            species=species,
            database=database,
            studies=studies,
            files=files,
            query_parameters=query_parameters,
        )
        buffer = io.BytesIO()

        try:
            config.require_valid(require_output_dir=False)
            catalog = catalog_factory(species)
            controller = VariantExporterController(
                config,
                store_factory(database),
                catalog,
                output_stream=buffer,
            )
            controller.run()
        except InvalidArgumentError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except IOFailureError as e:
            logger.error(f"Export of {regions} failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return Response(
            content=buffer.getvalue(),
            media_type=VCF_MEDIA_TYPE,
            headers={"X-Failed-Variants": str(controller.failed_variants)},
        )

    return app
