"""Process definitions for the workflows the lifecycle creates or inspects."""

from __future__ import annotations

from types import MappingProxyType

from ..constants import ACCESSION_WORKFLOW, REGISTRATION_WORKFLOW, VERSIONING_WORKFLOW
from ..exceptions import UnknownWorkflowError

WORKFLOW_TEMPLATES = MappingProxyType(
    {
        VERSIONING_WORKFLOW: ("start-version", "submit-version", "start-accession"),
        ACCESSION_WORKFLOW: (
            "start-accession",
            "stage",
            "technical-metadata",
            "shelve",
            "publish",
            "preservation-ingest-initiated",
            "sdr-ingest-received",
            "reset-workspace",
            "end-accession",
        ),
        REGISTRATION_WORKFLOW: ("start", "register", "end-registration"),
        "assemblyWF": (
            "start-assembly",
            "content-metadata-create",
            "jp2-create",
            "checksum-compute",
            "exif-collect",
            "accessioning-initiate",
        ),
        "wasCrawlPreassemblyWF": (
            "build-was-crawl-druid-tree",
            "content-metadata-generator",
            "end-was-crawl-preassembly",
        ),
        "wasSeedPreassemblyWF": (
            "thumbnail-generator",
            "content-metadata-generator",
            "end-was-seed-preassembly",
        ),
        "gisAssemblyWF": (
            "start-gis-assembly-workflow",
            "extract-boundingbox",
            "generate-content-metadata",
            "finish-gis-assembly-workflow",
        ),
        "gisDeliveryWF": (
            "start-gis-delivery-workflow",
            "load-geoserver",
            "finish-gis-delivery-workflow",
            "start-accession-workflow",
        ),
        "ocrWF": ("start-ocr", "ocr-create", "update-cocina", "end-ocr"),
        "speechToTextWF": ("start-stt", "stt-create", "update-cocina", "end-stt"),
    }
)

# Workflow started by close_instance(start_next=True).
NEXT_WORKFLOW = MappingProxyType({VERSIONING_WORKFLOW: ACCESSION_WORKFLOW})


def process_names(workflow_name: str) -> tuple[str, ...]:
    try:
        return WORKFLOW_TEMPLATES[workflow_name]
    except KeyError:
        raise UnknownWorkflowError(f"Unknown workflow: {workflow_name}") from None
