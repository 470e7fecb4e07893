"""Workflow catalog consulted by the lifecycle.

Names and ignorable terminal steps are fixed; nothing here is looked up at
runtime.
"""

from __future__ import annotations

from types import MappingProxyType

VERSIONING_WORKFLOW = "versioningWF"
ACCESSION_WORKFLOW = "accessionWF"
REGISTRATION_WORKFLOW = "registrationWF"

# end-accession may lag behind the rest of accessionWF; a new version opened
# from another workflow must not be blocked by it.
ACCESSION_IGNORABLE_STEPS = frozenset({"end-accession"})

# The milestone marking a completed accession cycle.
ACCESSIONED_MILESTONE = (ACCESSION_WORKFLOW, "end-accession")

# Pre-processing workflows and the terminal step of each that closes or hands
# off the version. An empty set means every incomplete step counts.
ASSEMBLY_WORKFLOWS = MappingProxyType(
    {
        "assemblyWF": frozenset({"accessioning-initiate"}),
        "wasCrawlPreassemblyWF": frozenset({"end-was-crawl-preassembly"}),
        "wasSeedPreassemblyWF": frozenset({"end-was-seed-preassembly"}),
        "gisDeliveryWF": frozenset({"start-accession-workflow"}),
        "ocrWF": frozenset({"end-ocr"}),
        "speechToTextWF": frozenset({"end-stt"}),
        "gisAssemblyWF": frozenset(),
    }
)

INITIAL_VERSION_DESCRIPTION = "Initial version"

EVENT_REGISTRATION = "registration"
EVENT_VERSION_OPEN = "version_open"
EVENT_VERSION_CLOSE = "version_close"
EVENT_VERSION_DISCARD = "version_discard"
