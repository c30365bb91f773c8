"""Submission gate: deliverables a freelancer must upload before submitting."""

from typing import Iterable, List

from tasklynk.orders.models import Artifact, ArtifactType, Order

# Requirement names reported back to the caller
REQ_DRAFT = "draft"
REQ_FINAL_DOCUMENT = "final_document"
REQ_PLAGIARISM_REPORT = "plagiarism_report"
REQ_AI_REPORT = "ai_report"

_FINAL_TYPES = {ArtifactType.FINAL_DOCUMENT.value, ArtifactType.COMPLETED_PAPER.value}


def unmet_requirements(order: Order, artifacts: Iterable[Artifact]) -> List[str]:
    """List every submission requirement the order's artifacts do not satisfy.

    An empty list means the order may be submitted.
    """
    present = {a.artifact_type for a in artifacts}
    missing: List[str] = []

    if ArtifactType.DRAFT.value not in present:
        missing.append(REQ_DRAFT)
    if not present & _FINAL_TYPES:
        missing.append(REQ_FINAL_DOCUMENT)
    if order.requires_reports:
        if ArtifactType.PLAGIARISM_REPORT.value not in present:
            missing.append(REQ_PLAGIARISM_REPORT)
        if ArtifactType.AI_REPORT.value not in present:
            missing.append(REQ_AI_REPORT)
    return missing
