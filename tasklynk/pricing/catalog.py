"""Service catalog: the canonical price list for every orderable service.

All rates are in KSh and use Decimal. Entries are static and frozen; the
catalog is the single source of truth for both client pricing and the unit
type that decides which quantity field an order carries.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from tasklynk.errors import UnknownServiceError

# =============================================================================
# Enums
# =============================================================================


class UnitType(str, Enum):
    """What one unit of quantity means for a service."""

    page = "page"
    slide = "slide"
    document = "document"
    file = "file"
    dataset = "dataset"
    graphic = "graphic"
    design = "design"
    revision = "revision"
    hour = "hour"


class ServiceCategory(str, Enum):
    """Catalog grouping. Editing services are exempt from the urgency surcharge."""

    writing = "writing"
    presentation = "presentation"
    editing = "editing"
    document = "document"
    data = "data"
    design = "design"
    support = "support"


class PayoutCategory(str, Enum):
    """Freelancer payout rate family."""

    ai_removal = "ai_removal"
    plagiarism_report = "plagiarism_report"
    proofreading = "proofreading"
    writing = "writing"


# =============================================================================
# Catalog
# =============================================================================


class CatalogEntry(BaseModel):
    """Static configuration for one orderable service."""

    key: str
    name: str
    rate: Decimal
    unit_type: UnitType
    category: ServiceCategory
    payout: PayoutCategory = PayoutCategory.writing

    class Config:
        frozen = True

    @property
    def quantity_field(self) -> str:
        """Order field that carries the quantity for this entry."""
        if self.unit_type == UnitType.page:
            return "pages"
        if self.unit_type == UnitType.slide:
            return "slides"
        return "units"

    @property
    def surcharge_exempt(self) -> bool:
        return self.category == ServiceCategory.editing


def _entry(key, name, rate, unit_type, category, payout=PayoutCategory.writing):
    return CatalogEntry(
        key=key,
        name=name,
        rate=Decimal(rate),
        unit_type=unit_type,
        category=category,
        payout=payout,
    )


_ENTRIES = [
    # Page-based writing
    _entry("essay", "Essay", "250", UnitType.page, ServiceCategory.writing),
    _entry("assignment", "Assignment", "250", UnitType.page, ServiceCategory.writing),
    _entry(
        "research-proposal", "Research Proposal", "300", UnitType.page, ServiceCategory.writing
    ),
    _entry("thesis-writing", "Thesis Writing", "300", UnitType.page, ServiceCategory.writing),
    _entry("research-paper", "Research Paper", "250", UnitType.page, ServiceCategory.writing),
    _entry("dissertation", "Dissertation", "300", UnitType.page, ServiceCategory.writing),
    _entry("case-study", "Case Study", "250", UnitType.page, ServiceCategory.writing),
    _entry("lab-report", "Lab Report", "250", UnitType.page, ServiceCategory.writing),
    _entry("article-writing", "Article Writing", "200", UnitType.page, ServiceCategory.writing),
    _entry("blog-writing", "Blog Writing", "200", UnitType.page, ServiceCategory.writing),
    # Slide-based
    _entry("presentation", "Presentation", "150", UnitType.slide, ServiceCategory.presentation),
    _entry(
        "powerpoint-design",
        "PowerPoint Design",
        "150",
        UnitType.slide,
        ServiceCategory.presentation,
    ),
    _entry("slide-design", "Slide Design", "150", UnitType.slide, ServiceCategory.presentation),
    # Editing
    _entry(
        "grammar-proofreading",
        "Grammar & Proofreading",
        "30",
        UnitType.page,
        ServiceCategory.editing,
        PayoutCategory.proofreading,
    ),
    _entry(
        "ai-content-removal",
        "AI Content Removal",
        "50",
        UnitType.page,
        ServiceCategory.editing,
        PayoutCategory.ai_removal,
    ),
    _entry(
        "humanization",
        "Humanization",
        "50",
        UnitType.page,
        ServiceCategory.editing,
    ),
    _entry(
        "plagiarism-ai-detection",
        "Plagiarism & AI Detection Report",
        "30",
        UnitType.document,
        ServiceCategory.editing,
        PayoutCategory.plagiarism_report,
    ),
    _entry(
        "formatting-referencing",
        "Formatting & Referencing",
        "25",
        UnitType.page,
        ServiceCategory.editing,
    ),
    # Documents and files
    _entry("pdf-editing", "PDF Editing", "50", UnitType.page, ServiceCategory.document),
    _entry(
        "document-conversion", "Document Conversion", "10", UnitType.file, ServiceCategory.document
    ),
    _entry("file-compression", "File Compression", "20", UnitType.file, ServiceCategory.document),
    # Data analysis
    _entry("data-analysis", "Data Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("spss", "SPSS Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("excel", "Excel Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("r-programming", "R Programming", "350", UnitType.dataset, ServiceCategory.data),
    _entry("python", "Python Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("stata", "STATA Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("jasp", "JASP Analysis", "350", UnitType.dataset, ServiceCategory.data),
    _entry("jamovi", "Jamovi Analysis", "350", UnitType.dataset, ServiceCategory.data),
    # Design
    _entry("infographics", "Infographics", "150", UnitType.graphic, ServiceCategory.design),
    _entry(
        "data-visualization", "Data Visualization", "150", UnitType.graphic, ServiceCategory.design
    ),
    _entry("poster-design", "Poster Design", "200", UnitType.design, ServiceCategory.design),
    _entry("resume-design", "Resume Design", "200", UnitType.design, ServiceCategory.design),
    _entry("brochure-design", "Brochure Design", "200", UnitType.design, ServiceCategory.design),
    # Support
    _entry(
        "revision-support", "Revision Support", "100", UnitType.revision, ServiceCategory.support
    ),
    _entry(
        "expert-consultation", "Expert Consultation", "500", UnitType.hour, ServiceCategory.support
    ),
    _entry("tutoring", "Tutoring", "500", UnitType.hour, ServiceCategory.support),
]

# Canonical catalog - single source of truth
SERVICE_CATALOG: dict[str, CatalogEntry] = {entry.key: entry for entry in _ENTRIES}


def get_catalog_entry(catalog_key: str) -> CatalogEntry:
    """Look up a catalog entry. Raises UnknownServiceError for unknown keys."""
    try:
        return SERVICE_CATALOG[catalog_key]
    except KeyError:
        raise UnknownServiceError(catalog_key) from None


def find_by_work_type(work_type: str) -> CatalogEntry | None:
    """Resolve a legacy free-text work type (display name) to its entry."""
    needle = (work_type or "").strip().lower()
    for entry in _ENTRIES:
        if entry.name.lower() == needle or entry.key == needle:
            return entry
    return None
