"""
Audit Schemas

Scan records and the per-section reports stored for each audit, plus the
request/response models of the audit API.
"""
import enum
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ScanStatus(str, enum.Enum):
    """Scan lifecycle: running -> completed | error"""
    running = "running"
    completed = "completed"
    error = "error"


TERMINAL_STATUSES = {ScanStatus.completed, ScanStatus.error}


class SectionError(BaseModel):
    """Placeholder stored in a section whose sub-audit failed."""
    error: str
    details: str = ""
    ai_suggestion: Optional[str] = None


# ============================================================================
# Security
# ============================================================================

class SecurityReport(BaseModel):
    url: str
    https: bool = False
    reachable: bool = False
    detected_headers: List[str] = Field(default_factory=list)
    missing_headers: List[str] = Field(default_factory=list)
    missing_headers_explanation: Dict[str, str] = Field(default_factory=dict)
    mixed_content: bool = False
    error: Optional[str] = None
    ai_suggestion: Optional[str] = None


# ============================================================================
# Performance / SEO (Lighthouse)
# ============================================================================

class MetricResult(BaseModel):
    value: Union[str, float, int, None] = None
    explanation: str


class PerformanceReport(BaseModel):
    performance_score: int = Field(ge=0, le=100)
    audits: Dict[str, MetricResult] = Field(default_factory=dict)
    ai_suggestion: Optional[str] = None


class SeoAuditItem(BaseModel):
    id: str
    title: str
    description: str = ""


class SeoReport(BaseModel):
    seo_score: int = Field(ge=0, le=100)
    failed_audits: List[SeoAuditItem] = Field(default_factory=list)
    ai_suggestion: Optional[str] = None


class LighthouseResult(BaseModel):
    """Both categories produced by a single Lighthouse run."""
    performance: PerformanceReport
    seo: SeoReport


# ============================================================================
# Accessibility (axe-core)
# ============================================================================

class AccessibilityViolation(BaseModel):
    id: str
    impact: Optional[Literal["minor", "moderate", "serious", "critical"]] = None
    description: str = ""
    help: str = ""
    help_url: str = ""
    friendly_note: str = ""


# ============================================================================
# Scan record
# ============================================================================

class ScanRecord(BaseModel):
    scan_id: str
    url: str
    status: ScanStatus = ScanStatus.running
    security: Optional[SecurityReport] = None
    performance: Optional[Union[PerformanceReport, SectionError]] = None
    seo: Optional[Union[SeoReport, SectionError]] = None
    accessibility: Optional[List[Union[AccessibilityViolation, SectionError]]] = None
    accessibility_ai_suggestion: Optional[str] = None
    ai_enhanced: bool = False
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def needs_enrichment(self) -> bool:
        return self.status == ScanStatus.completed and not self.ai_enhanced


# ============================================================================
# API models
# ============================================================================

class AuditIn(BaseModel):
    url: str

    class Config:
        json_schema_extra = {
            "example": {
                "url": "example.com"
            }
        }


class AuditStartOut(BaseModel):
    scan_id: str
    initial: ScanRecord
