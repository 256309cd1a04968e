from fastapi import APIRouter, Depends, status

from app.features.audit.dependencies.audit import get_orchestrator
from app.features.audit.schemas.audit import AuditIn, ScanStatus
from app.features.audit.services.orchestrator import AuditOrchestrator
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger("audit_routes")
router = APIRouter(tags=["audit"])

STATUS_MESSAGES = {
    ScanStatus.running: "Audit in progress",
    ScanStatus.completed: "Audit completed",
    ScanStatus.error: "Audit failed",
}


@router.post("/audit")
def start_audit(
    audit_in: AuditIn,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
):
    """
    Run the security check, then start the browser audits in the background.
    Poll /results/{scan_id} for the rest.
    """
    logger.info(f"Starting audit for URL: {audit_in.url}")
    result = orchestrator.submit(audit_in.url)

    return api_response(
        data=result,
        message="Audit started",
        status_code=status.HTTP_200_OK,
        exclude_none=True,
    )


@router.get("/results/{scan_id}")
def get_audit_results(
    scan_id: str,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
):
    record = orchestrator.fetch(scan_id)

    return api_response(
        data=record,
        message=STATUS_MESSAGES[record.status],
        status_code=status.HTTP_200_OK,
        exclude_none=True,
    )
