from fastapi import Request

from app.features.audit.services.orchestrator import AuditOrchestrator


def get_orchestrator(request: Request) -> AuditOrchestrator:
    """
    Dependency returning the process-wide orchestrator built in the app lifespan.
    Tests override it with a fully faked instance.
    """
    return request.app.state.audit_orchestrator
