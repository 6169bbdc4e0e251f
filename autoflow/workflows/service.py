import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from autoflow.credentials.service import CredentialVault
from autoflow.engine import EngineGateway
from autoflow.errors import EngineError, NotFoundError, ValidationError
from autoflow.workflows import crud_workflow as crud
from autoflow.workflows.compiler import WorkflowCompiler, compiler as default_compiler
from autoflow.workflows.gatekeeper import Gatekeeper
from autoflow.workflows.models import ExecutionLog, Workflow
from autoflow.workflows.schemas import WorkflowCreate, WorkflowSpec, WorkflowUpdate, parse_workflow_spec

logger = logging.getLogger(__name__)


def engine_document(name: str, configuration: Dict[str, Any], active: bool = False) -> Dict[str, Any]:
    """Engine payload for a stored configuration."""
    return {
        "name": name,
        "active": active,
        "nodes": configuration.get("nodes", []),
        "connections": configuration.get("connections", {}),
        "settings": configuration.get("settings", {}),
    }


class WorkflowService:
    """
    Owner-scoped workflow operations. Local records are the source of truth
    for ownership; the engine holds the runnable copy, linked by remote_id.
    """

    def __init__(
        self,
        vault: CredentialVault,
        gateway: EngineGateway,
        compiler: WorkflowCompiler = default_compiler,
    ):
        self.vault = vault
        self.gateway = gateway
        self.compiler = compiler
        self.gatekeeper = Gatekeeper(vault)

    # =========================================================================
    # Compilation
    # =========================================================================

    async def compile_spec(
        self,
        *,
        session: Session,
        owner_id: str,
        spec_data: Any,
        save: bool = False,
        live: bool = False,
    ) -> Dict[str, Any]:
        """
        Gatekeeper first, then the compiler. Missing credentials come back as a
        result with ready=False rather than an error.

        With live=True every stored credential is also checked against its
        provider, and rejected or unreadable ones are listed as invalid.
        """
        spec = parse_workflow_spec(spec_data)
        if live:
            report = await self.gatekeeper.check_live_readiness(owner_id, spec)
        else:
            report = self.gatekeeper.check_readiness(owner_id, spec)
        if not report.ready:
            not_ready: Dict[str, Any] = {"ready": False, "missingServices": report.missing_services}
            if live:
                not_ready["invalidServices"] = report.invalid_services
            return not_ready

        document = self.compiler.compile(spec, report.credentials)
        result: Dict[str, Any] = {"ready": True, "workflow": document.to_engine_payload()}
        if save:
            db_workflow = self.store_compiled(
                session=session, owner_id=owner_id, spec=spec, configuration=result["workflow"]
            )
            result["id"] = db_workflow.id
        return result

    def create_from_spec(
        self, *, session: Session, owner_id: str, spec: WorkflowSpec, credentials: Dict[str, str]
    ) -> Workflow:
        """Compile a spec whose credentials are already known and store it disabled."""
        document = self.compiler.compile(spec, credentials)
        return self.store_compiled(
            session=session, owner_id=owner_id, spec=spec, configuration=document.to_engine_payload()
        )

    def store_compiled(
        self, *, session: Session, owner_id: str, spec: WorkflowSpec, configuration: Dict[str, Any]
    ) -> Workflow:
        db_workflow = crud.workflow.create_with_owner(
            session,
            owner_id=owner_id,
            name=spec.name,
            description=spec.description or None,
            configuration=configuration,
            status=False,
        )
        logger.info(f"Saved compiled workflow {db_workflow.id} for user {owner_id}")
        return db_workflow

    # =========================================================================
    # CRUD
    # =========================================================================

    def get_owned(self, *, session: Session, owner_id: str, workflow_id: str) -> Workflow:
        db_workflow = crud.workflow.get_by_owner(session, id=workflow_id, owner_id=owner_id)
        if db_workflow is None:
            raise NotFoundError("Workflow not found", detail={"workflow_id": workflow_id})
        return db_workflow

    def list_workflows(
        self, *, session: Session, owner_id: str, skip: int = 0, limit: int = 100
    ) -> List[Workflow]:
        return crud.workflow.get_multi_by_owner(session, owner_id=owner_id, skip=skip, limit=limit)

    def count_workflows(self, *, session: Session, owner_id: str) -> int:
        return crud.workflow.count_by_owner(session, owner_id=owner_id)

    async def create_workflow(
        self, *, session: Session, owner_id: str, workflow_in: WorkflowCreate
    ) -> Workflow:
        """
        Validate a ready-made configuration, push it to the engine, then store
        it locally. A document the engine rejects is neither pushed nor stored.
        """
        document = engine_document(workflow_in.name, workflow_in.configuration)
        validation = await self.gateway.validate_workflow(document)
        validation = validation if isinstance(validation, dict) else {}
        if not validation.get("valid", True):
            raise ValidationError(
                "Workflow rejected by the engine", detail={"errors": validation.get("errors", [])}
            )
        for warning in validation.get("warnings", []):
            logger.debug(f"Workflow validation: {warning}")

        created = await self.gateway.create_workflow(document)
        created = created if isinstance(created, dict) else {}
        db_workflow = crud.workflow.create_with_owner(
            session,
            owner_id=owner_id,
            name=workflow_in.name,
            description=workflow_in.description,
            configuration=workflow_in.configuration,
            status=bool(created.get("active", False)),
            remote_id=str(created["id"]) if created.get("id") else None,
        )
        logger.info(f"Created workflow {db_workflow.id} (engine id {db_workflow.remote_id})")
        return db_workflow

    async def get_workflow_detail(
        self, *, session: Session, owner_id: str, workflow_id: str
    ) -> Dict[str, Any]:
        """Local record, with the active flag refreshed from the engine when it answers."""
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        detail = db_workflow.detail()
        if db_workflow.remote_id:
            try:
                remote = await self.gateway.get_workflow(db_workflow.remote_id)
            except EngineError as e:
                logger.debug(f"Engine status unavailable for {workflow_id}: {e.message}")
            else:
                if isinstance(remote, dict) and "active" in remote:
                    detail["status"] = bool(remote["active"])
        return detail

    async def _ensure_remote(self, db_workflow: Workflow, document: Dict[str, Any]) -> str:
        """Engine id for a workflow, pushing it first if it was only stored locally."""
        if db_workflow.remote_id:
            return db_workflow.remote_id
        created = await self.gateway.create_workflow(document)
        remote_id = created.get("id") if isinstance(created, dict) else None
        if not remote_id:
            raise EngineError("Engine did not return a workflow id")
        return str(remote_id)

    async def update_workflow(
        self, *, session: Session, owner_id: str, workflow_id: str, workflow_in: WorkflowUpdate
    ) -> Workflow:
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        active = workflow_in.status if workflow_in.status is not None else db_workflow.status
        document = engine_document(
            workflow_in.name or db_workflow.name,
            workflow_in.configuration if workflow_in.configuration is not None else db_workflow.configuration,
            active=active,
        )

        if db_workflow.remote_id:
            await self.gateway.update_workflow(db_workflow.remote_id, document)
            remote_id = None
        else:
            remote_id = await self._ensure_remote(db_workflow, document)

        return crud.workflow.update(session, db_obj=db_workflow, obj_in=workflow_in, remote_id=remote_id)

    async def delete_workflow(self, *, session: Session, owner_id: str, workflow_id: str) -> None:
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        if db_workflow.remote_id:
            try:
                await self.gateway.delete_workflow(db_workflow.remote_id)
            except EngineError as e:
                # The local record goes regardless
                logger.warning(f"Engine delete failed for {workflow_id}: {e.message}")
        crud.workflow.remove(session, db_obj=db_workflow)
        logger.info(f"Deleted workflow {workflow_id} for user {owner_id}")

    # =========================================================================
    # Execution
    # =========================================================================

    async def run_workflow(
        self,
        *,
        session: Session,
        owner_id: str,
        workflow_id: str,
        input_data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        remote_id = await self._ensure_remote(
            db_workflow, engine_document(db_workflow.name, db_workflow.configuration, db_workflow.status)
        )
        if remote_id != db_workflow.remote_id:
            db_workflow = crud.workflow.update(
                session, db_obj=db_workflow, obj_in=WorkflowUpdate(), remote_id=remote_id
            )

        result = await self.gateway.run_workflow(remote_id, input_data)
        crud.workflow.add_execution_log(
            session,
            workflow_id=db_workflow.id,
            status="queued",
            data=result if isinstance(result, dict) else {"result": result},
        )
        logger.info(f"Queued run of workflow {workflow_id}")
        return result

    async def get_full_history(
        self, *, session: Session, owner_id: str, workflow_id: str
    ) -> Dict[str, Any]:
        """Local execution logs plus whatever the engine reports; engine failures are tolerated."""
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        local = crud.workflow.get_execution_logs(session, workflow_id=db_workflow.id, limit=100)

        remote: Any = []
        if db_workflow.remote_id:
            try:
                remote = await self.gateway.list_executions(db_workflow.remote_id)
            except EngineError as e:
                logger.debug(f"Remote executions unavailable for {workflow_id}: {e.message}")

        return {"local": [log.summary() for log in local], "remote": remote}

    def get_execution_log(
        self, *, session: Session, owner_id: str, workflow_id: str, log_id: str
    ) -> ExecutionLog:
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        log = session.get(ExecutionLog, log_id)
        if log is None or log.workflow_id != db_workflow.id:
            raise NotFoundError("Execution log not found", detail={"log_id": log_id})
        return log

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def clone_workflow(self, *, session: Session, owner_id: str, workflow_id: str) -> Workflow:
        original = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        return crud.workflow.create_with_owner(
            session,
            owner_id=owner_id,
            name=f"{original.name} (Clone)",
            description=original.description,
            configuration=dict(original.configuration),
            status=False,
        )

    async def set_active(
        self, *, session: Session, owner_id: str, workflow_id: str, active: bool
    ) -> Workflow:
        db_workflow = self.get_owned(session=session, owner_id=owner_id, workflow_id=workflow_id)
        remote_id = await self._ensure_remote(
            db_workflow, engine_document(db_workflow.name, db_workflow.configuration)
        )
        await self.gateway.set_workflow_status(remote_id, active)
        if remote_id != db_workflow.remote_id:
            db_workflow.remote_id = remote_id
        logger.info(f"Workflow {workflow_id} {'activated' if active else 'deactivated'}")
        return crud.workflow.set_status(session, db_obj=db_workflow, status=active)
