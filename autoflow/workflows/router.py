import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Response

from autoflow.deps import CurrentUser, SessionDep, WorkflowServiceDep
from autoflow.workflows.schemas import (
    ActivateRequest,
    CompileRequest,
    WorkflowCreate,
    WorkflowDetail,
    WorkflowSummary,
    WorkflowUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[WorkflowSummary])
def read_workflows(
    response: Response,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    skip: int = 0,
    limit: int = 100,
) -> Any:
    """
    Retrieve workflows owned by current user. X-Total-Count carries the
    owner's total regardless of paging.
    """
    workflows = workflow_service.list_workflows(
        session=session, owner_id=current_user, skip=skip, limit=limit
    )
    response.headers["X-Total-Count"] = str(
        workflow_service.count_workflows(session=session, owner_id=current_user)
    )
    return [w.summary() for w in workflows]


@router.post("/", status_code=201)
async def create_workflow(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    workflow_in: WorkflowCreate,
) -> Any:
    """
    Push a configuration to the workflow engine and store it.
    """
    db_workflow = await workflow_service.create_workflow(
        session=session, owner_id=current_user, workflow_in=workflow_in
    )
    return {"id": db_workflow.id, "name": db_workflow.name, "status": db_workflow.status}


@router.post("/compile")
async def compile_workflow(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    request: CompileRequest,
) -> Any:
    """
    Compile an abstract workflow spec for the current user.

    Returns ready=false with the missing services when credentials are absent.
    With live=true, stored credentials the provider rejects are listed too.
    """
    return await workflow_service.compile_spec(
        session=session,
        owner_id=current_user,
        spec_data=request.spec,
        save=request.save,
        live=request.live,
    )


@router.get("/{id}", response_model=WorkflowDetail)
async def read_workflow(
    id: str, session: SessionDep, current_user: CurrentUser, workflow_service: WorkflowServiceDep
) -> Any:
    return await workflow_service.get_workflow_detail(
        session=session, owner_id=current_user, workflow_id=id
    )


@router.put("/{id}")
async def update_workflow(
    *,
    id: str,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    workflow_in: WorkflowUpdate,
) -> Any:
    db_workflow = await workflow_service.update_workflow(
        session=session, owner_id=current_user, workflow_id=id, workflow_in=workflow_in
    )
    return {"id": db_workflow.id, "name": db_workflow.name, "status": db_workflow.status}


@router.delete("/{id}")
async def delete_workflow(
    id: str, session: SessionDep, current_user: CurrentUser, workflow_service: WorkflowServiceDep
) -> Any:
    await workflow_service.delete_workflow(session=session, owner_id=current_user, workflow_id=id)
    return {"success": True}


@router.post("/{id}/run")
async def run_workflow(
    id: str,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    input_data: Optional[Dict[str, Any]] = Body(default=None),
) -> Any:
    """
    Run a workflow once on the engine and log the execution as queued.
    """
    return await workflow_service.run_workflow(
        session=session, owner_id=current_user, workflow_id=id, input_data=input_data
    )


@router.get("/{id}/history")
async def read_workflow_history(
    id: str, session: SessionDep, current_user: CurrentUser, workflow_service: WorkflowServiceDep
) -> Any:
    return await workflow_service.get_full_history(
        session=session, owner_id=current_user, workflow_id=id
    )


@router.get("/{id}/history/{log_id}")
def read_execution_log(
    id: str,
    log_id: str,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
) -> Any:
    log = workflow_service.get_execution_log(
        session=session, owner_id=current_user, workflow_id=id, log_id=log_id
    )
    return log.summary()


@router.post("/{id}/clone", status_code=201)
def clone_workflow(
    id: str, session: SessionDep, current_user: CurrentUser, workflow_service: WorkflowServiceDep
) -> Any:
    clone = workflow_service.clone_workflow(session=session, owner_id=current_user, workflow_id=id)
    return {"id": clone.id, "name": clone.name}


@router.post("/{id}/activate")
async def activate_workflow(
    *,
    id: str,
    session: SessionDep,
    current_user: CurrentUser,
    workflow_service: WorkflowServiceDep,
    request: ActivateRequest,
) -> Any:
    db_workflow = await workflow_service.set_active(
        session=session, owner_id=current_user, workflow_id=id, active=request.active
    )
    return {"id": db_workflow.id, "status": db_workflow.status}
