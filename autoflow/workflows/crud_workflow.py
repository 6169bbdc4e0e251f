from typing import Any, Dict, List, Optional

from sqlmodel import Session, col, func, select

from autoflow.credentials.models import utcnow
from autoflow.workflows.models import ExecutionLog, Workflow
from autoflow.workflows.schemas import WorkflowUpdate


class CRUDWorkflow:
    def create_with_owner(
        self,
        session: Session,
        *,
        owner_id: str,
        name: str,
        description: Optional[str],
        configuration: Dict[str, Any],
        status: bool = False,
        remote_id: Optional[str] = None,
    ) -> Workflow:
        db_obj = Workflow(
            user_id=owner_id,
            name=name,
            description=description,
            configuration=configuration,
            status=status,
            remote_id=remote_id,
        )
        session.add(db_obj)
        session.commit()
        session.refresh(db_obj)
        return db_obj

    def get_by_owner(self, session: Session, *, id: str, owner_id: str) -> Optional[Workflow]:
        statement = select(Workflow).where(Workflow.id == id, Workflow.user_id == owner_id)
        return session.exec(statement).first()

    def get_multi_by_owner(
        self,
        session: Session,
        *,
        owner_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Workflow]:
        statement = (
            select(Workflow)
            .where(Workflow.user_id == owner_id)
            .order_by(col(Workflow.created_at).desc())
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(statement).all())

    def count_by_owner(self, session: Session, *, owner_id: str) -> int:
        statement = select(func.count()).select_from(Workflow).where(Workflow.user_id == owner_id)
        return session.exec(statement).one()

    def update(
        self,
        session: Session,
        *,
        db_obj: Workflow,
        obj_in: WorkflowUpdate,
        remote_id: Optional[str] = None,
    ) -> Workflow:
        update_data = obj_in.model_dump(exclude_unset=True, exclude_none=True)
        db_obj.sqlmodel_update(update_data)
        if remote_id:
            db_obj.remote_id = remote_id
        db_obj.updated_at = utcnow()
        session.add(db_obj)
        session.commit()
        session.refresh(db_obj)
        return db_obj

    def set_status(self, session: Session, *, db_obj: Workflow, status: bool) -> Workflow:
        db_obj.status = status
        db_obj.updated_at = utcnow()
        session.add(db_obj)
        session.commit()
        session.refresh(db_obj)
        return db_obj

    def remove(self, session: Session, *, db_obj: Workflow) -> None:
        for log in session.exec(select(ExecutionLog).where(ExecutionLog.workflow_id == db_obj.id)):
            session.delete(log)
        session.delete(db_obj)
        session.commit()

    def add_execution_log(
        self, session: Session, *, workflow_id: str, status: str, data: Dict[str, Any]
    ) -> ExecutionLog:
        log = ExecutionLog(workflow_id=workflow_id, status=status, data=data)
        session.add(log)
        session.commit()
        session.refresh(log)
        return log

    def get_execution_logs(
        self, session: Session, *, workflow_id: str, limit: int = 50
    ) -> List[ExecutionLog]:
        statement = (
            select(ExecutionLog)
            .where(ExecutionLog.workflow_id == workflow_id)
            .order_by(col(ExecutionLog.created_at).desc())
            .limit(limit)
        )
        return list(session.exec(statement).all())


workflow = CRUDWorkflow()
