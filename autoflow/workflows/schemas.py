from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from autoflow.errors import ValidationError


# --- Abstract workflow spec (compiler input) ---


class TriggerSpec(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: str = Field(validation_alias=AliasChoices("kind", "type"))
    path: Optional[str] = None


class ActionSpec(BaseModel):
    """
    One step of a workflow: a kind tag plus kind-specific fields.

    Fields are kept as extras here and validated by the builder registered
    for the kind.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    kind: str = Field(validation_alias=AliasChoices("kind", "type"))

    def arguments(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class WorkflowSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    trigger: TriggerSpec
    actions: List[ActionSpec] = []
    required_services: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("requiredServices", "required_services"),
        serialization_alias="requiredServices",
    )


def parse_workflow_spec(data: Any) -> WorkflowSpec:
    """Validate raw input into a WorkflowSpec, raising our ValidationError."""
    if isinstance(data, WorkflowSpec):
        return data
    try:
        return WorkflowSpec.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid workflow specification",
            detail={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


# --- Engine document (compiler output) ---


class CredentialRef(BaseModel):
    id: str
    name: str


class NodeDescriptor(BaseModel):
    id: str
    name: str
    type: str
    typeVersion: int = 1
    position: List[int]
    parameters: Dict[str, Any] = {}
    credentials: Optional[Dict[str, CredentialRef]] = None


class ConnectionTarget(BaseModel):
    node: str
    type: str = "main"
    index: int = 0


class NodeConnections(BaseModel):
    main: List[List[ConnectionTarget]]


class WorkflowDocument(BaseModel):
    name: str
    active: bool = False
    nodes: List[NodeDescriptor]
    connections: Dict[str, NodeConnections] = {}
    settings: Dict[str, Any] = Field(default_factory=lambda: {"saveManualExecutions": True})

    def to_engine_payload(self) -> Dict[str, Any]:
        """JSON body accepted by the workflow engine's create/update endpoints."""
        return self.model_dump(mode="json", exclude_none=True)


# --- Persisted workflow records ---


class WorkflowCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)
    configuration: Dict[str, Any]


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)
    configuration: Optional[Dict[str, Any]] = None
    status: Optional[bool] = None


class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: bool
    createdAt: str
    updatedAt: str


class WorkflowDetail(WorkflowSummary):
    configuration: Dict[str, Any]


class CompileRequest(BaseModel):
    spec: Dict[str, Any]
    save: bool = False
    # Also check stored credentials against their providers
    live: bool = False


class ActivateRequest(BaseModel):
    active: bool
