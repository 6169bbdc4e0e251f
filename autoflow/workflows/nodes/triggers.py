from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from autoflow.workflows.nodes.base import Position, TriggerKind, credential_ref, new_node_id
from autoflow.workflows.nodes.registry import builders
from autoflow.workflows.schemas import NodeDescriptor


class ManualTriggerParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


class WebhookTriggerParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = "/webhook"


class TypeformTriggerParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Left as a placeholder for the user to fill in on the engine side
    form_id: str = Field(default="{{TYPEFORM_FORM_ID}}", alias="formId")


@builders.trigger(TriggerKind.MANUAL, ManualTriggerParams)
def build_manual_trigger(
    credential_id: Optional[str], params: ManualTriggerParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Manual Trigger",
        type="n8n-nodes-base.manualTrigger",
        typeVersion=1,
        position=list(position),
        parameters={},
    )


@builders.trigger(TriggerKind.WEBHOOK, WebhookTriggerParams)
def build_webhook_trigger(
    credential_id: Optional[str], params: WebhookTriggerParams, position: Position
) -> NodeDescriptor:
    """Receives HTTP POSTs and answers through a response node."""
    return NodeDescriptor(
        id=new_node_id(),
        name="Webhook",
        type="n8n-nodes-base.webhook",
        typeVersion=1,
        position=list(position),
        parameters={
            "httpMethod": "POST",
            "path": params.path or "/webhook",
            "responseMode": "responseNode",
        },
    )


@builders.trigger(TriggerKind.TYPEFORM, TypeformTriggerParams, service_id="typeform")
def build_typeform_trigger(
    credential_id: Optional[str], params: TypeformTriggerParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Typeform Trigger",
        type="n8n-nodes-base.typeformTrigger",
        typeVersion=1,
        position=list(position),
        parameters={"formId": params.form_id},
        credentials=credential_ref("typeform", credential_id),
    )
