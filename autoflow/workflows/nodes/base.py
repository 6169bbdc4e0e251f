import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

from autoflow.credentials.registry import ENGINE_CREDENTIAL_TYPES
from autoflow.workflows.schemas import CredentialRef

Position = Tuple[int, int]

TRIGGER_POSITION: Position = (240, 300)


class TriggerKind(str, Enum):
    TYPEFORM = "typeform"
    WEBHOOK = "webhook"
    MANUAL = "manual"


class ActionKind(str, Enum):
    OPENAI = "openai"
    SLACK = "slack"
    GMAIL = "gmail"
    GOOGLE_SHEETS = "google-sheets"
    HTTP = "http"
    FUNCTION = "function"
    SET = "set"


def new_node_id() -> str:
    return str(uuid.uuid4())


def credential_ref(service_id: str, credential_id: Optional[str]) -> Optional[Dict[str, CredentialRef]]:
    """Engine credential block for a node, keyed by the engine's credential type."""
    if not credential_id:
        return None
    cred_type = ENGINE_CREDENTIAL_TYPES[service_id]
    return {cred_type.type: CredentialRef(id=credential_id, name=cred_type.name)}
