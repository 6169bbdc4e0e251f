import logging
from typing import Any, Dict, List

from fastapi import APIRouter
from pydantic import BaseModel

from autoflow.deps import CurrentUser, InterpreterDep, SessionDep, VaultDep
from autoflow.ai.interpreter import get_missing_credentials
from autoflow.errors import AutoflowError

logger = logging.getLogger(__name__)

router = APIRouter()

FALLBACK_REPLY = (
    "I apologize, but I encountered an error processing your request. "
    "Please make sure your OpenRouter API key is configured correctly and try again."
)


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage]


class MissingCredentialsRequest(BaseModel):
    text: str


def _chat_response(content: str, function_results: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "choices": [
            {"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
        "functionResults": function_results,
    }


@router.post("/")
async def chat(
    request: ChatRequest,
    session: SessionDep,
    current_user: CurrentUser,
    interpreter: InterpreterDep,
) -> Any:
    """
    Interpret a workflow automation conversation. The model may create
    workflows, ask for credentials or explain what it understood.
    """
    messages = [m.model_dump() for m in request.messages]
    try:
        result = await interpreter.interpret(session, current_user, messages)
    except AutoflowError as e:
        logger.error(f"Chat failed: {e.message}")
        return _chat_response(FALLBACK_REPLY, [])
    return _chat_response(result["message"], result["functionResults"])


@router.post("/missing-credentials")
def missing_credentials(
    request: MissingCredentialsRequest, vault: VaultDep, current_user: CurrentUser
) -> Any:
    """Services mentioned in the text that the user has no credential for."""
    return get_missing_credentials(vault, current_user, request.text)
