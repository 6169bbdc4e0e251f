import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from autoflow.workflows.nodes.base import ActionKind, Position, credential_ref, new_node_id
from autoflow.workflows.nodes.registry import builders
from autoflow.workflows.schemas import NodeDescriptor

DEFAULT_OPENAI_PROMPT = "Summarize the following data:\n\n{{ $json }}"
DEFAULT_SLACK_TEXT = "{{ $json.choices[0].message.content }}"
DEFAULT_HTTP_URL = "https://api.example.com/endpoint"
DEFAULT_FUNCTION_CODE = """// Process the input data
const input = $input.all();
return input.map(item => ({
  ...item.json,
  processed: true,
  timestamp: new Date().toISOString()
}));"""


class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OpenAIParams(_Params):
    prompt: Optional[str] = None


class SlackParams(_Params):
    channel: Optional[str] = None
    message: Optional[str] = None


class GmailParams(_Params):
    to: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class GoogleSheetsParams(_Params):
    operation: Optional[str] = None
    spreadsheet_id: Optional[str] = Field(default=None, alias="spreadsheetId")
    range: Optional[str] = None


class HttpParams(_Params):
    url: Optional[str] = None
    method: Optional[str] = None
    body: Optional[Any] = None
    headers: Dict[str, Any] = {}


class FunctionParams(_Params):
    code: Optional[str] = None


class SetParams(_Params):
    values: Dict[str, Any] = {}


@builders.action(ActionKind.OPENAI, OpenAIParams, service_id="openai")
def build_openai_node(
    credential_id: Optional[str], params: OpenAIParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="OpenAI GPT",
        type="n8n-nodes-base.openAi",
        typeVersion=1,
        position=list(position),
        parameters={
            "operation": "text",
            "model": "gpt-3.5-turbo",
            "prompt": params.prompt or DEFAULT_OPENAI_PROMPT,
            "maxTokens": 500,
            "temperature": 0.7,
        },
        credentials=credential_ref("openai", credential_id),
    )


@builders.action(ActionKind.SLACK, SlackParams, service_id="slack")
def build_slack_node(
    credential_id: Optional[str], params: SlackParams, position: Position
) -> NodeDescriptor:
    """Posts to a channel; the text defaults to the previous node's completion."""
    return NodeDescriptor(
        id=new_node_id(),
        name="Slack",
        type="n8n-nodes-base.slack",
        typeVersion=1,
        position=list(position),
        parameters={
            "operation": "postMessage",
            "channel": params.channel or "#general",
            "text": params.message or DEFAULT_SLACK_TEXT,
        },
        credentials=credential_ref("slack", credential_id),
    )


@builders.action(ActionKind.GMAIL, GmailParams, service_id="gmail")
def build_gmail_node(
    credential_id: Optional[str], params: GmailParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Gmail",
        type="n8n-nodes-base.gmail",
        typeVersion=1,
        position=list(position),
        parameters={
            "operation": "send",
            "to": params.to or "{{$json.email}}",
            "subject": params.subject or "Automated Email",
            "message": params.message or "{{ $json.content }}",
        },
        credentials=credential_ref("gmail", credential_id),
    )


@builders.action(ActionKind.GOOGLE_SHEETS, GoogleSheetsParams, service_id="google-sheets")
def build_google_sheets_node(
    credential_id: Optional[str], params: GoogleSheetsParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Google Sheets",
        type="n8n-nodes-base.googleSheets",
        typeVersion=1,
        position=list(position),
        parameters={
            "operation": params.operation or "append",
            "documentId": params.spreadsheet_id or "{{SPREADSHEET_ID}}",
            "sheetName": "Sheet1",
            "range": params.range or "A:Z",
            "options": {},
        },
        credentials=credential_ref("google-sheets", credential_id),
    )


@builders.action(ActionKind.HTTP, HttpParams)
def build_http_node(
    credential_id: Optional[str], params: HttpParams, position: Position
) -> NodeDescriptor:
    parameters: Dict[str, Any] = {
        "url": params.url or DEFAULT_HTTP_URL,
        "method": (params.method or "GET").upper(),
        "headers": dict(params.headers),
        "options": {},
    }
    if params.body is not None:
        parameters["body"] = json.dumps(params.body)

    return NodeDescriptor(
        id=new_node_id(),
        name="HTTP Request",
        type="n8n-nodes-base.httpRequest",
        typeVersion=4,
        position=list(position),
        parameters=parameters,
    )


@builders.action(ActionKind.FUNCTION, FunctionParams)
def build_function_node(
    credential_id: Optional[str], params: FunctionParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Function",
        type="n8n-nodes-base.function",
        typeVersion=1,
        position=list(position),
        parameters={"functionCode": params.code or DEFAULT_FUNCTION_CODE},
    )


@builders.action(ActionKind.SET, SetParams)
def build_set_node(
    credential_id: Optional[str], params: SetParams, position: Position
) -> NodeDescriptor:
    return NodeDescriptor(
        id=new_node_id(),
        name="Set",
        type="n8n-nodes-base.set",
        typeVersion=1,
        position=list(position),
        parameters={
            "values": {
                "string": [{"name": key, "value": value} for key, value in params.values.items()]
            },
            "options": {},
        },
    )
