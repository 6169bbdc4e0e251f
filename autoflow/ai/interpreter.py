"""
AI Workflow Interpreter

Sends the conversation to an OpenAI-compatible chat API with three tools
(create_workflow, request_credentials, explain_workflow) and turns the tool
calls it answers with into results the client can render.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI
from sqlmodel import Session

from autoflow.credentials.registry import get_credential_requirements
from autoflow.credentials.service import CredentialVault
from autoflow.errors import AutoflowError, ConfigurationError, ExternalServiceError, ValidationError
from autoflow.workflows.nodes import ActionKind, TriggerKind
from autoflow.workflows.schemas import parse_workflow_spec
from autoflow.workflows.service import WorkflowService

logger = logging.getLogger(__name__)

CREDENTIAL_SERVICES = ["typeform", "openai", "slack", "gmail", "google-sheets"]

WORKFLOW_FUNCTIONS: List[Dict[str, Any]] = [
    {
        "name": "create_workflow",
        "description": "Create a new automation workflow based on user requirements",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "A descriptive name for the workflow"},
                "description": {
                    "type": "string",
                    "description": "A brief description of what the workflow does",
                },
                "trigger": {
                    "type": "object",
                    "properties": {
                        "type": {
                            "type": "string",
                            "enum": [k.value for k in TriggerKind],
                            "description": "The type of trigger that starts the workflow",
                        },
                        "path": {
                            "type": "string",
                            "description": "Webhook path (only for webhook triggers)",
                        },
                    },
                    "required": ["type"],
                },
                "actions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {
                                "type": "string",
                                "enum": [k.value for k in ActionKind],
                                "description": "The type of action to perform",
                            },
                            "prompt": {"type": "string", "description": "AI prompt (for openai actions)"},
                            "channel": {
                                "type": "string",
                                "description": "Slack channel name (for slack actions)",
                            },
                            "message": {
                                "type": "string",
                                "description": "Message content (for slack/notification actions)",
                            },
                            "to": {"type": "string", "description": "Email recipient (for gmail actions)"},
                            "subject": {"type": "string", "description": "Email subject (for gmail actions)"},
                            "operation": {
                                "type": "string",
                                "description": "Operation type (for service-specific actions)",
                            },
                            "url": {"type": "string", "description": "API endpoint URL (for http actions)"},
                            "method": {"type": "string", "description": "HTTP method (for http actions)"},
                        },
                        "required": ["type"],
                    },
                },
                "required_services": {
                    "type": "array",
                    "items": {"type": "string", "enum": CREDENTIAL_SERVICES},
                    "description": "List of external services that need credentials",
                },
            },
            "required": ["name", "description", "trigger", "actions", "required_services"],
        },
    },
    {
        "name": "request_credentials",
        "description": "Request user credentials for external services",
        "parameters": {
            "type": "object",
            "properties": {
                "service": {
                    "type": "string",
                    "enum": CREDENTIAL_SERVICES,
                    "description": "The service requiring credentials",
                },
                "message": {
                    "type": "string",
                    "description": "Friendly message explaining why credentials are needed",
                },
            },
            "required": ["service", "message"],
        },
    },
    {
        "name": "explain_workflow",
        "description": "Explain how a workflow will work to the user",
        "parameters": {
            "type": "object",
            "properties": {
                "explanation": {
                    "type": "string",
                    "description": "Clear explanation of the workflow steps and functionality",
                },
                "next_steps": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of next steps for the user",
                },
            },
            "required": ["explanation", "next_steps"],
        },
    },
]

SYSTEM_PROMPT = """You are an AI workflow automation assistant. Your job is to help users create automated workflows by interpreting their natural language requests.

Key capabilities:
1. Analyze user requests and identify what automation they need
2. Break down complex workflows into trigger + action sequences
3. Identify required external service credentials
4. Guide users through the workflow creation process
5. Create n8n-compatible workflow configurations

Supported triggers:
- typeform: For Typeform form submissions
- webhook: For HTTP webhook triggers
- manual: For manually triggered workflows

Supported actions:
- openai: AI text processing with GPT models
- slack: Send messages to Slack channels
- gmail: Send emails via Gmail
- google-sheets: Read/write Google Sheets data
- http: Make HTTP API requests
- function: Custom JavaScript processing
- set: Transform/set data values

When a user describes a workflow:
1. First, use explain_workflow to clarify what you understand
2. If credentials are needed, use request_credentials for each service
3. Once everything is clear, use create_workflow to generate the configuration

Be conversational and helpful. Ask clarifying questions when needed.
Guide users through credential setup step by step."""

# keyword -> service, matched case-insensitively against free text
SERVICE_KEYWORDS = [
    ("typeform", ("typeform",)),
    ("openai", ("openai", "gpt", "chatgpt")),
    ("slack", ("slack",)),
    ("gmail", ("gmail", "email")),
    ("google-sheets", ("google sheets", "spreadsheet")),
]


def detect_services(text: str) -> List[str]:
    """Services mentioned in a free-text request, in registry order."""
    lowered = (text or "").lower()
    return [
        service_id
        for service_id, keywords in SERVICE_KEYWORDS
        if any(keyword in lowered for keyword in keywords)
    ]


def get_missing_credentials(vault: CredentialVault, user_id: str, text: str) -> List[Dict[str, Any]]:
    stored = vault.credential_map(user_id)
    return [
        {"service": service_id, "requirements": get_credential_requirements(service_id)}
        for service_id in detect_services(text)
        if service_id not in stored
    ]


def _tool_call_parts(call: Any) -> tuple:
    """(name, arguments) from an SDK tool call object or its dict form."""
    if isinstance(call, dict):
        function = call.get("function") or {}
        return function.get("name"), function.get("arguments")
    return call.function.name, call.function.arguments


class WorkflowInterpreter:
    def __init__(
        self,
        workflow_service: WorkflowService,
        *,
        api_key: Optional[str],
        base_url: str = "https://openrouter.ai/api/v1",
        model: str = "anthropic/claude-3.5-sonnet",
        timeout: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.workflow_service = workflow_service
        self.model = model
        self.client = client
        if self.client is None and api_key:
            self.client = AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                timeout=timeout,
                default_headers=default_headers,
            )

    @property
    def vault(self) -> CredentialVault:
        return self.workflow_service.vault

    async def call_ai_with_functions(
        self, messages: List[Dict[str, Any]], functions: Optional[List[Dict[str, Any]]] = None
    ):
        if self.client is None:
            raise ConfigurationError("OPENROUTER_API_KEY not configured")

        functions = functions if functions is not None else WORKFLOW_FUNCTIONS
        try:
            return await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "system", "content": SYSTEM_PROMPT}, *messages],
                tools=[{"type": "function", "function": f} for f in functions],
                tool_choice="auto",
                max_tokens=2000,
                temperature=0.2,
            )
        except openai.OpenAIError as e:
            logger.error(f"AI API error: {e.__class__.__name__}")
            raise ExternalServiceError(f"AI request failed: {e.__class__.__name__}") from e

    def handle_create_workflow(self, session: Session, user_id: str, args: Dict[str, Any]) -> Dict[str, Any]:
        spec = parse_workflow_spec(args)
        report = self.workflow_service.gatekeeper.check_readiness(user_id, spec)
        if not report.ready:
            return {
                "status": "missing_credentials",
                "missing": report.missing_services,
                "message": f"Missing credentials for: {', '.join(report.missing_services)}",
            }

        db_workflow = self.workflow_service.create_from_spec(
            session=session, owner_id=user_id, spec=spec, credentials=report.credentials
        )
        return {
            "status": "created",
            "workflow": {
                "id": db_workflow.id,
                "name": db_workflow.name,
                "description": db_workflow.description,
            },
            "message": (
                f'Workflow "{spec.name}" created successfully! '
                "You can view and activate it in your workflows dashboard."
            ),
        }

    def process_function_calls(self, session: Session, user_id: str, calls: List[Any]) -> List[Dict[str, Any]]:
        """
        One result per tool call. A call that fails becomes an "error" result
        and the rest of the batch still runs.
        """
        results: List[Dict[str, Any]] = []
        for call in calls:
            name, raw_args = _tool_call_parts(call)
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else (raw_args or {})
                if not isinstance(args, dict):
                    raise ValidationError("Function arguments must be an object")

                if name == "create_workflow":
                    results.append(
                        {"type": "workflow_created", "data": self.handle_create_workflow(session, user_id, args)}
                    )
                elif name == "request_credentials":
                    service_id = args.get("service")
                    results.append(
                        {
                            "type": "credential_request",
                            "data": {
                                "service": service_id,
                                "message": args.get("message"),
                                "requirements": get_credential_requirements(service_id),
                            },
                        }
                    )
                elif name == "explain_workflow":
                    results.append(
                        {
                            "type": "explanation",
                            "data": {
                                "explanation": args.get("explanation"),
                                "next_steps": args.get("next_steps", []),
                            },
                        }
                    )
                else:
                    raise ValidationError(f"Unknown function: {name}")
            except json.JSONDecodeError as e:
                logger.warning(f"Unreadable arguments for function call {name}")
                results.append({"type": "error", "data": {"message": f"Failed to process {name}: {e.msg}"}})
            except AutoflowError as e:
                logger.warning(f"Error processing function call {name}: {e.message}")
                results.append({"type": "error", "data": {"message": f"Failed to process {name}: {e.message}"}})
        return results

    async def interpret(self, session: Session, user_id: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        response = await self.call_ai_with_functions(messages)
        if not response.choices:
            raise ExternalServiceError("No response from AI")

        message = response.choices[0].message
        tool_calls = message.tool_calls or []
        return {
            "message": message.content or "",
            "functionResults": self.process_function_calls(session, user_id, tool_calls) if tool_calls else [],
        }
