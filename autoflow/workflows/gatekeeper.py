"""
Readiness checks run before a workflow spec is compiled.

Missing credentials are reported as a structured result, never raised: the
caller is expected to ask the user for them and try again.
"""
import logging
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from autoflow.credentials.service import CredentialVault
from autoflow.errors import DecryptionError
from autoflow.workflows.schemas import WorkflowSpec

logger = logging.getLogger(__name__)


class ReadinessReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ready: bool
    missing_services: List[str] = Field(default_factory=list, serialization_alias="missingServices")
    invalid_services: List[str] = Field(default_factory=list, serialization_alias="invalidServices")
    # serviceId -> credentialId, handed to the compiler when ready
    credentials: Dict[str, str] = Field(default_factory=dict)


def _dedupe(services: List[str]) -> List[str]:
    return list(dict.fromkeys(services))


class Gatekeeper:
    def __init__(self, vault: CredentialVault):
        self.vault = vault

    def check_readiness(self, user_id: str, spec: WorkflowSpec) -> ReadinessReport:
        """Diff the spec's required services against what the user has stored."""
        credentials = self.vault.credential_map(user_id)
        missing = [s for s in _dedupe(spec.required_services) if s not in credentials]
        if missing:
            logger.info(f"User {user_id} is missing credentials for: {', '.join(missing)}")
        return ReadinessReport(ready=not missing, missing_services=missing, credentials=credentials)

    async def check_live_readiness(self, user_id: str, spec: WorkflowSpec) -> ReadinessReport:
        """
        Like check_readiness, but also decrypts and validates every stored
        credential the spec needs. Credentials that fail to decrypt or that the
        provider rejects are reported as invalid instead of aborting the check.
        """
        report = self.check_readiness(user_id, spec)
        invalid: List[str] = []
        for service_id in _dedupe(spec.required_services):
            if service_id in report.missing_services:
                continue
            try:
                payload = self.vault.retrieve(user_id, service_id)
            except DecryptionError:
                invalid.append(service_id)
                continue
            result = await self.vault.validate(service_id, payload or {})
            if not result.valid:
                logger.info(f"Stored {service_id} credential for user {user_id} is invalid: {result.detail}")
                invalid.append(service_id)

        report.invalid_services = invalid
        report.ready = report.ready and not invalid
        return report
