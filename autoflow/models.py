# Central models file - import all table models here so create_all sees them

from autoflow.credentials.models import Credential  # noqa: F401
from autoflow.workflows.models import ExecutionLog, Workflow  # noqa: F401
