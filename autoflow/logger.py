import logging
import re

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

custom_theme = Theme(
    {
        "info": "dim cyan",
        "warning": "magenta",
        "error": "bold red",
        "vault": "bold yellow",
        "oauth": "bold blue",
        "compiler": "bold green",
    }
)

# stdout is reserved for command output such as compiled documents
console = Console(theme=custom_theme, stderr=True)


class RedactSecretsFilter(logging.Filter):
    """Masks anything that looks like a secret before a record is emitted."""

    BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.I)
    KEY_VALUE_PATTERN = re.compile(
        r"""(["']?(?:access_token|refresh_token|api_?key|client_secret|password|secret)["']?\s*[:=]\s*["']?)([^"'\s,&}]+)""",
        re.I,
    )
    # iv:ciphertext tokens produced by the vault cipher
    CIPHER_TOKEN_PATTERN = re.compile(r"\b[A-Za-z0-9+/]{22}==:[A-Za-z0-9+/]+=*")

    def redact(self, text: str) -> str:
        text = self.BEARER_PATTERN.sub(r"\1***", text)
        text = self.KEY_VALUE_PATTERN.sub(r"\1***", text)
        return self.CIPHER_TOKEN_PATTERN.sub("***", text)

    def filter(self, record):
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        return True


def setup_global_logger(log_level: str = "INFO"):
    """
    Configures the package logger using Rich for readable output.
    """
    logger = logging.getLogger("autoflow")

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if not logger.handlers:
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            markup=False,
            show_path=False,
            show_time=True,
            omit_repeated_times=True,
            keywords=["vault", "oauth", "workflow", "engine", "compiler"],
        )

        formatter = logging.Formatter("%(message)s", datefmt="[%X]")
        rich_handler.setFormatter(formatter)
        rich_handler.addFilter(RedactSecretsFilter())
        logger.addHandler(rich_handler)

    return logger


logger = logging.getLogger("autoflow")
