"""File-backed inputs: the service-account token and the pod template."""

import logging
from pathlib import Path
from typing import Optional, Union

from pod_launcher.common.exceptions import ConfigurationError
from pod_launcher.config import DEFAULT_TEMPLATE_PATH, DEFAULT_TOKEN_PATH

logger = logging.getLogger(__name__)


def load_service_account_token(path: Union[str, Path] = DEFAULT_TOKEN_PATH) -> str:
    """
    Read the bearer token mounted into the pod.

    Returns an empty string when the file does not exist, so a launcher
    running outside the cluster can still be constructed.
    """
    token_path = Path(path)
    if not token_path.exists():
        logger.debug(
            "Service account token not found, using empty token",
            extra={"token_path": str(token_path)},
        )
        return ""
    return token_path.read_text(encoding="utf-8").strip()


def load_template(path: Optional[Union[str, Path]] = None) -> str:
    """
    Read a pod template document.

    Raises:
        ConfigurationError: If the template file does not exist
    """
    template_path = Path(path) if path else DEFAULT_TEMPLATE_PATH
    if not template_path.exists():
        raise ConfigurationError(f"Pod template not found: {template_path}")
    return template_path.read_text(encoding="utf-8")
