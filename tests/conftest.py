"""
pytest configuration for pod_launcher tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from pod_launcher.transport import HttpResponse  # noqa: E402

TEST_TIM_YAML = """
metadata:
  name: {{build_id_with_prefix}}
  container: {{container}}
  launchVersion: {{launcher_version}}
command:
- "/opt/sd/launch {{api_uri}} {{store_uri}} {{token}} {{build_id}}"
"""

ENV_OVERRIDES = (
    "POD_LAUNCHER_API_URI",
    "POD_LAUNCHER_STORE_URI",
    "POD_LAUNCHER_PREFIX",
    "POD_LAUNCHER_LAUNCH_VERSION",
    "POD_LAUNCHER_TEMPLATE_PATH",
    "KUBERNETES_HOST",
    "KUBERNETES_TOKEN",
    "KUBERNETES_JOBS_NAMESPACE",
    "KUBERNETES_BASE_IMAGE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of config resolution."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def template_text() -> str:
    return TEST_TIM_YAML


@pytest.fixture
def mock_transport() -> AsyncMock:
    """Transport whose send() answers 200 with a small JSON body."""
    transport = AsyncMock()
    transport.send.return_value = HttpResponse(status=200, body={"success": "true"})
    return transport
