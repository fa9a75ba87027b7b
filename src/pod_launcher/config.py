"""
Pod launcher configuration.

Sources, later wins:
    1. Dataclass defaults
    2. Host option bag (``ExecutorConfig.from_dict``) or config.yaml
       (``ExecutorConfig.from_yaml``)
    3. Environment variables (``apply_env_overrides``)

Option-bag keys follow the host's camelCase layout::

    ecosystem: {api, store}
    kubernetes: {host, token, jobsNamespace, baseImage, tokenPath}
    prefix, launchVersion, templatePath
    fusebox:
      retry: {minTimeout, maxTimeout, maxAttempts, factor, randomize}   # ms
      breaker: {maxFailures, resetTimeout, timeout}                     # ms
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from pod_launcher.common.exceptions import ConfigurationError
from pod_launcher.resilience.circuit_breaker import CircuitBreakerConfig
from pod_launcher.resilience.retry import RetryConfig

DEFAULT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "templates" / "pod.yaml.tim"


@dataclass
class KubernetesConfig:
    """Cluster API endpoint and credentials."""

    host: str = "kubernetes.default"
    token: Optional[str] = None  # None = read from token_path
    jobs_namespace: str = "default"
    base_image: Optional[str] = None
    token_path: str = DEFAULT_TOKEN_PATH


@dataclass
class FuseboxConfig:
    """Retry, circuit breaker and timeout tuning for the resilient caller."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    timeout_seconds: float = 10.0


@dataclass
class ExecutorConfig:
    """Everything the pod executor needs, resolved once at construction."""

    api_uri: str = "http://localhost:8080"
    store_uri: str = "http://localhost:8081"
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    prefix: str = ""
    launch_version: str = "stable"
    template_path: Path = DEFAULT_TEMPLATE_PATH
    fusebox: FuseboxConfig = field(default_factory=FuseboxConfig)

    @property
    def pods_url(self) -> str:
        return (
            f"https://{self.kubernetes.host}/api/v1/namespaces/"
            f"{self.kubernetes.jobs_namespace}/pods"
        )

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]] = None) -> "ExecutorConfig":
        """
        Build config from a host option bag.

        Missing sections and keys fall back to defaults. Durations under
        ``fusebox`` are milliseconds.

        Raises:
            ConfigurationError: If a numeric option cannot be parsed
        """
        options = options or {}
        ecosystem = _section(options, "ecosystem")
        k8s = _section(options, "kubernetes")
        fusebox = _section(options, "fusebox")
        retry = _section(fusebox, "retry")
        breaker = _section(fusebox, "breaker")

        defaults = cls()
        retry_defaults = RetryConfig()
        breaker_defaults = CircuitBreakerConfig()
        k8s_defaults = KubernetesConfig()

        return cls(
            api_uri=ecosystem.get("api", defaults.api_uri),
            store_uri=ecosystem.get("store", defaults.store_uri),
            kubernetes=KubernetesConfig(
                host=k8s.get("host", k8s_defaults.host),
                token=k8s.get("token", k8s_defaults.token),
                jobs_namespace=k8s.get("jobsNamespace", k8s_defaults.jobs_namespace),
                base_image=k8s.get("baseImage", k8s_defaults.base_image),
                token_path=k8s.get("tokenPath", k8s_defaults.token_path),
            ),
            prefix=options.get("prefix", defaults.prefix),
            launch_version=options.get("launchVersion", defaults.launch_version),
            template_path=Path(options.get("templatePath", defaults.template_path)),
            fusebox=FuseboxConfig(
                retry=RetryConfig(
                    max_attempts=_to_int(
                        retry, "maxAttempts", retry_defaults.max_attempts
                    ),
                    min_delay_seconds=_ms_to_seconds(
                        retry, "minTimeout", retry_defaults.min_delay_seconds
                    ),
                    max_delay_seconds=_ms_to_seconds(
                        retry, "maxTimeout", retry_defaults.max_delay_seconds
                    ),
                    factor=_to_float(retry, "factor", retry_defaults.factor),
                    jitter=bool(retry.get("randomize", retry_defaults.jitter)),
                ),
                breaker=CircuitBreakerConfig(
                    failure_threshold=_to_int(
                        breaker, "maxFailures", breaker_defaults.failure_threshold
                    ),
                    reset_timeout_seconds=_ms_to_seconds(
                        breaker, "resetTimeout", breaker_defaults.reset_timeout_seconds
                    ),
                ),
                timeout_seconds=_ms_to_seconds(
                    breaker, "timeout", FuseboxConfig().timeout_seconds
                ),
            ),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ExecutorConfig":
        """Load option bag from YAML (under an ``executor:`` key, or top level)."""
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid YAML in config file: {config_path}", cause=e
                ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")
        return cls.from_dict(data.get("executor", data))

    def apply_env_overrides(self) -> "ExecutorConfig":
        """Override fields from environment variables, in place.

        Environment variables:
            POD_LAUNCHER_API_URI, POD_LAUNCHER_STORE_URI, POD_LAUNCHER_PREFIX,
            POD_LAUNCHER_LAUNCH_VERSION, POD_LAUNCHER_TEMPLATE_PATH,
            KUBERNETES_HOST, KUBERNETES_TOKEN, KUBERNETES_JOBS_NAMESPACE,
            KUBERNETES_BASE_IMAGE
        """
        self.api_uri = os.getenv("POD_LAUNCHER_API_URI", self.api_uri)
        self.store_uri = os.getenv("POD_LAUNCHER_STORE_URI", self.store_uri)
        self.prefix = os.getenv("POD_LAUNCHER_PREFIX", self.prefix)
        self.launch_version = os.getenv("POD_LAUNCHER_LAUNCH_VERSION", self.launch_version)
        if os.getenv("POD_LAUNCHER_TEMPLATE_PATH"):
            self.template_path = Path(os.environ["POD_LAUNCHER_TEMPLATE_PATH"])

        k8s = self.kubernetes
        k8s.host = os.getenv("KUBERNETES_HOST", k8s.host)
        k8s.token = os.getenv("KUBERNETES_TOKEN", k8s.token)
        k8s.jobs_namespace = os.getenv("KUBERNETES_JOBS_NAMESPACE", k8s.jobs_namespace)
        k8s.base_image = os.getenv("KUBERNETES_BASE_IMAGE", k8s.base_image)
        return self


def load_config(path: Optional[Union[str, Path]] = None) -> ExecutorConfig:
    """Load config from an optional YAML file, then apply env overrides."""
    config = ExecutorConfig.from_yaml(path) if path else ExecutorConfig()
    return config.apply_env_overrides()


def _section(options: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = options.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Option '{key}' must be a mapping")
    return dict(value)


def _to_int(section: Mapping[str, Any], key: str, default: int) -> int:
    if key not in section:
        return default
    try:
        return int(section[key])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Option '{key}' must be an integer", cause=e) from e


def _to_float(section: Mapping[str, Any], key: str, default: float) -> float:
    if key not in section:
        return default
    try:
        return float(section[key])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Option '{key}' must be a number", cause=e) from e


def _ms_to_seconds(section: Mapping[str, Any], key: str, default: float) -> float:
    if key not in section:
        return default
    return _to_float(section, key, default) / 1000.0
