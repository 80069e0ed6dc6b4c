"""
Configuration for the document gate.

Configuration can be provided directly, from environment variables or
from a YAML settings file.

Environment Variables:
    DOCUMENT_GATE_LINK_TTL: Signed link validity in seconds (default: 600)
    DOCUMENT_GATE_RENEWAL_INTERVAL: Renewal timer period in seconds (default: 600)
    DOCUMENT_GATE_USER_AGENT: User agent recorded with access records
    DOCUMENT_GATE_IP_LOOKUP_URL: Address lookup service URL
    DOCUMENT_GATE_IP_LOOKUP_TIMEOUT: Address lookup timeout in seconds (default: 5)
    DOCUMENT_GATE_AUTH_URL: Hosted auth REST endpoint (e.g. https://xyz.example.co/auth/v1)
    DOCUMENT_GATE_AUTH_KEY: Public API key for the hosted auth service
    DOCUMENT_GATE_LOCAL_PATH: Directory for local stores and the gate token
    DOCUMENT_GATE_SIGNING_SECRET: HMAC secret for locally signed links
    COSMOS_ENDPOINT: Cosmos DB account endpoint
    COSMOS_KEY: Cosmos DB account key
    DOCUMENT_GATE_COSMOS_DATABASE: Database name (default: document_gate)
    DOCUMENT_GATE_S3_BUCKET: Bucket holding uploaded documents
    AWS_REGION: Bucket region
    DOCUMENT_GATE_S3_PREFIX: Key prefix inside the bucket (default: documents)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError
from .protocol import DEFAULT_LINK_TTL_SECONDS, GATE_TOKEN_KEY

DEFAULT_IP_LOOKUP_URL = "https://api.ipify.org?format=json"
DEFAULT_SETTINGS_PATH = Path.home() / ".document_gate" / "settings.yaml"

# An API key shorter than this is almost certainly a truncated paste
MIN_API_KEY_LENGTH = 20


@dataclass
class GateConfig:
    """Settings shared by the access controller, admin console and adapters.

    Attributes:
        link_ttl_seconds: Validity window requested for every signed link
        renewal_interval_seconds: Period of the link renewal timer; must not
            exceed the link TTL
        token_key: Local persistence key of the gate token
        user_agent: User agent recorded in access records
        ip_lookup_url: Address lookup endpoint returning ``{"ip": ...}``
        ip_lookup_timeout: Seconds before the address lookup gives up
        auth_url: Hosted auth REST endpoint for magic links
        auth_api_key: Public API key sent to the auth endpoint
        cosmos_endpoint: Cosmos DB endpoint for the record store
        cosmos_key: Cosmos DB key
        cosmos_database: Cosmos DB database name
        s3_bucket: Object store bucket
        s3_region: Object store region
        s3_prefix: Key prefix inside the bucket
        local_path: Directory for local stores and the gate token file
        signing_secret: HMAC secret for the local object store
    """

    link_ttl_seconds: int = DEFAULT_LINK_TTL_SECONDS
    renewal_interval_seconds: float = DEFAULT_LINK_TTL_SECONDS
    token_key: str = GATE_TOKEN_KEY
    user_agent: str = "document-gate"
    ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL
    ip_lookup_timeout: float = 5.0

    auth_url: str | None = None
    auth_api_key: str | None = None

    cosmos_endpoint: str | None = None
    cosmos_key: str | None = None
    cosmos_database: str = "document_gate"

    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_prefix: str = "documents"

    local_path: Path | None = None
    signing_secret: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.local_path, str):
            self.local_path = Path(self.local_path)
        if self.link_ttl_seconds <= 0:
            raise ValidationError("link_ttl_seconds", "must be positive", str(self.link_ttl_seconds))
        if self.renewal_interval_seconds <= 0:
            raise ValidationError(
                "renewal_interval_seconds", "must be positive", str(self.renewal_interval_seconds)
            )
        # A timer slower than the TTL would let viewers observe an expired link
        if self.renewal_interval_seconds > self.link_ttl_seconds:
            raise ValidationError(
                "renewal_interval_seconds",
                "must not exceed link_ttl_seconds",
                str(self.renewal_interval_seconds),
            )

    @property
    def resolved_local_path(self) -> Path:
        """Local storage directory, defaulting to ~/.document_gate."""
        return self.local_path or Path.home() / ".document_gate"

    @classmethod
    def from_env(cls) -> "GateConfig":
        """Create config from environment variables."""
        env = os.environ
        local_path = env.get("DOCUMENT_GATE_LOCAL_PATH")
        return cls(
            link_ttl_seconds=int(env.get("DOCUMENT_GATE_LINK_TTL", DEFAULT_LINK_TTL_SECONDS)),
            renewal_interval_seconds=float(
                env.get("DOCUMENT_GATE_RENEWAL_INTERVAL", DEFAULT_LINK_TTL_SECONDS)
            ),
            user_agent=env.get("DOCUMENT_GATE_USER_AGENT", "document-gate"),
            ip_lookup_url=env.get("DOCUMENT_GATE_IP_LOOKUP_URL", DEFAULT_IP_LOOKUP_URL),
            ip_lookup_timeout=float(env.get("DOCUMENT_GATE_IP_LOOKUP_TIMEOUT", 5.0)),
            auth_url=env.get("DOCUMENT_GATE_AUTH_URL"),
            auth_api_key=env.get("DOCUMENT_GATE_AUTH_KEY"),
            cosmos_endpoint=env.get("COSMOS_ENDPOINT"),
            cosmos_key=env.get("COSMOS_KEY"),
            cosmos_database=env.get("DOCUMENT_GATE_COSMOS_DATABASE", "document_gate"),
            s3_bucket=env.get("DOCUMENT_GATE_S3_BUCKET"),
            s3_region=env.get("AWS_REGION"),
            s3_prefix=env.get("DOCUMENT_GATE_S3_PREFIX", "documents"),
            local_path=Path(local_path) if local_path else None,
            signing_secret=env.get("DOCUMENT_GATE_SIGNING_SECRET"),
        )

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "GateConfig":
        """Load config from the ``gate:`` section of a YAML settings file.

        Configuration in ~/.document_gate/settings.yaml:

        ```yaml
        gate:
          link_ttl_seconds: 600
          renewal_interval_seconds: 600
          auth_url: "https://xyz.example.co/auth/v1"
          cosmos_endpoint: "https://acct.documents.azure.com:443/"
          s3_bucket: "portfolio-documents"
        ```

        A missing file yields the defaults. Unknown keys are ignored.
        """
        config_path = config_path or DEFAULT_SETTINGS_PATH
        settings = _load_yaml(config_path).get("gate", {}) or {}
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in settings.items() if key in known})

    def diagnose(self) -> list[str]:
        """Check the hosted-auth settings for obvious format problems.

        Findings never include the secret values themselves.
        """
        findings = []
        if not self.auth_url:
            findings.append("auth_url: missing")
        elif not self.auth_url.startswith("https://"):
            findings.append("auth_url: invalid format (expected https://)")
        else:
            findings.append("auth_url: valid format")

        if not self.auth_api_key:
            findings.append("auth_api_key: missing")
        elif len(self.auth_api_key) <= MIN_API_KEY_LENGTH:
            findings.append("auth_api_key: invalid format (too short)")
        else:
            findings.append("auth_api_key: valid format")
        return findings


def _load_yaml(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}
    try:
        return yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ValidationError("settings", f"invalid YAML in {config_path}: {e}") from e
