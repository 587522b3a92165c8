"""onebridge configuration management."""

import json
import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("onebridge.config")


class BridgeSettings(BaseSettings):
    """Settings loaded from environment variables, .env or a JSON config file."""

    # Inbound server
    host: str = Field(default="0.0.0.0", description="Bind host for HTTP and forward ws")
    port: int = Field(default=5700, description="Bind port for HTTP and forward ws")
    use_http: bool = Field(default=True, description="Serve the HTTP API")
    use_ws: bool = Field(default=False, description="Accept forward WebSocket connections")
    enable_cors: bool = Field(default=False, description="Answer CORS preflight requests")

    # Auth
    access_token: Optional[str] = Field(default=None, description="Token required from controllers")
    secret: Optional[str] = Field(default=None, description="HMAC secret for webhook signatures")

    # Webhooks
    post_url: list[str] = Field(default_factory=list, description="Webhook URLs events are POSTed to")
    post_timeout: float = Field(default=30.0, description="Webhook timeout (seconds)")
    post_message_format: Literal["array", "string"] = Field(
        default="array", description="'string' replaces message with raw_message"
    )

    # Reverse ws
    ws_reverse_url: list[str] = Field(default_factory=list, description="Controller ws URLs to dial")
    ws_reverse_reconnect_interval: float = Field(default=3.0, description="Reconnect delay (seconds)")

    # Meta events
    enable_heartbeat: bool = Field(default=False, description="Emit heartbeat meta events")
    heartbeat_interval: float = Field(default=15.0, description="Heartbeat period (seconds)")

    # Runtime calls
    rate_limit_interval: float = Field(default=0.5, description="Spacing of rate-limited calls (seconds)")

    # Filtering
    event_filter: Optional[str] = Field(default=None, description="Path to a JSON event filter")

    debug: bool = Field(default=False, description="Debug logging")

    model_config = {"env_prefix": "ONEBRIDGE_", "env_file": ".env", "extra": "ignore"}


def _read_config_file(path: str, self_id: Optional[int]) -> dict:
    """Merge the ``general`` section with the section for ``self_id``."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config must be a JSON object")
    merged = dict(data.get("general") or {})
    if self_id is not None:
        merged.update(data.get(str(self_id)) or {})
    return merged


def load_settings(config_file: Optional[str] = None, self_id: Optional[int] = None, **overrides) -> BridgeSettings:
    """Load settings.

    Priority: explicit overrides > config file (general, then per-account
    section) > environment / .env > defaults.

    Raises:
        OSError: config file cannot be read.
        ValueError: config file is not a JSON object.
    """
    values = {}
    if config_file:
        values.update(_read_config_file(config_file, self_id))
        logger.info(f"Config loaded from {config_file}")
    values.update({k: v for k, v in overrides.items() if v is not None})
    settings = BridgeSettings(**values)

    serving = settings.use_http or settings.use_ws
    if serving and settings.host not in ("127.0.0.1", "localhost", "::1") and not settings.access_token:
        logger.warning(
            f"Listening on {settings.host} without an access token; "
            "anyone who can reach the port can control the bot."
        )
    return settings
