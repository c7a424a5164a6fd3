"""
Dusk Configuration Types and Schema
Defaults applied to every request created from the module constructors or an Instance
"""

import logging
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)

HTTP_PROTOCOL = "http://"
HTTPS_PROTOCOL = "https://"


class ConfigDefaults:
    """Default configuration values"""
    TIMEOUT = 0.0
    POOL_CONNECTIONS = 10
    POOL_MAXSIZE = 10


# Environment variable mapping
ENV_VAR_MAPPING = {
    "DUSK_BASE_URL": "base_url",
    "DUSK_TIMEOUT": "timeout",
    "DUSK_USER_AGENT": "user_agent",
    "DUSK_HEADERS": "headers",
}


class DuskConfig(BaseModel):
    """
    Request defaults

    base_url is prepended to a request URL unless that URL is absolute,
    headers are added to every request, and a non-zero timeout (seconds)
    bounds each call.
    """

    base_url: Optional[str] = Field(
        default=None,
        description="Prepended to request URLs that are not absolute"
    )
    headers: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Headers added to every request"
    )
    timeout: float = Field(
        default=ConfigDefaults.TIMEOUT,
        description="Request timeout in seconds, 0 disables it",
        ge=0,
    )
    user_agent: Optional[str] = Field(
        default=None,
        description="User-Agent header value"
    )

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate base_url is a valid URL"""
        if v is not None and v != "":
            if not v.startswith((HTTP_PROTOCOL, HTTPS_PROTOCOL)):
                raise ValueError("base_url must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def normalize_headers(
        cls, v: Optional[Dict[str, Union[str, List[str]]]]
    ) -> Dict[str, List[str]]:
        """Accept single header values as well as value lists"""
        if v is None:
            return {}
        return {
            key: [value] if isinstance(value, str) else list(value)
            for key, value in v.items()
        }

    def header_items(self) -> List[tuple]:
        """Flattened (name, value) pairs, User-Agent included"""
        items = [
            (key, value)
            for key, values in self.headers.items()
            for value in values
        ]
        if self.user_agent:
            items.append(("User-Agent", self.user_agent))
        return items


_default_config: Optional[DuskConfig] = None


def set_config(config: Optional[DuskConfig]) -> None:
    """Set the default config for all requests (None removes it)"""
    global _default_config
    _default_config = config
    if config is None:
        logger.info("Default request config removed")
    else:
        logger.info(
            f"Default request config set: base_url={config.base_url} "
            f"timeout={config.timeout}"
        )


def get_config() -> Optional[DuskConfig]:
    """Get the default config for all requests"""
    return _default_config
