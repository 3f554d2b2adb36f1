"""FHIR server configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .env import optional_env_var, optional_float_env_var, require_env_vars
from .http_resilience import ResilienceConfig, RetryPolicy

if TYPE_CHECKING:
    import httpx

log = getLogger(__name__)

DEFAULT_FHIR_BASE_URL = "https://api.medplum.com/"
DEFAULT_FHIR_PATH = "fhir/R4/"
DEFAULT_TOKEN_PATH = "oauth2/token"
DEFAULT_FHIR_TIMEOUT_SECONDS = 30.0
FHIR_JSON = "application/fhir+json"


@dataclass(frozen=True, slots=True)
class ClientCredentials:
    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"ClientCredentials(client_id={self.client_id!r}, client_secret='***')"


@dataclass(frozen=True, slots=True)
class FhirConfig:
    """Holds the FHIR server location, OAuth client and HTTP behaviour."""

    credentials: ClientCredentials
    resilience: ResilienceConfig
    fhir_path: str = DEFAULT_FHIR_PATH
    token_path: str = DEFAULT_TOKEN_PATH


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    log.debug("%s %s -> %s", request.method, request.url, response.status_code)


def build_fhir_resilience(
    base_url: str,
    *,
    timeout_seconds: float = DEFAULT_FHIR_TIMEOUT_SECONDS,
    retry: RetryPolicy | None = None,
) -> ResilienceConfig:
    if not base_url.endswith("/"):
        base_url = f"{base_url}/"
    return ResilienceConfig(
        name="fhir",
        base_url=base_url,
        timeout_seconds=timeout_seconds,
        retry=retry or RetryPolicy(),
        response_hooks=(_log_response,),
        default_headers={"Accept": FHIR_JSON},
    )


def get_fhir_config(*, resilience: ResilienceConfig | None = None) -> FhirConfig:
    values = require_env_vars(("FHIR_CLIENT_ID", "FHIR_CLIENT_SECRET"))
    base_url = optional_env_var("FHIR_BASE_URL", DEFAULT_FHIR_BASE_URL)
    timeout = optional_float_env_var("FHIR_TIMEOUT_SECONDS", DEFAULT_FHIR_TIMEOUT_SECONDS)
    return FhirConfig(
        credentials=ClientCredentials(
            client_id=values["FHIR_CLIENT_ID"],
            client_secret=values["FHIR_CLIENT_SECRET"],
        ),
        resilience=resilience or build_fhir_resilience(base_url, timeout_seconds=timeout),
        fhir_path=optional_env_var("FHIR_PATH", DEFAULT_FHIR_PATH),
    )
