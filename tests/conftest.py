from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fhirbatch.adapters.fhir import FhirBundleCodec
from fhirbatch.adapters.http_resilience import ResilientClient
from fhirbatch.config import ClientCredentials, FhirConfig, RetryPolicy, build_fhir_resilience
from fhirbatch.domain.ports.batch import BearerToken
from tests.support.fake_fhir import ACCESS_TOKEN, BASE_URL, CLIENT_ID, CLIENT_SECRET, FakeFhirServer

if TYPE_CHECKING:
    from collections.abc import Callable

    from fhirbatch.config import ResilienceConfig


@pytest.fixture
def fake_server() -> FakeFhirServer:
    return FakeFhirServer()


@pytest.fixture
def fhir_config() -> FhirConfig:
    return FhirConfig(
        credentials=ClientCredentials(client_id=CLIENT_ID, client_secret=CLIENT_SECRET),
        resilience=build_fhir_resilience(BASE_URL, retry=RetryPolicy(total=0)),
    )


@pytest.fixture
def client_factory(
    fake_server: FakeFhirServer,
) -> Callable[[ResilienceConfig], ResilientClient]:
    def factory(resilience: ResilienceConfig) -> ResilientClient:
        return ResilientClient(resilience, transport=fake_server.transport())

    return factory


@pytest.fixture
def token() -> BearerToken:
    return BearerToken(access_token=ACCESS_TOKEN)


@pytest.fixture
def codec() -> FhirBundleCodec:
    return FhirBundleCodec()
