"""Pydantic models describing FHIR Bundle payloads used by batch calls."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

HttpVerb = Literal["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


class FhirBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CodingPayload(FhirBaseModel):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConceptPayload(FhirBaseModel):
    coding: list[CodingPayload] = Field(default_factory=list)
    text: str | None = None


class OperationOutcomeIssue(FhirBaseModel):
    severity: str | None = None
    code: str | None = None
    details: CodeableConceptPayload | None = None
    diagnostics: str | None = None

    @property
    def message(self) -> str | None:
        if self.details is not None and self.details.text:
            return self.details.text
        return self.diagnostics


class OperationOutcome(FhirBaseModel):
    resource_type: Literal["OperationOutcome"] = Field(
        default="OperationOutcome", alias="resourceType"
    )
    issue: list[OperationOutcomeIssue] = Field(default_factory=list)

    @property
    def message(self) -> str | None:
        for issue in self.issue:
            if issue.message:
                return issue.message
        return None


class BundleEntryRequest(FhirBaseModel):
    method: HttpVerb
    url: str
    if_none_exist: str | None = Field(default=None, alias="ifNoneExist")


class BundleEntryResponse(FhirBaseModel):
    status: str
    location: str | None = None
    etag: str | None = None
    last_modified: str | None = Field(default=None, alias="lastModified")
    outcome: OperationOutcome | None = None

    @property
    def status_code(self) -> int:
        """Numeric code from a status line such as ``"201 Created"``."""

        head = self.status.strip().split(" ", 1)[0]
        try:
            return int(head)
        except ValueError:
            return 0


class BundleEntry(FhirBaseModel):
    full_url: str | None = Field(default=None, alias="fullUrl")
    resource: dict[str, Any] | None = None
    request: BundleEntryRequest | None = None
    response: BundleEntryResponse | None = None


class Bundle(FhirBaseModel):
    resource_type: Literal["Bundle"] = Field(default="Bundle", alias="resourceType")
    type: str
    entry: list[BundleEntry] = Field(default_factory=list)
