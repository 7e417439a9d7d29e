from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from estatetrust.services.http_client import HttpClient


log = logging.getLogger(__name__)


class SurveyCheckOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SurveyCheckResult:
    outcome: SurveyCheckOutcome
    reason: str | None = None
    record: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.outcome is SurveyCheckOutcome.PASSED


class SurveyVerifier(Protocol):
    async def check(self, survey_number: str, *, district: str | None, taluk: str | None) -> SurveyCheckResult:
        ...


class HttpSurveyVerifier:
    """
    Land-records survey API client.

    POST {base}/survey/verify with {surveyNumber, district, taluk}.
    A 2xx with ``success`` true means the survey number (and location, when
    given) matches the records. 4xx means the records disagree. Anything
    else, including timeouts, is "unavailable".
    """

    def __init__(self, client: HttpClient, *, path: str = "/survey/verify"):
        self._client = client
        self._path = path

    async def check(self, survey_number: str, *, district: str | None, taluk: str | None) -> SurveyCheckResult:
        body: dict[str, Any] = {"surveyNumber": survey_number}
        if district and taluk:
            body["district"] = district
            body["taluk"] = taluk

        res = await self._client.post_json(url=self._path, json_body=body)

        if res.ok and res.detail.get("success"):
            return SurveyCheckResult(outcome=SurveyCheckOutcome.PASSED, record=dict(res.detail.get("data") or {}))

        if res.status_code is not None and 400 <= res.status_code < 500 and not res.retryable:
            reason = res.detail.get("errorCode") or res.error_code
            return SurveyCheckResult(outcome=SurveyCheckOutcome.FAILED, reason=reason)

        if res.ok:
            # 2xx without success flag: the records service answered but did not confirm
            return SurveyCheckResult(outcome=SurveyCheckOutcome.FAILED, reason="NOT_CONFIRMED")

        log.warning("survey api unavailable: %s %s", res.error_code, res.error_message)
        return SurveyCheckResult(outcome=SurveyCheckOutcome.UNAVAILABLE, reason=res.error_code)

    async def aclose(self) -> None:
        await self._client.aclose()
