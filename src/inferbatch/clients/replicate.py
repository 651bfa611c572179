"""Replicate predictions client.

A prediction is created with one request and then polled until it
reaches a terminal status.  Streaming models return their output as a
list of token strings, which are joined into the response text.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel, ValidationError

from inferbatch.clients.base import DEFAULT_TIMEOUT_SECONDS, HttpInferenceClient, InferenceError
from inferbatch.core.models import InferenceResponse, TokenUsage

logger = logging.getLogger(__name__)

REPLICATE_BASE_URL = "https://api.replicate.com/v1"

PENDING_STATUSES = frozenset({"starting", "processing"})


class Prediction(BaseModel):
    id: str
    status: str
    version: str | None = None
    error: str | None = None
    logs: str | None = None
    output: list[str] | str | None = None


class ReplicatePredictionClient(HttpInferenceClient):
    """Runs a pinned model version and waits for its output."""

    def __init__(
        self,
        api_token: str,
        version: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval_seconds: float = 0.5,
        base_url: str = REPLICATE_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"Authorization": f"Token {api_token}"},
            timeout_seconds=timeout_seconds,
            transport=transport,
        )
        self._version = version
        self._poll_interval = poll_interval_seconds

    async def infer(self, prompt: str) -> InferenceResponse:
        prediction = await self._start(prompt)
        prediction = await self._wait(prediction)

        output = prediction.output
        if output is None:
            raise InferenceError(f"Prediction {prediction.id} succeeded without output")
        text = output if isinstance(output, str) else "".join(output)
        return InferenceResponse(text=text, usage=TokenUsage(), raw=prediction.model_dump())

    async def _start(self, prompt: str) -> Prediction:
        body = await self._request(
            "POST",
            "/predictions",
            json={"version": self._version, "input": {"prompt": prompt}},
        )
        return self._parse(body)

    async def _wait(self, prediction: Prediction) -> Prediction:
        while prediction.status in PENDING_STATUSES:
            logger.debug("prediction %s status = %s", prediction.id, prediction.status)
            await asyncio.sleep(self._poll_interval)
            body = await self._request("GET", f"/predictions/{prediction.id}")
            prediction = self._parse(body)

        if prediction.status != "succeeded":
            raise InferenceError(
                f"Prediction {prediction.id} ended with status {prediction.status!r}: {prediction.error}"
            )
        return prediction

    @staticmethod
    def _parse(body: dict) -> Prediction:
        try:
            return Prediction.model_validate(body)
        except ValidationError as exc:
            raise InferenceError(f"Unexpected prediction shape: {exc}") from exc
