"""OpenAI chat-completions client."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ValidationError

from inferbatch.clients.base import DEFAULT_TIMEOUT_SECONDS, HttpInferenceClient, InferenceError
from inferbatch.core.models import InferenceResponse, TokenUsage

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatChoice(BaseModel):
    index: int = 0
    finish_reason: str | None = None
    message: ChatMessage


class ChatCompletionResponse(BaseModel):
    id: str
    created: int
    model: str
    object: str
    usage: TokenUsage
    choices: list[ChatChoice]


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None


class OpenAIChatClient(HttpInferenceClient):
    """Sends each prompt as a single user message to ``/chat/completions``."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: str = OPENAI_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout_seconds=timeout_seconds,
            transport=transport,
        )
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    async def infer(self, prompt: str) -> InferenceResponse:
        request = ChatCompletionRequest(
            model=self._model,
            messages=[ChatMessage(role="user", content=prompt)],
        )
        body = await self._request(
            "POST", "/chat/completions", json=request.model_dump(exclude_none=True)
        )
        logger.debug("chat completion response: %s", body)

        try:
            completion = ChatCompletionResponse.model_validate(body)
        except ValidationError as exc:
            raise InferenceError(f"Unexpected chat completion shape: {exc}") from exc
        if not completion.choices:
            raise InferenceError("Chat completion returned no choices")

        return InferenceResponse(
            text=completion.choices[0].message.content,
            usage=completion.usage,
            raw=body,
        )
