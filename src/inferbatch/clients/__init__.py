"""Inference service clients.

Each client turns a prompt into an :class:`~inferbatch.core.models.InferenceResponse`
and reports every remote failure as :class:`~inferbatch.clients.base.InferenceError`.
"""

from __future__ import annotations

from inferbatch.clients.base import InferenceClient, InferenceError
from inferbatch.clients.openai import OpenAIChatClient
from inferbatch.clients.replicate import ReplicatePredictionClient

__all__ = [
    "InferenceClient",
    "InferenceError",
    "OpenAIChatClient",
    "ReplicatePredictionClient",
]
