"""
Planner Adapter — turns an AgentContext into an AgentStep via the reasoning endpoint.

Behavioral Contract:
- plan() never raises: every failure ends in a deterministic fallback step
- Each attempt is bounded by the client timeout and an overall asyncio deadline
- ValidationError is not retried; network, timeout, parse and model errors are,
  up to max_retries additional attempts with linear backoff
- Stats are advisory and never influence planning
"""

import asyncio
import time
from typing import List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel

from habitat_kernel.models.agent import AgentAction, AgentStep
from habitat_kernel.models.config import PlannerConfig
from habitat_kernel.models.context import AgentContext
from habitat_kernel.planner.errors import (
    ModelError,
    NetworkError,
    PlannerError,
    PlannerTimeoutError,
)
from habitat_kernel.planner.parsing import parse_agent_step
from habitat_kernel.planner.prompt import CONNECTION_PROBE, build_agent_prompt


class PlannerStats(BaseModel):
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    average_latency_ms: float = 0.0
    retry_count: int = 0
    fallback_count: int = 0
    last_call_time: Optional[float] = None   # wall-clock epoch seconds


def fallback_step(context: AgentContext, reason: str) -> AgentStep:
    """No messages, one harmless action, and the reason in the explanation."""
    name = context.available_actions[0] if context.available_actions else "idle"
    return AgentStep(
        messages_to=[],
        actions=[AgentAction(name=name, args={})],
        explain=f"Fallback behavior due to planner error: {reason}",
    )


class PlannerAdapter:
    """
    Async client for a text-completion endpoint (Ollama-style /api/generate).
    `transport` is passed to httpx for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or PlannerConfig()
        self._transport = transport
        self._stats = PlannerStats()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def set_enabled(self, enabled: bool) -> None:
        self.config.enabled = enabled
        logger.info(f"Planner {'enabled' if enabled else 'disabled'}")

    @property
    def stats(self) -> PlannerStats:
        return self._stats.model_copy()

    def reset_stats(self) -> None:
        self._stats = PlannerStats()

    # --- Planning ---

    async def plan(self, context: AgentContext) -> AgentStep:
        """Plan one step for one device. Always returns an AgentStep."""
        if not self.config.enabled:
            self._stats.fallback_count += 1
            return fallback_step(context, "planning disabled")

        prompt = build_agent_prompt(context)
        attempts = self.config.max_retries + 1
        last_error: Optional[PlannerError] = None

        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                text = await self._generate_with_deadline(prompt)
                step = parse_agent_step(text)
            except PlannerError as e:
                last_error = e
            except Exception as e:
                last_error = ModelError(f"Unexpected planner failure: {e}", cause=e)
            else:
                self._record_call(started, success=True)
                return step

            self._record_call(started, success=False)
            logger.warning(
                f"Planner attempt {attempt}/{attempts} for {context.device_id} failed: "
                f"{last_error.kind}: {last_error}"
            )
            if not last_error.retryable:
                break
            if attempt < attempts:
                self._stats.retry_count += 1
                await asyncio.sleep(self.config.backoff_seconds * attempt)

        self._stats.fallback_count += 1
        logger.warning(f"Planner fallback for {context.device_id}: {last_error}")
        return fallback_step(context, str(last_error))

    async def _generate_with_deadline(self, prompt: str) -> str:
        try:
            return await asyncio.wait_for(
                self._generate(prompt), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise PlannerTimeoutError(
                f"No response within {self.config.timeout_seconds}s", cause=e
            )

    async def _generate(self, prompt: str) -> str:
        """One POST to the endpoint. Returns the `response` text."""
        body = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
                "stop": self.config.stop,
            },
        }
        async with self._client() as client:
            try:
                resp = await client.post(self.config.endpoint, json=body)
                resp.raise_for_status()
            except httpx.TimeoutException as e:
                raise PlannerTimeoutError(f"Endpoint timed out: {e}", cause=e)
            except httpx.HTTPStatusError as e:
                raise NetworkError(
                    f"Endpoint returned HTTP {e.response.status_code}", cause=e
                )
            except httpx.HTTPError as e:
                raise NetworkError(f"Endpoint unreachable: {e}", cause=e)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ModelError("Endpoint returned a non-JSON body", cause=e)
        if not isinstance(payload, dict):
            raise ModelError("Endpoint returned an unexpected body")
        if payload.get("error"):
            raise ModelError(f"Model error: {payload['error']}")
        text = payload.get("response")
        if not isinstance(text, str):
            raise ModelError("Endpoint body has no 'response' string")
        return text

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.config.timeout_seconds,
        )

    def _record_call(self, started: float, success: bool) -> None:
        latency_ms = (time.monotonic() - started) * 1000.0
        s = self._stats
        s.total_calls += 1
        if success:
            s.successful_calls += 1
        else:
            s.failed_calls += 1
        s.average_latency_ms += (latency_ms - s.average_latency_ms) / s.total_calls
        s.last_call_time = time.time()

    # --- Probes ---

    async def check_connection(self) -> bool:
        """Send a tiny probe prompt; True if the model answers with the probe key."""
        try:
            text = await self._generate_with_deadline(CONNECTION_PROBE)
        except PlannerError as e:
            logger.warning(f"Planner connection check failed: {e}")
            return False
        return '"test"' in text

    def _tags_url(self) -> httpx.URL:
        return httpx.URL(self.config.endpoint).join("/api/tags")

    async def list_models(self) -> List[str]:
        """Model names the endpoint host reports. Empty on any failure."""
        async with self._client() as client:
            try:
                resp = await client.get(self._tags_url())
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Model listing failed: {e}")
                return []
        if not isinstance(data, dict):
            return []
        return [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]

    async def check_model_available(self, model: Optional[str] = None) -> bool:
        wanted = model or self.config.model
        return any(wanted in name for name in await self.list_models())
