"""
LLM Gateway over LiteLLM.

Uniform chat contract for every caller in the engine: streaming and
non-streaming completions, optional function-calling tools, and mapping of
provider failures onto the gateway error taxonomy. The gateway does not
retry; retry policy belongs to the callers.
"""

import asyncio
import os
import time
from pathlib import Path
from typing import Any, Optional

import litellm
import structlog
import yaml

from taskpilot.core.domain.cancellation import run_cancellable
from taskpilot.core.domain.errors import (
    AuthError,
    CancelledError,
    GatewayError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from taskpilot.core.interfaces.llm import (
    ChatResponse,
    StreamCallback,
    StreamDelta,
    ToolCall,
)
from taskpilot.infrastructure.llm.usage import UsageObserver

_ALLOWED_PARAMS = (
    "temperature",
    "top_p",
    "max_tokens",
    "frequency_penalty",
    "presence_penalty",
)


class LiteLLMGateway:
    """
    Chat-completion gateway configured from a YAML file.

    Args:
        config_path: Path to the LLM YAML configuration
        model: Model alias or litellm model name overriding ``default_model``
        usage_observer: Callback receiving ``(model, total_tokens)`` per call
    """

    def __init__(
        self,
        config_path: str = "configs/llm_config.yaml",
        model: Optional[str] = None,
        usage_observer: Optional[UsageObserver] = None,
    ):
        self.logger = structlog.get_logger().bind(component="llm_gateway")
        self._load_config(config_path)
        self.model_alias = model or self.default_model
        self.usage_observer = usage_observer
        self.model = self._resolve_model(self.model_alias)

        provider, settings = self._provider_for(self.model)
        api_key_env = settings.get("api_key_env")
        if api_key_env and not os.getenv(api_key_env):
            self.logger.warning(
                "api_key_missing",
                provider=provider,
                env_var=api_key_env,
                hint="Set environment variable for API access",
            )
        self.logger.info(
            "llm_gateway_initialized", model=self.model, provider=provider
        )

    def _load_config(self, config_path: str) -> None:
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is empty or defines no models
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"LLM config not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        self.default_model = config.get("default_model", "main")
        self.models = config.get("models", {})
        self.default_params = config.get("default_params", {})
        self.model_params = config.get("model_params", {})
        self.request_timeout = config.get("request_timeout", 120)
        self.provider_config = config.get("providers", {})
        self.logging_config = config.get("logging", {})

        if not self.models:
            raise ValueError("Config must define at least one model in 'models' section")

    def _resolve_model(self, model_alias: str) -> str:
        resolved = self.models.get(model_alias, model_alias)
        if self.logging_config.get("log_model_resolution", False):
            self.logger.info("model_resolved", model_alias=model_alias, resolved_model=resolved)
        return resolved

    def _provider_for(self, model: str) -> tuple[str, dict[str, Any]]:
        """Provider settings keyed by the litellm model prefix, default openai."""
        prefix = model.split("/", 1)[0] if "/" in model else "openai"
        if prefix in self.provider_config:
            return prefix, self.provider_config[prefix] or {}
        return prefix, {}

    def _get_model_parameters(self, model: str) -> dict[str, Any]:
        if model in self.model_params:
            params = self.model_params[model]
        else:
            params = next(
                (p for key, p in self.model_params.items() if model.startswith(key)),
                self.default_params,
            )
        return {k: v for k, v in (params or {}).items() if k in _ALLOWED_PARAMS}

    def _build_request(
        self,
        history: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]],
        stream: bool,
    ) -> dict[str, Any]:
        provider, settings = self._provider_for(self.model)
        request: dict[str, Any] = {
            "model": self.model,
            "messages": history,
            "timeout": self.request_timeout,
            **self._get_model_parameters(self.model),
        }

        api_key_env = settings.get("api_key_env")
        if api_key_env:
            api_key = os.getenv(api_key_env)
            if not api_key:
                raise AuthError(
                    f"Missing API key for provider '{provider}': set {api_key_env}",
                    provider=provider,
                )
            request["api_key"] = api_key
        if settings.get("api_base"):
            request["api_base"] = settings["api_base"]

        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"
        if stream:
            request["stream"] = True
            request["stream_options"] = {"include_usage": True}
        return request

    async def chat(
        self,
        history: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        on_stream_delta: Optional[StreamCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChatResponse:
        """
        Send ``history`` to the model and return the assistant turn.

        Args:
            history: Role-tagged messages
            tools: Function-calling schemas; enables tool_choice="auto"
            on_stream_delta: If given, the call streams and this callback
                receives the cumulative text after each chunk
            cancel_event: Aborts the in-flight call when set

        Raises:
            AuthError, RateLimitError, ServerError, NetworkError: Provider failures
            CancelledError: The cancel event was set
        """
        stream = on_stream_delta is not None
        request = self._build_request(history, tools, stream)
        start_time = time.time()
        self.logger.info(
            "llm_completion_started",
            model=self.model,
            message_count=len(history),
            tools=len(tools or []),
            stream=stream,
        )

        try:
            if stream:
                response = await run_cancellable(
                    self._stream(request, on_stream_delta),
                    cancel_event,
                    "Model request cancelled",
                )
            else:
                raw = await run_cancellable(
                    litellm.acompletion(**request),
                    cancel_event,
                    "Model request cancelled",
                )
                response = self._parse_response(raw)
        except CancelledError:
            self.logger.info("llm_completion_cancelled", model=self.model)
            raise
        except GatewayError:
            raise
        except Exception as e:
            error = self._map_exception(e)
            self.logger.error(
                "llm_completion_failed",
                model=self.model,
                error_type=type(e).__name__,
                mapped_error=type(error).__name__,
                error=str(e)[:200],
            )
            raise error from e

        latency_ms = int((time.time() - start_time) * 1000)
        if self.logging_config.get("log_token_usage", True):
            self.logger.info(
                "llm_completion_success",
                model=response.model,
                tokens=response.total_tokens,
                tool_calls=len(response.tool_calls),
                latency_ms=latency_ms,
            )
        self._report_usage(response)
        return response

    def _parse_response(self, raw: Any) -> ChatResponse:
        message = raw.choices[0].message
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (getattr(message, "tool_calls", None) or [])
        ]
        reasoning = getattr(message, "reasoning_content", None)
        return ChatResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            reasoning=reasoning if isinstance(reasoning, str) else "",
            total_tokens=self._total_tokens(getattr(raw, "usage", None)),
            model=getattr(raw, "model", None) or self.model,
        )

    async def _stream(
        self, request: dict[str, Any], on_stream_delta: StreamCallback
    ) -> ChatResponse:
        """Consume a streaming completion, concatenating deltas."""
        content = ""
        reasoning = ""
        total_tokens = 0
        partial_calls: dict[int, dict[str, str]] = {}

        stream = await litellm.acompletion(**request)
        async for chunk in stream:
            usage_tokens = self._total_tokens(getattr(chunk, "usage", None))
            if usage_tokens:
                total_tokens = usage_tokens
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta

            text = getattr(delta, "content", None)
            thinking = getattr(delta, "reasoning_content", None)
            if isinstance(text, str) and text:
                content += text
            if isinstance(thinking, str) and thinking:
                reasoning += thinking

            for call in getattr(delta, "tool_calls", None) or []:
                entry = partial_calls.setdefault(
                    call.index or 0, {"id": "", "name": "", "arguments": ""}
                )
                if call.id:
                    entry["id"] = call.id
                if call.function and call.function.name:
                    entry["name"] = call.function.name
                if call.function and call.function.arguments:
                    entry["arguments"] += call.function.arguments

            if (isinstance(text, str) and text) or (isinstance(thinking, str) and thinking):
                try:
                    on_stream_delta(StreamDelta(content=content, reasoning=reasoning))
                except Exception as e:
                    self.logger.warning("stream_callback_failed", error=str(e))

        return ChatResponse(
            content=content,
            tool_calls=[
                ToolCall(id=c["id"], name=c["name"], arguments=c["arguments"] or "{}")
                for _, c in sorted(partial_calls.items())
            ],
            reasoning=reasoning,
            total_tokens=total_tokens,
            model=self.model,
        )

    @staticmethod
    def _total_tokens(usage: Any) -> int:
        if usage is None:
            return 0
        value = usage.get("total_tokens", 0) if isinstance(usage, dict) else getattr(usage, "total_tokens", 0)
        return value if isinstance(value, int) else 0

    def _report_usage(self, response: ChatResponse) -> None:
        if self.usage_observer is None or not response.total_tokens:
            return
        try:
            self.usage_observer(response.model, response.total_tokens)
        except Exception as e:
            self.logger.warning("usage_observer_failed", error=str(e))

    def _map_exception(self, error: Exception) -> GatewayError:
        """Translate a litellm/provider exception into the gateway taxonomy."""
        provider = getattr(error, "llm_provider", None)
        message = str(error) or type(error).__name__

        if isinstance(error, litellm.AuthenticationError):
            return AuthError(f"Authentication failed: {message}", provider=provider)
        if isinstance(error, litellm.RateLimitError):
            return RateLimitError(f"Rate limit exceeded: {message}", provider=provider)
        if isinstance(error, (litellm.Timeout, litellm.APIConnectionError)):
            return NetworkError(f"Network error: {message}", provider=provider)
        if isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError)):
            return NetworkError(f"Network error: {message}", provider=provider)

        status = getattr(error, "status_code", None)
        if isinstance(status, int):
            if status in (401, 403):
                return AuthError(f"Authentication failed: {message}", provider=provider)
            if status == 429:
                return RateLimitError(f"Rate limit exceeded: {message}", provider=provider)
            if status >= 500:
                return ServerError(
                    f"Provider server error ({status}): {message}",
                    provider=provider,
                    status_code=status,
                )
        return GatewayError(f"Model request failed: {message}", provider=provider)
