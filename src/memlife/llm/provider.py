"""LiteLLM-backed completion client for the consolidation scorer.

The model name picks the provider; credentials come from
``<PREFIX>_API_KEY`` and ``<PREFIX>_BASE_URL`` (or ``_API_BASE``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
import litellm
from litellm import acompletion

load_dotenv()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    model_prefixes: tuple[str, ...]
    env_prefix: str
    route_prefix: str = ""        # Prepended for LiteLLM routing
    needs_key: bool = True


PROVIDERS = (
    ProviderSpec("openai", ("gpt-", "o1-", "o3-", "o4-"), "OPENAI"),
    ProviderSpec("anthropic", ("claude-",), "ANTHROPIC"),
    ProviderSpec("google", ("gemini-",), "GOOGLE"),
    # DashScope speaks the OpenAI protocol
    ProviderSpec("dashscope", ("qwen-", "qwen/", "qwen2", "qwen3"), "DASHSCOPE", route_prefix="openai/"),
    ProviderSpec("deepseek", ("deepseek-", "deepseek/"), "DEEPSEEK"),
    ProviderSpec("ollama", ("ollama/",), "OLLAMA", needs_key=False),
)

DEFAULT_PROVIDER = PROVIDERS[0]


def detect_provider(model: str) -> ProviderSpec:
    """Provider for a model name; unknown models are treated as OpenAI-compatible."""
    lowered = model.lower()
    for spec in PROVIDERS:
        if lowered.startswith(spec.model_prefixes):
            return spec
    return DEFAULT_PROVIDER


@dataclass
class LLMConfig:
    """Scorer model settings. Low temperature keeps verdicts stable between passes."""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 2048
    json_mode: bool = True          # Ask for a JSON object where the provider supports it

    api_key: str | None = None
    api_base: str | None = None

    # LiteLLM-level settings; ScorerClient applies its own timeout and backoff on top
    num_retries: int = 1
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> LLMConfig:
        return cls(model=os.getenv("MODEL") or cls.model)


@dataclass
class LLMResponse:
    content: str | None = None
    finish_reason: str = "stop"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class UsageTotals:
    """Token usage accumulated over the provider's lifetime."""
    calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def add(self, response: LLMResponse) -> None:
        self.calls += 1
        self.prompt_tokens += response.prompt_tokens
        self.completion_tokens += response.completion_tokens

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class LLMProvider:
    """Completion client used by ``create_llm_scorer``.

    Example:
        llm = LLMProvider(LLMConfig(model="deepseek-chat"))
        if llm.has_credentials:
            scorer = create_llm_scorer(llm.complete)
    """
    config: LLMConfig = field(default_factory=LLMConfig)
    usage: UsageTotals = field(default_factory=UsageTotals)

    def __post_init__(self) -> None:
        litellm.drop_params = True  # e.g. response_format on providers without JSON mode
        self.spec = detect_provider(self.config.model)
        env = self.spec.env_prefix
        self.api_key = self.config.api_key or os.getenv(f"{env}_API_KEY")
        self.api_base = (
            self.config.api_base
            or os.getenv(f"{env}_BASE_URL")
            or os.getenv(f"{env}_API_BASE")
        )

    @property
    def provider(self) -> str:
        return self.spec.name

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or not self.spec.needs_key

    @property
    def routed_model(self) -> str:
        model = self.config.model
        prefix = self.spec.route_prefix
        return model if not prefix or model.startswith(prefix) else prefix + model

    def request_params(self, messages: list[dict]) -> dict:
        params = {
            "model": self.routed_model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": self.config.timeout,
            "num_retries": self.config.num_retries,
        }
        if self.config.json_mode:
            params["response_format"] = {"type": "json_object"}
        if self.api_base:
            params["api_base"] = self.api_base
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    async def complete(self, messages: list[dict]) -> LLMResponse:
        raw = await acompletion(**self.request_params(messages))

        choice = raw.choices[0]
        usage = getattr(raw, "usage", None)
        response = LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
        self.usage.add(response)

        if response.finish_reason == "length":
            logger.warning("[LLM] %s reply truncated at %d tokens", self.config.model, self.config.max_tokens)
        logger.debug(
            "[LLM] %s: %d prompt + %d completion tokens",
            self.config.model, response.prompt_tokens, response.completion_tokens,
        )
        return response

    def get_provider_info(self) -> dict:
        return {
            "provider": self.provider,
            "model": self.config.model,
            "api_base": self.api_base or "(default)",
            "api_key_set": bool(self.api_key),
        }
