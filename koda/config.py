"""Configuration loading for agents and runtime settings."""

from __future__ import annotations

import dataclasses
import enum
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

__all__ = [
    "ProviderType",
    "ModelSettings",
    "AgentConfig",
    "ConfigError",
    "KodaConfig",
    "find_agents_dir",
    "user_agents_dir",
]

DEFAULT_MAX_CONTEXT_TOKENS = 32_000
DEFAULT_AUTO_COMPACT_THRESHOLD = 80
_FALLBACK_URL = "http://localhost:1234/v1"


class ConfigError(Exception):
    """Raised when an agent configuration cannot be found or parsed."""


class ProviderType(enum.Enum):
    """Supported LLM providers; the value is the display name."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LMSTUDIO = "lm-studio"
    GEMINI = "gemini"
    GROQ = "groq"
    GROK = "grok"
    OLLAMA = "ollama"
    DEEPSEEK = "deepseek"
    MISTRAL = "mistral"
    MINIMAX = "minimax"
    OPENROUTER = "openrouter"
    TOGETHER = "together"
    FIREWORKS = "fireworks"
    VLLM = "vllm"

    def __str__(self) -> str:
        return self.value

    def requires_api_key(self) -> bool:
        """True unless the provider is a local server."""
        return self not in (ProviderType.LMSTUDIO, ProviderType.OLLAMA, ProviderType.VLLM)

    @classmethod
    def from_url_or_name(cls, url: str, name: str | None = None) -> ProviderType:
        """Detect the provider from an explicit name, or else from a base URL."""
        if name is not None:
            return _NAME_ALIASES.get(name.lower(), cls.OPENAI)
        lowered = url.lower()
        for needles, provider in _URL_RULES:
            if any(needle in lowered for needle in needles):
                return provider
        return cls.OPENAI

    def default_base_url(self) -> str:
        return _DEFAULT_URLS[self]

    def default_model(self) -> str:
        return _DEFAULT_MODELS[self]

    def env_key_name(self) -> str:
        """Name of the environment variable holding this provider's API key."""
        return _ENV_KEYS[self]


_NAME_ALIASES: dict[str, ProviderType] = {
    "anthropic": ProviderType.ANTHROPIC,
    "claude": ProviderType.ANTHROPIC,
    "gemini": ProviderType.GEMINI,
    "google": ProviderType.GEMINI,
    "groq": ProviderType.GROQ,
    "grok": ProviderType.GROK,
    "xai": ProviderType.GROK,
    "lmstudio": ProviderType.LMSTUDIO,
    "lm-studio": ProviderType.LMSTUDIO,
    "ollama": ProviderType.OLLAMA,
    "deepseek": ProviderType.DEEPSEEK,
    "mistral": ProviderType.MISTRAL,
    "minimax": ProviderType.MINIMAX,
    "openrouter": ProviderType.OPENROUTER,
    "together": ProviderType.TOGETHER,
    "fireworks": ProviderType.FIREWORKS,
    "vllm": ProviderType.VLLM,
}

# Checked in order: the first rule with a matching substring wins.
_URL_RULES: tuple[tuple[tuple[str, ...], ProviderType], ...] = (
    (("anthropic.com",), ProviderType.ANTHROPIC),
    (("localhost:11434", "127.0.0.1:11434"), ProviderType.OLLAMA),
    (("localhost:8000", "127.0.0.1:8000"), ProviderType.VLLM),
    (("localhost", "127.0.0.1"), ProviderType.LMSTUDIO),
    (("generativelanguage.googleapis.com",), ProviderType.GEMINI),
    (("groq.com",), ProviderType.GROQ),
    (("x.ai",), ProviderType.GROK),
    (("deepseek.com",), ProviderType.DEEPSEEK),
    (("mistral.ai",), ProviderType.MISTRAL),
    (("minimax.chat", "minimaxi.com"), ProviderType.MINIMAX),
    (("openrouter.ai",), ProviderType.OPENROUTER),
    (("together.xyz",), ProviderType.TOGETHER),
    (("fireworks.ai",), ProviderType.FIREWORKS),
)

_DEFAULT_URLS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "https://api.openai.com/v1",
    ProviderType.ANTHROPIC: "https://api.anthropic.com",
    ProviderType.LMSTUDIO: "http://localhost:1234/v1",
    ProviderType.GEMINI: "https://generativelanguage.googleapis.com",
    ProviderType.GROQ: "https://api.groq.com/openai/v1",
    ProviderType.GROK: "https://api.x.ai/v1",
    ProviderType.OLLAMA: "http://localhost:11434/v1",
    ProviderType.DEEPSEEK: "https://api.deepseek.com/v1",
    ProviderType.MISTRAL: "https://api.mistral.ai/v1",
    ProviderType.MINIMAX: "https://api.minimax.chat/v1",
    ProviderType.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderType.TOGETHER: "https://api.together.xyz/v1",
    ProviderType.FIREWORKS: "https://api.fireworks.ai/inference/v1",
    ProviderType.VLLM: "http://localhost:8000/v1",
}

_DEFAULT_MODELS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "gpt-4o",
    ProviderType.ANTHROPIC: "claude-sonnet-4-6",
    ProviderType.LMSTUDIO: "auto-detect",
    ProviderType.GEMINI: "gemini-2.0-flash",
    ProviderType.GROQ: "llama-3.3-70b-versatile",
    ProviderType.GROK: "grok-3",
    ProviderType.OLLAMA: "auto-detect",
    ProviderType.DEEPSEEK: "deepseek-chat",
    ProviderType.MISTRAL: "mistral-large-latest",
    ProviderType.MINIMAX: "minimax-text-01",
    ProviderType.OPENROUTER: "anthropic/claude-3.5-sonnet",
    ProviderType.TOGETHER: "meta-llama/Llama-3.3-70B-Instruct-Turbo",
    ProviderType.FIREWORKS: "accounts/fireworks/models/llama-v3p3-70b-instruct",
    ProviderType.VLLM: "auto-detect",
}

_ENV_KEYS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "OPENAI_API_KEY",
    ProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderType.LMSTUDIO: "KODA_API_KEY",
    ProviderType.GEMINI: "GEMINI_API_KEY",
    ProviderType.GROQ: "GROQ_API_KEY",
    ProviderType.GROK: "XAI_API_KEY",
    ProviderType.OLLAMA: "KODA_API_KEY",
    ProviderType.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderType.MISTRAL: "MISTRAL_API_KEY",
    ProviderType.MINIMAX: "MINIMAX_API_KEY",
    ProviderType.OPENROUTER: "OPENROUTER_API_KEY",
    ProviderType.TOGETHER: "TOGETHER_API_KEY",
    ProviderType.FIREWORKS: "FIREWORKS_API_KEY",
    ProviderType.VLLM: "KODA_API_KEY",
}


@dataclass
class ModelSettings:
    """Model-specific settings that control LLM behaviour."""

    model: str
    max_tokens: int | None = None
    temperature: float | None = None
    thinking_budget: int | None = None
    reasoning_effort: str | None = None
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS

    @classmethod
    def defaults_for(cls, model: str, provider: ProviderType) -> ModelSettings:
        """Settings with provider-appropriate defaults."""
        max_tokens = 16384 if provider is ProviderType.ANTHROPIC else None
        return cls(model=model, max_tokens=max_tokens)


def _optional(data: Mapping[str, Any], key: str, kinds: tuple[type, ...]) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) and bool not in kinds:
        raise ConfigError(f"'{key}' has the wrong type")
    if not isinstance(value, kinds):
        raise ConfigError(f"'{key}' has the wrong type")
    return value


@dataclass
class AgentConfig:
    """An agent definition as stored in JSON."""

    name: str
    system_prompt: str
    allowed_tools: list[str] = field(default_factory=list)
    model: str | None = None
    base_url: str | None = None
    provider: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    thinking_budget: int | None = None
    reasoning_effort: str | None = None
    max_context_tokens: int | None = None
    max_iterations: int | None = None
    auto_compact_threshold: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AgentConfig:
        """Build from a parsed JSON object; unknown keys are ignored."""
        if not isinstance(data, Mapping):
            raise ConfigError("agent config must be a JSON object")
        for key in ("name", "system_prompt"):
            if not isinstance(data.get(key), str):
                raise ConfigError(f"missing or invalid field '{key}'")
        tools = data.get("allowed_tools") or []
        if not isinstance(tools, list) or not all(isinstance(t, str) for t in tools):
            raise ConfigError("'allowed_tools' must be a list of strings")
        temperature = _optional(data, "temperature", (int, float))
        return cls(
            name=data["name"],
            system_prompt=data["system_prompt"],
            allowed_tools=list(tools),
            model=_optional(data, "model", (str,)),
            base_url=_optional(data, "base_url", (str,)),
            provider=_optional(data, "provider", (str,)),
            max_tokens=_optional(data, "max_tokens", (int,)),
            temperature=None if temperature is None else float(temperature),
            thinking_budget=_optional(data, "thinking_budget", (int,)),
            reasoning_effort=_optional(data, "reasoning_effort", (str,)),
            max_context_tokens=_optional(data, "max_context_tokens", (int,)),
            max_iterations=_optional(data, "max_iterations", (int,)),
            auto_compact_threshold=_optional(data, "auto_compact_threshold", (int,)),
        )

    @classmethod
    def from_json(cls, text: str) -> AgentConfig:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"invalid JSON: {exc}") from exc
        return cls.from_dict(data)


def user_agents_dir() -> Path:
    """The user-level agents directory (``~/.config/koda/agents``)."""
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or "."
    return Path(home) / ".config" / "koda" / "agents"


def find_agents_dir(project_root: str | os.PathLike[str]) -> Path | None:
    """Return the project ``agents/`` directory, else the user one, else None."""
    local = Path(project_root) / "agents"
    if local.is_dir():
        return local
    user_dir = user_agents_dir()
    if user_dir.is_dir():
        return user_dir
    return None


@dataclass
class KodaConfig:
    """Runtime configuration assembled from agent JSON, environment and CLI."""

    agent_name: str
    system_prompt: str
    allowed_tools: list[str]
    provider_type: ProviderType
    base_url: str
    model: str
    max_context_tokens: int
    agents_dir: Path
    model_settings: ModelSettings
    # None means: use the loop guard's own default.
    max_iterations: int | None = None
    # Context usage percentage (0-100) that triggers auto-compact; 0 disables it.
    auto_compact_threshold: int = DEFAULT_AUTO_COMPACT_THRESHOLD

    @classmethod
    def load(cls, project_root: str | os.PathLike[str], agent_name: str) -> KodaConfig:
        """Load the named agent from the project or user agents directory."""
        agents_dir = find_agents_dir(project_root) or Path("agents")
        agent_file = agents_dir / f"{agent_name}.json"
        if not agent_file.exists():
            raise ConfigError(f"Agent '{agent_name}' not found in {agents_dir}")
        try:
            text = agent_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"Failed to read agent config {agent_file}: {exc}") from exc
        try:
            agent = AgentConfig.from_json(text)
        except ConfigError as exc:
            raise ConfigError(f"Failed to parse agent config {agent_file}: {exc}") from exc

        detect_url = agent.base_url if agent.base_url is not None else _FALLBACK_URL
        provider_type = ProviderType.from_url_or_name(detect_url, agent.provider)

        base_url = agent.base_url
        if base_url is None and not provider_type.requires_api_key():
            base_url = os.environ.get("KODA_LOCAL_URL")
        if base_url is None:
            base_url = provider_type.default_base_url()

        model = agent.model if agent.model is not None else provider_type.default_model()
        max_context_tokens = (
            agent.max_context_tokens
            if agent.max_context_tokens is not None
            else DEFAULT_MAX_CONTEXT_TOKENS
        )

        settings = ModelSettings.defaults_for(model, provider_type)
        settings.max_context_tokens = max_context_tokens
        if agent.max_tokens is not None:
            settings.max_tokens = agent.max_tokens
        if agent.temperature is not None:
            settings.temperature = agent.temperature
        if agent.thinking_budget is not None:
            settings.thinking_budget = agent.thinking_budget
        if agent.reasoning_effort is not None:
            settings.reasoning_effort = agent.reasoning_effort

        threshold = (
            agent.auto_compact_threshold
            if agent.auto_compact_threshold is not None
            else DEFAULT_AUTO_COMPACT_THRESHOLD
        )
        return cls(
            agent_name=agent.name,
            system_prompt=agent.system_prompt,
            allowed_tools=agent.allowed_tools,
            provider_type=provider_type,
            base_url=base_url,
            model=model,
            max_context_tokens=max_context_tokens,
            agents_dir=agents_dir,
            model_settings=settings,
            max_iterations=agent.max_iterations,
            auto_compact_threshold=threshold,
        )

    @classmethod
    def for_provider(cls, provider_type: ProviderType) -> KodaConfig:
        """A minimal configuration using the provider's defaults."""
        model = provider_type.default_model()
        return cls(
            agent_name="default",
            system_prompt="",
            allowed_tools=[],
            provider_type=provider_type,
            base_url=provider_type.default_base_url(),
            model=model,
            max_context_tokens=DEFAULT_MAX_CONTEXT_TOKENS,
            agents_dir=Path("agents"),
            model_settings=ModelSettings.defaults_for(model, provider_type),
        )

    def _copy(self) -> KodaConfig:
        return dataclasses.replace(
            self,
            allowed_tools=list(self.allowed_tools),
            model_settings=dataclasses.replace(self.model_settings),
        )

    def with_overrides(
        self,
        base_url: str | None = None,
        model: str | None = None,
        provider: str | None = None,
    ) -> KodaConfig:
        """Return a copy with CLI/environment overrides applied."""
        config = self._copy()
        if base_url is not None:
            config.base_url = base_url
        if provider is not None:
            config.provider_type = ProviderType.from_url_or_name(config.base_url, provider)
        elif base_url is not None:
            config.provider_type = ProviderType.from_url_or_name(config.base_url)
        if model is not None:
            config.model = model
            config.model_settings.model = model
        return config

    def with_model_overrides(
        self,
        max_tokens: int | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
        reasoning_effort: str | None = None,
    ) -> KodaConfig:
        """Return a copy with model-setting overrides applied."""
        config = self._copy()
        settings = config.model_settings
        if max_tokens is not None:
            settings.max_tokens = max_tokens
        if temperature is not None:
            settings.temperature = temperature
        if thinking_budget is not None:
            settings.thinking_budget = thinking_budget
        if reasoning_effort is not None:
            settings.reasoning_effort = reasoning_effort
        return config