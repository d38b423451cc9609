"""LLM model configuration, factory and the chat client used by planning.

Provider routing is done via model name prefix:
  - "ollama:<model>"  → local Ollama  (e.g. "ollama:llama3.1:70b")
  - "claude-*"        → Anthropic API
  - anything else     → OpenAI API   (e.g. "gpt-4o", "gpt-4o-mini")

Set PLANNER_MODEL and CLARIFIER_MODEL in .env to choose freely.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, Literal, Protocol, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger("agents.models")

AgentRole = Literal["planner", "clarifier"]

PROMPTS_DIR = Path(__file__).parent / "prompts"


# ---------------------------------------------------------------------------
# Provider detection
# ---------------------------------------------------------------------------

def _is_ollama_model(model_name: str) -> bool:
    """Models prefixed with 'ollama:' are served by local Ollama."""
    return model_name.lower().startswith("ollama:")


def _is_anthropic_model(model_name: str) -> bool:
    """Anthropic models contain 'claude' in their name."""
    return "claude" in model_name.lower()


def _strip_ollama_prefix(model_name: str) -> str:
    return model_name[len("ollama:"):]


# ---------------------------------------------------------------------------
# LLM constructors
# ---------------------------------------------------------------------------

def _make_ollama(model: str, base_url: str, temperature: float, max_tokens: int) -> BaseChatModel:
    """Create a ChatOllama instance. langchain-ollama must be installed."""
    try:
        from langchain_ollama import ChatOllama  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError(
            "langchain-ollama is not installed. Run: pip install langchain-ollama"
        ) from exc

    bare_model = _strip_ollama_prefix(model)
    logger.info("Using Ollama model '%s' at %s", bare_model, base_url)
    return ChatOllama(model=bare_model, base_url=base_url, temperature=temperature, num_predict=max_tokens)


def _make_anthropic(model: str, api_key: str, temperature: float, max_tokens: int) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    logger.info("Using Anthropic model '%s'", model)
    return ChatAnthropic(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens)


def _make_openai(model: str, api_key: str, temperature: float, max_tokens: int) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    logger.info("Using OpenAI model '%s'", model)
    return ChatOpenAI(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens)


def _require_key(role: AgentRole, model: str, api_key: str, env_name: str) -> str:
    key = (api_key or "").strip()
    if key:
        return key
    raise ValueError(
        f"Missing {env_name} for role '{role}' with model '{model}'. "
        f"Set {env_name} in .env or switch provider via the model name."
    )


def _build_for_model(
    role: AgentRole,
    model: str,
    temperature: float,
    max_tokens: int,
) -> BaseChatModel:
    """Build an LLM for *any* supported provider based on the model string."""
    settings = get_settings()
    if _is_ollama_model(model):
        return _make_ollama(model, settings.ollama_base_url, temperature, max_tokens)

    if _is_anthropic_model(model):
        key = _require_key(role, model, settings.anthropic_api_key, "ANTHROPIC_API_KEY")
        return _make_anthropic(model, key, temperature, max_tokens)

    # Default: OpenAI-compatible
    key = _require_key(role, model, settings.openai_api_key, "OPENAI_API_KEY")
    return _make_openai(model, key, temperature, max_tokens)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_llm(role: AgentRole, temperature: float | None = None, max_tokens: int | None = None) -> BaseChatModel:
    """Create an LLM instance for the given role.

    Sampling defaults come from settings; callers may override per request.
    """
    settings = get_settings()

    if role == "planner":
        return _build_for_model(
            role,
            settings.planner_model,
            settings.planner_temperature if temperature is None else temperature,
            settings.planner_max_tokens if max_tokens is None else max_tokens,
        )

    if role == "clarifier":
        return _build_for_model(
            role,
            settings.clarifier_model,
            settings.clarifier_temperature if temperature is None else temperature,
            settings.clarifier_max_tokens if max_tokens is None else max_tokens,
        )

    raise ValueError(f"Unknown agent role: {role}")


def load_system_prompt(name: str) -> str:
    """Load a system prompt file from ``app/agents/prompts``."""
    _DIRECT: dict[str, str] = {
        "planner": "planner.txt",
        "planner_strict": "planner_strict.txt",
        "clarifier": "clarifier.txt",
    }
    if name not in _DIRECT:
        raise ValueError(f"Unknown system prompt: {name!r}")
    prompt_file = PROMPTS_DIR / _DIRECT[name]
    if not prompt_file.exists():
        raise FileNotFoundError(f"System prompt not found: {prompt_file}")
    return prompt_file.read_text(encoding="utf-8").strip()


# ---------------------------------------------------------------------------
# Language-model client
# ---------------------------------------------------------------------------

class GenerationOptions(BaseModel):
    """Sampling parameters plus opaque tracing tags for one request."""
    role: AgentRole = "planner"
    max_tokens: int | None = None
    temperature: float | None = None
    phase: str = ""
    request_type: str = ""
    extra: dict[str, Any] = Field(default_factory=dict)

    def tracing_config(self) -> dict[str, Any]:
        tags = [tag for tag in (self.phase, self.request_type) if tag]
        metadata = {"phase": self.phase, "request_type": self.request_type, **self.extra}
        return {"tags": tags, "metadata": metadata, "run_name": self.request_type or self.role}


@runtime_checkable
class LanguageModelClient(Protocol):
    """Anything that turns a role/content message list into raw reply text."""

    def generate_response(
        self,
        messages: Sequence[Mapping[str, str]],
        options: GenerationOptions,
    ) -> str: ...


def to_langchain_messages(messages: Sequence[Mapping[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role", "user")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


def response_text(content: Any) -> str:
    """Flatten a chat response's content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, Mapping) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return str(content or "")


class ChatModelClient:
    """:class:`LanguageModelClient` backed by a LangChain chat model."""

    def __init__(self, llm_factory: Callable[..., BaseChatModel] = get_llm) -> None:
        self._llm_factory = llm_factory

    def generate_response(
        self,
        messages: Sequence[Mapping[str, str]],
        options: GenerationOptions,
    ) -> str:
        llm = self._llm_factory(options.role, temperature=options.temperature, max_tokens=options.max_tokens)
        response = llm.invoke(to_langchain_messages(messages), config=options.tracing_config())
        text = response_text(response.content)
        logger.debug("%s reply: %d chars", options.request_type or options.role, len(text))
        return text
