"""LLM Provider abstraction for supporting multiple LLM backends.

To add a new LLM module:
1. Implement a class that subclasses LLMProvider and implements generate().
2. Call register_provider("name", factory) where factory is a callable (config_dict) -> LLMProvider.
3. Set LLM_PROVIDER=name in the environment.
"""
from abc import ABC, abstractmethod
from typing import Callable, Dict, Any
import asyncio
import logging

logger = logging.getLogger(__name__)

# Registry: provider name -> factory(config: dict) -> LLMProvider
_PROVIDER_REGISTRY: Dict[str, Callable[[Dict[str, Any]], "LLMProvider"]] = {}


class LLMTimeoutError(Exception):
    """An LLM call did not complete within its time budget."""


def register_provider(name: str, factory: Callable[[Dict[str, Any]], "LLMProvider"]) -> None:
    """Register an LLM provider. factory(config_dict) must return an LLMProvider instance."""
    name = (name or "").lower().strip()
    if not name:
        raise ValueError("Provider name must be non-empty")
    _PROVIDER_REGISTRY[name] = factory


def list_providers() -> list[str]:
    """Return registered provider names."""
    return sorted(_PROVIDER_REGISTRY.keys())


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate complete LLM response (non-streaming)."""
        pass


async def generate_with_timeout(provider: LLMProvider, prompt: str, timeout: float | None, **kwargs) -> str:
    """Run provider.generate bounded by *timeout* seconds (None = unbounded).

    Raises LLMTimeoutError instead of hanging the request; provider errors propagate unchanged.
    """
    if timeout is None:
        return await provider.generate(prompt, **kwargs)
    try:
        return await asyncio.wait_for(provider.generate(prompt, **kwargs), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("LLM call timed out after %.1fs", timeout)
        raise LLMTimeoutError(f"LLM call exceeded {timeout}s") from None


def _gemini_generate_sync(client, model_name: str, prompt: str, gen_config: dict) -> str:
    """Blocking Gemini API call. Run via asyncio.to_thread to avoid blocking the event loop."""
    response = client.models.generate_content(model=model_name, contents=prompt, config=gen_config)
    return response.text or ""


class GeminiProvider(LLMProvider):
    """Gemini via API key (google-genai). Sync SDK calls run off the event loop."""

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        if not api_key:
            raise ValueError("Gemini provider requires an API key (GEMINI_API_KEY)")
        from google import genai
        self.client = genai.Client(api_key=api_key)
        self.model_name = model

    def _generation_config(self, **kwargs) -> dict:
        return {"temperature": 0.1, **kwargs}

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate complete response from Gemini. Sync call runs in a thread."""
        gen_config = self._generation_config(**kwargs)
        return await asyncio.to_thread(_gemini_generate_sync, self.client, self.model_name, prompt, gen_config)


def _vertex_generate_sync(model_name: str, prompt: str, gen_config: dict) -> str:
    """Blocking Vertex AI (Gemini) generate. Run via asyncio.to_thread to avoid blocking the event loop."""
    from vertexai.generative_models import GenerativeModel
    model = GenerativeModel(model_name)
    response = model.generate_content(prompt, generation_config=gen_config)
    return response.text or ""


class VertexAIProvider(LLMProvider):
    """Vertex AI (Gemini) provider for GCP deployments. Sync SDK calls run off the event loop."""

    def __init__(self, project_id: str, location: str = "us-central1", model: str = "gemini-2.0-flash"):
        try:
            import vertexai
            vertexai.init(project=project_id, location=location)
            self.model_name = model
        except ImportError:
            raise ImportError("google-cloud-aiplatform is required for Vertex AI provider. Install with: pip install -e \".[vertex]\"")
        except Exception as e:
            raise Exception(f"Failed to initialize Vertex AI: {str(e)}")

    def _generation_config(self, **kwargs) -> dict:
        return {"temperature": 0.1, **kwargs}

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate complete response from Vertex AI (Gemini). Sync call runs in a thread."""
        gen_config = self._generation_config(**kwargs)
        return await asyncio.to_thread(_vertex_generate_sync, self.model_name, prompt, gen_config)


def _gemini_factory(config: Dict[str, Any]) -> "LLMProvider":
    """Build GeminiProvider from config dict (for registry)."""
    gemini = config.get("gemini") or {}
    from eop_assistant.config import GEMINI_API_KEY, GEMINI_MODEL
    api_key = gemini.get("api_key") or GEMINI_API_KEY
    model = config.get("model") or GEMINI_MODEL
    return GeminiProvider(api_key=api_key, model=model)


def _vertex_factory(config: Dict[str, Any]) -> "LLMProvider":
    """Build VertexAIProvider from config dict (for registry)."""
    vertex = config.get("vertex") or {}
    from eop_assistant.config import VERTEX_PROJECT_ID, VERTEX_LOCATION, VERTEX_MODEL
    project_id = vertex.get("project_id") or VERTEX_PROJECT_ID
    if not project_id:
        raise ValueError("Vertex AI requires project_id (vertex.project_id or VERTEX_PROJECT_ID)")
    location = vertex.get("location") or VERTEX_LOCATION
    model = config.get("model") or VERTEX_MODEL
    return VertexAIProvider(project_id=project_id, location=location, model=model)


class UnavailableLLMProvider(LLMProvider):
    """Stands in when the configured provider cannot be built; every call fails so callers use their fallbacks."""

    def __init__(self, reason: str):
        self.reason = reason

    async def generate(self, prompt: str, **kwargs) -> str:
        raise RuntimeError(f"LLM provider unavailable: {self.reason}")


register_provider("gemini", _gemini_factory)
register_provider("vertex", _vertex_factory)


def get_llm_provider() -> LLMProvider:
    """Get LLM provider based on environment configuration (config.py)."""
    from eop_assistant.config import (
        LLM_PROVIDER,
        GEMINI_API_KEY,
        GEMINI_MODEL,
        VERTEX_PROJECT_ID,
        VERTEX_LOCATION,
        VERTEX_MODEL,
    )
    cfg = {
        "provider": LLM_PROVIDER,
        "model": GEMINI_MODEL if LLM_PROVIDER == "gemini" else VERTEX_MODEL,
        "gemini": {"api_key": GEMINI_API_KEY},
        "vertex": {"project_id": VERTEX_PROJECT_ID, "location": VERTEX_LOCATION},
    }
    provider_name = (LLM_PROVIDER or "").lower()
    factory = _PROVIDER_REGISTRY.get(provider_name)
    if factory:
        return factory(cfg)
    raise ValueError(f"Unknown LLM provider: {LLM_PROVIDER}. Registered: {list_providers()}")


def get_llm_provider_or_unavailable() -> LLMProvider:
    """Like get_llm_provider, but a misconfigured provider degrades to UnavailableLLMProvider instead of failing requests."""
    try:
        return get_llm_provider()
    except Exception as e:
        logger.error("LLM provider could not be initialised, running degraded: %s", e)
        return UnavailableLLMProvider(str(e))
