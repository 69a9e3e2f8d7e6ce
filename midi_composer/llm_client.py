from __future__ import annotations

import http.client
import json
import os
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, List, NamedTuple, Optional

try:
    from constants import (
        API_KEY_ENV_VARS,
        DEFAULT_BASE_URL,
        DEFAULT_LMSTUDIO_BASE_URL,
        DEFAULT_LOCAL_MODEL,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENAI_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_TEMPERATURE,
        HOSTED_PROVIDERS,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
        MAX_OUTPUT_TOKENS,
        PROVIDER_LMSTUDIO,
        PROVIDER_OLLAMA,
        PROVIDER_OPENAI,
        PROVIDER_OPENROUTER,
    )
    from errors import ConfigurationError, ExternalServiceError
    from logger_config import logger
    from models import ModelInfo
    from prompt_builder import build_chat_messages
except ImportError:
    from .constants import (
        API_KEY_ENV_VARS,
        DEFAULT_BASE_URL,
        DEFAULT_LMSTUDIO_BASE_URL,
        DEFAULT_LOCAL_MODEL,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENAI_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_TEMPERATURE,
        HOSTED_PROVIDERS,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
        MAX_OUTPUT_TOKENS,
        PROVIDER_LMSTUDIO,
        PROVIDER_OLLAMA,
        PROVIDER_OPENAI,
        PROVIDER_OPENROUTER,
    )
    from .errors import ConfigurationError, ExternalServiceError
    from .logger_config import logger
    from .models import ModelInfo
    from .prompt_builder import build_chat_messages

KNOWN_PROVIDERS = (PROVIDER_OPENAI, PROVIDER_OPENROUTER, PROVIDER_LMSTUDIO, PROVIDER_OLLAMA)

DEFAULT_BASE_URLS = {
    PROVIDER_OPENAI: DEFAULT_OPENAI_BASE_URL,
    PROVIDER_OPENROUTER: DEFAULT_OPENROUTER_BASE_URL,
    PROVIDER_LMSTUDIO: DEFAULT_LMSTUDIO_BASE_URL,
    PROVIDER_OLLAMA: DEFAULT_OLLAMA_BASE_URL,
}

# (system prompt, user prompt) -> raw response text
Generator = Callable[[str, str], str]


class ModelSettings(NamedTuple):
    provider: str
    model_name: str
    base_url: str
    temperature: float
    api_key: Optional[str]


def build_url(base_url: str, path: str) -> str:
    if base_url.endswith("/"):
        base = base_url[:-1]
    else:
        base = base_url
    if not path.startswith("/"):
        path = "/" + path
    return base + path


def is_local_url(url: str) -> bool:
    try:
        host = urllib.parse.urlparse(url).hostname
    except ValueError:
        return False
    if not host:
        return False
    return host in LOCAL_HOSTS or host.startswith("127.")


def read_json_response(resp: Any) -> Dict[str, Any]:
    raw = resp.read().decode("utf-8")
    return json.loads(raw)


def post_json(
    url: str,
    payload: Dict[str, Any],
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", **(headers or {})},
        method="POST",
    )
    try:
        if is_local_url(url):
            opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
            with opener.open(req, timeout=timeout) as resp:
                return read_json_response(resp)
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return read_json_response(resp)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        logger.error("LLM HTTP error: %s %s", exc.code, body)
        if exc.code == 429:
            raise ExternalServiceError(f"LLM quota or rate limit exceeded: {body}") from exc
        raise ExternalServiceError(f"LLM HTTP error: {exc.code} {body}") from exc
    except urllib.error.URLError as exc:
        logger.error("LLM connection error: %s", exc)
        raise ExternalServiceError(f"LLM connection error: {exc}") from exc
    except TimeoutError as exc:
        logger.error("LLM request timed out after %.0fs", timeout)
        raise ExternalServiceError(f"LLM request timed out after {timeout:.0f}s") from exc
    except json.JSONDecodeError as exc:
        logger.error("LLM invalid JSON envelope: %s", exc)
        raise ExternalServiceError(f"LLM returned invalid JSON: {exc}") from exc
    except (http.client.HTTPException, OSError, UnicodeDecodeError) as exc:
        # Truncated bodies, dropped connections and socket timeouts while reading.
        logger.error("LLM transport error: %r", exc)
        raise ExternalServiceError(f"LLM transport error: {exc!r}") from exc


def call_chat_completions(settings: ModelSettings, messages: List[Dict[str, str]]) -> str:
    url = build_url(settings.base_url, "/chat/completions")
    payload: Dict[str, Any] = {
        "model": settings.model_name,
        "messages": messages,
        "temperature": settings.temperature,
        "max_tokens": MAX_OUTPUT_TOKENS,
        "stream": False,
    }
    headers: Dict[str, str] = {}
    if settings.provider in HOSTED_PROVIDERS:
        payload["response_format"] = {"type": "json_object"}
    if settings.api_key:
        headers["Authorization"] = f"Bearer {settings.api_key}"
    if settings.provider == PROVIDER_OPENROUTER:
        headers["X-Title"] = "AI MIDI Composer"
    logger.info("Chat completions request: provider=%s url=%s model=%s", settings.provider, url, settings.model_name)
    response = post_json(url, payload, HTTP_TIMEOUT_SEC, headers)
    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        logger.error("LLM response missing content: %s", response)
        raise ExternalServiceError(f"{settings.provider} response missing content") from exc
    if not isinstance(content, str):
        raise ExternalServiceError(f"{settings.provider} response missing content")
    return content


def call_ollama(settings: ModelSettings, messages: List[Dict[str, str]]) -> str:
    url = build_url(settings.base_url, "/api/chat")
    payload = {
        "model": settings.model_name,
        "messages": messages,
        "format": "json",
        "options": {"temperature": settings.temperature, "num_predict": MAX_OUTPUT_TOKENS},
        "stream": False,
    }
    response = post_json(url, payload, HTTP_TIMEOUT_SEC)
    try:
        return response["message"]["content"]
    except (KeyError, TypeError) as exc:
        raise ExternalServiceError("Ollama response missing content") from exc


def extract_json_block(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    candidate = text[start : end + 1]
    return candidate.strip()


def strip_code_fences(text: str) -> str:
    fence_start = text.find("```")
    if fence_start == -1:
        return text
    fence_end = text.rfind("```")
    if fence_end == fence_start:
        return text
    inner = text[fence_start + 3 : fence_end]
    if inner.lstrip().startswith("json"):
        inner = inner.lstrip()[4:]
    return inner.strip()


def extract_first_json_object(text: str) -> Optional[str]:
    start = None
    depth = 0
    in_str = False
    escape = False
    for idx, ch in enumerate(text):
        if start is None:
            if ch == "{":
                start = idx
                depth = 1
            continue
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def parse_llm_json(content: str) -> Any:
    sanitized = strip_code_fences(content or "").strip()
    try:
        return json.loads(sanitized)
    except json.JSONDecodeError:
        first_obj = extract_first_json_object(sanitized)
        if first_obj:
            try:
                return json.loads(first_obj)
            except json.JSONDecodeError:
                pass
        extracted = extract_json_block(sanitized)
        if extracted:
            try:
                return json.loads(extracted)
            except json.JSONDecodeError as exc:
                raise ValueError("Invalid JSON from LLM") from exc
    raise ValueError("Invalid JSON from LLM")


def resolve_api_key(provider: str, explicit: Optional[str]) -> Optional[str]:
    if explicit:
        return explicit
    env_var = API_KEY_ENV_VARS.get(provider)
    if not env_var:
        return None
    return os.environ.get(env_var) or None


def resolve_model(model_info: Optional[ModelInfo] = None) -> ModelSettings:
    info = model_info or ModelInfo()
    provider = (info.provider or PROVIDER_OPENAI).strip().lower()
    if provider not in KNOWN_PROVIDERS:
        raise ConfigurationError(f"Unknown LLM provider: {provider}")

    model_name = info.model_name
    if not model_name:
        if provider == PROVIDER_OPENROUTER:
            model_name = DEFAULT_OPENROUTER_MODEL
        elif provider == PROVIDER_OPENAI:
            model_name = DEFAULT_MODEL_NAME
        else:
            model_name = DEFAULT_LOCAL_MODEL

    temperature = info.temperature
    if temperature is None:
        temperature = DEFAULT_TEMPERATURE

    base_url = info.base_url or DEFAULT_BASE_URL or DEFAULT_BASE_URLS[provider]

    api_key = resolve_api_key(provider, info.api_key)
    if provider in HOSTED_PROVIDERS and not api_key:
        env_var = API_KEY_ENV_VARS[provider]
        logger.error("%s requires an API key but none provided", provider)
        raise ConfigurationError(f"{provider} requires an API key: set {env_var} or pass model.api_key")

    return ModelSettings(provider, model_name, base_url, float(temperature), api_key)


def call_llm(settings: ModelSettings, messages: List[Dict[str, str]]) -> str:
    logger.info(
        "call_llm: provider=%s model=%s base_url=%s has_api_key=%s",
        settings.provider,
        settings.model_name,
        settings.base_url,
        bool(settings.api_key),
    )
    if settings.provider == PROVIDER_OLLAMA:
        return call_ollama(settings, messages)
    return call_chat_completions(settings, messages)


def make_generator(model_info: Optional[ModelInfo] = None) -> Generator:
    """Resolve settings once, so a missing credential fails before any call."""
    settings = resolve_model(model_info)

    def generate(system_prompt: str, user_prompt: str) -> str:
        content = call_llm(settings, build_chat_messages(system_prompt, user_prompt))
        logger.info("LLM response received: %d chars", len(content))
        return content

    return generate
