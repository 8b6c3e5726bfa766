import asyncio
import logging
import threading
import random
import time
import traceback
from typing import Callable, TypeVar, Any, Dict, Optional

import vertexai
from openai import OpenAI
from langchain_google_vertexai import VertexAI
from langchain_google_vertexai.vision_models import VertexAIImageGeneratorChat
from langchain_core.messages import HumanMessage

T = TypeVar("T")

logger = logging.getLogger("cyber_hub")

OPENAI_MODEL_PREFIXES = ("gpt-", "chatgpt-", "o1", "o3", "o4", "dall-e")


class MaxRetryErrorsException(Exception):
    pass


def is_openai_model(model_name: str) -> bool:
    return (model_name or "").lower().startswith(OPENAI_MODEL_PREFIXES)


# Global backoff state (shared across all clients)
_global_backoff_lock = threading.Lock()
_global_wait_until = 0.0
_global_backoff_seconds = 30.0
_GLOBAL_BACKOFF_MAX = 600.0


def call_with_retries_sync(
    fn: Callable[[], T],
    *,
    retries: int = 1,
    log: Callable[[str], None] | None = None,
) -> T:
    """
    Run a sync model call with global 429/timeout backoff.

    retries=1 is a single exchange; a 429 or timeout still pushes back the
    shared wait window for whoever calls next.
    """
    last_exception: Exception | None = None
    retries = max(1, int(retries))

    def _is_timeout_error(e: Exception) -> bool:
        if isinstance(e, (asyncio.TimeoutError, TimeoutError)):
            return True
        msg = repr(e)
        return "TimeoutError" in msg or "timed out" in msg.lower()

    def _is_resource_exhausted_error(e: Exception) -> bool:
        msg = str(e)
        return (
            "429" in msg
            and (
                "RESOURCE_EXHAUSTED" in msg
                or "Resource has been exhausted" in msg
                or "Too Many Requests" in msg
            )
        )

    def _respect_global_backoff() -> None:
        while True:
            with _global_backoff_lock:
                now = time.monotonic()
                wait = _global_wait_until - now
            if wait <= 0:
                return
            time.sleep(min(wait, 1.0))

    def _register_429_and_get_delay() -> float:
        global _global_wait_until, _global_backoff_seconds

        with _global_backoff_lock:
            now = time.monotonic()
            base = _global_backoff_seconds
            delay = random.uniform(base * 0.95, base * 1.35)
            _global_backoff_seconds = min(_global_backoff_seconds * 2, _GLOBAL_BACKOFF_MAX)
            _global_wait_until = max(_global_wait_until, now + delay)
            return delay

    def _reset_backoff_on_success() -> None:
        global _global_backoff_seconds
        with _global_backoff_lock:
            _global_backoff_seconds = max(1.0, _global_backoff_seconds * 0.5)

    for attempt in range(retries):
        _respect_global_backoff()
        start_time = time.time()
        try:
            result = fn()
            _reset_backoff_on_success()
            return result
        except Exception as e:
            elapsed = time.time() - start_time
            last_exception = e

            if _is_resource_exhausted_error(e) or _is_timeout_error(e):
                delay = _register_429_and_get_delay()
                msg = f"Attempt {attempt+1}/{retries} got 429/timeout, backing off ~{delay:.1f}s."
            else:
                msg = f"Attempt {attempt+1}/{retries} failed."

            if log:
                log(f"{msg} (elapsed={elapsed:.2f}s): {e}\n{traceback.format_exc()}")

    raise MaxRetryErrorsException(f"All {retries} attempts failed: {last_exception}") from last_exception


class BaseLlmClient:
    """
    Token accounting shared by the text and image clients.
    """

    last_usage: Optional[Dict[str, int]]

    def _add_usage(self, inc: Dict[str, int]) -> None:
        if self.last_usage is None:
            self.last_usage = dict(inc)
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _merge_usage(self, resp: Any) -> None:
        usage = getattr(resp, "usage", None) if resp is not None else None
        if usage is None:
            return
        self._add_usage({
            "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
        })

    def _merge_vertex_usage(self, usage_metadata: Any) -> None:
        if not usage_metadata:
            return

        def get(k: str) -> int:
            if isinstance(usage_metadata, dict):
                return int(usage_metadata.get(k, 0) or 0)
            return int(getattr(usage_metadata, k, 0) or 0)

        self._add_usage({
            "prompt_token_count": get("prompt_token_count"),
            "candidates_token_count": get("candidates_token_count"),
            "total_token_count": get("total_token_count"),
        })

    def get_accrued_usage(self) -> Dict[str, int]:
        return dict(self.last_usage or {})


class LlmClient(BaseLlmClient):
    """
    Completion-style wrapper:

        text = llm.invoke("some prompt")

    Under the hood:
    - Vertex: VertexAI.invoke(prompt), JSON mime type when json_mode is set
    - OpenAI: Responses API (client.responses.create)
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
        credentials: Any = None,
        json_mode: bool = True,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name = model_name
        self._timeout = timeout
        self.last_usage: Optional[Dict[str, int]] = None

        if self.provider == "vertex":
            vertex_kwargs: Dict[str, Any] = {
                "project": vertex_project,
                "location": vertex_region,
                "model_name": model_name,
                "timeout": timeout,
            }
            if credentials is not None:
                vertex_kwargs["credentials"] = credentials
            if json_mode:
                vertex_kwargs["response_mime_type"] = "application/json"
            self._vertex = VertexAI(**vertex_kwargs)
            self._client = None
        else:
            self._vertex = None
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout
            self._client = OpenAI(**client_kwargs)

    def _invoke_once(self, prompt: str) -> str:
        """
        Single HTTP call without retries/backoff.
        """
        if self.provider == "vertex":
            resp = self._vertex.invoke(prompt)

            usage_md = getattr(resp, "usage_metadata", None)
            if usage_md is None:
                rm = getattr(resp, "response_metadata", None)
                if isinstance(rm, dict):
                    usage_md = rm.get("usage_metadata")
            self._merge_vertex_usage(usage_md)

            if isinstance(resp, str):
                return resp
            return getattr(resp, "content", str(resp))

        resp = self._client.responses.create(
            model=self.model_name,
            input=prompt,
        )
        self._merge_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def invoke(self, prompt: str, *, retries: int = 1) -> str:
        return call_with_retries_sync(
            lambda: self._invoke_once(prompt),
            retries=retries,
            log=lambda msg: logger.warning(f"[LLM-RETRY] {msg}"),
        )


class ImageLlmClient(BaseLlmClient):
    """
    Text-to-image wrapper returning something an <img src> accepts:

        uri = image_llm.generate("a chrome exosuit gauntlet")

    - Vertex: Imagen through VertexAIImageGeneratorChat (data: URI)
    - OpenAI: Images API (data: URI from b64_json, or the hosted URL)
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str,
        vertex_region: str,
        timeout: float | None = None,
        credentials: Any = None,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name = model_name
        self._timeout = timeout
        self.last_usage: Optional[Dict[str, int]] = None

        if self.provider == "vertex":
            vertexai.init(project=vertex_project, location=vertex_region, credentials=credentials)
            self._vertex = VertexAIImageGeneratorChat(model_name=model_name, number_of_results=1)
            self._client = None
        else:
            self._vertex = None
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout
            self._client = OpenAI(**client_kwargs)

    def _generate_once(self, prompt: str) -> str:
        if self.provider == "vertex":
            resp = self._vertex.invoke([HumanMessage(content=[prompt])])
            parts = getattr(resp, "content", None) or []
            for part in parts:
                if isinstance(part, dict):
                    url = (part.get("image_url") or {}).get("url")
                    if url:
                        return url
                elif isinstance(part, str) and part.startswith("data:image"):
                    return part
            raise ValueError("Image generation returned no image payload")

        resp = self._client.images.generate(
            model=self.model_name,
            prompt=prompt,
            n=1,
            size="1024x1024",
        )
        self._merge_usage(resp)
        data = getattr(resp, "data", None) or []
        if not data:
            raise ValueError("Image generation returned no image payload")
        first = data[0]
        b64 = getattr(first, "b64_json", None)
        if b64:
            return f"data:image/png;base64,{b64}"
        url = getattr(first, "url", None)
        if url:
            return url
        raise ValueError("Image generation returned neither b64_json nor url")

    def generate(self, prompt: str, *, retries: int = 1) -> str:
        return call_with_retries_sync(
            lambda: self._generate_once(prompt),
            retries=retries,
            log=lambda msg: logger.warning(f"[IMAGE-RETRY] {msg}"),
        )
