from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from vcport.secrets import get_openai_api_key, get_perplexity_api_key


class LLMError(RuntimeError):
    pass


_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _coerce_json(text: str) -> Dict[str, Any]:
    """Parse the outermost JSON object in a model reply (tolerates prose around it)."""
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except ValueError:
        pass
    m = _JSON_OBJECT_RE.search(text or "")
    if not m:
        raise LLMError(f"Could not find a JSON object in model output.\nRaw:\n{(text or '')[:2000]}")
    try:
        data = json.loads(m.group(0))
    except ValueError as e:
        raise LLMError(f"Failed to parse model JSON output: {e}\nRaw:\n{text[:2000]}") from e
    if not isinstance(data, dict):
        raise LLMError(f"Model JSON output is not an object: {type(data).__name__}")
    return data


_RETRY_AFTER_HINT_RE = re.compile(r"try again in\s+([0-9]+(?:\.[0-9]+)?)s", re.IGNORECASE)


def _parse_retry_after_seconds(msg: str) -> Optional[float]:
    if not msg:
        return None
    m = _RETRY_AFTER_HINT_RE.search(msg)
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


@dataclass(frozen=True)
class ChatClient:
    """Chat Completions client over plain HTTP.

    OpenAI and Perplexity share the same request/response shape; subclasses
    only pick the endpoint, default model and key source.
    """

    model: str = ""
    api_key: Optional[str] = None
    base_url: str = ""
    timeout_s: int = 120
    max_retries: int = 3
    rate_limit_rpm: Optional[float] = None
    provider: str = "LLM"
    # Mutable single-element list used for tracking last call time even in frozen dataclass.
    _last_call_ts: List[float] = field(default_factory=list, repr=False)

    def _env_key(self) -> Optional[str]:
        return None

    def _key(self) -> str:
        k = self.api_key or self._env_key()
        if not k:
            raise LLMError(f"{self.provider} API key is not set")
        return k

    def _session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(
            {
                "Authorization": f"Bearer {self._key()}",
                "Content-Type": "application/json",
            }
        )
        return s

    def _throttle(self, sleep: Callable[[float], None]) -> None:
        if not self.rate_limit_rpm or self.rate_limit_rpm <= 0:
            return
        min_interval = 60.0 / float(self.rate_limit_rpm)
        now = time.time()
        if self._last_call_ts and (now - self._last_call_ts[0]) < min_interval:
            sleep(min_interval - (now - self._last_call_ts[0]) + 0.05)
        if self._last_call_ts:
            self._last_call_ts[0] = time.time()
        else:
            self._last_call_ts.append(time.time())

    def chat(
        self,
        *,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_output_tokens: int = 1200,
        extra: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        """Send one system+user exchange and return the assistant text."""
        self._throttle(sleep)

        payload: Dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "max_tokens": max_output_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if extra:
            payload.update(extra)

        url = f"{self.base_url}/chat/completions"
        s = self._session()

        last_err: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                r = s.post(url, data=json.dumps(payload), timeout=self.timeout_s)
                if r.status_code == 429:
                    # Honor server hint if present, otherwise exponential backoff.
                    hint = _parse_retry_after_seconds(r.text)
                    sleep_s = (hint + 0.5) if hint is not None else (1.5 * (2 ** (attempt - 1)))
                    if attempt < self.max_retries:
                        sleep(sleep_s)
                        continue
                    raise LLMError(f"{self.provider} HTTP 429: {r.text[:2000]}")
                if r.status_code >= 400:
                    raise LLMError(f"{self.provider} HTTP {r.status_code}: {r.text[:2000]}")
                data = r.json()
                if not isinstance(data, dict):
                    raise LLMError(f"{self.provider} returned a non-object body: {type(data).__name__}")
                content = (
                    (data.get("choices") or [{}])[0]
                    .get("message", {})
                    .get("content", "")
                )
                if not content or not isinstance(content, str):
                    raise LLMError(f"{self.provider} returned empty content: {data}")
                return content.strip()
            except (requests.RequestException, ValueError, LLMError) as e:
                last_err = e
                if attempt < self.max_retries:
                    sleep(0.8 * (2 ** (attempt - 1)))
                    continue
                raise

        raise LLMError(f"{self.provider} call failed: {last_err}")

    def json_call(
        self,
        *,
        system: str,
        user: str,
        temperature: float = 0.1,
        max_output_tokens: int = 2500,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Dict[str, Any]:
        """Chat call whose reply must contain a JSON object."""
        text = self.chat(
            system=system,
            user=user,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            sleep=sleep,
        )
        return _coerce_json(text)


@dataclass(frozen=True)
class OpenAIChatClient(ChatClient):
    """Reasoning model. Requires OPENAI_API_KEY in environment (or passed in)."""

    model: str = "gpt-4.1-2025-04-14"
    base_url: str = "https://api.openai.com/v1"
    provider: str = "OpenAI"

    def _env_key(self) -> Optional[str]:
        return get_openai_api_key()


@dataclass(frozen=True)
class PerplexityChatClient(ChatClient):
    """Web-research model. Requires PERPLEXITY_API_KEY in environment (or passed in)."""

    model: str = "llama-3.1-sonar-small-128k-online"
    base_url: str = "https://api.perplexity.ai"
    timeout_s: int = 60
    provider: str = "Perplexity"

    def _env_key(self) -> Optional[str]:
        return get_perplexity_api_key()
