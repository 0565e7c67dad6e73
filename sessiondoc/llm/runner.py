"""Adapters around the text-completion service (assistant CLI or HTTP endpoint)."""

from __future__ import annotations

import json
import os
import socket
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

# Sentinel for "not passed": fall back to the environment.
_FROM_ENV: Any = object()

_TIMEOUT_ERRORS = (socket.timeout, TimeoutError)


class LLMError(RuntimeError):
    """Raised when the completion service fails or returns nothing usable."""


class LLMTimeoutError(LLMError):
    """Raised when the completion service exceeds the request timeout."""


@dataclass
class LLMRequest:
    """Everything a transport needs for one completion."""

    prompt: str
    system: Optional[str]
    model: Optional[str]
    temperature: Optional[float]
    max_tokens: Optional[int]
    executable: Optional[str]
    base_url: Optional[str]
    api_key: Optional[str]
    request_timeout: Optional[float]


class LLMRunner:
    """Executes one prompt against the configured completion service.

    Without a ``base_url`` the prompt is piped to the assistant CLI
    (``claude --print``); with one it is POSTed to an OpenAI-compatible
    ``/chat/completions`` endpoint. Tests pass ``runner=`` to replace the
    transport entirely.
    """

    DEFAULT_EXECUTABLE = "claude"
    DEFAULT_TIMEOUT = 120.0
    ENV_MODEL_KEYS = ("SESSIONDOC_LLM_MODEL",)
    ENV_BASE_URL_KEYS = ("SESSIONDOC_LLM_BASE_URL",)
    ENV_API_KEY_KEYS = ("SESSIONDOC_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None = _FROM_ENV,
        executable: str = DEFAULT_EXECUTABLE,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        api_key: str | None = _FROM_ENV,
        request_timeout: Optional[float] = DEFAULT_TIMEOUT,
        runner: Callable[[LLMRequest], str] | None = None,
    ) -> None:
        self.model = model or _env(self.ENV_MODEL_KEYS)
        if base_url is _FROM_ENV:
            base_url = _env(self.ENV_BASE_URL_KEYS)
        self.base_url = (base_url or "").rstrip("/") or None
        self.api_key = _env(self.ENV_API_KEY_KEYS) if api_key is _FROM_ENV else api_key
        self.executable = executable
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        if runner is None:
            runner = http_transport if self.base_url else cli_transport
        self._runner = runner

    def run(self, prompt: str, *, system: str | None = None) -> str:
        """Send the prompt and return the response text."""
        return self._runner(
            LLMRequest(
                prompt=prompt,
                system=system,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                executable=self.executable,
                base_url=self.base_url,
                api_key=self.api_key,
                request_timeout=self.request_timeout,
            )
        )


def cli_transport(request: LLMRequest) -> str:
    """Pipe the prompt to the assistant CLI in non-interactive mode."""
    executable = request.executable or LLMRunner.DEFAULT_EXECUTABLE
    command = [executable, "--print"]
    if request.model:
        command += ["--model", request.model]
    if request.system:
        command += ["--append-system-prompt", request.system]

    try:
        completed = subprocess.run(
            command,
            input=request.prompt,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=True,
            timeout=request.request_timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise LLMTimeoutError(
            f"{executable} gave no answer within {request.request_timeout}s"
        ) from exc
    except subprocess.CalledProcessError as exc:
        reason = (exc.stderr or "").strip() or "no stderr output"
        raise LLMError(f"{executable} exited with status {exc.returncode}: {reason}") from exc
    except FileNotFoundError as exc:
        raise LLMError(
            f"{executable} is not on PATH; install the assistant CLI or set llm.runner to 'http'"
        ) from exc

    text = completed.stdout.strip()
    if not text:
        raise LLMError(f"{executable} produced an empty response")
    return text


def http_transport(request: LLMRequest) -> str:
    """POST a chat completion to ``{base_url}/chat/completions``."""
    if not request.base_url:
        raise LLMError("the HTTP transport needs llm.base_url")
    timeout = request.request_timeout or LLMRunner.DEFAULT_TIMEOUT
    headers = {"Content-Type": "application/json"}
    if request.api_key:
        headers["Authorization"] = f"Bearer {request.api_key}"

    body = _post_json(
        f"{request.base_url}/chat/completions",
        _chat_payload(request),
        headers=headers,
        timeout=timeout,
    )
    text = _completion_text(body).strip()
    if not text:
        raise LLMError("completion endpoint returned an empty response")
    return text


def _chat_payload(request: LLMRequest) -> Dict[str, Any]:
    messages: List[Dict[str, str]] = []
    if request.system:
        messages.append({"role": "system", "content": request.system})
    messages.append({"role": "user", "content": request.prompt})
    optional = {
        "model": request.model,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
    }
    payload: Dict[str, Any] = {key: value for key, value in optional.items() if value is not None}
    payload["messages"] = messages
    return payload


def _post_json(url: str, payload: Dict[str, Any], *, headers: Dict[str, str], timeout: float) -> Any:
    http_request = Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers=headers,
        method="POST",
    )
    try:
        with urlopen(http_request, timeout=timeout) as response:
            raw = response.read()
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace").strip() if exc.fp else ""
        raise LLMError(f"completion endpoint answered {exc.code}: {detail or exc.reason}") from exc
    except _TIMEOUT_ERRORS as exc:
        raise LLMTimeoutError(f"completion endpoint timed out after {timeout}s") from exc
    except URLError as exc:
        if isinstance(exc.reason, _TIMEOUT_ERRORS):
            raise LLMTimeoutError(f"completion endpoint timed out after {timeout}s") from exc
        raise LLMError(f"completion endpoint unreachable: {exc.reason}") from exc

    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LLMError("completion endpoint returned a non-JSON body") from exc


def _completion_text(body: Any) -> str:
    """Pull the answer out of a chat or legacy text completion body."""
    try:
        choice = body["choices"][0]
    except (KeyError, IndexError, TypeError):
        return ""
    if not isinstance(choice, dict):
        return ""
    message = choice.get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, list):
        # multi-part content: keep the text parts
        content = "".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    if isinstance(content, str) and content:
        return content
    text = choice.get("text")
    return text if isinstance(text, str) else ""


def _env(keys: tuple[str, ...]) -> str | None:
    return next((os.environ[key] for key in keys if os.environ.get(key)), None)


__all__ = ["LLMError", "LLMRequest", "LLMRunner", "LLMTimeoutError", "cli_transport", "http_transport"]
