import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import boto3
import httpx
from botocore.exceptions import ClientError

from docchat.config import settings
from docchat.errors import BackendInvocationFailed, BackendThrottled


def _build_llm_logger() -> logging.Logger:
    logger = logging.getLogger("docchat.llm")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    if logger.handlers:
        return logger
    log_path = Path(settings.log_dir) / "llm_log.txt"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
    logger.addHandler(handler)
    return logger


LLM_LOGGER = _build_llm_logger()

PROVIDERS = {"bedrock", "openai"}
BEDROCK_ANTHROPIC_VERSION = "bedrock-2023-05-31"
THROTTLE_ERROR_CODES = {"ThrottlingException", "TooManyRequestsException"}

Sleeper = Callable[[float], Awaitable[Any]]


class RuntimeLLMClient:
    """Sends one prompt to the configured backend and returns the generated text.

    Throttling is retried with exponential backoff (``base_delay * 2**n``
    seconds for the n-th retry) up to ``max_retries`` times. Every other
    failure, and a throttle after the last retry, is logged and surfaces as
    ``BackendInvocationFailed`` without the backend detail.
    """

    def __init__(
        self,
        *,
        provider: str = "bedrock",
        aws_region: str = "ap-southeast-1",
        aws_access_key_id: str = "",
        aws_secret_access_key: str = "",
        bedrock_model_id: str = "anthropic.claude-v2",
        openai_api_key: str = "",
        openai_model: str = "gpt-4o-mini",
        openai_base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.1,
        timeout: float = 90.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        settings_path: str = ".docchat/llm_settings.json",
        sleep: Sleeper = asyncio.sleep,
        bedrock_client: Any = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings_path = Path(settings_path)
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        self.provider = (provider or "bedrock").strip().lower()
        self.aws_region = (aws_region or "ap-southeast-1").strip()
        self.aws_access_key_id = (aws_access_key_id or "").strip()
        self.aws_secret_access_key = (aws_secret_access_key or "").strip()
        self.bedrock_model_id = (bedrock_model_id or "").strip()

        self.openai_api_key = (openai_api_key or "").strip()
        self.openai_model = (openai_model or "gpt-4o-mini").strip()
        self.openai_base_url = (openai_base_url or "https://api.openai.com/v1").rstrip("/")

        self.temperature = float(temperature)
        self.timeout = float(timeout)
        self.max_retries = max(0, int(max_retries))
        self.base_delay = max(0.0, float(base_delay))

        self._sleep = sleep
        self._bedrock_client = bedrock_client
        self._http_transport = http_transport

        self._load_runtime_config()

    def _load_runtime_config(self) -> None:
        if not self.settings_path.exists():
            return
        try:
            data = json.loads(self.settings_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LLM_LOGGER.warning("ignoring unreadable runtime config %s: %s", self.settings_path, exc)
            return
        self.provider = str(data.get("provider", self.provider) or self.provider).lower()
        if data.get("temperature") is not None:
            self.temperature = float(data["temperature"])

        self.aws_region = str(data.get("aws_region", self.aws_region) or self.aws_region)
        self.bedrock_model_id = str(data.get("bedrock_model_id", self.bedrock_model_id) or self.bedrock_model_id)

        self.openai_api_key = str(data.get("openai_api_key", self.openai_api_key) or self.openai_api_key)
        self.openai_model = str(data.get("openai_model", self.openai_model) or self.openai_model)
        self.openai_base_url = str(data.get("openai_base_url", self.openai_base_url) or self.openai_base_url).rstrip("/")

    def _save_runtime_config(self) -> None:
        payload = {
            "provider": self.provider,
            "temperature": self.temperature,
            "aws_region": self.aws_region,
            "bedrock_model_id": self.bedrock_model_id,
            "openai_api_key": self.openai_api_key,
            "openai_model": self.openai_model,
            "openai_base_url": self.openai_base_url,
        }
        self.settings_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def get_runtime_config(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "temperature": self.temperature,
            "bedrock": {
                "region": self.aws_region,
                "model_id": self.bedrock_model_id,
            },
            "openai": {
                "base_url": self.openai_base_url,
                "model": self.openai_model,
                "has_api_key": bool(self.openai_api_key),
            },
        }

    def update_runtime_config(self, payload: dict[str, Any]) -> dict[str, Any]:
        provider = str(payload.get("provider", self.provider) or self.provider).strip().lower()
        if provider not in PROVIDERS:
            raise ValueError("provider must be one of: bedrock, openai")

        self.provider = provider

        if payload.get("temperature") is not None:
            self.temperature = float(payload["temperature"])

        bedrock = payload.get("bedrock") or {}
        if "region" in bedrock:
            self.aws_region = str(bedrock.get("region") or self.aws_region)
            self._bedrock_client = None
        if "model_id" in bedrock:
            self.bedrock_model_id = str(bedrock.get("model_id") or self.bedrock_model_id)

        openai = payload.get("openai") or {}
        if "base_url" in openai:
            self.openai_base_url = str(openai.get("base_url") or self.openai_base_url).rstrip("/")
        if "model" in openai:
            self.openai_model = str(openai.get("model") or self.openai_model)
        if "api_key" in openai:
            self.openai_api_key = str(openai.get("api_key") or "").strip()

        self._save_runtime_config()
        return self.get_runtime_config()

    def is_configured(self) -> bool:
        if self.provider == "bedrock":
            return bool(self.bedrock_model_id and self.aws_region)
        if self.provider == "openai":
            return bool(self.openai_model and self.openai_api_key)
        return False

    async def invoke(self, prompt: str, max_tokens: int) -> str:
        retries = 0
        while True:
            try:
                return await self._invoke_once(prompt, max_tokens)
            except BackendThrottled as exc:
                if retries >= self.max_retries:
                    LLM_LOGGER.error(
                        "provider=%s | throttled after %d retries | %s", self.provider, retries, exc.__cause__ or exc
                    )
                    raise BackendInvocationFailed() from exc
                delay = self.base_delay * (2 ** retries)
                LLM_LOGGER.warning("provider=%s | throttled, retry %d in %.1fs", self.provider, retries + 1, delay)
                await self._sleep(delay)
                retries += 1
            except Exception as exc:
                LLM_LOGGER.error("provider=%s | invocation failed | %r", self.provider, exc)
                raise BackendInvocationFailed() from exc

    async def _invoke_once(self, prompt: str, max_tokens: int) -> str:
        if self.provider == "bedrock":
            return await asyncio.to_thread(self._invoke_bedrock, prompt, max_tokens)
        if self.provider == "openai":
            return await self._invoke_openai(prompt, max_tokens)
        raise RuntimeError(f"Unsupported provider: {self.provider}")

    def _get_bedrock_client(self) -> Any:
        if self._bedrock_client is None:
            self._bedrock_client = boto3.client(
                "bedrock-runtime",
                region_name=self.aws_region,
                aws_access_key_id=self.aws_access_key_id or None,
                aws_secret_access_key=self.aws_secret_access_key or None,
            )
        return self._bedrock_client

    def _invoke_bedrock(self, prompt: str, max_tokens: int) -> str:
        body = {
            "anthropic_version": BEDROCK_ANTHROPIC_VERSION,
            "max_tokens": int(max_tokens),
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            resp = self._get_bedrock_client().invoke_model(
                modelId=self.bedrock_model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
        except ClientError as exc:
            code = str((exc.response.get("Error") or {}).get("Code") or "")
            if code in THROTTLE_ERROR_CODES:
                raise BackendThrottled(code) from exc
            raise
        raw = resp["body"].read()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        content = data.get("content") or [{}]
        return str(content[0].get("text") or "").strip()

    async def _invoke_openai(self, prompt: str, max_tokens: int) -> str:
        payload = {
            "model": self.openai_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": int(max_tokens),
        }
        headers = {
            "Authorization": f"Bearer {self.openai_api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport) as client:
            resp = await client.post(f"{self.openai_base_url}/chat/completions", headers=headers, json=payload)
        if resp.status_code == 429:
            raise BackendThrottled(f"HTTP 429 from {self.openai_base_url}")
        resp.raise_for_status()
        data = resp.json()
        return str((((data.get("choices") or [{}])[0]).get("message") or {}).get("content") or "").strip()


