"""LLM clients used as the extraction oracle and the generation oracle.

Both providers expose the same two calls:

- ``invoke_tools``: a constrained tool-calling exchange. Tools with a handler
  are read-only lookups executed in-loop and fed back to the model; tools
  without a handler are "save" tools whose invocations are collected and
  returned. No invocation at all is a valid, empty result.
- ``generate``: plain text generation from a system prompt and history.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from google import genai
from google.genai import types
from httpx import HTTPStatusError, TimeoutException

from tender_ai.core.exceptions import APIClientError, APITimeoutError, ConfigurationError
from tender_ai.schemas.extraction import ToolCall
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class ToolSpec:
    """A callable the oracle may invoke.

    ``parameters`` is an OpenAPI-style schema with upper-case type names
    (OBJECT, STRING, ...), which Gemini accepts as-is; ``to_json_schema``
    lowers it for OpenAI-compatible providers.
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Optional[ToolHandler] = None


def to_json_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an upper-case-typed schema into standard JSON Schema."""
    converted: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            converted[key] = value.lower()
        elif key == "properties" and isinstance(value, dict):
            converted[key] = {name: to_json_schema(prop) for name, prop in value.items()}
        elif key == "items" and isinstance(value, dict):
            converted[key] = to_json_schema(value)
        else:
            converted[key] = value
    return converted


class LLMProvider(str, Enum):
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class BaseLLMClient:
    """Base client for LLM HTTP API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST to the API with retry logic.

        Args:
            payload: JSON payload
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        url = self.base_url
        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(url, headers=default_headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.HTTPError as e:
                    await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Handle HTTP status errors."""
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body}", original_error=error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries", original_error=error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts", original_error=error) from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        """Handle transport errors."""
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", original_error=error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class BaseOracle(ABC):
    """Interface shared by the extraction and generation oracles."""

    @abstractmethod
    async def invoke_tools(
        self,
        system_prompt: str,
        prompt: str,
        tools: List[ToolSpec],
        max_steps: int = 5,
    ) -> List[ToolCall]:
        """Run a tool-calling exchange and return the collected save calls."""
        pass

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """Generate text from a system prompt and ``{role, content}`` history."""
        pass

    @staticmethod
    async def _run_handler(spec: ToolSpec, args: Dict[str, Any]) -> Any:
        try:
            return await spec.handler(args)
        except Exception as e:
            # Lookup failures are reported back to the model, not raised
            LOGGER.warning(f"Tool handler {spec.name} failed: {e}")
            return {"error": str(e)}


class GeminiClient(BaseOracle):
    """Oracle backed by the Google Gemini API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_retries: int = 3,
        temperature: float = 0.0,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            max_retries: Maximum retry attempts per model call
            temperature: Default sampling temperature
        """
        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self.temperature = temperature

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def _generate_with_retry(self, contents: List[types.Content], config: types.GenerateContentConfig):
        for attempt in range(self.max_retries):
            try:
                return await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    LOGGER.error(f"Gemini generation failed after retries: {e}", exc_info=True)
                    raise APIClientError(f"Gemini generation failed: {e}", original_error=e) from e
        raise APIClientError("Gemini generation failed")

    async def invoke_tools(
        self,
        system_prompt: str,
        prompt: str,
        tools: List[ToolSpec],
        max_steps: int = 5,
    ) -> List[ToolCall]:
        specs = {spec.name: spec for spec in tools}
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self.temperature,
            tools=[types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=spec.name,
                    description=spec.description,
                    parameters=spec.parameters,
                )
                for spec in tools
            ])],
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        contents: List[types.Content] = [
            types.Content(role="user", parts=[types.Part.from_text(text=prompt)])
        ]
        collected: List[ToolCall] = []

        for _ in range(max_steps):
            response = await self._generate_with_retry(contents, config)
            function_calls = response.function_calls or []
            if not function_calls:
                break

            contents.append(response.candidates[0].content)
            reply_parts = []
            for call in function_calls:
                args = dict(call.args or {})
                spec = specs.get(call.name)
                if spec is None:
                    LOGGER.warning(f"Oracle called unknown tool {call.name}")
                    result = {"error": f"unknown tool {call.name}"}
                elif spec.handler is not None:
                    result = await self._run_handler(spec, args)
                else:
                    collected.append(ToolCall(name=call.name, arguments=args))
                    result = {"status": "received"}
                reply_parts.append(
                    types.Part.from_function_response(name=call.name, response={"result": result})
                )
            contents.append(types.Content(role="tool", parts=reply_parts))

            if not any(specs.get(c.name) and specs[c.name].handler for c in function_calls):
                # Only save calls this step: nothing left to feed back
                break

        LOGGER.debug(f"Gemini tool exchange collected {len(collected)} calls")
        return collected

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self.temperature if temperature is None else temperature,
        )
        if max_output_tokens:
            config.max_output_tokens = max_output_tokens

        contents = [
            types.Content(
                role="model" if message["role"] == "assistant" else "user",
                parts=[types.Part.from_text(text=message["content"])],
            )
            for message in messages
        ]
        response = await self._generate_with_retry(contents, config)
        if not response.text:
            LOGGER.warning("Empty response from Gemini")
            return ""
        return response.text


class OpenRouterClient(BaseOracle):
    """Oracle backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: int = 120,
        max_retries: int = 3,
        temperature: float = 0.0,
    ):
        self.model = model
        self.temperature = temperature
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    @staticmethod
    def _first_message(response: Dict[str, Any]) -> Dict[str, Any]:
        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {response}")
            raise APIClientError("Invalid response format from OpenRouter")
        return choices[0].get("message") or {}

    async def invoke_tools(
        self,
        system_prompt: str,
        prompt: str,
        tools: List[ToolSpec],
        max_steps: int = 5,
    ) -> List[ToolCall]:
        specs = {spec.name: spec for spec in tools}
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        tool_payload = [
            {
                "type": "function",
                "function": {
                    "name": spec.name,
                    "description": spec.description,
                    "parameters": to_json_schema(spec.parameters),
                },
            }
            for spec in tools
        ]
        collected: List[ToolCall] = []

        for _ in range(max_steps):
            response = await self.client.call_api({
                "model": self.model,
                "messages": messages,
                "tools": tool_payload,
                "tool_choice": "auto",
                "temperature": self.temperature,
            })
            message = self._first_message(response)
            tool_calls = message.get("tool_calls") or []
            if not tool_calls:
                break

            messages.append({"role": "assistant", "content": message.get("content") or "", "tool_calls": tool_calls})
            needs_followup = False
            for call in tool_calls:
                function = call.get("function") or {}
                name = function.get("name", "")
                try:
                    args = json.loads(function.get("arguments") or "{}")
                except json.JSONDecodeError:
                    LOGGER.warning(f"Malformed arguments for tool {name}, using empty arguments")
                    args = {}
                if not isinstance(args, dict):
                    args = {}

                spec = specs.get(name)
                if spec is None:
                    result = {"error": f"unknown tool {name}"}
                elif spec.handler is not None:
                    needs_followup = True
                    result = await self._run_handler(spec, args)
                else:
                    collected.append(ToolCall(name=name, arguments=args))
                    result = {"status": "received"}
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "content": json.dumps(result, default=str),
                })

            if not needs_followup:
                break

        return collected

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "temperature": self.temperature if temperature is None else temperature,
        }
        if max_output_tokens:
            payload["max_tokens"] = max_output_tokens

        response = await self.client.call_api(payload)
        content = self._first_message(response).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content


def create_llm_client_from_settings(llm_settings=None) -> BaseOracle:
    """Create the configured oracle.

    Args:
        llm_settings: LLMSettings instance (defaults to global settings)

    Returns:
        A GeminiClient or OpenRouterClient

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    if llm_settings is None:
        from tender_ai.core.config import settings

        llm_settings = settings.llm

    try:
        provider = LLMProvider(llm_settings.provider.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {llm_settings.provider}") from e

    if provider == LLMProvider.GEMINI:
        if not llm_settings.gemini_api_key.strip():
            raise ConfigurationError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        return GeminiClient(
            api_key=llm_settings.gemini_api_key,
            model=llm_settings.gemini_model,
            max_retries=llm_settings.max_retries,
            temperature=llm_settings.temperature,
        )

    if not llm_settings.openrouter_api_key.strip():
        raise ConfigurationError("OPENROUTER_API_KEY is required when LLM_PROVIDER=openrouter")
    return OpenRouterClient(
        api_key=llm_settings.openrouter_api_key,
        model=llm_settings.openrouter_model,
        base_url=llm_settings.openrouter_api_url,
        timeout=llm_settings.timeout,
        max_retries=llm_settings.max_retries,
        temperature=llm_settings.temperature,
    )
