"""LLM service for Gracemark.

Thin LangChain/OpenAI wrapper used for cost categorization and benefit
enhancement estimates. Every call here expects a JSON object back.
"""

import json
from typing import Any, Dict, List, Optional

import structlog
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config.errors import ErrorCode, GracemarkError
from config.settings import settings

logger = structlog.get_logger()

JSON_ONLY_INSTRUCTION = (
    "Respond with a single valid JSON object only. "
    "No markdown, no code fences, no commentary."
)


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _classify_llm_error(error: Exception, purpose: str) -> GracemarkError:
    message = str(error)
    lowered = message.lower()
    if "rate_limit" in lowered or "rate limit" in lowered:
        return GracemarkError(
            code=ErrorCode.LLM_RATE_LIMIT,
            message="OpenAI rate limit exceeded",
            details={"purpose": purpose, "original_error": message}
        )
    if "context_length" in lowered or "maximum context" in lowered:
        return GracemarkError(
            code=ErrorCode.LLM_CONTEXT_TOO_LONG,
            message="Input too long for model context",
            details={"purpose": purpose, "original_error": message}
        )
    return GracemarkError(
        code=ErrorCode.LLM_ERROR,
        message=f"LLM call failed: {message}",
        details={"purpose": purpose, "original_error": message}
    )


class LLMService:
    """JSON-returning chat completions with token accounting."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None
    ):
        self.model = model or settings.llm_model
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.api_key = api_key or settings.openai_api_key

        self._client: Optional[ChatOpenAI] = None
        self._total_tokens_used = 0

    @property
    def client(self) -> ChatOpenAI:
        """Lazily built client in OpenAI JSON mode."""
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=self.api_key,
                model_kwargs={"response_format": {"type": "json_object"}},
            )
        return self._client

    @property
    def total_tokens_used(self) -> int:
        return self._total_tokens_used

    async def _invoke(self, messages: List[BaseMessage], purpose: str) -> str:
        try:
            response = await self.client.ainvoke(messages)
        except Exception as e:
            logger.error("llm_call_failed", purpose=purpose, model=self.model, error=str(e))
            raise _classify_llm_error(e, purpose) from e

        tokens_used = 0
        metadata = getattr(response, "response_metadata", None) or {}
        usage = metadata.get("token_usage") or {}
        tokens_used = usage.get("total_tokens", 0) or 0
        self._total_tokens_used += tokens_used

        logger.info(
            "llm_generated",
            purpose=purpose,
            model=self.model,
            tokens_used=tokens_used,
            content_length=len(response.content)
        )
        return response.content

    async def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        purpose: str = "generic"
    ) -> Dict[str, Any]:
        """Ask the model for a JSON object.

        Args:
            system_prompt: Task instructions.
            user_message: Task input, usually serialized JSON.
            purpose: Label for logs and error details.

        Returns:
            Parsed JSON object.

        Raises:
            GracemarkError: If the call fails or the reply is not a JSON object.
        """
        messages = [
            SystemMessage(content=f"{system_prompt}\n\n{JSON_ONLY_INSTRUCTION}"),
            HumanMessage(content=user_message),
        ]
        content = await self._invoke(messages, purpose)

        try:
            parsed = json.loads(_strip_code_fence(content))
        except json.JSONDecodeError as e:
            raise GracemarkError(
                code=ErrorCode.LLM_ERROR,
                message="LLM did not return valid JSON",
                details={"purpose": purpose, "parse_error": str(e), "raw_content": content[:500]}
            ) from e

        if not isinstance(parsed, dict):
            raise GracemarkError(
                code=ErrorCode.LLM_ERROR,
                message="LLM returned JSON that is not an object",
                details={"purpose": purpose, "raw_content": content[:500]}
            )
        return parsed
