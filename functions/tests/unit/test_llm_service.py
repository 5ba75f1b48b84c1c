"""Unit tests for LLM service."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from config.errors import ErrorCode, GracemarkError


class TestLLMService:
    """Tests for LLMService."""

    def test_initialization(self):
        """Test LLMService initialization."""
        with patch('services.llm_service.ChatOpenAI'):
            from services.llm_service import LLMService

            service = LLMService(
                model="gpt-4-turbo",
                temperature=0.2,
                api_key="test-key"
            )

            assert service.model == "gpt-4-turbo"
            assert service.temperature == 0.2
            assert service.api_key == "test-key"

    def test_default_initialization(self, mock_settings):
        """Test LLMService uses settings defaults."""
        from services.llm_service import LLMService

        service = LLMService()

        assert service.model == "gpt-4o-mini"
        assert service.temperature == 0.1
        assert service.api_key == "test-api-key"

    def test_client_uses_json_mode(self):
        with patch('services.llm_service.ChatOpenAI') as chat_cls:
            from services.llm_service import LLMService

            client = LLMService(api_key="test-key").client

            assert client is chat_cls.return_value
            assert chat_cls.call_args.kwargs["model_kwargs"] == {"response_format": {"type": "json_object"}}

    @pytest.mark.asyncio
    async def test_generate_json(self, mock_llm_service, mock_chat_openai):
        """Test generate_json returns the parsed object."""
        result = await mock_llm_service.generate_json("Categorize", '{"items": []}', purpose="test")

        assert result == {"result": "ok"}
        messages = mock_chat_openai.ainvoke.call_args.args[0]
        assert messages[0].content.startswith("Categorize")
        assert "valid JSON object" in messages[0].content
        assert messages[1].content == '{"items": []}'

    @pytest.mark.asyncio
    async def test_code_fence_is_stripped(self, mock_llm_service, mock_chat_openai):
        mock_chat_openai.ainvoke.return_value = MagicMock(
            content='```json\n{"baseSalary": {"base_salary": 5000}}\n```',
            response_metadata={}
        )

        result = await mock_llm_service.generate_json("system", "user")

        assert result == {"baseSalary": {"base_salary": 5000}}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, mock_llm_service, mock_chat_openai):
        mock_chat_openai.ainvoke.return_value = MagicMock(content="not json", response_metadata={})

        with pytest.raises(GracemarkError) as exc_info:
            await mock_llm_service.generate_json("system", "user", purpose="enhance_quote")

        assert exc_info.value.code == ErrorCode.LLM_ERROR
        assert exc_info.value.details["purpose"] == "enhance_quote"

    @pytest.mark.asyncio
    async def test_non_object_json_raises(self, mock_llm_service, mock_chat_openai):
        mock_chat_openai.ainvoke.return_value = MagicMock(content="[1, 2]", response_metadata={})

        with pytest.raises(GracemarkError) as exc_info:
            await mock_llm_service.generate_json("system", "user")

        assert exc_info.value.message == "LLM returned JSON that is not an object"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,code", [
        ("Error code: 429 - rate_limit_exceeded", ErrorCode.LLM_RATE_LIMIT),
        ("This model's maximum context length is 128000 tokens", ErrorCode.LLM_CONTEXT_TOO_LONG),
        ("connection reset", ErrorCode.LLM_ERROR),
    ])
    async def test_call_errors_are_classified(self, mock_llm_service, mock_chat_openai, error, code):
        mock_chat_openai.ainvoke = AsyncMock(side_effect=RuntimeError(error))

        with pytest.raises(GracemarkError) as exc_info:
            await mock_llm_service.generate_json("system", "user")

        assert exc_info.value.code == code
        assert exc_info.value.details["original_error"] == error

    @pytest.mark.asyncio
    async def test_token_tracking(self, mock_llm_service):
        """Test token usage is tracked."""
        await mock_llm_service.generate_json("system", "one")
        await mock_llm_service.generate_json("system", "two")

        assert mock_llm_service.total_tokens_used == 200
