"""Unit tests for provider adapters and the adapter factory."""
import json
from unittest.mock import AsyncMock

import httpx
import pytest
from google.genai import errors as genai_errors
from google.genai import types

from llamachat.conversation import Message, Role
from llamachat.errors import BlockedError, ConfigError, ProviderError, UnknownProviderError
from llamachat.llm import (
    CompletionRequest,
    GeminiAdapter,
    ImagePayload,
    OllamaAdapter,
    OpenRouterAdapter,
    ProviderAdapter,
    ProviderConfig,
    StreamingResponse,
    create_adapter,
)
from llamachat.llm.providers.ollama import iter_generate_chunks, parse_generate_line
from llamachat.llm.providers.openrouter import to_router_messages


def _request(history, image=None, model="test-model") -> CompletionRequest:
    return CompletionRequest(messages=history, image=image, model=model, temperature=0.7)


class TestProviderAdapterInterface:
    """Tests for the abstract ProviderAdapter interface."""

    def test_adapter_is_abstract(self):
        """Test that ProviderAdapter cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ProviderAdapter()  # type: ignore


class TestStreamingResponse:
    """Tests for the chunk channel."""

    @pytest.mark.asyncio
    async def test_from_text_yields_one_chunk(self):
        """Test wrapping an atomic answer as a stream."""
        stream = StreamingResponse.from_text("whole answer")
        chunks = [chunk async for chunk in stream]
        assert chunks == ["whole answer"]
        assert stream.text == "whole answer"

    @pytest.mark.asyncio
    async def test_collect_supports_async_callbacks(self):
        """Test that awaitable callbacks are awaited in order."""
        received = []

        async def on_chunk(chunk):
            received.append(chunk)

        async def chunks():
            yield "a"
            yield "b"

        assert await StreamingResponse(chunks()).collect(on_chunk) == "ab"
        assert received == ["a", "b"]

    @pytest.mark.asyncio
    async def test_aclose_stops_iteration(self):
        """Test that a closed stream yields nothing more."""
        async def chunks():
            yield "a"
            yield "b"

        stream = StreamingResponse(chunks())
        assert await stream.__anext__() == "a"
        await stream.aclose()

        assert stream.closed
        assert [chunk async for chunk in stream] == []
        assert stream.text == "a"


class TestOllamaParsing:
    """Tests for NDJSON stream decoding."""

    def test_blank_and_invalid_lines_are_skipped(self):
        """Test that undecodable lines are dropped instead of failing."""
        assert parse_generate_line("") is None
        assert parse_generate_line("not json") is None
        assert parse_generate_line('{"response": "a"}').response == "a"

    @pytest.mark.asyncio
    async def test_iter_preserves_order(self):
        """Test that decoded chunks come out in arrival order."""
        async def lines():
            for line in ['{"response":"a"}', "not json", '{"response":"b"}']:
                yield line

        chunks = [chunk.response async for chunk in iter_generate_chunks(lines())]
        assert chunks == ["a", "b"]


class TestOllamaAdapter:
    """Tests for OllamaAdapter against a mocked server."""

    @pytest.mark.asyncio
    async def test_complete_sends_flattened_prompt(self, ollama_server):
        """Test the non-streaming request body and answer."""
        adapter = OllamaAdapter(http_client=ollama_server.client())
        history = [Message(role=Role.USER, content="Hello")]

        async with adapter:
            answer = await adapter.complete(_request(history))

        assert answer == "Hi there"
        body = ollama_server.requests[0]
        assert body == {
            "model": "test-model",
            "prompt": "User: Hello\n\n",
            "stream": False,
            "options": {"temperature": 0.7},
        }

    @pytest.mark.asyncio
    async def test_image_goes_in_images_field(self, ollama_server):
        """Test that the base64 image is passed natively."""
        adapter = OllamaAdapter(http_client=ollama_server.client())
        image = ImagePayload(data="aGVsbG8=", mime_type="image/png")

        await adapter.complete(_request([Message(role=Role.USER, content="What?")], image))

        assert ollama_server.requests[0]["images"] == ["aGVsbG8="]

    @pytest.mark.asyncio
    async def test_streaming_skips_bad_lines(self, make_ollama_server):
        """Test chunk order and accumulation across an undecodable line."""
        server = make_ollama_server(stream_lines=[
            '{"response":"a"}',
            "not json",
            '{"response":"b"}',
        ])
        adapter = OllamaAdapter(http_client=server.client())
        received = []

        answer = await adapter.send(
            _request([Message(role=Role.USER, content="Hi")]),
            on_chunk=received.append,
        )

        assert received == ["a", "b"]
        assert answer == "ab"
        assert server.requests[0]["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_captures_usage(self, make_ollama_server):
        """Test that token counts from the final line become usage."""
        server = make_ollama_server(stream_lines=[
            '{"response":"a","done":false}',
            '{"response":"","done":true,"prompt_eval_count":3,"eval_count":1}',
        ])
        adapter = OllamaAdapter(http_client=server.client())

        stream = await adapter.stream(_request([Message(role=Role.USER, content="Hi")]))
        assert await stream.collect() == "a"
        assert stream.usage == {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4}

    @pytest.mark.asyncio
    async def test_error_status_raises_provider_error(self, make_ollama_server):
        """Test that a non-2xx answer carries status and body."""
        adapter = OllamaAdapter(http_client=make_ollama_server(status_code=404).client())

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))

        assert exc_info.value.status == 404
        assert "not found" in exc_info.value.body
        assert str(exc_info.value).startswith("Ollama Error 404")

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        """Test that a transport failure is a ProviderError without status."""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = OllamaAdapter(http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_empty_answer_falls_back(self, make_ollama_server):
        """Test the fallback text for an empty response."""
        adapter = OllamaAdapter(http_client=make_ollama_server(answer="").client())
        answer = await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))
        assert answer == "No response"

    @pytest.mark.asyncio
    async def test_list_models(self, make_ollama_server):
        """Test listing installed models."""
        server = make_ollama_server(models=["llama3.2:3b", "mistral:7b"])
        adapter = OllamaAdapter(http_client=server.client())
        assert await adapter.list_models() == ["llama3.2:3b", "mistral:7b"]


def _router_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _completion(content: str) -> dict:
    return {
        "id": "gen-1",
        "object": "chat.completion",
        "created": 0,
        "model": "anthropic/claude-3-opus",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }


class TestOpenRouterAdapter:
    """Tests for OpenRouterAdapter."""

    def test_missing_key_raises_config_error(self):
        """Test that a router adapter needs an API key."""
        with pytest.raises(ConfigError):
            OpenRouterAdapter(api_key=None)

    def test_image_restructures_only_last_user_turn(self, sample_history):
        """Test the multimodal content parts for the final question."""
        image = ImagePayload(data="aGVsbG8=", mime_type="image/png")

        turns = to_router_messages(sample_history, image)

        assert turns[0] == {"role": "user", "content": "What is 2+2?"}
        assert turns[1] == {"role": "assistant", "content": "4"}
        assert turns[2]["content"] == [
            {"type": "text", "text": "And 3+3?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,aGVsbG8="}},
        ]

    @pytest.mark.asyncio
    async def test_complete_with_image(self, sample_history):
        """Test the request sent for an image question and the parsed answer."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["headers"] = request.headers
            return httpx.Response(200, json=_completion("A cat"))

        adapter = OpenRouterAdapter(api_key="sk-test", http_client=_router_client(handler))
        image = ImagePayload(data="aGVsbG8=")

        answer = await adapter.complete(_request(sample_history, image, "anthropic/claude-3-opus"))

        assert answer == "A cat"
        body = captured["body"]
        assert body["max_tokens"] == 8192
        assert [type(m["content"]) for m in body["messages"]] == [str, str, list]
        assert captured["headers"]["X-Title"] == "Llama Chat Interface"
        assert captured["headers"]["HTTP-Referer"] == "http://localhost:5000"
        await adapter.close()

    @pytest.mark.asyncio
    async def test_status_error_maps_to_provider_error(self):
        """Test that an HTTP error reaches the caller once, as ProviderError."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(402, json={"error": {"message": "Insufficient credits"}})

        adapter = OpenRouterAdapter(api_key="sk-test", http_client=_router_client(handler))

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))

        assert exc_info.value.status == 402
        assert "Insufficient credits" in exc_info.value.body
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_empty_content_falls_back(self):
        """Test the fallback text when the router returns no content."""
        adapter = OpenRouterAdapter(
            api_key="sk-test",
            http_client=_router_client(lambda request: httpx.Response(200, json=_completion(""))),
        )
        answer = await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))
        assert answer == "No response"

    @pytest.mark.asyncio
    async def test_callback_is_ignored(self):
        """Test that a non-streaming adapter never invokes the chunk callback."""
        adapter = OpenRouterAdapter(
            api_key="sk-test",
            http_client=_router_client(lambda request: httpx.Response(200, json=_completion("Hi"))),
        )
        received = []

        answer = await adapter.send(_request([Message(role=Role.USER, content="Hi")]), received.append)

        assert answer == "Hi"
        assert received == []


class TestGeminiAdapter:
    """Tests for GeminiAdapter with the SDK call mocked out."""

    def test_missing_key_raises_config_error(self):
        """Test that the hosted text adapter needs an API key."""
        with pytest.raises(ConfigError, match="Gemini API key not configured"):
            GeminiAdapter(api_key="")

    @pytest.mark.asyncio
    async def test_safety_block_raises_blocked_error(self, monkeypatch):
        """Test that a blocked prompt is not reported as an HTTP failure."""
        adapter = GeminiAdapter(api_key="test-key")
        response = types.GenerateContentResponse(
            prompt_feedback=types.GenerateContentResponsePromptFeedback(block_reason="SAFETY")
        )
        monkeypatch.setattr(
            adapter._client.aio.models, "generate_content", AsyncMock(return_value=response)
        )

        with pytest.raises(BlockedError) as exc_info:
            await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))

        assert exc_info.value.reason == "SAFETY"
        assert not isinstance(exc_info.value, ProviderError)

    @pytest.mark.asyncio
    async def test_complete_extracts_first_part(self, monkeypatch):
        """Test the answer text and the request contents."""
        adapter = GeminiAdapter(api_key="test-key")
        response = types.GenerateContentResponse(candidates=[
            types.Candidate(content=types.Content(role="model", parts=[types.Part(text="Hello!")]))
        ])
        generate = AsyncMock(return_value=response)
        monkeypatch.setattr(adapter._client.aio.models, "generate_content", generate)
        image = ImagePayload(data="aGVsbG8=", mime_type="image/png")

        answer = await adapter.complete(_request([Message(role=Role.USER, content="Hi")], image))

        assert answer == "Hello!"
        kwargs = generate.call_args.kwargs
        parts = kwargs["contents"][0].parts
        assert parts[0].inline_data.data == b"hello"
        assert parts[1].text == "User: Hi\n\n"
        assert kwargs["config"].max_output_tokens == 8192

    @pytest.mark.asyncio
    async def test_no_candidates_falls_back(self, monkeypatch):
        """Test the fallback text for an empty response."""
        adapter = GeminiAdapter(api_key="test-key")
        monkeypatch.setattr(
            adapter._client.aio.models, "generate_content",
            AsyncMock(return_value=types.GenerateContentResponse()),
        )
        answer = await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))
        assert answer == "No response"

    @pytest.mark.asyncio
    async def test_api_error_maps_to_provider_error(self, monkeypatch):
        """Test that SDK errors carry the HTTP status."""
        adapter = GeminiAdapter(api_key="test-key")
        error = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        )
        monkeypatch.setattr(
            adapter._client.aio.models, "generate_content", AsyncMock(side_effect=error)
        )

        with pytest.raises(ProviderError) as exc_info:
            await adapter.complete(_request([Message(role=Role.USER, content="Hi")]))
        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_complete_real_api(self, api_keys):
        """Integration test: one short answer from the real API."""
        if not api_keys["gemini"]:
            pytest.skip("GEMINI_API_KEY not set")

        adapter = GeminiAdapter(api_key=api_keys["gemini"], model="gemini-2.5-flash")
        answer = await adapter.complete(
            _request([Message(role=Role.USER, content="Reply with the word pong")], model="gemini-2.5-flash")
        )
        assert answer


class TestCreateAdapter:
    """Tests for the adapter factory."""

    def test_creates_local_adapter(self):
        """Test dispatch on a provider id, case-insensitively."""
        adapter = create_adapter(ProviderConfig(
            provider_id="OLLAMA", endpoint_url="http://gpu-box:11434/", model_id="llama3.2:3b"
        ))
        assert isinstance(adapter, OllamaAdapter)
        assert adapter.base_url == "http://gpu-box:11434"

    def test_unknown_provider(self):
        """Test that an unknown provider id is rejected at dispatch."""
        with pytest.raises(UnknownProviderError, match="Unknown provider: mystery"):
            create_adapter(ProviderConfig(provider_id="mystery", model_id="x"))

    def test_hosted_provider_without_key(self):
        """Test that missing credentials surface as ConfigError."""
        with pytest.raises(ConfigError):
            create_adapter(ProviderConfig(provider_id="openrouter", model_id="x"))
