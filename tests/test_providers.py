"""
上游客户端测试
"""
import asyncio
import json

import httpx
import pytest

from resilient_proxy.providers.base import (
    UpstreamStatusError,
    UpstreamTarget,
    UpstreamTransportError,
)
from resilient_proxy.providers.openai import OpenAIUpstream


TARGET = UpstreamTarget(base_url="https://api.example.com/v1/", api_key="sk-test", timeout=5)
SHORT_TARGET = UpstreamTarget(base_url="https://api.example.com/v1/", api_key="sk-test", timeout=0.05)
PAYLOAD = {"model": "m1", "messages": [{"role": "user", "content": "hi"}], "stream": False}


def sse(*events: str) -> bytes:
    return "".join(f"data: {event}\n\n" for event in events).encode()


@pytest.mark.asyncio
class TestOpenAIUpstream:
    """OpenAI 兼容上游测试"""
    
    async def test_chat_completion(self, completion):
        seen = {}
        
        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion)
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            result = await upstream.chat_completion(TARGET, PAYLOAD)
        
        assert result == completion
        assert seen["url"] == "https://api.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == PAYLOAD
    
    async def test_error_status(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "slow down"}})
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await upstream.chat_completion(TARGET, PAYLOAD)
        
        assert exc_info.value.status_code == 429
        assert exc_info.value.body == {"error": {"message": "slow down"}}
    
    async def test_error_status_with_text_body(self):
        def handler(request):
            return httpx.Response(400, text="bad things")
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await upstream.chat_completion(TARGET, PAYLOAD)
        
        assert exc_info.value.body == {"error": {"message": "bad things"}}
    
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.chat_completion(TARGET, PAYLOAD)
    
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.chat_completion(TARGET, PAYLOAD)
    
    async def test_invalid_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.chat_completion(TARGET, PAYLOAD)
    
    async def test_stream(self):
        body = b": keep-alive\n\n" + sse('{"n":1}', '{"n":2}', "[DONE]")
        
        def handler(request):
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(
                200, content=body, headers={"Content-Type": "text/event-stream"}
            )
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            stream = await upstream.open_stream(TARGET, {**PAYLOAD, "stream": True})
            try:
                chunks = [chunk async for chunk in stream]
            finally:
                await stream.aclose()
        
        assert chunks == ['{"n":1}', '{"n":2}']
    
    async def test_stream_error_status(self):
        def handler(request):
            return httpx.Response(503, json={"error": {"message": "overloaded"}})
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamStatusError) as exc_info:
                await upstream.open_stream(TARGET, PAYLOAD)
        
        assert exc_info.value.status_code == 503
        assert exc_info.value.body == {"error": {"message": "overloaded"}}
    
    async def test_stream_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.open_stream(TARGET, PAYLOAD)
    
    async def test_slow_upstream_times_out(self, completion):
        """上游迟迟不响应时整体超时"""
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=completion)
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.chat_completion(SHORT_TARGET, PAYLOAD)
    
    async def test_trickling_body_times_out(self):
        """响应体持续缓慢到达时同样受总超时限制"""
        async def trickle():
            for _ in range(20):
                await asyncio.sleep(0.02)
                yield b" "
        
        def handler(request):
            return httpx.Response(200, content=trickle())
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.chat_completion(SHORT_TARGET, PAYLOAD)
    
    async def test_slow_stream_open_times_out(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, content=sse("[DONE]"))
        
        async with OpenAIUpstream(transport=httpx.MockTransport(handler)) as upstream:
            with pytest.raises(UpstreamTransportError):
                await upstream.open_stream(SHORT_TARGET, {**PAYLOAD, "stream": True})
