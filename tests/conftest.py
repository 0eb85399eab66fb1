"""
Pytest 配置和共享 fixtures
"""
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from resilient_proxy.core.config import Settings
from resilient_proxy.main import create_app
from resilient_proxy.models.provider import Endpoint, Provider, SelectionMode
from resilient_proxy.providers.base import (
    ChunkStream,
    UpstreamClient,
    UpstreamTarget,
    UpstreamTransportError,
)
from resilient_proxy.services.registry import EndpointRegistry


MASTER_KEY = "master-key-0123456789"
ENDPOINT_KEY = "endpoint-key-0123456789"


class FakeStream(ChunkStream):
    """可脚本化的上游流"""
    
    def __init__(self, chunks: List[str], fail_after: Optional[int] = None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.closed = False
    
    async def __aiter__(self):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise UpstreamTransportError("connection reset")
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise UpstreamTransportError("connection reset")
    
    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream(UpstreamClient):
    """
    模拟上游: 按 base_url 依次返回预设结果
    
    结果可以是 dict (成功响应), FakeStream (流), 或 Exception (抛出)
    """
    
    def __init__(self, outcomes: Optional[Dict[str, List[Any]]] = None):
        self.outcomes = outcomes or {}
        self.calls: List[tuple] = []
        self.closed = False
    
    def _next(self, target: UpstreamTarget, payload: Dict[str, Any]) -> Any:
        self.calls.append((target, payload))
        queue = self.outcomes.get(target.base_url)
        if not queue:
            raise UpstreamTransportError(f"no outcome scripted for {target.base_url}")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
    
    async def chat_completion(self, target, payload):
        return self._next(target, payload)
    
    async def open_stream(self, target, payload):
        return self._next(target, payload)
    
    async def close(self) -> None:
        self.closed = True
    
    def called_urls(self) -> List[str]:
        return [target.base_url for target, _ in self.calls]


def make_provider(name: str, **kwargs) -> Provider:
    kwargs.setdefault("base_url", f"https://{name.lower()}.example.com/v1")
    kwargs.setdefault("api_key", f"sk-{name.lower()}")
    return Provider(name=name, **kwargs)


def make_endpoint(
    route: str = "/v1",
    names: tuple = ("P1", "P2"),
    mode: SelectionMode = SelectionMode.ORDERED,
    api_key: Optional[str] = None,
    **provider_kwargs
) -> Endpoint:
    return Endpoint(
        route=route,
        providers=tuple(make_provider(name, **provider_kwargs) for name in names),
        mode=mode,
        api_key=api_key,
    )


@pytest.fixture
def completion() -> Dict[str, Any]:
    """模拟 OpenAI API 响应"""
    return {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1677652288,
        "model": "gpt-3.5-turbo",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello! How can I help you today?"
                },
                "finish_reason": "stop"
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 9,
            "total_tokens": 19
        }
    }


@pytest.fixture
def chat_request() -> Dict[str, Any]:
    return {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Hello"}],
        "temperature": 0.2
    }


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        master_api_key=MASTER_KEY,
        dead_provider_check_period=0,
        app_env="testing",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def registry() -> EndpointRegistry:
    return EndpointRegistry([
        make_endpoint("/v1", ("P1", "P2"), api_key=ENDPOINT_KEY),
        make_endpoint("/forced-model", ("Forced",), model="m2"),
    ])


@pytest.fixture
def app(test_settings, registry, upstream):
    return create_app(test_settings, registry, upstream)


@pytest_asyncio.fixture
async def test_client(app):
    """创建测试客户端"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {MASTER_KEY}"}
