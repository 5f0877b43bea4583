"""测试规划服务的请求构造和错误处理（不访问网络）"""

from types import SimpleNamespace

import httpx
import openai
import pytest
import requests

from phone_claw.config.settings import CustomProvider, Settings
from phone_claw.errors import ConfigurationError, ProviderError
from phone_claw.providers import (
    ClaudeProvider,
    GeminiProvider,
    GenericOpenAIProvider,
    OpenAIProvider,
    create_provider,
)
from phone_claw.providers.base import MAX_TOKENS


class StubResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._data is None:
            raise ValueError("No JSON object could be decoded")
        return self._data


class StubSession:
    """记录请求的 requests.Session 替身"""

    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def fake_openai_client(create):
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def openai_reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


# ----------------------------------------------------------------------
# Claude


def test_claude_request_shape():
    """测试：Claude 请求头、系统提示词和截图位置"""
    session = StubSession(StubResponse(data={"content": [{"type": "text", "text": "[]"}]}))
    provider = ClaudeProvider("sk-ant", session=session)

    assert provider.plan_next("打开设置", screenshot_base64="AAAA") == "[]"

    post = session.posts[0]
    assert post["url"] == "https://api.anthropic.com/v1/messages"
    assert post["headers"] == {"x-api-key": "sk-ant", "anthropic-version": "2023-06-01"}
    assert post["timeout"] == (30.0, 120.0)
    assert session.headers["Content-Type"] == "application/json"

    content = post["json"]["messages"][0]["content"]
    assert [block["type"] for block in content] == ["text", "image", "text"]
    assert content[0]["text"] == provider.system_prompt
    assert content[1]["source"]["data"] == "AAAA"
    assert content[2]["text"].startswith("Task: 打开设置")
    assert post["json"]["max_tokens"] == MAX_TOKENS


def test_claude_without_screenshot():
    session = StubSession(StubResponse(data={"content": [{"type": "text", "text": "[]"}]}))
    ClaudeProvider("sk-ant", session=session).plan_next("打开设置")
    content = session.posts[0]["json"]["messages"][0]["content"]
    assert [block["type"] for block in content] == ["text", "text"]


def test_http_error_becomes_provider_error():
    """测试：非 2xx 响应转换为 ProviderError 并带状态码"""
    session = StubSession(StubResponse(status_code=401, text="invalid x-api-key"))
    provider = ClaudeProvider("bad", session=session)

    with pytest.raises(ProviderError) as exc_info:
        provider.plan_next("打开设置")

    assert exc_info.value.status_code == 401
    assert exc_info.value.provider == "Claude"
    assert "invalid x-api-key" in str(exc_info.value)


def test_network_error_becomes_provider_error():
    """测试：网络异常转换为 ProviderError"""
    messages = []
    session = StubSession(error=requests.exceptions.ConnectTimeout("timed out"))
    provider = ClaudeProvider("sk-ant", session=session)
    provider.on_log_callback = messages.append

    with pytest.raises(ProviderError):
        provider.plan_next("打开设置")
    assert messages and messages[0].startswith("[Claude]")


def test_invalid_json_and_missing_text():
    """测试：响应不是 JSON 或没有文本字段都视为失败"""
    with pytest.raises(ProviderError):
        ClaudeProvider("k", session=StubSession(StubResponse(data=None))).plan_next("x")
    with pytest.raises(ProviderError):
        ClaudeProvider("k", session=StubSession(StubResponse(data={"content": []}))).plan_next("x")


def test_blank_text_is_returned_to_decoder():
    """测试：空白文本原样返回（由解码器视为没有后续动作），不是错误"""
    blank = StubResponse(data={"content": [{"type": "text", "text": "   "}]})
    assert ClaudeProvider("k", session=StubSession(blank)).plan_next("x") == "   "

    empty = StubResponse(data={"candidates": [{"content": {"parts": [{"text": ""}]}}]})
    assert GeminiProvider("g", session=StubSession(empty)).plan_next("x") == ""

    client = fake_openai_client(lambda **kwargs: openai_reply(""))
    assert OpenAIProvider("sk", client=client).plan_next("x") == ""


# ----------------------------------------------------------------------
# Gemini


def test_gemini_request_shape():
    """测试：Gemini 端点、鉴权头和生成参数"""
    data = {"candidates": [{"content": {"parts": [{"text": '[{"action": "PRESS_HOME"}]'}]}}]}
    session = StubSession(StubResponse(data=data))
    provider = GeminiProvider("g-key", model="gemini-1.5-flash", session=session)

    assert provider.plan_next("回到主页", screenshot_base64="BBBB") == '[{"action": "PRESS_HOME"}]'

    post = session.posts[0]
    assert post["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    )
    assert post["headers"] == {"x-goog-api-key": "g-key"}
    parts = post["json"]["contents"][0]["parts"]
    assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": "BBBB"}}
    assert post["json"]["generationConfig"]["maxOutputTokens"] == MAX_TOKENS


def test_gemini_missing_candidates():
    session = StubSession(StubResponse(data={"candidates": []}))
    with pytest.raises(ProviderError):
        GeminiProvider("g-key", session=session).plan_next("x")


# ----------------------------------------------------------------------
# 通用 OpenAI 兼容


def test_generic_provider_auth_and_endpoint():
    """测试：自定义鉴权头和前缀，端点拼接"""
    custom = CustomProvider(
        name="Proxy",
        base_url="https://proxy.example.com/v1/",
        api_key="abc",
        model_name="qwen-vl",
        api_key_header="api-key",
        api_key_prefix="",
    )
    data = {"choices": [{"message": {"content": "[]"}}]}
    session = StubSession(StubResponse(data=data))
    provider = GenericOpenAIProvider(custom, session=session)

    assert provider.name == "Proxy"
    assert provider.plan_next("x", screenshot_base64="CCCC") == "[]"

    post = session.posts[0]
    assert post["url"] == "https://proxy.example.com/v1/chat/completions"
    assert post["headers"] == {"api-key": "abc"}
    user = post["json"]["messages"][1]["content"]
    assert user[0]["image_url"]["url"] == "data:image/png;base64,CCCC"


def test_generic_provider_text_only_model():
    """测试：不支持视觉的模型只发送纯文本"""
    custom = CustomProvider(name="DeepSeek", base_url="https://api.deepseek.com/v1",
                            api_key="k", model_name="deepseek-chat", supports_vision=False)
    payload = GenericOpenAIProvider(custom, session=StubSession()).build_payload("hello", "CCCC")
    assert payload["messages"][1]["content"] == "hello"


def test_generic_provider_without_key_sends_no_auth():
    custom = CustomProvider(name="Ollama", base_url="http://localhost:11434/v1", model_name="llava")
    assert GenericOpenAIProvider(custom, session=StubSession()).auth_headers() == {}


def test_generic_provider_unexpected_shape():
    session = StubSession(StubResponse(data={"error": "oops"}))
    custom = CustomProvider(name="X", base_url="http://x", model_name="m")
    with pytest.raises(ProviderError):
        GenericOpenAIProvider(custom, session=session).plan_next("x")


# ----------------------------------------------------------------------
# OpenAI SDK


def test_openai_messages_and_reply():
    """测试：OpenAI 请求消息和参数"""
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return openai_reply('[{"action": "PRESS_BACK"}]')

    provider = OpenAIProvider("sk", model="gpt-4o-mini", client=fake_openai_client(create))

    assert provider.plan_next("返回", screenshot_base64="DDDD") == '[{"action": "PRESS_BACK"}]'

    kwargs = calls[0]
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["max_tokens"] == MAX_TOKENS
    system, user = kwargs["messages"]
    assert system == {"role": "system", "content": provider.system_prompt}
    assert user["content"][0]["type"] == "image_url"
    assert user["content"][1]["text"].startswith("Task: 返回")


def test_openai_errors_become_provider_errors():
    """测试：SDK 异常转换为 ProviderError"""
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    def status_error(**kwargs):
        response = httpx.Response(429, request=request)
        raise openai.APIStatusError("rate limited", response=response, body=None)

    def connection_error(**kwargs):
        raise openai.APIConnectionError(request=request)

    with pytest.raises(ProviderError) as exc_info:
        OpenAIProvider("sk", client=fake_openai_client(status_error)).plan_next("x")
    assert exc_info.value.status_code == 429

    with pytest.raises(ProviderError):
        OpenAIProvider("sk", client=fake_openai_client(connection_error)).plan_next("x")


def test_openai_null_content():
    client = fake_openai_client(lambda **kwargs: openai_reply(None))
    with pytest.raises(ProviderError):
        OpenAIProvider("sk", client=client).plan_next("x")


# ----------------------------------------------------------------------
# 工厂


def test_factory_builds_configured_provider():
    """测试：按配置创建对应的规划服务"""
    settings = Settings(provider="claude", claude_api_key="sk-ant", claude_model="claude-x")
    provider = create_provider(settings)
    assert isinstance(provider, ClaudeProvider)
    assert provider.model == "claude-x"

    gemini = Settings(provider="gemini", gemini_api_key="g")
    assert isinstance(create_provider(gemini), GeminiProvider)
    assert isinstance(create_provider(Settings(openai_api_key="sk")), OpenAIProvider)

    # 命令行指定的服务优先于配置
    settings.openai_api_key = "sk"
    assert isinstance(create_provider(settings, provider="openai"), OpenAIProvider)


def test_factory_custom_provider_from_preset():
    """测试：自定义服务可以直接使用内置预设"""
    settings = Settings(provider="custom", selected_custom_provider="ollama")
    provider = create_provider(settings)
    assert isinstance(provider, GenericOpenAIProvider)
    assert provider.endpoint == "http://localhost:11434/v1/chat/completions"


@pytest.mark.parametrize("settings", [
    Settings(provider="openai"),
    Settings(provider="claude", claude_api_key="   "),
    Settings(provider="custom"),
    Settings(provider="custom", selected_custom_provider="missing"),
    Settings(provider="unknown", openai_api_key="sk"),
])
def test_factory_configuration_errors(settings):
    """测试：缺少 API Key、未选择或未知服务时报配置错误"""
    with pytest.raises(ConfigurationError):
        create_provider(settings)
