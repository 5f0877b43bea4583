"""
配置管理模块
管理规划服务、设备和执行参数，持久化为 JSON
"""
import json
import os
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional


PROVIDER_OPENAI = "openai"
PROVIDER_CLAUDE = "claude"
PROVIDER_GEMINI = "gemini"
PROVIDER_CUSTOM = "custom"
PROVIDERS = (PROVIDER_OPENAI, PROVIDER_CLAUDE, PROVIDER_GEMINI, PROVIDER_CUSTOM)

# 环境变量 -> 对应的 API Key 字段
ENV_API_KEYS = {
    "OPENAI_API_KEY": "openai_api_key",
    "ANTHROPIC_API_KEY": "claude_api_key",
    "GEMINI_API_KEY": "gemini_api_key",
}


@dataclass
class CustomProvider:
    """自定义 OpenAI 兼容服务"""
    name: str
    base_url: str
    api_key: str = ""
    model_name: str = ""
    supports_vision: bool = True
    api_key_header: str = "Authorization"
    api_key_prefix: str = "Bearer "

    @classmethod
    def from_dict(cls, data: dict) -> "CustomProvider":
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in data.items() if k in valid_fields})


# 内置预设
PROVIDER_PRESETS: Dict[str, CustomProvider] = {
    "openai-compatible": CustomProvider(
        name="OpenAI Compatible",
        base_url="https://api.openai.com/v1",
        model_name="gpt-4o",
    ),
    "ollama": CustomProvider(
        name="Ollama",
        base_url="http://localhost:11434/v1",
        model_name="llava",
        api_key_header="",
        api_key_prefix="",
    ),
    "lm-studio": CustomProvider(
        name="LM Studio",
        base_url="http://localhost:1234/v1",
        model_name="local-model",
        api_key_header="",
        api_key_prefix="",
    ),
    "deepseek": CustomProvider(
        name="DeepSeek",
        base_url="https://api.deepseek.com/v1",
        model_name="deepseek-chat",
        supports_vision=False,
    ),
    "groq": CustomProvider(
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        model_name="llama-3.2-90b-vision-preview",
    ),
}


def get_user_data_path() -> str:
    """获取用户数据目录，可通过 PHONE_CLAW_HOME 覆盖"""
    return os.environ.get("PHONE_CLAW_HOME") or os.path.join(os.path.expanduser("~"), ".phone_claw")


@dataclass
class Settings:
    """应用配置"""
    # 规划服务
    provider: str = PROVIDER_OPENAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    claude_api_key: str = ""
    claude_model: str = "claude-3-5-sonnet-20241022"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-pro"
    custom_providers: List[CustomProvider] = field(default_factory=list)
    selected_custom_provider: str = ""

    # 设备配置
    adb_path: str = ""
    device_id: Optional[str] = None

    # 执行配置
    max_steps: int = 20
    step_delay: float = 1.0
    action_delay: float = 0.5
    enable_screenshots: bool = True
    screenshot_max_side: int = 1280
    verify_after_step: bool = False
    verbose: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        # 过滤掉不存在的字段
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        filtered_data["custom_providers"] = [
            p if isinstance(p, CustomProvider) else CustomProvider.from_dict(p)
            for p in filtered_data.get("custom_providers") or []
        ]
        return cls(**filtered_data)

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """用环境变量填充未配置的 API Key"""
        environ = os.environ if environ is None else environ
        for env_name, attr in ENV_API_KEYS.items():
            if not getattr(self, attr) and environ.get(env_name):
                setattr(self, attr, environ[env_name])
        return self

    def api_key_for(self, provider: str) -> str:
        return {
            PROVIDER_OPENAI: self.openai_api_key,
            PROVIDER_CLAUDE: self.claude_api_key,
            PROVIDER_GEMINI: self.gemini_api_key,
        }.get(provider, "")

    def get_custom_provider(self, name: Optional[str] = None) -> Optional[CustomProvider]:
        """按名称查找自定义服务，找不到时尝试内置预设"""
        name = name or self.selected_custom_provider
        if not name:
            return None
        for provider in self.custom_providers:
            if provider.name == name:
                return provider
        return PROVIDER_PRESETS.get(name)


def get_config_path() -> str:
    """获取配置文件路径"""
    config_dir = os.path.join(get_user_data_path(), "config")
    os.makedirs(config_dir, exist_ok=True)
    return os.path.join(config_dir, "settings.json")


def get_settings(path: Optional[str] = None) -> Settings:
    """加载设置，文件不存在或损坏时使用默认值"""
    config_path = path or get_config_path()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            settings = Settings.from_dict(json.load(f))
    except (FileNotFoundError, json.JSONDecodeError):
        settings = Settings()
    return settings.apply_env()


def save_settings(settings: Settings, path: Optional[str] = None):
    """保存设置"""
    config_path = path or get_config_path()
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
