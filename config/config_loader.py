"""Load settings.yaml into typed dataclasses. Detects configured agents at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from cram.errors import UnknownStrategy
from cram.models import Strategy

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    temperature: float | None = None


@dataclass
class PromptsConfig:
    personas: dict[str, str] = field(default_factory=dict)
    default_system: str = "You are a helpful AI assistant working as part of a development team."


@dataclass
class DefaultsConfig:
    strategy: Strategy = Strategy.COLLABORATIVE
    max_rounds: int = 3
    require_consensus: bool = True
    meeting_max_turns: int = 8
    output_dir: Path = Path("./output")
    log_level: str = "INFO"


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


def _parse_strategy(value: str) -> Strategy:
    try:
        return Strategy(str(value).lower())
    except ValueError as exc:
        raise UnknownStrategy(str(value)) from exc


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, UnknownStrategy if the
    default strategy is not one of the four known variants.
    Logs but does not raise for missing API keys; callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    defaults_raw = raw.get("defaults", {})
    defaults = DefaultsConfig(
        strategy=_parse_strategy(defaults_raw.get("strategy", "collaborative")),
        max_rounds=int(defaults_raw.get("max_rounds", 3)),
        require_consensus=bool(defaults_raw.get("require_consensus", True)),
        meeting_max_turns=int(defaults_raw.get("meeting_max_turns", 8)),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        log_level=str(defaults_raw.get("log_level", "INFO")).upper(),
    )

    prompts_raw = raw.get("prompts", {})
    personas_raw = raw.get("personas", {})
    prompts = PromptsConfig(
        personas={k: " ".join(str(v).split()) for k, v in personas_raw.items()},
    )
    if "default_system" in prompts_raw:
        prompts.default_system = str(prompts_raw["default_system"])

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw.get("models", {}).items():
        temperature = model_raw.get("temperature")
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
            temperature=float(temperature) if temperature is not None else None,
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        # Local OpenAI-compatible servers (Ollama, vLLM, LM Studio) need no key
        if api_key or bool(model_raw.get("keyless", False)):
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        inbox=inbox,
        available_providers=available_providers,
    )
