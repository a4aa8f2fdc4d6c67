import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import find_dotenv, load_dotenv

from finance_chat.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DEFAULT_LANGUAGE",
    "BASE_CURRENCY",
    "RATE_PROVIDER_URL",
    "RATE_PROVIDER_TOKEN",
    "RATE_PROVIDER_TIMEOUT",
    "RATE_CACHE_TTL",
    "TREND_PERIODS",
    "TREND_THRESHOLD_PERCENT",
    "BUDGET_WARNING_PERCENT",
    "FUZZY_INTENT_THRESHOLD",
)

DEFAULT_LANGUAGE = "en"
DEFAULT_BASE_CURRENCY = "EUR"
DEFAULT_RATE_PROVIDER_URL = "https://api.frankfurter.app"
DEFAULT_RATE_PROVIDER_TIMEOUT = 10.0
DEFAULT_RATE_CACHE_TTL_SECONDS = 3600.0
DEFAULT_TREND_PERIODS = 6
DEFAULT_TREND_THRESHOLD_PERCENT = Decimal("5")
DEFAULT_BUDGET_WARNING_PERCENT = Decimal("80")
DEFAULT_FUZZY_INTENT_THRESHOLD = 85.0


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    escaped = False
    for index, char in enumerate(raw_value):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if char == '"' and not in_single:
            in_double = not in_double
            continue
        if char == "'" and not in_double:
            in_single = not in_single
            continue
        if char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) < 2:
        return raw_value
    if raw_value[0] == raw_value[-1] == '"':
        value = raw_value[1:-1]
        return value.replace('\\"', '"').replace("\\\\", "\\")
    if raw_value[0] == raw_value[-1] == "'":
        value = raw_value[1:-1]
        return value.replace("\\'", "'").replace("\\\\", "\\")
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    """Read the flat ``KEY: value`` config file; unknown syntax is skipped."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            if not key:
                continue
            cleaned = _strip_inline_comment(raw_value).strip()
            if not cleaned:
                continue
            value = _unquote_value(cleaned)
            if value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    # Config file values only fill gaps; the environment always wins.
    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def get_config_path() -> str | None:
    return _CONFIG_FILE_PATH


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        ensure_dir(path)


def get_env_str(name: str, default: str, *, upper: bool = False) -> str:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    return raw.upper() if upper else raw


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(name: str, default: float = 0.0, min_value: float | None = None) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_decimal(name: str, default: Decimal, min_value: Decimal | None = None) -> Decimal:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if not value.is_finite() or (min_value is not None and value < min_value):
        logger.warning("[ENV] %s='%s' out of range, using default %s.", name, raw, default)
        return default
    return value


_SENSITIVE_ENV_KEYS = (
    "KEY",
    "TOKEN",
    "SECRET",
    "PASSWORD",
    "PASS",
    "AUTH",
    "BEARER",
    "PRIVATE",
)


def _should_mask_env_value(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SENSITIVE_ENV_KEYS):
        return True
    if value.startswith("Bearer ") or value.startswith("bearer "):
        return True
    if value.startswith("eyJ") and value.count(".") == 2:
        return True
    return False


def _mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _should_mask_env_value(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Logging configured environment variables (masked where needed).")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else _mask_env_value(key, raw_value)
        logger.info("[ENV] %s=%s", key, value)


@dataclass(frozen=True)
class EngineSettings:
    default_language: str
    base_currency: str
    rate_provider_url: str
    rate_provider_token: str | None
    rate_provider_timeout: float
    rate_cache_ttl: float
    trend_periods: int
    trend_threshold_percent: Decimal
    budget_warning_percent: Decimal
    fuzzy_intent_threshold: float


def load_engine_settings() -> EngineSettings:
    """Snapshot the current environment into typed engine settings."""
    return EngineSettings(
        default_language=get_env_str("DEFAULT_LANGUAGE", DEFAULT_LANGUAGE).lower(),
        base_currency=get_env_str("BASE_CURRENCY", DEFAULT_BASE_CURRENCY, upper=True),
        rate_provider_url=get_env_str("RATE_PROVIDER_URL", DEFAULT_RATE_PROVIDER_URL).rstrip("/"),
        rate_provider_token=os.getenv("RATE_PROVIDER_TOKEN") or None,
        rate_provider_timeout=get_env_float(
            "RATE_PROVIDER_TIMEOUT",
            DEFAULT_RATE_PROVIDER_TIMEOUT,
            min_value=0.1,
        ),
        rate_cache_ttl=get_env_float(
            "RATE_CACHE_TTL",
            DEFAULT_RATE_CACHE_TTL_SECONDS,
            min_value=0.0,
        ),
        trend_periods=get_env_int("TREND_PERIODS", DEFAULT_TREND_PERIODS, min_value=2),
        trend_threshold_percent=get_env_decimal(
            "TREND_THRESHOLD_PERCENT",
            DEFAULT_TREND_THRESHOLD_PERCENT,
            min_value=Decimal("0"),
        ),
        budget_warning_percent=get_env_decimal(
            "BUDGET_WARNING_PERCENT",
            DEFAULT_BUDGET_WARNING_PERCENT,
            min_value=Decimal("0"),
        ),
        fuzzy_intent_threshold=get_env_float(
            "FUZZY_INTENT_THRESHOLD",
            DEFAULT_FUZZY_INTENT_THRESHOLD,
            min_value=0.0,
        ),
    )


load_environment()

LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(LOG_DIR, CONFIG_DIR)
