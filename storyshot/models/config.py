"""Configuration models for storyshot."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from storyshot.errors import ConfigurationError

BROWSER_ENGINES = ("chromium", "firefox", "webkit")

# project name -> (engine, Playwright device descriptor)
DEVICE_PROFILES = {
    "mobile-chrome": ("chromium", "Pixel 5"),
    "mobile-safari": ("webkit", "iPhone 12"),
}

SUPPORTED_BROWSERS = BROWSER_ENGINES + tuple(DEVICE_PROFILES)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def browser_engine(browser: str) -> str:
    """Return the Playwright engine that runs ``browser`` (a desktop engine or device profile)."""
    if browser in DEVICE_PROFILES:
        return DEVICE_PROFILES[browser][0]
    return browser


class StorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Literal["minio", "s3"] = "minio"
    bucket: str = Field(default="visual-test-snapshots", min_length=3)
    endpoint: str = "localhost"
    port: int = Field(default=9000, ge=1, le=65535)
    use_ssl: bool = False
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def check_credentials(self) -> "StorageConfig":
        # boto3 can fall back to its own credential chain, the MinIO client cannot
        if self.provider == "minio" and not (self.access_key and self.secret_key):
            raise ValueError("MinIO storage requires both access_key and secret_key")
        if bool(self.access_key) != bool(self.secret_key):
            raise ValueError("access_key and secret_key must be set together")
        return self


class ToleranceConfig(BaseModel):
    """Pass iff pixels over ``threshold`` distance number at most ``max_diff_pixels``."""

    model_config = ConfigDict(frozen=True)

    threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_diff_pixels: int = Field(default=100, ge=0)


class StorybookConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = "http://localhost:6006"
    index_path: str = ""  # file path or URL; empty means "{url}/index.json"
    visual_check_tag: str = "visual:check"
    excluded_suffix: str = "--docs"
    iframe_path: str = "/iframe.html"
    root_selector: str = "#storybook-root"
    mask_selectors: list[str] = Field(
        default_factory=lambda: ['[data-testid="timestamp"]', ".sb-show-addons"]
    )

    @property
    def catalog_source(self) -> str:
        return self.index_path or f"{self.url.rstrip('/')}/index.json"

    def story_url(self, story_id: str) -> str:
        return f"{self.url.rstrip('/')}{self.iframe_path}?id={story_id}&viewMode=story"


class TimingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    navigation_timeout_ms: int = Field(default=30000, ge=0)
    network_idle_timeout_ms: int = Field(default=10000, ge=0)
    selector_timeout_ms: int = Field(default=10000, ge=0)
    animation_settle_ms: int = Field(default=500, ge=0)
    catalog_timeout_seconds: float = Field(default=30.0, gt=0)
    precondition_timeout_seconds: float = Field(default=5.0, gt=0)


class ViewportConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = 1280
    height: int = 720


class FrameworkConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = Field(default_factory=lambda: StorageConfig(
        access_key="minioadmin", secret_key="minioadmin",
    ))
    tolerance: ToleranceConfig = Field(default_factory=ToleranceConfig)
    storybook: StorybookConfig = Field(default_factory=StorybookConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)

    # Execution
    browsers: list[str] = Field(default_factory=lambda: ["chromium"])
    workers: int = Field(default=4, ge=1)
    retries: int = Field(default=0, ge=0)
    headless: bool = True
    ci: bool = False

    # Opt-in switch for the baseline overwrite workflow
    update_baselines: bool = False

    # Output
    output_dir: str = "./storyshot-results"
    report_formats: list[str] = Field(default_factory=lambda: ["html", "json"])

    @field_validator("browsers")
    @classmethod
    def check_browsers(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one browser is required")
        unknown = [b for b in v if b not in SUPPORTED_BROWSERS]
        if unknown:
            raise ValueError(
                f"unsupported browser(s) {unknown}; choose from {list(SUPPORTED_BROWSERS)}"
            )
        return v

    @property
    def runs_dir(self) -> Path:
        return Path(self.output_dir) / "runs"

    @property
    def reports_dir(self) -> Path:
        return Path(self.output_dir) / "reports"

    @property
    def logs_dir(self) -> Path:
        return Path(self.output_dir) / "logs"

    @classmethod
    def load(cls, path: str | Path) -> "FrameworkConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Config file is not valid JSON: {e}", path=str(path)) from e
        if not isinstance(data, dict):
            raise ConfigurationError("Config file must hold a JSON object", path=str(path))
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config file: {e}", path=str(path)) from e

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "FrameworkConfig":
        """Build a config from environment variables.

        Recognised variables (all optional):
            STORAGE_PROVIDER, STORAGE_BUCKET, STORAGE_ENDPOINT, STORAGE_PORT,
            STORAGE_USE_SSL, STORAGE_ACCESS_KEY, STORAGE_SECRET_KEY, AWS_REGION,
            STORAGE_TIMEOUT, VISUAL_THRESHOLD, MAX_DIFF_PIXELS, UPDATE_BASELINES,
            CI, STORYBOOK_URL, STORYBOOK_INDEX, STORYSHOT_BROWSERS,
            STORYSHOT_WORKERS, STORYSHOT_RETRIES, STORYSHOT_OUTPUT_DIR,
            STORYSHOT_HEADED.

        CI mode defaults to 2 retries and a single worker.

        Raises:
            ConfigurationError: if any variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        try:
            ci = _env_bool(env, "CI")
            provider = env.get("STORAGE_PROVIDER", "minio").strip().lower() or "minio"

            storage_kwargs: dict = {
                "provider": provider,
                "bucket": env.get("STORAGE_BUCKET") or "visual-test-snapshots",
                "endpoint": env.get("STORAGE_ENDPOINT") or "localhost",
                "port": _env_int(env, "STORAGE_PORT", 9000),
                "use_ssl": _env_bool(env, "STORAGE_USE_SSL"),
                "region": env.get("AWS_REGION") or "us-east-1",
                "timeout_seconds": _env_float(env, "STORAGE_TIMEOUT", 30.0),
            }
            access_key = env.get("STORAGE_ACCESS_KEY")
            secret_key = env.get("STORAGE_SECRET_KEY")
            if provider == "minio":
                access_key = access_key or "minioadmin"
                secret_key = secret_key or "minioadmin"
            storage_kwargs["access_key"] = access_key or None
            storage_kwargs["secret_key"] = secret_key or None

            storybook_kwargs: dict = {}
            if env.get("STORYBOOK_URL"):
                storybook_kwargs["url"] = env["STORYBOOK_URL"]
            if env.get("STORYBOOK_INDEX"):
                storybook_kwargs["index_path"] = env["STORYBOOK_INDEX"]

            browsers_str = env.get("STORYSHOT_BROWSERS", "chromium")
            browsers = [b.strip().lower() for b in browsers_str.split(",") if b.strip()]

            return cls(
                storage=StorageConfig(**storage_kwargs),
                tolerance=ToleranceConfig(
                    threshold=_env_float(env, "VISUAL_THRESHOLD", 0.2),
                    max_diff_pixels=_env_int(env, "MAX_DIFF_PIXELS", 100),
                ),
                storybook=StorybookConfig(**storybook_kwargs),
                browsers=browsers,
                workers=_env_int(env, "STORYSHOT_WORKERS", 1 if ci else 4),
                retries=_env_int(env, "STORYSHOT_RETRIES", 2 if ci else 0),
                headless=not _env_bool(env, "STORYSHOT_HEADED"),
                ci=ci,
                update_baselines=_env_bool(env, "UPDATE_BASELINES"),
                output_dir=env.get("STORYSHOT_OUTPUT_DIR") or "./storyshot-results",
            )
        except (ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e


def _env_bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
