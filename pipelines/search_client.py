"""Runtime collaborator selection for online vs. fixture modes."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Any, Protocol

from app.clients.brave import BraveSearchClient
from app.clients.web_page import WebPageClient, WebPageError, html_to_text
from app.config import settings
from app.services.judge.base import Judge
from app.services.judge.llm import LLMJudge
from app.services.judge.rules import RuleBasedJudge
from app.services.leads.errors import FatalConfigurationError
from pipelines.verification.gatherers import (
    HttpPageGatherer,
    PageClient,
    ProviderSearchGatherer,
    SearchClient,
    SleepFn,
)

logger = logging.getLogger("pipelines.search_client")

MODE_ENV = "LEADCHECK_MODE"
FIXTURE_DIR_ENV = "LEADCHECK_FIXTURE_DIR"
JUDGE_BACKEND_ENV = "JUDGE_BACKEND"


class RuntimeMode(str, Enum):
    """Available runtime behaviors."""

    ONLINE = "online"
    FIXTURE = "fixture"


class ModeError(RuntimeError):
    """Raised when runtime mode configuration is invalid."""

    def __init__(self, message: str, code: str = "E_MODE_UNSUPPORTED") -> None:
        super().__init__(message)
        self.code = code


class FixtureNotFoundError(ModeError):
    """Raised when a requested fixture artifact cannot be located."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Fixture not found: {path}", code="E_FIXTURE_NOT_FOUND")
        self.path = path


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved runtime configuration."""

    mode: RuntimeMode
    fixture_base: Path | None = None
    judge_backend: str = "auto"


def _parse_mode(value: str | None) -> RuntimeMode:
    if not value:
        return RuntimeMode.FIXTURE
    normalized = value.strip().lower()
    for mode in RuntimeMode:
        if normalized == mode.value:
            return mode
    raise ModeError(f"Unsupported {MODE_ENV} value: {value}")


def get_runtime_config() -> RuntimeConfig:
    """Resolve runtime configuration from the environment, falling back to settings."""
    mode = _parse_mode(os.getenv(MODE_ENV) or settings.leadcheck_mode)
    fixture_base: Path | None = None
    if mode is RuntimeMode.FIXTURE:
        fixture_base = Path(os.getenv(FIXTURE_DIR_ENV) or settings.leadcheck_fixture_dir).expanduser()
    backend = (os.getenv(JUDGE_BACKEND_ENV) or settings.judge_backend or "auto").strip().lower()
    config = RuntimeConfig(mode=mode, fixture_base=fixture_base, judge_backend=backend)
    logger.debug("leadcheck runtime mode=%s judge=%s", config.mode.value, config.judge_backend)
    return config


class LocalFixtureStore:
    """Loads fixtures from the repository tree."""

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def load_json(self, relative_path: str) -> Any:
        target = (self._base_dir / relative_path).resolve()
        if not target.exists():
            raise FixtureNotFoundError(str(target))
        with target.open("r", encoding="utf-8") as infile:
            return json.load(infile)


class FixtureStore(Protocol):
    def load_json(self, relative_path: str) -> Any:
        ...


class FixtureSearchClient:
    """Search client answering from `search/results.json` (query -> list of hits).

    A `"*"` entry is used for queries without their own snapshot.
    """

    def __init__(self, store: FixtureStore, artifact: str = "search/results.json") -> None:
        self._store = store
        self._artifact = artifact

    @cached_property
    def _snapshots(self) -> dict[str, list[dict[str, Any]]]:
        payload = self._store.load_json(self._artifact)
        if not isinstance(payload, dict):
            raise FixtureNotFoundError(self._artifact)
        return payload

    def search(
        self,
        *,
        query: str,
        count: int,
        country: str = "JP",  # noqa: ARG002 - signature parity
        search_lang: str = "ja",  # noqa: ARG002 - signature parity
    ) -> list[dict[str, Any]]:
        items = self._snapshots.get(query, self._snapshots.get("*", []))
        return list(items[: max(0, count)])


class FixturePageClient:
    """Page client answering from `pages/pages.json` (url -> HTML)."""

    def __init__(self, store: FixtureStore, artifact: str = "pages/pages.json") -> None:
        self._store = store
        self._artifact = artifact

    @cached_property
    def _pages(self) -> dict[str, str]:
        payload = self._store.load_json(self._artifact)
        if not isinstance(payload, dict):
            raise FixtureNotFoundError(self._artifact)
        return payload

    def fetch_text(self, url: str, *, limit: int | None = None) -> str:
        if url not in self._pages:
            raise WebPageError(f"Fixture page missing: {url}", code="PAGE_404")
        return html_to_text(self._pages[url], limit=limit)


def _build_fixture_store(config: RuntimeConfig) -> FixtureStore:
    if not config.fixture_base:
        raise ModeError("Fixture base path is required in fixture mode.")
    return LocalFixtureStore(config.fixture_base)


def get_search_client(config: RuntimeConfig | None = None) -> SearchClient:
    """Return the provider search client for the runtime mode."""
    config = config or get_runtime_config()
    if config.mode is RuntimeMode.FIXTURE:
        return FixtureSearchClient(_build_fixture_store(config))
    try:
        return BraveSearchClient(api_key=settings.brave_api_key or os.getenv("BRAVE_API_KEY", ""))
    except ValueError as exc:
        raise FatalConfigurationError(str(exc)) from exc


def get_page_client(config: RuntimeConfig | None = None) -> PageClient:
    config = config or get_runtime_config()
    if config.mode is RuntimeMode.FIXTURE:
        return FixturePageClient(_build_fixture_store(config))
    return WebPageClient(timeout=settings.page_timeout_seconds)


def get_judge(config: RuntimeConfig | None = None) -> Judge:
    """Pick the judge: `llm`, `rules`, or `auto` (LLM online when a key is configured)."""
    config = config or get_runtime_config()
    backend = config.judge_backend
    if backend == "rules":
        return RuleBasedJudge()
    if backend == "llm":
        return LLMJudge()
    if backend != "auto":
        raise ModeError(f"Unsupported {JUDGE_BACKEND_ENV} value: {backend}")
    if config.mode is RuntimeMode.ONLINE and settings.openai_api_key:
        return LLMJudge()
    return RuleBasedJudge()


def get_search_gatherer(
    config: RuntimeConfig | None = None,
    *,
    sleep: SleepFn | None = None,
) -> ProviderSearchGatherer:
    config = config or get_runtime_config()
    settle = settings.settle_delay_seconds if config.mode is RuntimeMode.ONLINE else 0.0
    return ProviderSearchGatherer(
        get_search_client(config),
        country=settings.search_country,
        search_lang=settings.search_lang,
        settle_delay=settle,
        retry_attempts=settings.search_retry_attempts,
        retry_base_delay=settings.search_retry_base_delay,
        sleep=sleep,
    )


def get_page_gatherer(
    judge: Judge,
    config: RuntimeConfig | None = None,
    *,
    sleep: SleepFn | None = None,
) -> HttpPageGatherer:
    config = config or get_runtime_config()
    settle = settings.settle_delay_seconds if config.mode is RuntimeMode.ONLINE else 0.0
    return HttpPageGatherer(
        get_page_client(config),
        judge,
        text_limit=settings.page_text_limit,
        settle_delay=settle,
        sleep=sleep,
    )
