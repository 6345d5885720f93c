"""Runtime configuration for extraction and merge runs."""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
from typing import Mapping

from newsvault.canonical import DEFAULT_CANONICAL_HOST, DEFAULT_SOURCE_DOMAIN
from newsvault.extraction.body import BODY_STRATEGIES, STRATEGY_EVALUATE
from newsvault.extraction.script_eval import DEFAULT_EVAL_TIMEOUT_SECONDS
from newsvault.pipeline.scheduler import default_concurrency
from newsvault.storage.materializer import DEFAULT_RECORD_FILENAME


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.001) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Validated runtime settings shared by the CLI entrypoints."""

    concurrency: int
    eval_timeout_seconds: float = DEFAULT_EVAL_TIMEOUT_SECONDS
    body_strategy: str = STRATEGY_EVALUATE
    canonical_host: str = DEFAULT_CANONICAL_HOST
    source_domain: str = DEFAULT_SOURCE_DOMAIN
    record_filename: str = DEFAULT_RECORD_FILENAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        concurrency_raw = source.get("NEWSVAULT_CONCURRENCY", "").strip()
        timeout_raw = source.get("NEWSVAULT_EVAL_TIMEOUT_SECONDS", str(DEFAULT_EVAL_TIMEOUT_SECONDS)).strip()
        strategy = source.get("NEWSVAULT_BODY_STRATEGY", STRATEGY_EVALUATE).strip().lower()
        canonical_host = source.get("NEWSVAULT_CANONICAL_HOST", DEFAULT_CANONICAL_HOST).strip().strip("/")
        source_domain = source.get("NEWSVAULT_SOURCE_DOMAIN", DEFAULT_SOURCE_DOMAIN).strip()
        record_filename = source.get("NEWSVAULT_RECORD_FILENAME", DEFAULT_RECORD_FILENAME).strip()

        concurrency = (
            _parse_positive_int(name="NEWSVAULT_CONCURRENCY", raw_value=concurrency_raw)
            if concurrency_raw
            else default_concurrency()
        )
        if not timeout_raw:
            raise ValueError("NEWSVAULT_EVAL_TIMEOUT_SECONDS cannot be empty")
        eval_timeout_seconds = _parse_positive_float(name="NEWSVAULT_EVAL_TIMEOUT_SECONDS", raw_value=timeout_raw)

        if strategy not in BODY_STRATEGIES:
            raise ValueError(f"NEWSVAULT_BODY_STRATEGY must be one of: {', '.join(BODY_STRATEGIES)}")
        if not canonical_host:
            raise ValueError("NEWSVAULT_CANONICAL_HOST cannot be empty")
        if "://" in canonical_host:
            raise ValueError("NEWSVAULT_CANONICAL_HOST must be a bare host name")
        if not source_domain:
            raise ValueError("NEWSVAULT_SOURCE_DOMAIN cannot be empty")
        if not record_filename or "/" in record_filename or "\\" in record_filename:
            raise ValueError("NEWSVAULT_RECORD_FILENAME must be a bare file name")

        return cls(
            concurrency=concurrency,
            eval_timeout_seconds=eval_timeout_seconds,
            body_strategy=strategy,
            canonical_host=canonical_host,
            source_domain=source_domain,
            record_filename=record_filename,
        )

    def with_overrides(
        self,
        *,
        concurrency: int | None = None,
        eval_timeout_seconds: float | None = None,
        body_strategy: str | None = None,
    ) -> "PipelineSettings":
        """Apply command-line overrides on top of environment-derived settings."""

        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if eval_timeout_seconds is not None and eval_timeout_seconds <= 0:
            raise ValueError("eval timeout must be > 0")
        if body_strategy is not None and body_strategy not in BODY_STRATEGIES:
            raise ValueError(f"body strategy must be one of: {', '.join(BODY_STRATEGIES)}")

        return replace(
            self,
            concurrency=self.concurrency if concurrency is None else concurrency,
            eval_timeout_seconds=self.eval_timeout_seconds if eval_timeout_seconds is None else eval_timeout_seconds,
            body_strategy=self.body_strategy if body_strategy is None else body_strategy,
        )
