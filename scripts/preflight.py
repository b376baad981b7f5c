"""Preflight checks for LingoLens backend configuration.

Run this before starting the API to catch common misconfiguration:
  python scripts/preflight.py

Optional network checks:
  python scripts/preflight.py --check-http
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx
from dotenv import load_dotenv


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
KNOWN_TTS_RATES = {8_000, 16_000, 22_050, 24_000, 44_100, 48_000}


@dataclass
class Report:
    passed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        self.passed.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.failures.append(message)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def _load_environment() -> None:
    """Load local env files in precedence order without overwriting existing vars."""
    repo_dir = Path(__file__).resolve().parent.parent
    for env_file in (repo_dir / ".env.local", repo_dir / ".env"):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def _is_valid_http_url(value: str) -> bool:
    """Return True when value is an absolute HTTP(S) URL."""
    parsed = urlparse((value or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _env_int(name: str, default: int, report: Report, *, minimum: int = 1) -> int:
    """Parse int env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        report.fail(f"{name} must be an integer. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def _env_float(name: str, default: float, report: Report, *, minimum: float = 0.0) -> float:
    """Parse float env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        report.fail(f"{name} must be a number. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def _mask(value: str) -> str:
    """Mask secret values for safe console output."""
    trimmed = value.strip()
    if len(trimmed) < 8:
        return "***"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def _api_key() -> str:
    return (os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or "").strip()


def check_core_env(report: Report) -> None:
    """Validate the AI service credentials and endpoint."""
    api_key = _api_key()
    if not api_key:
        report.fail("GEMINI_API_KEY (or GOOGLE_API_KEY) is required.")
    else:
        if not api_key.startswith("AIza"):
            report.warn("GEMINI_API_KEY does not start with 'AIza'; verify key value.")
        report.ok(f"Gemini API key detected ({_mask(api_key)}).")

    api_base = (os.getenv("GEMINI_API_BASE") or "https://generativelanguage.googleapis.com/v1beta").strip()
    if not _is_valid_http_url(api_base):
        report.fail(f"GEMINI_API_BASE is not a valid HTTP(S) URL: {api_base!r}")
    else:
        report.ok(f"GEMINI_API_BASE={api_base}")

    for name, default in (
        ("GEMINI_TEXT_MODEL", "gemini-2.0-flash"),
        ("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts"),
    ):
        model = (os.getenv(name) or default).strip()
        if not model:
            report.fail(f"{name} must not be empty.")
        else:
            report.ok(f"{name}={model}")

    tts_model = (os.getenv("GEMINI_TTS_MODEL") or "gemini-2.5-flash-preview-tts").strip().lower()
    if tts_model and "tts" not in tts_model:
        report.warn("GEMINI_TTS_MODEL does not look like a speech model; /speak may return no audio.")

    _env_float("GEMINI_REQUEST_TIMEOUT_SECONDS", 60, report, minimum=1.0)

    log_level = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
    if log_level not in VALID_LOG_LEVELS:
        report.fail(f"LOG_LEVEL must be one of {sorted(VALID_LOG_LEVELS)}. Got: {log_level!r}")
    else:
        report.ok(f"LOG_LEVEL={log_level}")


def check_audio_format(report: Report) -> None:
    """Validate the fallback PCM format used to wrap synthesized speech."""
    rate = _env_int("TTS_SAMPLE_RATE", 24_000, report)
    if rate not in KNOWN_TTS_RATES:
        report.warn(f"TTS_SAMPLE_RATE={rate} is unusual; Gemini speech is 24000 Hz.")
    _env_int("TTS_CHANNELS", 1, report)
    bits = _env_int("TTS_BITS_PER_SAMPLE", 16, report)
    if bits % 8:
        report.fail(f"TTS_BITS_PER_SAMPLE must be a multiple of 8. Got: {bits}")
    report.ok("Audio format settings parsed successfully.")


def check_guardrails(report: Report) -> None:
    """Validate request size guardrails."""
    max_text = _env_int("MAX_TEXT_CHARS", 5000, report, minimum=0)
    if max_text == 0:
        report.warn("MAX_TEXT_CHARS is 0; text length is unbounded.")
    max_image = _env_int("MAX_IMAGE_BYTES", 8 * 1024 * 1024, report, minimum=0)
    if max_image > 20 * 1024 * 1024:
        report.warn("MAX_IMAGE_BYTES exceeds Gemini's 20 MB inline request limit.")
    _env_int("SERVER_PORT", 8000, report)
    report.ok("Guardrail settings parsed successfully.")


def check_secret_hygiene(report: Report) -> None:
    """Run lightweight secret safety checks for common local misconfigurations."""
    repo_dir = Path(__file__).resolve().parent.parent
    if (repo_dir / ".env").exists():
        report.warn(".env detected. Ensure it is local-only and gitignored.")
    if os.getenv("GEMINI_API_KEY") and os.getenv("GOOGLE_API_KEY"):
        report.warn("Both GEMINI_API_KEY and GOOGLE_API_KEY are set; GEMINI_API_KEY wins.")


def check_http_health(report: Report, *, timeout_seconds: float) -> None:
    """List models with the configured key to confirm credentials and reachability."""
    api_key = _api_key()
    if not api_key:
        report.warn("Skipping HTTP check: no API key configured.")
        return
    api_base = (os.getenv("GEMINI_API_BASE") or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
    url = f"{api_base}/models"
    try:
        with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
            response = client.get(url, headers={"x-goog-api-key": api_key})
    except Exception as exc:
        report.fail(f"{url} not reachable ({exc}).")
        return
    if response.status_code in {401, 403}:
        report.fail(f"Gemini rejected the API key (HTTP {response.status_code}).")
    elif response.status_code >= 400:
        report.fail(f"{url} responded with HTTP {response.status_code}.")
    else:
        report.ok(f"Gemini API reachable (HTTP {response.status_code}).")


def print_report(report: Report) -> None:
    """Render a human-readable summary report to stdout."""
    for message in report.passed:
        print(f"[PASS] {message}")
    for message in report.warnings:
        print(f"[WARN] {message}")
    for message in report.failures:
        print(f"[FAIL] {message}")
    print(
        f"\nSummary: {len(report.passed)} passed, {len(report.warnings)} warnings, {len(report.failures)} failures."
    )


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments for optional network checks and probe timeouts."""
    parser = argparse.ArgumentParser(description="LingoLens backend preflight checks")
    parser.add_argument(
        "--check-http",
        action="store_true",
        help="Call the Gemini API with the configured key before booting the backend.",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        default=3.0,
        help="Timeout (seconds) for preflight HTTP probes (default: 3.0).",
    )
    return parser.parse_args()


def main() -> int:
    """Run preflight suite and return process exit code."""
    args = parse_args()
    _load_environment()
    report = Report()

    check_core_env(report)
    check_audio_format(report)
    check_guardrails(report)
    check_secret_hygiene(report)
    if args.check_http:
        check_http_health(report, timeout_seconds=max(args.http_timeout, 0.1))

    print_report(report)
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
