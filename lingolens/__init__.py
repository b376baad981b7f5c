"""Application package bootstrap hooks."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


_REPO_ROOT = Path(__file__).resolve().parent.parent

# Load repo root .env first, then .env.local overrides.
load_dotenv(_REPO_ROOT / ".env")
load_dotenv(_REPO_ROOT / ".env.local", override=True)
