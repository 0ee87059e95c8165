from __future__ import annotations

import os
from typing import Optional


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    v = v.strip()
    return v or None


def get_openai_api_key() -> Optional[str]:
    return _env("OPENAI_API_KEY")


def get_perplexity_api_key() -> Optional[str]:
    return _env("PERPLEXITY_API_KEY")
