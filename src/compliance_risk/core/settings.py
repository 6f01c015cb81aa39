"""
Runtime settings for the scoring engine.

- COMPLIANCE_RISK_POLICY: path to a scoring policy JSON (default: bundled policy)
- COMPLIANCE_RISK_STORE_DIR: snapshot store root (default: ./data)
- COMPLIANCE_RISK_LOG_LEVEL: logging level name (default: INFO)

A .env file in the working directory is loaded first; real environment
variables take precedence.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from compliance_risk.core.policy import ScoringPolicy, default_policy, load_policy

DEFAULT_STORE_DIR = Path("data")


@dataclass(frozen=True)
class Settings:
    policy_path: Optional[Path] = None
    store_dir: Path = DEFAULT_STORE_DIR
    log_level: str = "INFO"

    def load_policy(self) -> ScoringPolicy:
        if self.policy_path is None:
            return default_policy()
        return load_policy(self.policy_path)


def load_settings(env_file: Optional[Path] = None) -> Settings:
    load_dotenv(env_file or Path.cwd() / ".env", override=False)

    policy = (os.getenv("COMPLIANCE_RISK_POLICY") or "").strip()
    store_dir = (os.getenv("COMPLIANCE_RISK_STORE_DIR") or "").strip()
    level = (os.getenv("COMPLIANCE_RISK_LOG_LEVEL") or "INFO").strip().upper()

    return Settings(
        policy_path=Path(policy) if policy else None,
        store_dir=Path(store_dir) if store_dir else DEFAULT_STORE_DIR,
        log_level=level,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
