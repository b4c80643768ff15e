from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _env_bool(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineSettings:
    chat_cost: int = 3
    auditor_reward: int = 1
    analysis_cost: int = 1
    tx_max_attempts: int = 5
    chat_require_auditor: bool = False
    enforce_auditor_capacity: bool = True
    default_max_active_contracts: int = 5

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        env = os.environ if environ is None else environ
        return cls(
            chat_cost=_env_int(env, "CRL_CHAT_COST", default=3, minimum=1),
            auditor_reward=_env_int(env, "CRL_AUDITOR_REWARD", default=1, minimum=0),
            analysis_cost=_env_int(env, "CRL_ANALYSIS_COST", default=1, minimum=1),
            tx_max_attempts=_env_int(env, "CRL_TX_MAX_ATTEMPTS", default=5, minimum=1),
            chat_require_auditor=_env_bool(env, "CRL_CHAT_REQUIRE_AUDITOR", default=False),
            enforce_auditor_capacity=_env_bool(env, "CRL_ENFORCE_AUDITOR_CAPACITY", default=True),
            default_max_active_contracts=_env_int(
                env,
                "CRL_DEFAULT_MAX_ACTIVE_CONTRACTS",
                default=5,
                minimum=1,
            ),
        )
