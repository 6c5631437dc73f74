"""
TOML-based configuration for the sealer core.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from sealer_core.config import load_config, build_service
    cfg = load_config("sealer.toml")
    service = build_service(cfg, secrets=store)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]

from sealer_core.sampler import FALLBACK_BYTE_SIZE, STRATEGIES

if TYPE_CHECKING:
    from sealer_core.elgamal import ElGamalPrimitive
    from sealer_core.packaging import InteractionService
    from sealer_core.secret_store import SecretSource
    from sealer_core.service import SealerService


@dataclass
class SamplerConfig:
    """Blinding-value sampling."""
    strategy: str = "rejection"             # "rejection" or "reduce"
    fallback_byte_size: int = FALLBACK_BYTE_SIZE
    max_attempts: int = 64


@dataclass
class SealerConfig:
    """Sealer identity handling and run supervision."""
    placeholder_label: str = "bob"
    # When True the placeholder, not the secret's label, is passed to the
    # primitive's decrypt call.  Results are tagged with the label either way.
    use_placeholder_sealer: bool = False
    # Abandon runs whose secret is no longer the active one.
    cancel_superseded: bool = True


@dataclass
class RelayConfig:
    """HTTP relay used to deliver interactions (empty url = none)."""
    url: str = ""
    timeout_seconds: float = 10.0


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: Optional[str] = None


@dataclass
class Config:
    """Top-level configuration container."""
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    sealer: SealerConfig = field(default_factory=SealerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        if self.sampler.strategy not in STRATEGIES:
            raise ValueError(f"sampler.strategy must be one of {STRATEGIES}")
        if self.sampler.fallback_byte_size <= 0:
            raise ValueError("sampler.fallback_byte_size must be positive")
        if self.sampler.max_attempts <= 0:
            raise ValueError("sampler.max_attempts must be positive")
        if self.relay.timeout_seconds <= 0:
            raise ValueError("relay.timeout_seconds must be positive")


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: str | None = None) -> Config:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        SEALER_SAMPLER_STRATEGY     -> sampler.strategy
        SEALER_FALLBACK_BYTES       -> sampler.fallback_byte_size
        SEALER_MAX_ATTEMPTS         -> sampler.max_attempts
        SEALER_PLACEHOLDER_LABEL    -> sealer.placeholder_label
        SEALER_USE_PLACEHOLDER      -> sealer.use_placeholder_sealer
        SEALER_CANCEL_SUPERSEDED    -> sealer.cancel_superseded
        SEALER_RELAY_URL            -> relay.url
        SEALER_RELAY_TIMEOUT        -> relay.timeout_seconds
        SEALER_LOG_LEVEL            -> logging.level
        SEALER_LOG_FMT              -> logging.format
        SEALER_LOG_FILE             -> logging.file
    """
    cfg = Config()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("sampler", cfg.sampler),
                ("sealer", cfg.sealer),
                ("relay", cfg.relay),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("SEALER_SAMPLER_STRATEGY"):
        cfg.sampler.strategy = v.lower()
    if v := os.environ.get("SEALER_FALLBACK_BYTES"):
        cfg.sampler.fallback_byte_size = int(v)
    if v := os.environ.get("SEALER_MAX_ATTEMPTS"):
        cfg.sampler.max_attempts = int(v)
    if v := os.environ.get("SEALER_PLACEHOLDER_LABEL"):
        cfg.sealer.placeholder_label = v
    if v := os.environ.get("SEALER_USE_PLACEHOLDER"):
        cfg.sealer.use_placeholder_sealer = _as_bool(v)
    if v := os.environ.get("SEALER_CANCEL_SUPERSEDED"):
        cfg.sealer.cancel_superseded = _as_bool(v)
    if v := os.environ.get("SEALER_RELAY_URL"):
        cfg.relay.url = v
    if v := os.environ.get("SEALER_RELAY_TIMEOUT"):
        cfg.relay.timeout_seconds = float(v)
    if v := os.environ.get("SEALER_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("SEALER_LOG_FMT"):
        cfg.logging.format = v
    if v := os.environ.get("SEALER_LOG_FILE"):
        cfg.logging.file = v

    cfg.validate()
    return cfg


def build_service(
    cfg: Config,
    secrets: SecretSource,
    primitive: Optional[ElGamalPrimitive] = None,
    interaction: Optional[InteractionService] = None,
) -> SealerService:
    """
    Wire a :class:`SealerService` from configuration.

    Defaults to the secp256k1 reference backend and, when ``relay.url`` is
    set, the HTTP relay interaction service.
    """
    from sealer_core.elgamal import ECElGamalBackend
    from sealer_core.orchestrator import ThresholdCryptoOrchestrator
    from sealer_core.packaging import RelayInteractionService, ResultPackager
    from sealer_core.sampler import SecureScalarSampler
    from sealer_core.service import SealerService

    if interaction is None:
        if not cfg.relay.url:
            raise ValueError("No interaction service given and relay.url is empty")
        interaction = RelayInteractionService(cfg.relay.url, cfg.relay.timeout_seconds)

    sampler = SecureScalarSampler(
        strategy=cfg.sampler.strategy,
        fallback_byte_size=cfg.sampler.fallback_byte_size,
        max_attempts=cfg.sampler.max_attempts,
    )
    orchestrator = ThresholdCryptoOrchestrator(
        secrets,
        primitive or ECElGamalBackend(),
        sampler=sampler,
        placeholder_sealer=cfg.sealer.placeholder_label,
        use_placeholder_sealer=cfg.sealer.use_placeholder_sealer,
        cancel_superseded=cfg.sealer.cancel_superseded,
    )
    return SealerService(orchestrator, ResultPackager(interaction))
