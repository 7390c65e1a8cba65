"""
Configuration management (SSOT).

This module defines ALL configuration for supplier-ledger.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The Billit page size can never exceed the API cap (120 rows)
- The supplier registry path is the only place suppliers are persisted
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class BillitConfig:
    """Billit API configuration."""

    api_url: str = "https://my.billit.eu/api"
    api_key: str = ""
    # Optional party header for accountants managing several companies
    party_id: str | None = None
    timeout_seconds: int = 30
    max_retries: int = 3


@dataclass
class RetrievalConfig:
    """Transaction retrieval settings."""

    # Rows per page request (Billit caps $top at 120)
    page_size: int = 120
    # Pause between page requests (upstream throttling)
    page_delay_seconds: float = 0.1
    # TTL of the unbounded-query cache
    cache_ttl_seconds: float = 300.0


@dataclass
class SupplierConfig:
    """Supplier registry settings."""

    registry_path: Path = field(default_factory=lambda: Path("data/supplier-aliases.json"))
    # Learn unknown suppliers from every fetched transaction
    auto_learn: bool = True


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    billit: BillitConfig = field(default_factory=BillitConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    suppliers: SupplierConfig = field(default_factory=SupplierConfig)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.billit.api_url:
            errors.append("billit.api_url is required")
        if not self.billit.api_key:
            errors.append("billit.api_key is required (or set BILLIT_API_KEY)")

        if not 1 <= self.retrieval.page_size <= 120:
            errors.append("retrieval.page_size must be between 1 and 120")
        if self.retrieval.page_delay_seconds < 0:
            errors.append("retrieval.page_delay_seconds must be >= 0")
        if self.retrieval.cache_ttl_seconds < 0:
            errors.append("retrieval.cache_ttl_seconds must be >= 0")

        return errors

    def require_valid(self) -> None:
        """Raise ConfigValidationError if validate() reports anything."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError("Invalid configuration:\n- " + "\n- ".join(errors))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - BILLIT_API_URL
    - BILLIT_API_KEY
    - BILLIT_PARTY_ID
    - SUPPLIER_REGISTRY_PATH
    - SUPPLIER_AUTO_LEARN (true/false)
    - BANK_CACHE_TTL (seconds)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Billit config
    billit_data = data.get("billit", {}) or {}
    billit = BillitConfig(
        api_url=os.environ.get(
            "BILLIT_API_URL", billit_data.get("api_url", "https://my.billit.eu/api")
        ),
        api_key=os.environ.get("BILLIT_API_KEY", billit_data.get("api_key", "")),
        party_id=os.environ.get("BILLIT_PARTY_ID", billit_data.get("party_id")) or None,
        timeout_seconds=int(billit_data.get("timeout_seconds", 30)),
        max_retries=int(billit_data.get("max_retries", 3)),
    )

    # Retrieval config
    retrieval_data = data.get("retrieval", {}) or {}
    cache_ttl = retrieval_data.get("cache_ttl_seconds", 300.0)
    cache_ttl_env = os.environ.get("BANK_CACHE_TTL", "")
    if cache_ttl_env:
        try:
            cache_ttl = float(cache_ttl_env)
        except ValueError:
            pass  # Keep configured value

    retrieval = RetrievalConfig(
        page_size=int(retrieval_data.get("page_size", 120)),
        page_delay_seconds=float(retrieval_data.get("page_delay_seconds", 0.1)),
        cache_ttl_seconds=float(cache_ttl),
    )

    # Supplier config
    supplier_data = data.get("suppliers", {}) or {}
    registry_path = os.environ.get(
        "SUPPLIER_REGISTRY_PATH",
        supplier_data.get("registry_path", "data/supplier-aliases.json"),
    )
    suppliers = SupplierConfig(
        registry_path=Path(registry_path),
        auto_learn=_env_bool("SUPPLIER_AUTO_LEARN", bool(supplier_data.get("auto_learn", True))),
    )

    return Config(billit=billit, retrieval=retrieval, suppliers=suppliers)


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# supplier-ledger configuration
#
# Every value can be overridden by an environment variable
# (BILLIT_API_URL, BILLIT_API_KEY, BILLIT_PARTY_ID, SUPPLIER_REGISTRY_PATH,
# SUPPLIER_AUTO_LEARN, BANK_CACHE_TTL).

billit:
  api_url: "https://my.billit.eu/api"
  api_key: "YOUR_BILLIT_API_KEY"
  party_id: null                           # Optional partyID header
  timeout_seconds: 30
  max_retries: 3

# Transaction retrieval
retrieval:
  page_size: 120                           # Billit caps a page at 120 rows
  page_delay_seconds: 0.1                  # Pause between page requests
  cache_ttl_seconds: 300                   # Cache unbounded queries for 5 minutes

# Supplier registry
suppliers:
  registry_path: "data/supplier-aliases.json"
  auto_learn: true                         # Learn new suppliers while fetching
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
