"""Test fixtures and utilities."""

import json
from pathlib import Path

import pytest

from supplier_ledger.suppliers import SupplierLearner, SupplierRegistry, SupplierResolver


@pytest.fixture
def registry_path(tmp_path) -> Path:
    """Location of a not-yet-existing registry document."""
    return tmp_path / "data" / "supplier-aliases.json"


@pytest.fixture
def write_registry(registry_path):
    """Write a registry document and return its path."""

    def _write(document) -> Path:
        registry_path.parent.mkdir(parents=True, exist_ok=True)
        registry_path.write_text(json.dumps(document), encoding="utf-8")
        return registry_path

    return _write


@pytest.fixture
def registry(registry_path) -> SupplierRegistry:
    """Registry seeded with the built-in defaults."""
    return SupplierRegistry(registry_path)


@pytest.fixture
def resolver(registry) -> SupplierResolver:
    return SupplierResolver(registry)


@pytest.fixture
def learner(registry, resolver) -> SupplierLearner:
    return SupplierLearner(registry, resolver)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of config loading."""
    for name in (
        "BILLIT_API_URL",
        "BILLIT_API_KEY",
        "BILLIT_PARTY_ID",
        "SUPPLIER_REGISTRY_PATH",
        "SUPPLIER_AUTO_LEARN",
        "BANK_CACHE_TTL",
    ):
        monkeypatch.delenv(name, raising=False)
