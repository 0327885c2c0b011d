import pytest

from src.backend.config import settings
from src.backend.infra.db.inmemory import InMemoryAccountRepository, get_account_repository, set_account_repository
from src.backend.services.analysis import service as analysis_service_module
from src.backend.services.analysis.service import CallAnalysisService


@pytest.fixture(autouse=True)
def account_store():
    """Give every test its own empty in-memory account store."""

    previous = get_account_repository()
    repository = InMemoryAccountRepository()
    set_account_repository(repository)
    yield repository
    set_account_repository(previous)


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    # Lowest cost bcrypt accepts; keeps the suite fast.
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture(autouse=True)
def offline_analysis(monkeypatch):
    """Route tests never reach a real AI provider."""

    monkeypatch.setattr(analysis_service_module, "call_analysis_service", CallAnalysisService())
