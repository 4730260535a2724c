"""
Factory for creating service instances and the generation orchestrator.
"""

from quibit.pipeline import RegenerationOrchestrator
from quibit.services.gemini_service import GeminiService
from quibit.services.huggingface_service import HuggingFaceService
from quibit.services.provider_manager import ProviderManager
from quibit.services.quality_gate import KeywordClassifier, QualityGate
from quibit.services.similarity_service import SimilarityEngine, create_scorer
from quibit.utils.config import config
from quibit.utils.repository import IdeaRepository


def create_repository(store=None) -> IdeaRepository:
    """
    Create the repository backend selected by QUIBIT_STORE.

    Args:
        store: "sqlite" or "mongo"; defaults to the configured store
    """
    store = store or config.store
    if store == "sqlite":
        from quibit.utils.sqlite3_client import SQLiteClient
        return SQLiteClient(config.sqlite_path)
    if store == "mongo":
        from quibit.utils.mongodb_client import MongoDBClient
        return MongoDBClient()
    raise ValueError(f"Unsupported store: {store}")


def create_provider_manager() -> ProviderManager:
    primary = GeminiService(config.gemini_api_key, config.gemini_models, config.provider_timeout)
    fallback = HuggingFaceService(config.hf_token, config.hf_model, config.hf_base_url, config.provider_timeout)
    return ProviderManager(primary, fallback)


def create_orchestrator(repository: IdeaRepository) -> RegenerationOrchestrator:
    return RegenerationOrchestrator(
        provider_manager=create_provider_manager(),
        repository=repository,
        quality_gate=QualityGate(KeywordClassifier(config.quality_keywords)),
        similarity_engine=SimilarityEngine(create_scorer(config.similarity_strategy)),
    )
