"""
Service Factory
Centralizes wiring of repositories, deck options and services from AppConfig.
"""

from nomos.application.config import AppConfig, load_deck_configs
from nomos.application.review_service import ReviewService
from nomos.application.stats.service import StudyStatsService
from nomos.infrastructure.adapters.json_store import JsonCollectionStore


def get_store(config: AppConfig) -> JsonCollectionStore:
    return JsonCollectionStore(config.data_file)


def get_review_service(config: AppConfig) -> ReviewService:
    """
    Returns a ReviewService backed by the configured collection file.

    Deck options are loaded (and validated) here, once per service.
    """
    store = get_store(config)
    return ReviewService(store, store, decks=load_deck_configs(config.decks_file))


def get_stats_service(config: AppConfig) -> StudyStatsService:
    store = get_store(config)
    return StudyStatsService(store, store)
