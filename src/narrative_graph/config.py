"""Configuration settings for narrative-graph."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Entity Resolution Thresholds ─────────────────────────────────────────
    # Auto-merge: at or above this score, merge into the existing entity
    entity_resolution_t_auto_merge: float = 0.85

    # Review: below this score, create a new entity
    entity_resolution_t_review: float = 0.50

    # Within-segment clustering: average similarity a candidate must exceed
    # to join a cluster (cross-segment merges use this + 0.1)
    entity_resolution_t_within_segment: float = 0.75

    # Veto: a name signal (or nonzero type signal) below this blocks merges
    entity_resolution_t_veto: float = 0.30

    # ── External refinement recommendation ───────────────────────────────────
    # REVIEW decisions in [min, max] with low confidence are flagged for an
    # external decision-maker. Nothing here calls a model.
    entity_resolution_use_llm_refinement: bool = True
    entity_resolution_llm_score_min: float = 0.50
    entity_resolution_llm_score_max: float = 0.85

    # ── Merge review ─────────────────────────────────────────────────────────
    merge_review_similarity_threshold: float = 0.85

    # Logging
    log_level: str = "INFO"


settings = Settings()
