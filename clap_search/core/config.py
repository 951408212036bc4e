"""
Runtime configuration read from environment variables, plus factories that
assemble the store, query engine and encoders from it.
"""

import os
from pathlib import Path

# Persistent store configuration
STORE_DIR = os.getenv("STORE_DIR", "./data")
STORE_NAME = os.getenv("STORE_NAME", "clap-embeddings-db")
STORE_PROVIDER = os.getenv("STORE_PROVIDER", "sqlite")  # sqlite|memory

# Ranking configuration
QUERY_ENGINE = os.getenv("QUERY_ENGINE", "bruteforce")  # bruteforce|faiss
DEFAULT_TOP_K = int(os.getenv("DEFAULT_TOP_K", "10"))

# Encoder configuration
ENCODER_PROVIDER = os.getenv("ENCODER_PROVIDER", "clap")  # clap|hash
CLAP_MODEL_NAME = os.getenv("CLAP_MODEL_NAME", "laion/clap-htsat-unfused")
MODEL_CACHE_DIR = os.getenv("MODEL_CACHE_DIR")  # None -> transformers default cache
AUDIO_SAMPLE_RATE = int(os.getenv("AUDIO_SAMPLE_RATE", "44100"))
HASH_EMBED_DIM = int(os.getenv("HASH_EMBED_DIM", "512"))

TAG_AUDIO = "audio"

VERSION = "0.3.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_store_path(store_dir=None, store_name=None) -> Path:
    """Path of the SQLite file backing the named collection."""
    return Path(store_dir or STORE_DIR) / f"{store_name or STORE_NAME}.sqlite3"


def get_record_store(provider=None, store_dir=None, store_name=None):
    """Get configured record store implementation (not yet initialized)."""
    provider = provider or STORE_PROVIDER

    if provider == "memory":
        from ..vector.index import InMemoryRecordStore
        return InMemoryRecordStore(name=store_name or STORE_NAME)

    from ..vector.sqlite_store import SqliteRecordStore
    return SqliteRecordStore(get_store_path(store_dir, store_name), name=store_name or STORE_NAME)


def get_query_engine(engine=None):
    """Get configured query engine. Falls back to brute force if FAISS is missing."""
    engine = engine or QUERY_ENGINE

    if engine == "faiss":
        try:
            from ..vector.faiss_store import FaissQueryEngine
            return FaissQueryEngine()
        except ImportError:
            # Gracefully degrade to brute force if FAISS not available
            from ..util.logging import logger
            logger.warning("FAISS not installed, falling back to brute-force ranking")

    from ..vector.similarity import BruteForceQueryEngine
    return BruteForceQueryEngine()


def get_text_encoder(provider=None):
    """Get configured text encoder (unloaded)."""
    provider = provider or ENCODER_PROVIDER

    if provider == "hash":
        from ..vector.embeddings import HashTextEncoder
        return HashTextEncoder(dimension=HASH_EMBED_DIM)

    from ..vector.embeddings import ClapTextEncoder
    return ClapTextEncoder(CLAP_MODEL_NAME, cache_dir=MODEL_CACHE_DIR)


def get_audio_encoder(provider=None):
    """Get configured audio encoder (unloaded)."""
    provider = provider or ENCODER_PROVIDER

    if provider == "hash":
        from ..vector.embeddings import HashAudioEncoder
        return HashAudioEncoder(dimension=HASH_EMBED_DIM, sample_rate=AUDIO_SAMPLE_RATE)

    from ..vector.embeddings import ClapAudioEncoder
    return ClapAudioEncoder(CLAP_MODEL_NAME, cache_dir=MODEL_CACHE_DIR)


def build_context(store_provider=None, store_dir=None, store_name=None, engine=None, encoder_provider=None):
    """Assemble a PipelineContext from configuration. Nothing is loaded or opened yet."""
    from .controller import PipelineContext
    from ..vector.audio_io import load_audio

    return PipelineContext(
        store=get_record_store(store_provider, store_dir, store_name),
        engine=get_query_engine(engine),
        text_encoder=get_text_encoder(encoder_provider),
        audio_encoder=get_audio_encoder(encoder_provider),
        audio_loader=load_audio,
    )


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if STORE_PROVIDER not in ["sqlite", "memory"]:
        issues.append(f"Invalid STORE_PROVIDER: {STORE_PROVIDER}")

    if QUERY_ENGINE not in ["bruteforce", "faiss"]:
        issues.append(f"Invalid QUERY_ENGINE: {QUERY_ENGINE}")

    if ENCODER_PROVIDER not in ["clap", "hash"]:
        issues.append(f"Invalid ENCODER_PROVIDER: {ENCODER_PROVIDER}")

    if not STORE_NAME.strip():
        issues.append("STORE_NAME must not be empty")

    if DEFAULT_TOP_K < 1:
        issues.append("DEFAULT_TOP_K must be >= 1")

    if AUDIO_SAMPLE_RATE < 1:
        issues.append("AUDIO_SAMPLE_RATE must be >= 1")

    if HASH_EMBED_DIM < 1:
        issues.append("HASH_EMBED_DIM must be >= 1")

    return issues
