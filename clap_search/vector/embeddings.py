"""
Encoder adapters. Text and audio encoders project into the same space so a
text query can rank stored audio. Every encoder must be loaded explicitly
before embed() is called.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import numpy as np

from .types import ModelState, as_embedding
from ..core.errors import (
    ClapSearchError,
    EncodeFailure,
    LoadFailure,
    NotReadyError,
    UnsupportedFormatError,
)
from ..util.logging import logger

ProgressCallback = Callable[[str, float], None]


class IEncoder(ABC):
    """Load lifecycle shared by every encoder: UNLOADED -> LOADING -> READY | FAILED."""

    name = "encoder"

    def __init__(self):
        self._state = ModelState.UNLOADED
        self._progress: Dict[str, float] = {}
        self._load_error: Optional[str] = None
        self._dimension: Optional[int] = None

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == ModelState.READY

    @property
    def progress(self) -> Dict[str, float]:
        """Latest load fraction per named resource."""
        return dict(self._progress)

    @property
    def load_error(self) -> Optional[str]:
        return self._load_error

    @property
    def dimension(self) -> Optional[int]:
        """Output dimension, known once loaded."""
        return self._dimension

    def load(self, on_progress: Optional[ProgressCallback] = None) -> ModelState:
        """Load the model once. A failed load is terminal for this instance."""
        if self._state == ModelState.READY:
            return self._state
        if self._state == ModelState.FAILED:
            raise LoadFailure(f"Error loading {self.name}: {self._load_error}")

        self._state = ModelState.LOADING
        logger.log_model_event(self.name, "load", status="started")

        def report(resource: str, fraction: float) -> None:
            # Progress never moves backwards for a resource
            fraction = max(self._progress.get(resource, 0.0), min(1.0, max(0.0, float(fraction))))
            self._progress[resource] = fraction
            if on_progress is not None:
                on_progress(resource, fraction)

        try:
            self._load(report)
        except Exception as e:
            self._state = ModelState.FAILED
            self._load_error = str(e)
            logger.log_model_event(self.name, "load", {"error": self._load_error}, status="failed")
            raise LoadFailure(f"Error loading {self.name}: {e}") from e

        self._state = ModelState.READY
        logger.log_model_event(self.name, "load", {"dimension": self._dimension})
        return self._state

    @abstractmethod
    def _load(self, report: ProgressCallback) -> None:
        """Fetch and initialise model resources, reporting progress per resource."""

    def _require_ready(self) -> None:
        if self._state != ModelState.READY:
            raise NotReadyError(f"{self.name} not loaded (state: {self._state.value}).")

    def _to_embedding(self, output) -> np.ndarray:
        vector = as_embedding(output)
        if vector.ndim != 1 or vector.size == 0 or not np.all(np.isfinite(vector)):
            raise EncodeFailure(f"{self.name} produced an invalid embedding")
        if self._dimension is None:
            self._dimension = int(vector.shape[0])
        return vector


class ITextEncoder(IEncoder):
    """Encoder for free text queries."""

    def embed(self, text: str) -> np.ndarray:
        """Embed one text string."""
        self._require_ready()
        if not isinstance(text, str) or not text.strip():
            raise EncodeFailure("Cannot embed empty text")
        try:
            output = self._embed_text(text)
        except ClapSearchError:
            raise
        except Exception as e:
            raise EncodeFailure(f"Error creating text embedding: {e}") from e
        return self._to_embedding(output)

    @abstractmethod
    def _embed_text(self, text: str):
        pass


class IAudioEncoder(IEncoder):
    """Encoder for decoded mono PCM audio at a fixed sample rate."""

    @property
    @abstractmethod
    def sample_rate(self) -> Optional[int]:
        """The only sample rate embed() accepts."""

    def embed(self, samples, sample_rate: int) -> np.ndarray:
        """Embed mono float samples recorded at exactly self.sample_rate."""
        self._require_ready()
        if sample_rate != self.sample_rate:
            raise UnsupportedFormatError(
                f"{self.name} expects audio at {self.sample_rate} Hz, got {sample_rate} Hz"
            )
        audio = np.asarray(samples, dtype=np.float32)
        if audio.ndim != 1 or audio.size == 0:
            raise UnsupportedFormatError(f"Expected non-empty mono samples, got shape {audio.shape}")
        try:
            output = self._embed_audio(audio)
        except ClapSearchError:
            raise
        except Exception as e:
            raise EncodeFailure(f"Error creating audio embedding: {e}") from e
        return self._to_embedding(output)

    @abstractmethod
    def _embed_audio(self, samples: np.ndarray):
        pass


def _hash_vector(payload: bytes, dimension: int) -> np.ndarray:
    """Expand a SHA-256 stream of the payload into `dimension` values in [-1, 1)."""
    values = []
    counter = 0
    while len(values) < dimension:
        digest = hashlib.sha256(counter.to_bytes(4, "big") + payload).digest()
        for i in range(0, len(digest), 4):
            value = int.from_bytes(digest[i:i + 4], "big")
            values.append((value / 2**32) * 2 - 1)
        counter += 1
    return np.asarray(values[:dimension], dtype=np.float32)


class HashTextEncoder(ITextEncoder):
    """Deterministic hash-based text encoder for tests and offline use.

    Identical input always produces the identical vector; there is no
    semantic relationship between similar strings.
    """

    name = "hash text encoder"

    def __init__(self, dimension: int = 512):
        super().__init__()
        self._configured_dimension = dimension

    def _load(self, report: ProgressCallback) -> None:
        report("hash", 1.0)
        self._dimension = self._configured_dimension

    def _embed_text(self, text: str):
        return _hash_vector(text.encode("utf-8"), self._configured_dimension)


class HashAudioEncoder(IAudioEncoder):
    """Deterministic hash-based audio encoder for tests and offline use."""

    name = "hash audio encoder"

    def __init__(self, dimension: int = 512, sample_rate: int = 44100):
        super().__init__()
        self._configured_dimension = dimension
        self._sample_rate = sample_rate

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def _load(self, report: ProgressCallback) -> None:
        report("hash", 1.0)
        self._dimension = self._configured_dimension

    def _embed_audio(self, samples: np.ndarray):
        return _hash_vector(samples.tobytes(), self._configured_dimension)


class ClapTextEncoder(ITextEncoder):
    """CLAP text tower (tokenizer + ClapTextModelWithProjection) via transformers."""

    name = "text model"

    def __init__(self, model_name: str = "laion/clap-htsat-unfused", cache_dir: Optional[str] = None):
        super().__init__()
        self.model_name = model_name
        self.cache_dir = cache_dir
        self._tokenizer = None
        self._model = None

    def _load(self, report: ProgressCallback) -> None:
        from transformers import AutoTokenizer, ClapTextModelWithProjection

        report("tokenizer", 0.0)
        self._tokenizer = AutoTokenizer.from_pretrained(self.model_name, cache_dir=self.cache_dir)
        report("tokenizer", 1.0)

        report("text_model", 0.0)
        model = ClapTextModelWithProjection.from_pretrained(self.model_name, cache_dir=self.cache_dir)
        model.eval()
        self._model = model
        report("text_model", 1.0)

        projection_dim = getattr(model.config, "projection_dim", None)
        self._dimension = int(projection_dim) if projection_dim else None

    def _embed_text(self, text: str):
        import torch

        inputs = self._tokenizer([text], padding=True, truncation=True, return_tensors="pt")
        with torch.no_grad():
            outputs = self._model(**inputs)
        return outputs.text_embeds[0].cpu().numpy()


class ClapAudioEncoder(IAudioEncoder):
    """CLAP audio tower (feature extractor + ClapAudioModelWithProjection).

    The accepted sample rate is whatever the model's feature extractor was
    trained at; callers must resample to it before embed().
    """

    name = "audio model"

    def __init__(self, model_name: str = "laion/clap-htsat-unfused", cache_dir: Optional[str] = None):
        super().__init__()
        self.model_name = model_name
        self.cache_dir = cache_dir
        self._feature_extractor = None
        self._model = None
        self._sample_rate: Optional[int] = None

    @property
    def sample_rate(self) -> Optional[int]:
        return self._sample_rate

    def _load(self, report: ProgressCallback) -> None:
        from transformers import AutoFeatureExtractor, ClapAudioModelWithProjection

        report("audio_processor", 0.0)
        self._feature_extractor = AutoFeatureExtractor.from_pretrained(self.model_name, cache_dir=self.cache_dir)
        self._sample_rate = int(self._feature_extractor.sampling_rate)
        report("audio_processor", 1.0)

        report("audio_model", 0.0)
        model = ClapAudioModelWithProjection.from_pretrained(self.model_name, cache_dir=self.cache_dir)
        model.eval()
        self._model = model
        report("audio_model", 1.0)

        projection_dim = getattr(model.config, "projection_dim", None)
        self._dimension = int(projection_dim) if projection_dim else None

    def _embed_audio(self, samples: np.ndarray):
        import torch

        inputs = self._feature_extractor(samples, sampling_rate=self._sample_rate, return_tensors="pt")
        with torch.no_grad():
            outputs = self._model(**inputs)
        return outputs.audio_embeds[0].cpu().numpy()
