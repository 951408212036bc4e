"""
Shared fixtures: deterministic encoders and a fake audio loader so pipeline
tests pick their vectors directly.
"""

import threading

import numpy as np
import pytest

from clap_search.core.controller import PipelineContext, PipelineController
from clap_search.core.errors import UnsupportedFormatError
from clap_search.vector.embeddings import IAudioEncoder, ITextEncoder
from clap_search.vector.index import InMemoryRecordStore
from clap_search.vector.similarity import BruteForceQueryEngine
from clap_search.vector.sqlite_store import SqliteRecordStore


class PassthroughAudioEncoder(IAudioEncoder):
    """Returns the samples as the embedding."""

    name = "passthrough audio encoder"

    def __init__(self, sample_rate: int = 44100):
        super().__init__()
        self._sample_rate = sample_rate

    @property
    def sample_rate(self):
        return self._sample_rate

    def _load(self, report):
        report("passthrough", 0.5)
        report("passthrough", 1.0)

    def _embed_audio(self, samples):
        return samples.copy()


class MappingTextEncoder(ITextEncoder):
    """Looks up a fixed vector per query string."""

    name = "mapping text encoder"

    def __init__(self, vectors):
        super().__init__()
        self.vectors = vectors

    def _load(self, report):
        report("mapping", 1.0)

    def _embed_text(self, text):
        return self.vectors[text]


class BlockingAudioEncoder(PassthroughAudioEncoder):
    """Passthrough encoder that waits for a release signal inside embed()."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def _embed_audio(self, samples):
        self.started.set()
        self.release.wait(timeout=5)
        return samples.copy()


def make_loader(vectors):
    """Audio loader returning vectors[file name]; names starting 'broken' fail to decode."""

    def load(path, sample_rate):
        if path.name.startswith("broken"):
            raise UnsupportedFormatError(f"Could not decode {path.name}")
        return np.asarray(vectors[path.name], dtype=np.float32)

    return load


AUDIO_VECTORS = {
    "a.wav": [1.0, 0.0],
    "b.mp3": [0.0, 1.0],
    "c.wav": [1.0, 1.0],
    "short.wav": [1.0, 0.0, 0.0],
}

TEXT_VECTORS = {
    "east": [1.0, 0.0],
    "north": [0.0, 1.0],
    "nothing": [0.0, 0.0],
}


@pytest.fixture
def memory_store():
    return InMemoryRecordStore(name="test").initialize()


@pytest.fixture
def sqlite_path(tmp_path):
    return tmp_path / "store" / "clap-embeddings-db.sqlite3"


@pytest.fixture
def sqlite_store(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    yield store
    store.close()


@pytest.fixture
def context(sqlite_path):
    ctx = PipelineContext(
        store=SqliteRecordStore(sqlite_path),
        engine=BruteForceQueryEngine(),
        text_encoder=MappingTextEncoder(TEXT_VECTORS),
        audio_encoder=PassthroughAudioEncoder(),
        audio_loader=make_loader(AUDIO_VECTORS),
    )
    yield ctx
    ctx.store.close()


@pytest.fixture
def ready_controller(context):
    """Controller with the store initialized and both encoders loaded."""
    controller = PipelineController(context)
    controller.run_init()
    controller.run_load_models()
    return controller


@pytest.fixture
def audio_folder(tmp_path):
    """Folder with three audio files, one broken file and one text file."""
    folder = tmp_path / "samples"
    folder.mkdir()
    for name in ("a.wav", "b.mp3", "broken.wav", "c.wav", "notes.txt"):
        (folder / name).write_bytes(b"")
    return folder
