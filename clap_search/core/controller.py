"""
Pipeline controller: loads encoders, opens the store, runs batch embeds,
searches and clears. Only one operation of any kind may run at a time; a
second request while one is running is rejected with BusyError.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .config import DEFAULT_TOP_K, TAG_AUDIO
from .errors import BusyError, ClearBlockedError, ClearFailure, EncodeFailure, InitFailure, NotReadyError
from ..api.schemas import SearchRequest
from ..vector.audio_io import classify_media_type
from ..vector.embeddings import IAudioEncoder, IEncoder, ITextEncoder, ProgressCallback
from ..vector.index import IRecordStore
from ..vector.similarity import IQueryEngine
from ..vector.types import BatchSummary, ClearOutcome, ClearStatus, QueryResult
from ..util.logging import logger

AudioLoader = Callable[[Path, int], np.ndarray]
BatchProgressCallback = Callable[[int, int, Path], None]
StatusCallback = Callable[[str], None]


class OperationKind(str, Enum):
    INIT = "init"
    LOAD_MODELS = "load_models"
    BATCH_EMBED = "batch_embed"
    TEXT_SEARCH = "text_search"
    AUDIO_SEARCH = "audio_search"
    CLEAR = "clear"


class OperationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class PipelineContext:
    """Handles the controller works against. Built once, reused for every operation."""

    store: IRecordStore
    engine: IQueryEngine
    text_encoder: ITextEncoder
    audio_encoder: IAudioEncoder
    audio_loader: AudioLoader


class _Run:
    """Lets an operation report failure without raising."""

    def __init__(self):
        self.failed = False

    def fail(self) -> None:
        self.failed = True


class PipelineController:
    """Serializes user-triggered operations against one PipelineContext."""

    def __init__(self, context: PipelineContext, status: Optional[StatusCallback] = None):
        self.context = context
        self._status_cb = status
        self._gate = threading.Lock()
        self._running: Optional[OperationKind] = None
        self._states: Dict[OperationKind, OperationState] = {kind: OperationState.IDLE for kind in OperationKind}
        self._last_outcome: Dict[OperationKind, Optional[OperationState]] = {kind: None for kind in OperationKind}

    # -- state -------------------------------------------------------------

    @property
    def running(self) -> Optional[OperationKind]:
        return self._running

    @property
    def busy(self) -> bool:
        return self._running is not None

    def state(self, kind: OperationKind) -> OperationState:
        return self._states[OperationKind(kind)]

    def last_outcome(self, kind: OperationKind) -> Optional[OperationState]:
        """SUCCESS or FAILED for the most recent finished run of this kind."""
        return self._last_outcome[OperationKind(kind)]

    def readiness(self) -> Dict[str, object]:
        """Snapshot of store and model readiness."""
        store = self.context.store
        return {
            "store": store.name,
            "store_initialized": store.is_initialized,
            "records": store.count() if store.is_initialized else None,
            "dimension": store.dimension,
            "text_model": self.context.text_encoder.state.value,
            "audio_model": self.context.audio_encoder.state.value,
        }

    @contextmanager
    def _operation(self, kind: OperationKind):
        if not self._gate.acquire(blocking=False):
            running = self._running.value if self._running else "unknown"
            logger.log_pipeline_event(kind.value, "rejected", {"running": running})
            raise BusyError(running)

        self._running = kind
        self._states[kind] = OperationState.RUNNING
        logger.log_pipeline_event(kind.value, "running")
        run = _Run()
        outcome = OperationState.FAILED
        try:
            yield run
            if not run.failed:
                outcome = OperationState.SUCCESS
        finally:
            self._last_outcome[kind] = outcome
            self._states[kind] = OperationState.IDLE
            self._running = None
            self._gate.release()
            logger.log_pipeline_event(kind.value, outcome.value)

    def _status(self, message: str) -> None:
        logger.info(message)
        if self._status_cb is not None:
            self._status_cb(message)

    def _require_ready(self, *encoders: IEncoder) -> None:
        missing = [encoder.name for encoder in encoders if not encoder.ready]
        if not self.context.store.is_initialized:
            missing.append("database")
        if missing:
            raise NotReadyError(f"Models or DB not ready: {', '.join(missing)}")

    # -- operations --------------------------------------------------------

    def run_init(self) -> IRecordStore:
        """Open (or create) the store. Safe to call again after a clear."""
        with self._operation(OperationKind.INIT):
            self._status("Initializing vector database...")
            try:
                store = self.context.store.initialize()
            except InitFailure:
                self._status("Failed to initialize vector database. App will not function correctly.")
                raise
            self._status("Vector database initialized.")
            return store

    def run_load_models(self, on_progress: Optional[ProgressCallback] = None) -> None:
        """Load the text encoder, then the audio encoder."""
        with self._operation(OperationKind.LOAD_MODELS):

            def report(resource: str, fraction: float) -> None:
                self._status(f"Loading {resource} ({round(fraction * 100)}%)...")
                if on_progress is not None:
                    on_progress(resource, fraction)

            try:
                self._status("Loading text model...")
                self.context.text_encoder.load(report)
                self._status("Text model loaded. Loading audio model...")
                self.context.audio_encoder.load(report)
            except InitFailure as e:
                self._status(f"Error loading models: {e}")
                raise
            self._status("All models loaded successfully!")

    def run_batch_embed(self, files: Iterable, on_progress: Optional[BatchProgressCallback] = None) -> BatchSummary:
        """Embed and insert every audio file, in the order given.

        Non-audio files are skipped. A failure on one file is recorded in the
        summary and the batch moves on to the next file.
        """
        files = [Path(f) for f in files]
        with self._operation(OperationKind.BATCH_EMBED):
            summary = BatchSummary()
            if not files:
                self._status("No folder/files selected.")
                return summary

            audio = self.context.audio_encoder
            store = self.context.store
            self._require_ready(audio)

            total = len(files)
            self._status(f"Processing {total} files...")

            for index, path in enumerate(files, start=1):
                if on_progress is not None:
                    on_progress(index, total, path)

                media_type = classify_media_type(path)
                if not media_type or not media_type.startswith("audio/"):
                    summary.skipped += 1
                    self._status(f"Skipping non-audio file: {path.name}")
                    logger.log_batch_item(index, total, path.name, status="skipped")
                    continue

                self._status(f"Embedding {path.name}... ({index}/{total})")
                try:
                    samples = self.context.audio_loader(path, audio.sample_rate)
                    embedding = audio.embed(samples, audio.sample_rate)
                    store.insert(path.name, embedding, {TAG_AUDIO, media_type})
                except Exception as e:
                    summary.errors.append((path, e))
                    self._status(f"Error embedding {path.name}: {e}")
                    logger.log_batch_item(index, total, path.name, status="failed", error=str(e))
                    continue

                summary.processed += 1
                logger.log_batch_item(index, total, path.name)

            self._status(f"Finished embedding {summary.processed} audio files.")
            return summary

    def run_embed_folder(self, folder, recursive: bool = True,
                         on_progress: Optional[BatchProgressCallback] = None) -> BatchSummary:
        """Batch-embed every regular file under folder, in sorted path order."""
        root = Path(folder)
        if not root.is_dir():
            raise FileNotFoundError(f"No such folder: {folder}")

        candidates = root.rglob("*") if recursive else root.iterdir()
        files = sorted(p for p in candidates if p.is_file())
        return self.run_batch_embed(files, on_progress)

    def run_search(self, kind: str, query: str, k: Optional[int] = None) -> List[QueryResult]:
        """Embed one text query or audio file and rank the store against it."""
        request = SearchRequest(kind=kind, query=query, k=DEFAULT_TOP_K if k is None else k)
        op_kind = OperationKind.TEXT_SEARCH if request.kind == "text" else OperationKind.AUDIO_SEARCH

        with self._operation(op_kind):
            if request.kind == "text":
                encoder = self.context.text_encoder
                self._require_ready(encoder)
                self._status("Generating text embedding for search...")
                try:
                    embedding = encoder.embed(request.query)
                except EncodeFailure:
                    self._status("Failed to generate embedding for search.")
                    raise
            else:
                encoder = self.context.audio_encoder
                self._require_ready(encoder)
                path = Path(request.query)
                self._status(f"Generating audio embedding for {path.name}...")
                try:
                    samples = self.context.audio_loader(path, encoder.sample_rate)
                    embedding = encoder.embed(samples, encoder.sample_rate)
                except EncodeFailure:
                    self._status("Failed to generate embedding for audio search.")
                    raise

            self._status("Searching database...")
            results = self.context.engine.rank(self.context.store, embedding, request.k)
            self._status(f"Search complete. {len(results)} results.")
            return results

    def run_clear(self) -> ClearOutcome:
        """Drop the whole collection. The store must be re-initialized afterwards."""
        with self._operation(OperationKind.CLEAR) as run:
            self._status("Clearing database...")
            try:
                self.context.store.clear()
            except ClearBlockedError as e:
                run.fail()
                self._status("Database clearing was blocked, probably due to an open connection.")
                return ClearOutcome(ClearStatus.BLOCKED, str(e))
            except ClearFailure as e:
                run.fail()
                self._status(f"Error clearing DB: {e}")
                return ClearOutcome(ClearStatus.ERROR, str(e))

            self._status("Database cleared.")
            return ClearOutcome(ClearStatus.OK, "Database cleared.")
