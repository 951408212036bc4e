"""
Media-type classification and audio decoding for the audio encoder.
"""

import mimetypes
from pathlib import Path
from typing import Optional

import numpy as np

from ..core.errors import UnsupportedFormatError

# Extensions some platforms' mimetypes tables do not know about
AUDIO_EXTENSIONS = {
    ".aac": "audio/aac",
    ".aif": "audio/aiff",
    ".aiff": "audio/aiff",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".oga": "audio/ogg",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".wav": "audio/wav",
    ".weba": "audio/webm",
}


def classify_media_type(path) -> Optional[str]:
    """MIME type of a file judged by its extension, or None if unknown."""
    media_type, _ = mimetypes.guess_type(str(path))
    if media_type is None:
        media_type = AUDIO_EXTENSIONS.get(Path(path).suffix.lower())
    return media_type


def load_audio(path, sample_rate: int) -> np.ndarray:
    """Decode an audio file to mono float32 samples resampled to sample_rate."""
    if not Path(path).is_file():
        raise FileNotFoundError(f"No such audio file: {path}")

    import librosa

    try:
        samples, _ = librosa.load(str(path), sr=sample_rate, mono=True)
    except Exception as e:
        raise UnsupportedFormatError(f"Could not decode {Path(path).name}: {e}") from e

    if samples.size == 0:
        raise UnsupportedFormatError(f"{Path(path).name} contains no audio")
    return np.asarray(samples, dtype=np.float32)
