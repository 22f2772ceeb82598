"""
Audio Capture.

Records an answer from the microphone and, when a speech recognizer is
available, produces a transcript alongside the WAV artifact.

    idle --start()--> recording --stop()--> idle

Microphone input and speech recognition are pluggable:

    - AudioInput: default SoundDeviceInput (sounddevice InputStream)
    - SpeechRecognizer: default WhisperRecognizer (OpenAI audio transcription)

Transcription is best effort. Recognizer failures are logged and the
recording result is still returned with the fallback transcript. The input
device is released on every exit path of stop().

Thread Safety:
    sounddevice delivers frames on its own callback thread; AudioCapture
    guards its buffers with a lock. start()/stop() may be called from any
    single controlling thread.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import io
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import numpy as np
import soundfile as sf
from openai import OpenAI, OpenAIError

from .errors import (
    AlreadyRecording,
    DeviceUnavailable,
    NotRecording,
    PermissionDenied,
    TranscriptionError,
)
from .settings import FeedbackClientConfig


__all__ = [
    "FALLBACK_TRANSCRIPT",
    "DEFAULT_MAX_DURATION",
    "AudioInput",
    "SpeechRecognizer",
    "RecognitionResult",
    "RecordingResult",
    "SoundDeviceInput",
    "WhisperRecognizer",
    "AudioCapture",
    "encode_wav",
    "record_for",
]


logger = logging.getLogger(__name__)

FALLBACK_TRANSCRIPT = "No speech detected. Please try speaking more clearly."
DEFAULT_MAX_DURATION = 300
DEFAULT_SAMPLE_RATE = 16000

FrameCallback = Callable[[np.ndarray], None]


# =============================================================================
# Collaborator Contracts
# =============================================================================

@dataclass
class RecognitionResult:
    """One recognizer segment. Only finals contribute to the transcript."""

    text: str
    is_final: bool = True


@dataclass
class RecordingResult:
    """
    Output of AudioCapture.stop().

    Attributes:
        transcript: Joined final segments, or FALLBACK_TRANSCRIPT.
        audio: WAV-encoded recording (16-bit PCM).
        duration_seconds: Whole seconds since start(), floored.
        sample_rate: Sample rate of the WAV data.
    """

    transcript: str
    audio: bytes
    duration_seconds: int
    sample_rate: int = DEFAULT_SAMPLE_RATE


class AudioInput(Protocol):
    """Microphone source delivering int16 frames to a callback."""

    sample_rate: int
    channels: int

    def is_available(self) -> bool: ...

    def open(self, on_frames: FrameCallback) -> None: ...

    def close(self) -> None: ...


class SpeechRecognizer(Protocol):
    """
    Streaming recognizer.

    accept() and finish() return zero or more segments; failures raise
    TranscriptionError.
    """

    def is_available(self) -> bool: ...

    def start(self, sample_rate: int, channels: int) -> None: ...

    def accept(self, frames: np.ndarray) -> list[RecognitionResult]: ...

    def finish(self) -> list[RecognitionResult]: ...


def encode_wav(frames: list[np.ndarray], sample_rate: int, channels: int = 1) -> bytes:
    """Encode int16 frame blocks as a WAV byte string."""
    if frames:
        data = np.concatenate(frames)
    else:
        data = np.zeros((0, channels), dtype=np.int16)
    buffer = io.BytesIO()
    sf.write(buffer, data, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


# =============================================================================
# sounddevice Input
# =============================================================================

def _load_sounddevice() -> Any:
    # sounddevice raises OSError at import time when PortAudio is missing
    try:
        import sounddevice
    except OSError as e:
        raise DeviceUnavailable(f"PortAudio library not available: {e}") from e
    return sounddevice


class SoundDeviceInput:
    """
    Default microphone input backed by sounddevice.InputStream.

    Example:
        >>> mic = SoundDeviceInput(sample_rate=16000)
        >>> mic.is_available()
        True
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = 1,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._stream: Any = None

    def is_available(self) -> bool:
        try:
            sd = _load_sounddevice()
            sd.query_devices(self.device, kind="input")
        except DeviceUnavailable:
            return False
        except (ValueError, sd.PortAudioError) as e:
            logger.debug("No usable input device: %s", e)
            return False
        return True

    def open(self, on_frames: FrameCallback) -> None:
        sd = _load_sounddevice()

        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug("Input stream status: %s", status)
            on_frames(indata.copy())

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                callback=_callback,
            )
            self._stream.start()
        except PermissionError as e:
            self.close()
            raise PermissionDenied(f"Microphone access was denied: {e}") from e
        except (ValueError, sd.PortAudioError) as e:
            self.close()
            raise DeviceUnavailable(f"Failed to access microphone: {e}") from e

        logger.debug("Input stream opened at %d Hz", self.sample_rate)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.debug("Input stream closed")


# =============================================================================
# Whisper Recognizer
# =============================================================================

class WhisperRecognizer:
    """
    Recognizer that buffers the take and transcribes it on finish().

    Produces no interim results; finish() yields a single final segment.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "whisper-1",
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self._client = client or (OpenAI(api_key=api_key) if api_key else None)
        self._frames: list[np.ndarray] = []
        self._sample_rate = DEFAULT_SAMPLE_RATE
        self._channels = 1

    def is_available(self) -> bool:
        return self._client is not None

    def start(self, sample_rate: int, channels: int) -> None:
        self._frames = []
        self._sample_rate = sample_rate
        self._channels = channels

    def accept(self, frames: np.ndarray) -> list[RecognitionResult]:
        self._frames.append(frames)
        return []

    def finish(self) -> list[RecognitionResult]:
        frames, self._frames = self._frames, []
        if self._client is None:
            raise TranscriptionError("Speech recognition is not configured")
        if not frames:
            return []

        wav = encode_wav(frames, self._sample_rate, self._channels)
        try:
            transcription = self._client.audio.transcriptions.create(
                model=self.model,
                file=("answer.wav", wav, "audio/wav"),
            )
        except OpenAIError as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        text = (transcription.text or "").strip()
        return [RecognitionResult(text=text, is_final=True)] if text else []


# =============================================================================
# Audio Capture
# =============================================================================

class AudioCapture:
    """
    Microphone recording with best-effort transcription.

    Example:
        >>> capture = AudioCapture.from_config(load_feedback_config())
        >>> capture.start()
        >>> result = capture.stop()
        >>> result.transcript
        'No speech detected. Please try speaking more clearly.'
    """

    def __init__(
        self,
        audio_input: Optional[AudioInput] = None,
        recognizer: Optional[SpeechRecognizer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._input: AudioInput = audio_input or SoundDeviceInput()
        self._recognizer = recognizer
        self._clock = clock

        self._lock = threading.Lock()
        self._recording = False
        self._transcribing = False
        self._started_at = 0.0
        self._frames: list[np.ndarray] = []
        self._finals: list[str] = []

    @classmethod
    def from_config(cls, config: FeedbackClientConfig) -> "AudioCapture":
        """Default microphone plus Whisper transcription when a credential exists."""
        recognizer = None
        if config.has_credential and config.provider == "openai":
            recognizer = WhisperRecognizer(config.api_key, model=config.transcribe_model)
        return cls(SoundDeviceInput(), recognizer)

    @property
    def is_recording(self) -> bool:
        return self._recording

    def is_supported(self) -> bool:
        return self._input.is_available()

    def is_transcription_supported(self) -> bool:
        return self._recognizer is not None and self._recognizer.is_available()

    def start(self) -> None:
        """
        Open the microphone and begin buffering.

        Raises:
            AlreadyRecording: A take is already in progress.
            PermissionDenied: The OS refused microphone access.
            DeviceUnavailable: No usable input device.
        """
        with self._lock:
            if self._recording:
                raise AlreadyRecording()
            self._frames = []
            self._finals = []
            self._transcribing = False

        if self.is_transcription_supported():
            try:
                self._recognizer.start(self._input.sample_rate, self._input.channels)
                self._transcribing = True
            except TranscriptionError as e:
                logger.warning("Speech recognition unavailable for this take: %s", e.message)

        try:
            self._input.open(self._on_frames)
        except (PermissionDenied, DeviceUnavailable):
            self._input.close()
            raise
        except OSError as e:
            self._input.close()
            raise DeviceUnavailable(f"Failed to access microphone: {e}") from e

        with self._lock:
            self._started_at = self._clock()
            self._recording = True
        logger.info("Recording started")

    def _on_frames(self, frames: np.ndarray) -> None:
        with self._lock:
            if not self._recording:
                return
            self._frames.append(frames)
            if self._transcribing:
                try:
                    self._collect(self._recognizer.accept(frames))
                except TranscriptionError as e:
                    logger.warning("Speech recognition error: %s", e.message)
                    self._transcribing = False

    def _collect(self, results: list[RecognitionResult]) -> None:
        for result in results:
            if result.is_final and result.text.strip():
                self._finals.append(result.text.strip())

    def stop(self) -> RecordingResult:
        """
        Finish the take and release the microphone.

        Raises:
            NotRecording: start() was not called.
        """
        with self._lock:
            if not self._recording:
                raise NotRecording()
            self._recording = False
            elapsed = self._clock() - self._started_at
            frames = self._frames
            self._frames = []

        try:
            self._input.close()
        finally:
            if self._transcribing:
                self._transcribing = False
                try:
                    self._collect(self._recognizer.finish())
                except TranscriptionError as e:
                    logger.warning("Speech recognition error: %s", e.message)

        transcript = " ".join(self._finals).strip() or FALLBACK_TRANSCRIPT
        duration_seconds = max(0, math.floor(elapsed))
        audio = encode_wav(frames, self._input.sample_rate, self._input.channels)
        logger.info("Recording stopped after %ds", duration_seconds)
        return RecordingResult(
            transcript=transcript,
            audio=audio,
            duration_seconds=duration_seconds,
            sample_rate=self._input.sample_rate,
        )


def record_for(
    capture: AudioCapture,
    max_duration: int = DEFAULT_MAX_DURATION,
    *,
    tick: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    should_stop: Optional[Callable[[], bool]] = None,
    on_tick: Optional[Callable[[float], None]] = None,
) -> RecordingResult:
    """
    Record until `max_duration` seconds elapse or `should_stop()` is true.

    Counts down in `tick`-second steps; on_tick receives the remaining time.
    """
    capture.start()
    remaining = float(max_duration)
    try:
        while remaining > 0:
            if should_stop is not None and should_stop():
                break
            sleep(tick)
            remaining -= tick
            if on_tick is not None:
                on_tick(max(remaining, 0.0))
    except BaseException:
        if capture.is_recording:
            capture.stop()
        raise
    return capture.stop()
