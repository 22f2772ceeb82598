"""
Tests for AudioCapture, WhisperRecognizer and record_for.

Microphone, recognizer and clock are fakes from tests.mock_data; no audio
hardware or network access is needed.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import io
from types import SimpleNamespace

import numpy as np
import pytest
import soundfile as sf
from openai import OpenAIError

from prepmaster.audio import (
    FALLBACK_TRANSCRIPT,
    AudioCapture,
    RecognitionResult,
    SoundDeviceInput,
    WhisperRecognizer,
    encode_wav,
    record_for,
)
from prepmaster.errors import (
    AlreadyRecording,
    DeviceUnavailable,
    NotRecording,
    PermissionDenied,
    TranscriptionError,
)
from prepmaster.settings import FeedbackClientConfig
from tests.mock_data import FakeAudioInput, FakeClock, FakeRecognizer


def make_capture(recognizer=None, **input_kwargs) -> tuple[AudioCapture, FakeAudioInput, FakeClock]:
    mic = FakeAudioInput(**input_kwargs)
    clock = FakeClock()
    return AudioCapture(mic, recognizer, clock=clock), mic, clock


# =============================================================================
# Start / Stop Tests
# =============================================================================


class TestStartStop:
    """Recording state machine and device handling."""

    def test_immediate_stop(self) -> None:
        """Stopping right away yields 0 seconds and the fallback transcript."""
        capture, mic, _ = make_capture()

        capture.start()
        assert capture.is_recording
        assert mic.is_open
        result = capture.stop()

        assert result.duration_seconds == 0
        assert result.transcript == FALLBACK_TRANSCRIPT
        assert result.audio.startswith(b"RIFF")
        assert not capture.is_recording
        assert not mic.is_open

    def test_duration_is_floored(self) -> None:
        capture, _, clock = make_capture()

        capture.start()
        clock.advance(2.9)
        result = capture.stop()

        assert result.duration_seconds == 2

    def test_audio_contains_recorded_frames(self) -> None:
        capture, mic, clock = make_capture()

        capture.start()
        mic.emit(1600)
        mic.emit(1600)
        clock.advance(0.2)
        result = capture.stop()

        data, sample_rate = sf.read(io.BytesIO(result.audio), dtype="int16")
        assert sample_rate == 16000
        assert len(data) == 3200
        assert result.sample_rate == 16000

    def test_frames_after_stop_are_ignored(self) -> None:
        capture, mic, _ = make_capture()
        capture.start()
        callback = mic._callback
        capture.stop()

        callback(np.ones((160, 1), dtype=np.int16))

        assert capture._frames == []

    def test_start_twice(self) -> None:
        capture, mic, _ = make_capture()
        capture.start()

        with pytest.raises(AlreadyRecording):
            capture.start()

        assert mic.open_count == 1
        capture.stop()

    def test_stop_without_start(self) -> None:
        capture, _, _ = make_capture()

        with pytest.raises(NotRecording):
            capture.stop()

    def test_permission_denied_releases_device(self) -> None:
        capture, mic, _ = make_capture(open_error=PermissionDenied())

        with pytest.raises(PermissionDenied):
            capture.start()

        assert not capture.is_recording
        assert mic.close_count == 1

    def test_os_error_maps_to_device_unavailable(self) -> None:
        capture, mic, _ = make_capture(open_error=OSError("device busy"))

        with pytest.raises(DeviceUnavailable):
            capture.start()

        assert mic.close_count == 1

    def test_can_record_again_after_stop(self) -> None:
        capture, mic, clock = make_capture()
        capture.start()
        capture.stop()

        capture.start()
        clock.advance(1.0)
        result = capture.stop()

        assert result.duration_seconds == 1
        assert mic.open_count == 2

    def test_support_checks(self) -> None:
        capture, _, _ = make_capture(available=False)

        assert capture.is_supported() is False
        assert capture.is_transcription_supported() is False


# =============================================================================
# Transcription Tests
# =============================================================================


class TestTranscription:
    """Best-effort transcript assembly."""

    def test_final_segments_are_joined(self) -> None:
        recognizer = FakeRecognizer(
            on_accept=[
                RecognitionResult("In that situation", is_final=True),
                RecognitionResult("in that sit", is_final=False),
            ],
            on_finish=[RecognitionResult(" the result was good ", is_final=True)],
        )
        capture, mic, _ = make_capture(recognizer)

        capture.start()
        mic.emit()
        result = capture.stop()

        assert result.transcript == "In that situation the result was good"
        assert recognizer.started == 1
        assert recognizer.accepted == 1

    def test_recognizer_failure_keeps_recording(self) -> None:
        recognizer = FakeRecognizer(finish_error=TranscriptionError("network down"))
        capture, mic, clock = make_capture(recognizer)

        capture.start()
        mic.emit()
        clock.advance(4.0)
        result = capture.stop()

        assert result.transcript == FALLBACK_TRANSCRIPT
        assert result.duration_seconds == 4
        assert not mic.is_open

    def test_unavailable_recognizer_is_skipped(self) -> None:
        recognizer = FakeRecognizer(available=False)
        capture, mic, _ = make_capture(recognizer)

        capture.start()
        mic.emit()
        result = capture.stop()

        assert recognizer.started == 0
        assert recognizer.accepted == 0
        assert result.transcript == FALLBACK_TRANSCRIPT

    def test_from_config(self) -> None:
        with_key = AudioCapture.from_config(FeedbackClientConfig(api_key="sk-test"))
        without_key = AudioCapture.from_config(FeedbackClientConfig())

        assert with_key.is_transcription_supported() is True
        assert without_key.is_transcription_supported() is False
        assert isinstance(with_key._input, SoundDeviceInput)


class TestWhisperRecognizer:
    """WhisperRecognizer with a stubbed OpenAI client."""

    @staticmethod
    def fake_client(text: str = "", error: Exception | None = None) -> SimpleNamespace:
        calls: list[dict] = []

        def create(**kwargs):
            calls.append(kwargs)
            if error is not None:
                raise error
            return SimpleNamespace(text=text)

        return SimpleNamespace(
            audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)),
            calls=calls,
        )

    def test_transcribes_on_finish(self) -> None:
        client = self.fake_client(text=" I led the migration. ")
        recognizer = WhisperRecognizer(None, client=client)

        recognizer.start(16000, 1)
        assert recognizer.accept(np.ones((1600, 1), dtype=np.int16)) == []
        results = recognizer.finish()

        assert results == [RecognitionResult("I led the migration.", is_final=True)]
        assert client.calls[0]["model"] == "whisper-1"
        filename, wav, mime = client.calls[0]["file"]
        assert filename == "answer.wav"
        assert wav.startswith(b"RIFF")

    def test_no_frames_no_request(self) -> None:
        client = self.fake_client(text="unused")
        recognizer = WhisperRecognizer(None, client=client)

        recognizer.start(16000, 1)

        assert recognizer.finish() == []
        assert client.calls == []

    def test_api_error_becomes_transcription_error(self) -> None:
        recognizer = WhisperRecognizer(None, client=self.fake_client(error=OpenAIError("boom")))
        recognizer.start(16000, 1)
        recognizer.accept(np.ones((160, 1), dtype=np.int16))

        with pytest.raises(TranscriptionError):
            recognizer.finish()

    def test_unconfigured(self) -> None:
        recognizer = WhisperRecognizer(None)

        assert recognizer.is_available() is False
        with pytest.raises(TranscriptionError):
            recognizer.finish()


# =============================================================================
# record_for Tests
# =============================================================================


class TestRecordFor:
    """Countdown helper with auto-stop."""

    def test_auto_stops_at_max_duration(self) -> None:
        capture, mic, clock = make_capture()
        remaining: list[float] = []

        result = record_for(
            capture,
            max_duration=3,
            sleep=clock.advance,
            on_tick=remaining.append,
        )

        assert result.duration_seconds == 3
        assert remaining == [2.0, 1.0, 0.0]
        assert not capture.is_recording
        assert not mic.is_open

    def test_should_stop_ends_early(self) -> None:
        capture, _, clock = make_capture()
        ticks: list[float] = []

        result = record_for(
            capture,
            max_duration=300,
            sleep=clock.advance,
            should_stop=lambda: len(ticks) >= 2,
            on_tick=ticks.append,
        )

        assert result.duration_seconds == 2

    def test_interrupt_releases_device(self) -> None:
        capture, mic, _ = make_capture()

        def interrupted_sleep(seconds: float) -> None:
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            record_for(capture, max_duration=10, sleep=interrupted_sleep)

        assert not capture.is_recording
        assert not mic.is_open


def test_encode_wav_empty() -> None:
    data, sample_rate = sf.read(io.BytesIO(encode_wav([], 8000)), dtype="int16")

    assert sample_rate == 8000
    assert len(data) == 0
