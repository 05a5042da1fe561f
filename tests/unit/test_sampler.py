"""Unit tests for the audio signal sampler."""

import numpy as np
import pytest

from attune_core.config import SamplerConfig
from attune_core.engine.sampler import AudioSignalSampler, to_float_audio


INDICATORS = (
    "stress",
    "excitement",
    "calmness",
    "intensity",
    "breathiness",
    "breath_irregularity",
    "tremor",
    "pitch_instability",
    "volume_inconsistency",
    "speech_rate",
)


def sine(freq_hz: float, seconds: float, amplitude: float = 0.5, sample_rate: int = 16000):
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq_hz * t)).astype(np.float32)


class TestToFloatAudio:
    """Tests for PCM conversion."""

    def test_int16_array(self):
        """Test int16 samples are scaled to [-1, 1]."""
        samples = to_float_audio(np.array([16384, -16384], dtype=np.int16))

        assert samples.dtype == np.float32
        assert samples[0] == pytest.approx(0.5)
        assert samples[1] == pytest.approx(-0.5)

    def test_pcm_bytes(self):
        """Test raw int16 PCM bytes."""
        pcm = np.array([0, 32767, -32768], dtype=np.int16).tobytes()

        samples = to_float_audio(pcm)

        assert len(samples) == 3
        assert samples[2] == pytest.approx(-1.0)

    def test_float_passthrough(self):
        """Test normalized floats are left alone."""
        samples = to_float_audio(np.array([0.25, -0.25]))

        assert samples[0] == pytest.approx(0.25)


class TestAudioSignalSampler:
    """Tests for AudioSignalSampler."""

    @pytest.fixture
    def sampler(self) -> AudioSignalSampler:
        return AudioSignalSampler(SamplerConfig())

    def test_short_buffer_returns_zeros(self, sampler):
        """Test buffers shorter than one frame produce empty features."""
        features = sampler.analyze(np.zeros(100, dtype=np.float32), 16000)

        assert features.rms == 0.0
        assert features.stress == 0.0
        assert features.duration_ms == pytest.approx(6.25)

    def test_silence(self, sampler):
        """Test silence has no energy and no crisis indicators."""
        features = sampler.analyze(np.zeros(16000, dtype=np.float32), 16000)

        assert features.rms == 0.0
        assert features.pitch_hz == 0.0
        assert features.stress == 0.0
        assert features.tremor == 0.0
        assert features.volume_inconsistency == 0.0
        assert features.calmness == 1.0

    def test_pitch_of_sine(self, sampler):
        """Test autocorrelation pitch on a pure tone."""
        features = sampler.analyze(sine(200, 0.5), 16000)

        assert features.pitch_hz == pytest.approx(200, abs=10)
        assert features.rms == pytest.approx(0.5 / np.sqrt(2), abs=0.01)
        assert features.low_band_ratio > 0.9

    def test_indicators_normalized(self, sampler):
        """Test every indicator stays within [0, 1] for noisy input."""
        rng = np.random.default_rng(0)
        noise = np.clip(rng.normal(0, 0.3, 16000), -1, 1).astype(np.float32)

        features = sampler.analyze(noise, 16000)

        for name in INDICATORS:
            value = getattr(features, name)
            assert 0.0 <= value <= 1.0, name

    def test_accepts_pcm_bytes(self, sampler):
        """Test int16 byte input matches the float path."""
        tone = sine(150, 0.3)
        pcm = (tone * 32767).astype(np.int16).tobytes()

        from_bytes = sampler.analyze(pcm, 16000)
        from_floats = sampler.analyze(tone, 16000)

        assert from_bytes.rms == pytest.approx(from_floats.rms, abs=1e-3)
        assert from_bytes.pitch_hz == pytest.approx(from_floats.pitch_hz, abs=1)

    def test_default_sample_rate(self, sampler):
        """Test the configured sample rate is used when none is given."""
        features = sampler.analyze(np.zeros(8000, dtype=np.float32))

        assert features.sample_rate == 16000
        assert features.duration_ms == pytest.approx(500.0)

    def test_to_dict_rounds(self, sampler):
        """Test serialization."""
        data = sampler.analyze(sine(200, 0.2), 16000).to_dict()

        assert "pitch_hz" in data
        assert "speech_rate" in data
