"""
Audio Signal Sampler.

Extracts short-horizon features (energy, zero-crossing rate, pitch, spectral
split) from raw audio and normalizes them into the indicators used by fusion
and crisis assessment.
"""

from typing import List, Optional, Union

import numpy as np
import structlog

from ..config import SamplerConfig, get_settings
from ..models import AudioFeatures, clamp

logger = structlog.get_logger()


def to_float_audio(audio: Union[np.ndarray, bytes]) -> np.ndarray:
    """Convert int16 PCM bytes or an array into normalized float32 samples."""
    if isinstance(audio, (bytes, bytearray, memoryview)):
        samples = np.frombuffer(bytes(audio), dtype=np.int16)
        return samples.astype(np.float32) / 32768.0

    samples = np.asarray(audio)
    if samples.dtype == np.int16:
        return samples.astype(np.float32) / 32768.0

    samples = samples.astype(np.float32)
    if samples.size and np.max(np.abs(samples)) > 1.0:
        samples = samples / 32768.0  # int16 range stored as float

    return samples


class AudioSignalSampler:
    """
    Derives normalized voice indicators from audio.

    Indicators:
    - stress, excitement, calmness, intensity, breathiness (affect)
    - breath irregularity, tremor, pitch instability, volume inconsistency,
      speech-rate deviation (crisis)
    """

    def __init__(self, config: Optional[SamplerConfig] = None):
        self.config = config or get_settings().sampler

    def analyze(
        self,
        audio: Union[np.ndarray, bytes],
        sample_rate: Optional[int] = None,
    ) -> AudioFeatures:
        """
        Analyze an audio buffer.

        Args:
            audio: Float samples in [-1, 1] or int16 PCM bytes
            sample_rate: Sample rate in Hz (defaults to configured rate)

        Returns:
            AudioFeatures; all zeros when the buffer is too short to analyze
        """
        sample_rate = sample_rate or self.config.sample_rate
        samples = to_float_audio(audio)
        duration_ms = 1000.0 * samples.size / sample_rate

        frame_samples = self._frame_samples(sample_rate)
        hop_samples = max(1, int(self.config.hop_size_ms * sample_rate / 1000))

        if samples.size < frame_samples:
            logger.debug("Audio buffer too short", samples=int(samples.size))
            return AudioFeatures(sample_rate=sample_rate, duration_ms=duration_ms)

        rms = float(np.sqrt(np.mean(samples ** 2)))
        zcr = float(np.sum(np.abs(np.diff(np.signbit(samples).astype(np.int8))))) / samples.size

        frames = self._frames(samples, frame_samples, hop_samples)
        frame_rms = np.sqrt(np.mean(frames ** 2, axis=1))
        voiced = frame_rms > (np.mean(frame_rms) * 0.3)

        pitches = [
            self._estimate_pitch(frame, sample_rate)
            for frame, is_voiced in zip(frames, voiced)
            if is_voiced
        ]
        pitches = [p for p in pitches if p > 0]

        low_ratio, high_ratio = self._band_ratios(samples, sample_rate)

        # Affect indicators
        stress = clamp(zcr * 3, 0.0, 1.0)
        excitement = clamp(rms * 2, 0.0, 1.0)
        calmness = clamp(1 - stress - excitement * 0.5, 0.0, 1.0)
        intensity = clamp((stress + excitement) / 2, 0.0, 1.0)
        breathiness = clamp(zcr * 5, 0.0, 1.0)

        return AudioFeatures(
            sample_rate=sample_rate,
            duration_ms=duration_ms,
            rms=rms,
            zero_crossing_rate=zcr,
            pitch_hz=float(np.mean(pitches)) if pitches else 0.0,
            low_band_ratio=low_ratio,
            high_band_ratio=high_ratio,
            stress=stress,
            excitement=excitement,
            calmness=calmness,
            intensity=intensity,
            breathiness=breathiness,
            breath_irregularity=self._breath_irregularity(voiced),
            tremor=self._tremor(frames),
            pitch_instability=self._pitch_instability(pitches),
            volume_inconsistency=self._volume_inconsistency(frame_rms),
            speech_rate=self._speech_rate_deviation(voiced, samples.size / sample_rate),
        )

    def _frame_samples(self, sample_rate: int) -> int:
        return max(1, int(self.config.frame_size_ms * sample_rate / 1000))

    @staticmethod
    def _frames(samples: np.ndarray, frame_samples: int, hop_samples: int) -> np.ndarray:
        n_frames = 1 + (samples.size - frame_samples) // hop_samples
        return np.stack(
            [samples[i * hop_samples:i * hop_samples + frame_samples] for i in range(n_frames)]
        )

    def _estimate_pitch(self, frame: np.ndarray, sample_rate: int) -> float:
        """Estimate pitch using autocorrelation."""
        frame = frame - np.mean(frame)
        corr = np.correlate(frame, frame, mode="full")
        corr = corr[len(corr) // 2:]

        min_period = int(sample_rate / self.config.pitch_max_hz)
        max_period = min(int(sample_rate / self.config.pitch_min_hz), len(corr) - 1)

        if min_period >= max_period or corr[0] <= 0:
            return 0.0

        segment = corr[min_period:max_period]
        if np.max(segment) < self.config.pitch_threshold * corr[0]:
            return 0.0  # Unvoiced

        peak = int(np.argmax(segment)) + min_period
        return float(sample_rate / peak)

    def _band_ratios(self, samples: np.ndarray, sample_rate: int) -> tuple:
        n_fft = min(2048, samples.size)
        spectrum = np.abs(np.fft.rfft(samples[:n_fft])) ** 2
        freqs = np.fft.rfftfreq(n_fft, 1 / sample_rate)

        total = float(np.sum(spectrum))
        if total <= 0:
            return 0.0, 0.0

        low = float(np.sum(spectrum[freqs < self.config.band_split_hz])) / total
        return low, 1.0 - low

    @staticmethod
    def _breath_irregularity(voiced: np.ndarray) -> float:
        """Variation in the length of pauses between voiced runs."""
        pauses: List[int] = []
        run = 0
        for is_voiced in voiced:
            if is_voiced:
                if run:
                    pauses.append(run)
                run = 0
            else:
                run += 1

        if len(pauses) < 2:
            return 0.0

        lengths = np.array(pauses, dtype=float)
        return clamp(float(np.std(lengths) / (np.mean(lengths) + 1e-10)), 0.0, 1.0)

    @staticmethod
    def _tremor(frames: np.ndarray) -> float:
        """Frame-to-frame amplitude shimmer."""
        if len(frames) < 2:
            return 0.0

        peaks = np.max(np.abs(frames), axis=1)
        shimmer = np.mean(np.abs(np.diff(peaks))) / (np.mean(peaks) + 1e-10)
        return clamp(float(shimmer) / 0.3, 0.0, 1.0)

    @staticmethod
    def _pitch_instability(pitches: List[float]) -> float:
        if len(pitches) < 2:
            return 0.0

        values = np.array(pitches)
        return clamp(float(np.std(values) / np.mean(values)) * 4, 0.0, 1.0)

    @staticmethod
    def _volume_inconsistency(frame_rms: np.ndarray) -> float:
        mean = float(np.mean(frame_rms))
        if mean <= 0:
            return 0.0
        return clamp(float(np.std(frame_rms)) / mean / 2, 0.0, 1.0)

    def _speech_rate_deviation(self, voiced: np.ndarray, duration_s: float) -> float:
        """How far the syllable rate is from relaxed speech."""
        if duration_s <= 0:
            return 0.0

        transitions = np.abs(np.diff(voiced.astype(float)))
        syllables = float(np.sum(transitions)) / 2
        if syllables == 0:
            return 0.0

        rate = syllables / duration_s
        typical = self.config.typical_syllable_rate
        return clamp(abs(rate - typical) / typical, 0.0, 1.0)
