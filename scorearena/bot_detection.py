"""Heuristics that flag or reject suspicious score submissions."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

FRAMES_PER_SECOND = 60.0


@dataclass(frozen=True)
class BotDetectionSettings:
    """Thresholds used by the bot detection checks."""

    enabled: bool = True
    max_accounts_per_ip_per_hour: int = 3
    max_sessions_per_ip_per_hour: int = 20
    min_timing_variance_us2: int = 1000
    max_mean_offset_us: int = 10000


@dataclass
class BotDetectionResult:
    """Flags raised by a check and whether the submission must be rejected."""

    flags: list[str] = field(default_factory=list)
    reject: bool = False


@dataclass(frozen=True)
class TimingSignals:
    """Raw frame timing statistics, kept for dashboards."""

    variance_us2: float
    mean_offset_us: float
    client_claimed_secs: float


@dataclass(frozen=True)
class IpAnalysis:
    """Recent activity seen from one client address."""

    session_count: int
    account_count: int


def _decode_samples(timing_bytes: bytes) -> list[int]:
    """Decode little-endian i16 samples, ignoring a trailing odd byte."""
    count = len(timing_bytes) // 2
    return list(struct.unpack(f"<{count}h", bytes(timing_bytes[: count * 2])))


def _trunc_div(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _client_claimed_secs(samples: list[int]) -> float:
    # N samples cover N+1 one-second windows, the first one unsampled.
    return (len(samples) + 1) + sum(samples) / 1_000_000.0


def analyze_server_timing(
    frames: int, session_created_secs: int, score_submitted_secs: int
) -> BotDetectionResult:
    """Compare the frame count with server-measured wall-clock time."""
    result = BotDetectionResult()
    if frames == 0 or session_created_secs >= score_submitted_secs:
        return result

    wall_clock_secs = float(score_submitted_secs - session_created_secs)
    expected_secs = frames / FRAMES_PER_SECOND
    ratio = wall_clock_secs / expected_secs

    if ratio < 0.5:
        result.flags.append("impossible_speed")
        result.reject = True
    elif ratio > 5.0 and expected_secs > 10.0:
        result.flags.append("extreme_slow_motion")
    return result


def analyze_ip_activity(
    analysis: IpAnalysis, config: BotDetectionSettings
) -> BotDetectionResult:
    """Reject addresses used by too many accounts or sessions in the last hour."""
    result = BotDetectionResult()
    if analysis.account_count > config.max_accounts_per_ip_per_hour:
        result.flags.append("multi_account_ip")
        result.reject = True
    if analysis.session_count > config.max_sessions_per_ip_per_hour:
        result.flags.append("rapid_sessions")
        result.reject = True
    return result


def analyze_frame_timings(
    timing_bytes: bytes, config: BotDetectionSettings
) -> BotDetectionResult:
    """Flag suspicious client-reported frame timing offsets; never rejects."""
    result = BotDetectionResult()
    if len(timing_bytes) < 4:
        return result

    samples = _decode_samples(timing_bytes)
    if len(samples) < 3:
        return result

    mean = _trunc_div(sum(samples), len(samples))
    variance = sum((s - mean) ** 2 for s in samples) // len(samples)

    if variance < config.min_timing_variance_us2:
        result.flags.append("low_timing_jitter")
    if mean > config.max_mean_offset_us:
        result.flags.append("slow_motion")
    if mean < -config.max_mean_offset_us:
        result.flags.append("speedup")
    return result


def extract_timing_signals(timing_bytes: bytes) -> TimingSignals | None:
    """Compute raw timing statistics, or None if there are too few bytes."""
    if len(timing_bytes) < 4:
        return None
    samples = _decode_samples(timing_bytes)
    if not samples:
        return None

    mean = sum(samples) / len(samples)
    variance = sum((s - mean) ** 2 for s in samples) / len(samples)
    return TimingSignals(
        variance_us2=variance,
        mean_offset_us=mean,
        client_claimed_secs=_client_claimed_secs(samples),
    )


def cross_reference_timings(
    timing_bytes: bytes, server_elapsed_secs: float
) -> BotDetectionResult:
    """Reject submissions whose claimed play time diverges from the server's."""
    result = BotDetectionResult()
    if len(timing_bytes) < 4 or server_elapsed_secs <= 0.0:
        return result

    samples = _decode_samples(timing_bytes)
    if not samples:
        return result

    claimed = _client_claimed_secs(samples)
    if claimed <= 0.0:
        return result

    ratio = claimed / server_elapsed_secs
    if ratio > 1.5:
        result.flags.append("timing_mismatch_speedhack")
        result.reject = True
    elif ratio < 0.5:
        result.flags.append("timing_mismatch_slowmo")
        result.reject = True
    return result