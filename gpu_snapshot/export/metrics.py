"""Values derived from raw telemetry before they are emitted."""

from __future__ import annotations

from gpu_snapshot.core import LIMITS, MetricLimits


def clamp_fan_speed(raw: int, limits: MetricLimits = LIMITS) -> int:
    return min(raw, limits.fan_speed_percent_max)


def clamp_fan_rpm(raw: int, limits: MetricLimits = LIMITS) -> int:
    return min(raw, limits.fan_rpm_max)


def power_draw_watts(milliwatts: int) -> int:
    return milliwatts // 1000


def power_utilization(power_draw: int | None, power_draw_max: int | None) -> int | None:
    """Percentage of the power limit in use, or ``None`` when it cannot be computed.

    A zero limit counts as unavailable.
    """

    if power_draw is None or power_draw_max is None or power_draw_max == 0:
        return None
    return power_draw * 100 // power_draw_max
