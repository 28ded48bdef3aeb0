#!/usr/bin/env python3
"""Channel calibration engine for the RC visualiser.

This module provides the value-transform half of the pipeline:
- default/override calibration resolution per channel
- raw axis sample to signed gimbal offset mapping
- the latest mapped value of each of the four channels
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

CHANNELS: Tuple[int, ...] = (1, 2, 3, 4)

# Aileron, elevator, throttle, rudder on a typical transmitter-as-gamepad.
CHANNEL_NAMES: Dict[int, str] = {
    1: "aileron",
    2: "elevator",
    3: "throttle",
    4: "rudder",
}

# Left stick X/Y, left Z, right stick X in SDL joystick axis order.
# SDL reports stick Y as positive-down, matching screen y, so sticks draw
# upright without ``invert``.
DEFAULT_AXIS_MAP: Dict[int, int] = {0: 1, 1: 2, 2: 3, 3: 4}


@dataclass(frozen=True)
class ChannelCalibration:
    max: float = 1.0
    invert: bool = False


@dataclass(frozen=True)
class ChannelOverride:
    max: Optional[float] = None
    invert: Optional[bool] = None
    axis: Optional[int] = None


def resolve_calibration(override: ChannelOverride, default: ChannelCalibration) -> ChannelCalibration:
    """Fill each field missing from ``override`` with the shared default."""
    return ChannelCalibration(
        max=default.max if override.max is None else override.max,
        invert=default.invert if override.invert is None else override.invert,
    )


@dataclass(frozen=True)
class ChannelsConfig:
    default: ChannelCalibration = field(default_factory=ChannelCalibration)
    channel1: ChannelOverride = field(default_factory=ChannelOverride)
    channel2: ChannelOverride = field(default_factory=ChannelOverride)
    channel3: ChannelOverride = field(default_factory=ChannelOverride)
    channel4: ChannelOverride = field(default_factory=ChannelOverride)
    _resolved: Dict[int, ChannelCalibration] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def override(self, channel: int) -> ChannelOverride:
        if channel not in CHANNELS:
            raise ValueError(f"Channel must be one of {CHANNELS}, got {channel}.")
        return getattr(self, f"channel{channel}")

    def calibration(self, channel: int) -> ChannelCalibration:
        cached = self._resolved.get(channel)
        if cached is None:
            cached = resolve_calibration(self.override(channel), self.default)
            self._resolved[channel] = cached
        return cached

    def axis_map(self) -> Dict[int, int]:
        """Return pygame axis index -> channel, honouring per-channel ``axis`` rebinds."""
        bound = {channel: axis for axis, channel in DEFAULT_AXIS_MAP.items()}
        for channel in CHANNELS:
            axis = self.override(channel).axis
            if axis is not None:
                bound[channel] = axis
        return {axis: channel for channel, axis in bound.items()}


def map_value(value: float, calibration: ChannelCalibration) -> float:
    """Map a raw axis sample to a gimbal offset, nominally -0.5..0.5.

    Samples beyond ``calibration.max`` are not clamped and land outside the
    gimbal's bounding square.
    """
    scaled = value / calibration.max * 0.5
    if calibration.invert:
        return -scaled
    return scaled


@dataclass
class DisplayState:
    channel_1: float = 0.0
    channel_2: float = 0.0
    channel_3: float = 0.0
    channel_4: float = 0.0

    def channel(self, channel: int) -> float:
        if channel not in CHANNELS:
            raise ValueError(f"Channel must be one of {CHANNELS}, got {channel}.")
        return getattr(self, f"channel_{channel}")

    def set_channel(self, channel: int, value: float) -> None:
        if channel not in CHANNELS:
            raise ValueError(f"Channel must be one of {CHANNELS}, got {channel}.")
        setattr(self, f"channel_{channel}", float(value))

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.channel_1, self.channel_2, self.channel_3, self.channel_4)


def apply_axis_event(
    state: DisplayState,
    channels: ChannelsConfig,
    axis_map: Dict[int, int],
    axis: int,
    value: float,
) -> Optional[int]:
    """Store the mapped sample of ``axis`` and return its channel, or None if unbound."""
    channel = axis_map.get(axis)
    if channel is None:
        return None
    state.set_channel(channel, map_value(value, channels.calibration(channel)))
    return channel
