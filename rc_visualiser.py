#!/usr/bin/env python3
"""RC transmitter gimbal visualiser.

Reads the analog axes of a gamepad (typically an RC transmitter in USB
joystick mode), applies per-channel calibration, and draws the live position
of both transmitter gimbals.
"""

from __future__ import annotations

import argparse
import enum
import logging
import os
import pathlib
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import yaml

import channel_engine as engine
import gimbal_view as view

try:
    import pygame
except ImportError as exc:  # pragma: no cover - runtime dependency
    raise SystemExit(
        "Missing dependency: pygame. Install with `pip install -e .`."
    ) from exc


__version__ = "0.1.0"

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = pathlib.Path("config.yaml")
DEFAULT_TITLE = "RC Transmitter"
WINDOW_WIDTH = 900
WINDOW_HEIGHT = 500
BACKDROP = (128, 128, 128)
GSETTINGS_TIMEOUT_S = 2.0


class ConfigError(RuntimeError):
    pass


def _section(data: Mapping[str, object], key: str, where: str) -> Mapping[str, object]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{where}{key}' must be a table of options.")
    return value


def _optional_positive_float(data: Mapping[str, object], key: str, where: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{where}.{key}' must be a number, got {value!r}.")
    if value <= 0:
        raise ConfigError(f"'{where}.{key}' must be greater than zero, got {value}.")
    return float(value)


def _optional_bool(data: Mapping[str, object], key: str, where: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ConfigError(f"'{where}.{key}' must be true or false, got {value!r}.")
    return value


def _optional_int(data: Mapping[str, object], key: str, where: str, minimum: int) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{where}.{key}' must be an integer, got {value!r}.")
    if value < minimum:
        raise ConfigError(f"'{where}.{key}' must be at least {minimum}, got {value}.")
    return value


@dataclass
class GuiConfig:
    scale: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "GuiConfig":
        return cls(scale=_optional_int(data, "scale", "gui", minimum=1))


def channels_from_dict(data: Mapping[str, object]) -> engine.ChannelsConfig:
    default_data = _section(data, "default", "channels.")
    baseline = engine.ChannelCalibration()
    default_max = _optional_positive_float(default_data, "max", "channels.default")
    default_invert = _optional_bool(default_data, "invert", "channels.default")
    default = engine.ChannelCalibration(
        max=baseline.max if default_max is None else default_max,
        invert=baseline.invert if default_invert is None else default_invert,
    )

    overrides: Dict[str, engine.ChannelOverride] = {}
    for channel in engine.CHANNELS:
        name = f"channel{channel}"
        where = f"channels.{name}"
        section = _section(data, name, "channels.")
        overrides[name] = engine.ChannelOverride(
            max=_optional_positive_float(section, "max", where),
            invert=_optional_bool(section, "invert", where),
            axis=_optional_int(section, "axis", where, minimum=0),
        )

    return engine.ChannelsConfig(default=default, **overrides)


@dataclass
class VisualiserConfig:
    gui: GuiConfig = field(default_factory=GuiConfig)
    channels: engine.ChannelsConfig = field(default_factory=engine.ChannelsConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "VisualiserConfig":
        return cls(
            gui=GuiConfig.from_dict(_section(data, "gui", "")),
            channels=channels_from_dict(_section(data, "channels", "")),
        )


def load_config(path: pathlib.Path) -> VisualiserConfig:
    if not path.exists():
        raise ConfigError(f"Config not found at {path}.")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Config is unreadable at {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config at {path} must be a mapping of options.")
    return VisualiserConfig.from_dict(raw)


def _parse_scale(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    try:
        scale = int(text.strip())
    except ValueError:
        return None
    return scale if scale >= 1 else None


def gsettings_scale() -> Optional[int]:
    try:
        result = subprocess.run(
            ["gsettings", "get", "org.gnome.desktop.interface", "scaling-factor"],
            capture_output=True,
            text=True,
            check=False,
            timeout=GSETTINGS_TIMEOUT_S,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    # Output looks like "uint32 2".
    tokens = result.stdout.split()
    return _parse_scale(tokens[-1]) if tokens else None


def resolve_scale(
    configured: Optional[int],
    environ: Mapping[str, str] = os.environ,
    desktop_hint: Callable[[], Optional[int]] = gsettings_scale,
) -> int:
    """Explicit scale first, then GDK_SCALE, then the GNOME setting, then 1."""
    if configured is not None:
        return configured
    from_env = _parse_scale(environ.get("GDK_SCALE"))
    if from_env is not None:
        return from_env
    from_desktop = desktop_hint()
    if from_desktop is not None:
        return from_desktop
    return 1


@dataclass
class ControllerInfo:
    index: int
    name: str
    power: str
    axis_count: int
    button_count: int


def init_input_system() -> None:
    pygame.init()
    pygame.joystick.init()


def shutdown_input_system() -> None:
    pygame.joystick.quit()
    pygame.quit()


def read_controller_info(index: int) -> ControllerInfo:
    joystick = pygame.joystick.Joystick(index)
    joystick.init()
    info = ControllerInfo(
        index=index,
        name=str(joystick.get_name()),
        power=str(joystick.get_power_level()),
        axis_count=joystick.get_numaxes(),
        button_count=joystick.get_numbuttons(),
    )
    return info


def list_controllers() -> List[ControllerInfo]:
    return [read_controller_info(index) for index in range(pygame.joystick.get_count())]


def window_title(controllers: Iterable[ControllerInfo]) -> str:
    for controller in controllers:
        return controller.name
    return DEFAULT_TITLE


class LoopState(enum.Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting down"


class MainLoop:
    """Drain events, update the channel state, paint and present, until quit."""

    def __init__(
        self,
        config: VisualiserConfig,
        scale: int,
        frame: view.FrameBuffer,
        screen: Optional["pygame.Surface"] = None,
        fps: int = 60,
    ) -> None:
        self.config = config
        self.scale = scale
        self.frame = frame
        self.screen = screen
        self.fps = fps
        self.state = engine.DisplayState()
        self.axis_map = config.channels.axis_map()
        self.loop_state = LoopState.RUNNING
        self.joysticks: Dict[int, "pygame.joystick.Joystick"] = {}
        self.clock = pygame.time.Clock()

    @property
    def running(self) -> bool:
        return self.loop_state is LoopState.RUNNING

    def shutdown(self) -> None:
        if self.running:
            logger.info("shutting down")
        self.loop_state = LoopState.SHUTTING_DOWN

    def handle_event(self, event: "pygame.event.Event") -> Optional[int]:
        """Apply one event; returns the channel it updated, if any."""
        if event.type == pygame.QUIT:
            self.shutdown()
        elif event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                self.shutdown()
            elif event.key == pygame.K_r:
                pass  # reserved
        elif event.type == pygame.JOYAXISMOTION:
            channel = engine.apply_axis_event(
                self.state,
                self.config.channels,
                self.axis_map,
                event.axis,
                float(event.value),
            )
            if channel is None:
                logger.debug("Ignoring unbound axis %s (%+0.3f)", event.axis, event.value)
            else:
                logger.debug(
                    "Axis %s -> channel %d %s = %+0.3f",
                    event.axis,
                    channel,
                    engine.CHANNEL_NAMES[channel],
                    self.state.channel(channel),
                )
            return channel
        elif event.type == pygame.JOYDEVICEADDED:
            joystick = pygame.joystick.Joystick(event.device_index)
            joystick.init()
            self.joysticks[joystick.get_instance_id()] = joystick
            logger.info("Connected: %s", joystick.get_name())
        elif event.type == pygame.JOYDEVICEREMOVED:
            joystick = self.joysticks.pop(event.instance_id, None)
            name = joystick.get_name() if joystick is not None else event.instance_id
            logger.info("Disconnected: %s", name)
        return None

    def process_events(self, events: Iterable["pygame.event.Event"]) -> None:
        for event in events:
            self.handle_event(event)

    def render(self) -> np.ndarray:
        return self.frame.render(self.scale, self.state)

    def present(self, pixels: np.ndarray) -> None:
        if self.screen is None:
            return
        self.screen.fill(BACKDROP)
        surface = pygame.surfarray.make_surface(pixels.swapaxes(0, 1))
        self.screen.blit(surface, (0, 0))
        pygame.display.flip()

    def step(self) -> None:
        self.process_events(pygame.event.get())
        if not self.running:
            return
        self.present(self.render())
        self.clock.tick(self.fps)

    def run(self) -> None:
        while self.running:
            self.step()


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got {value!r}.") from exc
    if number < 1:
        raise argparse.ArgumentTypeError(f"Expected a value of at least 1, got {number}.")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live gimbal view of an RC transmitter connected as a gamepad."
    )
    parser.add_argument(
        "--config",
        type=pathlib.Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML config path (default: {DEFAULT_CONFIG_PATH}).",
    )
    parser.add_argument(
        "--scale",
        type=positive_int,
        default=None,
        help="DPI scale. Overrides gui.scale and the desktop setting.",
    )
    parser.add_argument(
        "--fps",
        type=positive_int,
        default=60,
        help="Frame rate cap (default: 60).",
    )
    parser.add_argument(
        "--width",
        type=positive_int,
        default=WINDOW_WIDTH,
        help=f"Window width in pixels (default: {WINDOW_WIDTH}).",
    )
    parser.add_argument(
        "--height",
        type=positive_int,
        default=WINDOW_HEIGHT,
        help=f"Window height in pixels (default: {WINDOW_HEIGHT}).",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List connected controllers and exit.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every input event.",
    )
    return parser


def print_controller_list(controllers: List[ControllerInfo]) -> int:
    if not controllers:
        print("No controllers detected.")
        return 1

    print("Connected controllers")
    print("---------------------")
    for controller in controllers:
        print(
            f"[{controller.index}] {controller.name} | power={controller.power} | "
            f"axes={controller.axis_count} buttons={controller.button_count}"
        )
    return 0


def open_window(title: str, size: Tuple[int, int]) -> "pygame.Surface":
    try:
        pygame.display.set_caption(title)
        return pygame.display.set_mode(size)
    except pygame.error as exc:
        raise RuntimeError(f"Unable to open a window: {exc}") from exc


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("RC Visualiser %s", __version__)

    input_ready = False
    try:
        config = None if args.list else load_config(args.config)

        try:
            init_input_system()
        except pygame.error as exc:
            raise RuntimeError(f"Input system unavailable: {exc}") from exc
        input_ready = True

        controllers = list_controllers()
        if config is None:
            return print_controller_list(controllers)

        for controller in controllers:
            logger.info("%s is %s", controller.name, controller.power)

        scale = args.scale if args.scale is not None else resolve_scale(config.gui.scale)
        screen = open_window(window_title(controllers), (args.width, args.height))
        drawable = screen.get_size()
        logger.info("Scale: %d", scale)
        logger.info("Window: '%s' %s", pygame.display.get_caption()[0], (args.width, args.height))
        logger.info("Drawable: %s", drawable)

        view.ensure_gui_application()
        frame = view.FrameBuffer(*drawable)
        logger.debug(view.describe_layout(view.gimbal_layout(frame.width, frame.height, scale)))

        MainLoop(config, scale, frame, screen=screen, fps=args.fps).run()
        return 0

    except RuntimeError as exc:
        logger.error("Error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped.")
        return 0
    finally:
        if input_ready:
            shutdown_input_system()


if __name__ == "__main__":
    raise SystemExit(main())
