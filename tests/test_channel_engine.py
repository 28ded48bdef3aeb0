from __future__ import annotations

import unittest

import channel_engine as engine


class ChannelMapperTests(unittest.TestCase):
    def test_unit_range_maps_to_half_range(self) -> None:
        cal = engine.ChannelCalibration(max=1.0, invert=False)

        self.assertEqual(engine.map_value(0.0, cal), 0.0)
        self.assertEqual(engine.map_value(1.0, cal), 0.5)
        self.assertEqual(engine.map_value(-1.0, cal), -0.5)

    def test_max_scales_input(self) -> None:
        cal = engine.ChannelCalibration(max=2.0)

        self.assertAlmostEqual(engine.map_value(2.0, cal), 0.5)
        self.assertAlmostEqual(engine.map_value(1.0, cal), 0.25)

    def test_invert_only_flips_sign(self) -> None:
        for max_value in (0.5, 1.0, 2.0, 3.7):
            plain = engine.ChannelCalibration(max=max_value, invert=False)
            inverted = engine.ChannelCalibration(max=max_value, invert=True)
            for value in (-1.3, -1.0, -0.25, 0.0, 0.1, 0.75, 1.0, 2.2):
                self.assertEqual(
                    engine.map_value(value, inverted),
                    -engine.map_value(value, plain),
                )

    def test_sample_at_max_lands_on_square_edge(self) -> None:
        cal = engine.ChannelCalibration(max=0.8)

        self.assertEqual(engine.map_value(0.8, cal), 0.5)
        self.assertEqual(engine.map_value(-0.8, cal), -0.5)

    def test_out_of_range_sample_is_not_clamped(self) -> None:
        cal = engine.ChannelCalibration(max=1.5)

        self.assertAlmostEqual(engine.map_value(3.0, cal), 1.0)
        self.assertAlmostEqual(engine.map_value(-3.0, cal), -1.0)


class CalibrationResolutionTests(unittest.TestCase):
    def test_baseline_default(self) -> None:
        cal = engine.resolve_calibration(engine.ChannelOverride(), engine.ChannelCalibration())
        self.assertEqual(cal, engine.ChannelCalibration(max=1.0, invert=False))

    def test_unset_fields_inherit_default(self) -> None:
        default = engine.ChannelCalibration(max=2.0, invert=True)

        cal = engine.resolve_calibration(engine.ChannelOverride(max=3.0), default)
        self.assertEqual(cal, engine.ChannelCalibration(max=3.0, invert=True))

    def test_explicit_false_overrides_default_true(self) -> None:
        default = engine.ChannelCalibration(max=2.0, invert=True)

        cal = engine.resolve_calibration(engine.ChannelOverride(invert=False), default)
        self.assertEqual(cal, engine.ChannelCalibration(max=2.0, invert=False))

    def test_channels_resolve_independently(self) -> None:
        channels = engine.ChannelsConfig(
            default=engine.ChannelCalibration(max=0.7),
            channel2=engine.ChannelOverride(invert=True),
            channel4=engine.ChannelOverride(max=0.9),
        )

        self.assertEqual(channels.calibration(1), engine.ChannelCalibration(0.7, False))
        self.assertEqual(channels.calibration(2), engine.ChannelCalibration(0.7, True))
        self.assertEqual(channels.calibration(3), engine.ChannelCalibration(0.7, False))
        self.assertEqual(channels.calibration(4), engine.ChannelCalibration(0.9, False))
        self.assertIs(channels.calibration(4), channels.calibration(4))

    def test_unknown_channel_rejected(self) -> None:
        with self.assertRaises(ValueError):
            engine.ChannelsConfig().calibration(5)


class AxisMapTests(unittest.TestCase):
    def test_default_axis_binding(self) -> None:
        self.assertEqual(engine.ChannelsConfig().axis_map(), {0: 1, 1: 2, 2: 3, 3: 4})

    def test_axis_rebind(self) -> None:
        channels = engine.ChannelsConfig(channel4=engine.ChannelOverride(axis=5))
        self.assertEqual(channels.axis_map(), {0: 1, 1: 2, 2: 3, 5: 4})


class DisplayStateTests(unittest.TestCase):
    def test_starts_at_zero(self) -> None:
        self.assertEqual(engine.DisplayState().as_tuple(), (0.0, 0.0, 0.0, 0.0))

    def test_four_axis_events_fill_state(self) -> None:
        state = engine.DisplayState()
        channels = engine.ChannelsConfig()
        axis_map = channels.axis_map()

        for axis, value in enumerate((0.4, -0.4, 0.2, -0.2)):
            engine.apply_axis_event(state, channels, axis_map, axis, value)

        for actual, expected in zip(state.as_tuple(), (0.2, -0.2, 0.1, -0.1)):
            self.assertAlmostEqual(actual, expected)

    def test_latest_sample_wins(self) -> None:
        state = engine.DisplayState()
        channels = engine.ChannelsConfig()
        axis_map = channels.axis_map()

        engine.apply_axis_event(state, channels, axis_map, 0, 1.0)
        engine.apply_axis_event(state, channels, axis_map, 0, -0.5)
        self.assertAlmostEqual(state.channel_1, -0.25)

    def test_unbound_axis_is_ignored(self) -> None:
        state = engine.DisplayState()
        channels = engine.ChannelsConfig()

        channel = engine.apply_axis_event(state, channels, channels.axis_map(), 7, 1.0)
        self.assertIsNone(channel)
        self.assertEqual(state.as_tuple(), (0.0, 0.0, 0.0, 0.0))

    def test_uses_channel_calibration(self) -> None:
        state = engine.DisplayState()
        channels = engine.ChannelsConfig(channel2=engine.ChannelOverride(max=0.5, invert=True))

        channel = engine.apply_axis_event(state, channels, channels.axis_map(), 1, 0.25)
        self.assertEqual(channel, 2)
        self.assertAlmostEqual(state.channel_2, -0.25)


if __name__ == "__main__":
    unittest.main()
