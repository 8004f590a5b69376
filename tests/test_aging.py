"""
Aging and Observer Tests
========================

Tests for signals, cycle counters, age models and selector resolution.
"""

import sys
from pathlib import Path
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.lfp_battery import (
    BatteryConfig,
    BatteryController,
    Cell,
    ConfigurationError,
    CurveFitCollection,
    DischargeFit,
    DummyAgeModel,
    DummyCycleCounter,
    EventOrientedAgeModel,
    HalfCycleCounter,
    Signal,
    WoehlerFit,
    build_age_model,
)


class TestSignal(unittest.TestCase):
    """Test the callback list."""

    def test_registration_order(self):
        signal = Signal()
        calls = []
        signal.connect(lambda v: calls.append(("a", v)))
        signal.connect(lambda v: calls.append(("b", v)))
        signal.emit(0.5)
        self.assertEqual(calls, [("a", 0.5), ("b", 0.5)])

    def test_connect_is_idempotent(self):
        signal = Signal()
        calls = []
        signal.connect(calls.append)
        signal.connect(calls.append)
        signal.emit(1)
        self.assertEqual(calls, [1])
        self.assertEqual(len(signal), 1)

    def test_disconnect(self):
        signal = Signal()
        calls = []
        signal.connect(calls.append)
        signal.disconnect(calls.append)
        signal.disconnect(calls.append)
        signal.emit(1)
        self.assertEqual(calls, [])

    def test_rejects_non_callable(self):
        with self.assertRaises(TypeError):
            Signal().connect(42)


class TestHalfCycleCounter(unittest.TestCase):
    """Test half cycle detection."""

    def test_turning_points(self):
        """A half cycle is recorded whenever the SoC changes direction."""
        counter = HalfCycleCounter(soc=1.0)
        depths = []
        counter.cycle_completed.connect(depths.append)

        for soc in (0.6, 0.4, 0.7, 0.5):
            counter.update(soc)

        self.assertEqual(len(depths), 2)
        self.assertAlmostEqual(depths[0], 0.6)
        self.assertAlmostEqual(depths[1], 0.3)
        self.assertAlmostEqual(counter.equivalent_full_cycles, 0.45)

    def test_constant_soc(self):
        counter = HalfCycleCounter(soc=0.5)
        counter.update(0.5)
        counter.update(0.5)
        self.assertEqual(counter.half_cycles, [])

    def test_dummy_counter(self):
        counter = DummyCycleCounter(soc=1.0)
        depths = []
        counter.cycle_completed.connect(depths.append)
        for soc in (0.2, 0.9, 0.1):
            counter.update(soc)
        self.assertEqual(depths, [])


class TestAgeModels(unittest.TestCase):
    """Test SoH models."""

    def test_event_oriented(self):
        """Each half cycle costs 0.5 / N(d) of the life."""
        model = EventOrientedAgeModel(WoehlerFit(1000.0, 1.0))
        updates = []
        model.soh_changed.connect(updates.append)

        model.on_cycle(0.5)

        self.assertAlmostEqual(model.damage, 0.5 / 2000.0)
        self.assertAlmostEqual(model.soh, 1.0 - 0.2 * 0.5 / 2000.0)
        self.assertEqual(len(updates), 1)

    def test_end_of_life(self):
        """A fully consumed life ends at the end of life SoH."""
        model = EventOrientedAgeModel(WoehlerFit(1.0, 0.0))
        model.on_cycle(1.0)
        model.on_cycle(1.0)
        self.assertAlmostEqual(model.soh, 0.8)

    def test_no_curve_no_aging(self):
        model = EventOrientedAgeModel()
        model.on_cycle(0.8)
        self.assertEqual(model.soh, 1.0)

    def test_counter_drives_model(self):
        """Half cycles reported by a counter reach the age model."""
        model = EventOrientedAgeModel(WoehlerFit(1000.0, 1.0))
        counter = HalfCycleCounter(soc=1.0)
        model.add_counter(counter)
        counter.update(0.5)
        counter.update(0.9)
        self.assertLess(model.soh, 1.0)

    def test_dummy_model_setter(self):
        model = DummyAgeModel()
        updates = []
        model.soh_changed.connect(updates.append)
        model.soh = 0.9
        model.soh = 0.9
        self.assertEqual(updates, [0.9])

    def test_rejects_non_counter(self):
        with self.assertRaises(ConfigurationError):
            DummyAgeModel().add_counter(object())


class TestBuildAgeModel(unittest.TestCase):
    """Test selector resolution."""

    def test_none(self):
        model, counter, lower_level = build_age_model("none", "auto", soh=0.95)
        self.assertIsInstance(model, DummyAgeModel)
        self.assertIsInstance(counter, DummyCycleCounter)
        self.assertFalse(lower_level)
        self.assertEqual(model.soh, 0.95)

    def test_lower_level(self):
        _, _, lower_level = build_age_model("lower_level")
        self.assertTrue(lower_level)

    def test_event_oriented(self):
        curve = WoehlerFit(1000.0, 1.0)
        model, counter, _ = build_age_model("eo", "auto", soc_max=0.9, cycle_life_curve=curve)
        self.assertIsInstance(model, EventOrientedAgeModel)
        self.assertIsInstance(counter, HalfCycleCounter)
        self.assertIs(model.cycle_life_curve, curve)
        self.assertEqual(counter.soc_max, 0.9)
        self.assertIn(counter, model.counters)

    def test_custom_objects(self):
        custom_model = EventOrientedAgeModel()
        custom_counter = HalfCycleCounter()
        model, counter, _ = build_age_model(custom_model, custom_counter)
        self.assertIs(model, custom_model)
        self.assertIs(counter, custom_counter)

    def test_unknown_selectors(self):
        with self.assertRaises(ConfigurationError):
            build_age_model("woehler")
        with self.assertRaises(ConfigurationError):
            build_age_model("eo", "rainflow")


class TestControllerAging(unittest.TestCase):
    """Test aging wired into a battery."""

    def test_pack_level_event_oriented(self):
        """A discharge/charge cycle ages the battery and lowers its ceiling."""
        fit = DischargeFit.from_coefficients(
            [3.2, 0.0, 0.0], [3.2, 0.0, 0.0], [0.0, 0.0, 3.2], 0.5, 0.5, 1.0, 298.15
        )
        cell = Cell(2.0, 3.2, soc=1.0, discharge_curves=CurveFitCollection(fit),
                    cycle_life_curve=WoehlerFit(100.0, 1.0))
        battery = BatteryController(cell, BatteryConfig(
            soc_min=0.0, eta_charge=1.0, eta_discharge=1.0, age_model="eo"
        ))
        self.assertIsInstance(battery.age_model, EventOrientedAgeModel)

        battery.current_request(-1.0, 3600.0)   # 1.0 -> 0.5
        battery.current_request(1.0, 1800.0)    # turning point at 0.5

        self.assertAlmostEqual(battery.soh, 1.0 - 0.2 * 0.5 / 200.0)
        self.assertAlmostEqual(battery.cycle_counter.soc_max, battery.soh)


def run_validation():
    """Run aging tests and print summary."""
    print("=" * 60)
    print("Aging Validation")
    print("=" * 60)
    print()

    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestSignal))
    suite.addTests(loader.loadTestsFromTestCase(TestHalfCycleCounter))
    suite.addTests(loader.loadTestsFromTestCase(TestAgeModels))
    suite.addTests(loader.loadTestsFromTestCase(TestBuildAgeModel))
    suite.addTests(loader.loadTestsFromTestCase(TestControllerAging))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    print()
    print("=" * 60)
    if result.wasSuccessful():
        print("All aging tests PASSED")
    else:
        print(f"FAILED: {len(result.failures)} failures, {len(result.errors)} errors")
    print("=" * 60)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_validation()
    sys.exit(0 if success else 1)
