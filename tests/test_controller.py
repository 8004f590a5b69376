"""
Battery Controller Tests
========================

Tests for power and current requests, efficiency, current and SoC
limitation, observers and solver tracing.

Test Methodology:
- Single cell scenarios with flat discharge curves have exact answers
  (P = I·V with constant V)
- Limits are checked against hand-computed end states
- Random request sequences check that SoC never leaves its limits
"""

import sys
from pathlib import Path
import unittest
from unittest import mock

import numpy as np

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
    HalfCycleCounter,
    SeriesElement,
    SolverDebugger,
    set_debugger,
)
from src.lfp_battery.controller import SOC_EPSILON


def flat_curves(voltage=3.2, currents=(1.0, 4.0)):
    """Collection of flat discharge curves measured at the given currents."""
    return CurveFitCollection(*[
        DischargeFit.from_coefficients(
            x=[voltage, 0.0, 0.0], xs=[voltage, 0.0, 0.0], xe=[0.0, 0.0, voltage],
            dod_start=0.5, dod_end=0.5, current=i, temperature=298.15,
        )
        for i in currents
    ])


def linear_curves(v_full=3.4, slope=-0.4, currents=(1.0, 4.0)):
    """Collection of curves with V = v_full + slope·DoD."""
    return CurveFitCollection(*[
        DischargeFit.from_coefficients(
            x=[v_full, 0.0, 0.0], xs=[v_full, slope, 0.0], xe=[0.0, 0.0, v_full + slope],
            dod_start=1.0, dod_end=1.0, current=i, temperature=298.15,
        )
        for i in currents
    ])


def make_battery(soc=1.0, curves=None, max_current=None, **config):
    """Single 2 Ah / 3.2 V cell battery without efficiency losses."""
    params = dict(soc_min=0.0, soc_max=1.0, eta_charge=1.0, eta_discharge=1.0)
    params.update(config)
    cell = Cell(2.0, 3.2, soc=soc, max_current=max_current,
                discharge_curves=curves if curves is not None else flat_curves())
    return BatteryController(cell, BatteryConfig(**params))


class TestPowerRequest(unittest.TestCase):
    """Test power requests."""

    def test_one_c_discharge(self):
        """A 2 Ah cell at 3.2 V discharged with 6.4 W for an hour ends empty."""
        battery = make_battery(soc=1.0)
        result = battery.power_request(-6.4, 3600.0)

        self.assertAlmostEqual(result.current, -2.0, delta=battery.i_tol)
        self.assertAlmostEqual(result.power, -6.4, delta=battery.p_tol)
        self.assertAlmostEqual(result.voltage, 3.2)
        self.assertAlmostEqual(battery.soc, 0.0, delta=battery.s_tol)

    def test_charge(self):
        """Charging 3.2 W for half an hour stores 0.5 Ah."""
        battery = make_battery(soc=0.5)
        result = battery.power_request(3.2, 1800.0)
        self.assertAlmostEqual(result.current, 1.0, delta=battery.i_tol)
        self.assertAlmostEqual(battery.soc, 0.75, places=4)

    def test_zero_request_round_trip(self):
        """Without self-discharge a zero request changes nothing."""
        battery = make_battery(soc=0.6)
        v_before = battery.voltage
        result = battery.power_request(0.0, 3600.0)
        self.assertEqual(result.power, 0.0)
        self.assertEqual(result.current, 0.0)
        self.assertEqual(result.voltage, v_before)
        self.assertEqual(battery.soc, 0.6)

    def test_self_discharge(self):
        """A zero request with self-discharge returns a null response and changes nothing."""
        battery = make_battery(soc=0.6, self_discharge_rate=0.03)
        self.assertLess(battery.self_discharge_power, 0.0)
        calls = []
        battery.soc_changed.connect(calls.append)
        v_before = battery.voltage

        result = battery.power_request(0.0, 3600.0)

        self.assertEqual(result.power, 0.0)
        self.assertEqual(result.current, 0.0)
        self.assertEqual(result.voltage, v_before)
        self.assertEqual(battery.soc, 0.6)
        self.assertEqual(calls, [])

    def test_discharge_efficiency(self):
        """Discharge losses are drawn from the cells on top of the request."""
        battery = make_battery(soc=1.0, eta_discharge=0.9)
        result = battery.power_request(-6.4, 60.0)
        self.assertAlmostEqual(result.power, -6.4, delta=1e-2)
        self.assertAlmostEqual(result.current, -6.4 / 0.9 / 3.2, delta=1e-2)

    def test_charge_efficiency(self):
        """Charge losses reduce the current that reaches the cells."""
        battery = make_battery(soc=0.2, eta_charge=0.9)
        result = battery.power_request(6.4, 60.0)
        self.assertAlmostEqual(result.power, 6.4, delta=1e-2)
        self.assertAlmostEqual(result.current, 6.4 * 0.9 / 3.2, delta=1e-2)

    def test_current_limit(self):
        """Requests above the current limit saturate at Imax."""
        battery = make_battery(soc=1.0, max_current=1.0)
        result = battery.power_request(-6.4, 60.0)
        self.assertAlmostEqual(result.current, -1.0, delta=battery.i_tol)
        self.assertAlmostEqual(result.power, -3.2, delta=1e-2)

    def test_monotonic_until_saturation(self):
        """Larger discharge requests never give smaller currents."""
        currents = []
        for power in (-1.0, -2.0, -4.0, -8.0, -12.0, -16.0, -32.0):
            battery = make_battery(soc=1.0, curves=linear_curves())
            currents.append(abs(battery.power_request(power, 1.0).current))

        for smaller, larger in zip(currents, currents[1:]):
            self.assertGreaterEqual(larger, smaller - 1e-9)
        self.assertAlmostEqual(currents[-1], 4.0, delta=1e-3)
        self.assertAlmostEqual(currents[-2], 4.0, delta=1e-3)

    def test_discharge_soc_limit(self):
        """A request that would cross socMin is scaled down to land on it."""
        battery = make_battery(soc=0.5, soc_min=0.2)
        result = battery.power_request(-6.4, 3600.0)
        self.assertAlmostEqual(battery.soc, 0.2, delta=battery.s_tol)
        self.assertAlmostEqual(result.current, -0.6, delta=1e-3)
        self.assertAlmostEqual(result.power, -1.92, delta=1e-2)

    def test_charge_soc_limit(self):
        """A request that would cross socMax is scaled down to land on it."""
        battery = make_battery(soc=0.9, soc_max=1.0)
        result = battery.power_request(6.4, 3600.0)
        self.assertAlmostEqual(battery.soc, 1.0, delta=battery.s_tol)
        self.assertAlmostEqual(result.current, 0.2, delta=1e-3)

    def test_current_and_soc_limit_single_iteration(self):
        """A clamped current is still checked against socMin on the last iteration."""
        battery = make_battery(soc=0.3, soc_min=0.2, max_current=1.0, max_iterations=1)
        result = battery.power_request(-6.4, 3600.0)
        self.assertAlmostEqual(battery.soc, 0.2, delta=battery.s_tol)
        self.assertAlmostEqual(result.current, -0.2, delta=1e-3)

    def test_current_and_soc_limit(self):
        """With a normal iteration budget both limits apply as well."""
        battery = make_battery(soc=0.3, soc_min=0.2, max_current=1.0)
        result = battery.power_request(-6.4, 3600.0)
        self.assertAlmostEqual(battery.soc, 0.2, delta=battery.s_tol)
        self.assertAlmostEqual(result.current, -0.2, delta=1e-3)

    def test_limit_already_reached(self):
        """Requests beyond an already reached limit return a null response."""
        battery = make_battery(soc=0.2, soc_min=0.2)
        result = battery.power_request(-6.4, 60.0)
        self.assertEqual(result.power, 0.0)
        self.assertEqual(result.current, 0.0)
        self.assertAlmostEqual(battery.soc, 0.2)

        full = make_battery(soc=1.0)
        self.assertEqual(full.power_request(6.4, 60.0).current, 0.0)

    def test_invalid_time_step(self):
        with self.assertRaises(ValueError):
            make_battery().power_request(-1.0, 0.0)


class TestCurrentRequest(unittest.TestCase):
    """Test current requests."""

    def test_discharge(self):
        """1 A for an hour removes 1 Ah."""
        battery = make_battery(soc=1.0)
        result = battery.current_request(-1.0, 3600.0)
        self.assertAlmostEqual(result.current, -1.0)
        self.assertAlmostEqual(result.power, -3.2)
        self.assertAlmostEqual(battery.soc, 0.5)

    def test_clamped_to_max_current(self):
        """Current requests are clamped to Imax."""
        battery = make_battery(soc=1.0)
        result = battery.current_request(-10.0, 60.0)
        self.assertAlmostEqual(result.current, -4.0)

    def test_soc_limit(self):
        """A current that would cross socMin is scaled down."""
        battery = make_battery(soc=0.5, soc_min=0.2)
        result = battery.current_request(-2.0, 3600.0)
        self.assertAlmostEqual(battery.soc, 0.2, delta=battery.s_tol)
        self.assertAlmostEqual(result.current, -0.6, delta=1e-4)

    def test_zero_delegates_to_power_request(self):
        battery = make_battery(soc=0.6)
        result = battery.current_request(0.0, 60.0)
        self.assertEqual(result.current, 0.0)
        self.assertEqual(battery.soc, 0.6)

    def test_efficiency(self):
        """The reported current is the terminal current."""
        battery = make_battery(soc=1.0, eta_discharge=0.8)
        result = battery.current_request(-1.0, 60.0)
        self.assertAlmostEqual(result.current, -1.0)
        # cells deliver 1.25 A
        self.assertAlmostEqual(battery.soc, 1.0 - 1.25 / 60.0 / 2.0)


class TestSocBounds(unittest.TestCase):
    """SoC stays within [socMin - sTol, socMax + sTol]."""

    def test_random_sequence(self):
        rng = np.random.default_rng(2024)
        battery = make_battery(soc=0.5, soc_min=0.2, soc_max=0.9, curves=linear_curves())
        for power in rng.uniform(-20.0, 20.0, size=60):
            battery.power_request(float(power), 600.0)
            self.assertGreaterEqual(battery.soc, 0.2 - battery.s_tol)
            self.assertLessEqual(battery.soc, 0.9 + battery.s_tol)

    def test_series_string(self):
        """The bounds hold for multi-cell strings as well."""
        cells = [Cell(2.0, 3.2, impedance=z, soc=0.5, discharge_curves=flat_curves()) for z in (0.01, 0.02)]
        battery = BatteryController(SeriesElement(*cells), BatteryConfig(soc_min=0.1, soc_max=0.8))
        for power in (-30.0, -30.0, 30.0, 30.0, 30.0, -5.0):
            battery.power_request(power, 1800.0)
            self.assertGreaterEqual(battery.soc, 0.1 - battery.s_tol)
            self.assertLessEqual(battery.soc, 0.8 + battery.s_tol)


class TestConfiguration(unittest.TestCase):
    """Test configuration validation and limit setters."""

    def test_invalid_limits(self):
        cell = Cell(2.0, 3.2, discharge_curves=flat_curves())
        with self.assertRaises(ConfigurationError):
            BatteryController(cell, BatteryConfig(soc_min=0.5, soc_max=0.4))
        with self.assertRaises(ConfigurationError):
            BatteryController(cell, BatteryConfig(eta_charge=1.2))
        with self.assertRaises(ConfigurationError):
            BatteryController(cell, BatteryConfig(p_tol=-1.0))
        with self.assertRaises(ConfigurationError):
            BatteryController(cell, BatteryConfig(age_model="magic"))

    def test_validate_collects_errors(self):
        valid, message = BatteryConfig(soc_max=1.5, eta_discharge=0.0).validate()
        self.assertFalse(valid)
        self.assertIn("socMax", message)
        self.assertIn("efficiency", message)
        self.assertEqual(BatteryConfig().validate(), (True, ""))

    def test_rejects_non_element(self):
        with self.assertRaises(ConfigurationError):
            BatteryController("cell")

    def test_soc_min_zero_is_epsilon(self):
        battery = make_battery(soc_min=0.0)
        self.assertEqual(battery.soc_min, SOC_EPSILON)
        battery.soc_min = 0.1
        self.assertEqual(battery.soc_min, 0.1)

    def test_soc_max_setter(self):
        battery = make_battery(soc_min=0.2)
        with self.assertRaises(ConfigurationError):
            battery.soc_max = 1.1
        with self.assertRaises(ConfigurationError):
            battery.soc_max = 0.1
        battery.soc_max = 0.9
        self.assertAlmostEqual(battery.usable_capacity, (0.9 - 0.2) * 2.0)


class TestObservers(unittest.TestCase):
    """Test SoC and SoH notifications."""

    def test_soc_changed_order(self):
        """Callbacks run once per commit in registration order."""
        battery = make_battery(soc=1.0)
        calls = []
        battery.soc_changed.connect(lambda soc: calls.append(("first", soc)))
        battery.soc_changed.connect(lambda soc: calls.append(("second", soc)))

        battery.current_request(-1.0, 3600.0)

        self.assertEqual([name for name, _ in calls], ["first", "second"])
        self.assertAlmostEqual(calls[0][1], 0.5)

    def test_no_notification_for_null_response(self):
        battery = make_battery(soc=1.0)
        calls = []
        battery.soc_changed.connect(calls.append)
        battery.power_request(6.4, 60.0)
        self.assertEqual(calls, [])

    def test_soh_updates_ceiling(self):
        """SoH changes of the age model lower the socMax ceiling."""
        model = DummyAgeModel()
        battery = make_battery(soc=0.5, soc_min=0.2, age_model=model)
        self.assertAlmostEqual(battery.usable_capacity, 0.8 * 2.0)
        model.soh = 0.8
        self.assertAlmostEqual(battery.soh, 0.8)
        self.assertAlmostEqual(battery.usable_capacity, (0.8 - 0.2) * 2.0)

    def test_add_counter(self):
        """A custom counter observes the battery's SoC."""
        battery = make_battery(soc=1.0, age_model="eo")
        counter = HalfCycleCounter(soc=1.0)
        battery.add_counter(counter)
        battery.current_request(-1.0, 1800.0)
        battery.current_request(1.0, 900.0)
        self.assertEqual(len(counter.half_cycles), 1)
        self.assertAlmostEqual(counter.half_cycles[0], 0.25)


class TestSolverTrace(unittest.TestCase):
    """Test solver tracing through the debugger."""

    def setUp(self):
        self.debugger = SolverDebugger()
        self.debugger.start(battery="1S1P")
        set_debugger(self.debugger)

    def tearDown(self):
        set_debugger(None)

    def test_trace_records_steps(self):
        battery = make_battery(soc=1.0, max_current=1.0)
        battery.power_request(-6.4, 60.0)
        self.debugger.finish()

        self.assertGreater(len(self.debugger.find_steps_by_category("Power")), 0)
        self.assertEqual(len(self.debugger.find_steps_by_category("CurrentLimit")), 1)
        self.assertEqual(len(self.debugger.find_steps_by_category("Commit")), 1)
        self.assertIsNotNone(self.debugger.find_step_by_result("SoC"))

        report = self.debugger.get_report()
        self.assertIn("SOLVER DEBUG REPORT", report)
        self.assertIn("power_request", report)

    def test_no_steps_without_debugger(self):
        """Solver steps are not built while tracing is disabled."""
        set_debugger(None)
        with mock.patch("src.lfp_battery.controller.debug_step") as step:
            make_battery(soc=0.3, soc_min=0.2, max_current=1.0).power_request(-6.4, 3600.0)
        step.assert_not_called()

    def test_max_steps(self):
        self.debugger.max_steps = 2
        make_battery(soc=1.0, max_current=1.0).power_request(-6.4, 60.0)
        self.assertEqual(self.debugger.get_step_count(), 2)
        self.assertGreater(self.debugger.dropped, 0)


def run_validation():
    """Run controller tests and print summary."""
    print("=" * 60)
    print("Battery Controller Validation")
    print("=" * 60)
    print()

    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestPowerRequest))
    suite.addTests(loader.loadTestsFromTestCase(TestCurrentRequest))
    suite.addTests(loader.loadTestsFromTestCase(TestSocBounds))
    suite.addTests(loader.loadTestsFromTestCase(TestConfiguration))
    suite.addTests(loader.loadTestsFromTestCase(TestObservers))
    suite.addTests(loader.loadTestsFromTestCase(TestSolverTrace))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    print()
    print("=" * 60)
    if result.wasSuccessful():
        print("All controller tests PASSED")
    else:
        print(f"FAILED: {len(result.failures)} failures, {len(result.errors)} errors")
    print("=" * 60)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_validation()
    sys.exit(0 if success else 1)
