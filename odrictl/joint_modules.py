"""Joint modules: a set of board motors seen as robot joints."""

from __future__ import annotations

import sys
from enum import IntEnum
from itertools import islice
from typing import Iterable, Optional, Protocol, Sequence, TextIO

import numpy as np

_REPORT_EVERY = 2000
_DRIVER_TIMEOUT = 5


class DriverError(IntEnum):
    """Error codes reported by a motor driver card."""

    NO_ERROR = 0
    ENCODER1 = 1
    SPI_RECV_TIMEOUT = 2
    CRIT_TEMP = 3
    POSCONV = 4
    POS_ROLLOVER = 5
    ENCODER2 = 6
    CRC_ERROR = 7


_DRIVER_ERROR_TEXT = {
    DriverError.ENCODER1: "Encoder A error",
    DriverError.SPI_RECV_TIMEOUT: "SPI Receiver timeout",
    DriverError.CRIT_TEMP: "Critical temperature",
    DriverError.POSCONV: "SpinTAC Positon module",
    DriverError.POS_ROLLOVER: "Position rollover occured",
    DriverError.ENCODER2: "Encoder B error",
}


class Motor(Protocol):
    """A single motor as exposed by the master board."""

    position: float
    velocity: float
    current: float
    current_reference: float
    position_reference: float
    velocity_reference: float
    kp: float
    kd: float
    current_saturation: float
    position_offset: float
    enable_index_offset_compensation: bool
    has_index_been_detected: bool
    is_ready: bool
    is_enabled: bool

    def enable(self) -> None: ...


class MotorDriver(Protocol):
    """A driver card carrying two motors."""

    motor1: Motor
    motor2: Motor
    is_enabled: bool
    error_code: int
    timeout: float

    def enable_position_rollover_error(self) -> None: ...

    def enable(self) -> None: ...


class MasterBoard(Protocol):
    """The part of the master board interface the joint modules use."""

    motors: Sequence[Motor]
    motor_drivers: Sequence[MotorDriver]

    def parse_sensor_data(self) -> None: ...


def _describe_driver_error(code: int) -> str:
    try:
        return _DRIVER_ERROR_TEXT[DriverError(code)]
    except (ValueError, KeyError):
        return f"Other error ({int(code)})"


class JointModules:
    """Maps joint-level commands and measurements onto the board's motors."""

    def __init__(
        self,
        robot_if: MasterBoard,
        motor_numbers: Iterable[int],
        motor_constants: float,
        gear_ratios: float,
        max_currents: float,
        reverse_polarities: Iterable[bool],
        lower_joint_limits: Iterable[float],
        upper_joint_limits: Iterable[float],
        max_joint_velocities: float,
        safety_damping: float,
        out: Optional[TextIO] = None,
    ) -> None:
        self._robot_if = robot_if
        self._out = out if out is not None else sys.stdout

        numbers = np.asarray(list(motor_numbers), dtype=int)
        n = numbers.size
        self._n = n
        self._nd = (n + 1) // 2

        reverse = np.asarray(list(reverse_polarities), dtype=bool)
        if reverse.size != n:
            raise ValueError("Motor polarities has different size than motor numbers")
        lower = np.asarray(list(lower_joint_limits), dtype=float)
        if lower.size != n:
            raise ValueError("Lower joint limits has different size than motor numbers")
        upper = np.asarray(list(upper_joint_limits), dtype=float)
        if upper.size != n:
            raise ValueError("Upper joint limits has different size than motor numbers")

        self._lower_limits = lower
        self._upper_limits = upper
        self._max_joint_velocities = float(max_joint_velocities)
        self._check_joint_limits = True

        self._gear_ratios = np.full(n, float(gear_ratios))
        self._motor_constants = np.full(n, float(motor_constants))
        self._polarities = np.where(reverse, -1, 1)
        self._safety_damping = np.full(n, float(safety_damping))
        self._zero = np.zeros(n)

        self._positions = np.zeros(n)
        self._velocities = np.zeros(n)
        self._sent_torques = np.zeros(n)
        self._measured_torques = np.zeros(n)
        self._index_been_detected = np.zeros(n, dtype=bool)
        self._ready = np.zeros(n, dtype=bool)
        self._enabled = np.zeros(n, dtype=bool)
        self._motor_driver_enabled = np.zeros(self._nd, dtype=bool)
        self._motor_driver_errors = np.zeros(self._nd, dtype=int)

        self._motors = [robot_if.motors[int(number)] for number in numbers]
        self._drivers = list(islice(robot_if.motor_drivers, self._nd))

        self._counters = dict.fromkeys(("upper", "lower", "velocity", "driver"), 0)

        self.set_maximum_currents(max_currents)

    # ------------------------------------------------------------------
    # Helpers

    def _vector(self, values: Iterable[float], name: str) -> np.ndarray:
        arr = np.asarray(values, dtype=float).reshape(-1)
        if arr.size != self._n:
            raise ValueError(f"{name} has {arr.size} entries, expected {self._n}")
        return arr

    def _tick(self, key: str) -> bool:
        count = self._counters[key]
        self._counters[key] = count + 1
        return count % _REPORT_EVERY == 0

    # ------------------------------------------------------------------
    # Sensor side

    def parse_sensor_data(self) -> None:
        """Refresh the cached joint quantities from the motors and drivers."""
        for i, motor in enumerate(self._motors):
            pol = self._polarities[i]
            gear = self._gear_ratios[i]
            kt = self._motor_constants[i]
            self._positions[i] = motor.position * pol / gear
            self._velocities[i] = motor.velocity * pol / gear
            self._sent_torques[i] = motor.current_reference * pol * gear * kt
            self._measured_torques[i] = motor.current * pol * gear * kt
            self._index_been_detected[i] = motor.has_index_been_detected
            self._ready[i] = motor.is_ready
            self._enabled[i] = motor.is_enabled

        for i, driver in enumerate(self._drivers):
            self._motor_driver_enabled[i] = driver.is_enabled
            self._motor_driver_errors[i] = driver.error_code

    @property
    def index_been_detected(self) -> np.ndarray:
        return self._index_been_detected.copy()

    @property
    def ready(self) -> np.ndarray:
        return self._ready.copy()

    @property
    def enabled(self) -> np.ndarray:
        return self._enabled.copy()

    @property
    def motor_driver_enabled(self) -> np.ndarray:
        return self._motor_driver_enabled.copy()

    @property
    def motor_driver_errors(self) -> np.ndarray:
        return self._motor_driver_errors.copy()

    @property
    def positions(self) -> np.ndarray:
        return self._positions.copy()

    @property
    def velocities(self) -> np.ndarray:
        return self._velocities.copy()

    @property
    def sent_torques(self) -> np.ndarray:
        return self._sent_torques.copy()

    @property
    def measured_torques(self) -> np.ndarray:
        return self._measured_torques.copy()

    @property
    def gear_ratios(self) -> np.ndarray:
        return self._gear_ratios.copy()

    @property
    def number_motors(self) -> int:
        return self._n

    def saw_all_indices(self) -> bool:
        """True when every motor has seen its encoder index."""
        return all(motor.has_index_been_detected for motor in self._motors)

    def is_ready(self) -> bool:
        """True once all motors are enabled and report ready."""
        return all(motor.is_enabled and motor.is_ready for motor in self._motors)

    # ------------------------------------------------------------------
    # Command side

    def enable(self) -> None:
        """Zero the commands, then enable every motor and driver card."""
        self.set_zero_commands()
        for driver in self._drivers:
            driver.motor1.enable()
            driver.motor2.enable()
            driver.enable_position_rollover_error()
            driver.timeout = _DRIVER_TIMEOUT
            driver.enable()

    def set_torques(self, torques: Iterable[float]) -> None:
        values = self._vector(torques, "Torques")
        for motor, tau, pol, gear, kt in zip(
            self._motors, values, self._polarities, self._gear_ratios, self._motor_constants
        ):
            motor.current_reference = pol * tau / (gear * kt)

    def set_desired_positions(self, positions: Iterable[float]) -> None:
        values = self._vector(positions, "Positions")
        for motor, q, pol, gear in zip(self._motors, values, self._polarities, self._gear_ratios):
            motor.position_reference = pol * q * gear

    def set_desired_velocities(self, velocities: Iterable[float]) -> None:
        values = self._vector(velocities, "Velocities")
        for motor, v, pol, gear in zip(self._motors, values, self._polarities, self._gear_ratios):
            motor.velocity_reference = pol * v * gear

    def set_position_gains(self, gains: Iterable[float]) -> None:
        values = self._vector(gains, "Position gains")
        for motor, g, gear, kt in zip(self._motors, values, self._gear_ratios, self._motor_constants):
            motor.kp = g / (gear * gear * kt)

    def set_velocity_gains(self, gains: Iterable[float]) -> None:
        values = self._vector(gains, "Velocity gains")
        for motor, g, gear, kt in zip(self._motors, values, self._gear_ratios, self._motor_constants):
            motor.kd = g / (gear * gear * kt)

    def set_maximum_currents(self, max_currents: float) -> None:
        for motor in self._motors:
            motor.current_saturation = float(max_currents)

    def set_zero_gains(self) -> None:
        """Disable the position and velocity gains."""
        self.set_position_gains(self._zero)
        self.set_velocity_gains(self._zero)

    def set_zero_commands(self) -> None:
        self.set_torques(self._zero)
        self.set_desired_positions(self._zero)
        self.set_desired_velocities(self._zero)
        self.set_zero_gains()

    def run_safety_controller(self) -> None:
        """Replace the commands with a pure damping controller."""
        self.set_zero_commands()
        self.set_velocity_gains(self._safety_damping)

    def set_position_offsets(self, offsets: Iterable[float]) -> None:
        """Apply joint position offsets and refresh the sensor data."""
        values = self._vector(offsets, "Position offsets")
        for motor, off, pol, gear in zip(self._motors, values, self._polarities, self._gear_ratios):
            motor.position_offset = off * pol * gear
        self._robot_if.parse_sensor_data()
        self.parse_sensor_data()

    def enable_index_offset_compensation(self, index: Optional[int] = None) -> None:
        """Enable index offset compensation on one joint, or on all of them."""
        motors = self._motors if index is None else [self._motors[index]]
        for motor in motors:
            motor.enable_index_offset_compensation = True

    def disable_joint_limit_check(self) -> None:
        self._check_joint_limits = False

    def enable_joint_limit_check(self) -> None:
        self._check_joint_limits = True

    # ------------------------------------------------------------------
    # Errors

    def has_error(self) -> bool:
        """Check limits and driver status, reporting problems to the output."""
        error = False
        write = self._out.write

        if self._check_joint_limits:
            above = np.flatnonzero(self._positions > self._upper_limits)
            if above.size:
                error = True
                if self._tick("upper"):
                    write(
                        f"ERROR: Above joint limits at joint #{above[0]}\n"
                        f"  Joints: {self.format_vector(self._positions)}\n"
                        f"  Limits: {self.format_vector(self._upper_limits)}\n"
                    )
            below = np.flatnonzero(self._positions < self._lower_limits)
            if below.size:
                error = True
                if self._tick("lower"):
                    write(
                        f"ERROR: Below joint limits at joint #{below[0]}\n"
                        f"  Joints: {self.format_vector(self._positions)}\n"
                        f"  Limits: {self.format_vector(self._lower_limits)}\n"
                    )

        # Velocities are only checked once the motors are ready, so that
        # motions during initialisation are not reported.
        if self.is_ready():
            fast = np.flatnonzero(np.abs(self._velocities) > self._max_joint_velocities)
            if fast.size:
                error = True
                if self._tick("velocity"):
                    write(
                        f"ERROR: Above joint velocity limits at joint #{fast[0]}\n"
                        f"  Joints: {self.format_vector(self._velocities)}\n"
                        f"  Limit: {self._max_joint_velocities:g}\n"
                    )

        print_error = False
        for i, driver in enumerate(self._drivers):
            code = driver.error_code
            if code != 0:
                if print_error or self._tick("driver"):
                    print_error = True
                    write(f"ERROR at motor drivers #{i}: {_describe_driver_error(code)}\n")
                error = True

        return error

    def format_vector(self, vector: Iterable[float]) -> str:
        """Render a vector as "[a, b, c]" with four significant digits."""
        values = np.asarray(vector, dtype=float).reshape(-1)
        if values.size == 0:
            return ""
        return "[" + ", ".join(f"{v:.4g}" for v in values) + "]"