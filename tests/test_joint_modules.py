import io
from dataclasses import dataclass

import numpy as np
import pytest

from odrictl.joint_modules import DriverError, JointModules


@dataclass
class FakeMotor:
    position: float = 0.0
    velocity: float = 0.0
    current: float = 0.0
    current_reference: float = 0.0
    position_reference: float = 0.0
    velocity_reference: float = 0.0
    kp: float = 0.0
    kd: float = 0.0
    current_saturation: float = 0.0
    position_offset: float = 0.0
    enable_index_offset_compensation: bool = False
    has_index_been_detected: bool = False
    is_ready: bool = False
    is_enabled: bool = False
    enable_calls: int = 0

    def enable(self):
        self.enable_calls += 1
        self.is_enabled = True


@dataclass
class FakeDriver:
    motor1: FakeMotor
    motor2: FakeMotor
    is_enabled: bool = False
    error_code: int = 0
    timeout: float = 0.0
    rollover_error_enabled: bool = False
    enable_calls: int = 0

    def enable_position_rollover_error(self):
        self.rollover_error_enabled = True

    def enable(self):
        self.enable_calls += 1
        self.is_enabled = True


class FakeBoard:
    def __init__(self, n_drivers=2):
        self.motors = [FakeMotor() for _ in range(2 * n_drivers)]
        self.motor_drivers = [
            FakeDriver(self.motors[2 * i], self.motors[2 * i + 1]) for i in range(n_drivers)
        ]
        self.parse_calls = 0

    def parse_sensor_data(self):
        self.parse_calls += 1


MOTOR_NUMBERS = [0, 3, 2, 1]
GEAR = 9.0
KT = 0.025
MAX_CURRENT = 12.0
MAX_VEL = 80.0
DAMPING = 0.2


def make_joints(board, out, gear=GEAR, kt=KT, polarities=(False, True, False, True)):
    return JointModules(
        board,
        MOTOR_NUMBERS,
        kt,
        gear,
        MAX_CURRENT,
        polarities,
        [-1.0] * 4,
        [1.0] * 4,
        MAX_VEL,
        DAMPING,
        out=out,
    )


@pytest.fixture
def board():
    return FakeBoard()


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def joints(board, out):
    return make_joints(board, out)


def mirror_references(board):
    for motor in board.motors:
        motor.position = motor.position_reference
        motor.velocity = motor.velocity_reference
        motor.current = motor.current_reference


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"reverse_polarities": [False] * 3}, "Motor polarities has different size"),
        ({"lower_joint_limits": [0.0] * 5}, "Lower joint limits has different size"),
        ({"upper_joint_limits": [0.0] * 2}, "Upper joint limits has different size"),
    ],
)
def test_constructor_rejects_mismatched_sizes(board, kwargs, message):
    args = dict(
        robot_if=board,
        motor_numbers=MOTOR_NUMBERS,
        motor_constants=KT,
        gear_ratios=GEAR,
        max_currents=MAX_CURRENT,
        reverse_polarities=[False] * 4,
        lower_joint_limits=[-1.0] * 4,
        upper_joint_limits=[1.0] * 4,
        max_joint_velocities=MAX_VEL,
        safety_damping=DAMPING,
    )
    args.update(kwargs)
    with pytest.raises(ValueError, match=message):
        JointModules(**args)


def test_constructor_sets_maximum_current(board, joints):
    saturated = sum(m.current_saturation == MAX_CURRENT for m in board.motors)
    assert saturated == joints.number_motors
    joints.set_maximum_currents(3.5)
    saturated = sum(m.current_saturation == 3.5 for m in board.motors)
    assert saturated == joints.number_motors


def test_number_motors_and_gear_ratios(joints):
    assert joints.number_motors == 4
    np.testing.assert_allclose(joints.gear_ratios, [GEAR] * 4)


def test_position_and_velocity_round_trip(board, joints):
    target_pos = np.array([0.3, -0.2, 0.7, -0.9])
    target_vel = np.array([1.5, 2.0, -3.0, 0.25])
    joints.set_desired_positions(target_pos)
    joints.set_desired_velocities(target_vel)
    mirror_references(board)
    joints.parse_sensor_data()
    np.testing.assert_allclose(joints.positions, target_pos)
    np.testing.assert_allclose(joints.velocities, target_vel)


def test_torque_round_trip(board, joints):
    torques = np.array([0.1, -0.4, 0.25, 0.8])
    joints.set_torques(torques)
    mirror_references(board)
    joints.parse_sensor_data()
    np.testing.assert_allclose(joints.sent_torques, torques)
    np.testing.assert_allclose(joints.measured_torques, torques)


def test_polarity_reverses_motor_direction(board, joints):
    joints.set_desired_positions([1.0, 1.0, 1.0, 1.0])
    gear_ratios = joints.gear_ratios
    # Joint 1 drives motor 3 with reversed polarity, joint 0 drives motor 0.
    assert board.motors[0].position_reference == pytest.approx(gear_ratios[0])
    assert board.motors[3].position_reference == pytest.approx(-gear_ratios[1])
    assert board.motors[2].position_reference == pytest.approx(gear_ratios[2])
    assert board.motors[1].position_reference == pytest.approx(-gear_ratios[3])
    mirror_references(board)
    joints.parse_sensor_data()
    assert list(joints.positions) == pytest.approx([1.0, 1.0, 1.0, 1.0])


def test_gains_map_to_motors_with_unit_ratios(board, out):
    joints = make_joints(board, out, gear=1.0, kt=1.0)
    joints.set_position_gains([1.0, 2.0, 3.0, 4.0])
    joints.set_velocity_gains([0.5, 0.6, 0.7, 0.8])
    assert [board.motors[n].kp for n in MOTOR_NUMBERS] == [1.0, 2.0, 3.0, 4.0]
    assert [board.motors[n].kd for n in MOTOR_NUMBERS] == [0.5, 0.6, 0.7, 0.8]


def test_gains_are_scaled_by_gear_and_constant(board, joints):
    gains = np.array([3.0, 3.0, 2.0, 1.0])
    joints.set_position_gains(gains)
    kp = np.array([board.motors[n].kp for n in MOTOR_NUMBERS])
    np.testing.assert_allclose(kp * GEAR * GEAR * KT, gains)


def test_wrong_length_command_raises(joints):
    with pytest.raises(ValueError):
        joints.set_torques([1.0, 2.0])


def test_set_zero_commands(board, joints):
    joints.set_torques([1.0] * 4)
    joints.set_desired_positions([1.0] * 4)
    joints.set_desired_velocities([1.0] * 4)
    joints.set_position_gains([1.0] * 4)
    joints.set_velocity_gains([1.0] * 4)
    joints.set_zero_commands()
    for m in board.motors:
        assert (m.current_reference, m.position_reference, m.velocity_reference, m.kp, m.kd) == (
            0.0, 0.0, 0.0, 0.0, 0.0
        )
    mirror_references(board)
    joints.parse_sensor_data()
    assert list(joints.positions) == [0.0] * 4
    assert list(joints.velocities) == [0.0] * 4
    assert list(joints.sent_torques) == [0.0] * 4


def test_safety_controller_only_damps(board, out):
    joints = make_joints(board, out, gear=1.0, kt=1.0)
    joints.set_position_gains([5.0] * 4)
    joints.run_safety_controller()
    assert all(m.kp == 0.0 for m in board.motors)
    assert all(m.kd == DAMPING for m in board.motors)


def test_enable_turns_on_motors_and_drivers(board, joints):
    joints.set_position_gains([1.0] * 4)
    joints.enable()
    assert all(m.enable_calls == 1 for m in board.motors)
    assert all(d.enable_calls == 1 for d in board.motor_drivers)
    assert all(d.rollover_error_enabled for d in board.motor_drivers)
    assert all(d.timeout == 5 for d in board.motor_drivers)
    assert all(m.kp == 0.0 for m in board.motors)
    for m in board.motors:
        m.is_ready = True
    assert joints.is_ready() is True
    joints.parse_sensor_data()
    assert list(joints.enabled) == [True] * 4
    assert list(joints.motor_driver_enabled) == [True, True]


def test_enable_index_offset_compensation_single_and_all(board, joints):
    joints.enable_index_offset_compensation(1)
    assert [m.enable_index_offset_compensation for m in board.motors] == [False, False, False, True]
    joints.enable_index_offset_compensation()
    compensated = sum(m.enable_index_offset_compensation for m in board.motors)
    assert compensated == joints.number_motors


def test_saw_all_indices_and_index_flags(board, joints):
    assert not joints.saw_all_indices()
    for m in board.motors[:3]:
        m.has_index_been_detected = True
    joints.parse_sensor_data()
    assert not joints.saw_all_indices()
    assert list(joints.index_been_detected) == [True, False, True, True]
    board.motors[3].has_index_been_detected = True
    assert joints.saw_all_indices()


def test_is_ready_needs_enabled_and_ready(board, joints):
    for m in board.motors:
        m.is_ready = True
    assert not joints.is_ready()
    for m in board.motors:
        m.is_enabled = True
    assert joints.is_ready()
    joints.parse_sensor_data()
    assert joints.ready.all() and joints.enabled.all()


def test_driver_status_is_cached(board, joints):
    board.motor_drivers[1].is_enabled = True
    board.motor_drivers[0].error_code = DriverError.CRIT_TEMP
    joints.parse_sensor_data()
    assert list(joints.motor_driver_enabled) == [False, True]
    assert list(joints.motor_driver_errors) == [int(DriverError.CRIT_TEMP), 0]


def test_odd_motor_count_uses_rounded_up_driver_count(board, out):
    joints = JointModules(
        board, [0, 1, 2], KT, GEAR, MAX_CURRENT, [False] * 3,
        [-1.0] * 3, [1.0] * 3, MAX_VEL, DAMPING, out=out,
    )
    joints.parse_sensor_data()
    assert joints.motor_driver_enabled.size == 2


def test_no_error_in_nominal_state(joints, out):
    joints.parse_sensor_data()
    assert joints.has_error() is False
    assert out.getvalue() == ""


def test_joint_limit_errors(board, joints, out):
    board.motors[3].position = -1000.0  # joint 1, reversed polarity: far above
    joints.parse_sensor_data()
    assert joints.has_error() is True
    text = out.getvalue()
    assert "ERROR: Above joint limits at joint #1" in text
    assert "  Limits: " in text

    board.motors[3].position = 0.0
    board.motors[2].position = -1000.0  # joint 2: far below
    joints.parse_sensor_data()
    assert joints.has_error() is True
    assert "ERROR: Below joint limits at joint #2" in out.getvalue()


def test_joint_limit_check_can_be_disabled(board, joints):
    board.motors[0].position = 1000.0
    joints.parse_sensor_data()
    joints.disable_joint_limit_check()
    assert joints.has_error() is False
    joints.enable_joint_limit_check()
    assert joints.has_error() is True


def test_error_messages_are_throttled(board, joints, out):
    board.motors[0].position = -1000.0
    joints.parse_sensor_data()
    results = [joints.has_error() for _ in range(2001)]
    assert results == [True] * 2001
    assert out.getvalue().count("ERROR: Below joint limits") == 2
    assert joints.has_error() is True
    assert out.getvalue().count("ERROR: Below joint limits") == 2


def test_velocity_only_checked_when_ready(board, joints, out):
    board.motors[0].velocity = 1e6
    joints.parse_sensor_data()
    assert joints.has_error() is False
    for m in board.motors:
        m.is_ready = True
        m.is_enabled = True
    assert joints.has_error() is True
    assert "ERROR: Above joint velocity limits at joint #0" in out.getvalue()
    assert "  Limit: 80" in out.getvalue()


@pytest.mark.parametrize(
    "code, text",
    [
        (DriverError.ENCODER1, "Encoder A error"),
        (DriverError.SPI_RECV_TIMEOUT, "SPI Receiver timeout"),
        (DriverError.CRIT_TEMP, "Critical temperature"),
        (DriverError.POSCONV, "SpinTAC Positon module"),
        (DriverError.POS_ROLLOVER, "Position rollover occured"),
        (DriverError.ENCODER2, "Encoder B error"),
        (DriverError.CRC_ERROR, "Other error (7)"),
        (42, "Other error (42)"),
    ],
)
def test_driver_error_descriptions(board, joints, out, code, text):
    board.motor_drivers[1].error_code = code
    assert joints.has_error() is True
    assert out.getvalue() == f"ERROR at motor drivers #1: {text}\n"


def test_all_failing_drivers_reported_together(board, joints, out):
    board.motor_drivers[0].error_code = DriverError.ENCODER1
    board.motor_drivers[1].error_code = DriverError.ENCODER2
    assert joints.has_error() is True
    assert out.getvalue().count("ERROR at motor drivers") == 2
    assert joints.has_error() is True
    assert out.getvalue().count("ERROR at motor drivers") == 2


def test_format_vector(joints):
    assert joints.format_vector([1.0, 2.5, -3.0]) == "[1, 2.5, -3]"
    assert joints.format_vector([0.123456]) == "[0.1235]"


def test_returned_arrays_are_copies(joints):
    positions = joints.positions
    positions[0] = 99.0
    assert joints.positions[0] == 0.0