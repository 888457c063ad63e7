"""Build joints, IMU, calibrator and robot objects from YAML configuration."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml

from .calibration import CalibrationMethod, JointCalibrator
from .imu import IMU
from .joint_modules import JointModules
from .robot import Robot

PathLike = Union[str, Path]

_SEARCH_METHODS = {
    "AUTO": CalibrationMethod.AUTO,
    "POS": CalibrationMethod.POSITIVE,
    "NEG": CalibrationMethod.NEGATIVE,
    "ALT": CalibrationMethod.ALTERNATIVE,
}


class ConfigError(ValueError):
    """Raised when a configuration file or node is missing or malformed."""


def _child(node: Any, key: str, parent: str) -> Any:
    if not isinstance(node, Mapping) or key not in node:
        raise ConfigError(f"Node [{key}] does not exist under the node [{parent}].")
    return node[key]


def _sequence(node: Any, key: str, parent: str) -> list:
    value = _child(node, key, parent)
    if not isinstance(value, list):
        raise ConfigError(f"Node [{key}] under the node [{parent}] is not a sequence.")
    return value


def _to_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{what}: expected an integer, got {value!r}.")
    return value


def _to_float(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{what}: expected a number, got {value!r}.")
    return float(value)


def _to_bool(value: Any, what: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{what}: expected a boolean, got {value!r}.")
    return value


def _to_str(value: Any, what: str) -> str:
    if value is None or isinstance(value, (list, Mapping)):
        raise ConfigError(f"{what}: expected a scalar, got {value!r}.")
    return value if isinstance(value, str) else str(value)


def _sized(values: list, size: int, message: str) -> list:
    if len(values) != size:
        raise ConfigError(message)
    return values


def _load_file(file_path: PathLike) -> Any:
    try:
        text = Path(file_path).read_text()
    except OSError:
        raise ConfigError(
            f"Problem opening the file [{file_path}]. The file may not exist."
        ) from None
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse the YAML file [{file_path}]: {exc}") from exc


def joint_modules_from_yaml(robot_if: Any, node: Any) -> JointModules:
    """Create the joint modules described by a ``joint_modules`` node."""
    parent = "joint_modules"
    motor_numbers = [
        _to_int(v, "motor_numbers") for v in _sequence(node, "motor_numbers", parent)
    ]
    n = len(motor_numbers)

    polarities = _sized(
        _sequence(node, "reverse_polarities", parent),
        n,
        "Motor polarities has different size than motor numbers",
    )
    reverse = [_to_bool(v, "reverse_polarities") for v in polarities]

    lower_node = _sized(
        _sequence(node, "lower_joint_limits", parent),
        n,
        "Lower joint limits has different size than motor numbers",
    )
    lower = [_to_float(v, "lower_joint_limits") for v in lower_node]

    upper_node = _sized(
        _sequence(node, "upper_joint_limits", parent),
        n,
        "Upper joint limits has different size than motor numbers",
    )
    upper = [_to_float(v, "upper_joint_limits") for v in upper_node]

    scalars = {
        key: _to_float(_child(node, key, parent), key)
        for key in (
            "motor_constants",
            "gear_ratios",
            "max_currents",
            "max_joint_velocities",
            "safety_damping",
        )
    }

    return JointModules(
        robot_if,
        motor_numbers,
        scalars["motor_constants"],
        scalars["gear_ratios"],
        scalars["max_currents"],
        reverse,
        lower,
        upper,
        scalars["max_joint_velocities"],
        scalars["safety_damping"],
    )


def imu_from_yaml(robot_if: Any, node: Any) -> IMU:
    """Create the IMU described by an ``imu`` node."""
    rotate = _sized(
        _sequence(node, "rotate_vector", "imu"), 3, "Rotate vector not of size 3."
    )
    rotate_vector = [_to_int(v, "rotate_vector") for v in rotate]

    orientation = _sized(
        _sequence(node, "orientation_vector", "imu"),
        4,
        "Orientation vector not of size 4.",
    )
    orientation_vector = [_to_int(v, "orientation_vector") for v in orientation]

    return IMU(robot_if, rotate_vector, orientation_vector)


def joint_calibrator_from_yaml(joints: JointModules, node: Any) -> JointCalibrator:
    """Create the calibrator described by a ``joint_calibrator`` node."""
    parent = "joint_calibrator"
    methods = []
    for value in _sequence(node, "search_methods", parent):
        name = _to_str(value, "search_methods")
        try:
            methods.append(_SEARCH_METHODS[name])
        except KeyError:
            raise ConfigError(f"Unknown search method '{name}'.") from None

    offsets = [
        _to_float(v, "position_offsets")
        for v in _sequence(node, "position_offsets", parent)
    ]
    n = len(offsets)

    if isinstance(node, Mapping) and "calib_order" in node:
        calib_order = [
            _to_int(v, "calib_order") for v in _sequence(node, "calib_order", parent)
        ]
    else:
        calib_order = [0] * n

    if isinstance(node, Mapping) and "calib_pos" in node:
        calib_pos = [
            _to_float(v, "calib_pos") for v in _sequence(node, "calib_pos", parent)
        ]
    else:
        calib_pos = [0.0] * n

    kp, kd, period, dt = (
        _to_float(_child(node, key, parent), key) for key in ("Kp", "Kd", "T", "dt")
    )
    return JointCalibrator(
        joints, methods, offsets, calib_order, calib_pos, kp, kd, period, dt
    )


def robot_from_yaml_file(
    file_path: PathLike,
    interface_factory: Callable[[str], Any],
    if_name: Optional[str] = None,
) -> Robot:
    """Build a complete robot from a configuration file.

    ``interface_factory`` creates the master board interface for a network
    interface name. Without ``if_name`` the name is read from
    ``robot.interface`` in the file.
    """
    param = _load_file(file_path)
    parent = str(file_path)
    robot_node = _child(param, "robot", parent)

    if if_name is None:
        if_name = _to_str(_child(robot_node, "interface", "robot"), "interface")

    robot_if = interface_factory(if_name)
    joints = joint_modules_from_yaml(
        robot_if, _child(robot_node, "joint_modules", "robot")
    )
    imu = imu_from_yaml(robot_if, _child(robot_node, "imu", "robot"))
    calibrator = joint_calibrator_from_yaml(
        joints, _child(param, "joint_calibrator", parent)
    )
    return Robot(robot_if, joints, imu, calibrator)


def joint_calibrator_from_yaml_file(
    file_path: PathLike, joints: JointModules
) -> JointCalibrator:
    """Build a calibrator from the ``joint_calibrator`` node of a file."""
    param = _load_file(file_path)
    return joint_calibrator_from_yaml(
        joints, _child(param, "joint_calibrator", str(file_path))
    )