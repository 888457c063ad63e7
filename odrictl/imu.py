"""Inertial measurement unit attached to the master board."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Protocol, Sequence

import numpy as np

_DEFAULT_ROTATE = (1, 2, 3)
_DEFAULT_ORIENTATION = (1, 2, 3, 4)


class ImuBoard(Protocol):
    """The part of the master board interface the IMU reads from."""

    imu_gyroscope: Sequence[float]
    imu_accelerometer: Sequence[float]
    imu_linear_acceleration: Sequence[float]
    imu_attitude: Sequence[float]


def _pick(values: Sequence[float], index: int) -> float:
    """Select a 1-based, optionally negated component: -2 means -values[1]."""
    if index < 0:
        return -float(values[-index - 1])
    return float(values[index - 1])


def _euler_to_quaternion(roll: float, pitch: float, yaw: float) -> list[float]:
    sr, cr = math.sin(roll / 2.0), math.cos(roll / 2.0)
    sp, cp = math.sin(pitch / 2.0), math.cos(pitch / 2.0)
    sy, cy = math.sin(yaw / 2.0), math.cos(yaw / 2.0)
    return [
        sr * cp * cy - cr * sp * sy,
        cr * sp * cy + sr * cp * sy,
        cr * cp * sy - sr * sp * cy,
        cr * cp * cy + sr * sp * sy,
    ]


def _quaternion_to_euler(qx: float, qy: float, qz: float, qw: float) -> list[float]:
    roll = math.atan2(2 * (qw * qx + qy * qz), 1 - 2 * (qx * qx + qy * qy))
    sinp = 2 * (qw * qy - qz * qx)
    if abs(sinp) >= 1:
        pitch = math.copysign(math.pi / 2, sinp)
    else:
        pitch = math.asin(sinp)
    yaw = math.atan2(2 * (qw * qz + qx * qy), 1 - 2 * (qy * qy + qz * qz))
    return [roll, pitch, yaw]


class IMU:
    """Reads the board's IMU and remaps its axes into the robot frame."""

    def __init__(
        self,
        robot_if: ImuBoard,
        rotate_vector: Optional[Iterable[int]] = None,
        orientation_vector: Optional[Iterable[int]] = None,
    ) -> None:
        rotate = tuple(int(v) for v in (rotate_vector if rotate_vector is not None else _DEFAULT_ROTATE))
        orientation = tuple(
            int(v) for v in (orientation_vector if orientation_vector is not None else _DEFAULT_ORIENTATION)
        )
        if len(rotate) != 3:
            raise ValueError("Expecting rotate_vector of size 3")
        if len(orientation) != 4:
            raise ValueError("Expecting orientation_vector of size 4")

        self._robot_if = robot_if
        self._rotate = rotate
        self._orientation = orientation

        self._gyroscope = np.zeros(3)
        self._accelerometer = np.zeros(3)
        self._linear_acceleration = np.zeros(3)
        self._attitude_euler = np.zeros(3)
        self._attitude_quaternion = np.zeros(4)

    @property
    def robot_interface(self) -> ImuBoard:
        return self._robot_if

    def has_error(self) -> bool:
        """The IMU currently never reports an error."""
        return False

    def parse_sensor_data(self) -> None:
        """Refresh the cached IMU quantities from the board."""
        board = self._robot_if
        self._gyroscope = np.array([_pick(board.imu_gyroscope, i) for i in self._rotate])
        self._accelerometer = np.array([_pick(board.imu_accelerometer, i) for i in self._rotate])
        self._linear_acceleration = np.array(
            [_pick(board.imu_linear_acceleration, i) for i in self._rotate]
        )

        roll, pitch, yaw = (float(board.imu_attitude[k]) for k in range(3))
        attitude = _euler_to_quaternion(roll, pitch, yaw)
        quaternion = [_pick(attitude, i) for i in self._orientation]
        self._attitude_quaternion = np.array(quaternion)
        self._attitude_euler = np.array(_quaternion_to_euler(*quaternion))

    @property
    def gyroscope(self) -> np.ndarray:
        return self._gyroscope.copy()

    @property
    def accelerometer(self) -> np.ndarray:
        return self._accelerometer.copy()

    @property
    def linear_acceleration(self) -> np.ndarray:
        return self._linear_acceleration.copy()

    @property
    def attitude_euler(self) -> np.ndarray:
        return self._attitude_euler.copy()

    @property
    def attitude_quaternion(self) -> np.ndarray:
        return self._attitude_quaternion.copy()