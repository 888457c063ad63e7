"""Joint calibration: find encoder indices and move to a target pose."""

from __future__ import annotations

import math
from enum import Enum, auto
from typing import Iterable

import numpy as np

from .joint_modules import JointModules

AMPLITUDE = 1.5
_WAIT_TIME = 0.1


class CalibrationMethod(Enum):
    """How a joint moves while searching for its encoder index."""

    AUTO = auto()
    POSITIVE = auto()
    NEGATIVE = auto()
    ALTERNATIVE = auto()


class _State(Enum):
    SEARCHING = auto()
    WAITING = auto()
    GOTO = auto()


class JointCalibrator:
    """Step-by-step calibration procedure, driven by repeated calls to run."""

    def __init__(
        self,
        joints: JointModules,
        search_methods: Iterable[CalibrationMethod],
        position_offsets: Iterable[float],
        calib_order: Iterable[int],
        calib_pos: Iterable[float],
        kp: float,
        kd: float,
        period: float,
        dt: float,
    ) -> None:
        self._joints = joints
        self._gear_ratios = np.asarray(joints.gear_ratios, dtype=float)
        n = self._gear_ratios.size
        self._n = n

        methods = [CalibrationMethod(m) for m in search_methods]
        if len(methods) != n:
            raise ValueError("Search methods has different size than motor numbers")
        offsets = np.asarray(list(position_offsets), dtype=float)
        if offsets.size != n:
            raise ValueError("Position offsets has different size than motor numbers")
        order = np.asarray(list(calib_order), dtype=int)
        if order.size != n:
            raise ValueError("Calibration order has different size than motor numbers")
        pos = np.asarray(list(calib_pos), dtype=float)
        if pos.size != n:
            raise ValueError("Calibration pos has different size than motor numbers")

        for i, (method, offset, gear) in enumerate(zip(methods, offsets, self._gear_ratios)):
            if method is CalibrationMethod.AUTO:
                if offset > (math.pi / 2.0) / gear:
                    methods[i] = CalibrationMethod.POSITIVE
                elif offset < (-math.pi / 2.0) / gear:
                    methods[i] = CalibrationMethod.NEGATIVE
                else:
                    methods[i] = CalibrationMethod.ALTERNATIVE

        self._search_methods = methods
        self._position_offsets = offsets
        self._calib_order = order
        self._calib_pos = pos
        self._kp = float(kp)
        self._kd = float(kd)
        self._period = float(period)
        self._dt = float(dt)

        self._t = 0.0
        self._already_calibrated = False
        self._state = _State.SEARCHING
        self._step_number = 0
        self._step_number_max = int(order.max()) if n else 0
        self._t_step_indexes_detected = 0.0
        self._t_step_end = 0.0

        self._initial_positions = np.zeros(n)
        self._target_positions = np.zeros(n)
        self._found_index = np.zeros(n, dtype=bool)
        self._zero = np.zeros(n)
        self._pos_command = np.zeros(n)
        self._vel_command = np.zeros(n)
        self._kp_command = np.full(n, self._kp)
        self._kd_command = np.full(n, self._kd)

    def update_position_offsets(self, position_offsets: Iterable[float]) -> None:
        self._position_offsets = np.asarray(list(position_offsets), dtype=float)

    @property
    def position_offsets(self) -> np.ndarray:
        return self._position_offsets.copy()

    @property
    def dt(self) -> float:
        return self._dt

    def run(self) -> bool:
        """Advance the calibration one step, ending at the zero pose."""
        return self.run_and_go_to(self._zero)

    def run_and_go_to(self, target_positions: Iterable[float]) -> bool:
        """Advance the calibration one step; True once it has finished.

        The procedure searches the motor indices, waits for the index
        compensation to take effect, then moves to the target positions.
        """
        target = np.asarray(target_positions, dtype=float).reshape(-1)
        if target.size != self._n:
            raise ValueError("Target positions has different size than motor numbers")

        joints = self._joints
        if self._t == 0.0:
            joints.set_zero_gains()
            joints.set_position_offsets(self._position_offsets)
            self._initial_positions = joints.positions
            self._target_positions = joints.positions
            # Nothing to search when every index has already been seen.
            if joints.saw_all_indices():
                self._already_calibrated = True
                self.switch_to_waiting()
            joints.disable_joint_limit_check()

        detected = joints.index_been_detected
        positions = joints.positions

        if self._state is _State.SEARCHING:
            finished = True
            for i in range(self._n):
                if self._calib_order[i] != self._step_number:
                    self._pos_command[i] = positions[i]
                    self._vel_command[i] = 0.0
                elif not self._found_index[i]:
                    if detected[i]:
                        self._found_index[i] = True
                        self._initial_positions[i] = positions[i]
                    else:
                        self.search_index(i)
                    finished = False
                else:
                    self._pos_command[i] = self._initial_positions[i]
                    self._vel_command[i] = 0.0
            if finished:
                self.switch_to_waiting()

        elif self._state is _State.WAITING:
            if self._t - self._t_step_indexes_detected > _WAIT_TIME:
                self._state = _State.GOTO
                joints.enable_joint_limit_check()
                final_step = self._step_number == self._step_number_max or self._already_calibrated
                for i in range(self._n):
                    if final_step:
                        self._target_positions[i] = target[i]
                    elif self._calib_order[i] == self._step_number:
                        self._target_positions[i] = self._calib_pos[i]
                    else:
                        self._target_positions[i] = positions[i]
                self._initial_positions = positions.copy()
                self._pos_command = positions.copy()
                self._vel_command = (self._target_positions - self._initial_positions) / self._period
                self._kp_command.fill(self._kp)
                self._kd_command.fill(self._kd)

        elif self._state is _State.GOTO:
            alpha = (self._t - self._t_step_indexes_detected - _WAIT_TIME) / self._period
            if alpha <= 1.0:
                self._pos_command = (
                    self._initial_positions * (1.0 - alpha) + self._target_positions * alpha
                )
            else:
                self._step_number += 1
                if self._step_number > self._step_number_max or self._already_calibrated:
                    joints.set_zero_commands()
                    return True
                self._state = _State.SEARCHING
                self._t_step_end = self._t
                joints.disable_joint_limit_check()

        else:
            joints.set_zero_commands()
            raise RuntimeError("Undefined calibration state")

        joints.set_torques(self._zero)
        joints.set_desired_positions(self._pos_command)
        joints.set_desired_velocities(self._vel_command)
        joints.set_position_gains(self._kp_command)
        joints.set_velocity_gains(self._kd_command)

        self._t += self._dt

        if self._step_number > self._step_number_max:
            joints.set_zero_commands()
        return False

    def search_index(self, i: int) -> None:
        """Command joint i along its search trajectory."""
        tau = self._t - self._t_step_end
        period = self._period
        method = self._search_methods[i]
        if method is CalibrationMethod.ALTERNATIVE:
            if tau < period / 2.0:
                w = 2.0 * math.pi / period
                des_pos = AMPLITUDE * math.pi * 0.5 * (1.0 - math.cos(w * tau))
                des_vel = AMPLITUDE * math.pi * 0.5 * w * math.sin(w * tau)
            else:
                w = math.pi / period
                s = tau - period / 2.0
                des_pos = AMPLITUDE * math.pi * math.cos(w * s)
                des_vel = -AMPLITUDE * math.pi * w * math.sin(w * s)
        else:
            sign = 1.0 if method is CalibrationMethod.POSITIVE else -1.0
            w = math.pi / period
            des_pos = sign * 2.0 * AMPLITUDE * math.pi * (1.0 - math.cos(w * tau))
            des_vel = sign * 2.0 * AMPLITUDE * math.pi * w * math.sin(w * tau)

        gear = self._gear_ratios[i]
        self._pos_command[i] = des_pos / gear + self._initial_positions[i]
        self._vel_command[i] = des_vel / gear

    def switch_to_waiting(self) -> None:
        """Start the waiting time: zero the gains and enable index compensation."""
        self._state = _State.WAITING
        self._t_step_indexes_detected = self._t
        for i in range(self._n):
            if self._calib_order[i] == self._step_number or self._already_calibrated:
                self._kp_command[i] = 0.0
                self._kd_command[i] = 0.0
                self._joints.enable_index_offset_compensation(i)