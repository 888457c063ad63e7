"""Robot: ties the board, the joints, the IMU and the calibrator together."""

from __future__ import annotations

import sys
import time
from typing import Iterable, Optional, Protocol, TextIO

import numpy as np

from .calibration import JointCalibrator
from .imu import IMU
from .joint_modules import JointModules

_REPORT_EVERY = 2000
_INIT_PERIOD = 0.001


class RobotBoard(Protocol):
    """The part of the master board interface the robot drives."""

    def init(self) -> None: ...

    def send_init(self) -> None: ...

    def send_command(self) -> None: ...

    def parse_sensor_data(self) -> None: ...

    def is_timeout(self) -> bool: ...

    def is_ack_msg_received(self) -> bool: ...


class Robot:
    """Orchestrates the devices of one robot and guards it with a safety mode."""

    def __init__(
        self,
        robot_if: RobotBoard,
        joints: JointModules,
        imu: Optional[IMU] = None,
        calibrator: Optional[JointCalibrator] = None,
        out: Optional[TextIO] = None,
    ) -> None:
        self.robot_interface = robot_if
        self.joints = joints
        self.imu = imu
        self.calibrator = calibrator
        self._out = out if out is not None else sys.stdout
        self._timeout_counter = 0
        self._saw_error = False
        self._last_time = time.monotonic()

    def init(self) -> None:
        """Initialise the connection and enable the joints."""
        self.robot_interface.init()
        self.joints.enable()

    def send_init(self) -> None:
        """Send a session initialisation packet."""
        self.robot_interface.send_init()

    def start(self) -> None:
        """Open the session, blocking until it is acknowledged or times out."""
        self.init()
        board = self.robot_interface
        last = time.monotonic()
        while not board.is_timeout() and not board.is_ack_msg_received():
            now = time.monotonic()
            if now - last > _INIT_PERIOD:
                last = now
                board.send_init()
            else:
                time.sleep(0)

        if board.is_timeout():
            raise RuntimeError("Timeout during Robot.start().")

        # Make sure all fields are filled before the robot is used.
        self.parse_sensor_data()

    def is_ack_msg_received(self) -> bool:
        return self.robot_interface.is_ack_msg_received()

    def send_command(self) -> bool:
        """Send the commands, or the safety control once an error was seen.

        Returns False when the robot is in safety mode.
        """
        self.has_error()
        if self._saw_error:
            self.joints.run_safety_controller()
        self.robot_interface.send_command()
        return not self._saw_error

    def send_command_and_wait_end_of_cycle(self, dt: float) -> bool:
        """Like send_command, then wait until dt has passed since the last cycle."""
        result = self.send_command()
        while time.monotonic() - self._last_time < dt:
            time.sleep(0)
        self._last_time = time.monotonic()
        return result

    def parse_sensor_data(self) -> None:
        """Parse the board data and refresh every device."""
        self.robot_interface.parse_sensor_data()
        self.joints.parse_sensor_data()
        if self.imu is not None:
            self.imu.parse_sensor_data()

    def run_calibration(
        self,
        target_positions: Iterable[float],
        calibrator: Optional[JointCalibrator] = None,
    ) -> bool:
        """Run a calibration to completion, blocking until it is done."""
        calibrator = calibrator if calibrator is not None else self.calibrator
        if calibrator is None:
            raise ValueError("No joint calibrator available.")
        target = np.asarray(list(target_positions), dtype=float)
        if target.size != self.joints.number_motors:
            raise ValueError(
                "Target position vector has a different size than the number of motors."
            )

        while not self.is_timeout():
            self.parse_sensor_data()
            if calibrator.run_and_go_to(target):
                return True
            if not self.send_command_and_wait_end_of_cycle(calibrator.dt):
                raise RuntimeError("Error during Robot.run_calibration().")

        raise RuntimeError("Timeout during Robot.run_calibration().")

    def report_error(self, message: Optional[str] = None) -> None:
        """Report an external error; the robot goes into safety mode."""
        if message is not None:
            self._out.write(f"ERROR: {message}\n")
        self._saw_error = True

    def is_ready(self) -> bool:
        """True when all connected devices report ready."""
        return self.joints.is_ready()

    def wait_until_ready(self) -> bool:
        """Block until all devices report ready."""
        self.parse_sensor_data()
        self.joints.set_zero_commands()

        last = time.monotonic()
        while not self.is_ready() and not self.has_error():
            if time.monotonic() - last > _INIT_PERIOD:
                last += _INIT_PERIOD
                if not self.is_ack_msg_received():
                    self.send_init()
                else:
                    self.parse_sensor_data()
                    self.send_command()
            else:
                time.sleep(0)

        if self.has_error():
            if self.robot_interface.is_timeout():
                raise RuntimeError("Timeout during Robot.wait_until_ready().")
            raise RuntimeError("Error during Robot.wait_until_ready().")

        return not self._saw_error

    def initialize(self, target_positions: Iterable[float]) -> None:
        """Start the session, wait for the joints and run the calibration."""
        self.start()
        self.wait_until_ready()
        self.run_calibration(target_positions)

    def is_timeout(self) -> bool:
        return self.robot_interface.is_timeout()

    def has_error(self) -> bool:
        """Check every device and the connection for errors."""
        self._saw_error |= self.joints.has_error()
        if self.imu is not None:
            self._saw_error |= self.imu.has_error()

        if self.robot_interface.is_timeout():
            if self._timeout_counter % _REPORT_EVERY == 0:
                self._out.write("ERROR: Robot communication timedout.\n")
            self._timeout_counter += 1
            self._saw_error = True

        return self._saw_error