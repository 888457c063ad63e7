"""A simple joint-space PD controller loop for a running robot."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, TextIO

import numpy as np

from .robot import Robot

SOLO12_TARGET = (0.0, 0.7, -1.4, -0.0, 0.7, -1.4, 0.0, -0.7, 1.4, -0.0, -0.7, 1.4)
SOLO12_GAINS = (3.0, 0.05)
TESTBENCH_TARGET = (3.1415 * 0.5, -3.1415 * 0.5)
TESTBENCH_GAINS = (0.125, 0.0025)


def pd_torques(
    target_positions: Iterable[float],
    positions: Iterable[float],
    velocities: Iterable[float],
    kp: float,
    kd: float,
) -> np.ndarray:
    """Torques of a PD law pulling the joints to the target positions."""
    target = np.asarray(list(target_positions), dtype=float)
    pos = np.asarray(list(positions), dtype=float)
    vel = np.asarray(list(velocities), dtype=float)
    if not target.size == pos.size == vel.size:
        raise ValueError("Target, positions and velocities must have the same size")
    return kp * (target - pos) - kd * vel


def run_pd_controller(
    robot: Robot,
    target_positions: Iterable[float],
    kp: float,
    kd: float,
    dt: float = 0.001,
    report_every: int = 1000,
    out: Optional[TextIO] = None,
) -> int:
    """Hold the joints at the target until the connection times out.

    Prints the joint positions every report_every cycles and returns the
    number of cycles run.
    """
    out = out if out is not None else sys.stdout
    target = np.asarray(list(target_positions), dtype=float)
    joints = robot.joints
    cycles = 0
    while not robot.is_timeout():
        robot.parse_sensor_data()
        joints.set_torques(pd_torques(target, joints.positions, joints.velocities, kp, kd))
        # In error state the robot substitutes the safety controller.
        robot.send_command_and_wait_end_of_cycle(dt)
        cycles += 1
        if report_every and cycles % report_every == 0:
            out.write(f"Joints: {joints.format_vector(joints.positions)}\n")

    out.write("Timeout detected\n")
    return cycles