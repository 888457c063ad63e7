# odrictl

A control interface for robots whose motors and IMU hang off a master board.
It groups the motors into joint modules, reads and reorients the IMU, runs
the joint index calibration, and keeps a control loop safe: whenever a joint
leaves its limits, moves too fast, a motor driver reports an error or the
communication times out, the commands are replaced by a damping-only safety
controller.

Joint-space values are numpy arrays. Gear ratios, motor constants and
polarities are applied for you, so positions are in radians at the joint,
velocities in rad/s and torques in Nm.

Install with `pip install .`; `pip install .[test]` adds pytest for the tests.

## Building blocks

- `odrictl.joint_modules.JointModules`: a group of motors seen as joints.
  `parse_sensor_data()` refreshes the properties `positions`, `velocities`,
  `sent_torques`, `measured_torques`, `index_been_detected`, `ready`,
  `enabled`, `motor_driver_enabled` and `motor_driver_errors` (each returned
  as a copy). Commands go out through `set_torques`, `set_desired_positions`,
  `set_desired_velocities`, `set_position_gains`, `set_velocity_gains`,
  `set_zero_gains`, `set_zero_commands`, `set_maximum_currents`,
  `set_position_offsets` and `enable_index_offset_compensation(index=None)`.
  `has_error()` checks the joint limits (unless switched off with
  `disable_joint_limit_check()`), the velocity limit once the motors are
  ready, and the motor driver error codes (`DriverError`), writing a
  message to the output stream at most once every 2000 repeated errors.
  `run_safety_controller()` zeroes all commands and applies the safety
  damping as velocity gain.
- `odrictl.imu.IMU`: `parse_sensor_data()` refreshes `gyroscope`,
  `accelerometer`, `linear_acceleration`, `attitude_euler` and
  `attitude_quaternion`. A rotate vector (3 entries) and an orientation
  vector (4 entries) of 1-based, optionally negative indices remap and
  sign-flip the axes; they default to `(1, 2, 3)` and `(1, 2, 3, 4)`.
  `has_error()` always returns `False`.
- `odrictl.calibration.JointCalibrator` and `CalibrationMethod`
  (`AUTO`, `POSITIVE`, `NEGATIVE`, `ALTERNATIVE`): each call to
  `run_and_go_to(target)` (or `run()`, which targets zero) advances the
  calibration by one `dt`. It searches the encoder indices, waits 0.1 s for
  the index compensation, then moves to the target over the period `T`, and
  returns `True` when done. `AUTO` picks `POSITIVE`, `NEGATIVE` or
  `ALTERNATIVE` from the position offset. Joints can be calibrated in
  several steps via `calib_order`, visiting `calib_pos` between steps.
- `odrictl.robot.Robot`: ties the board, the joints, the IMU and the
  calibrator together: `init`, `send_init`, `start`, `wait_until_ready`,
  `run_calibration(target_positions, calibrator=None)`, `initialize`,
  `parse_sensor_data`, `send_command`, `send_command_and_wait_end_of_cycle`,
  `report_error(message=None)`, `is_ready`, `is_timeout`,
  `is_ack_msg_received` and `has_error`. The blocking methods raise
  `RuntimeError` on a timeout or an error.
- `odrictl.pd_control`: `pd_torques` computes a joint PD law and
  `run_pd_controller` runs it on a robot until the communication times out,
  printing the joint positions every `report_every` cycles and returning the
  number of cycles. `SOLO12_TARGET`/`SOLO12_GAINS` and
  `TESTBENCH_TARGET`/`TESTBENCH_GAINS` hold ready-made targets and gains.
- `odrictl.config`: builds all of the above from YAML
  (`joint_modules_from_yaml`, `imu_from_yaml`, `joint_calibrator_from_yaml`,
  `robot_from_yaml_file`, `joint_calibrator_from_yaml_file`), raising
  `ConfigError` for missing files or nodes, wrong value types and
  inconsistent sizes.

## Configuration file

```yaml
robot:
  interface: eth0
  joint_modules:
    motor_numbers: [0, 1]
    motor_constants: 0.025
    gear_ratios: 9.
    max_currents: 4.
    reverse_polarities: [false, false]
    lower_joint_limits: [-4.0, -4.0]
    upper_joint_limits: [4.0, 4.0]
    max_joint_velocities: 80.
    safety_damping: 0.5
  imu:
    rotate_vector: [1, 2, 3]
    orientation_vector: [1, 2, 3, 4]
joint_calibrator:
  search_methods: [POS, NEG]
  position_offsets: [0.0, 0.0]
  calib_order: [0, 0]
  calib_pos: [0.0, 0.0]
  Kp: 1.
  Kd: 0.05
  T: 1.
  dt: 0.001
```

`search_methods` takes `AUTO`, `POS`, `NEG` or `ALT`. `calib_order` and
`calib_pos` are optional and default to zeros.

## Usage

```python
import numpy as np

from odrictl.config import robot_from_yaml_file
from odrictl.pd_control import run_pd_controller

robot = robot_from_yaml_file("config_testbench.yaml", interface_factory=make_board)

target = np.array([np.pi / 2, -np.pi / 2])

# Open the session, wait for the motors, calibrate and move to the target.
robot.initialize(target)

# Hold the target with a PD controller at 1 kHz until the link times out.
run_pd_controller(robot, target, kp=0.125, kd=0.0025, dt=0.001)
```

A hand-written loop does the same as `run_pd_controller`:

```python
from odrictl.pd_control import pd_torques

joints = robot.joints
while not robot.is_timeout():
    robot.parse_sensor_data()
    joints.set_torques(pd_torques(target, joints.positions, joints.velocities, 3.0, 0.05))
    robot.send_command_and_wait_end_of_cycle(0.001)
```

If your own code detects a problem, call `robot.report_error("reason")`;
from then on every command sent is the safety controller's.

## The board object

`robot_from_yaml_file` calls `interface_factory` with the interface name
(from the `if_name` argument, or `robot.interface` in the file) to create
the board object. That object must provide:

- `init()`, `send_init()`, `send_command()`, `parse_sensor_data()`,
  `is_timeout()` and `is_ack_msg_received()`;
- `motors`, indexed by motor number, each with the attributes `position`,
  `velocity`, `current`, `current_reference`, `position_reference`,
  `velocity_reference`, `kp`, `kd`, `current_saturation`,
  `position_offset`, `enable_index_offset_compensation`,
  `has_index_been_detected`, `is_ready`, `is_enabled` and a method
  `enable()`;
- `motor_drivers`, one per pair of motors, each with `motor1`, `motor2`,
  `is_enabled`, `error_code`, `timeout` and the methods
  `enable_position_rollover_error()` and `enable()`;
- `imu_gyroscope`, `imu_accelerometer`, `imu_linear_acceleration` and
  `imu_attitude` (roll, pitch, yaw) as sequences of floats.

## What this package does not do

It does not talk to a master board itself: there is no network or packet
layer, so a board object as described above has to be supplied. It also
ships no command-line program; the control loop is started from Python.