"""Control interface for master-board robots: joints, IMU, calibration, robot loop and YAML setup."""

__version__ = "1.0.0"

__all__ = ["calibration", "config", "imu", "joint_modules", "pd_control", "robot"]