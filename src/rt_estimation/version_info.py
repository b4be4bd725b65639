# src/rt_estimation/version_info.py
VERSION = "0.1.0"
