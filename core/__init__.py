"""
Core Module Package.

Infrastructure shared by every other package.

Components:
- clock: Injectable UTC time source
- config: Environment-driven settings dataclasses
- exceptions: Process-level exception hierarchy
"""
