"""
Core Module Package.

Infrastructure shared by every other package.

Components:
- clock: Unified time abstraction (SystemClock, MockClock)
- exceptions: Exception hierarchy
- config: BotConfig composed of the per-package configs

Submodules are imported directly (core.config depends on the
packages that depend on core.clock and core.exceptions).
"""
