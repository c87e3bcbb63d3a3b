"""Orchestration layer — background jobs that drive the booking lifecycle."""

from creator_escrow.orchestration.auto_release import AutoReleaseSweeper, SweepReport

__all__ = ["AutoReleaseSweeper", "SweepReport"]
