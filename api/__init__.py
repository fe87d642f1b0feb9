"""HTTP host for the Nudge engine."""
