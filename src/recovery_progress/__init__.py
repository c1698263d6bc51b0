"""Recovery progress engine: sobriety counts, streaks, compliance, milestones and rollover."""
