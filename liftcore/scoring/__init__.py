"""
Session-boundary scoring.

- rpe: exertion and reps in reserve from velocity loss
- ranking: skill points, tiers and promotion series
- recovery: per-muscle recovery heatmap, readiness and auto-deload
- session_end: the transformations above applied to a finished session
"""
