"""Shared engine constants.

Centralizes the thresholds used by kinematics, run segmentation and the
analytics so we can document and adjust them in one place. All values are
SI: meters, seconds, meters/second, dimensionless grade.
"""

# Mean Earth radius used by every distance in the engine (meters)
EARTH_RADIUS_M = 6371000.0

# FIT positions are stored as semicircles
SEMICIRCLES_TO_DEGREES = 180 / 2**31

# Steps implying more than this are GPS noise (m/s, ~540 km/h)
MAX_PLAUSIBLE_SPEED_MPS = 150.0

# Below this horizontal step the slope is carried forward (meters)
SLOPE_MIN_DISTANCE_M = 1.0

# Rolling window (samples) used to classify descent/ascent
WINDOW_POINTS = 5

# Consecutive votes needed before the phase changes
HYSTERESIS_POINTS = 3

# Net elevation change rate over the window to count as descending/ascending (m/s)
MIN_DESCENT_RATE_MPS = 0.15
MIN_ASCENT_RATE_MPS = 0.15

# Minimum horizontal speed over the window while skiing (m/s, ~5.4 km/h)
MIN_SKI_SPEED_MPS = 1.5

# A descent only becomes a run above all three of these
MIN_RUN_VERTICAL_M = 30.0
MIN_RUN_DISTANCE_M = 100.0
MIN_RUN_DURATION_S = 30.0

# Two descents merge when the pause between them is shorter than this
# and the climb in between stays below MAX_GAP_ASCENT_M
MERGE_GAP_SECONDS = 120.0
MAX_GAP_ASCENT_M = 50.0

# Minimum speed considered "moving" (m/s)
MOVING_SPEED_MPS = 1.0

# Time steps longer than this are recording gaps, not motion (seconds)
MAX_STEP_SECONDS = 300.0

# Heart rate zone bounds as fractions of HR max.
# Z1: [0, 0.60), Z2: [0.60, 0.70), ..., Z5: [0.90, inf)
HR_ZONE_FRACTIONS = [0.6, 0.7, 0.8, 0.9]

# Fixed bpm bounds used when no HR max is configured
HR_ZONE_FIXED_BPM = [110, 130, 150, 170]

# Performance score references: a run averaging this speed or vertical
# per run earns the full component
SCORE_REFERENCE_SKI_SPEED_MPS = 15.0
SCORE_REFERENCE_VERTICAL_PER_RUN_M = 400.0
SCORE_WEIGHTS = {"speed": 40.0, "efficiency": 35.0, "motion": 25.0}

# Consecutive checkpoint failures before the session raises a warning
CHECKPOINT_FAILURE_WARN_AFTER = 3
