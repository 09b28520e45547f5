# tutor_availability/core/constants.py
"""Grid constants shared by the time grid, resolver and reconciler."""

# 30-min resolution → 48 slots/day
SLOT_MINUTES = 30
MINUTES_PER_DAY = 24 * 60
SLOTS_PER_DAY = MINUTES_PER_DAY // SLOT_MINUTES

# Consecutive Add exceptions at most this far apart also open the slots between them
ADD_BRIDGE_MAX_GAP_MINUTES = 60
