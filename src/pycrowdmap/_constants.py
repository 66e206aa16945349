"""Internal constants shared across the library."""

USER_AGENT = "pycrowdmap"

#: Mean Earth radius used by the haversine metric.
EARTH_RADIUS_M = 6_371_000.0

CHECK_IN_RADIUS_M = 50.0
CLUSTER_THRESHOLD_M = 10.0

SIMULATION_INTERVAL_S = 2.0
# 350 requests/min at 30 ticks/min is ~11.6 requests per tick.
SIMULATION_BATCH_SIZE = 11
FALLBACK_POLL_INTERVAL_S = 10.0

INCREMENT_ENDPOINT = "/v1/counter/incr"
DECREMENT_ENDPOINT = "/v1/counter/decr"
BATCH_ENDPOINT = "/v1/counters/batch"

SNAPSHOT_TOPIC = "snapshot"
LIVE_COUNT_TOPIC = "live_count_update"

# ------------------------------------------------------------------
# Simulation target band (popularity -> fraction of capacity)
# ------------------------------------------------------------------

POPULARITY_THRESHOLD = 0.6
LOW_POP_MIN = 0.10
LOW_POP_MAX = 0.40
HIGH_POP_MIN = 0.75
HIGH_POP_MAX = 0.85

PULL_FACTOR = 0.1
NOISE_FRACTION = 0.015
MAX_CHANGE_FRACTION = 0.025
SEED_JITTER_FRACTION = 0.025
