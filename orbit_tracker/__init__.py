"""
Satellite Tracking Core

This package fetches and caches Two-Line Element sets, propagates them with
SGP4, transforms the results into an Earth-fixed frame and keeps them in a
store that is updated once per tick.

Modules:
    tle_parser: TLE validation and parsing
    disk_cache: Atomic per-satellite TLE cache
    fetcher: Background CelesTrak retrieval with cache fallback
    propagator: SGP4 propagation to TEME
    frames: TEME -> ECEF -> presentation transforms
    sim_clock: Accelerated simulation time
    store: Satellite store and snapshots
    tracker: Per-tick update loop

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

__version__ = "1.0.0"
