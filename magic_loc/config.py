"""
Magic-Loc gateway configuration.

Module-level dictionaries describing the reference deployment. main.py builds
the component configs from these and applies command-line overrides.
"""

# Serial port configuration
SERIAL_CONFIG = {
    "baud_rate": 921600,        # Anchor firmware UART rate
    "stream_baud_rate": 2000000,  # CIR dump firmware rate (magic-loc-stream)
    "timeout_s": 0.01,          # Read timeout per poll
    "low_latency": True,        # ASYNC_LOW_LATENCY on Linux FTDI/ACM drivers
    "clear_input": True,        # Drop stale bytes buffered before startup
    "read_chunk_size": 4096,    # Upper bound for one read() call
}

# Publish sink configuration (MQTT)
PUBLISH_CONFIG = {
    "broker": "localhost",
    "port": 1883,
    "client_id": "magic_loc_central",
    "base_topic": "magic_loc",
    "qos": 0,
    "keepalive": 60,
    "max_queued_messages": 4,   # Outgoing high-water mark
    "format": "json",           # "json" or "binary" (ranges/imu only)
}

# Localization configuration
LOCALIZATION_CONFIG = {
    # Current configuration:
    #   - From left down corner: 5, 4, 2
    #   - From right down corner: 6, (4.11), 1, (2.77), 3
    #   - Lower: 7, 8
    "anchor_coordinates": [
        (6.1, 9.2, 3.0),
        (5.0, 0.0, 2.7),
        (8.9, 9.1, 3.0),
        (3.8, 0.0, 2.5),
        (0.8, 0.0, 2.8),
        (2.0, 9.0, 3.0),
        (5.7, 9.2, 1.5),
        (6.1, 9.2, 0.0),
    ],
    "range_bias": 76.8,             # Calibration bias subtracted from every range
    "max_valid_range": 1e6,         # Ranges above this are "no measurement"
    "max_iterations": 45,
    "convergence_tolerance": 1e-3,  # Sum of squared residuals
}

# Synchronizer configuration
SYNC_CONFIG = {
    "stall_warning_depth": 64,  # Warn when one FIFO is empty and another holds this many
}

# IMU relay configuration
IMU_CONFIG = {
    "max_interval_us": 1500,    # Inter-arrival gap flagged as an anomaly
}

# Output configuration
OUTPUT_CONFIG = {
    "status_interval_s": 5.0,   # Period of the metrics status line
    "print_summary_on_exit": True,
}

# Logging configuration
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
