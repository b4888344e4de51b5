"""Shared constants across the application."""

# Progress weights (percent reached when each phase starts)
PERCENT_FETCH = 10
PERCENT_PARSE = 20
PERCENT_MAPPING = 30
PERCENT_APPLY_SPAN = 70  # spread linearly across apply batches
PERCENT_COMPLETE = 100

# Stock status flags written to the catalog
STOCK_STATUS_IN_STOCK = "in_stock"
STOCK_STATUS_OUT_OF_STOCK = "out_of_stock"

# Batch sizes
SYNC_BATCH_SIZE = 50

# Time windows (seconds)
FEED_FETCH_TIMEOUT = 30
JOB_PROGRESS_TTL = 3600
JOB_TERMINAL_GRACE = 300

# Sync log
SYNC_LOG_CAPACITY = 10
SYNC_LOG_MAX_ERRORS = 100  # per-row skip reasons kept on one entry

# Polling
RECOMMENDED_POLL_INTERVAL_SECONDS = 1
