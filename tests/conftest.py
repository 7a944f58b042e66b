"""Test environment: isolated data dir and a known cron secret, set before cortex is imported."""

import os
import tempfile

os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="cortex-test-"))
os.environ.setdefault("CRON_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
