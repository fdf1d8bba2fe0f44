"""Root conftest — shared test configuration."""

import os

# Ensure tests never talk to a real course service
os.environ.setdefault("CURRICULUM_SYNC_API_BASE_URL", "http://course-api.test/api/v1")
os.environ.setdefault("CURRICULUM_SYNC_API_TOKEN", "test-token")
os.environ.setdefault("CURRICULUM_SYNC_LOG_FORMAT", "text")
