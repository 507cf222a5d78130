import os
import pytest

# Set DEBUG=1 globally for all tests to avoid file logging permission issues
os.environ["DEBUG"] = "1"

# Test location constants (London)
TEST_LAT = 51.5074
TEST_LON = -0.1278


@pytest.fixture
def london_sample():
    return {
        "latitude": TEST_LAT,
        "longitude": TEST_LON,
        "accuracy": 5.0,
        "altitude": 10.0,
        "speed": 0.0,
        "captured_at_ms": 1640995200000,
    }


@pytest.fixture
def identity():
    return {
        "device_id": "TRACK-001",
        "endpoint_base_url": "http://localhost:9003",
    }
