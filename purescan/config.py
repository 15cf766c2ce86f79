"""
PureScan - configuration
Static settings read once from the environment (and a local .env file)
"""

import os
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _int_list(value: str):
    return [int(part) for part in value.split(',') if part.strip()]


class Config:
    """Central configuration for the scanner and the score engine"""

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Lookup/provisioning endpoint
    LOOKUP_URL = os.getenv('LOOKUP_URL', 'http://localhost:5001')
    LOOKUP_TIMEOUT = float(os.getenv('LOOKUP_TIMEOUT', '8'))

    # Decode backend: "native" prefers the OpenCV detector, "fallback" forces pyzbar
    DECODER_PREFERENCE = os.getenv('DECODER_PREFERENCE', 'native')

    # Stability filter
    STABILITY_WINDOW = int(os.getenv('STABILITY_WINDOW', '6'))
    STABILITY_THRESHOLD = int(os.getenv('STABILITY_THRESHOLD', '3'))

    # Camera devices; the rear-facing one is tried first
    REAR_CAMERA_INDEX = int(os.getenv('REAR_CAMERA_INDEX', '0'))
    CAMERA_INDICES = _int_list(os.getenv('CAMERA_INDICES', '0,1'))

    # consecutive empty reads before the camera counts as lost
    MAX_FAILED_READS = int(os.getenv('MAX_FAILED_READS', '30'))

    # Score engine worker pool
    RECOMPUTE_WORKERS = int(os.getenv('RECOMPUTE_WORKERS', '4'))


# Setup logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
