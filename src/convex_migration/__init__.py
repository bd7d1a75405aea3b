"""Convex Bridge - Migrate MongoDB records into a Convex backend."""

import logging
import warnings

__version__ = "0.1.0"
__author__ = "Convex Bridge Team"
__license__ = "Apache-2.0"

# Suppress verbose third-party library logging
# These libraries generate excessive console output that clutters migration progress
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpcore.connection").setLevel(logging.WARNING)
logging.getLogger("httpcore.http11").setLevel(logging.WARNING)
logging.getLogger("pymongo").setLevel(logging.WARNING)
logging.getLogger("pymongo.command").setLevel(logging.WARNING)
logging.getLogger("pymongo.connection").setLevel(logging.WARNING)

# Suppress common warnings from third-party libraries
warnings.filterwarnings("ignore", category=DeprecationWarning, module="httpx")
