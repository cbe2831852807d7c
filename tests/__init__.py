"""Test configuration and fixtures"""
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["LOG_FORMAT"] = "console"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["KEY_RESET_ENABLED"] = "false"

# Never pick up real credentials from the developer's shell
for name in list(os.environ):
    if name.upper().startswith(("GEMINI_API_KEY", "UNSPLASH_ACCESS_KEY", "DEFAULT_CONTENT_GEN_KEY", "DEFAULT_IMAGE_SEARCH_KEY")):
        del os.environ[name]
for name in ("DATABASE_URL", "ADMIN_API_KEY", "TRUSTED_PROXIES"):
    os.environ.pop(name, None)
