# Project root on sys.path so `switchyard_cli` and the package import without an install
import os
import sys

from dotenv import load_dotenv

project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Live-API keys for the optional integration tests come from .env
load_dotenv(os.path.join(project_root, ".env"))

# a developer's local dev.yml must not leak into the test settings
os.environ.setdefault("SWITCHYARD_IGNORE_DEV_CONFIG", "true")
