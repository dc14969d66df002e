"""Pytest configuration for the Routeweaver backend test suite."""

import sys
from pathlib import Path

# Ensure the backend directory is on the path so tests can import
# modules directly (e.g. `import route_composition`) without a package prefix.
sys.path.insert(0, str(Path(__file__).parent.parent))
