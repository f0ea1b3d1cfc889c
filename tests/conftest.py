import os
import sys
from pathlib import Path

# Make the dm_mirror package importable when tests run from a plain checkout
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))
# Also set PYTHONPATH for any subprocesses that might be spawned during tests
os.environ.setdefault("PYTHONPATH", str(root))
