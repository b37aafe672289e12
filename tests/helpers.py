"""Constants and child-process scripts shared by the tests."""

import sys
from pathlib import Path

IS_WINDOWS = sys.platform == "win32"

FIXTURES = Path(__file__).parent / "fixtures"

SLEEP_FOREVER = "import time; time.sleep(60)"
ECHO_STDIN = "import sys; sys.stdout.buffer.write(sys.stdin.buffer.read())"
