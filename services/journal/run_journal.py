import asyncio
import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
JOURNAL_ROOT = Path(__file__).resolve().parent

# Keep runtime paths stable regardless of launcher cwd.
os.chdir(PROJECT_ROOT)
if str(JOURNAL_ROOT) not in sys.path:
    sys.path.insert(0, str(JOURNAL_ROOT))

from main import main as journal_main


def run():
    asyncio.run(journal_main())


if __name__ == "__main__":
    run()
