"""
Allows running the query CLI via:

    python -m attendance_search --snapshot class.json "status:absent"
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
