"""Allow ``python -m hubsync``."""

import sys

from hubsync.cli import main

sys.exit(main())
