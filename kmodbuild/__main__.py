"""Allow ``python -m kmodbuild``."""

import sys

from kmodbuild import cli

sys.exit(cli.main())
