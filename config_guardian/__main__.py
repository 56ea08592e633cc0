"""Allow ``python -m config_guardian``."""
import sys

from .cli import main

sys.exit(main())
