"""Allow running as ``python -m totpvault``."""

from __future__ import annotations

import sys

from totpvault.main import main

sys.exit(main())
