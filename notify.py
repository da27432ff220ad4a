#!/usr/bin/env python3
"""KEVWatch — thin shim.

Lets ``python notify.py`` run a cycle from a checkout without installing
the package.  The real implementation lives in ``kevwatch/``.
"""

from kevwatch.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
