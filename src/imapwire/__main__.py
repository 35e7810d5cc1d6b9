# =============================================================================
# imapwire Entry Point for `python -m imapwire`
# =============================================================================
# Equivalent to running the 'imapwire' command after installation.
# =============================================================================

import sys

from imapwire.cli import main

if __name__ == "__main__":
    sys.exit(main())
