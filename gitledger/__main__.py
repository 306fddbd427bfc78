"""Entry point for running gitledger as a module.

    python -m gitledger <remote> [<url>]

behaves exactly like the ``git-remote-ledger`` remote helper.
"""

import sys

from . import remote_helper

if __name__ == "__main__":
    sys.exit(remote_helper.main())
