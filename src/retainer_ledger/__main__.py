import sys

from retainer_ledger.cli import main

sys.exit(main())
