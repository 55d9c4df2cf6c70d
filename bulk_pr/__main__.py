import sys

from bulk_pr.cli import main

sys.exit(main())
