import sys

from devports.cli import main

sys.exit(main())
