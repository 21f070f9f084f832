import sys

from questlink.cli import main

sys.exit(main())
