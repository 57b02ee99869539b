import sys

from gridlords.cli import main

sys.exit(main())
