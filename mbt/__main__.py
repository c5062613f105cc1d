import sys

from mbt.cli import main

sys.exit(main())
