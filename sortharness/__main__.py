import sys

from sortharness.cli import main

sys.exit(main())
