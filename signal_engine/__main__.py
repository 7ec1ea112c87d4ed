import sys

from signal_engine.cli import main

sys.exit(main())
