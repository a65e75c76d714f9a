import sys

from ucibench.cli import main

sys.exit(main())
