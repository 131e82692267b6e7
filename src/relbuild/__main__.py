import sys

from relbuild.cli import main

sys.exit(main())
