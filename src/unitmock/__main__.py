import sys

from unitmock.cli import main

sys.exit(main())
