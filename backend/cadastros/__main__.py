import sys

from cadastros.cli import main

sys.exit(main())
