import sys

from db_fixer.cli import main

sys.exit(main())
