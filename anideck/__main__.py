import sys

from anideck.cli.commands import main

sys.exit(main())
