import sys

from calibrig.cli import main

sys.exit(main())
