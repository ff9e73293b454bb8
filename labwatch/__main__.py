import sys

from labwatch.main import main

sys.exit(main())
