import sys

from cfagentbrowser.app import main

sys.exit(main())
