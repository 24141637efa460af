import sys

from dns_monitor.cli import main

sys.exit(main())
