import sys

from mcp_searxng.cli import main

sys.exit(main())
