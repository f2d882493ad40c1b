"""Invoked via: mpiexec -n P python -m Laplace N [options]"""

import sys

from .cli import main

sys.exit(main())
