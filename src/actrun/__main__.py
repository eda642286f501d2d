"""Allow ``python -m actrun``."""

from actrun.cli.main import run

run()
