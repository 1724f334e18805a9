"""Build, parse and transactionally apply VyOS router configuration."""
