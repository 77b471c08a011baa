"""Click commands registered on the ``ddtool`` group in ``ddtool.cli``."""
