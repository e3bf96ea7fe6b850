from __future__ import annotations

from typing import Iterable, List


class ConfigError(ValueError):
    """Invalid flock parameters or seed data. Raised before any tick runs."""

    def __init__(self, errors: Iterable[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("Invalid flock configuration: " + "; ".join(self.errors))
