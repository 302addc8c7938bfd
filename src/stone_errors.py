"""
Exception hierarchy for stone approximation runs.

Loading, construction and export failures are raised as subclasses of
StoneError so the pipeline can isolate a failing stone from the rest of a
batch.
"""


class StoneError(Exception):
    """Base exception for stone processing errors."""
    pass


class MeshLoadError(StoneError):
    """Mesh file could not be read or holds no triangles."""
    pass


class StoneTooThinError(StoneError):
    """Vertical extent is less than two sheet thicknesses."""

    def __init__(self, extent: float, thickness: float):
        self.extent = extent
        self.thickness = thickness
        super().__init__(
            f"Input too thin relative to sheet thickness: extent {extent:.3f} "
            f"is less than 2 x {thickness:.3f} (check units)"
        )


class ExportError(StoneError):
    """Writing an output artifact failed."""

    def __init__(self, operation: str, path: str, cause: Exception):
        self.operation = operation
        self.path = path
        super().__init__(f"{operation} failed for {path}: {cause}")


class NoStoneBuiltError(StoneError):
    """Every input of a run failed to load or slice."""

    def __init__(self, failures):
        self.failures = dict(failures)
        super().__init__(
            f"No stone could be built from {len(self.failures)} input(s)"
        )
