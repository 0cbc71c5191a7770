class SpatialQCInvalidInputShape(Exception):
    """
    Exception raised when an input array does not have a compatible size.
    """

    def __init__(self, field_name: str, *args) -> None:
        self.field_name = field_name
        super().__init__(
            f"input vector {field_name} does not have compatible size", *args
        )

    def __reduce__(self):
        return (type(self), (self.field_name,) + self.args[1:])


class SpatialQCInvalidArg(Exception):
    """
    Exception raised when an argument does not have a valid value.
    """

    def __init__(self, field_name: str, reason: str, *args) -> None:
        self.field_name = field_name
        self.reason = reason
        super().__init__(
            f"argument {field_name} does not have a valid value: {reason}", *args
        )

    def __reduce__(self):
        return (type(self), (self.field_name, self.reason) + self.args[1:])


class SpatialQCSingularMatrix(Exception):
    """
    Exception raised when a matrix is singular or too ill-conditioned to invert.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class SpatialQCStationNotFound(Exception):
    """
    Exception raised when a station is not found.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)


class SpatialQCMetadataNotFound(Exception):
    """
    Exception raised when requested metadata does not exist for a station.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
