from __future__ import annotations

__all__ = ["NonSquareMatrixError", "ConvergenceError"]


class NonSquareMatrixError(ValueError):
    """Raised when a decomposition that needs a square matrix gets another shape"""

    def __init__(self, rows: int, columns: int):
        self.rows = rows
        self.columns = columns
        super().__init__(
            f"Invalid matrix shape: expected a square matrix, got ({rows}, {columns})"
        )


class ConvergenceError(RuntimeError):
    """Raised when a QR iteration block does not deflate within the iteration cap

    Attributes:
        max_iterations: The per-block iteration cap that was exceeded.
        index: The trailing eigenvalue index of the block that failed.
    """

    def __init__(self, max_iterations: int, index: int | None = None):
        self.max_iterations = max_iterations
        self.index = index
        message = f"Convergence failed after {max_iterations} iterations"
        if index is not None:
            message += f" on the block ending at index {index}"
        super().__init__(message)
