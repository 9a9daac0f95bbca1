# attraction.py
"""
The type-to-type attraction coefficients.

Pure data: a T x T table of factors in [-1, 1], looked up by
(source type, other type). The table is read-only once built, so the
parallel force kernel can share it without locking.
"""
import logging
import numpy as np

# --- Data Contracts ---
#
# class AttractionMatrix:
#   - __init__(self, matrix):
#     - Inputs: a square array-like of finite floats in [-1, 1].
#     - Side Effects: copies the table into a read-only float64 array.
#     - Raises ValueError for a non-square, non-finite or out-of-range table.
#
#   - random(number_of_types: int, rng: np.random.Generator) -> AttractionMatrix
#     - T*T independent uniform samples in [-1, 1).
#
#   - get_factor(type_a: int, type_b: int) -> float
#     - Invariants: defined for every ordered pair of valid types. Not
#       required to be symmetric.


class AttractionMatrix:
    """Immutable attraction coefficients indexed by (source type, other type)."""

    def __init__(self, matrix):
        values = np.array(matrix, dtype=np.float64)
        if values.ndim != 2 or values.shape[0] != values.shape[1] or values.shape[0] < 1:
            raise ValueError(f"Attraction matrix must be square and non-empty, got shape {values.shape}.")
        if not np.all(np.isfinite(values)):
            raise ValueError("Attraction matrix contains non-finite values.")
        if np.any(np.abs(values) > 1.0):
            raise ValueError("Attraction matrix values must lie within [-1, 1].")
        values.setflags(write=False)
        self._values = values

    @classmethod
    def random(cls, number_of_types: int, rng: np.random.Generator) -> "AttractionMatrix":
        """
        Draws every coefficient independently and uniformly from [-1, 1).

        Args:
            number_of_types (int): T, the table is T x T.
            rng (np.random.Generator): The run's seeded generator.
        """
        values = rng.random((number_of_types, number_of_types)) * 2.0 - 1.0
        logging.info(f"Attraction matrix randomized for {number_of_types} types.")
        logging.debug(f"Attraction matrix:\n{np.array2string(values, precision=2)}")
        return cls(values)

    @property
    def number_of_types(self) -> int:
        return self._values.shape[0]

    @property
    def values(self) -> np.ndarray:
        return self._values

    def get_factor(self, type_a: int, type_b: int) -> float:
        """How strongly a particle of `type_a` is drawn to one of `type_b`."""
        return float(self._values[type_a, type_b])

    def __repr__(self):
        return f"AttractionMatrix(number_of_types={self.number_of_types})"
