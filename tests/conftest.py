"""Pytest configuration for pmatmul tests."""

import sys
import os

# Add the repository root so pmatmul can be imported without installing
_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if _root not in sys.path:
    sys.path.insert(0, _root)

import pytest
import numpy as np

np.set_printoptions(precision=1, suppress=True, floatmode='fixed')


@pytest.fixture
def example_3x2():
    """A (3x2) and B (2x3) with their known product."""
    from pmatmul.ccs import SparseMatrix
    A = np.array([[1.0, 4.0], [8.0, 5.0], [6.0, 2.0]])
    B = np.array([[9.0, 1.0, 10.0], [12.0, 5.0, 2.0]])
    C = np.array([[57.0, 21.0, 18.0], [132.0, 33.0, 90.0], [78.0, 16.0, 64.0]])
    return SparseMatrix.from_dense(A), SparseMatrix.from_dense(B), C
