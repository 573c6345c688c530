"""Shared test fixtures."""

from __future__ import annotations

import numpy as np
import pytest

from polyreg.engine.registration import Registration, register


# Polygons as (k, 2) vertex arrays, counter-clockwise, no repeated closing vertex

SQUARE = np.array([(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)])

L_HEXAGON = np.array([(0.0, 0.0), (2.0, 0.0), (2.0, 1.0), (1.0, 1.0), (1.0, 2.0), (0.0, 2.0)])

CONVEX_PENTAGON = np.array([(0.0, 0.0), (3.0, 0.0), (4.0, 2.0), (1.5, 4.0), (-0.5, 2.0)])


# Two hexagon classes whose feature multisets differ, so no registration maps one onto the other

CLASS_A = (
    np.array([0.30, 0.10, 0.20, 0.10, 0.20, 0.10]),
    np.array([0.20, 0.15, 0.10, 0.20, 0.15, 0.20]),
)

CLASS_B = (
    np.array([0.05, 0.35, 0.05, 0.25, 0.05, 0.25]),
    np.array([0.30, 0.05, 0.30, 0.05, 0.25, 0.05]),
)

# No rotational symmetry: every shift gives a distinct vector
ASYMMETRIC_PENTAGON = (
    np.array([0.30, 0.10, 0.20, 0.15, 0.25]),
    np.array([0.18, 0.26, 0.14, 0.22, 0.20]),
)


@pytest.fixture
def square() -> np.ndarray:
    return SQUARE.copy()


@pytest.fixture
def l_hexagon() -> np.ndarray:
    return L_HEXAGON.copy()


@pytest.fixture
def convex_pentagon() -> np.ndarray:
    return CONVEX_PENTAGON.copy()


@pytest.fixture
def class_shapes() -> tuple[tuple[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]]:
    return CLASS_A, CLASS_B


@pytest.fixture
def asymmetric_pentagon() -> tuple[np.ndarray, np.ndarray]:
    return ASYMMETRIC_PENTAGON


@pytest.fixture
def two_pairs() -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Four shapes in two identical pairs: squares and 4:1 rectangles, unregistered."""
    square_l = [0.25, 0.25, 0.25, 0.25]
    rect_l = [0.40, 0.10, 0.40, 0.10]
    right = [0.25, 0.25, 0.25, 0.25]
    lengths = np.array([square_l, rect_l, square_l, rect_l])
    angles = np.array([right, right, right, right])
    return lengths, angles, np.array([0, 1, 0, 1])


@pytest.fixture
def registered_classes() -> tuple[np.ndarray, np.ndarray, np.ndarray, list[Registration]]:
    """Six noisy copies of each class, each read from a random start and direction."""
    rng = np.random.default_rng(7)
    rows_l, rows_a, truth, regs = [], [], [], []
    for label, (base_l, base_a) in enumerate((CLASS_A, CLASS_B)):
        for _ in range(6):
            noisy_l = base_l + rng.normal(0.0, 0.003, size=6)
            noisy_a = base_a + rng.normal(0.0, 0.003, size=6)
            reg = Registration(int(rng.integers(6)), int(rng.integers(2)), 6)
            reg_l, reg_a = register(noisy_l, noisy_a, reg)
            rows_l.append(reg_l)
            rows_a.append(reg_a)
            truth.append(label)
            regs.append(reg)
    return np.array(rows_l), np.array(rows_a), np.array(truth), regs
