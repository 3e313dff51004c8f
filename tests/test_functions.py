import numpy as np
import pytest

from lassopath.functions import (
    FunctionDescriptor,
    FunctionKind,
    as_arrays,
    build_descriptors,
    evaluate,
    prox,
    set_penalty,
)


def test_descriptor_rejects_non_positive_scale() -> None:
    with pytest.raises(ValueError):
        FunctionDescriptor(FunctionKind.ABS, 0.0)
    with pytest.raises(ValueError):
        FunctionDescriptor(FunctionKind.SQUARE, -1.0)


def test_descriptor_accepts_kind_by_value() -> None:
    d = FunctionDescriptor("square", 2.0, 1.0)
    assert d.kind is FunctionKind.SQUARE


def test_evaluate_applies_scale_and_offset() -> None:
    assert FunctionDescriptor(FunctionKind.SQUARE, 2.0, 1.0).evaluate(4.0) == pytest.approx(9.0)
    assert FunctionDescriptor(FunctionKind.ABS, 3.0, -1.0).evaluate(-3.0) == pytest.approx(6.0)
    assert FunctionDescriptor(FunctionKind.ZERO).evaluate(123.0) == 0.0
    assert FunctionDescriptor(FunctionKind.IND_GE0, 1.0, 1.0).evaluate(0.5) == np.inf
    assert FunctionDescriptor(FunctionKind.IND_GE0, 1.0, 1.0).evaluate(1.5) == 0.0


def test_prox_square() -> None:
    # argmin_u c/2 (u - o)^2 + rho/2 (u - v)^2 = (c o + rho v) / (c + rho)
    d = FunctionDescriptor(FunctionKind.SQUARE, 1.0, 2.0)
    assert d.prox(4.0, rho=1.0) == pytest.approx(3.0)
    assert d.prox(4.0, rho=3.0) == pytest.approx((2.0 + 12.0) / 4.0)


def test_prox_abs_is_soft_threshold() -> None:
    d = FunctionDescriptor(FunctionKind.ABS, 0.5, 0.0)
    assert d.prox(2.0, rho=1.0) == pytest.approx(1.5)
    assert d.prox(-2.0, rho=1.0) == pytest.approx(-1.5)
    assert d.prox(0.3, rho=1.0) == 0.0
    # threshold is scale / rho
    assert d.prox(2.0, rho=0.5) == pytest.approx(1.0)


def test_prox_abs_with_offset_and_indicator() -> None:
    assert FunctionDescriptor(FunctionKind.ABS, 1.0, 5.0).prox(5.5, rho=1.0) == pytest.approx(5.0)
    assert FunctionDescriptor(FunctionKind.IND_GE0, 1.0, 0.0).prox(-2.0, rho=1.0) == 0.0
    assert FunctionDescriptor(FunctionKind.IND_GE0, 1.0, 0.0).prox(2.0, rho=1.0) == 2.0
    assert FunctionDescriptor(FunctionKind.ZERO).prox(-7.0, rho=1.0) == -7.0


def test_vectorised_prox_mixes_kinds() -> None:
    descriptors = [
        FunctionDescriptor(FunctionKind.SQUARE, 1.0, 2.0),
        FunctionDescriptor(FunctionKind.ABS, 0.5, 0.0),
        FunctionDescriptor(FunctionKind.ZERO),
    ]
    kinds, scales, offsets = as_arrays(descriptors)
    v = np.array([4.0, 2.0, -1.0])
    out = prox(kinds, scales, offsets, v, rho=1.0)
    assert out == pytest.approx([3.0, 1.5, -1.0])
    assert evaluate(kinds, scales, offsets, v) == pytest.approx([2.0, 1.0, 0.0])
    # inputs untouched
    assert v.tolist() == [4.0, 2.0, -1.0]


def test_build_descriptors_for_lasso() -> None:
    b = np.array([1.0, -2.0, 3.0])
    f, g = build_descriptors(b, 4)

    assert len(f) == 3
    assert len(g) == 4
    assert all(d.kind is FunctionKind.SQUARE and d.scale == 1.0 for d in f)
    assert [d.offset for d in f] == [1.0, -2.0, 3.0]
    assert all(d.kind is FunctionKind.ABS and d.offset == 0.0 for d in g)


def test_set_penalty_only_touches_scale() -> None:
    _, g = build_descriptors(np.zeros(2), 3)
    set_penalty(g, 0.25)
    assert [d.scale for d in g] == [0.25, 0.25, 0.25]
    assert all(d.kind is FunctionKind.ABS and d.offset == 0.0 for d in g)

    with pytest.raises(ValueError):
        set_penalty(g, 0.0)
