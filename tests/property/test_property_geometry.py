"""Property-based tests for mouth geometry metrics

Property: For any well-formed mouth, openness and width match the landmark
geometry, aspect ratio follows from them, bounded metrics stay in range, and
metrics do not change when the whole face is scaled about the mouth centre.
"""

import math

import pytest
from hypothesis import assume, given, settings, strategies as st

from mouthtrack.analysis.geometry import EPSILON, compute_metrics
from tests.fixtures.synthetic_landmarks import basic_of, make_face


openness_values = st.floats(min_value=0.005, max_value=0.15, allow_nan=False)
width_values = st.floats(min_value=0.04, max_value=0.25, allow_nan=False)
thickness_values = st.floats(min_value=0.002, max_value=0.02, allow_nan=False)


def metrics_for(face):
    return compute_metrics(basic_of(face), face, face)


@settings(max_examples=50, deadline=None)
@given(openness=openness_values, width=width_values, thickness=thickness_values)
def test_primary_distances(openness, width, thickness):
    metrics = metrics_for(make_face(openness=openness, width=width, lip_thickness=thickness))

    assert metrics.openness == pytest.approx(openness, rel=1e-6)
    assert metrics.width == pytest.approx(width, rel=1e-6)
    assert metrics.aspect_ratio == pytest.approx(metrics.width / (metrics.openness + EPSILON))
    assert metrics.area == pytest.approx(math.pi * (width / 2) * (openness / 2), rel=1e-6)


@settings(max_examples=50, deadline=None)
@given(openness=openness_values, width=width_values, thickness=thickness_values)
def test_bounded_metrics(openness, width, thickness):
    metrics = metrics_for(make_face(openness=openness, width=width, lip_thickness=thickness))

    assert 0.0 <= metrics.circularity <= 1.0
    assert 0.0 <= metrics.symmetry <= 1.0
    assert metrics.ellipticity >= 1.0
    assert metrics.lip_protrusion >= 0.0
    assert metrics.upper_lip_thickness >= 0.0
    assert metrics.lower_lip_thickness >= 0.0


@settings(max_examples=50, deadline=None)
@given(openness=openness_values, width=width_values)
def test_mirrored_face_is_symmetric(openness, width):
    metrics = metrics_for(make_face(openness=openness, width=width))

    assert metrics.symmetry == pytest.approx(1.0, abs=1e-6)
    assert metrics.mouth_corner_angle.left == pytest.approx(metrics.mouth_corner_angle.right, abs=1e-9)


@settings(max_examples=50, deadline=None)
@given(
    openness=st.floats(min_value=0.01, max_value=0.08, allow_nan=False),
    width=st.floats(min_value=0.04, max_value=0.12, allow_nan=False),
    factor=st.floats(min_value=0.5, max_value=1.5, allow_nan=False)
)
def test_scale_invariance(openness, width, factor):
    assume(abs(factor - 1.0) > 1e-3)
    reference = metrics_for(make_face(openness=openness, width=width))
    scaled = metrics_for(make_face(
        openness=openness * factor,
        width=width * factor,
        lip_thickness=0.01 * factor,
        eye_distance=0.2 * factor
    ))

    assert scaled.scale == pytest.approx(factor, rel=1e-6)
    assert scaled.openness == pytest.approx(reference.openness, rel=1e-6)
    assert scaled.width == pytest.approx(reference.width, rel=1e-6)
    assert scaled.area == pytest.approx(reference.area, rel=1e-6)
    assert scaled.aspect_ratio == pytest.approx(reference.aspect_ratio, rel=1e-2)
    assert scaled.circularity == pytest.approx(reference.circularity, abs=1e-6)
    assert scaled.upper_lip_thickness == pytest.approx(reference.upper_lip_thickness, rel=1e-6)


@settings(max_examples=50, deadline=None)
@given(openness=openness_values, width=width_values, thickness=thickness_values)
def test_deterministic(openness, width, thickness):
    face = make_face(openness=openness, width=width, lip_thickness=thickness)

    assert metrics_for(face) == metrics_for(face)
