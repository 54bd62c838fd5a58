"""Mouth Geometry Metrics

Pure functions that turn the landmarks of one frame into scalar mouth
measurements. Nothing here keeps state: the only cross-frame input is the
previous frame's metrics, passed explicitly for the rate fields.

Every function is total over well-formed landmark sets. Missing landmark
groups degrade to a zero value or to the basic 8-point computation instead
of raising.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from mouthtrack.input import landmark_indices as idx
from mouthtrack.models.enums import OpeningShape
from mouthtrack.models.features import LipValues, MouthMetrics, SideValues
from mouthtrack.models.landmarks import LandmarkSet, Point3


logger = logging.getLogger(__name__)

# Added to openness before dividing, keeps aspect_ratio finite for a shut mouth
EPSILON = 1e-4

CIRCULAR_THRESHOLD = 0.7
ELLIPTICAL_THRESHOLD = 1.5
SYMMETRY_GAIN = 10.0
# Points this close to the mirror axis belong to neither side
AXIS_TOLERANCE = 1e-9

Anchors = Tuple[Optional[Point3], Optional[Point3], Optional[Point3], Optional[Point3]]


def distance(p1: Optional[Point3], p2: Optional[Point3]) -> float:
    """Euclidean distance in 3D, 0 if either point is missing"""
    if p1 is None or p2 is None:
        return 0.0
    return float(np.linalg.norm(p2.as_array() - p1.as_array()))


def average_point(points: Sequence[Point3]) -> Optional[Point3]:
    if not points:
        return None
    mean = np.mean([p.as_array() for p in points], axis=0)
    return Point3(float(mean[0]), float(mean[1]), float(mean[2]))


def basic_anchors(basic: Optional[LandmarkSet]) -> Anchors:
    """(top, bottom, left, right) anchors of the basic 8-point set"""
    if basic is None:
        return None, None, None, None
    return (
        basic.get(idx.BASIC_MOUTH_INDICES["top_outer"]),
        basic.get(idx.BASIC_MOUTH_INDICES["bottom_outer"]),
        basic.get(idx.BASIC_MOUTH_INDICES["left_end"]),
        basic.get(idx.BASIC_MOUTH_INDICES["right_end"]),
    )


def contour_anchors(contour: LandmarkSet, basic: Optional[LandmarkSet]) -> Anchors:
    """Anchors averaged from the contour groups, each falling back to the basic set"""
    top, bottom, left, right = basic_anchors(basic)
    return (
        average_point(contour.points(idx.UPPER_CENTER_GROUP)) or top,
        average_point(contour.points(idx.LOWER_CENTER_GROUP)) or bottom,
        contour.get(idx.LEFT_CORNER) or left,
        contour.get(idx.RIGHT_CORNER) or right,
    )


def openness(basic: Optional[LandmarkSet]) -> float:
    top, bottom, _, _ = basic_anchors(basic)
    return distance(top, bottom)


def width(basic: Optional[LandmarkSet]) -> float:
    _, _, left, right = basic_anchors(basic)
    return distance(left, right)


def ellipse_area(mouth_width: float, mouth_openness: float) -> float:
    return math.pi * (mouth_width / 2) * (mouth_openness / 2)


def aspect_ratio(mouth_width: float, mouth_openness: float) -> float:
    return mouth_width / (mouth_openness + EPSILON)


def change_rate(current: float, previous: Optional[float]) -> float:
    """Relative change against the previous value, 0 without a usable previous"""
    if previous is None or previous == 0:
        return 0.0
    return (current - previous) / previous


def lip_thickness(outer: Sequence[Point3], inner: Sequence[Point3]) -> float:
    """Mean over outer points of the distance to the nearest inner point"""
    if not outer or not inner:
        return 0.0
    inner_array = np.array([p.as_array() for p in inner])
    nearest = [
        float(np.min(np.linalg.norm(inner_array - p.as_array(), axis=1)))
        for p in outer
    ]
    return float(np.mean(nearest))


def mouth_corner_angle(anchors: Anchors) -> SideValues:
    """Elevation of each corner relative to the mid-height of the mouth.

    Positive angles mean the corner sits above the mouth's vertical centre
    (image y grows downwards).
    """
    top, bottom, left, right = anchors
    if left is None or right is None:
        return SideValues()

    center_y = (top.y + bottom.y) / 2 if top is not None and bottom is not None else 0.5
    center_x = top.x if top is not None else 0.5

    left_angle = math.atan2(center_y - left.y, abs(center_x - left.x))
    right_angle = math.atan2(center_y - right.y, abs(right.x - center_x))
    return SideValues(left_angle, right_angle, (left_angle + right_angle) / 2)


def chord_curvature(points: Sequence[Point3]) -> float:
    """Largest distance of an interior point from the end-to-end chord, per chord length"""
    if len(points) < 3:
        return 0.0

    start, end = points[0], points[-1]
    chord = math.hypot(end.x - start.x, end.y - start.y)
    if chord == 0:
        return 0.0

    max_distance = 0.0
    for point in points[1:-1]:
        offset = abs(
            (end.y - start.y) * point.x
            - (end.x - start.x) * point.y
            + end.x * start.y
            - end.y * start.x
        ) / chord
        max_distance = max(max_distance, offset)
    return max_distance / chord


def lip_curvature(contour: Optional[LandmarkSet]) -> LipValues:
    if contour is None or len(contour) == 0:
        return LipValues()
    upper = chord_curvature(contour.points(idx.OUTER_UPPER_LIP))
    lower = chord_curvature(contour.points(idx.OUTER_LOWER_LIP))
    return LipValues(upper, lower, (upper + lower) / 2)


def polygon_area_perimeter(ring: Sequence[Point3]) -> Tuple[float, float]:
    """Shoelace area and perimeter of a closed polygon in the image plane"""
    xy = np.array([[p.x, p.y] for p in ring])
    rolled = np.roll(xy, -1, axis=0)
    area = 0.5 * abs(float(np.sum(xy[:, 0] * rolled[:, 1] - rolled[:, 0] * xy[:, 1])))
    perimeter = float(np.sum(np.linalg.norm(rolled - xy, axis=1)))
    return area, perimeter


def circularity(ring: Sequence[Point3]) -> float:
    """Isoperimetric ratio 4*pi*A/P^2 of the lip polygon, in [0, 1]"""
    if len(ring) < 3:
        return 0.0
    area, perimeter = polygon_area_perimeter(ring)
    if perimeter == 0:
        return 0.0
    value = (4 * math.pi * area) / (perimeter * perimeter)
    return min(max(value, 0.0), 1.0)


def ellipticity(points: Sequence[Point3]) -> float:
    """Ratio of the largest to the smallest radial distance from the centroid"""
    if len(points) < 2:
        return 1.0
    xy = np.array([[p.x, p.y] for p in points])
    radii = np.linalg.norm(xy - xy.mean(axis=0), axis=1)
    smallest = float(radii.min())
    if smallest <= 1e-9:
        return 1.0
    return max(1.0, float(radii.max()) / smallest)


def symmetry(
    points: Sequence[Point3],
    left: Optional[Point3],
    right: Optional[Point3],
    scale: float = 1.0
) -> float:
    """Left/right mirror agreement of the contour, 1 for a perfect mirror image"""
    if not points or left is None or right is None:
        return 0.0

    mid_x = (left.x + right.x) / 2
    left_side = [p for p in points if p.x < mid_x - AXIS_TOLERANCE]
    right_side = np.array([[p.x, p.y] for p in points if p.x > mid_x + AXIS_TOLERANCE])
    if not left_side or len(right_side) == 0:
        return 0.0

    mirror_distances = []
    for p in left_side:
        mirrored = np.array([2 * mid_x - p.x, p.y])
        mirror_distances.append(float(np.min(np.linalg.norm(right_side - mirrored, axis=1))))

    mean_distance = float(np.mean(mirror_distances)) / (scale or 1.0)
    return min(max(1.0 - mean_distance * SYMMETRY_GAIN, 0.0), 1.0)


def mouth_center(contour: LandmarkSet) -> Optional[Point3]:
    return average_point(contour.points([idx.LEFT_CORNER, idx.RIGHT_CORNER]))


def _mean_distance_to(anchor: Optional[Point3], points: Sequence[Point3]) -> float:
    if anchor is None or not points:
        return 0.0
    return float(np.mean([distance(anchor, p) for p in points]))


def corner_movement(contour: LandmarkSet) -> SideValues:
    left = _mean_distance_to(contour.get(idx.LEFT_CORNER), contour.points(idx.LEFT_CORNER_ADJACENT))
    right = _mean_distance_to(contour.get(idx.RIGHT_CORNER), contour.points(idx.RIGHT_CORNER_ADJACENT))
    return SideValues(left, right, (left + right) / 2)


def cheek_movement(contour: LandmarkSet) -> SideValues:
    center = mouth_center(contour)
    left = distance(average_point(contour.points(idx.LEFT_CHEEK)), center) if center else 0.0
    right = distance(average_point(contour.points(idx.RIGHT_CHEEK)), center) if center else 0.0
    return SideValues(left, right, (left + right) / 2)


def jaw_movement(contour: LandmarkSet) -> float:
    center = mouth_center(contour)
    jaw = average_point(contour.points(idx.JAW))
    if center is None or jaw is None:
        return 0.0
    return distance(jaw, center)


def lip_protrusion(contour: Optional[LandmarkSet]) -> float:
    """How far the outer upper lip sits in front of the mouth corners.

    The detector's z decreases towards the camera, so forward depth is the
    corner depth minus the lip depth. Without corners the raw depth is used.
    """
    if contour is None:
        return 0.0
    lip = contour.points(idx.OUTER_UPPER_BODY)
    if not lip:
        return 0.0
    corners = contour.points([idx.LEFT_CORNER, idx.RIGHT_CORNER])
    reference = float(np.mean([p.z for p in corners])) if corners else 0.0
    forward = reference - float(np.mean([p.z for p in lip]))
    return max(forward, 0.0)


def lip_heights(
    contour: Optional[LandmarkSet],
    left: Optional[Point3],
    right: Optional[Point3]
) -> Tuple[float, float]:
    """Distances of the outer upper and lower lip centres from the corner midpoint"""
    if contour is None:
        return 0.0, 0.0
    midpoint = average_point([p for p in (left, right) if p is not None])
    if midpoint is None:
        return 0.0, 0.0
    upper = distance(contour.get(idx.UPPER_LIP_CENTER), midpoint)
    lower = distance(contour.get(idx.LOWER_LIP_CENTER), midpoint)
    return upper, lower


def opening_shape(circularity_value: float, ellipticity_value: float) -> OpeningShape:
    if circularity_value > CIRCULAR_THRESHOLD:
        return OpeningShape.CIRCULAR
    if ellipticity_value > ELLIPTICAL_THRESHOLD:
        return OpeningShape.ELLIPTICAL
    return OpeningShape.LINEAR


def face_scale(
    face: Optional[LandmarkSet],
    reference_eye_distance: float = 0.2,
    reference_face_height: float = 0.25
) -> float:
    """Face-size factor relative to a typical webcam face.

    Uses the outer eye corner distance, then the nose bridge to chin
    distance, then 1.
    """
    if face is None:
        return 1.0

    eyes = distance(face.get(idx.LEFT_EYE_OUTER), face.get(idx.RIGHT_EYE_OUTER))
    if eyes > 0 and reference_eye_distance > 0:
        return eyes / reference_eye_distance

    height = distance(face.get(idx.NOSE_BRIDGE), face.get(idx.CHIN))
    if height > 0 and reference_face_height > 0:
        return height / reference_face_height

    return 1.0


def compute_metrics(
    basic: Optional[LandmarkSet],
    contour: Optional[LandmarkSet] = None,
    face: Optional[LandmarkSet] = None,
    previous: Optional[MouthMetrics] = None,
    reference_eye_distance: float = 0.2,
    reference_face_height: float = 0.25
) -> MouthMetrics:
    """Compute all mouth metrics for one frame.

    Args:
        basic: Basic 8-point mouth set
        contour: 16- or 34-point contour set; richer metrics need it
        face: Full-face set used for scale normalization
        previous: Metrics of the previous frame, for the rate fields
        reference_eye_distance: Eye distance that maps to scale 1
        reference_face_height: Nose-to-chin distance that maps to scale 1

    Returns:
        MouthMetrics with distances divided by scale and areas by scale squared
    """
    scale = face_scale(face, reference_eye_distance, reference_face_height)
    has_contour = contour is not None and len(contour) > 0

    anchors = contour_anchors(contour, basic) if has_contour else basic_anchors(basic)
    top, bottom, left, right = anchors

    mouth_openness = distance(top, bottom) / scale
    mouth_width = distance(left, right) / scale
    area = ellipse_area(mouth_width, mouth_openness)

    values = dict(
        openness=mouth_openness,
        width=mouth_width,
        area=area,
        aspect_ratio=aspect_ratio(mouth_width, mouth_openness),
        mouth_corner_angle=mouth_corner_angle(anchors),
        scale=scale,
    )

    if has_contour:
        ring = contour.points(idx.OUTER_LIP_RING)
        circ = circularity(ring)
        ell = ellipticity(ring)
        upper_height, lower_height = lip_heights(contour, left, right)
        values.update(
            upper_lip_thickness=lip_thickness(
                contour.points(idx.OUTER_UPPER_BODY), contour.points(idx.INNER_UPPER_LIP)) / scale,
            lower_lip_thickness=lip_thickness(
                contour.points(idx.OUTER_LOWER_BODY), contour.points(idx.INNER_LOWER_LIP)) / scale,
            lip_curvature=lip_curvature(contour),
            circularity=circ,
            ellipticity=ell,
            symmetry=symmetry(ring, left, right, scale),
            lip_protrusion=lip_protrusion(contour) / scale,
            upper_lip_height=upper_height / scale,
            lower_lip_height=lower_height / scale,
            opening_shape=opening_shape(circ, ell),
        )

    if has_contour and len(contour) >= idx.MIN_EXTENDED_CONTOUR:
        corners = corner_movement(contour)
        cheeks = cheek_movement(contour)
        values.update(
            corner_movement=SideValues(corners.left / scale, corners.right / scale, corners.average / scale),
            cheek_movement=SideValues(cheeks.left / scale, cheeks.right / scale, cheeks.average / scale),
            jaw_movement=jaw_movement(contour) / scale,
        )

    if previous is not None:
        values.update(
            openness_rate=change_rate(mouth_openness, previous.openness),
            width_rate=change_rate(mouth_width, previous.width),
        )

    return MouthMetrics(**values)
