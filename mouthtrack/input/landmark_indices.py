"""MediaPipe FaceMesh landmark indices used by the mouth tracker.

The upstream detector assigns each facial feature a fixed index (468-point
topology, 478 with iris refinement). These tables select the subsets the
metrics are computed from. Lip sequences are ordered from the left end of the
image (landmark 61) to the right end (landmark 291) so that chords and
polygons can be built directly from them.
"""

from typing import Dict, List


# Basic 8-point mouth set
BASIC_MOUTH_INDICES: Dict[str, int] = {
    "left_end": 61,
    "right_end": 291,
    "top_outer": 13,
    "bottom_outer": 14,
    "top_left": 37,
    "top_right": 267,
    "bottom_left": 84,
    "bottom_right": 314,
}

LEFT_CORNER = 61
RIGHT_CORNER = 291

# Outer lip line, left corner to right corner
OUTER_UPPER_LIP: List[int] = [61, 185, 40, 37, 0, 267, 270, 409, 291]
OUTER_LOWER_LIP: List[int] = [61, 146, 91, 84, 17, 314, 321, 375, 291]

# Inner lip line, left inner corner to right inner corner
INNER_UPPER_LIP: List[int] = [78, 80, 82, 13, 312, 310, 308]
INNER_LOWER_LIP: List[int] = [78, 88, 87, 14, 317, 318, 308]

# Closed polygon around the outer lip: upper line left to right, lower line back
OUTER_LIP_RING: List[int] = OUTER_UPPER_LIP + OUTER_LOWER_LIP[-2:0:-1]

# Groups averaged into the top and bottom anchors of the opening
UPPER_CENTER_GROUP: List[int] = [82, 13, 312]
LOWER_CENTER_GROUP: List[int] = [87, 14, 317]

# Outer lip centre points
UPPER_LIP_CENTER = 0
LOWER_LIP_CENTER = 17

# Outer upper lip without the corners (protrusion and thickness)
OUTER_UPPER_BODY: List[int] = OUTER_UPPER_LIP[1:-1]
OUTER_LOWER_BODY: List[int] = OUTER_LOWER_LIP[1:-1]

# Extended-contour anchors
LEFT_CORNER_ADJACENT: List[int] = [57]
RIGHT_CORNER_ADJACENT: List[int] = [287]
LEFT_CHEEK: List[int] = [116]
RIGHT_CHEEK: List[int] = [345]
JAW: List[int] = [152, 175]

# Face-size anchors
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263
NOSE_BRIDGE = 168
CHIN = 152

# 16-point contour: every other outer ring point plus 8 inner lip points
CONTOUR_16_INDICES: List[int] = [
    61, 40, 0, 270, 291, 321, 17, 91,
    78, 82, 13, 312, 308, 317, 14, 87,
]

# 34-point contour: full outer ring, inner lip, corner, cheek and jaw anchors
CONTOUR_34_INDICES: List[int] = (
    OUTER_LIP_RING
    + [78, 80, 82, 13, 312, 310, 308, 318, 317, 14, 87, 88]
    + LEFT_CORNER_ADJACENT + RIGHT_CORNER_ADJACENT
    + LEFT_CHEEK + RIGHT_CHEEK
    + JAW
)

MIN_EXTENDED_CONTOUR = 34


def contour_indices(use_34_points: bool = True) -> List[int]:
    """Return the contour index list for the requested granularity"""
    return list(CONTOUR_34_INDICES if use_34_points else CONTOUR_16_INDICES)
