"""
ArUco board configuration loading.

The board file is a YAML document with two index-aligned keys::

    objPoints:            # one flat [x, y, z, x, y, z, ...] list per marker
      - [0.0, 0.04, 0.0, 0.04, 0.04, 0.0, 0.04, 0.0, 0.0, 0.0, 0.0, 0.0]
    ids: [0]

Markers from index 28 onwards were exported with the opposite corner winding
to the printed board, so their corners 0/1 and 2/3 are swapped on load.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
import yaml

logger = logging.getLogger(__name__)


# The marker dictionary is fixed for every board this package handles
MARKER_DICTIONARY = "DICT_4X4_100"

# First marker index whose corners are stored in swapped order
CORNER_SWAP_START = 28

CORNERS_PER_MARKER = 4

# OpenCV id of MARKER_DICTIONARY
MARKER_DICTIONARY_ID = cv2.aruco.DICT_4X4_100


class BoardConfigError(ValueError):
    """Raised when a board configuration cannot be read or is malformed."""


def get_dictionary() -> cv2.aruco.Dictionary:
    """Return the board marker dictionary."""
    return cv2.aruco.getPredefinedDictionary(MARKER_DICTIONARY_ID)


def swap_marker_corners(corners: np.ndarray) -> np.ndarray:
    """Return a copy of a (4, 3) corner array with corners 0<->1 and 2<->3 swapped."""
    return corners[[1, 0, 3, 2]].copy()


@dataclass(frozen=True, eq=False)
class BoardConfig:
    """Immutable description of a fiducial marker board."""
    ids: Tuple[int, ...] = ()
    obj_points: Tuple[np.ndarray, ...] = ()  # One (4, 3) float32 array per marker
    _dictionary: Any = field(default=None, init=False, repr=False, compare=False)

    @property
    def num_markers(self) -> int:
        return len(self.ids)

    @property
    def is_empty(self) -> bool:
        return not self.ids or not self.obj_points

    @property
    def dictionary_name(self) -> str:
        return MARKER_DICTIONARY

    @property
    def dictionary(self) -> cv2.aruco.Dictionary:
        """The board's ArUco dictionary (created once, shared afterwards)."""
        if self._dictionary is None:
            object.__setattr__(self, '_dictionary', get_dictionary())
        return self._dictionary

    def validate(self):
        """
        Check the board can be used for pose estimation.

        Raises:
            BoardConfigError: if the board is empty or ids and corners differ in length
        """
        if self.is_empty:
            raise BoardConfigError(
                f"Board has no usable markers (ids={len(self.ids)}, "
                f"objPoints={len(self.obj_points)})"
            )
        if len(self.ids) != len(self.obj_points):
            raise BoardConfigError(
                f"Board ids and objPoints differ in length: "
                f"{len(self.ids)} != {len(self.obj_points)}"
            )

    def marker_corners(self, marker_id: int) -> Optional[np.ndarray]:
        """3D corners of ``marker_id`` in board space, or None if not on the board."""
        try:
            return self.obj_points[self.ids.index(marker_id)]
        except ValueError:
            return None

    def create_board(self) -> cv2.aruco.Board:
        """Build the composite OpenCV board used for correspondence lookup."""
        self.validate()
        return cv2.aruco.Board(
            [np.asarray(p, dtype=np.float32) for p in self.obj_points],
            self.dictionary,
            np.array(self.ids, dtype=np.int32).reshape(-1, 1)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk layout (re-applying the corner swap)."""
        flat_points = []
        for index, corners in enumerate(self.obj_points):
            if index >= CORNER_SWAP_START:
                corners = swap_marker_corners(corners)
            flat_points.append([float(v) for v in np.asarray(corners).reshape(-1)])
        return {'objPoints': flat_points, 'ids': [int(i) for i in self.ids]}


def grid_board_config(markers_x: int, markers_y: int,
                      marker_length: float, marker_separation: float,
                      first_id: int = 0) -> BoardConfig:
    """
    Describe a planar grid of markers in the fixed dictionary.

    Args:
        markers_x: Number of markers in X direction
        markers_y: Number of markers in Y direction
        marker_length: Marker side length in meters
        marker_separation: Gap between markers in meters
        first_id: Id of the first marker, the rest are consecutive

    Returns:
        BoardConfig with corners in printed order
    """
    ids = np.arange(first_id, first_id + markers_x * markers_y, dtype=np.int32)
    grid = cv2.aruco.GridBoard(
        (markers_x, markers_y),
        marker_length,
        marker_separation,
        get_dictionary(),
        ids
    )
    return BoardConfig(
        ids=tuple(int(i) for i in np.asarray(grid.getIds()).reshape(-1)),
        obj_points=tuple(np.asarray(p, dtype=np.float32).reshape(4, 3)
                         for p in grid.getObjPoints())
    )


def _parse_marker_points(index: int, values: Any) -> np.ndarray:
    if not isinstance(values, (list, tuple)):
        raise BoardConfigError(f"objPoints[{index}] is not a list")
    if len(values) % 3 != 0:
        raise BoardConfigError(
            f"objPoints[{index}] has {len(values)} values, expected a multiple of 3"
        )
    try:
        points = np.array([float(v) for v in values], dtype=np.float32).reshape(-1, 3)
    except (TypeError, ValueError) as e:
        raise BoardConfigError(f"objPoints[{index}] contains a non-numeric value: {e}")
    if len(points) != CORNERS_PER_MARKER:
        raise BoardConfigError(
            f"objPoints[{index}] describes {len(points)} points, "
            f"expected {CORNERS_PER_MARKER}"
        )
    return points


def parse_board_config(data: Optional[Dict[str, Any]]) -> BoardConfig:
    """
    Build a BoardConfig from an already-parsed configuration mapping.

    Missing ``objPoints`` or ``ids`` leave the corresponding field empty.

    Args:
        data: Mapping with optional ``objPoints`` and ``ids`` keys

    Returns:
        BoardConfig

    Raises:
        BoardConfigError: if a present field is malformed
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BoardConfigError("Board configuration must be a mapping")

    obj_points: List[np.ndarray] = []
    if data.get('objPoints') is not None:
        raw_points = data['objPoints']
        if not isinstance(raw_points, (list, tuple)):
            raise BoardConfigError("objPoints must be a list of coordinate lists")
        for index, values in enumerate(raw_points):
            corners = _parse_marker_points(index, values)
            if index >= CORNER_SWAP_START:
                corners = swap_marker_corners(corners)
            obj_points.append(corners)

    ids: List[int] = []
    if data.get('ids') is not None:
        raw_ids = data['ids']
        if not isinstance(raw_ids, (list, tuple)):
            raise BoardConfigError("ids must be a list of integers")
        for value in raw_ids:
            if isinstance(value, bool) or not isinstance(value, int):
                raise BoardConfigError(f"Marker id {value!r} is not an integer")
            ids.append(value)

    return BoardConfig(ids=tuple(ids), obj_points=tuple(obj_points))


def load_board_config(config_path: str) -> BoardConfig:
    """
    Load an ArUco board configuration from a YAML file.

    Args:
        config_path: Path to the board YAML file

    Returns:
        BoardConfig

    Raises:
        BoardConfigError: if the file cannot be read or parsed
    """
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise BoardConfigError(f"Cannot read board configuration {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise BoardConfigError(f"Invalid YAML in board configuration {config_path}: {e}") from e

    board = parse_board_config(data)
    if not board.ids:
        logger.warning(f"Board configuration {config_path} has no 'ids'")
    if not board.obj_points:
        logger.warning(f"Board configuration {config_path} has no 'objPoints'")
    logger.info(f"Loaded board with {board.num_markers} markers from {config_path}")
    return board
