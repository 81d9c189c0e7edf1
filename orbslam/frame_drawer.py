"""Rendering of the current tracking state onto the last processed image."""

from __future__ import annotations

import threading
from enum import IntEnum
from typing import Callable, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from orbslam.twoview import KeyPoint

_DEFAULT_SHAPE = (480, 640, 3)
_KEY_HALF_SIDE = 5
_KEY_DOT_RADIUS = 2
_TEXT_MARGIN = 10
_TEXT_OFFSET = 5

_GREEN = (0, 255, 0)
_BLUE = (0, 0, 255)
_WHITE = (255, 255, 255)


class TrackingState(IntEnum):
    """State of the tracker as reported to the drawer."""

    SYSTEM_NOT_READY = -1
    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


def _to_rgb(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.ndim == 2:
        return np.stack([arr] * 3, axis=-1)
    if arr.ndim == 3 and arr.shape[2] == 1:
        return np.repeat(arr, 3, axis=2)
    if arr.ndim == 3 and arr.shape[2] >= 3:
        return arr[:, :, :3].copy()
    raise ValueError("image must be a 2-D grey image or a 3-D colour image")


class FrameDrawer:
    """Holds the last tracked image and keypoints and draws them with a status line.

    ``map_stats`` is a callable returning ``(keyframes_in_map, map_points_in_map)``.
    """

    def __init__(self, map_stats: Callable[[], tuple[int, int]]) -> None:
        self._map_stats = map_stats
        self._lock = threading.Lock()
        self._state = TrackingState.SYSTEM_NOT_READY
        self._image = np.zeros(_DEFAULT_SHAPE, dtype=np.uint8)
        self._current_keys: list[KeyPoint] = []
        self._initial_keys: list[KeyPoint] = []
        self._initial_matches: list[int] = []
        self._vo: list[bool] = []
        self._map: list[bool] = []
        self.only_tracking = False
        self.tracked = 0
        self.tracked_vo = 0
        self._font = ImageFont.load_default()

    @property
    def state(self) -> TrackingState:
        with self._lock:
            return self._state

    def update(
        self,
        image,
        current_keys: Sequence[KeyPoint],
        state,
        only_tracking: bool = False,
        initial_keys: Sequence[KeyPoint] = (),
        initial_matches: Sequence[int] = (),
        map_point_flags: Sequence[Optional[int]] = (),
    ) -> None:
        """Store the tracker's latest output.

        ``map_point_flags`` gives, per current keypoint, the number of
        observations of its matched map point, or None where the keypoint has
        no map point or is an outlier. It is read only in the OK state.
        """
        state = TrackingState(state)
        keys = list(current_keys)
        n = len(keys)
        vo = [False] * n
        in_map = [False] * n
        if state == TrackingState.OK:
            flags = list(map_point_flags)
            if len(flags) != n:
                raise ValueError("map_point_flags must have one entry per current keypoint")
            for i, observations in enumerate(flags):
                if observations is None:
                    continue
                if observations > 0:
                    in_map[i] = True
                else:
                    vo[i] = True
        rgb = _to_rgb(image)

        with self._lock:
            self._image = rgb
            self._current_keys = keys
            self._vo = vo
            self._map = in_map
            self.only_tracking = bool(only_tracking)
            if state == TrackingState.NOT_INITIALIZED:
                self._initial_keys = list(initial_keys)
                self._initial_matches = [int(m) for m in initial_matches]
            self._state = state

    def draw_frame(self) -> np.ndarray:
        """Return an RGB image with keypoints drawn and a status line underneath."""
        current_keys: list[KeyPoint] = []
        initial_keys: list[KeyPoint] = []
        matches: list[int] = []
        vo: list[bool] = []
        in_map: list[bool] = []

        with self._lock:
            state = self._state
            if self._state == TrackingState.SYSTEM_NOT_READY:
                self._state = TrackingState.NO_IMAGES_YET
            image = self._image.copy()
            if self._state == TrackingState.NOT_INITIALIZED:
                current_keys = list(self._current_keys)
                initial_keys = list(self._initial_keys)
                matches = list(self._initial_matches)
            elif self._state == TrackingState.OK:
                current_keys = list(self._current_keys)
                vo = list(self._vo)
                in_map = list(self._map)
            elif self._state == TrackingState.LOST:
                current_keys = list(self._current_keys)

        canvas = Image.fromarray(image, mode="RGB")
        draw = ImageDraw.Draw(canvas)

        if state == TrackingState.NOT_INITIALIZED:
            for i, m in enumerate(matches):
                if m >= 0:
                    start = initial_keys[i]
                    end = current_keys[m]
                    draw.line([(start.x, start.y), (end.x, end.y)], fill=_GREEN)
        elif state == TrackingState.OK:
            self.tracked = 0
            self.tracked_vo = 0
            r = _KEY_HALF_SIDE
            dot = _KEY_DOT_RADIUS
            for kp, is_vo, is_map in zip(current_keys, vo, in_map):
                if not (is_vo or is_map):
                    continue
                colour = _GREEN if is_map else _BLUE
                draw.rectangle([kp.x - r, kp.y - r, kp.x + r, kp.y + r], outline=colour)
                draw.ellipse([kp.x - dot, kp.y - dot, kp.x + dot, kp.y + dot], fill=colour)
                if is_map:
                    self.tracked += 1
                else:
                    self.tracked_vo += 1

        return self._draw_text_info(np.asarray(canvas), state)

    def _draw_text_info(self, image: np.ndarray, state: TrackingState) -> np.ndarray:
        text = self.status_text(state)
        measure = ImageDraw.Draw(Image.new("RGB", (1, 1)))
        left, top, right, bottom = measure.textbbox((0, 0), text, font=self._font)
        text_height = max(0, bottom - top)

        rows, cols = image.shape[:2]
        out = np.zeros((rows + text_height + _TEXT_MARGIN, cols, 3), dtype=np.uint8)
        out[:rows] = image
        canvas = Image.fromarray(out, mode="RGB")
        draw = ImageDraw.Draw(canvas)
        total_rows = out.shape[0]
        draw.text(
            (_TEXT_OFFSET, total_rows - _TEXT_OFFSET - text_height - top),
            text,
            fill=_WHITE,
            font=self._font,
        )
        return np.asarray(canvas).copy()

    def status_text(self, state) -> str:
        """The status line shown for a tracking state."""
        state = TrackingState(state)
        if state == TrackingState.NO_IMAGES_YET:
            return " WAITING FOR IMAGES"
        if state == TrackingState.NOT_INITIALIZED:
            return " TRYING TO INITIALIZE "
        if state == TrackingState.OK:
            prefix = "LOCALIZATION | " if self.only_tracking else "SLAM MODE |  "
            keyframes, map_points = self._map_stats()
            text = f"{prefix}KFs: {keyframes}, MPs: {map_points}, Matches: {self.tracked}"
            if self.tracked_vo > 0:
                text += f", + VO matches: {self.tracked_vo}"
            return text
        if state == TrackingState.LOST:
            return " TRACK LOST. TRYING TO RELOCALIZE "
        return " LOADING ORB VOCABULARY. PLEASE WAIT..."