"""Body keypoint tracking using MediaPipe Pose."""

import logging
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

import config
from camera.base_source import CameraSignalSource
from camera.capture import CameraCapture
from camera.compliance import PresenceSignal

logger = logging.getLogger(__name__)


class KeypointSignalSource(CameraSignalSource):
    """
    Tracks one pose landmark and reports its position.

    Positions are normalized camera coordinates (not mirrored); the
    compliance evaluator applies the mirror correction. The landmark's
    visibility score is reported as the confidence.
    """

    def __init__(self, landmark: int = None, camera: Optional[CameraCapture] = None,
                 min_detection_confidence: float = 0.5):
        super().__init__(camera)
        self.landmark = landmark if landmark is not None else config.KEYPOINT_LANDMARK
        self.min_detection_confidence = min_detection_confidence
        self.pose = None

    def open(self) -> None:
        super().open()
        self.pose = mp.solutions.pose.Pose(
            model_complexity=1,
            smooth_landmarks=True,
            min_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_detection_confidence,
            static_image_mode=False,
        )

    def close(self) -> None:
        super().close()
        if self.pose is not None:
            self.pose.close()
            self.pose = None

    def _measure(self, frame: np.ndarray) -> PresenceSignal:
        # Convert BGR to RGB for MediaPipe
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.pose.process(rgb_frame)

        if not results.pose_landmarks:
            return PresenceSignal(position=None, confidence=0.0)

        point = results.pose_landmarks.landmark[self.landmark]
        return PresenceSignal(position=(point.x, point.y), confidence=point.visibility)
