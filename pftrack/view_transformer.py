import cv2
import numpy as np
import numpy.typing as npt

from .errors import CollaboratorError

class ViewTransformer:
    '''
    Planar homography between a source and a target set of points.
    Used by the corner homography state space model to warp the sampling
    grid and to compose warp updates.
    '''
    def __init__(
            self,
            source: npt.NDArray[np.float64],
            target: npt.NDArray[np.float64]
    ) -> None:
        if source.shape != target.shape:
            raise ValueError("Source and target must have the same shape.")
        if source.ndim != 2 or source.shape[1] != 2:
            raise ValueError("Source and target points must be 2D coordinates.")
        if source.shape[0] < 4:
            raise ValueError("At least 4 point pairs are needed for a homography.")

        m, _ = cv2.findHomography(
            source.astype(np.float64),
            target.astype(np.float64)
        )
        if m is None:
            raise CollaboratorError("Homography matrix could not be calculated.")
        self._set_matrix(m)

    def _set_matrix(self, m: npt.NDArray[np.float64]) -> None:
        if not np.all(np.isfinite(m)) or abs(m[2, 2]) < 1e-12:
            raise CollaboratorError("Degenerate homography matrix.")
        self.m = m / m[2, 2]
        try:
            self.m_inv = np.linalg.inv(self.m)
        except np.linalg.LinAlgError as e:
            raise CollaboratorError("Homography matrix is singular.") from e

    @classmethod
    def from_matrix(cls, m: npt.NDArray[np.float64]) -> 'ViewTransformer':
        transformer = cls.__new__(cls)
        transformer._set_matrix(np.asarray(m, dtype=np.float64))
        return transformer

    def compose(self, other: 'ViewTransformer') -> 'ViewTransformer':
        '''Warp that applies `other` first and then `self`.'''
        return ViewTransformer.from_matrix(self.m @ other.m)

    def inverse(self) -> 'ViewTransformer':
        return ViewTransformer.from_matrix(self.m_inv)

    def transform_points(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Source → Target"""
        return self._apply(points, self.m)

    def inverse_transform_points(self, points: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Target → Source"""
        return self._apply(points, self.m_inv)

    @staticmethod
    def _apply(points: npt.NDArray[np.float64], m: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        if points.size == 0:
            return points
        if points.shape[-1] != 2:
            raise ValueError("Points must be 2D coordinates.")

        reshaped_points = points.reshape(-1, 1, 2).astype(np.float64)
        transformed_points = cv2.perspectiveTransform(reshaped_points, m)
        return transformed_points.reshape(-1, 2)
