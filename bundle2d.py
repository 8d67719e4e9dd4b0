''' Bundle adjustment in 2-D.

Cameras are placed along the line x = 0 and landmarks along x = depth. Each camera observes the bearing to every
landmark as atan((ly - cy) / (lx - cx)). The parameter vector holds all camera positions followed by all
landmark positions:

    x = [cx_0, cy_0, ..., cx_C, cy_C, lx_0, ly_0, ..., lx_L, ly_L]

Residual i * L + j is the observation of landmark j from camera i. Each residual depends on a single camera,
so with cameras as the left block the Schur block A = L^T L is block diagonal.
'''
import numpy as np
import scipy.sparse as sp

import mathf.matrix as mat
import mathf.rng as rng


def decode(x, num_camera):
    ''' Split the parameter vector into camera and landmark positions.

    Returns:
        Cameras on form (C, 2) and landmarks on form (L, 2).
    '''
    x = np.reshape(x, (-1, 2))
    return x[:num_camera], x[num_camera:]


def bearings(cameras, landmarks):
    ''' Compute the bearing from each camera to each landmark, on form (C, L).
    '''
    top = landmarks[np.newaxis, :, 1] - cameras[:, np.newaxis, 1]
    bottom = landmarks[np.newaxis, :, 0] - cameras[:, np.newaxis, 0]
    return np.arctan(top / bottom)


def bundle_residual(x, num_camera, observations):
    ''' Compute the residuals between predicted and observed bearings.

    Args:
    ----
    x:              Parameter vector on form (2C + 2L, ).
    num_camera:     Number of cameras C.
    observations:   Observed bearings on form (C * L, ).
    Returns:
        Residual vector on form (C * L, ).
    '''
    cameras, landmarks = decode(x, num_camera)
    return mat.makeN(bearings(cameras, landmarks)) - observations


def bundle_schur_jacobian(x, num_camera, observations):
    ''' Compute the sparse Jacobian split into the camera (left) and landmark (right) blocks.

    Returns:
        Left CSC matrix on form (C * L, 2C) and right CSC matrix on form (C * L, 2L).
    '''
    cameras, landmarks = decode(x, num_camera)
    C, L = len(cameras), len(landmarks)
    top = landmarks[np.newaxis, :, 1] - cameras[:, np.newaxis, 1]
    bottom = landmarks[np.newaxis, :, 0] - cameras[:, np.newaxis, 0]
    slope = top / bottom
    # d/du atan(u)
    a = 1.0 / (1.0 + slope * slope)
    dx = mat.makeN(a * top / (bottom * bottom))
    dy = mat.makeN(-a / bottom)

    M = C * L
    rows = np.repeat(np.arange(M), 2)
    camera = np.repeat(np.arange(C), L)
    landmark = np.tile(np.arange(L), C)

    cols = np.stack((2 * camera, 2 * camera + 1), axis=-1).reshape(-1)
    left = sp.csc_matrix((np.stack((dx, dy), axis=-1).reshape(-1), (rows, cols)), shape=(M, 2 * C))

    cols = np.stack((2 * landmark, 2 * landmark + 1), axis=-1).reshape(-1)
    right = sp.csc_matrix((np.stack((-dx, -dy), axis=-1).reshape(-1), (rows, cols)), shape=(M, 2 * L))
    return left, right


def bundle_jacobian(x, num_camera, observations):
    ''' Compute the full sparse Jacobian on form (C * L, 2C + 2L).
    '''
    return mat.concat_columns(*bundle_schur_jacobian(x, num_camera, observations))


def make_test_system(num_camera=20, num_landmarks=10, length=20.0, depth=10.0, std=0.5):
    ''' Generate a random bundle adjustment problem.

    Args:
    ----
    num_camera:     Number of cameras.
    num_landmarks:  Number of landmarks.
    length:         Cameras and landmarks are placed within [-length, length] along their line.
    depth:          Distance between the camera and landmark lines.
    std:            Standard deviation of the noise added to the optimal parameters to form the initial guess.
    Returns:
        Optimal parameters, initial parameters and the observed bearings.
    '''
    cameras = np.stack((np.zeros(num_camera), rng.uniform(num_camera, -length, length)), axis=-1)
    landmarks = np.stack((np.full(num_landmarks, depth), rng.uniform(num_landmarks, -length, length)), axis=-1)

    optimal = np.concatenate((mat.makeN(cameras), mat.makeN(landmarks)))
    initial = optimal + rng.normal(len(optimal), std=std)
    observations = mat.makeN(bearings(cameras, landmarks))
    if not np.all(np.isfinite(observations)):
        raise ValueError('Observations contain non-finite bearings')
    return optimal, initial, observations
