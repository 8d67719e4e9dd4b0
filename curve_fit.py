''' Small least-squares problems with known solutions, used to exercise the optimizers.

Each problem provides a residual function on form F(x) -> (M, ) and where practical an analytic Jacobian on
form J(x) -> (M, N). Data dependent problems take their data as trailing arguments, bind them with
other.funcs.make_callable().
'''
import numpy as np

import mathf.rng as rng

#
#   Rosenbrock: minimum at (1, 1), the classic start is (-1.2, 1)
#
ROSENBROCK_INITIAL = np.array([-1.2, 1.0])
ROSENBROCK_OPTIMAL = np.array([1.0, 1.0])


def rosenbrock_residual(x):
    return np.array([10 * (x[1] - x[0] * x[0]), 1 - x[0]])


def rosenbrock_jacobian(x):
    return np.array([
        [-20 * x[0], 10.0],
        [-1.0, 0.0]
    ])


#
#   Badly scaled Brown: minimum at (1e6, 2e-6), parameters differ in magnitude by 12 orders
#
BROWN_INITIAL = np.array([1.0, 1.0])
BROWN_OPTIMAL = np.array([1e6, 2e-6])


def brown_residual(x):
    return np.array([x[0] - 1e6, x[1] - 2e-6, x[0] * x[1] - 2])


def brown_jacobian(x):
    return np.array([
        [1.0, 0.0],
        [0.0, 1.0],
        [x[1], x[0]]
    ])


#
#   Line fitting with outliers
#
LINE_INITIAL = np.array([2.0, -3.0])
LINE_OPTIMAL = np.array([-0.5, 1.4])


def line_points(line, count, sigma):
    ''' Sample points along the line with added gaussian noise.

    The line is defined by its tangent point (lx, ly), the closest point on the line to the origin, and runs in
    the direction (-ly, lx).

    Args:
    ----
    line:   Tangent point on form (2, ).
    count:  Number of points.
    sigma:  Standard deviation of the noise added to each coordinate.
    Returns:
        Points on form (count, 2).
    '''
    lx, ly = line
    t = rng.uniform(count, -10.0, 10.0)
    P = np.stack((lx + t * ly, ly - t * lx), axis=-1)
    return P + rng.normal(P.shape, std=sigma)


def make_line_system(inliers=200, outliers=50, sigma=0.1, outlier_sigma=30.0):
    ''' Generate points for a line where a fraction of the points are outliers.

    Returns:
        Points on form (inliers + outliers, 2).
    '''
    return np.concatenate((line_points(LINE_OPTIMAL, inliers, sigma),
                           line_points(LINE_OPTIMAL, outliers, outlier_sigma)))


def line_residual(x, points):
    ''' Distance from each point to the closest point on the line, as interleaved x and y components.

    Args:
    ----
    x:      Line tangent point on form (2, ).
    points: Points on form (K, 2).
    Returns:
        Residual vector on form (2K, ).
    '''
    lx, ly = x[0], x[1]
    sx, sy = -ly, lx
    t = (sx * (points[:, 0] - lx) + sy * (points[:, 1] - ly)) / (sx * sx + sy * sy)
    r = np.empty(2 * len(points))
    r[0::2] = points[:, 0] - (lx + t * sx)
    r[1::2] = points[:, 1] - (ly + t * sy)
    return r


#
#   Exponential curve: y = a * exp(b * t)
#
def make_exponential_system(a=2.0, b=-0.7, count=40, sigma=0.0):
    ''' Sample the curve a * exp(b * t) for t in [0, 4].

    Returns:
        Sample locations t and values y, both on form (count, ).
    '''
    t = np.linspace(0.0, 4.0, count)
    y = a * np.exp(b * t)
    if sigma > 0:
        y = y + rng.normal(count, std=sigma)
    return t, y


def exponential_residual(x, t, y):
    return x[0] * np.exp(x[1] * t) - y


def exponential_jacobian(x, t, y):
    e = np.exp(x[1] * t)
    return np.stack((e, x[0] * t * e), axis=-1)
