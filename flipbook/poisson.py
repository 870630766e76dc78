"""Poisson-disk sampling with a background acceleration grid.

Produces evenly spread random points in a rectangle such that no two
points are closer than ``min_distance``.
"""

import math
import random

from flipbook.errors import InvalidDimensions

# Candidates tried around an active point before it is retired
DEFAULT_ATTEMPTS = 30


def _cell_of(x: float, y: float, cell_size: float) -> tuple[int, int]:
    return int(x // cell_size), int(y // cell_size)


def _is_far_enough(
    x: float,
    y: float,
    grid: list[list[tuple[float, float] | None]],
    cell_size: float,
    min_distance: float,
) -> bool:
    """Check the 5x5 block of grid cells around (x, y) for close neighbours."""
    gx, gy = _cell_of(x, y, cell_size)
    cols = len(grid)
    rows = len(grid[0])

    for i in range(max(0, gx - 2), min(cols - 1, gx + 2) + 1):
        for j in range(max(0, gy - 2), min(rows - 1, gy + 2) + 1):
            neighbour = grid[i][j]
            if neighbour is None:
                continue
            if math.hypot(x - neighbour[0], y - neighbour[1]) < min_distance:
                return False
    return True


def poisson_disk_sample(
    width: float,
    height: float,
    min_distance: float,
    max_points: int,
    rng: random.Random | None = None,
    attempts: int = DEFAULT_ATTEMPTS,
) -> list[tuple[float, float]]:
    """Sample up to ``max_points`` points inside ``[0, width) x [0, height)``.

    Args:
        width: Canvas width in pixels.
        height: Canvas height in pixels.
        min_distance: Minimum pairwise distance between accepted points.
        max_points: Upper bound on the number of points returned.
        rng: Random source. A fresh unseeded generator is used when omitted.
        attempts: Candidates tried around an active point before retiring it.

    Returns:
        Accepted points in acceptance order.

    Raises:
        InvalidDimensions: If any size or count argument is not positive.
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"Canvas must be positive, got {width}x{height}")
    if min_distance <= 0:
        raise InvalidDimensions(f"min_distance must be positive, got {min_distance}")
    if max_points <= 0:
        raise InvalidDimensions(f"max_points must be positive, got {max_points}")

    rng = rng or random.Random()
    cell_size = min_distance / math.sqrt(2)
    cols = math.ceil(width / cell_size)
    rows = math.ceil(height / cell_size)
    grid: list[list[tuple[float, float] | None]] = [[None] * rows for _ in range(cols)]

    first = (rng.random() * width, rng.random() * height)
    points = [first]
    active = [first]
    gx, gy = _cell_of(first[0], first[1], cell_size)
    grid[gx][gy] = first

    while active and len(points) < max_points:
        index = rng.randrange(len(active))
        px, py = active[index]

        for _ in range(attempts):
            angle = rng.random() * 2 * math.pi
            distance = min_distance + rng.random() * min_distance
            x = px + math.cos(angle) * distance
            y = py + math.sin(angle) * distance

            if not (0 <= x < width and 0 <= y < height):
                continue
            if not _is_far_enough(x, y, grid, cell_size, min_distance):
                continue

            point = (x, y)
            points.append(point)
            active.append(point)
            cx, cy = _cell_of(x, y, cell_size)
            grid[cx][cy] = point
            break
        else:
            # Nothing fits around this point any more
            active.pop(index)

    return points
