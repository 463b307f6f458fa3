#!/usr/bin/env python3
"""Fibonacci-lattice layout of the display pool over a sphere."""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass(frozen=True)
class SpherePosition:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class ScreenPoint:
    x: float
    y: float
    depth: float
    factor: float


@lru_cache(maxsize=32)
def sphere_positions(pool_length: int, radius: float) -> tuple[SpherePosition, ...]:
    """One point per slot, from the north pole (y = +radius) down to the south pole.

    Successive points turn by the golden angle, which spreads them evenly over
    the surface. A single slot sits on the equator.
    """
    if pool_length < 0:
        raise ValueError(f"Pool length cannot be negative, got {pool_length}")
    if radius < 0:
        raise ValueError(f"Radius cannot be negative, got {radius}")
    positions = []
    for index in range(pool_length):
        if pool_length == 1:
            y = 0.0
        else:
            y = 1 - (index / (pool_length - 1)) * 2
        ring_radius = math.sqrt(max(0.0, 1 - y * y))
        theta = GOLDEN_ANGLE * index
        positions.append(
            SpherePosition(
                x=math.cos(theta) * ring_radius * radius,
                y=y * radius,
                z=math.sin(theta) * ring_radius * radius,
            )
        )
    return tuple(positions)


def rotate_point(position: SpherePosition, angle_x: float, angle_y: float) -> SpherePosition:
    """Rotate around the x axis, then the y axis. Angles are in degrees."""
    rad_x = math.radians(angle_x)
    rad_y = math.radians(angle_y)
    cos_x = math.cos(rad_x)
    sin_x = math.sin(rad_x)
    cos_y = math.cos(rad_y)
    sin_y = math.sin(rad_y)
    y = position.y * cos_x - position.z * sin_x
    z = position.y * sin_x + position.z * cos_x
    x = position.x * cos_y - z * sin_y
    z = position.x * sin_y + z * cos_y
    return SpherePosition(x=x, y=y, z=z)


def project_point(position: SpherePosition, distance: float) -> ScreenPoint:
    """Perspective-project onto the screen plane, viewer at ``distance`` on +z."""
    if distance <= position.z:
        raise ValueError("Projection distance must lie in front of the point")
    factor = distance / (distance - position.z)
    return ScreenPoint(x=position.x * factor, y=position.y * factor, depth=position.z, factor=factor)


def card_scale(position: SpherePosition, compact: bool) -> float:
    distance = math.sqrt(position.x**2 + position.y**2 + (position.z + 400) ** 2)
    if distance == 0:
        return 0.8 if compact else 1.0
    if compact:
        return max(0.4, min(0.8, (600 / distance) * 0.7))
    return max(0.3, min(1.0, (800 / distance) * 0.8))
