from bhlens.physics.geodesics.schwarzschild import (
    GeodesicIntegrator,
    closest_approach,
    geodesic_derivative,
    rk4_step,
)

__all__ = [
    "GeodesicIntegrator",
    "closest_approach",
    "geodesic_derivative",
    "rk4_step",
]
